from pydantic import BaseModel, Field, computed_field
from typing import List, Optional
from decimal import Decimal

from src.utils.currency import format_vnd

PLACEHOLDER_IMAGE = "/images/placeholder.jpg"

# Cart schemas
class CartItemAdd(BaseModel):
    book_id: int
    # <= 0 hoặc bỏ trống được coi là 1
    quantity: Optional[int] = 1

class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)

class CartItem(BaseModel):
    cart_item_id: int
    book_id: int
    title: str
    author: str
    image_url: str = PLACEHOLDER_IMAGE
    price: Decimal
    quantity: int
    available_stock: int
    subtotal: Decimal

    @computed_field
    @property
    def exceeds_stock(self) -> bool:
        return self.quantity > self.available_stock

class Cart(BaseModel):
    cart_id: int
    items: List[CartItem] = []
    total_items: int = 0
    total_amount: Decimal = Decimal(0)

    @computed_field
    @property
    def total_formatted(self) -> str:
        return format_vnd(self.total_amount)

    @classmethod
    def from_items(cls, cart_id: int, items: List[CartItem]) -> "Cart":
        return cls(
            cart_id=cart_id,
            items=items,
            total_items=sum(item.quantity for item in items),
            total_amount=sum((item.subtotal for item in items), Decimal(0)),
        )
