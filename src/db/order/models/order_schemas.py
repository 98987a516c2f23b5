from pydantic import BaseModel, Field, field_validator, computed_field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from src.db.order.models.order_models import OrderStatus, PaymentMethod, PaymentStatus

# Checkout request
class CheckoutRequest(BaseModel):
    shipping_address: str = Field(..., max_length=500)
    payment_method: str = "COD"
    # "1, 2,3": danh sách cart item id được chọn; rỗng = toàn bộ giỏ
    selected_cart_item_ids: Optional[str] = None

    @field_validator("shipping_address")
    @classmethod
    def address_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Shipping address is required")
        return v

# Order schemas
class OrderItem(BaseModel):
    id: int
    book_id: int
    title: str
    author: str
    image_url: str
    quantity: int
    price_at_purchase: Decimal
    subtotal: Decimal

class Order(BaseModel):
    id: int
    user_id: int
    user_email: str
    total_amount: Decimal
    total_formatted: str
    order_status: OrderStatus
    shipping_address: str
    order_date: datetime
    updated_at: datetime
    items: List[OrderItem] = []

    # Payment
    payment_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    transaction_code: Optional[str] = None
    paid_at: Optional[datetime] = None
    qr_code_url: Optional[str] = None

    @computed_field
    @property
    def can_cancel(self) -> bool:
        return self.order_status == OrderStatus.PENDING

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

# Payment schemas
class Payment(BaseModel):
    id: int
    order_id: int
    user_email: str
    amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    transaction_code: str
    created_at: datetime
    paid_at: Optional[datetime] = None

    class Config:
        from_attributes = True
