from pydantic import BaseModel, Field, field_validator, computed_field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

# Genre schemas
class GenreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Genre name is required")
        return v

class Genre(BaseModel):
    id: int
    name: str
    book_count: int = 0

    class Config:
        from_attributes = True

# Book schemas
class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = None
    image_url: Optional[str] = Field(None, max_length=500)
    price: Decimal = Field(..., ge=0, max_digits=15, decimal_places=0)
    quantity: int = Field(..., ge=0)
    publisher: Optional[str] = Field(None, max_length=255)
    publish_date: Optional[date] = None

class BookCreate(BookBase):
    genre_ids: List[int] = []

class BookUpdate(BookBase):
    # None: giữ nguyên genres hiện tại
    genre_ids: Optional[List[int]] = None

class Book(BaseModel):
    id: int
    title: str
    author: str
    isbn: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[Decimal] = None
    price_formatted: Optional[str] = None
    quantity: Optional[int] = None
    publisher: Optional[str] = None
    publish_date: Optional[date] = None
    genre_ids: List[int] = []
    genre_names: List[str] = []
    average_rating: Optional[float] = None
    review_count: int = 0
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def in_stock(self) -> bool:
        return bool(self.quantity and self.quantity > 0)
