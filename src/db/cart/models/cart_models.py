from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from src.db.common.database_connection import Base

class Cart(Base):
    """Model cho giỏ hàng (mỗi user một giỏ, tạo khi truy cập lần đầu)"""
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    # Relationships
    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id")

    __mapper_args__ = {"version_id_col": version}

class CartItem(Base):
    """Một dòng trong giỏ hàng: sách + số lượng"""
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    cart = relationship("Cart", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "book_id", name="uk_cart_book"),
    )
