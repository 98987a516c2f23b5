from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
import enum

from src.db.common.database_connection import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    COD = "COD"
    QR = "QR"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class Order(Base):
    """Model cho đơn hàng"""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    total_amount = Column(Numeric(15, 0), nullable=False)
    order_status = Column(
        Enum(OrderStatus, name="order_status", native_enum=False),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    shipping_address = Column(String(500), nullable=False)
    version = Column(Integer, nullable=False)
    order_date = Column(DateTime, default=datetime.now, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    # Relationships
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    payment = relationship("Payment", back_populates="order", uselist=False, cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class OrderItem(Base):
    """Snapshot sách + số lượng + giá tại thời điểm mua"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(15, 0), nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self) -> Decimal:
        return self.price_at_purchase * self.quantity


class Payment(Base):
    """Model cho thanh toán (1:1 với đơn hàng)"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    payment_method = Column(Enum(PaymentMethod, name="payment_method", native_enum=False), nullable=False)
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    transaction_code = Column(String(50), nullable=False, unique=True)  # Mã giao dịch giả lập
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    paid_at = Column(DateTime)  # NULL khi chưa thanh toán hoặc thất bại

    # Relationships
    order = relationship("Order", back_populates="payment")
