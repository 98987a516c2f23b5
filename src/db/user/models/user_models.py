from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Enum
from sqlalchemy.orm import relationship
from datetime import datetime, timedelta
import enum
import uuid

from src.db.common.database_connection import Base


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    """Model cho người dùng"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone_number = Column(String(20), unique=True)
    address = Column(String(500))
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(UserRole, name="user_role", native_enum=False), nullable=False, default=UserRole.USER)
    is_enabled = Column(Boolean, nullable=False, default=False)
    last_verification_email_sent = Column(DateTime)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    # Relationships
    verification_token = relationship(
        "VerificationToken", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    reset_password_token = relationship(
        "ResetPasswordToken", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}


class TokenMixin:
    """Logic hết hạn dùng chung cho token xác thực và token đặt lại mật khẩu"""

    def is_expired(self) -> bool:
        return datetime.now() > self.expired_at

    def is_valid_token(self) -> bool:
        return bool(self.is_valid) and not self.is_expired()

    @staticmethod
    def new_token_value() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def expiry_from_now(minutes: int) -> datetime:
        return datetime.now() + timedelta(minutes=minutes)


class VerificationToken(TokenMixin, Base):
    """Token xác thực email sau khi đăng ký"""
    __tablename__ = "verification_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(36), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    expired_at = Column(DateTime, nullable=False, index=True)
    is_valid = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="verification_token")


class ResetPasswordToken(TokenMixin, Base):
    """Token đặt lại mật khẩu (mỗi user tối đa một token)"""
    __tablename__ = "reset_password_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(36), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    expired_at = Column(DateTime, nullable=False, index=True)
    is_valid = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="reset_password_token")
