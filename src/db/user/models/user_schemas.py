from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime
import re

from src.db.user.models.user_models import UserRole

# Ít nhất 8 ký tự, có chữ thường, chữ hoa, số và ký tự đặc biệt
STRONG_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
STRONG_PASSWORD_MESSAGE = (
    "Password must be at least 8 characters and contain an uppercase letter, "
    "a lowercase letter, a digit and a special character (@$!%*?&)"
)


def check_strong_password(value: str) -> str:
    if not STRONG_PASSWORD_PATTERN.match(value or ""):
        raise ValueError(STRONG_PASSWORD_MESSAGE)
    return value


class PasswordPair(BaseModel):
    """Mật khẩu mới + nhập lại"""
    password: str
    matching_password: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_strong_password(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.matching_password:
            raise ValueError("Passwords do not match")
        return self

# User schemas
class UserRegister(PasswordPair):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("phone_number", "address")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

class ChangePasswordRequest(PasswordPair):
    current_password: str

class ResetPasswordRequest(PasswordPair):
    token: str

class ProfileUpdate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("phone_number", "address")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

class User(BaseModel):
    id: int
    full_name: str
    email: str
    phone_number: Optional[str] = None
    address: Optional[str] = None
    role: UserRole
    is_enabled: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
