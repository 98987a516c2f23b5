from dataclasses import dataclass
from fastapi import Request
from passlib.context import CryptContext
from typing import Optional

from src.db.common.exceptions import AccessDeniedError, LoginRequiredError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_SESSION_KEY = "principal"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)


@dataclass(frozen=True)
class Principal:
    """Người dùng đang đăng nhập, truyền tường minh vào từng use case"""
    user_id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def login_session(request: Request, user_id: int, email: str, role: str) -> Principal:
    """Ghi principal vào session sau khi đăng nhập thành công"""
    request.session[_SESSION_KEY] = {"user_id": user_id, "email": email, "role": role}
    return Principal(user_id=user_id, email=email, role=role)


def logout_session(request: Request) -> None:
    request.session.pop(_SESSION_KEY, None)


def get_optional_principal(request: Request) -> Optional[Principal]:
    """Dependency: principal hiện tại hoặc None nếu chưa đăng nhập"""
    data = request.session.get(_SESSION_KEY)
    if not data:
        return None
    return Principal(user_id=data["user_id"], email=data["email"], role=data["role"])


def get_current_principal(request: Request) -> Principal:
    """Dependency: bắt buộc đăng nhập (chưa đăng nhập -> redirect /login)"""
    principal = get_optional_principal(request)
    if principal is None:
        raise LoginRequiredError()
    return principal


def require_admin(request: Request) -> Principal:
    """Dependency: bắt buộc role ADMIN"""
    principal = get_current_principal(request)
    if not principal.is_admin:
        raise AccessDeniedError("Admin access required")
    return principal
