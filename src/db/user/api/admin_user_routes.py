from fastapi import APIRouter, Depends, Form, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from src.auth.security import require_admin, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError, InvalidInputError
from src.db.common.flash import flash, redirect, page_context
from src.db.user.models.user_models import UserRole
from src.db.user.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/users")
async def list_users(
    request: Request,
    page: int = Query(0),
    size: int = Query(20),
    keyword: Optional[str] = Query(None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Danh sách người dùng"""
    return page_context(
        request,
        users=UserService.list_users(db, page, size, keyword),
        keyword=keyword,
        roles=[role.value for role in UserRole],
    )


@router.post("/users/{user_id}/toggle-enabled")
async def toggle_user_enabled(
    request: Request,
    user_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Khóa / mở khóa tài khoản"""
    try:
        UserService.toggle_user_enabled(db, user_id, acting_user_id=admin.user_id)
        flash(request, "success", "User status updated successfully")
    except BookStoreError as e:
        logger.warning("Failed to toggle user %s: %s", user_id, e.message)
        flash(request, "error", e.message)
    return redirect("/admin/users")


@router.post("/users/{user_id}/role")
async def update_user_role(
    request: Request,
    user_id: int,
    role: str = Form(...),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Đổi role USER / ADMIN"""
    try:
        try:
            new_role = UserRole(role.strip().upper())
        except ValueError:
            raise InvalidInputError(f"Invalid role: {role}")
        UserService.update_user_role(db, user_id, new_role, acting_user_id=admin.user_id)
        flash(request, "success", "User role updated successfully")
    except BookStoreError as e:
        logger.warning("Failed to update role of user %s: %s", user_id, e.message)
        flash(request, "error", e.message)
    return redirect("/admin/users")
