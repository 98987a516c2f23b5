from fastapi import APIRouter, Depends, Form, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import Optional

from src.auth.security import get_current_principal, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError
from src.db.common.flash import flash, redirect, error_message, page_context
from src.db.order.services.order_service import OrderService
from src.db.review.services.review_service import ReviewService
from src.db.user.models.user_schemas import ProfileUpdate, ChangePasswordRequest
from src.db.user.services.user_service import UserService

router = APIRouter()


@router.get("/profile")
async def profile_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Trang hồ sơ cá nhân"""
    return page_context(
        request,
        user=UserService.get_user(db, principal.user_id),
        order_count=OrderService.count_user_orders(db, principal.user_id),
        review_count=ReviewService.count_user_reviews(db, principal.user_id),
    )


@router.post("/profile")
async def update_profile(
    request: Request,
    full_name: str = Form(...),
    phone_number: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Cập nhật hồ sơ"""
    try:
        profile = ProfileUpdate(full_name=full_name, phone_number=phone_number, address=address)
        UserService.update_profile(db, principal.user_id, profile)
        flash(request, "success", "Profile updated successfully!")
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
    return redirect("/profile")


@router.get("/profile/change-password")
async def change_password_page(request: Request, principal: Principal = Depends(get_current_principal)):
    return page_context(request, user_email=principal.email)


@router.post("/profile/change-password")
async def change_password(
    request: Request,
    current_password: str = Form(...),
    password: str = Form(...),
    matching_password: str = Form(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Đổi mật khẩu"""
    try:
        form = ChangePasswordRequest(
            current_password=current_password, password=password, matching_password=matching_password
        )
        UserService.change_password(db, principal.user_id, form)
        flash(request, "success", "Password changed successfully.")
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
    return redirect("/profile/change-password")
