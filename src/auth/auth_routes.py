from fastapi import APIRouter, Depends, Form, Query, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import Optional
from urllib.parse import quote
import logging

from src.auth.security import login_session, logout_session, get_optional_principal, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError, NotFoundError
from src.db.common.flash import flash, redirect, error_message, page_context
from src.db.user.models.user_schemas import UserRegister, ResetPasswordRequest
from src.db.user.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_LINK_SENT_MESSAGE = "A password reset link has been sent. Please check your email."


def _safe_redirect_target(target: Optional[str]) -> str:
    # Chỉ cho phép redirect nội bộ
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return "/"


@router.get("/login")
async def login_page(request: Request, redirect_to: Optional[str] = Query(None, alias="redirect")):
    """Trang đăng nhập"""
    return page_context(request, redirect=redirect_to)


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    redirect_to: Optional[str] = Form(None, alias="redirect"),
    db: Session = Depends(get_db),
):
    """Đăng nhập bằng email + mật khẩu"""
    try:
        user = UserService.authenticate(db, email, password)
    except BookStoreError as e:
        flash(request, "error", e.message)
        return redirect("/login")

    if user is None:
        logger.warning("Failed login attempt for %s", email)
        flash(request, "error", "Invalid email or password")
        return redirect("/login")

    login_session(request, user.id, user.email, user.role.value)
    logger.info("User %s logged in", user.email)
    if user.role.value == "ADMIN" and not redirect_to:
        return redirect("/admin/dashboard")
    return redirect(_safe_redirect_target(redirect_to))


@router.post("/logout")
async def logout(request: Request):
    """Đăng xuất"""
    logout_session(request)
    flash(request, "success", "You have been logged out.")
    return redirect("/login")


@router.get("/register")
async def register_page(request: Request, principal: Optional[Principal] = Depends(get_optional_principal)):
    """Trang đăng ký (đã đăng nhập thì về trang chủ)"""
    if principal is not None:
        return redirect("/")
    return page_context(request)


@router.post("/register")
async def register(
    request: Request,
    full_name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    matching_password: str = Form(...),
    phone_number: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """Đăng ký tài khoản và gửi email xác thực"""
    try:
        form = UserRegister(
            full_name=full_name,
            email=email,
            password=password,
            matching_password=matching_password,
            phone_number=phone_number,
            address=address,
        )
        user = UserService.register_user(db, form)
        UserService.request_verification_email(db, user.email)
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
        return redirect("/register")

    flash(request, "success", "User registered successfully. Please check your email to activate your account.")
    return redirect("/register")


@router.get("/verify-registration")
async def verify_registration(request: Request, token: str = Query(...), db: Session = Depends(get_db)):
    """Kích hoạt tài khoản từ link trong email"""
    try:
        UserService.verify_registration(db, token)
    except BookStoreError as e:
        flash(request, "error", e.message)
        return redirect("/send-verification-email")

    flash(request, "success", "Your account has been verified. You can now log in.")
    return redirect("/login")


@router.get("/send-verification-email")
async def send_verification_email_page(request: Request):
    """Trang yêu cầu gửi lại email xác thực"""
    return page_context(request)


@router.post("/send-verification-email")
async def send_verification_email(request: Request, email: str = Form(...), db: Session = Depends(get_db)):
    """Gửi lại email xác thực (giới hạn tần suất)"""
    try:
        UserService.request_verification_email(db, email)
    except BookStoreError as e:
        flash(request, "error", e.message)
        return redirect("/send-verification-email")

    flash(request, "success", "A new verification email has been sent. Please check your inbox.")
    return redirect("/send-verification-email")


@router.get("/forgot-password")
async def forgot_password_page(request: Request):
    return page_context(request)


@router.post("/forgot-password")
async def forgot_password(request: Request, email: str = Form(...), db: Session = Depends(get_db)):
    """Gửi link đặt lại mật khẩu; luôn trả cùng một thông báo"""
    try:
        UserService.request_password_reset(db, email)
    except NotFoundError:
        logger.info("Password reset requested for unknown email %s", email)
    flash(request, "success", RESET_LINK_SENT_MESSAGE)
    return redirect("/forgot-password")


@router.get("/reset-password")
async def reset_password_page(request: Request, token: str = Query(...)):
    return page_context(request, token=token)


@router.post("/reset-password")
async def reset_password(
    request: Request,
    token: str = Form(...),
    password: str = Form(...),
    matching_password: str = Form(...),
    db: Session = Depends(get_db),
):
    """Đặt lại mật khẩu bằng token"""
    try:
        form = ResetPasswordRequest(token=token, password=password, matching_password=matching_password)
        UserService.reset_password(db, form)
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
        return redirect(f"/reset-password?token={quote(token)}")

    flash(request, "success", "Your password has been reset. Please log in.")
    return redirect("/login")
