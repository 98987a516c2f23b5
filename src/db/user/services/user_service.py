from sqlalchemy.orm import Session
from sqlalchemy import desc, func, or_
from datetime import datetime
from typing import Optional
import logging

from src.config import config
from src.auth.security import hash_password, verify_password
from src.db.user.models.user_models import User, UserRole
from src.db.user.models.user_schemas import (
    User as UserDto, UserRegister, ChangePasswordRequest, ResetPasswordRequest, ProfileUpdate
)
from src.db.user.services.token_service import TokenService
from src.db.common.database_connection import transactional
from src.db.common.exceptions import (
    NotFoundError, AlreadyExistsError, AlreadyEnabledError, RateLimitError,
    InvalidPasswordError, AccessDeniedError, InvalidInputError
)
from src.db.common.pagination import Page, normalize_page
from src.mail.mail_dispatcher import mail_dispatcher
from src.mail.mail_service import mail_service

logger = logging.getLogger(__name__)


class UserService:
    @staticmethod
    def _find_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    @staticmethod
    def _load_user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User not found with ID: {user_id}")
        return user

    @staticmethod
    def _phone_taken(db: Session, phone_number: Optional[str], exclude_id: int = None) -> bool:
        if not phone_number:
            return False
        query = db.query(User.id).filter(User.phone_number == phone_number)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    # ---- Registration / verification ----

    @staticmethod
    def register_user(db: Session, form: UserRegister) -> UserDto:
        """Đăng ký tài khoản mới (chưa kích hoạt cho đến khi xác thực email)"""
        email = form.email.strip().lower()
        logger.info("Registering user %s", email)

        with transactional(db):
            if UserService._find_by_email(db, email):
                raise AlreadyExistsError(f"User already exists with email: {email}")
            if UserService._phone_taken(db, form.phone_number):
                raise AlreadyExistsError(f"User already exists with phone number: {form.phone_number}")

            user = User(
                full_name=form.full_name.strip(),
                email=email,
                phone_number=form.phone_number,
                address=form.address,
                hashed_password=hash_password(form.password),
                role=UserRole.USER,
                is_enabled=False,
            )
            db.add(user)
            db.flush()
            user_id = user.id

        return UserService.get_user(db, user_id)

    @staticmethod
    def request_verification_email(db: Session, email: str) -> None:
        """Tạo token xác thực mới và gửi email (giới hạn tần suất theo user)"""
        with transactional(db):
            user = UserService._find_by_email(db, email)
            if not user:
                raise NotFoundError(f"User not found with email: {email}")
            if user.is_enabled:
                raise AlreadyEnabledError("User is already verified!")

            now = datetime.now()
            if user.last_verification_email_sent is not None:
                elapsed = int((now - user.last_verification_email_sent).total_seconds())
                if elapsed < config.TOKEN_RATE_LIMIT_SECONDS:
                    remaining = config.TOKEN_RATE_LIMIT_SECONDS - elapsed
                    logger.warning("Verification email rate limit hit for %s (%ss remaining)", user.email, remaining)
                    raise RateLimitError(
                        "Please wait before requesting another verification email. "
                        f"Try again in {remaining} seconds.",
                        seconds_remaining=remaining,
                    )

            user.last_verification_email_sent = now
            token = TokenService.create_verification_token(db, user.id)
            recipient = user.email

        verification_url = f"{config.APP_URL}/verify-registration?token={token}"
        logger.info("Verification email queued for %s", recipient)
        mail_dispatcher.submit(
            mail_service.send_verification_email, recipient, verification_url, config.TOKEN_VERIFICATION_MINUTES
        )

    @staticmethod
    def verify_registration(db: Session, token: str) -> None:
        """Kích hoạt tài khoản bằng token trong email"""
        verification_token = TokenService.verify_verification_token(db, token)
        with transactional(db):
            user = UserService._load_user(db, verification_token.user_id)
            user.is_enabled = True
            db.delete(verification_token)
            logger.info("User %s verified", user.email)

    # ---- Password ----

    @staticmethod
    def request_password_reset(db: Session, email: str) -> None:
        """Tạo token đặt lại mật khẩu và gửi email"""
        with transactional(db):
            user = UserService._find_by_email(db, email)
            if not user:
                raise NotFoundError(f"User not found with email: {email}")
            token = TokenService.create_reset_password_token(db, user.id)
            recipient = user.email

        reset_url = f"{config.APP_URL}/reset-password?token={token}"
        mail_dispatcher.submit(
            mail_service.send_password_reset_email, recipient, reset_url, config.TOKEN_RESET_PASSWORD_MINUTES
        )

    @staticmethod
    def reset_password(db: Session, request: ResetPasswordRequest) -> None:
        reset_token = TokenService.verify_reset_password_token(db, request.token)
        with transactional(db):
            user = UserService._load_user(db, reset_token.user_id)
            user.hashed_password = hash_password(request.password)
            db.delete(reset_token)
            logger.info("Password reset for user %s", user.email)

    @staticmethod
    def change_password(db: Session, user_id: int, request: ChangePasswordRequest) -> None:
        with transactional(db):
            user = UserService._load_user(db, user_id)
            if not verify_password(request.current_password, user.hashed_password):
                raise InvalidPasswordError("Current password is incorrect")
            if verify_password(request.password, user.hashed_password):
                raise InvalidPasswordError("New password must be different from current password")
            user.hashed_password = hash_password(request.password)
        logger.info("Password changed for user %s", user_id)

    # ---- Login / profile ----

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Optional[UserDto]:
        """Xác thực email + mật khẩu; None nếu sai thông tin đăng nhập"""
        user = UserService._find_by_email(db, email or "")
        if not user or not verify_password(password or "", user.hashed_password):
            return None
        if not user.is_enabled:
            raise AccessDeniedError("Your account is not enabled. Please verify your email first.")
        return UserDto.model_validate(user)

    @staticmethod
    def get_user(db: Session, user_id: int) -> UserDto:
        return UserDto.model_validate(UserService._load_user(db, user_id))

    @staticmethod
    def update_profile(db: Session, user_id: int, profile: ProfileUpdate) -> UserDto:
        with transactional(db):
            user = UserService._load_user(db, user_id)
            if UserService._phone_taken(db, profile.phone_number, exclude_id=user_id):
                raise AlreadyExistsError(f"User already exists with phone number: {profile.phone_number}")
            user.full_name = profile.full_name.strip()
            user.phone_number = profile.phone_number
            user.address = profile.address
        logger.info("Profile updated for user %s", user_id)
        return UserService.get_user(db, user_id)

    # ---- Admin ----

    @staticmethod
    def list_users(db: Session, page: int = 0, size: int = 20, keyword: Optional[str] = None) -> Page[UserDto]:
        """Danh sách user cho admin, tìm theo tên/email/số điện thoại"""
        page, size = normalize_page(page, size, 20)
        query = db.query(User)
        if keyword and keyword.strip():
            pattern = f"%{keyword.strip()}%"
            query = query.filter(or_(
                User.full_name.ilike(pattern), User.email.ilike(pattern), User.phone_number.ilike(pattern)
            ))
        total = query.count()
        users = query.order_by(desc(User.created_at), desc(User.id)).offset(page * size).limit(size).all()
        return Page[UserDto].build([UserDto.model_validate(u) for u in users], total, page, size)

    @staticmethod
    def toggle_user_enabled(db: Session, user_id: int, acting_user_id: Optional[int] = None) -> UserDto:
        """Bật/tắt tài khoản; admin không tự khóa tài khoản của mình"""
        if acting_user_id is not None and user_id == acting_user_id:
            raise InvalidInputError("You cannot disable your own account")
        with transactional(db):
            user = UserService._load_user(db, user_id)
            user.is_enabled = not user.is_enabled
            logger.info("User %s enabled=%s", user_id, user.is_enabled)
        return UserService.get_user(db, user_id)

    @staticmethod
    def update_user_role(db: Session, user_id: int, role: UserRole, acting_user_id: Optional[int] = None) -> UserDto:
        if acting_user_id is not None and user_id == acting_user_id:
            raise InvalidInputError("You cannot change your own role")
        with transactional(db):
            user = UserService._load_user(db, user_id)
            user.role = role
            logger.info("User %s role=%s", user_id, role.value)
        return UserService.get_user(db, user_id)

    @staticmethod
    def count_users(db: Session, enabled_only: bool = False) -> int:
        query = db.query(func.count(User.id))
        if enabled_only:
            query = query.filter(User.is_enabled.is_(True))
        return query.scalar() or 0
