from sqlalchemy.orm import Session
from datetime import datetime
from typing import Tuple
import logging

from src.config import config
from src.db.user.models.user_models import VerificationToken, ResetPasswordToken
from src.db.common.database_connection import transactional
from src.db.common.exceptions import TokenNotFoundError, ExpiredTokenError

logger = logging.getLogger(__name__)


class TokenService:
    """Vòng đời token xác thực email và token đặt lại mật khẩu"""

    @staticmethod
    def create_verification_token(db: Session, user_id: int) -> str:
        """Tạo token xác thực mới, thay token cũ (gọi trong transaction của caller)"""
        db.query(VerificationToken).filter(VerificationToken.user_id == user_id).delete(synchronize_session=False)
        token = VerificationToken(
            token=VerificationToken.new_token_value(),
            user_id=user_id,
            expired_at=VerificationToken.expiry_from_now(config.TOKEN_VERIFICATION_MINUTES),
            is_valid=True,
        )
        db.add(token)
        db.flush()
        return token.token

    @staticmethod
    def create_reset_password_token(db: Session, user_id: int) -> str:
        """Tạo token đặt lại mật khẩu mới, thay token cũ (gọi trong transaction của caller)"""
        db.query(ResetPasswordToken).filter(ResetPasswordToken.user_id == user_id).delete(synchronize_session=False)
        token = ResetPasswordToken(
            token=ResetPasswordToken.new_token_value(),
            user_id=user_id,
            expired_at=ResetPasswordToken.expiry_from_now(config.TOKEN_RESET_PASSWORD_MINUTES),
            is_valid=True,
        )
        db.add(token)
        db.flush()
        return token.token

    @staticmethod
    def _check(db: Session, model, token_value: str, label: str):
        row = db.query(model).filter(model.token == token_value).first()
        if not row:
            raise TokenNotFoundError(f"{label} token not found")
        if not row.is_valid_token():
            # Token hết hạn bị xóa ngay, không phụ thuộc vào việc caller rollback
            user_id = row.user_id
            with transactional(db):
                db.delete(row)
            logger.info("Deleted expired %s token for user %s", label.lower(), user_id)
            raise ExpiredTokenError()
        return row

    @staticmethod
    def verify_verification_token(db: Session, token_value: str) -> VerificationToken:
        return TokenService._check(db, VerificationToken, token_value, "Verification")

    @staticmethod
    def verify_reset_password_token(db: Session, token_value: str) -> ResetPasswordToken:
        return TokenService._check(db, ResetPasswordToken, token_value, "Reset password")

    @staticmethod
    def delete_expired_tokens(db: Session) -> Tuple[int, int]:
        """Xóa token đã hết hạn, trả về (số token xác thực, số token reset) đã xóa"""
        now = datetime.now()
        with transactional(db):
            verification_count = db.query(VerificationToken)\
                .filter(VerificationToken.expired_at < now).delete(synchronize_session=False)
            reset_count = db.query(ResetPasswordToken)\
                .filter(ResetPasswordToken.expired_at < now).delete(synchronize_session=False)
        logger.info("Deleted %s expired verification tokens and %s expired reset tokens",
                    verification_count, reset_count)
        return verification_count, reset_count
