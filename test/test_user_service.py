from datetime import datetime, timedelta
import logging

import pytest
from pydantic import ValidationError

from src.auth.security import verify_password
from src.db.common.exceptions import (
    AccessDeniedError, AlreadyEnabledError, AlreadyExistsError, ExpiredTokenError,
    InvalidInputError, InvalidPasswordError, NotFoundError, RateLimitError, TokenNotFoundError
)
from src.db.user.models.user_models import User, UserRole, VerificationToken, ResetPasswordToken
from src.db.user.models.user_schemas import (
    ChangePasswordRequest, ProfileUpdate, ResetPasswordRequest, UserRegister
)
from src.db.user.services.token_service import TokenService
from src.db.user.services.user_service import UserService

from conftest import DEFAULT_PASSWORD

NEW_PASSWORD = "NewPass@9"


def _register(db, email="New.Reader@Example.com", phone="0901234567"):
    return UserService.register_user(db, UserRegister(
        full_name="New Reader",
        email=email,
        password=DEFAULT_PASSWORD,
        matching_password=DEFAULT_PASSWORD,
        phone_number=phone,
    ))


def _token_for(db, model, user_id):
    db.expire_all()
    return db.query(model).filter(model.user_id == user_id).first()


def test_register_creates_disabled_user_with_lowercase_email(db):
    user = _register(db)

    assert user.email == "new.reader@example.com"
    assert user.role == UserRole.USER
    assert user.is_enabled is False
    stored = db.query(User).filter(User.id == user.id).one()
    assert verify_password(DEFAULT_PASSWORD, stored.hashed_password)


def test_register_rejects_duplicate_email_and_phone(db):
    _register(db)

    with pytest.raises(AlreadyExistsError):
        _register(db, email="NEW.READER@example.com", phone=None)
    with pytest.raises(AlreadyExistsError) as exc_info:
        _register(db, email="other@example.com")
    assert exc_info.value.message == "User already exists with phone number: 0901234567"


def test_register_form_validation():
    with pytest.raises(ValidationError, match="Passwords do not match"):
        UserRegister(full_name="X", email="x@example.com", password=DEFAULT_PASSWORD, matching_password="Other@123")
    with pytest.raises(ValidationError, match="Password must be at least 8 characters"):
        UserRegister(full_name="X", email="x@example.com", password="weak", matching_password="weak")


def test_verification_flow(db, sent_mail):
    user = _register(db)

    UserService.request_verification_email(db, user.email)

    assert sent_mail[0][0] == "send_verification_email"
    recipient, url, minutes = sent_mail[0][1]
    token = _token_for(db, VerificationToken, user.id)
    assert recipient == user.email
    assert url.endswith(f"/verify-registration?token={token.token}")
    assert minutes == 10

    UserService.verify_registration(db, token.token)

    assert UserService.get_user(db, user.id).is_enabled is True
    assert _token_for(db, VerificationToken, user.id) is None


def test_verification_token_not_logged(db, sent_mail, caplog):
    user = _register(db)

    with caplog.at_level(logging.INFO, logger="src.db.user.services.user_service"):
        UserService.request_verification_email(db, user.email)

    token = _token_for(db, VerificationToken, user.id)
    assert user.email in caplog.text
    assert token.token not in caplog.text


def test_verification_email_rate_limited(db, sent_mail):
    user = _register(db)
    UserService.request_verification_email(db, user.email)

    with pytest.raises(RateLimitError) as exc_info:
        UserService.request_verification_email(db, user.email)

    assert 0 < exc_info.value.seconds_remaining <= 60
    assert len(sent_mail) == 1


def test_verification_email_rejections(db, sent_mail, user):
    with pytest.raises(NotFoundError):
        UserService.request_verification_email(db, "nobody@example.com")
    with pytest.raises(AlreadyEnabledError):
        UserService.request_verification_email(db, user.email)
    assert sent_mail == []


def test_unknown_token(db):
    with pytest.raises(TokenNotFoundError):
        UserService.verify_registration(db, "missing")


def test_expired_token_is_deleted(db, sent_mail):
    user = _register(db)
    UserService.request_verification_email(db, user.email)
    token = _token_for(db, VerificationToken, user.id)
    token.expired_at = datetime.now() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(ExpiredTokenError):
        UserService.verify_registration(db, token.token)

    assert _token_for(db, VerificationToken, user.id) is None
    assert UserService.get_user(db, user.id).is_enabled is False


def test_new_token_replaces_old_one(db, user):
    first = TokenService.create_reset_password_token(db, user.id)
    db.commit()
    second = TokenService.create_reset_password_token(db, user.id)
    db.commit()

    assert first != second
    assert db.query(ResetPasswordToken).count() == 1


def test_delete_expired_tokens(db, user, make_user):
    other = make_user()
    db.add(VerificationToken(
        token="expired-v", user_id=user.id, expired_at=datetime.now() - timedelta(hours=1), is_valid=True
    ))
    db.add(ResetPasswordToken(
        token="live-r", user_id=other.id, expired_at=datetime.now() + timedelta(hours=1), is_valid=True
    ))
    db.commit()

    assert TokenService.delete_expired_tokens(db) == (1, 0)
    assert db.query(ResetPasswordToken).count() == 1


def test_password_reset_flow(db, sent_mail, user):
    UserService.request_password_reset(db, user.email.upper())

    assert sent_mail[0][0] == "send_password_reset_email"
    token = _token_for(db, ResetPasswordToken, user.id)
    assert sent_mail[0][1][1].endswith(f"/reset-password?token={token.token}")

    UserService.reset_password(db, ResetPasswordRequest(
        token=token.token, password=NEW_PASSWORD, matching_password=NEW_PASSWORD
    ))

    assert UserService.authenticate(db, user.email, NEW_PASSWORD).id == user.id
    assert _token_for(db, ResetPasswordToken, user.id) is None


def test_password_reset_unknown_email(db, sent_mail):
    with pytest.raises(NotFoundError):
        UserService.request_password_reset(db, "ghost@example.com")
    assert sent_mail == []


def test_change_password(db, user):
    with pytest.raises(InvalidPasswordError, match="Current password is incorrect"):
        UserService.change_password(db, user.id, ChangePasswordRequest(
            current_password="Wrong@123", password=NEW_PASSWORD, matching_password=NEW_PASSWORD
        ))
    with pytest.raises(InvalidPasswordError, match="must be different"):
        UserService.change_password(db, user.id, ChangePasswordRequest(
            current_password=DEFAULT_PASSWORD, password=DEFAULT_PASSWORD, matching_password=DEFAULT_PASSWORD
        ))

    UserService.change_password(db, user.id, ChangePasswordRequest(
        current_password=DEFAULT_PASSWORD, password=NEW_PASSWORD, matching_password=NEW_PASSWORD
    ))
    assert UserService.authenticate(db, user.email, NEW_PASSWORD) is not None


def test_authenticate(db, user, make_user):
    disabled = make_user(enabled=False)

    assert UserService.authenticate(db, user.email, DEFAULT_PASSWORD).email == user.email
    assert UserService.authenticate(db, user.email, "Wrong@123") is None
    assert UserService.authenticate(db, "ghost@example.com", DEFAULT_PASSWORD) is None
    with pytest.raises(AccessDeniedError):
        UserService.authenticate(db, disabled.email, DEFAULT_PASSWORD)


def test_update_profile(db, user, make_user):
    make_user(phone_number="0911111111")

    updated = UserService.update_profile(db, user.id, ProfileUpdate(
        full_name=" Reader Two ", phone_number=" ", address="1 Le Loi"
    ))
    assert (updated.full_name, updated.phone_number, updated.address) == ("Reader Two", None, "1 Le Loi")

    with pytest.raises(AlreadyExistsError):
        UserService.update_profile(db, user.id, ProfileUpdate(full_name="X", phone_number="0911111111"))


def test_admin_user_management(db, admin, user):
    with pytest.raises(InvalidInputError):
        UserService.toggle_user_enabled(db, admin.id, acting_user_id=admin.id)
    with pytest.raises(InvalidInputError):
        UserService.update_user_role(db, admin.id, UserRole.USER, acting_user_id=admin.id)

    assert UserService.toggle_user_enabled(db, user.id, acting_user_id=admin.id).is_enabled is False
    assert UserService.update_user_role(db, user.id, UserRole.ADMIN, acting_user_id=admin.id).role == UserRole.ADMIN

    assert UserService.count_users(db) == 2
    assert UserService.count_users(db, enabled_only=True) == 1
    assert UserService.list_users(db, keyword="reader").total == 1
