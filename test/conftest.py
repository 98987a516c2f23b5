import os

# Cấu hình môi trường test trước khi import src.*
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MAIL_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.auth.security import hash_password
from src.db.common.database_connection import create_tables, drop_tables, get_db
from src.db.book.models.book_schemas import BookCreate, GenreCreate
from src.db.book.services.book_service import BookService
from src.db.book.services.genre_service import GenreService
from src.db.user.models.user_models import User, UserRole
from src.mail.mail_dispatcher import mail_dispatcher

DEFAULT_PASSWORD = "Password@1"
# Hash một lần cho mọi user test (bcrypt chậm)
DEFAULT_PASSWORD_HASH = hash_password(DEFAULT_PASSWORD)

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db():
    create_tables(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_tables(bind=test_engine)


@pytest.fixture
def sent_mail(monkeypatch):
    """Thay dispatcher gửi mail bằng bản ghi lại các lần submit"""
    calls = []

    def fake_submit(fn, *args, **kwargs):
        calls.append((fn.__name__, args))
        return True

    monkeypatch.setattr(mail_dispatcher, "submit", fake_submit)
    return calls


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(email=None, role=UserRole.USER, enabled=True, **fields):
        counter["n"] += 1
        user = User(
            full_name=fields.pop("full_name", f"User {counter['n']}"),
            email=email or f"user{counter['n']}@example.com",
            hashed_password=DEFAULT_PASSWORD_HASH,
            role=role,
            is_enabled=enabled,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_book(db):
    def _make_book(title="Book", price=100000, quantity=10, author="Author", isbn=None, genre_ids=None):
        return BookService.create_book(db, BookCreate(
            title=title,
            author=author,
            isbn=isbn,
            price=Decimal(price),
            quantity=quantity,
            genre_ids=genre_ids or [],
        ))

    return _make_book


@pytest.fixture
def make_genre(db):
    def _make_genre(name):
        return GenreService.create_genre(db, GenreCreate(name=name))

    return _make_genre


@pytest.fixture
def user(make_user):
    return make_user(email="reader@example.com", full_name="Reader")


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", full_name="Admin", role=UserRole.ADMIN)


@pytest.fixture
def client(db, sent_mail):
    from main import app

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Không chạy lifespan: schema do fixture db tạo
    yield TestClient(app, follow_redirects=False)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(email, password=DEFAULT_PASSWORD):
        return client.post("/login", data={"email": email, "password": password})

    return _login
