#!/usr/bin/env python3
"""
Script để khởi tạo database cho Book Store.
Chạy script này để tạo tables, tài khoản admin và dữ liệu mẫu.
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from decimal import Decimal
from sqlalchemy.orm import Session

from src.config import config
from src.auth.security import hash_password
from src.db.common.database_connection import init_database, check_connection, SessionLocal, transactional
from src.db.user.models.user_models import User, UserRole
from src.db.book.models.book_models import Book, Genre
from src.db.book.models.book_schemas import BookCreate, GenreCreate
from src.db.book.services.book_service import BookService
from src.db.book.services.genre_service import GenreService

SAMPLE_GENRES = ["Fiction", "Science", "History", "Children", "Business"]

# (title, author, isbn, price VND, quantity, genres)
SAMPLE_BOOKS = [
    ("Dế Mèn Phiêu Lưu Ký", "Tô Hoài", "9786042088431", 45000, 50, ["Children", "Fiction"]),
    ("Sapiens: A Brief History of Humankind", "Yuval Noah Harari", "9780062316097", 259000, 20, ["History", "Science"]),
    ("A Brief History of Time", "Stephen Hawking", "9780553380163", 189000, 15, ["Science"]),
    ("Nhà Giả Kim", "Paulo Coelho", "9786045630033", 79000, 8, ["Fiction"]),
    ("The Lean Startup", "Eric Ries", None, 215000, 5, ["Business"]),
]

def create_admin(db: Session):
    """Tạo tài khoản ADMIN nếu chưa có"""
    existing = db.query(User).filter(User.role == UserRole.ADMIN).first()
    if existing:
        print(f"Admin user already exists: {existing.email}")
        return

    with transactional(db):
        db.add(User(
            full_name="Administrator",
            email=config.ADMIN_EMAIL.lower(),
            hashed_password=hash_password(config.ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            is_enabled=True,
        ))
    print(f"Created admin user: {config.ADMIN_EMAIL}")

def create_sample_data(db: Session):
    """Tạo thể loại và sách mẫu (bỏ qua nếu đã có sách)"""
    if db.query(Book.id).first():
        print("Sample books already exist")
        return

    genre_ids = {}
    for name in SAMPLE_GENRES:
        genre = db.query(Genre).filter(Genre.name == name).first()
        genre_ids[name] = genre.id if genre else GenreService.create_genre(db, GenreCreate(name=name)).id

    for title, author, isbn, price, quantity, genres in SAMPLE_BOOKS:
        book = BookService.create_book(db, BookCreate(
            title=title,
            author=author,
            isbn=isbn,
            price=Decimal(price),
            quantity=quantity,
            genre_ids=[genre_ids[name] for name in genres],
        ))
        print(f"Created sample book: {book.title}")

def main():
    """Main function"""
    print("Initializing database for Book Store...")

    # Test connection trước
    if not check_connection():
        print("✗ Database connection failed")
        print("Please check your DATABASE_URL in .env file")
        sys.exit(1)
    print("✓ Database connection successful")

    # Khởi tạo tables
    try:
        init_database()
        print("✓ Database tables created successfully")
    except Exception as e:
        print(f"✗ Failed to create database tables: {e}")
        sys.exit(1)

    # Tạo admin + dữ liệu mẫu
    db = SessionLocal()
    try:
        create_admin(db)
        create_sample_data(db)
        print("✓ Sample data created successfully")
    except Exception as e:
        print(f"✗ Failed to create sample data: {e}")
        sys.exit(1)
    finally:
        db.close()

    print("\n🎉 Database initialization completed!")
    print("You can now run the application with: python main.py")

if __name__ == "__main__":
    main()
