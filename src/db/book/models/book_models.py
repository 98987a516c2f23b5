from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Date, ForeignKey, Numeric, Table, CheckConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from src.db.common.database_connection import Base

# Bảng trung gian Book <-> Genre (many-to-many)
book_genres = Table(
    "book_genres",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("genres.id"), primary_key=True),
)


class Genre(Base):
    """Model cho thể loại sách"""
    __tablename__ = "genres"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    books = relationship("Book", secondary=book_genres, back_populates="genres")


class Book(Base):
    """Model cho sách trong catalog"""
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=False, index=True)
    isbn = Column(String(20), unique=True)  # NULL khi không có ISBN
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    # Relationships
    detail = relationship("BookDetail", back_populates="book", uselist=False, cascade="all, delete-orphan")
    genres = relationship("Genre", secondary=book_genres, back_populates="books")
    reviews = relationship("Review", back_populates="book", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class BookDetail(Base):
    """Chi tiết sách (giá, tồn kho, mô tả); dùng chung khóa chính với Book"""
    __tablename__ = "book_details"

    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True)
    description = Column(Text)
    image_url = Column(String(500))
    price = Column(Numeric(15, 0), nullable=False)  # VND, không có phần thập phân
    quantity = Column(Integer, nullable=False, default=0)  # Số lượng tồn kho
    publisher = Column(String(255))
    publish_date = Column(Date)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    book = relationship("Book", back_populates="detail")

    # Tồn kho bị trừ/cộng đồng thời khi checkout và hủy đơn
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_book_details_quantity_non_negative"),
    )
