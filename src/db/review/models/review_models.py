from sqlalchemy import (
    Column, Integer, Text, DateTime, ForeignKey, Boolean, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from src.db.common.database_connection import Base


class Review(Base):
    """Đánh giá của một user cho một cuốn sách (mỗi cặp user/sách tối đa một review)"""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    # Relationships
    book = relationship("Book", back_populates="reviews")
    evaluations = relationship("ReviewEvaluation", back_populates="review", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uk_user_book_review"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )


class ReviewEvaluation(Base):
    """Like/dislike của một user cho một review (bản ghi toggle, không phải bộ đếm)"""
    __tablename__ = "review_evaluations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    review_id = Column(Integer, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    is_like = Column(Boolean, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    review = relationship("Review", back_populates="evaluations")

    __table_args__ = (
        UniqueConstraint("user_id", "review_id", name="uk_user_review_evaluation"),
    )
