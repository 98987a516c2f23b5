from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from typing import List, Optional, Dict, Tuple
import logging

from src.db.book.models.book_models import Book
from src.db.review.models.review_models import Review, ReviewEvaluation
from src.db.review.models.review_schemas import Review as ReviewDto, ReviewCreate
from src.db.user.models.user_models import User
from src.db.common.database_connection import transactional
from src.db.common.exceptions import NotFoundError, AlreadyExistsError, AccessDeniedError
from src.db.common.pagination import Page, normalize_page

logger = logging.getLogger(__name__)

REVIEW_PAGE_SIZE = 10


class ReviewService:
    # ---- DTO projection ----

    @staticmethod
    def _evaluation_counts(db: Session, review_ids: List[int]) -> Dict[int, Tuple[int, int]]:
        """review_id -> (likes, dislikes), đếm lại từ bảng evaluation"""
        counts: Dict[int, Tuple[int, int]] = {}
        if not review_ids:
            return counts
        rows = db.query(ReviewEvaluation.review_id, ReviewEvaluation.is_like, func.count(ReviewEvaluation.id))\
            .filter(ReviewEvaluation.review_id.in_(review_ids))\
            .group_by(ReviewEvaluation.review_id, ReviewEvaluation.is_like).all()
        for review_id, is_like, count in rows:
            likes, dislikes = counts.get(review_id, (0, 0))
            if is_like:
                likes = count
            else:
                dislikes = count
            counts[review_id] = (likes, dislikes)
        return counts

    @staticmethod
    def _to_dtos(db: Session, rows, current_user_id: Optional[int] = None) -> List[ReviewDto]:
        review_ids = [review.id for review, _, _ in rows]
        counts = ReviewService._evaluation_counts(db, review_ids)

        my_evaluations: Dict[int, bool] = {}
        if current_user_id is not None and review_ids:
            my_evaluations = dict(
                db.query(ReviewEvaluation.review_id, ReviewEvaluation.is_like)
                .filter(ReviewEvaluation.user_id == current_user_id,
                        ReviewEvaluation.review_id.in_(review_ids)).all()
            )

        dtos = []
        for review, user, book_title in rows:
            likes, dislikes = counts.get(review.id, (0, 0))
            my_evaluation = my_evaluations.get(review.id)
            dtos.append(ReviewDto(
                id=review.id,
                rating=review.rating,
                comment=review.comment,
                user_id=user.id,
                user_name=user.full_name,
                user_email=user.email,
                user_role=user.role.value,
                book_id=review.book_id,
                book_title=book_title,
                created_at=review.created_at,
                updated_at=review.updated_at,
                like_count=likes,
                dislike_count=dislikes,
                current_user_liked=my_evaluation is True,
                current_user_disliked=my_evaluation is False,
                can_edit=current_user_id is not None and user.id == current_user_id,
            ))
        return dtos

    @staticmethod
    def _base_query(db: Session):
        return db.query(Review, User, Book.title)\
            .join(User, User.id == Review.user_id)\
            .join(Book, Book.id == Review.book_id)

    @staticmethod
    def _load_review(db: Session, review_id: int) -> Review:
        review = db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise NotFoundError("Review not found")
        return review

    # ---- Commands ----

    @staticmethod
    def create_review(db: Session, user_id: int, book_id: int, review_in: ReviewCreate) -> ReviewDto:
        """Tạo review; mỗi user chỉ được review một cuốn sách một lần"""
        logger.debug("Creating review for book %s by user %s", book_id, user_id)

        with transactional(db):
            exists = db.query(Review.id).filter(Review.user_id == user_id, Review.book_id == book_id).first()
            if exists:
                raise AlreadyExistsError("You have already reviewed this book")
            if not db.query(User.id).filter(User.id == user_id).first():
                raise NotFoundError("User not found")
            if not db.query(Book.id).filter(Book.id == book_id).first():
                raise NotFoundError("Book not found")

            review = Review(user_id=user_id, book_id=book_id, rating=review_in.rating, comment=review_in.comment)
            db.add(review)
            db.flush()
            review_id = review.id

        logger.info("Review created successfully: %s", review_id)
        return ReviewService.get_review(db, review_id, user_id)

    @staticmethod
    def update_review(db: Session, review_id: int, user_id: int, review_in: ReviewCreate) -> ReviewDto:
        """Sửa review (chỉ chủ review)"""
        logger.debug("Updating review %s by user %s", review_id, user_id)

        with transactional(db):
            review = ReviewService._load_review(db, review_id)
            if review.user_id != user_id:
                raise AccessDeniedError("You are not authorized to edit this review")
            review.rating = review_in.rating
            review.comment = review_in.comment

        logger.info("Review updated successfully: %s", review_id)
        return ReviewService.get_review(db, review_id, user_id)

    @staticmethod
    def delete_review(db: Session, review_id: int) -> None:
        """Admin xóa review (kèm các like/dislike)"""
        logger.info("Deleting review %s", review_id)
        with transactional(db):
            db.delete(ReviewService._load_review(db, review_id))

    @staticmethod
    def remove_review_comment(db: Session, review_id: int) -> ReviewDto:
        """Admin gỡ nội dung bình luận, giữ lại rating"""
        logger.info("Removing comment of review %s", review_id)
        with transactional(db):
            ReviewService._load_review(db, review_id).comment = None
        return ReviewService.get_review(db, review_id)

    @staticmethod
    def _toggle_evaluation(db: Session, review_id: int, user_id: int, is_like: bool) -> None:
        """
        Toggle like/dislike:
        - chưa đánh giá -> thêm
        - cùng loại -> gỡ bỏ
        - khác loại -> đổi loại
        """
        label = "like" if is_like else "dislike"
        with transactional(db):
            ReviewService._load_review(db, review_id)
            if not db.query(User.id).filter(User.id == user_id).first():
                raise NotFoundError("User not found")

            evaluation = db.query(ReviewEvaluation)\
                .filter(ReviewEvaluation.user_id == user_id, ReviewEvaluation.review_id == review_id).first()
            if evaluation is None:
                db.add(ReviewEvaluation(user_id=user_id, review_id=review_id, is_like=is_like))
                logger.info("Added %s to review %s", label, review_id)
            elif evaluation.is_like == is_like:
                db.delete(evaluation)
                logger.info("Removed %s from review %s", label, review_id)
            else:
                evaluation.is_like = is_like
                logger.info("Changed to %s for review %s", label, review_id)

    @staticmethod
    def like_review(db: Session, review_id: int, user_id: int) -> int:
        """Toggle like, trả về số like hiện tại"""
        logger.debug("User %s liking review %s", user_id, review_id)
        ReviewService._toggle_evaluation(db, review_id, user_id, True)
        return ReviewService.get_like_count(db, review_id)

    @staticmethod
    def dislike_review(db: Session, review_id: int, user_id: int) -> int:
        """Toggle dislike, trả về số dislike hiện tại"""
        logger.debug("User %s disliking review %s", user_id, review_id)
        ReviewService._toggle_evaluation(db, review_id, user_id, False)
        return ReviewService.get_dislike_count(db, review_id)

    # ---- Queries ----

    @staticmethod
    def get_like_count(db: Session, review_id: int) -> int:
        return db.query(func.count(ReviewEvaluation.id))\
            .filter(ReviewEvaluation.review_id == review_id, ReviewEvaluation.is_like.is_(True)).scalar() or 0

    @staticmethod
    def get_dislike_count(db: Session, review_id: int) -> int:
        return db.query(func.count(ReviewEvaluation.id))\
            .filter(ReviewEvaluation.review_id == review_id, ReviewEvaluation.is_like.is_(False)).scalar() or 0

    @staticmethod
    def get_review(db: Session, review_id: int, current_user_id: Optional[int] = None) -> ReviewDto:
        row = ReviewService._base_query(db).filter(Review.id == review_id).first()
        if not row:
            raise NotFoundError("Review not found")
        return ReviewService._to_dtos(db, [row], current_user_id)[0]

    @staticmethod
    def get_reviews_by_book(
        db: Session,
        book_id: int,
        page: int = 0,
        size: int = REVIEW_PAGE_SIZE,
        current_user_id: Optional[int] = None,
    ) -> Page[ReviewDto]:
        """
        Review của một sách.

        Trang được lấy theo created_at giảm dần, sau đó sắp xếp lại trong
        trang theo net likes giảm dần, cùng net likes thì mới nhất trước.
        """
        page, size = normalize_page(page, size, REVIEW_PAGE_SIZE)
        query = ReviewService._base_query(db).filter(Review.book_id == book_id)
        total = query.count()
        rows = query.order_by(desc(Review.created_at), desc(Review.id))\
            .offset(page * size).limit(size).all()

        dtos = ReviewService._to_dtos(db, rows, current_user_id)
        dtos.sort(key=lambda r: (r.net_likes, r.created_at, r.id), reverse=True)
        return Page[ReviewDto].build(dtos, total, page, size)

    @staticmethod
    def get_reviews_by_user(db: Session, user_id: int, page: int = 0, size: int = REVIEW_PAGE_SIZE) -> Page[ReviewDto]:
        page, size = normalize_page(page, size, REVIEW_PAGE_SIZE)
        query = ReviewService._base_query(db).filter(Review.user_id == user_id)
        total = query.count()
        rows = query.order_by(desc(Review.created_at), desc(Review.id))\
            .offset(page * size).limit(size).all()
        return Page[ReviewDto].build(ReviewService._to_dtos(db, rows, user_id), total, page, size)

    @staticmethod
    def get_all_reviews(db: Session, page: int = 0, size: int = 20) -> Page[ReviewDto]:
        """Danh sách review cho admin, mới nhất trước"""
        page, size = normalize_page(page, size, 20)
        query = ReviewService._base_query(db)
        total = query.count()
        rows = query.order_by(desc(Review.created_at), desc(Review.id))\
            .offset(page * size).limit(size).all()
        return Page[ReviewDto].build(ReviewService._to_dtos(db, rows), total, page, size)

    @staticmethod
    def get_recent_reviews(db: Session, limit: int = 5) -> List[ReviewDto]:
        rows = ReviewService._base_query(db).order_by(desc(Review.created_at), desc(Review.id)).limit(limit).all()
        return ReviewService._to_dtos(db, rows)

    @staticmethod
    def get_average_rating(db: Session, book_id: int) -> Optional[float]:
        avg = db.query(func.avg(Review.rating)).filter(Review.book_id == book_id).scalar()
        return round(float(avg), 2) if avg is not None else None

    @staticmethod
    def get_review_count(db: Session, book_id: int) -> int:
        return db.query(func.count(Review.id)).filter(Review.book_id == book_id).scalar() or 0

    @staticmethod
    def get_rating_distribution(db: Session, book_id: int) -> Dict[int, int]:
        """Số review theo từng mức sao, luôn đủ key 1..5"""
        distribution = {rating: 0 for rating in range(1, 6)}
        rows = db.query(Review.rating, func.count(Review.id))\
            .filter(Review.book_id == book_id)\
            .group_by(Review.rating).all()
        for rating, count in rows:
            distribution[rating] = count
        return distribution

    @staticmethod
    def has_user_reviewed_book(db: Session, user_id: int, book_id: int) -> bool:
        return db.query(Review.id).filter(Review.user_id == user_id, Review.book_id == book_id).first() is not None

    @staticmethod
    def get_user_review_for_book(db: Session, user_id: int, book_id: int) -> Optional[ReviewDto]:
        row = ReviewService._base_query(db)\
            .filter(Review.user_id == user_id, Review.book_id == book_id).first()
        if not row:
            return None
        return ReviewService._to_dtos(db, [row], user_id)[0]

    @staticmethod
    def count_user_reviews(db: Session, user_id: int) -> int:
        return db.query(func.count(Review.id)).filter(Review.user_id == user_id).scalar() or 0

    @staticmethod
    def get_overall_average_rating(db: Session) -> Optional[float]:
        avg = db.query(func.avg(Review.rating)).scalar()
        return round(float(avg), 2) if avg is not None else None
