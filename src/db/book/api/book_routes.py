from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from src.auth.security import get_optional_principal, Principal
from src.db.common.database_connection import get_db
from src.db.common.flash import page_context
from src.db.book.services.book_service import BookService
from src.db.book.services.genre_service import GenreService
from src.db.cart.services.cart_service import CartService
from src.db.order.services.order_service import OrderService
from src.db.review.services.review_service import ReviewService

router = APIRouter()


def _user_id(principal: Optional[Principal]) -> Optional[int]:
    return principal.user_id if principal else None


@router.get("/")
async def home(
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Trang chủ: sách mới và sách bán chạy"""
    return page_context(
        request,
        recent_books=BookService.get_recent_books(db),
        popular_books=BookService.get_popular_books(db),
        genres=GenreService.get_all_genres(db),
        cart_count=CartService.get_cart_item_count(db, _user_id(principal)),
    )


@router.get("/books")
async def list_books(
    request: Request,
    page: int = Query(0),
    size: int = Query(12),
    keyword: Optional[str] = Query(None),
    genre_id: Optional[int] = Query(None),
    sort: str = Query("newest"),
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Danh sách sách: tìm kiếm, lọc thể loại, sắp xếp, phân trang"""
    return page_context(
        request,
        books=BookService.get_books(db, page, size, keyword, genre_id, sort),
        genres=GenreService.get_all_genres(db),
        keyword=keyword,
        genre_id=genre_id,
        sort=sort,
        cart_count=CartService.get_cart_item_count(db, _user_id(principal)),
    )


@router.get("/books/{book_id}")
async def book_detail(
    request: Request,
    book_id: int,
    page: int = Query(0),
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Chi tiết sách kèm review"""
    user_id = _user_id(principal)
    book = BookService.get_book(db, book_id)
    user_review = None
    has_purchased = False
    if user_id is not None:
        user_review = ReviewService.get_user_review_for_book(db, user_id, book_id)
        has_purchased = OrderService.has_purchased_book(db, user_id, book_id)

    return page_context(
        request,
        book=book,
        reviews=ReviewService.get_reviews_by_book(db, book_id, page, current_user_id=user_id),
        rating_distribution=ReviewService.get_rating_distribution(db, book_id),
        has_reviewed=user_review is not None,
        user_review=user_review,
        has_purchased=has_purchased,
        cart_count=CartService.get_cart_item_count(db, user_id),
    )
