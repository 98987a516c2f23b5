from sqlalchemy.orm import Session
from sqlalchemy import desc, func, or_, select
from typing import Optional, List, Dict, Tuple, Iterable
import logging

from src.config import config
from src.db.book.models.book_models import Book, BookDetail, Genre, book_genres
from src.db.book.models.book_schemas import Book as BookDto, BookCreate, BookUpdate
from src.db.cart.models.cart_models import CartItem
from src.db.order.models.order_models import Order, OrderItem, OrderStatus
from src.db.review.models.review_models import Review
from src.db.common.database_connection import transactional
from src.db.common.exceptions import NotFoundError, AlreadyExistsError, ResourceInUseError, InvalidInputError
from src.db.common.pagination import Page, normalize_page
from src.utils.currency import format_vnd

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12
SORT_OPTIONS = ("newest", "price_asc", "price_desc", "title", "popular")


class BookService:
    @staticmethod
    def normalize_isbn(isbn: Optional[str]) -> Optional[str]:
        """ISBN rỗng/khoảng trắng -> None (nhiều NULL không vi phạm unique)"""
        if isbn is None or not isbn.strip():
            return None
        return isbn.strip()

    # ---- DTO projection ----

    @staticmethod
    def _review_stats(db: Session, book_ids: Iterable[int]) -> Dict[int, Tuple[Optional[float], int]]:
        book_ids = list(book_ids)
        if not book_ids:
            return {}
        rows = db.query(Review.book_id, func.avg(Review.rating), func.count(Review.id))\
            .filter(Review.book_id.in_(book_ids))\
            .group_by(Review.book_id).all()
        return {
            book_id: (round(float(avg), 2) if avg is not None else None, count)
            for book_id, avg, count in rows
        }

    @staticmethod
    def _genres_by_book(db: Session, book_ids: Iterable[int]) -> Dict[int, List[Tuple[int, str]]]:
        book_ids = list(book_ids)
        if not book_ids:
            return {}
        rows = db.query(book_genres.c.book_id, Genre.id, Genre.name)\
            .join(Genre, Genre.id == book_genres.c.genre_id)\
            .filter(book_genres.c.book_id.in_(book_ids))\
            .order_by(Genre.name).all()
        result: Dict[int, List[Tuple[int, str]]] = {}
        for book_id, genre_id, name in rows:
            result.setdefault(book_id, []).append((genre_id, name))
        return result

    @staticmethod
    def _to_dtos(db: Session, rows: List[Tuple[Book, Optional[BookDetail]]]) -> List[BookDto]:
        book_ids = [book.id for book, _ in rows]
        stats = BookService._review_stats(db, book_ids)
        genres = BookService._genres_by_book(db, book_ids)

        dtos = []
        for book, detail in rows:
            average_rating, review_count = stats.get(book.id, (None, 0))
            book_genre_list = genres.get(book.id, [])
            dtos.append(BookDto(
                id=book.id,
                title=book.title,
                author=book.author,
                isbn=book.isbn,
                description=detail.description if detail else None,
                image_url=detail.image_url if detail else None,
                price=detail.price if detail else None,
                price_formatted=format_vnd(detail.price) if detail else None,
                quantity=detail.quantity if detail else None,
                publisher=detail.publisher if detail else None,
                publish_date=detail.publish_date if detail else None,
                genre_ids=[genre_id for genre_id, _ in book_genre_list],
                genre_names=[name for _, name in book_genre_list],
                average_rating=average_rating,
                review_count=review_count,
                created_at=book.created_at,
                updated_at=book.updated_at,
            ))
        return dtos

    @staticmethod
    def _base_query(db: Session):
        return db.query(Book, BookDetail).outerjoin(BookDetail, BookDetail.book_id == Book.id)

    @staticmethod
    def _resolve_genres(db: Session, genre_ids: List[int]) -> List[Genre]:
        genres = []
        for genre_id in genre_ids:
            genre = db.query(Genre).filter(Genre.id == genre_id).first()
            if not genre:
                raise NotFoundError(f"Genre not found: {genre_id}")
            genres.append(genre)
        return genres

    # ---- Queries ----

    @staticmethod
    def get_book(db: Session, book_id: int) -> BookDto:
        """Lấy sách theo ID"""
        row = BookService._base_query(db).filter(Book.id == book_id).first()
        if not row:
            raise NotFoundError(f"Book not found: {book_id}")
        return BookService._to_dtos(db, [row])[0]

    @staticmethod
    def get_books(
        db: Session,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
        keyword: Optional[str] = None,
        genre_id: Optional[int] = None,
        sort: str = "newest",
    ) -> Page[BookDto]:
        """Duyệt catalog: tìm kiếm theo title/author, lọc theo thể loại, sắp xếp"""
        page, size = normalize_page(page, size, DEFAULT_PAGE_SIZE)
        query = BookService._base_query(db)

        if keyword and keyword.strip():
            pattern = f"%{keyword.strip()}%"
            query = query.filter(or_(Book.title.ilike(pattern), Book.author.ilike(pattern)))

        if genre_id is not None:
            genre_books = select(book_genres.c.book_id).where(book_genres.c.genre_id == genre_id)
            query = query.filter(Book.id.in_(genre_books))

        if sort == "price_asc":
            query = query.order_by(BookDetail.price.asc(), Book.id)
        elif sort == "price_desc":
            query = query.order_by(desc(BookDetail.price), Book.id)
        elif sort == "title":
            query = query.order_by(Book.title.asc(), Book.id)
        elif sort == "popular":
            sold = BookService._units_sold_subquery()
            query = query.outerjoin(sold, sold.c.book_id == Book.id)\
                .order_by(desc(func.coalesce(sold.c.units_sold, 0)), desc(Book.created_at), desc(Book.id))
        else:
            query = query.order_by(desc(Book.created_at), desc(Book.id))

        total = query.count()
        rows = query.offset(page * size).limit(size).all()
        return Page[BookDto].build(BookService._to_dtos(db, rows), total, page, size)

    @staticmethod
    def _units_sold_subquery():
        return select(OrderItem.book_id, func.sum(OrderItem.quantity).label("units_sold"))\
            .join(Order, Order.id == OrderItem.order_id)\
            .where(Order.order_status != OrderStatus.CANCELLED)\
            .group_by(OrderItem.book_id).subquery()

    @staticmethod
    def get_recent_books(db: Session, limit: int = 8) -> List[BookDto]:
        """Sách mới thêm gần đây"""
        rows = BookService._base_query(db).order_by(desc(Book.created_at), desc(Book.id)).limit(limit).all()
        return BookService._to_dtos(db, rows)

    @staticmethod
    def get_popular_books(db: Session, limit: int = 8) -> List[BookDto]:
        """Sách bán chạy (tính trên các đơn chưa hủy)"""
        return BookService.get_books(db, page=0, size=limit, sort="popular").items

    @staticmethod
    def get_low_stock_books(db: Session, threshold: Optional[int] = None) -> List[BookDto]:
        """Sách có tồn kho dưới ngưỡng"""
        if threshold is None:
            threshold = config.LOW_STOCK_THRESHOLD
        rows = db.query(Book, BookDetail).join(BookDetail, BookDetail.book_id == Book.id)\
            .filter(BookDetail.quantity < threshold)\
            .order_by(BookDetail.quantity.asc(), Book.title).all()
        return BookService._to_dtos(db, rows)

    @staticmethod
    def count_books(db: Session) -> int:
        return db.query(func.count(Book.id)).scalar() or 0

    # ---- Commands ----

    @staticmethod
    def create_book(db: Session, book_in: BookCreate) -> BookDto:
        """Tạo sách mới kèm BookDetail"""
        logger.info("Creating new book: %s", book_in.title)
        isbn = BookService.normalize_isbn(book_in.isbn)

        with transactional(db):
            if isbn is not None and db.query(Book.id).filter(Book.isbn == isbn).first():
                raise AlreadyExistsError(f"ISBN already exists: {isbn}")

            book = Book(title=book_in.title.strip(), author=book_in.author.strip(), isbn=isbn)
            book.detail = BookDetail(
                description=book_in.description,
                image_url=book_in.image_url,
                price=book_in.price,
                quantity=book_in.quantity,
                publisher=book_in.publisher,
                publish_date=book_in.publish_date,
            )
            book.genres = BookService._resolve_genres(db, book_in.genre_ids)
            db.add(book)
            db.flush()
            book_id = book.id

        logger.info("Book created successfully with ID: %s", book_id)
        return BookService.get_book(db, book_id)

    @staticmethod
    def update_book(db: Session, book_id: int, book_in: BookUpdate) -> BookDto:
        """Cập nhật sách; genre_ids=None giữ nguyên thể loại"""
        logger.info("Updating book with ID: %s", book_id)
        isbn = BookService.normalize_isbn(book_in.isbn)

        with transactional(db):
            book = db.query(Book).filter(Book.id == book_id).first()
            if not book:
                raise NotFoundError(f"Book not found: {book_id}")

            if isbn is not None:
                duplicate = db.query(Book.id).filter(Book.isbn == isbn, Book.id != book_id).first()
                if duplicate:
                    raise AlreadyExistsError(f"ISBN already exists: {isbn}")

            book.title = book_in.title.strip()
            book.author = book_in.author.strip()
            book.isbn = isbn

            detail = db.query(BookDetail).filter(BookDetail.book_id == book_id).first()
            if detail is None:
                detail = BookDetail(book_id=book_id)
                db.add(detail)
            detail.description = book_in.description
            detail.image_url = book_in.image_url
            detail.price = book_in.price
            detail.quantity = book_in.quantity
            detail.publisher = book_in.publisher
            detail.publish_date = book_in.publish_date

            if book_in.genre_ids is not None:
                book.genres = BookService._resolve_genres(db, book_in.genre_ids)

        logger.info("Book updated successfully: %s", book_id)
        return BookService.get_book(db, book_id)

    @staticmethod
    def update_book_stock(db: Session, book_id: int, quantity: int) -> BookDto:
        """Đặt lại số lượng tồn kho"""
        logger.info("Updating stock for book ID %s: new quantity = %s", book_id, quantity)
        if quantity < 0:
            raise InvalidInputError("Quantity must not be negative")

        with transactional(db):
            detail = db.query(BookDetail).filter(BookDetail.book_id == book_id).first()
            if not detail:
                raise NotFoundError(f"Book not found: {book_id}")
            detail.quantity = quantity

        return BookService.get_book(db, book_id)

    @staticmethod
    def delete_book(db: Session, book_id: int) -> None:
        """Xóa sách; từ chối khi còn đơn hàng hoặc giỏ hàng tham chiếu"""
        logger.info("Deleting book with ID: %s", book_id)

        with transactional(db):
            book = db.query(Book).filter(Book.id == book_id).first()
            if not book:
                raise NotFoundError(f"Book not found: {book_id}")

            order_refs = db.query(func.count(OrderItem.id)).filter(OrderItem.book_id == book_id).scalar()
            if order_refs:
                raise ResourceInUseError("Cannot delete book: it appears in existing orders")

            cart_refs = db.query(func.count(CartItem.id)).filter(CartItem.book_id == book_id).scalar()
            if cart_refs:
                raise ResourceInUseError("Cannot delete book: it is in customers' carts")

            db.delete(book)

        logger.info("Book deleted successfully: %s", book_id)
