from sqlalchemy.orm import Session
from sqlalchemy import func
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Iterable
import logging

from src.db.book.models.book_models import Book, BookDetail
from src.db.cart.models.cart_models import Cart, CartItem
from src.db.cart.models.cart_schemas import Cart as CartDto, CartItem as CartItemDto, PLACEHOLDER_IMAGE
from src.db.user.models.user_models import User
from src.db.common.database_connection import transactional
from src.db.common.exceptions import (
    NotFoundError, OutOfStockError, InsufficientStockError, InvalidInputError, AccessDeniedError
)

logger = logging.getLogger(__name__)


class CartService:
    # ---- helpers ----

    @staticmethod
    def _find_cart(db: Session, user_id: int) -> Optional[Cart]:
        return db.query(Cart).filter(Cart.user_id == user_id).first()

    @staticmethod
    def _find_or_create_cart(db: Session, user_id: int) -> Cart:
        """Lấy giỏ của user, tạo mới khi chưa có (gọi trong transaction)"""
        cart = CartService._find_cart(db, user_id)
        if cart:
            return cart

        if not db.query(User.id).filter(User.id == user_id).first():
            raise NotFoundError(f"User not found: {user_id}")

        cart = Cart(user_id=user_id)
        db.add(cart)
        db.flush()
        logger.info("Created new cart for user ID: %s", user_id)
        return cart

    @staticmethod
    def _owned_item(db: Session, user_id: int, cart_item_id: int) -> CartItem:
        """Lấy cart item và kiểm tra quyền sở hữu"""
        row = db.query(CartItem, Cart.user_id)\
            .join(Cart, Cart.id == CartItem.cart_id)\
            .filter(CartItem.id == cart_item_id).first()
        if not row:
            raise NotFoundError(f"Cart item not found: {cart_item_id}")
        cart_item, owner_id = row
        if owner_id != user_id:
            raise AccessDeniedError("Cart item does not belong to user")
        return cart_item

    @staticmethod
    def _touch(db: Session, cart_id: int) -> None:
        # Tăng version của giỏ khi danh sách item thay đổi
        cart = db.query(Cart).filter(Cart.id == cart_id).first()
        cart.updated_at = datetime.now()

    @staticmethod
    def build_cart_dto(db: Session, cart_id: int) -> CartDto:
        """Projection giỏ hàng: một query join item/sách/chi tiết"""
        rows = db.query(CartItem, Book, BookDetail)\
            .join(Book, Book.id == CartItem.book_id)\
            .outerjoin(BookDetail, BookDetail.book_id == Book.id)\
            .filter(CartItem.cart_id == cart_id)\
            .order_by(CartItem.id).all()

        items = []
        for cart_item, book, detail in rows:
            price = detail.price if detail and detail.price is not None else Decimal(0)
            items.append(CartItemDto(
                cart_item_id=cart_item.id,
                book_id=book.id,
                title=book.title,
                author=book.author,
                image_url=(detail.image_url if detail and detail.image_url else PLACEHOLDER_IMAGE),
                price=price,
                quantity=cart_item.quantity,
                available_stock=(detail.quantity if detail and detail.quantity is not None else 0),
                subtotal=price * cart_item.quantity,
            ))
        return CartDto.from_items(cart_id, items)

    # ---- use cases ----

    @staticmethod
    def get_or_create_cart(db: Session, user_id: int) -> CartDto:
        """Lấy giỏ hàng của user (tạo giỏ rỗng khi truy cập lần đầu)"""
        with transactional(db):
            cart = CartService._find_or_create_cart(db, user_id)
            cart_id = cart.id
        return CartService.build_cart_dto(db, cart_id)

    @staticmethod
    def add_to_cart(db: Session, user_id: int, book_id: int, quantity: Optional[int] = 1) -> CartDto:
        """Thêm sách vào giỏ, cộng dồn nếu đã có"""
        logger.info("Adding book %s to cart for user %s", book_id, user_id)
        if quantity is None or quantity <= 0:
            quantity = 1

        with transactional(db):
            cart = CartService._find_or_create_cart(db, user_id)
            cart_id = cart.id

            row = db.query(Book, BookDetail)\
                .outerjoin(BookDetail, BookDetail.book_id == Book.id)\
                .filter(Book.id == book_id).first()
            if not row:
                raise NotFoundError(f"Book not found: {book_id}")
            book, detail = row
            if detail is None:
                raise NotFoundError(f"Book details not found for book: {book_id}")

            available = detail.quantity
            if available is None or available <= 0:
                raise OutOfStockError(f"Book is out of stock: {book.title}")

            existing = db.query(CartItem)\
                .filter(CartItem.cart_id == cart_id, CartItem.book_id == book_id).first()
            requested = quantity + (existing.quantity if existing else 0)
            if requested > available:
                raise InsufficientStockError(
                    "Insufficient stock. Available: %d, Requested: %d" % (available, requested),
                    available=available,
                    requested=requested,
                )

            if existing:
                existing.quantity = requested
                logger.info("Updated cart item quantity to %s for book %s", requested, book_id)
            else:
                db.add(CartItem(cart_id=cart_id, book_id=book_id, quantity=quantity))
                logger.info("Added new item to cart: book %s, quantity %s", book_id, quantity)
            CartService._touch(db, cart_id)

        return CartService.build_cart_dto(db, cart_id)

    @staticmethod
    def update_cart_item_quantity(db: Session, user_id: int, cart_item_id: int, quantity: Optional[int]) -> CartDto:
        """Đổi số lượng một item, kiểm tra lại tồn kho"""
        logger.info("Updating cart item %s quantity to %s for user %s", cart_item_id, quantity, user_id)
        if quantity is None or quantity <= 0:
            raise InvalidInputError("Quantity must be greater than 0")

        with transactional(db):
            cart_item = CartService._owned_item(db, user_id, cart_item_id)
            cart_id = cart_item.cart_id

            detail = db.query(BookDetail).filter(BookDetail.book_id == cart_item.book_id).first()
            if detail is None:
                raise NotFoundError("Book details not found")

            available = detail.quantity or 0
            if quantity > available:
                raise InsufficientStockError(
                    "Insufficient stock. Available: %d, Requested: %d" % (available, quantity),
                    available=available,
                    requested=quantity,
                )
            cart_item.quantity = quantity
            CartService._touch(db, cart_id)

        return CartService.build_cart_dto(db, cart_id)

    @staticmethod
    def remove_from_cart(db: Session, user_id: int, cart_item_id: int) -> CartDto:
        """Xóa một item khỏi giỏ"""
        logger.info("Removing cart item %s for user %s", cart_item_id, user_id)
        with transactional(db):
            cart_item = CartService._owned_item(db, user_id, cart_item_id)
            cart_id = cart_item.cart_id
            db.delete(cart_item)
            CartService._touch(db, cart_id)

        return CartService.build_cart_dto(db, cart_id)

    @staticmethod
    def remove_selected(db: Session, user_id: int, cart_item_ids: Iterable[int]) -> int:
        """Xóa nhiều item, trả về số item đã xóa (id không thuộc giỏ bị bỏ qua)"""
        cart_item_ids = list(cart_item_ids)
        logger.info("Removing cart items %s for user %s", cart_item_ids, user_id)
        if not cart_item_ids:
            return 0

        with transactional(db):
            cart = CartService._find_cart(db, user_id)
            if not cart:
                return 0
            items = db.query(CartItem)\
                .filter(CartItem.cart_id == cart.id, CartItem.id.in_(cart_item_ids)).all()
            for item in items:
                db.delete(item)
            if items:
                cart.updated_at = datetime.now()
            removed = len(items)

        return removed

    @staticmethod
    def clear_cart(db: Session, user_id: int) -> None:
        """Xóa toàn bộ item trong giỏ"""
        logger.info("Clearing cart for user %s", user_id)
        with transactional(db):
            cart = CartService._find_cart(db, user_id)
            if not cart:
                raise NotFoundError(f"Cart not found for user: {user_id}")
            db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
            cart.updated_at = datetime.now()

    @staticmethod
    def get_cart_item_count(db: Session, user_id: Optional[int]) -> int:
        """Tổng số lượng sách trong giỏ (badge trên navbar)"""
        if user_id is None:
            return 0
        total = db.query(func.sum(CartItem.quantity))\
            .join(Cart, Cart.id == CartItem.cart_id)\
            .filter(Cart.user_id == user_id).scalar()
        return int(total or 0)

    @staticmethod
    def get_items_by_ids(db: Session, user_id: int, cart_item_ids: List[int]) -> List[CartItemDto]:
        """Các item được chọn của user (dùng cho trang checkout)"""
        cart = CartService._find_cart(db, user_id)
        if not cart:
            return []
        dto = CartService.build_cart_dto(db, cart.id)
        if not cart_item_ids:
            return dto.items
        wanted = set(cart_item_ids)
        return [item for item in dto.items if item.cart_item_id in wanted]
