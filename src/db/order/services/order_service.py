from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict
from urllib.parse import quote_plus
import logging
import uuid

from src.config import config
from src.db.book.models.book_models import Book, BookDetail
from src.db.cart.models.cart_models import Cart, CartItem
from src.db.cart.models.cart_schemas import PLACEHOLDER_IMAGE
from src.db.order.models.order_models import (
    Order, OrderItem, Payment, OrderStatus, PaymentMethod, PaymentStatus
)
from src.db.order.models.order_schemas import (
    CheckoutRequest, Order as OrderDto, OrderItem as OrderItemDto, Payment as PaymentDto
)
from src.db.user.models.user_models import User
from src.db.common.database_connection import transactional
from src.db.common.exceptions import (
    NotFoundError, EmptyCartError, InvalidInputError, InsufficientStockError,
    InvalidOrderStateError, AccessDeniedError
)
from src.db.common.pagination import Page, normalize_page
from src.utils.currency import format_vnd, to_vnd

logger = logging.getLogger(__name__)

ORDER_PAGE_SIZE = 10

# Chuyển trạng thái hợp lệ của đơn hàng (DELIVERED và CANCELLED là trạng thái cuối)
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def parse_selected_ids(raw: Optional[str]) -> List[int]:
    """'1, 2,x' -> [1, 2]; token không hợp lệ bị bỏ qua"""
    if not raw or not raw.strip():
        return []
    ids = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            ids.append(int(token))
        except ValueError:
            logger.warning("Invalid cart item ID in selected_cart_item_ids: %s", token)
    return ids


def parse_payment_method(raw: Optional[str]) -> PaymentMethod:
    try:
        return PaymentMethod((raw or "").strip().upper())
    except ValueError:
        raise InvalidInputError(f"Invalid payment method: {raw}")


def generate_transaction_code() -> str:
    """Mã giao dịch giả lập: TXN-XXXXXXXX"""
    return "TXN-" + uuid.uuid4().hex[:8].upper()


def build_qr_code_url(order_id: int, total_amount: Decimal) -> str:
    """URL ảnh VietQR cho đơn thanh toán QR đang chờ"""
    amount = int(to_vnd(total_amount))
    return "%s?amount=%d&addInfo=%s&accountName=%s" % (
        config.QR_IMAGE_URL,
        amount,
        quote_plus(f"Order #{order_id}"),
        quote_plus(config.QR_ACCOUNT_NAME),
    )


class OrderService:
    # ---- DTO projection ----

    @staticmethod
    def _to_dtos(db: Session, orders: List[Order]) -> List[OrderDto]:
        if not orders:
            return []
        order_ids = [order.id for order in orders]

        emails = dict(
            db.query(User.id, User.email).filter(User.id.in_({order.user_id for order in orders})).all()
        )
        payments = {
            payment.order_id: payment
            for payment in db.query(Payment).filter(Payment.order_id.in_(order_ids)).all()
        }
        item_rows = db.query(OrderItem, Book.title, Book.author, BookDetail.image_url)\
            .join(Book, Book.id == OrderItem.book_id)\
            .outerjoin(BookDetail, BookDetail.book_id == Book.id)\
            .filter(OrderItem.order_id.in_(order_ids))\
            .order_by(OrderItem.id).all()
        items: Dict[int, List[OrderItemDto]] = {}
        for item, title, author, image_url in item_rows:
            items.setdefault(item.order_id, []).append(OrderItemDto(
                id=item.id,
                book_id=item.book_id,
                title=title,
                author=author,
                image_url=image_url or PLACEHOLDER_IMAGE,
                quantity=item.quantity,
                price_at_purchase=item.price_at_purchase,
                subtotal=item.price_at_purchase * item.quantity,
            ))

        dtos = []
        for order in orders:
            payment = payments.get(order.id)
            qr_code_url = None
            if payment and payment.payment_method == PaymentMethod.QR \
                    and payment.payment_status == PaymentStatus.PENDING:
                qr_code_url = build_qr_code_url(order.id, order.total_amount)
            dtos.append(OrderDto(
                id=order.id,
                user_id=order.user_id,
                user_email=emails.get(order.user_id, ""),
                total_amount=order.total_amount,
                total_formatted=format_vnd(order.total_amount),
                order_status=order.order_status,
                shipping_address=order.shipping_address,
                order_date=order.order_date,
                updated_at=order.updated_at,
                items=items.get(order.id, []),
                payment_id=payment.id if payment else None,
                payment_method=payment.payment_method if payment else None,
                payment_status=payment.payment_status if payment else None,
                transaction_code=payment.transaction_code if payment else None,
                paid_at=payment.paid_at if payment else None,
                qr_code_url=qr_code_url,
            ))
        return dtos

    @staticmethod
    def _load_order(db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError(f"Order not found: {order_id}")
        return order

    @staticmethod
    def _restore_stock(db: Session, order_id: int) -> None:
        """Hoàn lại tồn kho đã trừ khi đặt đơn"""
        rows = db.query(OrderItem, BookDetail)\
            .outerjoin(BookDetail, BookDetail.book_id == OrderItem.book_id)\
            .filter(OrderItem.order_id == order_id).all()
        for item, detail in rows:
            if detail is not None:
                detail.quantity = (detail.quantity or 0) + item.quantity

    @staticmethod
    def _fail_pending_payment(db: Session, order_id: int) -> None:
        payment = db.query(Payment).filter(Payment.order_id == order_id).first()
        if payment and payment.payment_status == PaymentStatus.PENDING:
            payment.payment_status = PaymentStatus.FAILED

    # ---- Checkout ----

    @staticmethod
    def create_order_from_cart(db: Session, user_id: int, checkout: CheckoutRequest) -> OrderDto:
        """
        Tạo đơn hàng từ giỏ hàng.

        Toàn bộ kiểm tra tồn kho chạy trước khi ghi; bất kỳ lỗi nào cũng rollback
        cả đơn, item, payment và tồn kho. Giỏ hàng không bị xóa sau khi đặt.
        """
        logger.info("Creating order from cart for user %s", user_id)

        with transactional(db):
            cart = db.query(Cart).filter(Cart.user_id == user_id).first()
            cart_items = []
            if cart:
                cart_items = db.query(CartItem).filter(CartItem.cart_id == cart.id)\
                    .order_by(CartItem.id).all()
            if not cart_items:
                raise EmptyCartError("Cart is empty")

            selected_ids = parse_selected_ids(checkout.selected_cart_item_ids)
            if selected_ids:
                wanted = set(selected_ids)
                cart_items = [item for item in cart_items if item.id in wanted]
                if not cart_items:
                    raise InvalidInputError(
                        "No valid items selected for checkout. "
                        "Please ensure the selected items are still in your cart."
                    )

            payment_method = parse_payment_method(checkout.payment_method)

            # Kiểm tra tồn kho + giá cho mọi item trước khi ghi
            book_rows = db.query(Book, BookDetail)\
                .outerjoin(BookDetail, BookDetail.book_id == Book.id)\
                .filter(Book.id.in_([item.book_id for item in cart_items])).all()
            books = {book.id: (book, detail) for book, detail in book_rows}

            total_amount = Decimal(0)
            for item in cart_items:
                book, detail = books[item.book_id]
                if detail is None:
                    raise NotFoundError(f"Book details not found for book: {book.title}")
                available = detail.quantity
                if available is None or available < item.quantity:
                    raise InsufficientStockError(
                        "Insufficient stock for '%s'. Available: %d, Requested: %d"
                        % (book.title, available or 0, item.quantity),
                        available=available or 0,
                        requested=item.quantity,
                    )
                if detail.price is None:
                    raise InvalidInputError(f"Price not set for book: {book.title}")
                total_amount += detail.price * item.quantity

            if not db.query(User.id).filter(User.id == user_id).first():
                raise NotFoundError(f"User not found: {user_id}")

            order = Order(
                user_id=user_id,
                total_amount=total_amount,
                order_status=OrderStatus.PENDING,
                shipping_address=checkout.shipping_address,
            )
            for item in cart_items:
                _, detail = books[item.book_id]
                order.items.append(OrderItem(
                    book_id=item.book_id,
                    quantity=item.quantity,
                    price_at_purchase=detail.price,
                ))
                detail.quantity -= item.quantity

            order.payment = Payment(
                payment_method=payment_method,
                payment_status=PaymentStatus.PENDING,
                transaction_code=generate_transaction_code(),
            )
            db.add(order)
            db.flush()
            order_id = order.id

        logger.info("Order created successfully: orderId=%s, totalAmount=%s", order_id, total_amount)
        return OrderService.get_order(db, order_id)

    # ---- Status changes ----

    @staticmethod
    def cancel_order(db: Session, order_id: int, user_id: int) -> OrderDto:
        """Khách hủy đơn PENDING của chính mình; hoàn tồn kho"""
        logger.info("Cancelling order %s by user %s", order_id, user_id)

        with transactional(db):
            order = OrderService._load_order(db, order_id)
            if order.user_id != user_id:
                raise AccessDeniedError("Order does not belong to user")
            if order.order_status != OrderStatus.PENDING:
                raise InvalidOrderStateError("Only pending orders can be cancelled")

            OrderService._restore_stock(db, order_id)
            order.order_status = OrderStatus.CANCELLED
            OrderService._fail_pending_payment(db, order_id)

        return OrderService.get_order(db, order_id)

    @staticmethod
    def update_order_status(db: Session, order_id: int, new_status: OrderStatus) -> OrderDto:
        """Admin đổi trạng thái đơn theo state machine"""
        logger.info("Updating order %s status to %s", order_id, new_status.value)

        with transactional(db):
            order = OrderService._load_order(db, order_id)
            current = order.order_status

            if current == OrderStatus.CANCELLED:
                raise InvalidOrderStateError("Cannot update status of cancelled order")
            if current == OrderStatus.DELIVERED:
                if new_status != OrderStatus.DELIVERED:
                    raise InvalidOrderStateError("Cannot change status of delivered order")
                return OrderService.get_order(db, order_id)
            if new_status == current:
                return OrderService.get_order(db, order_id)
            if new_status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidOrderStateError(
                    f"Cannot change order status from {current.value} to {new_status.value}"
                )

            if new_status == OrderStatus.CANCELLED:
                OrderService._restore_stock(db, order_id)
                OrderService._fail_pending_payment(db, order_id)

            if new_status == OrderStatus.DELIVERED:
                payment = db.query(Payment).filter(Payment.order_id == order_id).first()
                if payment and payment.payment_method == PaymentMethod.COD \
                        and payment.payment_status == PaymentStatus.PENDING:
                    payment.payment_status = PaymentStatus.PAID
                    payment.paid_at = datetime.now()

            order.order_status = new_status

        return OrderService.get_order(db, order_id)

    # ---- Queries ----

    @staticmethod
    def get_order(db: Session, order_id: int) -> OrderDto:
        """Lấy đơn hàng theo ID (admin)"""
        return OrderService._to_dtos(db, [OrderService._load_order(db, order_id)])[0]

    @staticmethod
    def get_order_for_user(db: Session, order_id: int, user_id: int) -> OrderDto:
        """Lấy đơn hàng, chỉ chủ đơn mới xem được"""
        order = OrderService._load_order(db, order_id)
        if order.user_id != user_id:
            raise AccessDeniedError("Order does not belong to user")
        return OrderService._to_dtos(db, [order])[0]

    @staticmethod
    def get_user_orders(db: Session, user_id: int, page: int = 0, size: int = ORDER_PAGE_SIZE) -> Page[OrderDto]:
        """Lịch sử đơn hàng của user, mới nhất trước"""
        page, size = normalize_page(page, size, ORDER_PAGE_SIZE)
        query = db.query(Order).filter(Order.user_id == user_id)
        total = query.count()
        orders = query.order_by(desc(Order.order_date), desc(Order.id))\
            .offset(page * size).limit(size).all()
        return Page[OrderDto].build(OrderService._to_dtos(db, orders), total, page, size)

    @staticmethod
    def get_all_orders(
        db: Session, page: int = 0, size: int = ORDER_PAGE_SIZE, status: Optional[OrderStatus] = None
    ) -> Page[OrderDto]:
        """Danh sách đơn cho admin, lọc theo trạng thái"""
        page, size = normalize_page(page, size, ORDER_PAGE_SIZE)
        query = db.query(Order)
        if status is not None:
            query = query.filter(Order.order_status == status)
        total = query.count()
        orders = query.order_by(desc(Order.order_date), desc(Order.id))\
            .offset(page * size).limit(size).all()
        return Page[OrderDto].build(OrderService._to_dtos(db, orders), total, page, size)

    @staticmethod
    def count_user_orders(db: Session, user_id: int) -> int:
        return db.query(func.count(Order.id)).filter(Order.user_id == user_id).scalar() or 0

    @staticmethod
    def has_purchased_book(db: Session, user_id: int, book_id: int) -> bool:
        """User đã nhận (DELIVERED) ít nhất một đơn chứa sách này"""
        return db.query(OrderItem.id)\
            .join(Order, Order.id == OrderItem.order_id)\
            .filter(
                Order.user_id == user_id,
                OrderItem.book_id == book_id,
                Order.order_status == OrderStatus.DELIVERED,
            ).first() is not None


class PaymentService:
    @staticmethod
    def list_payments(
        db: Session, page: int = 0, size: int = 20, status: Optional[PaymentStatus] = None
    ) -> Page[PaymentDto]:
        """Danh sách thanh toán cho admin, lọc theo trạng thái"""
        page, size = normalize_page(page, size, 20)
        query = db.query(Payment, Order.total_amount, User.email)\
            .join(Order, Order.id == Payment.order_id)\
            .join(User, User.id == Order.user_id)
        if status is not None:
            query = query.filter(Payment.payment_status == status)
        total = query.count()
        rows = query.order_by(desc(Payment.created_at), desc(Payment.id))\
            .offset(page * size).limit(size).all()
        items = [
            PaymentDto(
                id=payment.id,
                order_id=payment.order_id,
                user_email=email,
                amount=amount,
                payment_method=payment.payment_method,
                payment_status=payment.payment_status,
                transaction_code=payment.transaction_code,
                created_at=payment.created_at,
                paid_at=payment.paid_at,
            )
            for payment, amount, email in rows
        ]
        return Page[PaymentDto].build(items, total, page, size)

    @staticmethod
    def mark_paid(db: Session, order_id: int) -> OrderDto:
        """Admin xác nhận đã giao + thanh toán (chỉ đơn SHIPPED)"""
        return OrderService.update_order_status(db, order_id, OrderStatus.DELIVERED)
