from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.db.book.models.book_models import BookDetail
from src.db.book.models.book_schemas import BookCreate, BookUpdate
from src.db.book.services.book_service import BookService
from src.db.cart.services.cart_service import CartService
from src.db.common.database_connection import create_tables
from src.db.common.exceptions import (
    AccessDeniedError, ConcurrentUpdateError, EmptyCartError, InsufficientStockError, InvalidInputError,
    InvalidOrderStateError
)
from src.db.order.models.order_models import Order, OrderStatus, PaymentMethod, PaymentStatus
from src.db.order.models.order_schemas import CheckoutRequest
from src.db.order.services.order_service import (
    OrderService, PaymentService, build_qr_code_url, parse_selected_ids
)
from src.db.user.models.user_models import User

from conftest import DEFAULT_PASSWORD_HASH


def _stock(db, book_id):
    db.expire_all()
    return db.query(BookDetail.quantity).filter(BookDetail.book_id == book_id).scalar()


def _checkout(db, user_id, method="COD", selected=None):
    return OrderService.create_order_from_cart(db, user_id, CheckoutRequest(
        shipping_address="12 Nguyen Hue, District 1",
        payment_method=method,
        selected_cart_item_ids=selected,
    ))


def test_checkout_reserves_stock_and_snapshots_price(db, user, make_book):
    book = make_book(title="A", price=100000, quantity=5)
    CartService.add_to_cart(db, user.id, book.id, 2)

    order = _checkout(db, user.id)

    assert _stock(db, book.id) == 3
    assert order.total_amount == Decimal(200000)
    assert order.total_formatted == "200,000 VND"
    assert order.order_status == OrderStatus.PENDING
    assert order.items[0].price_at_purchase == Decimal(100000)
    assert order.payment_status == PaymentStatus.PENDING
    assert order.transaction_code.startswith("TXN-")

    current = BookService.get_book(db, book.id)
    BookService.update_book(db, book.id, BookUpdate(
        title=current.title, author=current.author, price=Decimal(150000), quantity=current.quantity
    ))
    reloaded = OrderService.get_order(db, order.id)
    assert reloaded.items[0].price_at_purchase == Decimal(100000)
    assert reloaded.total_amount == Decimal(200000)


def test_checkout_is_all_or_nothing(db, user, make_book):
    book_a = make_book(title="A", quantity=5)
    book_b = make_book(title="B", quantity=3)
    CartService.add_to_cart(db, user.id, book_a.id, 3)
    CartService.add_to_cart(db, user.id, book_b.id, 2)
    # Tồn kho B giảm sau khi đã vào giỏ
    BookService.update_book_stock(db, book_b.id, 1)

    with pytest.raises(InsufficientStockError) as exc_info:
        _checkout(db, user.id)

    assert exc_info.value.message == "Insufficient stock for 'B'. Available: 1, Requested: 2"
    assert _stock(db, book_a.id) == 5
    assert _stock(db, book_b.id) == 1
    assert db.query(Order).count() == 0


def test_checkout_keeps_cart(db, user, make_book):
    book = make_book(quantity=5)
    CartService.add_to_cart(db, user.id, book.id, 1)

    _checkout(db, user.id)

    assert CartService.get_cart_item_count(db, user.id) == 1


def test_checkout_empty_cart(db, user):
    with pytest.raises(EmptyCartError):
        _checkout(db, user.id)


def test_checkout_selected_items_only(db, user, make_book):
    book_a = make_book(title="A", price=10000, quantity=5)
    book_b = make_book(title="B", price=20000, quantity=5)
    CartService.add_to_cart(db, user.id, book_a.id, 1)
    cart = CartService.add_to_cart(db, user.id, book_b.id, 2)
    b_item = cart.items[1].cart_item_id

    order = _checkout(db, user.id, selected=f" {b_item}, abc")

    assert [item.title for item in order.items] == ["B"]
    assert order.total_amount == Decimal(40000)
    assert _stock(db, book_a.id) == 5


def test_checkout_selected_ids_not_in_cart(db, user, make_book):
    CartService.add_to_cart(db, user.id, make_book().id, 1)

    with pytest.raises(InvalidInputError) as exc_info:
        _checkout(db, user.id, selected="9999")
    assert exc_info.value.message.startswith("No valid items selected for checkout.")


def test_checkout_invalid_payment_method(db, user, make_book):
    CartService.add_to_cart(db, user.id, make_book().id, 1)

    with pytest.raises(InvalidInputError):
        _checkout(db, user.id, method="BITCOIN")
    assert db.query(Order).count() == 0


def test_qr_checkout_exposes_qr_code_url(db, user, make_book):
    CartService.add_to_cart(db, user.id, make_book(price=125000, quantity=2).id, 1)

    order = _checkout(db, user.id, method="qr")

    assert order.payment_method == PaymentMethod.QR
    assert order.qr_code_url == build_qr_code_url(order.id, order.total_amount)
    assert "amount=125000" in order.qr_code_url
    assert f"addInfo=Order+%23{order.id}" in order.qr_code_url


def test_cancel_restores_exact_quantities(db, user, make_book):
    book_a = make_book(title="A", quantity=5)
    book_b = make_book(title="B", quantity=4)
    CartService.add_to_cart(db, user.id, book_a.id, 2)
    CartService.add_to_cart(db, user.id, book_b.id, 3)
    order = _checkout(db, user.id)
    assert (_stock(db, book_a.id), _stock(db, book_b.id)) == (3, 1)

    cancelled = OrderService.cancel_order(db, order.id, user.id)

    assert cancelled.order_status == OrderStatus.CANCELLED
    assert cancelled.payment_status == PaymentStatus.FAILED
    assert (_stock(db, book_a.id), _stock(db, book_b.id)) == (5, 4)


def test_cancel_rules(db, user, make_user, make_book):
    other = make_user()
    CartService.add_to_cart(db, user.id, make_book().id, 1)
    order = _checkout(db, user.id)

    with pytest.raises(AccessDeniedError):
        OrderService.cancel_order(db, order.id, other.id)

    OrderService.update_order_status(db, order.id, OrderStatus.SHIPPED)
    with pytest.raises(InvalidOrderStateError) as exc_info:
        OrderService.cancel_order(db, order.id, user.id)
    assert exc_info.value.message == "Only pending orders can be cancelled"


def test_status_machine(db, user, make_book):
    CartService.add_to_cart(db, user.id, make_book().id, 1)
    order = _checkout(db, user.id)

    with pytest.raises(InvalidOrderStateError):
        OrderService.update_order_status(db, order.id, OrderStatus.DELIVERED)

    assert OrderService.update_order_status(db, order.id, OrderStatus.PENDING).order_status == OrderStatus.PENDING
    assert OrderService.update_order_status(db, order.id, OrderStatus.SHIPPED).order_status == OrderStatus.SHIPPED

    with pytest.raises(InvalidOrderStateError):
        OrderService.update_order_status(db, order.id, OrderStatus.CANCELLED)

    delivered = OrderService.update_order_status(db, order.id, OrderStatus.DELIVERED)
    assert delivered.payment_status == PaymentStatus.PAID
    assert delivered.paid_at is not None

    with pytest.raises(InvalidOrderStateError) as exc_info:
        OrderService.update_order_status(db, order.id, OrderStatus.SHIPPED)
    assert exc_info.value.message == "Cannot change status of delivered order"


def test_admin_cancel_restores_stock_and_blocks_further_changes(db, user, make_book):
    book = make_book(quantity=5)
    CartService.add_to_cart(db, user.id, book.id, 2)
    order = _checkout(db, user.id)

    OrderService.update_order_status(db, order.id, OrderStatus.CANCELLED)

    assert _stock(db, book.id) == 5
    with pytest.raises(InvalidOrderStateError) as exc_info:
        OrderService.update_order_status(db, order.id, OrderStatus.PENDING)
    assert exc_info.value.message == "Cannot update status of cancelled order"


def test_mark_paid_requires_shipped(db, user, make_book):
    CartService.add_to_cart(db, user.id, make_book().id, 1)
    order = _checkout(db, user.id)

    with pytest.raises(InvalidOrderStateError):
        PaymentService.mark_paid(db, order.id)

    OrderService.update_order_status(db, order.id, OrderStatus.SHIPPED)
    assert PaymentService.mark_paid(db, order.id).payment_status == PaymentStatus.PAID

    payments = PaymentService.list_payments(db, status=PaymentStatus.PAID)
    assert payments.total == 1
    assert payments.items[0].order_id == order.id


def test_order_queries(db, user, make_user, make_book):
    other = make_user()
    book = make_book(quantity=10)
    for _ in range(3):
        CartService.add_to_cart(db, user.id, book.id, 1)
        _checkout(db, user.id)
        CartService.clear_cart(db, user.id)

    history = OrderService.get_user_orders(db, user.id, page=0, size=2)
    assert history.total == 3
    assert history.total_pages == 2
    assert len(history.items) == 2
    assert OrderService.count_user_orders(db, user.id) == 3
    assert OrderService.get_user_orders(db, other.id).total == 0

    with pytest.raises(AccessDeniedError):
        OrderService.get_order_for_user(db, history.items[0].id, other.id)

    assert OrderService.get_all_orders(db, status=OrderStatus.PENDING).total == 3
    assert OrderService.get_all_orders(db, status=OrderStatus.SHIPPED).total == 0


def test_has_purchased_book_requires_delivery(db, user, make_book):
    book = make_book()
    CartService.add_to_cart(db, user.id, book.id, 1)
    order = _checkout(db, user.id)
    assert not OrderService.has_purchased_book(db, user.id, book.id)

    OrderService.update_order_status(db, order.id, OrderStatus.SHIPPED)
    OrderService.update_order_status(db, order.id, OrderStatus.DELIVERED)
    assert OrderService.has_purchased_book(db, user.id, book.id)


def test_parse_selected_ids():
    assert parse_selected_ids(None) == []
    assert parse_selected_ids("  ") == []
    assert parse_selected_ids("1, 2,x,,3") == [1, 2, 3]


@pytest.fixture
def file_session_factory(tmp_path):
    # File database: hai session thật sự chạy song song
    engine = create_engine(f"sqlite:///{tmp_path / 'shop.db'}")
    create_tables(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_concurrent_checkout_of_last_unit_conflicts(file_session_factory):
    setup = file_session_factory()
    buyers = []
    for n in (1, 2):
        buyer = User(full_name=f"Buyer {n}", email=f"buyer{n}@example.com",
                     hashed_password=DEFAULT_PASSWORD_HASH, is_enabled=True)
        setup.add(buyer)
        setup.commit()
        buyers.append(buyer.id)
    book = BookService.create_book(setup, BookCreate(
        title="Last Copy", author="Author", price=Decimal(50000), quantity=1
    ))
    for buyer_id in buyers:
        CartService.add_to_cart(setup, buyer_id, book.id, 1)
    setup.close()

    first, second = file_session_factory(), file_session_factory()
    # second đọc tồn kho (version cũ) trước khi first đặt hàng
    assert second.query(BookDetail).filter(BookDetail.book_id == book.id).one().quantity == 1

    _checkout(first, buyers[0])
    with pytest.raises(ConcurrentUpdateError) as exc_info:
        _checkout(second, buyers[1])
    assert exc_info.value.retryable is True
    first.close()
    second.close()

    check = file_session_factory()
    assert _stock(check, book.id) == 0
    assert check.query(Order).count() == 1
    check.close()
