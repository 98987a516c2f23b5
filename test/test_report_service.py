from datetime import date, timedelta
from decimal import Decimal

import pytest

from src.db.cart.services.cart_service import CartService
from src.db.common.exceptions import InvalidInputError
from src.db.order.models.order_models import OrderStatus
from src.db.order.models.order_schemas import CheckoutRequest
from src.db.order.services.order_service import OrderService
from src.db.report.services.dashboard_service import DashboardService
from src.db.report.services.report_service import ReportService
from src.db.review.models.review_schemas import ReviewCreate
from src.db.review.services.review_service import ReviewService


def _deliver(db, user_id, items):
    CartService.get_or_create_cart(db, user_id)
    CartService.clear_cart(db, user_id)
    for book_id, quantity in items:
        CartService.add_to_cart(db, user_id, book_id, quantity)
    order = OrderService.create_order_from_cart(db, user_id, CheckoutRequest(shipping_address="Hanoi"))
    OrderService.update_order_status(db, order.id, OrderStatus.SHIPPED)
    OrderService.update_order_status(db, order.id, OrderStatus.DELIVERED)
    return order


def test_dashboard_stats(db, user, admin, make_book):
    cheap = make_book(title="Cheap", price=50000, quantity=20)
    rare = make_book(title="Rare", price=200000, quantity=3)
    _deliver(db, user.id, [(cheap.id, 2), (rare.id, 1)])
    CartService.clear_cart(db, user.id)
    CartService.add_to_cart(db, user.id, cheap.id, 1)
    OrderService.create_order_from_cart(db, user.id, CheckoutRequest(shipping_address="Hanoi"))
    ReviewService.create_review(db, user.id, cheap.id, ReviewCreate(rating=4, comment="y" * 150))

    stats = DashboardService.get_dashboard_stats(db)

    assert stats.total_revenue == Decimal(300000)
    assert stats.pending_orders_count == 1
    assert stats.order_status_distribution["DELIVERED"] == 1
    assert stats.order_status_distribution["CANCELLED"] == 0
    assert stats.new_orders_today == 2
    assert stats.total_users_count == 2
    assert stats.total_books_count == 2
    assert stats.average_rating == 4.0
    assert [b.title for b in stats.low_stock_books] == ["Rare"]
    assert len(stats.recent_orders) == 2
    assert stats.recent_reviews[0].comment == "y" * 97 + "..."
    assert (stats.recent_reviews[0].book_title, stats.recent_reviews[0].user_name) == ("Cheap", "Reader")
    assert len(stats.revenue_chart_data) == 7
    assert stats.revenue_chart_data[-1].value == Decimal(300000)
    assert stats.revenue_chart_data[0].value == Decimal(0)


def test_report_totals_and_top_books(db, user, make_book):
    a = make_book(title="A", price=10000, quantity=50)
    b = make_book(title="B", price=100000, quantity=50)
    _deliver(db, user.id, [(a.id, 5)])
    _deliver(db, user.id, [(b.id, 1)])

    today = date.today()
    report = ReportService.get_report(db, today - timedelta(days=6), today)

    assert report.total_revenue == Decimal(150000)
    assert report.total_orders == 2
    assert report.average_order_value == Decimal(75000)
    assert [t.title for t in report.top_books_by_quantity] == ["A", "B"]
    assert [t.title for t in report.top_books_by_revenue] == ["B", "A"]

    only_a = ReportService.get_report(db, today, today, book_id=a.id)
    assert [t.title for t in only_a.top_books_by_quantity] == ["A"]


def test_report_excludes_other_days_and_rejects_inverted_range(db):
    yesterday = date.today() - timedelta(days=1)

    empty = ReportService.get_report(db, yesterday, yesterday)
    assert (empty.total_orders, empty.average_order_value) == (0, Decimal(0))

    with pytest.raises(InvalidInputError):
        ReportService.get_report(db, date.today(), yesterday)
