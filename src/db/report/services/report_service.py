from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from datetime import datetime, date, time
from decimal import Decimal
from typing import Optional, List
import logging

from src.db.book.models.book_models import Book
from src.db.order.models.order_models import Order, OrderItem, OrderStatus
from src.db.report.models.report_schemas import AdminReport, TopBook
from src.db.common.exceptions import InvalidInputError
from src.utils.currency import to_vnd

logger = logging.getLogger(__name__)

TOP_BOOKS_LIMIT = 10


class ReportService:
    @staticmethod
    def _top_books(db: Session, start: datetime, end: datetime, order_by, book_id: Optional[int]) -> List[TopBook]:
        quantity = func.sum(OrderItem.quantity)
        revenue = func.sum(OrderItem.price_at_purchase * OrderItem.quantity)
        query = db.query(Book.id, Book.title, quantity, revenue)\
            .join(OrderItem, OrderItem.book_id == Book.id)\
            .join(Order, Order.id == OrderItem.order_id)\
            .filter(
                Order.order_status == OrderStatus.DELIVERED,
                Order.order_date >= start,
                Order.order_date <= end,
            )
        if book_id is not None:
            query = query.filter(Book.id == book_id)
        sort_column = quantity if order_by == "quantity" else revenue
        rows = query.group_by(Book.id, Book.title)\
            .order_by(desc(sort_column), Book.id).limit(TOP_BOOKS_LIMIT).all()
        return [
            TopBook(book_id=bid, title=title, quantity=int(qty or 0), revenue=to_vnd(rev))
            for bid, title, qty, rev in rows
        ]

    @staticmethod
    def get_report(db: Session, start_date: date, end_date: date, book_id: Optional[int] = None) -> AdminReport:
        """Báo cáo doanh thu các đơn DELIVERED trong khoảng ngày (tính cả hai đầu)"""
        if start_date > end_date:
            raise InvalidInputError("Start date must not be after end date")
        logger.info("Generating admin report from %s to %s, bookId: %s", start_date, end_date, book_id)

        start = datetime.combine(start_date, time.min)
        end = datetime.combine(end_date, time.max)

        total_revenue, total_orders = db.query(
            func.coalesce(func.sum(Order.total_amount), 0), func.count(Order.id)
        ).filter(
            Order.order_status == OrderStatus.DELIVERED,
            Order.order_date >= start,
            Order.order_date <= end,
        ).one()
        total_revenue = to_vnd(total_revenue)
        average = (total_revenue / total_orders).quantize(Decimal(1)) if total_orders else Decimal(0)

        return AdminReport(
            start_date=start_date,
            end_date=end_date,
            total_revenue=total_revenue,
            total_orders=total_orders,
            average_order_value=average,
            top_books_by_quantity=ReportService._top_books(db, start, end, "quantity", book_id),
            top_books_by_revenue=ReportService._top_books(db, start, end, "revenue", book_id),
        )
