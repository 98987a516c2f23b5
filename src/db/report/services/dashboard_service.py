from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import List, Dict
import logging

from src.config import config
from src.db.book.models.book_models import Book, BookDetail
from src.db.order.models.order_models import Order, OrderStatus
from src.db.user.models.user_models import User
from src.db.report.models.report_schemas import (
    DashboardStats, LowStockBook, RecentOrder, RecentReview, ChartDataPoint
)
from src.db.review.services.review_service import ReviewService
from src.db.user.services.user_service import UserService
from src.db.book.services.book_service import BookService
from src.utils.currency import to_vnd

logger = logging.getLogger(__name__)

RECENT_ITEMS_LIMIT = 5
COMMENT_PREVIEW_LENGTH = 100


def truncate_comment(comment):
    if comment is not None and len(comment) > COMMENT_PREVIEW_LENGTH:
        return comment[:97] + "..."
    return comment


class DashboardService:
    @staticmethod
    def _status_counts(db: Session) -> Dict[str, int]:
        counts = {status.value: 0 for status in OrderStatus}
        rows = db.query(Order.order_status, func.count(Order.id)).group_by(Order.order_status).all()
        for status, count in rows:
            counts[status.value] = count
        return counts

    @staticmethod
    def get_revenue_chart_data(db: Session, days: int = 7) -> List[ChartDataPoint]:
        """Doanh thu đơn DELIVERED theo ngày trong N ngày gần nhất (ngày trống = 0)"""
        today = date.today()
        first_day = today - timedelta(days=days - 1)
        rows = db.query(Order.order_date, Order.total_amount)\
            .filter(
                Order.order_status == OrderStatus.DELIVERED,
                Order.order_date >= datetime.combine(first_day, datetime.min.time()),
            ).all()

        revenue_by_day: Dict[date, Decimal] = {}
        for order_date, amount in rows:
            day = order_date.date()
            revenue_by_day[day] = revenue_by_day.get(day, Decimal(0)) + amount

        chart = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            chart.append(ChartDataPoint(label=day.strftime("%b %d"), value=revenue_by_day.get(day, Decimal(0))))
        return chart

    @staticmethod
    def get_dashboard_stats(db: Session) -> DashboardStats:
        logger.info("Fetching dashboard statistics")

        total_revenue = db.query(func.coalesce(func.sum(Order.total_amount), 0))\
            .filter(Order.order_status == OrderStatus.DELIVERED).scalar()
        start_of_day = datetime.combine(date.today(), datetime.min.time())
        new_orders_today = db.query(func.count(Order.id)).filter(Order.order_date >= start_of_day).scalar() or 0
        status_counts = DashboardService._status_counts(db)

        low_stock_rows = db.query(Book.id, Book.title, BookDetail.quantity)\
            .join(BookDetail, BookDetail.book_id == Book.id)\
            .filter(BookDetail.quantity < config.LOW_STOCK_THRESHOLD)\
            .order_by(BookDetail.quantity.asc(), Book.title).all()
        low_stock_books = [
            LowStockBook(book_id=book_id, title=title, quantity=quantity)
            for book_id, title, quantity in low_stock_rows
        ]

        recent_order_rows = db.query(Order, User.full_name, User.email)\
            .join(User, User.id == Order.user_id)\
            .order_by(desc(Order.order_date), desc(Order.id)).limit(RECENT_ITEMS_LIMIT).all()
        recent_orders = [
            RecentOrder(
                order_id=order.id,
                customer_name=full_name,
                customer_email=email,
                total_amount=order.total_amount,
                order_status=order.order_status.value,
                order_date=order.order_date.strftime("%b %d, %Y %H:%M"),
            )
            for order, full_name, email in recent_order_rows
        ]

        recent_reviews = [
            RecentReview(
                review_id=review.id,
                book_title=review.book_title,
                user_name=review.user_name,
                rating=review.rating,
                comment=truncate_comment(review.comment),
                created_at=review.created_at.strftime("%b %d, %Y"),
            )
            for review in ReviewService.get_recent_reviews(db, RECENT_ITEMS_LIMIT)
        ]

        stats = DashboardStats(
            total_revenue=to_vnd(total_revenue),
            pending_orders_count=status_counts[OrderStatus.PENDING.value],
            total_users_count=UserService.count_users(db),
            verified_users_count=UserService.count_users(db, enabled_only=True),
            total_books_count=BookService.count_books(db),
            average_rating=ReviewService.get_overall_average_rating(db),
            new_orders_today=new_orders_today,
            order_status_distribution=status_counts,
            low_stock_books_count=len(low_stock_books),
            low_stock_books=low_stock_books,
            recent_orders=recent_orders,
            recent_reviews=recent_reviews,
            revenue_chart_data=DashboardService.get_revenue_chart_data(db, 7),
        )
        logger.info("Dashboard statistics fetched successfully")
        return stats
