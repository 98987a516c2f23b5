from pydantic import BaseModel
from typing import Optional, List, Dict
from datetime import date
from decimal import Decimal

# Dashboard schemas
class LowStockBook(BaseModel):
    book_id: int
    title: str
    quantity: int

class RecentOrder(BaseModel):
    order_id: int
    customer_name: str
    customer_email: str
    total_amount: Decimal
    order_status: str
    order_date: str

class RecentReview(BaseModel):
    review_id: int
    book_title: str
    user_name: str
    rating: int
    comment: Optional[str] = None
    created_at: str

class ChartDataPoint(BaseModel):
    label: str
    value: Decimal

class DashboardStats(BaseModel):
    total_revenue: Decimal
    pending_orders_count: int
    total_users_count: int
    verified_users_count: int
    total_books_count: int
    average_rating: Optional[float] = None
    new_orders_today: int
    order_status_distribution: Dict[str, int]
    low_stock_books_count: int
    low_stock_books: List[LowStockBook] = []
    recent_orders: List[RecentOrder] = []
    recent_reviews: List[RecentReview] = []
    revenue_chart_data: List[ChartDataPoint] = []

# Report schemas
class TopBook(BaseModel):
    book_id: int
    title: str
    quantity: int
    revenue: Decimal

class AdminReport(BaseModel):
    start_date: date
    end_date: date
    total_revenue: Decimal
    total_orders: int
    average_order_value: Decimal
    top_books_by_quantity: List[TopBook] = []
    top_books_by_revenue: List[TopBook] = []
