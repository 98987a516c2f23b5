from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from datetime import date, timedelta
from typing import Optional
import logging

from src.auth.security import require_admin, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError, InvalidInputError
from src.db.common.flash import page_context
from src.db.book.services.book_service import BookService
from src.db.report.services.dashboard_service import DashboardService
from src.db.report.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_REPORT_DAYS = 7


def _parse_date(raw: Optional[str], default: date) -> date:
    if raw is None or not raw.strip():
        return default
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise InvalidInputError(f"Invalid date: {raw}")


@router.get("/dashboard")
async def dashboard(request: Request, admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    """Dashboard admin"""
    return page_context(request, stats=DashboardService.get_dashboard_stats(db))


@router.get("/reports")
async def reports(
    request: Request,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    book_id: Optional[int] = Query(None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Báo cáo doanh thu theo khoảng ngày (mặc định 7 ngày gần nhất)"""
    today = date.today()
    report = None
    error = None
    try:
        start_date = _parse_date(start, today - timedelta(days=DEFAULT_REPORT_DAYS - 1))
        end_date = _parse_date(end, today)
        report = ReportService.get_report(db, start_date, end_date, book_id)
    except BookStoreError as e:
        logger.warning("Failed to build report: %s", e.message)
        error = e.message

    return page_context(
        request,
        report=report,
        error=error,
        start=start,
        end=end,
        book_id=book_id,
        books=BookService.get_books(db, 0, 50, sort="title").items,
    )
