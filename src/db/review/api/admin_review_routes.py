from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
import logging

from src.auth.security import require_admin, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError
from src.db.common.flash import flash, redirect, page_context
from src.db.review.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/reviews")
async def list_reviews(
    request: Request,
    page: int = Query(0),
    size: int = Query(20),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Toàn bộ review, mới nhất trước"""
    return page_context(request, reviews=ReviewService.get_all_reviews(db, page, size))


@router.post("/reviews/{review_id}/remove-comment")
async def remove_comment(
    request: Request,
    review_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        ReviewService.remove_review_comment(db, review_id)
        flash(request, "success", "Review comment removed. Rating has been kept.")
    except BookStoreError as e:
        flash(request, "error", e.message)
    return redirect("/admin/reviews")


@router.post("/reviews/{review_id}/delete")
async def delete_review(
    request: Request,
    review_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        ReviewService.delete_review(db, review_id)
        flash(request, "success", "Review deleted successfully")
    except BookStoreError as e:
        logger.warning("Failed to delete review %s: %s", review_id, e.message)
        flash(request, "error", e.message)
    return redirect("/admin/reviews")
