from fastapi import APIRouter, Depends, Form, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import Optional
import logging

from src.auth.security import get_current_principal, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError
from src.db.common.flash import flash, redirect, error_message
from src.db.review.models.review_schemas import ReviewCreate
from src.db.review.services.review_service import ReviewService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/reviews/submit")
async def submit_review(
    request: Request,
    book_id: int = Form(...),
    rating: int = Form(...),
    comment: Optional[str] = Form(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Viết review cho sách"""
    try:
        review_in = ReviewCreate(rating=rating, comment=comment)
        ReviewService.create_review(db, principal.user_id, book_id, review_in)
        flash(request, "success", "Thank you for your review!")
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
    return redirect(f"/books/{book_id}")


@router.post("/reviews/{review_id}/update")
async def update_review(
    request: Request,
    review_id: int,
    book_id: int = Form(...),
    rating: int = Form(...),
    comment: Optional[str] = Form(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Sửa review của chính mình"""
    try:
        review_in = ReviewCreate(rating=rating, comment=comment)
        ReviewService.update_review(db, review_id, principal.user_id, review_in)
        flash(request, "success", "Your review has been updated.")
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
    return redirect(f"/books/{book_id}")


@router.post("/reviews/{review_id}/like")
async def like_review(
    request: Request,
    review_id: int,
    book_id: int = Form(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Like / bỏ like review"""
    try:
        ReviewService.like_review(db, review_id, principal.user_id)
    except BookStoreError as e:
        flash(request, "error", e.message)
    return redirect(f"/books/{book_id}")


@router.post("/reviews/{review_id}/dislike")
async def dislike_review(
    request: Request,
    review_id: int,
    book_id: int = Form(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Dislike / bỏ dislike review"""
    try:
        ReviewService.dislike_review(db, review_id, principal.user_id)
    except BookStoreError as e:
        flash(request, "error", e.message)
    return redirect(f"/books/{book_id}")
