from fastapi import APIRouter, Depends, Form, Query, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from src.auth.security import require_admin, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError
from src.db.common.flash import flash, redirect, error_message, page_context
from src.db.book.models.book_schemas import BookCreate, BookUpdate, GenreCreate
from src.db.book.services.book_service import BookService
from src.db.book.services.genre_service import GenreService

logger = logging.getLogger(__name__)

router = APIRouter()


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


class BookForm:
    """Các field form sách dùng chung cho thêm và sửa"""

    def __init__(
        self,
        title: str = Form(...),
        author: str = Form(...),
        price: str = Form(...),
        quantity: int = Form(...),
        isbn: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        image_url: Optional[str] = Form(None),
        publisher: Optional[str] = Form(None),
        publish_date: Optional[str] = Form(None),
        genre_ids: List[int] = Form([]),
    ):
        self.data = {
            "title": title,
            "author": author,
            "price": price.strip(),
            "quantity": quantity,
            "isbn": isbn,
            "description": _blank_to_none(description),
            "image_url": _blank_to_none(image_url),
            "publisher": _blank_to_none(publisher),
            "publish_date": _blank_to_none(publish_date),
            "genre_ids": genre_ids,
        }


# ---- Books ----

@router.get("/books")
async def list_books(
    request: Request,
    page: int = Query(0),
    size: int = Query(20),
    keyword: Optional[str] = Query(None),
    genre_id: Optional[int] = Query(None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Danh sách sách cho admin"""
    return page_context(
        request,
        books=BookService.get_books(db, page, size, keyword, genre_id),
        genres=GenreService.get_all_genres(db),
        keyword=keyword,
        genre_id=genre_id,
    )


@router.get("/books/low-stock")
async def low_stock_books(
    request: Request,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Sách sắp hết hàng"""
    return page_context(request, books=BookService.get_low_stock_books(db))


@router.get("/books/new")
async def new_book_form(request: Request, admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return page_context(request, genres=GenreService.get_all_genres(db))


@router.post("/books/new")
async def create_book(
    request: Request,
    form: BookForm = Depends(),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Thêm sách mới"""
    try:
        book = BookService.create_book(db, BookCreate(**form.data))
    except (BookStoreError, ValidationError) as e:
        logger.warning("Failed to create book: %s", error_message(e))
        flash(request, "error", error_message(e))
        return redirect("/admin/books/new")

    flash(request, "success", f"Book '{book.title}' added successfully!")
    return redirect("/admin/books")


@router.get("/books/{book_id}")
async def view_book(
    request: Request,
    book_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return page_context(request, book=BookService.get_book(db, book_id))


@router.get("/books/{book_id}/edit")
async def edit_book_form(
    request: Request,
    book_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return page_context(request, book=BookService.get_book(db, book_id), genres=GenreService.get_all_genres(db))


@router.post("/books/{book_id}/edit")
async def update_book(
    request: Request,
    book_id: int,
    form: BookForm = Depends(),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Cập nhật sách (kể cả danh sách thể loại)"""
    try:
        book = BookService.update_book(db, book_id, BookUpdate(**form.data))
    except (BookStoreError, ValidationError) as e:
        logger.warning("Failed to update book %s: %s", book_id, error_message(e))
        flash(request, "error", error_message(e))
        return redirect(f"/admin/books/{book_id}/edit")

    flash(request, "success", f"Book '{book.title}' updated successfully!")
    return redirect("/admin/books")


@router.post("/books/{book_id}/stock")
async def update_stock(
    request: Request,
    book_id: int,
    quantity: int = Form(...),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Đặt lại tồn kho"""
    try:
        book = BookService.update_book_stock(db, book_id, quantity)
        flash(request, "success", f"Stock for '{book.title}' updated to {book.quantity}")
    except BookStoreError as e:
        flash(request, "error", e.message)
    return redirect("/admin/books/low-stock")


@router.post("/books/{book_id}/delete")
async def delete_book(
    request: Request,
    book_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Xóa sách"""
    try:
        book = BookService.get_book(db, book_id)
        BookService.delete_book(db, book_id)
        flash(request, "success", f"Book '{book.title}' deleted successfully!")
    except BookStoreError as e:
        logger.warning("Failed to delete book %s: %s", book_id, e.message)
        flash(request, "error", f"Failed to delete book: {e.message}")
    return redirect("/admin/books")


# ---- Genres ----

@router.get("/genres")
async def list_genres(request: Request, admin: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    """Danh sách thể loại kèm số sách"""
    return page_context(request, genres=GenreService.get_all_genres(db))


@router.post("/genres/new")
async def create_genre(
    request: Request,
    name: str = Form(...),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        genre = GenreService.create_genre(db, GenreCreate(name=name))
        flash(request, "success", f"Genre '{genre.name}' added successfully!")
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
    return redirect("/admin/genres")


@router.get("/genres/{genre_id}/edit")
async def edit_genre_form(
    request: Request,
    genre_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return page_context(request, genre=GenreService.get_genre(db, genre_id))


@router.post("/genres/{genre_id}/edit")
async def update_genre(
    request: Request,
    genre_id: int,
    name: str = Form(...),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        genre = GenreService.update_genre(db, genre_id, GenreCreate(name=name))
    except (BookStoreError, ValidationError) as e:
        flash(request, "error", error_message(e))
        return redirect(f"/admin/genres/{genre_id}/edit")

    flash(request, "success", f"Genre '{genre.name}' updated successfully!")
    return redirect("/admin/genres")


@router.post("/genres/{genre_id}/delete")
async def delete_genre(
    request: Request,
    genre_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Xóa thể loại (không được còn sách)"""
    try:
        genre = GenreService.get_genre(db, genre_id)
        GenreService.delete_genre(db, genre_id)
        flash(request, "success", f"Genre '{genre.name}' deleted successfully!")
    except BookStoreError as e:
        flash(request, "error", e.message)
    return redirect("/admin/genres")
