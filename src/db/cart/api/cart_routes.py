from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from urllib.parse import quote
import logging

from src.auth.security import get_current_principal, get_optional_principal, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError
from src.db.common.flash import flash, redirect, page_context
from src.db.cart.services.cart_service import CartService

logger = logging.getLogger(__name__)

router = APIRouter()


def _login_redirect(request: Request, message: str, book_id: int):
    flash(request, "error", message)
    return redirect(f"/login?redirect={quote(f'/books/{book_id}')}")


@router.get("/cart")
async def view_cart(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Xem giỏ hàng"""
    cart = CartService.get_or_create_cart(db, principal.user_id)
    return page_context(request, cart=cart, cart_count=cart.total_items)


@router.get("/cart/count")
async def cart_count(
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Tổng số lượng sách trong giỏ (0 nếu chưa đăng nhập)"""
    user_id = principal.user_id if principal else None
    return {"count": CartService.get_cart_item_count(db, user_id)}


@router.post("/cart/add")
async def add_to_cart(
    request: Request,
    book_id: int = Form(...),
    quantity: int = Form(1),
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Thêm sách vào giỏ"""
    if principal is None:
        return _login_redirect(request, "Please login to add items to cart", book_id)

    try:
        CartService.add_to_cart(db, principal.user_id, book_id, quantity)
        flash(request, "success", "Book added to cart successfully!")
    except BookStoreError as e:
        logger.warning("Failed to add to cart: %s", e.message)
        flash(request, "error", e.message)
    return redirect(f"/books/{book_id}")


@router.post("/cart/buy-now")
async def buy_now(
    request: Request,
    book_id: int = Form(...),
    quantity: int = Form(1),
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Mua ngay: thêm vào giỏ rồi chuyển tới checkout"""
    if principal is None:
        return _login_redirect(request, "Please login to purchase items", book_id)

    try:
        CartService.add_to_cart(db, principal.user_id, book_id, quantity)
    except BookStoreError as e:
        logger.warning("Buy now failed: %s", e.message)
        flash(request, "error", e.message)
        return redirect(f"/books/{book_id}")
    return redirect("/orders/checkout")


@router.post("/cart/update/{cart_item_id}")
async def update_cart_item(
    request: Request,
    cart_item_id: int,
    quantity: int = Form(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Cập nhật số lượng item"""
    try:
        CartService.update_cart_item_quantity(db, principal.user_id, cart_item_id, quantity)
        flash(request, "success", "Cart updated successfully!")
    except BookStoreError as e:
        logger.warning("Failed to update cart: %s", e.message)
        flash(request, "error", e.message)
    return redirect("/cart")


@router.post("/cart/remove/{cart_item_id}")
async def remove_from_cart(
    request: Request,
    cart_item_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Xóa item khỏi giỏ"""
    try:
        CartService.remove_from_cart(db, principal.user_id, cart_item_id)
        flash(request, "success", "Item removed from cart")
    except BookStoreError as e:
        logger.warning("Failed to remove from cart: %s", e.message)
        flash(request, "error", e.message)
    return redirect("/cart")


@router.post("/cart/remove-selected")
async def remove_selected(
    request: Request,
    cart_item_ids: List[int] = Form([]),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Xóa nhiều item đã chọn"""
    removed = CartService.remove_selected(db, principal.user_id, cart_item_ids)
    if removed > 0:
        flash(request, "success", f"{removed} item(s) removed from cart")
    else:
        flash(request, "error", "Failed to remove selected items")
    return redirect("/cart")
