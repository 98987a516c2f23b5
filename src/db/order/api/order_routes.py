from fastapi import APIRouter, Depends, Form, Query, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import Optional
from urllib.parse import quote
import logging

from src.auth.security import get_current_principal, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError
from src.db.common.flash import flash, redirect, error_message, page_context
from src.db.cart.services.cart_service import CartService
from src.db.order.models.order_models import PaymentMethod
from src.db.order.models.order_schemas import CheckoutRequest
from src.db.order.services.order_service import OrderService, parse_selected_ids
from src.db.user.services.user_service import UserService
from src.utils.currency import format_vnd

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/orders/checkout")
async def checkout_page(
    request: Request,
    selected: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Trang checkout: item được chọn (hoặc toàn bộ giỏ) + địa chỉ mặc định"""
    items = CartService.get_items_by_ids(db, principal.user_id, parse_selected_ids(selected))
    if not items:
        flash(request, "error", "Cart is empty")
        return redirect("/cart")

    user = UserService.get_user(db, principal.user_id)
    total = sum(item.subtotal for item in items)
    return page_context(
        request,
        items=items,
        selected_cart_item_ids=selected,
        total_amount=total,
        total_formatted=format_vnd(total),
        shipping_address=user.address,
        user_email=principal.email,
        payment_methods=[method.value for method in PaymentMethod],
    )


@router.post("/orders/checkout")
async def process_checkout(
    request: Request,
    shipping_address: str = Form(""),
    payment_method: str = Form("COD"),
    selected_cart_item_ids: Optional[str] = Form(None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Đặt hàng"""
    try:
        checkout = CheckoutRequest(
            shipping_address=shipping_address,
            payment_method=payment_method,
            selected_cart_item_ids=selected_cart_item_ids,
        )
        order = OrderService.create_order_from_cart(db, principal.user_id, checkout)
    except (BookStoreError, ValidationError) as e:
        logger.warning("Checkout failed for user %s: %s", principal.user_id, error_message(e))
        flash(request, "error", error_message(e))
        if selected_cart_item_ids:
            return redirect(f"/orders/checkout?selected={quote(selected_cart_item_ids)}")
        return redirect("/orders/checkout")

    flash(request, "success", f"Order placed successfully! Order ID: {order.id}")
    if order.payment_method == PaymentMethod.QR:
        return redirect(f"/orders/{order.id}?showQR=true")
    return redirect(f"/orders/{order.id}")


@router.get("/orders")
async def order_history(
    request: Request,
    page: int = Query(0),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Lịch sử đơn hàng"""
    return page_context(request, orders=OrderService.get_user_orders(db, principal.user_id, page))


@router.get("/orders/{order_id}")
async def order_detail(
    request: Request,
    order_id: int,
    show_qr: bool = Query(False, alias="showQR"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Chi tiết đơn hàng của chính user"""
    order = OrderService.get_order_for_user(db, order_id, principal.user_id)
    return page_context(request, order=order, show_qr=show_qr and order.qr_code_url is not None)


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    request: Request,
    order_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Hủy đơn PENDING"""
    try:
        OrderService.cancel_order(db, order_id, principal.user_id)
        flash(request, "success", "Order cancelled successfully")
    except BookStoreError as e:
        logger.warning("Cancel order %s failed: %s", order_id, e.message)
        flash(request, "error", e.message)
    return redirect(f"/orders/{order_id}")
