from fastapi import APIRouter, Depends, Form, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from src.auth.security import require_admin, Principal
from src.db.common.database_connection import get_db
from src.db.common.exceptions import BookStoreError, InvalidInputError
from src.db.common.flash import flash, redirect, page_context
from src.db.order.models.order_models import OrderStatus, PaymentStatus
from src.db.order.services.order_service import OrderService, PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_enum(enum_cls, raw: Optional[str]):
    """'' hoặc None -> None (không lọc)"""
    if raw is None or not raw.strip():
        return None
    try:
        return enum_cls(raw.strip().upper())
    except ValueError:
        raise InvalidInputError(f"Invalid status: {raw}")


# ---- Orders ----

@router.get("/orders")
async def list_orders(
    request: Request,
    page: int = Query(0),
    size: int = Query(10),
    status: Optional[str] = Query(None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Danh sách đơn hàng, lọc theo trạng thái"""
    order_status = _parse_enum(OrderStatus, status)
    return page_context(
        request,
        orders=OrderService.get_all_orders(db, page, size, order_status),
        status=order_status,
        statuses=[s.value for s in OrderStatus],
    )


@router.get("/orders/{order_id}")
async def view_order(
    request: Request,
    order_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return page_context(request, order=OrderService.get_order(db, order_id), statuses=[s.value for s in OrderStatus])


@router.post("/orders/{order_id}/status")
async def update_order_status(
    request: Request,
    order_id: int,
    status: str = Form(...),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Chuyển trạng thái đơn hàng"""
    try:
        new_status = _parse_enum(OrderStatus, status)
        if new_status is None:
            raise InvalidInputError("Status is required")
        OrderService.update_order_status(db, order_id, new_status)
        flash(request, "success", f"Order status updated to {new_status.value}")
    except BookStoreError as e:
        logger.warning("Failed to update order %s status: %s", order_id, e.message)
        flash(request, "error", e.message)
    return redirect(f"/admin/orders/{order_id}")


# ---- Payments ----

@router.get("/payments")
async def list_payments(
    request: Request,
    page: int = Query(0),
    size: int = Query(20),
    status: Optional[str] = Query(None),
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Danh sách thanh toán"""
    payment_status = _parse_enum(PaymentStatus, status)
    return page_context(
        request,
        payments=PaymentService.list_payments(db, page, size, payment_status),
        status=payment_status,
        statuses=[s.value for s in PaymentStatus],
    )


@router.get("/payments/{order_id}")
async def view_payment(
    request: Request,
    order_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return page_context(request, order=OrderService.get_order(db, order_id))


@router.post("/payments/{order_id}/mark-paid")
async def mark_paid(
    request: Request,
    order_id: int,
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Xác nhận đã giao hàng và thu tiền"""
    try:
        PaymentService.mark_paid(db, order_id)
        flash(request, "success", "Payment marked as paid")
    except BookStoreError as e:
        logger.warning("Failed to mark payment as paid: %s", e.message)
        flash(request, "error", e.message)
    return redirect(f"/admin/payments/{order_id}")
