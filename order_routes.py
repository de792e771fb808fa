import csv
import io
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response

from dashboard import get_order_stats
from database import get_document_by_id, get_documents, get_page, text_filter, to_naive_utc
from errors import NotFound
from ordering import delete_order, place_order, update_order, update_order_status
from schemas import OrderCreate, OrderStatus, OrderStatusUpdate, OrderType, OrderUpdate, PaymentStatus
from security import get_optional_user, require_admin

router = APIRouter(prefix="/api", tags=["orders"])

SORTABLE_FIELDS = {"created_at", "total", "status", "order_number", "order_type"}


def _date_filter(start_date: Optional[datetime], end_date: Optional[datetime]) -> Optional[dict]:
    if start_date is None and end_date is None:
        return None
    window = {}
    if start_date is not None:
        window["$gte"] = to_naive_utc(start_date)
    if end_date is not None:
        window["$lte"] = to_naive_utc(end_date)
    return window


# ===================== Public =====================

@router.post("/orders", status_code=201)
def create_order(payload: OrderCreate, user: Optional[dict] = Depends(get_optional_user)):
    order = place_order(payload, created_by=user["_id"] if user else None)
    return {"success": True, "message": "Order created successfully", "order": order}


# ===================== Admin =====================

@router.get("/orders")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    order_type: Optional[OrderType] = None,
    payment_status: Optional[PaymentStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: Optional[str] = None,
    sort_order: Literal["asc", "desc"] = "asc",
    admin: dict = Depends(require_admin),
):
    filt = {}
    if status:
        filt["status"] = status
    if order_type:
        filt["order_type"] = order_type
    if payment_status:
        filt["payment_status"] = payment_status
    window = _date_filter(start_date, end_date)
    if window:
        filt["created_at"] = window

    sort = [(sort_by, -1 if sort_order == "desc" else 1)] if sort_by in SORTABLE_FIELDS else [("created_at", -1)]
    orders, pagination = get_page("order", filt, page, limit, sort=sort)
    return {"success": True, "orders": orders, "pagination": pagination}


@router.get("/orders/stats")
def order_stats(period: Literal["week", "month", "year"] = "month", admin: dict = Depends(require_admin)):
    return {"success": True, "stats": get_order_stats(period), "period": period}


@router.get("/orders/search")
def search_orders(
    q: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    order_type: Optional[OrderType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: dict = Depends(require_admin),
):
    filt = {}
    if q and q.strip():
        filt.update(text_filter(q, ["order_number", "customer.name", "customer.email", "customer.phone"]))
    if status:
        filt["status"] = status
    if order_type:
        filt["order_type"] = order_type

    orders, pagination = get_page("order", filt, page, limit, sort=[("created_at", -1)])
    return {"success": True, "orders": orders, "total": pagination["total"], "pagination": pagination}


@router.get("/orders/export")
def export_orders(
    format: Literal["json", "csv"] = "json",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    status: Optional[OrderStatus] = None,
    admin: dict = Depends(require_admin),
):
    filt = {}
    window = _date_filter(start_date, end_date)
    if window:
        filt["created_at"] = window
    if status:
        filt["status"] = status

    orders = get_documents("order", filt, sort=[("created_at", -1)])
    if format == "json":
        return {"success": True, "orders": orders}

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerow(["Order Number", "Customer Name", "Email", "Total", "Status", "Date"])
    for o in orders:
        customer = o.get("customer") or {}
        created = o.get("created_at")
        writer.writerow([
            o.get("order_number"),
            customer.get("name"),
            customer.get("email"),
            o.get("total"),
            o.get("status"),
            created.isoformat() if created else "",
        ])
    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=orders.csv"},
    )


@router.get("/orders/{order_id}")
def get_order(order_id: str, admin: dict = Depends(require_admin)):
    order = get_document_by_id("order", order_id)
    if not order:
        raise NotFound("Order not found")
    return {"success": True, "order": order}


@router.put("/orders/{order_id}")
def edit_order(order_id: str, payload: OrderUpdate, admin: dict = Depends(require_admin)):
    order = update_order(order_id, payload, updated_by=admin["_id"])
    return {"success": True, "message": "Order updated successfully", "order": order}


@router.patch("/orders/{order_id}/status")
def change_order_status(order_id: str, payload: OrderStatusUpdate, admin: dict = Depends(require_admin)):
    order = update_order_status(order_id, payload.status, updated_by=admin["_id"])
    return {
        "success": True,
        "message": "Order status updated successfully",
        "order": {
            "id": order["_id"],
            "order_number": order["order_number"],
            "status": order["status"],
            "actual_delivery_time": order.get("actual_delivery_time"),
        },
    }


@router.delete("/orders/{order_id}")
def remove_order(order_id: str, admin: dict = Depends(require_admin)):
    delete_order(order_id)
    return {"success": True, "message": "Order deleted successfully"}
