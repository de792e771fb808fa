from typing import Literal

from fastapi import APIRouter, Depends, Query

import dashboard
from security import require_admin

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"], dependencies=[Depends(require_admin)])


@router.get("/stats")
def stats():
    return {"success": True, "data": dashboard.get_stats()}


@router.get("/sales")
def sales(period: Literal["6months", "3months", "1year"] = "6months"):
    return {"success": True, "data": dashboard.get_sales_data(period)}


@router.get("/sales/last30days")
def sales_last_30_days():
    return {"success": True, "data": dashboard.get_last_30_days_sales()}


@router.get("/products/distribution")
def product_distribution():
    return {"success": True, "data": dashboard.get_category_distribution()}


@router.get("/orders/recent")
def recent_orders(limit: int = Query(10, ge=1, le=100)):
    return {"success": True, "data": dashboard.get_recent_orders(limit)}


@router.get("/products/top")
def top_products(limit: int = Query(10, ge=1, le=100)):
    return {"success": True, "data": dashboard.get_top_products(limit)}
