"""
Dashboard Aggregation

Read-only rollups over the order collection. The bucketing helpers are
plain functions over order dicts; the get_* functions fetch the window
and shape the response. All windows are UTC.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from database import count_documents, get_documents, to_naive_utc, utcnow

NO_SALES = "No sales yet"
CHART_COLORS = ["#8884d8", "#82ca9d", "#ffc658", "#ff7300", "#8dd1e1", "#d084d0"]
PERIODS = ("week", "month", "year", "6months", "3months", "1year")


def month_start(now: datetime, offset: int = 0) -> datetime:
    """First instant of the month `offset` months away from `now`'s month."""
    index = now.year * 12 + (now.month - 1) + offset
    return datetime(index // 12, index % 12 + 1, 1)


def period_start(period: Optional[str], now: datetime, default: str = "month") -> datetime:
    period = period if period in PERIODS else default
    if period == "week":
        return now - timedelta(days=7)
    if period == "year":
        return datetime(now.year, 1, 1)
    if period == "6months":
        return month_start(now, -6)
    if period == "3months":
        return month_start(now, -3)
    if period == "1year":
        return month_start(now, -12)
    return month_start(now)


def percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def total_revenue(orders: Iterable[dict]) -> float:
    return sum(o.get("total", 0) for o in orders)


def best_seller(orders: Iterable[dict]) -> Tuple[str, int]:
    """Product name with the most units sold; the first name seen wins a tie."""
    units: Dict[str, int] = {}
    for order in orders:
        for item in order.get("items", []):
            units[item["name"]] = units.get(item["name"], 0) + item.get("quantity", 0)

    name, best = NO_SALES, 0
    for candidate, sold in units.items():
        if sold > best:
            name, best = candidate, sold
    return name, best


def daily_sales(orders: Iterable[dict], now: datetime, days: int = 30) -> List[dict]:
    totals: Dict[str, float] = {}
    for order in orders:
        key = to_naive_utc(order["created_at"]).date().isoformat()
        totals[key] = totals.get(key, 0) + order.get("total", 0)

    today = now.date()
    series = []
    for back in range(days - 1, -1, -1):
        key = (today - timedelta(days=back)).isoformat()
        series.append({"day": f"Day {days - back}", "date": key, "sales": round(totals.get(key, 0))})
    return series


def monthly_sales(orders: Iterable[dict], start: datetime, now: datetime) -> List[dict]:
    buckets: Dict[str, dict] = {}
    cursor = month_start(start)
    last = month_start(now)
    while cursor <= last:
        buckets[cursor.strftime("%Y-%m")] = {"name": cursor.strftime("%b %Y"), "sales": 0.0, "orders": 0}
        cursor = month_start(cursor, 1)

    for order in orders:
        bucket = buckets.get(to_naive_utc(order["created_at"]).strftime("%Y-%m"))
        if bucket is None:
            continue
        bucket["sales"] += order.get("total", 0)
        bucket["orders"] += 1

    return [
        {"name": b["name"], "month": key, "sales": round(b["sales"]), "orders": b["orders"]}
        for key, b in buckets.items()
    ]


def category_distribution(orders: Iterable[dict]) -> List[dict]:
    stats: Dict[str, dict] = {}
    for order in orders:
        for item in order.get("items", []):
            entry = stats.setdefault(item.get("category") or "Other", {"value": 0.0, "count": 0})
            entry["value"] += item.get("subtotal", 0)
            entry["count"] += item.get("quantity", 0)

    return [
        {"name": name, "value": round(s["value"]), "count": s["count"], "color": CHART_COLORS[i % len(CHART_COLORS)]}
        for i, (name, s) in enumerate(stats.items())
    ]


def top_products(orders: Iterable[dict], limit: int = 10) -> List[dict]:
    stats: Dict[str, dict] = {}
    for order in orders:
        for item in order.get("items", []):
            entry = stats.setdefault(item["name"], {"name": item["name"], "quantity": 0, "revenue": 0.0})
            entry["quantity"] += item.get("quantity", 0)
            entry["revenue"] += item.get("subtotal", 0)

    ranked = sorted(stats.values(), key=lambda s: s["quantity"], reverse=True)[:limit]
    return [{**s, "revenue": round(s["revenue"])} for s in ranked]


def order_breakdown(orders: List[dict]) -> dict:
    revenue = total_revenue(orders)
    stats = {
        "total_orders": len(orders),
        "total_revenue": revenue,
        "average_order_value": revenue / len(orders) if orders else 0,
        "status_breakdown": {},
        "order_type_breakdown": {},
        "payment_method_breakdown": {},
    }
    for order in orders:
        for field, key in (("status", "status_breakdown"), ("order_type", "order_type_breakdown"),
                           ("payment_method", "payment_method_breakdown")):
            value = order.get(field)
            stats[key][value] = stats[key].get(value, 0) + 1
    return stats


# Queries

def _orders(start: datetime, end: Optional[datetime] = None, include_cancelled: bool = False) -> List[dict]:
    window = {"$gte": start}
    if end is not None:
        window["$lt"] = end
    filt = {"created_at": window}
    if not include_cancelled:
        filt["status"] = {"$ne": "cancelled"}
    return get_documents("order", filt, sort=[("created_at", 1)])


def _now(now: Optional[datetime]) -> datetime:
    return to_naive_utc(now) if now is not None else utcnow()


def get_stats(now: Optional[datetime] = None) -> dict:
    now = _now(now)
    this_month = month_start(now)
    last_month = month_start(now, -1)

    current = _orders(this_month)
    previous = _orders(last_month, this_month)

    revenue = total_revenue(current)
    new_customers = count_documents("user", {"role": "customer", "created_at": {"$gte": this_month}})
    previous_customers = count_documents(
        "user", {"role": "customer", "created_at": {"$gte": last_month, "$lt": this_month}}
    )
    seller, seller_units = best_seller(current)

    return {
        "total_revenue": revenue,
        "revenue_growth": percent_change(revenue, total_revenue(previous)),
        "total_orders": len(current),
        "orders_growth": percent_change(len(current), len(previous)),
        "new_customers": new_customers,
        "customers_growth": percent_change(new_customers, previous_customers),
        "best_seller": seller,
        "best_seller_units": seller_units,
    }


def get_sales_data(period: Optional[str] = None, now: Optional[datetime] = None) -> List[dict]:
    now = _now(now)
    start = period_start(period, now, default="6months")
    return monthly_sales(_orders(start), start, now)


def get_last_30_days_sales(now: Optional[datetime] = None) -> List[dict]:
    now = _now(now)
    start = datetime.combine(now.date() - timedelta(days=29), datetime.min.time())
    return daily_sales(_orders(start), now, days=30)


def get_category_distribution(now: Optional[datetime] = None) -> List[dict]:
    now = _now(now)
    return category_distribution(_orders(now - timedelta(days=30)))


def get_top_products(limit: int = 10, now: Optional[datetime] = None) -> List[dict]:
    now = _now(now)
    return top_products(_orders(now - timedelta(days=30)), limit)


def get_recent_orders(limit: int = 10) -> List[dict]:
    projection = {"order_number": 1, "customer": 1, "total": 1, "status": 1, "created_at": 1}
    return get_documents("order", {}, limit=limit, sort=[("created_at", -1)], projection=projection)


def get_order_stats(period: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    now = _now(now)
    return order_breakdown(_orders(period_start(period, now), include_cancelled=True))
