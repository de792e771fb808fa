"""
Order Placement

Turns a submitted cart into a persisted order. Every line is validated
against the live catalogue before any stock moves; stock is then taken
with atomic conditional updates and handed back if anything later fails,
so callers see either a complete order or no change at all.
"""

import logging
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from database import (
    create_document,
    delete_and_return,
    get_document_by_id,
    release_stock,
    reserve_stock,
    update_and_return,
    utcnow,
)
from errors import Conflict, InsufficientStock, NotFound, ProductInactive, ValidationFailed
from schemas import Order, OrderCreate, OrderItem, OrderItemIn, OrderUpdate
from settings import settings

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


def compute_totals(items: Iterable[OrderItem], order_type: str) -> Dict[str, float]:
    subtotal = sum(item.subtotal for item in items)
    tax = subtotal * settings.tax_rate
    delivery_fee = settings.delivery_fee if order_type == "delivery" else 0.0
    return {
        "subtotal": subtotal,
        "tax": tax,
        "delivery_fee": delivery_fee,
        "total": subtotal + tax + delivery_fee,
    }


def generate_order_number() -> str:
    return f"ORD-{utcnow():%Y%m%d}-{str(ObjectId())[-6:].upper()}"


def _line_item(product: dict, item: OrderItemIn) -> OrderItem:
    catalog_price = float(product.get("price", 0))
    price = item.price
    if item.price != catalog_price:
        if settings.trust_client_prices:
            logger.warning(
                "Client price %.2f differs from catalogue price %.2f for product %s",
                item.price, catalog_price, product["_id"],
            )
        else:
            price = catalog_price
    return OrderItem(
        product_id=product["_id"],
        name=product["name"],
        category=product.get("category"),
        price=price,
        quantity=item.quantity,
        subtotal=price * item.quantity,
        customizations=item.customizations,
    )


def _quantities(items: Iterable[dict]) -> Dict[str, int]:
    wanted: Dict[str, int] = {}
    for item in items:
        wanted[item["product_id"]] = wanted.get(item["product_id"], 0) + item["quantity"]
    return wanted


def _release_all(reserved: Dict[str, int]) -> None:
    for product_id, quantity in reserved.items():
        if not release_stock(product_id, quantity):
            logger.warning("Could not return %d units to missing product %s", quantity, product_id)


def _reserve_all(wanted: Dict[str, int], names: Dict[str, str]) -> None:
    """Take stock for every product or for none of them."""
    reserved: Dict[str, int] = {}
    for product_id, quantity in wanted.items():
        if reserve_stock(product_id, quantity) is None:
            _release_all(reserved)
            name = names.get(product_id, product_id)
            product = get_document_by_id("product", product_id)
            if product is None:
                raise NotFound(f"Product not found: {name}")
            if not product.get("is_active", True):
                raise ProductInactive(f"Product is not available: {name}")
            raise InsufficientStock(f"Insufficient stock for {name}. Available: {product.get('stock', 0)}")
        reserved[product_id] = quantity


def _insert_order(order: Order) -> str:
    for attempt in range(ORDER_NUMBER_ATTEMPTS):
        try:
            return create_document("order", order)
        except DuplicateKeyError:
            logger.warning("Order number %s already taken, retrying", order.order_number)
            order.order_number = generate_order_number()
    raise Conflict("Could not allocate a unique order number")


def place_order(payload: OrderCreate, created_by: Optional[str] = None) -> dict:
    lines: List[OrderItem] = []
    wanted: Dict[str, int] = {}
    names: Dict[str, str] = {}

    for item in payload.items:
        product = get_document_by_id("product", item.product)
        if not product:
            raise NotFound(f"Product not found: {item.product}")
        if not product.get("is_active", True):
            raise ProductInactive(f"Product is not available: {product['name']}")

        product_id = product["_id"]
        needed = wanted.get(product_id, 0) + item.quantity
        stock = product.get("stock", 0)
        if stock < needed:
            raise InsufficientStock(f"Insufficient stock for {product['name']}. Available: {stock}")

        wanted[product_id] = needed
        names[product_id] = product["name"]
        lines.append(_line_item(product, item))

    _reserve_all(wanted, names)
    try:
        order = Order(
            order_number=generate_order_number(),
            customer=payload.customer,
            items=lines,
            order_type=payload.order_type,
            payment_method=payload.payment_method,
            delivery_address=payload.delivery_address,
            special_instructions=payload.special_instructions,
            requested_delivery_time=payload.requested_delivery_time,
            created_by=created_by,
            **compute_totals(lines, payload.order_type),
        )
        order_id = _insert_order(order)
    except Exception:
        _release_all(wanted)
        raise

    logger.info("Order %s placed: %d lines, total %.2f", order.order_number, len(lines), order.total)
    return get_document_by_id("order", order_id)


def delete_order(order_id: str) -> dict:
    """Remove an order; stock comes back unless the order was already cancelled."""
    order = delete_and_return("order", order_id)
    if not order:
        raise NotFound("Order not found")
    if order.get("status") != "cancelled":
        _release_all(_quantities(order.get("items", [])))
        logger.info("Order %s deleted, stock restored", order.get("order_number"))
    return order


def update_order_status(order_id: str, status: str, updated_by: Optional[str] = None) -> dict:
    """Set any status. Delivered stamps the delivery time; cancelling frees
    stock and reviving a cancelled order takes it again."""
    order = get_document_by_id("order", order_id)
    if not order:
        raise NotFound("Order not found")

    previous = order.get("status")
    wanted = _quantities(order.get("items", []))
    reviving = previous == "cancelled" and status != "cancelled"
    cancelling = status == "cancelled" and previous != "cancelled"

    if reviving:
        _reserve_all(wanted, {i["product_id"]: i["name"] for i in order.get("items", [])})

    changes = {"status": status, "updated_by": updated_by}
    if status == "delivered":
        changes["actual_delivery_time"] = utcnow()

    updated = update_and_return("order", order_id, {"$set": changes}, match={"status": previous})
    if updated is None:
        if reviving:
            _release_all(wanted)
        raise Conflict("Order was modified by another request, please retry")

    if cancelling:
        _release_all(wanted)
        logger.info("Order %s cancelled, stock restored", order.get("order_number"))
    return updated


def update_order(order_id: str, payload: OrderUpdate, updated_by: Optional[str] = None) -> dict:
    order = get_document_by_id("order", order_id)
    if not order:
        raise NotFound("Order not found")

    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    order_type = changes.get("order_type", order.get("order_type"))
    if order_type == "delivery":
        if not (changes.get("delivery_address") or order.get("delivery_address")):
            raise ValidationFailed(
                errors=[{"field": "delivery_address", "message": "delivery_address is required for delivery orders"}]
            )
    else:
        changes["delivery_address"] = None

    if "order_type" in changes:
        items = [OrderItem(**i) for i in order.get("items", [])]
        changes.update(compute_totals(items, order_type))

    changes["updated_by"] = updated_by
    updated = update_and_return("order", order_id, {"$set": changes})
    if updated is None:
        raise NotFound("Order not found")
    return updated
