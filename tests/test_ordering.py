"""Order placement, stock reservation and status transitions."""
import re

import pytest
from bson import ObjectId

import ordering
from database import count_documents, delete_and_return, get_document_by_id, update_document
from errors import Conflict, InsufficientStock, NotFound, ProductInactive, ValidationFailed
from ordering import compute_totals, delete_order, place_order, update_order, update_order_status
from schemas import OrderItem, OrderUpdate
from settings import settings


def _stock(product_id):
    return get_document_by_id("product", product_id)["stock"]


def test_compute_totals_pickup():
    items = [OrderItem(product_id="p1", name="Fruit Tart", price=50.0, quantity=2, subtotal=100.0)]
    totals = compute_totals(items, "pickup")
    assert totals["subtotal"] == pytest.approx(100.0)
    assert totals["tax"] == pytest.approx(8.0)
    assert totals["delivery_fee"] == 0.0
    assert totals["total"] == pytest.approx(108.0)


def test_compute_totals_delivery_adds_fee():
    items = [OrderItem(product_id="p1", name="Fruit Tart", price=50.0, quantity=2, subtotal=100.0)]
    totals = compute_totals(items, "delivery")
    assert totals["delivery_fee"] == pytest.approx(5.0)
    assert totals["total"] == pytest.approx(113.0)
    assert totals["total"] == totals["subtotal"] + totals["tax"] + totals["delivery_fee"]


def test_place_order_reserves_stock(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))

    product = get_document_by_id("product", pid)
    assert product["stock"] == 7
    assert product["sales_count"] == 3
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert re.match(r"^ORD-\d{8}-[0-9A-F]{6}$", order["order_number"])
    assert order["items"][0]["name"] == "Sourdough Loaf"
    assert order["items"][0]["category"] == "Bread"
    assert order["total"] == pytest.approx(3 * 6.5 * 1.08)


def test_insufficient_stock_leaves_everything_untouched(make_product, make_cart):
    pid = make_product(stock=2)
    with pytest.raises(InsufficientStock, match="Available: 2"):
        place_order(make_cart((pid, 5, 6.5)))
    assert _stock(pid) == 2
    assert count_documents("order") == 0


def test_failing_line_does_not_consume_earlier_lines(make_product, make_cart):
    bread = make_product(stock=10)
    cake = make_product(name="Chocolate Cake", category="Cakes", price=25.99, stock=1)
    with pytest.raises(InsufficientStock, match="Chocolate Cake"):
        place_order(make_cart((bread, 3, 6.5), (cake, 2, 25.99)))
    assert _stock(bread) == 10
    assert _stock(cake) == 1


def test_repeated_product_lines_are_checked_together(make_product, make_cart):
    pid = make_product(stock=4)
    with pytest.raises(InsufficientStock):
        place_order(make_cart((pid, 3, 6.5), (pid, 2, 6.5)))
    assert _stock(pid) == 4


def test_reserve_all_hands_back_partial_reservations(make_product):
    bread = make_product(stock=10)
    cake = make_product(name="Chocolate Cake", stock=1)
    with pytest.raises(InsufficientStock):
        ordering._reserve_all({bread: 2, cake: 5}, {bread: "Sourdough Loaf", cake: "Chocolate Cake"})
    assert _stock(bread) == 10
    assert _stock(cake) == 1


def test_failed_insert_returns_stock(make_product, make_cart, monkeypatch):
    pid = make_product(stock=10)

    def broken_insert(order):
        raise RuntimeError("write failed")

    monkeypatch.setattr(ordering, "_insert_order", broken_insert)
    with pytest.raises(RuntimeError):
        place_order(make_cart((pid, 4, 6.5)))
    assert _stock(pid) == 10


def test_inactive_product_is_rejected(make_product, make_cart):
    pid = make_product(is_active=False)
    with pytest.raises(ProductInactive, match="Sourdough Loaf"):
        place_order(make_cart((pid, 1, 6.5)))
    assert _stock(pid) == 10


def test_unknown_product_is_rejected(make_cart):
    missing = str(ObjectId())
    with pytest.raises(NotFound, match=missing):
        place_order(make_cart((missing, 1, 6.5)))


def test_second_order_for_last_units_fails(make_product, make_cart):
    pid = make_product(stock=5)
    place_order(make_cart((pid, 5, 6.5)))
    with pytest.raises(InsufficientStock, match="Available: 0"):
        place_order(make_cart((pid, 5, 6.5)))
    assert _stock(pid) == 0
    assert count_documents("order") == 1


def test_concurrent_orders_for_last_units(make_product, make_cart, monkeypatch):
    pid = make_product(stock=5)
    snapshot = get_document_by_id("product", pid)
    real_lookup = ordering.get_document_by_id

    # both callers validate against the same pre-order stock reading
    def lookup(name, _id):
        if name == "product":
            return dict(snapshot)
        return real_lookup(name, _id)

    monkeypatch.setattr(ordering, "get_document_by_id", lookup)

    outcomes = []
    for _ in range(2):
        try:
            place_order(make_cart((pid, 5, 6.5)))
            outcomes.append("placed")
        except InsufficientStock:
            outcomes.append("short")

    assert sorted(outcomes) == ["placed", "short"]
    product = real_lookup("product", pid)
    assert product["stock"] == 0
    assert product["sales_count"] == 5
    assert count_documents("order") == 1


def test_client_price_is_kept_when_trusted(make_product, make_cart, monkeypatch):
    monkeypatch.setattr(settings, "trust_client_prices", True)
    pid = make_product(price=6.5)
    order = place_order(make_cart((pid, 2, 5.0)))
    assert order["items"][0]["price"] == 5.0
    assert order["subtotal"] == pytest.approx(10.0)


def test_catalogue_price_wins_when_not_trusted(make_product, make_cart, monkeypatch):
    monkeypatch.setattr(settings, "trust_client_prices", False)
    pid = make_product(price=6.5)
    order = place_order(make_cart((pid, 2, 1.0)))
    assert order["items"][0]["price"] == 6.5
    assert order["subtotal"] == pytest.approx(13.0)


def test_delete_order_restores_stock(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))
    delete_order(order["_id"])

    product = get_document_by_id("product", pid)
    assert product["stock"] == 10
    assert product["sales_count"] == 0
    assert get_document_by_id("order", order["_id"]) is None


def test_delete_cancelled_order_does_not_restore_twice(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))
    update_order_status(order["_id"], "cancelled")
    assert _stock(pid) == 10
    delete_order(order["_id"])
    assert _stock(pid) == 10


def test_delete_unknown_order():
    with pytest.raises(NotFound):
        delete_order(str(ObjectId()))


def test_delivered_sets_delivery_time(make_product, make_cart):
    pid = make_product()
    order = place_order(make_cart((pid, 1, 6.5)))
    assert order.get("actual_delivery_time") is None

    updated = update_order_status(order["_id"], "delivered", updated_by="admin-1")
    assert updated["status"] == "delivered"
    assert updated["actual_delivery_time"] is not None
    assert updated["updated_by"] == "admin-1"


def test_cancel_and_revive_move_stock(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))

    update_order_status(order["_id"], "cancelled")
    assert _stock(pid) == 10
    update_order_status(order["_id"], "cancelled")
    assert _stock(pid) == 10

    update_order_status(order["_id"], "confirmed")
    assert _stock(pid) == 7


def test_revive_fails_when_stock_is_gone(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))
    update_order_status(order["_id"], "cancelled")
    update_document("product", pid, {"stock": 1})

    with pytest.raises(InsufficientStock):
        update_order_status(order["_id"], "preparing")
    assert get_document_by_id("order", order["_id"])["status"] == "cancelled"
    assert _stock(pid) == 1


def test_revive_reports_deleted_product(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))
    update_order_status(order["_id"], "cancelled")
    delete_and_return("product", pid)

    with pytest.raises(NotFound, match="Product not found: Sourdough Loaf"):
        update_order_status(order["_id"], "confirmed")
    assert get_document_by_id("order", order["_id"])["status"] == "cancelled"


def test_revive_reports_inactive_product(make_product, make_cart):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))
    update_order_status(order["_id"], "cancelled")
    update_document("product", pid, {"is_active": False})

    with pytest.raises(ProductInactive, match="Sourdough Loaf"):
        update_order_status(order["_id"], "confirmed")
    assert _stock(pid) == 10


def test_status_update_loses_race(make_product, make_cart, monkeypatch):
    pid = make_product(stock=10)
    order = place_order(make_cart((pid, 3, 6.5)))
    stale = dict(order, status="ready")
    monkeypatch.setattr(ordering, "get_document_by_id", lambda name, _id: stale)

    with pytest.raises(Conflict):
        update_order_status(order["_id"], "delivered")


def test_update_order_to_delivery_requires_address(make_product, make_cart):
    pid = make_product()
    order = place_order(make_cart((pid, 2, 6.5)))
    with pytest.raises(ValidationFailed) as exc:
        update_order(order["_id"], OrderUpdate(order_type="delivery"))
    assert exc.value.errors[0]["field"] == "delivery_address"


def test_update_order_type_recomputes_totals(make_product, make_cart):
    pid = make_product(price=10.0)
    order = place_order(make_cart((pid, 2, 10.0)))
    assert order["delivery_fee"] == 0.0

    updated = update_order(order["_id"], OrderUpdate(
        order_type="delivery",
        delivery_address={"street": "12 Rye Lane", "city": "Portland", "zip_code": "97201"},
    ))
    assert updated["delivery_fee"] == pytest.approx(5.0)
    assert updated["total"] == pytest.approx(20.0 * 1.08 + 5.0)
    assert updated["delivery_address"]["city"] == "Portland"

    back = update_order(order["_id"], OrderUpdate(order_type="pickup"))
    assert back["delivery_fee"] == 0.0
    assert back["delivery_address"] is None
