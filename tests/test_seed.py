from database import count_documents, find_one
from ordering import delete_order
from seed import SAMPLE_PRODUCTS, seed_database
from security import verify_password
from settings import settings

CROISSANT_STOCK = 50


def test_seed_populates_empty_database():
    seed_database()

    admin = find_one("user", {"username": settings.admin_username})
    assert admin["role"] == "admin"
    assert verify_password(settings.admin_password, admin["password_hash"])

    assert count_documents("product") == len(SAMPLE_PRODUCTS)
    tart = find_one("product", {"name": "Seasonal Fruit Tart"})
    assert tart["images"][0]["is_primary"] is True
    assert tart["sales_count"] == 0

    assert count_documents("order") == 2
    delivery = find_one("order", {"order_type": "delivery"})
    assert delivery["delivery_fee"] == settings.delivery_fee
    assert delivery["total"] == delivery["subtotal"] + delivery["tax"] + delivery["delivery_fee"]


def test_seeded_orders_hold_their_stock():
    seed_database()

    cake = find_one("product", {"name": "Classic Chocolate Cake"})
    assert (cake["stock"], cake["sales_count"]) == (14, 1)
    croissants = find_one("product", {"name": "Fresh Croissants"})
    assert (croissants["stock"], croissants["sales_count"]) == (CROISSANT_STOCK - 6, 6)


def test_deleting_seeded_order_restores_original_stock():
    seed_database()
    order = find_one("order", {"status": "ready"})

    delete_order(order["_id"])

    croissants = find_one("product", {"name": "Fresh Croissants"})
    assert croissants["stock"] == CROISSANT_STOCK
    assert croissants["sales_count"] == 0


def test_seed_is_idempotent():
    seed_database()
    seed_database()
    assert count_documents("user") == 1
    assert count_documents("product") == len(SAMPLE_PRODUCTS)
    assert count_documents("order") == 2
    assert find_one("product", {"name": "Fresh Croissants"})["stock"] == CROISSANT_STOCK - 6
