"""
Seed Data

Creates the admin account, a starter catalogue and two sample orders on
an empty database. Each step is skipped when its collection already has
data. Run directly with `python seed.py`, or set SEED_ON_STARTUP=1.
"""

import logging

from database import count_documents, create_document, find_one, release_stock, reserve_stock
from ordering import compute_totals, generate_order_number
from schemas import Customer, DeliveryAddress, Order, OrderItem, Product, ProductImage, User
from security import hash_password
from settings import settings

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "name": "Classic Chocolate Cake",
        "description": "Rich, moist chocolate cake with chocolate ganache frosting. Perfect for celebrations.",
        "price": 25.99,
        "category": "Cakes",
        "image": "/uploads/products/chocolate-cake.jpg",
        "ingredients": ["Flour", "Cocoa Powder", "Sugar", "Eggs", "Butter", "Vanilla"],
        "allergens": ["Gluten", "Dairy", "Eggs"],
        "stock": 15,
        "is_featured": True,
        "preparation_time": 60,
        "tags": ["chocolate", "celebration", "popular"],
    },
    {
        "name": "Fresh Croissants",
        "description": "Buttery, flaky croissants baked fresh daily. Perfect for breakfast.",
        "price": 3.50,
        "category": "Pastries",
        "image": "/uploads/products/croissants.jpg",
        "ingredients": ["Flour", "Butter", "Yeast", "Salt", "Sugar"],
        "allergens": ["Gluten", "Dairy"],
        "stock": 50,
        "is_featured": True,
        "preparation_time": 30,
        "tags": ["breakfast", "buttery", "fresh"],
    },
    {
        "name": "Artisan Sourdough Bread",
        "description": "Traditional sourdough bread with a crispy crust and tangy flavor.",
        "price": 6.99,
        "category": "Bread",
        "image": "/uploads/products/sourdough.jpg",
        "ingredients": ["Sourdough Starter", "Flour", "Water", "Salt"],
        "allergens": ["Gluten"],
        "stock": 25,
        "preparation_time": 45,
        "tags": ["artisan", "sourdough", "traditional"],
    },
    {
        "name": "Chocolate Chip Cookies",
        "description": "Soft and chewy chocolate chip cookies made with premium chocolate.",
        "price": 12.99,
        "category": "Cookies",
        "image": "/uploads/products/cookies.jpg",
        "ingredients": ["Flour", "Chocolate Chips", "Butter", "Sugar", "Eggs"],
        "allergens": ["Gluten", "Dairy", "Eggs"],
        "stock": 40,
        "is_featured": True,
        "preparation_time": 25,
        "tags": ["cookies", "chocolate", "sweet"],
    },
    {
        "name": "Vanilla Cupcakes",
        "description": "Light and fluffy vanilla cupcakes with buttercream frosting.",
        "price": 18.99,
        "category": "Cakes",
        "image": "/uploads/products/cupcakes.jpg",
        "ingredients": ["Flour", "Sugar", "Eggs", "Butter", "Vanilla", "Baking Powder"],
        "allergens": ["Gluten", "Dairy", "Eggs"],
        "stock": 30,
        "preparation_time": 40,
        "tags": ["cupcakes", "vanilla", "party"],
    },
    {
        "name": "Danish Pastries",
        "description": "Assorted Danish pastries with fruit and cream cheese fillings.",
        "price": 4.25,
        "category": "Pastries",
        "image": "/uploads/products/danish.jpg",
        "ingredients": ["Puff Pastry", "Cream Cheese", "Fruit", "Sugar"],
        "allergens": ["Gluten", "Dairy", "Eggs"],
        "stock": 35,
        "preparation_time": 35,
        "tags": ["danish", "fruit", "cream"],
    },
    {
        "name": "Espresso Coffee",
        "description": "Rich and bold espresso coffee, perfect with our pastries.",
        "price": 2.99,
        "category": "Beverages",
        "image": "/uploads/products/espresso.jpg",
        "ingredients": ["Coffee Beans"],
        "allergens": [],
        "stock": 100,
        "preparation_time": 5,
        "tags": ["coffee", "espresso", "hot"],
    },
    {
        "name": "Seasonal Fruit Tart",
        "description": "Beautiful tart filled with seasonal fresh fruits and pastry cream.",
        "price": 22.99,
        "category": "Seasonal",
        "image": "/uploads/products/fruit-tart.jpg",
        "ingredients": ["Pastry", "Pastry Cream", "Fresh Fruits", "Glaze"],
        "allergens": ["Gluten", "Dairy", "Eggs"],
        "stock": 12,
        "is_featured": True,
        "preparation_time": 50,
        "tags": ["seasonal", "fruit", "elegant"],
    },
]


def seed_users() -> None:
    if find_one("user", {"username": settings.admin_username}):
        logger.info("Admin user already exists")
        return
    admin = User(
        username=settings.admin_username,
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password),
        first_name="Admin",
        last_name="User",
        role="admin",
    )
    create_document("user", admin)
    logger.info("Admin user created: %s", admin.username)


def seed_products() -> None:
    if count_documents("product") > 0:
        logger.info("Products already exist")
        return
    for data in SAMPLE_PRODUCTS:
        data = dict(data)
        image = data.pop("image")
        create_document("product", Product(**data, images=[ProductImage(url=image, alt=data["name"], is_primary=True)]))
    logger.info("%d sample products created", len(SAMPLE_PRODUCTS))


def _sample_order(product: dict, quantity: int, **fields) -> Order:
    items = [OrderItem(
        product_id=product["_id"],
        name=product["name"],
        category=product.get("category"),
        price=product["price"],
        quantity=quantity,
        subtotal=product["price"] * quantity,
    )]
    return Order(order_number=generate_order_number(), items=items,
                 **compute_totals(items, fields["order_type"]), **fields)


def seed_orders() -> None:
    if count_documents("order") > 0:
        logger.info("Orders already exist")
        return
    cake = find_one("product", {"name": "Classic Chocolate Cake"})
    croissants = find_one("product", {"name": "Fresh Croissants"})
    if not cake or not croissants:
        logger.info("Sample products missing, skipping sample orders")
        return

    orders = [
        _sample_order(
            cake, 1,
            customer=Customer(name="John Smith", email="john@havrebakery.com", phone="+1-555-0123"),
            order_type="delivery",
            payment_method="card",
            status="delivered",
            payment_status="paid",
            delivery_address=DeliveryAddress(street="123 Main St", city="Anytown", state="CA",
                                             zip_code="12345", country="USA"),
        ),
        _sample_order(
            croissants, 6,
            customer=Customer(name="Sarah Johnson", email="sarah@havrebakery.com", phone="+1-555-0456"),
            order_type="pickup",
            payment_method="cash",
            status="ready",
            payment_status="paid",
        ),
    ]
    # sample orders hold their units, like placed orders
    for order in orders:
        item = order.items[0]
        if reserve_stock(item.product_id, item.quantity) is None:
            logger.warning("Not enough %s in stock for sample order %s", item.name, order.order_number)
            continue
        try:
            create_document("order", order)
        except Exception:
            release_stock(item.product_id, item.quantity)
            raise
    logger.info("Sample orders created")


def seed_database() -> None:
    logger.info("Starting database seeding...")
    seed_users()
    seed_products()
    seed_orders()
    logger.info("Database seeding completed")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    seed_database()
