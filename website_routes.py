import logging
from typing import Optional

from fastapi import APIRouter, Query

from database import (
    collection,
    count_documents,
    create_document,
    distinct_values,
    get_documents,
    get_page,
    text_filter,
    utcnow,
)
from schemas import ContactMessage, NewsletterSubscriber

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/website", tags=["website"])

PUBLIC_FIELDS = {"name": 1, "description": 1, "price": 1, "category": 1, "images": 1, "rating": 1}
ESTABLISHED_YEAR = 2020


@router.get("/products")
def public_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
):
    filt = {"is_active": True}
    if category:
        filt["category"] = category
    if search and search.strip():
        filt.update(text_filter(search, ["name", "description", "tags"]))

    products, pagination = get_page(
        "product", filt, page, limit,
        sort=[("is_featured", -1), ("created_at", -1)],
        projection=PUBLIC_FIELDS,
    )
    return {"success": True, "products": products, "pagination": pagination}


@router.get("/products/featured")
def featured_products(limit: int = Query(6, ge=1, le=50)):
    products = get_documents(
        "product",
        {"is_active": True, "is_featured": True},
        limit=limit,
        sort=[("rating.average", -1), ("sales_count", -1)],
        projection=PUBLIC_FIELDS,
    )
    return {"success": True, "products": products}


@router.get("/products/category/{category}")
def products_by_category(category: str, page: int = Query(1, ge=1), limit: int = Query(12, ge=1, le=100)):
    products, pagination = get_page(
        "product", {"is_active": True, "category": category}, page, limit,
        sort=[("is_featured", -1), ("rating.average", -1)],
        projection=PUBLIC_FIELDS,
    )
    return {"success": True, "products": products, "category": category, "pagination": pagination}


@router.post("/contact")
def submit_contact(payload: ContactMessage):
    create_document("contact_message", payload)
    logger.info("Contact form submission from %s: %s", payload.email, payload.subject or "(no subject)")
    return {"success": True, "message": "Thank you for your message! We will get back to you soon."}


@router.post("/newsletter")
def subscribe_newsletter(payload: NewsletterSubscriber):
    now = utcnow()
    collection("newsletter_subscriber").update_one(
        {"email": payload.email},
        {"$setOnInsert": {"created_at": now}, "$set": {"updated_at": now}},
        upsert=True,
    )
    logger.info("Newsletter subscription: %s", payload.email)
    return {"success": True, "message": "Thank you for subscribing to our newsletter!"}


@router.get("/stats")
def website_stats():
    categories = distinct_values("product", "category", {"is_active": True})
    return {
        "success": True,
        "stats": {
            "total_products": count_documents("product", {"is_active": True}),
            "total_categories": len(categories),
            "categories": categories,
            "total_orders_served": count_documents("order"),
            "established_year": ESTABLISHED_YEAR,
        },
    }
