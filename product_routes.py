import csv
import io
import logging
from pathlib import Path
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field

from database import (
    create_document,
    delete_and_return,
    distinct_values,
    get_document_by_id,
    get_documents,
    get_page,
    text_filter,
    update_and_return,
)
from errors import NotFound
from schemas import Allergen, Product, ProductCategory, ProductImage, normalize_primary_image
from security import require_admin
from settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["products"])

SORTABLE_FIELDS = {"name", "price", "stock", "category", "sales_count", "created_at", "updated_at"}


class ProductPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0)
    category: ProductCategory
    stock: int = Field(..., ge=0)
    images: List[ProductImage] = []
    ingredients: List[str] = []
    allergens: List[Allergen] = []
    is_active: bool = True
    is_featured: bool = False
    preparation_time: int = Field(30, ge=0)
    tags: List[str] = []


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[ProductCategory] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[ProductImage]] = None
    ingredients: Optional[List[str]] = None
    allergens: Optional[List[Allergen]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    preparation_time: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None


class StockUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class ImageIn(BaseModel):
    url: str = Field(..., min_length=1)
    alt: Optional[str] = None


class ImagesAdd(BaseModel):
    images: List[ImageIn] = Field(..., min_length=1, max_length=5)


# ===================== Helpers =====================

def _sort(sort_by: Optional[str], sort_order: str) -> list:
    if sort_by in SORTABLE_FIELDS:
        return [(sort_by, -1 if sort_order == "desc" else 1)]
    return [("created_at", -1)]


def _price_filter(min_price: Optional[float], max_price: Optional[float]) -> Optional[dict]:
    if min_price is None and max_price is None:
        return None
    price = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    return price


def _require_product(product_id: str) -> dict:
    product = get_document_by_id("product", product_id)
    if not product:
        raise NotFound("Product not found")
    return product


def remove_image_file(url: str) -> None:
    """Delete a locally stored image; external URLs are left alone."""
    if not url or not url.startswith("/uploads/"):
        return
    root = Path(settings.upload_dir).resolve()
    path = (root / url[len("/uploads/"):]).resolve()
    if root not in path.parents:
        logger.warning("Refusing to delete image outside upload dir: %s", url)
        return
    if path.is_file():
        path.unlink()
        logger.info("Deleted image file %s", path)


# ===================== Public =====================

@router.get("/getProducts")
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[ProductCategory] = None,
    featured: Optional[bool] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort_by: Optional[str] = None,
    sort_order: Literal["asc", "desc"] = "asc",
):
    filt = {"is_active": True}
    if category:
        filt["category"] = category
    if featured:
        filt["is_featured"] = True
    price = _price_filter(min_price, max_price)
    if price:
        filt["price"] = price

    products, pagination = get_page("product", filt, page, limit, sort=_sort(sort_by, sort_order))
    return {"success": True, "products": products, "pagination": pagination}


@router.get("/getProduct/{product_id}")
def get_product(product_id: str):
    return {"success": True, "product": _require_product(product_id)}


@router.get("/products/categories")
def list_categories():
    return {"success": True, "categories": distinct_values("product", "category")}


@router.get("/products/search")
def search_products(
    q: Optional[str] = None,
    category: Optional[ProductCategory] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    filt = {"is_active": True}
    if q and q.strip():
        filt.update(text_filter(q, ["name", "description", "tags"]))
    if category:
        filt["category"] = category
    price = _price_filter(min_price, max_price)
    if price:
        filt["price"] = price

    products, pagination = get_page("product", filt, page, limit, sort=[("created_at", -1)])
    return {"success": True, "products": products, "total": pagination["total"], "pagination": pagination}


# ===================== Admin =====================

@router.get("/products/low-stock")
def low_stock_products(threshold: int = Query(10, ge=0), admin: dict = Depends(require_admin)):
    products = get_documents(
        "product",
        {"is_active": True, "stock": {"$lte": threshold}},
        sort=[("stock", 1)],
        projection={"name": 1, "stock": 1, "category": 1, "price": 1},
    )
    return {"success": True, "products": products, "threshold": threshold}


@router.get("/products/export")
def export_products(format: Literal["json", "csv"] = "json", admin: dict = Depends(require_admin)):
    products = get_documents("product", {"is_active": True})
    if format == "json":
        return {"success": True, "products": products}

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerow(["Name", "Category", "Price", "Stock", "Description"])
    for p in products:
        writer.writerow([p.get("name"), p.get("category"), p.get("price"), p.get("stock"), p.get("description")])
    return Response(
        content=buf.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=products.csv"},
    )


@router.post("/createProduct", status_code=201)
def create_product(payload: ProductPayload, admin: dict = Depends(require_admin)):
    product = Product(**payload.model_dump(), created_by=admin["_id"])
    product_id = create_document("product", product)
    logger.info("Product %s created by %s", product.name, admin.get("username"))
    return {"success": True, "message": "Product created successfully", "product": get_document_by_id("product", product_id)}


@router.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin: dict = Depends(require_admin)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "images" in changes:
        changes["images"] = [i.model_dump() for i in normalize_primary_image(list(payload.images))]
    changes["updated_by"] = admin["_id"]
    product = update_and_return("product", product_id, {"$set": changes})
    if not product:
        raise NotFound("Product not found")
    return {"success": True, "message": "Product updated successfully", "product": product}


@router.delete("/products/{product_id}")
def delete_product(product_id: str, admin: dict = Depends(require_admin)):
    product = delete_and_return("product", product_id)
    if not product:
        raise NotFound("Product not found")
    for image in product.get("images", []):
        remove_image_file(image.get("url"))
    logger.info("Product %s deleted by %s", product.get("name"), admin.get("username"))
    return {"success": True, "message": "Product deleted successfully"}


@router.patch("/products/{product_id}/stock")
def update_stock(product_id: str, payload: StockUpdate, admin: dict = Depends(require_admin)):
    product = update_and_return(
        "product", product_id, {"$set": {"stock": payload.quantity, "updated_by": admin["_id"]}}
    )
    if not product:
        raise NotFound("Product not found")
    return {
        "success": True,
        "message": "Stock updated successfully",
        "product": {"id": product["_id"], "name": product["name"], "stock": product["stock"]},
    }


@router.post("/products/{product_id}/images")
def add_product_images(product_id: str, payload: ImagesAdd, admin: dict = Depends(require_admin)):
    product = _require_product(product_id)
    images = [ProductImage(**i) for i in product.get("images", [])]
    added = [
        ProductImage(url=img.url, alt=img.alt or f"{product['name']} image {len(images) + n + 1}")
        for n, img in enumerate(payload.images)
    ]
    images = normalize_primary_image(images + added)

    update_and_return("product", product_id, {"$set": {"images": [i.model_dump() for i in images], "updated_by": admin["_id"]}})
    return {"success": True, "message": "Images added successfully", "images": [i.model_dump() for i in added]}


@router.delete("/products/{product_id}/images/{image_id}")
def delete_product_image(product_id: str, image_id: str, admin: dict = Depends(require_admin)):
    product = _require_product(product_id)
    images = [ProductImage(**i) for i in product.get("images", [])]
    removed = next((img for img in images if img.id == image_id), None)
    if removed is None:
        raise NotFound("Image not found")

    remove_image_file(removed.url)
    images.remove(removed)
    if removed.is_primary and images:
        images[0].is_primary = True

    update_and_return("product", product_id, {"$set": {"images": [i.model_dump() for i in images], "updated_by": admin["_id"]}})
    return {"success": True, "message": "Image deleted successfully"}
