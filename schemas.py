"""
Database Schemas for Havre Bakery

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., Product -> "product").
"""
from datetime import datetime
from typing import List, Optional, Literal

from bson import ObjectId
from pydantic import BaseModel, Field, EmailStr, ValidationInfo, field_validator, model_validator

ProductCategory = Literal["Cakes", "Pastries", "Bread", "Cookies", "Beverages", "Seasonal", "Custom"]
Allergen = Literal["Gluten", "Dairy", "Eggs", "Nuts", "Soy", "Sesame", "Fish", "Shellfish"]
OrderType = Literal["pickup", "delivery", "dine-in"]
PaymentMethod = Literal["cash", "card", "online", "bank_transfer"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "delivered", "cancelled"]
Role = Literal["admin", "customer"]


class ProductImage(BaseModel):
    id: str = Field(default_factory=lambda: str(ObjectId()), description="Image id within the product")
    url: str = Field(..., description="Public URL or /uploads path")
    alt: str = ""
    is_primary: bool = False


class Rating(BaseModel):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class User(BaseModel):
    username: str = Field(..., min_length=3, description="Unique login name")
    email: EmailStr = Field(..., description="Unique email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = "customer"
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = None
    address: Optional[dict] = None
    is_active: bool = True
    refresh_token: Optional[str] = None
    last_login: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Product name")
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0)
    category: ProductCategory = "Pastries"
    images: List[ProductImage] = []
    ingredients: List[str] = []
    allergens: List[Allergen] = []
    stock: int = Field(0, ge=0, description="Units available for sale")
    is_active: bool = True
    is_featured: bool = False
    preparation_time: int = Field(30, ge=0, description="Minutes")
    tags: List[str] = []
    rating: Rating = Field(default_factory=Rating)
    sales_count: int = Field(0, ge=0)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @model_validator(mode="after")
    def check_primary_image(self):
        self.images = normalize_primary_image(self.images)
        return self


def normalize_primary_image(images: List[ProductImage]) -> List[ProductImage]:
    """Keep exactly one primary image: the first flagged one, else the first image."""
    seen_primary = False
    for img in images:
        img.is_primary = img.is_primary and not seen_primary
        seen_primary = seen_primary or img.is_primary
    if images and not seen_primary:
        images[0].is_primary = True
    return images


class Customer(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)


class DeliveryAddress(BaseModel):
    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str = Field(..., description="Referenced product _id as string")
    name: str = Field(..., description="Snapshot of product name at order time")
    category: Optional[str] = None
    price: float = Field(..., ge=0, description="Unit price at order time")
    quantity: int = Field(..., ge=1)
    subtotal: float = Field(..., ge=0)
    customizations: List[str] = []


class Order(BaseModel):
    order_number: str = Field(..., description="Human-friendly order number")
    customer: Customer
    items: List[OrderItem]
    subtotal: float = 0.0
    tax: float = 0.0
    delivery_fee: float = 0.0
    total: float = 0.0
    order_type: OrderType = "pickup"
    payment_method: PaymentMethod = "cash"
    payment_status: PaymentStatus = "pending"
    status: OrderStatus = "pending"
    delivery_address: Optional[DeliveryAddress] = None
    special_instructions: Optional[str] = None
    requested_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None


class ContactMessage(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: str = Field(..., min_length=1)


class NewsletterSubscriber(BaseModel):
    email: EmailStr


# Request payloads shared between routes and services

class OrderItemIn(BaseModel):
    product: str = Field(..., min_length=1, description="Product _id")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price shown to the customer")
    customizations: List[str] = []


class OrderCreate(BaseModel):
    customer: Customer
    items: List[OrderItemIn] = Field(..., min_length=1)
    order_type: OrderType
    payment_method: PaymentMethod
    delivery_address: Optional[DeliveryAddress] = Field(None, validate_default=True)
    special_instructions: Optional[str] = Field(None, max_length=500)
    requested_delivery_time: Optional[datetime] = None

    @field_validator("delivery_address")
    @classmethod
    def require_address_for_delivery(cls, v, info: ValidationInfo):
        # runs after order_type, which is declared first
        if info.data.get("order_type") != "delivery":
            return None
        if v is None:
            raise ValueError("delivery_address is required for delivery orders")
        return v


class OrderUpdate(BaseModel):
    customer: Optional[Customer] = None
    order_type: Optional[OrderType] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    delivery_address: Optional[DeliveryAddress] = None
    special_instructions: Optional[str] = Field(None, max_length=500)
    requested_delivery_time: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
