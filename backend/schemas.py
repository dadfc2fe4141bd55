"""
Database Schemas for Bonne Affaire 78

Each Pydantic model represents a MongoDB collection. The collection name is
the lowercase class name (Product -> "product", Order -> "order").
Attributes are snake_case in Python and camelCase on the wire and in Mongo.
"""
from __future__ import annotations
import math
import re
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]{10,}$")
POSTAL_CODE_RE = re.compile(r"^\d{5}$")
IMAGE_URL_RE = re.compile(r"^https?://.+\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE)
SLUG_RE = re.compile(r"^[a-z0-9-]+$")

OrderStatus = Literal["pending", "confirmed", "preparing", "shipped", "delivered", "cancelled", "refunded"]
PaymentMethod = Literal["card", "paypal", "bank_transfer", "3x_payment", "cash"]
PaymentStatus = Literal["pending", "processing", "paid", "failed", "cancelled", "refunded"]
DeliveryMethod = Literal["standard", "express", "pickup", "appointment"]
Category = Literal["salon", "chambre", "cuisine", "gigogne"]

ORDER_STATUSES = get_args(OrderStatus)
CATEGORIES = get_args(Category)


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


class MongoModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"})


# ---------------------------
# Orders
# ---------------------------
class Address(MongoModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str
    country: str = Field("France", max_length=50)

    @field_validator("postal_code")
    @classmethod
    def check_postal_code(cls, v: str) -> str:
        if not POSTAL_CODE_RE.match(v):
            raise PydanticCustomError("postal_code", "Invalid postal code (5 digits required)")
        return v


class Customer(MongoModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: str
    phone: str
    address: Address

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.lower()
        if not EMAIL_RE.match(v):
            raise PydanticCustomError("email", "Invalid email format")
        return v

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        if not PHONE_RE.match(v):
            raise PydanticCustomError("phone", "Invalid phone number")
        return v


class OrderItem(MongoModel):
    product_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(..., ge=1, le=100)
    subtotal: float = Field(0, ge=0, allow_inf_nan=False)


class Totals(MongoModel):
    subtotal: float = Field(0, ge=0, allow_inf_nan=False)
    shipping: float = Field(0, ge=0, allow_inf_nan=False)
    tax: float = Field(0, ge=0, allow_inf_nan=False)
    discount: float = Field(0, ge=0, allow_inf_nan=False)
    total: float = Field(0, ge=0, allow_inf_nan=False)


class Payment(MongoModel):
    method: PaymentMethod
    status: PaymentStatus = "pending"
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    amount: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class DeliveryAddress(MongoModel):
    street: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    instructions: Optional[str] = None


class Delivery(MongoModel):
    method: DeliveryMethod = "standard"
    estimated_date: Optional[datetime] = None
    actual_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    address: Optional[DeliveryAddress] = None

    @field_validator("estimated_date", "actual_date")
    @classmethod
    def naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class Notes(MongoModel):
    customer: Optional[str] = Field(None, max_length=500)
    internal: Optional[str] = Field(None, max_length=1000)


class TimelineEntry(MongoModel):
    status: OrderStatus
    date: datetime
    note: Optional[str] = None
    user: Optional[str] = None


class OrderCreate(MongoModel):
    """Payload accepted from the storefront. Totals, if sent, are not trusted."""
    customer: Customer
    items: List[OrderItem] = Field(..., min_length=1)
    payment: Payment
    delivery: Delivery = Field(default_factory=Delivery)
    notes: Notes = Field(default_factory=Notes)
    totals: Totals = Field(default_factory=Totals)


class Order(MongoModel):
    """
    Collection: "order"
    """
    id: Optional[str] = None
    order_number: Optional[str] = None
    customer: Customer
    items: List[OrderItem] = Field(..., min_length=1)
    totals: Totals = Field(default_factory=Totals)
    status: OrderStatus = "pending"
    payment: Payment
    delivery: Delivery = Field(default_factory=Delivery)
    notes: Notes = Field(default_factory=Notes)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("order_number")
    @classmethod
    def upper_order_number(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @property
    def is_delivered(self) -> bool:
        return self.status == "delivered"

    @property
    def is_paid(self) -> bool:
        return self.payment.status == "paid"

    @property
    def customer_full_name(self) -> str:
        return f"{self.customer.first_name} {self.customer.last_name}"

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_client(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True)
        data.update(
            isDelivered=self.is_delivered,
            isPaid=self.is_paid,
            customerFullName=self.customer_full_name,
            itemCount=self.item_count,
        )
        return data


class StatusUpdate(MongoModel):
    status: OrderStatus
    note: str = ""


class PaymentConfirmation(MongoModel):
    transaction_id: str = Field(..., min_length=1)


class TrackingUpdate(MongoModel):
    tracking_number: str = Field(..., min_length=1)
    carrier: str = ""


# ---------------------------
# Product Catalog
# ---------------------------
class ProductImage(MongoModel):
    url: str
    alt: Optional[str] = None
    is_primary: bool = False

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        if not IMAGE_URL_RE.match(v):
            raise PydanticCustomError("image_url", "Invalid image URL")
        return v


class Dimensions(MongoModel):
    length: Optional[float] = Field(None, ge=0)
    width: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)
    unit: Literal["cm", "m", "mm"] = "cm"


class Specifications(MongoModel):
    dimensions: Optional[Dimensions] = None
    material: Optional[str] = Field(None, max_length=200)
    colors: List[Annotated[str, Field(max_length=50)]] = Field(default_factory=list)
    weight: Optional[float] = Field(None, ge=0)


class Seo(MongoModel):
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    slug: Optional[str] = None

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.lower()
        if not SLUG_RE.match(v):
            raise PydanticCustomError("slug", "Invalid slug")
        return v


class Analytics(MongoModel):
    views: int = 0
    added_to_cart: int = 0
    purchased: int = 0


class Product(MongoModel):
    """
    Collection: "product"
    A piece of furniture offered in the catalog.
    """
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category: Category
    price: float = Field(..., ge=0, allow_inf_nan=False)
    old_price: Optional[float] = Field(None, ge=0)
    images: List[ProductImage] = Field(default_factory=list)
    specifications: Specifications = Field(default_factory=Specifications)
    stock: int = Field(0, ge=0)
    is_active: bool = True
    featured: bool = False
    tags: List[Annotated[str, Field(max_length=50)]] = Field(default_factory=list)
    seo: Seo = Field(default_factory=Seo)
    analytics: Analytics = Field(default_factory=Analytics)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("category", mode="before")
    @classmethod
    def lower_category(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v: List[str]) -> List[str]:
        return [tag.lower() for tag in v]

    @property
    def discount_percentage(self) -> int:
        if self.old_price and self.old_price > self.price:
            return int(round_half_up((self.old_price - self.price) / self.old_price * 100))
        return 0

    @property
    def is_in_stock(self) -> bool:
        return self.stock > 0

    @property
    def primary_image(self) -> Optional[ProductImage]:
        for image in self.images:
            if image.is_primary:
                return image
        return self.images[0] if self.images else None

    def to_client(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True)
        primary = self.primary_image
        data.update(
            discountPercentage=self.discount_percentage,
            isInStock=self.is_in_stock,
            primaryImage=primary.model_dump(by_alias=True) if primary else None,
        )
        return data


class StockUpdate(MongoModel):
    delta: int


class SeedResponse(BaseModel):
    inserted: int
