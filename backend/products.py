from __future__ import annotations
import logging
import re
import unicodedata
from typing import List, Optional, Tuple

from pydantic import ValidationError

from backend import database
from backend.errors import FieldError, NotFound, ValidationFailed, field_errors
from backend.schemas import Product

logger = logging.getLogger(__name__)

MAX_IMAGES = 10
CATALOG_SORT = [("featured", -1), ("createdAt", -1)]

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def slugify(name: str) -> str:
    value = unicodedata.normalize("NFD", name.lower())
    value = _COMBINING_MARKS.sub("", value)
    value = _DISALLOWED.sub("", value)
    value = _WHITESPACE.sub("-", value)
    value = _HYPHENS.sub("-", value)
    return value.strip("-")


def validate_product(product: Product) -> List[FieldError]:
    try:
        Product.model_validate(product.model_dump(by_alias=True))
    except ValidationError as exc:
        return field_errors(exc)
    return []


def normalize_product(product: Product, previous: Optional[Product] = None) -> Tuple[Product, List[FieldError]]:
    normalized = product.model_copy(deep=True)

    name_changed = previous is None or previous.name != normalized.name
    if name_changed and not normalized.seo.slug:
        normalized.seo.slug = slugify(normalized.name) or None

    if normalized.old_price is not None and normalized.old_price <= normalized.price:
        normalized.old_price = None

    if len(normalized.images) > MAX_IMAGES:
        normalized.images = normalized.images[:MAX_IMAGES]

    return normalized, validate_product(normalized)


async def create_product(product: Product) -> Product:
    normalized, errors = normalize_product(product)
    if errors:
        raise ValidationFailed(errors)
    saved = await database.create_document("product", normalized.to_document())
    logger.info("Product %r created (slug %s)", normalized.name, normalized.seo.slug)
    return Product.model_validate(saved)


async def save_product(product: Product, previous: Product) -> Product:
    normalized, errors = normalize_product(product, previous)
    if errors:
        raise ValidationFailed(errors)
    saved = await database.replace_document("product", previous.id, normalized.to_document())
    return Product.model_validate(saved)


async def get_product(product_id: str) -> Product:
    return Product.model_validate(await database.get_document("product", product_id))


async def get_product_by_slug(slug: str) -> Product:
    doc = await database.find_document("product", {"seo.slug": slug})
    if doc is None:
        raise NotFound("product", slug)
    return Product.model_validate(doc)


async def _increment(product: Product, field: str, amount: int = 1) -> Product:
    doc = await database.increment_fields("product", product.id, {field: amount})
    return Product.model_validate(doc)


async def increment_views(product: Product) -> Product:
    return await _increment(product, "analytics.views")


async def add_to_cart_count(product: Product) -> Product:
    return await _increment(product, "analytics.addedToCart")


async def increment_purchased(product: Product, quantity: int = 1) -> Product:
    return await _increment(product, "analytics.purchased", quantity)


async def update_stock(product: Product, delta: int) -> Product:
    updated = product.model_copy(deep=True)
    updated.stock = max(0, product.stock + delta)
    if product.stock + delta < 0:
        logger.warning("Stock for %s clamped at 0 (delta %d, had %d)", product.id, delta, product.stock)
    return await save_product(updated, product)


async def list_products(
    featured: Optional[bool] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 200,
) -> List[Product]:
    filter_dict: dict = {"isActive": True}
    if featured is not None:
        filter_dict["featured"] = featured
    if category:
        filter_dict["category"] = category.lower()
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        filter_dict["$or"] = [{"name": pattern}, {"description": pattern}, {"tags": pattern}]
    docs = await database.get_documents("product", filter_dict, limit=limit, sort=CATALOG_SORT)
    return [Product.model_validate(d) for d in docs]


async def find_by_category(category: str) -> List[Product]:
    return await list_products(category=category)


async def find_featured() -> List[Product]:
    docs = await database.get_documents(
        "product", {"featured": True, "isActive": True}, sort=[("createdAt", -1)]
    )
    return [Product.model_validate(d) for d in docs]


async def search_products(term: str) -> List[Product]:
    return await list_products(q=term)
