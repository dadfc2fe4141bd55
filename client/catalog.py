"""
Product catalog for the storefront: demo data used when the API is down,
category filtering and the view descriptions the UI renders.
"""
from __future__ import annotations
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from client.cart import Cart, cart_count, cart_total

DEFAULT_DISCOUNT = 25

CATEGORY_ICONS = {
    "salon": "🛋️",
    "chambre": "🛏️",
    "cuisine": "🍽️",
    "gigogne": "📐",
}

CATEGORY_NAMES = {
    "salon": "Canapés-Lits",
    "chambre": "Lits",
    "cuisine": "Tables + 6 Chaises",
    "gigogne": "Tables Gigognes",
}

FALLBACK_PRODUCTS: List[Dict[str, Any]] = [
    {"id": "1", "name": "Canapé-Lit 3 Places Convertible", "description": "Canapé-lit moderne en tissu, conversion facile, matelas confort inclus.", "price": 649, "oldPrice": 999, "category": "salon", "discountPercentage": 35, "stock": 8, "featured": True},
    {"id": "2", "name": "Table + 6 Chaises Design Moderne", "description": "Ensemble complet table rectangulaire avec 6 chaises assorties.", "price": 449, "oldPrice": 640, "category": "cuisine", "discountPercentage": 30, "stock": 5, "featured": True},
    {"id": "3", "name": "Set 3 Tables Gigognes Tendance", "description": "Trio de tables gigognes au design épuré, parfait gain de place.", "price": 169, "oldPrice": 309, "category": "gigogne", "discountPercentage": 45, "stock": 12, "featured": True},
    {"id": "4", "name": "Lit Double 160x200 + Sommier", "description": "Lit double avec tête de lit et sommier à lattes inclus.", "price": 359, "oldPrice": 599, "category": "chambre", "discountPercentage": 40, "stock": 6, "featured": True},
    {"id": "5", "name": "Canapé-Lit d'Angle XXL", "description": "Grand canapé d'angle convertible avec rangement intégré.", "price": 799, "oldPrice": 1065, "category": "salon", "discountPercentage": 25, "stock": 3, "featured": True},
    {"id": "6", "name": "Table Ronde + 6 Chaises", "description": "Table ronde extensible en bois massif avec 6 chaises.", "price": 389, "oldPrice": 599, "category": "cuisine", "discountPercentage": 35, "stock": 4, "featured": True},
    {"id": "7", "name": "Tables Gigognes Marbre & Or (Set de 2)", "description": "Duo de tables gigognes avec plateau effet marbre et pieds dorés.", "price": 119, "oldPrice": 199, "category": "gigogne", "discountPercentage": 40, "stock": 15, "featured": True},
    {"id": "8", "name": "Lit Simple 90x200 Ado", "description": "Lit simple moderne pour chambre d'ado. Structure robuste.", "price": 179, "oldPrice": 359, "category": "chambre", "discountPercentage": 50, "stock": 10, "featured": True},
]


class ProductCard(BaseModel):
    product_id: str
    name: str
    category: str
    icon: str
    price: float
    old_price: Optional[float] = None
    discount: int


class CartLine(BaseModel):
    index: int
    name: str
    quantity: int
    amount: float


class CartView(BaseModel):
    lines: List[CartLine]
    count: int
    total: float
    footer: str


def discount_for(product: Dict[str, Any]) -> int:
    if product.get("discountPercentage"):
        return int(product["discountPercentage"])
    old_price = product.get("oldPrice")
    if old_price:
        return math.floor((old_price - product["price"]) / old_price * 100 + 0.5)
    return DEFAULT_DISCOUNT


def filter_products(products: List[Dict[str, Any]], category: str) -> List[Dict[str, Any]]:
    if category == "all":
        return list(products)
    return [p for p in products if p.get("category") == category]


def category_label(category: str) -> str:
    return CATEGORY_NAMES.get(category, "All products")


def product_cards(products: List[Dict[str, Any]]) -> List[ProductCard]:
    return [
        ProductCard(
            product_id=str(p.get("id") or p.get("_id")),
            name=p["name"],
            category=p.get("category", ""),
            icon=CATEGORY_ICONS.get(p.get("category"), "🛋️"),
            price=p["price"],
            old_price=p.get("oldPrice"),
            discount=discount_for(p),
        )
        for p in products
    ]


def cart_view(cart: Cart, fallback_mode: bool) -> CartView:
    return CartView(
        lines=[
            CartLine(index=i, name=item.name, quantity=item.quantity, amount=item.subtotal)
            for i, item in enumerate(cart.items)
        ],
        count=cart_count(cart),
        total=cart_total(cart),
        footer="Demo mode" if fallback_mode else "Free delivery in the 78!",
    )
