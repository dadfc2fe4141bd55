"""
Shopping cart kept on the customer's side.

The cart is a plain serializable value. Update functions never mutate their
input, they return the next cart.
"""
from __future__ import annotations
import json
import math
import logging
from typing import List, Tuple

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from client.storage import LocalStorage

logger = logging.getLogger(__name__)


class CartItem(BaseModel):
    id: str
    name: str
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(1, ge=1)

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class Cart(BaseModel):
    items: List[CartItem] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)


class CartIndexError(IndexError):
    def __init__(self, index: int, size: int):
        self.index = index
        self.size = size
        super().__init__(f"Cart index {index} out of range (cart has {size} items)")


_items_adapter = TypeAdapter(List[CartItem])


def add_item(cart: Cart, product_id: str, name: str, price: float) -> Cart:
    updated = cart.model_copy(deep=True)
    for item in updated.items:
        if item.id == product_id:
            item.quantity += 1
            return updated
    updated.items.append(CartItem(id=product_id, name=name, price=price, quantity=1))
    return updated


def remove_item(cart: Cart, index: int) -> Tuple[Cart, CartItem]:
    if not 0 <= index < len(cart.items):
        raise CartIndexError(index, len(cart.items))
    updated = cart.model_copy(deep=True)
    removed = updated.items.pop(index)
    return updated, removed


def cart_total(cart: Cart) -> float:
    total = sum(item.price * item.quantity for item in cart.items)
    # half-up, same as the server
    return math.floor(total * 100 + 0.5) / 100


def cart_count(cart: Cart) -> int:
    return sum(item.quantity for item in cart.items)


class CartStore:
    """Reads and writes the cart as a JSON array under a single storage key."""

    def __init__(self, storage: LocalStorage, key: str):
        self.storage = storage
        self.key = key

    def load(self) -> Cart:
        raw = self.storage.get_item(self.key)
        if not raw:
            return Cart()
        try:
            cart = Cart(items=_items_adapter.validate_python(json.loads(raw)))
        except (ValueError, ValidationError) as e:
            logger.warning("Could not load saved cart, starting empty: %s", e)
            return Cart()
        logger.info("Cart restored: %d items", len(cart))
        return cart

    def save(self, cart: Cart) -> None:
        payload = json.dumps([item.model_dump() for item in cart.items])
        try:
            self.storage.set_item(self.key, payload)
        except OSError as e:
            logger.warning("Could not save cart: %s", e)
