"""
Storefront session: view state plus the actions a shopper can take.

All cart changes go through the pure functions in ``client.cart``; this class
only swaps the resulting value into ``state``, persists it and queues the
notifications the UI shows.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from client import catalog
from client.api import ApiUnavailable, OrderRejected, StorefrontApi
from client.cart import Cart, CartIndexError, CartStore, add_item, cart_total, remove_item
from client.checkout import (
    CheckoutInProgress,
    Confirmation,
    EmptyCart,
    InvalidCustomerInfo,
    build_order_request,
    confirmation_from_order,
    demo_confirmation,
    validate_customer,
)
from client.config import ClientSettings
from client.storage import LocalStorage

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    message: str
    level: Literal["success", "error", "info", "warning"] = "info"


class ViewState(BaseModel):
    cart: Cart = Field(default_factory=Cart)
    products: List[Dict[str, Any]] = Field(default_factory=list)
    fallback_mode: bool = False
    is_loading: bool = False
    notifications: List[Notification] = Field(default_factory=list)


class Storefront:
    def __init__(self, api: StorefrontApi, store: CartStore):
        self.api = api
        self.store = store
        self.state = ViewState(cart=store.load())

    @classmethod
    def from_settings(cls, settings: Optional[ClientSettings] = None) -> "Storefront":
        settings = settings or ClientSettings()
        api = StorefrontApi(settings.API_BASE, timeout=settings.REQUEST_TIMEOUT)
        store = CartStore(LocalStorage(settings.STORAGE_DIR), settings.STORAGE_KEY)
        return cls(api, store)

    def notify(self, message: str, level: str = "info") -> None:
        self.state.notifications.append(Notification(message=message, level=level))

    # === Products ===

    def load_products(self) -> List[Dict[str, Any]]:
        try:
            self.state.products = self.api.fetch_products(featured=True)
        except ApiUnavailable as e:
            logger.warning("API unavailable, loading demo products: %s", e)
            self.state.fallback_mode = True
            self.state.products = [dict(p) for p in catalog.FALLBACK_PRODUCTS]
            self.notify("Demo mode - connect the API for full functionality", "info")
        return self.state.products

    def product_cards(self, category: str = "all") -> List[catalog.ProductCard]:
        return catalog.product_cards(catalog.filter_products(self.state.products, category))

    # === Cart ===

    def _commit(self, cart: Cart) -> None:
        self.state.cart = cart
        self.store.save(cart)

    def add_to_cart(self, product_id: str, name: str, price: float) -> Cart:
        self._commit(add_item(self.state.cart, product_id, name, price))
        self.notify(f"{name} added! Total: {cart_total(self.state.cart)}€", "success")
        logger.info("Added %s to cart (%d lines)", product_id, len(self.state.cart))
        return self.state.cart

    def remove_from_cart(self, index: int) -> Cart:
        try:
            cart, removed = remove_item(self.state.cart, index)
        except CartIndexError as e:
            logger.warning("%s", e)
            self.notify(str(e), "error")
            raise
        self._commit(cart)
        self.notify(f"{removed.name} removed from the cart", "info")
        return self.state.cart

    def cart_view(self) -> catalog.CartView:
        return catalog.cart_view(self.state.cart, self.state.fallback_mode)

    # === Checkout ===

    def checkout(self, customer: Dict[str, Any]) -> Confirmation:
        if self.state.is_loading:
            raise CheckoutInProgress("A checkout is already in progress")
        if not self.state.cart.items:
            self.notify("Your cart is empty", "error")
            raise EmptyCart("Your cart is empty")
        try:
            info = validate_customer(customer)
        except InvalidCustomerInfo as e:
            self.notify(f"Please fill in every field correctly: {e}", "error")
            raise

        cart = self.state.cart
        payload = build_order_request(cart, info)
        self.state.is_loading = True
        try:
            confirmation = self._submit(cart, payload)
        except OrderRejected as e:
            logger.error("Order rejected: %s %s", e, e.errors)
            self.notify(f"Order failed: {e}", "error")
            raise
        finally:
            self.state.is_loading = False

        self._commit(Cart())
        if confirmation.is_demo:
            self.notify(f"Order {confirmation.order_number} simulated (demo mode, nothing was ordered)", "warning")
        else:
            self.notify(f"Order {confirmation.order_number} confirmed! A confirmation email is on its way", "success")
        return confirmation

    def _submit(self, cart: Cart, payload: Dict[str, Any]) -> Confirmation:
        if self.state.fallback_mode:
            return demo_confirmation(cart)
        try:
            return confirmation_from_order(self.api.submit_order(payload))
        except ApiUnavailable as e:
            logger.warning("Order API unreachable, switching to demo mode: %s", e)
            self.state.fallback_mode = True
            return demo_confirmation(cart)
