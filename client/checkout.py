"""
Checkout input collection and order confirmations.

Customer details are validated before anything else happens, so an invalid
form never touches the cart.
"""
from __future__ import annotations
import re
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from client.cart import Cart, cart_total

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DEFAULT_PAYMENT_METHOD = "card"
DEFAULT_COUNTRY = "France"
DEMO_DELIVERY_DAYS = 3
CUSTOMER_LINE_FIELDS = ("first_name", "last_name", "email", "phone", "street", "city", "postal_code")


class CheckoutError(Exception):
    pass


class CheckoutInProgress(CheckoutError):
    pass


class EmptyCart(CheckoutError):
    pass


class InvalidCustomerInfo(CheckoutError):
    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class CustomerInfo(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)

    model_config = {"str_strip_whitespace": True}

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        if not EMAIL_RE.match(v):
            raise PydanticCustomError("email", "Invalid email format")
        return v

    @classmethod
    def from_line(cls, line: str) -> "CustomerInfo":
        """Parse ``First,Last,Email,Phone,Street,City,PostalCode``."""
        parts = [part.strip() for part in line.split(",")]
        return validate_customer(dict(zip(CUSTOMER_LINE_FIELDS, parts)))


def validate_customer(data: Dict[str, Any]) -> CustomerInfo:
    try:
        return CustomerInfo.model_validate(data)
    except ValidationError as e:
        raise InvalidCustomerInfo(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        ) from e


class Confirmation(BaseModel):
    order_number: str
    total: float
    estimated_delivery: Optional[datetime] = None
    is_demo: bool = False


def build_order_request(cart: Cart, customer: CustomerInfo) -> Dict[str, Any]:
    return {
        "customer": {
            "firstName": customer.first_name,
            "lastName": customer.last_name,
            "email": customer.email,
            "phone": customer.phone,
            "address": {
                "street": customer.street,
                "city": customer.city,
                "postalCode": customer.postal_code,
                "country": DEFAULT_COUNTRY,
            },
        },
        "items": [
            {"productId": item.id, "name": item.name, "quantity": item.quantity, "price": item.price}
            for item in cart.items
        ],
        "payment": {"method": DEFAULT_PAYMENT_METHOD},
    }


def confirmation_from_order(order: Dict[str, Any]) -> Confirmation:
    return Confirmation(
        order_number=order["orderNumber"],
        total=order["totals"]["total"],
        estimated_delivery=(order.get("delivery") or {}).get("estimatedDate"),
    )


def demo_confirmation(cart: Cart, now: Optional[datetime] = None) -> Confirmation:
    now = now or datetime.now()
    millis = str(int(time.time() * 1000))
    return Confirmation(
        order_number=f"BA78-DEMO-{millis[-6:]}",
        total=cart_total(cart),
        estimated_delivery=now + timedelta(days=DEMO_DELIVERY_DAYS),
        is_demo=True,
    )
