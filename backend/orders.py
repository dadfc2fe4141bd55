"""
Order reconciliation and lifecycle.

Every write goes through ``normalize_order`` first: item subtotals and the
totals block are recomputed from price and quantity, a delivery estimate is
filled in and status changes land in the timeline. Nothing is written when
the normalized order fails validation.

Order numbers are ``BA78-YYMMDD-NNN`` where NNN counts the orders already
created that day. Counting then inserting is not atomic; two concurrent
creations can compute the same number. The unique index on ``orderNumber``
rejects the second insert and ``create_order`` recounts and retries.
"""
from __future__ import annotations
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from backend import database
from backend.errors import FieldError, NotFound, OrderNumberConflict, ValidationFailed, field_errors
from backend.schemas import Order, OrderCreate, OrderItem, TimelineEntry, round_half_up

logger = logging.getLogger(__name__)

ORDER_PREFIX = "BA78"
AMOUNT_TOLERANCE = 0.01
DELIVERY_DAYS = {"express": 1, "standard": 3}
ORDER_NUMBER_ATTEMPTS = 3


def round_money(value: float) -> float:
    return round_half_up(value, 2)


def day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def format_order_number(now: datetime, existing_count_for_day: int) -> str:
    return f"{ORDER_PREFIX}-{now:%y%m%d}-{existing_count_for_day + 1:03d}"


def assign_order_number(order: Order, existing_count_for_day: int, now: Optional[datetime] = None) -> Order:
    if not order.order_number:
        order.order_number = format_order_number(now or database.utcnow(), existing_count_for_day)
    return order


def normalize_item_subtotals(items: List[OrderItem]) -> None:
    for item in items:
        expected = item.price * item.quantity
        if abs(item.subtotal - expected) > AMOUNT_TOLERANCE:
            item.subtotal = round_money(expected)


def reconcile_totals(order: Order) -> None:
    totals = order.totals
    subtotal = sum(item.subtotal for item in order.items)
    if abs(totals.subtotal - subtotal) > AMOUNT_TOLERANCE:
        totals.subtotal = round_money(subtotal)

    total = totals.subtotal + totals.shipping + totals.tax - totals.discount
    if abs(totals.total - total) > AMOUNT_TOLERANCE:
        totals.total = round_money(total)


def estimate_delivery_date(order: Order, now: datetime) -> None:
    if order.delivery.estimated_date is not None:
        return
    days = DELIVERY_DAYS.get(order.delivery.method, 0)
    if days > 0:
        order.delivery.estimated_date = now + timedelta(days=days)


def record_status_change(order: Order, previous: Optional[Order], now: datetime) -> None:
    if previous is None or order.status == previous.status:
        return
    # update_status already logged this transition
    added = order.timeline[len(previous.timeline):]
    if any(entry.status == order.status for entry in added):
        return
    order.timeline.append(
        TimelineEntry(status=order.status, date=now, note=f"Status changed to {order.status}")
    )


def check_delivery_date(order: Order, previous: Optional[Order], now: datetime) -> List[FieldError]:
    estimated = order.delivery.estimated_date
    if estimated is None:
        return []
    if previous is not None and previous.delivery.estimated_date == estimated:
        return []
    if estimated <= now:
        return [FieldError("delivery.estimatedDate", "Delivery date must be in the future")]
    return []


def check_amounts(order: Order) -> List[FieldError]:
    """Amounts that overflow to infinity cannot be rounded or stored."""
    errors = [
        FieldError(f"items.{i}.subtotal", "Amount is too large")
        for i, item in enumerate(order.items)
        if not math.isfinite(item.price * item.quantity)
    ]
    if errors:
        return errors
    totals = order.totals
    subtotal = sum(item.price * item.quantity for item in order.items)
    if not math.isfinite(subtotal + totals.shipping + totals.tax):
        return [FieldError("totals.total", "Amount is too large")]
    return []


def validate_order(order: Order) -> List[FieldError]:
    try:
        Order.model_validate(order.model_dump(by_alias=True))
    except ValidationError as exc:
        return field_errors(exc)
    return []


def normalize_order(
    order: Order,
    previous: Optional[Order] = None,
    now: Optional[datetime] = None,
) -> Tuple[Order, List[FieldError]]:
    """Return a reconciled copy of ``order`` and every validation error found.

    ``previous`` is the version currently stored, None when the order is new.
    The input order is never mutated.
    """
    now = now or database.utcnow()
    normalized = order.model_copy(deep=True)
    errors = check_delivery_date(normalized, previous, now)
    overflow = check_amounts(normalized)
    if overflow:
        return normalized, errors + overflow

    normalize_item_subtotals(normalized.items)
    reconcile_totals(normalized)
    estimate_delivery_date(normalized, now)
    record_status_change(normalized, previous, now)

    errors.extend(validate_order(normalized))
    return normalized, errors


def order_from_request(payload: OrderCreate) -> Order:
    return Order(
        customer=payload.customer,
        items=payload.items,
        totals=payload.totals,
        payment=payload.payment,
        delivery=payload.delivery,
        notes=payload.notes,
    )


async def create_order(order: Order) -> Order:
    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        now = database.utcnow()
        candidate = order.model_copy(deep=True)
        if not candidate.order_number:
            start, end = day_bounds(now)
            count = await database.count_documents("order", {"createdAt": {"$gte": start, "$lt": end}})
            assign_order_number(candidate, count, now)

        normalized, errors = normalize_order(candidate, None, now)
        if errors:
            raise ValidationFailed(errors)

        try:
            saved = await database.create_document("order", normalized.to_document())
        except DuplicateKeyError:
            if order.order_number:
                raise OrderNumberConflict(f"Order number {order.order_number} already exists")
            logger.warning(
                "Order number %s taken by a concurrent order (attempt %d/%d)",
                normalized.order_number, attempt, ORDER_NUMBER_ATTEMPTS,
            )
            continue

        logger.info("Order %s created, total %.2f", normalized.order_number, normalized.totals.total)
        return Order.model_validate(saved)

    raise OrderNumberConflict(f"Could not allocate an order number after {ORDER_NUMBER_ATTEMPTS} attempts")


async def save_order(order: Order, previous: Order) -> Order:
    normalized, errors = normalize_order(order, previous)
    if errors:
        raise ValidationFailed(errors)
    saved = await database.replace_document("order", previous.id, normalized.to_document())
    return Order.model_validate(saved)


async def get_order(order_id: str) -> Order:
    return Order.model_validate(await database.get_document("order", order_id))


async def get_order_by_number(order_number: str) -> Order:
    doc = await database.find_document("order", {"orderNumber": order_number.upper()})
    if doc is None:
        raise NotFound("order", order_number)
    return Order.model_validate(doc)


def _push_status(order: Order, new_status: str, note: str) -> None:
    order.status = new_status
    # built unvalidated so a bad status surfaces as a ValidationFailed on save
    order.timeline.append(
        TimelineEntry.model_construct(
            status=new_status,
            date=database.utcnow(),
            note=note or f"Status updated: {new_status}",
            user=None,
        )
    )


async def update_status(order: Order, new_status: str, note: str = "") -> Order:
    updated = order.model_copy(deep=True)
    _push_status(updated, new_status, note)
    saved = await save_order(updated, order)
    logger.info("Order %s moved to %s", saved.order_number, new_status)
    return saved


async def mark_as_paid(order: Order, transaction_id: str) -> Order:
    updated = order.model_copy(deep=True)
    updated.payment.status = "paid"
    updated.payment.paid_at = database.utcnow()
    updated.payment.transaction_id = transaction_id
    updated.payment.amount = updated.totals.total
    return await save_order(updated, order)


async def add_tracking_number(order: Order, tracking_number: str, carrier: str = "") -> Order:
    updated = order.model_copy(deep=True)
    updated.delivery.tracking_number = tracking_number
    updated.delivery.carrier = carrier
    _push_status(updated, "shipped", f"Shipped with tracking number: {tracking_number}")
    return await save_order(updated, order)


async def mark_as_delivered(order: Order) -> Order:
    updated = order.model_copy(deep=True)
    updated.delivery.actual_date = database.utcnow()
    _push_status(updated, "delivered", "Order delivered")
    return await save_order(updated, order)
