# Overview: Append-only purchase timeline with idempotent historical backfill.

"""
Purchase Timeline

Invariants:
- Events are append-only: no updates, no deletes.
- Ordered by event_date (business time), then id.
- One order_placed per purchase (check-then-insert plus a partial unique index).
- Backfill never duplicates: each synthesized event is inserted only after
  checking that an equivalent event is absent.
"""

from __future__ import annotations

import json
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Purchase, PurchaseEvent
from purchasing.errors import TimelineError
from purchasing.money import format_cents
from purchasing.time_utils import utcnow
from . import purchase_repository
from .purchase_cache import get_cache, invalidate_purchase, timeline_key
from .status_service import STATUS_PENDING, item_totals


# =============================================================================
# EVENT TYPES (CONSTANTS)
# =============================================================================

EVENT_ORDER_PLACED = "order_placed"
EVENT_PARTIAL_RECEIPT = "partial_receipt"
EVENT_FULL_RECEIPT = "full_receipt"
EVENT_PARTIAL_RETURN = "partial_return"
EVENT_FULL_RETURN = "full_return"
EVENT_BALANCE_RESOLVED = "balance_resolved"
EVENT_STATUS_CHANGE = "status_change"
EVENT_PAYMENT_MADE = "payment_made"
EVENT_PAYMENT_VOIDED = "payment_voided"
EVENT_CANCELLED = "cancelled"

EVENT_TITLES = {
    EVENT_ORDER_PLACED: "Order Placed",
    EVENT_PARTIAL_RECEIPT: "Items Partially Received",
    EVENT_FULL_RECEIPT: "All Items Received",
    EVENT_PARTIAL_RETURN: "Partial Return Processed",
    EVENT_FULL_RETURN: "Return Completed",
    EVENT_BALANCE_RESOLVED: "Balance Resolved",
    EVENT_STATUS_CHANGE: "Status Changed",
    EVENT_PAYMENT_MADE: "Payment Made",
    EVENT_PAYMENT_VOIDED: "Payment Voided",
    EVENT_CANCELLED: "Order Cancelled",
}

VALID_EVENT_TYPES = set(EVENT_TITLES)

RECEIPT_EVENT_TYPES = {EVENT_PARTIAL_RECEIPT, EVENT_FULL_RECEIPT}
RETURN_EVENT_TYPES = {EVENT_PARTIAL_RETURN, EVENT_FULL_RETURN}

SYSTEM_ACTOR = "system"


def _build_event(
    purchase_id: int,
    event_type: str,
    *,
    description: str | None = None,
    title: str | None = None,
    previous_status: str | None = None,
    new_status: str | None = None,
    affected_items_count: int | None = None,
    total_items_count: int | None = None,
    return_reason: str | None = None,
    return_amount_cents: int | None = None,
    payment_amount_cents: int | None = None,
    payment_method: str | None = None,
    payment_id: int | None = None,
    return_id: int | None = None,
    metadata: dict | None = None,
    actor: str | None = None,
    event_date: datetime | None = None,
) -> PurchaseEvent:
    if event_type not in VALID_EVENT_TYPES:
        raise TimelineError(f"Invalid event type: {event_type}")
    return PurchaseEvent(
        purchase_id=purchase_id,
        event_type=event_type,
        event_title=title or EVENT_TITLES[event_type],
        description=description,
        previous_status=previous_status,
        new_status=new_status,
        affected_items_count=affected_items_count,
        total_items_count=total_items_count,
        return_reason=return_reason,
        return_amount_cents=return_amount_cents,
        payment_amount_cents=payment_amount_cents,
        payment_method=payment_method,
        payment_id=payment_id,
        return_id=return_id,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
        created_by=actor,
        event_date=event_date or utcnow(),
        created_at=utcnow(),
    )


def record_event(purchase_id: int, event_type: str, **fields) -> int:
    """
    Append one timeline event and commit it.

    WHY: Processors call this as their last best-effort step, after the
    primary write has been committed.

    Returns:
        The new event id

    Raises:
        TimelineError: unknown event type
    """
    event = _build_event(purchase_id, event_type, **fields)
    db.session.add(event)
    db.session.commit()
    invalidate_purchase(purchase_id)
    return event.id


def get_purchase_timeline(purchase_id: int, *, force_refresh: bool = False) -> list[dict]:
    """Timeline events as dicts, ordered by event_date then id. Cached."""
    def _load():
        purchase_repository.get_purchase(purchase_id)
        return [event.to_dict() for event in purchase_repository.list_events(purchase_id)]

    return get_cache().get(timeline_key(purchase_id), _load, force_refresh=force_refresh)


# =============================================================================
# BACKFILL
# =============================================================================

def _synthesize_missing(purchase: Purchase) -> list[PurchaseEvent]:
    """
    Build the events a purchase should have but does not.

    Replays the current item aggregates through the receipt and return
    rules. Nothing is inserted here; the caller adds and commits.
    """
    existing = purchase_repository.list_events(purchase.id)
    existing_types = {e.event_type for e in existing}
    paid_ids = {e.payment_id for e in existing if e.event_type == EVENT_PAYMENT_MADE}
    voided_ids = {e.payment_id for e in existing if e.event_type == EVENT_PAYMENT_VOIDED}

    items = purchase_repository.get_items(purchase.id)
    ordered, received, returned = item_totals(items)
    placed_at = purchase.created_at or utcnow()
    activity_at = purchase.status_updated_at or placed_at

    created: list[PurchaseEvent] = []

    if EVENT_ORDER_PLACED not in existing_types:
        created.append(_build_event(
            purchase.id,
            EVENT_ORDER_PLACED,
            description="Purchase order created and sent to supplier",
            new_status=STATUS_PENDING,
            total_items_count=len(items),
            metadata={"backfilled": True},
            actor=SYSTEM_ACTOR,
            event_date=placed_at,
        ))

    if received > 0 and not (existing_types & RECEIPT_EVENT_TYPES):
        full = received == ordered
        created.append(_build_event(
            purchase.id,
            EVENT_FULL_RECEIPT if full else EVENT_PARTIAL_RECEIPT,
            description=f"{received} of {ordered} items received",
            previous_status=STATUS_PENDING,
            new_status="received" if full else "partially_received",
            affected_items_count=sum(1 for i in items if i.received_quantity > 0),
            total_items_count=len(items),
            metadata={"backfilled": True},
            actor=SYSTEM_ACTOR,
            event_date=activity_at,
        ))

    if returned > 0 and not (existing_types & RETURN_EVENT_TYPES):
        returns = purchase_repository.list_returns(purchase.id)
        last_return = returns[-1] if returns else None
        returned_at = last_return.created_at if last_return and last_return.created_at else activity_at
        full = returned == received
        return_amount = sum(i.returned_quantity * i.unit_price_cents for i in items)
        created.append(_build_event(
            purchase.id,
            EVENT_FULL_RETURN if full else EVENT_PARTIAL_RETURN,
            description=f"{returned} of {received} received items returned",
            previous_status="received" if received == ordered else "partially_received",
            new_status="returned" if full else "partially_returned",
            affected_items_count=sum(1 for i in items if i.returned_quantity > 0),
            total_items_count=len(items),
            return_reason=last_return.reason if last_return else "Return processed (reason not specified)",
            return_amount_cents=return_amount,
            return_id=last_return.id if last_return else None,
            metadata={"backfilled": True},
            actor=SYSTEM_ACTOR,
            event_date=returned_at,
        ))
        if (
            is_balance_resolved(received, returned, len(items))
            and EVENT_BALANCE_RESOLVED not in existing_types
        ):
            created.append(_build_event(
                purchase.id,
                EVENT_BALANCE_RESOLVED,
                description="All received items have been returned; net received quantity is zero",
                new_status="returned",
                total_items_count=len(items),
                metadata={"backfilled": True},
                actor=SYSTEM_ACTOR,
                event_date=returned_at,
            ))

    for payment in purchase_repository.list_payments(purchase.id):
        paid_at = payment.created_at or placed_at
        if payment.id not in paid_ids:
            created.append(_build_event(
                purchase.id,
                EVENT_PAYMENT_MADE,
                description=f"Payment of {format_cents(payment.amount_cents)} via {payment.payment_method}",
                payment_amount_cents=payment.amount_cents,
                payment_method=payment.payment_method,
                payment_id=payment.id,
                metadata={"backfilled": True},
                actor=payment.created_by or SYSTEM_ACTOR,
                event_date=paid_at,
            ))
        if payment.status == "void" and payment.id not in voided_ids:
            created.append(_build_event(
                purchase.id,
                EVENT_PAYMENT_VOIDED,
                description=f"Payment of {format_cents(payment.amount_cents)} voided",
                payment_amount_cents=payment.amount_cents,
                payment_method=payment.payment_method,
                payment_id=payment.id,
                metadata={"backfilled": True},
                actor=payment.voided_by or SYSTEM_ACTOR,
                event_date=payment.voided_at or paid_at,
            ))

    return created


def is_balance_resolved(received: int, returned: int, line_count: int) -> bool:
    """
    Whether a return leaves zero net received items worth announcing.

    Single-line orders are excluded: their full return is a plain return.
    """
    return received == returned and received > 1 and line_count > 1


def backfill_timeline(purchase_id: int) -> list[str]:
    """
    Synthesize missing historical events for one purchase.

    Idempotent: a second run creates nothing.

    Returns:
        Event types created, in insertion order
    """
    purchase = purchase_repository.get_purchase(purchase_id)
    created = _synthesize_missing(purchase)
    if not created:
        return []
    db.session.add_all(created)
    db.session.commit()
    invalidate_purchase(purchase_id)
    return [event.event_type for event in created]


def backfill_all_timelines() -> dict:
    """
    Backfill every purchase. One failing purchase is logged and skipped.

    Returns:
        {"processed": n, "events_created": n, "failed": [purchase ids]}
    """
    summary = {"processed": 0, "events_created": 0, "failed": []}
    for purchase_id in purchase_repository.list_purchase_ids():
        try:
            created = backfill_timeline(purchase_id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Timeline backfill failed for purchase %s", purchase_id)
            summary["failed"].append(purchase_id)
            continue
        summary["processed"] += 1
        summary["events_created"] += len(created)
    return summary
