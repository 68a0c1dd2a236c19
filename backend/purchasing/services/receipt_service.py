# Overview: Receipt processing; cumulative received quantities, stock and journal side effects.

"""
Receipt Processor

INPUT: cumulative received quantities, [(purchase_item_id, new_received), ...].
The new value is written absolutely (never incremented), so resubmitting
the same call is a no-op and concurrent partial submissions cannot lose an
update by double-adding.

SEQUENCE:
1. Validate every line (fail fast, nothing written)
2. Commit item quantities and the re-derived status together
3. Stock ledger +delta per line with a positive delta      (best-effort)
4. Journal entry for the received value, if any            (best-effort)
5. One partial_receipt / full_receipt / status_change event (best-effort)

Steps 3-5 never roll back step 2. Their outcomes are reported on the
ReceiptResult.
"""

from __future__ import annotations

from ..extensions import db
from purchasing.errors import NotFoundError, SideEffectError, TimelineError, ValidationError
from purchasing.money import format_cents
from purchasing.time_utils import today, utcnow
from purchasing.validation import coerce_business_date, normalize_quantity_updates, require_text
from . import journal_service, purchase_repository, stock_ledger_service, timeline_service
from .purchase_cache import invalidate_purchase
from .side_effects import STEP_JOURNAL, STEP_STOCK, STEP_TIMELINE, ReceiptResult, run_side_effect
from .status_service import derive_status, item_totals


def _plan_receipt(items_by_id: dict, updates: list[tuple[int, int]], purchase_id: int) -> list[tuple]:
    plan = []
    for item_id, new_received in updates:
        item = items_by_id.get(item_id)
        if item is None:
            raise NotFoundError(f"Purchase item {item_id} not found on purchase {purchase_id}")
        if new_received > item.quantity:
            raise ValidationError(
                f"Received quantity for {item.item_name} cannot exceed ordered quantity {item.quantity}"
            )
        if new_received < item.returned_quantity:
            raise ValidationError(
                f"Received quantity for {item.item_name} cannot be less than returned quantity "
                f"{item.returned_quantity}"
            )
        delta = new_received - item.received_quantity
        if delta:
            plan.append((item, new_received, delta))
    return plan


def receive_items(purchase_id: int, updates, actor: str, receipt_date=None) -> ReceiptResult:
    """
    Apply cumulative received quantities to a purchase.

    Args:
        purchase_id: Purchase being received
        updates: Cumulative quantities per purchase item
        actor: Who is receiving
        receipt_date: Business date for the journal entry (defaults to today)

    Returns:
        ReceiptResult listing the outcome of every side effect

    Raises:
        ValidationError: a quantity is outside returned <= new <= ordered
        NotFoundError: purchase or item not found
    """
    actor = require_text(actor, "actor")
    receipt_date = coerce_business_date(receipt_date, "receipt_date", default=today())
    normalized = normalize_quantity_updates(updates, "received_quantity")

    purchase = purchase_repository.get_purchase(purchase_id)
    items = purchase_repository.get_items(purchase_id)
    plan = _plan_receipt({item.id: item for item in items}, normalized, purchase_id)

    result = ReceiptResult(
        purchase_id=purchase_id,
        previous_status=purchase.status,
        new_status=purchase.status,
    )
    if not plan:
        return result

    # Primary write: quantities and status in one commit
    for item, new_received, _delta in plan:
        item.received_quantity = new_received
    ordered, received, returned = item_totals(items)
    new_status = derive_status(ordered, received, returned)
    now = utcnow()
    if new_status != purchase.status:
        purchase.status = new_status
        purchase.status_updated_at = now
    purchase.updated_at = now
    db.session.commit()

    result.new_status = new_status
    result.changed_items = len(plan)
    result.total_delta = sum(delta for _, _, delta in plan)

    warehouse_id = purchase.warehouse_id
    supplier_name = purchase.supplier_name
    receipt_total = 0
    for item, new_received, delta in plan:
        if delta <= 0:
            continue
        receipt_total += delta * item.unit_price_cents
        run_side_effect(
            result.outcomes,
            STEP_STOCK,
            lambda item=item, delta=delta: stock_ledger_service.apply_stock_delta(
                item_type=item.item_type,
                item_id=item.item_id,
                warehouse_id=warehouse_id,
                variation_id=item.variation_id,
                quantity_delta=delta,
                movement_type=stock_ledger_service.MOVEMENT_PURCHASE,
                reference_id=purchase_id,
                reason="purchase receipt",
                actor=actor,
                notes=f"Received {delta} of {item.item_name}",
            ),
            reference=item.id,
            purchase_id=purchase_id,
            purchase_item_id=item.id,
            quantity_delta=delta,
        )
    result.receipt_amount_cents = receipt_total

    if receipt_total > 0:
        run_side_effect(
            result.outcomes,
            STEP_JOURNAL,
            lambda: journal_service.post_purchase_receipt(
                purchase_id, purchase_id, supplier_name, receipt_total, receipt_date, actor
            ),
            error_cls=SideEffectError,
            purchase_id=purchase_id,
            amount_cents=receipt_total,
        )

    if result.total_delta > 0:
        event_type = (
            timeline_service.EVENT_FULL_RECEIPT if received == ordered
            else timeline_service.EVENT_PARTIAL_RECEIPT
        )
        description = (
            f"{result.total_delta} items received ({received} of {ordered} total), "
            f"value {format_cents(receipt_total)}"
        )
    else:
        event_type = timeline_service.EVENT_STATUS_CHANGE
        description = f"Received quantities corrected ({received} of {ordered} total)"
    result.event_type = event_type

    run_side_effect(
        result.outcomes,
        STEP_TIMELINE,
        lambda: timeline_service.record_event(
            purchase_id,
            event_type,
            description=description,
            previous_status=result.previous_status,
            new_status=new_status,
            affected_items_count=len(plan),
            total_items_count=len(items),
            metadata={"total_delta": result.total_delta, "receipt_amount_cents": receipt_total},
            actor=actor,
        ),
        error_cls=TimelineError,
        purchase_id=purchase_id,
    )

    invalidate_purchase(purchase_id)
    return result
