# Overview: Return processing; cumulative returned quantities, return documents, reversals.

"""
Return Processor

INPUT: cumulative returned quantities, [(purchase_item_id, new_returned), ...],
the same convention as receipts. Per line:
- new_returned <  current returned  -> ValidationError (returns cannot be undone)
- new_returned == current returned  -> line skipped
- new_returned >  received          -> ValidationError reporting the maximum
Per-line delta is new_returned - current returned.

SEQUENCE:
1. Validate every line (fail fast, nothing written)
2. Commit item quantities, a PurchaseReturn (+ items) and the status together
3. Stock ledger -delta per line                       (best-effort)
4. Journal reversal for the returned value            (best-effort)
5. Payment status refresh (net payable went down)     (best-effort)
6. partial_return / full_return event, then
   balance_resolved when applicable                   (best-effort)
"""

from __future__ import annotations

from ..extensions import db
from ..models import PurchaseReturn, PurchaseReturnItem
from purchasing.errors import NotFoundError, SideEffectError, TimelineError, ValidationError
from purchasing.time_utils import today, utcnow
from purchasing.validation import coerce_business_date, normalize_quantity_updates, require_text
from . import (
    document_service,
    journal_service,
    payment_service,
    purchase_repository,
    stock_ledger_service,
    timeline_service,
)
from .purchase_cache import invalidate_purchase
from .side_effects import (
    STEP_JOURNAL,
    STEP_PAYMENT_STATUS,
    STEP_STOCK,
    STEP_TIMELINE,
    ReturnResult,
    run_side_effect,
)
from .status_service import STATUS_RETURNED, derive_status, item_totals


RETURN_NUMBER_PREFIX = "PR-"


def _plan_return(items_by_id: dict, updates: list[tuple[int, int]], purchase_id: int) -> list[tuple]:
    plan = []
    for item_id, new_returned in updates:
        item = items_by_id.get(item_id)
        if item is None:
            raise NotFoundError(f"Purchase item {item_id} not found on purchase {purchase_id}")
        current = item.returned_quantity
        if new_returned < current:
            raise ValidationError(
                f"Returned quantity for {item.item_name} cannot decrease below {current}"
            )
        if new_returned > item.received_quantity:
            raise ValidationError(
                f"Cannot return more than received for {item.item_name}: maximum returnable is "
                f"{item.received_quantity} ({item.received_quantity - current} more)"
            )
        delta = new_returned - current
        if delta:
            plan.append((item, new_returned, delta))
    return plan


def process_return(
    purchase_id: int,
    reason: str,
    return_date,
    actor: str,
    updates,
) -> ReturnResult:
    """
    Apply cumulative returned quantities to a purchase.

    Args:
        purchase_id: Purchase being returned against
        reason: Return reason (required)
        return_date: Business date of the return (defaults to today when None)
        actor: Who is processing the return
        updates: Cumulative returned quantities per purchase item

    Returns:
        ReturnResult with the created return document and side effect outcomes

    Raises:
        ValidationError: quantity outside current <= new <= received, missing reason
        NotFoundError: purchase or item not found
    """
    reason = require_text(reason, "reason")
    actor = require_text(actor, "actor")
    return_date = coerce_business_date(return_date, "return_date", default=today())
    normalized = normalize_quantity_updates(updates, "returned_quantity")

    purchase = purchase_repository.get_purchase(purchase_id)
    items = purchase_repository.get_items(purchase_id)
    plan = _plan_return({item.id: item for item in items}, normalized, purchase_id)

    result = ReturnResult(
        purchase_id=purchase_id,
        previous_status=purchase.status,
        new_status=purchase.status,
    )
    if not plan:
        return result

    if return_date < purchase.purchase_date:
        raise ValidationError(
            f"return_date {return_date.isoformat()} is before purchase date "
            f"{purchase.purchase_date.isoformat()}"
        )

    now = utcnow()
    return_total = sum(delta * item.unit_price_cents for item, _, delta in plan)

    # Primary write: quantities, return document and status in one commit
    return_number = document_service.next_document_number(
        document_type=document_service.DOCUMENT_PURCHASE_RETURN,
        prefix=RETURN_NUMBER_PREFIX,
    )
    purchase_return = PurchaseReturn(
        purchase_id=purchase_id,
        return_number=return_number,
        return_date=return_date,
        reason=reason,
        total_amount_cents=return_total,
        refund_status="pending",
        refund_amount_cents=0,
        auto_refund_eligible=True,
        created_by=actor,
        created_at=now,
    )
    db.session.add(purchase_return)
    db.session.flush()
    for item, new_returned, delta in plan:
        item.returned_quantity = new_returned
        db.session.add(PurchaseReturnItem(
            return_id=purchase_return.id,
            purchase_item_id=item.id,
            item_type=item.item_type,
            item_id=item.item_id,
            item_name=item.item_name,
            variation_id=item.variation_id,
            quantity_returned=delta,
            unit_price_cents=item.unit_price_cents,
            total_amount_cents=delta * item.unit_price_cents,
            created_at=now,
        ))
    ordered, received, returned = item_totals(items)
    new_status = derive_status(ordered, received, returned)
    if new_status != purchase.status:
        purchase.status = new_status
        purchase.status_updated_at = now
    purchase.updated_at = now
    db.session.commit()

    return_id = purchase_return.id
    result.return_id = return_id
    result.return_number = purchase_return.return_number
    result.new_status = new_status
    result.changed_items = len(plan)
    result.total_delta = sum(delta for _, _, delta in plan)
    result.return_amount_cents = return_total

    warehouse_id = purchase.warehouse_id
    supplier_name = purchase.supplier_name
    for item, _new_returned, delta in plan:
        run_side_effect(
            result.outcomes,
            STEP_STOCK,
            lambda item=item, delta=delta: stock_ledger_service.apply_stock_delta(
                item_type=item.item_type,
                item_id=item.item_id,
                warehouse_id=warehouse_id,
                variation_id=item.variation_id,
                quantity_delta=-delta,
                movement_type=stock_ledger_service.MOVEMENT_PURCHASE_RETURN,
                reference_id=return_id,
                reason="purchase return",
                actor=actor,
                notes=reason,
            ),
            reference=item.id,
            purchase_id=purchase_id,
            return_id=return_id,
            purchase_item_id=item.id,
            quantity_delta=-delta,
        )

    if return_total > 0:
        run_side_effect(
            result.outcomes,
            STEP_JOURNAL,
            lambda: journal_service.post_purchase_return(
                return_id, purchase_id, supplier_name, return_total, return_date, actor
            ),
            error_cls=SideEffectError,
            purchase_id=purchase_id,
            return_id=return_id,
            amount_cents=return_total,
        )

    run_side_effect(
        result.outcomes,
        STEP_PAYMENT_STATUS,
        lambda: payment_service.refresh_payment_status(purchase_id),
        reference=purchase_id,
        purchase_id=purchase_id,
    )

    event_type = (
        timeline_service.EVENT_FULL_RETURN if new_status == STATUS_RETURNED
        else timeline_service.EVENT_PARTIAL_RETURN
    )
    run_side_effect(
        result.outcomes,
        STEP_TIMELINE,
        lambda: timeline_service.record_event(
            purchase_id,
            event_type,
            description=(
                f"{returned} of {received} received items returned "
                f"(+{result.total_delta} returned)"
            ),
            previous_status=result.previous_status,
            new_status=new_status,
            affected_items_count=len(plan),
            total_items_count=len(items),
            return_reason=reason,
            return_amount_cents=return_total,
            return_id=return_id,
            metadata={"return_number": result.return_number},
            actor=actor,
        ),
        error_cls=TimelineError,
        purchase_id=purchase_id,
        return_id=return_id,
    )
    result.event_types.append(event_type)

    if timeline_service.is_balance_resolved(received, returned, len(items)):
        run_side_effect(
            result.outcomes,
            STEP_TIMELINE,
            lambda: timeline_service.record_event(
                purchase_id,
                timeline_service.EVENT_BALANCE_RESOLVED,
                description=(
                    f"All {received} received items returned; net received quantity is zero"
                ),
                new_status=new_status,
                total_items_count=len(items),
                return_id=return_id,
                actor=actor,
            ),
            error_cls=TimelineError,
            purchase_id=purchase_id,
            return_id=return_id,
        )
        result.event_types.append(timeline_service.EVENT_BALANCE_RESOLVED)

    invalidate_purchase(purchase_id)
    return result
