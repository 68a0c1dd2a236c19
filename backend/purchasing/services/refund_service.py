# Overview: Refund eligibility, refund-due arithmetic and oldest-first allocation.

"""
Refund Engine

WHY: Returning goods the supplier was already paid for creates money owed
back. That amount is allocated across the purchase's active payments,
oldest payment first, one RefundTransaction per payment touched.

RULES:
- Eligibility: days from purchase_date to return_date <= REFUND_WINDOW_DAYS
- A payment's refundable balance = amount - refunds against it that are
  pending, processing or completed
- A return only allocates its not-yet-allocated amount, so re-running the
  allocation is idempotent; failed refunds release their allocation
- Any amount that cannot be allocated is reported, never dropped
- Refund method follows the payment: cash -> cash,
  bank_transfer -> bank_transfer, anything else -> check
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Purchase, PurchaseReturn, RefundTransaction
from purchasing.errors import SideEffectError, ValidationError
from purchasing.time_utils import days_between, today, utcnow
from purchasing.validation import coerce_business_date, require_text
from . import journal_service, purchase_repository
from .purchase_cache import invalidate_purchase
from .side_effects import STEP_JOURNAL, RefundResult, run_side_effect


# =============================================================================
# REFUND STATUS (CONSTANTS)
# =============================================================================

REFUND_PENDING = "pending"
REFUND_PROCESSING = "processing"
REFUND_COMPLETED = "completed"
REFUND_FAILED = "failed"
REFUND_CANCELLED = "cancelled"

OPEN_REFUND_STATUSES = {REFUND_PENDING, REFUND_PROCESSING}
ALLOCATED_REFUND_STATUSES = {REFUND_PENDING, REFUND_PROCESSING, REFUND_COMPLETED}

REFUND_METHOD_BY_PAYMENT_METHOD = {
    "cash": "cash",
    "bank_transfer": "bank_transfer",
}
DEFAULT_REFUND_METHOD = "check"


def refund_method_for(payment_method: str) -> str:
    return REFUND_METHOD_BY_PAYMENT_METHOD.get(payment_method, DEFAULT_REFUND_METHOD)


def check_refund_eligibility(purchase: Purchase, return_date=None) -> dict:
    """
    Whether a return on this purchase falls inside the refund window.

    Returns:
        {"eligible", "days_since_purchase", "window_days", "reason"}
    """
    window = current_app.config.get("REFUND_WINDOW_DAYS", 30)
    return_date = coerce_business_date(return_date, "return_date", default=today())
    days = days_between(purchase.purchase_date, return_date)
    if days < 0:
        raise ValidationError(
            f"return_date {return_date.isoformat()} is before purchase date "
            f"{purchase.purchase_date.isoformat()}"
        )
    eligible = days <= window
    return {
        "eligible": eligible,
        "days_since_purchase": days,
        "window_days": window,
        "reason": None if eligible else (
            f"Return is {days} days after purchase, outside the {window}-day refund window"
        ),
    }


def _sum_refunds(refunds, statuses) -> int:
    return sum(r.refund_amount_cents for r in refunds if r.status in statuses)


def compute_refund_due(purchase_id: int) -> dict:
    """
    Refund still owed by the supplier for one purchase.

    refund_due = min(returned value, active amount paid)
                 - completed refunds - pending/processing refunds, floored at 0

    payment_made_after_returns is informational: it marks that the earliest
    active payment was recorded after the latest return, i.e. every payment
    was made against the already-netted amount. It does not change the
    arithmetic.
    """
    items = purchase_repository.get_items(purchase_id)
    return_amount = sum(i.returned_quantity * i.unit_price_cents for i in items)
    payments = purchase_repository.list_payments(purchase_id, include_voided=False)
    amount_paid = sum(p.amount_cents for p in payments)
    refunds = purchase_repository.list_refunds_for_purchase(purchase_id)
    refunded = _sum_refunds(refunds, {REFUND_COMPLETED})
    pending = _sum_refunds(refunds, OPEN_REFUND_STATUSES)

    payment_made_after_returns = False
    returns = purchase_repository.list_returns(purchase_id)
    last_return_at = max((r.created_at for r in returns if r.created_at), default=None)
    first_paid_at = min((p.created_at for p in payments if p.created_at), default=None)
    if last_return_at is not None and first_paid_at is not None:
        payment_made_after_returns = first_paid_at > last_return_at

    refund_due = 0
    if return_amount > 0 and amount_paid > 0:
        refund_due = max(0, min(return_amount, amount_paid) - refunded - pending)

    return {
        "refund_due_cents": refund_due,
        "return_amount_cents": return_amount,
        "amount_paid_cents": amount_paid,
        "refunded_cents": refunded,
        "pending_refund_cents": pending,
        "has_returns": return_amount > 0,
        "payment_made_after_returns": payment_made_after_returns,
    }


# =============================================================================
# ALLOCATION
# =============================================================================

def _allocation_plan(purchase_return: PurchaseReturn) -> tuple[list[dict], int, int]:
    """
    Oldest-payment-first allocation of the return's unallocated amount.

    Returns:
        (allocations, amount_to_allocate, unallocated_remainder)
    """
    already = _sum_refunds(
        purchase_repository.list_refunds_for_return(purchase_return.id),
        ALLOCATED_REFUND_STATUSES,
    )
    to_allocate = max(0, purchase_return.total_amount_cents - already)
    remaining = to_allocate
    allocations = []
    for payment in purchase_repository.list_payments(purchase_return.purchase_id, include_voided=False):
        if remaining <= 0:
            break
        used = _sum_refunds(
            purchase_repository.list_refunds_for_payment(payment.id),
            ALLOCATED_REFUND_STATUSES,
        )
        available = payment.amount_cents - used
        if available <= 0:
            continue
        amount = min(available, remaining)
        allocations.append({
            "payment_id": payment.id,
            "payment_method": payment.payment_method,
            "payment_amount_cents": payment.amount_cents,
            "available_cents": available,
            "refund_amount_cents": amount,
            "refund_method": refund_method_for(payment.payment_method),
        })
        remaining -= amount
    return allocations, to_allocate, remaining


def calculate_refund_breakdown(return_id: int) -> dict:
    """Dry run of process_automatic_refund. Writes nothing."""
    purchase_return = purchase_repository.get_return(return_id)
    allocations, to_allocate, remaining = _allocation_plan(purchase_return)
    return {
        "return_id": return_id,
        "return_amount_cents": purchase_return.total_amount_cents,
        "amount_to_allocate_cents": to_allocate,
        "allocations": allocations,
        "unallocated_cents": remaining,
    }


def process_automatic_refund(return_id: int, actor: str) -> RefundResult:
    """
    Allocate a return's refund across the purchase's active payments.

    Creates one pending RefundTransaction per payment touched. An
    ineligible return is flagged (auto_refund_eligible=False,
    refund_status=cancelled) and reported through result.error.

    Raises:
        NotFoundError: return not found
        ValidationError: missing actor
    """
    actor = require_text(actor, "actor")
    purchase_return = purchase_repository.get_return(return_id)
    purchase = purchase_repository.get_purchase(purchase_return.purchase_id)
    result = RefundResult(purchase_id=purchase.id, return_id=return_id)

    if not purchase_return.auto_refund_eligible:
        result.error = f"Return {purchase_return.return_number} is not eligible for automatic refund"
        return result

    eligibility = check_refund_eligibility(purchase, purchase_return.return_date)
    if not eligibility["eligible"]:
        purchase_return.auto_refund_eligible = False
        purchase_return.refund_status = REFUND_CANCELLED
        purchase_return.refund_failure_reason = eligibility["reason"]
        db.session.commit()
        invalidate_purchase(purchase.id)
        result.error = eligibility["reason"]
        return result

    allocations, to_allocate, remaining = _allocation_plan(purchase_return)
    now = utcnow()
    for allocation in allocations:
        refund = RefundTransaction(
            return_id=return_id,
            payment_id=allocation["payment_id"],
            refund_amount_cents=allocation["refund_amount_cents"],
            refund_method=allocation["refund_method"],
            status=REFUND_PENDING,
            created_by=actor,
            created_at=now,
        )
        db.session.add(refund)
        db.session.flush()
        result.transaction_ids.append(refund.id)
        result.allocated_cents += refund.refund_amount_cents

    if allocations:
        purchase_return.refund_amount_cents = (
            (purchase_return.refund_amount_cents or 0) + result.allocated_cents
        )
        purchase_return.refund_status = REFUND_PROCESSING
        purchase_return.refund_failure_reason = None
    result.unallocated_cents = remaining
    if remaining > 0:
        result.error = (
            f"Unable to allocate {remaining} cents of return {purchase_return.return_number}: "
            f"no refundable payment balance left"
        )
        current_app.logger.warning(
            "Refund allocation short for return %s (purchase %s): %s cents unallocated",
            return_id, purchase.id, remaining,
        )
    db.session.commit()
    invalidate_purchase(purchase.id)
    return result


# =============================================================================
# REFUND TRANSACTION LIFECYCLE
# =============================================================================

def _open_refund(refund_id: int) -> RefundTransaction:
    refund = purchase_repository.get_refund_transaction(refund_id)
    if refund.status not in OPEN_REFUND_STATUSES:
        raise ValidationError(f"Refund transaction {refund_id} is already {refund.status}")
    return refund


def complete_refund_transaction(
    refund_id: int,
    actor: str,
    bank_reference: str | None = None,
    check_number: str | None = None,
) -> RefundResult:
    """
    Mark a refund as received from the supplier.

    The return's refund status becomes completed once none of its
    transactions are still open. The journal entry is best-effort.
    """
    actor = require_text(actor, "actor")
    refund = _open_refund(refund_id)
    purchase_return = purchase_repository.get_return(refund.return_id)
    purchase = purchase_repository.get_purchase(purchase_return.purchase_id)
    others_open = any(
        r.status in OPEN_REFUND_STATUSES
        for r in purchase_repository.list_refunds_for_return(purchase_return.id)
        if r.id != refund_id
    )

    now = utcnow()
    refund.status = REFUND_COMPLETED
    refund.processed_at = now
    refund.bank_reference = bank_reference
    refund.check_number = check_number
    if not others_open:
        purchase_return.refund_status = REFUND_COMPLETED
        purchase_return.refund_processed_at = now
        purchase_return.refund_processed_by = actor
    db.session.commit()

    purchase_id = purchase.id
    supplier_name = purchase.supplier_name
    amount_cents = refund.refund_amount_cents
    refund_method = refund.refund_method
    result = RefundResult(
        purchase_id=purchase_id,
        return_id=purchase_return.id,
        transaction_ids=[refund_id],
        allocated_cents=amount_cents,
    )

    def _post_journal():
        entry_id = journal_service.post_refund_received(
            refund_id, purchase_id, supplier_name, amount_cents, today(), actor,
            refund_method=refund_method,
        )
        row = purchase_repository.get_refund_transaction(refund_id)
        row.journal_entry_id = entry_id
        db.session.commit()
        return entry_id

    run_side_effect(
        result.outcomes,
        STEP_JOURNAL,
        _post_journal,
        error_cls=SideEffectError,
        purchase_id=purchase_id,
        refund_id=refund_id,
    )

    invalidate_purchase(purchase_id)
    return result


def fail_refund_transaction(refund_id: int, reason: str, actor: str | None = None) -> RefundResult:
    """
    Mark a refund as failed and release its allocation.

    The return is flagged failed with the reason; a later
    process_automatic_refund call can allocate the released amount again.
    """
    reason = require_text(reason, "reason")
    refund = _open_refund(refund_id)
    purchase_return = purchase_repository.get_return(refund.return_id)

    refund.status = REFUND_FAILED
    refund.failure_reason = reason
    refund.processed_at = utcnow()
    purchase_return.refund_amount_cents = max(
        0, (purchase_return.refund_amount_cents or 0) - refund.refund_amount_cents
    )
    purchase_return.refund_status = REFUND_FAILED
    purchase_return.refund_failure_reason = reason
    if actor:
        purchase_return.refund_processed_by = actor
    db.session.commit()

    invalidate_purchase(purchase_return.purchase_id)
    return RefundResult(
        purchase_id=purchase_return.purchase_id,
        return_id=purchase_return.id,
        transaction_ids=[refund_id],
        error=reason,
    )


def list_refunds(return_id: int) -> list[dict]:
    return [r.to_dict() for r in purchase_repository.list_refunds_for_return(return_id)]
