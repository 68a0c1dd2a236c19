# Overview: Purchase payment ledger; append-only payments with void-in-place.

"""
Purchase Payment Ledger

WHY: Track what has been paid to the supplier against what is actually
owed once returns are netted out.

DESIGN PRINCIPLES:
- Append-only: payments are never deleted and amounts never change
- Void-in-place: voiding flips status to 'void', appends to notes and posts a
  reversing journal entry; the original entry stays in the journal
- Only active payments count toward amount paid, everywhere
- Net payable = purchase total - value of returned items (never below zero)
- purchase.amount_paid_cents / payment_status are recomputed after every
  payment, void and return
"""

from __future__ import annotations

from ..extensions import db
from ..models import Purchase, PurchasePayment
from purchasing.errors import SideEffectError, TimelineError, ValidationError
from purchasing.money import format_cents, percentage
from purchasing.time_utils import today, utcnow
from purchasing.validation import (
    coerce_business_date,
    require_choice,
    require_positive_cents,
    require_text,
)
from . import journal_service, purchase_repository, refund_service, timeline_service
from .purchase_cache import get_cache, invalidate_purchase, payments_key
from .side_effects import (
    STEP_JOURNAL,
    STEP_TIMELINE,
    PaymentResult,
    VoidResult,
    run_side_effect,
)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CHECK = "check"
METHOD_CREDIT_CARD = "credit_card"
METHOD_OTHER = "other"

PAYMENT_METHODS = {
    METHOD_CASH,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
    METHOD_CREDIT_CARD,
    METHOD_OTHER,
}


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_ACTIVE = "active"
PAYMENT_VOID = "void"

PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_OVERPAID = "overpaid"


# =============================================================================
# CALCULATIONS
# =============================================================================

def calculate_payment_status(net_payable_cents: int, paid_cents: int) -> str:
    """
    Payment status for a paid amount against the net payable amount.

    Monotonic in paid_cents: unpaid -> partial -> paid -> overpaid.
    """
    if paid_cents <= 0:
        return PAYMENT_STATUS_UNPAID
    if paid_cents < net_payable_cents:
        return PAYMENT_STATUS_PARTIAL
    if paid_cents == net_payable_cents:
        return PAYMENT_STATUS_PAID
    return PAYMENT_STATUS_OVERPAID


def calculate_returned_amount(purchase_id: int) -> int:
    return purchase_repository.sum_returned_value(purchase_id)


def calculate_net_payable(purchase: Purchase) -> int:
    """Purchase total minus the value of returned items, clamped at zero."""
    return max(0, purchase.total_amount_cents - calculate_returned_amount(purchase.id))


def calculate_amount_paid(purchase_id: int) -> int:
    """Sum of active payments; voided rows are excluded."""
    return purchase_repository.sum_active_payments(purchase_id)


def _apply_payment_totals(purchase: Purchase, paid_cents: int, returned_cents: int) -> str:
    """
    Write amount paid / payment status on the purchase (no reads, no commit).

    Totals are read before the caller stages its own rows, so a retried read
    never rolls back pending writes.
    """
    purchase.amount_paid_cents = paid_cents
    purchase.payment_status = calculate_payment_status(
        max(0, purchase.total_amount_cents - returned_cents), paid_cents
    )
    return purchase.payment_status


def refresh_payment_status(purchase_id: int) -> str:
    """Recompute and commit the purchase's payment status. Returns the status."""
    purchase = purchase_repository.get_purchase(purchase_id)
    status = _apply_payment_totals(
        purchase, calculate_amount_paid(purchase_id), calculate_returned_amount(purchase_id)
    )
    db.session.commit()
    invalidate_purchase(purchase_id)
    return status


# =============================================================================
# PAYMENT CREATION / VOID
# =============================================================================

def create_payment(
    purchase_id: int,
    amount_cents: int,
    payment_method: str,
    payment_date,
    actor: str,
    notes: str | None = None,
) -> PaymentResult:
    """
    Record a payment to the supplier.

    WHY: Core payment operation. The payment row and the purchase's payment
    status are committed together; the journal entry and timeline event
    follow as best-effort steps.

    Args:
        purchase_id: Purchase being paid
        amount_cents: Amount paid (must be > 0)
        payment_method: cash, bank_transfer, check, credit_card, other
        payment_date: Business date (defaults to today when None)
        actor: Who recorded the payment
        notes: Optional free text

    Returns:
        PaymentResult

    Raises:
        ValidationError: amount <= 0, unknown method, missing actor
        NotFoundError: purchase not found
    """
    amount_cents = require_positive_cents(amount_cents, "amount_cents")
    payment_method = require_choice(payment_method, "payment_method", PAYMENT_METHODS)
    actor = require_text(actor, "actor")
    payment_date = coerce_business_date(payment_date, "payment_date", default=today())

    purchase = purchase_repository.get_purchase(purchase_id)
    paid_after = calculate_amount_paid(purchase_id) + amount_cents
    returned = calculate_returned_amount(purchase_id)

    payment = PurchasePayment(
        purchase_id=purchase.id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        payment_date=payment_date,
        status=PAYMENT_ACTIVE,
        notes=notes,
        created_by=actor,
        created_at=utcnow(),
    )
    db.session.add(payment)
    db.session.flush()
    payment_status = _apply_payment_totals(purchase, paid_after, returned)
    db.session.commit()

    payment_id = payment.id
    supplier_name = purchase.supplier_name
    result = PaymentResult(
        purchase_id=purchase_id,
        payment_id=payment_id,
        payment_status=payment_status,
        amount_paid_cents=purchase.amount_paid_cents,
    )

    def _post_journal():
        entry_id = journal_service.post_payment(
            payment_id, purchase_id, supplier_name, amount_cents, payment_date, actor,
            payment_method=payment_method,
        )
        row = purchase_repository.get_payment(payment_id)
        row.journal_entry_id = entry_id
        db.session.commit()
        return entry_id

    result.journal_entry_id = run_side_effect(
        result.outcomes,
        STEP_JOURNAL,
        _post_journal,
        error_cls=SideEffectError,
        purchase_id=purchase_id,
        payment_id=payment_id,
    )

    run_side_effect(
        result.outcomes,
        STEP_TIMELINE,
        lambda: timeline_service.record_event(
            purchase_id,
            timeline_service.EVENT_PAYMENT_MADE,
            description=(
                f"Payment of {format_cents(amount_cents)} via {payment_method} recorded "
                f"(status: {payment_status})"
            ),
            new_status=payment_status,
            payment_amount_cents=amount_cents,
            payment_method=payment_method,
            payment_id=payment_id,
            actor=actor,
        ),
        error_cls=TimelineError,
        purchase_id=purchase_id,
        payment_id=payment_id,
    )

    invalidate_purchase(purchase_id)
    return result


def void_payment(payment_id: int, reason: str, actor: str) -> VoidResult:
    """
    Void a payment in place.

    The row is kept with status 'void'; "VOIDED: <reason>" is appended to its
    notes. When the payment had a journal entry, a reversing entry is posted
    and linked on the payment.

    Raises:
        ValidationError: already voided, missing reason
        NotFoundError: payment not found
    """
    reason = require_text(reason, "reason")
    actor = require_text(actor, "actor")

    payment = purchase_repository.get_payment(payment_id)
    if payment.status == PAYMENT_VOID:
        raise ValidationError(f"Payment {payment_id} is already voided")

    purchase = purchase_repository.get_purchase(payment.purchase_id)
    # The payment is still active here, so it is part of the current total
    paid_after = calculate_amount_paid(purchase.id) - payment.amount_cents
    returned = calculate_returned_amount(purchase.id)

    void_note = f"VOIDED: {reason}"
    payment.notes = f"{payment.notes} | {void_note}" if payment.notes else void_note
    payment.status = PAYMENT_VOID
    payment.voided_by = actor
    payment.voided_at = utcnow()
    db.session.flush()
    payment_status = _apply_payment_totals(purchase, paid_after, returned)
    db.session.commit()

    purchase_id = purchase.id
    supplier_name = purchase.supplier_name
    amount_cents = payment.amount_cents
    original_entry_id = payment.journal_entry_id
    result = VoidResult(
        purchase_id=purchase_id,
        payment_id=payment_id,
        payment_status=payment_status,
        amount_paid_cents=purchase.amount_paid_cents,
    )

    if original_entry_id:
        def _post_reversal():
            entry_id = journal_service.post_payment_reversal(
                payment_id, purchase_id, supplier_name, amount_cents, today(), actor,
                reverses_entry_id=original_entry_id,
            )
            row = purchase_repository.get_payment(payment_id)
            row.reversal_journal_entry_id = entry_id
            db.session.commit()
            return entry_id

        result.reversal_journal_entry_id = run_side_effect(
            result.outcomes,
            STEP_JOURNAL,
            _post_reversal,
            error_cls=SideEffectError,
            purchase_id=purchase_id,
            payment_id=payment_id,
            reverses_entry_id=original_entry_id,
        )

    run_side_effect(
        result.outcomes,
        STEP_TIMELINE,
        lambda: timeline_service.record_event(
            purchase_id,
            timeline_service.EVENT_PAYMENT_VOIDED,
            description=f"Payment of {format_cents(amount_cents)} voided: {reason}",
            new_status=payment_status,
            payment_amount_cents=amount_cents,
            payment_method=payment.payment_method,
            payment_id=payment_id,
            actor=actor,
        ),
        error_cls=TimelineError,
        purchase_id=purchase_id,
        payment_id=payment_id,
    )

    invalidate_purchase(purchase_id)
    return result


# =============================================================================
# READS
# =============================================================================

def list_purchase_payments(purchase_id: int, *, force_refresh: bool = False) -> list[dict]:
    """All payments (voided included), oldest first. Cached."""
    def _load():
        purchase_repository.get_purchase(purchase_id)
        return [p.to_dict() for p in purchase_repository.list_payments(purchase_id)]

    return get_cache().get(payments_key(purchase_id), _load, force_refresh=force_refresh)


def _display_status(payment_status: str, refund: dict) -> str:
    labels = {
        PAYMENT_STATUS_UNPAID: "Unpaid",
        PAYMENT_STATUS_PARTIAL: "Partially Paid",
        PAYMENT_STATUS_PAID: "Paid",
        PAYMENT_STATUS_OVERPAID: "Overpaid",
    }
    if refund["payment_made_after_returns"]:
        return labels[payment_status]
    prefix = {
        PAYMENT_STATUS_PAID: "Paid",
        PAYMENT_STATUS_OVERPAID: "Overpaid",
    }.get(payment_status, "Partial")
    if refund["refunded_cents"] > 0 and refund["refund_due_cents"] == 0:
        return f"{prefix} - Refunded"
    if refund["refund_due_cents"] > 0:
        return f"{prefix} - Refund Due"
    return labels[payment_status]


def get_payment_summary(purchase_id: int) -> dict:
    """
    Combined payment and refund picture for one purchase.

    Status is measured against the net payable amount; the display status
    layers refund state on top of it.
    """
    purchase = purchase_repository.get_purchase(purchase_id)
    returned = calculate_returned_amount(purchase_id)
    net = max(0, purchase.total_amount_cents - returned)
    paid = calculate_amount_paid(purchase_id)
    status = calculate_payment_status(net, paid)
    refund = refund_service.compute_refund_due(purchase_id)

    return {
        "purchase_id": purchase_id,
        "original_amount_cents": purchase.total_amount_cents,
        "returned_amount_cents": returned,
        "net_payable_cents": net,
        "amount_paid_cents": paid,
        "remaining_cents": max(0, net - paid),
        "overpaid_cents": max(0, paid - net),
        "progress_percentage": percentage(paid, net),
        "payment_status": status,
        "display_status": _display_status(status, refund),
        "refund": refund,
    }
