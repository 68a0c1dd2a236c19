# Overview: Saga-style step tracking for best-effort side effects.

"""
Side Effect Outcomes

WHY: After a processor commits its primary write (item quantities, payment
row, status) it still has to drive the stock ledger, the accounting journal,
the timeline and the payment-status refresh. Those steps are best-effort:
a failure must not roll back the committed primary record and must not stop
later steps. Instead of swallowing failures, every step is recorded as a
StepOutcome on the returned result, so the caller can enqueue compensation
or reconciliation for exactly the steps that failed.

DESIGN:
- run_side_effect() runs one step, logs failures with full context and
  appends exactly one StepOutcome
- A collaborator returning False counts as a failed step
- Failed steps roll back only the session state of that step
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from flask import current_app

from ..extensions import db
from purchasing.errors import SideEffectError


STEP_STOCK = "stock"
STEP_JOURNAL = "journal"
STEP_TIMELINE = "timeline"
STEP_PAYMENT_STATUS = "payment_status"


@dataclass(frozen=True)
class StepOutcome:
    step: str
    succeeded: bool
    error: str | None = None
    reference: Any = None


@dataclass
class ProcessorResult:
    purchase_id: int | None = None
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def failed_steps(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def succeeded(self) -> bool:
        return not self.failed_steps

    def to_dict(self) -> dict:
        data = asdict(self)
        data["succeeded"] = self.succeeded
        return data


@dataclass
class PurchaseCreatedResult(ProcessorResult):
    total_amount_cents: int = 0
    status: str | None = None


@dataclass
class ReceiptResult(ProcessorResult):
    previous_status: str | None = None
    new_status: str | None = None
    changed_items: int = 0
    total_delta: int = 0
    receipt_amount_cents: int = 0
    event_type: str | None = None


@dataclass
class ReturnResult(ProcessorResult):
    previous_status: str | None = None
    new_status: str | None = None
    return_id: int | None = None
    return_number: str | None = None
    changed_items: int = 0
    total_delta: int = 0
    return_amount_cents: int = 0
    event_types: list[str] = field(default_factory=list)


@dataclass
class PaymentResult(ProcessorResult):
    payment_id: int | None = None
    payment_status: str | None = None
    amount_paid_cents: int = 0
    journal_entry_id: int | None = None


@dataclass
class VoidResult(ProcessorResult):
    payment_id: int | None = None
    payment_status: str | None = None
    amount_paid_cents: int = 0
    reversal_journal_entry_id: int | None = None


@dataclass
class RefundResult(ProcessorResult):
    return_id: int | None = None
    transaction_ids: list[int] = field(default_factory=list)
    allocated_cents: int = 0
    unallocated_cents: int = 0
    error: str | None = None


def run_side_effect(
    outcomes: list[StepOutcome],
    step: str,
    func: Callable[[], Any],
    *,
    error_cls: type[Exception] = SideEffectError,
    reference: Any = None,
    **context,
) -> Any:
    """
    Run one best-effort step and record its outcome.

    Args:
        outcomes: Result outcome list to append to
        step: Step name, e.g. "stock", "journal", "timeline"
        func: Zero-argument callable performing the step
        error_cls: Error category reported for failures
        reference: Reference recorded on the outcome (item id, entry id...)
        **context: Extra identifiers included in the failure log line

    Returns:
        func's return value, or None when the step failed
    """
    details = ", ".join(f"{k}={v}" for k, v in sorted(context.items()))
    try:
        value = func()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("%s step %s failed (%s)", error_cls.__name__, step, details)
        outcomes.append(StepOutcome(
            step=step,
            succeeded=False,
            error=f"{error_cls.__name__}: {exc}",
            reference=reference,
        ))
        return None

    if value is False:
        current_app.logger.error("%s step %s was refused (%s)", error_cls.__name__, step, details)
        outcomes.append(StepOutcome(
            step=step,
            succeeded=False,
            error=f"{error_cls.__name__}: {step} refused",
            reference=reference,
        ))
        return None

    if reference is None and isinstance(value, int) and not isinstance(value, bool):
        reference = value
    outcomes.append(StepOutcome(step=step, succeeded=True, reference=reference))
    return value
