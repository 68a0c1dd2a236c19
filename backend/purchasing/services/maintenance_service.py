# Overview: Service-layer maintenance operations; status repair across all purchases.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from purchasing.errors import TimelineError
from purchasing.time_utils import utcnow
from . import purchase_repository, timeline_service
from .purchase_cache import invalidate_purchase
from .side_effects import STEP_TIMELINE, StepOutcome, run_side_effect
from .status_service import derive_status, item_totals


def fix_purchase_statuses(*, actor: str = timeline_service.SYSTEM_ACTOR) -> dict:
    """
    Re-derive every purchase's status from its items and persist corrections.

    Purchases that have seen no receipt or return activity keep 'pending'
    (creation never derives). Each corrected purchase gets a status_change
    event.

    Returns:
        {"checked": n, "fixed": [{"purchase_id", "from", "to"}], "failed_events": [ids]}
    """
    summary = {"checked": 0, "fixed": [], "failed_events": []}
    for purchase in purchase_repository.list_purchases():
        summary["checked"] += 1
        items = purchase_repository.get_items(purchase.id)
        ordered, received, returned = item_totals(items)
        if received == 0 and returned == 0 and purchase.status == "pending":
            continue
        try:
            expected = derive_status(ordered, received, returned)
        except ValueError:
            current_app.logger.exception("Purchase %s has inconsistent item quantities", purchase.id)
            continue
        if expected == purchase.status:
            continue

        previous = purchase.status
        purchase.status = expected
        purchase.status_updated_at = utcnow()
        db.session.commit()
        summary["fixed"].append({"purchase_id": purchase.id, "from": previous, "to": expected})

        outcomes: list[StepOutcome] = []
        run_side_effect(
            outcomes,
            STEP_TIMELINE,
            lambda pid=purchase.id, prev=previous, new=expected: timeline_service.record_event(
                pid,
                timeline_service.EVENT_STATUS_CHANGE,
                description=f"Status corrected from {prev} to {new}",
                previous_status=prev,
                new_status=new,
                total_items_count=len(items),
                metadata={"source": "fix_purchase_statuses"},
                actor=actor,
            ),
            error_cls=TimelineError,
            purchase_id=purchase.id,
        )
        if outcomes and not outcomes[0].succeeded:
            summary["failed_events"].append(purchase.id)
        invalidate_purchase(purchase.id)
    return summary
