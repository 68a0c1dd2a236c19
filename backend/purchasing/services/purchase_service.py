# Overview: Order placement and the cached purchase read surface.

"""
Purchase Service

WHY: Purchase and items are created together, atomically. The header total
is the sum of the item totals at creation and never changes afterwards;
later returns reduce the net payable amount, not the total.
"""

from __future__ import annotations

from collections import Counter

from ..extensions import db
from ..models import Purchase, PurchaseItem
from purchasing.errors import TimelineError, ValidationError
from purchasing.time_utils import today, utcnow
from purchasing.validation import (
    MAX_AMOUNT_CENTS,
    coerce_business_date,
    coerce_int,
    require_choice,
    require_non_negative_int,
    require_text,
)
from . import purchase_repository, timeline_service
from .purchase_cache import STATS_KEY, detail_key, get_cache, invalidate_purchase
from .side_effects import STEP_TIMELINE, PurchaseCreatedResult, run_side_effect
from .status_service import STATUS_PENDING


ITEM_TYPE_PRODUCT = "product"
ITEM_TYPE_PACKAGE = "package"

VALID_ITEM_TYPES = {ITEM_TYPE_PRODUCT, ITEM_TYPE_PACKAGE}


def _validate_line(index: int, line: dict) -> dict:
    if not isinstance(line, dict):
        raise ValidationError(f"Item {index}: must be an object")
    field = f"items[{index}]"
    quantity = coerce_int(line.get("quantity"), f"{field}.quantity")
    if quantity <= 0:
        raise ValidationError(f"{field}.quantity must be greater than zero")
    unit_price = require_non_negative_int(line.get("unit_price_cents"), f"{field}.unit_price_cents")
    total = quantity * unit_price
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} total exceeds maximum of {MAX_AMOUNT_CENTS}")
    variation_id = line.get("variation_id")
    return {
        "item_type": require_choice(line.get("item_type", ITEM_TYPE_PRODUCT), f"{field}.item_type", VALID_ITEM_TYPES),
        "item_id": coerce_int(line.get("item_id"), f"{field}.item_id"),
        "item_name": require_text(line.get("item_name"), f"{field}.item_name"),
        "variation_id": coerce_int(variation_id, f"{field}.variation_id") if variation_id is not None else None,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "total_cents": total,
    }


def create_purchase(
    *,
    supplier_id: int,
    warehouse_id: int,
    created_by: str,
    items: list[dict],
    purchase_date=None,
    notes: str | None = None,
) -> PurchaseCreatedResult:
    """
    Place a purchase order.

    Args:
        supplier_id: Supplier the order is placed with
        warehouse_id: Warehouse receiving the goods
        created_by: Actor identifier
        items: [{item_type, item_id, item_name, variation_id?, quantity, unit_price_cents}]
        purchase_date: Business date (defaults to today)
        notes: Free text

    Returns:
        PurchaseCreatedResult; the order_placed event is best-effort

    Raises:
        ValidationError: no items or an invalid line
        NotFoundError: unknown supplier or warehouse
    """
    actor = require_text(created_by, "created_by")
    business_date = coerce_business_date(purchase_date, "purchase_date", default=today())
    if not items:
        raise ValidationError("A purchase requires at least one item")
    lines = [_validate_line(i, line) for i, line in enumerate(items)]
    total_amount = sum(line["total_cents"] for line in lines)
    if total_amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Purchase total exceeds maximum of {MAX_AMOUNT_CENTS}")

    supplier = purchase_repository.get_supplier(supplier_id)
    warehouse = purchase_repository.get_warehouse(warehouse_id)

    now = utcnow()
    purchase = Purchase(
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        warehouse_id=warehouse.id,
        warehouse_name=warehouse.name,
        purchase_date=business_date,
        status=STATUS_PENDING,
        total_amount_cents=total_amount,
        amount_paid_cents=0,
        payment_status="unpaid",
        notes=notes,
        created_by=actor,
        created_at=now,
        updated_at=now,
    )
    db.session.add(purchase)
    db.session.flush()
    for line in lines:
        db.session.add(PurchaseItem(purchase_id=purchase.id, **line))
    db.session.commit()

    result = PurchaseCreatedResult(
        purchase_id=purchase.id,
        total_amount_cents=total_amount,
        status=purchase.status,
    )
    run_side_effect(
        result.outcomes,
        STEP_TIMELINE,
        lambda: timeline_service.record_event(
            purchase.id,
            timeline_service.EVENT_ORDER_PLACED,
            description=f"Purchase order placed with {supplier.name}",
            new_status=STATUS_PENDING,
            total_items_count=len(lines),
            actor=actor,
            event_date=now,
        ),
        error_cls=TimelineError,
        purchase_id=purchase.id,
    )
    invalidate_purchase(purchase.id)
    return result


def get_purchase_detail(purchase_id: int, *, force_refresh: bool = False) -> dict:
    """Purchase header with items and returns, as a cached dict."""
    def _load():
        purchase = purchase_repository.get_purchase(purchase_id)
        data = purchase.to_dict()
        data["items"] = [item.to_dict() for item in purchase_repository.get_items(purchase_id)]
        data["returns"] = []
        for purchase_return in purchase_repository.list_returns(purchase_id):
            row = purchase_return.to_dict()
            row["items"] = [ri.to_dict() for ri in purchase_return.items]
            data["returns"].append(row)
        return data

    return get_cache().get(detail_key(purchase_id), _load, force_refresh=force_refresh)


def get_purchase_stats(*, force_refresh: bool = False) -> dict:
    """Counts by status and payment status plus money totals, cached."""
    def _load():
        purchases = purchase_repository.list_purchases()
        by_status = Counter(p.status for p in purchases)
        by_payment_status = Counter(p.payment_status for p in purchases)
        return {
            "total_purchases": len(purchases),
            "by_status": dict(by_status),
            "by_payment_status": dict(by_payment_status),
            "total_amount_cents": sum(p.total_amount_cents for p in purchases),
            "total_paid_cents": sum(p.amount_paid_cents for p in purchases),
        }

    return get_cache().get(STATS_KEY, _load, force_refresh=force_refresh)
