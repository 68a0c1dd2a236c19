# Overview: Default stock ledger; warehouse counters plus an append-only movement log.

"""
Stock Ledger

Invariants:
- warehouse_stock.quantity never goes negative. A decrement that would cross
  zero is refused (returns False) and writes nothing.
- Every applied delta appends exactly one StockMovement row in the same
  commit as the counter update.
- Zero deltas are refused as a programming error.
"""

from __future__ import annotations

from ..extensions import db
from ..models import WarehouseStock, StockMovement
from purchasing.time_utils import utcnow
from .concurrency import lock_for_update, read_with_retry


MOVEMENT_PURCHASE = "purchase"
MOVEMENT_PURCHASE_RETURN = "purchase_return"


def _stock_query(*, item_type: str, item_id: int, warehouse_id: int, variation_id: int | None):
    query = db.session.query(WarehouseStock).filter_by(
        warehouse_id=warehouse_id,
        item_type=item_type,
        item_id=item_id,
    )
    if variation_id is None:
        return query.filter(WarehouseStock.variation_id.is_(None))
    return query.filter(WarehouseStock.variation_id == variation_id)


def get_stock_quantity(
    *, item_type: str, item_id: int, warehouse_id: int, variation_id: int | None = None
) -> int:
    row = read_with_retry(
        lambda: _stock_query(
            item_type=item_type, item_id=item_id, warehouse_id=warehouse_id, variation_id=variation_id
        ).first()
    )
    return row.quantity if row else 0


def apply_stock_delta(
    *,
    item_type: str,
    item_id: int,
    warehouse_id: int,
    variation_id: int | None,
    quantity_delta: int,
    movement_type: str,
    reference_id: int | None,
    reason: str,
    actor: str | None,
    notes: str | None = None,
) -> bool:
    """
    Apply a signed quantity delta to one stock counter.

    Returns:
        True when the delta was applied and committed, False when it was
        refused because stock would go negative.

    Raises:
        ValueError: quantity_delta is zero
    """
    if quantity_delta == 0:
        raise ValueError("quantity_delta must be non-zero")

    # Nothing is staged yet, so a retried read cannot discard pending writes
    stock = read_with_retry(
        lambda: lock_for_update(
            _stock_query(
                item_type=item_type, item_id=item_id, warehouse_id=warehouse_id, variation_id=variation_id
            )
        ).first()
    )
    current = stock.quantity if stock else 0
    new_quantity = current + quantity_delta
    if new_quantity < 0:
        return False

    if stock is None:
        stock = WarehouseStock(
            warehouse_id=warehouse_id,
            item_type=item_type,
            item_id=item_id,
            variation_id=variation_id,
            quantity=0,
        )
        db.session.add(stock)
    stock.quantity = new_quantity

    db.session.add(StockMovement(
        warehouse_id=warehouse_id,
        item_type=item_type,
        item_id=item_id,
        variation_id=variation_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        quantity_after=new_quantity,
        reference_id=reference_id,
        reason=reason,
        notes=notes,
        created_by=actor,
        created_at=utcnow(),
    ))
    db.session.commit()
    return True
