# Overview: Narrow read interface over purchasing records, with bounded retry.

"""
Purchase Repository

Every read the processors and the cached read surface perform goes through
these functions so that bounded retry is applied uniformly. Lookups that must
resolve raise NotFoundError; list reads return empty lists.
"""

from __future__ import annotations

from ..extensions import db
from ..models import (
    Purchase, PurchaseItem, PurchasePayment, PurchaseReturn,
    RefundTransaction, PurchaseEvent, Supplier, Warehouse,
)
from purchasing.errors import NotFoundError
from .concurrency import read_with_retry


def get_purchase(purchase_id: int) -> Purchase:
    purchase = read_with_retry(lambda: db.session.get(Purchase, purchase_id))
    if not purchase:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def get_supplier(supplier_id: int) -> Supplier:
    supplier = read_with_retry(lambda: db.session.get(Supplier, supplier_id))
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = read_with_retry(lambda: db.session.get(Warehouse, warehouse_id))
    if not warehouse:
        raise NotFoundError(f"Warehouse {warehouse_id} not found")
    return warehouse


def get_items(purchase_id: int) -> list[PurchaseItem]:
    return read_with_retry(
        lambda: db.session.query(PurchaseItem)
        .filter_by(purchase_id=purchase_id)
        .order_by(PurchaseItem.id.asc())
        .all()
    )


def get_payment(payment_id: int) -> PurchasePayment:
    payment = read_with_retry(lambda: db.session.get(PurchasePayment, payment_id))
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def list_payments(purchase_id: int, *, include_voided: bool = True) -> list[PurchasePayment]:
    """Payments for a purchase, oldest first (created_at, then id)."""
    def _op():
        query = db.session.query(PurchasePayment).filter_by(purchase_id=purchase_id)
        if not include_voided:
            query = query.filter(PurchasePayment.status == "active")
        return query.order_by(PurchasePayment.created_at.asc(), PurchasePayment.id.asc()).all()
    return read_with_retry(_op)


def get_return(return_id: int) -> PurchaseReturn:
    purchase_return = read_with_retry(lambda: db.session.get(PurchaseReturn, return_id))
    if not purchase_return:
        raise NotFoundError(f"Purchase return {return_id} not found")
    return purchase_return


def list_returns(purchase_id: int) -> list[PurchaseReturn]:
    return read_with_retry(
        lambda: db.session.query(PurchaseReturn)
        .filter_by(purchase_id=purchase_id)
        .order_by(PurchaseReturn.return_date.asc(), PurchaseReturn.id.asc())
        .all()
    )


def get_refund_transaction(refund_id: int) -> RefundTransaction:
    refund = read_with_retry(lambda: db.session.get(RefundTransaction, refund_id))
    if not refund:
        raise NotFoundError(f"Refund transaction {refund_id} not found")
    return refund


def list_refunds_for_return(return_id: int) -> list[RefundTransaction]:
    return read_with_retry(
        lambda: db.session.query(RefundTransaction)
        .filter_by(return_id=return_id)
        .order_by(RefundTransaction.id.asc())
        .all()
    )


def list_refunds_for_purchase(purchase_id: int) -> list[RefundTransaction]:
    return read_with_retry(
        lambda: db.session.query(RefundTransaction)
        .join(PurchaseReturn, RefundTransaction.return_id == PurchaseReturn.id)
        .filter(PurchaseReturn.purchase_id == purchase_id)
        .order_by(RefundTransaction.id.asc())
        .all()
    )


def list_refunds_for_payment(payment_id: int) -> list[RefundTransaction]:
    return read_with_retry(
        lambda: db.session.query(RefundTransaction)
        .filter_by(payment_id=payment_id)
        .order_by(RefundTransaction.id.asc())
        .all()
    )


def list_events(purchase_id: int) -> list[PurchaseEvent]:
    """Timeline for a purchase ordered by business time, then insertion order."""
    return read_with_retry(
        lambda: db.session.query(PurchaseEvent)
        .filter_by(purchase_id=purchase_id)
        .order_by(PurchaseEvent.event_date.asc(), PurchaseEvent.id.asc())
        .all()
    )


def list_purchase_ids() -> list[int]:
    rows = read_with_retry(
        lambda: db.session.query(Purchase.id).order_by(Purchase.id.asc()).all()
    )
    return [row[0] for row in rows]


def list_purchases() -> list[Purchase]:
    return read_with_retry(
        lambda: db.session.query(Purchase).order_by(Purchase.id.asc()).all()
    )


def sum_returned_value(purchase_id: int) -> int:
    """Value of returned items (returned_quantity x unit price) for a purchase."""
    total = read_with_retry(
        lambda: db.session.query(
            db.func.coalesce(
                db.func.sum(PurchaseItem.returned_quantity * PurchaseItem.unit_price_cents), 0
            )
        ).filter(PurchaseItem.purchase_id == purchase_id).scalar()
    )
    return int(total or 0)


def sum_active_payments(purchase_id: int) -> int:
    """Sum of active payments; voided rows are excluded."""
    total = read_with_retry(
        lambda: db.session.query(
            db.func.coalesce(db.func.sum(PurchasePayment.amount_cents), 0)
        ).filter(
            PurchasePayment.purchase_id == purchase_id,
            PurchasePayment.status == "active",
        ).scalar()
    )
    return int(total or 0)
