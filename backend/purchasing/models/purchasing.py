from __future__ import annotations

import json

from sqlalchemy.orm import validates

from ..extensions import db
from purchasing.time_utils import to_utc_z, to_iso_date


def _write_once(instance, key: str, value):
    current = getattr(instance, key)
    if current is not None and value != current:
        raise ValueError(f"{type(instance).__name__}.{key} is immutable once set")
    return value


class Supplier(db.Model):
    """Counterparty for purchase orders; its name appears on journal entries."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Purchase(db.Model):
    """
    Purchase order header.

    WHY: The order is the primary record of the reconciliation engine. Its
    status is derived from item aggregates and is only written by the
    receipt/return processors and maintenance.

    IMMUTABLE: total_amount_cents is the sum of item totals at creation.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_status_date", "status", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    warehouse_name = db.Column(db.String(255), nullable=False)

    purchase_date = db.Column(db.Date, nullable=False)

    # pending, partially_received, received, partially_returned, returned, cancelled
    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Maintained by the payment ledger (unpaid, partial, paid, overpaid)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier")
    warehouse = db.relationship("Warehouse")
    __mapper_args__ = {"version_id_col": version_id}

    @validates("total_amount_cents")
    def _validate_total_amount(self, key, value):
        return _write_once(self, key, value)

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} status={self.status!r} total={self.total_amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse_name,
            "purchase_date": to_iso_date(self.purchase_date),
            "status": self.status,
            "status_updated_at": to_utc_z(self.status_updated_at),
            "total_amount_cents": self.total_amount_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseItem(db.Model):
    """
    Line item on a purchase order.

    Quantities are cumulative: received_quantity and returned_quantity are
    totals to date. Invariant: 0 <= returned <= received <= quantity.
    """
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        db.CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_purchase_items_received_range",
        ),
        db.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= received_quantity",
            name="ck_purchase_items_returned_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    # product or package reference, optional variation
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    variation_id = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    purchase = db.relationship(
        "Purchase",
        backref=db.backref("items", lazy=True, order_by="PurchaseItem.id"),
    )

    @validates("quantity", "unit_price_cents", "total_cents")
    def _validate_write_once(self, key, value):
        return _write_once(self, key, value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "returned_quantity": self.returned_quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
        }


class PurchasePayment(db.Model):
    """
    Payment made to the supplier against a purchase.

    APPEND-ONLY: voiding flips status to 'void' and appends to notes; rows
    are never deleted and amounts never change.
    """
    __tablename__ = "purchase_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_purchase_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)

    # active, void
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    notes = db.Column(db.Text, nullable=True)

    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True)
    reversal_journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    voided_by = db.Column(db.String(64), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    purchase = db.relationship("Purchase", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @validates("amount_cents")
    def _validate_amount(self, key, value):
        return _write_once(self, key, value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_date": to_iso_date(self.payment_date),
            "status": self.status,
            "notes": self.notes,
            "journal_entry_id": self.journal_entry_id,
            "reversal_journal_entry_id": self.reversal_journal_entry_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at),
        }


class PurchaseReturn(db.Model):
    """
    Return document created whenever returned quantities increase.

    Refund tracking lives here: refund_amount_cents is what has been
    allocated to refund transactions so far.
    """
    __tablename__ = "purchase_returns"
    __table_args__ = (
        db.UniqueConstraint("return_number", name="uq_purchase_returns_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    return_number = db.Column(db.String(32), nullable=False)

    return_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    # pending, processing, completed, failed, cancelled
    refund_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_processed_by = db.Column(db.String(64), nullable=True)
    refund_failure_reason = db.Column(db.Text, nullable=True)
    auto_refund_eligible = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("returns", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "return_number": self.return_number,
            "return_date": to_iso_date(self.return_date),
            "reason": self.reason,
            "total_amount_cents": self.total_amount_cents,
            "refund_status": self.refund_status,
            "refund_amount_cents": self.refund_amount_cents,
            "refund_processed_at": to_utc_z(self.refund_processed_at),
            "refund_processed_by": self.refund_processed_by,
            "refund_failure_reason": self.refund_failure_reason,
            "auto_refund_eligible": self.auto_refund_eligible,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseReturnItem(db.Model):
    """Per-line quantity and amount returned by one return document."""
    __tablename__ = "purchase_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True)
    purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_items.id"), nullable=False, index=True)

    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    item_name = db.Column(db.String(255), nullable=False)
    variation_id = db.Column(db.Integer, nullable=True)

    quantity_returned = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_return = db.relationship("PurchaseReturn", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "purchase_item_id": self.purchase_item_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "variation_id": self.variation_id,
            "quantity_returned": self.quantity_returned,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
        }


class RefundTransaction(db.Model):
    """Money owed back by the supplier, allocated against one prior payment."""
    __tablename__ = "refund_transactions"
    __table_args__ = (
        db.CheckConstraint("refund_amount_cents > 0", name="ck_refund_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("purchase_payments.id"), nullable=False, index=True)

    refund_amount_cents = db.Column(db.Integer, nullable=False)
    # cash, bank_transfer, check, store_credit
    refund_method = db.Column(db.String(32), nullable=False)
    # pending, processing, completed, failed, cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    bank_reference = db.Column(db.String(100), nullable=True)
    check_number = db.Column(db.String(50), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_return = db.relationship("PurchaseReturn", backref=db.backref("refund_transactions", lazy=True))
    payment = db.relationship("PurchasePayment")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "payment_id": self.payment_id,
            "refund_amount_cents": self.refund_amount_cents,
            "refund_method": self.refund_method,
            "status": self.status,
            "bank_reference": self.bank_reference,
            "check_number": self.check_number,
            "failure_reason": self.failure_reason,
            "journal_entry_id": self.journal_entry_id,
            "processed_at": to_utc_z(self.processed_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseEvent(db.Model):
    """
    Append-only purchase timeline entry.

    No updates or deletes. Ordered by event_date (business time), then id.
    """
    __tablename__ = "purchase_events"
    __table_args__ = (
        db.Index("ix_purchase_events_purchase_date", "purchase_id", "event_date"),
        db.Index(
            "uq_purchase_events_order_placed",
            "purchase_id",
            unique=True,
            sqlite_where=db.text("event_type = 'order_placed'"),
            postgresql_where=db.text("event_type = 'order_placed'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)

    event_type = db.Column(db.String(32), nullable=False, index=True)
    event_title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    previous_status = db.Column(db.String(32), nullable=True)
    new_status = db.Column(db.String(32), nullable=True)
    affected_items_count = db.Column(db.Integer, nullable=True)
    total_items_count = db.Column(db.Integer, nullable=True)

    return_reason = db.Column(db.String(255), nullable=True)
    return_amount_cents = db.Column(db.Integer, nullable=True)
    payment_amount_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("purchase_payments.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=True)

    # Small JSON blob; never denormalize live purchase state here
    metadata_json = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    event_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase = db.relationship("Purchase", backref=db.backref("events", lazy=True))

    @property
    def event_metadata(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "event_type": self.event_type,
            "event_title": self.event_title,
            "description": self.description,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "affected_items_count": self.affected_items_count,
            "total_items_count": self.total_items_count,
            "return_reason": self.return_reason,
            "return_amount_cents": self.return_amount_cents,
            "payment_amount_cents": self.payment_amount_cents,
            "payment_method": self.payment_method,
            "payment_id": self.payment_id,
            "return_id": self.return_id,
            "metadata": self.event_metadata,
            "created_by": self.created_by,
            "event_date": to_utc_z(self.event_date),
            "created_at": to_utc_z(self.created_at),
        }
