from __future__ import annotations

from ..extensions import db
from purchasing.time_utils import to_utc_z


class Warehouse(db.Model):
    """Stock location a purchase order is delivered to."""
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class WarehouseStock(db.Model):
    """
    On-hand quantity per (warehouse, item, variation).

    INVARIANT: quantity never goes negative. Decrements that would cross
    zero are rejected by the stock ledger service.
    """
    __tablename__ = "warehouse_stock"
    __table_args__ = (
        db.UniqueConstraint(
            "warehouse_id", "item_type", "item_id", "variation_id",
            name="uq_warehouse_stock_item",
        ),
        db.CheckConstraint("quantity >= 0", name="ck_warehouse_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    variation_id = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every stock change.

    movement_type: purchase (positive, goods received) or
    purchase_return (negative, goods sent back to the supplier).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_reference", "movement_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    variation_id = db.Column(db.Integer, nullable=True)

    movement_type = db.Column(db.String(32), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    reference_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "variation_id": self.variation_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "reference_id": self.reference_id,
            "reason": self.reason,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
