from __future__ import annotations

from ..extensions import db
from purchasing.time_utils import to_utc_z, to_iso_date


class Account(db.Model):
    """Chart-of-accounts row. Seeded lazily by the journal service."""
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_accounts_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    # asset, liability
    account_type = db.Column(db.String(16), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type,
        }


class JournalEntry(db.Model):
    """
    Double-entry journal header.

    APPEND-ONLY: entries are never edited; a voided payment gets a new
    reversing entry that points back via reverses_entry_id.
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.Index("ix_journal_entries_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=False)

    # purchase_receipt, purchase_return, purchase_payment, payment_reversal, refund_received
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)
    reverses_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_date": to_iso_date(self.entry_date),
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "purchase_id": self.purchase_id,
            "reverses_entry_id": self.reverses_entry_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class JournalLine(db.Model):
    """One debit or credit leg. Exactly one of debit/credit is non-zero."""
    __tablename__ = "journal_lines"
    __table_args__ = (
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_journal_lines_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    memo = db.Column(db.String(255), nullable=True)

    entry = db.relationship(
        "JournalEntry",
        backref=db.backref("lines", lazy=True, order_by="JournalLine.id"),
    )
    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_code": self.account.code if self.account else None,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "memo": self.memo,
        }
