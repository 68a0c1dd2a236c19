# Overview: Pytest coverage for the default stock ledger and accounting journal.

import pytest

from purchasing.errors import SideEffectError
from purchasing.models import Account, JournalEntry, StockMovement
from purchasing.services import journal_service, stock_ledger_service
from purchasing.time_utils import today


def _apply(warehouse, delta, variation_id=None, item_id=101):
    return stock_ledger_service.apply_stock_delta(
        item_type="product",
        item_id=item_id,
        warehouse_id=warehouse.id,
        variation_id=variation_id,
        quantity_delta=delta,
        movement_type=stock_ledger_service.MOVEMENT_PURCHASE,
        reference_id=1,
        reason="test",
        actor="alice",
    )


def _quantity(warehouse, variation_id=None, item_id=101):
    return stock_ledger_service.get_stock_quantity(
        item_type="product", item_id=item_id, warehouse_id=warehouse.id, variation_id=variation_id
    )


class TestStockLedger:
    def test_applies_deltas_and_logs_movements(self, db_session, warehouse):
        assert _apply(warehouse, 5) is True
        assert _apply(warehouse, -2) is True

        assert _quantity(warehouse) == 3
        movements = db_session.query(StockMovement).order_by(StockMovement.id).all()
        assert [(m.quantity_delta, m.quantity_after) for m in movements] == [(5, 5), (-2, 3)]

    def test_refuses_to_go_negative(self, db_session, warehouse):
        _apply(warehouse, 2)

        assert _apply(warehouse, -3) is False
        assert _quantity(warehouse) == 2
        assert db_session.query(StockMovement).count() == 1

    def test_zero_delta_is_an_error(self, warehouse):
        with pytest.raises(ValueError):
            _apply(warehouse, 0)

    def test_variations_are_counted_separately(self, warehouse):
        _apply(warehouse, 4)
        _apply(warehouse, 7, variation_id=3)

        assert _quantity(warehouse) == 4
        assert _quantity(warehouse, variation_id=3) == 7
        assert _quantity(warehouse, variation_id=9) == 0


class TestJournal:
    def test_every_entry_balances(self, db_session):
        journal_service.post_purchase_receipt(1, None, "Acme", 5000, today(), "alice")
        journal_service.post_payment(1, None, "Acme", 2000, today(), "alice", payment_method="cash")
        journal_service.post_purchase_return(1, None, "Acme", 1000, today(), "alice")

        for entry in db_session.query(JournalEntry).all():
            assert sum(l.debit_cents for l in entry.lines) == sum(l.credit_cents for l in entry.lines)
        assert journal_service.get_account_balance(journal_service.ACCOUNT_INVENTORY) == 4000
        assert journal_service.get_account_balance(journal_service.ACCOUNT_PAYABLE) == -2000
        assert journal_service.get_account_balance(journal_service.ACCOUNT_CASH) == -2000

    def test_ensure_account_is_idempotent(self, db_session):
        first = journal_service.ensure_account(journal_service.ACCOUNT_BANK)
        second = journal_service.ensure_account(journal_service.ACCOUNT_BANK)

        assert first.id == second.id
        assert db_session.query(Account).filter_by(code="1200").count() == 1

    def test_non_cash_methods_settle_through_bank(self, app):
        journal_service.post_payment(1, None, "Acme", 700, today(), "alice", payment_method="bank_transfer")

        assert journal_service.get_account_balance(journal_service.ACCOUNT_BANK) == -700
        assert journal_service.get_account_balance(journal_service.ACCOUNT_CASH) == 0

    def test_reversal_mirrors_original(self, db_session):
        original_id = journal_service.post_payment(1, None, "Acme", 2000, today(), "alice", payment_method="cash")

        reversal_id = journal_service.post_payment_reversal(
            1, None, "Acme", 2000, today(), "alice", reverses_entry_id=original_id
        )

        original = db_session.get(JournalEntry, original_id)
        reversal = db_session.get(JournalEntry, reversal_id)
        assert reversal.reverses_entry_id == original_id
        assert [(l.account.code, l.debit_cents, l.credit_cents) for l in reversal.lines] == [
            (l.account.code, l.credit_cents, l.debit_cents) for l in original.lines
        ]
        assert journal_service.get_account_balance(journal_service.ACCOUNT_CASH) == 0

    def test_reversal_amount_must_match(self, app):
        original_id = journal_service.post_payment(1, None, "Acme", 2000, today(), "alice", payment_method="cash")

        with pytest.raises(SideEffectError, match="does not match"):
            journal_service.post_payment_reversal(
                1, None, "Acme", 1500, today(), "alice", reverses_entry_id=original_id
            )

    def test_zero_amount_rejected(self, db_session):
        with pytest.raises(SideEffectError):
            journal_service.post_purchase_receipt(1, None, "Acme", 0, today(), "alice")
        db_session.rollback()
        assert db_session.query(JournalEntry).count() == 0
