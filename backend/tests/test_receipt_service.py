# Overview: Pytest coverage for cumulative receipt processing and its side effects.

"""
Receipt Processor Tests

Covers:
- Lifecycle example: receive 6 of 10, then the remaining 4
- Absolute (cumulative) writes: resubmission is a no-op
- Validation before any write
- Best-effort side effects reported on the result, never rolled back
"""

import logging

import pytest

from purchasing.errors import NotFoundError, ValidationError
from purchasing.models import Purchase, PurchaseItem, StockMovement
from purchasing.services import (
    journal_service,
    purchase_repository,
    stock_ledger_service,
    timeline_service,
)
from purchasing.services.receipt_service import receive_items


def _item_ids(purchase_id):
    return [item.id for item in purchase_repository.get_items(purchase_id)]


def _stock(warehouse, item_type="product", item_id=101, variation_id=None):
    return stock_ledger_service.get_stock_quantity(
        item_type=item_type, item_id=item_id, warehouse_id=warehouse.id, variation_id=variation_id
    )


def _event_types(purchase_id):
    return [e["event_type"] for e in timeline_service.get_purchase_timeline(purchase_id, force_refresh=True)]


class TestReceiveItems:
    def test_partial_then_full_receipt(self, db_session, make_purchase, warehouse):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)

        first = receive_items(purchase_id, [(item_id, 6)], "alice")
        assert first.succeeded
        assert first.previous_status == "pending"
        assert first.new_status == "partially_received"
        assert first.event_type == "partial_receipt"
        assert first.total_delta == 6
        assert first.receipt_amount_cents == 3000
        assert _stock(warehouse) == 6

        second = receive_items(purchase_id, [(item_id, 10)], "alice")
        assert second.succeeded
        assert second.new_status == "received"
        assert second.event_type == "full_receipt"
        assert second.total_delta == 4
        assert _stock(warehouse) == 10

        assert db_session.get(Purchase, purchase_id).status == "received"
        assert _event_types(purchase_id) == ["order_placed", "partial_receipt", "full_receipt"]

    def test_one_event_per_call_across_lines(self, make_purchase, two_line_items, warehouse):
        purchase_id = make_purchase(items=two_line_items)
        first_id, second_id = _item_ids(purchase_id)

        result = receive_items(
            purchase_id,
            [{"purchase_item_id": first_id, "received_quantity": 1},
             {"purchase_item_id": second_id, "received_quantity": 1}],
            "alice",
        )

        assert result.changed_items == 2
        assert result.total_delta == 2
        assert _event_types(purchase_id) == ["order_placed", "full_receipt"]
        assert _stock(warehouse, "package", 202, variation_id=7) == 1
        events = timeline_service.get_purchase_timeline(purchase_id)
        assert events[-1]["affected_items_count"] == 2
        assert events[-1]["metadata"]["receipt_amount_cents"] == 2000

    def test_resubmitting_same_quantity_is_noop(self, db_session, make_purchase, warehouse):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)
        receive_items(purchase_id, {item_id: 6}, "alice")

        again = receive_items(purchase_id, {item_id: 6}, "alice")

        assert again.changed_items == 0
        assert again.outcomes == []
        assert _stock(warehouse) == 6
        assert db_session.query(StockMovement).count() == 1
        assert _event_types(purchase_id) == ["order_placed", "partial_receipt"]

    def test_validates_every_line_before_writing(self, db_session, make_purchase, two_line_items):
        purchase_id = make_purchase(items=two_line_items)
        first_id, second_id = _item_ids(purchase_id)

        with pytest.raises(ValidationError, match="cannot exceed ordered quantity 1"):
            receive_items(purchase_id, [(first_id, 1), (second_id, 5)], "alice")

        assert db_session.get(PurchaseItem, first_id).received_quantity == 0
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_item_and_purchase(self, make_purchase):
        purchase_id = make_purchase()
        with pytest.raises(NotFoundError):
            receive_items(purchase_id, [(9999, 1)], "alice")
        with pytest.raises(NotFoundError):
            receive_items(9999, [(1, 1)], "alice")

    def test_rejects_duplicates_and_negative_input(self, make_purchase):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)
        with pytest.raises(ValidationError):
            receive_items(purchase_id, [(item_id, 1), (item_id, 2)], "alice")
        with pytest.raises(ValidationError):
            receive_items(purchase_id, [(item_id, -1)], "alice")
        with pytest.raises(ValidationError):
            receive_items(purchase_id, [], "alice")

    def test_posts_receipt_journal_entry(self, make_purchase):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)

        result = receive_items(purchase_id, [(item_id, 10)], "alice")

        journal = [o for o in result.outcomes if o.step == "journal"]
        assert journal and journal[0].succeeded and journal[0].reference
        assert journal_service.get_account_balance(journal_service.ACCOUNT_INVENTORY) == 5000
        assert journal_service.get_account_balance(journal_service.ACCOUNT_PAYABLE) == -5000

    def test_stock_failure_is_reported_not_rolled_back(self, db_session, make_purchase, monkeypatch):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)

        def boom(**kwargs):
            raise RuntimeError("stock service down")

        monkeypatch.setattr(stock_ledger_service, "apply_stock_delta", boom)
        result = receive_items(purchase_id, [(item_id, 10)], "alice")

        assert not result.succeeded
        assert [o.step for o in result.failed_steps] == ["stock"]
        assert result.failed_steps[0].reference == item_id
        # Primary write and later steps still happened
        assert db_session.get(PurchaseItem, item_id).received_quantity == 10
        assert db_session.get(Purchase, purchase_id).status == "received"
        assert {o.step for o in result.outcomes if o.succeeded} == {"journal", "timeline"}
        assert _event_types(purchase_id)[-1] == "full_receipt"

    def test_refused_stock_delta_counts_as_failure(self, make_purchase, monkeypatch):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)
        monkeypatch.setattr(stock_ledger_service, "apply_stock_delta", lambda **kwargs: False)

        result = receive_items(purchase_id, [(item_id, 3)], "alice")

        assert [o.step for o in result.failed_steps] == ["stock"]

    def test_journal_failure_is_logged(self, make_purchase, monkeypatch, caplog):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)

        def boom(*args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(journal_service, "post_purchase_receipt", boom)
        with caplog.at_level(logging.ERROR):
            result = receive_items(purchase_id, [(item_id, 4)], "alice")

        assert [o.step for o in result.failed_steps] == ["journal"]
        assert "SideEffectError" in result.failed_steps[0].error
        assert any("journal" in record.getMessage() for record in caplog.records)

    def test_lowering_received_records_status_change(self, db_session, make_purchase, warehouse):
        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)
        receive_items(purchase_id, [(item_id, 6)], "alice")

        result = receive_items(purchase_id, [(item_id, 4)], "alice")

        assert result.total_delta == -2
        assert result.event_type == "status_change"
        assert result.receipt_amount_cents == 0
        assert db_session.get(PurchaseItem, item_id).received_quantity == 4
        assert _stock(warehouse) == 6

    def test_cannot_lower_received_below_returned(self, make_purchase):
        from purchasing.services.return_service import process_return

        purchase_id = make_purchase()
        (item_id,) = _item_ids(purchase_id)
        receive_items(purchase_id, [(item_id, 6)], "alice")
        process_return(purchase_id, "damaged", None, "alice", [(item_id, 3)])

        with pytest.raises(ValidationError, match="returned quantity 3"):
            receive_items(purchase_id, [(item_id, 2)], "alice")
