# Overview: Pytest coverage for order placement and the cached purchase reads.

import pytest

from purchasing.errors import NotFoundError, ValidationError
from purchasing.models import Purchase, PurchaseItem, PurchaseEvent
from purchasing.services import timeline_service
from purchasing.services.purchase_service import (
    create_purchase,
    get_purchase_detail,
    get_purchase_stats,
)


class TestCreatePurchase:
    def test_total_is_sum_of_item_totals(self, db_session, make_purchase, two_line_items):
        purchase_id = make_purchase(items=two_line_items)

        purchase = db_session.get(Purchase, purchase_id)
        assert purchase.total_amount_cents == 2000
        assert purchase.status == "pending"
        assert purchase.payment_status == "unpaid"
        assert [i.total_cents for i in purchase.items] == [500, 1500]
        assert purchase.items[1].variation_id == 7

    def test_order_placed_event_is_recorded(self, make_purchase):
        purchase_id = make_purchase()

        events = timeline_service.get_purchase_timeline(purchase_id)
        assert [e["event_type"] for e in events] == ["order_placed"]
        assert events[0]["new_status"] == "pending"
        assert events[0]["total_items_count"] == 1

    def test_total_and_item_amounts_are_write_once(self, db_session, make_purchase):
        purchase_id = make_purchase()
        purchase = db_session.get(Purchase, purchase_id)
        item = purchase.items[0]

        with pytest.raises(ValueError):
            purchase.total_amount_cents = 1
        with pytest.raises(ValueError):
            item.quantity = 20
        with pytest.raises(ValueError):
            item.unit_price_cents = 1
        db_session.rollback()

        assert db_session.get(Purchase, purchase_id).total_amount_cents == 5000

    def test_requires_items(self, supplier, warehouse):
        with pytest.raises(ValidationError):
            create_purchase(supplier_id=supplier.id, warehouse_id=warehouse.id, created_by="alice", items=[])

    @pytest.mark.parametrize("bad_line", [
        {"item_id": 1, "item_name": "A", "quantity": 0, "unit_price_cents": 100},
        {"item_id": 1, "item_name": "A", "quantity": 2.5, "unit_price_cents": 100},
        {"item_id": 1, "item_name": "A", "quantity": 1, "unit_price_cents": -1},
        {"item_id": 1, "item_name": "A", "quantity": 1, "unit_price_cents": "1e3"},
        {"item_id": 1, "item_name": "", "quantity": 1, "unit_price_cents": 100},
        {"item_type": "service", "item_id": 1, "item_name": "A", "quantity": 1, "unit_price_cents": 100},
    ])
    def test_rejects_invalid_lines(self, db_session, supplier, warehouse, bad_line):
        with pytest.raises(ValidationError):
            create_purchase(
                supplier_id=supplier.id, warehouse_id=warehouse.id, created_by="alice", items=[bad_line]
            )
        assert db_session.query(Purchase).count() == 0

    def test_unknown_supplier(self, warehouse):
        with pytest.raises(NotFoundError):
            create_purchase(
                supplier_id=999,
                warehouse_id=warehouse.id,
                created_by="alice",
                items=[{"item_id": 1, "item_name": "A", "quantity": 1, "unit_price_cents": 100}],
            )

    def test_timeline_failure_keeps_the_order(self, db_session, supplier, warehouse, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("timeline store unavailable")

        monkeypatch.setattr(timeline_service, "record_event", boom)
        result = create_purchase(
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            created_by="alice",
            items=[{"item_id": 1, "item_name": "A", "quantity": 1, "unit_price_cents": 100}],
        )

        assert not result.succeeded
        assert [o.step for o in result.failed_steps] == ["timeline"]
        assert "TimelineError" in result.failed_steps[0].error
        assert db_session.get(Purchase, result.purchase_id) is not None
        assert db_session.query(PurchaseItem).filter_by(purchase_id=result.purchase_id).count() == 1
        assert db_session.query(PurchaseEvent).count() == 0


class TestCachedReads:
    def test_detail_contains_items(self, make_purchase):
        purchase_id = make_purchase()

        detail = get_purchase_detail(purchase_id)
        assert detail["id"] == purchase_id
        assert detail["total_amount_cents"] == 5000
        assert detail["items"][0]["item_name"] == "Widget"
        assert detail["returns"] == []

    def test_detail_is_cached_until_refresh(self, db_session, make_purchase):
        purchase_id = make_purchase()
        get_purchase_detail(purchase_id)

        purchase = db_session.get(Purchase, purchase_id)
        purchase.notes = "changed behind the cache"
        db_session.commit()

        assert get_purchase_detail(purchase_id)["notes"] is None
        assert get_purchase_detail(purchase_id, force_refresh=True)["notes"] == "changed behind the cache"

    def test_missing_purchase_is_not_cached(self, cache):
        with pytest.raises(NotFoundError):
            get_purchase_detail(404)
        assert len(cache) == 0

    def test_stats(self, make_purchase, two_line_items):
        make_purchase()
        make_purchase(items=two_line_items)

        stats = get_purchase_stats()
        assert stats["total_purchases"] == 2
        assert stats["by_status"] == {"pending": 2}
        assert stats["total_amount_cents"] == 7000
        assert stats["total_paid_cents"] == 0

    def test_create_invalidates_stats(self, make_purchase):
        make_purchase()
        assert get_purchase_stats()["total_purchases"] == 1
        make_purchase()
        assert get_purchase_stats()["total_purchases"] == 2
