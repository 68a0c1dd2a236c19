# Overview: Pytest coverage for the append-only timeline and historical backfill.

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from purchasing.errors import TimelineError
from purchasing.models import Purchase, PurchaseEvent, PurchaseItem, PurchasePayment
from purchasing.services import timeline_service
from purchasing.services.payment_service import create_payment
from purchasing.services.receipt_service import receive_items
from purchasing.services.timeline_service import (
    backfill_all_timelines,
    backfill_timeline,
    get_purchase_timeline,
    record_event,
)
from purchasing.time_utils import utcnow


PLACED_AT = datetime(2026, 9, 1, 9, 0, 0)


@pytest.fixture
def legacy_purchase(db_session, supplier, warehouse):
    """
    A purchase written before the timeline existed: fully received, one
    active and one voided payment, and no events at all.
    """
    purchase = Purchase(
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        warehouse_id=warehouse.id,
        warehouse_name=warehouse.name,
        purchase_date=PLACED_AT.date(),
        status="received",
        status_updated_at=PLACED_AT + timedelta(days=2),
        total_amount_cents=5000,
        amount_paid_cents=3000,
        payment_status="partial",
        created_by="legacy",
        created_at=PLACED_AT,
        updated_at=PLACED_AT,
    )
    db_session.add(purchase)
    db_session.flush()
    db_session.add(PurchaseItem(
        purchase_id=purchase.id,
        item_type="product",
        item_id=101,
        item_name="Widget",
        quantity=10,
        received_quantity=10,
        returned_quantity=0,
        unit_price_cents=500,
        total_cents=5000,
    ))
    db_session.add(PurchasePayment(
        purchase_id=purchase.id,
        amount_cents=3000,
        payment_method="cash",
        payment_date=PLACED_AT.date() + timedelta(days=3),
        status="active",
        created_by="legacy",
        created_at=PLACED_AT + timedelta(days=3),
    ))
    db_session.add(PurchasePayment(
        purchase_id=purchase.id,
        amount_cents=1000,
        payment_method="check",
        payment_date=PLACED_AT.date() + timedelta(days=4),
        status="void",
        notes="VOIDED: bounced",
        created_by="legacy",
        created_at=PLACED_AT + timedelta(days=4),
        voided_by="legacy",
        voided_at=PLACED_AT + timedelta(days=5),
    ))
    db_session.commit()
    return purchase.id


class TestRecordEvent:
    def test_rejects_unknown_event_type(self, make_purchase):
        purchase_id = make_purchase()
        with pytest.raises(TimelineError):
            record_event(purchase_id, "shipped")

    def test_only_one_order_placed_per_purchase(self, db_session, make_purchase):
        purchase_id = make_purchase()
        with pytest.raises(IntegrityError):
            record_event(purchase_id, timeline_service.EVENT_ORDER_PLACED)
        db_session.rollback()
        assert db_session.query(PurchaseEvent).filter_by(event_type="order_placed").count() == 1

    def test_ordered_by_event_date_then_id(self, make_purchase):
        purchase_id = make_purchase()
        earlier = utcnow() - timedelta(days=1)
        second = record_event(purchase_id, timeline_service.EVENT_STATUS_CHANGE, event_date=earlier)
        first = record_event(purchase_id, timeline_service.EVENT_CANCELLED, event_date=earlier - timedelta(hours=1))
        third = record_event(purchase_id, timeline_service.EVENT_STATUS_CHANGE, event_date=earlier)

        ids = [e["id"] for e in get_purchase_timeline(purchase_id)]

        assert ids[:3] == [first, second, third]

    def test_metadata_round_trips(self, make_purchase):
        purchase_id = make_purchase()
        record_event(purchase_id, timeline_service.EVENT_STATUS_CHANGE, metadata={"source": "test"})

        assert get_purchase_timeline(purchase_id)[-1]["metadata"] == {"source": "test"}

    def test_timeline_cache_invalidated_on_write(self, make_purchase):
        purchase_id = make_purchase()
        before = get_purchase_timeline(purchase_id)

        create_payment(purchase_id, 1000, "cash", None, "alice")

        after = get_purchase_timeline(purchase_id)
        assert len(after) == len(before) + 1


class TestBackfill:
    def test_legacy_purchase(self, db_session, legacy_purchase):
        created = backfill_timeline(legacy_purchase)

        assert created == ["order_placed", "full_receipt", "payment_made", "payment_made", "payment_voided"]
        events = get_purchase_timeline(legacy_purchase)
        assert events[0]["event_type"] == "order_placed"
        assert all(e["metadata"] == {"backfilled": True} for e in events)
        assert events[-1]["event_type"] == "payment_voided"

    def test_second_run_creates_nothing(self, legacy_purchase):
        backfill_timeline(legacy_purchase)
        assert backfill_timeline(legacy_purchase) == []

    def test_live_purchase_needs_nothing(self, db_session, make_purchase):
        purchase_id = make_purchase()
        (item_id,) = [i.id for i in db_session.query(PurchaseItem).filter_by(purchase_id=purchase_id)]
        receive_items(purchase_id, [(item_id, 10)], "alice")
        create_payment(purchase_id, 5000, "cash", None, "alice")

        assert backfill_timeline(purchase_id) == []

    def test_backfill_all_skips_failures(self, db_session, make_purchase, legacy_purchase, monkeypatch):
        live_id = make_purchase()
        broken_id = make_purchase()
        db_session.query(PurchaseEvent).filter_by(purchase_id=broken_id).delete()
        db_session.commit()

        real = timeline_service._synthesize_missing

        def _synthesize(purchase):
            if purchase.id == broken_id:
                raise RuntimeError("corrupt row")
            return real(purchase)

        monkeypatch.setattr(timeline_service, "_synthesize_missing", _synthesize)

        summary = backfill_all_timelines()

        assert summary["failed"] == [broken_id]
        assert summary["processed"] == 2
        assert summary["events_created"] == 5
        assert backfill_timeline(live_id) == []
