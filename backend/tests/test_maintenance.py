# Overview: Pytest coverage for status repair and the purchases CLI group.

from purchasing.models import Purchase, PurchaseEvent
from purchasing.services import purchase_repository, timeline_service
from purchasing.services.maintenance_service import fix_purchase_statuses
from purchasing.services.receipt_service import receive_items


def _received_purchase(make_purchase, db_session, stale_status="pending"):
    purchase_id = make_purchase()
    (item_id,) = [item.id for item in purchase_repository.get_items(purchase_id)]
    receive_items(purchase_id, [(item_id, 10)], "alice")
    purchase = db_session.get(Purchase, purchase_id)
    purchase.status = stale_status
    db_session.commit()
    return purchase_id


class TestFixPurchaseStatuses:
    def test_corrects_stale_status(self, db_session, make_purchase):
        untouched_id = make_purchase()
        stale_id = _received_purchase(make_purchase, db_session)

        summary = fix_purchase_statuses()

        assert summary["checked"] == 2
        assert summary["fixed"] == [{"purchase_id": stale_id, "from": "pending", "to": "received"}]
        assert db_session.get(Purchase, stale_id).status == "received"
        # No activity yet: stays pending
        assert db_session.get(Purchase, untouched_id).status == "pending"
        event = (
            db_session.query(PurchaseEvent)
            .filter_by(purchase_id=stale_id, event_type="status_change")
            .one()
        )
        assert (event.previous_status, event.new_status, event.created_by) == ("pending", "received", "system")

    def test_second_run_fixes_nothing(self, db_session, make_purchase):
        _received_purchase(make_purchase, db_session)
        fix_purchase_statuses()

        assert fix_purchase_statuses()["fixed"] == []

    def test_event_failure_is_reported(self, db_session, make_purchase, monkeypatch):
        stale_id = _received_purchase(make_purchase, db_session, stale_status="partially_received")

        def _boom(*args, **kwargs):
            raise RuntimeError("timeline unavailable")

        monkeypatch.setattr(timeline_service, "record_event", _boom)
        summary = fix_purchase_statuses()

        assert summary["failed_events"] == [stale_id]
        assert db_session.get(Purchase, stale_id).status == "received"


class TestPurchasesCli:
    def test_fix_statuses_command(self, app, db_session, make_purchase):
        stale_id = _received_purchase(make_purchase, db_session)

        result = app.test_cli_runner().invoke(args=["purchases", "fix-statuses"])

        assert result.exit_code == 0
        assert f"Purchase {stale_id}: pending -> received" in result.output
        assert "Checked 1 purchases, fixed 1" in result.output

    def test_backfill_single_purchase(self, app, make_purchase):
        purchase_id = make_purchase()

        result = app.test_cli_runner().invoke(
            args=["purchases", "backfill-timeline", "--purchase-id", str(purchase_id)]
        )

        assert result.exit_code == 0
        assert "timeline already complete" in result.output

    def test_backfill_unknown_purchase(self, app):
        result = app.test_cli_runner().invoke(
            args=["purchases", "backfill-timeline", "--purchase-id", "999"]
        )

        assert result.exit_code != 0
        assert "Purchase 999 not found" in result.output

    def test_backfill_all(self, app, make_purchase):
        make_purchase()
        make_purchase()

        result = app.test_cli_runner().invoke(args=["purchases", "backfill-timeline"])

        assert result.exit_code == 0
        assert "Processed 2 purchases, created 0 events" in result.output
