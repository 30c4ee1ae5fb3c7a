"""
Tests for lifecycle notifications — who hears about what, and that a
broken notification store never affects the transition.
"""

from contextlib import contextmanager

import pytest

from copallet.core.errors import NotFound, Unauthorized
from copallet.services.lifecycle_engine import LifecycleEngine
from copallet.services.notification_service import LifecycleEvent, NotificationService


def _types(service, user_id):
    return sorted(n.type for n in service.list_for_user(user_id))


@pytest.fixture
def service():
    return NotificationService()


class TestLifecycleEvents:
    def test_accept_notifies_every_party(self, engine, service, open_shipment, shipper, carrier_a, carrier_b):
        bid_a = engine.place_bid(open_shipment.id, carrier_a, 400)
        engine.place_bid(open_shipment.id, carrier_b, 450)

        engine.accept_bid(open_shipment.id, bid_a.id, shipper)

        assert _types(service, carrier_a.user_id) == ["bid_accepted"]
        assert _types(service, carrier_b.user_id) == ["bid_declined"]
        assert _types(service, shipper.user_id) == ["bid_received", "bid_received", "shipment_assigned"]

    def test_accept_event_payload(self, engine, service, open_shipment, shipper, carrier_a):
        bid = engine.place_bid(open_shipment.id, carrier_a, 400)
        engine.accept_bid(open_shipment.id, bid.id, shipper)

        (accepted,) = service.list_for_user(carrier_a.user_id)
        assert accepted.data["shipment_id"] == open_shipment.id
        assert accepted.data["bid_id"] == bid.id
        assert accepted.is_read is False

    def test_transit_and_delivery_notify_shipper(self, engine, service, open_shipment, shipper, carrier_a):
        bid = engine.place_bid(open_shipment.id, carrier_a, 400)
        engine.accept_bid(open_shipment.id, bid.id, shipper)
        engine.start_transit(open_shipment.id, carrier_a)
        engine.mark_delivered(open_shipment.id, carrier_a, "pod-77")

        types = _types(service, shipper.user_id)
        assert "shipment_in_transit" in types
        assert "delivery_complete" in types

    def test_cancel_notifies_bidders(self, engine, service, open_shipment, shipper, carrier_a, carrier_b):
        engine.place_bid(open_shipment.id, carrier_a, 400)
        engine.place_bid(open_shipment.id, carrier_b, 450)

        engine.cancel(open_shipment.id, shipper)

        assert _types(service, carrier_a.user_id) == ["shipment_cancelled"]
        assert _types(service, carrier_b.user_id) == ["shipment_cancelled"]

    def test_decline_notifies_carrier(self, engine, service, open_shipment, shipper, carrier_a):
        bid = engine.place_bid(open_shipment.id, carrier_a, 400)
        engine.decline_bid(open_shipment.id, bid.id, shipper)
        assert _types(service, carrier_a.user_id) == ["bid_declined"]

    def test_failed_operation_emits_nothing(self, engine, service, open_shipment, other_shipper, carrier_a):
        bid = engine.place_bid(open_shipment.id, carrier_a, 400)
        with pytest.raises(Unauthorized):
            engine.accept_bid(open_shipment.id, bid.id, other_shipper)
        assert service.list_for_user(carrier_a.user_id) == []


class TestFireAndForget:
    def test_broken_store_does_not_break_transition(self, shipper, payload, carrier_a):
        @contextmanager
        def broken_session():
            raise RuntimeError("notification store offline")
            yield  # pragma: no cover

        engine = LifecycleEngine(notifier=NotificationService(session_factory=broken_session))
        shipment = engine.publish(engine.create_shipment(shipper, payload).id, shipper)

        bid = engine.place_bid(shipment.id, carrier_a, 300)
        assigned, accepted = engine.accept_bid(shipment.id, bid.id, shipper)

        assert assigned.status == "assigned"
        assert accepted.status == "accepted"

    def test_emit_reports_failure_as_zero(self):
        @contextmanager
        def broken_session():
            raise RuntimeError("boom")
            yield  # pragma: no cover

        service = NotificationService(session_factory=broken_session)
        event = LifecycleEvent(type="bid_accepted", user_id="u1", title="t", message="m")
        assert service.emit([event]) == 0

    def test_disabled_service_stores_nothing(self, engine, shipper):
        service = NotificationService(enabled=False)
        event = LifecycleEvent(type="bid_received", user_id=shipper.user_id, title="t", message="m")
        assert service.emit([event]) == 0
        assert service.list_for_user(shipper.user_id) == []


class TestInbox:
    def test_mark_read(self, service, shipper):
        service.emit([LifecycleEvent(type="bid_received", user_id=shipper.user_id, title="t", message="m")])
        (note,) = service.list_for_user(shipper.user_id)
        assert service.unread_count(shipper.user_id) == 1

        updated = service.mark_read(note.id, shipper.user_id)

        assert updated.is_read is True
        assert service.unread_count(shipper.user_id) == 0
        assert service.list_for_user(shipper.user_id, unread_only=True) == []

    def test_cannot_read_someone_elses(self, service, shipper, other_shipper):
        service.emit([LifecycleEvent(type="bid_received", user_id=shipper.user_id, title="t", message="m")])
        (note,) = service.list_for_user(shipper.user_id)
        with pytest.raises(NotFound):
            service.mark_read(note.id, other_shipper.user_id)
