"""Tests for staff refunds and the refund request workflow."""
import pytest

from ferry.auth.schemas import GUEST
from ferry.exceptions import InvalidStateError, NotFoundError, ValidationError
from ferry.models import Refund, Trip
from ferry.bookings.schemas import RefundAction, RefundActionRequest


@pytest.fixture
def confirmed(booking_service, ferry_data, make_request, admin_actor):
    booking, _ = booking_service.create_booking(make_request(ferry_data.far.id, ["adult", "child"]), GUEST)
    return booking_service.confirm_payment(booking.reference, admin_actor)


class TestStaffRefund:
    """Direct full refunds."""

    def test_refund_voids_booking_and_tickets(self, db, refund_service, confirmed, admin_actor, recorder):
        refund = refund_service.refund(confirmed.id, "vessel_cancellation", admin_actor, gcash_reference="GC123")
        assert refund.status == "processed"
        assert refund.amount_cents == confirmed.total_amount_cents
        assert refund.policy_basis == "vessel_cancellation"
        assert refund.gcash_reference == "GC123"
        assert confirmed.status == "refunded"
        assert confirmed.refund_status == "processed"
        assert {t.status for t in confirmed.tickets} == {"refunded"}
        assert recorder.events("refund_updated")[0]["refund_status"] == "processed"

    def test_refund_keeps_seat_counters(self, db, refund_service, confirmed, ferry_data, admin_actor):
        refund_service.refund(confirmed.id, "weather_disturbance", admin_actor)
        db.expire_all()
        assert db.get(Trip, ferry_data.far.id).online_booked == 2

    def test_second_refund_rejected(self, refund_service, confirmed, admin_actor):
        refund_service.refund(confirmed.id, "weather_disturbance", admin_actor)
        with pytest.raises(InvalidStateError) as exc_info:
            refund_service.refund(confirmed.id, "weather_disturbance", admin_actor)
        assert "already been refunded" in exc_info.value.message

    def test_reason_must_be_policy_reason(self, refund_service, confirmed, admin_actor):
        with pytest.raises(ValidationError):
            refund_service.refund(confirmed.id, "changed_my_mind", admin_actor)

    def test_pending_booking_can_be_refunded(self, booking_service, refund_service, ferry_data, make_request,
                                             admin_actor):
        booking, _ = booking_service.create_booking(make_request(ferry_data.far.id), GUEST)
        refund_service.refund(booking.id, "weather_disturbance", admin_actor)
        assert booking.status == "refunded"

    def test_unknown_booking(self, refund_service, ferry_data, admin_actor):
        with pytest.raises(NotFoundError):
            refund_service.refund(9999, "weather_disturbance", admin_actor)

    def test_staff_refund_closes_open_request(self, db, refund_service, confirmed, passenger_actor, admin_actor):
        request = refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor)
        refund_service.review(request.id, admin_actor)
        direct = refund_service.refund(confirmed.id, "vessel_cancellation", admin_actor)

        db.expire_all()
        request = db.get(Refund, request.id)
        assert request.status == "rejected"
        assert request.rejection_reason == "Superseded by a staff refund"

        with pytest.raises(InvalidStateError):
            refund_service.approve(request.id, admin_actor)
        latest = db.query(Refund).filter(Refund.booking_id == confirmed.id).order_by(Refund.id.desc()).first()
        assert latest.id == direct.id
        assert confirmed.refund_status == latest.status == "processed"


class TestRefundRequestWorkflow:
    """Passenger requests reviewed and processed by staff."""

    def test_request_creates_requested_refund(self, refund_service, confirmed, passenger_actor):
        refund = refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor,
                                               notes="  Storm signal no. 2  ")
        assert refund.status == "requested"
        assert confirmed.refund_status == "requested"
        assert confirmed.refund_request_notes == "Storm signal no. 2"
        assert confirmed.status == "confirmed"

    def test_one_request_per_booking(self, refund_service, confirmed, passenger_actor):
        refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor)
        with pytest.raises(InvalidStateError):
            refund_service.request_refund(confirmed.reference, "vessel_cancellation", passenger_actor)

    def test_full_workflow_refunds_booking(self, refund_service, confirmed, passenger_actor, admin_actor):
        refund = refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor)
        refund = refund_service.review(refund.id, admin_actor, "Checking PAGASA bulletin")
        assert refund.status == "under_review"
        assert confirmed.refund_status == "under_review"

        refund = refund_service.approve(refund.id, admin_actor)
        assert refund.status == "approved"
        assert refund.approved_by == admin_actor.profile_id

        refund = refund_service.process(refund.id, admin_actor, gcash_reference="GC999")
        assert refund.status == "processed"
        assert confirmed.status == "refunded"
        assert confirmed.refund_status == "processed"

    def test_reject_requires_reason(self, refund_service, confirmed, passenger_actor, admin_actor):
        refund = refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor)
        with pytest.raises(ValidationError):
            refund_service.reject(refund.id, admin_actor, "  ")
        refund = refund_service.reject(refund.id, admin_actor, "Trip sailed as scheduled")
        assert refund.status == "rejected"
        assert confirmed.refund_status == "rejected"
        assert confirmed.status == "confirmed"

    def test_cannot_process_unapproved(self, refund_service, confirmed, passenger_actor, admin_actor):
        refund = refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor)
        with pytest.raises(InvalidStateError):
            refund_service.process(refund.id, admin_actor)

    def test_partial_approval_amount(self, refund_service, confirmed, passenger_actor, admin_actor):
        refund = refund_service.request_refund(confirmed.reference, "weather_disturbance", passenger_actor)
        with pytest.raises(ValidationError):
            refund_service.approve(refund.id, admin_actor, amount_cents=confirmed.total_amount_cents + 1)
        refund = refund_service.approve(refund.id, admin_actor, amount_cents=50000)
        assert refund.amount_cents == 50000
        assert refund.refund_type == "partial"

    def test_apply_action_dispatch(self, refund_service, confirmed, passenger_actor, admin_actor):
        refund = refund_service.request_refund(confirmed.reference, "vessel_cancellation", passenger_actor)
        refund = refund_service.apply_action(refund.id, RefundActionRequest(action=RefundAction.APPROVE), admin_actor)
        refund = refund_service.apply_action(
            refund.id, RefundActionRequest(action="process", gcash_reference="GC1"), admin_actor
        )
        assert refund.status == "processed"
        assert [r.id for r in refund_service.list_refunds("processed")] == [refund.id]

    def test_unknown_refund(self, refund_service, ferry_data, admin_actor):
        with pytest.raises(NotFoundError):
            refund_service.review(9999, admin_actor)


class TestAcknowledgeRefund:
    """Passenger-side acknowledgement of a refund."""

    def test_acknowledge_refunded_booking(self, db, refund_service, confirmed, admin_actor):
        refund_service.refund(confirmed.id, "weather_disturbance", admin_actor)
        booking = refund_service.acknowledge_refund(confirmed.reference)
        assert booking.refund_acknowledged_at is not None
        assert booking.status == "refunded"
        assert db.query(Refund).count() == 1

    def test_only_refunded_bookings(self, refund_service, confirmed):
        with pytest.raises(InvalidStateError):
            refund_service.acknowledge_refund(confirmed.reference)
