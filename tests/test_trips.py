"""Tests for trip generation, deletion and lifecycle."""
from datetime import date, datetime, time

import pytest

from ferry.auth.schemas import GUEST
from ferry.bookings.booking_service import detach_from_trip
from ferry.exceptions import InvalidStateError, NotFoundError, ValidationError
from ferry.models import Booking, BookingChange, ScheduleSlot, Trip
from ferry.trips.schemas import Channel, TripStatus
from ferry.trips.service import trip_summary


class TestCreateTripsForVessel:
    """Schedule slots expanded over a date range."""

    def test_one_trip_per_active_slot_and_day(self, db, trip_service, ferry_data):
        result = trip_service.create_trips_for_vessel(
            ferry_data.other_vessel.id, ferry_data.route.id, date(2026, 3, 10), date(2026, 3, 12)
        )
        assert result.created == 6
        assert result.skipped_existing == 0

        trips = db.query(Trip).filter(Trip.id.in_(result.trip_ids)).all()
        assert {t.departure_time for t in trips} == {time(8, 0), time(14, 0)}
        assert {(t.online_quota, t.walk_in_quota) for t in trips} == {(4, 4)}
        assert {t.status for t in trips} == {"scheduled"}

    def test_existing_trips_are_skipped(self, trip_service, ferry_data):
        result = trip_service.create_trips_for_vessel(
            ferry_data.vessel.id, ferry_data.route.id, date(2026, 3, 5), date(2026, 3, 7)
        )
        assert result.skipped_existing == 2
        assert result.created == 4

    def test_vessel_cannot_serve_another_route(self, db, trip_service, ferry_data):
        db.add(ScheduleSlot(route_id=ferry_data.other_route.id, departure_time=time(9, 0), is_active=True))
        db.commit()
        with pytest.raises(ValidationError) as exc_info:
            trip_service.create_trips_for_vessel(
                ferry_data.vessel.id, ferry_data.other_route.id, date(2026, 3, 5), date(2026, 3, 5)
            )
        assert "MV Nier" in exc_info.value.message

    def test_return_leg_is_allowed(self, db, trip_service, ferry_data):
        db.add(ScheduleSlot(route_id=ferry_data.return_route.id, departure_time=time(11, 0), is_active=True))
        db.commit()
        result = trip_service.create_trips_for_vessel(
            ferry_data.vessel.id, ferry_data.return_route.id, date(2026, 3, 5), date(2026, 3, 6)
        )
        assert result.created == 2

    def test_route_without_active_slots(self, trip_service, ferry_data):
        with pytest.raises(ValidationError):
            trip_service.create_trips_for_vessel(
                ferry_data.other_vessel.id, ferry_data.other_route.id, date(2026, 3, 5), date(2026, 3, 6)
            )

    def test_reversed_range(self, trip_service, ferry_data):
        with pytest.raises(ValidationError):
            trip_service.create_trips_for_vessel(
                ferry_data.vessel.id, ferry_data.route.id, date(2026, 3, 6), date(2026, 3, 5)
            )

    def test_unknown_vessel(self, trip_service, ferry_data):
        with pytest.raises(NotFoundError):
            trip_service.create_trips_for_vessel(9999, ferry_data.route.id, date(2026, 3, 5), date(2026, 3, 5))


class TestDeleteTrip:
    """Trips are removed without losing booking history."""

    def test_future_trip_with_passengers_is_kept(self, booking_service, trip_service, ferry_data, make_request,
                                                 admin_actor):
        booking, _ = booking_service.create_booking(make_request(ferry_data.far.id), GUEST)
        booking_service.confirm_payment(booking.reference, admin_actor)
        with pytest.raises(InvalidStateError):
            trip_service.delete_trip(ferry_data.far.id)

    def test_unpaid_bookings_are_detached(self, db, booking_service, trip_service, ferry_data, make_request):
        trip_id = ferry_data.far.id
        booking, _ = booking_service.create_booking(make_request(trip_id), GUEST)
        result = trip_service.delete_trip(trip_id)
        assert result.detached_bookings == 1

        db.expire_all()
        assert db.get(Trip, trip_id) is None
        booking = db.get(Booking, booking.id)
        assert booking.trip_id is None
        assert booking.trip_snapshot_vessel_name == "MV Nier"
        assert booking.trip_snapshot_route_name == "Iloilo - Guimaras"
        assert booking.trip_snapshot_departure_date == date(2026, 3, 5)
        assert booking.trip_snapshot_departure_time == time(8, 0)

    def test_past_trip_keeps_audit_rows(self, db, booking_service, reschedule_service, trip_service, ferry_data,
                                        make_request, admin_actor, passenger_actor, clock):
        alt_id = ferry_data.alt.id
        booking, _ = booking_service.create_booking(make_request(ferry_data.far.id), GUEST)
        booking = booking_service.confirm_payment(booking.reference, admin_actor)
        reschedule_service.reschedule(booking.reference, alt_id, passenger_actor)

        clock.set(datetime(2026, 3, 7, 9, 0))
        trip_service.delete_trip(alt_id)

        db.expire_all()
        change = db.query(BookingChange).one()
        assert change.to_trip_id == alt_id
        booking = db.get(Booking, booking.id)
        assert booking.trip_id is None
        assert booking.status == "confirmed"
        assert booking.trip_snapshot_departure_date == date(2026, 3, 6)

    def test_detached_ticket_still_validates(self, booking_service, trip_service, ferry_data, make_request,
                                             admin_actor, clock):
        booking, _ = booking_service.create_booking(make_request(ferry_data.far.id), GUEST)
        booking = booking_service.confirm_payment(booking.reference, admin_actor)
        number = booking.tickets[0].ticket_number
        clock.set(datetime(2026, 3, 5, 9, 0))
        trip_service.delete_trip(ferry_data.far.id)

        result = booking_service.tickets.validate_ticket(number)
        assert result.vessel_name == "MV Nier"
        assert result.departure_date == date(2026, 3, 5)

    def test_detach_copies_trip_details(self, db, ferry_data):
        trip = db.get(Trip, ferry_data.alt.id)
        booking = Booking(trip_id=trip.id)
        detach_from_trip(booking, trip)
        assert booking.trip_id is None
        assert booking.trip_snapshot_vessel_name == "MV Nier"
        assert booking.trip_snapshot_route_name == "Iloilo - Guimaras"
        assert booking.trip_snapshot_departure_date == date(2026, 3, 6)

    def test_unknown_trip(self, trip_service, ferry_data):
        with pytest.raises(NotFoundError):
            trip_service.delete_trip(9999)


class TestTripStatus:
    """Trip lifecycle transitions."""

    def test_arrival_completes_boarded_bookings(self, db, booking_service, trip_service, ferry_data, make_request,
                                                admin_actor):
        trip_id = ferry_data.far.id
        boarded, _ = booking_service.create_booking(make_request(trip_id), GUEST)
        booking_service.confirm_payment(boarded.reference, admin_actor)
        booking_service.check_in(boarded.reference, "boarded")
        checked, _ = booking_service.create_booking(make_request(trip_id), GUEST)
        booking_service.confirm_payment(checked.reference, admin_actor)
        booking_service.check_in(checked.reference, "checked_in")

        trip_service.update_trip_status(trip_id, TripStatus.DEPARTED)
        trip, completed = trip_service.update_trip_status(trip_id, "arrived")
        assert trip.status == "arrived"
        assert completed == 1

        db.expire_all()
        assert db.get(Booking, boarded.id).status == "completed"
        assert {t.status for t in db.get(Booking, boarded.id).tickets} == {"completed"}
        assert db.get(Booking, checked.id).status == "checked_in"

    def test_same_status_is_noop(self, trip_service, ferry_data):
        trip, completed = trip_service.update_trip_status(ferry_data.far.id, "scheduled")
        assert (trip.status, completed) == ("scheduled", 0)

    @pytest.mark.parametrize("path", [
        ["boarding", "cancelled"],
        ["departed", "boarding"],
        ["arrived"],
    ])
    def test_illegal_moves(self, trip_service, ferry_data, path):
        trip_id = ferry_data.far.id
        for status in path[:-1]:
            trip_service.update_trip_status(trip_id, status)
        with pytest.raises(InvalidStateError):
            trip_service.update_trip_status(trip_id, path[-1])

    def test_cancelled_trip_refuses_bookings(self, booking_service, trip_service, ferry_data, make_request):
        trip_service.update_trip_status(ferry_data.far.id, "cancelled")
        with pytest.raises(InvalidStateError):
            booking_service.create_booking(make_request(ferry_data.far.id), GUEST)


class TestTripQueries:
    """Listings and reconciliation."""

    def test_list_by_date(self, trip_service, ferry_data):
        trips = trip_service.list_trips(departure_date=date(2026, 3, 1))
        assert [t.id for t in trips] == [ferry_data.imminent.id, ferry_data.soon.id]

    def test_summary_includes_availability(self, booking_service, trip_service, ferry_data, make_request):
        booking_service.create_booking(make_request(ferry_data.far.id, ["adult", "adult"]), GUEST)
        summary = trip_summary(trip_service.get_trip(ferry_data.far.id))
        assert summary.online_available == 4
        assert summary.walk_in_available == 4

    def test_reconcile_walk_in(self, db, trip_service, ferry_data):
        trip = db.get(Trip, ferry_data.far.id)
        trip.walk_in_booked = 3
        db.commit()
        assert trip_service.reconcile_walk_in(ferry_data.far.id) == 0

        result = trip_service.reconcile(ferry_data.far.id, Channel.WALK_IN)
        assert (result.previous, result.booked) == (0, 0)
