from typing import List, Optional, Tuple
from datetime import date, timedelta
import logging

from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.clock import Clock
from ferry.models import Booking, Route, ScheduleSlot, Trip, Vessel
from ferry.exceptions import InvalidStateError, NotFoundError, ValidationError
from ferry.bookings.state_machine import BookingStateMachine, BookingStatus, MANIFEST_STATUSES
from ferry.bookings.booking_service import detach_from_trip
from ferry.trips.inventory import InventoryLedger
from ferry.trips.schemas import (
    Channel, ReconcileResponse, TripCreateResponse, TripDeleteResponse, TripStatus, TripSummary
)

logger = logging.getLogger(__name__)

TRIP_TRANSITIONS = {
    TripStatus.SCHEDULED: {TripStatus.BOARDING, TripStatus.DEPARTED, TripStatus.CANCELLED},
    TripStatus.BOARDING: {TripStatus.DEPARTED},
    TripStatus.DEPARTED: {TripStatus.ARRIVED},
    TripStatus.ARRIVED: set(),
    TripStatus.CANCELLED: set(),
}


def trip_summary(trip: Trip) -> TripSummary:
    """Trip with the free seats of both channels filled in"""
    summary = TripSummary.model_validate(trip)
    return summary.model_copy(update={
        "online_available": InventoryLedger.available_on(trip, Channel.ONLINE),
        "walk_in_available": InventoryLedger.available_on(trip, Channel.WALK_IN),
    })


class TripService:
    """Service for generating trips from schedule slots and managing their lifecycle"""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or Clock()
        self.inventory = InventoryLedger(db)

    def get_trip(self, trip_id: int) -> Trip:
        trip = self.db.get(Trip, trip_id)
        if not trip:
            raise NotFoundError("Trip", trip_id)
        return trip

    def list_trips(
        self,
        route_id: Optional[int] = None,
        departure_date: Optional[date] = None,
        status: Optional[TripStatus] = None
    ) -> List[Trip]:
        query = self.db.query(Trip)
        if route_id:
            query = query.filter(Trip.route_id == route_id)
        if departure_date:
            query = query.filter(Trip.departure_date == departure_date)
        if status:
            query = query.filter(Trip.status == TripStatus(status).value)
        return query.order_by(Trip.departure_date, Trip.departure_time).all()

    def create_trips_for_vessel(
        self,
        vessel_id: int,
        route_id: int,
        start_date: date,
        end_date: date
    ) -> TripCreateResponse:
        """
        Expand the route's active schedule slots into trips.

        One trip per date and departure time in the range. Trips that already
        exist for the same vessel, route, date and time are skipped. A vessel
        serves a single route (or that route's return leg) on any date.
        """
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date", field="end_date")

        vessel = self.db.get(Vessel, vessel_id)
        if not vessel:
            raise NotFoundError("Vessel", vessel_id)
        route = self.db.get(Route, route_id)
        if not route:
            raise NotFoundError("Route", route_id)

        slots = (
            self.db.query(ScheduleSlot)
            .filter(ScheduleSlot.route_id == route_id, ScheduleSlot.is_active.is_(True))
            .order_by(ScheduleSlot.departure_time)
            .all()
        )
        if not slots:
            raise ValidationError("Route has no active departure times", field="route_id")

        self._check_vessel_route(vessel, route, start_date, end_date)

        existing = {
            (t.departure_date, t.departure_time)
            for t in self.db.query(Trip).filter(
                Trip.vessel_id == vessel_id,
                Trip.route_id == route_id,
                Trip.departure_date >= start_date,
                Trip.departure_date <= end_date
            )
        }

        walk_in_quota = max(0, vessel.capacity - vessel.online_quota)
        created: List[Trip] = []
        skipped = 0
        day = start_date
        while day <= end_date:
            for slot in slots:
                if (day, slot.departure_time) in existing:
                    skipped += 1
                    continue
                trip = Trip(
                    route_id=route_id,
                    vessel_id=vessel_id,
                    departure_date=day,
                    departure_time=slot.departure_time,
                    online_quota=vessel.online_quota,
                    online_booked=0,
                    walk_in_quota=walk_in_quota,
                    walk_in_booked=0,
                    status=TripStatus.SCHEDULED.value
                )
                self.db.add(trip)
                created.append(trip)
            day += timedelta(days=1)

        self._commit(f"create trips for vessel {vessel_id}")
        logger.info(
            "Assigned vessel %s to route %s from %s to %s: %s trip(s) created, %s skipped",
            vessel_id, route_id, start_date, end_date, len(created), skipped
        )
        return TripCreateResponse(
            created=len(created),
            skipped_existing=skipped,
            trip_ids=[t.id for t in created]
        )

    def delete_trip(self, trip_id: int) -> TripDeleteResponse:
        """Delete a trip; bookings keep a snapshot of it and lose the trip reference"""
        trip = self.get_trip(trip_id)
        departure = self.clock.departure_at(trip.departure_date, trip.departure_time)
        passengers = self._manifest_passengers(trip_id)
        if departure > self.clock.now() and passengers > 0:
            raise InvalidStateError(
                f"Cannot delete a future trip with {passengers} confirmed passenger(s). "
                "Reschedule or refund them first."
            )

        bookings = self.db.query(Booking).filter(Booking.trip_id == trip_id).all()
        for booking in bookings:
            detach_from_trip(booking, trip)
        self.db.flush()
        self.db.delete(trip)
        self._commit(f"delete trip {trip_id}")

        logger.info("Deleted trip %s, detached %s booking(s)", trip_id, len(bookings))
        return TripDeleteResponse(trip_id=trip_id, detached_bookings=len(bookings))

    def update_trip_status(self, trip_id: int, status: TripStatus) -> Tuple[Trip, int]:
        """Move a trip forward; arrival completes its boarded bookings"""
        trip = self.get_trip(trip_id)
        current = TripStatus(trip.status)
        target = TripStatus(status)
        if current == target:
            return trip, 0
        if target not in TRIP_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Cannot move trip from {current.value} to {target.value}",
                current_status=current.value,
                target_status=target.value
            )

        trip.status = target.value
        completed = 0
        if target == TripStatus.ARRIVED:
            boarded = (
                self.db.query(Booking)
                .filter(Booking.trip_id == trip_id, Booking.status == BookingStatus.BOARDED.value)
                .all()
            )
            for booking in boarded:
                BookingStateMachine.apply(booking, BookingStatus.COMPLETED)
                for ticket in booking.tickets:
                    if ticket.status == BookingStatus.BOARDED.value:
                        ticket.status = BookingStatus.COMPLETED.value
                completed += 1

        self._commit(f"update status of trip {trip_id}")
        self.db.refresh(trip)
        logger.info("Trip %s moved %s -> %s (%s booking(s) completed)", trip_id, current.value, target.value, completed)
        return trip, completed

    def reconcile(self, trip_id: int, channel: Channel) -> ReconcileResponse:
        self.get_trip(trip_id)
        previous = self._booked(trip_id, channel)
        booked = self.inventory.reconcile(trip_id, channel)
        self._commit(f"reconcile trip {trip_id}")
        return ReconcileResponse(trip_id=trip_id, channel=channel, booked=booked, previous=previous)

    def reconcile_walk_in(self, trip_id: int) -> int:
        """Recompute walk_in_booked from the trip's walk-in bookings"""
        return self.reconcile(trip_id, Channel.WALK_IN).booked

    def _check_vessel_route(self, vessel: Vessel, route: Route, start_date: date, end_date: date):
        allowed = {route.id}
        allowed.update(
            r.id for r in self.db.query(Route).filter(
                Route.origin == route.destination,
                Route.destination == route.origin
            )
        )
        conflict = (
            self.db.query(Trip)
            .filter(
                Trip.vessel_id == vessel.id,
                Trip.departure_date >= start_date,
                Trip.departure_date <= end_date,
                Trip.route_id.notin_(allowed)
            )
            .order_by(Trip.departure_date)
            .first()
        )
        if conflict:
            raise ValidationError(
                f"{vessel.name} already serves another route on {conflict.departure_date.isoformat()}",
                field="vessel_id"
            )

    def _manifest_passengers(self, trip_id: int) -> int:
        return self.db.query(func.coalesce(func.sum(Booking.passenger_count), 0)).filter(
            and_(Booking.trip_id == trip_id, Booking.status.in_(MANIFEST_STATUSES))
        ).scalar()

    def _booked(self, trip_id: int, channel: Channel) -> int:
        return self.db.query(getattr(Trip, channel.booked_column)).filter(Trip.id == trip_id).scalar() or 0

    def _commit(self, what: str):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to %s", what)
            raise
