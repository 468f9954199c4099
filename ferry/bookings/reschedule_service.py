from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
import logging

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.config import settings
from ferry.clock import Clock
from ferry.notifications import SafeNotifier
from ferry.models import Booking, BookingChange, Trip
from ferry.exceptions import (
    BookingDomainError, CapacityError, CutoffError, InvalidStateError, NotFoundError, ValidationError
)
from ferry.auth.schemas import Actor
from ferry.fares.fare_service import compute_reschedule_fee
from ferry.trips.inventory import InventoryLedger
from ferry.trips.schemas import Channel, TripStatus
from ferry.bookings.state_machine import BookingStateMachine, RESCHEDULABLE_STATUSES
from ferry.bookings.booking_service import snapshot_trip

logger = logging.getLogger(__name__)


@dataclass
class RescheduleResult:
    booking: Booking
    fee_delta_cents: int
    new_total_cents: int


class RescheduleService:
    """
    Moves a booking to another trip.

    The audit row, the booking update and both seat movements are written in
    one transaction: if any step fails nothing is kept, so a booking never
    points at a trip it holds no seats on and never counts against two trips.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None, notifier: Optional[SafeNotifier] = None):
        self.db = db
        self.clock = clock or Clock()
        self.notifier = notifier or SafeNotifier()
        self.inventory = InventoryLedger(db)

    def reschedule(
        self,
        reference: str,
        new_trip_id: int,
        actor: Actor,
        customer_email: Optional[str] = None
    ) -> RescheduleResult:
        booking = self._get_booking(reference, customer_email)
        channel = Channel.for_booking(booking.is_walk_in)

        status = BookingStateMachine.coerce(booking.status)
        if status not in RESCHEDULABLE_STATUSES:
            raise InvalidStateError(
                f"A {status.value} booking cannot be rescheduled",
                current_status=status.value
            )
        if booking.trip_id == new_trip_id:
            raise ValidationError("Select a different trip than the current one", field="trip_id")
        if booking.trip_id is None:
            raise InvalidStateError(
                "This booking is no longer linked to a trip and cannot be rescheduled",
                current_status=status.value
            )

        old_trip = booking.trip
        departure = self.clock.departure_at(old_trip.departure_date, old_trip.departure_time)
        if departure - self.clock.now() < timedelta(hours=settings.RESCHEDULE_CUTOFF_HOURS):
            raise CutoffError(
                f"Rescheduling is only allowed at least {settings.RESCHEDULE_CUTOFF_HOURS} hours before departure",
                departure_at=departure
            )

        new_trip = self.db.get(Trip, new_trip_id)
        if not new_trip:
            raise NotFoundError("Trip", new_trip_id)
        if new_trip.status != TripStatus.SCHEDULED.value:
            raise InvalidStateError(f"Target trip is {new_trip.status} and no longer accepts bookings")

        available = InventoryLedger.available_on(new_trip, channel)
        if available < booking.passenger_count:
            raise CapacityError(available=available, requested=booking.passenger_count, channel=channel.value)

        fee = compute_reschedule_fee(
            booking.total_amount_cents,
            booking.admin_fee_cents,
            booking.gcash_fee_cents,
            settings.RESCHEDULE_FEE_PERCENT,
            settings.RESCHEDULE_GCASH_FEE_CENTS
        )
        old_trip_id = old_trip.id

        try:
            self.db.add(BookingChange(
                booking_id=booking.id,
                booking_reference=booking.reference,
                from_trip_id=old_trip_id,
                to_trip_id=new_trip.id,
                additional_fee_cents=fee,
                changed_by=actor.profile_id
            ))
            snapshot_trip(booking, new_trip)
            booking.trip_id = new_trip.id
            booking.total_amount_cents = booking.total_amount_cents + fee
            booking.updated_at = self.clock.now()
            self.inventory.release(old_trip_id, channel, booking.passenger_count)
            self.inventory.reserve(new_trip.id, channel, booking.passenger_count)
            self.db.commit()
        except BookingDomainError:
            self.db.rollback()
            logger.warning("Reschedule of %s to trip %s rolled back", booking.reference, new_trip_id)
            raise
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Reschedule of %s to trip %s failed", booking.reference, new_trip_id)
            raise
        self.db.refresh(booking)

        logger.info(
            "Rescheduled booking %s from trip %s to trip %s (fee %s cents, total %s cents)",
            booking.reference, old_trip_id, new_trip.id, fee, booking.total_amount_cents
        )
        self.notifier.send_to_contacts(
            "booking_rescheduled",
            booking.customer_email,
            booking.notify_also_email,
            reference=booking.reference,
            fee_delta_cents=fee
        )
        return RescheduleResult(booking=booking, fee_delta_cents=fee, new_total_cents=booking.total_amount_cents)

    def list_alternatives(self, reference: str, customer_email: Optional[str] = None) -> List[Trip]:
        """Future scheduled trips on the same route with room in the booking's channel"""
        booking = self._get_booking(reference, customer_email)
        if booking.trip is None:
            return []

        channel = Channel.for_booking(booking.is_walk_in)
        booked = getattr(Trip, channel.booked_column)
        quota = getattr(Trip, channel.quota_column)
        now = self.clock.now()
        today = now.date()

        trips = (
            self.db.query(Trip)
            .filter(
                Trip.route_id == booking.trip.route_id,
                Trip.id != booking.trip_id,
                Trip.status == TripStatus.SCHEDULED.value,
                quota - booked >= booking.passenger_count,
                or_(
                    Trip.departure_date > today,
                    and_(Trip.departure_date == today, Trip.departure_time > now.time().replace(tzinfo=None))
                )
            )
            .order_by(Trip.departure_date, Trip.departure_time)
            .all()
        )
        return trips

    def _get_booking(self, reference: str, customer_email: Optional[str]) -> Booking:
        code = (reference or "").strip().upper()
        booking = self.db.query(Booking).filter(Booking.reference == code).first()
        if not booking:
            raise NotFoundError("Booking", code)
        if customer_email and customer_email.strip().lower() != (booking.customer_email or "").lower():
            # Same answer as a wrong reference
            raise NotFoundError("Booking", code)
        return booking
