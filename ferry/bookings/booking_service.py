from typing import Callable, List, Optional, Tuple
from datetime import timedelta
import logging
import secrets
import string

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.config import settings
from ferry.clock import Clock
from ferry.notifications import SafeNotifier, tickets_url
from ferry.models import Booking, BookingChange, Profile, Refund, Ticket, Trip
from ferry.exceptions import (
    AuthorizationError, BookingDomainError, CutoffError, ErrorCode, InvalidStateError,
    NotFoundError, ValidationError
)
from ferry.auth.schemas import Actor, Capability
from ferry.fares.fare_service import FareService, FeeSettingsService
from ferry.fares.schemas import FareQuote
from ferry.restrictions.service import RestrictionService
from ferry.trips.inventory import InventoryLedger
from ferry.trips.schemas import Channel, TripStatus
from ferry.bookings.schemas import BookingCreateRequest, CheckInAction
from ferry.bookings.state_machine import (
    BookingStateMachine, BookingStatus, CHECK_IN_RANK, CHECK_IN_STATUSES, MANIFEST_STATUSES
)
from ferry.bookings.ticket_service import TicketService

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def snapshot_trip(booking: Booking, trip: Trip):
    """Copy vessel, route and departure onto the booking so it survives trip removal"""
    booking.trip_snapshot_vessel_name = trip.vessel.name if trip.vessel else None
    booking.trip_snapshot_route_name = trip.route.display_name if trip.route else None
    booking.trip_snapshot_departure_date = trip.departure_date
    booking.trip_snapshot_departure_time = trip.departure_time


def detach_from_trip(booking: Booking, trip: Trip):
    """Keep trip details readable on the booking, then drop the trip reference"""
    snapshot_trip(booking, trip)
    booking.trip_id = None


class BookingService:
    """Service for creating bookings and moving them through payment and check-in"""

    MAX_REFERENCE_ATTEMPTS = 10

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notifier: Optional[SafeNotifier] = None,
        ticket_generator: Optional[Callable[[], str]] = None
    ):
        self.db = db
        self.clock = clock or Clock()
        self.notifier = notifier or SafeNotifier()
        self.inventory = InventoryLedger(db)
        self.restrictions = RestrictionService(db, self.clock, self.notifier)
        self.fares = FareService(db)
        self.fee_settings = FeeSettingsService(db)
        self.tickets = TicketService(db, ticket_generator)

    # Lookups
    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def get_booking_by_reference(self, reference: str) -> Booking:
        code = (reference or "").strip().upper()
        booking = self.db.query(Booking).filter(Booking.reference == code).first()
        if not booking:
            raise NotFoundError("Booking", code)
        return booking

    def list_bookings_for_trip(self, trip_id: int, manifest_only: bool = False) -> List[Booking]:
        query = self.db.query(Booking).filter(Booking.trip_id == trip_id)
        if manifest_only:
            query = query.filter(Booking.status.in_(MANIFEST_STATUSES))
        return query.order_by(Booking.created_at, Booking.id).all()

    def ensure_can_view(self, booking: Booking, actor: Actor, email: Optional[str] = None):
        """Staff see every booking; passengers see their own, guests need the contact email"""
        if actor.can(Capability.MANAGE_BOOKINGS) or actor.can(Capability.CHECK_IN):
            return
        if actor.profile_id is not None and booking.created_by == actor.profile_id:
            return
        contact = (booking.customer_email or "").lower()
        for candidate in (email, actor.email):
            if candidate and candidate.strip().lower() == contact:
                return
        raise NotFoundError("Booking", booking.reference)

    # Creation
    def create_booking(
        self,
        request: BookingCreateRequest,
        actor: Actor,
        walk_in: bool = False
    ) -> Tuple[Booking, FareQuote]:
        """
        Reserve seats and record a booking.

        Online bookings start in pending_payment. Walk-in bookings are paid at
        the counter, so they are confirmed immediately, snapshot the trip and
        receive ticket numbers. Fees are always computed here from the fare
        rule and fee settings in force; client totals are never trusted.
        """
        if walk_in and not actor.can(Capability.CREATE_WALK_IN):
            raise AuthorizationError(
                "Only ticket booth staff can create walk-in bookings",
                Capability.CREATE_WALK_IN.value
            )

        passengers = request.passengers
        if not passengers:
            raise ValidationError("At least one passenger is required", field="passengers")
        if len(passengers) > settings.MAX_PASSENGERS_PER_BOOKING:
            raise ValidationError(
                f"Maximum {settings.MAX_PASSENGERS_PER_BOOKING} passengers per booking",
                field="passengers"
            )

        trip = self.db.get(Trip, request.trip_id)
        if not trip:
            raise NotFoundError("Trip", request.trip_id)
        if trip.status != TripStatus.SCHEDULED.value:
            raise InvalidStateError(f"Trip is {trip.status} and no longer accepts bookings")

        channel = Channel.for_booking(walk_in)
        self._check_departure(trip, channel)

        owner_id = request.passenger_profile_id if walk_in else actor.profile_id
        if walk_in and owner_id is not None and not self.db.get(Profile, owner_id):
            raise NotFoundError("Profile", owner_id)
        self.restrictions.ensure_can_book(owner_id)

        fee_settings = self.fee_settings.get_fee_settings()
        quote = self.fares.quote(
            trip.route_id,
            self.clock.today(),
            [p.fare_type for p in passengers],
            fee_settings,
            channel,
            [p.full_name for p in passengers]
        )

        contact = request.contact
        details = [
            {
                "fare_type": p.fare_type.value,
                "full_name": p.full_name,
                "address": p.address or contact.customer_address,
            }
            for p in passengers
        ]
        booking = Booking(
            reference=self._generate_reference(),
            trip_id=trip.id,
            customer_full_name=passengers[0].full_name,
            customer_email=str(contact.customer_email).lower(),
            customer_mobile=contact.customer_mobile,
            customer_address=contact.customer_address,
            notify_also_email=str(contact.notify_also_email).lower() if contact.notify_also_email else None,
            passenger_count=len(passengers),
            passenger_details=details,
            fare_type=passengers[0].fare_type.value,
            total_amount_cents=quote.total_cents,
            admin_fee_cents=quote.admin_fee_cents,
            gcash_fee_cents=quote.gcash_fee_cents,
            is_walk_in=walk_in,
            status=(BookingStatus.CONFIRMED if walk_in else BookingStatus.PENDING_PAYMENT).value,
            created_by=owner_id
        )
        if walk_in:
            snapshot_trip(booking, trip)

        try:
            self.inventory.reserve(trip.id, channel, booking.passenger_count)
            self.db.add(booking)
            self.db.commit()
        except BookingDomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to create booking on trip %s", trip.id)
            raise
        self.db.refresh(booking)

        logger.info(
            "Created %s booking %s on trip %s for %s passenger(s), total %s cents",
            channel.value, booking.reference, trip.id, booking.passenger_count, booking.total_amount_cents
        )

        if walk_in:
            self.tickets.assign_ticket_numbers(booking)
            self.db.refresh(booking)
            self._notify_confirmed(booking)
        else:
            self.notifier.send_to_contacts(
                "booking_payment_required",
                booking.customer_email,
                booking.notify_also_email,
                reference=booking.reference,
                total_amount_cents=booking.total_amount_cents
            )
        return booking, quote

    # Payment
    def confirm_payment(self, reference: str, actor: Optional[Actor] = None) -> Booking:
        """Mark a pending booking as paid, snapshot its trip and issue ticket numbers"""
        booking = self.get_booking_by_reference(reference)
        if booking.status != BookingStatus.PENDING_PAYMENT.value:
            raise InvalidStateError(
                f"Only bookings pending payment can be confirmed (booking is {booking.status})",
                current_status=booking.status,
                target_status=BookingStatus.CONFIRMED.value
            )

        BookingStateMachine.apply(booking, BookingStatus.CONFIRMED)
        if booking.trip is not None:
            snapshot_trip(booking, booking.trip)
        self._commit("confirm payment for", booking)

        self.tickets.assign_ticket_numbers(booking)
        self.db.refresh(booking)
        logger.info(
            "Payment confirmed for booking %s by %s",
            booking.reference, actor.profile_id if actor else None
        )
        self._notify_confirmed(booking)
        return booking

    # Check-in
    def check_in(self, reference: str, action: CheckInAction = CheckInAction.CHECKED_IN) -> Booking:
        """
        Manual check-in or boarding for a whole booking.

        Repeating the current action is a no-op; moving backwards or checking
        in a booking that is not confirmed raises InvalidStateError.
        """
        booking = self.get_booking_by_reference(reference)
        target = BookingStatus(CheckInAction(action).value)
        current = self._check_in_status(booking, target)
        if current == target:
            return booking

        BookingStateMachine.apply(booking, target)
        now = self.clock.now()
        self._stamp(booking, target, now)
        for ticket in booking.tickets:
            if CHECK_IN_RANK.get(BookingStatus(ticket.status), -1) < CHECK_IN_RANK[target]:
                ticket.status = target.value
                self._stamp(ticket, target, now)

        self._commit("check in", booking)
        logger.info("Booking %s moved %s -> %s", booking.reference, current.value, target.value)
        return booking

    def check_in_ticket(self, ticket_number: str, action: CheckInAction = CheckInAction.CHECKED_IN) -> Booking:
        """Per-passenger scan; the booking follows the furthest-along ticket"""
        ticket = self.tickets.get_ticket(ticket_number)
        booking = ticket.booking
        target = BookingStatus(CheckInAction(action).value)
        self._check_in_status(booking, target, enforce_order=False)

        ticket_status = BookingStatus(ticket.status)
        if ticket_status == target:
            return booking
        if CHECK_IN_RANK.get(ticket_status, -1) > CHECK_IN_RANK[target]:
            raise InvalidStateError(
                f"Ticket {ticket.ticket_number} is already {ticket_status.value}",
                current_status=ticket_status.value,
                target_status=target.value
            )

        now = self.clock.now()
        ticket.status = target.value
        self._stamp(ticket, target, now)

        highest = max(
            (BookingStatus(t.status) for t in booking.tickets),
            key=lambda s: CHECK_IN_RANK.get(s, -1)
        )
        current = BookingStatus(booking.status)
        if CHECK_IN_RANK[highest] > CHECK_IN_RANK[current]:
            BookingStateMachine.apply(booking, highest)
            self._stamp(booking, highest, now)

        self._commit("check in ticket on", booking)
        logger.info("Ticket %s on booking %s marked %s", ticket.ticket_number, booking.reference, target.value)
        return booking

    # Removal
    def delete_spam_booking(self, booking_id: int):
        """Hard-delete an unpaid booking and give its seats back"""
        booking = self.get_booking(booking_id)
        if booking.status != BookingStatus.PENDING_PAYMENT.value:
            raise InvalidStateError(
                "Only bookings pending payment can be deleted",
                current_status=booking.status
            )

        reference = booking.reference
        try:
            if booking.trip_id is not None:
                self.inventory.release(
                    booking.trip_id, Channel.for_booking(booking.is_walk_in), booking.passenger_count
                )
            self.db.query(Ticket).filter(Ticket.booking_id == booking.id).delete(synchronize_session=False)
            self.db.query(BookingChange).filter(BookingChange.booking_id == booking.id).update(
                {BookingChange.booking_id: None}, synchronize_session=False
            )
            self.db.query(Refund).filter(Refund.booking_id == booking.id).delete(synchronize_session=False)
            self.db.delete(booking)
            self.db.commit()
        except BookingDomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to delete booking %s", reference)
            raise
        logger.info("Deleted unpaid booking %s", reference)

    # Helpers
    def _check_departure(self, trip: Trip, channel: Channel):
        departure = self.clock.departure_at(trip.departure_date, trip.departure_time)
        now = self.clock.now()
        if departure <= now:
            raise CutoffError("This trip has already departed", departure_at=departure)
        if channel == Channel.ONLINE and departure.date() == now.date():
            if departure - now < timedelta(minutes=settings.BOOKING_CUTOFF_MINUTES):
                raise CutoffError(
                    f"Online booking closes {settings.BOOKING_CUTOFF_MINUTES} minutes before departure",
                    departure_at=departure
                )

    def _check_in_status(self, booking: Booking, target: BookingStatus, enforce_order: bool = True) -> BookingStatus:
        current = BookingStateMachine.coerce(booking.status)
        if current not in CHECK_IN_STATUSES:
            raise InvalidStateError(
                f"Booking {booking.reference} is {current.value} and cannot be checked in",
                current_status=current.value,
                target_status=target.value
            )
        if enforce_order and CHECK_IN_RANK[current] > CHECK_IN_RANK[target]:
            raise InvalidStateError(
                f"Booking {booking.reference} is already {current.value}",
                current_status=current.value,
                target_status=target.value
            )
        return current

    @staticmethod
    def _stamp(row, status: BookingStatus, now):
        if status == BookingStatus.CHECKED_IN:
            row.checked_in_at = now
        elif status == BookingStatus.BOARDED:
            row.boarded_at = now
            if not row.checked_in_at:
                row.checked_in_at = now

    def _generate_reference(self) -> str:
        """Human-shareable booking reference, unique across bookings"""
        for _ in range(self.MAX_REFERENCE_ATTEMPTS):
            reference = "".join(
                secrets.choice(REFERENCE_ALPHABET) for _ in range(settings.BOOKING_REFERENCE_LENGTH)
            )
            if not self.db.query(Booking.id).filter(Booking.reference == reference).first():
                return reference
        logger.error("Could not generate a unique booking reference")
        raise BookingDomainError("Could not generate a booking reference", ErrorCode.INTERNAL_ERROR, status_code=500)

    def _commit(self, what: str, booking: Booking):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to %s booking %s", what, booking.reference)
            raise
        self.db.refresh(booking)

    def _notify_confirmed(self, booking: Booking):
        self.notifier.send_to_contacts(
            "booking_confirmed",
            booking.customer_email,
            booking.notify_also_email,
            reference=booking.reference,
            total_amount_cents=booking.total_amount_cents,
            tickets_url=tickets_url(booking.reference)
        )
