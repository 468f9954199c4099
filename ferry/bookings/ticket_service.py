from typing import Callable, List, Optional, Set
import logging
import secrets
import string

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.config import settings
from ferry.models import Booking, Ticket
from ferry.exceptions import BookingDomainError, ErrorCode, InvalidStateError, NotFoundError, ValidationError
from ferry.bookings.state_machine import BookingStateMachine, CHECK_IN_STATUSES
from ferry.bookings.schemas import TicketValidationResponse

logger = logging.getLogger(__name__)

TICKET_ALPHABET = string.ascii_uppercase + string.digits


class TicketNumberGenerator:
    """Random uppercase alphanumeric identifiers"""

    def __init__(self, length: Optional[int] = None):
        self.length = length or settings.TICKET_NUMBER_LENGTH

    def generate(self) -> str:
        return "".join(secrets.choice(TICKET_ALPHABET) for _ in range(self.length))

    def __call__(self) -> str:
        return self.generate()


def qr_payload(ticket_number: str) -> str:
    """Text encoded in a ticket QR code"""
    return f"{settings.TICKET_QR_PREFIX}:{ticket_number}"


def parse_qr_payload(payload: str) -> str:
    """Ticket number from a scanned payload; bare ticket numbers are accepted too"""
    value = (payload or "").strip()
    prefix = f"{settings.TICKET_QR_PREFIX}:"
    if value.upper().startswith(prefix.upper()):
        value = value[len(prefix):]
    value = value.strip().upper()
    if not value:
        raise ValidationError("Ticket number is required", field="payload")
    return value


class TicketService:
    """Assigns per-passenger ticket numbers and resolves scanned tickets"""

    MAX_ATTEMPTS = 10

    def __init__(self, db: Session, generator: Optional[Callable[[], str]] = None):
        self.db = db
        self.generator = generator or TicketNumberGenerator()

    def assign_ticket_numbers(self, booking: Booking) -> List[str]:
        """
        Give every passenger on the booking a ticket number.

        Idempotent: when all passengers already carry a number the existing
        numbers are returned unchanged. The booking row is locked while numbers
        are issued; if a concurrent call wins the race on the unique
        (booking_id, passenger_index) constraint, this call rolls back and
        returns the numbers that call persisted. Commits on success.
        """
        booking_id = booking.id
        locked = (
            self.db.query(Booking)
            .filter(Booking.id == booking_id)
            .with_for_update()
            .first()
        )
        if not locked:
            raise NotFoundError("Booking", booking_id)

        existing = self._numbers_from_details(locked)
        if existing is not None:
            return existing

        tickets = {t.passenger_index: t for t in self._tickets_for(booking_id)}
        issued: Set[str] = set()
        numbers: List[str] = []
        for index in range(locked.passenger_count):
            ticket = tickets.get(index)
            if ticket is None:
                ticket = Ticket(
                    ticket_number=self._unique_number(issued),
                    booking_id=booking_id,
                    passenger_index=index,
                    status=self._ticket_status_for(locked)
                )
                self.db.add(ticket)
            issued.add(ticket.ticket_number)
            numbers.append(ticket.ticket_number)

        self._embed_numbers(locked, numbers)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Concurrent ticket assignment on booking %s; using persisted numbers", booking_id)
            winners = [t.ticket_number for t in self._tickets_for(booking_id)]
            if len(winners) != locked.passenger_count:
                raise
            return winners
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to assign ticket numbers for booking %s", booking_id)
            raise

        logger.info("Assigned %s ticket number(s) to booking %s", len(numbers), locked.reference)
        return numbers

    def get_ticket(self, ticket_number: str) -> Ticket:
        ticket = (
            self.db.query(Ticket)
            .filter(Ticket.ticket_number == ticket_number.strip().upper())
            .first()
        )
        if not ticket:
            raise NotFoundError("Ticket", ticket_number)
        return ticket

    def get_ticket_numbers(self, booking_id: int) -> List[str]:
        return [t.ticket_number for t in self._tickets_for(booking_id)]

    def validate_ticket(self, payload: str) -> TicketValidationResponse:
        """Resolve a scanned QR payload to the passenger it admits"""
        ticket = self.get_ticket(parse_qr_payload(payload))
        booking = ticket.booking
        status = BookingStateMachine.coerce(booking.status)
        if status not in CHECK_IN_STATUSES:
            raise InvalidStateError(
                f"Ticket is not valid for boarding (booking is {status.value})",
                current_status=status.value
            )

        details = booking.passenger_details or []
        passenger = details[ticket.passenger_index] if ticket.passenger_index < len(details) else {}
        trip = booking.trip
        if trip is not None:
            vessel_name = trip.vessel.name if trip.vessel else None
            route_name = trip.route.display_name if trip.route else None
            departure_date, departure_time = trip.departure_date, trip.departure_time
        else:
            vessel_name = booking.trip_snapshot_vessel_name
            route_name = booking.trip_snapshot_route_name
            departure_date = booking.trip_snapshot_departure_date
            departure_time = booking.trip_snapshot_departure_time

        return TicketValidationResponse(
            ticket_number=ticket.ticket_number,
            reference=booking.reference,
            status=ticket.status,
            passenger_index=ticket.passenger_index,
            passenger_name=passenger.get("full_name") or booking.customer_full_name,
            fare_type=passenger.get("fare_type"),
            vessel_name=vessel_name,
            route_name=route_name,
            departure_date=departure_date,
            departure_time=departure_time
        )

    def _tickets_for(self, booking_id: int) -> List[Ticket]:
        return (
            self.db.query(Ticket)
            .filter(Ticket.booking_id == booking_id)
            .order_by(Ticket.passenger_index)
            .all()
        )

    @staticmethod
    def _numbers_from_details(booking: Booking) -> Optional[List[str]]:
        details = booking.passenger_details or []
        if len(details) < booking.passenger_count:
            return None
        numbers = [(d or {}).get("ticket_number") for d in details[:booking.passenger_count]]
        if all(numbers):
            return numbers
        return None

    @staticmethod
    def _embed_numbers(booking: Booking, numbers: List[str]):
        # Reassign a fresh list so the JSON column registers the change
        details = [dict(d or {}) for d in (booking.passenger_details or [])]
        while len(details) < len(numbers):
            details.append({})
        for index, number in enumerate(numbers):
            details[index]["ticket_number"] = number
        booking.passenger_details = details

    @staticmethod
    def _ticket_status_for(booking: Booking) -> str:
        if BookingStateMachine.coerce(booking.status) in CHECK_IN_STATUSES:
            return booking.status
        return "confirmed"

    def _unique_number(self, issued: Set[str]) -> str:
        for _ in range(self.MAX_ATTEMPTS):
            number = self.generator()
            if number in issued:
                continue
            taken = self.db.query(Ticket.id).filter(Ticket.ticket_number == number).first()
            if not taken:
                return number
        logger.error("Could not generate a unique ticket number after %s attempts", self.MAX_ATTEMPTS)
        raise BookingDomainError(
            "Could not generate a unique ticket number",
            ErrorCode.INTERNAL_ERROR,
            status_code=500
        )
