from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ferry.database import get_db
from ferry.clock import Clock, get_clock
from ferry.notifications import SafeNotifier, get_notifier
from ferry.exceptions import AuthorizationError
from ferry.auth.dependencies import get_optional_actor, require_capability
from ferry.auth.schemas import Actor, Capability
from ferry.bookings.schemas import (
    AlternativesResponse, BookingCreateRequest, BookingCreatedResponse, BookingResponse,
    CheckInRequest, RefundAction, RefundActionRequest, RefundCreateRequest, RefundRequestCreate,
    RefundResponse, RefundStatus, RescheduleRequest, RescheduleResponse, TicketNumbersResponse,
    TicketValidationResponse
)
from ferry.bookings.booking_service import BookingService
from ferry.bookings.reschedule_service import RescheduleService
from ferry.bookings.refund_service import RefundService
from ferry.trips.schemas import Channel
from ferry.trips.service import trip_summary

router = APIRouter()
refunds_router = APIRouter()

def get_booking_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: SafeNotifier = Depends(get_notifier)
) -> BookingService:
    return BookingService(db, clock, notifier)

def get_reschedule_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: SafeNotifier = Depends(get_notifier)
) -> RescheduleService:
    return RescheduleService(db, clock, notifier)

def get_refund_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: SafeNotifier = Depends(get_notifier)
) -> RefundService:
    return RefundService(db, clock, notifier)

# Booking Creation Endpoints
@router.post("/", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_online_booking(
    request: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Self-serve booking; seats are held while payment is pending"""
    booking, quote = service.create_booking(request, actor)
    return BookingCreatedResponse(booking=BookingResponse.model_validate(booking), fare_breakdown=quote)

@router.post("/walk-in", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_walk_in_booking(
    request: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_capability(Capability.CREATE_WALK_IN))
):
    """Counter sale: confirmed immediately with ticket numbers"""
    booking, quote = service.create_booking(request, actor, walk_in=True)
    return BookingCreatedResponse(booking=BookingResponse.model_validate(booking), fare_breakdown=quote)

# Ticket Endpoints
@router.get("/tickets/validate", response_model=TicketValidationResponse)
def validate_ticket(
    payload: str = Query(..., description="Scanned QR payload or ticket number"),
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_capability(Capability.CHECK_IN))
):
    """Resolve a scanned ticket to its passenger"""
    return service.tickets.validate_ticket(payload)

@router.post("/tickets/{ticket_number}/check-in", response_model=BookingResponse)
def check_in_ticket(
    ticket_number: str,
    request: CheckInRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_capability(Capability.CHECK_IN))
):
    """Check in or board one passenger"""
    return service.check_in_ticket(ticket_number, request.action)

# Booking Management Endpoints
@router.delete("/id/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_spam_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_BOOKINGS))
):
    """Remove an unpaid booking and free its seats"""
    service.delete_spam_booking(booking_id)

@router.post("/id/{booking_id}/refund", response_model=RefundResponse)
def refund_booking(
    booking_id: int,
    request: RefundCreateRequest,
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(require_capability(Capability.PROCESS_REFUNDS))
):
    """Full refund for weather disturbance or vessel cancellation"""
    return service.refund(booking_id, request.reason, actor, request.gcash_reference)

@router.get("/{reference}", response_model=BookingResponse)
def get_booking(
    reference: str,
    email: Optional[str] = Query(None, description="Contact email, required for guest lookups"),
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Get booking details by reference"""
    booking = service.get_booking_by_reference(reference)
    service.ensure_can_view(booking, actor, email)
    return booking

@router.get("/{reference}/tickets", response_model=TicketNumbersResponse)
def get_ticket_numbers(
    reference: str,
    email: Optional[str] = Query(None),
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Ticket numbers in passenger order"""
    booking = service.get_booking_by_reference(reference)
    service.ensure_can_view(booking, actor, email)
    return TicketNumbersResponse(
        booking_id=booking.id,
        ticket_numbers=service.tickets.get_ticket_numbers(booking.id)
    )

@router.post("/{reference}/confirm-payment", response_model=BookingResponse)
def confirm_payment(
    reference: str,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_capability(Capability.CONFIRM_PAYMENT))
):
    """Confirm a GCash payment and issue tickets"""
    return service.confirm_payment(reference, actor)

@router.post("/{reference}/check-in", response_model=BookingResponse)
def check_in_booking(
    reference: str,
    request: CheckInRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_capability(Capability.CHECK_IN))
):
    """Manual check-in or boarding for the whole booking"""
    return service.check_in(reference, request.action)

@router.get("/{reference}/alternatives", response_model=AlternativesResponse)
def list_reschedule_alternatives(
    reference: str,
    email: Optional[str] = Query(None),
    bookings: BookingService = Depends(get_booking_service),
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Trips this booking can be moved to"""
    booking = bookings.get_booking_by_reference(reference)
    bookings.ensure_can_view(booking, actor, email)
    channel = Channel.for_booking(booking.is_walk_in)
    trips = [trip_summary(trip) for trip in service.list_alternatives(reference)]
    return AlternativesResponse(reference=booking.reference, channel=channel, trips=trips)

@router.post("/{reference}/reschedule", response_model=RescheduleResponse)
def reschedule_booking(
    reference: str,
    request: RescheduleRequest,
    email: Optional[str] = Query(None),
    bookings: BookingService = Depends(get_booking_service),
    service: RescheduleService = Depends(get_reschedule_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Move the booking to another trip for a reschedule fee"""
    booking = bookings.get_booking_by_reference(reference)
    bookings.ensure_can_view(booking, actor, email)
    result = service.reschedule(reference, request.trip_id, actor)
    return RescheduleResponse(
        booking=BookingResponse.model_validate(result.booking),
        fee_delta_cents=result.fee_delta_cents,
        new_total_cents=result.new_total_cents,
        message=f"Booking moved. Reschedule fee: {result.fee_delta_cents} cents."
    )

@router.post("/{reference}/refund-request", response_model=RefundResponse, status_code=status.HTTP_201_CREATED)
def request_refund(
    reference: str,
    request: RefundRequestCreate,
    email: Optional[str] = Query(None),
    bookings: BookingService = Depends(get_booking_service),
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Passenger refund request"""
    booking = bookings.get_booking_by_reference(reference)
    bookings.ensure_can_view(booking, actor, email)
    return service.request_refund(reference, request.reason, actor, request.notes)

@router.post("/{reference}/acknowledge-refund", response_model=BookingResponse)
def acknowledge_refund(
    reference: str,
    email: Optional[str] = Query(None),
    bookings: BookingService = Depends(get_booking_service),
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(get_optional_actor)
):
    """Passenger confirms they have seen the refund"""
    booking = bookings.get_booking_by_reference(reference)
    bookings.ensure_can_view(booking, actor, email)
    return service.acknowledge_refund(reference)

# Refund Workflow Endpoints
@refunds_router.get("/", response_model=List[RefundResponse])
def list_refunds(
    refund_status: Optional[RefundStatus] = Query(None, alias="status"),
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(require_capability(Capability.PROCESS_REFUNDS))
):
    """Refunds, newest first"""
    return service.list_refunds(refund_status)

@refunds_router.get("/{refund_id}", response_model=RefundResponse)
def get_refund(
    refund_id: int,
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(require_capability(Capability.PROCESS_REFUNDS))
):
    return service.get_refund(refund_id)

@refunds_router.post("/{refund_id}/action", response_model=RefundResponse)
def refund_action(
    refund_id: int,
    request: RefundActionRequest,
    service: RefundService = Depends(get_refund_service),
    actor: Actor = Depends(require_capability(Capability.PROCESS_REFUNDS))
):
    """Review, approve, reject or process a refund request"""
    if request.action != RefundAction.PROCESS and not actor.can(Capability.REVIEW_REFUNDS):
        raise AuthorizationError("Only admins can review refund requests", Capability.REVIEW_REFUNDS.value)
    return service.apply_action(refund_id, request, actor)
