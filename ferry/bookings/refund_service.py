from typing import List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.clock import Clock
from ferry.notifications import SafeNotifier
from ferry.models import Booking, Refund
from ferry.exceptions import InvalidStateError, NotFoundError, ValidationError
from ferry.auth.schemas import Actor
from ferry.bookings.schemas import RefundAction, RefundActionRequest, RefundReason, RefundStatus
from ferry.bookings.state_machine import BookingStateMachine, BookingStatus, REFUNDABLE_STATUSES

logger = logging.getLogger(__name__)

# Refund workflow: requested -> under_review -> approved|rejected, approved -> processed
REFUND_TRANSITIONS = {
    RefundStatus.REQUESTED: {RefundStatus.UNDER_REVIEW, RefundStatus.APPROVED, RefundStatus.REJECTED},
    RefundStatus.UNDER_REVIEW: {RefundStatus.APPROVED, RefundStatus.REJECTED},
    RefundStatus.APPROVED: {RefundStatus.PROCESSED},
    RefundStatus.REJECTED: set(),
    RefundStatus.PROCESSED: set(),
}

OPEN_REFUND_STATUSES = (
    RefundStatus.REQUESTED.value, RefundStatus.UNDER_REVIEW.value, RefundStatus.APPROVED.value,
)


def _as_reason(reason) -> RefundReason:
    try:
        return RefundReason(reason)
    except ValueError:
        raise ValidationError(
            "Refunds are only allowed for weather disturbance or vessel cancellation",
            field="reason"
        )


class RefundService:
    """Staff refunds and the passenger refund request workflow"""

    def __init__(self, db: Session, clock: Optional[Clock] = None, notifier: Optional[SafeNotifier] = None):
        self.db = db
        self.clock = clock or Clock()
        self.notifier = notifier or SafeNotifier()

    def get_refund(self, refund_id: int) -> Refund:
        refund = self.db.get(Refund, refund_id)
        if not refund:
            raise NotFoundError("Refund", refund_id)
        return refund

    def list_refunds(self, status: Optional[RefundStatus] = None) -> List[Refund]:
        query = self.db.query(Refund)
        if status:
            query = query.filter(Refund.status == RefundStatus(status).value)
        return query.order_by(Refund.id.desc()).all()

    def refund(
        self,
        booking_id: int,
        reason,
        actor: Actor,
        gcash_reference: Optional[str] = None
    ) -> Refund:
        """Full refund processed directly by staff"""
        refund_reason = _as_reason(reason)
        booking = self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        self._ensure_refundable(booking)

        now = self.clock.now()
        refund = Refund(
            booking_id=booking.id,
            amount_cents=booking.total_amount_cents,
            reason=refund_reason.value,
            status=RefundStatus.PROCESSED.value,
            policy_basis=refund_reason.value,
            requested_by=actor.profile_id,
            requested_at=now,
            approved_by=actor.profile_id,
            approved_at=now,
            processed_by=actor.profile_id,
            processed_at=now,
            gcash_reference=gcash_reference
        )
        self.db.add(refund)
        superseded = self._close_open_requests(booking)
        self._mark_booking_refunded(booking)
        self._commit(refund, booking)

        logger.info("Refunded booking %s (%s cents, %s)", booking.reference, refund.amount_cents, refund.reason)
        if superseded:
            logger.info("Closed %s open refund request(s) on booking %s", superseded, booking.reference)
        self._notify(booking)
        return refund

    def request_refund(
        self,
        reference: str,
        reason,
        actor: Actor,
        notes: Optional[str] = None
    ) -> Refund:
        """Passenger asks for a refund; one request per booking"""
        refund_reason = _as_reason(reason)
        booking = self._get_by_reference(reference)
        if booking.refund_status:
            raise InvalidStateError(
                "A refund request already exists for this booking",
                current_status=booking.refund_status
            )
        self._ensure_refundable(booking)

        now = self.clock.now()
        refund = Refund(
            booking_id=booking.id,
            amount_cents=booking.total_amount_cents,
            reason=refund_reason.value,
            status=RefundStatus.REQUESTED.value,
            policy_basis=refund_reason.value,
            requested_by=actor.profile_id,
            requested_at=now
        )
        self.db.add(refund)
        booking.refund_status = RefundStatus.REQUESTED.value
        booking.refund_requested_at = now
        booking.refund_request_reason = refund_reason.value
        booking.refund_request_notes = (notes or "").strip() or None
        self._commit(refund, booking)

        logger.info("Refund requested for booking %s (%s)", booking.reference, refund_reason.value)
        self._notify(booking)
        return refund

    def review(self, refund_id: int, actor: Actor, admin_notes: Optional[str] = None) -> Refund:
        refund = self.get_refund(refund_id)
        self._move(refund, RefundStatus.UNDER_REVIEW)
        if admin_notes:
            refund.admin_notes = admin_notes
        return self._save(refund, actor)

    def approve(
        self,
        refund_id: int,
        actor: Actor,
        amount_cents: Optional[int] = None,
        admin_notes: Optional[str] = None
    ) -> Refund:
        refund = self.get_refund(refund_id)
        if amount_cents is not None:
            if amount_cents < 0 or amount_cents > refund.booking.total_amount_cents:
                raise ValidationError("Refund amount must be between 0 and the booking total", field="amount_cents")
        self._move(refund, RefundStatus.APPROVED)
        if amount_cents is not None:
            refund.amount_cents = amount_cents
            refund.refund_type = "full" if amount_cents == refund.booking.total_amount_cents else "partial"
        refund.approved_by = actor.profile_id
        refund.approved_at = self.clock.now()
        if admin_notes:
            refund.admin_notes = admin_notes
        return self._save(refund, actor)

    def reject(
        self,
        refund_id: int,
        actor: Actor,
        rejection_reason: Optional[str],
        admin_notes: Optional[str] = None
    ) -> Refund:
        reason = (rejection_reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required", field="rejection_reason")
        refund = self.get_refund(refund_id)
        self._move(refund, RefundStatus.REJECTED)
        refund.rejection_reason = reason
        if admin_notes:
            refund.admin_notes = admin_notes
        return self._save(refund, actor)

    def process(self, refund_id: int, actor: Actor, gcash_reference: Optional[str] = None) -> Refund:
        """Pay out an approved refund; the booking becomes refunded"""
        refund = self.get_refund(refund_id)
        booking = refund.booking
        already_refunded = booking.status == BookingStatus.REFUNDED.value
        if not already_refunded:
            self._ensure_refundable(booking)

        self._move(refund, RefundStatus.PROCESSED)
        refund.processed_by = actor.profile_id
        refund.processed_at = self.clock.now()
        if gcash_reference:
            refund.gcash_reference = gcash_reference
        if not already_refunded:
            self._mark_booking_refunded(booking)
        return self._save(refund, actor)

    def apply_action(self, refund_id: int, request: RefundActionRequest, actor: Actor) -> Refund:
        action = RefundAction(request.action)
        if action == RefundAction.REVIEW:
            return self.review(refund_id, actor, request.admin_notes)
        if action == RefundAction.APPROVE:
            return self.approve(refund_id, actor, request.amount_cents, request.admin_notes)
        if action == RefundAction.REJECT:
            return self.reject(refund_id, actor, request.rejection_reason, request.admin_notes)
        return self.process(refund_id, actor, request.gcash_reference)

    def acknowledge_refund(self, reference: str) -> Booking:
        """Passenger confirms they have seen the refund; the status does not change"""
        booking = self._get_by_reference(reference)
        if booking.status != BookingStatus.REFUNDED.value:
            raise InvalidStateError(
                "Only refunded bookings can be acknowledged",
                current_status=booking.status
            )
        if not booking.refund_acknowledged_at:
            booking.refund_acknowledged_at = self.clock.now()
            try:
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception("Failed to acknowledge refund on booking %s", booking.reference)
                raise
            self.db.refresh(booking)
        return booking

    def _get_by_reference(self, reference: str) -> Booking:
        code = (reference or "").strip().upper()
        booking = self.db.query(Booking).filter(Booking.reference == code).first()
        if not booking:
            raise NotFoundError("Booking", code)
        return booking

    @staticmethod
    def _ensure_refundable(booking: Booking):
        status = BookingStateMachine.coerce(booking.status)
        if status == BookingStatus.REFUNDED:
            raise InvalidStateError("This booking has already been refunded", current_status=status.value)
        if status not in REFUNDABLE_STATUSES:
            raise InvalidStateError(
                f"A {status.value} booking cannot be refunded",
                current_status=status.value,
                target_status=BookingStatus.REFUNDED.value
            )

    def _close_open_requests(self, booking: Booking) -> int:
        """Reject requests still in the workflow once staff refund the booking directly"""
        open_requests = (
            self.db.query(Refund)
            .filter(Refund.booking_id == booking.id, Refund.status.in_(OPEN_REFUND_STATUSES))
            .all()
        )
        for request in open_requests:
            request.status = RefundStatus.REJECTED.value
            request.rejection_reason = "Superseded by a staff refund"
        return len(open_requests)

    @staticmethod
    def _mark_booking_refunded(booking: Booking):
        BookingStateMachine.apply(booking, BookingStatus.REFUNDED)
        booking.refund_status = RefundStatus.PROCESSED.value
        for ticket in booking.tickets:
            ticket.status = BookingStatus.REFUNDED.value

    @staticmethod
    def _move(refund: Refund, target: RefundStatus):
        current = RefundStatus(refund.status)
        if target not in REFUND_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Cannot move refund from {current.value} to {target.value}",
                current_status=current.value,
                target_status=target.value
            )
        refund.status = target.value
        if refund.booking.status != BookingStatus.REFUNDED.value:
            refund.booking.refund_status = target.value

    def _save(self, refund: Refund, actor: Actor) -> Refund:
        booking = refund.booking
        self._commit(refund, booking)
        logger.info("Refund %s on booking %s is now %s (by %s)", refund.id, booking.reference, refund.status, actor.profile_id)
        self._notify(booking)
        return refund

    def _commit(self, refund: Refund, booking: Booking):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to save refund for booking %s", booking.reference)
            raise
        self.db.refresh(refund)
        self.db.refresh(booking)

    def _notify(self, booking: Booking):
        self.notifier.send_to_contacts(
            "refund_updated",
            booking.customer_email,
            booking.notify_also_email,
            reference=booking.reference,
            refund_status=booking.refund_status
        )
