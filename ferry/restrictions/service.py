from typing import Optional
from datetime import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.models import PassengerBookingRestriction, Profile
from ferry.clock import Clock
from ferry.notifications import SafeNotifier
from ferry.exceptions import InvalidStateError, NotFoundError, RestrictionError, ValidationError
from ferry.auth.schemas import Actor, Role
from ferry.restrictions.schemas import RestrictionAction, RestrictionState

logger = logging.getLogger(__name__)

MAX_WARNINGS = 2


class RestrictionService:
    """Warnings and booking blocks per passenger profile"""

    def __init__(self, db: Session, clock: Optional[Clock] = None, notifier: Optional[SafeNotifier] = None):
        self.db = db
        self.clock = clock or Clock()
        self.notifier = notifier or SafeNotifier()

    def get_restriction(self, profile_id: int) -> Optional[PassengerBookingRestriction]:
        return self.db.get(PassengerBookingRestriction, profile_id)

    def get_state(self, profile_id: int) -> RestrictionState:
        return self._state(profile_id, self.get_restriction(profile_id))

    def is_blocked_now(self, restriction: Optional[PassengerBookingRestriction], now: Optional[datetime] = None) -> bool:
        """Indefinite block, or a timed block that has not yet expired"""
        if restriction is None:
            return False
        if restriction.booking_blocked_at:
            return True
        if restriction.blocked_until:
            now = now or self.clock.now()
            return self.clock.localize(restriction.blocked_until) > now
        return False

    def ensure_can_book(self, profile_id: Optional[int]):
        """Precondition for reserving seats on behalf of a passenger"""
        if profile_id is None:
            return
        restriction = self.get_restriction(profile_id)
        if not self.is_blocked_now(restriction):
            return
        if restriction.booking_blocked_at:
            raise RestrictionError()
        raise RestrictionError(blocked_until=self.clock.localize(restriction.blocked_until))

    def warn(self, profile_id: int, actor: Actor) -> RestrictionState:
        self._get_passenger(profile_id)
        restriction = self._get_for_update(profile_id)
        current = restriction.booking_warnings if restriction else 0
        if current >= MAX_WARNINGS:
            raise InvalidStateError(
                "Passenger already has 2 warnings. Use block to prevent further bookings."
            )
        if restriction is None:
            restriction = PassengerBookingRestriction(profile_id=profile_id, booking_warnings=0)
            self.db.add(restriction)
        restriction.booking_warnings = current + 1
        return self._save(restriction, actor, RestrictionAction.WARN)

    def block(self, profile_id: int, actor: Actor) -> RestrictionState:
        self._get_passenger(profile_id)
        restriction = self._get_or_create(profile_id)
        if not restriction.booking_blocked_at:
            restriction.booking_blocked_at = self.clock.now()
        return self._save(restriction, actor, RestrictionAction.BLOCK)

    def block_until(self, profile_id: int, until: datetime, actor: Actor) -> RestrictionState:
        """Temporary block that lapses on its own once `until` has passed"""
        self._get_passenger(profile_id)
        until = self.clock.localize(until)
        if until <= self.clock.now():
            raise ValidationError("blocked_until must be in the future", field="blocked_until")
        restriction = self._get_or_create(profile_id)
        restriction.blocked_until = until
        return self._save(restriction, actor, RestrictionAction.BLOCK)

    def unblock(self, profile_id: int, actor: Actor) -> RestrictionState:
        self._get_passenger(profile_id)
        restriction = self._get_for_update(profile_id)
        if restriction is None:
            return self._state(profile_id, None)
        restriction.booking_blocked_at = None
        restriction.blocked_until = None
        return self._save(restriction, actor, RestrictionAction.UNBLOCK)

    def clear_warnings(self, profile_id: int, actor: Actor) -> RestrictionState:
        self._get_passenger(profile_id)
        restriction = self._get_for_update(profile_id)
        if restriction is None:
            return self._state(profile_id, None)
        restriction.booking_warnings = 0
        return self._save(restriction, actor, RestrictionAction.CLEAR_WARNINGS)

    def apply(self, profile_id: int, action: RestrictionAction, actor: Actor) -> RestrictionState:
        handlers = {
            RestrictionAction.WARN: self.warn,
            RestrictionAction.BLOCK: self.block,
            RestrictionAction.UNBLOCK: self.unblock,
            RestrictionAction.CLEAR_WARNINGS: self.clear_warnings,
        }
        return handlers[RestrictionAction(action)](profile_id, actor)

    def _get_passenger(self, profile_id: int) -> Profile:
        profile = self.db.get(Profile, profile_id)
        if not profile:
            raise NotFoundError("Profile", profile_id)
        if profile.role != Role.PASSENGER.value:
            raise ValidationError("Restrictions apply only to passengers", field="profile_id")
        return profile

    def _get_for_update(self, profile_id: int) -> Optional[PassengerBookingRestriction]:
        return (
            self.db.query(PassengerBookingRestriction)
            .filter(PassengerBookingRestriction.profile_id == profile_id)
            .with_for_update()
            .first()
        )

    def _get_or_create(self, profile_id: int) -> PassengerBookingRestriction:
        restriction = self._get_for_update(profile_id)
        if restriction is None:
            restriction = PassengerBookingRestriction(profile_id=profile_id, booking_warnings=0)
            self.db.add(restriction)
        return restriction

    def _save(self, restriction: PassengerBookingRestriction, actor: Actor, action: RestrictionAction) -> RestrictionState:
        restriction.updated_by = actor.profile_id
        restriction.updated_at = self.clock.now()
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to save restriction %s for profile %s", action.value, restriction.profile_id)
            raise
        self.db.refresh(restriction)
        logger.info(
            "Restriction %s on profile %s by %s (warnings=%s)",
            action.value, restriction.profile_id, actor.profile_id, restriction.booking_warnings
        )
        self.notifier.send("restriction_changed", profile_id=restriction.profile_id, action=action.value)
        return self._state(restriction.profile_id, restriction)

    def _state(self, profile_id: int, restriction: Optional[PassengerBookingRestriction]) -> RestrictionState:
        if restriction is None:
            return RestrictionState(profile_id=profile_id)
        return RestrictionState(
            profile_id=profile_id,
            booking_warnings=restriction.booking_warnings or 0,
            booking_blocked_at=self.clock.localize(restriction.booking_blocked_at),
            blocked_until=self.clock.localize(restriction.blocked_until),
            is_blocked=self.is_blocked_now(restriction)
        )
