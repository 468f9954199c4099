import logging
from typing import Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from ferry.models import Booking, Trip
from ferry.exceptions import CapacityError, NotFoundError, ValidationError
from ferry.bookings.state_machine import MANIFEST_STATUSES, ONLINE_HOLDING_STATUSES
from ferry.trips.schemas import Channel

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Owner of the per-trip seat counters (online_booked, walk_in_booked).

    Every change goes through a single conditional UPDATE so concurrent
    reservations against the same trip cannot both pass the quota check.
    The ledger never commits: it runs inside the caller's transaction so a
    booking row and its seat movement succeed or fail together.
    """

    def __init__(self, db: Session):
        self.db = db

    def reserve(self, trip_id: int, channel: Channel, count: int) -> int:
        """Take `count` seats from the channel quota; returns the new booked count"""
        self._validate_count(count)
        booked = getattr(Trip, channel.booked_column)
        quota = getattr(Trip, channel.quota_column)

        result = self.db.execute(
            update(Trip)
            .where(Trip.id == trip_id, booked + count <= quota)
            .values({channel.booked_column: booked + count, "updated_at": func.now()})
            .execution_options(synchronize_session=False)
        )
        self._expire_cached(trip_id)

        if result.rowcount == 0:
            current_booked, current_quota = self._read_counters(trip_id, channel)
            available = current_quota - current_booked
            logger.info(
                "Reserve refused on trip %s (%s): requested %s, available %s",
                trip_id, channel.value, count, available
            )
            raise CapacityError(available=available, requested=count, channel=channel.value)

        new_booked, _ = self._read_counters(trip_id, channel)
        logger.info("Reserved %s %s seat(s) on trip %s (booked now %s)", count, channel.value, trip_id, new_booked)
        return new_booked

    def release(self, trip_id: int, channel: Channel, count: int) -> int:
        """Give `count` seats back; floors at zero and logs when that hides a double release"""
        self._validate_count(count)
        booked = getattr(Trip, channel.booked_column)

        result = self.db.execute(
            update(Trip)
            .where(Trip.id == trip_id, booked >= count)
            .values({channel.booked_column: booked - count, "updated_at": func.now()})
            .execution_options(synchronize_session=False)
        )
        self._expire_cached(trip_id)

        if result.rowcount == 0:
            current_booked, _ = self._read_counters(trip_id, channel)
            logger.warning(
                "Release of %s %s seat(s) on trip %s exceeds booked count %s; flooring at zero",
                count, channel.value, trip_id, current_booked
            )
            self.db.execute(
                update(Trip)
                .where(Trip.id == trip_id)
                .values({channel.booked_column: 0, "updated_at": func.now()})
                .execution_options(synchronize_session=False)
            )
            self._expire_cached(trip_id)
            return 0

        new_booked, _ = self._read_counters(trip_id, channel)
        logger.info("Released %s %s seat(s) on trip %s (booked now %s)", count, channel.value, trip_id, new_booked)
        return new_booked

    def reconcile(self, trip_id: int, channel: Channel) -> int:
        """Recompute the channel counter from bookings that hold seats in that channel"""
        previous, quota = self._read_counters(trip_id, channel)
        statuses = MANIFEST_STATUSES if channel == Channel.WALK_IN else ONLINE_HOLDING_STATUSES

        total = self.db.execute(
            select(func.coalesce(func.sum(Booking.passenger_count), 0))
            .where(
                Booking.trip_id == trip_id,
                Booking.is_walk_in == (channel == Channel.WALK_IN),
                Booking.status.in_(statuses),
            )
        ).scalar_one()

        self.db.execute(
            update(Trip)
            .where(Trip.id == trip_id)
            .values({channel.booked_column: total, "updated_at": func.now()})
            .execution_options(synchronize_session=False)
        )
        self._expire_cached(trip_id)

        if total != previous:
            logger.warning(
                "Reconciled %s counter on trip %s from %s to %s", channel.value, trip_id, previous, total
            )
        if total > quota:
            logger.warning(
                "Trip %s %s bookings (%s) exceed quota %s after reconcile", trip_id, channel.value, total, quota
            )
        return total

    def available(self, trip_id: int, channel: Channel) -> int:
        booked, quota = self._read_counters(trip_id, channel)
        return max(0, quota - booked)

    @staticmethod
    def available_on(trip: Trip, channel: Channel) -> int:
        """Free seats on an already loaded trip row"""
        booked = getattr(trip, channel.booked_column) or 0
        quota = getattr(trip, channel.quota_column) or 0
        return max(0, quota - booked)

    def _read_counters(self, trip_id: int, channel: Channel) -> Tuple[int, int]:
        row = self.db.execute(
            select(getattr(Trip, channel.booked_column), getattr(Trip, channel.quota_column))
            .where(Trip.id == trip_id)
        ).first()
        if row is None:
            raise NotFoundError("Trip", trip_id)
        return row[0] or 0, row[1] or 0

    def _expire_cached(self, trip_id: int):
        cached = self.db.identity_map.get(identity_key(Trip, trip_id))
        if cached is not None:
            self.db.expire(cached)

    @staticmethod
    def _validate_count(count: int):
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise ValidationError("Seat count must be a positive integer", field="count")
