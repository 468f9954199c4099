from typing import Iterable, List, Optional, Sequence, Union
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ferry.config import settings
from ferry.models import FareRule, FeeSettingsRecord
from ferry.exceptions import ValidationError
from ferry.fares.schemas import ActiveFare, FareQuote, FareType, FeeSettings, PassengerFare
from ferry.trips.schemas import Channel

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]


def _round_cents(amount: Decimal) -> int:
    """Nearest whole cent, halves rounded up"""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_fare_type(fare_type) -> FareType:
    try:
        return FareType(fare_type)
    except ValueError:
        raise ValidationError(f"Unknown fare type: {fare_type}", field="fare_type")


def compute_fare(base_fare_cents: int, discount_percent: Number, fare_type: Union[str, FareType]) -> int:
    """
    Per-passenger fare in cents.

    Adults pay the base fare, infants travel free, and every other fare type
    gets the route discount. Pure: the same inputs always give the same amount.
    """
    if base_fare_cents < 0:
        raise ValidationError("Base fare cannot be negative", field="base_fare_cents")
    discount = Decimal(str(discount_percent))
    if discount < 0 or discount > 100:
        raise ValidationError("Discount percent must be between 0 and 100", field="discount_percent")

    kind = _as_fare_type(fare_type)
    if kind == FareType.ADULT:
        return base_fare_cents
    if kind == FareType.INFANT:
        return 0
    return _round_cents(Decimal(base_fare_cents) * (Decimal(100) - discount) / Decimal(100))


def compute_admin_fee(passenger_count: int, fee_settings: FeeSettings, channel: Channel) -> int:
    if channel == Channel.WALK_IN and not fee_settings.admin_fee_applies_walkin:
        return 0
    return fee_settings.admin_fee_cents_per_passenger * passenger_count


def compute_gcash_fee(fee_settings: FeeSettings, channel: Channel) -> int:
    """Flat processing fee, once per online transaction"""
    return fee_settings.gcash_fee_cents if channel == Channel.ONLINE else 0


def compute_booking_total(
    base_fare_cents: int,
    discount_percent: Number,
    fare_types: Sequence[Union[str, FareType]],
    fee_settings: FeeSettings,
    channel: Channel,
    full_names: Optional[Sequence[Optional[str]]] = None
) -> FareQuote:
    """Sum of passenger fares plus admin and payment processing fees"""
    if not fare_types:
        raise ValidationError("At least one passenger is required", field="passengers")

    names = list(full_names) if full_names else [None] * len(fare_types)
    passengers: List[PassengerFare] = [
        PassengerFare(
            fare_type=_as_fare_type(fare_type),
            full_name=name,
            fare_cents=compute_fare(base_fare_cents, discount_percent, fare_type)
        )
        for fare_type, name in zip(fare_types, names)
    ]

    subtotal = sum(p.fare_cents for p in passengers)
    admin_fee = compute_admin_fee(len(passengers), fee_settings, channel)
    gcash_fee = compute_gcash_fee(fee_settings, channel)

    return FareQuote(
        base_fare_cents=base_fare_cents,
        discount_percent=float(discount_percent),
        channel=channel,
        passengers=passengers,
        fare_subtotal_cents=subtotal,
        admin_fee_cents=admin_fee,
        gcash_fee_cents=gcash_fee,
        total_cents=subtotal + admin_fee + gcash_fee
    )


def compute_reschedule_fee(
    total_amount_cents: int,
    admin_fee_cents: int,
    gcash_fee_cents: int,
    reschedule_percent: Number,
    flat_fee_cents: int
) -> int:
    """Percentage of the fare-only portion (prior fees excluded) plus a flat processing fee"""
    fare_cents = max(0, (total_amount_cents or 0) - (admin_fee_cents or 0) - (gcash_fee_cents or 0))
    percent = Decimal(str(reschedule_percent))
    return _round_cents(Decimal(fare_cents) * percent / Decimal(100)) + flat_fee_cents


class FareService:
    """Looks up the fare rule in force for a route"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_fare(self, route_id: int, on_date: date) -> ActiveFare:
        rule = (
            self.db.query(FareRule)
            .filter(
                FareRule.route_id == route_id,
                FareRule.valid_from <= on_date,
                or_(FareRule.valid_until.is_(None), FareRule.valid_until >= on_date)
            )
            .order_by(FareRule.valid_from.desc(), FareRule.id.desc())
            .first()
        )
        if not rule:
            logger.warning("No active fare rule for route %s on %s; using defaults", route_id, on_date)
            return ActiveFare(
                route_id=route_id,
                base_fare_cents=settings.DEFAULT_BASE_FARE_CENTS,
                discount_percent=settings.DEFAULT_DISCOUNT_PERCENT
            )
        return ActiveFare(
            route_id=route_id,
            base_fare_cents=rule.base_fare_cents,
            discount_percent=rule.discount_percent,
            fare_rule_id=rule.id
        )

    def quote(
        self,
        route_id: int,
        on_date: date,
        fare_types: Iterable[Union[str, FareType]],
        fee_settings: FeeSettings,
        channel: Channel,
        full_names: Optional[Sequence[Optional[str]]] = None
    ) -> FareQuote:
        fare = self.get_active_fare(route_id, on_date)
        return compute_booking_total(
            fare.base_fare_cents, fare.discount_percent, list(fare_types),
            fee_settings, channel, full_names
        )


class FeeSettingsService:
    """Reads and updates the singleton fee settings row"""

    SETTINGS_ID = 1

    def __init__(self, db: Session):
        self.db = db

    def get_fee_settings(self) -> FeeSettings:
        record = self.db.get(FeeSettingsRecord, self.SETTINGS_ID)
        if not record:
            return self.defaults()
        return FeeSettings(
            admin_fee_cents_per_passenger=record.admin_fee_cents_per_passenger,
            gcash_fee_cents=record.gcash_fee_cents,
            admin_fee_label=record.admin_fee_label or "Platform Service Fee",
            gcash_fee_label=record.gcash_fee_label or "Payment Processing Fee",
            admin_fee_applies_walkin=True if record.admin_fee_applies_walkin is None else record.admin_fee_applies_walkin
        )

    @staticmethod
    def defaults() -> FeeSettings:
        return FeeSettings(
            admin_fee_cents_per_passenger=settings.ADMIN_FEE_CENTS_PER_PASSENGER,
            gcash_fee_cents=settings.GCASH_FEE_CENTS
        )

    def update_fee_settings(self, fee_settings: FeeSettings) -> FeeSettings:
        """Upsert the singleton row; amounts are validated by the FeeSettings model"""
        record = self.db.get(FeeSettingsRecord, self.SETTINGS_ID)
        if not record:
            record = FeeSettingsRecord(id=self.SETTINGS_ID)
            self.db.add(record)
        record.admin_fee_cents_per_passenger = fee_settings.admin_fee_cents_per_passenger
        record.gcash_fee_cents = fee_settings.gcash_fee_cents
        record.admin_fee_label = fee_settings.admin_fee_label
        record.gcash_fee_label = fee_settings.gcash_fee_label
        record.admin_fee_applies_walkin = fee_settings.admin_fee_applies_walkin
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to update fee settings")
            raise
        logger.info(
            "Fee settings updated: admin fee %s cents/passenger, gcash fee %s cents",
            record.admin_fee_cents_per_passenger, record.gcash_fee_cents
        )
        return self.get_fee_settings()
