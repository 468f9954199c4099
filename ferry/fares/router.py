from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from ferry.database import get_db
from ferry.clock import Clock, get_clock
from ferry.models import Trip
from ferry.exceptions import NotFoundError
from ferry.auth.dependencies import require_capability
from ferry.auth.schemas import Actor, Capability
from ferry.fares.fare_service import FareService, FeeSettingsService
from ferry.fares.schemas import FareQuote, FareType, FeeSettings
from ferry.trips.schemas import Channel

router = APIRouter()

@router.get("/quote", response_model=FareQuote)
def quote_fare(
    trip_id: int = Query(..., description="Trip to price"),
    fare_types: List[FareType] = Query(..., description="One entry per passenger"),
    channel: Channel = Query(Channel.ONLINE, description="Booking channel"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Quote a booking using the fare rule and fee settings in force today"""

    trip = db.get(Trip, trip_id)
    if not trip:
        raise NotFoundError("Trip", trip_id)

    fee_settings = FeeSettingsService(db).get_fee_settings()
    return FareService(db).quote(trip.route_id, clock.today(), fare_types, fee_settings, channel)

@router.get("/fee-settings", response_model=FeeSettings)
def get_fee_settings(db: Session = Depends(get_db)):
    """Current fee settings"""
    return FeeSettingsService(db).get_fee_settings()

@router.put("/fee-settings", response_model=FeeSettings)
def update_fee_settings(
    request: FeeSettings,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.MANAGE_FEES))
):
    """Change the admin and payment processing fees applied to new bookings"""
    return FeeSettingsService(db).update_fee_settings(request)
