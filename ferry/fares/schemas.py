from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum

from ferry.trips.schemas import Channel

class FareType(str, Enum):
    """Passenger discount category"""
    ADULT = "adult"
    SENIOR = "senior"
    PWD = "pwd"
    CHILD = "child"
    INFANT = "infant"

class FeeSettings(BaseModel):
    """Fee configuration fetched once per request and passed into fee computations"""
    admin_fee_cents_per_passenger: int = Field(..., ge=0)
    gcash_fee_cents: int = Field(..., ge=0)
    admin_fee_label: str = "Platform Service Fee"
    gcash_fee_label: str = "Payment Processing Fee"
    admin_fee_applies_walkin: bool = True

    class Config:
        from_attributes = True

class ActiveFare(BaseModel):
    """Fare in force for a route on a given day"""
    route_id: int
    base_fare_cents: int = Field(..., ge=0)
    discount_percent: int = Field(..., ge=0, le=100)
    fare_rule_id: Optional[int] = None

class PassengerFare(BaseModel):
    fare_type: FareType
    full_name: Optional[str] = None
    fare_cents: int

class FareQuote(BaseModel):
    """Server-side computed cost of a booking"""
    base_fare_cents: int
    discount_percent: float
    channel: Channel
    passengers: List[PassengerFare]
    fare_subtotal_cents: int
    admin_fee_cents: int
    gcash_fee_cents: int
    total_cents: int
    currency: str = "PHP"
