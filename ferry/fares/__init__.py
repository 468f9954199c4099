"""
Fares Module

Deterministic fare and fee computation. All amounts are integer centavos.

Key Components:
- fare_service.py: Per-passenger fares, booking totals, reschedule fee, fare rule lookup
- router.py: Quote and fee settings endpoints
- schemas.py: Pydantic models for fare types, fee settings and quotes
"""

from .fare_service import (
    FareService, FeeSettingsService, compute_admin_fee, compute_booking_total,
    compute_fare, compute_gcash_fee, compute_reschedule_fee
)
from .schemas import ActiveFare, FareQuote, FareType, FeeSettings, PassengerFare

__all__ = [
    "FareService",
    "FeeSettingsService",
    "compute_admin_fee",
    "compute_booking_total",
    "compute_fare",
    "compute_gcash_fee",
    "compute_reschedule_fee",
    "ActiveFare",
    "FareQuote",
    "FareType",
    "FeeSettings",
    "PassengerFare"
]
