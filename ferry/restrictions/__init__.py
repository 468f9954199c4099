"""
Passenger Restrictions Module

Warnings and booking blocks for passenger profiles. Booking creation consults
``RestrictionService.ensure_can_book`` before any seats are reserved.
"""

from .service import RestrictionService, MAX_WARNINGS
from .schemas import RestrictionAction, RestrictionState, TimedBlockRequest, RestrictionResponse

__all__ = [
    "RestrictionService",
    "MAX_WARNINGS",
    "RestrictionAction",
    "RestrictionState",
    "TimedBlockRequest",
    "RestrictionResponse"
]
