from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import date, time
from enum import Enum

class Channel(str, Enum):
    """Independent seat-quota pool a booking draws from"""
    ONLINE = "online"
    WALK_IN = "walk_in"

    @classmethod
    def for_booking(cls, is_walk_in: bool) -> "Channel":
        return cls.WALK_IN if is_walk_in else cls.ONLINE

    @property
    def booked_column(self) -> str:
        return f"{self.value}_booked"

    @property
    def quota_column(self) -> str:
        return f"{self.value}_quota"

class TripStatus(str, Enum):
    """Trip lifecycle"""
    SCHEDULED = "scheduled"
    BOARDING = "boarding"
    DEPARTED = "departed"
    ARRIVED = "arrived"
    CANCELLED = "cancelled"

class TripSummary(BaseModel):
    """Trip with seat counters"""
    id: int
    route_id: int
    vessel_id: int
    departure_date: date
    departure_time: time
    online_quota: int
    online_booked: int
    walk_in_quota: int
    walk_in_booked: int
    status: TripStatus
    online_available: int = 0
    walk_in_available: int = 0

    class Config:
        from_attributes = True

class TripCreateRequest(BaseModel):
    """Assign a vessel to a route for a date range"""
    route_id: int
    start_date: date
    end_date: date

    @validator('end_date')
    def validate_range(cls, v, values):
        start = values.get('start_date')
        if start and v < start:
            raise ValueError('end_date must not be before start_date')
        return v

class TripCreateResponse(BaseModel):
    created: int
    skipped_existing: int
    trip_ids: List[int] = Field(default_factory=list)

class TripStatusUpdate(BaseModel):
    status: TripStatus

class ReconcileResponse(BaseModel):
    trip_id: int
    channel: Channel
    booked: int
    previous: int
    reconciled: bool = True

class TripDeleteResponse(BaseModel):
    trip_id: int
    detached_bookings: int
    deleted: bool = True

class TripStatusResponse(BaseModel):
    trip: TripSummary
    completed_bookings: int = 0
    message: Optional[str] = None
