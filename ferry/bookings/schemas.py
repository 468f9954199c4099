from pydantic import BaseModel, EmailStr, Field, validator
from typing import List, Optional
from datetime import date, datetime, time
from enum import Enum

from ferry.config import settings
from ferry.fares.schemas import FareQuote, FareType
from ferry.trips.schemas import Channel, TripSummary
from ferry.bookings.state_machine import BookingStatus

class CheckInAction(str, Enum):
    CHECKED_IN = "checked_in"
    BOARDED = "boarded"

class RefundStatus(str, Enum):
    """Refund workflow status"""
    REQUESTED = "requested"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"

class RefundReason(str, Enum):
    """Refunds are granted only for these policy reasons"""
    WEATHER_DISTURBANCE = "weather_disturbance"
    VESSEL_CANCELLATION = "vessel_cancellation"

class RefundAction(str, Enum):
    REVIEW = "review"
    APPROVE = "approve"
    REJECT = "reject"
    PROCESS = "process"

# Passenger Information
class PassengerInfo(BaseModel):
    """Individual passenger on a booking request"""
    fare_type: FareType = FareType.ADULT
    full_name: str
    address: Optional[str] = None

    @validator('full_name')
    def validate_full_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Passenger name is required')
        return v

class PassengerDetail(BaseModel):
    """Passenger as stored on a booking, in booking order"""
    fare_type: FareType
    full_name: str
    address: Optional[str] = None
    ticket_number: Optional[str] = None

class ContactInfo(BaseModel):
    customer_email: EmailStr
    customer_mobile: Optional[str] = None
    customer_address: str
    notify_also_email: Optional[EmailStr] = None

    @validator('customer_address')
    def validate_address(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Address is required for tickets and the manifest')
        return v

# Booking Request Models
class BookingCreateRequest(BaseModel):
    """Request to reserve seats on a trip"""
    trip_id: int
    passengers: List[PassengerInfo]
    contact: ContactInfo
    passenger_profile_id: Optional[int] = None

    @validator('passengers')
    def validate_passengers(cls, v):
        if not v or len(v) == 0:
            raise ValueError('At least one passenger is required')
        if len(v) > settings.MAX_PASSENGERS_PER_BOOKING:
            raise ValueError(f'Maximum {settings.MAX_PASSENGERS_PER_BOOKING} passengers per booking')
        return v

class CheckInRequest(BaseModel):
    action: CheckInAction = CheckInAction.CHECKED_IN

class RescheduleRequest(BaseModel):
    trip_id: int

class RefundCreateRequest(BaseModel):
    """Staff-processed refund"""
    reason: RefundReason
    gcash_reference: Optional[str] = None

class RefundRequestCreate(BaseModel):
    """Passenger refund request"""
    reason: RefundReason
    notes: Optional[str] = Field(None, max_length=500)

class RefundActionRequest(BaseModel):
    action: RefundAction
    admin_notes: Optional[str] = None
    amount_cents: Optional[int] = Field(None, ge=0)
    rejection_reason: Optional[str] = None
    gcash_reference: Optional[str] = None

# Booking Response Models
class BookingResponse(BaseModel):
    """Booking details"""
    id: int
    reference: str
    trip_id: Optional[int] = None
    status: BookingStatus
    is_walk_in: bool
    passenger_count: int
    passenger_details: List[PassengerDetail]
    customer_full_name: str
    customer_email: str
    customer_mobile: Optional[str] = None
    total_amount_cents: int
    admin_fee_cents: int
    gcash_fee_cents: int
    trip_snapshot_vessel_name: Optional[str] = None
    trip_snapshot_route_name: Optional[str] = None
    trip_snapshot_departure_date: Optional[date] = None
    trip_snapshot_departure_time: Optional[time] = None
    checked_in_at: Optional[datetime] = None
    boarded_at: Optional[datetime] = None
    refund_status: Optional[str] = None
    refund_acknowledged_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BookingCreatedResponse(BaseModel):
    booking: BookingResponse
    fare_breakdown: FareQuote

class RescheduleResponse(BaseModel):
    booking: BookingResponse
    fee_delta_cents: int
    new_total_cents: int
    message: str

class AlternativesResponse(BaseModel):
    reference: str
    channel: Channel
    trips: List[TripSummary]

class RefundResponse(BaseModel):
    id: int
    booking_id: int
    amount_cents: int
    reason: str
    status: RefundStatus
    policy_basis: Optional[str] = None
    rejection_reason: Optional[str] = None
    gcash_reference: Optional[str] = None
    admin_notes: Optional[str] = None
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TicketNumbersResponse(BaseModel):
    booking_id: int
    ticket_numbers: List[str]

class TicketValidationResponse(BaseModel):
    """Result of scanning a ticket QR payload"""
    ticket_number: str
    reference: str
    status: str
    passenger_index: int
    passenger_name: str
    fare_type: Optional[str] = None
    vessel_name: Optional[str] = None
    route_name: Optional[str] = None
    departure_date: Optional[date] = None
    departure_time: Optional[time] = None
    allow_boarding: bool = True
