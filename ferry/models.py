from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, Time, Text, ForeignKey, JSON,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ferry.database import Base

# ================================
# Profiles
# ================================
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255))
    role = Column(String(50), nullable=False, default="passenger")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="owner")
    restriction = relationship("PassengerBookingRestriction", back_populates="profile", uselist=False)

# ================================
# Routes / Vessels / Schedule
# ================================
class Route(Base):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    trips = relationship("Trip", back_populates="route")
    fare_rules = relationship("FareRule", back_populates="route")
    schedule_slots = relationship("ScheduleSlot", back_populates="route")

class Vessel(Base):
    __tablename__ = "vessels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    capacity = Column(Integer, nullable=False)
    online_quota = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("online_quota >= 0 AND online_quota <= capacity", name="ck_vessel_online_quota"),
    )

    # Relationships
    trips = relationship("Trip", back_populates="vessel")

class ScheduleSlot(Base):
    __tablename__ = "schedule_slots"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True)

    # Relationships
    route = relationship("Route", back_populates="schedule_slots")

class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    vessel_id = Column(Integer, ForeignKey("vessels.id"), nullable=False, index=True)
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    online_quota = Column(Integer, nullable=False, default=0)
    online_booked = Column(Integer, nullable=False, default=0)
    walk_in_quota = Column(Integer, nullable=False, default=0)
    walk_in_booked = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="scheduled", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("online_booked >= 0", name="ck_trip_online_booked"),
        CheckConstraint("walk_in_booked >= 0", name="ck_trip_walk_in_booked"),
        UniqueConstraint("vessel_id", "route_id", "departure_date", "departure_time", name="uq_trip_slot"),
    )

    # Relationships
    route = relationship("Route", back_populates="trips")
    vessel = relationship("Vessel", back_populates="trips")
    bookings = relationship("Booking", back_populates="trip")

# ================================
# Fares & Fees
# ================================
class FareRule(Base):
    __tablename__ = "fare_rules"

    id = Column(Integer, primary_key=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    base_fare_cents = Column(Integer, nullable=False)
    discount_percent = Column(Integer, nullable=False, default=0)
    valid_from = Column(Date, nullable=False)
    valid_until = Column(Date)

    __table_args__ = (
        CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="ck_fare_discount"),
    )

    # Relationships
    route = relationship("Route", back_populates="fare_rules")

class FeeSettingsRecord(Base):
    __tablename__ = "fee_settings"

    id = Column(Integer, primary_key=True)
    admin_fee_cents_per_passenger = Column(Integer, nullable=False)
    gcash_fee_cents = Column(Integer, nullable=False)
    admin_fee_label = Column(String(100), default="Platform Service Fee")
    gcash_fee_label = Column(String(100), default="Payment Processing Fee")
    admin_fee_applies_walkin = Column(Boolean, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# ================================
# Bookings & Tickets
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(20), unique=True, nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=True, index=True)
    customer_full_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_mobile = Column(String(50))
    customer_address = Column(String(500))
    notify_also_email = Column(String(255))
    passenger_count = Column(Integer, nullable=False)
    passenger_details = Column(JSON, nullable=False, default=list)
    fare_type = Column(String(20), nullable=False, default="adult")
    total_amount_cents = Column(Integer, nullable=False)
    admin_fee_cents = Column(Integer, nullable=False, default=0)
    gcash_fee_cents = Column(Integer, nullable=False, default=0)
    is_walk_in = Column(Boolean, nullable=False, default=False)
    status = Column(String(30), nullable=False, default="pending_payment", index=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)

    # Trip snapshot, kept readable after the trip row is removed
    trip_snapshot_vessel_name = Column(String(255))
    trip_snapshot_route_name = Column(String(255))
    trip_snapshot_departure_date = Column(Date)
    trip_snapshot_departure_time = Column(Time)

    checked_in_at = Column(DateTime(timezone=True))
    boarded_at = Column(DateTime(timezone=True))

    refund_status = Column(String(30))
    refund_requested_at = Column(DateTime(timezone=True))
    refund_request_reason = Column(String(100))
    refund_request_notes = Column(Text)
    refund_acknowledged_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("passenger_count >= 1", name="ck_booking_passenger_count"),
    )

    # Relationships
    trip = relationship("Trip", back_populates="bookings")
    owner = relationship("Profile", back_populates="bookings")
    tickets = relationship("Ticket", back_populates="booking", order_by="Ticket.passenger_index")
    changes = relationship("BookingChange", back_populates="booking", order_by="BookingChange.id")
    refunds = relationship("Refund", back_populates="booking", order_by="Refund.id")

class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_number = Column(String(32), unique=True, nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    passenger_index = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False, default="confirmed")
    checked_in_at = Column(DateTime(timezone=True))
    boarded_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("booking_id", "passenger_index", name="uq_ticket_booking_passenger"),
    )

    # Relationships
    booking = relationship("Booking", back_populates="tickets")

class BookingChange(Base):
    """Append-only reschedule audit. Trip ids are historical values, not foreign keys.
    The booking link is nulled if an unpaid booking is purged; the reference stays."""
    __tablename__ = "booking_changes"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    booking_reference = Column(String(20), nullable=False, index=True)
    from_trip_id = Column(Integer, nullable=False)
    to_trip_id = Column(Integer, nullable=False)
    additional_fee_cents = Column(Integer, nullable=False, default=0)
    changed_by = Column(Integer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="changes")

class Refund(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=False)
    status = Column(String(30), nullable=False, default="requested", index=True)
    refund_type = Column(String(20), default="full")
    policy_basis = Column(String(50))
    requested_by = Column(Integer)
    requested_at = Column(DateTime(timezone=True))
    approved_by = Column(Integer)
    approved_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    processed_by = Column(Integer)
    processed_at = Column(DateTime(timezone=True))
    gcash_reference = Column(String(100))
    admin_notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="refunds")

# ================================
# Passenger restrictions
# ================================
class PassengerBookingRestriction(Base):
    __tablename__ = "passenger_booking_restrictions"

    profile_id = Column(Integer, ForeignKey("profiles.id"), primary_key=True)
    booking_warnings = Column(Integer, nullable=False, default=0)
    booking_blocked_at = Column(DateTime(timezone=True))
    blocked_until = Column(DateTime(timezone=True))
    updated_by = Column(Integer)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("booking_warnings >= 0 AND booking_warnings <= 2", name="ck_restriction_warnings"),
    )

    # Relationships
    profile = relationship("Profile", back_populates="restriction")
