from pydantic import BaseModel, EmailStr
from typing import Optional
from enum import Enum

class Role(str, Enum):
    """Profile roles"""
    PASSENGER = "passenger"
    ADMIN = "admin"
    TICKET_BOOTH = "ticket_booth"
    CREW = "crew"
    CAPTAIN = "captain"

class Capability(str, Enum):
    """Operations gated at the API boundary"""
    BOOK = "book"
    CREATE_WALK_IN = "create_walk_in"
    CONFIRM_PAYMENT = "confirm_payment"
    CHECK_IN = "check_in"
    MANAGE_BOOKINGS = "manage_bookings"
    PROCESS_REFUNDS = "process_refunds"
    REVIEW_REFUNDS = "review_refunds"
    MANAGE_RESTRICTIONS = "manage_restrictions"
    MANAGE_TRIPS = "manage_trips"
    MANAGE_FEES = "manage_fees"

ROLE_CAPABILITIES = {
    Role.PASSENGER: {Capability.BOOK},
    Role.CREW: {Capability.BOOK, Capability.CHECK_IN},
    Role.CAPTAIN: {Capability.BOOK, Capability.CHECK_IN},
    Role.TICKET_BOOTH: {
        Capability.BOOK, Capability.CREATE_WALK_IN, Capability.CHECK_IN,
        Capability.MANAGE_BOOKINGS, Capability.PROCESS_REFUNDS,
        Capability.MANAGE_RESTRICTIONS, Capability.MANAGE_TRIPS,
    },
    Role.ADMIN: set(Capability),
}

class Actor(BaseModel):
    """Already-authenticated caller handed to core operations"""
    profile_id: Optional[int] = None
    role: Role = Role.PASSENGER
    email: Optional[EmailStr] = None

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(self.role, set())

    @property
    def is_guest(self) -> bool:
        return self.profile_id is None

class TokenData(BaseModel):
    sub: int
    role: Role
    email: Optional[EmailStr] = None

GUEST = Actor()
