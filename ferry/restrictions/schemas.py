from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum

class RestrictionAction(str, Enum):
    WARN = "warn"
    BLOCK = "block"
    UNBLOCK = "unblock"
    CLEAR_WARNINGS = "clear_warnings"

class RestrictionState(BaseModel):
    """Warnings and block state of one passenger profile"""
    profile_id: int
    booking_warnings: int = 0
    booking_blocked_at: Optional[datetime] = None
    blocked_until: Optional[datetime] = None
    is_blocked: bool = False

    class Config:
        from_attributes = True

class TimedBlockRequest(BaseModel):
    blocked_until: datetime

class RestrictionResponse(BaseModel):
    ok: bool = True
    message: str
    restriction: RestrictionState
