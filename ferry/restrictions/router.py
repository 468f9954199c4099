from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ferry.database import get_db
from ferry.clock import Clock, get_clock
from ferry.notifications import SafeNotifier, get_notifier
from ferry.auth.dependencies import require_capability
from ferry.auth.schemas import Actor, Capability
from ferry.restrictions.service import RestrictionService
from ferry.restrictions.schemas import (
    RestrictionAction, RestrictionResponse, RestrictionState, TimedBlockRequest
)

router = APIRouter()

ACTION_MESSAGES = {
    RestrictionAction.WARN: "Warning issued.",
    RestrictionAction.BLOCK: "Passenger blocked from making new bookings.",
    RestrictionAction.UNBLOCK: "Passenger unblocked. They can book again.",
    RestrictionAction.CLEAR_WARNINGS: "Warnings cleared.",
}

def get_restriction_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: SafeNotifier = Depends(get_notifier)
) -> RestrictionService:
    return RestrictionService(db, clock, notifier)

@router.get("/{profile_id}", response_model=RestrictionState)
def get_restriction(
    profile_id: int,
    service: RestrictionService = Depends(get_restriction_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_RESTRICTIONS))
):
    """Current warnings and block state for a passenger"""
    return service.get_state(profile_id)

@router.post("/{profile_id}/block-until", response_model=RestrictionResponse)
def block_passenger_until(
    profile_id: int,
    request: TimedBlockRequest,
    service: RestrictionService = Depends(get_restriction_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_RESTRICTIONS))
):
    """Temporarily block a passenger"""
    state = service.block_until(profile_id, request.blocked_until, actor)
    return RestrictionResponse(message="Passenger temporarily blocked.", restriction=state)

@router.post("/{profile_id}/{action}", response_model=RestrictionResponse)
def apply_restriction(
    profile_id: int,
    action: RestrictionAction,
    service: RestrictionService = Depends(get_restriction_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_RESTRICTIONS))
):
    """Issue a warning, block, unblock, or clear warnings for a passenger"""
    state = service.apply(profile_id, action, actor)
    message = ACTION_MESSAGES[action]
    if action == RestrictionAction.WARN and state.booking_warnings >= 2:
        message = "Second warning issued. Consider blocking if abuse continues."
    return RestrictionResponse(message=message, restriction=state)
