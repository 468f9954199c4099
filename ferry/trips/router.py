from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from ferry.database import get_db
from ferry.clock import Clock, get_clock
from ferry.auth.dependencies import require_capability
from ferry.auth.schemas import Actor, Capability
from ferry.bookings.schemas import BookingResponse
from ferry.bookings.booking_service import BookingService
from ferry.trips.service import TripService, trip_summary
from ferry.trips.schemas import (
    Channel, ReconcileResponse, TripCreateRequest, TripCreateResponse, TripDeleteResponse,
    TripStatus, TripStatusResponse, TripStatusUpdate, TripSummary
)

router = APIRouter()

def get_trip_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> TripService:
    return TripService(db, clock)

@router.get("/", response_model=List[TripSummary])
def list_trips(
    route_id: Optional[int] = Query(None, description="Filter by route"),
    departure_date: Optional[date] = Query(None, description="Filter by departure date"),
    status: Optional[TripStatus] = Query(None, description="Filter by trip status"),
    service: TripService = Depends(get_trip_service)
):
    """Trips with seats left per channel"""
    return [trip_summary(t) for t in service.list_trips(route_id, departure_date, status)]

@router.get("/{trip_id}", response_model=TripSummary)
def get_trip(trip_id: int, service: TripService = Depends(get_trip_service)):
    return trip_summary(service.get_trip(trip_id))

@router.get("/{trip_id}/bookings", response_model=List[BookingResponse])
def get_trip_manifest(
    trip_id: int,
    manifest_only: bool = Query(True, description="Only bookings that count toward the manifest"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_capability(Capability.CHECK_IN))
):
    """Passenger manifest for a trip"""
    return BookingService(db).list_bookings_for_trip(trip_id, manifest_only)

@router.post("/vessels/{vessel_id}/assign", response_model=TripCreateResponse)
def assign_vessel_to_route(
    vessel_id: int,
    request: TripCreateRequest,
    service: TripService = Depends(get_trip_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_TRIPS))
):
    """Create trips for a vessel on a route over a date range"""
    return service.create_trips_for_vessel(vessel_id, request.route_id, request.start_date, request.end_date)

@router.patch("/{trip_id}/status", response_model=TripStatusResponse)
def update_trip_status(
    trip_id: int,
    request: TripStatusUpdate,
    service: TripService = Depends(get_trip_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_TRIPS))
):
    trip, completed = service.update_trip_status(trip_id, request.status)
    message = f"{completed} booking(s) completed." if completed else None
    return TripStatusResponse(trip=trip_summary(trip), completed_bookings=completed, message=message)

@router.delete("/{trip_id}", response_model=TripDeleteResponse)
def delete_trip(
    trip_id: int,
    service: TripService = Depends(get_trip_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_TRIPS))
):
    """Delete a trip; its bookings keep a snapshot of the trip details"""
    return service.delete_trip(trip_id)

@router.post("/{trip_id}/reconcile-walk-in", response_model=ReconcileResponse)
def reconcile_walk_in(
    trip_id: int,
    service: TripService = Depends(get_trip_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_TRIPS))
):
    """Recompute walk_in_booked from actual walk-in bookings"""
    return service.reconcile(trip_id, Channel.WALK_IN)

@router.post("/{trip_id}/reconcile", response_model=ReconcileResponse)
def reconcile_channel(
    trip_id: int,
    channel: Channel = Query(..., description="Counter to recompute"),
    service: TripService = Depends(get_trip_service),
    actor: Actor = Depends(require_capability(Capability.MANAGE_TRIPS))
):
    return service.reconcile(trip_id, channel)
