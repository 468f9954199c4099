"""Shared fixtures: in-memory database, seeded ferry data, fixed Manila clock."""
from datetime import date, datetime, time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ferry.database import Base, get_db
from ferry.models import FareRule, Profile, Route, ScheduleSlot, Trip, Vessel
from ferry.clock import FixedClock, get_clock
from ferry.notifications import Notifier, SafeNotifier, get_notifier
from ferry.auth.schemas import Actor, Role
from ferry.auth.dependencies import create_access_token
from ferry.bookings.schemas import BookingCreateRequest, ContactInfo, PassengerInfo
from ferry.bookings.booking_service import BookingService
from ferry.bookings.reschedule_service import RescheduleService
from ferry.bookings.refund_service import RefundService
from ferry.restrictions.service import RestrictionService
from ferry.trips.service import TripService

# 1 March 2026, 09:00 in Manila
NOW = datetime(2026, 3, 1, 9, 0)


class RecordingNotifier(Notifier):
    """Keeps every outbound message for assertions"""

    def __init__(self):
        self.sent = []

    def booking_payment_required(self, **kwargs):
        self.sent.append(("booking_payment_required", kwargs))

    def booking_confirmed(self, **kwargs):
        self.sent.append(("booking_confirmed", kwargs))

    def booking_rescheduled(self, **kwargs):
        self.sent.append(("booking_rescheduled", kwargs))

    def refund_updated(self, **kwargs):
        self.sent.append(("refund_updated", kwargs))

    def restriction_changed(self, **kwargs):
        self.sent.append(("restriction_changed", kwargs))

    def events(self, name):
        return [kwargs for event, kwargs in self.sent if event == name]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW, "Asia/Manila")


@pytest.fixture
def recorder():
    return RecordingNotifier()


@pytest.fixture
def notifier(recorder):
    return SafeNotifier(recorder)


@pytest.fixture
def ferry_data(db):
    """Profiles, routes, a 10-seat vessel (6 online, 4 walk-in) and trips around NOW."""
    passenger = Profile(email="juan@example.com", full_name="Juan Dela Cruz", role=Role.PASSENGER.value)
    other_passenger = Profile(email="maria@example.com", full_name="Maria Santos", role=Role.PASSENGER.value)
    admin = Profile(email="admin@example.com", full_name="Admin", role=Role.ADMIN.value)
    booth = Profile(email="booth@example.com", full_name="Booth", role=Role.TICKET_BOOTH.value)
    crew = Profile(email="crew@example.com", full_name="Crew", role=Role.CREW.value)
    db.add_all([passenger, other_passenger, admin, booth, crew])

    route = Route(origin="Iloilo", destination="Guimaras", display_name="Iloilo - Guimaras")
    return_route = Route(origin="Guimaras", destination="Iloilo", display_name="Guimaras - Iloilo")
    other_route = Route(origin="Iloilo", destination="Bacolod", display_name="Iloilo - Bacolod")
    db.add_all([route, return_route, other_route])
    db.flush()

    vessel = Vessel(name="MV Nier", capacity=10, online_quota=6)
    other_vessel = Vessel(name="MV Aurora", capacity=8, online_quota=4)
    db.add_all([vessel, other_vessel])
    db.flush()

    db.add_all([
        ScheduleSlot(route_id=route.id, departure_time=time(8, 0), is_active=True),
        ScheduleSlot(route_id=route.id, departure_time=time(14, 0), is_active=True),
        ScheduleSlot(route_id=route.id, departure_time=time(17, 0), is_active=False),
        FareRule(route_id=route.id, base_fare_cents=55000, discount_percent=20, valid_from=date(2026, 1, 1)),
    ])

    def trip(day, at, **kwargs):
        values = dict(
            route_id=route.id, vessel_id=vessel.id, departure_date=day, departure_time=at,
            online_quota=6, online_booked=0, walk_in_quota=4, walk_in_booked=0, status="scheduled"
        )
        values.update(kwargs)
        row = Trip(**values)
        db.add(row)
        return row

    far = trip(date(2026, 3, 5), time(8, 0))
    alt = trip(date(2026, 3, 6), time(8, 0))
    soon = trip(date(2026, 3, 1), time(20, 0))
    imminent = trip(date(2026, 3, 1), time(9, 20))
    departed = trip(date(2026, 2, 28), time(8, 0), status="arrived")
    db.commit()

    return SimpleNamespace(
        passenger=passenger, other_passenger=other_passenger, admin=admin, booth=booth, crew=crew,
        route=route, return_route=return_route, other_route=other_route,
        vessel=vessel, other_vessel=other_vessel,
        far=far, alt=alt, soon=soon, imminent=imminent, departed=departed,
    )


def actor_for(profile):
    return Actor(profile_id=profile.id, role=Role(profile.role), email=profile.email)


@pytest.fixture
def passenger_actor(ferry_data):
    return actor_for(ferry_data.passenger)


@pytest.fixture
def admin_actor(ferry_data):
    return actor_for(ferry_data.admin)


@pytest.fixture
def booth_actor(ferry_data):
    return actor_for(ferry_data.booth)


@pytest.fixture
def crew_actor(ferry_data):
    return actor_for(ferry_data.crew)


@pytest.fixture
def make_request():
    """Factory for booking requests: one entry in fare_types per passenger"""
    def _make(trip_id, fare_types=("adult",), email="juan@example.com", profile_id=None, also=None):
        return BookingCreateRequest(
            trip_id=trip_id,
            passengers=[
                PassengerInfo(fare_type=fare_type, full_name=f"Passenger {i + 1}")
                for i, fare_type in enumerate(fare_types)
            ],
            contact=ContactInfo(
                customer_email=email,
                customer_mobile="09171234567",
                customer_address="Jaro, Iloilo City",
                notify_also_email=also,
            ),
            passenger_profile_id=profile_id,
        )
    return _make


@pytest.fixture
def booking_service(db, clock, notifier):
    return BookingService(db, clock, notifier)


@pytest.fixture
def reschedule_service(db, clock, notifier):
    return RescheduleService(db, clock, notifier)


@pytest.fixture
def refund_service(db, clock, notifier):
    return RefundService(db, clock, notifier)


@pytest.fixture
def restriction_service(db, clock, notifier):
    return RestrictionService(db, clock, notifier)


@pytest.fixture
def trip_service(db, clock):
    return TripService(db, clock)


@pytest.fixture
def client(session_factory, clock, notifier, ferry_data):
    from ferry.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(profile):
        token = create_access_token(profile.id, profile.role, profile.email)
        return {"Authorization": f"Bearer {token}"}
    return _headers
