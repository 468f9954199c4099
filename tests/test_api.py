"""HTTP-level tests: routing, auth gates and error payloads."""
import pytest

from ferry.models import Trip

API = "/api/v1"


def booking_payload(trip_id, fare_types=("adult",), email="juan@example.com"):
    return {
        "trip_id": trip_id,
        "passengers": [
            {"fare_type": fare_type, "full_name": f"Passenger {i + 1}"} for i, fare_type in enumerate(fare_types)
        ],
        "contact": {
            "customer_email": email,
            "customer_mobile": "09171234567",
            "customer_address": "Jaro, Iloilo City",
        },
    }


@pytest.fixture
def online_booking(client, ferry_data):
    response = client.post(f"{API}/bookings/", json=booking_payload(ferry_data.far.id, ["adult", "adult"]))
    assert response.status_code == 201
    return response.json()["booking"]


@pytest.fixture
def paid_booking(client, online_booking, ferry_data, auth_headers):
    response = client.post(
        f"{API}/bookings/{online_booking['reference']}/confirm-payment", headers=auth_headers(ferry_data.admin)
    )
    assert response.status_code == 200
    return response.json()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestBookingEndpoints:
    """Creation, lookup and payment."""

    def test_guest_online_booking(self, client, ferry_data, recorder):
        response = client.post(f"{API}/bookings/", json=booking_payload(ferry_data.far.id))
        assert response.status_code == 201
        body = response.json()
        assert body["booking"]["status"] == "pending_payment"
        assert body["booking"]["is_walk_in"] is False
        assert body["fare_breakdown"]["total_cents"] == 58500
        assert recorder.events("booking_payment_required")[0]["to"] == "juan@example.com"

    def test_walk_in_requires_token(self, client, ferry_data):
        response = client.post(f"{API}/bookings/walk-in", json=booking_payload(ferry_data.far.id))
        assert response.status_code == 401

    def test_walk_in_requires_booth_role(self, client, ferry_data, auth_headers):
        response = client.post(
            f"{API}/bookings/walk-in", json=booking_payload(ferry_data.far.id),
            headers=auth_headers(ferry_data.passenger)
        )
        assert response.status_code == 403

    def test_walk_in_is_confirmed_with_tickets(self, client, ferry_data, auth_headers):
        response = client.post(
            f"{API}/bookings/walk-in", json=booking_payload(ferry_data.imminent.id, ["adult", "infant"]),
            headers=auth_headers(ferry_data.booth)
        )
        assert response.status_code == 201
        booking = response.json()["booking"]
        assert booking["status"] == "confirmed"
        assert all(p["ticket_number"] for p in booking["passenger_details"])

    def test_cutoff_error_payload(self, client, ferry_data):
        response = client.post(f"{API}/bookings/", json=booking_payload(ferry_data.imminent.id))
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "CUTOFF_PASSED"
        assert error["type"] == "CutoffError"

    def test_capacity_error_payload(self, client, ferry_data):
        response = client.post(f"{API}/bookings/", json=booking_payload(ferry_data.far.id, ["adult"] * 7))
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_CAPACITY"
        assert error["details"]["available"] == 6

    def test_request_validation(self, client, ferry_data):
        payload = booking_payload(ferry_data.far.id)
        payload["passengers"] = []
        assert client.post(f"{API}/bookings/", json=payload).status_code == 422

    def test_guest_lookup_needs_matching_email(self, client, online_booking):
        reference = online_booking["reference"]
        assert client.get(f"{API}/bookings/{reference}").status_code == 404
        assert client.get(f"{API}/bookings/{reference}", params={"email": "x@example.com"}).status_code == 404
        response = client.get(f"{API}/bookings/{reference}", params={"email": "JUAN@example.com"})
        assert response.status_code == 200
        assert response.json()["reference"] == reference

    def test_confirm_payment_issues_tickets(self, client, paid_booking, ferry_data, auth_headers):
        assert paid_booking["status"] == "confirmed"
        response = client.get(
            f"{API}/bookings/{paid_booking['reference']}/tickets", headers=auth_headers(ferry_data.crew)
        )
        assert len(response.json()["ticket_numbers"]) == 2

    def test_confirm_payment_needs_admin(self, client, online_booking, ferry_data, auth_headers):
        response = client.post(
            f"{API}/bookings/{online_booking['reference']}/confirm-payment", headers=auth_headers(ferry_data.booth)
        )
        assert response.status_code == 403

    def test_scan_and_board(self, client, paid_booking, ferry_data, auth_headers):
        headers = auth_headers(ferry_data.crew)
        number = paid_booking["passenger_details"][0]["ticket_number"]
        scanned = client.get(f"{API}/bookings/tickets/validate", params={"payload": f"NIER:{number}"}, headers=headers)
        assert scanned.status_code == 200
        assert scanned.json()["reference"] == paid_booking["reference"]

        boarded = client.post(f"{API}/bookings/tickets/{number}/check-in", json={"action": "boarded"}, headers=headers)
        assert boarded.status_code == 200
        assert boarded.json()["status"] == "boarded"

    def test_delete_spam_booking(self, db, client, online_booking, ferry_data, auth_headers):
        response = client.delete(f"{API}/bookings/id/{online_booking['id']}", headers=auth_headers(ferry_data.booth))
        assert response.status_code == 204
        db.expire_all()
        assert db.get(Trip, ferry_data.far.id).online_booked == 0


class TestRescheduleEndpoints:

    def test_reschedule(self, client, paid_booking, ferry_data):
        reference = paid_booking["reference"]
        response = client.post(
            f"{API}/bookings/{reference}/reschedule", params={"email": "juan@example.com"},
            json={"trip_id": ferry_data.alt.id}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["fee_delta_cents"] == 12500
        assert body["booking"]["trip_id"] == ferry_data.alt.id

    def test_alternatives(self, client, paid_booking, ferry_data):
        response = client.get(
            f"{API}/bookings/{paid_booking['reference']}/alternatives", params={"email": "juan@example.com"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["channel"] == "online"
        assert ferry_data.alt.id in [t["id"] for t in body["trips"]]

    def test_reschedule_to_unknown_trip(self, client, paid_booking):
        response = client.post(
            f"{API}/bookings/{paid_booking['reference']}/reschedule", params={"email": "juan@example.com"},
            json={"trip_id": 9999}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


class TestRefundEndpoints:

    def test_request_and_approve(self, client, paid_booking, ferry_data, auth_headers):
        reference = paid_booking["reference"]
        created = client.post(
            f"{API}/bookings/{reference}/refund-request", params={"email": "juan@example.com"},
            json={"reason": "weather_disturbance"}
        )
        assert created.status_code == 201
        refund_id = created.json()["id"]

        denied = client.post(
            f"{API}/refunds/{refund_id}/action", json={"action": "approve"}, headers=auth_headers(ferry_data.booth)
        )
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

        approved = client.post(
            f"{API}/refunds/{refund_id}/action", json={"action": "approve"}, headers=auth_headers(ferry_data.admin)
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

        processed = client.post(
            f"{API}/refunds/{refund_id}/action", json={"action": "process", "gcash_reference": "GC42"},
            headers=auth_headers(ferry_data.booth)
        )
        assert processed.status_code == 200
        assert processed.json()["status"] == "processed"

        listed = client.get(f"{API}/refunds/", params={"status": "processed"}, headers=auth_headers(ferry_data.admin))
        assert [r["id"] for r in listed.json()] == [refund_id]

    def test_invalid_reason(self, client, paid_booking, ferry_data, auth_headers):
        response = client.post(
            f"{API}/bookings/id/{paid_booking['id']}/refund", json={"reason": "changed_mind"},
            headers=auth_headers(ferry_data.booth)
        )
        assert response.status_code == 422


class TestStaffEndpoints:

    def test_warn_passenger(self, client, ferry_data, auth_headers):
        response = client.post(
            f"{API}/restrictions/{ferry_data.passenger.id}/warn", headers=auth_headers(ferry_data.admin)
        )
        assert response.status_code == 200
        assert response.json()["restriction"]["booking_warnings"] == 1

    def test_passenger_cannot_restrict(self, client, ferry_data, auth_headers):
        response = client.post(
            f"{API}/restrictions/{ferry_data.other_passenger.id}/block", headers=auth_headers(ferry_data.passenger)
        )
        assert response.status_code == 403

    def test_blocked_passenger_gets_restriction_error(self, client, ferry_data, auth_headers):
        client.post(f"{API}/restrictions/{ferry_data.passenger.id}/block", headers=auth_headers(ferry_data.admin))
        response = client.post(
            f"{API}/bookings/", json=booking_payload(ferry_data.far.id), headers=auth_headers(ferry_data.passenger)
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "BOOKING_RESTRICTED"

    def test_reconcile_walk_in(self, client, ferry_data, auth_headers):
        response = client.post(
            f"{API}/trips/{ferry_data.far.id}/reconcile-walk-in", headers=auth_headers(ferry_data.booth)
        )
        assert response.status_code == 200
        assert response.json()["booked"] == 0

    def test_trip_listing(self, client, ferry_data):
        response = client.get(f"{API}/trips/", params={"departure_date": "2026-03-05"})
        assert response.status_code == 200
        trips = response.json()
        assert [t["id"] for t in trips] == [ferry_data.far.id]
        assert trips[0]["online_available"] == 6

    def test_fare_quote(self, client, ferry_data):
        response = client.get(
            f"{API}/fares/quote", params={"trip_id": ferry_data.far.id, "fare_types": ["adult", "child"]}
        )
        assert response.status_code == 200
        assert response.json()["total_cents"] == 55000 + 44000 + 4000 + 1500

    def test_fee_settings_admin_only(self, client, ferry_data, auth_headers):
        payload = {"admin_fee_cents_per_passenger": 2500, "gcash_fee_cents": 1500}
        denied = client.put(f"{API}/fares/fee-settings", json=payload, headers=auth_headers(ferry_data.booth))
        assert denied.status_code == 403

        updated = client.put(f"{API}/fares/fee-settings", json=payload, headers=auth_headers(ferry_data.admin))
        assert updated.status_code == 200
        assert client.get(f"{API}/fares/fee-settings").json()["admin_fee_cents_per_passenger"] == 2500

        negative = client.put(
            f"{API}/fares/fee-settings", json={"admin_fee_cents_per_passenger": -1, "gcash_fee_cents": 0},
            headers=auth_headers(ferry_data.admin)
        )
        assert negative.status_code == 422
