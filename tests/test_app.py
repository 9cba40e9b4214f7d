"""HTTP-level tests: routing, identity and error status mapping."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient

from conftest import FakeCalendarProvider
from meetings.app import create_app, status_for
from meetings.config import settings
from meetings.errors import (
    ExternalSyncFailure,
    InvalidState,
    NotFound,
    QuotaExceeded,
    SchedulingError,
    SlotUnavailable,
    Unauthorized,
)
from meetings.store import MemoryStore

HOST = {"X-Host-Identity": "user_1"}

WINDOW = {"start": "2030-01-07T09:00:00Z", "end": "2030-01-07T10:00:00Z"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "debug", True)
    monkeypatch.setattr(settings, "gateway_api_key", "")
    monkeypatch.setattr(settings, "identity_header", "X-Host-Identity")
    app = create_app(store=MemoryStore(), provider=FakeCalendarProvider())
    return TestClient(app)


def _publish(client):
    """Give user_1 one hour of availability and return their slug."""
    response = client.put("/api/availability", json={"windows": [WINDOW]}, headers=HOST)
    assert response.status_code == 200
    return client.get("/api/booking-link", headers=HOST).json()["slug"]


def _book(client, slug, start="2030-01-07T09:00:00Z", end="2030-01-07T09:30:00Z"):
    return client.post("/api/bookings", json={
        "host_slug": slug,
        "start": start,
        "end": end,
        "guest_name": "Bob",
        "guest_email": "bob@example.com",
    })


class TestStatusMapping:
    @pytest.mark.parametrize("error, expected", [
        (Unauthorized("x"), 401),
        (NotFound("x"), 404),
        (SlotUnavailable("x"), 409),
        (QuotaExceeded("x"), 403),
        (ExternalSyncFailure("x"), 502),
        (InvalidState("x"), 400),
        (SchedulingError("x"), 500),
    ])
    def test_status_for(self, error, expected):
        assert status_for(error) == expected


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestPublicEndpoints:
    def test_unknown_host_is_404(self, client):
        response = client.get("/api/hosts/nobody/slots", params={"day": "2030-01-07"})
        assert response.status_code == 404
        assert response.json() == {"error": "Host not found"}

    def test_unknown_host_has_no_dates(self, client):
        response = client.get(
            "/api/hosts/nobody/dates", params={"start": "2030-01-07", "end": "2030-01-08"}
        )
        assert response.json() == {"dates": []}

    def test_book_then_slot_taken(self, client):
        slug = _publish(client)
        slots = client.get(f"/api/hosts/{slug}/slots", params={"day": "2030-01-07"}).json()
        assert len(slots["slots"]) == 2

        response = _book(client, slug)
        assert response.status_code == 201
        assert response.json()["guest_email"] == "bob@example.com"

        slots = client.get(f"/api/hosts/{slug}/slots", params={"day": "2030-01-07"}).json()
        assert len(slots["slots"]) == 1

        assert _book(client, slug).status_code == 409

    def test_inverted_booking_is_400(self, client):
        slug = _publish(client)
        response = _book(client, slug, start="2030-01-07T09:30:00Z", end="2030-01-07T09:00:00Z")
        assert response.status_code == 400

    def test_page_uses_timezone_cookie(self, client):
        slug = _publish(client)
        client.cookies.set("timezone", "Asia/Tokyo")
        page = client.get(f"/api/hosts/{slug}/page").json()
        assert page["timezone"] == "Asia/Tokyo"
        # 09:00Z is 18:00 in Tokyo, same day
        assert page["available_dates"] == ["2030-01-07"]

    def test_page_query_overrides_cookie(self, client):
        slug = _publish(client)
        client.cookies.set("timezone", "Asia/Tokyo")
        page = client.get(f"/api/hosts/{slug}/page", params={"tz": "Europe/Paris"}).json()
        assert page["timezone"] == "Europe/Paris"


class TestHostEndpoints:
    def test_missing_identity_is_401(self, client):
        assert client.get("/api/bookings").status_code == 401

    def test_list_and_cancel(self, client):
        slug = _publish(client)
        booking_id = _book(client, slug).json()["id"]

        bookings = client.get("/api/bookings", headers=HOST).json()["bookings"]
        assert [b["id"] for b in bookings] == [booking_id]

        response = client.delete(f"/api/bookings/{booking_id}", headers=HOST)
        assert response.status_code == 204
        assert client.get("/api/bookings", headers=HOST).json() == {"bookings": []}

    def test_cancel_other_hosts_booking_is_404(self, client):
        slug = _publish(client)
        booking_id = _book(client, slug).json()["id"]
        client.put("/api/availability", json={"windows": []}, headers={"X-Host-Identity": "user_2"})

        response = client.delete(
            f"/api/bookings/{booking_id}", headers={"X-Host-Identity": "user_2"}
        )
        assert response.status_code == 404

    def test_inverted_window_is_400(self, client):
        response = client.put(
            "/api/availability",
            json={"windows": [{"start": WINDOW["end"], "end": WINDOW["start"]}]},
            headers=HOST,
        )
        assert response.status_code == 400

    def test_quota_for_new_host(self, client):
        _publish(client)
        quota = client.get("/api/quota", headers=HOST).json()
        assert quota["plan"] == "free"
        assert quota["limit"] == 2
        assert quota["is_exceeded"] is False

    def test_calendar_limit_is_403(self, client):
        first = client.post("/api/accounts", json={
            "account_id": "g1", "email": "a@example.com", "access_token": "t1", "refresh_token": "r1",
        }, headers=HOST)
        assert first.status_code == 201
        assert first.json()["is_default"] is True

        second = client.post("/api/accounts", json={
            "account_id": "g2", "email": "b@example.com", "access_token": "t2",
        }, headers=HOST)
        assert second.status_code == 403

    def test_busy_without_calendars(self, client):
        _publish(client)
        response = client.get(
            "/api/busy",
            params={"start": "2030-01-07T00:00:00Z", "end": "2030-01-08T00:00:00Z"},
            headers=HOST,
        )
        assert response.json() == {"busy": []}

    def test_default_and_disconnect(self, client):
        key = client.post("/api/accounts", json={
            "account_id": "g1", "email": "a@example.com", "access_token": "t1", "refresh_token": "r1",
        }, headers=HOST).json()["key"]

        assert client.post(f"/api/accounts/{key}/default", headers=HOST).status_code == 204
        assert client.post("/api/accounts/nope/default", headers=HOST).status_code == 404
        assert client.delete(f"/api/accounts/{key}", headers=HOST).status_code == 204

    def test_meeting_types(self, client):
        assert client.post(
            "/api/meeting-types", json={"name": "Odd", "duration": 20}, headers=HOST
        ).status_code == 400

        created = client.post(
            "/api/meeting-types", json={"name": "Intro Call", "duration": 15}, headers=HOST
        )
        assert created.status_code == 201
        assert created.json()["slug"] == "intro-call"

        listed = client.get("/api/meeting-types", headers=HOST).json()["meeting_types"]
        assert [t["slug"] for t in listed] == ["intro-call"]


class TestGatewayLock:
    def test_production_without_key_is_403(self, client, monkeypatch):
        monkeypatch.setattr(settings, "debug", False)
        assert client.get("/api/bookings", headers=HOST).status_code == 403

    def test_wrong_bearer_is_401(self, client, monkeypatch):
        monkeypatch.setattr(settings, "gateway_api_key", "secret")
        response = client.get(
            "/api/quota", headers={**HOST, "Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_valid_bearer(self, client, monkeypatch):
        monkeypatch.setattr(settings, "gateway_api_key", "secret")
        response = client.get(
            "/api/quota", headers={**HOST, "Authorization": "Bearer secret"}
        )
        assert response.status_code == 200
