"""HTTP tests for the scheduling API."""

from datetime import datetime, time
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import (
    get_adapter_resolver,
    get_booking_store,
    get_clock,
    get_sync_dispatcher,
)
from app.core.errors import CalendarSyncError, MSG_SLOT_CONFLICT, MSG_SYNC_DEGRADED
from app.schemas.scheduling import AvailabilityRuleRecord
from app.services.scheduling.intervals import TimeInterval
from app.main import app


def parse(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def client(store, resolver, dispatcher, clock):
    app.dependency_overrides[get_booking_store] = lambda: store
    app.dependency_overrides[get_adapter_resolver] = lambda: resolver
    app.dependency_overrides[get_sync_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


def book(client, owner_id, event_type, start="2024-01-01T10:00:00Z", **extra):
    body = {
        "start_time": start,
        "event_type_id": str(event_type.id),
        "booker_name": "Ada Investor",
        "booker_email": "ada@example.com",
    }
    body.update(extra)
    return client.post(f"/api/v1/owners/{owner_id}/bookings", json=body)


MONDAY_PARAMS = {"start": "2024-01-01T00:00:00Z", "end": "2024-01-02T00:00:00Z"}


class TestAvailability:

    def test_slots_for_monday(self, client, owner_id, monday_rule, event_type):
        response = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["slots"]) == 6
        assert parse(data["slots"][0]["start"]) == parse("2024-01-01T09:00:00Z")
        assert data["partial"] is False
        assert data["sync_notice"] is None

    def test_external_outage_is_partial(self, client, owner_id, monday_rule, event_type, calendar):
        calendar.fail_with = CalendarSyncError("Google API returned 503")

        response = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        )

        assert response.status_code == 200
        assert response.json()["partial"] is True
        assert response.json()["sync_notice"] == MSG_SYNC_DEGRADED

    def test_range_too_long(self, client, owner_id):
        response = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={"start": "2024-01-01T00:00:00Z", "end": "2024-06-01T00:00:00Z"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_interval"

    def test_unknown_event_type(self, client, owner_id, monday_rule):
        response = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(uuid4())},
        )

        assert response.status_code == 404

    def test_available_days(self, client, owner_id, monday_rule, event_type):
        response = client.get(
            f"/api/v1/owners/{owner_id}/availability/days",
            params={
                "start_date": "2024-01-01",
                "end_date": "2024-01-07",
                "event_type_id": str(event_type.id),
            },
        )

        assert response.status_code == 200
        days = response.json()["days"]
        assert len(days) == 7
        assert [d["date"] for d in days if d["has_slots"]] == ["2024-01-01"]

    def test_available_days_default_to_owner_timezone(self, client, owner_id, store, event_type):
        # Monday 01:00 in Tokyo is still Sunday in UTC
        store.add_rule(AvailabilityRuleRecord(
            owner_id=owner_id, day_of_week=0, start_time=time(1, 0), end_time=time(3, 0), timezone="Asia/Tokyo"
        ))

        response = client.get(
            f"/api/v1/owners/{owner_id}/availability/days",
            params={
                "start_date": "2024-01-08",
                "end_date": "2024-01-14",
                "event_type_id": str(event_type.id),
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["timezone"] == "Asia/Tokyo"
        assert [d["date"] for d in data["days"] if d["has_slots"]] == ["2024-01-08"]


class TestBookings:

    def test_book_then_conflict(self, client, owner_id, monday_rule, event_type, dispatcher):
        first = book(client, owner_id, event_type)
        second = book(client, owner_id, event_type)

        assert first.status_code == 201
        assert first.json()["message"] == "Booking confirmed"
        booking = first.json()["booking"]
        assert parse(booking["end_time"]) == parse("2024-01-01T10:30:00Z")
        assert booking["status"] == "confirmed"
        dispatcher.enqueue_push.assert_called_once()

        assert second.status_code == 409
        assert second.json()["detail"] == MSG_SLOT_CONFLICT
        assert second.json()["error"] == "slot_conflict"

    def test_booked_slot_disappears(self, client, owner_id, monday_rule, event_type):
        book(client, owner_id, event_type)

        response = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        )

        starts = [parse(s["start"]) for s in response.json()["slots"]]
        assert parse("2024-01-01T10:00:00Z") not in starts
        assert len(starts) == 5

    def test_naive_start_is_rejected(self, client, owner_id, event_type):
        response = book(client, owner_id, event_type, start="2024-01-01T10:00:00")

        assert response.status_code == 400

    def test_invalid_email(self, client, owner_id, event_type):
        response = book(client, owner_id, event_type, booker_email="not-an-email")

        assert response.status_code == 422

    def test_get_booking(self, client, owner_id, event_type):
        booking_id = book(client, owner_id, event_type).json()["booking"]["id"]

        response = client.get(f"/api/v1/bookings/{booking_id}")

        assert response.status_code == 200
        assert response.json()["booking"]["id"] == booking_id

    def test_unknown_booking(self, client):
        response = client.get(f"/api/v1/bookings/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "booking_not_found"

    def test_cancel_twice(self, client, owner_id, event_type):
        booking_id = book(client, owner_id, event_type).json()["booking"]["id"]

        first = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "Travel"})
        second = client.post(f"/api/v1/bookings/{booking_id}/cancel")

        assert first.status_code == second.status_code == 200
        assert second.json()["booking"]["status"] == "cancelled"
        assert second.json()["booking"]["cancellation_reason"] == "Travel"

    def test_reschedule(self, client, store, owner_id, event_type):
        old_id = book(client, owner_id, event_type).json()["booking"]["id"]

        response = client.post(
            f"/api/v1/bookings/{old_id}/reschedule",
            json={"start_time": "2024-01-01T14:00:00Z"},
        )

        assert response.status_code == 200
        new = response.json()["booking"]
        assert new["rescheduled_from_id"] == old_id
        assert parse(new["end_time"]) == parse("2024-01-01T14:30:00Z")
        assert client.get(f"/api/v1/bookings/{old_id}").json()["booking"]["status"] == "cancelled"

    def test_reschedule_cancelled_booking(self, client, owner_id, event_type):
        booking_id = book(client, owner_id, event_type).json()["booking"]["id"]
        client.post(f"/api/v1/bookings/{booking_id}/cancel")

        response = client.post(
            f"/api/v1/bookings/{booking_id}/reschedule",
            json={"start_time": "2024-01-01T14:00:00Z"},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "booking_cancelled"


class TestRules:

    def test_replace_and_list(self, client, owner_id):
        response = client.put(
            f"/api/v1/owners/{owner_id}/availability-rules",
            json={"rules": [
                {"day_of_week": 2, "start_time": "13:00", "end_time": "17:00"},
                {"day_of_week": 0, "start_time": "09:00", "end_time": "12:00", "timezone": "Europe/Berlin"},
            ]},
        )
        assert response.status_code == 200

        listed = client.get(f"/api/v1/owners/{owner_id}/availability-rules").json()

        assert [r["day_of_week"] for r in listed] == [0, 2]
        assert listed[0]["start_time"] == "09:00:00"
        assert listed[0]["timezone"] == "Europe/Berlin"

    def test_two_rules_for_one_weekday(self, client, owner_id):
        response = client.put(
            f"/api/v1/owners/{owner_id}/availability-rules",
            json={"rules": [
                {"day_of_week": 0, "start_time": "09:00", "end_time": "10:00"},
                {"day_of_week": 0, "start_time": "14:00", "end_time": "15:00"},
            ]},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "rule_conflict"

    @pytest.mark.parametrize("rule", [
        {"day_of_week": 0, "start_time": "12:00", "end_time": "09:00"},
        {"day_of_week": 7, "start_time": "09:00", "end_time": "12:00"},
        {"day_of_week": 0, "start_time": "9am", "end_time": "12:00"},
        {"day_of_week": 0, "start_time": "09:00", "end_time": "12:00", "timezone": "Mars/Base"},
    ])
    def test_invalid_rule(self, client, owner_id, rule):
        response = client.put(f"/api/v1/owners/{owner_id}/availability-rules", json={"rules": [rule]})

        assert response.status_code == 422

    def test_drag_selection(self, client, owner_id):
        response = client.post(
            f"/api/v1/owners/{owner_id}/drag-selection",
            json={"day": "2024-01-01", "start_px": 547, "end_px": 592, "pixels_per_hour": 60},
        )

        assert response.status_code == 200
        draft = response.json()
        assert parse(draft["start"]) == parse("2024-01-01T09:00:00Z")
        assert draft["duration_minutes"] == 60


class TestEventTypes:

    def test_create_list_update_deactivate(self, client, owner_id):
        created = client.post(
            f"/api/v1/owners/{owner_id}/event-types",
            json={"name": "Pitch", "duration_minutes": 45, "buffer_after_minutes": 15},
        )
        assert created.status_code == 201
        event_type_id = created.json()["id"]

        updated = client.patch(
            f"/api/v1/owners/{owner_id}/event-types/{event_type_id}",
            json={"duration_minutes": 60},
        )
        assert updated.status_code == 200
        assert updated.json()["duration_minutes"] == 60
        assert updated.json()["buffer_after_minutes"] == 15

        retired = client.delete(f"/api/v1/owners/{owner_id}/event-types/{event_type_id}")
        assert retired.status_code == 200
        assert retired.json()["is_active"] is False

        active = client.get(f"/api/v1/owners/{owner_id}/event-types").json()
        everything = client.get(
            f"/api/v1/owners/{owner_id}/event-types", params={"include_inactive": True}
        ).json()
        assert active == []
        assert [et["id"] for et in everything] == [event_type_id]

    def test_retired_event_type_cannot_be_booked(self, client, owner_id, monday_rule, event_type):
        client.delete(f"/api/v1/owners/{owner_id}/event-types/{event_type.id}")

        response = book(client, owner_id, event_type)

        assert response.status_code == 404
        assert response.json()["error"] == "event_type_not_found"

    def test_other_owners_event_type_is_not_found(self, client, event_type):
        response = client.patch(
            f"/api/v1/owners/{uuid4()}/event-types/{event_type.id}",
            json={"name": "Hijacked"},
        )

        assert response.status_code == 404

    def test_invalid_duration(self, client, owner_id):
        response = client.post(
            f"/api/v1/owners/{owner_id}/event-types",
            json={"name": "Nothing", "duration_minutes": 0},
        )

        assert response.status_code == 422


class TestOverrides:

    def test_day_off_removes_slots(self, client, owner_id, monday_rule, event_type):
        response = client.put(
            f"/api/v1/owners/{owner_id}/availability-overrides",
            json={"date": "2024-01-01", "is_available": False, "reason": "Holiday"},
        )
        assert response.status_code == 200

        slots = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        ).json()["slots"]
        assert slots == []

    def test_custom_hours_replace_rule_and_can_be_cleared(self, client, owner_id, monday_rule, event_type):
        for hours in (("09:00", "10:00"), ("14:00", "15:00")):
            client.put(
                f"/api/v1/owners/{owner_id}/availability-overrides",
                json={"date": "2024-01-01", "is_available": True, "start_time": hours[0], "end_time": hours[1]},
            )

        listed = client.get(
            f"/api/v1/owners/{owner_id}/availability-overrides",
            params={"start_date": "2024-01-01", "end_date": "2024-01-07"},
        ).json()
        assert len(listed) == 1
        assert listed[0]["start_time"] == "14:00:00"

        slots = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        ).json()["slots"]
        assert [parse(s["start"]).hour for s in slots] == [14, 14]

        cleared = client.delete(f"/api/v1/owners/{owner_id}/availability-overrides/2024-01-01")
        assert cleared.status_code == 204

        slots = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        ).json()["slots"]
        assert len(slots) == 6

    def test_half_given_hours_are_rejected(self, client, owner_id):
        response = client.put(
            f"/api/v1/owners/{owner_id}/availability-overrides",
            json={"date": "2024-01-01", "is_available": True, "start_time": "09:00"},
        )

        assert response.status_code == 422


class TestBookingList:

    def test_lists_confirmed_and_cancelled(self, client, owner_id, monday_rule, event_type):
        kept = book(client, owner_id, event_type, start="2024-01-01T11:00:00Z").json()["booking"]
        dropped = book(client, owner_id, event_type).json()["booking"]
        client.post(f"/api/v1/bookings/{dropped['id']}/cancel")

        everything = client.get(f"/api/v1/owners/{owner_id}/bookings", params=MONDAY_PARAMS).json()
        confirmed = client.get(
            f"/api/v1/owners/{owner_id}/bookings", params={**MONDAY_PARAMS, "status": "confirmed"}
        ).json()

        assert [b["id"] for b in everything["bookings"]] == [dropped["id"], kept["id"]]
        assert [b["id"] for b in confirmed["bookings"]] == [kept["id"]]

    def test_reversed_range(self, client, owner_id):
        response = client.get(
            f"/api/v1/owners/{owner_id}/bookings",
            params={"start": MONDAY_PARAMS["end"], "end": MONDAY_PARAMS["start"]},
        )

        assert response.status_code == 400


class TestCalendars:

    def test_list_hides_tokens(self, client, owner_id, integration):
        listed = client.get(f"/api/v1/owners/{owner_id}/calendars").json()

        assert [c["id"] for c in listed] == [str(integration.id)]
        assert "refresh_token_encrypted" not in listed[0]

    def test_disconnect_stops_reading_busy_time(self, client, store, owner_id, monday_rule, event_type, integration, calendar):
        calendar.add_busy(TimeInterval(parse("2024-01-01T09:00:00Z"), parse("2024-01-01T12:00:00Z")))

        response = client.delete(f"/api/v1/owners/{owner_id}/calendars/{integration.id}")

        assert response.status_code == 204
        assert store.get_calendar_integration(integration.id).is_active is False
        assert client.get(f"/api/v1/owners/{owner_id}/calendars").json() == []
        slots = client.get(
            f"/api/v1/owners/{owner_id}/availability",
            params={**MONDAY_PARAMS, "event_type_id": str(event_type.id)},
        ).json()["slots"]
        assert len(slots) == 6

    def test_disconnect_twice_or_for_another_owner(self, client, owner_id, integration):
        assert client.delete(f"/api/v1/owners/{uuid4()}/calendars/{integration.id}").status_code == 404
        assert client.delete(f"/api/v1/owners/{owner_id}/calendars/{integration.id}").status_code == 204
        assert client.delete(f"/api/v1/owners/{owner_id}/calendars/{integration.id}").status_code == 404


def test_health(client):
    response = client.get("/health/")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_correlation_id_is_echoed(client):
    response = client.get("/api/v1/", headers={"X-Correlation-ID": "abc-123"})

    assert response.headers["X-Correlation-ID"] == "abc-123"
