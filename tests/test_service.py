"""Unit tests for the server-side booking service."""

from datetime import datetime

import pytest

from tourbook.api.acuity_client import AcuityClient
from tourbook.config import ProviderSettings
from tourbook.models import BookingResult
from tourbook.monitoring import AlertPolicy, BookingMonitor
from tourbook.service import BookingService, IdempotencyLedger, RateLimiter, ServiceResponse

from tests.constants import NOW, SUNDAY, TODAY, TUESDAY
from tests.fakes import FakeClient, FakeClock, FakeResponse, FakeSession, open_slots, provider_rejection


@pytest.fixture
def monitor():
    return BookingMonitor()


def make_service(monitor, client=None, **kwargs):
    return BookingService(client or FakeClient(), monitor, now=lambda: NOW, **kwargs)


class TestCreateBooking:
    def test_created(self, monitor, valid_payload):
        client = FakeClient()
        response = make_service(monitor, client).create_booking(valid_payload, client_id="1.2.3.4")

        assert response.status_code == 201
        assert response.body == {
            "success": True,
            "bookingId": "bk_1",
            "confirmationCode": "TB-1",
            "totalPrice": 90.0,
        }
        assert client.bookings[0].group_size == 2
        metrics = monitor.get_metrics()
        assert (metrics.booking_attempts, metrics.successful_bookings) == (1, 1)

    def test_validation_failure(self, monitor, valid_payload):
        valid_payload["totalPrice"] = 50
        client = FakeClient()

        response = make_service(monitor, client).create_booking(valid_payload)

        assert response.status_code == 400
        assert response.body["details"] == ["Price mismatch detected. Please refresh and try again."]
        assert client.bookings == []

    def test_no_availability(self, monitor, valid_payload):
        response = make_service(monitor, FakeClient(open_slots())).create_booking(valid_payload)

        assert response.status_code == 409
        assert response.body["error"] == "Tour not available for selected date"

    def test_slot_missing(self, monitor, valid_payload):
        client = FakeClient(open_slots(("14:00", 8)))

        response = make_service(monitor, client).create_booking(valid_payload)

        assert response.status_code == 409
        assert response.body["error"] == "Requested time slot not available"

    def test_not_enough_capacity(self, monitor, valid_payload):
        client = FakeClient(open_slots(("10:00", 1)))

        response = make_service(monitor, client).create_booking(valid_payload)

        assert response.status_code == 409
        assert response.body["availableSpots"] == 1

    def test_provider_rejection(self, monitor, valid_payload):
        client = FakeClient(result=BookingResult.failed("Slot no longer available"))

        response = make_service(monitor, client).create_booking(valid_payload)

        assert response.status_code == 502
        assert response.body == {"success": False, "error": "Slot no longer available"}
        assert monitor.get_metrics().failed_bookings == 1

    def test_provider_exception_is_normalized(self, monitor, valid_payload):
        client = FakeClient()
        # Availability first, then a failing booking call
        client.find_availability = lambda tour_id, booking_date: open_slots(("10:00", 8))
        client.error = provider_rejection()

        response = make_service(monitor, client).create_booking(valid_payload)

        assert response.status_code == 502
        assert response.body["error"] == "Slot no longer available"

    def test_provider_crash_is_a_502_and_an_api_error(self, monitor, valid_payload):
        client = FakeClient()
        client.find_availability = lambda tour_id, booking_date: open_slots(("10:00", 8))
        client.error = RuntimeError("provider crashed")

        response = make_service(monitor, client).create_booking(valid_payload)

        assert response.status_code == 502
        assert response.body == {"success": False, "error": "fake booking failed"}
        kinds = [event.kind for event in monitor._events]
        assert kinds[-2:] == ["api_error", "failure"]
        assert monitor.get_metrics().failed_bookings == 1

    def test_rejection_is_not_an_api_error(self, monitor, valid_payload):
        client = FakeClient()
        client.find_availability = lambda tour_id, booking_date: open_slots(("10:00", 8))
        client.error = provider_rejection()

        make_service(monitor, client).create_booking(valid_payload)

        assert "api_error" not in [event.kind for event in monitor._events]

    def test_repeated_failures_raise_an_alert(self, monitor, valid_payload):
        client = FakeClient(result=BookingResult.failed("down"))
        alerts = AlertPolicy(monitor)
        service = make_service(monitor, client, alerts=alerts, rate_limiter=RateLimiter(max_attempts=100))

        for _ in range(5):
            service.create_booking(valid_payload)

        assert alerts.consecutive_failures == 5


class TestIdempotency:
    def test_repeated_key_returns_stored_response(self, monitor, valid_payload):
        client = FakeClient()
        service = make_service(monitor, client)

        first = service.create_booking(valid_payload, idempotency_key="draft_abc")
        second = service.create_booking(valid_payload, idempotency_key="draft_abc")

        assert second is first
        assert len(client.bookings) == 1
        assert monitor.get_metrics().booking_attempts == 1

    def test_failed_attempts_are_not_remembered(self, monitor, valid_payload):
        client = FakeClient(result=BookingResult.failed("down"))
        service = make_service(monitor, client)

        service.create_booking(valid_payload, idempotency_key="draft_abc")
        client.result = BookingResult(success=True, booking_id="bk_2", confirmation_code="TB-2")
        retry = service.create_booking(valid_payload, idempotency_key="draft_abc")

        assert retry.status_code == 201
        assert len(client.bookings) == 2

    def test_ledger_is_bounded(self):
        ledger = IdempotencyLedger(capacity=2)
        for key in ("a", "b", "c"):
            ledger.put(key, ServiceResponse(201))

        assert ledger.get("a") is None
        assert ledger.get("c").status_code == 201


class TestRateLimit:
    def test_sixth_attempt_in_window_is_refused(self, monitor, valid_payload):
        clock = FakeClock()
        service = make_service(monitor, rate_limiter=RateLimiter(clock=clock))

        statuses = [service.create_booking(valid_payload, client_id="1.2.3.4").status_code for _ in range(6)]

        assert statuses == [201] * 5 + [429]
        assert service.create_booking(valid_payload, client_id="5.6.7.8").status_code == 201

        clock.advance(15 * 60)
        assert service.create_booking(valid_payload, client_id="1.2.3.4").status_code == 201

    def test_remaining(self):
        clock = FakeClock()
        limiter = RateLimiter(max_attempts=2, clock=clock)
        limiter.allow("x")

        assert limiter.remaining("x") == 1
        assert limiter.remaining("y") == 2

    def test_expired_windows_are_dropped(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        for n in range(100):
            limiter.allow(f"10.0.0.{n}")

        clock.advance(15 * 60)
        assert limiter.allow("10.0.1.1")

        assert list(limiter._attempts) == ["10.0.1.1"]

    def test_live_windows_are_kept(self):
        clock = FakeClock()
        limiter = RateLimiter(max_attempts=1, clock=clock)
        limiter.allow("a")
        clock.advance(60)
        limiter.allow("b")

        assert not limiter.allow("a")
        assert set(limiter._attempts) == {"a", "b"}


class TestCheckAvailability:
    def test_available(self, monitor):
        response = make_service(monitor).check_availability("prague-castle", TUESDAY.isoformat())

        assert response.status_code == 200
        assert response.body["available"]
        assert [slot["time"] for slot in response.body["slots"]] == ["10:00", "14:00"]
        assert monitor.get_metrics().availability_checks == 1

    def test_same_day_slots_inside_lead_time_are_hidden(self, monitor):
        # NOW is 09:00, so 10:00 is too soon
        response = make_service(monitor).check_availability("old-town", TODAY.isoformat())

        assert [slot["time"] for slot in response.body["slots"]] == ["14:00"]

    def test_unreadable_slot_times_are_dropped(self, monitor):
        session = FakeSession(FakeResponse(200, [
            {"time": "10am", "slotsAvailable": 3},
            {"time": "2026-11-03T14:00:00+0100", "slotsAvailable": 2},
        ]))
        client = AcuityClient(ProviderSettings(name="acuity", user_id="42", api_key="secret"), session=session)

        response = make_service(monitor, client).check_availability("prague-castle", TUESDAY.isoformat())

        assert response.status_code == 200
        assert response.body["slots"] == [{"time": "14:00", "capacityRemaining": 2}]

    def test_slot_time_the_filter_cannot_read_is_hidden(self, monitor):
        client = FakeClient(availability=open_slots(("10am", 3), ("15:00", 4)))

        response = make_service(monitor, client).check_availability("old-town", TODAY.isoformat())

        assert [slot["time"] for slot in response.body["slots"]] == ["15:00"]

    def test_closed_day_skips_provider(self, monitor):
        client = FakeClient()

        response = make_service(monitor, client).check_availability("prague-castle", SUNDAY.isoformat())

        assert response.status_code == 200
        assert not response.body["available"]
        assert "Monday" in response.body["error"]
        assert client.availability_calls == []

    def test_past_date(self, monitor):
        response = make_service(monitor).check_availability("old-town", "2026-11-01")
        assert response.body["error"] == "Cannot book tours in the past"

    @pytest.mark.parametrize("tour_id,date_str", [(None, "2026-11-03"), ("old-town", None), ("old-town", "03.11.2026")])
    def test_bad_parameters(self, monitor, tour_id, date_str):
        assert make_service(monitor).check_availability(tour_id, date_str).status_code == 400


class TestCancellation:
    def test_eligible_cancellation_is_tracked(self, monitor):
        quote = make_service(monitor).record_cancellation("bk_1", 90.0, datetime(2026, 11, 5, 10, 0))

        assert quote.percent == 100
        assert monitor.get_metrics().cancellations == 1

    def test_late_cancellation_is_not_tracked(self, monitor):
        quote = make_service(monitor).record_cancellation("bk_1", 90.0, datetime(2026, 11, 2, 20, 0))

        assert not quote.eligible
        assert monitor.get_metrics().cancellations == 0
