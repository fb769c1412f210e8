"""
Server side of the booking endpoints.

BookingService validates an incoming booking, re-checks availability with
the provider, creates the booking and records every step with the
monitor. Responses are plain (status_code, body) pairs so the Lambda
handlers and tests can use them directly.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog

from .api.base import BookingClient
from .models import Availability, BookingRequest, Slot, format_time, parse_date, parse_time
from .monitoring import AlertPolicy, BookingMonitor, measure
from .validation import (
    RefundQuote,
    calculate_refund,
    validate_booking_date,
    validate_booking_time,
    validate_complete_booking,
    validate_tour_availability,
)


LOGGER = structlog.get_logger(__name__)

RATE_LIMIT_ATTEMPTS = 5
RATE_LIMIT_WINDOW_SECONDS = 15 * 60
IDEMPOTENCY_CAPACITY = 10_000


@dataclass
class ServiceResponse:
    status_code: int
    body: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class RateLimiter:
    """
    Fixed-window attempt counter per client.

    Windows that have run out are dropped on the next call, so the table
    only holds clients seen within the last window_seconds.
    """

    def __init__(
        self,
        max_attempts: int = RATE_LIMIT_ATTEMPTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def allow(self, client_id: str) -> bool:
        now = self._clock()
        with self._lock:
            self._evict(now)
            count, reset_at = self._attempts.get(client_id, (0, 0.0))
            if now >= reset_at:
                self._attempts[client_id] = (1, now + self.window_seconds)
                return True
            if count >= self.max_attempts:
                return False
            self._attempts[client_id] = (count + 1, reset_at)
            return True

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._attempts.items() if now >= reset_at]
        for key in expired:
            del self._attempts[key]

    def remaining(self, client_id: str) -> int:
        count, reset_at = self._attempts.get(client_id, (0, 0.0))
        if self._clock() >= reset_at:
            return self.max_attempts
        return max(0, self.max_attempts - count)


class IdempotencyLedger:
    """Remembers the response given for each idempotency key (bounded, oldest dropped first)."""

    def __init__(self, capacity: int = IDEMPOTENCY_CAPACITY):
        self.capacity = capacity
        self._responses: OrderedDict[str, ServiceResponse] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ServiceResponse]:
        with self._lock:
            return self._responses.get(key)

    def put(self, key: str, response: ServiceResponse) -> None:
        with self._lock:
            self._responses[key] = response
            self._responses.move_to_end(key)
            while len(self._responses) > self.capacity:
                self._responses.popitem(last=False)


def _bookable(slot: Slot, booking_date, now: datetime) -> bool:
    try:
        start_time = parse_time(slot.time)
    except (TypeError, ValueError):
        return False
    return validate_booking_time(start_time, booking_date, now=now).valid


class BookingService:
    def __init__(
        self,
        client: BookingClient,
        monitor: BookingMonitor,
        alerts: Optional[AlertPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        ledger: Optional[IdempotencyLedger] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.client = client
        self.monitor = monitor
        self.alerts = alerts or AlertPolicy(monitor)
        self.rate_limiter = rate_limiter or RateLimiter()
        self.ledger = ledger or IdempotencyLedger()
        self._now = now

    def _fetch_availability(self, tour_id: str, booking_date) -> Availability:
        summary = {"tour_id": tour_id, "date": booking_date.isoformat()}
        with measure(self.monitor, summary) as stopwatch:
            availability = self.client.check_availability(tour_id, booking_date)
        self.monitor.track_availability_check(
            {**summary, "available": availability.available},
            stopwatch.elapsed_ms,
        )
        return availability

    def check_availability(self, tour_id: Optional[str], date_str: Optional[str]) -> ServiceResponse:
        """Availability for a tour and date, with same-day slots inside the lead time removed."""
        if not tour_id or not date_str:
            return ServiceResponse(400, {"error": "tourId and date parameters are required"})

        try:
            booking_date = parse_date(date_str)
        except ValueError:
            return ServiceResponse(400, {"error": "Invalid date format (YYYY-MM-DD)"})

        now = self._now()
        for result in (
            validate_booking_date(booking_date, today=now.date()),
            validate_tour_availability(tour_id, booking_date),
        ):
            if not result.valid:
                body = Availability.unavailable().to_dict()
                body["error"] = result.error.message
                return ServiceResponse(200, body)

        availability = self._fetch_availability(tour_id, booking_date)
        availability.slots = [slot for slot in availability.slots if _bookable(slot, booking_date, now)]
        availability.available = bool(availability.slots)
        return ServiceResponse(200, availability.to_dict())

    def create_booking(
        self,
        payload: dict,
        idempotency_key: Optional[str] = None,
        client_id: str = "unknown",
    ) -> ServiceResponse:
        """
        Handle POST /booking.

        A repeated idempotency key gets the stored response back without
        touching the provider again.
        """
        if idempotency_key:
            previous = self.ledger.get(idempotency_key)
            if previous is not None:
                LOGGER.info("booking.duplicate", idempotency_key=idempotency_key)
                return previous

        if not self.rate_limiter.allow(client_id):
            return ServiceResponse(429, {"error": "Too many booking attempts. Please try again later."})

        validation = validate_complete_booking(payload, now=self._now())
        if not validation.valid:
            return ServiceResponse(400, {"error": "Validation failed", "details": validation.messages})

        request = BookingRequest.from_payload(payload)
        summary = {
            "tour_id": request.tour_id,
            "date": request.date.isoformat(),
            "group_size": request.group_size,
        }
        self.monitor.track_booking_attempt(summary)

        availability = self._fetch_availability(request.tour_id, request.date)
        if not availability.available:
            return ServiceResponse(409, {"error": "Tour not available for selected date"})

        slot = availability.find_slot(format_time(request.start_time))
        if slot is None:
            return ServiceResponse(409, {"error": "Requested time slot not available"})
        if slot.capacity_remaining < request.group_size:
            return ServiceResponse(409, {
                "error": f"Only {slot.capacity_remaining} spots available for this time slot",
                "availableSpots": slot.capacity_remaining,
            })

        with measure(self.monitor, summary) as stopwatch:
            result = self.client.create_booking(request)
        duration_ms = stopwatch.elapsed_ms

        if not result.success:
            if result.api_error:
                self.monitor.track_api_error({**summary, "error": result.error}, duration_ms)
            self.monitor.track_booking_failure({**summary, "error": result.error}, duration_ms)
            self.alerts.record_outcome(False)
            self.alerts.check()
            return ServiceResponse(502, result.to_dict())

        self.monitor.track_booking_success({**summary, "booking_id": result.booking_id}, duration_ms)
        self.alerts.record_outcome(True)

        body = result.to_dict()
        body["totalPrice"] = request.total_price
        response = ServiceResponse(201, body)
        if idempotency_key:
            self.ledger.put(idempotency_key, response)

        LOGGER.info("booking.created", booking_id=result.booking_id, **summary)
        return response

    def record_cancellation(self, booking_id: str, total_price: float, tour_start: datetime) -> RefundQuote:
        """
        Apply the cancellation policy to a booking.

        Only eligible cancellations are counted by the monitor; the provider
        side of a cancellation is handled by the operator.
        """
        quote = calculate_refund(total_price, tour_start, now=self._now())
        if quote.eligible:
            self.monitor.track_cancellation({
                "booking_id": booking_id,
                "refund_percent": quote.percent,
                "refund_amount": quote.amount,
            })
            LOGGER.info("booking.cancelled", booking_id=booking_id, refund_amount=quote.amount)
        return quote
