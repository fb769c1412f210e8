"""
Booking flow state machine.

    SCHEDULE --next--> CUSTOMER --next--> REVIEW --next--> SUBMITTING
    SUBMITTING --acknowledged--> CONFIRMED
    SUBMITTING --failed--> REVIEW (draft kept for replay)

``back()`` returns to the previous step; it is a no-op on SCHEDULE and
not allowed while submitting or once confirmed. Each forward move is
gated by the validation engine, so nothing invalid reaches the network.
"""

import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

import structlog

from .api.base import BookingClient
from .models import Availability, BookingRequest, CustomerInfo, format_time
from .monitoring import BookingMonitor, Stopwatch
from .offline.queue import OfflineQueue
from .offline.store import Draft, DraftStoreError
from .offline.submitter import SubmissionError
from .validation import (
    ValidationError,
    calculate_total_price,
    validate_complete_booking,
    validate_customer,
    validate_schedule,
)


LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")

DEFERRED_NOTE = (
    "You appear to be offline. Your booking has been saved and will be "
    "submitted when you reconnect; confirmation will follow."
)


class FlowError(Exception):
    """An action that the current step does not allow."""


class Step(Enum):
    SCHEDULE = 1
    CUSTOMER = 2
    REVIEW = 3
    SUBMITTING = 4
    CONFIRMED = 5


class AvailabilitySequence(Generic[T]):
    """
    Keeps only the newest response when requests overlap.

    Each request takes a token; a response is applied only if its token is
    still the latest one issued, so a slow answer for an old date can never
    overwrite the slots of the date picked after it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest = 0
        self.current: Optional[T] = None

    def next_token(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def apply(self, token: int, value: T) -> bool:
        with self._lock:
            if token != self._latest:
                return False
            self.current = value
            return True


@dataclass
class SubmissionOutcome:
    confirmed: bool
    draft_id: Optional[str] = None
    deferred: bool = False
    booking: dict = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


class BookingFlow:
    """Drives one customer through the three booking steps."""

    def __init__(
        self,
        tour_id: str,
        client: BookingClient,
        queue: OfflineQueue,
        monitor: Optional[BookingMonitor] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.tour_id = tour_id
        self.client = client
        self.queue = queue
        self.monitor = monitor
        self._now = now
        self._availability: AvailabilitySequence[tuple[date, Availability]] = AvailabilitySequence()

        self.step = Step.SCHEDULE
        self.booking_date: Optional[date] = None
        self.start_time: Optional[time] = None
        self.group_size: Optional[int] = None
        self.customer: Optional[CustomerInfo] = None
        self.special_requests: Optional[str] = None
        self.errors: list[ValidationError] = []
        self.draft_id: Optional[str] = None
        self.draft_maybe_delivered = False
        self.confirmation: dict = {}

    # Step 1

    def select_date(self, booking_date: date) -> Optional[Availability]:
        """
        Pick a date and fetch its availability.

        Safe to call from several threads as the user changes their mind;
        returns None when a newer selection superseded this one.
        """
        self._require(Step.SCHEDULE)
        token = self._availability.next_token()
        self.booking_date = booking_date

        stopwatch = Stopwatch()
        availability = self.client.check_availability(self.tour_id, booking_date)
        if self.monitor is not None:
            self.monitor.track_availability_check(
                {"tour_id": self.tour_id, "date": booking_date.isoformat(), "available": availability.available},
                stopwatch.stop(),
            )

        if not self._availability.apply(token, (booking_date, availability)):
            LOGGER.debug("flow.availability.stale", tour_id=self.tour_id, date=booking_date.isoformat())
            return None
        return availability

    @property
    def availability(self) -> Optional[Availability]:
        current = self._availability.current
        if current is None:
            return None
        checked_date, availability = current
        return availability if checked_date == self.booking_date else None

    def set_schedule(self, booking_date: date, start_time: time, group_size: int) -> None:
        self._require(Step.SCHEDULE)
        self.booking_date = booking_date
        self.start_time = start_time
        self.group_size = group_size

    # Step 2

    def set_customer(self, customer: CustomerInfo, special_requests: Optional[str] = None) -> None:
        self._require(Step.CUSTOMER)
        self.customer = customer
        self.special_requests = special_requests

    # Step 3

    @property
    def total_price(self) -> Optional[float]:
        if self.booking_date is None or self.group_size is None:
            return None
        return calculate_total_price(self.tour_id, self.group_size, self.booking_date)

    def build_request(self) -> BookingRequest:
        if None in (self.booking_date, self.start_time, self.group_size, self.customer):
            raise FlowError("Booking details are incomplete")
        return BookingRequest(
            tour_id=self.tour_id,
            date=self.booking_date,
            start_time=self.start_time,
            group_size=self.group_size,
            total_price=self.total_price,
            customer=self.customer,
            special_requests=self.special_requests,
        )

    # Navigation

    def _require(self, step: Step) -> None:
        if self.step != step:
            raise FlowError(f"Not allowed at step {self.step.name}")

    def _schedule_errors(self) -> list[ValidationError]:
        if None in (self.booking_date, self.start_time, self.group_size):
            return [ValidationError("schedule", "Required", "Choose a date, time and group size")]

        errors = validate_schedule(
            self.tour_id, self.booking_date, self.start_time, self.group_size, now=self._now()
        )
        availability = self.availability
        if not errors and availability is not None:
            slot = availability.find_slot(format_time(self.start_time))
            if slot is None:
                errors.append(ValidationError("startTime", "SlotUnavailable", "Requested time slot not available"))
            elif slot.capacity_remaining < self.group_size:
                errors.append(ValidationError(
                    "groupSize",
                    "InsufficientCapacity",
                    f"Only {slot.capacity_remaining} spots available for this time slot",
                ))
        return errors

    def next(self) -> Step:
        """Validate the current step and move forward; REVIEW submits."""
        if self.step == Step.SCHEDULE:
            self.errors = self._schedule_errors()
            if not self.errors:
                self.step = Step.CUSTOMER
        elif self.step == Step.CUSTOMER:
            if self.customer is None:
                self.errors = [ValidationError("customerInfo", "Required", "Enter your contact details")]
            else:
                self.errors = validate_customer(self.customer, self.special_requests)
            if not self.errors:
                self.step = Step.REVIEW
        elif self.step == Step.REVIEW:
            self.submit()
        else:
            raise FlowError(f"Cannot advance from {self.step.name}")
        return self.step

    def back(self) -> Step:
        if self.step in (Step.SUBMITTING, Step.CONFIRMED):
            raise FlowError(f"Cannot go back from {self.step.name}")
        if self.step != Step.SCHEDULE:
            self.step = Step(self.step.value - 1)
            self.errors = []
        return self.step

    def _draft_for(self, request: BookingRequest) -> Optional[Draft]:
        """
        The draft to send for this attempt.

        A retry reuses the stored draft so its idempotency key stays the
        same. Returns None when the previous draft is gone from the store,
        i.e. the replay worker already delivered it.

        Edited details normally get a fresh draft and key. After a network
        failure the server may already hold the old request, so the edit is
        stored under the old key and the server answers with whichever
        booking it made first.
        """
        payload = request.to_payload()
        if self.draft_id:
            draft = next((d for d in self.queue.pending() if d.id == self.draft_id), None)
            if draft is None:
                return None
            if draft.payload == payload:
                return draft
            # Details changed since the failed attempt
            self.queue.store.delete(draft.id)
            if self.draft_maybe_delivered:
                draft = Draft(id=draft.id, payload=payload, created_at=draft.created_at)
                self.queue.store.create(draft)
                return draft

        draft = self.queue.save(payload)
        self.draft_id = draft.id
        return draft

    def submit(self) -> SubmissionOutcome:
        """
        Submit the booking.

        The draft is saved before the network attempt and deleted once the
        endpoint acknowledges it. Any failure returns to REVIEW with the
        draft kept; an unreachable endpoint is reported as deferred.
        """
        self._require(Step.REVIEW)
        request = self.build_request()

        validation = validate_complete_booking(request, now=self._now())
        if not validation.valid:
            self.errors = validation.errors
            return SubmissionOutcome(confirmed=False, errors=validation.messages)

        self.step = Step.SUBMITTING
        summary = {"tour_id": self.tour_id, "date": request.date.isoformat(), "group_size": request.group_size}
        if self.monitor is not None:
            self.monitor.track_booking_attempt(summary)

        try:
            draft = self._draft_for(request)
        except DraftStoreError as e:
            self.step = Step.REVIEW
            LOGGER.error("flow.draft.save_failed", tour_id=self.tour_id, error=str(e))
            return SubmissionOutcome(
                confirmed=False,
                errors=["Your booking could not be saved. Please try again."],
            )

        if draft is None:
            # Delivered by the replay worker since the last attempt
            self.step = Step.CONFIRMED
            self.errors = []
            return SubmissionOutcome(confirmed=True, draft_id=self.draft_id)

        stopwatch = Stopwatch()
        try:
            receipt = self.queue.submit(draft)
        except SubmissionError as e:
            self.step = Step.REVIEW
            self.draft_maybe_delivered = e.network
            if self.monitor is not None:
                self.monitor.track_booking_failure({**summary, "error": str(e)}, stopwatch.stop())
            if e.network:
                return SubmissionOutcome(
                    confirmed=False, draft_id=draft.id, deferred=True, errors=[DEFERRED_NOTE]
                )
            return SubmissionOutcome(confirmed=False, draft_id=draft.id, errors=[str(e)])

        if self.monitor is not None:
            self.monitor.track_booking_success(summary, stopwatch.stop())
        self.step = Step.CONFIRMED
        self.confirmation = receipt.body
        self.errors = []
        return SubmissionOutcome(confirmed=True, draft_id=draft.id, booking=receipt.body)
