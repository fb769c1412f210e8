"""
Pricing and validation engine.

Pure business rules: no I/O, no clocks read unless the caller omits
``today``/``now``. Single-rule checks return a ValidationResult; the
step and complete-booking checks aggregate every problem instead of
stopping at the first one.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Mapping, Optional, Union

import pydantic

from .models import BookingRequest, CustomerInfo, parse_date, parse_time
from .schemas import SPECIAL_REQUESTS, BookingPayload, CustomerPayload
from .tours import TOURS, UnknownTourError, get_tour


MAX_ADVANCE_DAYS = 365
SAME_DAY_LEAD_TIME = timedelta(hours=2)

PRICE_TOLERANCE = 0.01

LARGE_GROUP_SIZE = 6
LARGE_GROUP_FACTOR = 0.90
MEDIUM_GROUP_SIZE = 4
MEDIUM_GROUP_FACTOR = 0.95
SUMMER_MONTHS = frozenset({6, 7, 8, 9})
SUMMER_FACTOR = 1.15

# Error codes
PAST_DATE = "PastDate"
TOO_FAR_AHEAD = "TooFarAhead"
INSUFFICIENT_LEAD_TIME = "InsufficientLeadTime"
GROUP_SIZE_EXCEEDED = "GroupSizeExceeded"
GROUP_SIZE_TOO_SMALL = "GroupSizeTooSmall"
NOT_OPERATING_ON_DATE = "NotOperatingOnDate"
UNKNOWN_TOUR = "UnknownTour"
INVALID_FORMAT = "InvalidFormat"
REQUIRED = "Required"
TOO_LONG = "TooLong"
INVALID_EMAIL = "InvalidEmail"
PRICE_MISMATCH = "PriceMismatch"
CANCELLATION_TOO_LATE = "CancellationTooLate"


@dataclass
class ValidationError:
    """A single problem with a booking, tied to the field that caused it."""
    field: str
    code: str
    message: str


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[ValidationError] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, field_name: str, code: str, message: str) -> "ValidationResult":
        return cls(valid=False, error=ValidationError(field_name, code, message))


@dataclass
class BookingValidation:
    """Aggregate outcome of validate_complete_booking."""
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [error.message for error in self.errors]


def validate_booking_date(booking_date: date, *, today: Optional[date] = None) -> ValidationResult:
    """Bookings are accepted from today up to and including today + 365 days."""
    today = today or date.today()

    if booking_date < today:
        return ValidationResult.fail("date", PAST_DATE, "Cannot book tours in the past")

    if booking_date > today + timedelta(days=MAX_ADVANCE_DAYS):
        return ValidationResult.fail(
            "date", TOO_FAR_AHEAD, "Cannot book tours more than 1 year in advance"
        )

    return ValidationResult.ok()


def validate_booking_time(
    start_time: time,
    booking_date: date,
    *,
    now: Optional[datetime] = None,
) -> ValidationResult:
    """Same-day bookings must start at least SAME_DAY_LEAD_TIME from now."""
    now = now or datetime.now()

    if booking_date != now.date():
        return ValidationResult.ok()

    earliest_start = now + SAME_DAY_LEAD_TIME
    if datetime.combine(booking_date, start_time) < earliest_start:
        hours = int(SAME_DAY_LEAD_TIME.total_seconds() // 3600)
        return ValidationResult.fail(
            "startTime",
            INSUFFICIENT_LEAD_TIME,
            f"Bookings require at least {hours} hours advance notice",
        )

    return ValidationResult.ok()


def validate_group_size(group_size: int, tour_id: str) -> ValidationResult:
    try:
        tour = get_tour(tour_id)
    except UnknownTourError as e:
        return ValidationResult.fail("tourId", UNKNOWN_TOUR, str(e))

    if group_size < 1:
        return ValidationResult.fail(
            "groupSize", GROUP_SIZE_TOO_SMALL, "Group size must be at least 1"
        )

    if group_size > tour.max_group_size:
        return ValidationResult.fail(
            "groupSize",
            GROUP_SIZE_EXCEEDED,
            f"Maximum group size for this tour is {tour.max_group_size} people",
        )

    return ValidationResult.ok()


def validate_tour_availability(tour_id: str, booking_date: date) -> ValidationResult:
    try:
        tour = get_tour(tour_id)
    except UnknownTourError as e:
        return ValidationResult.fail("tourId", UNKNOWN_TOUR, str(e))

    if not tour.operates_on(booking_date.weekday()):
        days = ", ".join(tour.operating_day_names)
        return ValidationResult.fail(
            "date", NOT_OPERATING_ON_DATE, f"This tour is only available on: {days}"
        )

    return ValidationResult.ok()


def group_discount_factor(group_size: int) -> float:
    if group_size >= LARGE_GROUP_SIZE:
        return LARGE_GROUP_FACTOR
    if group_size >= MEDIUM_GROUP_SIZE:
        return MEDIUM_GROUP_FACTOR
    return 1.0


def seasonal_factor(booking_date: date) -> float:
    return SUMMER_FACTOR if booking_date.month in SUMMER_MONTHS else 1.0


def calculate_total_price(tour_id: str, group_size: int, booking_date: date) -> float:
    """
    Price a booking.

    base price x group size, then the group discount, then the summer
    surcharge (June to September), rounded to cents.

    Raises:
        UnknownTourError: If tour_id is not in the catalog
    """
    tour = get_tour(tour_id)
    total = tour.base_price * group_size
    total *= group_discount_factor(group_size)
    total *= seasonal_factor(booking_date)
    return round(total, 2)


def validate_schedule(
    tour_id: str,
    booking_date: date,
    start_time: time,
    group_size: int,
    *,
    now: Optional[datetime] = None,
) -> list[ValidationError]:
    """Every date, time and group-size problem for the first booking step."""
    now = now or datetime.now()
    results = [
        validate_booking_date(booking_date, today=now.date()),
        validate_booking_time(start_time, booking_date, now=now),
        validate_group_size(group_size, tour_id),
    ]
    if tour_id in TOURS:
        results.append(validate_tour_availability(tour_id, booking_date))
    return [result.error for result in results if not result.valid]


FIELD_LABELS = {
    "tourId": "Tour ID",
    "date": "Date",
    "startTime": "Start time",
    "groupSize": "Group size",
    "totalPrice": "Total price",
    "customerInfo": "Customer information",
    "customerInfo.firstName": "First name",
    "customerInfo.lastName": "Last name",
    "customerInfo.email": "Email",
    "customerInfo.phone": "Phone number",
    "customerInfo.country": "Country",
    "specialRequests": "Special requests",
}

FORMAT_MESSAGES = {
    "date": "Invalid date format (YYYY-MM-DD)",
    "startTime": "Invalid time format (HH:MM)",
    "groupSize": "Group size must be a whole number",
    "totalPrice": "Total price must be positive",
    "customerInfo": "Customer information must be an object",
    "customerInfo.email": "Invalid email address",
}


def _schema_error(error: dict, prefix: str) -> ValidationError:
    """Translate one pydantic error entry into a ValidationError."""
    field_name = ".".join(str(part) for part in (prefix, *error["loc"]) if part != "")
    label = FIELD_LABELS.get(field_name, field_name)
    kind = error["type"]

    if kind in ("missing", "string_too_short") or error.get("input") is None:
        return ValidationError(field_name, REQUIRED, f"{label} is required")
    if kind == "string_too_long":
        return ValidationError(field_name, TOO_LONG, f"{label} too long")
    if field_name == "customerInfo.email":
        return ValidationError(field_name, INVALID_EMAIL, FORMAT_MESSAGES[field_name])
    if field_name == "groupSize" and kind == "greater_than_equal":
        return ValidationError(field_name, GROUP_SIZE_TOO_SMALL, "Group size must be at least 1")
    if field_name == "groupSize" and kind == "less_than_equal":
        return ValidationError(field_name, GROUP_SIZE_EXCEEDED, "Group size too large")
    return ValidationError(field_name, INVALID_FORMAT, FORMAT_MESSAGES.get(field_name, f"{label} is invalid"))


def _schema_errors(validate: Callable[[Any], Any], data: Any, prefix: str = "") -> list[ValidationError]:
    try:
        validate(data)
    except pydantic.ValidationError as e:
        return [_schema_error(error, prefix) for error in e.errors()]
    return []


def validate_customer(customer: CustomerInfo, special_requests: Optional[str] = None) -> list[ValidationError]:
    """Every contact-field problem for the second booking step."""
    errors = _schema_errors(CustomerPayload.model_validate, customer.to_payload(), "customerInfo")
    errors.extend(_schema_errors(SPECIAL_REQUESTS.validate_python, special_requests, "specialRequests"))
    return errors


def validate_complete_booking(
    booking: Union[BookingRequest, Mapping],
    *,
    now: Optional[datetime] = None,
) -> BookingValidation:
    """
    Validate a whole booking, reporting every problem at once.

    Accepts a BookingRequest or its wire payload. The payload is checked
    against BookingPayload first; business rules then run on the fields
    that passed, so a malformed field is reported once and rules that
    depend on it are skipped.
    """
    now = now or datetime.now()
    payload = booking.to_payload() if isinstance(booking, BookingRequest) else booking
    if not isinstance(payload, Mapping):
        return BookingValidation(
            valid=False,
            errors=[ValidationError("body", INVALID_FORMAT, "Booking must be a JSON object")],
        )

    errors = _schema_errors(BookingPayload.model_validate, payload)
    rejected = {error.field.split(".", 1)[0] for error in errors}
    accepted = {key: value for key, value in payload.items() if key not in rejected}

    tour_id = accepted.get("tourId")
    if tour_id is not None and tour_id not in TOURS:
        errors.append(ValidationError("tourId", UNKNOWN_TOUR, f"Unknown tour: {tour_id}"))
        tour_id = None

    booking_date = parse_date(accepted["date"]) if "date" in accepted else None
    start_time = parse_time(accepted["startTime"]) if "startTime" in accepted else None
    group_size = accepted.get("groupSize")
    total_price = accepted.get("totalPrice")

    # Business rules
    if booking_date is not None:
        result = validate_booking_date(booking_date, today=now.date())
        if not result.valid:
            errors.append(result.error)

        if start_time is not None:
            result = validate_booking_time(start_time, booking_date, now=now)
            if not result.valid:
                errors.append(result.error)

    if tour_id is not None and group_size is not None:
        result = validate_group_size(group_size, tour_id)
        if not result.valid:
            errors.append(result.error)

    if tour_id is not None and booking_date is not None:
        result = validate_tour_availability(tour_id, booking_date)
        if not result.valid:
            errors.append(result.error)

    if None not in (tour_id, booking_date, group_size, total_price):
        expected = calculate_total_price(tour_id, group_size, booking_date)
        if abs(expected - total_price) > PRICE_TOLERANCE:
            errors.append(ValidationError(
                "totalPrice", PRICE_MISMATCH, "Price mismatch detected. Please refresh and try again."
            ))

    return BookingValidation(valid=not errors, errors=errors)


# Cancellation policy

CANCELLATION_CUTOFF_HOURS = 24
FULL_REFUND_HOURS = 48
PARTIAL_REFUND_PERCENT = 50


@dataclass
class RefundQuote:
    eligible: bool
    percent: int
    amount: float
    hours_until_tour: float
    code: Optional[str] = None
    error: Optional[str] = None


def calculate_refund(
    total_price: float,
    tour_start: datetime,
    *,
    now: Optional[datetime] = None,
) -> RefundQuote:
    """Refund owed when cancelling: none under 24h, half under 48h, full otherwise."""
    now = now or datetime.now()
    hours_until_tour = (tour_start - now).total_seconds() / 3600

    if hours_until_tour < CANCELLATION_CUTOFF_HOURS:
        return RefundQuote(
            eligible=False,
            percent=0,
            amount=0.0,
            hours_until_tour=round(hours_until_tour, 1),
            code=CANCELLATION_TOO_LATE,
            error="Cancellations must be made at least 24 hours before the tour",
        )

    percent = 100 if hours_until_tour >= FULL_REFUND_HOURS else PARTIAL_REFUND_PERCENT
    return RefundQuote(
        eligible=True,
        percent=percent,
        amount=round(total_price * percent / 100, 2),
        hours_until_tour=round(hours_until_tour, 1),
    )
