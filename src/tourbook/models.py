"""
Booking data shared by the validation engine, provider clients and the
offline queue.

BookingRequest travels over the wire as camelCase JSON (the body of
POST /booking); everything else is ephemeral.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional


DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string."""
    return datetime.strptime(value, DATE_FORMAT).date()


def parse_time(value: str) -> time:
    """Parse an HH:MM string. Seconds, if present, are dropped."""
    return datetime.strptime(value[:5], TIME_FORMAT).time()


def format_time(value: time) -> str:
    return value.strftime(TIME_FORMAT)


@dataclass
class CustomerInfo:
    first_name: str
    last_name: str
    email: str
    phone: str
    country: str

    def to_payload(self) -> dict:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "country": self.country,
        }

    @classmethod
    def from_payload(cls, data: dict) -> "CustomerInfo":
        return cls(
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
            country=data.get("country", ""),
        )


@dataclass
class BookingRequest:
    """A customer's booking, as created by the booking flow."""
    tour_id: str
    date: date
    start_time: time
    group_size: int
    total_price: float
    customer: CustomerInfo
    special_requests: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {
            "tourId": self.tour_id,
            "date": self.date.strftime(DATE_FORMAT),
            "startTime": format_time(self.start_time),
            "groupSize": self.group_size,
            "totalPrice": self.total_price,
            "customerInfo": self.customer.to_payload(),
        }
        if self.special_requests:
            payload["specialRequests"] = self.special_requests
        return payload

    @classmethod
    def from_payload(cls, data: dict) -> "BookingRequest":
        """
        Build a request from its wire form.

        Raises:
            ValueError: If the date or time is malformed
            KeyError: If a required key is missing
        """
        return cls(
            tour_id=data["tourId"],
            date=parse_date(data["date"]),
            start_time=parse_time(data["startTime"]),
            group_size=int(data["groupSize"]),
            total_price=float(data["totalPrice"]),
            customer=CustomerInfo.from_payload(data.get("customerInfo") or {}),
            special_requests=data.get("specialRequests"),
        )


@dataclass
class Slot:
    """A bookable time of day with remaining capacity, provider-agnostic."""
    time: str  # HH:MM
    capacity_remaining: int


@dataclass
class Pricing:
    base_price: float
    currency: str = "EUR"


@dataclass
class Availability:
    """Normalized availability for one tour on one date."""
    available: bool
    slots: list[Slot] = field(default_factory=list)
    max_group_size: int = 0
    pricing: Pricing = field(default_factory=lambda: Pricing(base_price=0))

    @classmethod
    def unavailable(cls, currency: str = "EUR") -> "Availability":
        return cls(available=False, slots=[], max_group_size=0, pricing=Pricing(0, currency))

    def find_slot(self, start_time: str) -> Optional[Slot]:
        for slot in self.slots:
            if slot.time == start_time:
                return slot
        return None

    def to_dict(self) -> dict:
        return {
            "available": self.available,
            "slots": [
                {"time": slot.time, "capacityRemaining": slot.capacity_remaining}
                for slot in self.slots
            ],
            "maxGroupSize": self.max_group_size,
            "pricing": {
                "basePrice": self.pricing.base_price,
                "currency": self.pricing.currency,
            },
        }


@dataclass
class BookingResult:
    """
    Outcome of a create_booking call.

    api_error marks failures where the provider call itself broke, such as a
    timeout or a malformed reply, rather than the provider turning it down.
    """
    success: bool
    booking_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    error: Optional[str] = None
    api_error: bool = False

    @classmethod
    def failed(cls, error: str, api_error: bool = False) -> "BookingResult":
        return cls(success=False, error=error, api_error=api_error)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "bookingId": self.booking_id,
            "confirmationCode": self.confirmation_code,
        }
