"""
Peek Pro client.

Availability comes back as one object carrying the slots together with the
provider's group limit and pricing:

    {
        "available_times": [{"start_time", "end_time", "capacity", "price"}],
        "max_group_size": 8,
        "base_price": 45,
        "currency": "EUR"
    }
"""

from datetime import date

from ..models import Availability, BookingRequest, BookingResult, Pricing, Slot
from .base import BookingClient, BookingClientError, error_message


DEFAULT_MAX_GROUP_SIZE = 8


class PeekApiError(BookingClientError):
    """Exception for Peek API errors."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message, platform="peek", status_code=status_code)


class PeekClient(BookingClient):
    """Client for the Peek Pro REST API."""

    @property
    def platform_name(self) -> str:
        return "peek"

    def _headers(self) -> dict:
        """Build headers for API requests."""
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

    def find_availability(self, tour_id: str, booking_date: date) -> Availability:
        url = f"{self.settings.api_url}/products/{tour_id}/availability"
        response = self._get(url, {"date": booking_date.isoformat()}, self._headers())
        if not response.ok:
            raise PeekApiError(f"Peek API error: {response.status_code}", response.status_code)

        data = response.json()
        if not isinstance(data, dict):
            raise PeekApiError("Unexpected availability response shape")

        slots = []
        for entry in data.get("available_times") or []:
            capacity = int(entry.get("capacity", 0))
            if capacity <= 0:
                continue
            start = self._slot_time(entry.get("start_time"))
            if start is not None:
                slots.append(Slot(time=start, capacity_remaining=capacity))

        return Availability(
            available=bool(slots),
            slots=slots,
            max_group_size=int(data.get("max_group_size") or DEFAULT_MAX_GROUP_SIZE),
            pricing=Pricing(
                base_price=float(data.get("base_price") or 0),
                currency=data.get("currency") or self.settings.currency,
            ),
        )

    def book(self, request: BookingRequest) -> BookingResult:
        customer = request.customer
        payload = {
            "product_id": request.tour_id,
            "start_time": f"{request.date.isoformat()}T{request.start_time.strftime('%H:%M')}",
            "party_size": request.group_size,
            "customer": {
                "first_name": customer.first_name,
                "last_name": customer.last_name,
                "email": customer.email,
                "phone": customer.phone,
            },
            "special_requests": request.special_requests,
            "total_price": request.total_price,
        }

        response = self._post(f"{self.settings.api_url}/bookings", payload, self._headers())
        if not response.ok:
            raise PeekApiError(
                error_message(response, f"Peek booking failed: {response.status_code}"),
                response.status_code,
            )

        data = response.json()
        if not data.get("confirmation_code"):
            raise PeekApiError(f"Booking response missing confirmation_code: {data}")

        return BookingResult(
            success=True,
            booking_id=str(data["id"]),
            confirmation_code=str(data["confirmation_code"]),
        )
