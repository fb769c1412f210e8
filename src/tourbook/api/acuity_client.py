"""
Acuity Scheduling client.

Availability comes back as a bare list of ``{"time", "slotsAvailable"}``
objects with no group limit or pricing, so the group limit is a provider
setting and pricing comes from the tour catalog.

Booking flow:
1. GET  /availability/times?appointmentTypeID=<tour>&date=<YYYY-MM-DD>
2. POST /appointments
"""

import base64
from datetime import date

from ..models import Availability, BookingRequest, BookingResult, Pricing, Slot
from ..tours import get_tour
from .base import BookingClient, BookingClientError, error_message


# Intake form field ids configured in the Acuity account
GROUP_SIZE_FIELD_ID = 1
SPECIAL_REQUESTS_FIELD_ID = 2


class AcuityApiError(BookingClientError):
    """Exception for Acuity API errors."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message, platform="acuity", status_code=status_code)


class AcuityClient(BookingClient):
    """Client for the Acuity Scheduling REST API."""

    @property
    def platform_name(self) -> str:
        return "acuity"

    def _headers(self) -> dict:
        """Build headers for API requests."""
        credentials = f"{self.settings.user_id}:{self.settings.api_key}".encode()
        return {
            "Authorization": f"Basic {base64.b64encode(credentials).decode()}",
            "Content-Type": "application/json",
        }

    def find_availability(self, tour_id: str, booking_date: date) -> Availability:
        tour = get_tour(tour_id)
        params = {
            "appointmentTypeID": tour_id,
            "date": booking_date.isoformat(),
        }

        response = self._get(f"{self.settings.api_url}/availability/times", params, self._headers())
        if not response.ok:
            raise AcuityApiError(f"Acuity API error: {response.status_code}", response.status_code)

        data = response.json()
        if not isinstance(data, list):
            raise AcuityApiError("Unexpected availability response shape")

        slots = []
        for entry in data:
            capacity = int(entry.get("slotsAvailable", 1))
            if capacity <= 0:
                continue
            start = self._slot_time(entry.get("time"))
            if start is not None:
                slots.append(Slot(time=start, capacity_remaining=capacity))

        return Availability(
            available=bool(slots),
            slots=slots,
            max_group_size=self.settings.max_group_size,
            pricing=Pricing(base_price=tour.base_price, currency=tour.currency),
        )

    def book(self, request: BookingRequest) -> BookingResult:
        customer = request.customer
        payload = {
            "appointmentTypeID": request.tour_id,
            "datetime": f"{request.date.isoformat()}T{request.start_time.strftime('%H:%M')}",
            "firstName": customer.first_name,
            "lastName": customer.last_name,
            "email": customer.email,
            "phone": customer.phone,
            "fields": [
                {"id": GROUP_SIZE_FIELD_ID, "value": str(request.group_size)},
                {"id": SPECIAL_REQUESTS_FIELD_ID, "value": request.special_requests or ""},
            ],
        }

        response = self._post(f"{self.settings.api_url}/appointments", payload, self._headers())
        if not response.ok:
            raise AcuityApiError(
                error_message(response, f"Acuity booking failed: {response.status_code}"),
                response.status_code,
            )

        data = response.json()
        booking_id = str(data["id"])
        return BookingResult(
            success=True,
            booking_id=booking_id,
            confirmation_code=str(data.get("confirmationPage") or booking_id),
        )
