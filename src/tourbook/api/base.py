"""
Shared booking client interface for multi-provider support.

Both scheduling providers (Acuity, Peek) implement the BookingClient ABC so
the booking service, the Lambda handlers and the CLI can work with either
through the same two calls:

    check_availability(tour_id, date) -> Availability
    create_booking(request) -> BookingResult

Provider subclasses implement find_availability() and book(), which may
raise. The public methods above catch everything a provider can throw and
return the normalized failure shape instead.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

import requests
import structlog

from ..config import ProviderSettings
from ..models import Availability, BookingRequest, BookingResult, format_time, parse_time


LOGGER = structlog.get_logger(__name__)

# Anything a provider call can raise once the request has been built
PROVIDER_FAILURES = (requests.RequestException, ValueError, KeyError, TypeError, AttributeError)


class BookingClientError(Exception):
    """Base exception for booking client errors."""

    def __init__(self, message: str, platform: str = "unknown", status_code: Optional[int] = None):
        self.platform = platform
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{platform}] {message}")


def error_message(response: requests.Response, fallback: str) -> str:
    """Pull a human-readable message out of a provider's error body."""
    try:
        body = response.json()
    except ValueError:
        return fallback

    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


class BookingClient(ABC):
    """Abstract base class for scheduling provider clients."""

    def __init__(self, settings: ProviderSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Return the provider identifier (e.g., 'acuity', 'peek')."""
        ...

    @abstractmethod
    def find_availability(self, tour_id: str, booking_date: date) -> Availability:
        """
        Fetch availability from the provider.

        Raises:
            BookingClientError: On a non-success response
            requests.RequestException: On network failures or timeouts
        """
        ...

    @abstractmethod
    def book(self, request: BookingRequest) -> BookingResult:
        """
        Create a booking with the provider.

        Raises:
            BookingClientError: With the provider's message on rejection
            requests.RequestException: On network failures or timeouts
        """
        ...

    def check_availability(self, tour_id: str, booking_date: date) -> Availability:
        """Availability for a tour on a date; 'no slots' on any failure."""
        try:
            return self.find_availability(tour_id, booking_date)
        except BookingClientError as e:
            LOGGER.warning(
                "provider.availability.rejected",
                provider=self.platform_name,
                tour_id=tour_id,
                status_code=e.status_code,
                error=e.message,
            )
        except PROVIDER_FAILURES as e:
            LOGGER.warning(
                "provider.availability.failed",
                provider=self.platform_name,
                tour_id=tour_id,
                error=str(e),
            )
        except Exception:
            LOGGER.exception(
                "provider.availability.crashed", provider=self.platform_name, tour_id=tour_id
            )
        return Availability.unavailable(self.settings.currency)

    def create_booking(self, request: BookingRequest) -> BookingResult:
        """Create a booking; success=False with a message on any failure."""
        try:
            return self.book(request)
        except BookingClientError as e:
            LOGGER.warning(
                "provider.booking.rejected",
                provider=self.platform_name,
                tour_id=request.tour_id,
                status_code=e.status_code,
                error=e.message,
            )
            return BookingResult.failed(e.message)
        except PROVIDER_FAILURES as e:
            LOGGER.warning(
                "provider.booking.failed",
                provider=self.platform_name,
                tour_id=request.tour_id,
                error=str(e),
            )
            return BookingResult.failed(f"{self.platform_name} booking failed: {e}", api_error=True)
        except Exception:
            LOGGER.exception(
                "provider.booking.crashed", provider=self.platform_name, tour_id=request.tour_id
            )
            return BookingResult.failed(f"{self.platform_name} booking failed", api_error=True)

    def _slot_time(self, raw) -> Optional[str]:
        """
        '2024-03-15T09:00:00+0100' or '09:00' -> '09:00'.

        Returns None, and logs the entry, when raw is not a time of day.
        """
        value = raw.split("T", 1)[1] if isinstance(raw, str) and "T" in raw else raw
        try:
            return format_time(parse_time(value))
        except (TypeError, ValueError):
            LOGGER.warning("provider.slot.skipped", provider=self.platform_name, time=raw)
            return None

    def _get(self, url: str, params: dict, headers: dict) -> requests.Response:
        return self.session.get(
            url, params=params, headers=headers, timeout=self.settings.timeout_seconds
        )

    def _post(self, url: str, payload: dict, headers: dict) -> requests.Response:
        return self.session.post(
            url, json=payload, headers=headers, timeout=self.settings.timeout_seconds
        )
