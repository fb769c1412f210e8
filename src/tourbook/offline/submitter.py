"""
Client for the booking submission endpoint (POST /booking).

Any 2xx response is an acknowledgement. The draft id is sent as the
Idempotency-Key header so the server can recognise a draft that arrives
twice (first attempt plus replay).
"""

from dataclasses import dataclass, field
from typing import Optional

import requests


IDEMPOTENCY_HEADER = "Idempotency-Key"


class SubmissionError(Exception):
    """The booking endpoint did not acknowledge a submission."""

    def __init__(self, message: str, status_code: Optional[int] = None, network: bool = False):
        self.status_code = status_code
        self.network = network
        super().__init__(message)


@dataclass
class SubmissionReceipt:
    status_code: int
    body: dict = field(default_factory=dict)


class BookingSubmitter:
    def __init__(self, endpoint: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def submit(self, payload: dict, idempotency_key: str) -> SubmissionReceipt:
        """
        POST a booking payload.

        Raises:
            SubmissionError: network=True when the endpoint could not be
                reached, otherwise with the non-2xx status code
        """
        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers={IDEMPOTENCY_HEADER: idempotency_key},
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SubmissionError(f"Booking endpoint unreachable: {e}", network=True) from e
        except requests.RequestException as e:
            raise SubmissionError(f"Booking submission failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SubmissionError(
                f"Booking submission rejected: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        return SubmissionReceipt(status_code=response.status_code, body=body if isinstance(body, dict) else {})
