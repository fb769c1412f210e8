from datetime import time

import pytest

from tourbook.models import BookingRequest, CustomerInfo

from tests.constants import TUESDAY


@pytest.fixture
def customer():
    return CustomerInfo(
        first_name="Ana",
        last_name="Novak",
        email="ana@example.com",
        phone="+420 123 456 789",
        country="CZ",
    )


@pytest.fixture
def booking_request(customer):
    return BookingRequest(
        tour_id="prague-castle",
        date=TUESDAY,
        start_time=time(10, 0),
        group_size=2,
        total_price=90.0,
        customer=customer,
    )


@pytest.fixture
def valid_payload(booking_request):
    return booking_request.to_payload()
