"""Unit tests for pricing, booking rules and the cancellation policy."""

from datetime import date, datetime, time, timedelta

import pytest

from tourbook.models import CustomerInfo
from tourbook.tours import UnknownTourError
from tourbook.validation import (
    CANCELLATION_TOO_LATE,
    GROUP_SIZE_EXCEEDED,
    GROUP_SIZE_TOO_SMALL,
    INSUFFICIENT_LEAD_TIME,
    INVALID_EMAIL,
    INVALID_FORMAT,
    NOT_OPERATING_ON_DATE,
    PAST_DATE,
    PRICE_MISMATCH,
    REQUIRED,
    TOO_FAR_AHEAD,
    TOO_LONG,
    UNKNOWN_TOUR,
    calculate_refund,
    calculate_total_price,
    validate_booking_date,
    validate_booking_time,
    validate_complete_booking,
    validate_customer,
    validate_group_size,
    validate_schedule,
    validate_tour_availability,
)

from tests.constants import JULY_TUESDAY, NOW, SUNDAY, TODAY, TUESDAY


class TestPricing:
    @pytest.mark.parametrize(
        'group_size,booking_date,expected',
        [
            (2, TUESDAY, 90.0),
            (4, TUESDAY, 171.0),
            (6, TUESDAY, 243.0),
            (2, JULY_TUESDAY, 103.5),
        ],
    )
    def test_prague_castle_prices(self, group_size, booking_date, expected):
        assert calculate_total_price('prague-castle', group_size, booking_date) == pytest.approx(expected)

    def test_discount_applies_before_summer_surcharge(self):
        # 35 x 6 x 0.90 x 1.15
        assert calculate_total_price('old-town', 6, JULY_TUESDAY) == pytest.approx(217.35)

    def test_september_is_summer_and_october_is_not(self):
        assert calculate_total_price('old-town', 1, date(2027, 9, 30)) == pytest.approx(40.25)
        assert calculate_total_price('old-town', 1, date(2027, 10, 1)) == pytest.approx(35.0)

    def test_unknown_tour_raises(self):
        with pytest.raises(UnknownTourError) as exc_info:
            calculate_total_price('ghost-walk', 2, TUESDAY)

        assert exc_info.value.tour_id == 'ghost-walk'
        assert str(exc_info.value) == 'Unknown tour: ghost-walk'


class TestBookingDate:
    def test_today_is_bookable(self):
        assert validate_booking_date(TODAY, today=TODAY).valid

    def test_yesterday_is_rejected(self):
        result = validate_booking_date(TODAY - timedelta(days=1), today=TODAY)

        assert not result.valid
        assert result.error.code == PAST_DATE
        assert result.error.field == 'date'

    def test_one_year_ahead_is_the_limit(self):
        assert validate_booking_date(TODAY + timedelta(days=365), today=TODAY).valid

        result = validate_booking_date(TODAY + timedelta(days=366), today=TODAY)
        assert result.error.code == TOO_FAR_AHEAD


class TestBookingTime:
    def test_exactly_two_hours_ahead_is_allowed(self):
        assert validate_booking_time(time(11, 0), TODAY, now=NOW).valid

    def test_less_than_two_hours_ahead_is_rejected(self):
        result = validate_booking_time(time(10, 59), TODAY, now=NOW)

        assert result.error.code == INSUFFICIENT_LEAD_TIME
        assert result.error.message == 'Bookings require at least 2 hours advance notice'

    def test_lead_time_only_applies_to_same_day(self):
        assert validate_booking_time(time(6, 0), TUESDAY, now=NOW).valid


class TestGroupSizeAndTourDays:
    def test_group_limits(self):
        assert validate_group_size(8, 'prague-castle').valid
        assert validate_group_size(9, 'prague-castle').error.code == GROUP_SIZE_EXCEEDED
        assert validate_group_size(0, 'prague-castle').error.code == GROUP_SIZE_TOO_SMALL

    def test_group_size_message_names_the_limit(self):
        result = validate_group_size(5, 'food-tour')
        assert result.error.message == 'Maximum group size for this tour is 4 people'

    def test_unknown_tour_is_a_validation_failure(self):
        assert validate_group_size(2, 'ghost-walk').error.code == UNKNOWN_TOUR
        assert validate_tour_availability('ghost-walk', TUESDAY).error.code == UNKNOWN_TOUR

    def test_prague_castle_is_closed_on_sunday(self):
        result = validate_tour_availability('prague-castle', SUNDAY)

        assert result.error.code == NOT_OPERATING_ON_DATE
        assert 'Saturday' in result.error.message
        assert 'Sunday' not in result.error.message

    def test_old_town_runs_every_day(self):
        for offset in range(7):
            assert validate_tour_availability('old-town', TODAY + timedelta(days=offset)).valid

    def test_food_tour_runs_thursday_to_saturday(self):
        assert not validate_tour_availability('food-tour', TUESDAY).valid
        assert validate_tour_availability('food-tour', date(2026, 11, 5)).valid

    def test_schedule_reports_every_problem(self):
        errors = validate_schedule('prague-castle', SUNDAY, time(10, 0), 12, now=NOW)

        assert {error.code for error in errors} == {GROUP_SIZE_EXCEEDED, NOT_OPERATING_ON_DATE}


class TestCustomer:
    def test_valid_customer(self, customer):
        assert validate_customer(customer) == []

    def test_missing_and_malformed_fields(self):
        errors = validate_customer(CustomerInfo('', 'x' * 51, 'not-an-email', '', 'CZ'))
        by_field = {error.field: error.code for error in errors}

        assert by_field == {
            'customerInfo.firstName': 'Required',
            'customerInfo.lastName': TOO_LONG,
            'customerInfo.email': INVALID_EMAIL,
            'customerInfo.phone': 'Required',
        }

    def test_special_requests_limit(self, customer):
        assert validate_customer(customer, 'x' * 500) == []
        assert validate_customer(customer, 'x' * 501)[0].field == 'specialRequests'


class TestCompleteBooking:
    def test_valid_booking(self, booking_request):
        result = validate_complete_booking(booking_request, now=NOW)

        assert result.valid
        assert result.errors == []

    def test_accepts_wire_payload(self, valid_payload):
        assert validate_complete_booking(valid_payload, now=NOW).valid

    def test_price_mismatch(self, valid_payload):
        valid_payload['totalPrice'] = 80

        result = validate_complete_booking(valid_payload, now=NOW)

        assert [error.code for error in result.errors] == [PRICE_MISMATCH]

    def test_price_within_one_cent_is_accepted(self, valid_payload):
        valid_payload['totalPrice'] = 90.005
        assert validate_complete_booking(valid_payload, now=NOW).valid

    def test_all_errors_reported_together(self, valid_payload):
        valid_payload.update({
            'date': '03/11/2026',
            'startTime': '10am',
            'groupSize': 0,
        })
        valid_payload['customerInfo']['email'] = 'nope'

        result = validate_complete_booking(valid_payload, now=NOW)

        assert not result.valid
        fields = [error.field for error in result.errors]
        assert fields == ['date', 'startTime', 'groupSize', 'customerInfo.email']
        assert result.errors[0].code == INVALID_FORMAT
        assert len(result.messages) == 4

    def test_business_rules_after_format_checks(self, valid_payload):
        valid_payload.update({'date': SUNDAY.isoformat(), 'groupSize': 9})

        codes = [error.code for error in validate_complete_booking(valid_payload, now=NOW).errors]

        assert codes == [GROUP_SIZE_EXCEEDED, NOT_OPERATING_ON_DATE, PRICE_MISMATCH]

    def test_unknown_tour(self, valid_payload):
        valid_payload['tourId'] = 'ghost-walk'

        errors = validate_complete_booking(valid_payload, now=NOW).errors

        assert [error.code for error in errors] == [UNKNOWN_TOUR]


class TestPayloadShape:
    def test_customer_info_must_be_an_object(self, valid_payload):
        valid_payload['customerInfo'] = 'Ana Novak'

        errors = validate_complete_booking(valid_payload, now=NOW).errors

        assert [(error.field, error.code) for error in errors] == [('customerInfo', INVALID_FORMAT)]

    def test_missing_customer_info(self, valid_payload):
        del valid_payload['customerInfo']

        errors = validate_complete_booking(valid_payload, now=NOW).errors

        assert [(error.field, error.code) for error in errors] == [('customerInfo', REQUIRED)]

    def test_non_string_customer_fields(self, valid_payload):
        valid_payload['customerInfo'].update({'firstName': 123, 'phone': None})

        errors = validate_complete_booking(valid_payload, now=NOW).errors

        assert [(error.field, error.code) for error in errors] == [
            ('customerInfo.firstName', INVALID_FORMAT),
            ('customerInfo.phone', REQUIRED),
        ]

    @pytest.mark.parametrize(
        'field_name,value',
        [
            ('groupSize', '2'),
            ('groupSize', True),
            ('groupSize', 2.5),
            ('totalPrice', '90.00'),
            ('date', 20261103),
            ('startTime', ['10:00']),
            ('tourId', 7),
            ('specialRequests', {'note': 'window seat'}),
        ],
    )
    def test_wrongly_typed_field_is_reported_not_raised(self, valid_payload, field_name, value):
        valid_payload[field_name] = value

        result = validate_complete_booking(valid_payload, now=NOW)

        assert not result.valid
        assert [error.field for error in result.errors] == [field_name]
        assert result.errors[0].code == INVALID_FORMAT

    def test_calendar_date_must_exist(self, valid_payload):
        valid_payload['date'] = '2026-02-30'

        errors = validate_complete_booking(valid_payload, now=NOW).errors

        assert [(error.field, error.code) for error in errors] == [('date', INVALID_FORMAT)]

    def test_negative_price(self, valid_payload):
        valid_payload['totalPrice'] = -1

        errors = validate_complete_booking(valid_payload, now=NOW).errors

        assert [error.message for error in errors] == ['Total price must be positive']

    def test_body_that_is_not_an_object(self):
        result = validate_complete_booking(['tourId', 'prague-castle'], now=NOW)

        assert not result.valid
        assert result.errors[0].field == 'body'

    def test_customer_names_are_trimmed_before_length_checks(self, customer):
        customer.first_name = '   '
        customer.last_name = ' ' + 'x' * 50 + ' '

        errors = validate_customer(customer)

        assert [(error.field, error.code) for error in errors] == [('customerInfo.firstName', REQUIRED)]


class TestRefunds:
    START = datetime(2026, 11, 10, 10, 0)

    def test_full_refund_two_days_ahead(self):
        quote = calculate_refund(90.0, self.START, now=self.START - timedelta(hours=48))

        assert quote.eligible
        assert quote.percent == 100
        assert quote.amount == 90.0

    def test_half_refund_inside_two_days(self):
        quote = calculate_refund(90.0, self.START, now=self.START - timedelta(hours=30))

        assert quote.percent == 50
        assert quote.amount == 45.0

    def test_too_late_inside_one_day(self):
        quote = calculate_refund(90.0, self.START, now=self.START - timedelta(hours=23))

        assert not quote.eligible
        assert quote.code == CANCELLATION_TOO_LATE
        assert quote.amount == 0.0
