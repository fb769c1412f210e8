"""
Wire schemas for the POST /booking body.

These check shape and field limits only. Business rules (booking window,
operating days, tour group limits, price) live in validation.py and run
on whatever fields these schemas accept.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter, field_validator

from .models import DATE_PATTERN, TIME_PATTERN, parse_date, parse_time


MAX_GROUP_SIZE_ANY_TOUR = 20
MAX_NAME_LENGTH = 50
MAX_PHONE_LENGTH = 20
MAX_SPECIAL_REQUESTS_LENGTH = 500

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

SpecialRequests = Optional[Annotated[str, StringConstraints(max_length=MAX_SPECIAL_REQUESTS_LENGTH, strict=True)]]

SPECIAL_REQUESTS = TypeAdapter(SpecialRequests)


class CustomerPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(alias="firstName", min_length=1, max_length=MAX_NAME_LENGTH, strict=True)
    last_name: str = Field(alias="lastName", min_length=1, max_length=MAX_NAME_LENGTH, strict=True)
    email: str = Field(pattern=EMAIL_PATTERN, strict=True)
    phone: str = Field(min_length=1, max_length=MAX_PHONE_LENGTH, strict=True)
    country: str = Field(min_length=1, strict=True)


class BookingPayload(BaseModel):
    """
    The camelCase booking body.

    Dates and times stay strings here so an accepted field is exactly what
    the client sent; they are checked to parse as real calendar values.
    """

    tour_id: str = Field(alias="tourId", min_length=1, strict=True)
    booking_date: str = Field(alias="date", pattern=DATE_PATTERN.pattern, strict=True)
    start_time: str = Field(alias="startTime", pattern=TIME_PATTERN.pattern, strict=True)
    group_size: int = Field(alias="groupSize", ge=1, le=MAX_GROUP_SIZE_ANY_TOUR, strict=True)
    total_price: float = Field(alias="totalPrice", ge=0, strict=True)
    customer_info: CustomerPayload = Field(alias="customerInfo")
    special_requests: SpecialRequests = Field(default=None, alias="specialRequests")

    @field_validator("booking_date")
    @classmethod
    def validate_calendar_date(cls, v):
        parse_date(v)
        return v

    @field_validator("start_time")
    @classmethod
    def validate_time_of_day(cls, v):
        parse_time(v)
        return v
