"""
Tour reference data.

Tours are immutable. Weekday masks use Python's numbering
(Monday == 0 ... Sunday == 6).
"""

from dataclasses import dataclass


WEEKDAY_NAMES = {
    0: "Monday",
    1: "Tuesday",
    2: "Wednesday",
    3: "Thursday",
    4: "Friday",
    5: "Saturday",
    6: "Sunday",
}

EVERY_DAY = frozenset(range(7))
MONDAY_TO_SATURDAY = frozenset(range(6))
MONDAY_TO_FRIDAY = frozenset(range(5))
THURSDAY_TO_SATURDAY = frozenset({3, 4, 5})


class UnknownTourError(KeyError):
    """Raised when a tour id is not in the catalog."""

    def __init__(self, tour_id: str):
        self.tour_id = tour_id
        super().__init__(tour_id)

    def __str__(self) -> str:
        return f"Unknown tour: {self.tour_id}"


@dataclass(frozen=True)
class Tour:
    """A bookable tour."""
    id: str
    operating_days: frozenset
    max_group_size: int
    base_price: float
    currency: str = "EUR"
    duration_minutes: int = 120

    def operates_on(self, weekday: int) -> bool:
        return weekday in self.operating_days

    @property
    def operating_day_names(self) -> list[str]:
        return [WEEKDAY_NAMES[day] for day in sorted(self.operating_days)]


TOURS = {
    tour.id: tour
    for tour in (
        Tour("prague-castle", MONDAY_TO_SATURDAY, max_group_size=8, base_price=45, duration_minutes=180),
        Tour("old-town", EVERY_DAY, max_group_size=10, base_price=35, duration_minutes=120),
        Tour("jewish-quarter", MONDAY_TO_FRIDAY, max_group_size=6, base_price=40, duration_minutes=150),
        Tour("food-tour", THURSDAY_TO_SATURDAY, max_group_size=4, base_price=65, duration_minutes=240),
    )
}


def get_tour(tour_id: str) -> Tour:
    """Look up a tour, raising UnknownTourError if it does not exist."""
    try:
        return TOURS[tour_id]
    except KeyError:
        raise UnknownTourError(tour_id) from None
