import math
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from schemas import Car

DAY_SECONDS = 24 * 60 * 60

DateLike = Union[str, date, datetime, None]


def _to_datetime(value: DateLike) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(value)


def rental_days(start: DateLike, end: DateLike) -> int:
    """Whole days between pickup and return, rounded up. Zero when end <= start."""
    start_dt = _to_datetime(start)
    end_dt = _to_datetime(end)
    if start_dt is None or end_dt is None:
        return 0
    if end_dt <= start_dt:
        return 0
    diff = abs((end_dt - start_dt).total_seconds())
    return math.ceil(diff / DAY_SECONDS)


def total_price(start: DateLike, end: DateLike, price_per_day: int) -> int:
    return rental_days(start, end) * price_per_day


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    # return day is free for the next pickup
    return a_start < b_end and b_start < a_end


def filter_cars(
    cars: Iterable[Car],
    search: Optional[str] = None,
    category: Optional[str] = None,
    transmission: Optional[str] = None,
) -> List[Car]:
    term = (search or "").strip().lower()
    result: List[Car] = []
    for car in cars:
        if term and term not in car.name.lower() and term not in car.description.lower():
            continue
        if category and category != "all" and car.category != category:
            continue
        if transmission and transmission != "all" and car.transmission != transmission:
            continue
        result.append(car)
    return result


def categories_of(cars: Iterable[Car]) -> List[str]:
    seen: List[str] = []
    for car in cars:
        if car.category not in seen:
            seen.append(car.category)
    return seen
