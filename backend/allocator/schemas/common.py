from __future__ import annotations

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
DAY_VALUES = set(WEEKDAYS)
DAY_INDEX = {day: index for index, day in enumerate(WEEKDAYS)}


def slot_sort_key(day_of_week: str, start_time: str) -> tuple[int, str]:
    return DAY_INDEX.get(day_of_week, len(WEEKDAYS)), start_time
