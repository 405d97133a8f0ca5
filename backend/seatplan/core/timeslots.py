"""Reservation time windows as full datetimes, so windows may cross midnight."""
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Tuple


def reservation_window(day: date, start: time, duration_minutes: int) -> Tuple[datetime, datetime]:
    begin = datetime.combine(day, start)
    return begin, begin + timedelta(minutes=duration_minutes)


def windows_overlap(
    a: Tuple[datetime, datetime],
    b: Tuple[datetime, datetime],
    buffer_minutes: int = 0,
) -> bool:
    """
    Two reservations on one table conflict when, with the turnover buffer
    appended to each, their ranges intersect:
      a_start < b_end + buffer AND b_start < a_end + buffer
    """
    pad = timedelta(minutes=buffer_minutes)
    return a[0] < b[1] + pad and b[0] < a[1] + pad


def in_service_hours(start: time, windows: Iterable[Tuple[time, time]]) -> bool:
    """Inclusive on both bounds. A window ending before it starts runs past midnight."""
    for w_start, w_end in windows:
        if w_start <= w_end:
            if w_start <= start <= w_end:
                return True
        elif start >= w_start or start <= w_end:
            return True
    return False


def format_windows(windows: Iterable[Tuple[time, time]]) -> list:
    return [f"{s.strftime('%H:%M')}-{e.strftime('%H:%M')}" for s, e in windows]


def format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value else None
