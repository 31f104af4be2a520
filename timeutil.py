"""
Time-of-day helpers shared by slots and bookings.

Slots are configured in a 12-hour display form ("03:00 PM") while bookings
created internally usually carry a 24-hour start time ("15:00"). Both sides are
compared through normalize_time().
"""

import re

_TWELVE_HOUR = re.compile(r"^(\d{1,2}):(\d{2})\s*([AP]M)$", re.IGNORECASE)
_TWENTY_FOUR_HOUR = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_time(time_str: str) -> str:
    """
    Canonical 24-hour "HH:MM" form of a typed time.

    Unrecognised input comes back trimmed and upper-cased; this never raises.
    """
    value = (time_str or "").strip().upper()

    m = _TWELVE_HOUR.match(value)
    if m:
        hour, minute, meridiem = int(m.group(1)), m.group(2), m.group(3).upper()
        if meridiem == "AM" and hour == 12:
            hour = 0
        elif meridiem == "PM" and hour != 12:
            hour += 12
        return f"{hour:02d}:{minute}"

    m = _TWENTY_FOUR_HOUR.match(value)
    if m:
        return f"{int(m.group(1)):02d}:{m.group(2)}"

    return value


def same_slot_time(a: str, b: str) -> bool:
    return normalize_time(a) == normalize_time(b)


def format_12h(time_str: str) -> str:
    # "15:00" -> "03:00 PM"; input that is not a time is returned as typed
    m = _TWENTY_FOUR_HOUR.match(normalize_time(time_str))
    if not m:
        return time_str
    hour = int(m.group(1))
    meridiem = "PM" if hour >= 12 else "AM"
    hour = hour % 12 or 12
    return f"{hour:02d}:{m.group(2)} {meridiem}"
