import re
from datetime import datetime, timedelta


_DURATION_PART = re.compile(r"(\d+)\s*([hms])")


# Simply returns the current local time as an ISO8601 string with timezone offset.
def now_iso():
    return datetime.now().astimezone().isoformat()


# Format a duration (timedelta or seconds) as HH:MM:SS. Negative values clamp to zero, hours are not wrapped at 24.
def format_duration(duration):
    if isinstance(duration, timedelta):
        duration = duration.total_seconds()
    seconds = max(0, int(duration))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


# Parses user-entered durations for manual entries. Accepts "HH:MM", "HH:MM:SS", "90" (minutes) or unit strings such
# as "1h30m" / "45m" / "20s". Raises ValueError on anything else.
def parse_duration(text):
    text = text.strip().lower()
    if not text:
        raise ValueError("Empty duration")

    if ":" in text:
        parts = text.split(":")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid duration '{text}'")
        numbers = [int(p) for p in parts] + [0] * (3 - len(parts))
        return timedelta(hours=numbers[0], minutes=numbers[1], seconds=numbers[2])

    if text.isdigit():
        return timedelta(minutes=int(text))

    matched = _DURATION_PART.findall(text)
    if not matched or _DURATION_PART.sub("", text).strip():
        raise ValueError(f"Invalid duration '{text}'")
    units = {"h": "hours", "m": "minutes", "s": "seconds"}
    kwargs = {}
    for amount, unit in matched:
        kwargs[units[unit]] = kwargs.get(units[unit], 0) + int(amount)
    return timedelta(**kwargs)
