"""Human-friendly timestamp and duration parsing.

Timestamps are timezone-aware ``datetime`` objects carrying a fixed UTC
offset. Durations are plain ``timedelta`` values.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from loiter.errors import InvalidDurationError, InvalidTimestampError

DATE_TIME_FORMATS = (
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)

DATE_TIME_FORMATS_WITH_OFFSET = tuple(f"{fmt} %z" for fmt in DATE_TIME_FORMATS)

TIME_ONLY_FORMATS = (
    "%H:%M",
    "%Hh%M",
    "%H:%M:%S",
)

DAY_PREFIXES = {
    "yesterday": timedelta(days=-1),
    "yst": timedelta(days=-1),
    "tomorrow": timedelta(days=1),
    "tmrw": timedelta(days=1),
}

DURATION_UNITS = {
    "w": timedelta(weeks=1),
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
}


def now_local() -> datetime:
    """Current local time with the system's UTC offset attached."""
    return datetime.now().astimezone()


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def parse_timestamp(text: str, now: datetime) -> datetime:
    """Parse ``text`` relative to ``now``.

    Accepts ``now``, absolute date-times (with or without an explicit
    offset), and bare times of day optionally prefixed with
    ``yesterday@``/``tomorrow@``. Naive results take ``now``'s offset.
    """
    if text.strip() == "now":
        return now

    for fmt in DATE_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=now.tzinfo)
        except ValueError:
            continue

    for fmt in DATE_TIME_FORMATS_WITH_OFFSET:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    day_offset, time_text = _split_day_prefix(text)
    for fmt in TIME_ONLY_FORMATS:
        try:
            t = datetime.strptime(time_text, fmt).time()
        except ValueError:
            continue
        resolved = now.replace(hour=t.hour, minute=t.minute, second=t.second, microsecond=0)
        return resolved + day_offset

    raise InvalidTimestampError(text)


def _split_day_prefix(text: str) -> tuple[timedelta, str]:
    parts = text.lower().split("@")
    if len(parts) == 1:
        return timedelta(0), parts[0].strip()
    if len(parts) != 2:
        raise InvalidTimestampError(text)
    prefix = parts[0].strip()
    if prefix not in DAY_PREFIXES:
        raise InvalidTimestampError(text)
    return DAY_PREFIXES[prefix], parts[1].strip()


def format_timestamp(ts: datetime) -> str:
    """Display form, e.g. ``2021-11-04 17:00 -04``."""
    offset = ts.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = "-" if total_minutes < 0 else "+"
    hours = abs(total_minutes) // 60
    return f"{ts.strftime('%Y-%m-%d %H:%M')} {sign}{hours:02d}"


def timestamp_to_json(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def timestamp_from_json(value: str | None) -> datetime | None:
    if value is None:
        return None
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        raise ValueError(f"timestamp has no UTC offset: {value}")
    return ts


# ---------------------------------------------------------------------------
# Calendar boundaries
# ---------------------------------------------------------------------------


def start_of_day(ts: datetime) -> datetime:
    return ts.replace(hour=0, minute=0, second=0, microsecond=0)


def days_forward(ts: datetime, days: int) -> datetime:
    return start_of_day(ts) + timedelta(days=days)


def start_of_tomorrow(ts: datetime) -> datetime:
    return days_forward(ts, 1)


def start_of_yesterday(ts: datetime) -> datetime:
    return days_forward(ts, -1)


def start_of_week(ts: datetime) -> datetime:
    """Monday 00:00 of the week containing ``ts``."""
    today = start_of_day(ts)
    return today - timedelta(days=today.weekday())


def start_of_next_week(ts: datetime) -> datetime:
    return start_of_week(ts) + timedelta(days=7)


def start_of_month(ts: datetime) -> datetime:
    return start_of_day(ts).replace(day=1)


def start_of_next_month(ts: datetime) -> datetime:
    first = start_of_month(ts)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def start_of_year(ts: datetime) -> datetime:
    return start_of_day(ts).replace(month=1, day=1)


def start_of_next_year(ts: datetime) -> datetime:
    return start_of_year(ts).replace(year=ts.year + 1)


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


def parse_duration(text: str) -> timedelta:
    """Parse compact durations such as ``1h30m``, ``2d`` or ``1w 3d 4h``."""
    total = timedelta(0)
    for amount, unit in _duration_components(text):
        if unit not in DURATION_UNITS:
            raise InvalidDurationError(f'invalid units for duration: "{unit}"')
        try:
            total += DURATION_UNITS[unit] * int(amount)
        except OverflowError:
            raise InvalidDurationError(f'duration amount is too large: "{amount}{unit}"') from None
    return total


def _duration_components(text: str) -> list[tuple[str, str]]:
    # Alternates between accumulating an amount and a unit; a digit seen while
    # reading a unit closes the current component.
    components: list[tuple[str, str]] = []
    state = "begin"
    amount = ""
    unit = ""
    for c in text:
        if state == "begin":
            if not c.isdigit():
                raise InvalidDurationError(f"durations must start with a number: {text}")
            amount += c
            state = "amount"
        elif state == "amount":
            if c.isdigit():
                amount += c
            else:
                unit += c
                state = "unit"
        else:
            if c.isdigit():
                components.append((amount, unit.strip()))
                amount, unit = c, ""
                state = "amount"
            else:
                unit += c

    if amount and not unit.strip():
        raise InvalidDurationError(f'duration amount "{amount}" is missing its units: {text}')
    if amount:
        components.append((amount, unit.strip()))
    return components


def format_duration(delta: timedelta) -> str:
    """Largest units first, zero components omitted: ``1w 3d 4h``."""
    remaining = int(delta.total_seconds())
    parts = []
    for unit, size in DURATION_UNITS.items():
        seconds = int(size.total_seconds())
        amount, remaining = divmod(remaining, seconds)
        if amount > 0:
            parts.append(f"{amount}{unit}")
    return " ".join(parts)
