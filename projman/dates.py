from __future__ import annotations

from datetime import date, datetime, time, timedelta
import re

from .domain import local_now
from .errors import InvalidDueDate


_WEEKDAY_TO_INDEX = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}
_SHORT_WEEKDAYS = {name[:3]: index for name, index in _WEEKDAY_TO_INDEX.items()}
_WEEKDAY_FRAGMENT = r"(?:mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)(?:day|sday|nesday|rsday|urday)?"

_ISO_DATE_RE = re.compile(r"^(?P<y>\d{4})-(?P<m>\d{1,2})-(?P<d>\d{1,2})$")
_RELATIVE_RE = re.compile(
    r"^in\s+(?P<count>\d+)\s+(?P<unit>day|days|week|weeks)$",
    re.IGNORECASE,
)
_WEEKDAY_RE = re.compile(rf"^(?:(?P<next>next|this)\s+)?(?P<day>{_WEEKDAY_FRAGMENT})$", re.IGNORECASE)


def _midnight(day: date, like: datetime) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=like.tzinfo)


def _weekday_index(raw: str) -> int | None:
    lowered = raw.lower()
    if lowered in _WEEKDAY_TO_INDEX:
        return _WEEKDAY_TO_INDEX[lowered]
    return _SHORT_WEEKDAYS.get(lowered[:3])


def parse_due_date(raw: str, *, now: datetime | None = None) -> datetime:
    """Parse a due date into a local midnight timestamp.

    Accepts `YYYY-MM-DD`, `today`, `tomorrow`, `yesterday`, `next week`,
    `in N days|weeks` and weekday names (`friday`, `next mon`). A bare weekday
    means its next occurrence after today.
    """

    now = now or local_now()
    text = " ".join((raw or "").strip().lower().split())
    if not text:
        raise InvalidDueDate(raw)

    iso = _ISO_DATE_RE.match(text)
    if iso:
        try:
            day = date(int(iso.group("y")), int(iso.group("m")), int(iso.group("d")))
        except ValueError:
            raise InvalidDueDate(raw) from None
        return _midnight(day, now)

    today = now.date()
    if text == "today":
        return _midnight(today, now)
    if text == "tomorrow":
        return _midnight(today + timedelta(days=1), now)
    if text == "yesterday":
        return _midnight(today - timedelta(days=1), now)
    if text == "next week":
        return _midnight(today + timedelta(days=7), now)

    rel = _RELATIVE_RE.match(text)
    if rel:
        count = int(rel.group("count"))
        if rel.group("unit").startswith("week"):
            count *= 7
        return _midnight(today + timedelta(days=count), now)

    wd = _WEEKDAY_RE.match(text)
    if wd:
        target = _weekday_index(wd.group("day"))
        if target is not None:
            ahead = (target - today.weekday()) % 7
            if ahead == 0:
                ahead = 7
            return _midnight(today + timedelta(days=ahead), now)

    raise InvalidDueDate(raw)


def validate_due_date_text(raw: str) -> bool:
    """Strict `YYYY-MM-DD` check used by the task form."""
    if not raw.strip():
        return True
    try:
        datetime.strptime(raw.strip(), "%Y-%m-%d")
    except ValueError:
        return False
    return True
