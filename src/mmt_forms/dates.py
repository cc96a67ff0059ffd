"""Date helpers shared by the extractor, generator and attendance services.

Source forms are filled by hand in several locales, so ``normalize_date``
is deliberately lenient: unknown formats are returned unchanged.
"""

import calendar
import re
from datetime import date

_DOTTED_RE = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})")
_SLASHED_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_COMPACT_RE = re.compile(r"^(\d{2})(\d{2})(\d{4})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def _iso(day: str, month: str, year: str) -> str:
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def normalize_date(raw: str | None) -> str:
    """Convert a form date to ISO ``YYYY-MM-DD``.

    Recognised, in priority order: ``DD.MM.YYYY``, ``DD/MM/YYYY``,
    ``YYYY-MM-DD`` (returned as is), ``DDMMYYYY`` and eight digits with
    embedded whitespace (``05 03 2024``). Single-digit days and months are
    zero-padded.

    Args:
        raw: Value read from a form field.

    Returns:
        ISO date, or the stripped input when no format matches.
    """
    if not raw:
        return ""
    value = raw.strip()
    if not value:
        return ""

    match = _DOTTED_RE.search(value)
    if match:
        return _iso(*match.groups())

    match = _SLASHED_RE.search(value)
    if match:
        return _iso(*match.groups())

    if _ISO_RE.match(value):
        return value

    match = _COMPACT_RE.match(value)
    if match:
        return _iso(*match.groups())

    digits = re.sub(r"\s+", "", value)
    match = _COMPACT_RE.match(digits)
    if match:
        return _iso(*match.groups())

    return value


def parse_month(month: str) -> tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(year, month)``.

    Raises:
        ValueError: If the string is not a valid year-month.
    """
    match = _MONTH_RE.match(month.strip())
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValueError(f"invalid month {month!r}, expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


def current_month(today: date | None = None) -> str:
    """Return the month containing ``today`` as ``YYYY-MM``."""
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last calendar day of a month."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def compact_date(iso: str) -> str:
    """Format an ISO date as ``DDMMYYYY``; empty or invalid input gives ""."""
    try:
        parsed = date.fromisoformat(iso)
    except (TypeError, ValueError):
        return ""
    return parsed.strftime("%d%m%Y")


def strip_separators(swiss: str) -> str:
    """``DD.MM.YYYY`` -> ``DDMMYYYY``."""
    return re.sub(r"\D", "", swiss)


def format_swiss(day: date) -> str:
    """Format a date the way users type it on the form (``DD.MM.YYYY``)."""
    return day.strftime("%d.%m.%Y")
