"""
normalizers.py — cell value normalizers
========================================
Pure, total functions that turn raw spreadsheet cells (str, int, float,
datetime, numpy scalars, NaN) into typed values.

Rules
-----
  1. NEVER raise — malformed input returns None (percentages return 0.0).
  2. Dutch number convention wins: "€ 1.545,78" → 1545.78.
  3. Dates are always normalised to an ISO 'YYYY-MM-DD' string.
  4. Percentages always end up on the 0–100 scale.
"""

from __future__ import annotations

import math
import re
import warnings
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Union

import numpy as np
import pandas as pd

# Spreadsheet serial day 0 (the 1900 leap-year bug is baked into this epoch)
EXCEL_EPOCH = datetime(1899, 12, 30)
_MAX_SERIAL = 2958465                                # 9999-12-31

DUTCH_DAY_NAMES = [
    "Maandag", "Dinsdag", "Woensdag", "Donderdag", "Vrijdag", "Zaterdag", "Zondag",
]

_DDMMYYYY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_YYYYMMDD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_NUMERIC_STR = re.compile(r"^[-+]?\d+(?:\.\d+)?$")
_LEADING_NUMBER = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_CLOCK = re.compile(r"^(\d{1,3}):(\d{2})(?::(\d{2}))?$")
_CURRENCY_PREFIX = re.compile(r"^([-+]?)\s*€\s*")


# ══════════════════════════════════════════════════════════════════════════════
# Primitive helpers
# ══════════════════════════════════════════════════════════════════════════════

def _is_number(v: Any) -> bool:
    if isinstance(v, (bool, np.bool_)):
        return False
    return isinstance(v, (int, float, np.integer, np.floating))


def _is_blank(v: Any) -> bool:
    if v is None or v is pd.NaT:
        return True
    if isinstance(v, (float, np.floating)) and v != v:   # NaN fast-path
        return True
    if isinstance(v, str):
        return v.strip() == ""
    return False


def _clean(v: Any) -> str:
    """Return stripped string; '' when None/NaN."""
    if _is_blank(v):
        return ""
    return str(v).strip()


def round2(n: float) -> float:
    return round(float(n), 2)


def _parse_number(raw: Any) -> Optional[float]:
    """Locale-aware number parsing without the final rounding."""
    if _is_blank(raw):
        return None
    if _is_number(raw):
        f = float(raw)
        return f if math.isfinite(f) else None
    if isinstance(raw, (date, time, timedelta)):
        return None

    s = _clean(raw).replace("\u00a0", " ")
    negative = False
    # parentheses → negative  e.g. (12,50) → -12.5
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    m = _CURRENCY_PREFIX.match(s)
    if m:
        s = m.group(1) + s[m.end():]
    s = s.strip()
    if s.endswith("%"):
        s = s[:-1].strip()
    if not s or s.startswith("#"):                   # "#N/A", "#DIV/0!"
        return None

    s = s.replace(" ", "")
    if "." in s and "," in s:
        s = s.replace(".", "").replace(",", ".", 1)
    elif "," in s:
        s = s.replace(",", ".", 1)

    m = _LEADING_NUMBER.match(s)
    if not m:
        return None
    try:
        value = float(m.group(0))
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return -value if negative else value


# ══════════════════════════════════════════════════════════════════════════════
# Public normalizers
# ══════════════════════════════════════════════════════════════════════════════

def parse_locale_number(raw: Any) -> Optional[float]:
    """
    Convert a currency/number-like cell → float rounded to 2 decimals, or None.

    Already-numeric cells pass through unchanged.
    """
    if _is_number(raw):
        return _parse_number(raw)
    value = _parse_number(raw)
    return round2(value) if value is not None else None


def parse_percentage(raw: Any) -> float:
    """
    Convert a percentage cell → 0–100 scale.  0 when unparseable.

    Values strictly between 0 and 1 are read as fractions (0.259 → 25.9).
    A genuine 0.5% is therefore indistinguishable from a fraction; that is
    how the exports have always been read.
    """
    value = _parse_number(raw)
    if value is None:
        return 0.0
    if 0 < value < 1:
        return round2(value * 100)
    return round2(value)


def _serial_to_iso(serial: float) -> Optional[str]:
    if not math.isfinite(serial) or serial <= 0 or serial > _MAX_SERIAL:
        return None
    return (EXCEL_EPOCH + timedelta(days=serial)).strftime("%Y-%m-%d")


def _valid_iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).strftime("%Y-%m-%d")
    except ValueError:
        return None


def parse_flexible_date(raw: Any) -> Optional[str]:
    """
    Convert any date-like value → ISO 'YYYY-MM-DD' string, or None.

    Attempt order: spreadsheet serial number, DD-MM-YYYY, YYYY-MM-DD,
    then a general (day-first) parser for free text.
    """
    if _is_blank(raw):
        return None
    if isinstance(raw, (datetime, date)):
        return raw.strftime("%Y-%m-%d")
    if _is_number(raw):
        return _serial_to_iso(float(raw))
    if not isinstance(raw, str):
        return None

    s = raw.strip()
    if _NUMERIC_STR.match(s):
        return _serial_to_iso(float(s))

    m = _DDMMYYYY.match(s)
    if m:
        iso = _valid_iso(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        if iso:
            return iso

    m = _YYYYMMDD.match(s)
    if m:
        iso = _valid_iso(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if iso:
            return iso

    # Free text always carries a day or year number; skip words like "Totaal"
    if not any(ch.isdigit() for ch in s):
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            ts = pd.to_datetime(s, dayfirst=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.strftime("%Y-%m-%d")


def parse_hours_duration(raw: Any) -> Optional[float]:
    """Decimal hours, or 'HH:MM' clock-duration notation → decimal hours."""
    if _is_blank(raw):
        return None
    if isinstance(raw, timedelta):
        return raw.total_seconds() / 3600
    if isinstance(raw, time):
        return raw.hour + raw.minute / 60 + raw.second / 3600
    if isinstance(raw, (datetime, date)):
        return None
    if _is_number(raw):
        return _parse_number(raw)

    s = _clean(raw)
    m = _CLOCK.match(s)
    if m:
        hours = int(m.group(1)) + int(m.group(2)) / 60
        if m.group(3):
            hours += int(m.group(3)) / 3600
        return hours
    return _parse_number(s)


def parse_clock_time(raw: Any) -> Optional[time]:
    """'HH:MM' wall-clock time → datetime.time, or None."""
    if _is_blank(raw):
        return None
    if isinstance(raw, datetime):
        return raw.time()
    if isinstance(raw, time):
        return raw
    m = _CLOCK.match(_clean(raw))
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def to_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def dutch_day_name(value: Union[str, date]) -> str:
    return DUTCH_DAY_NAMES[to_date(value).weekday()]


def iso_week_number(value: Union[str, date]) -> int:
    return to_date(value).isocalendar()[1]
