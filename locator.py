"""
locator.py — header discovery and named-row access
===================================================
Report vintages put the header row in different places, so nothing here
trusts a fixed position.  The first row (within the first ~20) holding a
header keyword becomes the header; when none is found, row 0 is used so a
narrow legacy export still parses.

Header maps are plain data: an ordered list of
``(canonical_field, [alias, alias, ...])`` pairs.  Aliases are compared
case-insensitively after whitespace is collapsed, and the first alias whose
cell is non-blank wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from normalizers import _clean, _is_blank, _is_number

logger = logging.getLogger(__name__)

HeaderMap = List[Tuple[str, List[str]]]

# Dutch + English words that only ever appear in a header row
HEADER_KEYWORDS = [
    "datum", "date", "dag", "day", "omzet", "revenue", "arbeidskosten", "labour",
]

# Synthetic field carrying the detected date cell of every row
DATE_FIELD = "__date__"

_EXACT_DATE_HEADERS = ("datum", "date")
_DDMMYYYY = re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$")
_YYYYMMDD = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SERIAL_RANGE = (40000, 60000)                       # 2009 … 2064


@dataclass
class LocatedSheet:
    name: str
    header_row: Optional[int]                        # None → row 0 used as fallback
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    date_column: Optional[int] = None


def normalise_header(v: Any) -> str:
    return re.sub(r"\s+", " ", _clean(v))


def find_header_row(df: pd.DataFrame, keywords: Sequence[str] = HEADER_KEYWORDS, max_scan: int = 20) -> Optional[int]:
    """Return the index of the first row with a keyword-bearing text cell."""
    for i in range(min(max_scan, len(df))):
        for v in df.iloc[i]:
            if not isinstance(v, str):
                continue
            low = v.strip().lower()
            if low and any(kw in low for kw in keywords):
                return i
    return None


def _looks_like_date(v: Any) -> bool:
    if _is_blank(v):
        return False
    if isinstance(v, (datetime, date)):
        return True
    if _is_number(v):
        return _SERIAL_RANGE[0] < float(v) < _SERIAL_RANGE[1]
    if not isinstance(v, str):
        return False
    s = v.strip()
    return bool(_DDMMYYYY.match(s) or _YYYYMMDD.match(s))


def _find_date_column(columns: List[str], data: pd.DataFrame, max_scan: int) -> Optional[int]:
    for j, name in enumerate(columns):
        if name.lower() in _EXACT_DATE_HEADERS:
            return j
    # Mis-labelled date column: first date-like cell in the first data rows
    for values in data.head(max_scan).itertuples(index=False, name=None):
        for j, v in enumerate(values):
            if _looks_like_date(v):
                return j
    return None


def locate(
    df: pd.DataFrame,
    name: str = "",
    keywords: Sequence[str] = HEADER_KEYWORDS,
    max_scan: int = 20,
    date_scan: int = 10,
) -> LocatedSheet:
    """
    Find the header row of a raw grid and expose the rows below it as
    {header_text: raw_value} dicts.  Duplicate header text keeps the
    last-seen column.  Blank cells become None.
    """
    if df.empty:
        return LocatedSheet(name=name, header_row=None)

    header_idx = find_header_row(df, keywords, max_scan)
    if header_idx is None:
        logger.warning("No header row found in sheet '%s'; using row 0", name)
        start = 0
    else:
        start = header_idx

    columns = [normalise_header(v) or f"__col_{j}" for j, v in enumerate(df.iloc[start])]
    data = df.iloc[start + 1:]
    date_col = _find_date_column(columns, data, date_scan)

    rows: List[Dict[str, Any]] = []
    for values in data.itertuples(index=False, name=None):
        if all(_is_blank(v) for v in values):
            continue
        row: Dict[str, Any] = {}
        for key, v in zip(columns, values):
            row[key] = None if _is_blank(v) else v
        if date_col is not None:
            v = values[date_col]
            row[DATE_FIELD] = None if _is_blank(v) else v
        rows.append(row)

    return LocatedSheet(
        name=name,
        header_row=header_idx,
        columns=columns,
        rows=rows,
        date_column=date_col,
    )


def resolve_columns(columns: Iterable[str], header_map: HeaderMap) -> Dict[str, List[str]]:
    """Map every canonical field to the sheet columns that match its aliases, in alias order."""
    lowered: Dict[str, str] = {}
    for col in columns:
        lowered.setdefault(col.lower(), col)
    resolved: Dict[str, List[str]] = {}
    for canonical, aliases in header_map:
        keys: List[str] = []
        for alias in aliases:
            key = lowered.get(normalise_header(alias).lower())
            if key is not None and key not in keys:
                keys.append(key)
        resolved[canonical] = keys
    return resolved


def find_column(columns: Iterable[str], candidates: Sequence[str]) -> Optional[str]:
    """First sheet column matching any candidate name (candidate order wins)."""
    keys = resolve_columns(columns, [("_", list(candidates))])["_"]
    return keys[0] if keys else None


def first_value(row: Dict[str, Any], keys: Sequence[str]) -> Any:
    """Raw value of the first key whose cell is non-blank, else None."""
    for key in keys:
        v = row.get(key)
        if not _is_blank(v):
            return v
    return None
