"""
classifier.py — summary / noise row detection
==============================================
Exports mix real day rows with week totals, month totals and averages.
Only the date cell and the first column are inspected, so a manager whose
surname happens to contain "totaal" is not mistaken for a total line.
"""

from typing import Any, Dict, Optional, Sequence

from locator import DATE_FIELD

SUMMARY_KEYWORDS = [
    "totaal", "total", "gemiddeld", "average", "gemiddelde",
    "subtotaal", "weektotaal", "maandtotaal",
]

TOTAL_ROW_MARKERS = ["totaal", "total", "totalen", "grand total", "eindtotaal"]

_DATE_KEYS = (DATE_FIELD, "Datum", "Date")


def is_total_marker(value: Any, markers: Sequence[str] = TOTAL_ROW_MARKERS) -> bool:
    if not isinstance(value, str):
        return False
    low = value.strip().lower()
    return bool(low) and any(kw in low for kw in markers)


def is_summary_row(row: Dict[str, Any], first_column: Optional[str] = None) -> bool:
    """
    True when the row is a total/average line rather than an observation.

    first_column names the sheet's leftmost header; without it the first key
    of the row other than the synthetic date field is used.
    """
    candidates = [row[k] for k in _DATE_KEYS if k in row]
    if first_column is None:
        first_column = next((k for k in row if k != DATE_FIELD), None)
    if first_column is not None:
        candidates.append(row.get(first_column))
    return any(is_total_marker(v, SUMMARY_KEYWORDS) for v in candidates)
