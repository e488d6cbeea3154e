"""
report_parsers.py — POS portal report extractors
=================================================
One extractor per report family exported by the restaurant reporting portal:
  • OPERATIONAL          — daily KPI rows, first sheet only
  • KPI_IMPORT           — hand-maintained KPI sheet (CSV or workbook, all tabs)
  • SERVICE              — one month of orders over Delivery / Pickup / Take Away
  • TIME_KEEPING         — punch rows, grouped per day
  • TIMEKEEPING_SUMMARY  — cost + hours totals → average hourly rate
  • VARIANCE             — ideal vs actual food usage → monthly food cost

Design principles
-----------------
  1. Per-field and per-row anomalies never raise; the row or field degrades.
  2. Only undecodable bytes raise (``MalformedDocumentError`` from the loader).
  3. No fixed column positions: headers are located, aliases are looked up.
  4. "Recognised but nothing usable" is ``[]`` or ``None``, not an error.

Usage
-----
    from report_parsers import parse_report

    report_type, result = parse_report(open("Operational_2026-03.xlsx", "rb").read(),
                                       filename="Operational_2026-03.xlsx")
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from classifier import is_summary_row, is_total_marker
from locator import (
    DATE_FIELD,
    HeaderMap,
    LocatedSheet,
    find_column,
    first_value,
    locate,
    resolve_columns,
)
from models import (
    DailyEntry,
    DailyLabourMetric,
    DeliveryOrder,
    FoodCostData,
    HourlyRateInfo,
    MonthlyAggregate,
)
from normalizers import (
    _clean,
    _is_blank,
    parse_clock_time,
    parse_flexible_date,
    parse_hours_duration,
    parse_locale_number,
    parse_percentage,
    round2,
)
from sheet_loader import TEXT_SHEET_NAME, load_document, workbook_created

logger = logging.getLogger(__name__)

OPERATIONAL = "OPERATIONAL"
KPI_IMPORT = "KPI_IMPORT"
SERVICE = "SERVICE"
TIME_KEEPING = "TIME_KEEPING"
TIMEKEEPING_SUMMARY = "TIMEKEEPING_SUMMARY"
VARIANCE = "VARIANCE"
UNKNOWN = "UNKNOWN"

REPORT_TYPES = [OPERATIONAL, KPI_IMPORT, SERVICE, TIME_KEEPING, TIMEKEEPING_SUMMARY, VARIANCE]

# Dutch food VAT; net amount when the export carries only the gross
FOOD_VAT_DIVISOR = 1.09


# ══════════════════════════════════════════════════════════════════════════════
# Header maps
# ══════════════════════════════════════════════════════════════════════════════

OPERATIONAL_HEADER_MAP: HeaderMap = [
    ("planned_revenue",        ["Gepland Omzet", "Omzet Begroot", "Planned Revenue", "Begroot omzet"]),
    ("gross_revenue",          ["Bruto Omzet", "Omzet Bruto", "Gross Revenue"]),
    ("net_revenue",            ["Netto Omzet", "Omzet Netto", "Net Revenue"]),
    ("planned_labour_cost",    ["Gepland AK", "Arbeidskosten Begroot", "Planned Labour"]),
    ("labour_cost",            ["Arbeidskosten", "Labour Cost"]),
    ("planned_labour_pct",     ["Gepland \n% Arbeidskosten", "Begroot Arbeids%", "Planned Labour %"]),
    ("labour_pct",             ["% Arbeidskosten", "Arbeids%", "Labour %"]),
    ("worked_hours",           ["Gewerte Uren", "Gewerkte uren", "Worked Hours", "Uren"]),
    ("labour_productivity",    ["Arbeidsproduc", "Arbeidsproductiviteit", "Productivity"]),
    ("food_cost",              ["Food Cost", "Voedselkosten", "COGS"]),
    ("food_cost_pct",          ["Food Cost %", "Voedselkosten %", "COGS %"]),
    ("delivery_rate_30min",    ["30 min bezorgd", "Bezorgd binnen 30 min %", "% binnen 30 min", "30 min %"]),
    ("on_time_delivery_mins",  ["OTD", "Bezorgtijd", "On Time Delivery"]),
    ("make_time_mins",         ["Maaktijd", "Bereidtijd", "Make Time", "Minutes"]),
    ("drive_time_mins",        ["Rijdtijd", "Rijtijd", "Drive Time", "Driving Time"]),
    ("order_count",            ["Orders", "Bestellingen", "Aantal bestellingen"]),
    ("avg_order_value",        ["Gemiddelde OW", "Gem. bestelbedrag", "Avg Order Value"]),
    ("orders_per_run",         ["OPR", "Bestellingen per rit", "Orders per run"]),
    ("cash_difference",        ["Kasverschil", "Cash Difference"]),
    ("manager",                ["Verantwoordelijk", "Manager", "Vestigingsmanager"]),
]

KPI_IMPORT_HEADER_MAP: HeaderMap = [
    ("planned_revenue",        ["Gepland Netto", "Gepland Omzet", "Omzet Begroot", "Planned Revenue"]),
    ("gross_revenue",          ["Bruto Omzet", "Omzet Bruto", "Gross Revenue"]),
    ("net_revenue",            ["Netto Omzet", "Omzet Netto", "Net Revenue"]),
    ("burger_kitchen_revenue", ["Bruto BK =TB+Uber", "BK Omzet", "Burger Kitchen Omzet"]),
    ("planned_labour_cost",    ["Gepland AK", "Arbeidskosten Begroot", "Planned Labour"]),
    ("labour_cost",            ["€ Arbeidskosten", "Arbeidskosten", "Labour Cost"]),
    ("planned_labour_pct",     ["Gepland AK%", "Gepland % Arbeidskosten", "Begroot Arbeids%", "Planned Labour %"]),
    ("labour_pct",             ["% Arbeidskosten", "Arbeids%", "Labour %"]),
    ("worked_hours",           ["Gewerte Uren", "Gewerkte uren", "Worked Hours", "Uren"]),
    ("labour_productivity",    ["Productiviteit", "Arbeidsproduc", "Arbeidsproductiviteit", "Productivity"]),
    ("food_cost",              ["Food Cost", "Voedselkosten", "COGS"]),
    ("food_cost_pct",          ["Food Cost %", "Voedselkosten %", "COGS %"]),
    ("delivery_rate_20min",    ["20 min bezorgd", "Bezorgd binnen 20 min %", "% binnen 20 min", "20 min %", "20 min"]),
    ("delivery_rate_30min",    ["30 min bezorgd", "Bezorgd binnen 30 min %", "% binnen 30 min", "30 min %", "30 min"]),
    ("on_time_delivery_mins",  ["OTD", "Bezorgtijd", "On Time Delivery"]),
    ("make_time_mins",         ["MT", "Maaktijd", "Bereidtijd", "Make Time"]),
    ("drive_time_mins",        ["DT", "Rijdtijd", "Rijtijd", "Drive Time"]),
    ("order_count",            ["Orders", "Bestellingen", "Aantal bestellingen"]),
    ("avg_order_value",        ["Gem. ow", "Gemiddelde OW", "Gem. bestelbedrag", "Avg Order Value"]),
    ("orders_per_run",         ["OPR", "Bestellingen per rit", "Orders per run"]),
    ("cash_difference",        ["Kasverschil", "Cash Difference"]),
    ("manager",                ["Verantwoordelijk", "Manager", "Vestigingsmanager"]),
]

# How each canonical field is normalised
_PERCENT_FIELDS = {"labour_pct", "food_cost_pct", "delivery_rate_30min"}
_OPTIONAL_PERCENT_FIELDS = {"planned_labour_pct", "delivery_rate_20min"}
_OPTIONAL_NUMBER_FIELDS = {"burger_kitchen_revenue"}
_SIGNED_FIELDS = {"cash_difference"}


# ══════════════════════════════════════════════════════════════════════════════
# Daily-entry extraction (shared by OPERATIONAL and KPI_IMPORT)
# ══════════════════════════════════════════════════════════════════════════════

def _non_negative(v: Optional[float]) -> float:
    return max(v, 0.0) if v is not None else 0.0


def _build_entry(row: Dict[str, Any], iso: str, columns: Dict[str, List[str]]) -> DailyEntry:
    values: Dict[str, Any] = {}
    for canonical, keys in columns.items():
        raw = first_value(row, keys)
        if canonical == "manager":
            values[canonical] = _clean(raw)
        elif canonical in _PERCENT_FIELDS:
            values[canonical] = _non_negative(parse_percentage(raw))
        elif canonical in _OPTIONAL_PERCENT_FIELDS:
            values[canonical] = None if raw is None else _non_negative(parse_percentage(raw))
        elif canonical in _SIGNED_FIELDS:
            values[canonical] = parse_locale_number(raw)
        elif canonical in _OPTIONAL_NUMBER_FIELDS:
            n = parse_locale_number(raw)
            values[canonical] = None if n is None else _non_negative(n)
        elif canonical == "order_count":
            values[canonical] = int(round(_non_negative(parse_locale_number(raw))))
        else:
            values[canonical] = _non_negative(parse_locale_number(raw))
    return DailyEntry(date=iso, **values)


def _row_date(row: Dict[str, Any]) -> Optional[str]:
    raw = row.get(DATE_FIELD)
    if raw is None:
        raw = first_value(row, ["Datum", "Date"])
    return parse_flexible_date(raw)


def _extract_daily_entries(
    sheet: LocatedSheet,
    header_map: HeaderMap,
    min_cells: int = 0,
) -> Tuple["OrderedDict[str, DailyEntry]", Dict[str, int]]:
    """
    Run the shared per-row template over one located sheet.

    Returns ({iso_date: DailyEntry}, skip counters).  A later row for the same
    date replaces the earlier one.
    """
    columns = resolve_columns(sheet.columns, header_map)
    entries: "OrderedDict[str, DailyEntry]" = OrderedDict()
    stats = {"summary": 0, "no_date": 0, "sparse": 0}
    first_column = sheet.columns[0] if sheet.columns else None

    for row in sheet.rows:
        if min_cells and sum(1 for k, v in row.items() if k != DATE_FIELD and not _is_blank(v)) < min_cells:
            stats["sparse"] += 1
            continue
        iso = _row_date(row)
        if iso is None:
            if is_summary_row(row, first_column):
                stats["summary"] += 1
            else:
                stats["no_date"] += 1
            logger.debug("Sheet '%s': row without date skipped", sheet.name)
            continue
        if is_summary_row(row, first_column):
            stats["summary"] += 1
            logger.debug("Sheet '%s': summary row on %s skipped", sheet.name, iso)
            continue
        if iso in entries:
            del entries[iso]
        entries[iso] = _build_entry(row, iso, columns)

    return entries, stats


def _sorted_entries(entries: Dict[str, DailyEntry]) -> List[DailyEntry]:
    return [entries[d] for d in sorted(entries)]


def _log_kept(kind: str, filename: str, kept: int, stats: Dict[str, int]) -> None:
    logger.info(
        "%s '%s': %d entries kept, %d summary rows, %d rows without date, %d sparse rows skipped",
        kind, filename, kept, stats.get("summary", 0), stats.get("no_date", 0), stats.get("sparse", 0),
    )


def operational_from_sheets(sheets: Dict[str, pd.DataFrame], filename: str = "") -> List[DailyEntry]:
    if not sheets:
        return []
    name, df = next(iter(sheets.items()))
    entries, stats = _extract_daily_entries(locate(df, name), OPERATIONAL_HEADER_MAP)
    result = _sorted_entries(entries)
    _log_kept("Operational report", filename, len(result), stats)
    return result


def parse_operational_report(data: bytes, filename: str = "") -> List[DailyEntry]:
    """Daily KPI rows from the first sheet of an operational export."""
    return operational_from_sheets(load_document(data, filename), filename)


def kpi_import_from_sheets(sheets: Dict[str, pd.DataFrame], filename: str = "") -> List[DailyEntry]:
    merged: Dict[str, DailyEntry] = {}
    totals = {"summary": 0, "no_date": 0, "sparse": 0}
    for name, df in sheets.items():
        # Delimited text: lines with fewer than three cells are notes, not data
        min_cells = 3 if name == TEXT_SHEET_NAME else 0
        entries, stats = _extract_daily_entries(locate(df, name), KPI_IMPORT_HEADER_MAP, min_cells)
        merged.update(entries)
        for k, v in stats.items():
            totals[k] += v
    result = _sorted_entries(merged)
    _log_kept("KPI import", filename, len(result), totals)
    return result


def parse_kpi_import(data: bytes, filename: str = "") -> List[DailyEntry]:
    """
    KPI sheet import (CSV or workbook).  Every tab is read; a later tab
    overwrites an earlier one for the same date.
    """
    return kpi_import_from_sheets(load_document(data, filename), filename)


# ══════════════════════════════════════════════════════════════════════════════
# SERVICE report (monthly, three channel sheets)
# ══════════════════════════════════════════════════════════════════════════════

_CHANNEL_SHEETS: List[Tuple[str, List[str]]] = [
    ("delivery", ["delivery", "bezorging", "bezorgen"]),
    ("pickup",   ["pickup", "afhalen"]),
    ("takeaway", ["take away", "takeaway", "meenemen"]),
]

_SERVICE_KEYWORDS = ["order number", "order amount", "bedrag", "phone number"]
_ORDER_NUMBER = ["Order number", "Ordernummer"]
_ORDER_AMOUNT = ["Order amount (incl VAT)", "Order amount", "Bedrag incl. BTW"]
_NET_AMOUNT = ["Netto", "Net amount", "Netto bedrag"]
_WAITING_TIME = ["Waiting time", "Wachttijd"]
_MAKE_TIME = ["Minutes", "Make time", "Bereidtijd"]
_DRIVE_TIME = ["Driving time", "Rijtijd", "Drive time"]
_ORDERS_PER_RUN = ["Orders per run", "Orders per rit"]
_AVERAGE_MARKERS = ("averages", "gemiddelden")


def _find_sheet(sheets: Dict[str, pd.DataFrame], names: Sequence[str]) -> Optional[str]:
    for sheet_name in sheets:
        if sheet_name.strip().lower() in names:
            return sheet_name
    return None


class _Mean:
    """Running mean over observed values."""

    def __init__(self):
        self.total = 0.0
        self.count = 0

    def add(self, v: Optional[float]) -> None:
        if v is not None:
            self.total += v
            self.count += 1

    def value(self, default: float = 0.0) -> float:
        return round2(self.total / self.count) if self.count else default


def service_from_sheets(sheets: Dict[str, pd.DataFrame], filename: str = "") -> Optional[MonthlyAggregate]:
    gross = net = 0.0
    counts = {channel: 0 for channel, _ in _CHANNEL_SHEETS}
    wait, make, drive, per_run = _Mean(), _Mean(), _Mean(), _Mean()
    within_30 = 0
    skipped = 0

    for channel, names in _CHANNEL_SHEETS:
        sheet_name = _find_sheet(sheets, names)
        if sheet_name is None:
            logger.warning("Service report '%s': no %s sheet", filename, channel)
            continue
        sheet = locate(sheets[sheet_name], sheet_name, _SERVICE_KEYWORDS)
        cols = {
            "order": [find_column(sheet.columns, _ORDER_NUMBER)],
            "amount": resolve_columns(sheet.columns, [("_", _ORDER_AMOUNT)])["_"],
            "net": resolve_columns(sheet.columns, [("_", _NET_AMOUNT)])["_"],
            "wait": resolve_columns(sheet.columns, [("_", _WAITING_TIME)])["_"],
            "make": resolve_columns(sheet.columns, [("_", _MAKE_TIME)])["_"],
            "drive": resolve_columns(sheet.columns, [("_", _DRIVE_TIME)])["_"],
            "per_run": resolve_columns(sheet.columns, [("_", _ORDERS_PER_RUN)])["_"],
        }
        order_key = cols["order"][0]

        for row in sheet.rows:
            order_no = _clean(row.get(order_key)) if order_key else ""
            if not order_no or order_no.lower() in _AVERAGE_MARKERS:
                skipped += 1
                continue
            amount = parse_locale_number(first_value(row, cols["amount"]))
            if amount is None or amount <= 0:
                skipped += 1
                logger.debug("Service report: order %s has no positive amount", order_no)
                continue
            net_amount = parse_locale_number(first_value(row, cols["net"]))
            gross += amount
            net += net_amount if net_amount is not None else amount / FOOD_VAT_DIVISOR
            counts[channel] += 1

            if channel != "delivery":
                continue
            wait_mins = parse_locale_number(first_value(row, cols["wait"]))
            wait.add(wait_mins)
            if wait_mins is not None and wait_mins <= 30:
                within_30 += 1
            make.add(parse_locale_number(first_value(row, cols["make"])))
            drive.add(parse_locale_number(first_value(row, cols["drive"])))
            per_run.add(parse_locale_number(first_value(row, cols["per_run"])))

    total_orders = sum(counts.values())
    logger.info(
        "Service report '%s': %d orders kept (%d delivery, %d pickup, %d take-away), %d rows skipped",
        filename, total_orders, counts["delivery"], counts["pickup"], counts["takeaway"], skipped,
    )
    if total_orders == 0:
        return None

    return MonthlyAggregate(
        gross_revenue=round2(gross),
        net_revenue=round2(net),
        total_orders=total_orders,
        delivery_orders=counts["delivery"],
        pickup_orders=counts["pickup"],
        takeaway_orders=counts["takeaway"],
        delivery_rate_30min=round2(within_30 / wait.count * 100) if wait.count else 0.0,
        avg_waiting_time_mins=wait.value(),
        avg_make_time_mins=make.value(),
        avg_drive_time_mins=drive.value(),
        avg_orders_per_run=per_run.value(default=1.0),
    )


def parse_service_report(data: bytes, filename: str = "") -> Optional[MonthlyAggregate]:
    """Month totals over the Delivery / Pickup / Take Away sheets; None when no order counts."""
    return service_from_sheets(load_document(data, filename), filename)


# ══════════════════════════════════════════════════════════════════════════════
# TIME_KEEPING and TIMEKEEPING_SUMMARY
# ══════════════════════════════════════════════════════════════════════════════

_TIMEKEEPING_KEYWORDS = ["datum", "date", "naam", "name", "uren", "hours"]
_HOURS = ["Totaal uren", "Total hours", "Hours"]
_EMPLOYEE = ["Naam", "Name", "Employee"]
_COST = ["Kosten", "Cost", "Total cost", "Totaal kosten"]


def timekeeping_from_sheets(sheets: Dict[str, pd.DataFrame], filename: str = "") -> List[DailyLabourMetric]:
    if not sheets:
        return []
    name, df = next(iter(sheets.items()))
    sheet = locate(df, name, _TIMEKEEPING_KEYWORDS)
    hours_keys = resolve_columns(sheet.columns, [("_", _HOURS)])["_"]
    name_keys = resolve_columns(sheet.columns, [("_", _EMPLOYEE)])["_"]

    first_column = sheet.columns[0] if sheet.columns else None

    hours_by_date: Dict[str, float] = {}
    staff_by_date: Dict[str, set] = {}
    skipped = 0
    for row in sheet.rows:
        iso = _row_date(row)
        if iso is None or is_summary_row(row, first_column):
            skipped += 1
            continue
        hours = parse_hours_duration(first_value(row, hours_keys))
        if hours is None or hours <= 0:
            skipped += 1
            continue
        # Identity is the trimmed name as exported; no case folding
        employee = _clean(first_value(row, name_keys)) or "unknown"
        hours_by_date[iso] = hours_by_date.get(iso, 0.0) + hours
        staff_by_date.setdefault(iso, set()).add(employee)

    result = [
        DailyLabourMetric(date=d, total_hours=round2(hours_by_date[d]), employee_count=len(staff_by_date[d]))
        for d in sorted(hours_by_date)
    ]
    logger.info("Timekeeping report '%s': %d days kept, %d rows skipped", filename, len(result), skipped)
    return result


def parse_timekeeping_report(data: bytes, filename: str = "") -> List[DailyLabourMetric]:
    """Punch rows grouped per date: summed hours and distinct employee count."""
    return timekeeping_from_sheets(load_document(data, filename), filename)


def timekeeping_summary_from_sheets(sheets: Dict[str, pd.DataFrame], filename: str = "") -> Optional[HourlyRateInfo]:
    if not sheets:
        return None
    name, df = next(iter(sheets.items()))
    sheet = locate(df, name, _TIMEKEEPING_KEYWORDS + ["kosten", "cost"])
    hours_keys = resolve_columns(sheet.columns, [("_", _HOURS)])["_"]
    cost_keys = resolve_columns(sheet.columns, [("_", _COST)])["_"]

    first_column = sheet.columns[0] if sheet.columns else None

    total_hours = total_cost = 0.0
    for row in sheet.rows:
        if is_summary_row(row, first_column):
            continue
        hours = parse_hours_duration(first_value(row, hours_keys))
        cost = parse_locale_number(first_value(row, cost_keys))
        if hours is not None and hours > 0:
            total_hours += hours
        if cost is not None and cost > 0:
            total_cost += cost

    logger.info("Timekeeping summary '%s': %.2f hours, %.2f cost", filename, total_hours, total_cost)
    if total_hours == 0:
        return None
    return HourlyRateInfo(
        avg_hourly_rate=round2(total_cost / total_hours),
        total_cost=round2(total_cost),
        total_hours=round2(total_hours),
    )


def parse_timekeeping_summary(data: bytes, filename: str = "") -> Optional[HourlyRateInfo]:
    """Average hourly rate = total cost / total hours; None without hours."""
    return timekeeping_summary_from_sheets(load_document(data, filename), filename)


# ══════════════════════════════════════════════════════════════════════════════
# VARIANCE report (monthly food cost)
# ══════════════════════════════════════════════════════════════════════════════

_VARIANCE_KEYWORDS = ["categorie", "category", "ideaal", "ideal", "werkelijk", "actual", "kosten", "cost"]
_VAR_CATEGORY = ["Categorie", "Category", "Product", "Productgroep", "Groep"]
_VAR_IDEAL = ["Ideaal", "Ideal", "Ideaal gebruik", "Ideal usage", "Ideaal kosten"]
_VAR_ACTUAL = ["Werkelijk", "Actual", "Werkelijk gebruik", "Actual usage", "Werkelijke kosten"]
_VAR_VARIANCE = ["Verschil", "Variance", "Afwijking", "Difference"]
_VAR_VARIANCE_PCT = ["Verschil %", "Variance %", "Afwijking %", "Verschil%", "Variance%"]
_VAR_COST = ["Kosten", "Cost", "Totaal kosten", "Total cost", "Bedrag", "Amount"]
_VAR_FOOD_COST_PCT = ["Food cost %", "Food cost%", "Foodcost %", "Foodcost%", "FC %", "FC%", "Kosten %"]

_PERIOD_IN_NAME = re.compile(r"(\d{4})-(\d{2})")


def _keys(column: Optional[str]) -> List[str]:
    return [column] if column else []


def _find_total_row(rows: List[Dict[str, Any]], category_col: Optional[str]) -> Optional[Dict[str, Any]]:
    for row in rows:
        if category_col:
            candidates = [row.get(category_col)]
        else:
            candidates = [v for k, v in row.items() if k != DATE_FIELD][:2]
        if any(is_total_marker(v) for v in candidates):
            return row
    return None


def variance_period(sheet_names: Sequence[str], created: Optional[datetime] = None) -> str:
    """YYYY-MM from a sheet name, else the workbook creation date, else this month."""
    for name in sheet_names:
        m = _PERIOD_IN_NAME.search(name)
        if m:
            return f"{m.group(1)}-{m.group(2)}"
    if created is not None:
        return created.strftime("%Y-%m")
    return date.today().strftime("%Y-%m")


def variance_from_sheets(
    sheets: Dict[str, pd.DataFrame],
    filename: str = "",
    created: Optional[datetime] = None,
) -> Optional[FoodCostData]:
    if not sheets:
        return None
    name, df = next(iter(sheets.items()))
    sheet = locate(df, name, _VARIANCE_KEYWORDS)
    if not sheet.rows:
        return None

    category_col = find_column(sheet.columns, _VAR_CATEGORY)
    cost_keys = _keys(find_column(sheet.columns, _VAR_COST)) + _keys(find_column(sheet.columns, _VAR_ACTUAL))
    ideal_keys = _keys(find_column(sheet.columns, _VAR_IDEAL))
    variance_keys = _keys(find_column(sheet.columns, _VAR_VARIANCE))
    variance_pct_keys = _keys(find_column(sheet.columns, _VAR_VARIANCE_PCT))
    food_pct_keys = _keys(find_column(sheet.columns, _VAR_FOOD_COST_PCT))

    total_row = _find_total_row(sheet.rows, category_col)
    if total_row is not None:
        total_cost = parse_locale_number(first_value(total_row, cost_keys)) or 0.0
        ideal = parse_locale_number(first_value(total_row, ideal_keys)) or 0.0
        # Signed comparison figures; never fraction-scaled
        variance = parse_locale_number(first_value(total_row, variance_keys))
        if variance is None:
            variance = total_cost - ideal
        variance_pct = parse_locale_number(first_value(total_row, variance_pct_keys))
        if variance_pct is None:
            variance_pct = (total_cost - ideal) / ideal * 100 if ideal > 0 else 0.0
        food_cost_pct = parse_percentage(first_value(total_row, food_pct_keys))
    else:
        total_cost = ideal = 0.0
        for row in sheet.rows:
            cost = parse_locale_number(first_value(row, cost_keys))
            if cost is not None:
                total_cost += cost
            row_ideal = parse_locale_number(first_value(row, ideal_keys))
            if row_ideal is not None:
                ideal += row_ideal
        variance = total_cost - ideal
        variance_pct = (total_cost - ideal) / ideal * 100 if ideal > 0 else 0.0
        food_cost_pct = 0.0

    logger.info(
        "Variance report '%s': total row %s, food cost %.2f",
        filename, "found" if total_row is not None else "not found", total_cost,
    )
    if total_cost == 0:
        return None

    return FoodCostData(
        period=variance_period(list(sheets), created),
        total_food_cost=round2(total_cost),
        food_cost_pct=round2(food_cost_pct),
        ideal_usage_cost=round2(ideal),
        variance_cost=round2(variance),
        variance_pct=round2(variance_pct),
    )


def parse_variance_report(data: bytes, filename: str = "") -> Optional[FoodCostData]:
    """Monthly food cost from the variance report's total row (or its own sum)."""
    return variance_from_sheets(load_document(data, filename), filename, workbook_created(data))


# ══════════════════════════════════════════════════════════════════════════════
# Delivery order list (per-order waiting times)
# ══════════════════════════════════════════════════════════════════════════════

_REPORT_DATE_IN_NAME = re.compile(r"Service_report_(\d{2})-(\d{2})-(\d{4})")
_PHONE = ["Phone number", "Telefoonnummer"]
_ADDRESS = ["Adres", "Address"]
_ORDER_PLACED = ["Order placed"]
_COMPLETED = ["Completed"]
_DRIVER = ["Driver", "Bezorger"]


def report_date_from_filename(filename: str) -> Optional[date]:
    m = _REPORT_DATE_IN_NAME.search(filename or "")
    if not m:
        return None
    try:
        return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    except ValueError:
        return None


def _at(day: date, t: Optional[time]) -> Optional[datetime]:
    return datetime.combine(day, t) if t is not None else None


def delivery_orders_from_sheets(sheets: Dict[str, pd.DataFrame], filename: str = "") -> List[DeliveryOrder]:
    sheet_name = _find_sheet(sheets, _CHANNEL_SHEETS[0][1])
    if sheet_name is None:
        logger.warning("No Delivery sheet found in '%s'", filename)
        return []

    report_day = report_date_from_filename(filename)
    if report_day is None:
        logger.warning("Could not extract date from filename '%s'; using today", filename)
        report_day = date.today()
    iso = report_day.isoformat()

    sheet = locate(sheets[sheet_name], sheet_name, _SERVICE_KEYWORDS)
    col = {name: find_column(sheet.columns, aliases) for name, aliases in (
        ("order", _ORDER_NUMBER), ("phone", _PHONE), ("address", _ADDRESS),
        ("placed", _ORDER_PLACED), ("completed", _COMPLETED), ("driver", _DRIVER),
        ("wait", _WAITING_TIME),
    )}

    orders: List[DeliveryOrder] = []
    skipped = 0
    for row in sheet.rows:
        order_no = _clean(row.get(col["order"])) if col["order"] else ""
        phone = _clean(row.get(col["phone"])) if col["phone"] else ""
        if not order_no or not phone:
            skipped += 1
            continue
        wait_mins = parse_locale_number(row.get(col["wait"])) if col["wait"] else None
        if wait_mins is None or wait_mins < 0:
            skipped += 1
            continue
        placed = _at(report_day, parse_clock_time(row.get(col["placed"]) if col["placed"] else None))
        orders.append(DeliveryOrder(
            order_number=order_no,
            phone_number=phone,
            waiting_time_mins=wait_mins,
            order_placed=placed or datetime.combine(report_day, time()),
            completed=_at(report_day, parse_clock_time(row.get(col["completed"]) if col["completed"] else None)),
            driver_name=_clean(row.get(col["driver"])) or None,
            address=_clean(row.get(col["address"])) or None,
            date=iso,
        ))

    logger.info("Delivery orders '%s': %d kept, %d rows skipped", filename, len(orders), skipped)
    return orders


def parse_delivery_orders(data: bytes, filename: str = "") -> List[DeliveryOrder]:
    """Per-order waiting times from the Delivery sheet of a daily service report."""
    return delivery_orders_from_sheets(load_document(data, filename), filename)


def group_orders_by_month(orders: Sequence[DeliveryOrder]) -> "OrderedDict[str, List[DeliveryOrder]]":
    """{YYYY-MM: orders}, each month sorted by waiting time, slowest first."""
    grouped: Dict[str, List[DeliveryOrder]] = {}
    for order in orders:
        grouped.setdefault(order.date[:7], []).append(order)
    return OrderedDict(
        (month, sorted(grouped[month], key=lambda o: o.waiting_time_mins, reverse=True))
        for month in sorted(grouped)
    )


def longest_wait_times(orders: Sequence[DeliveryOrder], limit: int = 10) -> List[DeliveryOrder]:
    return sorted(orders, key=lambda o: o.waiting_time_mins, reverse=True)[:limit]


# ══════════════════════════════════════════════════════════════════════════════
# Report-type detection and dispatch
# ══════════════════════════════════════════════════════════════════════════════

# Exact (lower-cased) header cells that signal a report family
_TYPE_SIGNALS: Dict[str, List[str]] = {
    OPERATIONAL: [
        "netto omzet", "bruto omzet", "gepland omzet", "arbeidskosten", "% arbeidskosten",
        "gewerkte uren", "gewerte uren", "arbeidsproduc", "verantwoordelijk", "kasverschil",
        "30 min bezorgd",
    ],
    KPI_IMPORT: [
        "gepland netto", "bruto bk =tb+uber", "bk omzet", "€ arbeidskosten", "gepland ak%",
        "productiviteit", "gem. ow", "20 min", "30 min", "mt", "dt",
    ],
    SERVICE: [
        "order number", "order amount (incl vat)", "order amount", "waiting time",
        "driving time", "orders per run", "phone number",
    ],
    TIME_KEEPING: ["totaal uren", "datum", "start", "einde", "pauzetijd", "vestiging", "code"],
    TIMEKEEPING_SUMMARY: ["totaal uren", "kosten", "cost", "total cost", "totaal kosten"],
    VARIANCE: [
        "categorie", "category", "productgroep", "ideaal", "ideal", "ideaal gebruik",
        "werkelijk", "actual", "verschil", "variance", "afwijking", "verschil %",
    ],
}

# Channel tabs only appear in service reports
_SHEET_NAME_BOOSTS: Dict[str, str] = {
    name: SERVICE for _, names in _CHANNEL_SHEETS for name in names
}

# First matching fragment of the lower-cased file name wins
_FILENAME_HINTS: List[Tuple[str, str]] = [
    ("timekeeping_summary", TIMEKEEPING_SUMMARY),
    ("timekeeping summary", TIMEKEEPING_SUMMARY),
    ("time_keeping", TIME_KEEPING),
    ("timekeeping", TIME_KEEPING),
    ("service", SERVICE),
    ("variance", VARIANCE),
    ("operational", OPERATIONAL),
    ("kpi", KPI_IMPORT),
]


def detect_report_type(sheets: Dict[str, pd.DataFrame], filename: str = "") -> str:
    """Score sheet names, the file name and header cells; highest score wins."""
    scores: Dict[str, int] = {k: 0 for k in _TYPE_SIGNALS}

    fname = (filename or "").lower()
    for fragment, report_type in _FILENAME_HINTS:
        if fragment in fname:
            scores[report_type] += 8
            break

    for sheet_name, df in sheets.items():
        sn_lower = sheet_name.lower().strip()
        if sn_lower in _SHEET_NAME_BOOSTS:
            scores[_SHEET_NAME_BOOSTS[sn_lower]] += 4
        # Delimited text is only ever the hand-kept KPI sheet
        if sheet_name == TEXT_SHEET_NAME:
            scores[KPI_IMPORT] += 8

        # Only the first 25 rows are scanned
        cells = {
            re.sub(r"\s+", " ", _clean(v)).lower()
            for row in df.head(25).itertuples(index=False, name=None)
            for v in row
            if isinstance(v, str) and not _is_blank(v)
        }
        for report_type, signals in _TYPE_SIGNALS.items():
            scores[report_type] += sum(1 for sig in signals if sig in cells)

    best = max(scores, key=scores.get)
    return best if scores[best] > 0 else UNKNOWN


def parse_report(data: bytes, report_type: Optional[str] = None, filename: str = "") -> Tuple[str, Any]:
    """
    Decode ``data`` once, detect the report family when not given, and run
    the matching extractor.  Returns ``(report_type, result)``; an unknown
    report yields ``(UNKNOWN, None)``.
    """
    sheets = load_document(data, filename)
    if report_type is None:
        report_type = detect_report_type(sheets, filename) if sheets else UNKNOWN
    logger.info("Parsing '%s' as %s", filename, report_type)

    if report_type == OPERATIONAL:
        return report_type, operational_from_sheets(sheets, filename)
    elif report_type == KPI_IMPORT:
        return report_type, kpi_import_from_sheets(sheets, filename)
    elif report_type == SERVICE:
        return report_type, service_from_sheets(sheets, filename)
    elif report_type == TIME_KEEPING:
        return report_type, timekeeping_from_sheets(sheets, filename)
    elif report_type == TIMEKEEPING_SUMMARY:
        return report_type, timekeeping_summary_from_sheets(sheets, filename)
    elif report_type == VARIANCE:
        return report_type, variance_from_sheets(sheets, filename, workbook_created(data))
    return UNKNOWN, None
