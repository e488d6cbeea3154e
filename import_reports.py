#!/usr/bin/env python3
"""
Bulk report import
CLI: parse every portal report in a directory, reconcile each month into
daily KPI entries and upsert them for one restaurant.

    python import_reports.py reports/ --restaurant rosmalen --dry-run
"""
import argparse
import concurrent.futures
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from config import get_settings
from db import upsert_kpi_entries
from errors import MalformedDocumentError, StorageError
from models import DailyEntry, DailyLabourMetric, FoodCostData, HourlyRateInfo, MonthlyAggregate
from reconcile import reconcile_month
from report_parsers import (
    KPI_IMPORT,
    OPERATIONAL,
    SERVICE,
    TIME_KEEPING,
    TIMEKEEPING_SUMMARY,
    UNKNOWN,
    VARIANCE,
    parse_report,
)

logger = logging.getLogger(__name__)

REPORT_SUFFIXES = {".xlsx", ".xls", ".csv"}

_DAY_MONTH_YEAR = re.compile(r"(\d{2})-(\d{2})-(\d{4})")
_YEAR_MONTH = re.compile(r"(?<!\d)(\d{4})-(\d{2})(?!\d)")

PREVIEW_COLUMNS = [
    "date", "day_name", "net_revenue", "labour_cost", "labour_pct",
    "worked_hours", "food_cost", "order_count", "delivery_rate_30min",
]


@dataclass
class MonthReports:
    """Everything parsed for one YYYY-MM period."""
    monthly: Optional[MonthlyAggregate] = None
    labour: List[DailyLabourMetric] = field(default_factory=list)
    rate: Optional[HourlyRateInfo] = None
    food_cost: Optional[FoodCostData] = None
    direct: List[DailyEntry] = field(default_factory=list)


def period_from_filename(filename: str) -> Optional[str]:
    """YYYY-MM from 'DD-MM-YYYY' or 'YYYY-MM' in a file name."""
    m = _DAY_MONTH_YEAR.search(filename)
    if m and 1 <= int(m.group(2)) <= 12:
        return f"{m.group(3)}-{m.group(2)}"
    m = _YEAR_MONTH.search(filename)
    if m and 1 <= int(m.group(2)) <= 12:
        return f"{m.group(1)}-{m.group(2)}"
    return None


def _parse_file(path: Path):
    return parse_report(path.read_bytes(), filename=path.name)


def _add(months: Dict[str, MonthReports], name: str, report_type: str, result, period: Optional[str]) -> None:
    if report_type in (OPERATIONAL, KPI_IMPORT):
        for e in result:
            months.setdefault(e.date[:7], MonthReports()).direct.append(e)
    elif report_type == TIME_KEEPING:
        for dl in result:
            months.setdefault(dl.date[:7], MonthReports()).labour.append(dl)
    elif report_type == VARIANCE:
        months.setdefault(period or result.period, MonthReports()).food_cost = result
    elif period is None:
        logger.warning("Skipping %s report '%s': no period in file name", report_type, name)
    elif report_type == SERVICE:
        month = months.setdefault(period, MonthReports())
        if month.monthly is not None:
            logger.warning("Second service report for %s ('%s') replaces the first", period, name)
        month.monthly = result
    elif report_type == TIMEKEEPING_SUMMARY:
        months.setdefault(period, MonthReports()).rate = result


def collect_reports(directory: Path, workers: int = 4, period: Optional[str] = None) -> Dict[str, MonthReports]:
    """Parse all reports in ``directory`` concurrently and group them per month."""
    paths = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in REPORT_SUFFIXES)
    logger.info("Found %d report files in %s", len(paths), directory)

    parsed = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_path = {executor.submit(_parse_file, p): p for p in paths}
        for future in concurrent.futures.as_completed(future_to_path):
            path = future_to_path[future]
            try:
                parsed[path] = future.result()
            except MalformedDocumentError as e:
                logger.warning("Skipping unreadable file: %s", e)

    months: Dict[str, MonthReports] = {}
    # Sorted so that a later file name wins deterministically
    for path in sorted(parsed):
        report_type, result = parsed[path]
        if report_type == UNKNOWN:
            logger.warning("Skipping '%s': unrecognised report", path.name)
            continue
        if not result:
            logger.info("'%s' (%s) holds no usable data", path.name, report_type)
            continue
        _add(months, path.name, report_type, result, period or period_from_filename(path.name))
    return months


def _print_preview(period: str, entries: List[DailyEntry]) -> None:
    print(f"--- {period}: {len(entries)} entries ---")
    if entries:
        df = pd.DataFrame([e.to_dict() for e in entries])[PREVIEW_COLUMNS]
        print(df.to_string(index=False))
    print()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Import POS portal reports into daily KPI entries.",
    )
    parser.add_argument("directory", type=Path, help="Directory with .xlsx / .xls / .csv reports")
    parser.add_argument("--restaurant", default=None, help="Restaurant id (default: DEFAULT_RESTAURANT_ID)")
    parser.add_argument("--period", default=None, help="Force every monthly report into this YYYY-MM period")
    parser.add_argument("--dry-run", action="store_true", help="Print the reconciled entries instead of storing them")
    parser.add_argument("--workers", type=int, default=4, help="Files parsed in parallel")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not args.directory.is_dir():
        print(f"Error: directory not found: {args.directory}", file=sys.stderr)
        return 1
    if args.period and not re.fullmatch(r"\d{4}-\d{2}", args.period):
        print(f"Error: --period must be YYYY-MM, got {args.period!r}", file=sys.stderr)
        return 1

    settings = get_settings()
    config = settings.reconcile_config()
    restaurant_id = args.restaurant or settings.default_restaurant_id

    try:
        months = collect_reports(args.directory, max(args.workers, 1), args.period)
        total = 0
        for period in sorted(months):
            reports = months[period]
            entries = reconcile_month(
                period, reports.monthly, reports.labour, reports.rate, config,
                food_cost=reports.food_cost, authoritative=reports.direct,
            )
            if args.dry_run:
                _print_preview(period, entries)
            elif entries:
                total += upsert_kpi_entries(restaurant_id, entries, settings.upsert_batch_size)
    except StorageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.dry_run:
        print(f"Imported {total} entries for '{restaurant_id}' over {len(months)} month(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
