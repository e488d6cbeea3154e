"""
reconcile.py — monthly → daily distribution and canonical merge
================================================================
Service metrics only exist per month; worked hours exist per day.  Revenue
and orders are spread over the days of the month by each day's share of the
month's hours.  Labour cost is not spread: it is hours × hourly rate, since
hours are the authoritative daily signal.  Delivery timing has no daily
signal at all and is copied onto every day.

Merging works field by field: for each date the first source (in priority
order) with a non-zero / non-null value provides that field.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from config import ReconcileConfig
from models import (
    MERGEABLE_FIELDS,
    DailyEntry,
    DailyFoodCostAllocation,
    DailyLabourMetric,
    FoodCostData,
    HourlyRateInfo,
    MonthlyAggregate,
)
from normalizers import round2

logger = logging.getLogger(__name__)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def distribute_monthly(
    monthly: Optional[MonthlyAggregate],
    daily_labour: Sequence[DailyLabourMetric],
    hourly_rate: float,
    config: ReconcileConfig = ReconcileConfig(),
) -> List[DailyEntry]:
    """
    One DailyEntry per labour day.  Returns [] when the month has no hours.

    Order counts are rounded per day, so their sum may differ from the
    monthly total by a small residual.
    """
    total_hours = sum(dl.total_hours for dl in daily_labour)
    if total_hours <= 0:
        return []

    entries: List[DailyEntry] = []
    for dl in sorted(daily_labour, key=lambda d: d.date):
        gross = round2(monthly.gross_revenue * dl.total_hours / total_hours) if monthly else 0.0
        net = round2(monthly.net_revenue * dl.total_hours / total_hours) if monthly else 0.0
        orders = _round_half_up(monthly.total_orders * dl.total_hours / total_hours) if monthly else 0
        labour_cost = round2(dl.total_hours * hourly_rate)

        entries.append(DailyEntry(
            date=dl.date,
            gross_revenue=gross,
            net_revenue=net,
            labour_cost=labour_cost,
            planned_labour_pct=None,
            labour_pct=round2(labour_cost / net * 100) if net > 0 else 0.0,
            worked_hours=dl.total_hours,
            labour_productivity=round2(net / dl.total_hours) if dl.total_hours > 0 else 0.0,
            delivery_rate_30min=monthly.delivery_rate_30min if monthly else 0.0,
            on_time_delivery_mins=monthly.avg_waiting_time_mins if monthly else 0.0,
            make_time_mins=monthly.avg_make_time_mins if monthly else 0.0,
            drive_time_mins=monthly.avg_drive_time_mins if monthly else 0.0,
            order_count=orders,
            avg_order_value=round2(net / orders) if orders > 0 else 0.0,
            orders_per_run=monthly.avg_orders_per_run if monthly else 1.0,
            cash_difference=None,
            manager=config.default_manager,
        ))
    return entries


def distribute_food_cost_by_revenue(
    monthly_food_cost: float,
    daily_revenues: Dict[str, float],
) -> List[DailyFoodCostAllocation]:
    """Split the month's food cost by revenue share; every day gets the monthly percentage."""
    total_revenue = sum(daily_revenues.values())
    if total_revenue <= 0 or not daily_revenues:
        even = round2(monthly_food_cost / max(len(daily_revenues), 1))
        return [DailyFoodCostAllocation(date=d, food_cost=even, food_cost_pct=0.0) for d in daily_revenues]

    monthly_pct = round2(monthly_food_cost / total_revenue * 100)
    return [
        DailyFoodCostAllocation(
            date=d,
            food_cost=round2(revenue / total_revenue * monthly_food_cost),
            food_cost_pct=monthly_pct,
        )
        for d, revenue in daily_revenues.items()
    ]


def apply_food_cost(
    entries: Iterable[DailyEntry],
    allocations: Iterable[DailyFoodCostAllocation],
    overwrite: bool = True,
) -> List[DailyEntry]:
    by_date = {a.date: a for a in allocations}
    result = []
    for e in entries:
        alloc = by_date.get(e.date)
        if alloc is not None and (overwrite or not e.food_cost):
            e = replace(e, food_cost=alloc.food_cost, food_cost_pct=alloc.food_cost_pct)
        result.append(e)
    return result


def dedupe_last_wins(entries: Iterable[DailyEntry]) -> List[DailyEntry]:
    """Sorted by date; a later entry for the same date replaces the earlier one."""
    by_date: Dict[str, DailyEntry] = {}
    for e in entries:
        by_date[e.date] = e
    return [by_date[d] for d in sorted(by_date)]


def _has_value(v) -> bool:
    return v is not None and v != 0 and v != ""


def merge_entries(*sources: Iterable[DailyEntry]) -> List[DailyEntry]:
    """
    Merge entry lists given in priority order (most authoritative first).
    Each field comes from the first source holding a non-zero / non-null
    value for it.  Output is sorted by date with no duplicates.
    """
    candidates: Dict[str, List[DailyEntry]] = {}
    for source in sources:
        for e in dedupe_last_wins(source):
            candidates.setdefault(e.date, []).append(e)

    merged: List[DailyEntry] = []
    for d in sorted(candidates):
        entries = candidates[d]
        if len(entries) == 1:
            merged.append(entries[0])
            continue
        values = {}
        for name in MERGEABLE_FIELDS:
            values[name] = next(
                (getattr(e, name) for e in entries if _has_value(getattr(e, name))),
                getattr(entries[0], name),
            )
        merged.append(DailyEntry(date=d, **values))
    return merged


def reconcile_month(
    period: str,
    monthly: Optional[MonthlyAggregate],
    daily_labour: Sequence[DailyLabourMetric],
    rate_info: Optional[HourlyRateInfo],
    config: ReconcileConfig,
    food_cost: Optional[FoodCostData] = None,
    authoritative: Iterable[DailyEntry] = (),
) -> List[DailyEntry]:
    """
    Build the daily entries of one ``YYYY-MM`` period from all its reports.

    Authoritative daily entries (operational / KPI import) win field by
    field over the distributed ones.  Food cost is allocated by the merged
    revenue and only fills days that carry no food cost of their own.
    """
    labour = [dl for dl in daily_labour if dl.date[:7] == period]
    if rate_info is not None and rate_info.avg_hourly_rate > 0:
        rate = rate_info.avg_hourly_rate
    else:
        rate = config.default_hourly_rate
        logger.info("No hourly rate for %s; using default %.2f", period, rate)

    distributed = distribute_monthly(monthly, labour, rate, config)
    direct = [e for e in authoritative if e.date[:7] == period]
    merged = merge_entries(direct, distributed)

    if food_cost is not None and merged:
        allocations = distribute_food_cost_by_revenue(
            food_cost.total_food_cost, {e.date: e.net_revenue for e in merged},
        )
        merged = apply_food_cost(merged, allocations, overwrite=False)

    result = [e for e in merged if e.date[:7] >= config.earliest_month]
    logger.info(
        "Reconciled %s: %d distributed, %d direct, %d entries (rate %.2f)",
        period, len(distributed), len(direct), len(result), rate,
    )
    return result
