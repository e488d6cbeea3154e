"""
kpi_summary.py — dashboard aggregates over a period's daily entries
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Sequence, Tuple

from models import DailyEntry, DeliverySummary, KPISummary, PeriodComparison

_WEEK_KEY = re.compile(r"^(\d{4})-W(\d{1,2})$")
_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")


def _ratio(num: float, den: float, scale: float = 1.0) -> float:
    return num / den * scale if den > 0 else 0.0


def summarize(entries: Sequence[DailyEntry]) -> KPISummary:
    """Period totals and ratios; a ratio with a zero denominator is 0."""
    net = sum(e.net_revenue for e in entries)
    planned = sum(e.planned_revenue for e in entries)
    labour = sum(e.labour_cost for e in entries)
    planned_labour = sum(e.planned_labour_cost for e in entries)
    food = sum(e.food_cost for e in entries)
    orders = sum(e.order_count for e in entries)
    hours = sum(e.worked_hours for e in entries)
    burger_kitchen = sum(e.burger_kitchen_revenue or 0.0 for e in entries)

    avg_labour_pct = _ratio(labour, net, 100)
    avg_planned_labour_pct = _ratio(planned_labour, planned, 100)
    prime = food + labour

    return KPISummary(
        total_net_revenue=net,
        total_planned_revenue=planned,
        revenue_variance=_ratio(net - planned, planned, 100),
        total_burger_kitchen_revenue=burger_kitchen,
        avg_labour_pct=avg_labour_pct,
        avg_planned_labour_pct=avg_planned_labour_pct,
        labour_variance=avg_labour_pct - avg_planned_labour_pct,
        avg_food_cost_pct=_ratio(food, net, 100),
        total_food_cost=food,
        avg_prime_cost_pct=_ratio(prime, net, 100),
        total_prime_cost=prime,
        total_orders=orders,
        avg_order_value=_ratio(net, orders),
        avg_labour_productivity=_ratio(net, hours),
    )


def delivery_summary(entries: Sequence[DailyEntry]) -> DeliverySummary:
    count = len(entries)
    if count == 0:
        return DeliverySummary()
    return DeliverySummary(
        avg_delivery_rate_30min=sum(e.delivery_rate_30min for e in entries) / count,
        avg_on_time_delivery_mins=sum(e.on_time_delivery_mins for e in entries) / count,
        avg_make_time_mins=sum(e.make_time_mins for e in entries) / count,
        avg_drive_time_mins=sum(e.drive_time_mins for e in entries) / count,
        total_orders=sum(e.order_count for e in entries),
    )


def compute_period_comparison(current: KPISummary, previous: KPISummary) -> PeriodComparison:
    """
    Revenue, orders and productivity change as relative %; labour, food and
    prime cost change in percentage points.
    """
    def pct_change(curr: float, prev: float) -> float:
        return (curr - prev) / prev * 100 if prev > 0 else 0.0

    return PeriodComparison(
        revenue_change=pct_change(current.total_net_revenue, previous.total_net_revenue),
        labour_change=current.avg_labour_pct - previous.avg_labour_pct,
        orders_change=pct_change(current.total_orders, previous.total_orders),
        productivity_change=pct_change(current.avg_labour_productivity, previous.avg_labour_productivity),
        food_cost_change=current.avg_food_cost_pct - previous.avg_food_cost_pct,
        prime_cost_change=current.avg_prime_cost_pct - previous.avg_prime_cost_pct,
    )


def period_date_range(view: str, key: str) -> Tuple[date, date]:
    """
    Inclusive (start, end) for a ``week`` key ('2026-W06', Monday–Sunday)
    or a ``month`` key ('2026-03').  Raises ValueError for a malformed key.
    """
    if view == "week":
        m = _WEEK_KEY.match(key)
        if not m:
            raise ValueError(f"invalid week key: {key!r}")
        start = date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
        return start, start + timedelta(days=6)
    if view == "month":
        m = _MONTH_KEY.match(key)
        if not m:
            raise ValueError(f"invalid month key: {key!r}")
        start = date(int(m.group(1)), int(m.group(2)), 1)
        following = date(start.year + start.month // 12, start.month % 12 + 1, 1)
        return start, following - timedelta(days=1)
    raise ValueError(f"invalid period view: {view!r}")


def previous_period(view: str, key: str) -> str:
    """Key of the period before ``key``."""
    start, _ = period_date_range(view, key)
    if view == "week":
        year, week, _ = (start - timedelta(days=7)).isocalendar()
        return f"{year}-W{week:02d}"
    prev = start - timedelta(days=1)
    return f"{prev.year}-{prev.month:02d}"
