"""
models.py — typed records produced by the report extractors
============================================================
Dates travel as ISO 'YYYY-MM-DD' strings; percentages are on the 0–100 scale.
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional

from normalizers import dutch_day_name, iso_week_number

# Fields that take part in field-by-field merging of entries for the same date
MERGEABLE_FIELDS = (
    "planned_revenue", "gross_revenue", "net_revenue", "burger_kitchen_revenue",
    "planned_labour_cost", "labour_cost", "planned_labour_pct", "labour_pct",
    "worked_hours", "labour_productivity", "food_cost", "food_cost_pct",
    "delivery_rate_30min", "delivery_rate_20min", "on_time_delivery_mins",
    "make_time_mins", "drive_time_mins", "order_count", "avg_order_value",
    "orders_per_run", "cash_difference", "manager",
)


@dataclass
class DailyEntry:
    """One restaurant-day observation."""
    date: str
    day_name: str = ""
    iso_week: int = 0
    # Revenue
    planned_revenue: float = 0.0
    gross_revenue: float = 0.0
    net_revenue: float = 0.0
    burger_kitchen_revenue: Optional[float] = None
    # Labour
    planned_labour_cost: float = 0.0
    labour_cost: float = 0.0
    planned_labour_pct: Optional[float] = None
    labour_pct: float = 0.0
    worked_hours: float = 0.0
    labour_productivity: float = 0.0
    # Food cost
    food_cost: float = 0.0
    food_cost_pct: float = 0.0
    # Delivery
    delivery_rate_30min: float = 0.0
    delivery_rate_20min: Optional[float] = None
    on_time_delivery_mins: float = 0.0
    make_time_mins: float = 0.0
    drive_time_mins: float = 0.0
    # Orders
    order_count: int = 0
    avg_order_value: float = 0.0
    orders_per_run: float = 0.0
    # Meta
    cash_difference: Optional[float] = None
    manager: str = ""

    def __post_init__(self):
        if not self.day_name:
            self.day_name = dutch_day_name(self.date)
        if not self.iso_week:
            self.iso_week = iso_week_number(self.date)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_record(self, restaurant_id: str) -> Dict[str, Any]:
        """Row for the ``kpi_entries`` table."""
        record = self.to_dict()
        record["restaurant_id"] = restaurant_id
        record["week_number"] = record.pop("iso_week")
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "DailyEntry":
        names = {f.name for f in fields(cls)}
        data = {k: v for k, v in record.items() if k in names}
        if "week_number" in record:
            data["iso_week"] = record["week_number"]
        date = data.get("date")
        if hasattr(date, "isoformat"):
            data["date"] = date.isoformat()
        for k, v in list(data.items()):
            # NUMERIC columns arrive as Decimal
            if v is not None and k not in ("date", "day_name", "manager", "iso_week", "order_count"):
                data[k] = float(v)
        return cls(**data)


@dataclass
class MonthlyAggregate:
    """Month-level service metrics (no per-day dates in the source)."""
    gross_revenue: float = 0.0
    net_revenue: float = 0.0
    total_orders: int = 0
    delivery_orders: int = 0
    pickup_orders: int = 0
    takeaway_orders: int = 0
    delivery_rate_30min: float = 0.0
    avg_waiting_time_mins: float = 0.0
    avg_make_time_mins: float = 0.0
    avg_drive_time_mins: float = 0.0
    avg_orders_per_run: float = 1.0


@dataclass
class DailyLabourMetric:
    date: str
    total_hours: float
    employee_count: int


@dataclass
class HourlyRateInfo:
    avg_hourly_rate: float
    total_cost: float
    total_hours: float


@dataclass
class FoodCostData:
    period: str                                      # YYYY-MM
    total_food_cost: float
    food_cost_pct: float
    ideal_usage_cost: float
    variance_cost: float
    variance_pct: float


@dataclass
class DailyFoodCostAllocation:
    date: str
    food_cost: float
    food_cost_pct: float


@dataclass
class DeliveryOrder:
    order_number: str
    phone_number: str
    waiting_time_mins: float
    order_placed: datetime
    date: str
    completed: Optional[datetime] = None
    driver_name: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["order_placed"] = self.order_placed.isoformat()
        d["completed"] = self.completed.isoformat() if self.completed else None
        return d


@dataclass
class KPISummary:
    total_net_revenue: float = 0.0
    total_planned_revenue: float = 0.0
    revenue_variance: float = 0.0                    # % difference
    total_burger_kitchen_revenue: float = 0.0
    avg_labour_pct: float = 0.0
    avg_planned_labour_pct: float = 0.0
    labour_variance: float = 0.0                     # percentage points
    avg_food_cost_pct: float = 0.0
    total_food_cost: float = 0.0
    avg_prime_cost_pct: float = 0.0
    total_prime_cost: float = 0.0
    total_orders: int = 0
    avg_order_value: float = 0.0
    avg_labour_productivity: float = 0.0


@dataclass
class DeliverySummary:
    avg_delivery_rate_30min: float = 0.0
    avg_on_time_delivery_mins: float = 0.0
    avg_make_time_mins: float = 0.0
    avg_drive_time_mins: float = 0.0
    total_orders: int = 0


@dataclass
class PeriodComparison:
    revenue_change: float
    labour_change: float
    orders_change: float
    productivity_change: float
    food_cost_change: float
    prime_cost_change: float

