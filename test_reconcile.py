import unittest

from config import ReconcileConfig
from models import (
    DailyEntry,
    DailyFoodCostAllocation,
    DailyLabourMetric,
    FoodCostData,
    HourlyRateInfo,
    MonthlyAggregate,
)
from reconcile import (
    apply_food_cost,
    dedupe_last_wins,
    distribute_food_cost_by_revenue,
    distribute_monthly,
    merge_entries,
    reconcile_month,
)


def monthly(**overrides):
    values = dict(
        gross_revenue=10000.0,
        net_revenue=9000.0,
        total_orders=101,
        delivery_orders=80,
        pickup_orders=15,
        takeaway_orders=6,
        delivery_rate_30min=91.5,
        avg_waiting_time_mins=24.0,
        avg_make_time_mins=9.5,
        avg_drive_time_mins=11.0,
        avg_orders_per_run=1.4,
    )
    values.update(overrides)
    return MonthlyAggregate(**values)


LABOUR = [
    DailyLabourMetric("2026-03-02", 70.0, 8),
    DailyLabourMetric("2026-03-01", 30.0, 4),
]


class TestDistributeMonthly(unittest.TestCase):
    def setUp(self):
        self.entries = distribute_monthly(monthly(), LABOUR, 15.0)

    def test_revenue_follows_hour_share(self):
        self.assertEqual([e.date for e in self.entries], ["2026-03-01", "2026-03-02"])
        self.assertEqual([e.gross_revenue for e in self.entries], [3000.0, 7000.0])
        self.assertEqual([e.net_revenue for e in self.entries], [2700.0, 6300.0])

    def test_orders_rounded_per_day(self):
        self.assertEqual([e.order_count for e in self.entries], [30, 71])

    def test_labour_from_hours_and_rate(self):
        first = self.entries[0]
        self.assertEqual(first.worked_hours, 30.0)
        self.assertEqual(first.labour_cost, 450.0)
        self.assertEqual(first.labour_pct, 16.67)
        self.assertEqual(first.labour_productivity, 90.0)
        self.assertEqual(first.avg_order_value, 90.0)

    def test_delivery_metrics_are_copied(self):
        for e in self.entries:
            self.assertEqual(e.delivery_rate_30min, 91.5)
            self.assertEqual(e.on_time_delivery_mins, 24.0)
            self.assertEqual(e.make_time_mins, 9.5)
            self.assertEqual(e.drive_time_mins, 11.0)
            self.assertEqual(e.orders_per_run, 1.4)

    def test_defaults(self):
        first = self.entries[0]
        self.assertEqual(first.manager, "N/A")
        self.assertIsNone(first.planned_labour_pct)
        self.assertIsNone(first.cash_difference)
        self.assertEqual(first.day_name, "Zondag")

    def test_no_hours(self):
        self.assertEqual(distribute_monthly(monthly(), [], 15.0), [])
        self.assertEqual(distribute_monthly(monthly(), [DailyLabourMetric("2026-03-01", 0.0, 0)], 15.0), [])

    def test_without_service_report(self):
        entries = distribute_monthly(None, LABOUR, 15.0, ReconcileConfig(default_manager="Team"))
        self.assertEqual(entries[0].net_revenue, 0.0)
        self.assertEqual(entries[0].labour_cost, 450.0)
        self.assertEqual(entries[0].labour_pct, 0.0)
        self.assertEqual(entries[0].orders_per_run, 1.0)
        self.assertEqual(entries[0].manager, "Team")


class TestFoodCost(unittest.TestCase):
    def test_split_by_revenue(self):
        allocations = distribute_food_cost_by_revenue(300.0, {"2026-03-01": 1000.0, "2026-03-02": 2000.0})
        self.assertEqual(allocations, [
            DailyFoodCostAllocation("2026-03-01", 100.0, 10.0),
            DailyFoodCostAllocation("2026-03-02", 200.0, 10.0),
        ])

    def test_even_split_without_revenue(self):
        allocations = distribute_food_cost_by_revenue(300.0, {"2026-03-01": 0.0, "2026-03-02": 0.0})
        self.assertEqual([a.food_cost for a in allocations], [150.0, 150.0])
        self.assertEqual([a.food_cost_pct for a in allocations], [0.0, 0.0])

    def test_no_days(self):
        self.assertEqual(distribute_food_cost_by_revenue(300.0, {}), [])

    def test_apply(self):
        entries = [DailyEntry("2026-03-01", food_cost=80.0), DailyEntry("2026-03-02")]
        allocations = [
            DailyFoodCostAllocation("2026-03-01", 100.0, 10.0),
            DailyFoodCostAllocation("2026-03-02", 200.0, 10.0),
        ]
        overwritten = apply_food_cost(entries, allocations)
        self.assertEqual([e.food_cost for e in overwritten], [100.0, 200.0])
        filled = apply_food_cost(entries, allocations, overwrite=False)
        self.assertEqual([e.food_cost for e in filled], [80.0, 200.0])
        self.assertEqual(entries[1].food_cost, 0.0)


class TestMerge(unittest.TestCase):
    def test_dedupe_last_wins(self):
        entries = dedupe_last_wins([
            DailyEntry("2026-03-02", net_revenue=1.0),
            DailyEntry("2026-03-01", net_revenue=2.0),
            DailyEntry("2026-03-02", net_revenue=3.0),
        ])
        self.assertEqual([(e.date, e.net_revenue) for e in entries], [("2026-03-01", 2.0), ("2026-03-02", 3.0)])

    def test_first_non_empty_value_wins(self):
        direct = [DailyEntry("2026-03-01", net_revenue=1000.0, manager="Anna")]
        distributed = [DailyEntry(
            "2026-03-01", net_revenue=800.0, delivery_rate_30min=90.0, food_cost=50.0, manager="N/A",
        )]
        merged = merge_entries(direct, distributed)
        self.assertEqual(len(merged), 1)
        e = merged[0]
        self.assertEqual(e.net_revenue, 1000.0)
        self.assertEqual(e.delivery_rate_30min, 90.0)
        self.assertEqual(e.food_cost, 50.0)
        self.assertEqual(e.manager, "Anna")
        self.assertEqual(e.day_name, "Zondag")

    def test_all_empty_keeps_first_source(self):
        merged = merge_entries(
            [DailyEntry("2026-03-01", planned_labour_pct=None)],
            [DailyEntry("2026-03-01", cash_difference=None)],
        )
        self.assertIsNone(merged[0].planned_labour_pct)
        self.assertIsNone(merged[0].cash_difference)

    def test_union_of_dates(self):
        merged = merge_entries(
            [DailyEntry("2026-03-03")],
            [DailyEntry("2026-03-01"), DailyEntry("2026-03-02")],
        )
        self.assertEqual([e.date for e in merged], ["2026-03-01", "2026-03-02", "2026-03-03"])


class TestReconcileMonth(unittest.TestCase):
    def setUp(self):
        self.config = ReconcileConfig()

    def test_direct_entries_win_and_food_cost_fills_gaps(self):
        direct = [DailyEntry("2026-03-01", net_revenue=3000.0, food_cost=700.0, food_cost_pct=23.3)]
        food = FoodCostData("2026-03", 1800.0, 20.0, 1700.0, 100.0, 5.88)
        entries = reconcile_month(
            "2026-03", monthly(), LABOUR, HourlyRateInfo(15.0, 1500.0, 100.0), self.config,
            food_cost=food, authoritative=direct,
        )
        self.assertEqual([e.date for e in entries], ["2026-03-01", "2026-03-02"])
        first, second = entries
        self.assertEqual(first.net_revenue, 3000.0)
        self.assertEqual(first.food_cost, 700.0)
        self.assertEqual(first.labour_cost, 450.0)
        self.assertEqual(second.net_revenue, 6300.0)
        self.assertEqual(second.food_cost, round(6300.0 / 9300.0 * 1800.0, 2))

    def test_default_rate_when_missing(self):
        entries = reconcile_month("2026-03", None, LABOUR, None, self.config)
        self.assertEqual(entries[0].labour_cost, round(30.0 * self.config.default_hourly_rate, 2))

    def test_other_months_are_ignored(self):
        labour = LABOUR + [DailyLabourMetric("2026-02-28", 10.0, 2)]
        direct = [DailyEntry("2026-02-27", net_revenue=50.0)]
        entries = reconcile_month("2026-03", monthly(), labour, None, self.config, authoritative=direct)
        self.assertEqual([e.date for e in entries], ["2026-03-01", "2026-03-02"])
        self.assertEqual(entries[0].gross_revenue, 3000.0)

    def test_before_earliest_month(self):
        labour = [DailyLabourMetric("2024-12-01", 8.0, 2)]
        self.assertEqual(reconcile_month("2024-12", monthly(), labour, None, self.config), [])


if __name__ == '__main__':
    unittest.main()
