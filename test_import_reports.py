import contextlib
import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from openpyxl import Workbook

from errors import StorageError
from import_reports import collect_reports, main, period_from_filename


def write_workbook(path, sheets):
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    wb.save(path)


class TestPeriodFromFilename(unittest.TestCase):
    def test_patterns(self):
        self.assertEqual(period_from_filename("Service_report_06-02-2026_12_49.xlsx"), "2026-02")
        self.assertEqual(period_from_filename("SERVICE_2026-03.xlsx"), "2026-03")
        self.assertIsNone(period_from_filename("report.xlsx"))
        self.assertIsNone(period_from_filename("export_20260315.xlsx"))
        self.assertIsNone(period_from_filename("2026-13.xlsx"))


class TestBulkImport(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        write_workbook(self.dir / "TIME_KEEPING_2026-03.xlsx", {"Blad1": [
            ["Vestiging", "Naam", "Datum", "Totaal uren"],
            ["Rosmalen", "Anna", "01-03-2026", 30],
            ["Rosmalen", "Bob", "02-03-2026", 70],
        ]})
        write_workbook(self.dir / "SERVICE_2026-03.xlsx", {
            "Delivery": [
                ["Order number", "Order amount (incl VAT)", "Waiting time"],
                ["1", 109.0, 20],
                ["2", 109.0, 40],
            ],
            "Pickup": [["Order number", "Order amount (incl VAT)"]],
            "Take Away": [["Order number", "Order amount (incl VAT)"]],
        })
        write_workbook(self.dir / "TIMEKEEPING_SUMMARY_2026-03.xlsx", {"Blad1": [
            ["Naam", "Totaal uren", "Kosten"],
            ["Anna", 10, 150],
        ]})
        (self.dir / "broken.xlsx").write_bytes(b"PK\x03\x04 not a workbook")
        (self.dir / "notes.txt").write_text("ignored")

    def tearDown(self):
        self.tmp.cleanup()

    def test_collect_groups_by_month(self):
        with self.assertLogs("import_reports", level="WARNING"):
            months = collect_reports(self.dir, workers=2)
        self.assertEqual(list(months), ["2026-03"])
        reports = months["2026-03"]
        self.assertEqual(reports.monthly.total_orders, 2)
        self.assertEqual(reports.monthly.net_revenue, 200.0)
        self.assertEqual([dl.date for dl in reports.labour], ["2026-03-01", "2026-03-02"])
        self.assertEqual(reports.rate.avg_hourly_rate, 15.0)
        self.assertIsNone(reports.food_cost)

    def test_monthly_report_without_period_is_skipped(self):
        (self.dir / "SERVICE_2026-03.xlsx").rename(self.dir / "service_export.xlsx")
        with self.assertLogs("import_reports", level="WARNING") as logs:
            months = collect_reports(self.dir)
        self.assertIsNone(months["2026-03"].monthly)
        self.assertTrue(any("no period in file name" in line for line in logs.output))

    def test_period_override(self):
        (self.dir / "SERVICE_2026-03.xlsx").rename(self.dir / "service_export.xlsx")
        months = collect_reports(self.dir, period="2026-03")
        self.assertEqual(months["2026-03"].monthly.total_orders, 2)

    def test_dry_run(self):
        out = io.StringIO()
        with mock.patch('import_reports.upsert_kpi_entries') as mock_upsert, contextlib.redirect_stdout(out):
            self.assertEqual(main([str(self.dir), "--dry-run"]), 0)
        mock_upsert.assert_not_called()
        self.assertIn("2026-03: 2 entries", out.getvalue())

    def test_import(self):
        out = io.StringIO()
        with mock.patch('import_reports.upsert_kpi_entries', return_value=2) as mock_upsert, \
                contextlib.redirect_stdout(out):
            self.assertEqual(main([str(self.dir), "--restaurant", "oss"]), 0)

        restaurant_id, entries, _ = mock_upsert.call_args[0]
        self.assertEqual(restaurant_id, "oss")
        first, second = entries
        self.assertEqual((first.date, second.date), ("2026-03-01", "2026-03-02"))
        self.assertEqual((first.net_revenue, second.net_revenue), (60.0, 140.0))
        self.assertEqual(first.labour_cost, 450.0)
        self.assertEqual(first.order_count + second.order_count, 2)
        self.assertIn("Imported 2 entries for 'oss'", out.getvalue())

    def test_storage_error(self):
        with mock.patch('import_reports.upsert_kpi_entries', side_effect=StorageError("down")), \
                contextlib.redirect_stderr(io.StringIO()):
            self.assertEqual(main([str(self.dir)]), 1)

    def test_bad_arguments(self):
        with contextlib.redirect_stderr(io.StringIO()):
            self.assertEqual(main([str(self.dir / "missing")]), 1)
            self.assertEqual(main([str(self.dir), "--period", "maart"]), 1)


if __name__ == '__main__':
    unittest.main()
