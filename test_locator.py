import unittest

import pandas as pd

from classifier import is_summary_row, is_total_marker
from locator import (
    DATE_FIELD,
    find_column,
    find_header_row,
    first_value,
    locate,
    normalise_header,
    resolve_columns,
)


def grid(rows):
    width = max(len(r) for r in rows)
    return pd.DataFrame([r + [None] * (width - len(r)) for r in rows], dtype=object)


class TestLocate(unittest.TestCase):
    def test_header_below_title_rows(self):
        df = grid([
            ["Rapportage Rosmalen"],
            ["Vestiging", "Rosmalen"],
            ["Periode", "maart 2026"],
            ["Datum", "Dag", "Netto Omzet"],
            ["01-03-2026", "Zondag", "1050,00"],
            [None, None, None],
            ["02-03-2026", "Maandag", "900,00"],
        ])
        sheet = locate(df, "Blad1")
        self.assertEqual(sheet.header_row, 3)
        self.assertEqual(sheet.columns, ["Datum", "Dag", "Netto Omzet"])
        self.assertEqual(len(sheet.rows), 2)
        self.assertEqual(sheet.rows[0]["Netto Omzet"], "1050,00")
        self.assertEqual(sheet.rows[0][DATE_FIELD], "01-03-2026")

    def test_falls_back_to_row_zero(self):
        df = grid([["Naam", "Uren"], ["Anna", 7.5]])
        with self.assertLogs("locator", level="WARNING"):
            sheet = locate(df, "Blad1")
        self.assertIsNone(sheet.header_row)
        self.assertEqual(sheet.columns, ["Naam", "Uren"])
        self.assertEqual(sheet.rows, [{"Naam": "Anna", "Uren": 7.5}])

    def test_duplicate_header_keeps_last_column(self):
        df = grid([["Datum", "Omzet", "Omzet"], ["01-03-2026", 100, 200]])
        sheet = locate(df)
        self.assertEqual(sheet.rows[0]["Omzet"], 200)

    def test_blank_header_cells_get_placeholders(self):
        df = grid([["Datum", None, "Omzet"], ["01-03-2026", "x", 5]])
        sheet = locate(df)
        self.assertEqual(sheet.columns, ["Datum", "__col_1", "Omzet"])

    def test_mislabelled_date_column(self):
        df = grid([["Periode", "Omzet"], ["Totaal", 300], ["01-03-2026", 100]])
        sheet = locate(df, keywords=["omzet"])
        self.assertEqual(sheet.date_column, 0)
        self.assertEqual(sheet.rows[1][DATE_FIELD], "01-03-2026")

    def test_serial_date_column(self):
        df = grid([["Dag", "Omzet"], [46082, 100]])
        sheet = locate(df)
        self.assertEqual(sheet.rows[0][DATE_FIELD], 46082)

    def test_iso_date_column(self):
        df = grid([["Dag", "Omzet"], ["2026-03-01", 100], ["2026-03-02", 200]])
        sheet = locate(df)
        self.assertEqual(sheet.date_column, 0)
        self.assertEqual(sheet.rows[1][DATE_FIELD], "2026-03-02")

    def test_empty_grid(self):
        sheet = locate(pd.DataFrame(), "Leeg")
        self.assertIsNone(sheet.header_row)
        self.assertEqual(sheet.rows, [])

    def test_only_text_cells_count_as_header(self):
        df = grid([[2026, 3], ["Datum", "Omzet"]])
        self.assertEqual(find_header_row(df), 1)


class TestColumnResolution(unittest.TestCase):
    def test_normalise_header_collapses_whitespace(self):
        self.assertEqual(normalise_header("Gepland \n% Arbeidskosten"), "Gepland % Arbeidskosten")

    def test_aliases_are_case_insensitive(self):
        columns = ["DATUM", "netto omzet", "Bruto Omzet"]
        resolved = resolve_columns(columns, [
            ("net_revenue", ["Netto Omzet", "Net Revenue"]),
            ("labour_cost", ["Arbeidskosten"]),
        ])
        self.assertEqual(resolved, {"net_revenue": ["netto omzet"], "labour_cost": []})

    def test_find_column_candidate_order(self):
        self.assertEqual(find_column(["Kosten", "Werkelijk"], ["Werkelijk", "Kosten"]), "Werkelijk")
        self.assertIsNone(find_column(["Kosten"], ["Ideaal"]))

    def test_first_value_skips_blanks(self):
        row = {"OTD": None, "Bezorgtijd": "  ", "On Time Delivery": 18}
        self.assertEqual(first_value(row, ["OTD", "Bezorgtijd", "On Time Delivery"]), 18)
        self.assertIsNone(first_value(row, ["OTD", "Missing"]))


class TestSummaryRows(unittest.TestCase):
    def test_total_in_date_cell(self):
        self.assertTrue(is_summary_row({"Datum": "Totaal", "Omzet": 1950, DATE_FIELD: "Totaal"}))

    def test_average_in_first_column(self):
        self.assertTrue(is_summary_row({"Week": "Gemiddelde", "Omzet": 650, DATE_FIELD: None}))

    def test_first_column_is_named_explicitly(self):
        row = {DATE_FIELD: None, "Omzet": "Gemiddeld", "Week": "10"}
        self.assertFalse(is_summary_row(row, first_column="Week"))
        self.assertTrue(is_summary_row(row, first_column="Omzet"))

    def test_date_field_is_not_taken_as_first_column(self):
        self.assertTrue(is_summary_row({DATE_FIELD: None, "Week": "Weektotaal", "Omzet": 650}))

    def test_manager_name_is_not_a_marker(self):
        row = {"Datum": "02-03-2026", "Verantwoordelijk": "B. Totaalmans", DATE_FIELD: "02-03-2026"}
        self.assertFalse(is_summary_row(row))

    def test_numbers_are_never_markers(self):
        self.assertFalse(is_total_marker(46082))
        self.assertTrue(is_total_marker(" Grand Total "))


if __name__ == '__main__':
    unittest.main()
