import io
import unittest
from datetime import datetime

from openpyxl import Workbook

from errors import MalformedDocumentError
from sheet_loader import (
    FORMAT_TEXT,
    FORMAT_XLS,
    FORMAT_XLSX,
    TEXT_SHEET_NAME,
    load_document,
    sniff_format,
    split_delimited_line,
    workbook_created,
)


def workbook_bytes(sheets):
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestSniffFormat(unittest.TestCase):
    def test_signatures(self):
        self.assertEqual(sniff_format(b"PK\x03\x04rest"), FORMAT_XLSX)
        self.assertEqual(sniff_format(b"\xd0\xcf\x11\xe0rest"), FORMAT_XLS)
        self.assertEqual(sniff_format(b"Datum;Omzet\n"), FORMAT_TEXT)

    def test_short_buffer_is_text(self):
        self.assertEqual(sniff_format(b"PK"), FORMAT_TEXT)


class TestSplitDelimitedLine(unittest.TestCase):
    def test_mixed_delimiters(self):
        self.assertEqual(split_delimited_line("a;b,c"), ["a", "b", "c"])

    def test_quoted_delimiters_and_escaped_quotes(self):
        self.assertEqual(
            split_delimited_line('01-03-2026;"Jansen; P.";"1.050,00";"zei ""hoi"""'),
            ["01-03-2026", "Jansen; P.", "1.050,00", 'zei "hoi"'],
        )

    def test_trailing_delimiter_keeps_empty_field(self):
        self.assertEqual(split_delimited_line("Totaal;1950;"), ["Totaal", "1950", ""])


class TestLoadDocument(unittest.TestCase):
    def test_empty_buffer(self):
        self.assertEqual(load_document(b""), {})

    def test_delimited_text(self):
        data = b'Datum;Omzet\n01-03-2026;"1.050,00"\n\n02-03-2026;900\n'
        sheets = load_document(data, "kpi.csv")
        self.assertEqual(list(sheets), [TEXT_SHEET_NAME])
        df = sheets[TEXT_SHEET_NAME]
        self.assertEqual(df.shape, (3, 2))
        self.assertEqual(df.iloc[1, 1], "1.050,00")

    def test_ragged_rows_are_padded(self):
        df = load_document(b"a;b;c\nd\n")[TEXT_SHEET_NAME]
        self.assertEqual(df.shape, (2, 3))
        self.assertEqual(df.iloc[1, 2], "")

    def test_bom_and_legacy_encoding(self):
        df = load_document("\ufeffDatum;Omzet\n".encode("utf-8"))[TEXT_SHEET_NAME]
        self.assertEqual(df.iloc[0, 0], "Datum")
        df = load_document("Café;1\n".encode("cp1252"))[TEXT_SHEET_NAME]
        self.assertEqual(df.iloc[0, 0], "Café")

    def test_workbook_keeps_sheet_order(self):
        data = workbook_bytes({
            "Maart": [["Datum", "Omzet"], ["01-03-2026", 1050]],
            "Februari": [["Datum", "Omzet"], ["01-02-2026", 900]],
        })
        sheets = load_document(data, "kpi.xlsx")
        self.assertEqual(list(sheets), ["Maart", "Februari"])
        self.assertEqual(sheets["Maart"].iloc[1, 1], 1050)
        self.assertEqual(sheets["Februari"].iloc[0, 0], "Datum")

    def test_broken_workbook_raises(self):
        with self.assertRaises(MalformedDocumentError) as ctx:
            load_document(b"PK\x03\x04 definitely not a zip archive", "broken.xlsx")
        self.assertIn("broken.xlsx", str(ctx.exception))

    def test_binary_garbage_raises(self):
        with self.assertRaises(MalformedDocumentError):
            load_document(b"ab\x00\x01\x02\x03cd", "blob.bin")


class TestWorkbookCreated(unittest.TestCase):
    def test_xlsx_properties(self):
        data = workbook_bytes({"Blad1": [["Categorie", "Kosten"]]})
        self.assertIsInstance(workbook_created(data), datetime)

    def test_text_has_no_properties(self):
        self.assertIsNone(workbook_created(b"Datum;Omzet\n"))


if __name__ == '__main__':
    unittest.main()
