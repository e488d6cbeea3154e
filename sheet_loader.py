"""
sheet_loader.py — document bytes → raw sheet grids
===================================================
Sniffs the leading bytes of an upload and returns every logical worksheet as
a header-less ``DataFrame`` (dtype=object, raw cells preserved).

  • ``PK``     → zip-based workbook (.xlsx), read with openpyxl
  • ``D0 CF``  → legacy compound workbook (.xls), read with xlrd
  • anything else → delimited text (comma or semicolon, double-quote escaping)

An empty buffer yields ``{}``.  Bytes that cannot be read at all raise
``MalformedDocumentError``.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd
from openpyxl import load_workbook

from errors import MalformedDocumentError

logger = logging.getLogger(__name__)

FORMAT_XLSX = "xlsx"
FORMAT_XLS = "xls"
FORMAT_TEXT = "text"

TEXT_SHEET_NAME = "CSV"

_ENGINES = {FORMAT_XLSX: "openpyxl", FORMAT_XLS: "xlrd"}


def sniff_format(data: bytes) -> str:
    """Return 'xlsx', 'xls' or 'text' from the leading bytes."""
    if len(data) < 4:
        return FORMAT_TEXT
    if data[:2] == b"PK":
        return FORMAT_XLSX
    if data[:2] == b"\xd0\xcf":
        return FORMAT_XLS
    return FORMAT_TEXT


def split_delimited_line(line: str) -> List[str]:
    """
    Split one line on ',' or ';'.  Double-quoted fields may contain either
    delimiter; a doubled quote inside quotes is a literal quote.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < len(line) and line[i + 1] == '"':
                    current.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch in (",", ";"):
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current))
    return fields


def _decode_text(data: bytes, filename: str) -> str:
    if b"\x00" in data:
        raise MalformedDocumentError("binary content is neither a workbook nor delimited text", filename)
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    try:
        return data.decode("cp1252")
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(f"cannot decode text: {e}", filename) from e


def _load_text(data: bytes, filename: str) -> Dict[str, pd.DataFrame]:
    text = _decode_text(data, filename)
    rows = [split_delimited_line(line) for line in text.splitlines() if line.strip()]
    if not rows:
        return {}
    width = max(len(r) for r in rows)
    padded = [r + [""] * (width - len(r)) for r in rows]
    return {TEXT_SHEET_NAME: pd.DataFrame(padded, dtype=object)}


def _load_workbook(data: bytes, fmt: str, filename: str) -> Dict[str, pd.DataFrame]:
    try:
        xl = pd.ExcelFile(io.BytesIO(data), engine=_ENGINES[fmt])
    except Exception as e:                          # zipfile / xlrd / openpyxl all differ
        raise MalformedDocumentError(f"cannot open workbook: {e}", filename) from e

    sheets: Dict[str, pd.DataFrame] = {}
    for name in xl.sheet_names:
        try:
            sheets[name] = xl.parse(name, header=None, dtype=object)
        except Exception as e:
            logger.warning("Skipped sheet '%s' in '%s': %s", name, filename, e)
    return sheets


def load_document(data: bytes, filename: str = "") -> Dict[str, pd.DataFrame]:
    """
    Decode document bytes into a {sheet_name: DataFrame} dict, in sheet order.
    DataFrames have no header applied (header=None); raw rows preserved.
    """
    if not data:
        return {}
    fmt = sniff_format(data)
    if fmt == FORMAT_TEXT:
        return _load_text(data, filename)
    return _load_workbook(data, fmt, filename)


def workbook_created(data: bytes) -> Optional[datetime]:
    """Creation timestamp from the workbook properties (.xlsx only)."""
    if sniff_format(data) != FORMAT_XLSX:
        return None
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True)
    except Exception as e:
        logger.debug("No workbook properties: %s", e)
        return None
    try:
        return wb.properties.created
    finally:
        wb.close()
