"""
Spreadsheet parsing with pandas.
Reads the first sheet of xlsx/xls workbooks, or a CSV, into headers + row dicts.
"""
import io
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Tuple

import pandas as pd

from xcel_dashboard.models.uploaded_file import FileType

logger = logging.getLogger(__name__)


class ParseError(Exception):
    """Raised when a file cannot be turned into a table"""


def detect_file_type(filename: str) -> FileType:
    suffix = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    try:
        return FileType(suffix)
    except ValueError:
        raise ParseError(f"Unsupported file type '.{suffix}'. Upload xlsx, xls or csv files.")


def _cell(value: Any) -> Any:
    """Normalize a pandas cell to a JSON-safe value"""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if hasattr(value, "item"):  # numpy scalars
        return value.item()
    return value


def _headers(raw: List[Any]) -> List[str]:
    headers = []
    seen = {}
    for index, value in enumerate(raw):
        name = "" if _cell(value) is None else str(value).strip()
        if not name:
            name = f"Column{index + 1}"
        # Duplicate header names would collapse into one dict key
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        headers.append(name)
    return headers


def parse_bytes(content: bytes, file_type: FileType) -> Tuple[List[str], List[Dict[str, Any]]]:
    """
    Parse raw file bytes.

    Returns (headers, rows) with fully empty rows removed. The first non-empty
    row is the header row; blank header cells become ``ColumnN``.
    """
    buffer = io.BytesIO(content)
    try:
        if file_type == FileType.CSV:
            frame = pd.read_csv(buffer, header=None, dtype=object, skip_blank_lines=True)
        else:
            engine = "xlrd" if file_type == FileType.XLS else "openpyxl"
            frame = pd.read_excel(buffer, sheet_name=0, header=None, engine=engine)
    except pd.errors.EmptyDataError:
        raise ParseError("No data found in file")
    except Exception as e:
        logger.error(f"Error reading {file_type.value} file: {e}")
        raise ParseError(f"Could not read {file_type.value} file: {e}")

    frame = frame.dropna(how="all")
    if frame.empty:
        raise ParseError("No data found in file")

    records = [[_cell(v) for v in row] for row in frame.itertuples(index=False, name=None)]
    headers = _headers(records[0])
    rows = [dict(zip(headers, record)) for record in records[1:]]

    if not rows:
        raise ParseError("No data found in file")

    logger.info(f"Parsed {len(rows)} rows with {len(headers)} columns")
    return headers, rows


def write_xlsx(headers: List[str], rows: List[Dict[str, Any]]) -> bytes:
    """Serialize a table to xlsx bytes (first row is the header row)"""
    frame = pd.DataFrame([[row.get(h) for h in headers] for row in rows], columns=headers)
    buffer = io.BytesIO()
    frame.to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()
