"""
Column profiling helpers shared by the function resolver, AI prompts and the
combination planner. All functions are pure over parsed row dicts.
"""

import hashlib
import json
import math
import re
from typing import Any, Dict, List, Optional

NUMERIC_SHARE = 0.7
_NUMBER_DECORATION = re.compile(r"[\s,$€£¥₹%]")
_EMPTY_MARKERS = {"", "null", "none", "nan"}


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and value.strip().lower() in _EMPTY_MARKERS:
        return True
    return False


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a cell to a float.

    Strings have currency symbols, thousands separators and percent signs
    removed first, so "$1,200.50" becomes 1200.5. Dates like "2024-01-05" and
    text containing digits ("Customer 12") return None.
    """
    if is_empty(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not any(ch.isdigit() for ch in text):
        return None
    cleaned = _NUMBER_DECORATION.sub("", text)
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def column_values(rows: List[Dict[str, Any]], column: str) -> List[Any]:
    return [row.get(column) for row in rows]


def numeric_values(rows: List[Dict[str, Any]], column: str) -> List[float]:
    result = []
    for value in column_values(rows, column):
        number = to_number(value)
        if number is not None:
            result.append(number)
    return result


def profile_column(rows: List[Dict[str, Any]], column: str) -> Dict[str, Any]:
    values = column_values(rows, column)
    non_empty = [v for v in values if not is_empty(v)]
    numeric_count = sum(1 for v in non_empty if to_number(v) is not None)

    unique = []
    seen = set()
    for value in non_empty:
        key = str(value)
        if key not in seen:
            seen.add(key)
            unique.append(value)

    total = len(values)
    return {
        "total_values": total,
        "non_empty_values": len(non_empty),
        "unique_values": len(unique),
        "numeric_count": numeric_count,
        "completion_rate": round(len(non_empty) / total * 100, 1) if total else 0.0,
        "is_primarily_numeric": bool(non_empty) and numeric_count > len(non_empty) * NUMERIC_SHARE,
        "sample_values": unique[:3],
    }


def profile_columns(headers: List[str], rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Profile every column, preserving header order"""
    return {header: profile_column(rows, header) for header in headers}


def numeric_columns(headers: List[str], rows: List[Dict[str, Any]]) -> List[str]:
    profiles = profile_columns(headers, rows)
    return [h for h in headers if profiles[h]["is_primarily_numeric"]]


def categorical_columns(headers: List[str], rows: List[Dict[str, Any]]) -> List[str]:
    """Non-numeric columns with more than one distinct value"""
    profiles = profile_columns(headers, rows)
    return [
        h for h in headers
        if not profiles[h]["is_primarily_numeric"] and profiles[h]["unique_values"] > 1
    ]


def empty_columns(headers: List[str], rows: List[Dict[str, Any]]) -> List[str]:
    return [h for h in headers if all(is_empty(row.get(h)) for row in rows)]


def data_quality_score(headers: List[str], rows: List[Dict[str, Any]]) -> int:
    """0-100 score averaging cell completeness and row uniqueness"""
    if not headers or not rows:
        return 0

    total_cells = len(rows) * len(headers)
    empty_cells = sum(1 for row in rows for h in headers if is_empty(row.get(h)))

    hashes = set()
    duplicates = 0
    for row in rows:
        digest = hashlib.md5(json.dumps(row, sort_keys=True, default=str).encode()).hexdigest()
        if digest in hashes:
            duplicates += 1
        else:
            hashes.add(digest)

    completeness = (total_cells - empty_cells) / total_cells * 100
    uniqueness = (len(rows) - duplicates) / len(rows) * 100
    return round((completeness + uniqueness) / 2)


def format_number(value: Optional[float]) -> str:
    """Thousands separators, at most two decimals"""
    if value is None:
        return "N/A"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"
