"""
Function Resolver - enumerate aggregation bindings for manual widget creation

Given a parsed file and a widget type, produce the ordered list of concrete
(column, function) bindings the user can pick from. Options are ordered by
column position in the file headers so repeated calls return identical lists.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from xcel_dashboard.core.exceptions import InvalidInput, ValidationError
from xcel_dashboard.models.uploaded_file import UploadedFile
from xcel_dashboard.models.widget import WidgetType
from xcel_dashboard.schemas.widget_config import KPI_FUNCTIONS
from xcel_dashboard.services.column_analysis import (
    categorical_columns,
    format_number,
    is_empty,
    numeric_columns,
    numeric_values,
    to_number,
)

logger = logging.getLogger(__name__)

FUNCTION_LABELS = {
    "sum": ("Total", "Add all values"),
    "average": ("Average", "Calculate mean"),
    "count": ("Count", "Count numeric values"),
    "min": ("Minimum", "Find lowest value"),
    "max": ("Maximum", "Find highest value"),
}

BLANK_CATEGORY = "(blank)"


@dataclass
class FunctionOption:
    """A resolvable aggregation binding offered to the user"""
    id: str
    label: str
    description: str
    calculation: str
    function: str
    columns: List[str] = field(default_factory=list)
    value: Optional[float] = None
    formatted_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def aggregate(rows: List[Dict[str, Any]], column: Optional[str], function: str) -> Optional[float]:
    """Apply a KPI function. Returns None when there is nothing to aggregate."""
    if function == "count_rows":
        return float(len(rows))

    values = numeric_values(rows, column)
    if function == "sum":
        return float(sum(values))
    if function == "count":
        return float(len(values))
    if not values:
        return None
    if function == "average":
        return sum(values) / len(values)
    if function == "min":
        return min(values)
    if function == "max":
        return max(values)
    raise ValidationError(f"Unknown function '{function}'")


def chart_data(
    rows: List[Dict[str, Any]],
    category: str,
    value: str,
    limit: Optional[int] = None,
    with_percentage: bool = False,
) -> List[Dict[str, Any]]:
    """Group rows by ``category`` and sum ``value``, in first-seen order"""
    totals: Dict[str, float] = {}
    for row in rows:
        raw = row.get(category)
        name = BLANK_CATEGORY if is_empty(raw) else str(raw)
        number = to_number(row.get(value))
        totals[name] = totals.get(name, 0.0) + (number or 0.0)

    items = [{"name": name, "value": round(total, 2)} for name, total in totals.items()]
    # Shares are of the whole column, including categories cut by ``limit``
    grand_total = sum(item["value"] for item in items)
    if limit is not None:
        items = items[:limit]

    if with_percentage:
        for item in items:
            item["percentage"] = round(item["value"] / grand_total * 100, 1) if grand_total else 0.0
    return items


class FunctionResolver:
    """Pure function of a file's parsed data; never mutates it"""

    def options(self, file: UploadedFile, widget_type: str) -> List[FunctionOption]:
        try:
            kind = WidgetType(widget_type)
        except ValueError:
            raise ValidationError(
                f"Unknown widget type '{widget_type}'. Expected one of: "
                + ", ".join(t.value for t in WidgetType)
            )

        if not file.is_completed:
            raise InvalidInput(f"File '{file.original_filename}' is not processed yet")

        headers = file.headers
        rows = file.rows

        if kind == WidgetType.KPI:
            options = self._kpi_options(headers, rows)
        elif kind == WidgetType.BAR_CHART:
            options = self._bar_options(headers, rows)
        elif kind == WidgetType.PIE_CHART:
            options = self._pie_options(headers, rows)
        else:
            options = []

        logger.info(f"Resolved {len(options)} {kind.value} options for file {file.id}")
        return options

    def _kpi_options(self, headers: List[str], rows: List[Dict[str, Any]]) -> List[FunctionOption]:
        options = []
        for column in numeric_columns(headers, rows):
            for function in KPI_FUNCTIONS:
                label, description = FUNCTION_LABELS[function]
                value = aggregate(rows, column, function)
                options.append(FunctionOption(
                    id=f"{function}:{column}",
                    label=f"{label} {column}",
                    description=f"{description} in {column}",
                    calculation=f"{function.upper()}({column})",
                    function=function,
                    columns=[column],
                    value=value,
                    formatted_value=format_number(value),
                ))

        row_count = aggregate(rows, None, "count_rows")
        options.append(FunctionOption(
            id="count_rows",
            label="Total Records",
            description="Count all rows in the file",
            calculation="COUNT(*)",
            function="count_rows",
            value=row_count,
            formatted_value=format_number(row_count),
        ))
        return options

    def _pairs(self, headers: List[str], rows: List[Dict[str, Any]]) -> List[tuple]:
        """(categorical, numeric) pairs in header order, deduplicated"""
        categories = categorical_columns(headers, rows)
        numbers = numeric_columns(headers, rows)
        seen = set()
        pairs = []
        for category in categories:
            for number in numbers:
                pair = (category, number)
                if category == number or pair in seen:
                    continue
                seen.add(pair)
                pairs.append(pair)
        return pairs

    def _bar_options(self, headers: List[str], rows: List[Dict[str, Any]]) -> List[FunctionOption]:
        return [
            FunctionOption(
                id=f"group_by_sum:{x}:{y}",
                label=f"{y} by {x}",
                description=f"Group by {x} and sum {y}",
                calculation=f"SUM({y}) GROUP BY {x}",
                function="group_by_sum",
                columns=[x, y],
            )
            for x, y in self._pairs(headers, rows)
        ]

    def _pie_options(self, headers: List[str], rows: List[Dict[str, Any]]) -> List[FunctionOption]:
        return [
            FunctionOption(
                id=f"distribution:{category}:{value}",
                label=f"{value} distribution by {category}",
                description=f"Share of {value} per {category}",
                calculation=f"SUM({value}) / TOTAL GROUP BY {category}",
                function="distribution",
                columns=[category, value],
            )
            for category, value in self._pairs(headers, rows)
        ]
