"""
Widget configuration variants.

A widget's configuration is a tagged union keyed by ``widget_type``; each
variant only carries the fields its type needs.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from xcel_dashboard.core.exceptions import ValidationError

KPI_FUNCTIONS = ("sum", "average", "count", "min", "max")
KpiFunction = Literal["sum", "average", "count", "min", "max", "count_rows"]


class _BaseConfig(BaseModel):
    description: str = ""
    calculation_method: str = ""


class KpiConfig(_BaseConfig):
    widget_type: Literal["kpi"] = "kpi"
    column: Optional[str] = None  # Not used by count_rows
    function: KpiFunction
    value: Optional[float] = None
    formatted_value: Optional[str] = None


class BarChartConfig(_BaseConfig):
    widget_type: Literal["bar_chart"] = "bar_chart"
    x_axis: str
    y_axis: str
    function: Literal["group_by_sum"] = "group_by_sum"
    chart_data: List[dict] = Field(default_factory=list)


class PieChartConfig(_BaseConfig):
    widget_type: Literal["pie_chart"] = "pie_chart"
    category_column: str
    value_column: str
    function: Literal["distribution"] = "distribution"
    chart_data: List[dict] = Field(default_factory=list)


class TableConfig(_BaseConfig):
    widget_type: Literal["table"] = "table"
    columns: List[str] = Field(default_factory=list)
    max_rows: int = 10


WidgetConfig = Annotated[
    Union[KpiConfig, BarChartConfig, PieChartConfig, TableConfig],
    Field(discriminator="widget_type"),
]

_adapter = TypeAdapter(WidgetConfig)


def build_config(widget_type: str, fields: dict) -> WidgetConfig:
    """Build the variant for ``widget_type`` or raise ValidationError"""
    payload = {k: v for k, v in fields.items() if v is not None}
    payload["widget_type"] = widget_type
    try:
        return _adapter.validate_python(payload)
    except PydanticValidationError as e:
        errors = []
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"] if part != widget_type)
            errors.append(f"{location or 'config'}: {err['msg']}")
        raise ValidationError(errors)


def referenced_columns(config: WidgetConfig) -> List[str]:
    """Columns a configuration reads, in declaration order"""
    if isinstance(config, KpiConfig):
        return [config.column] if config.column else []
    if isinstance(config, BarChartConfig):
        return [config.x_axis, config.y_axis]
    if isinstance(config, PieChartConfig):
        return [config.category_column, config.value_column]
    return list(config.columns)
