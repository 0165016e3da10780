"""Widget catalog: create, rename, toggle and remove widgets of a file"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from xcel_dashboard.config import settings
from xcel_dashboard.core.exceptions import AIUnavailable, NotFound, StorageFailure, ValidationError
from xcel_dashboard.models.uploaded_file import UploadedFile
from xcel_dashboard.models.widget import Widget, WidgetOrigin, WidgetType
from xcel_dashboard.schemas.widget_config import (
    BarChartConfig,
    KpiConfig,
    PieChartConfig,
    TableConfig,
    WidgetConfig,
    build_config,
    referenced_columns,
)
from xcel_dashboard.services.ai_service import AIService, widget_key
from xcel_dashboard.services.column_analysis import format_number
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.function_resolver import FUNCTION_LABELS, aggregate, chart_data
from xcel_dashboard.services.selection_policy import SelectionPolicy, bucket_for

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
CHART_DATA_LIMIT = 20

CONFIG_FIELDS = {
    WidgetType.KPI: ("column", "function"),
    WidgetType.BAR_CHART: ("x_axis", "y_axis"),
    WidgetType.PIE_CHART: ("category_column", "value_column"),
    WidgetType.TABLE: ("columns",),
}

CHART_TYPES = (WidgetType.BAR_CHART, WidgetType.PIE_CHART)


def parse_widget_type(widget_type: str) -> WidgetType:
    try:
        return WidgetType(widget_type)
    except ValueError:
        raise ValidationError(
            f"Unknown widget type '{widget_type}'. Expected one of: "
            + ", ".join(t.value for t in WidgetType)
        )


def validate_name(name: Optional[str]) -> List[str]:
    cleaned = (name or "").strip()
    if not cleaned:
        return ["Widget name is required"]
    if len(cleaned) > MAX_NAME_LENGTH:
        return [f"Widget name must be at most {MAX_NAME_LENGTH} characters"]
    return []


class WidgetCatalog:
    """Service for the widgets attached to uploaded files"""

    def __init__(
        self,
        db: Session,
        ai_service: Optional[AIService] = None,
        policy: Optional[SelectionPolicy] = None,
    ):
        self.db = db
        self.registry = FileRegistry(db)
        self.ai_service = ai_service
        self.policy = policy or SelectionPolicy(db)

    # Queries

    def get(self, widget_id: str) -> Widget:
        widget = self.db.query(Widget).filter(Widget.id == widget_id).first()
        if not widget:
            raise NotFound(f"Widget {widget_id} not found")
        return widget

    def list_widgets(self, file_id: str) -> List[Widget]:
        self.registry.get(file_id)
        return (
            self.db.query(Widget)
            .filter(Widget.uploaded_file_id == file_id)
            .order_by(Widget.display_order, Widget.created_at)
            .all()
        )

    def displayed_widgets(self, file_id: str) -> List[Widget]:
        return [w for w in self.list_widgets(file_id) if w.is_displayed]

    # Creation

    def create_manual(
        self,
        file_id: str,
        name: str,
        widget_type: str,
        config: Dict[str, Any],
    ) -> Widget:
        """Create a widget from user-picked columns.

        All unmet conditions are reported together; nothing is stored unless
        every check passes.
        """
        kind = parse_widget_type(widget_type)
        file = self.registry.get_completed(file_id)

        # Bar/pie functions are fixed by the type; ignore whatever the client sent
        fields = {key: config.get(key) for key in CONFIG_FIELDS[kind]}

        errors = validate_name(name)
        built = None
        try:
            built = self._validated_config(file, kind, fields)
        except ValidationError as e:
            errors.extend(e.errors)
        if errors:
            logger.warning(f"Rejected manual widget for file {file_id}: {errors}")
            raise ValidationError(errors)

        widget = self._store(file, name.strip(), kind, built, WidgetOrigin.MANUAL)
        logger.info(f"Manual widget created: {widget.id} ({widget.widget_name})")
        return widget

    def create_from_ai(
        self,
        file_id: str,
        widget_type: str,
        description: Optional[str] = None,
    ) -> Widget:
        """Let the AI collaborator choose columns, then store like a manual widget"""
        kind = parse_widget_type(widget_type)
        prompt = (description or "").strip() or None
        if prompt and len(prompt) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")

        file = self.registry.get_completed(file_id)
        if self.ai_service is None:
            raise AIUnavailable("AI provider is not configured", retryable=False)

        logger.info(f"Requesting AI {kind.value} widget for file {file_id}")
        answer = self.ai_service.generate_widget(file, kind.value, prompt)

        fields = {key: answer.get(key) for key in CONFIG_FIELDS[kind]}
        if kind == WidgetType.BAR_CHART:
            fields["function"] = "group_by_sum"
        elif kind == WidgetType.PIE_CHART:
            fields["function"] = "distribution"

        try:
            built = self._validated_config(file, kind, fields)
        except ValidationError as e:
            logger.error(f"AI proposed an invalid {kind.value} widget: {e.errors}")
            raise AIUnavailable(f"AI suggested an invalid widget ({e.message}), please retry")

        if answer.get("description"):
            built.description = str(answer["description"])

        name = str(answer.get("name") or "").strip()[:MAX_NAME_LENGTH] or self._default_name(built)
        insights = answer.get("insights") if isinstance(answer.get("insights"), dict) else None

        widget = self._store(file, name, kind, built, WidgetOrigin.AI, insights)
        logger.info(f"AI widget created: {widget.id} ({widget.widget_name})")
        return widget

    def create_placeholder(
        self,
        file: UploadedFile,
        name: str,
        widget_type: WidgetType,
        config: Dict[str, Any],
        commit: bool = True,
    ) -> Widget:
        """System-created widget (combined files). Joins the caller's transaction when commit=False."""
        built = self._validated_config(file, widget_type, config)
        return self._store(file, name, widget_type, built, WidgetOrigin.SYSTEM, commit=commit)

    # Mutations

    def remove(self, widget_id: str) -> bool:
        """Delete a widget. Removing a missing id is a successful no-op."""
        widget = self.db.query(Widget).filter(Widget.id == widget_id).first()
        if not widget:
            logger.info(f"Widget {widget_id} already removed")
            return False

        self.db.delete(widget)
        self.db.commit()
        logger.info(f"Removed widget {widget_id} from file {widget.uploaded_file_id}")
        return True

    def set_displayed(self, widget_id: str, displayed: bool) -> Widget:
        widget = self.get(widget_id)
        widgets = self.list_widgets(widget.uploaded_file_id)
        self.policy.check(widget.uploaded_file_id, widget.id, widgets, displayed=displayed)

        widget.is_displayed = displayed
        self.db.commit()
        self.db.refresh(widget)
        return widget

    def apply_file_insights(self, file_id: str, insights: Dict[str, Any]) -> List[Widget]:
        """
        Push a file analysis onto the file's widgets

        ``widget_insights`` entries are matched by ``widget_key(widget_name)``;
        bar and pie widgets also take the matching ``chart_recommendations``
        entry. Returns the widgets that changed.
        """
        per_widget = insights.get("widget_insights")
        per_widget = per_widget if isinstance(per_widget, dict) else {}
        charts = insights.get("chart_recommendations")
        charts = charts if isinstance(charts, dict) else {}
        analyzed_at = datetime.utcnow().isoformat()

        updated = []
        for widget in self.list_widgets(file_id):
            match = per_widget.get(widget_key(widget.widget_name))
            chart = charts.get(widget.widget_type.value) if widget.widget_type in CHART_TYPES else None
            if not isinstance(match, dict) and not isinstance(chart, dict):
                continue

            # JSON columns only track reassignment
            merged = dict(widget.ai_insights or {})
            if isinstance(match, dict):
                merged.update(match)
                merged["last_ai_analysis"] = analyzed_at
            if isinstance(chart, dict):
                merged["chart_recommendation"] = chart
            widget.ai_insights = merged
            updated.append(widget)

        if updated:
            self.db.commit()
        logger.info(f"AI insights applied to {len(updated)} widgets of file {file_id}")
        return updated

    def widget_insights(self, widget_id: str) -> Optional[Dict[str, Any]]:
        """Stored AI insights of a widget; None when it has none yet"""
        return self.get(widget_id).ai_insights or None

    def suggestions(self, file_id: str) -> List[Dict[str, Any]]:
        """
        AI widget ideas for a file, checked against its columns

        Nothing is stored; the client creates the ones the user keeps.
        Suggestions naming unknown columns or types are dropped.
        """
        file = self.registry.get_completed(file_id)
        if self.ai_service is None:
            raise AIUnavailable("AI provider is not configured", retryable=False)

        results = []
        for suggestion in self.ai_service.suggest_widgets(file):
            try:
                kind = parse_widget_type(str(suggestion.get("widget_type")))
                fields = {key: suggestion.get(key) for key in CONFIG_FIELDS[kind]}
                built = self._validated_config(file, kind, fields)
            except ValidationError as e:
                logger.info(f"Dropped AI widget suggestion for file {file_id}: {e.message}")
                continue

            if suggestion.get("description"):
                built.description = str(suggestion["description"])
            name = str(suggestion.get("name") or "").strip()[:MAX_NAME_LENGTH] or self._default_name(built)
            results.append({
                "widget_name": name,
                "widget_type": kind.value,
                "widget_config": built.model_dump(),
            })

        logger.info(f"{len(results)} AI widget suggestions for file {file_id}")
        return results

    def rename(self, widget_id: str, name: str) -> Widget:
        errors = validate_name(name)
        if errors:
            raise ValidationError(errors)

        widget = self.get(widget_id)
        widget.widget_name = self._unique_name(widget.uploaded_file_id, name.strip(), exclude_id=widget.id)
        self.db.commit()
        self.db.refresh(widget)
        return widget

    # Internals

    def _validated_config(self, file: UploadedFile, kind: WidgetType, fields: Dict[str, Any]) -> WidgetConfig:
        """Build the config variant, check its columns and compute preview values"""
        payload = dict(fields)
        if kind == WidgetType.TABLE and not payload.get("columns"):
            payload["columns"] = file.headers

        config = build_config(kind.value, payload)
        headers = file.headers
        errors = []

        for column in referenced_columns(config):
            if column not in headers:
                errors.append(f"Column '{column}' not found in file")

        if isinstance(config, KpiConfig) and config.function != "count_rows" and not config.column:
            errors.append("A column is required for this function")
        if isinstance(config, BarChartConfig) and config.x_axis == config.y_axis:
            errors.append("X-axis and Y-axis must be different columns")
        if isinstance(config, PieChartConfig) and config.category_column == config.value_column:
            errors.append("Category and value columns must be different")

        if errors:
            raise ValidationError(errors)

        self._describe(config, file)
        return config

    def _describe(self, config: WidgetConfig, file: UploadedFile):
        rows = file.rows
        if isinstance(config, KpiConfig):
            config.value = aggregate(rows, config.column, config.function)
            config.formatted_value = format_number(config.value)
            if config.function == "count_rows":
                config.description = config.description or "Shows the number of records"
                config.calculation_method = "Count of all rows"
            else:
                config.description = config.description or f"Shows the {config.function} of {config.column}"
                config.calculation_method = f"{config.function.capitalize()} of all values"
        elif isinstance(config, BarChartConfig):
            config.chart_data = chart_data(rows, config.x_axis, config.y_axis, CHART_DATA_LIMIT)
            config.description = config.description or f"Shows {config.y_axis} by {config.x_axis}"
            config.calculation_method = f"Group by {config.x_axis} and sum {config.y_axis}"
        elif isinstance(config, PieChartConfig):
            config.chart_data = chart_data(
                rows, config.category_column, config.value_column, CHART_DATA_LIMIT, with_percentage=True
            )
            config.description = config.description or (
                f"Shows distribution of {config.value_column} by {config.category_column}"
            )
            config.calculation_method = "Distribution analysis"
        elif isinstance(config, TableConfig):
            config.max_rows = settings.TABLE_MAX_ROWS
            config.description = config.description or "Shows data table"
            config.calculation_method = "Display all data"

    @staticmethod
    def _default_name(config: WidgetConfig) -> str:
        if isinstance(config, KpiConfig):
            if config.function == "count_rows":
                return "Total Records"
            return f"{FUNCTION_LABELS[config.function][0]} {config.column}"
        if isinstance(config, BarChartConfig):
            return f"{config.y_axis} by {config.x_axis}"
        if isinstance(config, PieChartConfig):
            return f"{config.value_column} Distribution"
        return "Data Table"

    def _unique_name(self, file_id: str, name: str, exclude_id: Optional[str] = None) -> str:
        query = self.db.query(Widget.widget_name).filter(Widget.uploaded_file_id == file_id)
        if exclude_id:
            query = query.filter(Widget.id != exclude_id)
        taken = {row[0] for row in query.all()}

        candidate = name
        counter = 1
        while candidate in taken:
            candidate = f"{name} ({counter})"
            counter += 1
        return candidate

    def _store(
        self,
        file: UploadedFile,
        name: str,
        kind: WidgetType,
        config: WidgetConfig,
        origin: WidgetOrigin,
        insights: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> Widget:
        existing = (
            self.db.query(Widget)
            .filter(Widget.uploaded_file_id == file.id)
            .all()
        )
        bucket = bucket_for(kind)
        displayed = bucket is None or (
            self.policy.displayed_count(bucket, existing) < self.policy.limits[bucket]
        )
        if not displayed:
            logger.info(f"{bucket} bucket full on file {file.id}; new widget stored hidden")

        max_order = (
            self.db.query(func.max(Widget.display_order))
            .filter(Widget.uploaded_file_id == file.id)
            .scalar()
        ) or 0

        widget = Widget(
            uploaded_file_id=file.id,
            widget_name=self._unique_name(file.id, name),
            widget_type=kind,
            widget_config=config.model_dump(),
            origin=origin,
            is_displayed=displayed,
            display_order=max_order + 1,
            ai_insights=insights,
        )

        self.db.add(widget)
        if not commit:
            self.db.flush()
            return widget

        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to store widget for file {file.id}: {e}")
            raise StorageFailure("Failed to save widget", cause=e)
        self.db.refresh(widget)
        return widget
