"""
Selection Policy - cardinality limits on simultaneously displayed widgets

KPI widgets share one bucket, bar and pie charts share another, tables are
unbucketed. ``save`` is the only place the displayed set of a file is
persisted as a whole.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from xcel_dashboard.config import settings
from xcel_dashboard.core.exceptions import LimitExceeded, ValidationError
from xcel_dashboard.models.widget import Widget, WidgetType

logger = logging.getLogger(__name__)

KPI_BUCKET = "kpi"
CHART_BUCKET = "chart"

BUCKETS = {
    WidgetType.KPI: KPI_BUCKET,
    WidgetType.BAR_CHART: CHART_BUCKET,
    WidgetType.PIE_CHART: CHART_BUCKET,
}


def bucket_for(widget_type: WidgetType) -> Optional[str]:
    return BUCKETS.get(WidgetType(widget_type))


class SelectionPolicy:
    """Validates and persists which widgets of a file are displayed"""

    def __init__(self, db: Optional[Session] = None, limits: Optional[Dict[str, int]] = None):
        self.db = db
        self.limits = limits or {
            KPI_BUCKET: settings.MAX_DISPLAYED_KPIS,
            CHART_BUCKET: settings.MAX_DISPLAYED_CHARTS,
        }

    def displayed_count(self, bucket: str, widgets: Iterable[Widget], exclude_id: Optional[str] = None) -> int:
        return sum(
            1 for w in widgets
            if w.is_displayed and w.id != exclude_id and bucket_for(w.widget_type) == bucket
        )

    def check(self, file_id: str, widget_id: str, widgets: List[Widget], displayed: bool = True):
        """Raise LimitExceeded if displaying ``widget_id`` would break its bucket cap.

        Turning a widget off is always allowed.
        """
        if not displayed:
            return

        widget = next((w for w in widgets if w.id == widget_id), None)
        if widget is None:
            raise ValidationError(f"Widget {widget_id} does not belong to file {file_id}")

        bucket = bucket_for(widget.widget_type)
        if bucket is None or widget.is_displayed:
            return

        current = self.displayed_count(bucket, widgets)
        maximum = self.limits[bucket]
        if current + 1 > maximum:
            logger.warning(
                f"Rejected displaying widget {widget_id} on file {file_id}: "
                f"{bucket} bucket at {current}/{maximum}"
            )
            raise LimitExceeded(bucket, current, maximum)

    def can_display(self, file_id: str, widget_id: str, widgets: List[Widget]) -> bool:
        try:
            self.check(file_id, widget_id, widgets)
        except LimitExceeded:
            return False
        return True

    def validate_set(self, widgets: List[Widget], selected_ids: List[str]):
        """Check a full target displayed-set against every bucket cap"""
        selected = set(selected_ids)
        counts: Dict[str, int] = {}
        for widget in widgets:
            bucket = bucket_for(widget.widget_type)
            if bucket and widget.id in selected:
                counts[bucket] = counts.get(bucket, 0) + 1

        for bucket, count in counts.items():
            if count > self.limits[bucket]:
                raise LimitExceeded(bucket, count, self.limits[bucket])

    def save(self, file_id: str, widget_ids: List[str]) -> List[Widget]:
        """Persist the displayed set of a file.

        Every widget of the file gets ``is_displayed = id in widget_ids``;
        selected widgets are ordered as submitted, the rest keep their relative
        order after them. Validation happens before any write, so a rejected
        set leaves the file untouched.
        """
        if self.db is None:
            raise RuntimeError("SelectionPolicy.save requires a database session")

        widgets = (
            self.db.query(Widget)
            .filter(Widget.uploaded_file_id == file_id)
            .order_by(Widget.display_order, Widget.created_at)
            .all()
        )
        by_id = {w.id: w for w in widgets}

        ordered_ids = list(dict.fromkeys(widget_ids))
        unknown = [wid for wid in ordered_ids if wid not in by_id]
        if unknown:
            raise ValidationError(
                [f"Widget {wid} does not belong to file {file_id}" for wid in unknown]
            )

        self.validate_set(widgets, ordered_ids)

        selected = set(ordered_ids)
        try:
            order = 1
            for wid in ordered_ids:
                by_id[wid].is_displayed = True
                by_id[wid].display_order = order
                order += 1
            for widget in widgets:
                if widget.id in selected:
                    continue
                widget.is_displayed = False
                widget.display_order = order
                order += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Saved widget selection for file {file_id}: {ordered_ids}")
        return [by_id[wid] for wid in ordered_ids]
