"""Widget selection endpoints: catalog, function options and displayed set"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
import logging

from xcel_dashboard.core.database import get_db
from xcel_dashboard.services.ai_service import AIService, get_ai_service
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.function_resolver import FunctionResolver
from xcel_dashboard.services.selection_policy import CHART_BUCKET, KPI_BUCKET, SelectionPolicy
from xcel_dashboard.services.widget_catalog import WidgetCatalog

router = APIRouter()
ai_router = APIRouter()
logger = logging.getLogger(__name__)


class ManualWidgetRequest(BaseModel):
    """Manual widget: name, type and the columns for that type"""
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(alias="fileId")
    widget_name: str = Field(alias="widgetName")
    widget_type: str = Field(alias="widgetType")
    function: Optional[str] = None
    column: Optional[str] = None
    x_axis: Optional[str] = None
    y_axis: Optional[str] = None
    category_column: Optional[str] = None
    value_column: Optional[str] = None
    columns: Optional[List[str]] = None


class AIWidgetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(alias="fileId")
    widget_type: str = Field(alias="widgetType")
    description: Optional[str] = None


class SelectionUpdate(BaseModel):
    """Full displayed set of one file"""
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(alias="fileId")
    selected_widget_ids: List[str] = Field(default_factory=list, alias="selectedWidgetIds")


class ToggleRequest(BaseModel):
    displayed: bool


class RenameRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    widget_name: str = Field(alias="widgetName")


def _limits(policy: SelectionPolicy, widgets) -> dict:
    return {
        bucket: {"max": policy.limits[bucket], "displayed": policy.displayed_count(bucket, widgets)}
        for bucket in (KPI_BUCKET, CHART_BUCKET)
    }


@router.get("/widgets/{file_id}")
def list_widgets(file_id: str, db: Session = Depends(get_db)):
    """All widgets of a file plus the currently displayed subset"""
    catalog = WidgetCatalog(db)
    widgets = catalog.list_widgets(file_id)
    return {
        "success": True,
        "availableWidgets": [w.to_dict() for w in widgets],
        "displayedWidgets": [w.to_dict() for w in widgets if w.is_displayed],
        "limits": _limits(catalog.policy, widgets),
    }


@router.get("/function-options/{file_id}")
def function_options(
    file_id: str,
    widget_type: str,
    db: Session = Depends(get_db)
):
    """Aggregation bindings the user can pick for a manual widget"""
    uploaded = FileRegistry(db).get(file_id)
    options = FunctionResolver().options(uploaded, widget_type)
    return {"success": True, "options": [o.to_dict() for o in options]}


@router.get("/suggestions/{file_id}")
def widget_suggestions(
    file_id: str,
    db: Session = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
):
    """AI widget ideas for a file. Nothing is stored."""
    suggestions = WidgetCatalog(db, ai_service=ai_service).suggestions(file_id)
    return {"success": True, "suggestions": suggestions}


@router.post("/create-manual-widget")
def create_manual_widget(
    request: ManualWidgetRequest,
    db: Session = Depends(get_db)
):
    config = request.model_dump(
        include={"function", "column", "x_axis", "y_axis", "category_column", "value_column", "columns"},
        exclude_none=True,
    )
    widget = WidgetCatalog(db).create_manual(
        request.file_id, request.widget_name, request.widget_type, config
    )
    return {
        "success": True,
        "message": "Widget created successfully",
        "widget_name": widget.widget_name,
        "widget_id": widget.id,
        "widget": widget.to_dict(),
    }


@router.post("/update")
def update_selection(
    request: SelectionUpdate,
    db: Session = Depends(get_db)
):
    """Replace the displayed set of a file"""
    FileRegistry(db).get(request.file_id)
    selected = SelectionPolicy(db).save(request.file_id, request.selected_widget_ids)
    return {
        "success": True,
        "message": f"Dashboard updated with {len(selected)} widgets",
        "displayedWidgets": [w.to_dict() for w in selected],
    }


@router.post("/toggle/{widget_id}")
def toggle_widget(
    widget_id: str,
    request: ToggleRequest,
    db: Session = Depends(get_db)
):
    widget = WidgetCatalog(db).set_displayed(widget_id, request.displayed)
    return {"success": True, "widget": widget.to_dict()}


@router.patch("/widgets/{widget_id}")
def rename_widget(
    widget_id: str,
    request: RenameRequest,
    db: Session = Depends(get_db)
):
    widget = WidgetCatalog(db).rename(widget_id, request.widget_name)
    return {"success": True, "widget": widget.to_dict()}


@router.delete("/widgets/{widget_id}")
def delete_widget(widget_id: str, db: Session = Depends(get_db)):
    """Delete a widget. Deleting an unknown id also succeeds."""
    removed = WidgetCatalog(db).remove(widget_id)
    return {
        "success": True,
        "message": "Widget deleted successfully" if removed else "Widget already deleted",
    }


@ai_router.post("/create-widget")
def create_ai_widget(
    request: AIWidgetRequest,
    db: Session = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
):
    """Let the AI pick columns for a widget of the requested type"""
    widget = WidgetCatalog(db, ai_service=ai_service).create_from_ai(
        request.file_id, request.widget_type, request.description
    )
    return {
        "success": True,
        "message": "AI widget created successfully",
        "widget_name": widget.widget_name,
        "widget_id": widget.id,
        "widget": widget.to_dict(),
    }


@ai_router.post("/analyze-file/{file_id}")
def analyze_file(
    file_id: str,
    db: Session = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
):
    """Run AI analysis on a completed file, store it and push it onto the widgets"""
    catalog = WidgetCatalog(db, ai_service=ai_service)
    uploaded = catalog.registry.get_completed(file_id)
    names = [w.widget_name for w in catalog.list_widgets(file_id)]
    insights = ai_service.analyze_file(uploaded, names)
    catalog.registry.attach_insights(file_id, insights)
    updated = catalog.apply_file_insights(file_id, insights)
    return {
        "success": True,
        "aiInsights": insights,
        "updatedWidgets": [w.to_dict() for w in updated],
    }


@ai_router.get("/widget-insights/{widget_id}")
def widget_insights(widget_id: str, db: Session = Depends(get_db)):
    """AI insights stored on one widget; null until the file is analyzed"""
    insights = WidgetCatalog(db).widget_insights(widget_id)
    return {"success": True, "insights": insights}
