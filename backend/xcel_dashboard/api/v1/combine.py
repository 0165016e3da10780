"""Multi-file combination endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
import logging

from xcel_dashboard.core.database import get_db
from xcel_dashboard.services.ai_service import AIService, get_ai_service
from xcel_dashboard.services.combination_planner import CombinationPlanner

router = APIRouter()
logger = logging.getLogger(__name__)


class PreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected_files: List[str] = Field(alias="selectedFiles")


class RenamePreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    combined_file_name: str = Field(alias="combinedFileName")


class CombineRequest(BaseModel):
    """Confirm a combination, usually of a previously generated preview"""
    model_config = ConfigDict(populate_by_name=True)

    selected_files: List[str] = Field(default_factory=list, alias="selectedFiles")
    combined_file_name: Optional[str] = Field(default=None, alias="combinedFileName")
    preview_id: Optional[str] = Field(default=None, alias="previewId")
    new_columns: Optional[List[Dict[str, Any]]] = Field(default=None, alias="newColumnsCreated")
    ai_insights: Optional[Dict[str, Any]] = Field(default=None, alias="aiInsights")


@router.post("/preview")
def preview_combination(
    request: PreviewRequest,
    db: Session = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
):
    """Estimate rows/columns and gather AI insights without persisting anything"""
    preview = CombinationPlanner(db, ai_service=ai_service).preview(request.selected_files)
    return {"success": True, "preview": preview.to_dict()}


@router.post("/preview/{preview_id}/regenerate")
def regenerate_preview(
    preview_id: str,
    db: Session = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
):
    preview = CombinationPlanner(db, ai_service=ai_service).regenerate(preview_id)
    return {"success": True, "preview": preview.to_dict()}


@router.patch("/preview/{preview_id}")
def rename_preview(
    preview_id: str,
    request: RenamePreviewRequest,
    db: Session = Depends(get_db)
):
    preview = CombinationPlanner(db).rename(preview_id, request.combined_file_name)
    return {"success": True, "preview": preview.to_dict()}


@router.post("")
def combine_files(
    request: CombineRequest,
    db: Session = Depends(get_db)
):
    """Write the combined workbook and register it as a new completed file"""
    insights = request.ai_insights
    if insights is not None:
        insights = {k: v for k, v in insights.items() if k != "newColumnsCreated"}

    combined = CombinationPlanner(db).confirm(
        file_ids=request.selected_files or None,
        final_filename=request.combined_file_name,
        approved_derivations=request.new_columns,
        preview_id=request.preview_id,
        ai_insights=insights,
    )
    return {
        "success": True,
        "message": f"Successfully combined files into '{combined.original_filename}'",
        "file_id": combined.id,
        "file": combined.to_dict(),
    }
