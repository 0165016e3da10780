"""File upload and listing endpoints"""
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session
from typing import Optional
import logging

from xcel_dashboard.core.database import get_db
from xcel_dashboard.core.exceptions import ValidationError
from xcel_dashboard.models.uploaded_file import FileStatus
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.upload_service import UploadService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/upload")
def upload_file(
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """Upload and parse one .xlsx/.xls/.csv file"""
    content = file.file.read()
    uploaded = UploadService(db).upload(file.filename, content)

    if uploaded.status == FileStatus.FAILED:
        return {
            "success": False,
            "message": f"Error processing file: {uploaded.error_message}",
            "error": uploaded.error_message,
            "file": uploaded.to_dict(),
        }

    return {
        "success": True,
        "message": "File uploaded and processed successfully",
        "file": uploaded.to_dict(),
    }


@router.get("")
def list_files(
    status: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List uploaded files, newest first"""
    status_filter = None
    if status:
        try:
            status_filter = FileStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'")

    files = FileRegistry(db).list_files(status=status_filter)
    return {"success": True, "files": [f.to_dict() for f in files]}


@router.get("/completed")
def list_completed_files(db: Session = Depends(get_db)):
    """Files eligible for widgets and combination"""
    files = FileRegistry(db).list_completed()
    return {"success": True, "files": [f.to_dict() for f in files]}


@router.get("/{file_id}")
def get_file(
    file_id: str,
    include_data: bool = False,
    db: Session = Depends(get_db)
):
    uploaded = FileRegistry(db).get(file_id)
    return {"success": True, "file": uploaded.to_dict(include_data=include_data)}
