"""File registry: tracks uploaded files and their parse status"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from xcel_dashboard.core.exceptions import InvalidInput, NotFound
from xcel_dashboard.models.uploaded_file import UploadedFile, FileStatus, FileType

logger = logging.getLogger(__name__)


class FileRegistry:
    """Service owning UploadedFile status transitions"""

    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        original_filename: str,
        filename: str,
        file_path: str,
        file_type: FileType,
        file_size: int,
    ) -> UploadedFile:
        """Record a freshly stored upload in the ``processing`` state"""
        uploaded = UploadedFile(
            original_filename=original_filename,
            filename=filename,
            file_path=file_path,
            file_type=file_type,
            file_size=file_size,
            status=FileStatus.PROCESSING,
        )
        self.db.add(uploaded)
        self.db.commit()
        self.db.refresh(uploaded)

        logger.info(f"Registered file {uploaded.id} ({original_filename})")
        return uploaded

    def register_completed(
        self,
        original_filename: str,
        filename: str,
        file_path: str,
        file_type: FileType,
        file_size: int,
        headers: List[str],
        rows: List[Dict[str, Any]],
        extra_data: Optional[Dict[str, Any]] = None,
        ai_insights: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> UploadedFile:
        """
        Record a file that is already parsed (combined datasets).

        With ``commit=False`` the row is only flushed so the caller can make it
        part of a larger transaction.
        """
        processed = self._processed_data(headers, rows)
        if extra_data:
            processed.update(extra_data)

        uploaded = UploadedFile(
            original_filename=original_filename,
            filename=filename,
            file_path=file_path,
            file_type=file_type,
            file_size=file_size,
            status=FileStatus.COMPLETED,
            processed_data=processed,
            ai_insights=ai_insights,
        )
        self.db.add(uploaded)
        if commit:
            self.db.commit()
            self.db.refresh(uploaded)
        else:
            self.db.flush()
        return uploaded

    def mark_parsed(self, file_id: str, headers: List[str], rows: List[Dict[str, Any]]) -> UploadedFile:
        uploaded = self.get(file_id)
        uploaded.processed_data = self._processed_data(headers, rows)
        uploaded.status = FileStatus.COMPLETED
        uploaded.error_message = None
        self.db.commit()
        self.db.refresh(uploaded)

        logger.info(
            f"File {file_id} parsed: {uploaded.total_rows} rows, {uploaded.total_columns} columns"
        )
        return uploaded

    def mark_failed(self, file_id: str, reason: str) -> UploadedFile:
        """Terminal failure. A failed file can only be re-uploaded."""
        uploaded = self.get(file_id)
        uploaded.status = FileStatus.FAILED
        uploaded.error_message = reason
        self.db.commit()
        self.db.refresh(uploaded)

        logger.warning(f"File {file_id} failed to parse: {reason}")
        return uploaded

    def attach_insights(self, file_id: str, insights: Dict[str, Any]) -> UploadedFile:
        uploaded = self.get(file_id)
        uploaded.ai_insights = insights
        self.db.commit()
        self.db.refresh(uploaded)
        return uploaded

    def get(self, file_id: str) -> UploadedFile:
        uploaded = self.db.query(UploadedFile).filter(UploadedFile.id == file_id).first()
        if not uploaded:
            raise NotFound(f"File {file_id} not found")
        return uploaded

    def get_completed(self, file_id: str) -> UploadedFile:
        """Fetch a file that is eligible for widgets and combination"""
        uploaded = self.get(file_id)
        if not uploaded.is_completed:
            raise InvalidInput(f"File '{uploaded.original_filename}' is not processed yet")
        return uploaded

    def list_files(self, status: Optional[FileStatus] = None) -> List[UploadedFile]:
        query = self.db.query(UploadedFile)
        if status is not None:
            query = query.filter(UploadedFile.status == status)
        return query.order_by(UploadedFile.created_at.desc()).all()

    def list_completed(self) -> List[UploadedFile]:
        return self.list_files(status=FileStatus.COMPLETED)

    @staticmethod
    def _processed_data(headers: List[str], rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "headers": list(headers),
            "data": list(rows),
            "total_rows": len(rows),
            "total_columns": len(headers),
        }
