"""Upload service for storing, registering and parsing spreadsheets"""
from typing import Optional
import logging

from sqlalchemy.orm import Session

from xcel_dashboard.config import settings
from xcel_dashboard.core.exceptions import InvalidInput
from xcel_dashboard.models.uploaded_file import UploadedFile
from xcel_dashboard.services.file_parser import ParseError, detect_file_type, parse_bytes
from xcel_dashboard.services.file_registry import FileRegistry
from xcel_dashboard.services.file_storage import FileStorage

logger = logging.getLogger(__name__)


class UploadService:
    """Orchestrates store -> register -> parse -> mark parsed/failed"""

    def __init__(self, db: Session, storage: Optional[FileStorage] = None):
        self.db = db
        self.registry = FileRegistry(db)
        self.storage = storage or FileStorage()

    def upload(self, original_filename: str, content: bytes) -> UploadedFile:
        """Accept one upload.

        Rejections (bad extension, too large, empty name) raise InvalidInput and
        leave nothing behind. Once registered, a parse problem is recorded on
        the file as ``failed`` instead of raised, so the caller always gets the
        file back with its final status.
        """
        if not original_filename:
            raise InvalidInput("A file name is required")

        try:
            file_type = detect_file_type(original_filename)
        except ParseError as e:
            raise InvalidInput(str(e))

        if len(content) > settings.max_upload_bytes:
            raise InvalidInput(f"File exceeds the {settings.MAX_UPLOAD_MB} MB upload limit")

        path = self.storage.save(original_filename, content)
        uploaded = self.registry.register(
            original_filename=original_filename,
            filename=path.name,
            file_path=str(path),
            file_type=file_type,
            file_size=len(content),
        )

        try:
            headers, rows = parse_bytes(content, file_type)
        except ParseError as e:
            return self.registry.mark_failed(uploaded.id, str(e))

        return self.registry.mark_parsed(uploaded.id, headers, rows)
