"""Uploaded file model"""
from sqlalchemy import Column, String, Integer, DateTime, JSON, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum

from xcel_dashboard.core.database import Base


class FileStatus(str, enum.Enum):
    """Parse status enumeration"""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileType(str, enum.Enum):
    """Supported spreadsheet formats"""
    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"


class UploadedFile(Base):
    """An uploaded (or combined) spreadsheet and its parsed contents"""
    __tablename__ = "uploaded_files"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # File information
    original_filename = Column(String, nullable=False)
    filename = Column(String, nullable=False)  # Name on disk
    file_path = Column(String, nullable=False)
    file_type = Column(SQLEnum(FileType), nullable=False)
    file_size = Column(Integer, default=0)

    status = Column(SQLEnum(FileStatus), default=FileStatus.PROCESSING, nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    # {"headers": [...], "data": [{header: value}], "total_rows": n, "total_columns": n}
    processed_data = Column(JSON, nullable=True)
    ai_insights = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    widgets = relationship("Widget", back_populates="uploaded_file", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UploadedFile(id={self.id}, name={self.original_filename}, status={self.status})>"

    @property
    def headers(self) -> list:
        return list((self.processed_data or {}).get("headers") or [])

    @property
    def rows(self) -> list:
        return list((self.processed_data or {}).get("data") or [])

    @property
    def total_rows(self) -> int:
        return int((self.processed_data or {}).get("total_rows") or 0)

    @property
    def total_columns(self) -> int:
        return int((self.processed_data or {}).get("total_columns") or 0)

    @property
    def is_completed(self) -> bool:
        return self.status == FileStatus.COMPLETED

    @property
    def formatted_file_size(self) -> str:
        size = float(self.file_size or 0)
        units = ["B", "KB", "MB", "GB"]
        i = 0
        while size > 1024 and i < len(units) - 1:
            size /= 1024
            i += 1
        return f"{round(size, 1)} {units[i]}"

    def to_dict(self, include_data: bool = False) -> dict:
        result = {
            "id": self.id,
            "original_filename": self.original_filename,
            "filename": self.filename,
            "file_type": self.file_type.value if self.file_type else None,
            "file_size": self.file_size,
            "formatted_file_size": self.formatted_file_size,
            "status": self.status.value,
            "error_message": self.error_message,
            "headers": self.headers,
            "total_rows": self.total_rows,
            "total_columns": self.total_columns,
            "ai_insights": self.ai_insights,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_data:
            result["data"] = self.rows
        return result
