"""Dashboard widget model"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum

from xcel_dashboard.core.database import Base


class WidgetType(str, enum.Enum):
    """Widget type enumeration"""
    KPI = "kpi"
    BAR_CHART = "bar_chart"
    PIE_CHART = "pie_chart"
    TABLE = "table"


class WidgetOrigin(str, enum.Enum):
    """Who produced the widget. Only used for badging in the UI."""
    AI = "ai"
    MANUAL = "manual"
    SYSTEM = "system"  # Placeholders created for combined files


class Widget(Base):
    """A typed visual element bound to one uploaded file"""
    __tablename__ = "widgets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    uploaded_file_id = Column(
        String, ForeignKey("uploaded_files.id", ondelete="CASCADE"), nullable=False, index=True
    )

    widget_name = Column(String(255), nullable=False)
    widget_type = Column(SQLEnum(WidgetType), nullable=False)
    widget_config = Column(JSON, nullable=False)  # Serialized WidgetConfig variant
    origin = Column(SQLEnum(WidgetOrigin), default=WidgetOrigin.MANUAL, nullable=False)

    is_displayed = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)

    ai_insights = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    uploaded_file = relationship("UploadedFile", back_populates="widgets")

    def __repr__(self):
        return f"<Widget(id={self.id}, name={self.widget_name}, type={self.widget_type})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uploaded_file_id": self.uploaded_file_id,
            "widget_name": self.widget_name,
            "widget_type": self.widget_type.value,
            "widget_config": self.widget_config,
            "origin": self.origin.value,
            "is_displayed": bool(self.is_displayed),
            "display_order": self.display_order,
            "ai_insights": self.ai_insights,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
