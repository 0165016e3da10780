"""Models package"""
from xcel_dashboard.models.uploaded_file import UploadedFile, FileStatus, FileType
from xcel_dashboard.models.widget import Widget, WidgetType, WidgetOrigin

__all__ = [
    "UploadedFile",
    "FileStatus",
    "FileType",
    "Widget",
    "WidgetType",
    "WidgetOrigin",
]
