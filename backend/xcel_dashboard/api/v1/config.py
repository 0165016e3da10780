"""Public config endpoint for the frontend (limits, feature flags)."""
from fastapi import APIRouter

from xcel_dashboard.config import settings

router = APIRouter()


@router.get("/config")
def get_config():
    """Return display limits and whether AI features are available. No auth required."""
    return {
        "success": True,
        "project_name": settings.PROJECT_NAME,
        "ai_enabled": settings.ai_enabled,
        "limits": {
            "kpi": settings.MAX_DISPLAYED_KPIS,
            "chart": settings.MAX_DISPLAYED_CHARTS,
        },
        "max_upload_mb": settings.MAX_UPLOAD_MB,
        "accepted_file_types": ["xlsx", "xls", "csv"],
    }
