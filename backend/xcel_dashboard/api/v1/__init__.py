"""API v1 routes"""
from fastapi import APIRouter

from xcel_dashboard.api.v1 import combine, config, files, widgets

router = APIRouter()

# Include sub-routers
router.include_router(config.router, tags=["config"])
router.include_router(files.router, prefix="/files", tags=["files"])
router.include_router(widgets.router, prefix="/widget-selection", tags=["widgets"])
router.include_router(widgets.ai_router, prefix="/ai", tags=["ai"])
router.include_router(combine.router, prefix="/combine-files", tags=["combine"])
