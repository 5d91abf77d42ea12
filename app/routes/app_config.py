"""
App Configuration API Routes

Provides:
- GET /app-config - Public endpoint clients poll for maintenance and kill switches
"""

import logging
from typing import Optional
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from app.services.app_config import get_app_config, AppConfigResponse

router = APIRouter()
logger = logging.getLogger("app.routes.app_config")


@router.get("/app-config", response_model=AppConfigResponse)
async def get_config(
    platform: Optional[str] = Query(None, description="Client platform (ios, android, web)"),
    version: Optional[str] = Query(None, description="Client app version"),
):
    """
    Current app configuration: maintenance state and feature flags.
    Cached for 30 seconds so emergency switches still propagate quickly.
    """
    config = get_app_config()

    if platform or version:
        logger.info(f"[/app-config] platform={platform} version={version}")

    return JSONResponse(
        content=config.model_dump(mode="json"),
        headers={
            "Cache-Control": "public, max-age=30",
            "X-Generated-At": config.generatedAt.isoformat(),
        },
    )
