"""
Feature Gate Dependencies

FastAPI dependencies that check the kill switches in ``config/app_config``
before a route runs.

    from app.feature_gate import require_feature, FeatureName

    @router.post("/sessions/{session_id}/generate-briefing")
    async def generate_briefing(
        session_id: str,
        _gate=Depends(require_feature(FeatureName.CONTENT_GENERATION)),
    ):
        ...
"""

import logging
from enum import Enum
from typing import Callable

from fastapi import HTTPException

from app.services.app_config import is_feature_enabled, get_maintenance_error_response

logger = logging.getLogger("app.feature_gate")


class FeatureName(str, Enum):
    """Feature names that can be gated"""
    SOLO_PREP = "soloPrep"
    JOINT_UNPACK = "jointUnpack"
    GUEST_ACCESS = "guestAccess"
    CONTENT_GENERATION = "contentGeneration"


def require_feature(feature: FeatureName) -> Callable:
    """Creates a dependency that answers 503 while ``feature`` is switched off."""
    async def check_feature():
        if not is_feature_enabled(feature.value):
            error_response = get_maintenance_error_response(feature.value)
            logger.warning(f"[FeatureGate] Blocked request: feature={feature.value}")
            raise HTTPException(status_code=503, detail=error_response)
        return True

    return check_feature
