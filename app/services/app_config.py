"""
App Configuration Service
Provides maintenance mode and per-feature kill switches.

Configuration is stored in Firestore at:
  - config/app_config (main config document)

The document is edited directly in the Firestore console; the service only reads it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel

from app.firebase import db

logger = logging.getLogger("app.config")

# ============================================================================
# Models
# ============================================================================

class MaintenanceInfo(BaseModel):
    """Maintenance mode configuration"""
    enabled: bool = False
    title: Optional[str] = None
    message: Optional[str] = None
    eta: Optional[datetime] = None
    allowLimitedMode: bool = True  # If true, features stay individually switchable


class FeatureFlags(BaseModel):
    """Feature-level kill switches"""
    soloPrep: bool = True
    jointUnpack: bool = True
    guestAccess: bool = True
    contentGeneration: bool = True


class AppConfigResponse(BaseModel):
    """Response model for GET /app-config"""
    status: str = "ok"  # "ok" | "maintenance" | "degraded"
    generatedAt: datetime
    maintenance: MaintenanceInfo
    featureFlags: FeatureFlags


def _config_doc_ref():
    return db.collection("config").document("app_config")


# ============================================================================
# Service Functions
# ============================================================================

def get_app_config() -> AppConfigResponse:
    """
    Retrieve current app configuration from Firestore.
    Returns default config if document doesn't exist.
    """
    doc = _config_doc_ref().get()
    now = datetime.now(timezone.utc)

    if not doc.exists:
        return AppConfigResponse(
            status="ok",
            generatedAt=now,
            maintenance=MaintenanceInfo(),
            featureFlags=FeatureFlags(),
        )

    data = doc.to_dict() or {}
    maintenance = MaintenanceInfo(**(data.get("maintenance") or {}))
    # Unknown keys in Firestore are ignored; missing ones default to enabled
    feature_flags = FeatureFlags(**(data.get("featureFlags") or {}))

    if maintenance.enabled and not maintenance.allowLimitedMode:
        status = "maintenance"
    elif maintenance.enabled or not all(feature_flags.model_dump().values()):
        status = "degraded"
    else:
        status = "ok"

    return AppConfigResponse(
        status=status,
        generatedAt=now,
        maintenance=maintenance,
        featureFlags=feature_flags,
    )


def is_feature_enabled(feature: str) -> bool:
    """
    Check if a specific feature is enabled.
    Used by feature gate dependencies.

    Returns True if the config cannot be read (fail-open).
    """
    try:
        config = get_app_config()

        # Hard maintenance disables everything
        if config.maintenance.enabled and not config.maintenance.allowLimitedMode:
            return False

        return getattr(config.featureFlags, feature, True)
    except Exception as e:
        logger.error(f"[AppConfig] Error checking feature flag {feature}: {e}")
        return True


def get_maintenance_error_response(feature: str = None) -> dict:
    """Standardized 503 detail for maintenance or a disabled feature."""
    config = get_app_config()

    if config.maintenance.enabled and not config.maintenance.allowLimitedMode:
        return {
            "code": "MAINTENANCE_MODE",
            "title": config.maintenance.title,
            "message": config.maintenance.message or "Parity is down for maintenance.",
            "eta": config.maintenance.eta.isoformat() if config.maintenance.eta else None,
        }

    if feature:
        return {
            "code": f"FEATURE_DISABLED_{feature.upper()}",
            "message": f"This feature is temporarily unavailable: {feature}",
        }

    return {
        "code": "SERVICE_UNAVAILABLE",
        "message": "Service is temporarily unavailable.",
    }
