"""
ops_logger.py - operational event logger

Writes structured events to the ``ops_events`` collection so session lifecycle
transitions can be monitored and searched from one place.
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any

from app.firebase import db

logger = logging.getLogger("app.ops_logger")


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class EventType(str, Enum):
    # Solo Prep
    SESSION_CREATE = "SESSION_CREATE"
    SESSION_DELETE = "SESSION_DELETE"
    BRIEFING_GENERATED = "BRIEFING_GENERATED"

    # Joint Unpack
    SESSION_CONVERTED = "SESSION_CONVERTED"
    JOINT_SESSION_DELETE = "JOINT_SESSION_DELETE"
    INVITATION_ACCEPTED = "INVITATION_ACCEPTED"
    INVITATION_EXPIRED = "INVITATION_EXPIRED"
    INVITEE_RESPONDED = "INVITEE_RESPONDED"
    REVEAL_READY = "REVEAL_READY"
    AGENDA_GENERATED = "AGENDA_GENERATED"

    # Content Generator
    LLM_FAILED = "LLM_FAILED"

    # Billing
    ENTITLEMENT_DENIED = "ENTITLEMENT_DENIED"


class ErrorCode(str, Enum):
    VERTEX_CALL_FAILED = "VERTEX_CALL_FAILED"
    VERTEX_SCHEMA_PARSE_ERROR = "VERTEX_SCHEMA_PARSE_ERROR"
    TRIAL_EXHAUSTED = "TRIAL_EXHAUSTED"
    SUBSCRIPTION_REQUIRED = "SUBSCRIPTION_REQUIRED"
    PREMIUM_REQUIRED = "PREMIUM_REQUIRED"


class OpsLogger:
    """Operational event logger"""

    _instance: Optional["OpsLogger"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def log(
        self,
        severity: Severity,
        event_type: EventType,
        *,
        uid: Optional[str] = None,
        session_id: Optional[str] = None,
        joint_session_id: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        message: Optional[str] = None,
        props: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Records an operational event.

        Returns:
            str: the generated event id
        """
        now = datetime.now(timezone.utc)
        event_id = f"{now.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"

        event_data = {
            "ts": now,
            "severity": severity.value if isinstance(severity, Severity) else severity,
            "type": event_type.value if isinstance(event_type, EventType) else event_type,
        }

        # Optional fields (None is not stored)
        if uid:
            event_data["uid"] = uid
        if session_id:
            event_data["soloPrepSessionId"] = session_id
        if joint_session_id:
            event_data["jointUnpackSessionId"] = joint_session_id
        if error_code:
            event_data["errorCode"] = error_code.value if isinstance(error_code, ErrorCode) else error_code
        if message:
            event_data["message"] = message
        if props:
            # Nested under props to keep top-level fields indexable and stable
            event_data["props"] = props

        try:
            db.collection("ops_events").document(event_id).set(event_data)
            logger.debug(f"Logged ops event: {event_id} - {event_type}")
        except Exception as e:
            # Event logging never affects the request
            logger.error(f"Failed to log ops event: {e}")

        return event_id

    def info(self, event_type: EventType, **kwargs) -> str:
        return self.log(Severity.INFO, event_type, **kwargs)

    def warn(self, event_type: EventType, **kwargs) -> str:
        return self.log(Severity.WARN, event_type, **kwargs)

    def error(self, event_type: EventType, **kwargs) -> str:
        return self.log(Severity.ERROR, event_type, **kwargs)


ops_logger = OpsLogger()


def log_entitlement_denied(uid: str, reason: str) -> str:
    error_code = {
        "trial_exhausted": ErrorCode.TRIAL_EXHAUSTED,
        "premium_required": ErrorCode.PREMIUM_REQUIRED,
    }.get(reason, ErrorCode.SUBSCRIPTION_REQUIRED)
    return ops_logger.warn(
        EventType.ENTITLEMENT_DENIED,
        uid=uid,
        error_code=error_code,
        message=f"Entitlement denied: {reason}",
        props={"reason": reason},
    )


def log_llm_failure(
    llm_type: str,  # "briefing", "agenda", "prompts"
    *,
    uid: Optional[str] = None,
    session_id: Optional[str] = None,
    joint_session_id: Optional[str] = None,
    error_message: Optional[str] = None,
    parse_error: bool = False,
) -> str:
    return ops_logger.error(
        EventType.LLM_FAILED,
        uid=uid,
        session_id=session_id,
        joint_session_id=joint_session_id,
        error_code=ErrorCode.VERTEX_SCHEMA_PARSE_ERROR if parse_error else ErrorCode.VERTEX_CALL_FAILED,
        message=error_message or f"LLM {llm_type} failed",
        props={"llmType": llm_type},
    )
