"""Exceptions raised by the session store and alert sink."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class SessionSecurityError(Exception):
    """Base exception carrying a stable reason code and an HTTP status."""

    code = "SECURITY_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


class ResourceNotFoundError(SessionSecurityError):
    """Session or alert does not exist or belongs to another user."""
    code = "NOT_FOUND"
    status_code = 404


class SessionNotFoundError(ResourceNotFoundError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: Optional[str] = None):
        super().__init__("Session not found", {"session_id": session_id} if session_id else None)


class AlertNotFoundError(ResourceNotFoundError):
    code = "ALERT_NOT_FOUND"

    def __init__(self, alert_id: Optional[int] = None):
        super().__init__("Security alert not found", {"alert_id": alert_id} if alert_id is not None else None)


class InvalidOperationError(SessionSecurityError):
    code = "INVALID_OPERATION"
    status_code = 400


class CurrentSessionRevokeError(InvalidOperationError):
    code = "CANNOT_REVOKE_CURRENT_SESSION"

    def __init__(self, session_id: str):
        super().__init__(
            "Cannot revoke current session. Use logout instead.",
            {"session_id": session_id},
        )


class SessionExpiredError(InvalidOperationError):
    code = "SESSION_EXPIRED"
    status_code = 401

    def __init__(self, session_id: str):
        super().__init__("Session has expired", {"session_id": session_id})


class StorageError(SessionSecurityError):
    """Persistence-layer failure surfaced to the caller."""
    code = "STORAGE_FAILURE"
    status_code = 503


@contextmanager
def storage_guard(db, operation: str):
    """Roll back and surface persistence failures as StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Storage failure during {operation}: {e}")
        raise StorageError(f"Storage failure during {operation}", {"operation": operation}) from e
