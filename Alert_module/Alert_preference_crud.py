from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import logging

from pydantic import ValidationError

from Login_module.Utils.security_errors import InvalidOperationError, storage_guard
from .Alert_preference_model import AlertPreference
from .Alert_schema import AlertPreferences

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = frozenset(AlertPreferences.model_fields)


def get_preference_row(db: Session, user_id: int) -> Optional[AlertPreference]:
    with storage_guard(db, "load alert preferences"):
        return db.query(AlertPreference).filter(AlertPreference.user_id == user_id).first()


def get_alert_preferences(db: Session, user_id: int) -> AlertPreferences:
    """Stored preferences of the user, or the defaults when none were saved."""
    row = get_preference_row(db, user_id)
    if row is None:
        return AlertPreferences()
    return AlertPreferences.model_validate(row)


def update_alert_preferences(db: Session, user_id: int, changes: Dict[str, Any]) -> AlertPreferences:
    """
    Apply a partial update, creating the row on first write.
    Fields missing from changes keep their stored (or default) value.
    """
    unknown = set(changes) - PREFERENCE_FIELDS
    if unknown:
        raise InvalidOperationError(
            f"Unknown preference field(s): {', '.join(sorted(unknown))}",
            {"fields": sorted(unknown)}
        )

    current = get_alert_preferences(db, user_id)
    try:
        merged = AlertPreferences(**{**current.model_dump(), **changes})
    except ValidationError as e:
        raise InvalidOperationError("Invalid alert preferences", {"errors": [err["msg"] for err in e.errors()]})

    with storage_guard(db, "update alert preferences"):
        row = db.query(AlertPreference).filter(AlertPreference.user_id == user_id).first()
        if row is None:
            row = AlertPreference(user_id=user_id)
            db.add(row)
        for field in changes:
            value = getattr(merged, field)
            # New list so the JSON column is flagged dirty
            setattr(row, field, list(value) if isinstance(value, list) else value)
        db.commit()
        db.refresh(row)

    logger.info(f"Alert preferences updated for user {user_id}: {', '.join(sorted(changes)) or 'no changes'}")
    return AlertPreferences.model_validate(row)
