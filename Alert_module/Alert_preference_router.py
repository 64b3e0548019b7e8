"""
Alert Preference Router - which alerts notify the user, and how.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from deps import get_db
from Login_module.Utils.auth_user import get_current_user
from Login_module.User.user_model import User
from .Alert_preference_crud import get_alert_preferences, update_alert_preferences
from .Alert_schema import AlertPreferencesResponse, AlertPreferencesUpdate

router = APIRouter(prefix="/security/alert-preferences", tags=["Security Alerts"])


@router.get("", response_model=AlertPreferencesResponse)
def read_alert_preferences(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    prefs = get_alert_preferences(db, current_user.id)
    return AlertPreferencesResponse(message="Alert preferences retrieved successfully.", data=prefs)


@router.patch("", response_model=AlertPreferencesResponse)
def patch_alert_preferences(
    payload: AlertPreferencesUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Partial update. An empty alert_types list means every type notifies;
    alerts below severity_threshold are still recorded, just not sent.
    """
    prefs = update_alert_preferences(db, current_user.id, payload.to_changes())
    return AlertPreferencesResponse(message="Alert preferences updated successfully.", data=prefs)
