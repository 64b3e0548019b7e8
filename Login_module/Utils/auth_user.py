from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from Login_module.Utils import Security
from deps import get_db
from Login_module.User.user_crud import get_user_by_id
from Session_module.Session_crud import get_session_by_id, touch_activity

security_scheme = HTTPBearer()


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
    db: Session = Depends(get_db)
):
    """
    Validates JWT token and returns the current authenticated user.
    The token's session must still be active; its activity timestamp is
    updated best-effort on each request.
    """
    token = credentials.credentials
    payload = Security.decode_access_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token does not contain user info"
        )

    session_id = payload.get("session_id")
    request.state.session_id = session_id
    if session_id:
        session = get_session_by_id(db, str(session_id))
        if not session or str(session.user_id) != str(user_id):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session not found"
            )
        if not session.is_valid():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session has been logged out"
            )
        touch_activity(db, session.id)

    try:
        user = get_user_by_id(db, int(user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user ID format in token"
        )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


def get_current_session_id(request: Request, current_user=Depends(get_current_user)) -> Optional[str]:
    """Session id claim of the authenticated request, if the token carries one."""
    return getattr(request.state, "session_id", None)
