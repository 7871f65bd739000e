from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from helpdesk.db.session import get_session
from helpdesk.models.user import User, UserSession


def _aware(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def load_session_user(session: Session, sid: Optional[str]) -> Optional[User]:
    if not sid:
        return None
    row = session.get(UserSession, sid)
    if not row:
        return None
    if _aware(row.expires_at) <= datetime.now(timezone.utc):
        session.delete(row)
        session.commit()
        return None
    user = session.get(User, row.user_id)
    if not user or not user.is_active:
        return None
    return user


def get_current_user(request: Request, session: Session = Depends(get_session)) -> User:
    user = load_session_user(session, request.session.get("sid"))
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def require_role(*roles: str):
    """super_admin passes every role check."""

    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role != "super_admin" and user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return _dep


require_admin = require_role("admin")
require_super_admin = require_role("super_admin")
