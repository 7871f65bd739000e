import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import or_
from sqlmodel import Session, select

from helpdesk.api.deps import load_session_user
from helpdesk.core.config import settings
from helpdesk.core.passwords import verify_password
from helpdesk.db.session import get_session
from helpdesk.metrics.prometheus import login_attempts_total
from helpdesk.models.user import User, UserSession
from helpdesk.services.tickets import user_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login")
def login(payload: dict, request: Request, session: Session = Depends(get_session)):
    employee_id = str(payload.get("employee_id") or "").strip()
    password = payload.get("password") or ""
    if not employee_id or not isinstance(password, str) or not password:
        raise HTTPException(status_code=400, detail="Employee ID and password are required")

    user = session.exec(select(User).where(or_(User.id == employee_id, User.username == employee_id))).first()
    if (
        not user
        or not user.is_active
        or not verify_password(password, user.password_hash, allow_plaintext=settings.auth_plaintext_fallback)
    ):
        login_attempts_total.labels(outcome="failure").inc()
        logger.info("Login failed", extra={"employee_id": employee_id})
        raise HTTPException(status_code=401, detail="Invalid credentials")

    sid = secrets.token_urlsafe(32)
    now = datetime.now(timezone.utc)
    session.add(
        UserSession(
            sid=sid,
            user_id=user.id,
            created_at=now,
            expires_at=now + timedelta(seconds=settings.session_max_age_seconds),
        )
    )
    session.commit()

    request.session.clear()
    request.session["sid"] = sid
    login_attempts_total.labels(outcome="success").inc()
    logger.info("Login succeeded", extra={"user_id": user.id})
    return {"user": user_out(user)}


@router.get("/user")
def current_user(request: Request, session: Session = Depends(get_session)):
    user = load_session_user(session, request.session.get("sid"))
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return {"user": user_out(user)}


@router.post("/logout")
def logout(request: Request, session: Session = Depends(get_session)):
    sid = request.session.get("sid")
    if sid:
        row = session.get(UserSession, sid)
        if row:
            session.delete(row)
            session.commit()
    request.session.clear()
    return {"ok": True}
