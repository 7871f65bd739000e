import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import or_
from sqlmodel import Session, select

from helpdesk.api.deps import require_admin, require_super_admin
from helpdesk.core.config import settings
from helpdesk.core.passwords import hash_password, is_bcrypt_hash, is_md5_hex
from helpdesk.core.sanitize import sanitize_input
from helpdesk.db.session import get_session
from helpdesk.models.directory import Department
from helpdesk.models.user import ROLES, User, UserPrefs
from helpdesk.services.notifications import admin_recipients, build_daily_summary, queue_email
from helpdesk.services.tickets import ticket_stats, user_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class UserCreate(BaseModel):
    employeeId: str = ""
    username: str = ""
    firstName: str = ""
    lastName: Optional[str] = None
    email: Optional[str] = None
    departmentId: Optional[int] = None
    role: str = "employee"
    password: str = ""


def _prefs_out(prefs: UserPrefs) -> dict:
    return {"userId": prefs.user_id, "notifications": prefs.notifications, "dailySummary": prefs.daily_summary}


def _target_user_id(user: User, requested: Optional[str]) -> str:
    if user.role == "super_admin" and requested:
        return requested
    return user.id


@router.get("/prefs")
def get_prefs(
    session: Session = Depends(get_session),
    user: User = Depends(require_admin),
    user_id: Optional[str] = Query(default=None),
):
    target = _target_user_id(user, user_id)
    prefs = session.get(UserPrefs, target) or UserPrefs(user_id=target)
    return _prefs_out(prefs)


@router.post("/prefs")
def save_prefs(payload: dict, session: Session = Depends(get_session), user: User = Depends(require_admin)):
    requested = payload.get("user_id") if isinstance(payload.get("user_id"), str) else None
    target = _target_user_id(user, requested)
    if not session.get(User, target):
        raise HTTPException(status_code=404, detail="User not found")

    prefs = session.get(UserPrefs, target) or UserPrefs(user_id=target)
    if isinstance(payload.get("notifications"), bool):
        prefs.notifications = payload["notifications"]
    if isinstance(payload.get("dailySummary"), bool):
        prefs.daily_summary = payload["dailySummary"]
    prefs.updated_at = datetime.now(timezone.utc)
    session.add(prefs)
    session.commit()
    return {"ok": True}


@router.post("/run-daily-summary")
def run_daily_summary(session: Session = Depends(get_session), user: User = Depends(require_super_admin)):
    recipients = admin_recipients(session, "daily_summary")
    if not recipients:
        return {"ok": True, "message": "No subscribed recipients"}

    subject, text = build_daily_summary(ticket_stats(session))
    sent = sum(queue_email(r.email, subject, text=text, kind="daily_summary") for r in recipients)
    logger.info("Daily summary queued", extra={"recipients": len(recipients), "sent": sent})
    return {"ok": True, "sent": sent}


@router.get("/users")
def list_users(session: Session = Depends(get_session), user: User = Depends(require_admin)):
    q = select(User).order_by(User.first_name, User.last_name, User.id)
    if user.role != "super_admin":
        q = q.where(User.department_id == user.department_id)
    return [user_out(u) for u in session.exec(q).all()]


@router.patch("/users/{user_id}/role")
def update_role(user_id: str, payload: dict, session: Session = Depends(get_session), user: User = Depends(require_admin)):
    role = str(payload.get("role") or "").strip()
    if role not in ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")
    if user.role != "super_admin" and role == "super_admin":
        raise HTTPException(status_code=403, detail="Only super admin can assign super admin role")

    target = session.get(User, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role != "super_admin" and (target.department_id is None or target.department_id != user.department_id):
        raise HTTPException(status_code=403, detail="You can only change roles of users in your department")

    target.role = role
    session.add(target)
    session.commit()
    logger.info("User role changed", extra={"user_id": target.id, "role": role, "by": user.id})
    return {"id": target.id, "role": role}


@router.post("/users", status_code=201)
def create_user(body: UserCreate, session: Session = Depends(get_session), user: User = Depends(require_admin)):
    employee_id = sanitize_input(body.employeeId or body.username)
    username = sanitize_input(body.username) or employee_id
    first_name = sanitize_input(body.firstName)
    if not employee_id:
        raise HTTPException(status_code=400, detail="Employee ID or Username is required")
    if not first_name:
        raise HTTPException(status_code=400, detail="First name is required")
    if len(body.password) < 4:
        raise HTTPException(status_code=400, detail="Password must be at least 4 characters")

    allowed = ROLES if user.role == "super_admin" else ("admin", "employee")
    if body.role not in allowed:
        raise HTTPException(status_code=400, detail="Invalid role")

    department_id = body.departmentId if user.role == "super_admin" else user.department_id
    if department_id is not None and not session.get(Department, department_id):
        raise HTTPException(status_code=400, detail="Unknown department")

    exists = session.exec(select(User).where(or_(User.id == employee_id, User.username == username))).first()
    if exists:
        raise HTTPException(status_code=409, detail="User already exists")

    created = User(
        id=employee_id,
        username=username,
        first_name=first_name,
        last_name=sanitize_input(body.lastName),
        email=(body.email or "").strip() or None,
        department_id=department_id,
        role=body.role,
        password_hash=hash_password(body.password),
    )
    session.add(created)
    session.commit()
    logger.info("User created", extra={"user_id": created.id, "role": created.role, "by": user.id})
    return {"id": created.id}


@router.post("/rehash-passwords")
def rehash_passwords(session: Session = Depends(get_session), user: User = Depends(require_super_admin)):
    """Replace plaintext passwords with bcrypt hashes. Legacy md5 digests are left alone."""
    if not settings.auth_plaintext_fallback:
        raise HTTPException(status_code=400, detail="Plaintext fallback is disabled")

    updated = 0
    for u in session.exec(select(User)).all():
        if u.password_hash and not is_bcrypt_hash(u.password_hash) and not is_md5_hex(u.password_hash):
            u.password_hash = hash_password(u.password_hash)
            session.add(u)
            updated += 1
    session.commit()
    logger.info("Passwords rehashed", extra={"updated": updated})
    return {"updated": updated}
