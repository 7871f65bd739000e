import logging
from typing import Optional

from celery import Celery
from sqlmodel import Session, select

from helpdesk.core.config import settings
from helpdesk.core.sanitize import escape_html
from helpdesk.metrics.prometheus import emails_queued_total
from helpdesk.models.user import ADMIN_ROLES, User, UserPrefs

logger = logging.getLogger(__name__)

celery_app = Celery(
    "helpdesk_api",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)


def queue_email(to: str, subject: str, text: Optional[str] = None, html: Optional[str] = None, kind: str = "generic") -> bool:
    """Hand one message to the mail worker. Never raises."""
    if not settings.mail_enabled or not to:
        return False
    try:
        celery_app.send_task("send_email", args=[to, subject, text, html])
    except Exception:
        logger.exception("Failed to queue email", extra={"kind": kind})
        return False
    emails_queued_total.labels(kind=kind).inc()
    return True


def _prefs_for(session: Session, user_ids: list[str]) -> dict[str, UserPrefs]:
    if not user_ids:
        return {}
    rows = session.exec(select(UserPrefs).where(UserPrefs.user_id.in_(user_ids))).all()
    return {p.user_id: p for p in rows}


def admin_recipients(session: Session, pref: str) -> list[User]:
    """Active admins/super admins with an email and the given pref switched on.

    Users without a prefs row get the defaults (notifications on, daily summary off).
    """
    admins = session.exec(
        select(User)
        .where(User.role.in_(ADMIN_ROLES))
        .where(User.is_active == True)  # noqa: E712
        .where(User.email.is_not(None))
        .where(User.email != "")
    ).all()
    prefs = _prefs_for(session, [u.id for u in admins])
    default = UserPrefs(user_id="", notifications=True, daily_summary=False)
    return [u for u in admins if getattr(prefs.get(u.id, default), pref)]


def department_recipients(session: Session, department_id: int) -> list[User]:
    return list(
        session.exec(
            select(User)
            .where(User.department_id == department_id)
            .where(User.is_active == True)  # noqa: E712
            .where(User.email.is_not(None))
            .where(User.email != "")
        ).all()
    )


def build_new_ticket_email(ticket, creator: User, target_system_name: str) -> tuple[str, str]:
    link = f"{settings.frontend_url.rstrip('/')}/tickets/{ticket.id}"
    priority = (ticket.priority or "").capitalize()
    subject = f"Helpdesk: New Ticket Raised - {ticket.subject}"
    html = f"""
<div style="font-family:Segoe UI,Arial,sans-serif;max-width:600px;margin:0 auto;padding:24px;">
  <h2 style="color:#2563eb;">New Support Ticket Created</h2>
  <p>Dear Team,</p>
  <p>A new support ticket has been raised. Please review the details below:</p>
  <table style="margin:18px 0;font-size:15px;">
    <tr><td><b>Subject:</b></td><td>{escape_html(ticket.subject)}</td></tr>
    <tr><td><b>Priority:</b></td><td>{escape_html(priority)}</td></tr>
    <tr><td><b>Raised by:</b></td><td>{escape_html(creator.first_name)} {escape_html(creator.last_name)}</td></tr>
    <tr><td><b>Target System:</b></td><td>{escape_html(target_system_name or ticket.target_system_id)}</td></tr>
    <tr><td><b>Ticket Number:</b></td><td>{escape_html(ticket.ticket_number)}</td></tr>
  </table>
  <a href="{escape_html(link)}">View Ticket</a>
  <p style="font-size:13px;color:#888;">This is an automated message from the Helpdesk.</p>
</div>
""".strip()
    return subject, html


def notify_ticket_created(session: Session, ticket, creator: User, target_system_name: str) -> int:
    queued = 0

    subject = f"New Ticket {ticket.ticket_number}"
    text = (
        f"Ticket {ticket.ticket_number} created in department {ticket.department_id}\n"
        f"Priority: {ticket.priority}\n"
        f"Subject: {ticket.subject}"
    )
    for admin in admin_recipients(session, "notifications"):
        queued += queue_email(admin.email, subject, text=text, kind="admin_notification")

    dept_subject, html = build_new_ticket_email(ticket, creator, target_system_name)
    for user in department_recipients(session, ticket.department_id):
        queued += queue_email(user.email, dept_subject, html=html, kind="department_notification")

    return queued


def build_daily_summary(stats: dict[str, int]) -> tuple[str, str]:
    subject = "Daily Helpdesk Summary"
    text = (
        f"Tickets: total={stats['total']}, open={stats['open']}, in_progress={stats['in_progress']}, "
        f"resolved={stats['resolved']}, closed={stats['closed']}"
    )
    return subject, text


def build_meeting_reminder(
    title: str,
    date: str,
    time: str,
    where: str,
    description: Optional[str] = None,
    note: Optional[str] = None,
) -> tuple[str, str]:
    subject = f"[Meeting] {title} - {date} {time}"
    lines = []
    if description:
        lines.extend([description, ""])
    lines.append(f"When: {date} at {time}")
    lines.append(f"Where: {where}")
    if note:
        lines.extend(["", f"Note: {note}"])
    return subject, "\n".join(lines).strip()
