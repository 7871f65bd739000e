import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from helpdesk.models.directory import Company, Department, TargetSystem
from helpdesk.models.ticket import STATUSES, Ticket, TicketAttachment, TicketMessage
from helpdesk.models.user import User

_BASE36 = string.digits + string.ascii_lowercase


def iso_ts(dt: datetime | None) -> str | None:
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def generate_ticket_number() -> str:
    stamp = _base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"TKT-{stamp}-{rand}".upper()


# --- authorization rules -------------------------------------------------------------


def can_view_ticket(user: User, ticket: Ticket) -> bool:
    if user.is_admin:
        return True
    if user.department_id is not None and user.department_id == ticket.department_id:
        return True
    return user.id in (ticket.created_by_id, ticket.assigned_to_id)


def can_post_message(user: User, ticket: Ticket) -> bool:
    return can_view_ticket(user, ticket)


def can_update_status(user: User, ticket: Ticket) -> bool:
    if user.is_admin:
        return True
    return (
        user.department_id is not None
        and ticket.department_id == user.department_id
        and ticket.assigned_to_id in (None, user.id)
    )


def list_scope_department(user: User, requested: Optional[int]) -> Optional[int]:
    """Department a listing is restricted to; None means every department."""
    if user.role == "super_admin":
        return requested
    return user.department_id if user.department_id is not None else -1


# --- state changes ------------------------------------------------------------------


def apply_status(ticket: Ticket, status: str) -> None:
    now = datetime.now(timezone.utc)
    ticket.status = status
    ticket.updated_at = now
    if status == "resolved":
        ticket.resolved_at = now
    elif status == "closed":
        ticket.closed_at = now
        if ticket.resolved_at is None:
            ticket.resolved_at = now


def apply_assignment(ticket: Ticket, assignee_id: str) -> None:
    ticket.assigned_to_id = assignee_id
    if ticket.status in ("resolved", "closed"):
        ticket.status = "in_progress"
    ticket.updated_at = datetime.now(timezone.utc)


def resolve_target_system(session: Session, department_id: int, requested_id: Optional[int]) -> TargetSystem:
    """Requested system if it belongs to the department, else the first one, else a new 'General'."""
    systems = session.exec(
        select(TargetSystem).where(TargetSystem.department_id == department_id).order_by(TargetSystem.id)
    ).all()
    for s in systems:
        if s.id == requested_id:
            return s
    if systems:
        return systems[0]

    general = TargetSystem(name="General", department_id=department_id)
    session.add(general)
    session.commit()
    session.refresh(general)
    return general


# --- queries ------------------------------------------------------------------------

Creator = aliased(User, name="creator")
Assignee = aliased(User, name="assignee")


def _detail_query():
    return (
        select(Ticket, Company, Department, TargetSystem, Creator, Assignee)
        .join(Company, Company.id == Ticket.company_id, isouter=True)
        .join(Department, Department.id == Ticket.department_id, isouter=True)
        .join(TargetSystem, TargetSystem.id == Ticket.target_system_id, isouter=True)
        .join(Creator, Creator.id == Ticket.created_by_id, isouter=True)
        .join(Assignee, Assignee.id == Ticket.assigned_to_id, isouter=True)
    )


def list_tickets(
    session: Session,
    department_id: Optional[int] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[tuple]:
    q = _detail_query()
    if department_id is not None:
        q = q.where(Ticket.department_id == department_id)
    if status:
        q = q.where(Ticket.status == status)
    if priority:
        q = q.where(Ticket.priority == priority)
    if search:
        q = q.where(
            or_(
                Ticket.subject.contains(search, autoescape=True),
                Ticket.description.contains(search, autoescape=True),
                Ticket.ticket_number.contains(search, autoescape=True),
            )
        )
    q = q.order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(limit).offset(offset)
    return list(session.exec(q).all())


def get_ticket_row(session: Session, ticket_id: int) -> Optional[tuple]:
    return session.exec(_detail_query().where(Ticket.id == ticket_id)).first()


def ticket_stats(session: Session, department_id: Optional[int] = None) -> dict[str, int]:
    q = select(Ticket.status, func.count(Ticket.id)).group_by(Ticket.status)
    if department_id is not None:
        q = q.where(Ticket.department_id == department_id)

    out = {"total": 0}
    for s in STATUSES:
        out[s] = 0
    for status, count in session.exec(q).all():
        out["total"] += count
        if status in out:
            out[status] += count
    return out


def ticket_messages(session: Session, ticket_id: int) -> list[tuple[TicketMessage, Optional[User]]]:
    q = (
        select(TicketMessage, User)
        .join(User, User.id == TicketMessage.sender_id, isouter=True)
        .where(TicketMessage.ticket_id == ticket_id)
        .order_by(TicketMessage.created_at, TicketMessage.id)
    )
    return list(session.exec(q).all())


def ticket_attachments(session: Session, ticket_id: int) -> list[TicketAttachment]:
    return list(
        session.exec(
            select(TicketAttachment).where(TicketAttachment.ticket_id == ticket_id).order_by(TicketAttachment.id)
        ).all()
    )


# --- response shapes ----------------------------------------------------------------


def user_brief(user: Optional[User], fallback_id: Optional[str] = None) -> Optional[dict[str, Any]]:
    if user is None:
        return {"id": fallback_id, "firstName": None, "lastName": None, "email": None} if fallback_id else None
    return {"id": user.id, "firstName": user.first_name, "lastName": user.last_name, "email": user.email}


def user_out(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "employeeId": user.id,
        "username": user.username,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
        "department": user.department_id,
        "role": user.role,
    }


def ticket_summary(ticket: Ticket) -> dict[str, Any]:
    return {
        "id": ticket.id,
        "ticketNumber": ticket.ticket_number,
        "subject": ticket.subject,
        "description": ticket.description,
        "priority": ticket.priority,
        "status": ticket.status,
        "assignedTo": ticket.assigned_to_id,
        "createdAt": iso_ts(ticket.created_at),
        "updatedAt": iso_ts(ticket.updated_at),
    }


def ticket_list_item(row: tuple) -> dict[str, Any]:
    ticket, company, department, system, creator, assignee = row
    return {
        "id": ticket.id,
        "ticketNumber": ticket.ticket_number,
        "subject": ticket.subject,
        "description": ticket.description,
        "priority": ticket.priority,
        "status": ticket.status,
        "createdAt": iso_ts(ticket.created_at),
        "department": {"id": ticket.department_id, "name": department.name if department else None},
        "company": {"id": ticket.company_id, "name": company.name if company else None},
        "targetSystem": {"id": ticket.target_system_id, "name": system.name if system else None},
        "assignedTo": user_brief(assignee, ticket.assigned_to_id),
        "createdBy": user_brief(creator, ticket.created_by_id),
    }


def attachment_out(a: TicketAttachment) -> dict[str, Any]:
    return {
        "id": a.id,
        "ticketId": a.ticket_id,
        "messageId": a.message_id,
        "fileName": a.file_name,
        "originalName": a.original_name,
        "mimeType": a.mime_type,
        "fileSize": a.file_size,
        "url": f"/api/attachments/{a.file_name}",
        "createdAt": iso_ts(a.created_at),
    }


def ticket_detail(row: tuple, attachments: list[TicketAttachment]) -> dict[str, Any]:
    ticket = row[0]
    out = ticket_list_item(row)
    out.update(
        {
            "updatedAt": iso_ts(ticket.updated_at),
            "resolvedAt": iso_ts(ticket.resolved_at),
            "closedAt": iso_ts(ticket.closed_at),
            "attachments": [attachment_out(a) for a in attachments],
        }
    )
    return out


def message_out(message: TicketMessage, sender: Optional[User], attachments: Optional[list[TicketAttachment]] = None) -> dict[str, Any]:
    return {
        "id": message.id,
        "ticketId": message.ticket_id,
        "message": message.message,
        "createdAt": iso_ts(message.created_at),
        "sender": user_brief(sender, message.sender_id),
        "attachments": [attachment_out(a) for a in (attachments or [])],
    }
