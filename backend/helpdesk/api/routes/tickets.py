import logging
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from helpdesk.api.deps import get_current_user, require_admin
from helpdesk.core.sanitize import sanitize_input
from helpdesk.db.session import get_session
from helpdesk.metrics.prometheus import ticket_messages_total, ticket_status_changes_total, tickets_created_total
from helpdesk.models.directory import Company, Department
from helpdesk.models.ticket import Ticket, TicketMessage
from helpdesk.models.user import User
from helpdesk.services import tickets as svc
from helpdesk.services.notifications import notify_ticket_created
from helpdesk.services.realtime import WebSocketManager, get_ws_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


class TicketCreate(BaseModel):
    company_id: Optional[int] = None
    department_id: Optional[int] = None
    target_system_id: Optional[int] = None
    subject: str = ""
    description: str = ""
    priority: Literal["low", "medium", "high"] = "medium"


class StatusUpdate(BaseModel):
    status: Literal["open", "in_progress", "resolved", "closed"]


class AssignRequest(BaseModel):
    assigned_to: str


class MessageCreate(BaseModel):
    message: str = ""


def _get_ticket(session: Session, ticket_id: int) -> Ticket:
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.post("", status_code=201)
def create_ticket(
    body: TicketCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    subject = sanitize_input(body.subject)
    description = sanitize_input(body.description)
    if not subject or not description:
        raise HTTPException(status_code=400, detail="Subject and description are required")

    department_id = body.department_id if body.department_id is not None else user.department_id
    if department_id is None:
        raise HTTPException(status_code=400, detail="Department is required")
    department = session.get(Department, department_id)
    if not department:
        raise HTTPException(status_code=400, detail="Unknown department")

    company_id = body.company_id if body.company_id is not None else department.company_id
    if company_id is None or not session.get(Company, company_id):
        raise HTTPException(status_code=400, detail="Company is required")

    system = svc.resolve_target_system(session, department_id, body.target_system_id)

    ticket = Ticket(
        ticket_number=svc.generate_ticket_number(),
        company_id=company_id,
        department_id=department_id,
        target_system_id=system.id,
        subject=subject,
        description=description,
        priority=body.priority,
        status="open",
        created_by_id=user.id,
    )
    session.add(ticket)
    session.commit()
    session.refresh(ticket)

    tickets_created_total.labels(priority=ticket.priority).inc()
    logger.info(
        "Ticket created",
        extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "department_id": department_id},
    )

    try:
        notify_ticket_created(session, ticket, user, system.name)
    except Exception:
        logger.exception("Ticket notification emails failed", extra={"ticket_id": ticket.id})

    background_tasks.add_task(
        ws.notify_user,
        user.id,
        {
            "type": "ticket_created",
            "ticketId": ticket.id,
            "ticketNumber": ticket.ticket_number,
            "message": f"Ticket {ticket.ticket_number} created",
        },
    )

    out = svc.ticket_summary(ticket)
    out.pop("assignedTo")
    out.pop("updatedAt")
    return out


@router.get("")
def list_tickets(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    status: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    department_id: Optional[int] = Query(default=None),
    limit: int = Query(default=20),
    offset: int = Query(default=0),
):
    limit = min(max(limit, 1), 100)
    offset = max(offset, 0)

    rows = svc.list_tickets(
        session,
        department_id=svc.list_scope_department(user, department_id),
        status=status,
        priority=priority,
        search=(search or "").strip() or None,
        limit=limit,
        offset=offset,
    )
    return [svc.ticket_list_item(r) for r in rows]


@router.get("/{ticket_id}")
def get_ticket(ticket_id: int, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    row = svc.get_ticket_row(session, ticket_id)
    if not row:
        raise HTTPException(status_code=404, detail="Ticket not found")
    if not svc.can_view_ticket(user, row[0]):
        raise HTTPException(status_code=403, detail="Access denied")
    return svc.ticket_detail(row, svc.ticket_attachments(session, ticket_id))


@router.patch("/{ticket_id}/status")
def update_status(
    ticket_id: int,
    body: StatusUpdate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    ticket = _get_ticket(session, ticket_id)
    if not svc.can_update_status(user, ticket):
        raise HTTPException(
            status_code=403,
            detail="You can only update tickets from your department that you have accepted or that are unassigned",
        )

    svc.apply_status(ticket, body.status)
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    ticket_status_changes_total.labels(status=ticket.status).inc()

    background_tasks.add_task(ws.broadcast_ticket_update, ticket.id, {"status": ticket.status})
    if ticket.created_by_id != user.id:
        background_tasks.add_task(
            ws.notify_user,
            ticket.created_by_id,
            {
                "type": "ticket_status",
                "ticketId": ticket.id,
                "ticketNumber": ticket.ticket_number,
                "status": ticket.status,
                "message": f"Ticket {ticket.ticket_number} is now {ticket.status}",
            },
        )
    return svc.ticket_summary(ticket)


@router.patch("/{ticket_id}/assign")
def assign_ticket(
    ticket_id: int,
    body: AssignRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(require_admin),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    ticket = _get_ticket(session, ticket_id)
    assignee = session.get(User, body.assigned_to)
    if not assignee or not assignee.is_active:
        raise HTTPException(status_code=400, detail="Unknown assignee")

    svc.apply_assignment(ticket, assignee.id)
    session.add(ticket)
    session.commit()
    session.refresh(ticket)
    logger.info("Ticket assigned", extra={"ticket_id": ticket.id, "assigned_to": assignee.id, "by": user.id})

    background_tasks.add_task(
        ws.broadcast_ticket_update, ticket.id, {"assigned_to": assignee.id, "status": ticket.status}
    )
    background_tasks.add_task(
        ws.notify_user,
        assignee.id,
        {
            "type": "ticket_assigned",
            "ticketId": ticket.id,
            "ticketNumber": ticket.ticket_number,
            "message": f"Ticket {ticket.ticket_number} was assigned to you",
        },
    )
    return svc.ticket_summary(ticket)


@router.post("/{ticket_id}/accept")
def accept_ticket(
    ticket_id: int,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    ticket = _get_ticket(session, ticket_id)
    if ticket.assigned_to_id:
        raise HTTPException(status_code=409, detail="Ticket already accepted")
    if not user.is_admin and ticket.department_id != user.department_id:
        raise HTTPException(status_code=403, detail="You can only accept tickets from your department")

    svc.apply_assignment(ticket, user.id)
    session.add(ticket)
    session.commit()
    session.refresh(ticket)

    background_tasks.add_task(ws.broadcast_ticket_update, ticket.id, {"assigned_to": user.id, "status": ticket.status})
    return svc.ticket_summary(ticket)


@router.get("/{ticket_id}/department-users")
def department_users(ticket_id: int, session: Session = Depends(get_session), user: User = Depends(require_admin)):
    ticket = _get_ticket(session, ticket_id)
    users = session.exec(
        select(User)
        .where(User.department_id == ticket.department_id)
        .where(User.is_active == True)  # noqa: E712
        .order_by(User.first_name, User.last_name)
    ).all()
    return [svc.user_out(u) for u in users]


@router.get("/{ticket_id}/messages")
def list_messages(ticket_id: int, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    ticket = _get_ticket(session, ticket_id)
    if not svc.can_view_ticket(user, ticket):
        raise HTTPException(status_code=403, detail="Access denied")

    by_message: dict[int, list] = {}
    for a in svc.ticket_attachments(session, ticket_id):
        if a.message_id is not None:
            by_message.setdefault(a.message_id, []).append(a)

    return [svc.message_out(m, sender, by_message.get(m.id)) for m, sender in svc.ticket_messages(session, ticket_id)]


@router.post("/{ticket_id}/messages", status_code=201)
def post_message(
    ticket_id: int,
    body: MessageCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    ticket = _get_ticket(session, ticket_id)
    if not svc.can_post_message(user, ticket):
        raise HTTPException(status_code=403, detail="Not allowed to post in this chat")

    text = sanitize_input(body.message)
    if not text:
        raise HTTPException(status_code=400, detail="Message is required")

    message = TicketMessage(ticket_id=ticket.id, sender_id=user.id, message=text)
    session.add(message)
    session.commit()
    session.refresh(message)
    ticket_messages_total.inc()

    out = svc.message_out(message, user)
    background_tasks.add_task(ws.broadcast_ticket_message, ticket.id, out)
    return out
