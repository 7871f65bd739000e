from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response
from sqlalchemy import func, or_
from sqlmodel import Session, select

from helpdesk.api.deps import get_current_user
from helpdesk.core.sanitize import sanitize_input
from helpdesk.db.session import get_session
from helpdesk.models.conversation import Conversation, ConversationMessage
from helpdesk.models.user import User
from helpdesk.services.realtime import WebSocketManager, get_ws_manager
from helpdesk.services.tickets import iso_ts, user_brief

router = APIRouter(prefix="/api", tags=["messages"])


def _name_filter(q: str):
    like = f"%{q.lower()}%"
    full_name = func.lower(User.first_name + " " + User.last_name)
    return or_(
        func.lower(User.first_name).like(like),
        func.lower(User.last_name).like(like),
        full_name.like(like),
        func.lower(User.id).like(like),
        func.lower(User.username).like(like),
        func.lower(func.coalesce(User.email, "")).like(like),
    )


def _message_out(m: ConversationMessage) -> dict:
    return {
        "id": m.id,
        "conversationId": m.conversation_id,
        "senderId": m.sender_id,
        "message": m.message,
        "createdAt": iso_ts(m.created_at),
    }


def _conversation_out(c: Conversation, user_id: str, other: Optional[User] = None, last: Optional[ConversationMessage] = None) -> dict:
    return {
        "id": c.id,
        "memberAId": c.member_a_id,
        "memberBId": c.member_b_id,
        "departmentId": c.department_id,
        "otherUser": user_brief(other, c.other_member(user_id)),
        "lastMessage": last.message if last else None,
        "lastAt": iso_ts(last.created_at) if last else None,
        "createdAt": iso_ts(c.created_at),
    }


def _get_conversation(session: Session, conversation_id: int, user: User) -> Conversation:
    conv = session.get(Conversation, conversation_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not conv.has_member(user.id):
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")
    return conv


@router.get("/messages/users")
def team_users(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    q: str = Query(default=""),
    department_id: Optional[int] = Query(default=None),
):
    dep_id = department_id if user.role == "super_admin" and department_id is not None else user.department_id
    if dep_id is None:
        return []

    query = (
        select(User)
        .where(User.department_id == dep_id)
        .where(User.id != user.id)
        .where(User.is_active == True)  # noqa: E712
    )
    if q.strip():
        query = query.where(_name_filter(q.strip()))
    users = session.exec(query.order_by(User.first_name, User.last_name).limit(50)).all()
    return [user_brief(u) for u in users]


@router.get("/users/emails")
def email_suggestions(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    q: str = Query(default=""),
):
    query = select(User).where(User.email.is_not(None)).where(User.email != "").where(User.id != user.id)
    if q.strip():
        query = query.where(_name_filter(q.strip()))
    rows = session.exec(query.order_by(User.email).limit(20)).all()

    self_email = (user.email or "").strip().lower()
    return [{"email": u.email, "name": u.full_name} for u in rows if u.email.lower() != self_email]


@router.get("/messages/conversations")
def list_conversations(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    convs = session.exec(
        select(Conversation).where(or_(Conversation.member_a_id == user.id, Conversation.member_b_id == user.id))
    ).all()

    out = []
    for c in convs:
        last = session.exec(
            select(ConversationMessage)
            .where(ConversationMessage.conversation_id == c.id)
            .order_by(ConversationMessage.created_at.desc(), ConversationMessage.id.desc())
            .limit(1)
        ).first()
        out.append((c, last, session.get(User, c.other_member(user.id))))

    # most recent activity first, silent conversations last
    out.sort(key=lambda t: (t[1].created_at, t[1].id) if t[1] else (t[0].created_at, 0), reverse=True)
    out.sort(key=lambda t: t[1] is None)
    return [_conversation_out(c, user.id, other, last) for c, last, other in out]


@router.post("/messages/conversations", status_code=201)
def start_conversation(payload: dict, response: Response, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    other_id = str(payload.get("userId") or "").strip()
    if not other_id:
        raise HTTPException(status_code=400, detail="userId is required")
    if other_id == user.id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")
    other = session.get(User, other_id)
    if not other:
        raise HTTPException(status_code=404, detail="User not found")

    a, b = sorted((user.id, other.id))
    conv = session.exec(
        select(Conversation).where(Conversation.member_a_id == a).where(Conversation.member_b_id == b)
    ).first()
    if conv:
        response.status_code = 200
    else:
        conv = Conversation(member_a_id=a, member_b_id=b, department_id=user.department_id)
        session.add(conv)
        session.commit()
        session.refresh(conv)
    return _conversation_out(conv, user.id, other)


@router.get("/messages/conversations/{conversation_id}")
def conversation_messages(conversation_id: int, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    conv = _get_conversation(session, conversation_id, user)
    messages = session.exec(
        select(ConversationMessage)
        .where(ConversationMessage.conversation_id == conv.id)
        .order_by(ConversationMessage.created_at, ConversationMessage.id)
    ).all()
    return [_message_out(m) for m in messages]


@router.post("/messages/conversations/{conversation_id}", status_code=201)
def send_conversation_message(
    conversation_id: int,
    payload: dict,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    ws: WebSocketManager = Depends(get_ws_manager),
):
    conv = _get_conversation(session, conversation_id, user)
    raw = payload.get("message")
    text = sanitize_input(raw if isinstance(raw, str) else "")
    if not text:
        raise HTTPException(status_code=400, detail="message is required")

    message = ConversationMessage(conversation_id=conv.id, sender_id=user.id, message=text)
    session.add(message)
    session.commit()
    session.refresh(message)

    out = _message_out(message)
    background_tasks.add_task(
        ws.notify_user,
        conv.other_member(user.id),
        {"type": "direct_message", "conversationId": conv.id, "from": user_brief(user), "message": out},
    )
    return out
