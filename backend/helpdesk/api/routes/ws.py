import logging
from typing import Optional

from fastapi import APIRouter, WebSocket
from starlette.concurrency import run_in_threadpool

from helpdesk.api.deps import load_session_user
from helpdesk.db import session as session_mod
from helpdesk.models.ticket import Ticket
from helpdesk.models.user import User
from helpdesk.services.realtime import get_ws_manager
from helpdesk.services.tickets import can_view_ticket

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _user_for_sid(sid: Optional[str]) -> Optional[str]:
    with session_mod.session_scope() as s:
        user = load_session_user(s, sid)
        return user.id if user else None


def _may_view(user_id: str, ticket_id: int) -> bool:
    with session_mod.session_scope() as s:
        user = s.get(User, user_id)
        ticket = s.get(Ticket, ticket_id)
        return bool(user and ticket and can_view_ticket(user, ticket))


async def _can_join(user_id: str, ticket_id: int) -> bool:
    return await run_in_threadpool(_may_view, user_id, ticket_id)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    sid = websocket.session.get("sid") if "session" in websocket.scope else None
    user_id = await run_in_threadpool(_user_for_sid, sid)
    if not user_id:
        logger.info("WebSocket rejected: no session")
        await websocket.close(code=1008)
        return

    ticket_id = None
    raw = websocket.query_params.get("ticketId")
    if raw and raw.isdigit() and await _can_join(user_id, int(raw)):
        ticket_id = int(raw)

    await get_ws_manager().handle_websocket(websocket, user_id, ticket_id, can_join=_can_join)
