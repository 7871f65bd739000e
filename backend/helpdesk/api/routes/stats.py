from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from helpdesk.api.deps import get_current_user
from helpdesk.db.session import get_session
from helpdesk.models.user import User
from helpdesk.services.tickets import list_scope_department, ticket_stats

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("")
def stats(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    department_id: Optional[int] = Query(default=None),
):
    return ticket_stats(session, list_scope_department(user, department_id))
