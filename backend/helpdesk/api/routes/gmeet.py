import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from helpdesk.api.deps import get_current_user
from helpdesk.models.user import User
from helpdesk.services.gmeet import GoogleMeetClient, GoogleMeetError, get_meet_client
from helpdesk.services.meetings import clean_attendees

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gmeet", tags=["meetings"])


@router.post("/create")
def create_google_meet(
    payload: dict,
    user: User = Depends(get_current_user),
    client: Optional[GoogleMeetClient] = Depends(get_meet_client),
):
    if client is None:
        raise HTTPException(status_code=503, detail="Google Meet is not configured")

    title = str(payload.get("title") or "").strip()
    start = str(payload.get("start") or "").strip()
    end = str(payload.get("end") or "").strip()
    if not title or not start or not end:
        raise HTTPException(status_code=400, detail="title, start, end are required")

    try:
        return client.create_meeting(
            title=title,
            description=payload.get("description"),
            start=start,
            end=end,
            attendees=clean_attendees(payload.get("attendees")),
        )
    except GoogleMeetError as e:
        logger.error("Google Meet creation failed", extra={"user_id": user.id, "error": str(e)})
        raise HTTPException(status_code=502, detail="Failed to create Google Meet link")
