import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlmodel import Session, select

from helpdesk.api.deps import get_current_user
from helpdesk.core.config import settings
from helpdesk.core.sanitize import sanitize_input
from helpdesk.db.session import get_session
from helpdesk.models.meeting import Meeting, MeetingAttendee
from helpdesk.models.user import User
from helpdesk.services.meetings import clean_attendees, resolve_meeting_link
from helpdesk.services.notifications import build_meeting_reminder, queue_email
from helpdesk.services.tickets import iso_ts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meetings", tags=["meetings"])


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    return sanitize_input(value) if isinstance(value, str) else ""


@router.post("", status_code=201)
def create_meeting(payload: dict, session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    title = _text(payload, "title")
    date = str(payload.get("date") or "").strip()
    time = str(payload.get("time") or "").strip()
    if not title or not date or not time:
        raise HTTPException(status_code=400, detail="title, date, time are required")

    attendees = clean_attendees(payload.get("attendees"), user.email)
    is_online = str(payload.get("meetingType") or "").lower() == "online"
    raw_location = payload.get("location") if isinstance(payload.get("location"), str) else None
    meet_id = payload.get("meetId") if isinstance(payload.get("meetId"), str) else None

    meeting_link = resolve_meeting_link("online" if is_online else "in_person", raw_location, meet_id)
    location = None if meeting_link else (_text(payload, "location") or None)
    description = _text(payload, "description") or None

    meeting = Meeting(
        title=title,
        date=date,
        time=time,
        meeting_link=meeting_link,
        location=location,
        description=description,
        created_by=user.id,
    )
    session.add(meeting)
    session.commit()
    session.refresh(meeting)
    for email in attendees:
        session.add(MeetingAttendee(meeting_id=meeting.id, email=email))
    session.commit()

    sent_reminders = False
    if payload.get("sendReminder") and attendees and settings.mail_enabled:
        subject, text = build_meeting_reminder(
            title,
            date,
            time,
            meeting_link or location or "TBD",
            description=description,
            note=_text(payload, "reminderNote") or None,
        )
        queued = [queue_email(email, subject, text=text, kind="meeting_reminder") for email in attendees]
        sent_reminders = any(queued)
        logger.info("Meeting reminders queued", extra={"meeting_id": meeting.id, "count": sum(queued)})

    return {
        "id": meeting.id,
        "title": title,
        "date": date,
        "time": time,
        "attendees": attendees,
        "meetingType": "online" if is_online else "in_person",
        "meetingLink": meeting_link,
        "location": location,
        "description": description,
        "sentReminders": sent_reminders,
    }


@router.get("")
def list_meetings(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    q = select(Meeting)
    if user.email:
        attended = select(MeetingAttendee.meeting_id).where(MeetingAttendee.email == user.email)
        q = q.where(or_(Meeting.created_by == user.id, Meeting.id.in_(attended)))
    else:
        q = q.where(Meeting.created_by == user.id)
    meetings = session.exec(q.order_by(Meeting.date, Meeting.time, Meeting.id)).all()

    attendees: dict[int, list[str]] = {}
    if meetings:
        rows = session.exec(
            select(MeetingAttendee)
            .where(MeetingAttendee.meeting_id.in_([m.id for m in meetings]))
            .order_by(MeetingAttendee.id)
        ).all()
        for a in rows:
            attendees.setdefault(a.meeting_id, []).append(a.email)

    return [
        {
            "id": m.id,
            "title": m.title,
            "date": m.date,
            "time": m.time,
            "meetingLink": m.meeting_link,
            "location": m.location,
            "description": m.description,
            "attendees": attendees.get(m.id, []),
            "createdAt": iso_ts(m.created_at),
        }
        for m in meetings
    ]
