from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Meeting(SQLModel, table=True):
    __tablename__ = "meetings"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    date: str = Field(index=True)  # YYYY-MM-DD
    time: str  # HH:mm
    meeting_link: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    created_by: str = Field(foreign_key="users.id", index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MeetingAttendee(SQLModel, table=True):
    __tablename__ = "meeting_attendees"

    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(foreign_key="meetings.id", index=True)
    email: str = Field(index=True)
