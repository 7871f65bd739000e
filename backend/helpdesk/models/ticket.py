from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

STATUSES = ("open", "in_progress", "resolved", "closed")
PRIORITIES = ("low", "medium", "high")


class Ticket(SQLModel, table=True):
    __tablename__ = "tickets"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_number: str = Field(index=True, unique=True)

    company_id: int = Field(foreign_key="companies.id", index=True)
    department_id: int = Field(foreign_key="departments.id", index=True)
    target_system_id: int = Field(foreign_key="target_systems.id", index=True)

    subject: str
    description: str
    priority: str = Field(default="medium", index=True)  # low/medium/high
    status: str = Field(default="open", index=True)  # open/in_progress/resolved/closed

    created_by_id: str = Field(foreign_key="users.id", index=True)
    assigned_to_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class TicketMessage(SQLModel, table=True):
    __tablename__ = "ticket_messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(foreign_key="tickets.id", index=True)
    sender_id: str = Field(foreign_key="users.id", index=True)
    message: str

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)


class TicketAttachment(SQLModel, table=True):
    __tablename__ = "ticket_attachments"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: Optional[int] = Field(default=None, foreign_key="tickets.id", index=True)
    message_id: Optional[int] = Field(default=None, foreign_key="ticket_messages.id", index=True)

    file_name: str = Field(index=True, unique=True)  # stored name
    original_name: str
    mime_type: str
    file_size: int
    file_path: str
    uploaded_by_id: str = Field(foreign_key="users.id")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
