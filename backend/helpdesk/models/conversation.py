from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("member_a_id", "member_b_id", name="uq_conversation_members"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    # member_a_id < member_b_id
    member_a_id: str = Field(foreign_key="users.id", index=True)
    member_b_id: str = Field(foreign_key="users.id", index=True)
    department_id: Optional[int] = Field(default=None, foreign_key="departments.id")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def has_member(self, user_id: str) -> bool:
        return user_id in (self.member_a_id, self.member_b_id)

    def other_member(self, user_id: str) -> str:
        return self.member_b_id if user_id == self.member_a_id else self.member_a_id


class ConversationMessage(SQLModel, table=True):
    __tablename__ = "conversation_messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversations.id", index=True)
    sender_id: str = Field(foreign_key="users.id")
    message: str

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
