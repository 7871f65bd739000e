from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

ROLES = ("employee", "admin", "super_admin")
ADMIN_ROLES = ("admin", "super_admin")


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True, index=True)  # employee id
    username: str = Field(index=True, unique=True)
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = Field(default=None, index=True)
    department_id: Optional[int] = Field(default=None, foreign_key="departments.id", index=True)
    role: str = Field(default="employee", index=True)  # employee/admin/super_admin
    password_hash: str = ""
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class UserSession(SQLModel, table=True):
    __tablename__ = "sessions"

    sid: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime = Field(index=True)


class UserPrefs(SQLModel, table=True):
    __tablename__ = "user_prefs"

    user_id: str = Field(primary_key=True, foreign_key="users.id")
    notifications: bool = True
    daily_summary: bool = False

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
