from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Company(SQLModel, table=True):
    __tablename__ = "companies"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Department(SQLModel, table=True):
    __tablename__ = "departments"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    company_id: Optional[int] = Field(default=None, foreign_key="companies.id", index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TargetSystem(SQLModel, table=True):
    __tablename__ = "target_systems"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    department_id: int = Field(foreign_key="departments.id", index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
