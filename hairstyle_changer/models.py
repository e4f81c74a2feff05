# Tables (ORM models): users, ai_tasks, credit_consumptions

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime
from sqlmodel import SQLModel, Field, Column


def utcnow() -> datetime:
    """Naive UTC timestamp. Every timestamp column is a plain DateTime, so stored values stay naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.SUCCEEDED, TaskStatus.FAILED})


class TaskProvider(str, Enum):
    KIE_4O = "kie_4o"
    KIE_KONTEXT = "kie_kontext"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    credits: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))


class CreditConsumption(SQLModel, table=True):
    __tablename__ = "credit_consumptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    credits: int
    reason: str = "hairstyle"
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))


class AiTask(SQLModel, table=True):
    __tablename__ = "ai_tasks"

    task_no: str = Field(primary_key=True, index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    # provider job id, set once when the task is started
    task_id: Optional[str] = Field(default=None, index=True)
    status: str = Field(default=TaskStatus.PENDING.value, index=True)  # pending | running | succeeded | failed
    provider: str  # kie_4o | kie_kontext
    request_param: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    input_params: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    ext: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    aspect: Optional[str] = None
    estimated_start_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    started_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    result_url: Optional[str] = None
    result_data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    fail_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
