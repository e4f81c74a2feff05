"""Persistence for AiTask rows."""

from typing import Any, Iterable, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from .errors import TaskNotFoundError
from .models import AiTask, utcnow


class TaskRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_task_no(self, task_no: str) -> Optional[AiTask]:
        return self.session.get(AiTask, task_no)

    def get_by_task_id(self, task_id: str) -> Optional[AiTask]:
        return self.session.exec(select(AiTask).where(AiTask.task_id == task_id)).first()

    def insert_batch(self, rows: Iterable[AiTask]) -> list[AiTask]:
        """Add rows to the current transaction; the caller commits."""
        rows = list(rows)
        self.session.add_all(rows)
        self.session.flush()
        return rows

    def update(self, task_no: str, **fields: Any) -> AiTask:
        """Apply a partial update to one row and commit it."""
        task = self.get_by_task_no(task_no)
        if task is None:
            raise TaskNotFoundError(f"Unknown task no: {task_no}")
        for name, value in fields.items():
            setattr(task, name, value)
        task.updated_at = utcnow()
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def update_if_status(self, task_no: str, status: str, /, **fields: Any) -> Optional[AiTask]:
        """Apply a partial update only while the row is still in ``status``.

        The status check and the write are one UPDATE statement. Returns None
        when the row moved on in the meantime; nothing is written then.
        """
        stmt = (
            update(AiTask)
            .where(AiTask.task_no == task_no, AiTask.status == status)
            .values(**fields, updated_at=utcnow())
        )
        result = self.session.connection().execute(stmt)
        self.session.commit()
        if result.rowcount != 1:
            return None
        task = self.get_by_task_no(task_no)
        self.session.refresh(task)
        return task
