from __future__ import annotations

from typing import Any, cast

from sqlmodel import Session, select

from taskrelay.db.models import TaskLog


class TaskLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, log: TaskLog) -> TaskLog:
        self.session.add(log)
        self.session.flush()
        return log

    def get(self, log_id: int) -> TaskLog | None:
        return self.session.get(TaskLog, log_id)

    def list_for_task(self, task_id: int) -> list[TaskLog]:
        statement = (
            select(TaskLog)
            .where(TaskLog.task_id == task_id)
            .order_by(cast(Any, TaskLog.timestamp).desc(), cast(Any, TaskLog.id).desc())
        )
        return list(self.session.exec(statement).all())
