from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast

from sqlmodel import Session, select

from taskrelay.db.models import Task


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True, slots=True)
class TaskFilters:
    assignee_email: str | None = None
    creator_id: int | None = None
    parent_id: int | None = None
    content_terms: tuple[str, ...] = ()


class TaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, task: Task) -> Task:
        self.session.add(task)
        self.session.flush()
        return task

    def get(self, task_id: int) -> Task | None:
        return self.session.get(Task, task_id)

    def list(
        self,
        *,
        filters: TaskFilters | None = None,
        newest_first: bool = True,
    ) -> list[Task]:
        active_filters = filters or TaskFilters()

        statement = select(Task)
        if active_filters.assignee_email is not None:
            statement = statement.where(Task.assignee_email == active_filters.assignee_email)
        if active_filters.creator_id is not None:
            statement = statement.where(Task.creator_id == active_filters.creator_id)
        if active_filters.parent_id is not None:
            statement = statement.where(Task.parent_id == active_filters.parent_id)
        for term in active_filters.content_terms:
            pattern = f"%{_escape_like(term)}%"
            statement = statement.where(cast(Any, Task.content).ilike(pattern, escape="\\"))

        id_column = cast(Any, Task.id)
        if newest_first:
            statement = statement.order_by(cast(Any, Task.creation_time).desc(), id_column.desc())
        else:
            statement = statement.order_by(id_column.asc())
        return list(self.session.exec(statement).all())

    def list_unresolved_assignments(self, assignee_email: str) -> list[Task]:
        statement = (
            select(Task)
            .where(Task.assignee_email == assignee_email)
            .where(cast(Any, Task.assignee_id).is_(None))
        )
        return list(self.session.exec(statement).all())
