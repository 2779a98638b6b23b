from __future__ import annotations

from typing import Protocol

from sqlmodel import Session

from taskrelay.db.models import Task
from taskrelay.db.repositories import TaskFilters, TaskRepository

MAX_QUERY_TERMS = 16


class TaskSearch(Protocol):
    def search(
        self,
        session: Session,
        query: str,
        *,
        assignee_email: str | None = None,
        creator_id: int | None = None,
    ) -> list[Task]: ...


def tokenize_query(query: str) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for raw in query.split():
        term = raw.strip().lower()
        if term:
            seen.setdefault(term, None)
    return tuple(seen)[:MAX_QUERY_TERMS]


class SqlTaskSearch:
    """Every query term must occur in the task content (case-insensitive)."""

    def search(
        self,
        session: Session,
        query: str,
        *,
        assignee_email: str | None = None,
        creator_id: int | None = None,
    ) -> list[Task]:
        if assignee_email is None and creator_id is None:
            raise ValueError("search must be scoped to an assignee or a creator")
        terms = tokenize_query(query)
        if not terms:
            return []
        return TaskRepository(session).list(
            filters=TaskFilters(
                assignee_email=assignee_email,
                creator_id=creator_id,
                content_terms=terms,
            )
        )
