from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlmodel import Session

from taskrelay.core.logging import get_logger
from taskrelay.db.enums import INITIAL_TASK_STATUS, LogAction, TaskStatus
from taskrelay.db.models import ContentEdit, LogEdit, Task, TaskLog, User, as_utc, utc_now
from taskrelay.db.repositories import (
    TaskFilters,
    TaskLogRepository,
    TaskRepository,
    UserRepository,
)
from taskrelay.search import SqlTaskSearch, TaskSearch
from taskrelay.storage import FileStorage, UploadHandle
from taskrelay.workflow.actor import ActorContext, normalize_email
from taskrelay.workflow.buckets import TaskListView, filter_by_bucket
from taskrelay.workflow.errors import ForbiddenError, NotFoundError, ValidationFailure
from taskrelay.workflow.state_machine import (
    action_for_requested_status,
    ensure_actor_may_request,
    is_noop_status_change,
    stored_status_for,
    to_task_status,
)

FAILURE_POINT_AFTER_TASK_WRITE = "workflow.after_task_write"
FAILURE_POINT_BEFORE_COMMIT = "workflow.before_commit"
CONTENT_UPDATED_COMMENT = "Updated task details"
logger = get_logger("taskrelay.workflow.service")


class FailureInjectorLike(Protocol):
    def inject(self, *, point: str) -> None: ...


@dataclass(frozen=True, slots=True)
class TaskDetail:
    task: Task
    creator: User | None
    assignee: User | None
    image_urls: list[str | None]


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    log: TaskLog
    user: User | None
    image_urls: list[str | None]


def _require_text(value: str | None, *, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationFailure(f"{field} must not be blank.")
    return value


def _normalized_query(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized if normalized else None


def _newest_first(tasks: Sequence[Task]) -> list[Task]:
    return sorted(
        tasks,
        key=lambda task: (as_utc(task.creation_time), task.id or 0),
        reverse=True,
    )


class TaskWorkflowService:
    """Task lifecycle operations: creation, edits, status changes and listings.

    Every mutating method performs all of its writes inside the given session
    and commits once at the end; any error before that commit rolls the whole
    operation back, so a task change is never visible without its log entry.
    """

    def __init__(
        self,
        *,
        storage: FileStorage,
        search: TaskSearch | None = None,
        failure_injector: FailureInjectorLike | None = None,
        now_factory: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._search = search or SqlTaskSearch()
        self._failure_injector = failure_injector
        self._now_factory = now_factory

    # identity

    def get_user_by_email(self, session: Session, email: str) -> User | None:
        return UserRepository(session).get_by_email(normalize_email(email))

    def require_user(self, session: Session, email: str) -> User:
        user = self.get_user_by_email(session, email)
        if user is None:
            raise NotFoundError(f"User not found: {email}", code="USER_NOT_FOUND")
        return user

    def resolve_or_create_user(self, session: Session, email: str) -> User:
        """Look a user up by email, inserting a bare placeholder when unknown.

        Does not commit; the caller's unit of work decides.
        """
        repository = UserRepository(session)
        normalized = normalize_email(email)
        existing = repository.get_by_email(normalized)
        if existing is not None:
            return existing
        user = repository.add(User(email=normalized, created_at=self._now_factory()))
        logger.info("user.placeholder.created", user_id=user.id)
        return user

    def sync_user(
        self,
        session: Session,
        *,
        email: str,
        name: str | None = None,
        picture: str | None = None,
    ) -> User:
        normalized = normalize_email(email)
        with self._unit_of_work(session):
            repository = UserRepository(session)
            user = repository.get_by_email(normalized)
            if user is None:
                user = repository.add(
                    User(
                        email=normalized,
                        name=name,
                        picture=picture,
                        created_at=self._now_factory(),
                    )
                )
                created = True
            else:
                user.name = name if name is not None else user.name
                user.picture = picture if picture is not None else user.picture
                session.add(user)
                created = False

            backfilled = self._backfill_assignee_id(session, user)
        session.refresh(user)
        logger.info("user.synced", user_id=user.id, created=created, backfilled_tasks=backfilled)
        return user

    def _backfill_assignee_id(self, session: Session, user: User) -> int:
        tasks = TaskRepository(session).list_unresolved_assignments(user.email)
        for task in tasks:
            task.assignee_id = user.id
            session.add(task)
        if tasks:
            session.flush()
            logger.info("task.assignee.backfilled", user_id=user.id, task_count=len(tasks))
        return len(tasks)

    # task store

    def create_task(
        self,
        session: Session,
        actor: ActorContext,
        *,
        content: str,
        assignee_email: str,
        parent_id: int | None = None,
        images: list[str] | None = None,
    ) -> int:
        _require_text(content, field="content")
        normalized_assignee = normalize_email(assignee_email, field="assignee_email")

        with self._unit_of_work(session):
            creator = self.require_user(session, actor.email)
            tasks = TaskRepository(session)
            if parent_id is not None and tasks.get(parent_id) is None:
                raise NotFoundError(
                    f"Parent task {parent_id} does not exist.",
                    code="PARENT_TASK_NOT_FOUND",
                )
            assignee = self.resolve_or_create_user(session, normalized_assignee)

            now = self._now_factory()
            task = tasks.add(
                Task(
                    content=content,
                    images=images,
                    creator_id=creator.id,
                    assignee_email=normalized_assignee,
                    assignee_id=assignee.id,
                    status=INITIAL_TASK_STATUS,
                    parent_id=parent_id,
                    creation_time=now,
                    content_edits=[],
                )
            )
            self._inject_failure(point=FAILURE_POINT_AFTER_TASK_WRITE)
            TaskLogRepository(session).add(
                TaskLog(
                    task_id=task.id,
                    user_id=creator.id,
                    action=LogAction.CREATE,
                    timestamp=now,
                )
            )
            task_id = task.id

        if task_id is None:
            raise RuntimeError("task primary key missing after commit")
        logger.info(
            "task.created",
            task_id=task_id,
            creator_id=creator.id,
            assignee_id=assignee.id,
            parent_id=parent_id,
        )
        return task_id

    def get_task(self, session: Session, task_id: int) -> TaskDetail | None:
        task = TaskRepository(session).get(task_id)
        if task is None:
            return None

        users = UserRepository(session)
        creator = users.get(task.creator_id)
        if task.assignee_id is not None:
            assignee = users.get(task.assignee_id)
        else:
            # not reconciled yet; the email stays authoritative
            assignee = users.get_by_email(task.assignee_email)
        return TaskDetail(
            task=task,
            creator=creator,
            assignee=assignee,
            image_urls=self._resolve_images(task.images),
        )

    def edit_task_content(
        self,
        session: Session,
        actor: ActorContext,
        *,
        task_id: int,
        content: str,
        images: list[str] | None = None,
    ) -> Task:
        _require_text(content, field="content")

        with self._unit_of_work(session):
            editor = self.require_user(session, actor.email)
            task = self._require_task(session, task_id)
            if task.creator_id != editor.id:
                logger.warning("task.content.forbidden", task_id=task_id, editor_id=editor.id)
                raise ForbiddenError("Only the task creator can edit its content.")

            now = self._now_factory()
            previous = ContentEdit(
                content=task.content,
                images=task.images,
                timestamp=now,
                user_id=editor.id,
            )
            task.content_edits = [*(task.content_edits or []), previous.model_dump(mode="json")]
            task.content = content
            task.images = images
            session.add(task)
            session.flush()
            self._inject_failure(point=FAILURE_POINT_AFTER_TASK_WRITE)
            TaskLogRepository(session).add(
                TaskLog(
                    task_id=task_id,
                    user_id=editor.id,
                    action=LogAction.UPDATE,
                    comment=CONTENT_UPDATED_COMMENT,
                    timestamp=now,
                )
            )

        session.refresh(task)
        logger.info(
            "task.content.edited",
            task_id=task_id,
            editor_id=editor.id,
            history_length=len(task.content_edits),
        )
        return task

    # status transitions

    def change_task_status(
        self,
        session: Session,
        actor: ActorContext,
        *,
        task_id: int,
        status: TaskStatus | str,
        comment: str | None = None,
        images: list[str] | None = None,
    ) -> Task:
        requested = to_task_status(status)

        with self._unit_of_work(session):
            user = self.require_user(session, actor.email)
            task = self._require_task(session, task_id)
            current = to_task_status(task.status)

            if is_noop_status_change(current, requested, comment=comment, images=images):
                logger.info("task.status.noop", task_id=task_id, status=current.value)
                return task

            ensure_actor_may_request(task, user, requested)

            stored = stored_status_for(requested)
            task.status = stored
            task.last_comment = comment
            task.last_comment_images = images
            session.add(task)
            session.flush()
            self._inject_failure(point=FAILURE_POINT_AFTER_TASK_WRITE)

            action = action_for_requested_status(requested)
            TaskLogRepository(session).add(
                TaskLog(
                    task_id=task_id,
                    user_id=user.id,
                    action=action,
                    comment=comment,
                    images=images,
                    timestamp=self._now_factory(),
                )
            )

        session.refresh(task)
        logger.info(
            "task.status.changed",
            task_id=task_id,
            previous_status=current.value,
            requested_status=requested.value,
            status=stored.value,
            action=action.value,
        )
        return task

    # log entry edits

    def edit_log_comment(
        self,
        session: Session,
        actor: ActorContext,
        *,
        log_id: int,
        comment: str | None = None,
        images: list[str] | None = None,
    ) -> TaskLog:
        with self._unit_of_work(session):
            editor = self.require_user(session, actor.email)
            log = TaskLogRepository(session).get(log_id)
            if log is None:
                raise NotFoundError(f"Log entry {log_id} does not exist.", code="LOG_NOT_FOUND")
            if log.user_id != editor.id:
                logger.warning("task.log.forbidden", log_id=log_id, editor_id=editor.id)
                raise ForbiddenError("Only the author of a log entry can edit it.")

            previous = LogEdit(comment=log.comment, images=log.images, timestamp=self._now_factory())
            log.edits = [*(log.edits or []), previous.model_dump(mode="json")]
            log.comment = comment
            log.images = images
            session.add(log)
            session.flush()

        session.refresh(log)
        logger.info("task.log.edited", log_id=log_id, task_id=log.task_id, edits=len(log.edits))
        return log

    # queries

    def list_tasks_assigned_to(
        self,
        session: Session,
        user_email: str,
        *,
        status_filter: str | None = None,
        search_query: str | None = None,
    ) -> list[Task]:
        email = normalize_email(user_email)
        query = _normalized_query(search_query)
        if query is not None:
            tasks = self._search.search(session, query, assignee_email=email)
        else:
            tasks = TaskRepository(session).list(filters=TaskFilters(assignee_email=email))
        return _newest_first(filter_by_bucket(tasks, TaskListView.ASSIGNED, status_filter))

    def list_tasks_created_by(
        self,
        session: Session,
        user_email: str,
        *,
        status_filter: str | None = None,
        search_query: str | None = None,
    ) -> list[Task]:
        creator = self.require_user(session, user_email)
        query = _normalized_query(search_query)
        if query is not None:
            tasks = self._search.search(session, query, creator_id=creator.id)
        else:
            tasks = TaskRepository(session).list(filters=TaskFilters(creator_id=creator.id))
        return _newest_first(filter_by_bucket(tasks, TaskListView.CREATED, status_filter))

    def get_subtasks(self, session: Session, parent_id: int) -> list[Task]:
        return TaskRepository(session).list(
            filters=TaskFilters(parent_id=parent_id),
            newest_first=False,
        )

    def get_task_timeline(self, session: Session, task_id: int) -> list[TimelineEntry]:
        logs = TaskLogRepository(session).list_for_task(task_id)
        users = UserRepository(session).get_many(log.user_id for log in logs)
        return [
            TimelineEntry(
                log=log,
                user=users.get(log.user_id),
                image_urls=self._resolve_images(log.images),
            )
            for log in logs
        ]

    # files

    def request_upload_handle(self) -> UploadHandle:
        return self._storage.request_upload_handle()

    # internals

    @contextmanager
    def _unit_of_work(self, session: Session) -> Iterator[None]:
        try:
            yield
            self._inject_failure(point=FAILURE_POINT_BEFORE_COMMIT)
            session.commit()
        except Exception:
            session.rollback()
            raise

    def _require_task(self, session: Session, task_id: int) -> Task:
        task = TaskRepository(session).get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} does not exist.", code="TASK_NOT_FOUND")
        return task

    def _resolve_images(self, references: list[str] | None) -> list[str | None]:
        return [self._storage.resolve(reference) for reference in references or []]

    def _inject_failure(self, *, point: str) -> None:
        if self._failure_injector is None:
            return
        self._failure_injector.inject(point=point)
