from __future__ import annotations

import pytest
from sqlmodel import Session, select

from taskrelay.db.enums import LogAction, TaskStatus
from taskrelay.db.models import Task, TaskLog, User, as_utc
from taskrelay.workflow import (
    CONTENT_UPDATED_COMMENT,
    ActorContext,
    ForbiddenError,
    NotFoundError,
    ValidationFailure,
)
from tests.shared import WorkflowTestContext

CREATOR = ActorContext.for_email("a@x.com")
ASSIGNEE = ActorContext.for_email("b@x.com")


def _create(
    workflow: WorkflowTestContext,
    session: Session,
    *,
    content: str = "ship v1",
    assignee_email: str = "b@x.com",
    parent_id: int | None = None,
    actor: ActorContext = CREATOR,
) -> int:
    return workflow.service.create_task(
        session,
        actor,
        content=content,
        assignee_email=assignee_email,
        parent_id=parent_id,
    )


def _log_actions(session: Session, task_id: int) -> list[LogAction]:
    statement = select(TaskLog).where(TaskLog.task_id == task_id).order_by(TaskLog.id)
    logs = session.exec(statement).all()
    return [LogAction(log.action) for log in logs]


def test_create_task_persists_pending_task_and_create_log(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)

        task = session.get(Task, task_id)
        assert task is not None
        assert task.status == TaskStatus.PENDING
        assert task.assignee_email == "b@x.com"
        assert task.content_edits == []
        creator = workflow.service.require_user(session, "a@x.com")
        assignee = workflow.service.require_user(session, "b@x.com")
        assert task.creator_id == creator.id
        assert task.assignee_id == assignee.id

        logs = session.exec(select(TaskLog).where(TaskLog.task_id == task_id)).all()
        assert len(logs) == 1
        assert logs[0].action == LogAction.CREATE
        assert logs[0].user_id == creator.id
        assert logs[0].comment is None


def test_create_task_normalizes_emails_and_creates_placeholder_assignee(
    workflow: WorkflowTestContext,
) -> None:
    with Session(workflow.engine) as session:
        task_id = workflow.service.create_task(
            session,
            ActorContext.for_email("  a@x.com "),
            content="draft",
            assignee_email="  c@x.com  ",
        )

        placeholder = session.exec(select(User).where(User.email == "c@x.com")).one()
        assert placeholder.name is None
        task = session.get(Task, task_id)
        assert task is not None
        assert task.assignee_email == "c@x.com"
        assert task.assignee_id == placeholder.id


def test_create_task_rejects_unknown_creator(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        with pytest.raises(NotFoundError) as exc_info:
            _create(workflow, session, actor=ActorContext.for_email("ghost@x.com"))
        assert exc_info.value.code == "USER_NOT_FOUND"
        assert session.exec(select(Task)).all() == []


@pytest.mark.parametrize(("content", "assignee_email"), [("   ", "b@x.com"), ("ok", "  ")])
def test_create_task_rejects_blank_fields(
    workflow: WorkflowTestContext,
    content: str,
    assignee_email: str,
) -> None:
    with Session(workflow.engine) as session:
        with pytest.raises(ValidationFailure):
            _create(workflow, session, content=content, assignee_email=assignee_email)
        assert session.exec(select(Task)).all() == []


def test_create_subtask_requires_existing_parent(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        with pytest.raises(NotFoundError) as exc_info:
            _create(workflow, session, parent_id=999)
        assert exc_info.value.code == "PARENT_TASK_NOT_FOUND"

        parent_id = _create(workflow, session, content="parent")
        first = _create(workflow, session, content="child one", parent_id=parent_id)
        second = _create(workflow, session, content="child two", parent_id=parent_id)
        _create(workflow, session, content="unrelated")

        subtasks = workflow.service.get_subtasks(session, parent_id)
        assert [task.id for task in subtasks] == [first, second]


def test_status_noop_is_idempotent(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)

        for _ in range(3):
            workflow.service.change_task_status(
                session,
                ASSIGNEE,
                task_id=task_id,
                status=TaskStatus.PENDING,
            )

        task = session.get(Task, task_id)
        assert task is not None
        assert task.status == TaskStatus.PENDING
        assert _log_actions(session, task_id) == [LogAction.CREATE]


def test_status_noop_skips_permission_check(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session, ASSIGNEE, task_id=task_id, status=TaskStatus.COMPLETED
        )

        # the creator may not mark completed, but re-submitting the current status is a no-op
        workflow.service.change_task_status(
            session, CREATOR, task_id=task_id, status=TaskStatus.COMPLETED
        )
        assert _log_actions(session, task_id) == [LogAction.CREATE, LogAction.MARK_COMPLETED]


def test_same_status_with_comment_is_logged(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session,
            ASSIGNEE,
            task_id=task_id,
            status=TaskStatus.PENDING,
            comment="still working on it",
        )

        task = session.get(Task, task_id)
        assert task is not None
        assert task.last_comment == "still working on it"
        assert _log_actions(session, task_id) == [LogAction.CREATE, LogAction.UPDATE]


def test_reject_folds_into_pending(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session, ASSIGNEE, task_id=task_id, status=TaskStatus.COMPLETED
        )
        task = workflow.service.change_task_status(
            session,
            CREATOR,
            task_id=task_id,
            status=TaskStatus.REJECTED,
            comment="try again",
        )

        assert task.status == TaskStatus.PENDING
        timeline = workflow.service.get_task_timeline(session, task_id)
        assert timeline[0].log.action == LogAction.REJECT
        assert timeline[0].log.comment == "try again"


@pytest.mark.parametrize(
    ("actor", "status"),
    [
        (CREATOR, TaskStatus.COMPLETED),
        (CREATOR, TaskStatus.FAILED),
        (ASSIGNEE, TaskStatus.APPROVED),
        (ASSIGNEE, TaskStatus.REJECTED),
    ],
)
def test_status_changes_are_role_gated(
    workflow: WorkflowTestContext,
    actor: ActorContext,
    status: TaskStatus,
) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        with pytest.raises(ForbiddenError):
            workflow.service.change_task_status(session, actor, task_id=task_id, status=status)

        task = session.get(Task, task_id)
        assert task is not None
        assert task.status == TaskStatus.PENDING
        assert _log_actions(session, task_id) == [LogAction.CREATE]


def test_creator_who_is_also_assignee_holds_both_roles(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session, assignee_email="a@x.com")
        workflow.service.change_task_status(
            session, CREATOR, task_id=task_id, status=TaskStatus.COMPLETED
        )
        task = workflow.service.change_task_status(
            session, CREATOR, task_id=task_id, status=TaskStatus.APPROVED
        )
        assert task.status == TaskStatus.APPROVED


def test_anyone_known_may_reset_to_pending(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        workflow.service.sync_user(session, email="c@x.com")
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session, ASSIGNEE, task_id=task_id, status=TaskStatus.FAILED
        )

        task = workflow.service.change_task_status(
            session,
            ActorContext.for_email("c@x.com"),
            task_id=task_id,
            status=TaskStatus.PENDING,
        )
        assert task.status == TaskStatus.PENDING


def test_status_change_on_missing_task(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        with pytest.raises(NotFoundError) as exc_info:
            workflow.service.change_task_status(
                session, ASSIGNEE, task_id=404, status=TaskStatus.COMPLETED
            )
        assert exc_info.value.code == "TASK_NOT_FOUND"


def test_status_change_stores_last_comment_and_images(
    workflow: WorkflowTestContext,
) -> None:
    image = workflow.storage.request_upload_handle().storage_id
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        task = workflow.service.change_task_status(
            session,
            ASSIGNEE,
            task_id=task_id,
            status=TaskStatus.FAILED,
            comment="blocked on X",
            images=[image],
        )

        assert task.status == TaskStatus.FAILED
        assert task.last_comment == "blocked on X"
        assert task.last_comment_images == [image]
        log = workflow.service.get_task_timeline(session, task_id)[0].log
        assert log.action == LogAction.MARK_FAILED
        assert log.images == [image]


def test_content_edit_appends_previous_version(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session, content="v1")
        workflow.service.edit_task_content(session, CREATOR, task_id=task_id, content="v2")
        task = workflow.service.edit_task_content(
            session,
            CREATOR,
            task_id=task_id,
            content="v3",
            images=["a" * 32],
        )

        assert task.content == "v3"
        assert task.images == ["a" * 32]
        history = task.content_history()
        assert [edit.content for edit in history] == ["v1", "v2"]
        creator = workflow.service.require_user(session, "a@x.com")
        assert all(edit.user_id == creator.id for edit in history)
        assert history[0].timestamp < history[1].timestamp

        actions = _log_actions(session, task_id)
        assert actions == [LogAction.CREATE, LogAction.UPDATE, LogAction.UPDATE]
        newest = workflow.service.get_task_timeline(session, task_id)[0].log
        assert newest.comment == CONTENT_UPDATED_COMMENT


def test_content_edit_replaces_images_even_when_omitted(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = workflow.service.create_task(
            session,
            CREATOR,
            content="with picture",
            assignee_email="b@x.com",
            images=["b" * 32],
        )
        task = workflow.service.edit_task_content(
            session, CREATOR, task_id=task_id, content="without picture"
        )

        assert task.images is None
        assert task.content_history()[0].images == ["b" * 32]


def test_only_creator_may_edit_content(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session, content="v1")
        with pytest.raises(ForbiddenError):
            workflow.service.edit_task_content(session, ASSIGNEE, task_id=task_id, content="hijack")

        task = session.get(Task, task_id)
        assert task is not None
        assert task.content == "v1"
        assert task.content_edits == []


def test_log_comment_edit_keeps_history(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session,
            ASSIGNEE,
            task_id=task_id,
            status=TaskStatus.FAILED,
            comment="blocked on X",
        )
        log_id = workflow.service.get_task_timeline(session, task_id)[0].log.id
        assert log_id is not None

        log = workflow.service.edit_log_comment(
            session,
            ASSIGNEE,
            log_id=log_id,
            comment="blocked on Y",
        )

        assert log.comment == "blocked on Y"
        history = log.edit_history()
        assert len(history) == 1
        assert history[0].comment == "blocked on X"
        task = session.get(Task, task_id)
        assert task is not None
        assert task.content_edits == []


def test_log_comment_edit_requires_author(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        log_id = workflow.service.get_task_timeline(session, task_id)[0].log.id
        assert log_id is not None

        with pytest.raises(ForbiddenError):
            workflow.service.edit_log_comment(session, ASSIGNEE, log_id=log_id, comment="mine now")
        with pytest.raises(NotFoundError) as exc_info:
            workflow.service.edit_log_comment(session, CREATOR, log_id=9999, comment="nope")
        assert exc_info.value.code == "LOG_NOT_FOUND"


def test_filter_asymmetry_for_completed_task(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session, ASSIGNEE, task_id=task_id, status=TaskStatus.COMPLETED
        )

        def assigned(bucket: str) -> list[int | None]:
            tasks = workflow.service.list_tasks_assigned_to(
                session, "b@x.com", status_filter=bucket
            )
            return [task.id for task in tasks]

        def created(bucket: str) -> list[int | None]:
            tasks = workflow.service.list_tasks_created_by(
                session, "a@x.com", status_filter=bucket
            )
            return [task.id for task in tasks]

        assert assigned("completed") == [task_id]
        assert assigned("incomplete") == []
        assert created("review") == [task_id]
        assert created("completed") == []
        assert created("incomplete") == []
        assert created("all") == [task_id]
        assert created("bogus") == [task_id]


def test_lists_are_newest_first(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        first = _create(workflow, session, content="first")
        second = _create(workflow, session, content="second")
        third = _create(workflow, session, content="third")

        assigned = workflow.service.list_tasks_assigned_to(session, "b@x.com")
        created = workflow.service.list_tasks_created_by(session, "a@x.com")

        assert [task.id for task in assigned] == [third, second, first]
        assert [task.id for task in created] == [third, second, first]
        times = [as_utc(task.creation_time) for task in assigned]
        assert times == sorted(times, reverse=True)


def test_list_created_by_unknown_user(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        with pytest.raises(NotFoundError):
            workflow.service.list_tasks_created_by(session, "ghost@x.com")
        assert workflow.service.list_tasks_assigned_to(session, "ghost@x.com") == []


def test_search_replaces_index_lookup(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        release = _create(workflow, session, content="Ship the v1 release")
        _create(workflow, session, content="Write docs")
        _create(workflow, session, content="ship v2 release", assignee_email="c@x.com")

        found = workflow.service.list_tasks_assigned_to(session, "b@x.com", search_query="SHIP")
        assert [task.id for task in found] == [release]

        created = workflow.service.list_tasks_created_by(
            session, "a@x.com", search_query="ship release"
        )
        assert len(created) == 2

        blank = workflow.service.list_tasks_assigned_to(session, "b@x.com", search_query="   ")
        assert len(blank) == 2


def test_get_task_enriches_users_and_images(workflow: WorkflowTestContext) -> None:
    handle = workflow.storage.request_upload_handle()
    workflow.storage.write(handle.storage_id, b"png")
    missing = workflow.storage.request_upload_handle().storage_id

    with Session(workflow.engine) as session:
        task_id = workflow.service.create_task(
            session,
            CREATOR,
            content="with images",
            assignee_email="b@x.com",
            images=[handle.storage_id, missing],
        )
        detail = workflow.service.get_task(session, task_id)

        assert detail is not None
        assert detail.creator is not None and detail.creator.email == "a@x.com"
        assert detail.assignee is not None and detail.assignee.email == "b@x.com"
        assert detail.image_urls == [handle.upload_url, None]
        assert workflow.service.get_task(session, 12345) is None


def test_get_task_resolves_assignee_by_email_when_unlinked(
    workflow: WorkflowTestContext,
) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        task = session.get(Task, task_id)
        assert task is not None
        task.assignee_id = None
        session.add(task)
        session.commit()

        detail = workflow.service.get_task(session, task_id)
        assert detail is not None
        assert detail.assignee is not None
        assert detail.assignee.email == "b@x.com"


def test_sync_user_upserts_and_backfills_assignments(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session, assignee_email="c@x.com")
        task = session.get(Task, task_id)
        assert task is not None
        task.assignee_id = None
        session.add(task)
        session.commit()

        user = workflow.service.sync_user(session, email="c@x.com", name="Cy", picture="p.png")
        assert user.name == "Cy"
        session.refresh(task)
        assert task.assignee_id == user.id

        again = workflow.service.sync_user(session, email="c@x.com")
        assert again.id == user.id
        assert again.name == "Cy"
        assert again.picture == "p.png"
        assert len(session.exec(select(User).where(User.email == "c@x.com")).all()) == 1


def test_timeline_is_newest_first_with_users(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session)
        workflow.service.change_task_status(
            session, ASSIGNEE, task_id=task_id, status=TaskStatus.COMPLETED
        )
        workflow.service.change_task_status(
            session, CREATOR, task_id=task_id, status=TaskStatus.APPROVED
        )

        timeline = workflow.service.get_task_timeline(session, task_id)
        assert [entry.log.action for entry in timeline] == [
            LogAction.APPROVE,
            LogAction.MARK_COMPLETED,
            LogAction.CREATE,
        ]
        assert [entry.user.email for entry in timeline if entry.user] == [
            "a@x.com",
            "b@x.com",
            "a@x.com",
        ]
        assert workflow.service.get_task_timeline(session, 9999) == []


def test_end_to_end_fail_then_reject(workflow: WorkflowTestContext) -> None:
    with Session(workflow.engine) as session:
        task_id = _create(workflow, session, content="ship v1")
        workflow.service.change_task_status(
            session,
            ASSIGNEE,
            task_id=task_id,
            status=TaskStatus.FAILED,
            comment="blocked on X",
        )
        workflow.service.change_task_status(
            session,
            CREATOR,
            task_id=task_id,
            status=TaskStatus.REJECTED,
            comment="try again",
        )

        task = session.get(Task, task_id)
        assert task is not None
        assert task.status == TaskStatus.PENDING

        timeline = list(reversed(workflow.service.get_task_timeline(session, task_id)))
        assert [(entry.log.action, entry.log.comment) for entry in timeline] == [
            (LogAction.CREATE, None),
            (LogAction.MARK_FAILED, "blocked on X"),
            (LogAction.REJECT, "try again"),
        ]

        incomplete = workflow.service.list_tasks_assigned_to(
            session, "b@x.com", status_filter="incomplete"
        )
        assert task_id in [item.id for item in incomplete]
        review = workflow.service.list_tasks_created_by(session, "a@x.com", status_filter="review")
        assert task_id not in [item.id for item in review]
