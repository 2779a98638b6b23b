from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from pytest import MonkeyPatch
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from taskrelay.core.config import get_settings
from taskrelay.db.engine import create_engine_from_url, dispose_engine
from taskrelay.db.models import User
from taskrelay.main import create_app
from taskrelay.storage import LocalFileStorage
from taskrelay.workflow import TaskWorkflowService
from tests.shared import ApiTestContext, SteppingClock, WorkflowTestContext, to_sqlite_url


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine_from_url(to_sqlite_url(tmp_path / "workflow.db"))
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def storage(tmp_path: Path) -> LocalFileStorage:
    return LocalFileStorage(
        root_path=tmp_path / "blobs",
        public_base_url="/api/v1/files",
        max_upload_bytes=1024,
    )


@pytest.fixture
def workflow(engine: Engine, storage: LocalFileStorage) -> WorkflowTestContext:
    """
    A workflow service over a fresh SQLite database.

    Seeds the users a@x.com (creator) and b@x.com (assignee); c@x.com is left
    unknown so tests can exercise placeholder creation.
    """
    clock = SteppingClock()
    with Session(engine) as session:
        session.add(User(email="a@x.com", name="Ada", created_at=clock()))
        session.add(User(email="b@x.com", name="Bob", created_at=clock()))
        session.commit()

    return WorkflowTestContext(
        engine=engine,
        storage=storage,
        service=TaskWorkflowService(storage=storage, now_factory=clock),
        clock=clock,
    )


@pytest.fixture
def api_context(tmp_path: Path, monkeypatch: MonkeyPatch) -> Iterator[ApiTestContext]:
    """
    Creates a temporary SQLite database, blob directory and a test client.
    """
    db_url = to_sqlite_url(tmp_path / "api-integration.db")
    storage_root = tmp_path / "storage"
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("STORAGE_ROOT", str(storage_root))
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "64")
    monkeypatch.delenv("LOCAL_API_KEY", raising=False)
    get_settings.cache_clear()
    dispose_engine()

    engine = create_engine_from_url(db_url)
    SQLModel.metadata.create_all(engine)

    with TestClient(create_app()) as client:
        yield ApiTestContext(client=client, engine=engine, storage_root=storage_root)

    engine.dispose()
    dispose_engine()
    get_settings.cache_clear()
