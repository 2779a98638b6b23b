from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskrelay.api.errors import register_exception_handlers
from taskrelay.api.files import router as files_router
from taskrelay.api.health import router as health_router
from taskrelay.api.logs import router as logs_router
from taskrelay.api.tasks import router as tasks_router
from taskrelay.api.users import router as users_router
from taskrelay.core.auth import LocalApiKeyMiddleware
from taskrelay.core.config import Settings, get_settings
from taskrelay.core.logging import TraceContextMiddleware, configure_logging, get_logger
from taskrelay.db.bootstrap import initialize_database
from taskrelay.db.engine import dispose_engine, get_engine
from taskrelay.storage import LocalFileStorage
from taskrelay.workflow import TaskWorkflowService

API_PREFIX = "/api/v1"
_API_ROUTERS: tuple[APIRouter, ...] = (users_router, tasks_router, logs_router, files_router)

logger = get_logger("taskrelay.main")


def _lifespan(settings: Settings) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.db_auto_init:
            initialize_database(database_url=settings.database_url)
        get_engine()
        logger.info("app.started", env=settings.app_env, auto_init=settings.db_auto_init)
        try:
            yield
        finally:
            dispose_engine()
            logger.info("app.stopped")

    return lifespan


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    # Starlette runs the last-added middleware first: trace, then API key, then CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LocalApiKeyMiddleware, api_key=settings.local_api_key)
    app.add_middleware(TraceContextMiddleware)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=_lifespan(settings))

    storage = LocalFileStorage.from_settings(settings)
    app.state.file_storage = storage
    app.state.workflow_service = TaskWorkflowService(storage=storage)

    register_exception_handlers(app)
    _install_middleware(app, settings)

    app.include_router(health_router)
    for router in _API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)
    return app


app = create_app()
