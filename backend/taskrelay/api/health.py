from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from taskrelay.api.schemas import HealthzResponse, ReadinessChecks, ReadyzResponse
from taskrelay.core.config import get_settings
from taskrelay.core.logging import get_logger
from taskrelay.db.engine import get_engine
from taskrelay.db.migrations import current_revision, head_revision

router = APIRouter()
logger = get_logger("taskrelay.api.health")


@router.get("/healthz", response_model=HealthzResponse)
def healthz() -> HealthzResponse:
    settings = get_settings()
    return HealthzResponse(status="ok", service=settings.app_name, env=settings.app_env)


@router.get("/readyz", response_model=ReadyzResponse)
def readyz() -> ReadyzResponse | JSONResponse:
    _ = get_settings()
    engine = get_engine()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        applied = current_revision(engine)
    except SQLAlchemyError:
        logger.exception("readyz.database_unavailable")
        return _not_ready(
            ReadinessChecks(configuration="ok", database="unavailable", migrations="unknown")
        )

    if applied != head_revision():
        logger.warning("readyz.migrations_pending", applied=applied)
        return _not_ready(ReadinessChecks(configuration="ok", database="ok", migrations="pending"))
    return ReadyzResponse(
        status="ready",
        checks=ReadinessChecks(configuration="ok", database="ok", migrations="ok"),
    )


def _not_ready(checks: ReadinessChecks) -> JSONResponse:
    payload = ReadyzResponse(status="not_ready", checks=checks)
    return JSONResponse(status_code=503, content=payload.model_dump(mode="json"))
