from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel

from taskrelay.db.models import as_utc

# SQLite drops tzinfo on read; every stored datetime is UTC.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class HealthzResponse(BaseModel):
    status: str
    service: str
    env: str


class ReadinessChecks(BaseModel):
    configuration: str
    database: str
    migrations: str


class ReadyzResponse(BaseModel):
    status: str
    checks: ReadinessChecks
