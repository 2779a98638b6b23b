from __future__ import annotations

from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from alembic import command
from taskrelay.core.config import get_settings
from taskrelay.db.engine import ensure_database_parent_dir

# alembic.ini and the revision scripts live beside the taskrelay package.
_BACKEND_DIR = Path(__file__).resolve().parents[2]


def _alembic_config(database_url: str) -> Config:
    config = Config(str(_BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(_BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url)
    return config


def upgrade_to_head(database_url: str | None = None) -> None:
    url = database_url or get_settings().database_url
    ensure_database_parent_dir(url)
    command.upgrade(_alembic_config(url), "head")


def head_revision() -> str | None:
    scripts = ScriptDirectory.from_config(_alembic_config(get_settings().database_url))
    return scripts.get_current_head()


def current_revision(engine: Engine) -> str | None:
    """Revision stamped in ``alembic_version``, or None for a database never migrated."""
    with engine.connect() as connection:
        context = MigrationContext.configure(connection)
        return context.get_current_revision()
