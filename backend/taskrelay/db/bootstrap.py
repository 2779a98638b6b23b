from __future__ import annotations

from taskrelay.core.config import get_settings
from taskrelay.core.logging import get_logger
from taskrelay.db.engine import ensure_database_parent_dir
from taskrelay.db.migrations import upgrade_to_head

logger = get_logger("taskrelay.db.bootstrap")


def initialize_database(database_url: str | None = None) -> None:
    target_url = database_url or get_settings().database_url
    ensure_database_parent_dir(target_url)
    upgrade_to_head(target_url)
    logger.info("database.initialized")
