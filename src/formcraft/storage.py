from __future__ import annotations

import logging

from formcraft.config import Settings, ensure_dirs
from formcraft.protocols import Storage
from formcraft.repo_json import JSONStorage
from formcraft.repo_sqlite import SQLiteStorage

logger = logging.getLogger(__name__)


def init_storage(settings: Settings) -> Storage:
    ensure_dirs(settings)
    if settings.storage_backend == "json":
        logger.info("Using JSON storage at %s", settings.json_path)
        return JSONStorage(settings.json_path)
    if settings.storage_backend != "sqlite":
        logger.warning("Unknown STORAGE_BACKEND %r, falling back to sqlite", settings.storage_backend)
    logger.info("Using SQL storage at %s", settings.sqlalchemy_url)
    return SQLiteStorage(settings.sqlalchemy_url)
