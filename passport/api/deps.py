"""
passport.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from functools import lru_cache

from sqlalchemy import Engine

from passport.database.engine import create_db_engine
from passport.engine.catalog import CatalogStore
from passport.services.notifications import NotificationOutbox, build_sink_from_env
from passport.services.progression_service import ProgressionEngine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_catalog() -> CatalogStore:
    return CatalogStore(get_engine())


@lru_cache(maxsize=1)
def get_outbox() -> NotificationOutbox:
    return NotificationOutbox(build_sink_from_env(os.getenv("SMTP_FROM", "")))


@lru_cache(maxsize=1)
def get_progression() -> ProgressionEngine:
    return ProgressionEngine(get_engine(), get_catalog(), outbox=get_outbox())
