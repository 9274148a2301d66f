"""
PostgreSQL access for posting and profile lookups.

The platform database owns jobs, companies and students; this service only
reads from it. The engine is built on first use so the memory backend never
opens a pool.
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session

from internlink.core.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    logger.info("Opening PostgreSQL pool for %s/%s", settings.postgres_host, settings.postgres_db)
    return create_engine(
        settings.postgres_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=settings.debug,
    )


@contextmanager
def lookup_session() -> Iterator[Session]:
    """Session whose work is always rolled back; nothing here writes."""
    with Session(get_engine(), autoflush=False) as session:
        try:
            yield session
        finally:
            session.rollback()


def fetch_rows(sql: str, params: dict = None) -> list[dict]:
    """Run a SELECT and return one dict per row, keyed by column name."""
    with lookup_session() as session:
        result = session.execute(text(sql), params or {})
        return [dict(row) for row in result.mappings()]


def test_postgres_connection() -> bool:
    try:
        return fetch_rows("SELECT 1 AS ok") == [{"ok": 1}]
    except Exception as e:
        logger.error("PostgreSQL connection failed: %s", e)
        return False
