from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg2

from smart_finder.domain.files import IndexStoreError
from smart_finder.utils.logging import get_logger

from .base import SqlIndexStore

logger = get_logger("smart_finder.infrastructure.postgres")


class PostgresIndexStore(SqlIndexStore):
    """PostgreSQL implementation (one short-lived connection per transaction)."""

    PARAM = "%s"
    LIKE = "ILIKE"

    def __init__(self, database_url: str, *, files_table: str = "files") -> None:
        if not database_url:
            raise ValueError("database_url is required")
        super().__init__(files_table=files_table)
        self.connection_string = database_url
        try:
            self._ensure_tables()
        except IndexStoreError as e:
            error_msg = str(e)
            if "refused" in error_msg.lower() or "connect" in error_msg.lower():
                logger.error("❌ Cannot connect to database | error=%s", error_msg)
                logger.error("   Ensure PostgreSQL is running and DATABASE_URL is correct")
            raise

    @contextmanager
    def transaction(self) -> Iterator:
        try:
            conn = psycopg2.connect(self.connection_string)
        except psycopg2.Error as exc:
            raise IndexStoreError(f"connect failed: {exc}") from exc
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as exc:
            conn.rollback()
            logger.error("Database error: %s", exc)
            raise IndexStoreError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
