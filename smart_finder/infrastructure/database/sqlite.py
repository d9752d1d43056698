from __future__ import annotations

import os
import sqlite3
from contextlib import closing, contextmanager
from typing import Iterator

from smart_finder.domain.files import IndexStoreError
from smart_finder.utils.logging import get_logger

from .base import SqlIndexStore

logger = get_logger("smart_finder.infrastructure.sqlite")


class SqliteIndexStore(SqlIndexStore):
    """SQLite implementation; a fresh connection per transaction keeps it thread-safe."""

    PARAM = "?"
    LIKE = "LIKE"

    def __init__(self, db_path: str, *, files_table: str = "files", timeout: float = 30.0) -> None:
        super().__init__(files_table=files_table)
        self.db_path = db_path
        self.timeout = timeout
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
        self._ensure_tables()

    @contextmanager
    def transaction(self) -> Iterator:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise IndexStoreError(f"connect failed: {exc}") from exc
        try:
            with closing(conn.cursor()) as cur:
                yield cur
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("Database error: %s", exc)
            raise IndexStoreError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
