from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional, Tuple

from smart_finder.domain.files import FileRecord, IndexStore
from smart_finder.utils.logging import get_logger

logger = get_logger("smart_finder.infrastructure.database")

_RECORD_COLUMNS = "fingerprint, path, filename, size, modified_at, live"


def normalize_patterns(patterns: Iterable[str] | str) -> List[str]:
    """Split/trim ignore patterns, dropping blanks and duplicates (order kept)."""
    if isinstance(patterns, str):
        patterns = patterns.replace("\r\n", "\n").split("\n")
    output: List[str] = []
    for raw in patterns:
        pattern = raw.strip()
        if pattern and pattern not in output:
            output.append(pattern)
    return output


class SqlIndexStore(IndexStore):
    """SQL implementation shared by the PostgreSQL and SQLite backends.

    Subclasses provide ``transaction()`` and the driver's parameter marker.
    """

    PARAM = "%s"
    LIKE = "LIKE"

    def __init__(self, files_table: str = "files") -> None:
        self.files_table = files_table
        self.dirs_table = "monitored_directories"
        self.patterns_table = "ignored_patterns"

    # --- Schema helpers ---------------------------------------------------------
    def _ensure_tables(self) -> None:
        with self.transaction() as cur:
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.files_table} (
                    fingerprint TEXT PRIMARY KEY,
                    path TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    size BIGINT NOT NULL,
                    modified_at DOUBLE PRECISION NOT NULL,
                    live BOOLEAN NOT NULL DEFAULT TRUE
                )
                """
            )
            cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{self.files_table}_path ON {self.files_table}(path)")
            cur.execute(f"CREATE INDEX IF NOT EXISTS idx_{self.files_table}_live ON {self.files_table}(live)")
            cur.execute(f"CREATE TABLE IF NOT EXISTS {self.dirs_table} (path TEXT PRIMARY KEY)")
            cur.execute(f"CREATE TABLE IF NOT EXISTS {self.patterns_table} (pattern TEXT PRIMARY KEY)")

    def _placeholders(self, count: int) -> str:
        return ", ".join([self.PARAM] * count)

    @staticmethod
    def _row_to_record(row: tuple) -> FileRecord:
        return FileRecord(
            fingerprint=row[0],
            path=row[1],
            filename=row[2],
            size=int(row[3]),
            modified_at=float(row[4]),
            live=bool(row[5]),
        )

    # --- Monitored directories ----------------------------------------------------
    def list_monitored_directories(self) -> List[str]:
        with self.transaction() as cur:
            cur.execute(f"SELECT path FROM {self.dirs_table} ORDER BY path")
            return [row[0] for row in cur.fetchall()]

    def add_monitored_directory(self, path: str) -> bool:
        p = self.PARAM
        with self.transaction() as cur:
            cur.execute(
                f"INSERT INTO {self.dirs_table} (path) VALUES ({p}) ON CONFLICT (path) DO NOTHING",
                (path,),
            )
            return cur.rowcount > 0

    def remove_monitored_directory(self, path: str) -> int:
        """Drop the directory and every record under it. Unknown paths remove nothing."""
        p = self.PARAM
        prefix = path.rstrip(os.sep) + os.sep
        with self.transaction() as cur:
            cur.execute(f"DELETE FROM {self.dirs_table} WHERE path = {p}", (path,))
            cur.execute(
                f"""
                DELETE FROM {self.files_table}
                WHERE path = {p} OR substr(path, 1, {p}) = {p}
                """,
                (path, len(prefix), prefix),
            )
            deleted = cur.rowcount
        logger.info("Monitored directory removed | path=%s deleted_records=%s", path, deleted)
        return deleted

    # --- Ignore patterns ----------------------------------------------------------
    def get_ignore_patterns(self) -> List[str]:
        with self.transaction() as cur:
            cur.execute(f"SELECT pattern FROM {self.patterns_table} ORDER BY pattern")
            return [row[0] for row in cur.fetchall()]

    def set_ignore_patterns(self, patterns: Iterable[str] | str) -> List[str]:
        cleaned = normalize_patterns(patterns)
        p = self.PARAM
        with self.transaction() as cur:
            cur.execute(f"DELETE FROM {self.patterns_table}")
            for pattern in cleaned:
                cur.execute(f"INSERT INTO {self.patterns_table} (pattern) VALUES ({p})", (pattern,))
        return cleaned

    # --- Liveness sweep -----------------------------------------------------------
    def mark_all_stale(self) -> int:
        with self.transaction() as cur:
            cur.execute(f"UPDATE {self.files_table} SET live = {self.PARAM}", (False,))
            return cur.rowcount

    def mark_live(self, path: str) -> int:
        p = self.PARAM
        with self.transaction() as cur:
            cur.execute(f"UPDATE {self.files_table} SET live = {p} WHERE path = {p}", (True, path))
            return cur.rowcount

    def delete_stale(self) -> int:
        with self.transaction() as cur:
            cur.execute(f"DELETE FROM {self.files_table} WHERE live = {self.PARAM}", (False,))
            return cur.rowcount

    # --- File records -------------------------------------------------------------
    def get_record(self, fingerprint: str) -> Optional[FileRecord]:
        with self.transaction() as cur:
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM {self.files_table} WHERE fingerprint = {self.PARAM}",
                (fingerprint,),
            )
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def get_record_by_path(self, path: str) -> Optional[FileRecord]:
        with self.transaction() as cur:
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM {self.files_table} WHERE path = {self.PARAM}",
                (path,),
            )
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def get_records_by_paths(self, paths: Iterable[str]) -> Dict[str, FileRecord]:
        paths = list(paths)
        if not paths:
            return {}
        with self.transaction() as cur:
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM {self.files_table}
                WHERE path IN ({self._placeholders(len(paths))})
                """,
                tuple(paths),
            )
            rows = cur.fetchall()
        return {record.path: record for record in map(self._row_to_record, rows)}

    def upsert_record(self, record: FileRecord) -> None:
        p = self.PARAM
        with self.transaction() as cur:
            # the same path under an older fingerprint is the pre-change content
            cur.execute(
                f"DELETE FROM {self.files_table} WHERE path = {p} AND fingerprint <> {p}",
                (record.path, record.fingerprint),
            )
            cur.execute(
                f"""
                INSERT INTO {self.files_table} ({_RECORD_COLUMNS})
                VALUES ({self._placeholders(6)})
                ON CONFLICT (fingerprint) DO UPDATE SET
                    path = excluded.path,
                    filename = excluded.filename,
                    size = excluded.size,
                    modified_at = excluded.modified_at,
                    live = excluded.live
                """,
                (
                    record.fingerprint,
                    record.path,
                    record.filename,
                    record.size,
                    record.modified_at,
                    True,
                ),
            )

    def delete_by_path(self, path: str) -> int:
        with self.transaction() as cur:
            cur.execute(f"DELETE FROM {self.files_table} WHERE path = {self.PARAM}", (path,))
            return cur.rowcount

    def list_records(
        self,
        *,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[FileRecord], int]:
        p = self.PARAM
        where = ""
        params: list = []
        if search:
            where = f"WHERE filename {self.LIKE} {p} OR path {self.LIKE} {p}"
            like = f"%{search}%"
            params.extend([like, like])

        with self.transaction() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {self.files_table} {where}", tuple(params))
            total = int(cur.fetchone()[0])
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM {self.files_table} {where}
                ORDER BY modified_at DESC, path
                LIMIT {p} OFFSET {p}
                """,
                tuple(params + [limit, offset]),
            )
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows], total

    def count_records(self) -> int:
        with self.transaction() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {self.files_table}")
            return int(cur.fetchone()[0])
