"""Per-file unit of work shared by the reconciler and the live watcher."""

from __future__ import annotations

import os
import threading
from typing import Callable, Optional

from smart_finder.domain.files import FileOutcome, FileRecord, IndexStore, IndexStoreError
from smart_finder.utils.logging import get_logger

from .hasher import DEFAULT_CHUNK_SIZE, calculate_fingerprint

logger = get_logger("smart_finder.indexing.indexer")

HashFunc = Callable[[str], str]


class FileIndexer:
    """Stat, confirm liveness, hash only when size/mtime changed, upsert.

    All store writes go through ``write_lock``, so concurrent workers and the
    watcher thread are linearized at the storage layer.
    """

    def __init__(
        self,
        store: IndexStore,
        hash_func: Optional[HashFunc] = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        write_lock: Optional[threading.Lock] = None,
    ):
        self.store = store
        self.hash_func = hash_func or (lambda path: calculate_fingerprint(path, chunk_size))
        self.write_lock = write_lock or threading.Lock()

    def index_path(self, path: str, existing: Optional[FileRecord] = None, *, lookup: bool = False) -> FileOutcome:
        """Bring the record for ``path`` up to date.

        Args:
            path: Absolute file path.
            existing: Record previously stored for this path (batch prefetch).
            lookup: Fetch ``existing`` from the store when not supplied.
        """
        try:
            stat_info = os.stat(path)
        except OSError as exc:
            logger.warning("Cannot stat file | path=%s error=%s", path, exc)
            return FileOutcome.ERROR

        try:
            with self.write_lock:
                self.store.mark_live(path)
        except IndexStoreError as exc:
            logger.warning("Cannot mark file live | path=%s error=%s", path, exc)

        if existing is None and lookup:
            try:
                existing = self.store.get_record_by_path(path)
            except IndexStoreError as exc:
                logger.warning("Cannot load record | path=%s error=%s", path, exc)

        if existing is not None and existing.matches_stat(stat_info):
            return FileOutcome.SKIPPED

        try:
            fingerprint = self.hash_func(path)
        except OSError as exc:
            logger.warning("Cannot hash file | path=%s error=%s", path, exc)
            return FileOutcome.ERROR

        record = FileRecord.from_stat(fingerprint, path, stat_info)
        try:
            with self.write_lock:
                self.store.upsert_record(record)
        except IndexStoreError as exc:
            logger.warning("Cannot store record | path=%s error=%s", path, exc)
            return FileOutcome.ERROR

        logger.debug("Indexed | path=%s md5=%s", path, fingerprint)
        return FileOutcome.PROCESSED

    def remove_path(self, path: str) -> int:
        """Drop the record stored for ``path``; returns the number of rows removed."""
        try:
            with self.write_lock:
                removed = self.store.delete_by_path(path)
        except IndexStoreError as exc:
            logger.warning("Cannot remove record | path=%s error=%s", path, exc)
            return 0
        if removed:
            logger.info("🗑️ Removed from index | path=%s", path)
        return removed
