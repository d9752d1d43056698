from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .models import FileRecord


class IndexStore(ABC):
    """Persistence boundary for file records, monitored directories and ignore patterns.

    Every mutating method runs in its own transaction. Driver failures surface
    as ``IndexStoreError``.
    """

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator:
        """Yield a DB-API cursor inside a transaction (commit on success, rollback on error)."""
        raise NotImplementedError

    # --- Monitored directories ------------------------------------------------
    @abstractmethod
    def list_monitored_directories(self) -> List[str]:
        pass

    @abstractmethod
    def add_monitored_directory(self, path: str) -> bool:
        pass

    @abstractmethod
    def remove_monitored_directory(self, path: str) -> int:
        pass

    # --- Ignore patterns ------------------------------------------------------
    @abstractmethod
    def get_ignore_patterns(self) -> List[str]:
        pass

    @abstractmethod
    def set_ignore_patterns(self, patterns: Iterable[str]) -> List[str]:
        pass

    # --- Liveness sweep -------------------------------------------------------
    @abstractmethod
    def mark_all_stale(self) -> int:
        pass

    @abstractmethod
    def mark_live(self, path: str) -> int:
        pass

    @abstractmethod
    def delete_stale(self) -> int:
        pass

    # --- File records ---------------------------------------------------------
    @abstractmethod
    def get_record(self, fingerprint: str) -> Optional[FileRecord]:
        pass

    @abstractmethod
    def get_record_by_path(self, path: str) -> Optional[FileRecord]:
        pass

    @abstractmethod
    def get_records_by_paths(self, paths: Iterable[str]) -> Dict[str, FileRecord]:
        pass

    @abstractmethod
    def upsert_record(self, record: FileRecord) -> None:
        pass

    @abstractmethod
    def delete_by_path(self, path: str) -> int:
        pass

    @abstractmethod
    def list_records(
        self,
        *,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[FileRecord], int]:
        pass

    @abstractmethod
    def count_records(self) -> int:
        pass
