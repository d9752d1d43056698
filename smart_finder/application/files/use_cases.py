from __future__ import annotations

import os
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

from smart_finder.application.indexing import FileIndexer, Reconciler, WatcherBridge, is_valid_fingerprint
from smart_finder.domain.files import FileLocation, FileRecord, IndexStore
from smart_finder.infrastructure.reveal import reveal_in_file_browser
from smart_finder.utils.logging import get_logger

logger = get_logger("smart_finder.application.files")

MAX_PAGE_SIZE = 500


def normalize_fingerprint(value: str) -> str:
    """Strip and lowercase a fingerprint; ValueError if it is not 32 hex characters."""
    candidate = (value or "").strip()
    if not is_valid_fingerprint(candidate):
        raise ValueError(f"Invalid MD5 fingerprint: {value!r}")
    return candidate.lower()


@dataclass
class LookupByFingerprint:
    """Resolve a content fingerprint to its indexed record."""

    repo: IndexStore

    def __call__(self, fingerprint: str) -> Optional[FileRecord]:
        return self.repo.get_record(normalize_fingerprint(fingerprint))


@dataclass
class LookupByPath:
    """Resolve an indexed path to its fingerprint and lookup URL."""

    repo: IndexStore

    def __call__(self, path: str) -> Optional[FileLocation]:
        if not path or not path.strip():
            raise ValueError("Path must not be empty")
        record = self.repo.get_record_by_path(os.path.abspath(path.strip()))
        if record is None:
            return None
        return FileLocation(fingerprint=record.fingerprint, path=record.path)


@dataclass
class ListIndexedFiles:
    """Paginated listing, newest modification first."""

    repo: IndexStore

    def __call__(self, *, page: int = 1, page_size: int = 20, search: Optional[str] = None) -> Tuple[List[FileRecord], int]:
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        search = search.strip() if search else None
        return self.repo.list_records(search=search or None, limit=page_size, offset=(page - 1) * page_size)


@dataclass
class AddMonitoredDirectory:
    """Register a root, start watching it and request a pass (queued if one is running)."""

    repo: IndexStore
    reconciler: Optional[Reconciler] = None
    watcher: Optional[WatcherBridge] = None

    def __call__(self, path: str) -> str:
        if not path or not path.strip():
            raise ValueError("Directory path must not be empty")
        directory = os.path.abspath(os.path.expanduser(path.strip()))
        if not os.path.isdir(directory):
            raise ValueError(f"Not a directory: {directory}")

        if not self.repo.add_monitored_directory(directory):
            logger.info("Directory already monitored | path=%s", directory)
            return directory

        logger.info("➕ Monitored directory added | path=%s", directory)
        if self.watcher is not None:
            self.watcher.subscribe(directory)
        if self.reconciler is not None:
            self.reconciler.request_pass()
        return directory


@dataclass
class RemoveMonitoredDirectory:
    """Unregister a root, drop its records and watches. Unknown roots are a no-op.

    The cascade runs under the indexer's write lock so it cannot interleave
    with a pass or watcher write for the same paths.
    """

    repo: IndexStore
    watcher: Optional[WatcherBridge] = None
    indexer: Optional[FileIndexer] = None

    def __call__(self, path: str) -> int:
        if not path or not path.strip():
            raise ValueError("Directory path must not be empty")
        directory = os.path.abspath(os.path.expanduser(path.strip()))
        if self.watcher is not None:
            self.watcher.unsubscribe(directory)
        lock = self.indexer.write_lock if self.indexer is not None else nullcontext()
        with lock:
            deleted = self.repo.remove_monitored_directory(directory)
        logger.info("➖ Monitored directory removed | path=%s deleted=%s", directory, deleted)
        return deleted


@dataclass
class GetIgnorePatterns:
    repo: IndexStore

    def __call__(self) -> List[str]:
        return self.repo.get_ignore_patterns()


@dataclass
class SetIgnorePatterns:
    """Replace the ignore patterns; the watcher picks them up immediately, passes at their next start."""

    repo: IndexStore
    watcher: Optional[WatcherBridge] = None

    def __call__(self, patterns: Iterable[str] | str) -> List[str]:
        stored = self.repo.set_ignore_patterns(patterns)
        logger.info("Ignore patterns updated | count=%s", len(stored))
        if self.watcher is not None:
            self.watcher.reload_ignore_patterns(stored)
        return stored


@dataclass
class RevealFile:
    """Locate a fingerprint and show the file in the native file browser."""

    repo: IndexStore
    opener: Callable[[str], bool] = field(default=reveal_in_file_browser)

    def __call__(self, fingerprint: str, *, check_only: bool = False) -> Optional[FileRecord]:
        record = self.repo.get_record(normalize_fingerprint(fingerprint))
        if record is None or check_only:
            return record
        self.opener(record.path)
        return record
