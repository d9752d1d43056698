from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional

from smart_finder.application.files import (
    AddMonitoredDirectory,
    GetIgnorePatterns,
    ListIndexedFiles,
    LookupByFingerprint,
    LookupByPath,
    RemoveMonitoredDirectory,
    RevealFile,
    SetIgnorePatterns,
)
from smart_finder.application.indexing import FileIndexer, Reconciler, WatcherBridge
from smart_finder.application.indexing.indexer import HashFunc
from smart_finder.domain.files import FileRecord, IndexStore, ScanStatus
from smart_finder.infrastructure.database import build_index_store
from smart_finder.settings import Settings, settings
from smart_finder.utils.logging import get_logger

logger = get_logger("smart_finder.bootstrap")


@dataclass
class IndexerApplication:
    """Assembled components of the indexer process with one bootstrap."""

    settings: Settings
    store: IndexStore
    indexer: FileIndexer
    reconciler: Reconciler
    watcher: Optional[WatcherBridge]
    lookup_by_fingerprint: LookupByFingerprint
    lookup_by_path: LookupByPath
    list_files: ListIndexedFiles
    add_monitored_directory: AddMonitoredDirectory
    remove_monitored_directory: RemoveMonitoredDirectory
    get_ignore_patterns: GetIgnorePatterns
    set_ignore_patterns: SetIgnorePatterns
    reveal_file: RevealFile

    def start(self) -> None:
        """Start the watcher (if enabled) and the scheduling loop."""
        if self.watcher is not None:
            self.watcher.start()
        self.reconciler.start()
        logger.info("🚀 %s %s started", self.settings.APP_NAME, self.settings.VERSION)

    def stop(self) -> None:
        self.reconciler.stop()
        if self.watcher is not None:
            self.watcher.stop()
        logger.info("%s stopped", self.settings.APP_NAME)

    def start_pass(self) -> bool:
        return self.reconciler.start_pass()

    def trigger_manual_pass(self) -> bool:
        return self.reconciler.trigger_manual_pass()

    def get_status(self) -> ScanStatus:
        return self.reconciler.get_status()

    def list_monitored_directories(self) -> List[str]:
        return self.store.list_monitored_directories()

    def count_records(self) -> int:
        return self.store.count_records()


def build_store(app_settings: Settings = settings) -> IndexStore:
    """Store selected by DATABASE_URL, tables per settings."""

    return build_index_store(app_settings.DATABASE_URL, files_table=app_settings.FILES_TABLE_NAME)


def build_indexer(
    store: IndexStore,
    app_settings: Settings = settings,
    *,
    hash_func: Optional[HashFunc] = None,
) -> FileIndexer:
    return FileIndexer(
        store,
        hash_func,
        chunk_size=app_settings.HASH_CHUNK_SIZE,
        write_lock=threading.Lock(),
    )


def build_reconciler(store: IndexStore, indexer: FileIndexer, app_settings: Settings = settings) -> Reconciler:
    return Reconciler(
        store,
        indexer,
        interval_seconds=app_settings.SCAN_INTERVAL_SECONDS,
        batch_size=app_settings.SCAN_BATCH_SIZE,
        max_concurrency=app_settings.SCAN_MAX_CONCURRENCY,
    )


def build_watcher(store: IndexStore, indexer: FileIndexer, *, observer=None) -> WatcherBridge:
    return WatcherBridge(store, indexer, observer=observer)


def build_application(
    app_settings: Settings = settings,
    *,
    store: Optional[IndexStore] = None,
    hash_func: Optional[HashFunc] = None,
    observer=None,
) -> IndexerApplication:
    """Full bootstrap of the indexer with its dependencies."""

    store = store or build_store(app_settings)
    indexer = build_indexer(store, app_settings, hash_func=hash_func)
    reconciler = build_reconciler(store, indexer, app_settings)
    watcher = build_watcher(store, indexer, observer=observer) if app_settings.WATCHER_ENABLED else None

    return IndexerApplication(
        settings=app_settings,
        store=store,
        indexer=indexer,
        reconciler=reconciler,
        watcher=watcher,
        lookup_by_fingerprint=LookupByFingerprint(store),
        lookup_by_path=LookupByPath(store),
        list_files=ListIndexedFiles(store),
        add_monitored_directory=AddMonitoredDirectory(store, reconciler=reconciler, watcher=watcher),
        remove_monitored_directory=RemoveMonitoredDirectory(store, watcher=watcher, indexer=indexer),
        get_ignore_patterns=GetIgnorePatterns(store),
        set_ignore_patterns=SetIgnorePatterns(store, watcher=watcher),
        reveal_file=RevealFile(store),
    )


__all__ = [
    "IndexerApplication",
    "build_store",
    "build_indexer",
    "build_reconciler",
    "build_watcher",
    "build_application",
]
