"""
Live watcher bridge

Feeds file-system events for monitored directories into the same per-file
unit of work the reconciler uses, so the index stays fresh between passes.
Uses ``watchdog`` with one non-recursive watch per directory; directories
created under a watched root are subscribed as soon as they appear.
"""

from __future__ import annotations

import os
import threading
from typing import Dict, Iterable, List, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from smart_finder.domain.files import IndexStore, IndexStoreError
from smart_finder.utils.logging import get_logger

from .enumerator import DirectoryEnumerator
from .ignore import IgnoreMatcher
from .indexer import FileIndexer

logger = get_logger("smart_finder.indexing.watcher")


class IndexingEventHandler(FileSystemEventHandler):
    """Translates watchdog events into bridge calls."""

    def __init__(self, bridge: "WatcherBridge"):
        self.bridge = bridge

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception:
            logger.exception("Failed to handle file event | type=%s path=%s", event.event_type, event.src_path)

    def on_created(self, event):
        self.bridge.handle_created(os.fsdecode(event.src_path), event.is_directory)

    def on_modified(self, event):
        if not event.is_directory:
            self.bridge.handle_modified(os.fsdecode(event.src_path))

    def on_closed(self, event):
        if not event.is_directory:
            self.bridge.handle_modified(os.fsdecode(event.src_path))

    def on_deleted(self, event):
        self.bridge.handle_deleted(os.fsdecode(event.src_path), event.is_directory)

    def on_moved(self, event):
        self.bridge.handle_moved(
            os.fsdecode(event.src_path),
            os.fsdecode(event.dest_path),
            event.is_directory,
        )


class WatcherBridge:
    """Keeps one watch per monitored directory and routes events to the indexer."""

    def __init__(self, store: IndexStore, indexer: FileIndexer, observer=None):
        self.store = store
        self.indexer = indexer
        self.observer = observer if observer is not None else Observer()
        self.handler = IndexingEventHandler(self)
        self._watches: Dict[str, object] = {}
        self._roots: Set[str] = set()
        self._lock = threading.RLock()
        self._matcher = IgnoreMatcher()
        self._started = False

    @property
    def watched_directories(self) -> List[str]:
        with self._lock:
            return sorted(self._watches)

    # --- Lifecycle ----------------------------------------------------------------
    def start(self) -> None:
        """Subscribe every monitored root and start the observer thread."""
        if self._started:
            logger.info("Watcher already running")
            return
        self.reload_ignore_patterns()
        try:
            roots = self.store.list_monitored_directories()
        except IndexStoreError:
            logger.error("❌ Cannot load monitored directories, watcher starts empty", exc_info=True)
            roots = []

        for root in roots:
            self.subscribe(root)

        self.observer.start()
        self._started = True
        logger.info("👀 Watcher started | roots=%s directories=%s", len(roots), len(self._watches))

    def stop(self) -> None:
        if not self._started:
            return
        self.observer.stop()
        self.observer.join()
        with self._lock:
            self._watches.clear()
            self._roots.clear()
        self._started = False
        logger.info("Watcher stopped")

    def reload_ignore_patterns(self, patterns: Optional[Iterable[str]] = None) -> None:
        """Refresh the cached ignore patterns (from the store unless given).

        Watches on directories the new patterns ignore are dropped, and
        directories they no longer ignore are picked up.
        """
        if patterns is None:
            try:
                patterns = self.store.get_ignore_patterns()
            except IndexStoreError as exc:
                logger.warning("Cannot reload ignore patterns, keeping previous ones | error=%s", exc)
                return
        self._matcher = IgnoreMatcher(patterns)
        logger.debug("Watcher ignore patterns reloaded | patterns=%s", list(self._matcher.patterns))

        with self._lock:
            roots = sorted(self._roots)
            ignored = [d for d in self._watches if d not in self._roots and self._matcher.should_skip_directory(d)]
        for directory in ignored:
            self._unwatch_tree(directory)
        for root in roots:
            self._watch_tree(root)

    # --- Subscriptions --------------------------------------------------------------
    def subscribe(self, root: str) -> int:
        """Watch ``root`` and every non-ignored directory below it. Returns new watches."""
        with self._lock:
            self._roots.add(root)
        return self._watch_tree(root)

    def unsubscribe(self, root: str) -> int:
        """Drop the watches for ``root`` and everything below it. Unknown roots are a no-op."""
        prefix = root.rstrip(os.sep) + os.sep
        with self._lock:
            self._roots = {r for r in self._roots if r != root and not r.startswith(prefix)}
        return self._unwatch_tree(root)

    def _watch_tree(self, root: str) -> int:
        added = 0
        for directory in DirectoryEnumerator(self._matcher).iter_directories(root):
            with self._lock:
                if directory in self._watches:
                    continue
                try:
                    self._watches[directory] = self.observer.schedule(self.handler, directory, recursive=False)
                except OSError as exc:
                    logger.warning("Cannot watch directory | path=%s error=%s", directory, exc)
                    continue
            added += 1
        if added:
            logger.info("Watching directories | root=%s added=%s", root, added)
        return added

    def _unwatch_tree(self, root: str) -> int:
        prefix = root.rstrip(os.sep) + os.sep
        removed = 0
        with self._lock:
            for directory in [d for d in self._watches if d == root or d.startswith(prefix)]:
                watch = self._watches.pop(directory)
                try:
                    self.observer.unschedule(watch)
                except KeyError:
                    logger.debug("Watch already gone | path=%s", directory)
                removed += 1
        if removed:
            logger.info("Stopped watching directories | root=%s removed=%s", root, removed)
        return removed

    # --- Event handling -------------------------------------------------------------
    def _ignored(self, path: str, is_directory: bool) -> bool:
        if is_directory:
            return self._matcher.should_skip_directory(path)
        return self._matcher.should_skip_file(path)

    def handle_created(self, path: str, is_directory: bool) -> None:
        if self._ignored(path, is_directory):
            return
        if is_directory:
            self._watch_tree(path)
            # files may land before the watch exists
            for file_path in DirectoryEnumerator(self._matcher).iter_files(path):
                self.indexer.index_path(file_path, lookup=True)
            return
        self.indexer.index_path(path, lookup=True)

    def handle_modified(self, path: str) -> None:
        if self._ignored(path, False) or not os.path.isfile(path):
            return
        self.indexer.index_path(path, lookup=True)

    def handle_deleted(self, path: str, is_directory: bool) -> None:
        if is_directory:
            self.unsubscribe(path)
        self.indexer.remove_path(path)

    def handle_moved(self, src_path: str, dest_path: str, is_directory: bool) -> None:
        if is_directory:
            self.unsubscribe(src_path)
            self.handle_created(dest_path, True)
            return
        self.indexer.remove_path(src_path)
        self.handle_created(dest_path, False)
