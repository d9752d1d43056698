"""
Reconciliation engine: one mark-and-sweep pass over all monitored roots.

=== PASS ===
1. stale-mark: every record gets live = false (one bulk update)
2. count: disposable walk, only feeds the progress total
3. reconcile: per root, batches of paths: one bulk lookup per batch,
   then stat/hash/upsert on a small worker pool
4. cleanup: records still live = false are deleted (one bulk delete)

=== SCHEDULING ===
At most one pass runs at a time. Timer ticks and manual triggers that
arrive while a pass is running are dropped, not queued. request_pass()
(used when a root is added) queues a single follow-up pass instead.
A root removed mid-pass stops being walked at the next batch and its
records are purged again during cleanup.

Between steps 1 and 4 a reader can see a record that is about to be
deleted; that window is accepted.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from itertools import islice
from typing import Iterable, Iterator, List, Optional

from smart_finder.domain.files import FileOutcome, IndexStore, IndexStoreError, ScanStatus
from smart_finder.utils.logging import get_logger

from .enumerator import DirectoryEnumerator
from .ignore import IgnoreMatcher
from .indexer import FileIndexer

logger = get_logger("smart_finder.indexing.reconciler")

DEFAULT_BATCH_SIZE = 500
DEFAULT_MAX_CONCURRENCY = 2

_COUNTERS = {
    FileOutcome.PROCESSED: "processed_files",
    FileOutcome.SKIPPED: "skipped_files",
    FileOutcome.ERROR: "error_files",
}


def batched(items: Iterable[str], size: int) -> Iterator[List[str]]:
    iterator = iter(items)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


class Reconciler:
    """Runs reconciliation passes on demand and on a timer."""

    def __init__(
        self,
        store: IndexStore,
        indexer: FileIndexer,
        *,
        interval_seconds: float = 3600,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        if batch_size < 1 or max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be positive")
        self.store = store
        self.indexer = indexer
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.completed_passes = 0

        self._status = ScanStatus()
        self._status_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._running = False
        self._pending = False
        self._pass_thread: Optional[threading.Thread] = None

        self._loop_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._trigger = threading.Event()

    # --- Status -------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    def get_status(self) -> ScanStatus:
        """Snapshot of the current (or last) pass with derived progress and elapsed time."""
        with self._status_lock:
            status = replace(self._status)
        if status.started_at is not None:
            end = status.finished_at or datetime.now(timezone.utc)
            status.elapsed_seconds = round((end - status.started_at).total_seconds(), 3)
        if status.total_files > 0:
            status.progress = (status.processed_files + status.skipped_files) / status.total_files * 100
        return status

    def _update_status(self, **changes) -> None:
        with self._status_lock:
            for name, value in changes.items():
                setattr(self._status, name, value)

    def _increment(self, counter: str, amount: int = 1) -> None:
        with self._status_lock:
            setattr(self._status, counter, getattr(self._status, counter) + amount)

    # --- Pass control -------------------------------------------------------------
    def _try_begin(self) -> bool:
        with self._state_lock:
            if self._running:
                return False
            self._running = True
            return True

    def run_pass(self) -> bool:
        """Run one pass on the calling thread. Returns False if one was already running."""
        if not self._try_begin():
            logger.info("Pass already in progress, skipping")
            return False
        self._run_claimed()
        return True

    def start_pass(self) -> bool:
        """Run one pass on a background thread. Returns False if one was already running."""
        if not self._try_begin():
            logger.info("Pass already in progress, skipping")
            return False
        self._spawn()
        return True

    def request_pass(self) -> bool:
        """Start a pass now, or queue exactly one to run right after the current pass.

        Used when the set of monitored roots grows: the running pass loaded
        its roots before the change. Returns True if a pass started now.
        """
        with self._state_lock:
            if self._running:
                self._pending = True
                logger.info("Pass in progress, follow-up pass queued")
                return False
            self._running = True
        self._spawn()
        return True

    def _spawn(self) -> None:
        thread = threading.Thread(target=self._run_claimed, name="reconcile-pass", daemon=True)
        self._pass_thread = thread
        thread.start()

    def trigger_manual_pass(self) -> bool:
        """Ask for a pass now; dropped while a pass is running."""
        if self.is_running:
            logger.info("Pass already in progress, manual trigger ignored")
            return False
        if self._loop_thread is not None and self._loop_thread.is_alive():
            logger.info("Manual pass triggered")
            self._trigger.set()
            return True
        return self.start_pass()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the background pass, including a queued follow-up pass."""
        thread = self._pass_thread
        while thread is not None:
            thread.join(timeout)
            if thread.is_alive() or self._pass_thread is thread:
                return
            thread = self._pass_thread

    def _run_claimed(self) -> None:
        try:
            with self._status_lock:
                self._status = ScanStatus(
                    is_scanning=True,
                    started_at=datetime.now(timezone.utc),
                    current_dir="preparing",
                )
            self._execute_pass()
        except Exception:
            logger.exception("❌ Reconciliation pass failed")
        finally:
            self._update_status(is_scanning=False, finished_at=datetime.now(timezone.utc), current_dir="")
            with self._state_lock:
                self.completed_passes += 1
                follow_up = self._pending
                self._pending = False
                # the claim is handed over to the follow-up pass
                self._running = follow_up
            if follow_up:
                logger.info("Running queued follow-up pass")
                self._spawn()

    # --- Scheduling loop ----------------------------------------------------------
    def start(self) -> None:
        """Start the timer loop (runs one pass immediately)."""
        if self._loop_thread is not None and self._loop_thread.is_alive():
            logger.info("Scheduler already running")
            return
        self._stop_event.clear()
        self._trigger.clear()
        self._loop_thread = threading.Thread(target=self._loop, name="reconcile-scheduler", daemon=True)
        self._loop_thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the timer loop. A pass in progress runs to completion."""
        self._stop_event.set()
        self._trigger.set()
        if self._loop_thread is not None:
            self._loop_thread.join(timeout)
        logger.info("Scheduler stopped")

    def _loop(self) -> None:
        logger.info("Scheduler started | interval=%ss", self.interval_seconds)
        self.start_pass()
        while not self._stop_event.is_set():
            self._trigger.wait(timeout=self.interval_seconds)
            if self._stop_event.is_set():
                break
            self._trigger.clear()
            self.start_pass()

    # --- Pass body ----------------------------------------------------------------
    def _execute_pass(self) -> None:
        started = datetime.now(timezone.utc)
        try:
            roots = self.store.list_monitored_directories()
            patterns = self.store.get_ignore_patterns()
        except IndexStoreError:
            logger.error("❌ Cannot load monitored directories or ignore patterns, pass aborted", exc_info=True)
            return

        if not roots:
            logger.info("No monitored directories, skipping pass")
            return

        logger.info("🔍 Reconciliation pass started | roots=%s patterns=%s", len(roots), len(patterns))
        matcher = IgnoreMatcher(patterns)

        try:
            with self.indexer.write_lock:
                marked = self.store.mark_all_stale()
            logger.debug("Stale-marked records | count=%s", marked)
        except IndexStoreError as exc:
            logger.error("Stale-mark failed, deletions will not be detected this pass | error=%s", exc)

        self._update_status(current_dir="counting files")
        counter = DirectoryEnumerator(matcher)
        self._update_status(total_files=sum(counter.count_files(root) for root in roots))

        enumerator = DirectoryEnumerator(matcher, on_error=self._on_walk_error)
        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="reconcile") as executor:
            for root in roots:
                self._update_status(current_dir=root)
                for batch in batched(enumerator.iter_files(root), self.batch_size):
                    if not self._still_monitored(root):
                        logger.info("Root removed during pass, skipping the rest | root=%s", root)
                        break
                    self._process_batch(executor, batch)

        self._update_status(current_dir="cleaning up")
        try:
            with self.indexer.write_lock:
                deleted = self.store.delete_stale()
            self._update_status(deleted_files=deleted)
        except IndexStoreError as exc:
            logger.error("Cleanup of missing files failed | error=%s", exc)
        self._purge_removed_roots(roots)

        status = self.get_status()
        duration = (datetime.now(timezone.utc) - started).total_seconds()
        logger.info(
            "✅ Pass finished | total=%s processed=%s skipped=%s errors=%s deleted=%s in %.2fs",
            status.total_files,
            status.processed_files,
            status.skipped_files,
            status.error_files,
            status.deleted_files,
            duration,
        )

    def _process_batch(self, executor: ThreadPoolExecutor, paths: List[str]) -> None:
        try:
            existing = self.store.get_records_by_paths(paths)
        except IndexStoreError as exc:
            logger.warning("Batch lookup failed, hashing whole batch | size=%s error=%s", len(paths), exc)
            existing = {}

        for outcome in executor.map(lambda path: self._index_one(path, existing.get(path)), paths):
            self._increment(_COUNTERS[outcome])

    def _index_one(self, path: str, existing) -> FileOutcome:
        try:
            return self.indexer.index_path(path, existing)
        except Exception:
            logger.exception("Unexpected error while indexing | path=%s", path)
            return FileOutcome.ERROR

    def _still_monitored(self, root: str) -> bool:
        try:
            return root in self.store.list_monitored_directories()
        except IndexStoreError as exc:
            logger.warning("Cannot re-check monitored directories | error=%s", exc)
            return True

    def _purge_removed_roots(self, roots: List[str]) -> None:
        """Drop records a worker wrote under a root that was removed mid-pass."""
        try:
            current = set(self.store.list_monitored_directories())
        except IndexStoreError as exc:
            logger.warning("Cannot re-check monitored directories | error=%s", exc)
            return
        for root in roots:
            if root in current:
                continue
            try:
                with self.indexer.write_lock:
                    purged = self.store.remove_monitored_directory(root)
            except IndexStoreError as exc:
                logger.error("Cannot purge removed root | root=%s error=%s", root, exc)
                continue
            if purged:
                self._increment("deleted_files", purged)

    def _on_walk_error(self, path: str, exc: OSError) -> None:
        self._increment("error_files")
