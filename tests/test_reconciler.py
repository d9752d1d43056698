"""
Tests for reconciliation passes and pass scheduling
"""
import os
import threading
import time

import pytest
from watchdog.events import FileCreatedEvent, FileModifiedEvent

from smart_finder.application.files import AddMonitoredDirectory, RemoveMonitoredDirectory
from smart_finder.application.indexing import FileIndexer, Reconciler, WatcherBridge, calculate_fingerprint
from smart_finder.application.indexing import enumerator as enumerator_module
from smart_finder.domain.files import FileRecord, IndexStoreError

HELLO_MD5 = "5d41402abc4b2a76b9719d911017c592"


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def all_records(store):
    records, _ = store.list_records(limit=1000)
    return records


class TestIncrementalPass:

    def test_first_pass_indexes_every_file(self, store, reconciler, monitored, make_tree):
        make_tree({"a.txt": "hello", "sub/b.txt": "world", "sub/deep/c.txt": "!"})

        assert reconciler.run_pass() is True

        status = reconciler.get_status()
        assert status.total_files == 3
        assert status.processed_files == 3
        assert status.skipped_files == 0
        assert status.error_files == 0
        assert store.get_record(HELLO_MD5).path == os.path.join(monitored, "a.txt")

    def test_unchanged_files_are_not_rehashed(self, store, reconciler, counting_hash, monitored, make_tree):
        """Second pass over an untouched tree only skips"""
        make_tree({"a.txt": "hello", "b.txt": "world"})
        reconciler.run_pass()
        assert counting_hash.total == 2

        reconciler.run_pass()

        status = reconciler.get_status()
        assert status.processed_files == 0
        assert status.skipped_files == 2
        assert counting_hash.total == 2

    def test_size_change_triggers_rehash(self, store, reconciler, counting_hash, monitored, make_tree):
        root = make_tree({"a.txt": "hello"})
        reconciler.run_pass()

        (root / "a.txt").write_text("hello, longer content")
        reconciler.run_pass()

        assert reconciler.get_status().processed_files == 1
        assert store.get_record(HELLO_MD5) is None
        assert store.count_records() == 1
        assert counting_hash.calls[os.path.join(monitored, "a.txt")] == 2

    def test_same_size_same_mtime_change_goes_unnoticed(self, store, reconciler, monitored, make_tree):
        """Known blind spot of the size+mtime heuristic: such edits are not detected"""
        root = make_tree({"a.txt": "hello"})
        reconciler.run_pass()
        target = root / "a.txt"
        original = os.stat(target)

        target.write_text("jello")
        os.utime(target, ns=(original.st_atime_ns, original.st_mtime_ns))
        reconciler.run_pass()

        assert reconciler.get_status().skipped_files == 1
        assert store.get_record(HELLO_MD5).path == str(target)

    def test_deleted_file_is_evicted(self, store, reconciler, monitored, make_tree):
        root = make_tree({"a.txt": "hello", "b.txt": "keep"})
        reconciler.run_pass()

        os.remove(root / "a.txt")
        reconciler.run_pass()

        assert reconciler.get_status().deleted_files == 1
        assert store.get_record(HELLO_MD5) is None
        assert store.count_records() == 1

    def test_rename_moves_path_without_duplicate(self, store, reconciler, monitored, make_tree):
        root = make_tree({"a.txt": "hello"})
        reconciler.run_pass()

        os.rename(root / "a.txt", root / "b.txt")
        reconciler.run_pass()

        assert store.get_record(HELLO_MD5).path == os.path.join(monitored, "b.txt")
        assert store.get_record_by_path(os.path.join(monitored, "a.txt")) is None
        assert store.count_records() == 1
        assert reconciler.get_status().deleted_files == 0

    def test_fingerprint_collision_keeps_later_path(self, store, monitored, make_tree):
        """Two paths hashing equal collapse to one record with the later-processed path"""
        make_tree({"a.txt": "first", "b.txt": "second"})
        indexer = FileIndexer(store, lambda path: "f" * 32)
        reconciler = Reconciler(store, indexer, batch_size=10, max_concurrency=1)

        reconciler.run_pass()

        records = all_records(store)
        assert len(records) == 1
        assert records[0].path == os.path.join(monitored, "b.txt")

    def test_index_matches_disk_after_pass(self, store, reconciler, monitored, make_tree):
        root = make_tree({f"dir{i}/file{j}.txt": f"{i}-{j}" for i in range(3) for j in range(4)})
        reconciler.run_pass()
        os.remove(root / "dir1" / "file2.txt")
        (root / "dir2" / "new.txt").write_text("new")
        reconciler.run_pass()

        on_disk = {
            os.path.join(dirpath, name)
            for dirpath, _, names in os.walk(monitored)
            for name in names
        }
        indexed = [record.path for record in all_records(store)]
        assert all(os.path.exists(path) for path in indexed)
        assert sorted(indexed) == sorted(on_disk)
        for path in on_disk:
            assert store.get_record(calculate_fingerprint(path)).path == path

    def test_ignored_files_are_excluded_and_evicted(self, store, reconciler, monitored, make_tree):
        make_tree({"a.txt": "hello", "b.tmp": "temp", "cache/c.txt": "cached"})
        reconciler.run_pass()
        assert store.count_records() == 3

        store.set_ignore_patterns(["*.tmp", "cache"])
        reconciler.run_pass()

        assert [record.filename for record in all_records(store)] == ["a.txt"]
        assert reconciler.get_status().deleted_files == 2

    def test_one_lookup_query_per_batch(self, store, reconciler, monitored, make_tree, monkeypatch):
        make_tree({"a.txt": "1", "b.txt": "2", "c.txt": "3"})
        calls = []
        original = store.get_records_by_paths

        def spy(paths):
            calls.append(list(paths))
            return original(paths)

        monkeypatch.setattr(store, "get_records_by_paths", spy)
        reconciler.run_pass()

        assert [len(batch) for batch in calls] == [2, 1]

    def test_worker_pool_is_bounded(self, store, monitored, make_tree):
        make_tree({f"f{i}.txt": str(i) for i in range(8)})
        lock = threading.Lock()
        current = [0]
        peak = [0]

        def slow_hash(path):
            with lock:
                current[0] += 1
                peak[0] = max(peak[0], current[0])
            time.sleep(0.02)
            with lock:
                current[0] -= 1
            return calculate_fingerprint(path)

        reconciler = Reconciler(store, FileIndexer(store, slow_hash), batch_size=8, max_concurrency=2)
        reconciler.run_pass()

        assert peak[0] <= 2
        assert store.count_records() == 8

    def test_store_writes_never_overlap_across_workers_and_watcher(self, store, monitored, make_tree, observer, monkeypatch):
        root = make_tree({f"pass/f{i}.txt": f"p{i}" for i in range(8)})
        make_tree({f"live/g{i}.txt": f"g{i}" for i in range(8)})
        live_paths = [str(root / "live" / f"g{i}.txt") for i in range(8)]
        lock = threading.Lock()
        current = [0]
        peak = [0]

        def tracked(method):
            def wrapper(*args, **kwargs):
                with lock:
                    current[0] += 1
                    peak[0] = max(peak[0], current[0])
                try:
                    time.sleep(0.005)
                    return method(*args, **kwargs)
                finally:
                    with lock:
                        current[0] -= 1
            return wrapper

        for name in ("upsert_record", "mark_live", "mark_all_stale", "delete_stale", "delete_by_path"):
            monkeypatch.setattr(store, name, tracked(getattr(store, name)))

        def slow_hash(path):
            time.sleep(0.005)
            return calculate_fingerprint(path)

        indexer = FileIndexer(store, slow_hash)
        reconciler = Reconciler(store, indexer, batch_size=4, max_concurrency=2)
        bridge = WatcherBridge(store, indexer, observer=observer)

        def fire_events():
            for path in live_paths:
                bridge.handler.dispatch(FileCreatedEvent(path))
                bridge.handler.dispatch(FileModifiedEvent(path))

        events = threading.Thread(target=fire_events)
        assert reconciler.start_pass() is True
        events.start()
        events.join(10)
        reconciler.join(10)

        assert peak[0] == 1
        assert store.count_records() == 16


class TestPassErrors:

    def test_hash_failure_counts_error_and_continues(self, store, monitored, make_tree):
        root = make_tree({"bad.txt": "x", "good.txt": "hello"})
        bad = str(root / "bad.txt")

        def flaky_hash(path):
            if path == bad:
                raise PermissionError(13, "Permission denied", path)
            return calculate_fingerprint(path)

        reconciler = Reconciler(store, FileIndexer(store, flaky_hash))
        reconciler.run_pass()

        status = reconciler.get_status()
        assert status.error_files == 1
        assert status.processed_files == 1
        assert store.get_record(HELLO_MD5) is not None

    def test_walk_error_counts_error(self, store, reconciler, monitored, make_tree, monkeypatch):
        root = make_tree({"locked/a.txt": "a", "open/b.txt": "b"})
        locked = str(root / "locked")
        real_scandir = os.scandir

        def fake_scandir(path):
            if path == locked:
                raise PermissionError(13, "Permission denied", path)
            return real_scandir(path)

        monkeypatch.setattr(enumerator_module.os, "scandir", fake_scandir)
        reconciler.run_pass()

        status = reconciler.get_status()
        assert status.error_files == 1
        assert status.processed_files == 1

    def test_store_failure_loading_roots_aborts_before_mutation(self, store, reconciler, monitored, make_tree, monkeypatch):
        make_tree({"a.txt": "hello"})
        reconciler.run_pass()

        def broken():
            raise IndexStoreError("database is locked")

        monkeypatch.setattr(store, "list_monitored_directories", broken)
        assert reconciler.run_pass() is True

        record = store.get_record(HELLO_MD5)
        assert record is not None and record.live is True
        assert reconciler.get_status().processed_files == 0

    def test_no_monitored_directories_skips_pass(self, store, reconciler):
        store.upsert_record(FileRecord(fingerprint="e" * 32, path="/elsewhere/x", filename="x", size=1, modified_at=1.0))

        assert reconciler.run_pass() is True

        assert store.get_record("e" * 32).live is True
        assert reconciler.completed_passes == 1
        assert reconciler.get_status().total_files == 0


class TestStatus:

    def test_status_after_pass(self, reconciler, monitored, make_tree):
        make_tree({"a.txt": "1", "b.txt": "2"})
        reconciler.run_pass()

        status = reconciler.get_status()
        assert status.is_scanning is False
        assert status.finished_at is not None
        assert status.finished_at >= status.started_at
        assert status.progress == pytest.approx(100.0)
        assert status.current_dir == ""
        assert status.as_dict()["finished_at"] is not None

    def test_idle_status_before_any_pass(self, reconciler):
        status = reconciler.get_status()
        assert status.is_scanning is False
        assert status.started_at is None
        assert status.progress == 0.0


class BlockingHash:
    """Hash that parks the first call until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, path):
        self.entered.set()
        self.release.wait(5)
        return calculate_fingerprint(path)


class TestCoalescing:

    def test_trigger_while_running_is_dropped(self, store, monitored, make_tree):
        make_tree({"a.txt": "hello"})
        blocking = BlockingHash()
        reconciler = Reconciler(store, FileIndexer(store, blocking))

        assert reconciler.start_pass() is True
        assert blocking.entered.wait(5)

        assert reconciler.is_running
        assert reconciler.get_status().is_scanning is True
        assert reconciler.start_pass() is False
        assert reconciler.trigger_manual_pass() is False
        assert reconciler.run_pass() is False

        blocking.release.set()
        reconciler.join(5)

        assert reconciler.completed_passes == 1
        assert reconciler.is_running is False
        assert reconciler.get_status().processed_files == 1

    def test_scheduler_runs_at_start_and_on_trigger(self, reconciler, monitored, make_tree):
        make_tree({"a.txt": "hello"})
        reconciler.start()
        try:
            assert wait_until(lambda: reconciler.completed_passes >= 1)
            reconciler.start()
            assert reconciler.trigger_manual_pass() is True
            assert wait_until(lambda: reconciler.completed_passes >= 2)
        finally:
            reconciler.stop(timeout=5)

        reconciler.join(5)
        assert reconciler.completed_passes == 2

    def test_trigger_without_loop_starts_pass(self, reconciler, monitored, make_tree):
        make_tree({"a.txt": "hello"})
        assert reconciler.trigger_manual_pass() is True
        reconciler.join(5)
        assert reconciler.completed_passes == 1


class TestRootChangesDuringPass:

    def test_root_added_during_pass_is_indexed_by_follow_up_pass(self, store, monitored, make_tree, tmp_path):
        make_tree({"a.txt": "hello"})
        blocking = BlockingHash()
        reconciler = Reconciler(store, FileIndexer(store, blocking))
        second = tmp_path / "second"
        second.mkdir()
        (second / "a.txt").write_text("world")

        assert reconciler.start_pass() is True
        assert blocking.entered.wait(5)
        AddMonitoredDirectory(store, reconciler=reconciler)(str(second))
        blocking.release.set()
        reconciler.join(5)

        assert store.get_record_by_path(str(second / "a.txt")) is not None
        assert reconciler.completed_passes == 2
        assert not reconciler.is_running

    def test_requests_while_running_queue_a_single_follow_up(self, store, monitored, make_tree):
        make_tree({"a.txt": "hello"})
        blocking = BlockingHash()
        reconciler = Reconciler(store, FileIndexer(store, blocking))

        assert reconciler.request_pass() is True
        assert blocking.entered.wait(5)
        assert reconciler.request_pass() is False
        assert reconciler.request_pass() is False
        blocking.release.set()
        reconciler.join(5)

        assert reconciler.completed_passes == 2

    def test_root_removed_during_pass_leaves_no_records(self, store, monitored, make_tree):
        make_tree({f"f{i}.txt": f"c{i}" for i in range(4)})
        blocking = BlockingHash()
        indexer = FileIndexer(store, blocking)
        reconciler = Reconciler(store, indexer, batch_size=1, max_concurrency=1)

        assert reconciler.start_pass() is True
        assert blocking.entered.wait(5)
        RemoveMonitoredDirectory(store, indexer=indexer)(monitored)
        blocking.release.set()
        reconciler.join(5)

        assert store.list_monitored_directories() == []
        assert store.count_records() == 0
