"""
Pytest fixtures for the indexer: temporary SQLite store, sample trees, stub hashes.
"""
import logging
import os
import threading
from collections import Counter
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict

import pytest

from smart_finder.application.indexing import FileIndexer, Reconciler, calculate_fingerprint
from smart_finder.infrastructure.database import SqliteIndexStore


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """Only errors reach the console during tests"""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.ERROR)
    yield


@pytest.fixture
def store(tmp_path) -> SqliteIndexStore:
    return SqliteIndexStore(str(tmp_path / "db" / "index.db"))


@pytest.fixture
def data_dir(tmp_path) -> Path:
    directory = tmp_path / "data"
    directory.mkdir()
    return directory


@pytest.fixture
def make_tree(data_dir) -> Callable[[Dict[str, str]], Path]:
    """Write {relative path: content} under data_dir and return data_dir."""

    def _make(files: Dict[str, str]) -> Path:
        for relative, content in files.items():
            target = data_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        return data_dir

    return _make


class CountingHash:
    """Real MD5, counting how often each path is hashed."""

    def __init__(self):
        self.calls = Counter()
        self._lock = threading.Lock()

    def __call__(self, path: str) -> str:
        with self._lock:
            self.calls[path] += 1
        return calculate_fingerprint(path)

    @property
    def total(self) -> int:
        return sum(self.calls.values())


@pytest.fixture
def counting_hash() -> CountingHash:
    return CountingHash()


@pytest.fixture
def indexer(store, counting_hash) -> FileIndexer:
    return FileIndexer(store, counting_hash)


@pytest.fixture
def reconciler(store, indexer) -> Reconciler:
    return Reconciler(store, indexer, interval_seconds=3600, batch_size=2, max_concurrency=2)


@pytest.fixture
def monitored(store, data_dir) -> str:
    """data_dir registered as a monitored root."""
    root = os.path.abspath(str(data_dir))
    store.add_monitored_directory(root)
    return root


class FakeObserver:
    """Records watchdog schedule/unschedule calls instead of touching the OS."""

    def __init__(self):
        self.scheduled = {}
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        assert recursive is False
        watch = SimpleNamespace(path=path)
        self.scheduled[path] = watch
        return watch

    def unschedule(self, watch):
        del self.scheduled[watch.path]

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()
