"""
Indexing pipeline: hashing, ignore rules, directory walk, reconciliation, live updates.

=== FLOW ===
    DirectoryEnumerator ──► Reconciler ──┐
                                         ├──► FileIndexer ──► IndexStore
    watchdog events ──► WatcherBridge ───┘
"""

from .enumerator import DirectoryEnumerator
from .hasher import calculate_fingerprint, is_valid_fingerprint
from .ignore import IgnoreMatcher, should_ignore
from .indexer import FileIndexer
from .reconciler import Reconciler
from .watcher import WatcherBridge

__all__ = [
    "DirectoryEnumerator",
    "FileIndexer",
    "IgnoreMatcher",
    "Reconciler",
    "WatcherBridge",
    "calculate_fingerprint",
    "is_valid_fingerprint",
    "should_ignore",
]
