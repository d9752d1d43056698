"""
Domain objects for the file index.

=== PURPOSE ===
- FileRecord: one indexed file keyed by its content fingerprint
- ScanStatus: counters of the reconciliation pass in progress
- FileLocation: value object (fingerprint + path)
- FileOutcome: result of the per-file unit of work
- IndexStore: repository interface implemented in infrastructure/

=== RECORD LIFECYCLE ===
    first hash  →  live  →  stale (pass start)  →  live (confirmed)
                                  ↓
                           deleted (pass end)

=== USAGE ===

    from smart_finder.domain.files import FileRecord, IndexStore

    def locate(store: IndexStore, fingerprint: str):
        record = store.get_record(fingerprint)
        return record.path if record else None
"""

from .errors import IndexStoreError
from .models import FileRecord, ScanStatus
from .repository import IndexStore
from .status import FileOutcome
from .value_objects import FileLocation

__all__ = [
    "FileLocation",
    "FileOutcome",
    "FileRecord",
    "IndexStore",
    "IndexStoreError",
    "ScanStatus",
]
