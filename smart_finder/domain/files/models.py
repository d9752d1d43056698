from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass(slots=True)
class FileRecord:
    """One indexed file, keyed by the fingerprint of its content."""

    fingerprint: str
    path: str
    filename: str
    size: int
    modified_at: float
    live: bool = True

    @classmethod
    def from_stat(cls, fingerprint: str, path: str, stat_info: os.stat_result) -> "FileRecord":
        return cls(
            fingerprint=fingerprint,
            path=path,
            filename=os.path.basename(path),
            size=stat_info.st_size,
            modified_at=stat_info.st_mtime,
        )

    def matches_stat(self, stat_info: os.stat_result) -> bool:
        """True when size and mtime are unchanged, i.e. no re-hash is needed."""
        return self.size == stat_info.st_size and self.modified_at == stat_info.st_mtime

    @property
    def modified_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.modified_at, tz=timezone.utc)

    def as_dict(self) -> dict[str, Any]:
        return {
            "md5": self.fingerprint,
            "path": self.path,
            "filename": self.filename,
            "size": self.size,
            "modified_at": self.modified_datetime.isoformat(),
        }


@dataclass(slots=True)
class ScanStatus:
    """Counters of the reconciliation pass in progress (or the last finished one)."""

    is_scanning: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    total_files: int = 0
    processed_files: int = 0
    skipped_files: int = 0
    error_files: int = 0
    deleted_files: int = 0
    current_dir: str = ""
    progress: float = 0.0
    elapsed_seconds: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["started_at"] = self.started_at.isoformat() if self.started_at else None
        payload["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return payload
