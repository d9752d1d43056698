from enum import Enum


class FileOutcome(str, Enum):
    """Result of one per-file unit of work."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERROR = "error"
