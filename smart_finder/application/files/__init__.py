"""Use cases for lookups, monitored directories and ignore patterns."""

from .use_cases import (
    AddMonitoredDirectory,
    GetIgnorePatterns,
    ListIndexedFiles,
    LookupByFingerprint,
    LookupByPath,
    RemoveMonitoredDirectory,
    RevealFile,
    SetIgnorePatterns,
    normalize_fingerprint,
)

__all__ = [
    "AddMonitoredDirectory",
    "GetIgnorePatterns",
    "ListIndexedFiles",
    "LookupByFingerprint",
    "LookupByPath",
    "RemoveMonitoredDirectory",
    "RevealFile",
    "SetIgnorePatterns",
    "normalize_fingerprint",
]
