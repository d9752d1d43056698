"""Glob exclusion of files and directories."""

from __future__ import annotations

import fnmatch
import os
from typing import Iterable, Sequence


def should_ignore(name: str, is_directory: bool, patterns: Sequence[str]) -> bool:
    """Return True when the base name of ``name`` matches one of the glob patterns.

    ``name`` may be a bare name or a full path. ``is_directory`` does not
    change matching: a matched directory means the caller skips the whole
    subtree, a matched file only that file.
    """
    base_name = os.path.basename(name.rstrip(os.sep)) or name
    return any(fnmatch.fnmatch(base_name, pattern) for pattern in patterns)


class IgnoreMatcher:
    """Ignore patterns frozen for the duration of one pass."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self.patterns: tuple[str, ...] = tuple(patterns)

    def should_skip_directory(self, name: str) -> bool:
        return should_ignore(name, True, self.patterns)

    def should_skip_file(self, name: str) -> bool:
        return should_ignore(name, False, self.patterns)

    def __repr__(self) -> str:
        return f"IgnoreMatcher({list(self.patterns)!r})"
