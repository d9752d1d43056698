"""Depth-first walk of a monitored root that honours ignore patterns."""

from __future__ import annotations

import os
from typing import Callable, Iterator, Optional

from smart_finder.utils.logging import get_logger

from .ignore import IgnoreMatcher

logger = get_logger("smart_finder.indexing.enumerator")

WalkErrorHandler = Callable[[str, OSError], None]


class DirectoryEnumerator:
    """Yields candidate file paths under a root.

    Every call starts a fresh walk. Unreadable directories and entries that
    cannot be inspected (permission denied, broken symlinks) are skipped and
    reported through ``on_error``; the walk itself never fails.
    """

    def __init__(self, matcher: Optional[IgnoreMatcher] = None, on_error: Optional[WalkErrorHandler] = None):
        self.matcher = matcher or IgnoreMatcher()
        self.on_error = on_error

    def iter_files(self, root: str) -> Iterator[str]:
        for _, files in self._walk(root):
            yield from files

    def iter_directories(self, root: str) -> Iterator[str]:
        """Yield ``root`` and every non-ignored directory below it."""
        for directory, _ in self._walk(root):
            yield directory

    def count_files(self, root: str) -> int:
        return sum(1 for _ in self.iter_files(root))

    def _walk(self, root: str) -> Iterator[tuple[str, list[str]]]:
        if not os.path.isdir(root):
            logger.warning("Monitored path is not a directory | path=%s", root)
            return

        stack: list[str] = [root]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as entries:
                    ordered = sorted(entries, key=lambda entry: entry.name)
            except OSError as exc:
                self._report(current, exc)
                continue

            files: list[str] = []
            subdirs: list[str] = []
            for entry in ordered:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        if not self.matcher.should_skip_directory(entry.name):
                            subdirs.append(entry.path)
                        continue
                    if self.matcher.should_skip_file(entry.name):
                        continue
                    if entry.is_file():
                        files.append(entry.path)
                    elif entry.is_symlink():
                        if entry.is_dir():
                            logger.debug("Skipping directory symlink | path=%s", entry.path)
                        else:
                            logger.debug("Skipping broken symlink | path=%s", entry.path)
                except OSError as exc:
                    self._report(entry.path, exc)

            yield current, files
            stack.extend(reversed(subdirs))

    def _report(self, path: str, exc: OSError) -> None:
        logger.warning("Cannot access path, skipping | path=%s error=%s", path, exc)
        if self.on_error is not None:
            self.on_error(path, exc)
