"""Content fingerprinting."""

from __future__ import annotations

import hashlib
import string

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024
FINGERPRINT_LENGTH = 32

_HEX_DIGITS = frozenset(string.hexdigits)


def calculate_fingerprint(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return the MD5 hex digest of the file's bytes, read in bounded chunks.

    Raises:
        OSError: the file cannot be opened or a read fails mid-stream.
    """
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def is_valid_fingerprint(value: str) -> bool:
    return len(value) == FINGERPRINT_LENGTH and all(char in _HEX_DIGITS for char in value)
