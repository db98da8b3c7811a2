from __future__ import annotations

import hashlib
from collections.abc import Sequence
from pathlib import Path
from typing import List, Optional, Union

from .constants import HASH_BLOCK_SIZE


PathLike = Union[str, Path]


def sha256_file(path: PathLike) -> str:
    """Lowercase 64-char SHA-256 hex digest of a file, read in 64 KiB blocks."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(HASH_BLOCK_SIZE), b""):
            h.update(block)
    return h.hexdigest()


def _is_sequence(value) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def verify_parts(ordered_paths: Sequence[PathLike], ordered_expected: Sequence[Optional[str]]) -> List[PathLike]:
    """Return the paths whose digest does not match the expected entry at the same position.

    A missing or empty expected entry counts as a failure, as does a path that
    no longer exists. Comparison is case-insensitive. Returns an empty list
    when everything matches.
    """
    if not _is_sequence(ordered_paths) or not _is_sequence(ordered_expected):
        raise TypeError("ordered_paths and ordered_expected must be sequences")
    failed: List[PathLike] = []
    for pos, path in enumerate(ordered_paths):
        expected = ordered_expected[pos] if pos < len(ordered_expected) else None
        if not expected:
            failed.append(path)
            continue
        try:
            actual = sha256_file(path)
        except FileNotFoundError:
            failed.append(path)
            continue
        if actual != str(expected).strip().lower():
            failed.append(path)
    return failed


__all__ = ["sha256_file", "verify_parts"]
