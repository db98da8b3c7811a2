"""Part file naming.

SplitThenZip parts are named ``{base}.part-{label}.zip`` and hold a single
entry ``{base}.part-{label}``; ZipThenSplit parts are raw slices named
``{base}.zip.part-{label}``. Labels are the decimal index zero-padded to four
digits; wider indices simply use more digits.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from .constants import LABEL_WIDTH, PART_MARKER, PARTS_DIR_SUFFIX, ZIP_SUFFIX
from .errors import InvalidSpec
from .models import PackMode


_SPLIT_THEN_ZIP_RE = re.compile(r"^(.*)\.part-(\d+)\.zip$", re.DOTALL)
_ZIP_THEN_SPLIT_RE = re.compile(r"^(.*)\.zip\.part-(\d+)$", re.DOTALL)


@dataclass(frozen=True)
class ParsedName:
    base: str
    index: int
    label: str


def format_label(index: int) -> str:
    if index < 1:
        raise InvalidSpec(f"part index must be >= 1, got {index}")
    return f"{index:0{LABEL_WIDTH}d}"


def part_name(base: str, index: int, mode: PackMode) -> str:
    label = format_label(index)
    if mode is PackMode.SPLIT_THEN_ZIP:
        return f"{base}{PART_MARKER}{label}{ZIP_SUFFIX}"
    if mode is PackMode.ZIP_THEN_SPLIT:
        return f"{base}{ZIP_SUFFIX}{PART_MARKER}{label}"
    raise InvalidSpec(f"unsupported pack mode: {mode!r}")


def chunk_entry_name(base: str, label: str) -> str:
    """Entry name of the chunk stored inside a SplitThenZip part."""
    return f"{base}{PART_MARKER}{label}"


def parse_part_name(name: str, mode: PackMode) -> Optional[ParsedName]:
    if mode is PackMode.SPLIT_THEN_ZIP:
        m = _SPLIT_THEN_ZIP_RE.match(name)
    elif mode is PackMode.ZIP_THEN_SPLIT:
        m = _ZIP_THEN_SPLIT_RE.match(name)
    else:
        raise InvalidSpec(f"unsupported pack mode: {mode!r}")
    if m is None:
        return None
    base, label = m.group(1), m.group(2)
    return ParsedName(base=base, index=int(label), label=label)


def parts_dir_name(base: str) -> str:
    return f"{base}{PARTS_DIR_SUFFIX}"


def blob_name(base: str) -> str:
    """Name of the intermediate (or merged) zip built for ``base``."""
    return f"{base}{ZIP_SUFFIX}"


__all__ = [
    "ParsedName",
    "format_label",
    "part_name",
    "chunk_entry_name",
    "parse_part_name",
    "parts_dir_name",
    "blob_name",
]
