from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .constants import (
    LABEL_WIDTH,
    PART_MARKER,
    STRICT_SIZE_ROUNDS,
    ZIP_AES_OVERHEAD,
    ZIP_CENTRAL_HEADER,
    ZIP_DATA_DESCRIPTOR,
    ZIP_END_OF_CENTRAL,
    ZIP_LOCAL_HEADER,
    ZIP_SAFETY_MARGIN,
)
from .errors import InvalidSpec
from .models import ByCount, BySize, SplitSpec


@dataclass(frozen=True)
class Chunk:
    index: int  # 1-based
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


def plan(total_bytes: int, spec: SplitSpec) -> List[Chunk]:
    """Cut ``[0, total_bytes)`` into ordered, contiguous chunks.

    BySize emits full-size chunks followed by the remainder (never a
    zero-length tail, except for empty input which yields one empty chunk).
    ByCount hands the first ``total % n`` chunks one extra byte.
    """
    if total_bytes < 0:
        raise InvalidSpec("total size must not be negative")
    if isinstance(spec, BySize):
        target = int(spec.bytes)
        if target <= 0:
            raise InvalidSpec("part size must be greater than 0")
        if total_bytes == 0:
            return [Chunk(1, 0, 0)]
        chunks: List[Chunk] = []
        offset = 0
        while offset < total_bytes:
            length = min(target, total_bytes - offset)
            chunks.append(Chunk(len(chunks) + 1, offset, length))
            offset += length
        return chunks
    if isinstance(spec, ByCount):
        n = int(spec.n)
        if n <= 0:
            raise InvalidSpec("part count must be greater than 0")
        small, extra = divmod(total_bytes, n)
        chunks = []
        offset = 0
        for i in range(n):
            length = small + 1 if i < extra else small
            chunks.append(Chunk(i + 1, offset, length))
            offset += length
        return chunks
    raise InvalidSpec(f"unsupported split spec: {spec!r}")


def _div_ceil(value: int, divisor: int) -> int:
    return (value + divisor - 1) // divisor


def stored_part_overhead(entry_name_len: int, encrypted: bool) -> int:
    overhead = (
        ZIP_LOCAL_HEADER
        + ZIP_CENTRAL_HEADER
        + ZIP_END_OF_CENTRAL
        + ZIP_DATA_DESCRIPTOR
        + ZIP_SAFETY_MARGIN
        + 2 * entry_name_len
    )
    if encrypted:
        overhead += ZIP_AES_OVERHEAD
    return overhead


def stored_payload_target(total_bytes: int, part_size: int, base: str, encrypted: bool) -> int:
    """Payload bytes per chunk so a stored zip part stays within ``part_size``.

    The entry name length depends on the label width, which depends on the
    part count, so the estimate is iterated until the count settles.
    """
    if part_size <= 0:
        raise InvalidSpec("part size must be greater than 0")
    parts = max(1, _div_ceil(total_bytes, part_size))
    payload = part_size
    for _ in range(STRICT_SIZE_ROUNDS):
        width = max(LABEL_WIDTH, len(str(parts)))
        overhead = stored_part_overhead(len(base) + len(PART_MARKER) + width, encrypted)
        if part_size <= overhead:
            raise InvalidSpec(f"part size too small; at least {overhead + 1} bytes are needed")
        payload = part_size - overhead
        next_parts = max(1, _div_ceil(total_bytes, payload))
        if next_parts == parts:
            break
        parts = next_parts
    return payload


__all__ = ["Chunk", "plan", "stored_part_overhead", "stored_payload_target"]
