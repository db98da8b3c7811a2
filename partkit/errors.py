from __future__ import annotations

from contextlib import contextmanager
from typing import List, Optional, Sequence


class PartkitError(Exception):
    """Base class for partkit errors.

    Every error carries the phase it was raised in and, where known, the part
    index and filesystem path it concerns.
    """

    def __init__(
        self,
        message: str,
        *,
        phase: Optional[str] = None,
        part_index: Optional[int] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.part_index = part_index
        self.path = path

    def __str__(self) -> str:
        ctx = []
        if self.phase:
            ctx.append(f"phase={self.phase}")
        if self.part_index is not None:
            ctx.append(f"part={self.part_index}")
        if self.path:
            ctx.append(f"path={self.path}")
        if not ctx:
            return self.message
        return f"{self.message} ({', '.join(ctx)})"


class InvalidSpec(PartkitError):
    pass


# Discovery
class NoPartsFound(PartkitError):
    pass


class InconsistentBase(PartkitError):
    pass


class MissingPart(PartkitError):
    """Part indices are not the contiguous run 1..N."""


# Pack side
class ConfirmationRequired(PartkitError):
    """The parts directory already holds files and overwrite was not authorised.

    Callers are expected to ask the user and retry with overwrite enabled.
    """


class Cancelled(PartkitError):
    pass


# Codec / storage
class CodecFailure(PartkitError):
    pass


class ExtractionFailed(CodecFailure):
    """Auto-extraction failed; the merged zip was kept at ``merged_file``."""

    def __init__(self, message: str, *, merged_file: str, **kwargs):
        super().__init__(message, **kwargs)
        self.merged_file = merged_file


class IOFailure(PartkitError):
    pass


class HashMismatch(PartkitError):
    def __init__(self, message: str, *, failed: Sequence[str], **kwargs):
        super().__init__(message, **kwargs)
        self.failed: List[str] = list(failed)


@contextmanager
def error_context(phase: str, *, part_index: Optional[int] = None, path: Optional[str] = None):
    """Tag partkit errors raised inside the block with phase / part / path and
    turn bare OSErrors into IOFailure."""
    try:
        yield
    except PartkitError as exc:
        if exc.phase is None:
            exc.phase = phase
        if exc.part_index is None:
            exc.part_index = part_index
        if exc.path is None:
            exc.path = path
        raise
    except OSError as exc:
        raise IOFailure(
            exc.strerror or str(exc),
            phase=phase,
            part_index=part_index,
            path=str(exc.filename) if exc.filename else path,
        ) from exc
