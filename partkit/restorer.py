"""
Part discovery and reassembly.

Discovery is a set of pure functions over file names plus thin wrappers that
list a directory; the Restorer then verifies, merges and optionally extracts.
"""
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .codec import extract_all, is_zip, read_single_entry
from .constants import (
    DEFAULT_BUFFER_SIZE,
    PHASE_EXTRACTING,
    PHASE_MERGING,
    PHASE_UNZIPPING,
    PHASE_VERIFYING,
    PART_MARKER,
    SCRATCH_PREFIX,
    ZIP_SUFFIX,
)
from .errors import (
    CodecFailure,
    ExtractionFailed,
    HashMismatch,
    InconsistentBase,
    InvalidSpec,
    IOFailure,
    MissingPart,
    NoPartsFound,
    error_context,
)
from .hashutil import verify_parts
from .logger import logger
from .models import (
    DirectoryScan,
    ExplicitPartList,
    PackMode,
    PartDescriptor,
    PartSource,
    RestoreRequest,
    RestoreResult,
)
from .naming import ParsedName, blob_name, chunk_entry_name, parse_part_name
from .pathutil import list_files, replace_path
from .progress import CancelToken, ProgressReporter


PathLike = Union[str, Path]


# -------- discovery --------

def discover_in_names(names: Iterable[str], mode: PackMode, base: Optional[str] = None) -> Tuple[str, List[ParsedName]]:
    """Pick the part names of one group out of ``names``, sorted by index.

    Names that do not follow the mode's pattern are ignored. Without ``base``
    the names must form exactly one group.
    """
    matches: List[ParsedName] = []
    for name in names:
        parsed = parse_part_name(name, mode)
        if parsed is None:
            continue
        if base is not None and parsed.base != base:
            continue
        matches.append(parsed)
    if not matches:
        if base is not None:
            raise NoPartsFound(f"no {mode.value} parts found for base {base!r}")
        raise NoPartsFound(f"no {mode.value} parts found")
    bases = sorted({m.base for m in matches})
    if len(bases) > 1:
        raise InconsistentBase(f"parts belong to several bases: {', '.join(bases)}")
    matches.sort(key=lambda m: (m.index, m.label))
    return bases[0], matches


def discover_explicit(paths: Sequence[PathLike], mode: PackMode) -> Tuple[str, List[PartDescriptor]]:
    """Resolve an explicit list of part paths; non-matching names are dropped."""
    by_name: Dict[str, List[Path]] = {}
    for p in paths:
        p = Path(p)
        by_name.setdefault(p.name, []).append(p)
    base, parsed = discover_in_names(list(by_name), mode)
    parts: List[PartDescriptor] = []
    for m in parsed:
        name = _name_of(m, mode)
        for path in by_name.pop(name, []):
            parts.append(PartDescriptor(index=m.index, label=m.label, path=path))
    return base, parts


def _name_of(parsed: ParsedName, mode: PackMode) -> str:
    if mode is PackMode.SPLIT_THEN_ZIP:
        return f"{parsed.base}{PART_MARKER}{parsed.label}{ZIP_SUFFIX}"
    return f"{parsed.base}{ZIP_SUFFIX}{PART_MARKER}{parsed.label}"


def scan_directory(directory: PathLike, mode: PackMode, base: Optional[str] = None) -> Tuple[str, List[PartDescriptor]]:
    directory = Path(directory)
    if not directory.is_dir():
        raise IOFailure("parts directory does not exist", path=str(directory))
    with error_context(PHASE_VERIFYING, path=str(directory)):
        names = [e.name for e in os.scandir(directory) if e.is_file()]
    found, parsed = discover_in_names(names, mode, base)
    parts = [PartDescriptor(index=m.index, label=m.label, path=directory / _name_of(m, mode)) for m in parsed]
    return found, parts


def from_input_path(path: PathLike, mode: PackMode) -> PartSource:
    """A part file expands to a scan of its directory for its base; a directory scans as-is."""
    p = Path(path)
    mode = PackMode.parse(mode)
    if p.is_dir():
        return DirectoryScan(directory=p)
    if p.is_file():
        parsed = parse_part_name(p.name, mode)
        if parsed is None:
            raise NoPartsFound(f"{p.name!r} is not a {mode.value} part", path=str(p))
        return DirectoryScan(directory=p.parent, base=parsed.base)
    raise IOFailure("input does not exist", path=str(p))


def discover(source: PartSource, mode: PackMode) -> Tuple[str, List[PartDescriptor]]:
    if isinstance(source, ExplicitPartList):
        return discover_explicit(source.paths, mode)
    if isinstance(source, DirectoryScan):
        return scan_directory(source.directory, mode, source.base)
    raise InvalidSpec(f"unsupported part source: {source!r}")


def check_contiguous(parts: Sequence[PartDescriptor]) -> None:
    """Indices must run 1..N with no gap and no duplicate."""
    for pos, part in enumerate(parts, start=1):
        if part.index == pos:
            continue
        if part.index < pos:
            raise MissingPart(f"duplicate part index {part.index}", part_index=part.index, path=str(part.path))
        raise MissingPart(f"part {pos} is missing (next found is {part.index})", part_index=pos)


# -------- restore --------

class Restorer:
    """Reassembles the original input from a group of parts."""

    def __init__(
        self,
        request: RestoreRequest,
        *,
        reporter: Optional[ProgressReporter] = None,
        cancel: Optional[CancelToken] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        scratch_prefix: str = SCRATCH_PREFIX,
    ):
        self.request = request
        self.reporter = reporter
        self.cancel = cancel
        self.buffer_size = buffer_size
        self.scratch_prefix = scratch_prefix

    def _emit(self, phase: str, processed: int, total: int, part_index: int = 0, part_total: int = 0, message: str = "") -> None:
        if self.reporter is not None:
            self.reporter.emit(phase, processed, total, part_index, part_total, message)

    def _check_cancel(self, phase: str, part_index: Optional[int] = None) -> None:
        if self.cancel is not None:
            self.cancel.check(phase=phase, part_index=part_index)

    def run(self) -> RestoreResult:
        req = self.request
        if self.reporter is not None:
            self.reporter.begin()
        base, parts = discover(req.source, req.mode)
        if req.check_contiguity:
            check_contiguous(parts)
        logger.info(f" Restoring {base} from {len(parts)} {req.mode.value} part(s)")

        if req.expected_hashes is not None:
            self._verify(parts)

        with error_context(PHASE_MERGING, path=str(req.output_dir)):
            req.output_dir.mkdir(parents=True, exist_ok=True)

        if req.mode is PackMode.SPLIT_THEN_ZIP:
            merged = self._merge_split_then_zip(base, parts)
        elif req.mode is PackMode.ZIP_THEN_SPLIT:
            merged = self._merge_zip_then_split(base, parts)
        else:
            raise InvalidSpec(f"unsupported pack mode: {req.mode!r}")

        if req.auto_extract and is_zip(merged):
            result = self._extract(base, merged)
        else:
            if req.auto_extract:
                logger.info(f" {merged.name} is not a zip archive; nothing to extract")
            if req.output_file is not None and req.output_file != merged:
                with error_context(PHASE_MERGING, path=str(req.output_file)):
                    replace_path(merged, req.output_file)
                merged = req.output_file
            result = RestoreResult(merged_file=merged, output_files=[merged])

        logger.info(f" Restored {base} into {req.output_dir}")
        return result

    # -------- verification --------

    def _expected_for(self, parts: Sequence[PartDescriptor]) -> List[Optional[str]]:
        expected = self.request.expected_hashes
        if isinstance(expected, dict):
            by_name = {str(k): v for k, v in expected.items()}
            return [by_name.get(p.path.name) for p in parts]
        return list(expected)

    def _verify(self, parts: Sequence[PartDescriptor]) -> None:
        expected = self._expected_for(parts)
        n = len(parts)
        self._emit(PHASE_VERIFYING, 0, n, 0, n, "verifying part hashes")
        failed: List[str] = []
        for pos, part in enumerate(parts):
            self._check_cancel(PHASE_VERIFYING, part.index)
            want = expected[pos] if pos < len(expected) else None
            with error_context(PHASE_VERIFYING, part_index=part.index, path=str(part.path)):
                failed.extend(str(p) for p in verify_parts([part.path], [want]))
            self._emit(PHASE_VERIFYING, pos + 1, n, pos + 1, n, part.path.name)
        if failed:
            for path in failed:
                logger.warning(f" hash mismatch: {path}")
            raise HashMismatch(f"{len(failed)} part(s) failed hash verification", failed=failed, phase=PHASE_VERIFYING)
        logger.debug(f"   all {n} part hash(es) verified")

    # -------- split-then-zip --------

    def _merge_split_then_zip(self, base: str, parts: Sequence[PartDescriptor]) -> Path:
        req = self.request
        n = len(parts)
        with error_context(PHASE_UNZIPPING, path=str(req.output_dir)):
            scratch = Path(tempfile.mkdtemp(prefix=self.scratch_prefix, dir=str(req.output_dir)))
        tmp: Optional[Path] = None
        try:
            chunks = self._unzip_parts(base, parts, scratch)

            with error_context(PHASE_MERGING, path=str(req.output_dir)):
                fd, tmp_name = tempfile.mkstemp(prefix=self.scratch_prefix, dir=str(req.output_dir))
                os.close(fd)
            tmp = Path(tmp_name)
            self._concat(chunks, tmp, [p.index for p in parts], n)

            name = base
            if is_zip(tmp) and not base.lower().endswith(".zip"):
                name = blob_name(base)
            merged = req.output_dir / name
            with error_context(PHASE_MERGING, path=str(merged)):
                os.replace(str(tmp), str(merged))
            tmp = None
        except BaseException:
            if tmp is not None:
                tmp.unlink(missing_ok=True)
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        if req.keep_scratch:
            logger.info(f" Kept unzipped chunks in {scratch}")
        else:
            shutil.rmtree(scratch, ignore_errors=True)
        logger.info(f" Merged {n} chunk(s) into {merged}")
        return merged

    def _unzip_parts(self, base: str, parts: Sequence[PartDescriptor], scratch: Path) -> List[Path]:
        n = len(parts)
        with error_context(PHASE_UNZIPPING):
            total = sum(p.path.stat().st_size for p in parts)
        done = 0
        self._emit(PHASE_UNZIPPING, 0, total, 0, n, "unzipping parts")
        chunks: List[Path] = []
        for pos, part in enumerate(parts, start=1):
            self._check_cancel(PHASE_UNZIPPING, part.index)
            dest = scratch / chunk_entry_name(base, part.label)
            with error_context(PHASE_UNZIPPING, part_index=part.index, path=str(part.path)):
                size = read_single_entry(part.path, dest, self.request.password, self.buffer_size)
                done += part.path.stat().st_size
            logger.debug(f"   part {part.label}: {size} bytes unzipped")
            self._emit(PHASE_UNZIPPING, done, total, pos, n, part.path.name)
            chunks.append(dest)
        return chunks

    # -------- zip-then-split --------

    def _merge_zip_then_split(self, base: str, parts: Sequence[PartDescriptor]) -> Path:
        req = self.request
        merged = req.output_dir / blob_name(base)
        with error_context(PHASE_MERGING, path=str(req.output_dir)):
            fd, tmp_name = tempfile.mkstemp(prefix=self.scratch_prefix, dir=str(req.output_dir))
            os.close(fd)
        tmp = Path(tmp_name)
        try:
            self._concat([p.path for p in parts], tmp, [p.index for p in parts], len(parts))
            with error_context(PHASE_MERGING, path=str(merged)):
                os.replace(str(tmp), str(merged))
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        logger.info(f" Merged {len(parts)} part(s) into {merged}")
        return merged

    def _concat(self, sources: Sequence[Path], dest: Path, indices: Sequence[int], n: int) -> None:
        with error_context(PHASE_MERGING):
            total = sum(s.stat().st_size for s in sources)
        done = 0
        self._emit(PHASE_MERGING, 0, total, 0, n, f"merging into {dest.name}")
        with error_context(PHASE_MERGING, path=str(dest)):
            out = open(dest, "wb")
        with out:
            for pos, (src, index) in enumerate(zip(sources, indices), start=1):
                self._check_cancel(PHASE_MERGING, index)
                with error_context(PHASE_MERGING, part_index=index, path=str(src)):
                    with open(src, "rb") as f:
                        shutil.copyfileobj(f, out, self.buffer_size)
                    done += src.stat().st_size
                self._emit(PHASE_MERGING, done, total, pos, n, src.name)

    # -------- extraction --------

    def _extract(self, base: str, merged: Path) -> RestoreResult:
        req = self.request
        self._emit(PHASE_EXTRACTING, 0, 0, message=f"extracting {merged.name}")

        def _on_entry(done: int, total: int) -> None:
            self._emit(PHASE_EXTRACTING, done, total)
            self._check_cancel(PHASE_EXTRACTING)

        try:
            with error_context(PHASE_EXTRACTING, path=str(merged)):
                tops = extract_all(merged, req.output_dir, req.password, on_entry=_on_entry)
        except (CodecFailure, IOFailure) as exc:
            logger.error(f" Extraction failed; kept {merged}")
            raise ExtractionFailed(
                f"extraction failed: {exc.message}",
                merged_file=str(merged),
                phase=PHASE_EXTRACTING,
                path=str(merged),
            ) from exc

        kept: Optional[Path] = merged
        if not req.keep_zip:
            with error_context(PHASE_EXTRACTING, path=str(merged)):
                merged.unlink()
            kept = None

        natural = req.output_dir / base
        extracted = tops[0] if len(tops) == 1 else natural
        if req.output_file is not None and req.output_file != extracted and extracted.exists():
            with error_context(PHASE_EXTRACTING, path=str(req.output_file)):
                replace_path(extracted, req.output_file)
            extracted = req.output_file
            tops = [extracted]

        output_files: List[Path] = []
        for top in tops:
            output_files.extend(list_files(top))
        logger.info(f" Extracted {len(output_files)} file(s) to {extracted}")
        return RestoreResult(merged_file=kept, extracted_dir=extracted, output_files=output_files)


def restore(
    request: RestoreRequest,
    *,
    reporter: Optional[ProgressReporter] = None,
    cancel: Optional[CancelToken] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> RestoreResult:
    return Restorer(request, reporter=reporter, cancel=cancel, buffer_size=buffer_size).run()


__all__ = [
    "Restorer",
    "restore",
    "discover",
    "discover_in_names",
    "discover_explicit",
    "scan_directory",
    "from_input_path",
    "check_contiguous",
]
