from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from .codec import METHOD_DEFLATE, METHOD_STORE, ZipCodec, copy_exact
from .constants import (
    DEFAULT_BUFFER_SIZE,
    PHASE_HASHING,
    PHASE_SPLITTING,
    PHASE_ZIPPING,
    SCRATCH_PREFIX,
)
from .errors import ConfirmationRequired, InvalidSpec, IOFailure, error_context
from .hashutil import sha256_file
from .logger import logger
from .models import (
    BySize,
    DirSplitMode,
    InputItem,
    PackMode,
    PackRequest,
    PackResult,
    PartDescriptor,
    SplitSpec,
)
from .naming import blob_name, chunk_entry_name, format_label, part_name, parts_dir_name
from .planner import Chunk, plan, stored_payload_target
from .progress import CancelToken, ProgressReporter


def prepare_parts_dir(parts_dir: Path, overwrite: bool) -> None:
    """Create the parts directory, refusing to mix with leftovers unless authorised."""
    if parts_dir.exists():
        if not parts_dir.is_dir():
            raise IOFailure("parts output path exists and is not a directory", path=str(parts_dir))
        if any(parts_dir.iterdir()):
            if not overwrite:
                raise ConfirmationRequired(
                    "parts directory already exists and is not empty; confirm overwrite",
                    path=str(parts_dir),
                )
            logger.info(f" Removing previous parts in {parts_dir}")
            shutil.rmtree(parts_dir)
    parts_dir.mkdir(parents=True, exist_ok=True)


def _is_within(child: Path, parent: Path) -> bool:
    child = Path(os.path.abspath(child))
    parent = Path(os.path.abspath(parent))
    return child == parent or parent in child.parents


class Packer:
    """Splits one input into part archives according to a PackRequest.

    Dispatch by (input kind, pack mode, directory split mode):

    - file, split-then-zip: chunk the file, deflate each chunk into its own part
    - file, zip-then-split: deflate the file into one blob, slice the blob raw
    - dir, split-then-zip, compress-split-store: deflate the tree, chunk the
      blob, wrap each chunk with the store method
    - dir, split-then-zip, store-split-compress: store the tree, chunk the
      blob, deflate each chunk
    - dir, zip-then-split: deflate the tree into one blob, slice it raw
    """

    def __init__(
        self,
        request: PackRequest,
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

    # -------- progress / cancellation --------

    def _emit(self, phase: str, processed: int, total: int, part_index: int = 0, part_total: int = 0, message: str = "") -> None:
        if self.reporter is not None:
            self.reporter.emit(phase, processed, total, part_index, part_total, message)

    def _check_cancel(self, phase: str, part_index: Optional[int] = None) -> None:
        if self.cancel is not None:
            self.cancel.check(phase=phase, part_index=part_index)

    # -------- entry point --------

    def run(self) -> PackResult:
        req = self.request
        if self.reporter is not None:
            self.reporter.begin()
        with error_context(PHASE_ZIPPING, path=str(req.input_path)):
            item = InputItem.resolve(req.input_path)
        base = item.base_name
        self._validate(item)

        with error_context(PHASE_ZIPPING, path=str(req.output_dir)):
            req.output_dir.mkdir(parents=True, exist_ok=True)
            parts_dir = req.output_dir / parts_dir_name(base)
            prepare_parts_dir(parts_dir, req.overwrite)
            scratch = Path(tempfile.mkdtemp(prefix=self.scratch_prefix, dir=str(req.output_dir)))

        logger.info(f" Packing {item.path} ({'directory' if item.is_directory else 'file'}, {item.size_bytes} bytes) as {req.mode.value}")
        try:
            if req.mode is PackMode.SPLIT_THEN_ZIP:
                parts = self._split_then_zip(item, base, parts_dir, scratch)
                parts = self._hash_parts(parts)
            elif req.mode is PackMode.ZIP_THEN_SPLIT:
                parts = self._zip_then_split(item, base, parts_dir, scratch)
            else:
                raise InvalidSpec(f"unsupported pack mode: {req.mode!r}")
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        logger.info(f" Wrote {len(parts)} part(s) to {parts_dir}")
        return PackResult(
            part_count=len(parts),
            parts=parts,
            is_directory_input=item.is_directory,
            base_name=base,
            mode=req.mode,
            dir_mode=req.dir_mode,
            parts_dir=parts_dir,
        )

    def _validate(self, item: InputItem) -> None:
        req = self.request
        if item.is_directory and _is_within(req.output_dir, item.path):
            raise InvalidSpec("output directory must not be inside the input directory", path=str(req.output_dir))
        if req.strict_size and req.mode is PackMode.SPLIT_THEN_ZIP:
            if not isinstance(req.split, BySize):
                raise InvalidSpec("strict part sizing requires a size-based split")
            if item.is_directory and req.dir_mode is DirSplitMode.STORE_SPLIT_COMPRESS:
                raise InvalidSpec("strict part sizing for directories requires compress-split-store")

    # -------- blobs --------

    def _zip_directory(self, codec: ZipCodec, item: InputItem, dest: Path) -> None:
        total = item.size_bytes
        done = 0
        self._emit(PHASE_ZIPPING, 0, total, message=f"archiving {item.path.name}")

        def _on_file(arcname: str, size: int) -> None:
            nonlocal done
            done += size
            self._emit(PHASE_ZIPPING, done, total, message=arcname)
            self._check_cancel(PHASE_ZIPPING)

        with error_context(PHASE_ZIPPING, path=str(dest)):
            codec.write_directory(dest, item.path, on_file=_on_file)
        logger.debug(f"   directory blob {dest.name}: {dest.stat().st_size} bytes")

    def _zip_file(self, codec: ZipCodec, item: InputItem, base: str, dest: Path) -> None:
        total = item.size_bytes
        self._emit(PHASE_ZIPPING, 0, total, message=f"archiving {base}")
        with error_context(PHASE_ZIPPING, path=str(dest)):
            codec.write_file(dest, item.path, base)
        self._emit(PHASE_ZIPPING, total, total, message=f"archived {base}")

    # -------- split-then-zip --------

    def _split_then_zip(self, item: InputItem, base: str, parts_dir: Path, scratch: Path) -> List[PartDescriptor]:
        req = self.request
        level = req.compression_level
        if item.is_directory:
            blob = scratch / blob_name(base)
            if req.dir_mode is DirSplitMode.STORE_SPLIT_COMPRESS:
                self._zip_directory(ZipCodec(METHOD_STORE, buffer_size=self.buffer_size), item, blob)
                part_codec = ZipCodec(METHOD_DEFLATE, level, req.password, self.buffer_size)
            else:
                self._zip_directory(ZipCodec(METHOD_DEFLATE, level, buffer_size=self.buffer_size), item, blob)
                # chunks of a deflated blob are stored as-is, whatever the level
                part_codec = ZipCodec(METHOD_STORE, password=req.password, buffer_size=self.buffer_size)
            source = blob
        else:
            source = item.path
            part_codec = ZipCodec(METHOD_DEFLATE, level, req.password, self.buffer_size)

        with error_context(PHASE_SPLITTING, path=str(source)):
            total = source.stat().st_size

        spec: SplitSpec = req.split
        if req.strict_size:
            payload = stored_payload_target(total, req.split.bytes, base, part_codec.encrypted)
            spec = BySize(payload)
            part_codec = ZipCodec(METHOD_STORE, password=req.password, buffer_size=self.buffer_size)
            logger.debug(f"   strict sizing: {payload} payload bytes per part")

        chunks = plan(total, spec)
        n = len(chunks)
        self._emit(PHASE_SPLITTING, 0, total, 0, n, f"{n} part(s) planned")

        parts: List[PartDescriptor] = []
        with error_context(PHASE_SPLITTING, path=str(source)):
            src = open(source, "rb")
        with src:
            for chunk in chunks:
                self._check_cancel(PHASE_SPLITTING, chunk.index)
                parts.append(self._write_zip_part(src, chunk, n, total, base, parts_dir, part_codec))
        return parts

    def _write_zip_part(self, src, chunk: Chunk, n: int, total: int, base: str, parts_dir: Path, codec: ZipCodec) -> PartDescriptor:
        label = format_label(chunk.index)
        dest = parts_dir / part_name(base, chunk.index, PackMode.SPLIT_THEN_ZIP)
        with error_context(PHASE_SPLITTING, part_index=chunk.index, path=str(dest)):
            src.seek(chunk.offset)
            codec.write_chunk(dest, src, chunk.length, chunk_entry_name(base, label))
        logger.debug(f"   part {label}: {chunk.length} bytes -> {dest.name}")
        self._emit(PHASE_SPLITTING, chunk.end, total, chunk.index, n, dest.name)
        return PartDescriptor(index=chunk.index, label=label, path=dest)

    def _hash_parts(self, parts: List[PartDescriptor]) -> List[PartDescriptor]:
        n = len(parts)
        with error_context(PHASE_HASHING):
            total = sum(p.path.stat().st_size for p in parts)
        done = 0
        self._emit(PHASE_HASHING, 0, total, 0, n, "hashing parts")
        hashed: List[PartDescriptor] = []
        for p in parts:
            self._check_cancel(PHASE_HASHING, p.index)
            with error_context(PHASE_HASHING, part_index=p.index, path=str(p.path)):
                digest = sha256_file(p.path)
                done += p.path.stat().st_size
            hashed.append(PartDescriptor(index=p.index, label=p.label, path=p.path, sha256=digest))
            self._emit(PHASE_HASHING, done, total, p.index, n, p.path.name)
        return hashed

    # -------- zip-then-split --------

    def _zip_then_split(self, item: InputItem, base: str, parts_dir: Path, scratch: Path) -> List[PartDescriptor]:
        req = self.request
        blob = scratch / blob_name(base)
        codec = ZipCodec(METHOD_DEFLATE, req.compression_level, req.password, self.buffer_size)
        if item.is_directory:
            self._zip_directory(codec, item, blob)
        else:
            self._zip_file(codec, item, base, blob)

        with error_context(PHASE_SPLITTING, path=str(blob)):
            total = blob.stat().st_size
        chunks = plan(total, req.split)
        n = len(chunks)
        self._emit(PHASE_SPLITTING, 0, total, 0, n, f"{n} part(s) planned")

        parts: List[PartDescriptor] = []
        with error_context(PHASE_SPLITTING, path=str(blob)):
            src = open(blob, "rb")
        with src:
            for chunk in chunks:
                self._check_cancel(PHASE_SPLITTING, chunk.index)
                label = format_label(chunk.index)
                dest = parts_dir / part_name(base, chunk.index, PackMode.ZIP_THEN_SPLIT)
                with error_context(PHASE_SPLITTING, part_index=chunk.index, path=str(dest)):
                    with open(dest, "wb") as out:
                        copy_exact(src, out, chunk.length, self.buffer_size)
                logger.debug(f"   part {label}: {chunk.length} bytes -> {dest.name}")
                self._emit(PHASE_SPLITTING, chunk.end, total, chunk.index, n, dest.name)
                parts.append(PartDescriptor(index=chunk.index, label=label, path=dest))
        return parts


def pack(
    request: PackRequest,
    *,
    reporter: Optional[ProgressReporter] = None,
    cancel: Optional[CancelToken] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> PackResult:
    return Packer(request, reporter=reporter, cancel=cancel, buffer_size=buffer_size).run()


__all__ = ["Packer", "pack", "prepare_parts_dir"]
