"""Zip reading and writing for parts and intermediate blobs.

All archives go through pyzipper so that a password always means WinZip
AES-256 encryption; without a password the output is a plain zip that any
unzip tool reads.
"""
from __future__ import annotations

import os
import shutil
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, List, Optional, Union

import pyzipper

from .constants import DEFAULT_BUFFER_SIZE, ZIP64_THRESHOLD, ZIP_SIGNATURES
from .errors import CodecFailure, IOFailure
from .pathutil import norm_path


PathLike = Union[str, Path]

METHOD_STORE = pyzipper.ZIP_STORED
METHOD_DEFLATE = pyzipper.ZIP_DEFLATED

# Everything pyzipper raises for bad passwords, truncation and corruption.
_CODEC_ERRORS = (
    pyzipper.BadZipFile,
    RuntimeError,
    NotImplementedError,
    EOFError,
    zlib.error,
)


def _password_bytes(password: Optional[str]) -> Optional[bytes]:
    if not password:
        return None
    return password.encode("utf-8")


def describe_codec_error(exc: BaseException, had_password: bool) -> str:
    msg = str(exc)
    lowered = msg.lower()
    if "password required" in lowered:
        return "archive is encrypted; a password is required"
    if "bad password" in lowered or "hmac" in lowered:
        return "decryption failed; check the password" if had_password else "archive is encrypted; a password is required"
    return msg or exc.__class__.__name__


def is_zip(path: PathLike) -> bool:
    with open(path, "rb") as f:
        sig = f.read(4)
    return len(sig) == 4 and sig in ZIP_SIGNATURES


def copy_exact(src: BinaryIO, dst: BinaryIO, length: int, buffer_size: int = DEFAULT_BUFFER_SIZE) -> int:
    """Copy exactly ``length`` bytes; a short source is an error."""
    remaining = length
    while remaining > 0:
        block = src.read(min(buffer_size, remaining))
        if not block:
            raise IOFailure(f"unexpected end of input with {remaining} bytes left")
        dst.write(block)
        remaining -= len(block)
    return length


class ZipCodec:
    """Writer settings for one kind of archive (method, level, password)."""

    def __init__(
        self,
        method: int = METHOD_DEFLATE,
        level: Optional[int] = None,
        password: Optional[str] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        if method not in (METHOD_STORE, METHOD_DEFLATE):
            raise CodecFailure(f"unsupported zip method: {method}")
        self.method = method
        # compression level only means something for deflate
        self.level = level if method == METHOD_DEFLATE else None
        self.password = password or None
        self.buffer_size = buffer_size

    @property
    def encrypted(self) -> bool:
        return self.password is not None

    @contextmanager
    def _writer(self, dest: PathLike) -> Iterator[pyzipper.AESZipFile]:
        kwargs = {"compression": self.method, "allowZip64": True}
        if self.level is not None:
            kwargs["compresslevel"] = self.level
        if self.encrypted:
            kwargs["encryption"] = pyzipper.WZ_AES
        try:
            with pyzipper.AESZipFile(str(dest), "w", **kwargs) as zf:
                if self.encrypted:
                    zf.setpassword(_password_bytes(self.password))
                yield zf
        except _CODEC_ERRORS as exc:
            raise CodecFailure(f"zip write failed: {describe_codec_error(exc, self.encrypted)}", path=str(dest)) from exc

    def write_file(self, dest: PathLike, src: PathLike, arcname: str) -> None:
        """Zip a single file under ``arcname``."""
        with self._writer(dest) as zf:
            zf.write(str(src), norm_path(arcname))

    def write_chunk(self, dest: PathLike, src: BinaryIO, length: int, entry_name: str) -> None:
        """Zip the next ``length`` bytes of ``src`` as a single entry."""
        with self._writer(dest) as zf:
            with zf.open(entry_name, "w", force_zip64=length > ZIP64_THRESHOLD) as out:
                copy_exact(src, out, length, self.buffer_size)

    def write_directory(
        self,
        dest: PathLike,
        root: PathLike,
        on_file: Optional[Callable[[str, int], None]] = None,
    ) -> int:
        """Zip a directory tree with entries rooted at the directory's own name.

        Directory entries end with ``/``; an empty tree still produces the
        root entry. ``on_file(arcname, size)`` runs after each stored file.
        Returns the number of file bytes archived.
        """
        root = Path(root)
        root_name = os.path.basename(os.path.abspath(root))
        written = 0
        with self._writer(dest) as zf:
            zf.write(str(root), root_name + "/")
            for dirpath, dirnames, filenames in os.walk(str(root)):
                dirnames.sort()
                # do not follow symlinked directories
                dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(dirpath, d))]
                rel_dir = os.path.relpath(dirpath, str(root))
                for d in dirnames:
                    arc = norm_path(os.path.join(root_name, rel_dir, d))
                    zf.write(os.path.join(dirpath, d), arc + "/")
                for fn in sorted(filenames):
                    full = os.path.join(dirpath, fn)
                    if os.path.islink(full) or not os.path.isfile(full):
                        continue
                    arc = norm_path(os.path.join(root_name, rel_dir, fn))
                    zf.write(full, arc)
                    size = os.path.getsize(full)
                    written += size
                    if on_file:
                        on_file(arc, size)
        return written


@contextmanager
def _reader(src: PathLike, password: Optional[str]) -> Iterator[pyzipper.AESZipFile]:
    try:
        with pyzipper.AESZipFile(str(src), "r") as zf:
            pwd = _password_bytes(password)
            if pwd:
                zf.setpassword(pwd)
            yield zf
    except _CODEC_ERRORS as exc:
        raise CodecFailure(describe_codec_error(exc, password is not None), path=str(src)) from exc


def read_single_entry(src: PathLike, dest: PathLike, password: Optional[str] = None, buffer_size: int = DEFAULT_BUFFER_SIZE) -> int:
    """Unzip the one file entry of a part into ``dest``; returns its size."""
    with _reader(src, password) as zf:
        entries = zf.infolist()
        if not entries:
            raise CodecFailure("part archive is empty", path=str(src))
        if len(entries) > 1:
            raise CodecFailure("part archive holds more than one entry", path=str(src))
        info = entries[0]
        if info.is_dir():
            raise CodecFailure("part archive holds a directory instead of a chunk", path=str(src))
        try:
            with zf.open(info) as fin, open(dest, "wb") as fout:
                shutil.copyfileobj(fin, fout, buffer_size)
        except OSError as exc:
            raise IOFailure(f"cannot write chunk: {exc}", path=str(dest)) from exc
        return info.file_size


def list_entries(src: PathLike, password: Optional[str] = None) -> List[str]:
    with _reader(src, password) as zf:
        return zf.namelist()


def extract_all(
    src: PathLike,
    target_dir: PathLike,
    password: Optional[str] = None,
    on_entry: Optional[Callable[[int, int], None]] = None,
) -> List[Path]:
    """Extract every entry below ``target_dir``; returns the top-level paths created.

    ``on_entry(done_bytes, total_bytes)`` runs after each entry. Member names are
    sanitised by the zip reader, so nothing lands outside ``target_dir``.
    """
    target = Path(target_dir)
    target.mkdir(parents=True, exist_ok=True)
    tops: List[Path] = []
    with _reader(src, password) as zf:
        entries = zf.infolist()
        total = sum(info.file_size for info in entries)
        done = 0
        for info in entries:
            zf.extract(info, str(target))
            segs = [q for q in info.filename.replace("\\", "/").split("/") if q not in ("", ".", "..")]
            top = segs[0] if segs else ""
            if top and (target / top) not in tops:
                tops.append(target / top)
            done += info.file_size
            if on_entry:
                on_entry(done, total)
    return tops


__all__ = [
    "METHOD_STORE",
    "METHOD_DEFLATE",
    "ZipCodec",
    "copy_exact",
    "describe_codec_error",
    "extract_all",
    "is_zip",
    "list_entries",
    "read_single_entry",
]
