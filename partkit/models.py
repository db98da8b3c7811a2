from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .constants import DEFAULT_LEVEL, MAX_LEVEL, MIN_LEVEL, MIN_RAW_BYTES, UNIT_BYTES
from .errors import InvalidSpec, IOFailure


class PackMode(enum.Enum):
    SPLIT_THEN_ZIP = "split-then-zip"
    ZIP_THEN_SPLIT = "zip-then-split"

    @classmethod
    def parse(cls, value: Union[str, "PackMode"]) -> "PackMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidSpec(f"unknown pack mode: {value!r}") from None


class DirSplitMode(enum.Enum):
    COMPRESS_SPLIT_STORE = "compress-split-store"
    STORE_SPLIT_COMPRESS = "store-split-compress"

    @classmethod
    def parse(cls, value: Union[str, "DirSplitMode", None]) -> "DirSplitMode":
        if value is None or value == "":
            return cls.COMPRESS_SPLIT_STORE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidSpec(f"unknown directory split mode: {value!r}") from None


@dataclass(frozen=True)
class BySize:
    bytes: int

    @classmethod
    def from_unit(cls, value: int, unit: str = "B") -> "BySize":
        """Build a size target from a value and a unit (B, KB, MB, GB).

        Raw byte targets must be at least 1024 bytes; other units at least 1.
        """
        key = unit.strip().upper()
        if key not in UNIT_BYTES:
            raise InvalidSpec(f"unknown size unit: {unit!r}")
        value = int(value)
        if value < 1:
            raise InvalidSpec("part size must be at least 1")
        if key == "B" and value < MIN_RAW_BYTES:
            raise InvalidSpec(f"part size in bytes must be at least {MIN_RAW_BYTES}")
        return cls(value * UNIT_BYTES[key])


@dataclass(frozen=True)
class ByCount:
    n: int


SplitSpec = Union[BySize, ByCount]


@dataclass(frozen=True)
class InputItem:
    path: Path
    is_directory: bool
    size_bytes: int

    @classmethod
    def resolve(cls, path: Union[str, Path]) -> "InputItem":
        p = Path(path)
        try:
            if p.is_dir():
                return cls(p, True, directory_size(p))
            if p.is_file():
                return cls(p, False, p.stat().st_size)
        except OSError as exc:
            raise IOFailure(f"cannot read input: {exc}", path=str(p)) from exc
        raise IOFailure("input does not exist or is not a regular file/directory", path=str(p))

    @property
    def base_name(self) -> str:
        name = os.path.basename(os.path.abspath(self.path))
        if not name:
            raise InvalidSpec("cannot derive a base name from input path", path=str(self.path))
        return name


def directory_size(root: Path) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for fn in filenames:
            full = os.path.join(dirpath, fn)
            if os.path.isfile(full) and not os.path.islink(full):
                total += os.path.getsize(full)
    return total


@dataclass(frozen=True)
class PartDescriptor:
    index: int
    label: str
    path: Path
    sha256: Optional[str] = None


@dataclass
class PackRequest:
    input_path: Path
    output_dir: Path
    split: SplitSpec
    mode: PackMode = PackMode.SPLIT_THEN_ZIP
    dir_mode: DirSplitMode = DirSplitMode.COMPRESS_SPLIT_STORE
    password: Optional[str] = None
    compression_level: int = DEFAULT_LEVEL
    overwrite: bool = False
    strict_size: bool = False

    def __post_init__(self):
        self.input_path = Path(self.input_path)
        self.output_dir = Path(self.output_dir)
        self.mode = PackMode.parse(self.mode)
        self.dir_mode = DirSplitMode.parse(self.dir_mode)
        if not self.password:
            self.password = None
        if not (MIN_LEVEL <= int(self.compression_level) <= MAX_LEVEL):
            raise InvalidSpec(f"compression level must be in [{MIN_LEVEL}, {MAX_LEVEL}]")
        self.compression_level = int(self.compression_level)


@dataclass
class PackResult:
    part_count: int
    parts: List[PartDescriptor]
    is_directory_input: bool
    base_name: str
    mode: PackMode
    dir_mode: DirSplitMode
    parts_dir: Path

    @property
    def ordered_part_paths(self) -> List[Path]:
        return [p.path for p in self.parts]

    @property
    def part_hashes(self) -> List[Optional[str]]:
        return [p.sha256 for p in self.parts]

    def to_dict(self) -> Dict:
        return {
            "parts": self.part_count,
            "outputFiles": [str(p.path) for p in self.parts],
            "isDir": self.is_directory_input,
            "baseName": self.base_name,
            "partSha256s": [
                {"path": str(p.path), "sha256": p.sha256} for p in self.parts if p.sha256 is not None
            ],
        }


@dataclass(frozen=True)
class ExplicitPartList:
    paths: Sequence[Union[str, Path]]


@dataclass(frozen=True)
class DirectoryScan:
    directory: Union[str, Path]
    base: Optional[str] = None


PartSource = Union[ExplicitPartList, DirectoryScan]


@dataclass
class RestoreRequest:
    source: PartSource
    mode: PackMode
    output_dir: Path
    password: Optional[str] = None
    auto_extract: bool = False
    # Ordered list aligned with the discovered parts, or part file name -> sha256.
    expected_hashes: Optional[Union[Sequence[str], Dict[str, str]]] = None
    keep_scratch: bool = False
    keep_zip: bool = False
    output_file: Optional[Path] = None
    check_contiguity: bool = True

    def __post_init__(self):
        self.mode = PackMode.parse(self.mode)
        self.output_dir = Path(self.output_dir)
        if self.output_file is not None:
            self.output_file = Path(self.output_file)
        if not self.password:
            self.password = None


@dataclass
class RestoreResult:
    merged_file: Optional[Path] = None
    extracted_dir: Optional[Path] = None
    output_files: List[Path] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "mergedFile": str(self.merged_file) if self.merged_file is not None else None,
            "extractedDir": str(self.extracted_dir) if self.extracted_dir is not None else None,
            "outputFiles": [str(p) for p in self.output_files],
        }
