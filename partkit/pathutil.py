from __future__ import annotations

import os
from pathlib import Path
from typing import List, Union


def norm_path(p: str) -> str:
    """Normalize an archive entry name to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def list_files(root: Union[str, Path]) -> List[Path]:
    """Regular files under ``root`` in sorted walk order; a file yields itself."""
    root = Path(root)
    if root.is_file():
        return [root]
    out: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(str(root)):
        dirnames.sort()
        for fn in sorted(filenames):
            out.append(Path(dirpath) / fn)
    return out


def replace_path(src: Union[str, Path], dst: Union[str, Path]) -> None:
    """Move ``src`` onto ``dst``, replacing a file or directory already there."""
    dst = Path(dst)
    if dst.is_dir() and not dst.is_symlink():
        import shutil

        shutil.rmtree(dst)
    elif dst.exists() and Path(src).is_dir():
        dst.unlink()
    os.replace(str(src), str(dst))
