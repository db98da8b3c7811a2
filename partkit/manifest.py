"""
Pack manifest.

A JSON description of one pack run holding what an external consumer needs to
re-verify and re-merge the parts without partkit: the ordered part paths
(relative to the output directory), base name, pack mode and per-part SHA-256.
"""
from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .constants import MANIFEST_VERSION
from .errors import InvalidSpec, IOFailure
from .models import PackMode, PackResult


def create_manifest(result: PackResult, output_dir: Union[str, Path]) -> Dict:
    output_dir = Path(output_dir)
    parts = []
    for p in result.parts:
        try:
            rel = os.path.relpath(p.path, output_dir)
        except ValueError:
            rel = str(p.path)
        parts.append({"index": p.index, "path": Path(rel).as_posix(), "sha256": p.sha256})
    return {
        "version": MANIFEST_VERSION,
        "created_at": time.time(),
        "baseName": result.base_name,
        "packMode": result.mode.value,
        "dirSplitMode": result.dir_mode.value,
        "isDir": result.is_directory_input,
        "partCount": result.part_count,
        "parts": parts,
    }


def save_manifest(manifest: Dict, path: Union[str, Path]) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, ensure_ascii=False, indent=2)
    except OSError as exc:
        raise IOFailure(f"cannot write manifest: {exc}", path=str(path)) from exc


def load_manifest(path: Union[str, Path]) -> Dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            manifest = json.load(f)
    except OSError as exc:
        raise IOFailure(f"cannot read manifest: {exc}", path=str(path)) from exc
    except json.JSONDecodeError as exc:
        raise InvalidSpec(f"manifest is not valid JSON: {exc}", path=str(path)) from exc
    ok, err = validate_manifest(manifest)
    if not ok:
        raise InvalidSpec(f"invalid manifest: {err}", path=str(path))
    return manifest


def validate_manifest(manifest: Dict) -> Tuple[bool, Optional[str]]:
    """Basic shape check; returns (is_valid, error_message)."""
    if not isinstance(manifest, dict):
        return False, "manifest must be a JSON object"
    for key in ("version", "baseName", "packMode", "parts"):
        if key not in manifest:
            return False, f"Missing required key: {key}"
    if not isinstance(manifest["parts"], list):
        return False, "parts must be a list"
    for i, part in enumerate(manifest["parts"]):
        if not isinstance(part, dict) or "path" not in part:
            return False, f"part #{i + 1} has no path"
    return True, None


def expected_hashes_from_manifest(manifest: Dict) -> Optional[Dict[str, str]]:
    """Map part file name -> sha256 for the parts that carry a digest.

    Returns None when there is nothing to verify: zip-then-split parts carry
    no per-part hashes.
    """
    if manifest.get("packMode") == PackMode.ZIP_THEN_SPLIT.value:
        return None
    out: Dict[str, str] = {}
    for part in manifest.get("parts", []):
        sha = part.get("sha256")
        if sha:
            out[Path(part["path"]).name] = str(sha).lower()
    return out or None


__all__ = [
    "create_manifest",
    "save_manifest",
    "load_manifest",
    "validate_manifest",
    "expected_hashes_from_manifest",
]
