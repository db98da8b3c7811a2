from __future__ import annotations

import sys
import time
import argparse
import json as _json
import queue
import concurrent.futures as _fut

from pathlib import Path
from typing import Any, Callable, List, Optional

from partkit.config import PartkitConfig
from partkit.errors import (
    Cancelled,
    ConfirmationRequired,
    HashMismatch,
    PartkitError,
)
from partkit.hashutil import verify_parts
from partkit.logger import set_verbosity
from partkit.manifest import create_manifest, expected_hashes_from_manifest, load_manifest, save_manifest
from partkit.models import (
    ByCount,
    BySize,
    DirSplitMode,
    ExplicitPartList,
    PackMode,
    PackRequest,
    RestoreRequest,
)
from partkit.packer import Packer
from partkit.progress import CancelToken, ProgressEvent, ProgressReporter
from partkit.restorer import Restorer, from_input_path


EXIT_OK = 0
EXIT_VERIFY_FAILED = 1
EXIT_ERROR = 2
EXIT_CONFIRM = 3
EXIT_CANCELLED = 130


def _render(ev: ProgressEvent) -> None:
    pct = ev.processed_bytes * 100.0 / ev.total_bytes if ev.total_bytes else 100.0
    part = f" [{ev.part_index}/{ev.part_total}]" if ev.part_total else ""
    print(f" {pct:6.2f}% {ev.phase}{part}: {ev.message}".rstrip(), flush=True)


def _run_with_progress(job: Callable[[ProgressReporter, CancelToken], Any], *, quiet: bool = False) -> Any:
    """Run ``job`` on a worker thread while rendering its progress here.

    Ctrl-C sets the cancel token; the worker stops at its next checkpoint and
    the resulting Cancelled propagates from here.
    """
    reporter = ProgressReporter()
    cancel = CancelToken()
    sub = reporter.subscribe()

    def _job() -> Any:
        try:
            return job(reporter, cancel)
        finally:
            reporter.close()

    with _fut.ThreadPoolExecutor(max_workers=1) as ex:
        future = ex.submit(_job)
        while True:
            try:
                ev = sub.get(timeout=0.2)
                if ev is None:
                    break
                if not quiet:
                    _render(ev)
            except queue.Empty:
                continue
            except KeyboardInterrupt:
                print(" Cancelling...", file=sys.stderr, flush=True)
                cancel.cancel()
        return future.result()


# -------- pack --------

def cmd_pack(
    input_path: str,
    outdir: str,
    *,
    size: Optional[int] = None,
    unit: str = "MB",
    count: Optional[int] = None,
    mode: Optional[str] = None,
    dir_mode: Optional[str] = None,
    password: Optional[str] = None,
    level: Optional[int] = None,
    overwrite: bool = False,
    strict_size: bool = False,
    manifest: Optional[str] = None,
    as_json: bool = False,
    quiet: bool = False,
    config: Optional[PartkitConfig] = None,
) -> bool:
    """Split a file or directory into part archives.

    Args:
        input_path: File or directory to pack.
        outdir: Directory receiving the ``{base}.parts`` directory.
        size / unit: Target part size (mutually exclusive with count).
        count: Number of parts.
        mode: Pack mode; defaults to the configured one.
        dir_mode: Directory split mode; defaults to the configured one.
        password: Optional password; parts are AES-256 encrypted when set.
        level: Deflate level 1..9; defaults to the configured one.
        overwrite: Replace a non-empty parts directory.
        strict_size: Keep every part file at or below the size target.
        manifest: When set, write a JSON manifest to this path.
        as_json: Print the result as JSON instead of a summary.
    """
    config = config or PartkitConfig()
    split = ByCount(int(count)) if count is not None else BySize.from_unit(int(size), unit)
    request = PackRequest(
        input_path=Path(input_path),
        output_dir=Path(outdir),
        split=split,
        mode=mode or config.pack_mode,
        dir_mode=dir_mode or config.dir_split_mode,
        password=password,
        compression_level=level if level is not None else config.compression_level,
        overwrite=overwrite,
        strict_size=strict_size,
    )

    t0 = time.time()
    result = _run_with_progress(
        lambda reporter, cancel: Packer(
            request,
            reporter=reporter,
            cancel=cancel,
            buffer_size=config.buffer_size,
            scratch_prefix=config.scratch_prefix,
        ).run(),
        quiet=quiet or as_json,
    )
    dt = max(0.000001, time.time() - t0)

    if manifest:
        # part paths are recorded relative to the manifest itself
        save_manifest(create_manifest(result, Path(manifest).resolve().parent), manifest)

    if as_json:
        print(_json.dumps(result.to_dict()))
        return True
    if not quiet:
        for p in result.parts:
            print(f"  {p.path}  {p.sha256 or ''}".rstrip())
    print(f"Done: {result.part_count} part(s) in {result.parts_dir} ({request.mode.value}) in {dt:.1f}s")
    if manifest:
        print(f"Manifest: {manifest}")
    return True


# -------- restore --------

def cmd_restore(
    inputs: List[str],
    outdir: str,
    *,
    mode: Optional[str] = None,
    password: Optional[str] = None,
    extract: bool = False,
    manifest: Optional[str] = None,
    keep_scratch: bool = False,
    keep_zip: bool = False,
    output_file: Optional[str] = None,
    lenient: bool = False,
    as_json: bool = False,
    quiet: bool = False,
    config: Optional[PartkitConfig] = None,
) -> bool:
    """Reassemble parts into the original file (and optionally extract it).

    A single input is a part file or a directory of parts; several inputs are
    taken as the explicit part list. With a manifest, every part is verified
    against its recorded SHA-256 first and the manifest's pack mode is used
    unless --mode is given.
    """
    config = config or PartkitConfig()
    expected = None
    manifest_mode = None
    if manifest:
        doc = load_manifest(manifest)
        expected = expected_hashes_from_manifest(doc)
        manifest_mode = doc.get("packMode")
    pack_mode = PackMode.parse(mode or manifest_mode or config.pack_mode)

    if len(inputs) == 1:
        source = from_input_path(inputs[0], pack_mode)
    else:
        source = ExplicitPartList(paths=[Path(p) for p in inputs])

    request = RestoreRequest(
        source=source,
        mode=pack_mode,
        output_dir=Path(outdir),
        password=password,
        auto_extract=extract,
        expected_hashes=expected,
        keep_scratch=keep_scratch,
        keep_zip=keep_zip,
        output_file=Path(output_file) if output_file else None,
        check_contiguity=not lenient,
    )

    t0 = time.time()
    result = _run_with_progress(
        lambda reporter, cancel: Restorer(
            request,
            reporter=reporter,
            cancel=cancel,
            buffer_size=config.buffer_size,
            scratch_prefix=config.scratch_prefix,
        ).run(),
        quiet=quiet or as_json,
    )
    dt = max(0.000001, time.time() - t0)

    if as_json:
        print(_json.dumps(result.to_dict()))
        return True
    if result.extracted_dir is not None:
        print(f"Done: extracted {len(result.output_files)} file(s) to {result.extracted_dir} in {dt:.1f}s")
        if result.merged_file is not None:
            print(f"Kept: {result.merged_file}")
    else:
        print(f"Done: restored {result.merged_file} in {dt:.1f}s")
    return True


# -------- verify --------

def cmd_verify(
    parts: List[str],
    *,
    sha256: Optional[List[str]] = None,
    manifest: Optional[str] = None,
    as_json: bool = False,
) -> bool:
    """Check part files against expected SHA-256 digests.

    Prints:
        "OK <path>" or "FAIL <path>" per part, then a summary.
    """
    if manifest:
        doc = load_manifest(manifest)
        if doc.get("packMode") == PackMode.ZIP_THEN_SPLIT.value:
            raise PartkitError("zip-then-split parts carry no per-part hashes; nothing to verify")
        root = Path(manifest).resolve().parent
        paths = [root / p["path"] for p in doc["parts"]]
        expected = [p.get("sha256") for p in doc["parts"]]
    else:
        if not parts:
            raise PartkitError("no parts given; pass part paths with --sha256 or use --manifest")
        if not sha256 or len(sha256) != len(parts):
            raise PartkitError("--sha256 must be given once per part, in the same order")
        paths = [Path(p) for p in parts]
        expected = list(sha256)

    failed = {str(p) for p in verify_parts(paths, expected)}
    if as_json:
        print(_json.dumps({"ok": not failed, "failed": sorted(failed), "checked": len(paths)}))
    else:
        for p in paths:
            print(f"{'FAIL' if str(p) in failed else 'OK':4s} {p}")
        print(f"Summary: ok={len(paths) - len(failed)} failed={len(failed)}")
    return not failed


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="partkit",
        description="Split files and directories into zip parts and restore them",
        epilog="With a password, parts are zip archives encrypted with WinZip AES-256.",
    )
    ap.add_argument("--config", help="Path to a partkit.config.json file")
    ap.add_argument("--verbose", "-v", action="store_true", help="Show per-part detail")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # pack
    ap_pack = sub.add_parser("pack", help="Split a file or directory into parts")
    ap_pack.add_argument("input", help="Input file or directory")
    ap_pack.add_argument("--outdir", required=True, help="Output directory (parts go to <outdir>/<name>.parts)")
    split = ap_pack.add_mutually_exclusive_group(required=True)
    split.add_argument("--size", type=int, help="Target part size, in --unit")
    split.add_argument("--count", type=int, help="Number of parts")
    ap_pack.add_argument("--unit", choices=["B", "KB", "MB", "GB"], default="MB", help="Unit for --size (default MB)")
    ap_pack.add_argument("--mode", choices=[m.value for m in PackMode], help="Pack mode (default from config)")
    ap_pack.add_argument("--dir-mode", choices=[m.value for m in DirSplitMode], help="Directory split mode (default from config)")
    ap_pack.add_argument("--password", help="Encrypt parts with this password")
    ap_pack.add_argument("--level", type=int, choices=range(1, 10), metavar="1..9", help="Deflate level (default from config)")
    ap_pack.add_argument("--overwrite", action="store_true", help="Replace a non-empty parts directory")
    ap_pack.add_argument("--strict-size", action="store_true", help="Keep every part file within --size")
    ap_pack.add_argument("--manifest", help="Write a JSON manifest to this path")
    ap_pack.add_argument("--json", action="store_true", help="Emit the result as JSON")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    # restore
    ap_restore = sub.add_parser("restore", help="Reassemble parts")
    ap_restore.add_argument("inputs", nargs="+", help="A part file, a directory of parts, or every part path")
    ap_restore.add_argument("--outdir", required=True, help="Output directory")
    ap_restore.add_argument("--mode", choices=[m.value for m in PackMode], help="Pack mode the parts were made with")
    ap_restore.add_argument("--password", help="Part password")
    ap_restore.add_argument("--extract", action="store_true", help="Unzip the merged archive")
    ap_restore.add_argument("--manifest", help="Verify parts against this manifest first")
    ap_restore.add_argument("--keep-scratch", action="store_true", help="Keep the unzipped chunks")
    ap_restore.add_argument("--keep-zip", action="store_true", help="Keep the merged zip after extraction")
    ap_restore.add_argument("--output-file", help="Move the restored file or extracted tree to this path")
    ap_restore.add_argument("--lenient", action="store_true", help="Allow gaps in part numbering")
    ap_restore.add_argument("--json", action="store_true", help="Emit the result as JSON")
    ap_restore.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    # verify
    ap_verify = sub.add_parser("verify", help="Check parts against SHA-256 digests")
    ap_verify.add_argument("parts", nargs="*", help="Part paths")
    ap_verify.add_argument("--sha256", nargs="+", help="Expected digests, one per part")
    ap_verify.add_argument("--manifest", help="Verify every part listed in this manifest")
    ap_verify.add_argument("--json", action="store_true", help="Emit the result as JSON")

    args = ap.parse_args(argv)
    set_verbosity(verbose=args.verbose, quiet=getattr(args, "json", False) or getattr(args, "quiet", False))
    try:
        config = PartkitConfig(args.config)
        if args.cmd == "pack":
            cmd_pack(
                args.input,
                args.outdir,
                size=args.size,
                unit=args.unit,
                count=args.count,
                mode=args.mode,
                dir_mode=args.dir_mode,
                password=args.password,
                level=args.level,
                overwrite=args.overwrite,
                strict_size=args.strict_size,
                manifest=args.manifest,
                as_json=args.json,
                quiet=args.quiet,
                config=config,
            )
        elif args.cmd == "restore":
            cmd_restore(
                args.inputs,
                args.outdir,
                mode=args.mode,
                password=args.password,
                extract=args.extract,
                manifest=args.manifest,
                keep_scratch=args.keep_scratch,
                keep_zip=args.keep_zip,
                output_file=args.output_file,
                lenient=args.lenient,
                as_json=args.json,
                quiet=args.quiet,
                config=config,
            )
        elif args.cmd == "verify":
            ok = cmd_verify(args.parts, sha256=args.sha256, manifest=args.manifest, as_json=args.json)
            sys.exit(EXIT_OK if ok else EXIT_VERIFY_FAILED)
        else:
            raise RuntimeError("Unknown command")
    except ConfirmationRequired as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Hint: re-run with --overwrite to replace the existing parts.", file=sys.stderr)
        sys.exit(EXIT_CONFIRM)
    except Cancelled:
        print("Cancelled.", file=sys.stderr)
        sys.exit(EXIT_CANCELLED)
    except HashMismatch as e:
        print(f"Error: {e}", file=sys.stderr)
        for path in e.failed:
            print(f"  FAIL {path}", file=sys.stderr)
        sys.exit(EXIT_VERIFY_FAILED)
    except (PartkitError, OSError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
