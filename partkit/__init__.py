"""
partkit — split files and directories into numbered zip parts and put them back together.

Features:

- Two pack modes: split-then-zip (every part is a standalone zip holding one
  chunk) and zip-then-split (one zip blob cut into raw slices).
- Directories are archived first, either compressed then split into stored
  parts or stored then split into compressed parts.
- Optional WinZip AES-256 encryption of every part.
- SHA-256 per part, checked before reassembly, plus an optional JSON manifest.
- Ordered progress events and cooperative cancellation for UI front ends.
"""

__version__ = "0.1"

__all__ = [
    "models",
    "planner",
    "naming",
    "packer",
    "restorer",
    "progress",
    "manifest",
]

# Programmatic API: partkit.packer.pack / partkit.restorer.restore take the
# request dataclasses from partkit.models; the CLI lives in partkit.cli.
