from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from partkit.config import PartkitConfig
from partkit.constants import DEFAULT_BUFFER_SIZE, DEFAULT_LEVEL


class ConfigTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_defaults_without_file(self):
        def scenario(tmp_path: Path):
            cfg = PartkitConfig(str(tmp_path / "missing.json"))
            self.assertEqual(cfg.pack_mode, "split-then-zip")
            self.assertEqual(cfg.dir_split_mode, "compress-split-store")
            self.assertEqual(cfg.compression_level, DEFAULT_LEVEL)
            self.assertEqual(cfg.buffer_size, DEFAULT_BUFFER_SIZE)

        self.run_with_tmpdir(scenario)

    def test_file_is_merged_over_defaults(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "partkit.config.json"
            path.write_text(json.dumps({"pack": {"mode": "zip-then-split", "compression_level": 42}, "io": {"buffer_size_kb": 64}}))
            cfg = PartkitConfig(str(path))
            self.assertEqual(cfg.pack_mode, "zip-then-split")
            self.assertEqual(cfg.dir_split_mode, "compress-split-store")
            self.assertEqual(cfg.compression_level, 9)
            self.assertEqual(cfg.buffer_size, 64 * 1024)

        self.run_with_tmpdir(scenario)

    def test_invalid_json_falls_back(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "broken.json"
            path.write_text("{oops")
            with self.assertLogs("partkit", level="ERROR"):
                cfg = PartkitConfig(str(path))
            self.assertEqual(cfg.pack_mode, "split-then-zip")

        self.run_with_tmpdir(scenario)

    def test_set_and_save(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "cfg.json"
            cfg = PartkitConfig(str(path))
            cfg.set("pack", "dir_split_mode", "store-split-compress")
            cfg.save()
            self.assertEqual(PartkitConfig(str(path)).dir_split_mode, "store-split-compress")

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()
