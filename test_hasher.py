from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from partkit.hashutil import sha256_file, verify_parts


ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class HasherTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_known_digests(self):
        def scenario(tmp_path: Path):
            (tmp_path / "abc").write_bytes(b"abc")
            (tmp_path / "empty").write_bytes(b"")
            self.assertEqual(sha256_file(tmp_path / "abc"), ABC_SHA256)
            self.assertEqual(sha256_file(tmp_path / "empty"), EMPTY_SHA256)

        self.run_with_tmpdir(scenario)

    def test_large_file_spans_blocks(self):
        def scenario(tmp_path: Path):
            import hashlib

            data = bytes(range(256)) * 1000
            p = tmp_path / "big"
            p.write_bytes(data)
            self.assertEqual(sha256_file(p), hashlib.sha256(data).hexdigest())

        self.run_with_tmpdir(scenario)

    def test_verify_reports_only_failures(self):
        def scenario(tmp_path: Path):
            a = tmp_path / "a"
            b = tmp_path / "b"
            a.write_bytes(b"abc")
            b.write_bytes(b"")
            self.assertEqual(verify_parts([a, b], [ABC_SHA256, EMPTY_SHA256]), [])
            self.assertEqual(verify_parts([a, b], [ABC_SHA256.upper(), "0" * 64]), [b])

        self.run_with_tmpdir(scenario)

    def test_missing_expected_or_file_fails(self):
        def scenario(tmp_path: Path):
            a = tmp_path / "a"
            a.write_bytes(b"abc")
            gone = tmp_path / "gone"
            self.assertEqual(verify_parts([a], []), [a])
            self.assertEqual(verify_parts([a], [""]), [a])
            self.assertEqual(verify_parts([gone], [ABC_SHA256]), [gone])

        self.run_with_tmpdir(scenario)

    def test_rejects_non_sequences(self):
        with self.assertRaises(TypeError):
            verify_parts("a", [ABC_SHA256])
        with self.assertRaises(TypeError):
            verify_parts(["a"], None)


if __name__ == "__main__":
    unittest.main()
