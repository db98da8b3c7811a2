from __future__ import annotations

import io
import os
import tempfile
import unittest
from pathlib import Path

import pyzipper

from partkit.codec import (
    METHOD_DEFLATE,
    METHOD_STORE,
    ZipCodec,
    extract_all,
    is_zip,
    list_entries,
    read_single_entry,
)
from partkit.errors import CodecFailure


class ZipCodecTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_chunk_round_trip_with_password(self):
        def scenario(tmp_path: Path):
            data = os.urandom(5000)
            part = tmp_path / "x.part-0001.zip"
            src = io.BytesIO(data)
            src.seek(1000)
            ZipCodec(METHOD_DEFLATE, 6, "secret").write_chunk(part, src, 3000, "x.part-0001")
            self.assertTrue(is_zip(part))
            self.assertEqual(list_entries(part, "secret"), ["x.part-0001"])

            out = tmp_path / "chunk"
            size = read_single_entry(part, out, "secret")
            self.assertEqual(size, 3000)
            self.assertEqual(out.read_bytes(), data[1000:4000])

        self.run_with_tmpdir(scenario)

    def test_password_errors_are_codec_failures(self):
        def scenario(tmp_path: Path):
            part = tmp_path / "p.zip"
            ZipCodec(METHOD_STORE, password="right").write_chunk(part, io.BytesIO(b"payload" * 100), 700, "p")
            with self.assertRaises(CodecFailure):
                read_single_entry(part, tmp_path / "out-wrong", "wrong")
            with self.assertRaises(CodecFailure):
                read_single_entry(part, tmp_path / "out-none", None)

        self.run_with_tmpdir(scenario)

    def test_unencrypted_part_is_a_plain_zip(self):
        def scenario(tmp_path: Path):
            part = tmp_path / "plain.zip"
            ZipCodec(METHOD_DEFLATE, 9).write_chunk(part, io.BytesIO(b"a" * 4096), 4096, "plain.part-0001")
            import zipfile

            with zipfile.ZipFile(part) as zf:
                self.assertEqual(zf.read("plain.part-0001"), b"a" * 4096)
                self.assertEqual(zf.infolist()[0].compress_type, zipfile.ZIP_DEFLATED)

        self.run_with_tmpdir(scenario)

    def test_part_with_several_entries_is_rejected(self):
        def scenario(tmp_path: Path):
            part = tmp_path / "multi.zip"
            with pyzipper.AESZipFile(part, "w") as zf:
                zf.writestr("a", b"1")
                zf.writestr("b", b"2")
            with self.assertRaises(CodecFailure):
                read_single_entry(part, tmp_path / "out")

        self.run_with_tmpdir(scenario)

    def test_not_a_zip(self):
        def scenario(tmp_path: Path):
            junk = tmp_path / "junk.zip"
            junk.write_bytes(b"definitely not a zip archive")
            self.assertFalse(is_zip(junk))
            with self.assertRaises(CodecFailure):
                read_single_entry(junk, tmp_path / "out")

        self.run_with_tmpdir(scenario)

    def test_directory_entries_are_rooted_at_the_directory_name(self):
        def scenario(tmp_path: Path):
            root = tmp_path / "tree"
            (root / "sub").mkdir(parents=True)
            (root / "a.txt").write_text("alpha")
            (root / "sub" / "b.txt").write_text("beta")
            blob = tmp_path / "tree.zip"
            written = ZipCodec(METHOD_DEFLATE, 6).write_directory(blob, root)
            self.assertEqual(written, len("alpha") + len("beta"))
            names = list_entries(blob)
            self.assertIn("tree/", names)
            self.assertIn("tree/sub/", names)
            self.assertIn("tree/a.txt", names)
            self.assertIn("tree/sub/b.txt", names)

            out = tmp_path / "out"
            tops = extract_all(blob, out)
            self.assertEqual(tops, [out / "tree"])
            self.assertEqual((out / "tree" / "sub" / "b.txt").read_text(), "beta")

        self.run_with_tmpdir(scenario)

    def test_empty_directory_keeps_its_root_entry(self):
        def scenario(tmp_path: Path):
            root = tmp_path / "empty"
            root.mkdir()
            blob = tmp_path / "empty.zip"
            ZipCodec(METHOD_STORE).write_directory(blob, root)
            self.assertEqual(list_entries(blob), ["empty/"])
            out = tmp_path / "out"
            extract_all(blob, out)
            self.assertTrue((out / "empty").is_dir())

        self.run_with_tmpdir(scenario)

    def test_level_is_ignored_for_store(self):
        self.assertIsNone(ZipCodec(METHOD_STORE, 9).level)
        self.assertEqual(ZipCodec(METHOD_DEFLATE, 3).level, 3)


if __name__ == "__main__":
    unittest.main()
