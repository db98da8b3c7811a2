from __future__ import annotations

import unittest

from partkit.errors import InvalidSpec
from partkit.models import PackMode
from partkit.naming import (
    ParsedName,
    blob_name,
    chunk_entry_name,
    format_label,
    parse_part_name,
    part_name,
    parts_dir_name,
)


class NamingTests(unittest.TestCase):
    def test_labels_are_zero_padded(self):
        self.assertEqual(format_label(1), "0001")
        self.assertEqual(format_label(42), "0042")
        self.assertEqual(format_label(12345), "12345")
        with self.assertRaises(InvalidSpec):
            format_label(0)

    def test_split_then_zip_names(self):
        self.assertEqual(part_name("file.bin", 1, PackMode.SPLIT_THEN_ZIP), "file.bin.part-0001.zip")
        self.assertEqual(chunk_entry_name("file.bin", "0001"), "file.bin.part-0001")

    def test_zip_then_split_names(self):
        self.assertEqual(part_name("photos", 3, PackMode.ZIP_THEN_SPLIT), "photos.zip.part-0003")

    def test_parse_round_trip(self):
        for mode in PackMode:
            for base in ("file.bin", "my.archive.tar.gz", "photos", "with space"):
                for index in (1, 9, 10, 9999, 10000):
                    name = part_name(base, index, mode)
                    parsed = parse_part_name(name, mode)
                    self.assertEqual(parsed, ParsedName(base=base, index=index, label=format_label(index)))

    def test_parse_rejects_other_mode_and_noise(self):
        self.assertIsNone(parse_part_name("file.bin.zip.part-0001", PackMode.SPLIT_THEN_ZIP))
        self.assertIsNone(parse_part_name("file.bin.part-0001.zip", PackMode.ZIP_THEN_SPLIT))
        self.assertIsNone(parse_part_name("notes.txt", PackMode.SPLIT_THEN_ZIP))
        self.assertIsNone(parse_part_name("file.bin.part-.zip", PackMode.SPLIT_THEN_ZIP))

    def test_parse_keeps_label_digits(self):
        parsed = parse_part_name("a.part-007.zip", PackMode.SPLIT_THEN_ZIP)
        self.assertEqual((parsed.base, parsed.index, parsed.label), ("a", 7, "007"))

    def test_dir_and_blob_names(self):
        self.assertEqual(parts_dir_name("file.bin"), "file.bin.parts")
        self.assertEqual(blob_name("photos"), "photos.zip")
        self.assertEqual(blob_name("data.zip"), "data.zip.zip")


if __name__ == "__main__":
    unittest.main()
