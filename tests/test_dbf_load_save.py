"""
Test file for loading and saving whole tables.
"""

import os
import struct
import tempfile
import unittest
from dbf_module import (
    dbf_table_new, dbf_table_load, dbf_table_open, dbf_table_save,
    DBF_FILE_TERMINATOR,
)
from dbf_errors import DBFFormatError, SchemaFrozenError


def build_sample_table():
    """Table with three rows, the middle one deleted."""
    table = dbf_table_new()
    table.add_text_field("name", 20)
    table.add_int_field("qty")
    table.add_bool_field("ok")
    table.add_date_field("day")

    for name, qty, ok, day in [("apple", "3", "t", "20240115"),
                               ("pear", "-7", "f", "19991231"),
                               ("plum", "12", "t", "")]:
        row = table.append_record()
        table.set_field_value_by_name(row, "name", name)
        table.set_field_value_by_name(row, "qty", qty)
        table.set_field_value_by_name(row, "ok", ok)
        table.set_field_value_by_name(row, "day", day)

    table.delete(1)
    return table


class TestDBFLoadSave(unittest.TestCase):
    """Test cases for table persistence."""

    def setUp(self):
        """Set up test environment."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.test_filename = os.path.join(self.temp_dir.name, "test.dbf")

    def tearDown(self):
        """Clean up test files."""
        self.temp_dir.cleanup()

    def test_round_trip_bytes(self):
        """Loading saved bytes gives back schema, rows and deleted markers."""
        table = build_sample_table()
        data = table.save_to_bytes()

        loaded = dbf_table_load(data)

        self.assertEqual(loaded.field_names, ["NAME", "QTY", "OK", "DAY"])
        self.assertEqual([(f.field_type, f.length, f.decimals) for f in loaded.fields],
                         [("C", 20, 0), ("N", 17, 0), ("L", 1, 0), ("D", 8, 0)])
        self.assertEqual(loaded.num_records, 3)
        self.assertEqual(loaded.row(0), ["apple", "3", "t", "20240115"])
        self.assertEqual(loaded.row(2), ["plum", "12", "t", ""])
        self.assertTrue(loaded.is_deleted(1))
        self.assertEqual(loaded.row(1), ["pear", "-7", "f", "19991231"])
        self.assertEqual(loaded.deleted_rows, [1])
        self.assertEqual(loaded.save_to_bytes(), data)

    def test_save_appends_terminator(self):
        """Saved bytes end with 0x1A and saving twice gives the same bytes."""
        table = build_sample_table()
        first = table.save_to_bytes()
        second = table.save_to_bytes()

        self.assertEqual(first[-1], DBF_FILE_TERMINATOR)
        self.assertEqual(first, second)
        self.assertEqual(len(first), table.header_size + 3 * table.record_size + 1)

    def test_append_after_load(self):
        """A loaded table keeps growing at the end of its records."""
        loaded = dbf_table_load(build_sample_table().save_to_bytes())
        row = loaded.append_record()
        loaded.set_field_value_by_name(row, "name", "fig")

        self.assertEqual(row, 3)
        reloaded = dbf_table_load(loaded.save_to_bytes())
        self.assertEqual(reloaded.num_records, 4)
        self.assertEqual(reloaded.field_value_by_name(3, "name"), "fig")

    def test_insert_after_load_reuses_deleted(self):
        """The free-list is rebuilt from the deletion markers."""
        loaded = dbf_table_load(build_sample_table().save_to_bytes())
        self.assertEqual(loaded.insert_record(), 1)
        self.assertEqual(loaded.insert_record(), 3)

    def test_loaded_schema_is_frozen(self):
        """Fields can not be added to a loaded table."""
        loaded = dbf_table_load(build_sample_table().save_to_bytes())
        with self.assertRaises(SchemaFrozenError):
            loaded.add_text_field("extra", 5)

    def test_load_empty_table(self):
        """A table with fields and no records loads frozen."""
        table = dbf_table_new()
        table.add_text_field("name", 5)

        loaded = dbf_table_load(table.save_to_bytes())
        self.assertEqual(loaded.num_records, 0)
        self.assertTrue(loaded.is_frozen)

    def test_load_without_terminator(self):
        """The end of file marker is optional."""
        data = build_sample_table().save_to_bytes()[:-1]
        loaded = dbf_table_load(data)
        self.assertEqual(loaded.num_records, 3)

    def test_load_truncated_records(self):
        """Missing record bytes are a format error."""
        data = build_sample_table().save_to_bytes()
        with self.assertRaises(DBFFormatError):
            dbf_table_load(data[:-10])

    def test_load_record_size_mismatch(self):
        """A record size that disagrees with the field lengths is rejected."""
        data = bytearray(build_sample_table().save_to_bytes())
        data[10:12] = struct.pack("<H", 99)
        with self.assertRaises(DBFFormatError):
            dbf_table_load(bytes(data))

    def test_file_round_trip(self):
        """Saving to disk and opening again gives the same bytes."""
        table = build_sample_table()
        dbf_table_save(table, self.test_filename)

        with open(self.test_filename, 'rb') as f:
            self.assertEqual(f.read(), table.save_to_bytes())

        loaded = dbf_table_open(self.test_filename)
        self.assertEqual(loaded.row(0), ["apple", "3", "t", "20240115"])

    def test_open_missing_file(self):
        """I/O errors are not wrapped."""
        with self.assertRaises(FileNotFoundError):
            dbf_table_open(os.path.join(self.temp_dir.name, "missing.dbf"))

    def test_encoding(self):
        """Text values use the table encoding."""
        table = dbf_table_new(encoding="cp1252")
        table.add_text_field("city", 10)
        row = table.append_record()
        table.set_field_value(row, 0, "Zürich")

        data = table.save_to_bytes()
        self.assertIn("Zürich".encode("cp1252"), data)
        self.assertEqual(dbf_table_load(data, encoding="cp1252").field_value(0, 0), "Zürich")


if __name__ == "__main__":
    unittest.main()
