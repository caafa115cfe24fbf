"""
Test file for version-specific field descriptor validation.
This verifies which field types and sizes each DBF version accepts.
"""

import unittest

from dbf_builder import build_dbf
from dbf_errors import FieldTypeError, FormatError
from dbf_module import (
    DBFColumn, DBFVersion,
    is_valid_file_version, is_foxpro_version, validate_dbf_column, read_dbf_header
)


class TestDBFVersion(unittest.TestCase):
    """Test cases for version byte and field descriptor validation."""

    def test_valid_versions(self):
        for version in (0x03, 0x83, 0x8B, 0x30, 0xF5):
            self.assertTrue(is_valid_file_version(version), f"0x{version:02X} should be valid")
        for version in (0x00, 0x04, 0x05, 0x31, 0xFF):
            self.assertFalse(is_valid_file_version(version), f"0x{version:02X} should be invalid")

    def test_foxpro_versions(self):
        self.assertTrue(is_foxpro_version(DBFVersion.VISUAL_FOXPRO))
        self.assertTrue(is_foxpro_version(DBFVersion.FOXPRO2))
        self.assertFalse(is_foxpro_version(DBFVersion.DBASE4_MEMO))

    def test_dbase_types_accepted(self):
        columns = [
            DBFColumn("NAME", "C", 30),
            DBFColumn("QTY", "N", 10, 2),
            DBFColumn("RATE", "F", 20, 5),
            DBFColumn("ACTIVE", "L", 1),
            DBFColumn("BORN", "D", 8),
            DBFColumn("NOTES", "M", 10),
        ]
        for version in (0x03, 0x83, 0x8B):
            seen = set()
            for column in columns:
                validate_dbf_column(column, version, seen)
                seen.add(column.name)

    def test_foxpro_only_types(self):
        """Test that T, B, I and Y are FoxPro only."""
        for column in (DBFColumn("STAMP", "T", 8), DBFColumn("RATIO", "B", 8),
                       DBFColumn("COUNT", "I", 4), DBFColumn("PRICE", "Y", 8)):
            validate_dbf_column(column, 0x30, set())
            validate_dbf_column(column, 0xF5, set())
            with self.assertRaises(FieldTypeError):
                validate_dbf_column(column, 0x83, set())

    def test_unknown_type(self):
        with self.assertRaises(FieldTypeError) as ctx:
            validate_dbf_column(DBFColumn("PIC", "G", 10), 0x30, set())
        self.assertIn("Type 'G' is not supported", str(ctx.exception))
        # both a format error and a builtin TypeError
        self.assertIsInstance(ctx.exception, FormatError)
        self.assertIsInstance(ctx.exception, TypeError)

    def test_memo_size_depends_on_version(self):
        validate_dbf_column(DBFColumn("NOTES", "M", 4), 0x30, set())
        validate_dbf_column(DBFColumn("NOTES", "M", 10), 0xF5, set())
        with self.assertRaises(FormatError):
            validate_dbf_column(DBFColumn("NOTES", "M", 10), 0x30, set())
        with self.assertRaises(FormatError):
            validate_dbf_column(DBFColumn("NOTES", "M", 4), 0x83, set())

    def test_invalid_sizes(self):
        bad = [
            DBFColumn("NAME", "C", 0),
            DBFColumn("QTY", "N", 21),
            DBFColumn("RATE", "F", 0),
            DBFColumn("ACTIVE", "L", 2),
            DBFColumn("BORN", "D", 6),
        ]
        for column in bad:
            with self.assertRaises(FormatError, msg=f"{column} should be rejected"):
                validate_dbf_column(column, 0x03, set())

        for column in (DBFColumn("STAMP", "T", 4), DBFColumn("COUNT", "I", 8),
                       DBFColumn("RATIO", "B", 4), DBFColumn("PRICE", "Y", 4)):
            with self.assertRaises(FormatError, msg=f"{column} should be rejected"):
                validate_dbf_column(column, 0x30, set())

    def test_too_many_decimals(self):
        with self.assertRaises(FormatError):
            validate_dbf_column(DBFColumn("QTY", "N", 20, 16), 0x03, set())

    def test_name_rules(self):
        with self.assertRaises(FormatError):
            validate_dbf_column(DBFColumn("", "C", 10), 0x03, set())
        with self.assertRaises(FormatError):
            validate_dbf_column(DBFColumn("ABCDEFGHIJK", "C", 10), 0x03, set())
        validate_dbf_column(DBFColumn("ABCDEFGHIJ", "C", 10), 0x03, set())

    def test_duplicate_name(self):
        with self.assertRaises(FormatError) as ctx:
            validate_dbf_column(DBFColumn("Point_ID", "N", 5), 0x03, {"Point_ID"})
        self.assertIn("Duplicate field name: Point_ID.", str(ctx.exception))

    def test_duplicate_name_in_file(self):
        """Test that duplicate names fail in strict mode and are accepted in loose mode."""
        fields = [("Point_ID", "N", 5, 0), ("Point_ID", "C", 10, 0)]
        data = build_dbf(fields, [["1", "x"]])
        with self.assertRaises(FormatError):
            read_dbf_header(data)
        header = read_dbf_header(data, read_mode='loose')
        self.assertEqual(header.field_count, 2)

    def test_loose_accepts_invalid_descriptors(self):
        data = build_dbf([("ACTIVE", "L", 3, 0), ("PIC", "G", 10, 0)], version=0x03)
        header = read_dbf_header(data, read_mode='loose')
        self.assertEqual([f.field_type for f in header.fields], ["L", "G"])


if __name__ == '__main__':
    unittest.main()
