"""
Test file for the field value codec.
Checks the exact bytes stored for each field type.
"""

import unittest
from dbf_codec import (
    encode_field_value, decode_field_value, write_field_value,
    build_field_spec, parse_field_spec, check_field_type,
)
from dbf_errors import FieldLengthError, UnknownFieldTypeError


class TestFieldEncoding(unittest.TestCase):
    """Test cases for encode_field_value."""

    def test_character_left_justified(self):
        self.assertEqual(encode_field_value('C', 10, "TEST"), b"TEST      ")

    def test_character_truncated_from_the_right(self):
        self.assertEqual(encode_field_value('C', 4, "TESTING"), b"TEST")

    def test_numeric_right_justified(self):
        """Numbers are padded on the left."""
        self.assertEqual(encode_field_value('N', 17, "44"), b" " * 15 + b"44")
        self.assertEqual(encode_field_value('N', 17, "44.123", decimals=8), b" " * 11 + b"44.123")

    def test_numeric_keeps_tail(self):
        """Oversized numbers lose their leading bytes."""
        self.assertEqual(encode_field_value('N', 3, "12345"), b"345")

    def test_logical_and_date(self):
        self.assertEqual(encode_field_value('L', 1, "t"), b"t")
        self.assertEqual(encode_field_value('D', 8, "20240115"), b"20240115")

    def test_empty_value_is_blank(self):
        self.assertEqual(encode_field_value('N', 5, ""), b"     ")
        self.assertEqual(encode_field_value('C', 3, ""), b"   ")

    def test_bytes_value(self):
        """Raw bytes are copied unchanged."""
        self.assertEqual(encode_field_value('C', 4, b"\x01\x02"), b"\x01\x02  ")

    def test_encoding(self):
        self.assertEqual(encode_field_value('C', 4, "é", encoding='latin-1'), b"\xe9   ")
        self.assertEqual(encode_field_value('C', 4, "é"), b"\xc3\xa9  ")

    def test_invalid_definition(self):
        with self.assertRaises(UnknownFieldTypeError):
            encode_field_value('M', 10, "x")
        with self.assertRaises(FieldLengthError):
            encode_field_value('C', 0, "x")

    def test_write_in_place(self):
        """Only the field bytes change."""
        buf = bytearray(b"*" * 12)
        write_field_value(buf, 2, 'N', 5, "42")
        self.assertEqual(buf, bytearray(b"**   42*****"))


class TestFieldDecoding(unittest.TestCase):
    """Test cases for decode_field_value."""

    def test_strip_blanks(self):
        self.assertEqual(decode_field_value(b"  44   "), "44")
        self.assertEqual(decode_field_value(b"message   "), "message")

    def test_cut_at_nul(self):
        """Values end at the first NUL byte."""
        self.assertEqual(decode_field_value(b"abc\x00def"), "abc")
        self.assertEqual(decode_field_value(bytes(8)), "")

    def test_invalid_bytes_are_replaced(self):
        self.assertEqual(decode_field_value(b"a\xffb"), "a\ufffdb")


class TestFieldSpec(unittest.TestCase):
    """Test cases for field specification strings."""

    def test_build_field_spec(self):
        self.assertEqual(build_field_spec('C', 30), "C(30)")
        self.assertEqual(build_field_spec('N', 17, 8), "N(17,8)")
        self.assertEqual(build_field_spec('L', 1), "L(1)")

    def test_parse_field_spec(self):
        self.assertEqual(parse_field_spec("C(30)"), ('C', 30, 0))
        self.assertEqual(parse_field_spec(" n(10, 2) "), ('N', 10, 2))

    def test_parse_invalid_spec(self):
        for spec in ["C", "C()", "C(x)", "X(10)", "C(300)", "(10)", "CC(10)"]:
            with self.subTest(spec=spec):
                with self.assertRaises(ValueError):
                    parse_field_spec(spec)

    def test_check_field_type(self):
        self.assertEqual(check_field_type('d'), 'D')
        with self.assertRaises(UnknownFieldTypeError):
            check_field_type('F')


if __name__ == "__main__":
    unittest.main()
