"""
Field value codec for dBase III tables.

Every field is stored as a fixed-width run of bytes inside a record. This
module converts between the textual value of a field and those bytes:

- Character, Logical and Date values are left-justified and space padded.
- Numeric values are right-justified: the value is copied from its last byte
  backwards into the field, so a value longer than the field loses its
  leading bytes.

Decoding cuts the value at the first NUL byte and strips surrounding blanks.
"""

from typing import Tuple, Union

from dbf_errors import FieldLengthError, UnknownFieldTypeError


# Field types
FIELD_CHARACTER = 'C'
FIELD_NUMERIC = 'N'
FIELD_LOGICAL = 'L'
FIELD_DATE = 'D'
FIELD_TYPES = (FIELD_CHARACTER, FIELD_NUMERIC, FIELD_LOGICAL, FIELD_DATE)

DBF_MAX_FIELD_LENGTH = 255  # length is stored in a single byte
DBF_DEFAULT_ENCODING = 'utf-8'
PAD_BYTE = 0x20


def check_field_type(field_type: str) -> str:
    """Return the upper-case type letter or raise UnknownFieldTypeError."""
    normalized = field_type.upper() if isinstance(field_type, str) else field_type
    if normalized not in FIELD_TYPES:
        raise UnknownFieldTypeError(str(field_type))
    return normalized


def check_field_length(length: int, decimals: int = 0) -> None:
    """Validate that length and decimals fit the single-byte descriptor slots."""
    if not 1 <= length <= DBF_MAX_FIELD_LENGTH:
        raise FieldLengthError(f"Field length must be between 1 and {DBF_MAX_FIELD_LENGTH}, got {length}")
    if not 0 <= decimals <= DBF_MAX_FIELD_LENGTH:
        raise FieldLengthError(f"Field decimals must be between 0 and {DBF_MAX_FIELD_LENGTH}, got {decimals}")


def to_bytes(value: Union[str, bytes], encoding: str = DBF_DEFAULT_ENCODING) -> bytes:
    """Convert a field value to raw bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return str(value).encode(encoding, errors='replace')


def write_field_value(buf: bytearray, offset: int, field_type: str, length: int,
                      value: Union[str, bytes], encoding: str = DBF_DEFAULT_ENCODING) -> None:
    """
    Encode a value into buf[offset:offset + length] in place.

    Args:
        buf: Record buffer to write into
        offset: Position of the first byte of the field
        field_type: 'C', 'N', 'L' or 'D'
        length: Field width in bytes
        value: Text value (bytes are copied as is)
        encoding: Text encoding used for str values
    """
    data = to_bytes(value, encoding)
    # Blank the whole field first
    buf[offset:offset + length] = bytes([PAD_BYTE]) * length

    if field_type == FIELD_NUMERIC:
        # Right-justify: keep the tail of the value when it is too long
        count = min(len(data), length)
        if count:
            buf[offset + length - count:offset + length] = data[len(data) - count:]
    else:
        count = min(len(data), length)
        buf[offset:offset + count] = data[:count]


def encode_field_value(field_type: str, length: int, value: Union[str, bytes],
                       decimals: int = 0, encoding: str = DBF_DEFAULT_ENCODING) -> bytes:
    """
    Encode a value to exactly `length` bytes.

    `decimals` is accepted for symmetry with the field descriptor; numeric
    values are stored as given, without rounding.
    """
    field_type = check_field_type(field_type)
    check_field_length(length, decimals)
    buf = bytearray(length)
    write_field_value(buf, 0, field_type, length, value, encoding)
    return bytes(buf)


def decode_field_value(raw: Union[bytes, bytearray, memoryview],
                       encoding: str = DBF_DEFAULT_ENCODING) -> str:
    """Decode field bytes: cut at the first NUL and strip surrounding blanks."""
    data = bytes(raw)
    nul = data.find(b'\x00')
    if nul >= 0:
        data = data[:nul]
    return data.decode(encoding, errors='replace').strip()


def build_field_spec(field_type: str, length: int, decimals: int = 0) -> str:
    """
    Build a field specification string (e.g., 'C(30)' or 'N(17,8)').
    """
    spec = f"{field_type}({length}"
    if decimals > 0:
        spec += f",{decimals}"
    spec += ")"
    return spec


def parse_field_spec(spec: str) -> Tuple[str, int, int]:
    """
    Parse a field specification string.

    Args:
        spec: Field specification string (e.g., 'C(30)' or 'N(10,2)')

    Returns:
        Tuple of (field_type, length, decimals)

    Raises:
        ValueError: If the text is not a valid specification
    """
    spec = spec.strip()
    paren_start = spec.find('(')
    paren_end = spec.find(')')
    if paren_start != 1 or paren_end <= paren_start + 1:
        raise ValueError(f"Invalid field specification: {spec!r}")

    try:
        field_type = check_field_type(spec[0])
    except UnknownFieldTypeError:
        raise ValueError(f"Unknown field type in specification: {spec!r}") from None
    content = spec[paren_start + 1:paren_end]

    if ',' in content:
        length_text, decimals_text = content.split(',', 1)
    else:
        length_text, decimals_text = content, '0'

    try:
        length = int(length_text.strip())
        decimals = int(decimals_text.strip())
    except ValueError:
        raise ValueError(f"Invalid field specification: {spec!r}") from None

    check_field_length(length, decimals)
    return (field_type, length, decimals)


__all__ = [
    'FIELD_CHARACTER', 'FIELD_NUMERIC', 'FIELD_LOGICAL', 'FIELD_DATE', 'FIELD_TYPES',
    'DBF_MAX_FIELD_LENGTH', 'DBF_DEFAULT_ENCODING',
    'check_field_type', 'check_field_length', 'to_bytes',
    'write_field_value', 'encode_field_value', 'decode_field_value',
    'build_field_spec', 'parse_field_spec',
]
