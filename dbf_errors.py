"""
Exception hierarchy for the DBF table modules.

All errors raised by the table, codec and mapper inherit from DBFError so a
caller can handle every table-level failure with one except clause:

    DBFError
    ├── SchemaError
    │   ├── SchemaFrozenError - structural change after data exists
    │   ├── DuplicateFieldNameError - normalized field name already used
    │   └── FieldLengthError - field length/decimals outside 0..255
    ├── FieldNotFoundError - unknown field name lookup
    ├── UnsupportedMemberKindError - record member cannot be mapped
    ├── ValueParseError - stored value cannot be read back into a member
    ├── DBFFormatError - malformed table bytes
    │   └── UnknownFieldTypeError - descriptor type byte not C/N/L/D
    └── ConversionError - CSV data that can not become a table

I/O failures are plain OSError and are never wrapped.
"""

from typing import Optional


class DBFError(Exception):
    """Base exception for all DBF table errors."""
    pass


class SchemaError(DBFError):
    """Base exception for schema definition errors."""
    pass


class SchemaFrozenError(SchemaError):
    """Raised when the field list is changed after data has been written."""

    def __init__(self, message: str = "table schema can not be altered once records exist"):
        super().__init__(message)


class DuplicateFieldNameError(SchemaError):
    """Raised when a field with the same normalized name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Field with name '{name}' already exists")


class FieldLengthError(SchemaError, ValueError):
    """Raised when a field length or decimal count can not be stored in one byte."""
    pass


class FieldNotFoundError(DBFError, KeyError):
    """Raised when a field name is not part of the table schema."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Field name '{self.name}' does not exist"


class UnsupportedMemberKindError(DBFError, TypeError):
    """
    Raised when a record type can not be mapped to table fields.

    This is a programming error (wrong record class, unsupported annotation,
    bad length override), not a data error.
    """
    pass


class ValueParseError(DBFError, ValueError):
    """
    Raised when a stored field value can not be converted to a record member.

    Attributes:
        field_name: Table field that held the value
        value: The stored text
        member_type: Name of the member type that was expected
    """

    def __init__(self, field_name: str, value: str, member_type: str, row: Optional[int] = None):
        self.field_name = field_name
        self.value = value
        self.member_type = member_type
        self.row = row
        message = f"fail to parse field '{field_name}' type: {member_type} value: {value!r}"
        if row is not None:
            message += f" (row {row})"
        super().__init__(message)


class DBFFormatError(DBFError):
    """Raised when table bytes do not follow the dBase III layout."""
    pass


class UnknownFieldTypeError(DBFFormatError):
    """Raised when a field type byte is not one of C, N, L or D."""

    def __init__(self, field_type: str, name: str = ""):
        self.field_type = field_type
        self.name = name
        where = f" for field '{name}'" if name else ""
        super().__init__(f"Unknown field type {field_type!r}{where}")


class ConversionError(DBFError):
    """Raised when CSV input can not be turned into a table."""
    pass


__all__ = [
    'DBFError', 'SchemaError', 'SchemaFrozenError', 'DuplicateFieldNameError',
    'FieldLengthError', 'FieldNotFoundError', 'UnsupportedMemberKindError',
    'ValueParseError', 'DBFFormatError', 'UnknownFieldTypeError', 'ConversionError',
]
