"""
In-memory dBase III (.DBF) table.

The whole file lives in one growable byte buffer:

    header (32 bytes) | field descriptors (32 bytes each) | 0x0D | records...

and a terminating 0x1A byte is added when the table is saved. Each record is
a one-byte deletion marker followed by the fixed-width values of every field
in schema order.

Fields can only be added while the table holds no data. The first appended
record or written value freezes the schema for good.
"""

import dataclasses
import datetime
import logging
import struct
from dataclasses import dataclass
from typing import Dict, List, Tuple

import dbf_mapper
from dbf_codec import (
    FIELD_CHARACTER, FIELD_NUMERIC, FIELD_LOGICAL, FIELD_DATE,
    DBF_DEFAULT_ENCODING,
    check_field_type, check_field_length, write_field_value, decode_field_value,
)
from dbf_errors import (
    SchemaError, SchemaFrozenError, DuplicateFieldNameError, FieldLengthError,
    FieldNotFoundError, DBFFormatError, UnknownFieldTypeError,
)


logger = logging.getLogger(__name__)


# Constants
DBF_SIGNATURE = 0x03  # dBase III without memo
DBF_HEADER_SIZE = 32
DBF_DESCRIPTOR_SIZE = 32
DBF_HEADER_TERMINATOR = 0x0D
DBF_FILE_TERMINATOR = 0x1A
DBF_RECORD_ACTIVE = 0x20
DBF_RECORD_DELETED = 0x2A
DBF_FIELD_NAME_LENGTH = 10
DBF_MAX_HEADER_SIZE = 0xFFFF  # header and record sizes are stored in two bytes
DBF_MAX_RECORD_SIZE = 0xFFFF
DBF_MAX_TEXT_VALUE = 254

DBF_INT_LENGTH = 17
DBF_FLOAT_LENGTH = 17
DBF_FLOAT_DECIMALS = 8
DBF_BOOL_LENGTH = 1
DBF_DATE_LENGTH = 8


# Data structures
@dataclass
class DBFColumn:
    """Represents a column/field in a DBF table."""
    name: str  # Field name (max 10 chars, upper case)
    field_type: str  # 'C', 'N', 'L' or 'D'
    length: int  # Field length in bytes
    decimals: int = 0  # Number of decimal places (for numeric)
    offset: int = 0  # offset within record; first field starts at 1


@dataclass
class DBFHeader:
    """Represents the header of a DBF table."""
    version: int = DBF_SIGNATURE  # file signature byte
    year: int = 0  # Last update year (since 1900)
    month: int = 0  # Last update month
    day: int = 0  # Last update day
    record_count: int = 0  # Number of records
    header_size: int = DBF_HEADER_SIZE + 1  # Header size in bytes
    record_size: int = 1  # Record size in bytes
    fields: List[DBFColumn] = None  # Field descriptors

    def __post_init__(self):
        if self.fields is None:
            self.fields = []


# Header serialization
def normalize_field_name(name: str) -> str:
    """Field names are cut to 10 characters and upper-cased."""
    return name[:DBF_FIELD_NAME_LENGTH].upper()


def pack_dbf_header(header: DBFHeader) -> bytes:
    """Build the 32-byte main header."""
    buf = bytearray(DBF_HEADER_SIZE)
    buf[0] = header.version
    buf[1] = header.year
    buf[2] = header.month
    buf[3] = header.day
    struct.pack_into("<L", buf, 4, header.record_count)
    struct.pack_into("<H", buf, 8, header.header_size)
    struct.pack_into("<H", buf, 10, header.record_size)
    # bytes 12-31 reserved; table flags and language driver unused for dBase III
    return bytes(buf)


def pack_field_descriptor(column: DBFColumn) -> bytes:
    """Build the 32-byte descriptor of one field."""
    buf = bytearray(DBF_DESCRIPTOR_SIZE)
    name_bytes = column.name.encode('ascii', errors='replace')[:DBF_FIELD_NAME_LENGTH]
    buf[:len(name_bytes)] = name_bytes
    # byte 10 stays 0x00, the name terminator
    buf[11] = ord(column.field_type)
    buf[16] = column.length
    buf[17] = column.decimals
    return bytes(buf)


def calculate_field_offsets(fields: List[DBFColumn]) -> int:
    """Assign record offsets to fields and return the record size."""
    offset = 1  # First byte is delete flag
    for field in fields:
        field.offset = offset
        offset += field.length
    return offset


def parse_dbf_header(data: bytes) -> DBFHeader:
    """
    Parse the main header and field descriptors.

    Args:
        data: Table bytes, starting with the 32-byte header

    Returns:
        A DBFHeader with its fields and their offsets filled in

    Raises:
        DBFFormatError: If the header is truncated
        UnknownFieldTypeError: If a descriptor has a type other than C, N, L or D
    """
    if len(data) < DBF_HEADER_SIZE:
        raise DBFFormatError(f"DBF header truncated: {len(data)} bytes")

    header = DBFHeader()
    header.version = data[0]
    header.year = data[1]
    header.month = data[2]
    header.day = data[3]
    header.record_count = struct.unpack_from("<L", data, 4)[0]
    header.header_size = struct.unpack_from("<H", data, 8)[0]
    header.record_size = struct.unpack_from("<H", data, 10)[0]

    if header.header_size < DBF_HEADER_SIZE + 1 or len(data) < header.header_size:
        raise DBFFormatError(
            f"Invalid header size {header.header_size} for {len(data)} bytes of data")

    field_count = (header.header_size - 1 - DBF_HEADER_SIZE) // DBF_DESCRIPTOR_SIZE
    for i in range(field_count):
        offset = DBF_HEADER_SIZE + i * DBF_DESCRIPTOR_SIZE
        desc = data[offset:offset + DBF_DESCRIPTOR_SIZE]

        # Field name is NUL terminated within the first 11 bytes
        name = bytes(desc[:DBF_FIELD_NAME_LENGTH + 1]).split(b'\x00', 1)[0]
        name = name.decode('ascii', errors='replace')

        field_type = chr(desc[11])
        try:
            field_type = check_field_type(field_type)
        except UnknownFieldTypeError:
            raise UnknownFieldTypeError(field_type, name) from None

        header.fields.append(DBFColumn(
            name=name,
            field_type=field_type,
            length=desc[16],
            decimals=desc[17],
        ))

    calculate_field_offsets(header.fields)
    return header


class DBFTable:
    """
    A dBase III table held entirely in memory.

    Rows are addressed by zero-based index. Deleted rows keep their slot and
    are reused, most recently deleted first, by insert_record().
    """

    def __init__(self, encoding: str = DBF_DEFAULT_ENCODING):
        self.encoding = encoding
        self.header = DBFHeader()
        self._field_map: Dict[str, int] = {}
        self._deleted_rows: List[int] = []
        self._frozen = False
        self._loading = False

        today = datetime.date.today()
        self.header.year = today.year - 1900
        self.header.month = today.month
        self.header.day = today.day

        self._data = bytearray()
        self._rebuild_header()

    # Schema

    @property
    def fields(self) -> List[DBFColumn]:
        """Copies of the field definitions in schema order."""
        return [dataclasses.replace(field) for field in self.header.fields]

    @property
    def field_count(self) -> int:
        return len(self.header.fields)

    @property
    def field_names(self) -> List[str]:
        return [field.name for field in self.header.fields]

    @property
    def is_frozen(self) -> bool:
        """True once the field list can no longer change."""
        return self._frozen

    def field_index(self, name: str) -> int:
        """Find the index of a field by name (case-insensitive)."""
        normalized = normalize_field_name(name)
        try:
            return self._field_map[normalized]
        except KeyError:
            raise FieldNotFoundError(normalized) from None

    def has_field(self, name: str) -> bool:
        return normalize_field_name(name) in self._field_map

    def add_field(self, name: str, field_type: str, length: int, decimals: int = 0) -> DBFColumn:
        """
        Append a field to the schema.

        Raises:
            SchemaFrozenError: If records or values have already been written
            DuplicateFieldNameError: If the normalized name is already used
            FieldLengthError: If length or decimals do not fit in one byte
        """
        if self._frozen:
            raise SchemaFrozenError()

        field_type = check_field_type(field_type)
        check_field_length(length, decimals)

        normalized = normalize_field_name(name)
        if not normalized:
            raise SchemaError("Field name can not be empty")
        if normalized in self._field_map:
            raise DuplicateFieldNameError(normalized)

        header_size = DBF_HEADER_SIZE + (len(self.header.fields) + 1) * DBF_DESCRIPTOR_SIZE + 1
        if header_size > DBF_MAX_HEADER_SIZE:
            raise FieldLengthError(f"Header size would exceed {DBF_MAX_HEADER_SIZE} bytes")
        record_size = 1 + sum(field.length for field in self.header.fields) + length
        if record_size > DBF_MAX_RECORD_SIZE:
            raise FieldLengthError(
                f"Record size would exceed {DBF_MAX_RECORD_SIZE} bytes with field '{normalized}'")

        column = DBFColumn(name=normalized, field_type=field_type, length=length, decimals=decimals)
        self.header.fields.append(column)

        if self._loading:
            # Bulk load keeps the header bytes read from the file
            self._field_map[normalized] = len(self.header.fields) - 1
        else:
            self._rebuild_header()
        return dataclasses.replace(column)

    def add_text_field(self, name: str, length: int) -> DBFColumn:
        """Character field, max size 254 bytes for portable files."""
        return self.add_field(name, FIELD_CHARACTER, length)

    def add_number_field(self, name: str, length: int, decimals: int = 0) -> DBFColumn:
        return self.add_field(name, FIELD_NUMERIC, length, decimals)

    def add_int_field(self, name: str) -> DBFColumn:
        return self.add_field(name, FIELD_NUMERIC, DBF_INT_LENGTH, 0)

    def add_float_field(self, name: str) -> DBFColumn:
        return self.add_field(name, FIELD_NUMERIC, DBF_FLOAT_LENGTH, DBF_FLOAT_DECIMALS)

    def add_bool_field(self, name: str) -> DBFColumn:
        """Logical field; stores 't' or 'f' in the cell."""
        return self.add_field(name, FIELD_LOGICAL, DBF_BOOL_LENGTH)

    def add_date_field(self, name: str) -> DBFColumn:
        """Date field stored as YYYYMMDD."""
        return self.add_field(name, FIELD_DATE, DBF_DATE_LENGTH)

    def _update_layout(self) -> None:
        self.header.record_size = calculate_field_offsets(self.header.fields)
        self._field_map = {field.name: i for i, field in enumerate(self.header.fields)}

    def _rebuild_header(self) -> None:
        """Re-serialize header and descriptors. Only valid while no records exist."""
        self._update_layout()
        fields = self.header.fields
        self.header.header_size = DBF_HEADER_SIZE + len(fields) * DBF_DESCRIPTOR_SIZE + 1

        buf = bytearray(pack_dbf_header(self.header))
        for field in fields:
            buf += pack_field_descriptor(field)
        buf.append(DBF_HEADER_TERMINATOR)
        self._data = buf

        logger.debug("Rebuilt header: %d fields, header %d bytes, record %d bytes",
                     len(fields), self.header.header_size, self.header.record_size)

    # Header values

    @property
    def num_records(self) -> int:
        """Number of record slots, deleted ones included."""
        return self.header.record_count

    @property
    def header_size(self) -> int:
        return self.header.header_size

    @property
    def record_size(self) -> int:
        return self.header.record_size

    @property
    def signature(self) -> int:
        return self.header.version

    def get_date(self) -> Tuple[int, int, int]:
        """
        Get the last update date.

        Returns:
            A tuple of (year, month, day) where year is since 1900
        """
        return (self.header.year, self.header.month, self.header.day)

    def set_date(self, year: int, month: int, day: int) -> None:
        """
        Set the last update date.

        Args:
            year: Year since 1900 (e.g., 126 for 2026)
            month: Month (1-12)
            day: Day (1-31)

        Raises:
            ValueError: If a part does not fit its header byte
        """
        if not 0 <= year <= 255:
            raise ValueError(f"Year must be counted from 1900 (0-255), got {year}")
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        if not 1 <= day <= 31:
            raise ValueError(f"Day must be between 1 and 31, got {day}")

        self.header.year = year
        self.header.month = month
        self.header.day = day
        self._data[1:4] = bytes([year, month, day])

    # Records

    def record_offset(self, row: int) -> int:
        """Byte offset of a record's deletion marker within the buffer."""
        if not 0 <= row < self.header.record_count:
            raise IndexError(f"Row {row} out of range (0..{self.header.record_count - 1})")
        return self.header.header_size + row * self.header.record_size

    def _column(self, field_index: int) -> DBFColumn:
        if not 0 <= field_index < len(self.header.fields):
            raise IndexError(f"Field index {field_index} out of range")
        return self.header.fields[field_index]

    def field_offset(self, row: int, field_index: int) -> int:
        """Byte offset of a field value within the buffer."""
        return self.record_offset(row) + self._column(field_index).offset

    def append_record(self) -> int:
        """
        Add a blank record at the end of the table.

        Returns:
            Zero-based index of the new row
        """
        self._frozen = True
        row = self.header.record_count

        start = len(self._data)
        self._data.extend(bytes(self.header.record_size))
        self._data[start] = DBF_RECORD_ACTIVE

        self.header.record_count += 1
        struct.pack_into("<L", self._data, 4, self.header.record_count)
        return row

    def insert_record(self) -> int:
        """
        Reuse the most recently deleted row, or append when none is free.

        While looping over rows prefer append_record(), which never moves
        data into slots the loop has already visited.
        """
        if self._deleted_rows:
            row = self._deleted_rows.pop()
            self._data[self.record_offset(row)] = DBF_RECORD_ACTIVE
            return row
        return self.append_record()

    def delete(self, row: int) -> None:
        """Mark a row deleted. The slot stays in place and becomes reusable."""
        self._data[self.record_offset(row)] = DBF_RECORD_DELETED
        self._deleted_rows.append(row)

    def is_deleted(self, row: int) -> bool:
        return self._data[self.record_offset(row)] == DBF_RECORD_DELETED

    @property
    def deleted_rows(self) -> List[int]:
        """Free-list of deleted rows, next reused row last."""
        return list(self._deleted_rows)

    def set_field_value(self, row: int, field_index: int, value: str) -> None:
        """Set a field value by index. Freezes the schema."""
        column = self._column(field_index)
        offset = self.record_offset(row) + column.offset
        self._frozen = True
        write_field_value(self._data, offset, column.field_type, column.length, value, self.encoding)

    def set_field_value_by_name(self, row: int, field_name: str, value: str) -> None:
        self.set_field_value(row, self.field_index(field_name), value)

    def field_value(self, row: int, field_index: int) -> str:
        """Get a field value by index, trimmed."""
        column = self._column(field_index)
        offset = self.record_offset(row) + column.offset
        return decode_field_value(self._data[offset:offset + column.length], self.encoding)

    def field_value_by_name(self, row: int, field_name: str) -> str:
        return self.field_value(row, self.field_index(field_name))

    def row(self, row: int) -> List[str]:
        """All field values of a row, in schema order."""
        return [self.field_value(row, i) for i in range(len(self.header.fields))]

    def new_iterator(self) -> 'DBFIterator':
        return DBFIterator(self)

    # Structured records

    def create_schema(self, record_type: type) -> None:
        """Add one field per mapped member of a dataclass record type."""
        dbf_mapper.create_schema(self, record_type)

    def write(self, row: int, record) -> int:
        return dbf_mapper.write_record(self, row, record)

    def append(self, record) -> int:
        return dbf_mapper.append_record(self, record)

    def read(self, row: int, record_type: type):
        return dbf_mapper.read_record(self, row, record_type)

    def read_into(self, row: int, record) -> None:
        """Fill an existing record from a row."""
        dbf_mapper.read_into(self, row, record)

    # Persistence

    def save_to_bytes(self) -> bytes:
        """Snapshot of the table as file bytes, end of file marker included."""
        return bytes(self._data) + bytes([DBF_FILE_TERMINATOR])

    def __len__(self) -> int:
        return self.header.record_count

    def __repr__(self) -> str:
        return (f"DBFTable(fields={self.field_names!r}, records={self.header.record_count}, "
                f"deleted={len(set(self._deleted_rows))})")


class DBFIterator:
    """
    Forward cursor over the active rows of a table.

    The row count is captured when the iterator is created, so rows appended
    afterwards are not visited. An iterator can not be restarted; create a new
    one for another pass.
    """

    def __init__(self, table: DBFTable):
        self.table = table
        self.index = -1
        self.last = table.num_records
        self._exhausted = False

    def advance(self) -> bool:
        """Move to the next row that is not deleted. Returns False when done."""
        if self._exhausted:
            return False
        self.index += 1
        while self.index < self.last:
            if not self.table.is_deleted(self.index):
                return True
            self.index += 1
        self._exhausted = True
        return False

    def __iter__(self):
        while self.advance():
            yield self.index

    def _current(self) -> int:
        if self._exhausted or self.index < 0:
            raise IndexError("Iterator is not positioned on a row")
        return self.index

    def row(self) -> List[str]:
        return self.table.row(self._current())

    def read(self, record_type: type):
        return self.table.read(self._current(), record_type)

    def read_into(self, record) -> None:
        self.table.read_into(self._current(), record)

    def write(self, record) -> int:
        return self.table.write(self._current(), record)

    def delete(self) -> None:
        """Delete the current row. Rows are only marked, so iteration continues."""
        self.table.delete(self._current())


# Table lifecycle
def dbf_table_new(encoding: str = DBF_DEFAULT_ENCODING) -> DBFTable:
    """Create an empty table with no fields and no records."""
    return DBFTable(encoding=encoding)


def dbf_table_load(data: bytes, encoding: str = DBF_DEFAULT_ENCODING) -> DBFTable:
    """
    Build a table from the bytes of a .DBF file.

    The schema is rebuilt from the field descriptors and frozen; deleted rows
    are collected into the free-list.

    Raises:
        DBFFormatError: If the bytes are truncated or inconsistent
        UnknownFieldTypeError: If a field type is not C, N, L or D
    """
    header = parse_dbf_header(data)

    table = DBFTable(encoding=encoding)
    table.header = DBFHeader(
        version=header.version,
        year=header.year,
        month=header.month,
        day=header.day,
        header_size=header.header_size,
        record_size=header.record_size,
    )

    table._loading = True
    for field in header.fields:
        if field.field_type == FIELD_CHARACTER:
            table.add_text_field(field.name, field.length)
        elif field.field_type == FIELD_NUMERIC:
            table.add_number_field(field.name, field.length, field.decimals)
        elif field.field_type == FIELD_LOGICAL:
            table.add_bool_field(field.name)
        elif field.field_type == FIELD_DATE:
            table.add_date_field(field.name)
    table._loading = False

    record_size = calculate_field_offsets(table.header.fields)
    if record_size != header.record_size:
        raise DBFFormatError(
            f"Record size {header.record_size} does not match field lengths ({record_size})")
    table._update_layout()

    end = header.header_size + header.record_count * header.record_size
    if len(data) < end:
        raise DBFFormatError(
            f"DBF data truncated: expected {end} bytes for {header.record_count} records, got {len(data)}")

    # Anything past the last record (the 0x1A marker) is not kept
    table._data = bytearray(data[:end])
    table.header.record_count = header.record_count

    for row in range(header.record_count):
        if table.is_deleted(row):
            table._deleted_rows.append(row)

    table._frozen = True
    logger.debug("Loaded table: %d fields, %d records, %d deleted",
                 table.field_count, table.num_records, len(table._deleted_rows))
    return table


def dbf_table_open(filename: str, encoding: str = DBF_DEFAULT_ENCODING) -> DBFTable:
    """Read a whole .DBF file into memory. OSError propagates unchanged."""
    with open(filename, 'rb') as f:
        data = f.read()
    logger.debug("Read %d bytes from %s", len(data), filename)
    return dbf_table_load(data, encoding=encoding)


def dbf_table_save(table: DBFTable, filename: str) -> None:
    """Write the whole table to a file in one go."""
    data = table.save_to_bytes()
    with open(filename, 'wb') as f:
        f.write(data)
    logger.debug("Wrote %d bytes (%d records) to %s", len(data), table.num_records, filename)


# Export functions
__all__ = [
    'DBFColumn', 'DBFHeader', 'DBFTable', 'DBFIterator',
    'DBF_SIGNATURE', 'DBF_HEADER_SIZE', 'DBF_DESCRIPTOR_SIZE',
    'DBF_HEADER_TERMINATOR', 'DBF_FILE_TERMINATOR',
    'DBF_RECORD_ACTIVE', 'DBF_RECORD_DELETED', 'DBF_FIELD_NAME_LENGTH',
    'DBF_MAX_HEADER_SIZE', 'DBF_MAX_RECORD_SIZE', 'DBF_MAX_TEXT_VALUE',
    'DBF_INT_LENGTH', 'DBF_FLOAT_LENGTH', 'DBF_FLOAT_DECIMALS',
    'DBF_BOOL_LENGTH', 'DBF_DATE_LENGTH',
    'normalize_field_name', 'pack_dbf_header', 'pack_field_descriptor',
    'calculate_field_offsets', 'parse_dbf_header',
    'dbf_table_new', 'dbf_table_load', 'dbf_table_open', 'dbf_table_save',
]
