"""
CSV <-> DBF conversion.

csv_to_table() builds a table from CSV rows. The first row holds the field
names; column types are inferred from the data:

- every value an integer      -> Numeric(17, 0)
- integers and decimals       -> Numeric(17, 8)
- every value T/t/F/f/Y/y/N/n -> Logical
- anything else               -> Character, as wide as the longest value

Empty cells do not influence the inferred type. Character values longer than
254 bytes are cut to 250 bytes plus '...' and counted in the LoadReport.

table_to_csv() writes the field names and every active row to a csv writer.
"""

import csv
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from dbf_codec import DBF_DEFAULT_ENCODING
from dbf_errors import ConversionError
from dbf_module import (
    DBFTable, DBF_FIELD_NAME_LENGTH, DBF_MAX_TEXT_VALUE,
    dbf_table_new, normalize_field_name,
)


logger = logging.getLogger(__name__)


TRUNCATED_LENGTH = 250
TRUNCATION_SUFFIX = '...'
BOOL_VALUES = frozenset('TtFfYyNn')

_INT_RE = re.compile(r'^[+-]?\d+$')
_FLOAT_RE = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')


class ColumnKind(Enum):
    """Inferred type of a CSV column."""
    NONE = 'none'  # no non-empty value seen
    INT = 'int'
    FLOAT = 'float'
    BOOL = 'bool'
    TEXT = 'text'


@dataclass
class ColumnSpec:
    """Inference result for one CSV column."""
    name: str
    kind: ColumnKind = ColumnKind.NONE
    length: int = 1  # widest value in bytes, capped at 254
    truncated: int = 0  # number of values cut to fit


@dataclass
class LoadReport:
    """What csv_to_table() did."""
    columns: List[ColumnSpec] = field(default_factory=list)
    loaded: int = 0
    filtered: int = 0

    @property
    def truncated(self) -> int:
        return sum(column.truncated for column in self.columns)


def classify_value(text: str) -> ColumnKind:
    """Kind of a single non-empty CSV value."""
    if _INT_RE.match(text):
        return ColumnKind.INT
    if _FLOAT_RE.match(text):
        return ColumnKind.FLOAT
    if text in BOOL_VALUES:
        return ColumnKind.BOOL
    return ColumnKind.TEXT


def combine_kinds(current: ColumnKind, value: ColumnKind) -> ColumnKind:
    """Widen a column kind so it also holds value."""
    if current is ColumnKind.NONE or current is value:
        return value
    if {current, value} == {ColumnKind.INT, ColumnKind.FLOAT}:
        return ColumnKind.FLOAT
    return ColumnKind.TEXT


def truncate_value(value: str, encoding: str = DBF_DEFAULT_ENCODING) -> str:
    """Cut a value to at most 250 encoded bytes, on a character boundary, and mark it with '...'."""
    data = value.encode(encoding, errors='replace')[:TRUNCATED_LENGTH]
    return data.decode(encoding, errors='ignore') + TRUNCATION_SUFFIX


def parse_filter(spec: str) -> Tuple[int, str]:
    """
    Parse a 'field#=value' filter.

    Returns:
        Tuple of (zero-based column number, value)
    """
    number, sep, value = spec.partition('=')
    if not sep:
        raise ConversionError(f"filter should look like field#=value, got {spec!r}")
    try:
        column = int(number)
    except ValueError:
        raise ConversionError(f"filter should be a field number, instead it is {number!r}") from None
    if column < 0:
        raise ConversionError(f"filter field number can not be negative: {column}")
    return (column, value)


def infer_columns(rows: Sequence[List[str]], encoding: str = DBF_DEFAULT_ENCODING) -> List[ColumnSpec]:
    """
    Infer column kinds and widths. Oversized text values in rows are
    truncated in place.

    Raises:
        ConversionError: If the header row is missing, a field name is too
            long or repeated, or a row has the wrong number of values
    """
    if not rows:
        raise ConversionError("CSV input has no header row")

    columns = []
    seen = set()
    for name in rows[0]:
        if not name:
            raise ConversionError("Field names can not be empty")
        if len(name) > DBF_FIELD_NAME_LENGTH:
            raise ConversionError(f"Field name can not be over {DBF_FIELD_NAME_LENGTH} characters long: {name!r}")
        normalized = normalize_field_name(name)
        if normalized in seen:
            raise ConversionError(f"Field names must be unique: {name!r}")
        seen.add(normalized)
        columns.append(ColumnSpec(name=name))

    for line, rec in enumerate(rows[1:], start=2):
        if len(rec) != len(columns):
            raise ConversionError(f"Line {line}: expected {len(columns)} values, found {len(rec)}")

        for j, value in enumerate(rec):
            column = columns[j]
            if not value:
                continue
            column.kind = combine_kinds(column.kind, classify_value(value))

            size = len(value.encode(encoding, errors='replace'))
            if size > DBF_MAX_TEXT_VALUE:
                if not column.truncated:
                    logger.warning("Field is longer than %d characters, and will be truncated '%s'",
                                   DBF_MAX_TEXT_VALUE, column.name)
                column.truncated += 1
                rec[j] = truncate_value(value, encoding)
                size = len(rec[j].encode(encoding, errors='replace'))
            column.length = max(column.length, size)

    return columns


def build_table(columns: List[ColumnSpec],
                overrides: Optional[Dict[str, Tuple[str, int, int]]] = None,
                encoding: str = DBF_DEFAULT_ENCODING) -> DBFTable:
    """
    Create an empty table for the inferred columns.

    Args:
        columns: Result of infer_columns()
        overrides: Optional field name -> (type, length, decimals) replacing
            the inferred definition
    """
    overrides = {normalize_field_name(k): v for k, v in (overrides or {}).items()}
    unknown = set(overrides) - {normalize_field_name(column.name) for column in columns}
    if unknown:
        raise ConversionError(f"Field definitions given for unknown columns: {', '.join(sorted(unknown))}")

    table = dbf_table_new(encoding=encoding)

    for column in columns:
        override = overrides.get(normalize_field_name(column.name))
        if override:
            table.add_field(column.name, *override)
        elif column.kind is ColumnKind.INT:
            table.add_int_field(column.name)
        elif column.kind is ColumnKind.FLOAT:
            table.add_float_field(column.name)
        elif column.kind is ColumnKind.BOOL:
            table.add_bool_field(column.name)
        else:
            table.add_text_field(column.name, column.length)

    return table


def csv_to_table(rows: List[List[str]], filter_spec: Optional[str] = None,
                 overrides: Optional[Dict[str, Tuple[str, int, int]]] = None,
                 encoding: str = DBF_DEFAULT_ENCODING) -> Tuple[DBFTable, LoadReport]:
    """
    Build a table from CSV rows (header row first).

    Args:
        rows: CSV rows; oversized values are truncated in place
        filter_spec: Optional 'field#=value' filter, only matching rows are loaded
        overrides: Optional field definitions replacing the inferred ones
        encoding: Text encoding of the table

    Returns:
        Tuple of (table, report)
    """
    columns = infer_columns(rows, encoding)
    report = LoadReport(columns=columns)

    filter_column, filter_value = (-1, '')
    if filter_spec:
        filter_column, filter_value = parse_filter(filter_spec)
        if filter_column >= len(columns):
            raise ConversionError(f"filter field number outside of record length bounds: {filter_column}")

    table = build_table(columns, overrides, encoding)

    for rec in rows[1:]:
        if filter_column >= 0 and rec[filter_column] != filter_value:
            report.filtered += 1
            continue

        row = table.append_record()
        for j, value in enumerate(rec):
            table.set_field_value(row, j, value)
        report.loaded += 1

    logger.debug("CSV rows loaded: %d, filtered: %d, truncated values: %d",
                 report.loaded, report.filtered, report.truncated)
    return table, report


def read_csv_rows(filename: str, encoding: str = DBF_DEFAULT_ENCODING) -> List[List[str]]:
    """Read a whole CSV file."""
    with open(filename, 'r', newline='', encoding=encoding) as f:
        return list(csv.reader(f))


def table_to_csv(table: DBFTable, writer) -> int:
    """
    Write the field names and all active rows to a csv writer.

    Returns:
        Number of data rows written
    """
    writer.writerow(table.field_names)

    count = 0
    iterator = table.new_iterator()
    while iterator.advance():
        writer.writerow(iterator.row())
        count += 1
    return count


__all__ = [
    'ColumnKind', 'ColumnSpec', 'LoadReport',
    'classify_value', 'combine_kinds', 'truncate_value', 'parse_filter', 'infer_columns',
    'build_table', 'csv_to_table', 'read_csv_rows', 'table_to_csv',
]
