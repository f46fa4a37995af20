"""
Mapping between dataclass records and table rows.

A RecordMapper is built once per dataclass and holds one FieldBinding per
mapped member. Member names are used as field names (matched without regard
to case); the member annotation decides the field type:

    str            -> Character (length 50 unless overridden)
    int            -> Numeric(17, 0)
    bool           -> Logical, stored as 't' / 'f'
    float          -> Numeric(17, 8), written with six decimals
    datetime.date  -> Date, stored as YYYYMMDD

Members can be tuned through dataclass field metadata:

    @dataclass
    class Person:
        name: str = field(default='', metadata={'dbf': 80})   # C(80)
        cache: dict = field(default=None, metadata={'dbf': '-'})  # not stored

Members whose name starts with an underscore and members typed as another
dataclass are not mapped. Any other annotation raises
UnsupportedMemberKindError as soon as the mapper is built.

Writing resolves every mapped field before the table is touched, so a record
that does not fit the table leaves it unchanged. A record type whose
constructor needs members that are not stored can still be filled from a row
with read_into().
"""

import dataclasses
import datetime
import logging
import typing
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from dbf_codec import FIELD_CHARACTER, FIELD_NUMERIC, FIELD_LOGICAL, FIELD_DATE, DBF_MAX_FIELD_LENGTH
from dbf_errors import UnsupportedMemberKindError, ValueParseError


logger = logging.getLogger(__name__)


DBF_DEFAULT_TEXT_LENGTH = 50
DBF_METADATA_KEY = 'dbf'
DBF_SKIP = '-'

TRUE_VALUES = ('T', 't', 'Y', 'y')


def _encode_text(value: Any) -> str:
    return '' if value is None else str(value)


def _encode_int(value: Any) -> str:
    return '' if value is None else str(int(value))


def _encode_bool(value: Any) -> str:
    return 't' if value else 'f'


def _encode_float(value: Any) -> str:
    return '' if value is None else f"{float(value):f}"


def _encode_date(value: Any) -> str:
    return '' if value is None else value.strftime('%Y%m%d')


def _decode_text(text: str) -> str:
    return text


def _decode_int(text: str) -> int:
    return int(text)


def _decode_bool(text: str) -> bool:
    return text in TRUE_VALUES


def _decode_float(text: str) -> float:
    return float(text)


def _decode_date(text: str) -> Optional[datetime.date]:
    if not text:
        return None
    return datetime.datetime.strptime(text, '%Y%m%d').date()


# member type -> (field type, encode, decode)
MEMBER_KINDS: Dict[type, tuple] = {
    str: (FIELD_CHARACTER, _encode_text, _decode_text),
    int: (FIELD_NUMERIC, _encode_int, _decode_int),
    bool: (FIELD_LOGICAL, _encode_bool, _decode_bool),
    float: (FIELD_NUMERIC, _encode_float, _decode_float),
    datetime.date: (FIELD_DATE, _encode_date, _decode_date),
}


@dataclass(frozen=True)
class FieldBinding:
    """How one dataclass member is stored in a table field."""
    member: str  # attribute name on the record
    member_type: type
    field_type: str  # 'C', 'N', 'L' or 'D'
    length: int  # text length; other kinds use their fixed sizes
    encode: Callable[[Any], str]
    decode: Callable[[str], Any]
    init: bool = True  # passed to the constructor when reading

    @property
    def field_name(self) -> str:
        return self.member

    def add_to(self, table) -> None:
        """Add the matching field to a table schema."""
        if self.member_type is str:
            table.add_text_field(self.member, self.length)
        elif self.member_type is bool:
            table.add_bool_field(self.member)
        elif self.member_type is int:
            table.add_int_field(self.member)
        elif self.member_type is float:
            table.add_float_field(self.member)
        else:
            table.add_date_field(self.member)


def _unwrap_optional(annotation: Any) -> Any:
    """Optional[X] maps like X."""
    if typing.get_origin(annotation) is typing.Union:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _text_length(record_type: type, member: dataclasses.Field) -> int:
    override = member.metadata.get(DBF_METADATA_KEY)
    if override is None:
        return DBF_DEFAULT_TEXT_LENGTH
    try:
        length = int(override, 0) if isinstance(override, str) else int(override)
    except (TypeError, ValueError):
        length = 0
    if not 1 <= length <= DBF_MAX_FIELD_LENGTH:
        raise UnsupportedMemberKindError(
            f"{record_type.__name__}.{member.name}: invalid dbf length {override!r}")
    return length


def build_bindings(record_type: type) -> List[FieldBinding]:
    """
    Build the member bindings of a dataclass.

    Raises:
        UnsupportedMemberKindError: If record_type is not a dataclass, a member
            has an unsupported annotation or a dbf length override is invalid
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise UnsupportedMemberKindError(f"dbf: record type must be a dataclass, got {record_type!r}")

    try:
        hints = typing.get_type_hints(record_type)
    except NameError as e:
        raise UnsupportedMemberKindError(f"{record_type.__name__}: {e}") from None

    bindings = []
    for member in dataclasses.fields(record_type):
        if member.name.startswith('_'):
            continue
        if member.metadata.get(DBF_METADATA_KEY) == DBF_SKIP:
            continue

        member_type = _unwrap_optional(hints.get(member.name, member.type))
        if isinstance(member_type, type) and dataclasses.is_dataclass(member_type):
            # nested records are not flattened
            continue

        kind = MEMBER_KINDS.get(member_type)
        if kind is None:
            raise UnsupportedMemberKindError(
                f"{record_type.__name__}.{member.name}: unsupported type {member_type!r} "
                f"for database table schema, use metadata={{'dbf': '-'}} to omit")

        field_type, encode, decode = kind
        # overrides are checked on every member, only text fields use them
        length = _text_length(record_type, member)
        bindings.append(FieldBinding(
            member=member.name,
            member_type=member_type,
            field_type=field_type,
            length=length if member_type is str else 0,
            encode=encode,
            decode=decode,
            init=member.init,
        ))
    return bindings


def required_members(record_type: type) -> List[str]:
    """Constructor arguments of a dataclass that have no default."""
    return [
        member.name for member in dataclasses.fields(record_type)
        if member.init
        and member.default is dataclasses.MISSING
        and member.default_factory is dataclasses.MISSING
    ]


class RecordMapper:
    """Reads and writes one dataclass type to table rows."""

    def __init__(self, record_type: type):
        self.bindings = tuple(build_bindings(record_type))
        self.record_type = record_type

        # Required constructor arguments that are not stored in the table.
        # Such records can be written and read_into(), but not built by read().
        mapped = {binding.member for binding in self.bindings}
        self.unmapped_required = [name for name in required_members(record_type) if name not in mapped]

        logger.debug("Mapped %s: %s", record_type.__name__,
                     ", ".join(f"{b.member}:{b.field_type}" for b in self.bindings))

    def create_schema(self, table) -> None:
        for binding in self.bindings:
            binding.add_to(table)

    def _check_record(self, record) -> None:
        if not isinstance(record, self.record_type):
            raise UnsupportedMemberKindError(
                f"dbf: expected {self.record_type.__name__} record, got {type(record).__name__}")

    def field_indexes(self, table) -> List[int]:
        """
        Resolve every binding to a table field index.

        Raises:
            FieldNotFoundError: If the table lacks a mapped field
        """
        return [table.field_index(binding.field_name) for binding in self.bindings]

    def encode(self, table, record) -> List[Tuple[int, str]]:
        """Resolve fields and encode values of a record without touching the table."""
        self._check_record(record)
        indexes = self.field_indexes(table)
        return [(index, binding.encode(getattr(record, binding.member)))
                for index, binding in zip(indexes, self.bindings)]

    def write(self, table, row: int, record) -> int:
        values = self.encode(table, record)
        table.record_offset(row)  # IndexError before any value is written
        for index, value in values:
            table.set_field_value(row, index, value)
        return row

    def append(self, table, record) -> int:
        values = self.encode(table, record)
        row = table.append_record()
        for index, value in values:
            table.set_field_value(row, index, value)
        return row

    def _decode_row(self, table, row: int) -> Dict[str, Any]:
        values = {}
        for index, binding in zip(self.field_indexes(table), self.bindings):
            text = table.field_value(row, index)
            try:
                values[binding.member] = binding.decode(text)
            except (TypeError, ValueError):
                raise ValueParseError(binding.field_name, text, binding.member_type.__name__, row) from None
        return values

    def read(self, table, row: int):
        """
        Build a new record from a row.

        Raises:
            UnsupportedMemberKindError: If the record type needs constructor
                arguments that are not stored in the table; use read_into()
        """
        if self.unmapped_required:
            raise UnsupportedMemberKindError(
                f"{self.record_type.__name__} can not be built from a row, members "
                f"{', '.join(self.unmapped_required)} are not stored and have no default; "
                f"use read_into() with an existing record")

        values = self._decode_row(table, row)
        init_values = {b.member: values[b.member] for b in self.bindings if b.init}
        record = self.record_type(**init_values)
        for binding in self.bindings:
            if not binding.init:
                setattr(record, binding.member, values[binding.member])
        return record

    def read_into(self, table, row: int, record) -> None:
        """Update an existing record; it is left untouched when a value fails to parse."""
        self._check_record(record)
        for member, value in self._decode_row(table, row).items():
            setattr(record, member, value)


_mappers: Dict[type, RecordMapper] = {}


def mapper_for(record_type: type) -> RecordMapper:
    """Return the cached mapper of a dataclass, building it on first use."""
    mapper = _mappers.get(record_type)
    if mapper is None:
        mapper = RecordMapper(record_type)
        _mappers[record_type] = mapper
    return mapper


def create_schema(table, record_type: type) -> None:
    """Add one field per mapped member of record_type to the table."""
    mapper_for(record_type).create_schema(table)


def _instance_mapper(record) -> RecordMapper:
    if isinstance(record, type) or not dataclasses.is_dataclass(record):
        raise UnsupportedMemberKindError(f"dbf: record must be a dataclass instance, got {record!r}")
    return mapper_for(type(record))


def write_record(table, row: int, record) -> int:
    """Store a record into an existing row and return the row index."""
    return _instance_mapper(record).write(table, row, record)


def append_record(table, record) -> int:
    """Append a new row holding the record."""
    mapper = _instance_mapper(record)
    return mapper.append(table, record)


def read_record(table, row: int, record_type: type):
    """
    Read a row into a new record_type instance.

    Raises:
        ValueParseError: If a stored value does not convert to the member type
    """
    return mapper_for(record_type).read(table, row)


def read_into(table, row: int, record) -> None:
    """Read a row into an existing record."""
    _instance_mapper(record).read_into(table, row, record)


__all__ = [
    'DBF_DEFAULT_TEXT_LENGTH', 'DBF_METADATA_KEY', 'DBF_SKIP',
    'FieldBinding', 'RecordMapper', 'build_bindings', 'required_members', 'mapper_for',
    'create_schema', 'write_record', 'append_record', 'read_record', 'read_into',
]
