"""
Record decoding for dBase (.DBF) files.
Each record is a delete flag followed by the fixed-width bytes of every field.
"""

import datetime
import logging
import re
import struct
from typing import Any, Callable, Dict, Optional

from dbf_errors import FieldTypeError, MemoError
from dbf_memo import DBFMemo
from dbf_module import DBF_DELETED_FLAG, DBFColumn, DBFHeader, DBFVersion
from dbf_options import DBFOpenOptions, get_field_encoding


logger = logging.getLogger(__name__)


# Julian day number minus proleptic Gregorian ordinal
JULIAN_DAY_ORDINAL_OFFSET = 1721425
CURRENCY_SCALE = 10000
MS_PER_DAY = 86400000

DECIMAL_PATTERN = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def parse_dbf_date(text: str) -> Optional[datetime.date]:
    """Parse a YYYYMMDD date, returning None for blank or invalid text."""
    text = text.strip()
    if len(text) != 8 or not text.isdigit():
        return None
    try:
        return datetime.date(int(text[0:4]), int(text[4:6]), int(text[6:8]))
    except ValueError:
        return None


def parse_vfp_datetime(julian_day: int, ms_since_midnight: int) -> Optional[datetime.datetime]:
    """
    Convert a Visual FoxPro timestamp to a datetime.

    Args:
        julian_day: Julian day number
        ms_since_midnight: Milliseconds since midnight, already corrected by +1

    Returns:
        Naive datetime truncated to whole seconds, or None if out of range
    """
    if not 0 <= ms_since_midnight <= MS_PER_DAY:
        return None
    try:
        day = datetime.date.fromordinal(julian_day - JULIAN_DAY_ORDINAL_OFFSET)
        return datetime.datetime(day.year, day.month, day.day) + datetime.timedelta(seconds=ms_since_midnight // 1000)
    except (ValueError, OverflowError):
        return None


def parse_number(text: str):
    """Parse numeric field text; blank or non-decimal text gives 0."""
    text = text.strip()
    if not DECIMAL_PATTERN.fullmatch(text):
        return 0
    try:
        return int(text)
    except ValueError:
        return float(text)


class DBFRecord(dict):
    """
    Field values of one record, keyed by field name.

    Whether the record is marked deleted is kept in the ``deleted`` attribute,
    never as a key, so it cannot clash with a real field. Two records are only
    equal when their deleted markers match as well.
    """

    def __init__(self, values=(), deleted: bool = False):
        super().__init__(values)
        self.deleted = deleted

    def __eq__(self, other):
        if isinstance(other, DBFRecord) and self.deleted != other.deleted:
            return False
        return dict.__eq__(self, other)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def __repr__(self) -> str:
        if self.deleted:
            return f"DBFRecord({dict.__repr__(self)}, deleted=True)"
        return f"DBFRecord({dict.__repr__(self)})"


def _expect_size(column: DBFColumn, size: int) -> None:
    if column.length != size:
        raise FieldTypeError(
            f"Invalid size {column.length} for field '{column.name}' of type '{column.field_type}' (must be {size}).")


# Field decoders: (raw field bytes, column, encoding, reader state) -> value

def _decode_character(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> str:
    return raw.rstrip(b' ').decode(encoding, errors='replace')


def _decode_number(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader'):
    return parse_number(raw.decode(encoding, errors='replace'))


def _decode_logical(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> Optional[bool]:
    if not raw:
        return None
    flag = chr(raw[0])
    if flag in 'TtYy':
        return True
    if flag in 'FfNn':
        return False
    return None


def _decode_date(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> Optional[datetime.date]:
    if not raw or raw[0] == 0x20:
        return None
    return parse_dbf_date(raw[:8].decode(encoding, errors='replace'))


def _decode_datetime(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> Optional[datetime.datetime]:
    _expect_size(column, 8)
    if raw[0] == 0x20:
        return None
    julian_day, ms_since_midnight = struct.unpack("<ll", raw)
    return parse_vfp_datetime(julian_day, ms_since_midnight + 1)


def _decode_double(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> float:
    _expect_size(column, 8)
    return struct.unpack("<d", raw)[0]


def _decode_integer(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> int:
    _expect_size(column, 4)
    return struct.unpack("<l", raw)[0]


def _decode_currency(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> float:
    _expect_size(column, 8)
    return struct.unpack("<q", raw)[0] / CURRENCY_SCALE


def _decode_memo(raw: bytes, column: DBFColumn, encoding: str, state: 'DBFRecordReader') -> Optional[str]:
    if state.header.version == DBFVersion.VISUAL_FOXPRO:
        _expect_size(column, 4)
        block_index = struct.unpack("<l", raw)[0]
    else:
        text = raw.strip(b' \x00').decode(encoding, errors='replace')
        try:
            block_index = int(text)
        except ValueError:
            block_index = 0
    if block_index == 0:
        return None

    if state.memo is None:
        if not state.options.loose:
            raise MemoError(f"Field '{column.name}' points to memo block {block_index} but no memo file was given.")
        return None

    return state.memo.read(block_index, encoding, state.options.read_mode)


FIELD_DECODERS: Dict[str, Callable[..., Any]] = {
    'C': _decode_character,
    'N': _decode_number,
    'F': _decode_number,
    'L': _decode_logical,
    'D': _decode_date,
    'T': _decode_datetime,
    'B': _decode_double,
    'I': _decode_integer,
    'Y': _decode_currency,
    'M': _decode_memo,
}


class DBFRecordReader:
    """Per-session state shared by the field decoders."""

    def __init__(self, header: DBFHeader, memo: Optional[DBFMemo], options: DBFOpenOptions):
        self.header = header
        self.memo = memo
        self.options = options
        # field encodings are fixed for the session
        self.encodings = [get_field_encoding(options.encoding, column.name) for column in header.fields]


def read_dbf_record(raw: bytes, state: DBFRecordReader) -> Optional[DBFRecord]:
    """
    Decode one record.

    Args:
        raw: The record bytes, delete flag included
        state: The DBFRecordReader of the read session

    Returns:
        The decoded record, or None if it is deleted and deleted records are not wanted
    """
    deleted = raw[0] == DBF_DELETED_FLAG
    if deleted and not state.options.include_deleted_records:
        return None

    record = DBFRecord(deleted=deleted)
    for column, encoding in zip(state.header.fields, state.encodings):
        field_bytes = raw[column.offset:column.offset + column.length]
        decoder = FIELD_DECODERS.get(column.field_type)
        try:
            if decoder is None:
                raise FieldTypeError(f"Type '{column.field_type}' is not supported")
            value = decoder(field_bytes, column, encoding, state)
        except (FieldTypeError, struct.error) as e:
            if not state.options.loose:
                if isinstance(e, struct.error):
                    raise FieldTypeError(f"Field '{column.name}' could not be decoded: {e}") from e
                raise
            logger.debug("Skipping field '%s': %s", column.name, e)
            continue
        record[column.name] = value

    return record
