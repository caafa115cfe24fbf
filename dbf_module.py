"""
Header and field descriptor parsing for dBase (.DBF) files.
This module turns the fixed file header and the field descriptor table into a DBFHeader.
"""

import datetime
import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Set

from dbf_errors import FieldTypeError, FormatError


logger = logging.getLogger(__name__)


# Constants
DBF_HEADER_SIZE = 32
DBF_FIELD_DESCRIPTOR_SIZE = 32
DBF_FIELD_NAME_SIZE = 11
DBF_MAX_FIELD_NAME_LENGTH = 10
DBF_MAX_DECIMALS = 15
DBF_HEADER_TERMINATOR = 0x0D
DBF_DELETED_FLAG = 0x2A


class DBFVersion(IntEnum):
    """Version byte values that can be read."""
    DBASE3 = 0x03  # dBase III without memo file
    DBASE3_MEMO = 0x83  # dBase III with memo file
    DBASE4_MEMO = 0x8B  # dBase IV with memo file
    VISUAL_FOXPRO = 0x30  # Visual FoxPro 9 (may have memo file)
    FOXPRO2 = 0xF5  # FoxPro 2.x (may have memo file)


DBASE_FIELD_TYPES = frozenset('CNFLDM')
FOXPRO_FIELD_TYPES = DBASE_FIELD_TYPES | frozenset('TBIY')

# Exact sizes for fixed-width types
FIXED_FIELD_SIZES = {'L': 1, 'D': 8, 'T': 8, 'B': 8, 'Y': 8, 'I': 4}

# Inclusive size ranges for variable-width types
FIELD_SIZE_RANGES = {'C': (1, 255), 'N': (1, 20), 'F': (1, 20)}


# Data structures
@dataclass
class DBFColumn:
    """Represents a column/field in a DBF file."""
    name: str  # Field name (max 10 chars)
    field_type: str  # 'C', 'N', 'L', etc.
    length: int  # Field length in bytes
    decimals: int = 0  # Number of decimal places (for numeric)
    offset: int = 0  # offset within record; first field starts at 1


@dataclass
class DBFHeader:
    """Represents the header of a DBF file."""
    version: int = 0  # version byte, see DBFVersion
    year: int = 0  # Last update year (since 1900)
    month: int = 0  # Last update month
    day: int = 0  # Last update day
    record_count: int = 0  # Number of records, deleted ones included
    header_size: int = 0  # Header size in bytes
    record_size: int = 0  # Record size in bytes
    table_flags: int = 0  # dBase IV table flags
    language_driver: int = 0  # dBase IV language driver id
    fields: List[DBFColumn] = field(default_factory=list)  # Field descriptors
    field_count: int = 0  # Actual number of fields used

    @property
    def date_of_last_update(self) -> Optional[datetime.date]:
        """Last update date, or None when the header bytes are not a valid date."""
        try:
            return datetime.date(self.year + 1900, self.month, self.day)
        except ValueError:
            return None

    def get_field(self, name: str) -> Optional[DBFColumn]:
        for column in self.fields:
            if column.name == name:
                return column
        return None


def is_valid_file_version(version: int) -> bool:
    """Check that a version byte is one of the supported dialects."""
    return version in DBFVersion._value2member_map_


def is_foxpro_version(version: int) -> bool:
    return version in (DBFVersion.VISUAL_FOXPRO, DBFVersion.FOXPRO2)


def calculate_record_size(fields: List[DBFColumn]) -> int:
    """Record size implied by the fields: the delete flag plus every field length."""
    return 1 + sum(column.length for column in fields)


def validate_dbf_column(column: DBFColumn, version: int, seen_names: Set[str]) -> None:
    """
    Check a field descriptor against the rules of a file version.

    Args:
        column: The descriptor just read from the header
        version: The file version byte
        seen_names: Names of the descriptors already accepted

    Raises:
        FieldTypeError: the type is not legal for this version
        FormatError: bad name, duplicate name or illegal size
    """
    name = column.name
    if not name:
        raise FormatError("Field name must not be empty.")
    if len(name) > DBF_MAX_FIELD_NAME_LENGTH:
        raise FormatError(f"Field name '{name}' is too long (maximum is {DBF_MAX_FIELD_NAME_LENGTH} characters).")
    if name in seen_names:
        raise FormatError(f"Duplicate field name: {name}.")

    field_type = column.field_type
    legal_types = FOXPRO_FIELD_TYPES if is_foxpro_version(version) else DBASE_FIELD_TYPES
    if field_type not in legal_types:
        raise FieldTypeError(f"Type '{field_type}' is not supported for version 0x{version:02X}.")

    size = column.length
    if field_type == 'M':
        expected = 4 if version == DBFVersion.VISUAL_FOXPRO else 10
        if size != expected:
            raise FormatError(f"Invalid size {size} for memo field '{name}' (must be {expected}).")
    elif field_type in FIXED_FIELD_SIZES:
        expected = FIXED_FIELD_SIZES[field_type]
        if size != expected:
            raise FormatError(f"Invalid size {size} for field '{name}' of type '{field_type}' (must be {expected}).")
    else:
        low, high = FIELD_SIZE_RANGES[field_type]
        if not low <= size <= high:
            raise FormatError(f"Invalid size {size} for field '{name}' of type '{field_type}' (must be {low}-{high}).")

    if column.decimals > DBF_MAX_DECIMALS:
        raise FormatError(f"Decimal count {column.decimals} of field '{name}' is too large (maximum is {DBF_MAX_DECIMALS}).")


def read_dbf_header(data: bytes, encoding: str = 'latin1', read_mode: str = 'strict') -> DBFHeader:
    """
    Read a DBF header from the start of a table.

    Args:
        data: The whole DBF file
        encoding: Encoding used for field names
        read_mode: 'strict' validates the version and every descriptor,
            'loose' accepts them as-is and trusts the field sizes

    Returns:
        The parsed DBFHeader with field offsets filled in
    """
    loose = read_mode == 'loose'
    header = DBFHeader()

    if len(data) < DBF_HEADER_SIZE:
        raise FormatError(f"Invalid DBF file: header is {len(data)} bytes, expected at least {DBF_HEADER_SIZE}.")

    # Read main file header (32 bytes)
    header.version = data[0]
    header.year = data[1]
    header.month = data[2]
    header.day = data[3]
    header.record_count, header.header_size, header.record_size = struct.unpack_from("<LHH", data, 4)
    header.table_flags = data[28]
    header.language_driver = data[29]

    if not is_valid_file_version(header.version):
        if not loose:
            raise FormatError(f"Invalid file version: {header.version}.")
        logger.warning("Reading unsupported file version 0x%02X in loose mode", header.version)

    # Read field descriptors until 0x0D or the end of the declared header
    fields = []
    seen_names = set()
    offset = DBF_HEADER_SIZE
    while offset < header.header_size and offset < len(data):
        if data[offset] == DBF_HEADER_TERMINATOR:
            break
        if offset + DBF_FIELD_DESCRIPTOR_SIZE > len(data):
            # short descriptor, reported as a missing terminator
            break

        field_buf = data[offset:offset + DBF_FIELD_DESCRIPTOR_SIZE]
        name_bytes = field_buf[:DBF_FIELD_NAME_SIZE].split(b'\x00', 1)[0]
        column = DBFColumn(
            name=name_bytes.decode(encoding, errors='replace'),
            field_type=chr(field_buf[11]),
            length=field_buf[16],
            decimals=field_buf[17],
        )
        offset += DBF_FIELD_DESCRIPTOR_SIZE

        if not loose:
            validate_dbf_column(column, header.version, seen_names)
        seen_names.add(column.name)
        fields.append(column)

    # Field descriptor terminator; never optional
    if offset >= len(data) or data[offset] != DBF_HEADER_TERMINATOR:
        raise FormatError("Invalid DBF file: header terminator not found.")

    header.fields = fields
    header.field_count = len(fields)

    # Calculate field offsets
    position = 1  # First byte is delete flag
    for column in header.fields:
        column.offset = position
        position += column.length

    computed_size = calculate_record_size(fields)
    if header.record_size != computed_size:
        if not loose:
            raise FormatError(f"Invalid record length: {header.record_size}. Expected {computed_size}.")
        logger.warning("Record length %d in header replaced by computed length %d",
                       header.record_size, computed_size)
        header.record_size = computed_size

    # Make sure every declared record is present
    available = max(len(data) - header.header_size, 0) // header.record_size
    if available < header.record_count:
        if not loose:
            raise FormatError(
                f"Invalid DBF file: {header.record_count} records declared but only {available} present.")
        logger.warning("Record count %d in header lowered to %d complete records",
                       header.record_count, available)
        header.record_count = available

    return header
