"""
Read sessions over in-memory DBF files.

A DBFFile owns the read cursor of one table. It is not thread-safe: calls to
read_records() or iteration on the same handle from several threads must be
serialised by the caller.
"""

import datetime
import logging
from typing import Any, Iterator, List, Mapping, Optional, Union

from dbf_memo import DBFMemo
from dbf_module import DBFColumn, DBFHeader, read_dbf_header
from dbf_options import DBFOpenOptions, get_field_encoding, normalise_open_options
from dbf_record import FIELD_DECODERS, DBFRecord, DBFRecordReader, read_dbf_record


logger = logging.getLogger(__name__)


# Constants
DBF_RECORDS_PER_PAGE = 1000
DBF_ITER_PAGE_SIZE = 100
DBF_DEFAULT_MAX_COUNT = 10000000


class DBFFile:
    """An opened DBF file and its read position."""

    def __init__(self, data: bytes, header: DBFHeader, memo: Optional[DBFMemo], options: DBFOpenOptions):
        self._data = data
        self._header = header
        self._memo = memo
        self._options = options
        self._reader = DBFRecordReader(header, memo, options)
        self._records_read = 0

    @property
    def header(self) -> DBFHeader:
        return self._header

    @property
    def fields(self) -> List[DBFColumn]:
        return self._header.fields

    @property
    def version(self) -> int:
        return self._header.version

    @property
    def record_count(self) -> int:
        """Total number of records, deleted ones included."""
        return self._header.record_count

    @property
    def date_of_last_update(self) -> Optional[datetime.date]:
        return self._header.date_of_last_update

    @property
    def records_read(self) -> int:
        """Number of raw records consumed so far."""
        return self._records_read

    @property
    def options(self) -> DBFOpenOptions:
        return self._options

    def read_records(self, max_count: int = DBF_DEFAULT_MAX_COUNT) -> List[DBFRecord]:
        """
        Read records from the current position.

        Deleted records are skipped unless include_deleted_records was set, in
        which case they come back with ``deleted`` set to True.

        Args:
            max_count: Maximum number of records to return

        Returns:
            Up to max_count records; fewer only when the end of the file is reached
        """
        return dbf_file_read_records(self, max_count)

    def iter_records(self) -> Iterator[DBFRecord]:
        """
        Yield the remaining records one at a time.

        The iterator only moves forward; once exhausted, open the data again to
        read it a second time.
        """
        while self._records_read < self.record_count:
            yield from self.read_records(DBF_ITER_PAGE_SIZE)

    def __iter__(self) -> Iterator[DBFRecord]:
        return self.iter_records()

    def __repr__(self) -> str:
        return (f"DBFFile(version=0x{self.version:02X}, fields={self._header.field_count}, "
                f"records={self.record_count}, read={self._records_read})")


def dbf_file_open(data: Union[bytes, bytearray, memoryview],
                  memo_data: Optional[Union[bytes, bytearray, memoryview]] = None,
                  options: Optional[Union[DBFOpenOptions, Mapping[str, Any]]] = None) -> DBFFile:
    """
    Open a DBF file held in memory.

    Args:
        data: The whole DBF file
        memo_data: The whole .DBT/.FPT memo file, if any
        options: DBFOpenOptions or a dict with the keys encoding, read_mode
            and include_deleted_records

    Returns:
        A DBFFile positioned at the first record
    """
    options = normalise_open_options(options)

    # Work on immutable copies; callers keep ownership of their buffers
    data = data if isinstance(data, bytes) else bytes(data)
    if memo_data is not None and not isinstance(memo_data, bytes):
        memo_data = bytes(memo_data)

    header = read_dbf_header(data, get_field_encoding(options.encoding), options.read_mode)

    if options.loose:
        unsupported = [column.name for column in header.fields if column.field_type not in FIELD_DECODERS]
        if unsupported:
            logger.warning("Fields with unsupported types will be omitted: %s", ', '.join(unsupported))

    memo = DBFMemo(memo_data, header.version) if memo_data is not None else None

    logger.debug("Opened DBF version 0x%02X: %d fields, %d records, record size %d, memo block size %s",
                 header.version, header.field_count, header.record_count, header.record_size,
                 memo.block_size if memo else None)

    return DBFFile(data, header, memo, options)


def dbf_file_read_records(dbf: DBFFile, max_count: int = DBF_DEFAULT_MAX_COUNT) -> List[DBFRecord]:
    """
    Read up to max_count records from the cursor of a DBFFile.

    Raw records are sliced one page at a time so large tables are never
    copied whole; paging does not change which records are returned.

    Args:
        dbf: The DBF file object
        max_count: Maximum number of records to return

    Returns:
        List of decoded records
    """
    if max_count < 0:
        raise ValueError(f"max_count must not be negative, got {max_count}")

    header = dbf._header
    record_size = header.record_size
    records = []

    while dbf._records_read < header.record_count and len(records) < max_count:
        page_count = min(header.record_count - dbf._records_read,
                         max_count - len(records),
                         DBF_RECORDS_PER_PAGE)

        start = header.header_size + dbf._records_read * record_size
        page = dbf._data[start:start + page_count * record_size]

        for i in range(page_count):
            raw = page[i * record_size:(i + 1) * record_size]
            record = read_dbf_record(raw, dbf._reader)
            dbf._records_read += 1
            if record is None:
                continue
            records.append(record)

    return records
