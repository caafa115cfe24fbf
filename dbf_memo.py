"""
Memo file (.DBT/.FPT) reading.

Three layouts are supported, selected by the version byte of the owning table:
- dBase III (0x83): data runs from the start block up to a 0x1A terminator, no header.
- dBase IV (0x8B): the first block starts with the marker 0x0008FFFF and a
  little-endian total length (header included), data continues across blocks.
- FoxPro (0x30, 0xF5): the first block starts with a big-endian type (1 = text)
  and a big-endian data length, data continues across blocks.
"""

import logging
import struct
from typing import Optional

from dbf_errors import MemoError
from dbf_module import DBFVersion


logger = logging.getLogger(__name__)


DBF_MEMO_BLOCK_SIZE = 512
DBF_MEMO_TERMINATOR = 0x1A
DBF_MEMO_HEADER_SIZE = 8
DBASE4_MEMO_MARKER = 0x0008FFFF
FOXPRO_MEMO_TYPE_TEXT = 1


def dbf_memo_block_size(data: bytes, version: int) -> int:
    """
    Get the block size of a memo file.

    Args:
        data: The whole memo file
        version: Version byte of the owning DBF file

    Returns:
        Block size in bytes (512 when the memo header does not give one)
    """
    block_size = 0
    if version in (DBFVersion.VISUAL_FOXPRO, DBFVersion.FOXPRO2):
        if len(data) >= 8:
            block_size = struct.unpack_from("<H", data, 6)[0]
    elif version == DBFVersion.DBASE4_MEMO:
        if len(data) >= 8:
            block_size = struct.unpack_from("<l", data, 4)[0]
    if block_size <= 0:
        block_size = DBF_MEMO_BLOCK_SIZE
    return block_size


class DBFMemo:
    """Read-only view of a memo file bound to the version of its table."""

    def __init__(self, data: bytes, version: int):
        self.data = data
        self.version = version
        self.block_size = dbf_memo_block_size(data, version)

    def read(self, block_index: int, encoding: str, read_mode: str = 'strict') -> Optional[str]:
        """
        Read the memo starting at a block.

        Args:
            block_index: Block number stored in the memo field (non-zero)
            encoding: Encoding applied to the assembled bytes
            read_mode: 'strict' raises MemoError on bad data, 'loose' returns '' or None

        Returns:
            The memo text, '' for non-text FoxPro memos
        """
        loose = read_mode == 'loose'
        try:
            if self.version == DBFVersion.DBASE3_MEMO:
                payload = self._read_dbase3(block_index)
            elif self.version == DBFVersion.DBASE4_MEMO:
                payload = self._read_dbase4(block_index)
            elif self.version in (DBFVersion.VISUAL_FOXPRO, DBFVersion.FOXPRO2):
                payload = self._read_foxpro(block_index)
            else:
                if not loose:
                    raise MemoError(f"Reading version {self.version} memo fields is not supported.")
                logger.warning("Memo fields of version 0x%02X are not supported, using None", self.version)
                return None
        except MemoError as e:
            if not loose:
                raise
            logger.warning("Memo block %d unreadable (%s), using empty value", block_index, e)
            return ''

        # Decode once, after all blocks are joined
        return payload.decode(encoding, errors='replace')

    def _block_start(self, block_index: int) -> int:
        start = block_index * self.block_size
        if block_index < 0 or start >= len(self.data):
            raise MemoError("Error reading memo file (read past end).")
        return start

    def _read_blocks(self, position: int, length: int) -> bytes:
        """Collect length bytes from position onwards, one block at a time."""
        if length < 0:
            raise MemoError(f"Invalid memo length {length} at offset {position}.")
        chunks = []
        while length > 0:
            block_index = position // self.block_size
            block_end = self._block_start(block_index) + self.block_size
            take = min(length, block_end - position)
            chunk = self.data[position:position + take]
            if len(chunk) < take:
                raise MemoError("Error reading memo file (read past end).")
            chunks.append(chunk)
            length -= take
            position += take
        return b''.join(chunks)

    def _read_dbase3(self, block_index: int) -> bytes:
        start = self._block_start(block_index)
        end = self.data.find(bytes([DBF_MEMO_TERMINATOR]), start)
        if end == -1:
            end = len(self.data)
        return self.data[start:end]

    def _read_dbase4(self, block_index: int) -> bytes:
        start = self._block_start(block_index)
        if start + DBF_MEMO_HEADER_SIZE > len(self.data):
            raise MemoError("Error reading memo file (read past end).")
        # marker accepted in either byte order
        marker = self.data[start:start + 4]
        if marker not in (struct.pack(">L", DBASE4_MEMO_MARKER), struct.pack("<L", DBASE4_MEMO_MARKER)):
            raise MemoError(f"Memo block {block_index} does not start a dBase IV memo.")
        total_length = struct.unpack_from("<L", self.data, start + 4)[0]
        return self._read_blocks(start + DBF_MEMO_HEADER_SIZE, total_length - DBF_MEMO_HEADER_SIZE)

    def _read_foxpro(self, block_index: int) -> bytes:
        start = self._block_start(block_index)
        if start + DBF_MEMO_HEADER_SIZE > len(self.data):
            raise MemoError("Error reading memo file (read past end).")
        memo_type, length = struct.unpack_from(">ll", self.data, start)
        if memo_type != FOXPRO_MEMO_TYPE_TEXT:
            # picture/object memos are not text
            return b''
        return self._read_blocks(start + DBF_MEMO_HEADER_SIZE, length)
