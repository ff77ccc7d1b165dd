import os
import zlib
import typing
import logging

from blocksync.block import CHECKSUM_MASK, block_count, block_length
from blocksync.error import BlockReadError

log = logging.getLogger(__name__)


def get_file_size(handle: typing.BinaryIO) -> int:
    position = handle.tell()
    try:
        return handle.seek(0, os.SEEK_END)
    finally:
        handle.seek(position)


def calculate_checksum(data: bytes, previous: int = 0) -> int:
    return zlib.crc32(data, previous) & CHECKSUM_MASK


def calculate_checksums(handle: typing.BinaryIO, block_size: int) -> typing.List[int]:
    """
    Compute the crc32 of every block of a file

    The handle is rewound first since it may have been read before. Each block is read as
    its exact byte range, a short read means the file changed underneath us.
    """
    size = get_file_size(handle)
    handle.seek(0)
    checksums = []
    for index in range(block_count(size, block_size)):
        expected = block_length(index, size, block_size)
        data = handle.read(expected)
        if len(data) != expected:
            raise BlockReadError(index, expected, len(data))
        checksums.append(calculate_checksum(data))
    log.debug("calculated %i block checksums for %i bytes", len(checksums), size)
    return checksums


def checksums_for_path(path: str, block_size: int) -> typing.Tuple[int, typing.List[int]]:
    with open(path, 'rb') as handle:
        return get_file_size(handle), calculate_checksums(handle, block_size)
