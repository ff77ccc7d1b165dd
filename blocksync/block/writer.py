import typing
import logging

from blocksync.block.checksum import calculate_checksum
from blocksync.error import BlockChecksumMismatchError, InvalidDataError

log = logging.getLogger(__name__)


class BlockChecksumWriter:
    """
    Writes the bytes of one received block into place while keeping a running crc32,
    the block is verified against the checksum the peer announced once it is complete
    """

    def __init__(self, handle: typing.BinaryIO, file_name: str, block_index: int, offset: int, length: int,
                 expected_checksum: int):
        self.handle = handle
        self.file_name = file_name
        self.block_index = block_index
        self.offset = offset
        self.length = length
        self.expected_checksum = expected_checksum
        self._checksum = 0
        self.len_so_far = 0
        self.verified = False
        self._closed = False
        self.handle.seek(offset)

    @property
    def remaining(self) -> int:
        return self.length - self.len_so_far

    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes):
        if self._closed:
            raise IOError('I/O operation on closed block writer')
        self.len_so_far += len(data)
        if self.len_so_far > self.length:
            self.close_handle()
            raise InvalidDataError(
                f'Length so far is greater than the expected length. {self.len_so_far} to {self.length}'
            )
        self._checksum = calculate_checksum(data, self._checksum)
        self.handle.write(data)
        if self.len_so_far == self.length:
            self.close_handle()
            if self._checksum != self.expected_checksum:
                raise BlockChecksumMismatchError(
                    self.file_name, self.block_index, self.expected_checksum, self._checksum
                )
            self.verified = True

    def close_handle(self):
        # the file handle belongs to the session, only this writer is finished
        self._closed = True
