import os
import typing
import asyncio
import logging

from prometheus_client import Counter

from blocksync.block import block_length, block_offset
from blocksync.block.checksum import calculate_checksums, checksums_for_path, get_file_size
from blocksync.block.writer import BlockChecksumWriter
from blocksync.error import (
    BlockReadError, BlockChecksumMismatchError, DestinationFileError, FileTooLargeError, InvalidFileNameError
)
from blocksync.exchange.serialization import (
    ProtocolStream, FileHeader, ChecksumVector, MatchVector, BlockData
)

log = logging.getLogger(__name__)

NAMESPACE = "blocksync"

blocks_metric = Counter(
    "blocks", "Number of blocks compared", namespace=NAMESPACE, labelnames=("role",)
)
transferred_blocks_metric = Counter(
    "transferred_blocks", "Number of blocks sent or received", namespace=NAMESPACE, labelnames=("role",)
)
transferred_bytes_metric = Counter(
    "transferred_bytes", "Block payload bytes sent or received", namespace=NAMESPACE, labelnames=("role",)
)
verification_failures_metric = Counter(
    "verification_failures", "Number of received blocks that failed checksum verification", namespace=NAMESPACE
)


class ProgressListener:
    """
    Receives progress of the destination side of a transfer, the default does nothing
    """

    def file_started(self, header: FileHeader, blocks: int):
        pass

    def block_resolved(self, block_index: int, matched: bool):
        pass

    def file_finished(self, header: FileHeader, stats: 'TransferStats'):
        pass


class TransferStats:
    __slots__ = [
        'name',
        'blocks',
        'transferred_blocks',
        'transferred_bytes',
    ]

    def __init__(self, name: str, blocks: int):
        self.name = name
        self.blocks = blocks
        self.transferred_blocks = 0
        self.transferred_bytes = 0

    def __repr__(self):
        return f"TransferStats(name={self.name!r}, blocks={self.blocks}, " \
               f"transferred_blocks={self.transferred_blocks}, transferred_bytes={self.transferred_bytes})"

    @property
    def matched_blocks(self) -> int:
        return self.blocks - self.transferred_blocks

    def add_block(self, length: int):
        self.transferred_blocks += 1
        self.transferred_bytes += length

    def record(self, role: str):
        blocks_metric.labels(role=role).inc(self.blocks)
        transferred_blocks_metric.labels(role=role).inc(self.transferred_blocks)
        transferred_bytes_metric.labels(role=role).inc(self.transferred_bytes)


class FileSnapshot:
    """
    Checksums of a source file taken once, shared read-only by every connection
    """
    __slots__ = [
        'path',
        'name',
        'size',
        'mtime_ns',
        'checksums',
    ]

    def __init__(self, path: str, size: int, mtime_ns: int, checksums: typing.Sequence[int]):
        self.path = path
        self.name = os.path.basename(path)
        self.size = size
        self.mtime_ns = mtime_ns
        self.checksums = tuple(checksums)

    @classmethod
    def from_path(cls, path: str, block_size: int) -> 'FileSnapshot':
        mtime_ns = os.stat(path).st_mtime_ns
        size, checksums = checksums_for_path(path, block_size)
        return cls(path, size, mtime_ns, checksums)

    def is_current(self, stat_result: os.stat_result) -> bool:
        return self.size == stat_result.st_size and self.mtime_ns == stat_result.st_mtime_ns


def validate_file_name(name: str):
    separators = {'/', '\\', '\x00', os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if name in ('', '.', '..') or any(separator in name for separator in separators):
        raise InvalidFileNameError(name)


def open_destination(path: str) -> typing.BinaryIO:
    try:
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as err:
        raise DestinationFileError(path, err.strerror or str(err)) from err
    return os.fdopen(fd, 'r+b')


async def send_file(stream: ProtocolStream, path: str, block_size: int,
                    snapshot: typing.Optional[FileSnapshot] = None) -> TransferStats:
    """
    Source side of one file: announce it, send our checksums and then every block the peer
    reports as different
    """
    with open(path, 'rb') as handle:
        size = get_file_size(handle)
        name = os.path.basename(path)
        if snapshot is not None and snapshot.is_current(os.fstat(handle.fileno())):
            checksums = snapshot.checksums
        else:
            if snapshot is not None:
                log.warning("%s changed since its checksums were cached, recalculating", name)
            checksums = await asyncio.get_running_loop().run_in_executor(
                None, calculate_checksums, handle, block_size
            )
        await stream.send(FileHeader(name, size))
        await stream.send(ChecksumVector(checksums))
        match = await MatchVector.read(stream, len(checksums))
        stats = TransferStats(name, len(checksums))
        for index in match.mismatched:
            length = block_length(index, size, block_size)
            handle.seek(block_offset(index, block_size))
            data = handle.read(length)
            if len(data) != length:
                raise BlockReadError(index, length, len(data))
            await stream.send(BlockData(index, data))
            stats.add_block(length)
    log.info("sent %i of %i blocks of %s (%i bytes) to %s", stats.transferred_blocks, stats.blocks, name,
             stats.transferred_bytes, stream.peer)
    stats.record('source')
    return stats


async def receive_file(stream: ProtocolStream, download_dir: str, block_size: int, max_file_size: int = 0,
                       listener: typing.Optional[ProgressListener] = None) -> TransferStats:
    """
    Destination side of one file: resize the local copy, compare checksums, and write and verify
    every block that differs
    """
    listener = listener or ProgressListener()
    header = await FileHeader.read(stream)
    validate_file_name(header.name)
    if max_file_size and header.size > max_file_size:
        raise FileTooLargeError(header.name, header.size, max_file_size)
    log.info("%s, size = %i bytes", header.name, header.size)
    count = header.block_count(block_size)
    stats = TransferStats(header.name, count)
    with open_destination(os.path.join(download_dir, header.name)) as handle:
        handle.truncate(header.size)
        local = await asyncio.get_running_loop().run_in_executor(None, calculate_checksums, handle, block_size)
        remote = await ChecksumVector.read(stream, count)
        match = MatchVector.compare(local, remote.checksums)
        await stream.send(match)
        log.debug("%i of %i blocks of %s differ", len(match.mismatched), count, header.name)
        listener.file_started(header, count)
        for index, matched in enumerate(match.matches):
            if not matched:
                writer = BlockChecksumWriter(
                    handle, header.name, index, block_offset(index, block_size),
                    block_length(index, header.size, block_size), remote.checksums[index]
                )
                try:
                    stats.add_block(await BlockData.read_into(stream, writer))
                except BlockChecksumMismatchError:
                    verification_failures_metric.inc()
                    raise
            listener.block_resolved(index, matched)
    log.info("received %i of %i blocks of %s (%i bytes) from %s", stats.transferred_blocks, stats.blocks,
             header.name, stats.transferred_bytes, stream.peer)
    stats.record('destination')
    listener.file_finished(header, stats)
    return stats

