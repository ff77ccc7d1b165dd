"""
Messages of the block exchange, in the order both peers execute them:

    source -> destination   FileCount       int32, once per connection
    source -> destination   FileHeader      name + b'\\n', int64 size
    source -> destination   ChecksumVector  uint32 * block count
    destination -> source   MatchVector     uint8 * block count
    source -> destination   BlockData       raw bytes of every unmatched block, ascending

The header through the block data repeat once per file. Integers are little-endian, vectors are
not length prefixed and there are no message tags, so both sides must agree on the block size.
"""
import enum
import struct
import typing
import asyncio
import logging

from blocksync.block import block_count
from blocksync.error import IncompleteMessageError, MalformedMessageError

if typing.TYPE_CHECKING:
    from blocksync.block.writer import BlockChecksumWriter

log = logging.getLogger(__name__)

MAX_NAME_LENGTH = 4096
READ_CHUNK_SIZE = 64 * 2 ** 10


class Sender(enum.Enum):
    SOURCE = 'source'
    DESTINATION = 'destination'


class ProtocolStream:
    """
    Reads and writes protocol fields on one connected stream, reads always consume exactly the
    number of bytes a field needs
    """

    int32 = struct.Struct('<i')
    int64 = struct.Struct('<q')

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, role: Sender):
        self.reader = reader
        self.writer = writer
        self.role = role

    @property
    def peer(self) -> str:
        peername = self.writer.get_extra_info('peername')
        if not peername:
            return 'unknown peer'
        return "%s:%i" % peername[:2]

    async def read(self, size: int, field: str) -> bytes:
        try:
            return await self.reader.readexactly(size)
        except asyncio.IncompleteReadError as err:
            raise IncompleteMessageError(field, size, len(err.partial)) from err

    async def read_string(self, field: str) -> str:
        try:
            line = await self.reader.readuntil(b'\n')
        except asyncio.IncompleteReadError as err:
            raise IncompleteMessageError(field, len(err.partial) + 1, len(err.partial)) from err
        except asyncio.LimitOverrunError as err:
            raise MalformedMessageError(f"{field} is not terminated within {err.consumed} bytes") from err
        if len(line) > MAX_NAME_LENGTH + 1:
            raise MalformedMessageError(f"{field} is {len(line) - 1} bytes long")
        try:
            return line[:-1].decode()
        except UnicodeDecodeError as err:
            raise MalformedMessageError(f"{field} is not valid utf-8") from err

    async def read_int32(self, field: str) -> int:
        return self.int32.unpack(await self.read(self.int32.size, field))[0]

    async def read_int64(self, field: str) -> int:
        return self.int64.unpack(await self.read(self.int64.size, field))[0]

    def write(self, data: bytes):
        self.writer.write(data)

    async def drain(self):
        await self.writer.drain()

    async def send(self, message: 'SyncMessage'):
        assert message.sender == self.role, f"{self.role.value} cannot send {type(message).__name__}"
        self.write(message.serialize())
        await self.drain()


class SyncMessage:
    sender: Sender

    def serialize(self) -> bytes:
        raise NotImplementedError()


class FileCount(SyncMessage):
    sender = Sender.SOURCE

    def __init__(self, count: int):
        self.count = count

    def serialize(self) -> bytes:
        return ProtocolStream.int32.pack(self.count)

    @classmethod
    async def read(cls, stream: ProtocolStream) -> 'FileCount':
        count = await stream.read_int32('file count')
        if count < 0:
            raise MalformedMessageError(f"negative file count {count}")
        return cls(count)


class FileHeader(SyncMessage):
    sender = Sender.SOURCE

    def __init__(self, name: str, size: int):
        self.name = name
        self.size = size

    def __repr__(self):
        return f"FileHeader(name={self.name!r}, size={self.size})"

    def block_count(self, block_size: int) -> int:
        return block_count(self.size, block_size)

    def serialize(self) -> bytes:
        if '\n' in self.name:
            raise ValueError(f"file name {self.name!r} contains a newline")
        return self.name.encode() + b'\n' + ProtocolStream.int64.pack(self.size)

    @classmethod
    async def read(cls, stream: ProtocolStream) -> 'FileHeader':
        name = await stream.read_string('file name')
        size = await stream.read_int64('file size')
        if size < 0:
            raise MalformedMessageError(f"negative size {size} for {name!r}")
        return cls(name, size)


class ChecksumVector(SyncMessage):
    sender = Sender.SOURCE

    def __init__(self, checksums: typing.Sequence[int]):
        self.checksums = list(checksums)

    def __len__(self):
        return len(self.checksums)

    def serialize(self) -> bytes:
        return struct.pack(f'<{len(self.checksums)}I', *self.checksums)

    @classmethod
    async def read(cls, stream: ProtocolStream, count: int) -> 'ChecksumVector':
        data = await stream.read(4 * count, 'checksum vector')
        return cls(struct.unpack(f'<{count}I', data))


class MatchVector(SyncMessage):
    sender = Sender.DESTINATION

    def __init__(self, matches: typing.Sequence[bool]):
        self.matches = list(matches)

    def __len__(self):
        return len(self.matches)

    @classmethod
    def compare(cls, local: typing.Sequence[int], remote: typing.Sequence[int]) -> 'MatchVector':
        assert len(local) == len(remote), "checksum vectors differ in length"
        return cls(ours == theirs for ours, theirs in zip(local, remote))

    @property
    def mismatched(self) -> typing.List[int]:
        return [index for index, matched in enumerate(self.matches) if not matched]

    def serialize(self) -> bytes:
        return bytes(1 if matched else 0 for matched in self.matches)

    @classmethod
    async def read(cls, stream: ProtocolStream, count: int) -> 'MatchVector':
        data = await stream.read(count, 'match vector')
        return cls(byte != 0 for byte in data)


class BlockData(SyncMessage):
    sender = Sender.SOURCE

    def __init__(self, index: int, data: bytes):
        self.index = index
        self.data = data

    def serialize(self) -> bytes:
        return self.data

    @staticmethod
    async def read_into(stream: ProtocolStream, writer: 'BlockChecksumWriter',
                        chunk_size: int = READ_CHUNK_SIZE) -> int:
        """
        Stream exactly one block from the peer into the writer, returns the bytes received
        """
        received = 0
        while writer.remaining:
            data = await stream.read(min(chunk_size, writer.remaining), f'block {writer.block_index}')
            received += len(data)
            writer.write(data)
        return received
