import struct
import asyncio

from blocksync.block.checksum import calculate_checksum
from blocksync.error import IncompleteMessageError, MalformedMessageError, ProtocolError
from blocksync.exchange.serialization import (
    MAX_NAME_LENGTH, ProtocolStream, Sender, FileCount, FileHeader, ChecksumVector, MatchVector
)
from blocksync.testcase import AsyncioTestCase


class BufferWriter:
    """
    Collects everything written to a stream
    """

    def __init__(self):
        self.buffer = bytearray()
        self.closed = False

    def write(self, data: bytes):
        self.buffer.extend(data)

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return ('10.0.0.1', 3333)
        return default


def make_stream(data: bytes, role: Sender = Sender.DESTINATION) -> ProtocolStream:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return ProtocolStream(reader, BufferWriter(), role)


class TestMessageEncoding(AsyncioTestCase):

    def test_file_count(self):
        self.assertEqual(b'\x02\x00\x00\x00', FileCount(2).serialize())

    def test_file_header(self):
        self.assertEqual(
            b'a.txt\n' + b'\xf0\x49\x02\x00\x00\x00\x00\x00', FileHeader('a.txt', 150000).serialize()
        )
        self.assertEqual(3, FileHeader('a.txt', 150000).block_count(65536))

    def test_file_header_name_with_newline(self):
        with self.assertRaises(ValueError):
            FileHeader('a\nb', 1).serialize()

    def test_vectors(self):
        self.assertEqual(b'\x01\x00\x00\x00\xff\xff\xff\xff', ChecksumVector([1, 0xffffffff]).serialize())
        self.assertEqual(b'', ChecksumVector([]).serialize())
        self.assertEqual(b'\x01\x00\x01', MatchVector([True, False, True]).serialize())

    def test_compare(self):
        match = MatchVector.compare([1, 2, 3], [1, 5, 3])
        self.assertListEqual([True, False, True], match.matches)
        self.assertListEqual([1], match.mismatched)

    async def test_read_messages(self):
        stream = make_stream(
            b'\x01\x00\x00\x00' + b'b.bin\n' + struct.pack('<q', 5) + struct.pack('<I', 7) + b'\x00\x02\x01'
        )
        self.assertEqual(1, (await FileCount.read(stream)).count)
        header = await FileHeader.read(stream)
        self.assertEqual(('b.bin', 5), (header.name, header.size))
        self.assertListEqual([7], (await ChecksumVector.read(stream, 1)).checksums)
        self.assertListEqual([False, True, True], (await MatchVector.read(stream, 3)).matches)

    async def test_zero_length_vectors(self):
        stream = make_stream(b'')
        self.assertEqual(0, len(await ChecksumVector.read(stream, 0)))
        self.assertEqual(0, len(await MatchVector.read(stream, 0)))

    async def test_truncated_integer(self):
        with self.assertRaises(IncompleteMessageError) as err:
            await FileCount.read(make_stream(b'\x01\x00'))
        self.assertEqual('file count', err.exception.field)
        self.assertEqual(4, err.exception.expected)
        self.assertEqual(2, err.exception.received)

    async def test_truncated_name(self):
        with self.assertRaises(IncompleteMessageError):
            await FileHeader.read(make_stream(b'a.tx'))

    async def test_truncated_size(self):
        with self.assertRaises(IncompleteMessageError):
            await FileHeader.read(make_stream(b'a.txt\n\x00\x00'))

    async def test_truncated_checksums(self):
        with self.assertRaises(ProtocolError):
            await ChecksumVector.read(make_stream(b'\x00' * 11), 3)

    async def test_negative_values(self):
        with self.assertRaises(MalformedMessageError):
            await FileCount.read(make_stream(struct.pack('<i', -1)))
        with self.assertRaises(MalformedMessageError):
            await FileHeader.read(make_stream(b'a.txt\n' + struct.pack('<q', -10)))

    async def test_name_too_long(self):
        with self.assertRaises(MalformedMessageError):
            await FileHeader.read(make_stream(b'a' * (MAX_NAME_LENGTH + 1) + b'\n' + b'\x00' * 8))

    async def test_name_not_utf8(self):
        with self.assertRaises(MalformedMessageError):
            await FileHeader.read(make_stream(b'\xff\xfe\n' + b'\x00' * 8))

    async def test_send_checks_the_role(self):
        stream = make_stream(b'', Sender.SOURCE)
        await stream.send(FileCount(1))
        self.assertEqual(b'\x01\x00\x00\x00', bytes(stream.writer.buffer))
        with self.assertRaises(AssertionError):
            await stream.send(MatchVector([True]))

    async def test_peer(self):
        self.assertEqual('10.0.0.1:3333', make_stream(b'').peer)

    def test_checksum_vector_of_data(self):
        data = b'abc'
        vector = ChecksumVector([calculate_checksum(data)])
        self.assertEqual(struct.pack('<I', calculate_checksum(data)), vector.serialize())
