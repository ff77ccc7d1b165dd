import io
import unittest

from blocksync.block.checksum import calculate_checksum
from blocksync.block.writer import BlockChecksumWriter
from blocksync.error import BlockChecksumMismatchError, InvalidDataError


class TestBlockChecksumWriter(unittest.TestCase):
    block = b'new!' * 4

    def _get_writer(self, handle, checksum=None):
        if checksum is None:
            checksum = calculate_checksum(self.block)
        return BlockChecksumWriter(handle, 'a.txt', 1, 16, len(self.block), checksum)

    def test_write_verified_block_in_place(self):
        handle = io.BytesIO(b'\x00' * 40)
        writer = self._get_writer(handle)
        self.assertEqual(16, writer.remaining)
        writer.write(self.block[:5])
        self.assertFalse(writer.verified)
        self.assertEqual(11, writer.remaining)
        writer.write(self.block[5:])
        self.assertTrue(writer.verified)
        self.assertTrue(writer.closed())
        self.assertEqual(0, writer.remaining)
        self.assertEqual(b'\x00' * 16 + self.block + b'\x00' * 8, handle.getvalue())

    def test_corrupted_block(self):
        writer = self._get_writer(io.BytesIO(b'\x00' * 40))
        with self.assertRaises(BlockChecksumMismatchError) as err:
            writer.write(b'bad!' + self.block[4:])
        self.assertEqual(1, err.exception.block_index)
        self.assertEqual('a.txt', err.exception.file_name)
        self.assertEqual(calculate_checksum(self.block), err.exception.expected)
        self.assertFalse(writer.verified)
        self.assertTrue(writer.closed())

    def test_too_much_data(self):
        writer = self._get_writer(io.BytesIO())
        with self.assertRaises(InvalidDataError):
            writer.write(self.block + b'!')
        self.assertTrue(writer.closed())
        self.assertFalse(writer.verified)

    def test_write_after_close(self):
        writer = self._get_writer(io.BytesIO())
        writer.write(self.block)
        with self.assertRaises(IOError):
            writer.write(b'more')
