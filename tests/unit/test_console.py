import unittest

from blocksync.console import Basic, Advanced
from blocksync.exchange.serialization import FileHeader
from blocksync.exchange.session import TransferStats


class TestConsole(unittest.TestCase):

    def setUp(self):
        self.header = FileHeader('a.txt', 150000)
        self.stats = TransferStats('a.txt', 3)
        self.stats.add_block(65536)

    def test_basic(self):
        lines = []
        console = Basic(lines.append)
        console.file_started(self.header, 3)
        console.block_resolved(0, True)
        console.file_finished(self.header, self.stats)
        self.assertListEqual(['a.txt: 1/3 blocks updated (65,536 bytes)'], lines)

    def test_advanced(self):
        lines = []
        console = Advanced(lines.append)
        console.file_started(self.header, 3)
        for index, matched in enumerate([True, False, True]):
            console.block_resolved(index, matched)
        self.assertEqual(3, console.bar.n)
        self.assertEqual(1, console.transferred)
        console.file_finished(self.header, self.stats)
        self.assertIsNone(console.bar)
        self.assertListEqual(['a.txt: 1/3 blocks updated (65,536 bytes)'], lines)
