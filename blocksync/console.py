import typing

from tqdm import tqdm

from blocksync.exchange.session import ProgressListener, TransferStats
from blocksync.exchange.serialization import FileHeader


class Basic(ProgressListener):
    """
    Prints one line per file
    """

    def __init__(self, write: typing.Callable[[str], None] = print):
        self.write = write

    def file_finished(self, header: FileHeader, stats: TransferStats):
        self.write(
            f"{header.name}: {stats.transferred_blocks}/{stats.blocks} blocks updated "
            f"({stats.transferred_bytes:,d} bytes)"
        )


class Advanced(Basic):
    """
    One progress bar per file, advanced once for every block whether it was transferred or not
    """

    FORMAT = '{l_bar}{bar}| {n_fmt:>8}/{total_fmt:>8} [{elapsed:>7}<{remaining:>8}, {rate_fmt:>17}{postfix}]'

    def __init__(self, write: typing.Optional[typing.Callable[[str], None]] = None, leave: bool = True):
        super().__init__(write or tqdm.write)
        self.leave = leave
        self.bar: typing.Optional[tqdm] = None
        self.transferred = 0

    def file_started(self, header: FileHeader, blocks: int):
        self.close()
        self.transferred = 0
        self.bar = tqdm(
            desc=header.name[-24:], unit='blocks', total=blocks,
            bar_format=self.FORMAT, leave=self.leave
        )

    def block_resolved(self, block_index: int, matched: bool):
        if not matched:
            self.transferred += 1
            self.bar.set_postfix_str(f"{self.transferred} updated", refresh=False)
        self.bar.update(1)

    def file_finished(self, header: FileHeader, stats: TransferStats):
        self.close()
        super().file_finished(header, stats)

    def close(self):
        if self.bar is not None:
            self.bar.close()
            self.bar = None
