import os
import sys
import shutil
import logging
import tempfile
import asyncio
import unittest
from time import time


class ColorHandler(logging.StreamHandler):
    """
    Colors log lines by level so warnings and errors stand out in test output
    """

    level_color = {
        logging.DEBUG: '1;30',    # dark gray
        logging.INFO: '0;37',     # light gray
        logging.WARNING: '33',    # yellow
        logging.ERROR: '31',      # red
        logging.CRITICAL: '1;31'  # bold red
    }

    def format(self, record):
        color = self.level_color.get(record.levelno, '0')
        return f'\x1b[{color}m{super().format(record)}\x1b[0m'


HANDLER = ColorHandler(sys.stdout)
HANDLER.setFormatter(
    logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
)
logging.getLogger().addHandler(HANDLER)


class AsyncioTestCase(unittest.IsolatedAsyncioTestCase):
    """
    Runs every test on a fresh event loop in debug mode, cancelling whatever is still
    running once a test has been going for longer than TIMEOUT seconds
    """

    LOOP_SLOW_CALLBACK_DURATION = 0.2
    TIMEOUT = 120.0

    maxDiff = None

    async def asyncSetUp(self):  # pylint: disable=C0103
        self.loop = asyncio.get_running_loop()  # pylint: disable=W0201
        self.loop.set_debug(True)
        self.loop.slow_callback_duration = self.LOOP_SLOW_CALLBACK_DURATION
        self.add_timeout()

    def cancel(self):
        for task in asyncio.all_tasks(self.loop):
            if not task.done():
                task.print_stack()
                task.cancel()

    def add_timeout(self):
        if self.TIMEOUT:
            self.loop.call_later(self.TIMEOUT, self.check_timeout, time())

    def check_timeout(self, started):
        if time() - started >= self.TIMEOUT:
            self.cancel()
        else:
            self.loop.call_later(self.TIMEOUT, self.check_timeout, started)

    def make_temp_dir(self) -> str:
        path = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, path, True)
        return path

    def write_file(self, directory: str, name: str, data: bytes) -> str:
        path = os.path.join(directory, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path
