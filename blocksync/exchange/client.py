import typing
import asyncio
import logging

from prometheus_client import Counter

from blocksync.block import DEFAULT_BLOCK_SIZE
from blocksync.error import BaseError, ConnectionFailedError, FatalSyncError
from blocksync.exchange.serialization import ProtocolStream, Sender, FileCount
from blocksync.exchange.session import ProgressListener, TransferStats, receive_file, NAMESPACE
from blocksync.retry import RetryPolicy, FixedDelay
from blocksync.utils import resolve_host

log = logging.getLogger(__name__)


class SyncClient:
    """
    Pulls every file a source serves into download_dir, reconnecting until one complete
    exchange succeeds
    """
    attempts_metric = Counter("sync_attempts", "Number of connection attempts to a source", namespace=NAMESPACE)
    reconnects_metric = Counter("reconnects", "Number of failed attempts that were retried", namespace=NAMESPACE)

    def __init__(self, loop: asyncio.AbstractEventLoop, download_dir: str, block_size: int = DEFAULT_BLOCK_SIZE,
                 retry_policy: typing.Optional[RetryPolicy] = None, connect_timeout: float = 10.0,
                 max_file_size: int = 0, listener: typing.Optional[ProgressListener] = None):
        self.loop = loop
        self.download_dir = download_dir
        self.block_size = block_size
        self.retry_policy = retry_policy or FixedDelay(2.0)
        self.connect_timeout = connect_timeout
        self.max_file_size = max_file_size
        self.listener = listener or ProgressListener()

    async def connect(self, host: str, port: int) -> ProtocolStream:
        try:
            address = await resolve_host(host, port)
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port), self.connect_timeout
            )
        except (asyncio.TimeoutError, OSError) as err:
            raise ConnectionFailedError(host, port, str(err) or type(err).__name__) from err
        log.debug("connection made to %s:%i", address, port)
        return ProtocolStream(reader, writer, Sender.DESTINATION)

    async def sync_once(self, host: str, port: int) -> typing.List[TransferStats]:
        self.attempts_metric.inc()
        stream = await self.connect(host, port)
        try:
            file_count = await FileCount.read(stream)
            log.info("%s:%i is serving %i files", host, port, file_count.count)
            results = []
            for _ in range(file_count.count):
                results.append(await receive_file(
                    stream, self.download_dir, self.block_size, self.max_file_size, self.listener
                ))
            return results
        finally:
            stream.writer.close()

    async def sync(self, host: str, port: int) -> typing.List[TransferStats]:
        """
        Run sync_once until it succeeds. Failures that reconnecting cannot fix are raised
        immediately, everything else is retried for as long as the retry policy allows.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.sync_once(host, port)
            except FatalSyncError:
                raise
            except (BaseError, OSError) as err:
                if not self.retry_policy.should_retry(attempt):
                    log.error("giving up on %s:%i after %i attempts: %s", host, port, attempt, err)
                    raise
                log.warning("error syncing from %s:%i: %s", host, port, err)
                log.info("reconnecting in %.1f seconds", self.retry_policy.delay(attempt))
                self.reconnects_metric.inc()
                await self.retry_policy.wait(attempt)
