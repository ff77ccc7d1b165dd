import os
import typing
import asyncio
import logging

from prometheus_client import Counter, Gauge

from blocksync.block import DEFAULT_BLOCK_SIZE
from blocksync.error import MissingSourceFileError, InvalidFileNameError, ProtocolError, LocalFileError
from blocksync.exchange.serialization import ProtocolStream, Sender, FileCount
from blocksync.exchange.session import FileSnapshot, TransferStats, send_file, NAMESPACE
from blocksync.tasks import TaskGroup

log = logging.getLogger(__name__)


class SyncServer:
    """
    Serves a fixed list of files to every destination that connects, each connection is
    handled by its own task and shares nothing but the checksum snapshots taken at startup
    """
    connections_metric = Counter("connections", "Number of accepted connections", namespace=NAMESPACE)
    active_connections_metric = Gauge("active_connections", "Number of connections being served",
                                      namespace=NAMESPACE)

    def __init__(self, loop: asyncio.AbstractEventLoop, file_paths: typing.Sequence[str],
                 block_size: int = DEFAULT_BLOCK_SIZE, precompute_checksums: bool = True):
        self.loop = loop
        self.file_paths = tuple(file_paths)
        self.block_size = block_size
        self.precompute_checksums = precompute_checksums
        self.snapshots: typing.Optional[typing.Tuple[FileSnapshot, ...]] = None
        self.server: typing.Optional[asyncio.AbstractServer] = None
        self.connections: typing.Optional[TaskGroup] = None
        self.started_listening = asyncio.Event()
        self.port: typing.Optional[int] = None

    def calculate_checksums(self) -> typing.Tuple[FileSnapshot, ...]:
        return tuple(FileSnapshot.from_path(path, self.block_size) for path in self.file_paths)

    async def start_server(self, port: int, interface: typing.Optional[str] = '0.0.0.0'):
        if self.server is not None:
            raise RuntimeError("already running")
        for path in self.file_paths:
            if not os.path.isfile(path):
                raise MissingSourceFileError(path)
            name = os.path.basename(path)
            if '\n' in name:
                raise InvalidFileNameError(name)
        if self.precompute_checksums:
            log.info("calculating checksums of %i files", len(self.file_paths))
            self.snapshots = await self.loop.run_in_executor(None, self.calculate_checksums)
        self.connections = TaskGroup(self.loop)
        self.server = await asyncio.start_server(self.connection_received, interface or None, port)
        self.port = self.server.sockets[0].getsockname()[1]
        self.started_listening.set()
        log.info("sync server listening on TCP %s:%i", interface or '*', self.port)

    async def serve_forever(self):
        async with self.server:
            await self.server.serve_forever()

    def stop_server(self):
        if self.server:
            self.server.close()
            self.server = None
        if self.connections:
            self.connections.cancel()
        self.started_listening.clear()
        log.info("stopped sync server")

    def connection_received(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        stream = ProtocolStream(reader, writer, Sender.SOURCE)
        self.connections_metric.inc()
        self.connections.add(self.handle_connection(stream), name=f"connection from {stream.peer}")

    async def handle_connection(self, stream: ProtocolStream) -> typing.List[TransferStats]:
        log.info("received connection from %s", stream.peer)
        self.active_connections_metric.inc()
        results = []
        try:
            await stream.send(FileCount(len(self.file_paths)))
            for index, path in enumerate(self.file_paths):
                snapshot = self.snapshots[index] if self.snapshots else None
                results.append(await send_file(stream, path, self.block_size, snapshot))
            log.info("finished sending %i files to %s", len(results), stream.peer)
        except (ProtocolError, LocalFileError, OSError) as err:
            log.warning("closing connection to %s: %s", stream.peer, err)
        finally:
            self.active_connections_metric.dec()
            stream.writer.close()
        return results
