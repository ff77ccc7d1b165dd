import asyncio
import logging
import typing

from aiohttp import web
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Gauge, Histogram, Info

from blocksync import __version__
from blocksync.exchange.session import NAMESPACE

log = logging.getLogger(__name__)

VERSION_INFO = Info("build", "blocksync version", namespace=NAMESPACE)
LOOP_LAG = Histogram(
    "event_loop_lag_seconds", "How late the event loop wakes up a sleeping task", namespace=NAMESPACE,
    buckets=(.001, .005, .01, .05, .1, .5, 1.0, 5.0)
)
TASK_COUNT = Gauge("running_tasks", "Number of asyncio tasks", namespace=NAMESPACE)


async def monitor_event_loop(interval: float = 1.0):
    loop = asyncio.get_running_loop()
    while True:
        started = loop.time()
        await asyncio.sleep(interval)
        LOOP_LAG.observe(max(0.0, loop.time() - started - interval))
        TASK_COUNT.set(len(asyncio.all_tasks(loop)))


class MetricsServer:
    """
    Serves every registered counter on GET /metrics for prometheus to scrape
    """

    def __init__(self):
        self.runner: typing.Optional[web.AppRunner] = None
        self.port: typing.Optional[int] = None
        self._monitor_task: typing.Optional[asyncio.Task] = None

    async def start(self, interface: str, port: int):
        VERSION_INFO.info({'version': __version__})
        app = web.Application()
        app.router.add_get('/metrics', self.handle_metrics_get_request)
        self.runner = web.AppRunner(app)
        await self.runner.setup()
        await web.TCPSite(self.runner, interface, port).start()
        self.port = self.runner.addresses[0][1]
        self._monitor_task = asyncio.get_running_loop().create_task(monitor_event_loop())
        log.info("metrics available on http://%s:%i/metrics", interface, self.port)

    async def handle_metrics_get_request(self, request: web.Request):
        return web.Response(body=generate_latest(), headers={'Content-Type': CONTENT_TYPE_LATEST})

    async def stop(self):
        if self._monitor_task and not self._monitor_task.done():
            self._monitor_task.cancel()
        self._monitor_task = None
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        self.port = None
