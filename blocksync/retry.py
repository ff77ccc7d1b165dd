import typing
import asyncio
import logging

if typing.TYPE_CHECKING:
    from blocksync.conf import Config

log = logging.getLogger(__name__)

Sleep = typing.Callable[[float], typing.Awaitable[None]]


class RetryPolicy:
    """
    Decides how long to wait before reconnect attempt number `attempt` (counting from 1) and
    whether another attempt should be made at all. max_attempts of None retries forever.
    """

    def __init__(self, max_attempts: typing.Optional[int] = None, sleep: typing.Optional[Sleep] = None):
        self.max_attempts = max_attempts
        self._sleep = sleep or asyncio.sleep

    def delay(self, attempt: int) -> float:
        raise NotImplementedError()

    def should_retry(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts

    async def wait(self, attempt: int) -> float:
        delay = self.delay(attempt)
        await self._sleep(delay)
        return delay


class FixedDelay(RetryPolicy):

    def __init__(self, delay: float = 2.0, max_attempts: typing.Optional[int] = None,
                 sleep: typing.Optional[Sleep] = None):
        super().__init__(max_attempts, sleep)
        self.fixed_delay = delay

    def delay(self, attempt: int) -> float:
        return self.fixed_delay


class ExponentialBackoff(RetryPolicy):

    def __init__(self, base_delay: float = 2.0, max_delay: float = 60.0, max_attempts: typing.Optional[int] = None,
                 sleep: typing.Optional[Sleep] = None):
        super().__init__(max_attempts, sleep)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


def policy_from_config(conf: 'Config', sleep: typing.Optional[Sleep] = None) -> RetryPolicy:
    max_attempts = conf.max_reconnect_attempts or None
    if conf.retry_strategy == 'exponential':
        return ExponentialBackoff(conf.reconnect_delay, conf.max_reconnect_delay, max_attempts, sleep)
    return FixedDelay(conf.reconnect_delay, max_attempts, sleep)
