from blocksync.conf import Config
from blocksync.retry import FixedDelay, ExponentialBackoff, policy_from_config
from blocksync.testcase import AsyncioTestCase


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    async def sleep(self, delay):
        self.sleeps.append(delay)
        self.now += delay


class TestRetryPolicy(AsyncioTestCase):

    async def test_fixed_delay(self):
        clock = FakeClock()
        policy = FixedDelay(2.0, sleep=clock.sleep)
        for attempt in range(1, 6):
            self.assertTrue(policy.should_retry(attempt))
            self.assertEqual(2.0, await policy.wait(attempt))
        self.assertListEqual([2.0] * 5, clock.sleeps)
        self.assertEqual(10.0, clock.now)

    async def test_exponential_backoff(self):
        clock = FakeClock()
        policy = ExponentialBackoff(1.0, 10.0, sleep=clock.sleep)
        for attempt in range(1, 7):
            await policy.wait(attempt)
        self.assertListEqual([1.0, 2.0, 4.0, 8.0, 10.0, 10.0], clock.sleeps)

    def test_max_attempts(self):
        policy = FixedDelay(2.0, max_attempts=3)
        self.assertTrue(policy.should_retry(1))
        self.assertTrue(policy.should_retry(2))
        self.assertFalse(policy.should_retry(3))

    def test_retry_forever_by_default(self):
        self.assertTrue(ExponentialBackoff().should_retry(10 ** 6))

    def test_policy_from_config(self):
        policy = policy_from_config(Config())
        self.assertIsInstance(policy, FixedDelay)
        self.assertEqual(2.0, policy.delay(1))
        self.assertIsNone(policy.max_attempts)

        conf = Config(retry_strategy='exponential', reconnect_delay=0.5, max_reconnect_delay=3.0,
                      max_reconnect_attempts=4)
        policy = policy_from_config(conf)
        self.assertIsInstance(policy, ExponentialBackoff)
        self.assertListEqual([0.5, 1.0, 2.0, 3.0], [policy.delay(attempt) for attempt in range(1, 5)])
        self.assertFalse(policy.should_retry(4))
