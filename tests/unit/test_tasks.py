import asyncio

from blocksync.tasks import TaskGroup
from blocksync.testcase import AsyncioTestCase


class TestTaskGroup(AsyncioTestCase):

    async def test_failure_does_not_affect_others(self):
        group = TaskGroup()
        finished = asyncio.Event()

        async def fail():
            raise ValueError('boom')

        async def succeed():
            await asyncio.sleep(0.01)
            finished.set()

        with self.assertLogs('blocksync.tasks', 'ERROR') as logs:
            group.add(fail(), name='failing task')
            group.add(succeed())
            self.assertEqual(2, len(group))
            self.assertFalse(group.done.is_set())
            await group.done.wait()
        self.assertTrue(finished.is_set())
        self.assertEqual(0, len(group))
        self.assertIn('failing task failed', logs.output[0])

    async def test_cancel(self):
        group = TaskGroup()
        task = group.add(asyncio.sleep(100))
        group.cancel()
        await group.done.wait()
        self.assertTrue(task.cancelled())
