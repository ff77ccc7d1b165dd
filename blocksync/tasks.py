import logging
from asyncio import Event, CancelledError, get_running_loop

log = logging.getLogger(__name__)


class TaskGroup:
    """
    Independent tasks, one failing or being cancelled does not affect the others
    """

    def __init__(self, loop=None):
        self._loop = loop or get_running_loop()
        self._tasks = set()
        self.done = Event()
        self.done.set()

    def __len__(self):
        return len(self._tasks)

    def add(self, coro, name=None):
        task = self._loop.create_task(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        self.done.clear()
        task.add_done_callback(self._remove)
        return task

    def _remove(self, task):
        self._tasks.discard(task)
        try:
            error = task.exception()
        except CancelledError:
            error = None
        if error is not None:
            log.error("%s failed", task.get_name(), exc_info=error)
        if not self._tasks:
            self.done.set()

    def cancel(self):
        for task in list(self._tasks):
            task.cancel()
