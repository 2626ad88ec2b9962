import logging
from typing import Any, Callable

from fastapi import BackgroundTasks

logger = logging.getLogger("ats.dispatcher")


class TaskDispatcher:
    """Runs side effects (audit writes, notifications) off the request path.

    Inside a request the task is added to that request's ``BackgroundTasks``
    and runs once the response has been sent. Without one (services called
    directly, scripts, tests) it runs inline on the caller's thread. Either
    way a failing task is logged and counted in ``dropped``; it never
    reaches the caller that submitted it.
    """

    def __init__(self):
        self.dropped = 0

    def submit(self, fn: Callable[..., Any], *args, tasks: BackgroundTasks | None = None, **kwargs) -> bool:
        if tasks is None:
            self._execute(fn, args, kwargs)
        else:
            tasks.add_task(self._execute, fn, args, kwargs)
        return True

    def _execute(self, fn, args, kwargs):
        try:
            fn(*args, **kwargs)
        except Exception:
            self.dropped += 1
            logger.exception("Background task %s failed", getattr(fn, "__qualname__", fn))
