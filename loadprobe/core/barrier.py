"""Completion barrier joining independently started asynchronous jobs."""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

DoneCallback = Callable[..., None]
Job = Callable[[DoneCallback], Any]


class ReportQueue:
    """Runs pushed jobs immediately and fires one callback once all are done.

    Every job is called with a ``done`` callback the moment it is pushed.
    Jobs run concurrently; only the completion callback registered with
    :meth:`done` is deferred until every pushed job has called its ``done``.
    Calling a job's ``done`` more than once has no further effect.
    """

    def __init__(self):
        self._jobs = 0
        self._completed = 0
        self._callback: Optional[Callable[..., Any]] = None
        self._callback_args: tuple = ()
        self._fired = False
        self._tasks: List[asyncio.Future] = []

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def is_satisfied(self) -> bool:
        return self._completed == self._jobs

    @property
    def fired(self) -> bool:
        return self._fired

    def push(self, job: Job) -> None:
        """Register ``job`` and start it right away."""
        index = self._jobs
        self._jobs += 1
        finished = False

        def done(*_: Any) -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            self._completed += 1
            logger.debug(f"Job #{index} done ({self._completed}/{self._jobs})")
            self._check()

        result = job(done)
        if inspect.isawaitable(result):
            self._tasks.append(asyncio.ensure_future(result))

    def done(self, callback: Callable[..., Any], *args: Any) -> None:
        """Register the callback fired once every pushed job has completed."""
        self._callback = callback
        self._callback_args = args
        self._check()

    def _check(self) -> None:
        if self._fired or self._callback is None or not self.is_satisfied:
            return

        self._fired = True
        logger.debug(f"All {self._jobs} job(s) done")
        self._callback(*self._callback_args)
