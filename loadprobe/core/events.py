"""In-process publish/subscribe bus for page load events.

Dispatch is synchronous: ``emit()`` calls every handler registered for the
event, in registration order, before returning. Handler exceptions are not
caught. A handler may be a coroutine function; the awaitable it returns is
scheduled on the running loop and tracked so the session can ``drain()``
outstanding work at well defined points (before reporting).
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Set, Union

logger = logging.getLogger(__name__)


class Event(str, Enum):
    """Documented event names and their positional payloads."""
    INIT = "init"                                   # -
    LOAD_STARTED = "loadStarted"                    # -
    LOAD_FINISHED = "loadFinished"                  # status
    LOAD_FAILED = "loadFailed"                      # status
    RESOURCE_REQUESTED = "onResourceRequested"      # ResourceRequest
    RESOURCE_RECEIVED = "onResourceReceived"        # ResourceResponse
    SEND = "send"                                   # RequestEntry, ResourceRequest
    RECV = "recv"                                   # RequestEntry, ResourceResponse
    ABORT = "abort"                                 # RequestEntry, ResourceResponse
    BASE = "base"                                   # RequestEntry
    RESPONSE_END = "responseEnd"                    # RequestEntry, ResourceResponse
    METRIC = "metric"                               # name, value
    PROGRESS = "progress"                           # progress, increment
    PAGE_BEFORE_OPEN = "pageBeforeOpen"             # PageSettings
    PAGE_OPEN = "pageOpen"                          # -
    TIMEOUT = "timeout"                             # -
    REPORT = "report"                               # -
    RESULTS = "results"                             # MetricsStore
    ALERT = "alert"                                 # message
    CONFIRM = "confirm"                             # message
    PROMPT = "prompt"                               # message
    CONSOLE_LOG = "consoleLog"                      # message, args
    JS_ERROR = "jserror"                            # message, trace
    MESSAGE = "message"                             # message dict

    def __str__(self) -> str:
        return self.value


EventName = Union[Event, str]
Handler = Callable[..., Any]


def _key(name: EventName) -> str:
    return name.value if isinstance(name, Event) else str(name)


class _Subscription:
    __slots__ = ("handler", "once")

    def __init__(self, handler: Handler, once: bool):
        self.handler = handler
        self.once = once


class EventBus:
    """Synchronous fan-out of named events to registered handlers."""

    def __init__(self):
        self._handlers: Dict[str, List[_Subscription]] = {}
        self._pending: Set[asyncio.Future] = set()

    def on(self, name: EventName, handler: Handler) -> None:
        """Register a persistent handler."""
        self._handlers.setdefault(_key(name), []).append(_Subscription(handler, once=False))

    def once(self, name: EventName, handler: Handler) -> None:
        """Register a handler removed after its first invocation."""
        self._handlers.setdefault(_key(name), []).append(_Subscription(handler, once=True))

    def off(self, name: EventName, handler: Handler) -> bool:
        """Remove the first registration of ``handler``; returns whether one was found."""
        subscriptions = self._handlers.get(_key(name), [])
        for index, subscription in enumerate(subscriptions):
            if subscription.handler == handler:
                del subscriptions[index]
                return True
        return False

    def emit(self, name: EventName, *args: Any) -> None:
        """Invoke every handler registered for ``name`` in registration order."""
        key = _key(name)
        logger.debug("Event %s emitted", key)

        subscriptions = self._handlers.get(key)
        if not subscriptions:
            return

        # handlers registered while dispatching only see later emissions
        for subscription in list(subscriptions):
            if subscription.once:
                try:
                    subscriptions.remove(subscription)
                except ValueError:
                    # already consumed by a nested emit
                    continue

            result = subscription.handler(*args)
            if inspect.isawaitable(result):
                self._track(key, result)

    def listener_count(self, name: EventName) -> int:
        return len(self._handlers.get(_key(name), []))

    @property
    def pending(self) -> int:
        """Number of asynchronous handler tasks not yet finished."""
        return len(self._pending)

    def _track(self, key: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _finished(done: asyncio.Future) -> None:
            self._pending.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.error(f"Asynchronous handler for {key} failed: {error!r}")

        task.add_done_callback(_finished)

    async def drain(self, timeout: float = None) -> None:
        """Wait for asynchronous handler tasks, including ones they spawn."""
        while self._pending:
            batch = list(self._pending)
            done, not_done = await asyncio.wait(batch, timeout=timeout)
            self._pending.difference_update(done)
            if not_done:
                logger.warning(f"Gave up waiting for {len(not_done)} event handler task(s)")
                for task in not_done:
                    task.cancel()
                    self._pending.discard(task)
                return
