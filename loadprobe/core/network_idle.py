"""Network idle detection.

Counts outstanding requests from ``send`` / ``recv`` / ``abort`` events and
declares the network idle once no request has been outstanding for a quiet
period. Used as one of the jobs of the report queue.
"""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

from .events import Event, EventBus

logger = logging.getLogger(__name__)

# seconds without outstanding requests before the network counts as idle
NETWORK_IDLE_QUIET_PERIOD = 1.0


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Timer source; a running asyncio loop satisfies it."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...

    def time(self) -> float:
        ...


class NetworkActivityTracker:
    """Tracks outstanding requests and signals network idle exactly once."""

    def __init__(
        self,
        bus: EventBus,
        scheduler: Scheduler,
        quiet_period: float = NETWORK_IDLE_QUIET_PERIOD,
    ):
        self._bus = bus
        self._scheduler = scheduler
        self.quiet_period = quiet_period

        self.outstanding_count = 0
        self.pending_urls: Dict[Any, str] = {}
        self._idle_timer: Optional[TimerHandle] = None
        self._done: Optional[Callable[[], None]] = None
        self.is_idle = False

    def watch(self, done: Callable[[], None]) -> None:
        """Report queue job: subscribe and call ``done`` once the network is idle."""
        self._done = done
        self._bus.on(Event.SEND, self._on_send)
        self._bus.on(Event.RECV, self._on_finished)
        self._bus.on(Event.ABORT, self._on_finished)
        self._bus.on(Event.TIMEOUT, self._on_timeout)

    def _on_send(self, entry: Any, *_: Any) -> None:
        self._cancel_idle_timer()
        self.outstanding_count += 1
        self.pending_urls[entry.id] = entry.url

    def _on_finished(self, entry: Any, *_: Any) -> None:
        if entry.id not in self.pending_urls:
            logger.warning(f"Finished request was not tracked as pending: {entry.url}")
        self.pending_urls.pop(entry.id, None)
        self.outstanding_count = max(0, self.outstanding_count - 1)

        if self.outstanding_count == 0:
            self._cancel_idle_timer()
            self._idle_timer = self._scheduler.call_later(self.quiet_period, self._on_quiet_period)

    def _on_quiet_period(self) -> None:
        self._idle_timer = None
        if self.is_idle or self.outstanding_count > 0:
            return

        self.is_idle = True
        logger.debug(f"Network idle for {self.quiet_period} s")
        if self._done is not None:
            self._done()

    def _on_timeout(self, *_: Any) -> None:
        logger.info(
            "Timeout: gave up waiting for %d HTTP response(s): <%s>",
            self.outstanding_count,
            ">, <".join(self.pending_urls.values()),
        )

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def cancel(self) -> None:
        """Stop the quiet period timer (run is ending)."""
        self._cancel_idle_timer()
