"""Shared test fixtures and configuration for loadprobe tests."""

import asyncio
import io
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loadprobe.browser.engine import BrowserEngine, PageCallbacks
from loadprobe.core.events import EventBus
from loadprobe.core.metrics import MetricsStore
from loadprobe.models.capture import ResourceRequest, ResourceResponse, ResponseStage
from loadprobe.models.config import ProbeConfig


class FakeTimer:
    """Timer handle returned by :class:`FakeScheduler`."""

    def __init__(self, when: float, seq: int, callback: Callable, args: tuple):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock; timers only run when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._timers: List[FakeTimer] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable, *args: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, self._seq, callback, args)
        self._seq += 1
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running due timers (and timers they schedule) in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.when <= target + 1e-9]
            if not due:
                break

            timer = min(due, key=lambda t: (t.when, t.seq))
            self._timers.remove(timer)
            self.now = max(self.now, timer.when)
            timer.callback(*timer.args)

        self.now = target


class FakeEngine(BrowserEngine):
    """Scripted engine; tests fire the lifecycle callbacks by hand."""

    def __init__(self, scheduler: FakeScheduler):
        super().__init__()
        self.scheduler = scheduler
        self.callbacks: Optional[PageCallbacks] = None

        self.started = False
        self.closed = False
        self.opened_url: Optional[str] = None
        self.cookies: List[Dict[str, Any]] = []
        self.scripts: List[Path] = []
        self.evaluations: List[tuple] = []
        self.rendered: List[Path] = []

        self.cookie_ok = True
        self.inject_ok = True
        self.evaluate_result: Any = None
        self.progress = 0
        self._url: Optional[str] = None

    @property
    def name(self) -> str:
        return "FakeEngine/1.0"

    @property
    def url(self) -> Optional[str]:
        return self._url

    @property
    def loading_progress(self) -> int:
        return self.progress

    def bind(self, callbacks: PageCallbacks) -> None:
        self.callbacks = callbacks

    async def start(self) -> None:
        self.started = True

    async def add_cookie(self, cookie: Dict[str, Any]) -> bool:
        self.cookies.append(cookie)
        return self.cookie_ok

    async def open(self, url: str) -> None:
        self.opened_url = url
        self._url = url
        self.callbacks.on_load_started()

    async def close(self) -> None:
        self.closed = True

    async def evaluate(self, fn: str, *args: Any) -> Any:
        self.evaluations.append((fn, args))
        return self.evaluate_result

    async def inject_script(self, path) -> bool:
        self.scripts.append(Path(path))
        return self.inject_ok

    async def render(self, path) -> None:
        self.rendered.append(Path(path))

    async def content(self) -> str:
        return "<html><body>fake</body></html>"

    # scripted page activity

    def _now(self) -> float:
        return self.scheduler.time() * 1000

    def request(self, request_id: int, url: str, resource_type: str = "document") -> None:
        self.callbacks.on_resource_requested(ResourceRequest(
            id=request_id, url=url, resource_type=resource_type, timestamp=self._now()
        ))

    def response_start(self, request_id: int, url: str, status: int = 200,
                       headers: Optional[Dict[str, str]] = None) -> None:
        self.callbacks.on_resource_received(ResourceResponse(
            id=request_id, url=url, stage=ResponseStage.START, status=status,
            headers=headers or {}, timestamp=self._now()
        ))

    def response_end(self, request_id: int, url: str, failed: bool = False,
                     error_text: Optional[str] = None) -> None:
        self.callbacks.on_resource_received(ResourceResponse(
            id=request_id, url=url, stage=ResponseStage.END, failed=failed,
            error_text=error_text, timestamp=self._now()
        ))

    def finish_load(self, status: str = "success") -> None:
        self.callbacks.on_load_finished(status)


@pytest.fixture
def scheduler():
    """Manual scheduler starting at t=0."""
    return FakeScheduler()


@pytest.fixture
def fake_engine(scheduler):
    """Scripted browser engine bound to the manual scheduler."""
    return FakeEngine(scheduler)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(bus, scheduler):
    """Metrics store using the manual clock (milliseconds)."""
    return MetricsStore(bus, lambda: scheduler.time() * 1000)


@pytest.fixture
def report_output():
    return io.StringIO()


@pytest.fixture
def sample_config():
    """Minimal run configuration for an end-to-end session."""
    return ProbeConfig(
        url="https://www.example.com/",
        timeout=15,
        modules=["requests_stats"],
        silent=True,
    )


@pytest.fixture
def start_session():
    """Start ``session.run()`` as a task and wait until the page was opened."""

    async def _start(session, engine, max_iterations: int = 50):
        task = asyncio.ensure_future(session.run())
        for _ in range(max_iterations):
            if engine.opened_url is not None or task.done():
                break
            await asyncio.sleep(0)
        return task

    return _start
