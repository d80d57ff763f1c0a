"""Load session orchestrating a single instrumented page load.

The session owns the run: it builds the event bus and metrics store, loads
modules, configures and starts the browser engine, translates engine
lifecycle callbacks into bus events and joins "network idle" and "load
finished" in a report queue. A global timer races the queue; whichever
path triggers the report first wins and the other becomes a no-op.

Every way of ending the run goes through :meth:`LoadSession.tear_down`,
which closes the page and resolves the exit code awaited by :meth:`run`.
"""

import asyncio
import functools
import json
import logging
import platform
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Set, TextIO

from .. import __version__
from ..browser.engine import LOAD_SUCCESS, BrowserEngine, PageCapabilities
from ..models.capture import CookieSpec, PageSettings, ResourceRequest, ResourceResponse
from ..models.config import ProbeConfig
from ..models.report import Report, RunStatus
from ..output.formatter import format_report, write_report
from .barrier import ReportQueue
from .errors import (
    ConfigParseError,
    ExitCode,
    LoadProbeError,
    MarkerBeforeResponseError,
    PageLoadError,
    ScopeInjectionError,
    exit_code_for_failed_asserts,
)
from .events import Event, EventBus
from .metrics import MetricStream, MetricsStore, NullMetricStream
from .module_api import ModuleAPI
from .network_idle import NetworkActivityTracker, Scheduler, TimerHandle
from .params import Params
from .registry import ModuleRegistry

logger = logging.getLogger(__name__)

CORE_MODULES = ("requests_monitor", "http_auth")
SCOPE_SCRIPT = Path(__file__).resolve().parent.parent / "browser" / "scope.js"

PROGRESS_POLL_INTERVAL = 0.1
REPORT_DRAIN_TIMEOUT = 5.0


class RunState(str, Enum):
    """Page load state machine."""
    INIT = "init"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    AWAITING_COMPLETION = "awaiting_completion"
    REPORTING = "reporting"
    DONE = "done"
    TIMED_OUT = "timed_out"
    EXITED = "exited"


@dataclass
class RunContext:
    """Mutable state of one run, owned by the session."""
    url: str
    params: Params
    cookies: List[CookieSpec]
    timeout: float
    scheduler: Scheduler
    started_at: Optional[float] = None
    timed_out: bool = False
    load_failed: bool = False
    load_finished_seen: bool = False
    progress: int = 0
    timers: List[TimerHandle] = field(default_factory=list)

    def clock(self) -> float:
        """Current time in milliseconds."""
        return self.scheduler.time() * 1000


def default_user_agent(engine: BrowserEngine) -> str:
    return f"loadprobe/{__version__} ({engine.name}; {platform.system()} {platform.machine()})"


def format_console_args(args: Any) -> str:
    if isinstance(args, list):
        return " ".join(a if isinstance(a, str) else json.dumps(a) for a in args)
    return str(args)


def _guarded(method: Callable) -> Callable:
    """Turn exceptions escaping an engine or timer callback into a fatal exit."""

    @functools.wraps(method)
    def wrapper(self: "LoadSession", *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, *args, **kwargs)
        except Exception:
            logger.exception(f"Unhandled error in {method.__name__}")
            self.tear_down(ExitCode.ERROR)
            return None

    return wrapper


class LoadSession:
    """Orchestrates one instrumented page load and its report."""

    def __init__(
        self,
        config: ProbeConfig,
        engine: BrowserEngine,
        scheduler: Optional[Scheduler] = None,
        stream_factory: Optional[Callable[[str], MetricStream]] = None,
        output: Optional[TextIO] = None,
        echo: Optional[Callable[[str], None]] = None,
    ):
        """Initialize load session.

        Args:
            config: Run configuration
            engine: Browser engine used to load the page
            scheduler: Timer source, the running event loop when omitted
            stream_factory: Builds the metric / progress streams by name
            output: Stream receiving the report when no output file is set
            echo: Prints module messages (stderr unless silent)
        """
        self.config = config
        self.engine = engine
        self._scheduler = scheduler
        self._stream_factory = stream_factory or (lambda name: NullMetricStream())
        self._output = output
        self._echo = echo or self._default_echo

        self.state = RunState.INIT
        self.context: Optional[RunContext] = None
        self.bus: Optional[EventBus] = None
        self.store: Optional[MetricsStore] = None
        self.tracker: Optional[NetworkActivityTracker] = None
        self.queue: Optional[ReportQueue] = None
        self.registry: Optional[ModuleRegistry] = None
        self.report_data: Optional[Report] = None
        self.exit_code: Optional[int] = None

        self._page: Optional[PageCapabilities] = None
        self._progress_stream: MetricStream = NullMetricStream()
        self._reporting_started = False
        self._exiting = False
        self._exit: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Future] = set()

    def _default_echo(self, message: str) -> None:
        if not self.config.silent:
            print(message, file=sys.stderr)

    # run

    async def run(self) -> int:
        """Perform the page load and return the process exit code."""
        self._exit = asyncio.get_running_loop().create_future()

        try:
            self._initialize()
            await self._prepare_page()
            await self._open()
        except ConfigParseError as e:
            logger.error(str(e))
            self.tear_down(ExitCode.CONFIG_FAILED)
        except Exception:
            logger.exception("Run failed before the page load completed")
            self.tear_down(ExitCode.ERROR)

        return await self._exit

    def _initialize(self) -> None:
        if not self.config.url:
            raise ConfigParseError("A URL to load must be provided")

        scheduler = self._scheduler or asyncio.get_running_loop()
        params = Params(self.config.to_params())
        self.context = RunContext(
            url=self.config.url,
            params=params,
            cookies=list(self.config.cookies),
            timeout=self.config.timeout,
            scheduler=scheduler,
        )

        self.bus = EventBus()
        self.store = MetricsStore(self.bus, self.context.clock, self._stream_factory("metric"))
        self._progress_stream = self._stream_factory("progress")

        self.store.set_generator(f"loadprobe v{__version__}")
        self.store.set_url(self.config.url)
        self.store.set_asserts(self.config.asserts)
        self.store.set_asserts_from_params(params)

        # bound before modules so markers see the timestamp first
        self.bus.on(Event.RESPONSE_END, lambda *_: self.store.mark_response_end())

        self.tracker = NetworkActivityTracker(self.bus, scheduler)
        self._page = PageCapabilities(self.engine)

        if self.config.config_file_path:
            logger.info(f"Using config file: {self.config.config_file_path}")

        self.registry = ModuleRegistry(self._create_module_api, skip_modules=self.config.skip_modules)
        self.registry.load_core(CORE_MODULES)
        self.registry.load_discovered(self.config.modules, self.config.include_dirs)

    def _create_module_api(self, name: str) -> ModuleAPI:
        return ModuleAPI(
            name=name,
            url=self.context.url,
            version=__version__,
            bus=self.bus,
            store=self.store,
            params=self.context.params,
            page=self._page,
            echo=self._echo,
        )

    async def _prepare_page(self) -> None:
        settings = PageSettings(
            viewport=self.config.viewport_size,
            user_agent=self.config.user_agent or default_user_agent(self.engine),
            javascript_enabled=not self.config.disable_js,
        )

        # last chance for modules to change the page settings
        self.bus.emit(Event.PAGE_BEFORE_OPEN, settings)

        self.engine.viewport_size = settings.viewport
        self.engine.user_agent = settings.user_agent
        self.engine.javascript_enabled = settings.javascript_enabled
        self.engine.extra_headers = dict(settings.extra_headers)
        if settings.http_username is not None:
            self.engine.http_credentials = {
                "username": settings.http_username,
                "password": settings.http_password or "",
            }

        if not settings.javascript_enabled:
            logger.info("JavaScript execution disabled by --disable-js!")

        await self.engine.start()
        await self._inject_cookies()

        if not await self.engine.inject_script(SCOPE_SCRIPT):
            raise ScopeInjectionError(f"Unable to inject {SCOPE_SCRIPT.name}")

        self.engine.bind(self)

        logger.info(f"Opening <{self.context.url}>...")
        logger.info(f"Using {settings.user_agent} as user agent")
        logger.info("Viewport set to %d x %d", *settings.viewport)

    async def _inject_cookies(self) -> None:
        for cookie in self.context.cookies:
            cookie = cookie.with_default_domain(self.context.url)
            if not await self.engine.add_cookie(cookie.to_engine_cookie()):
                raise LoadProbeError(f"Browser could not add cookie: {cookie.model_dump_json()}")
            logger.debug(f"Cookie set: {cookie.model_dump_json()}")

    async def _open(self) -> None:
        # finish when the network is idle and the page reported load finished
        self.queue = ReportQueue()
        self.queue.push(self.tracker.watch)
        self.queue.push(lambda done: self.bus.once(Event.LOAD_FINISHED, done))
        self.queue.done(self.report)

        self._set_state(RunState.LOADING)
        self.context.started_at = self.context.clock()

        await self.engine.open(self.context.url)
        if self._exiting:
            return

        self.bus.emit(Event.PAGE_OPEN)

        logger.info("Timeout set to %d sec", self.context.timeout)
        self._schedule(self.context.timeout, self._on_timeout)
        self._schedule(PROGRESS_POLL_INTERVAL, self._poll_progress)

    # timers

    def _schedule(self, delay: float, callback: Callable[[], Any]) -> None:
        self.context.timers.append(self.context.scheduler.call_later(delay, callback))

    @_guarded
    def _on_timeout(self) -> None:
        if self._reporting_started or self._exiting:
            logger.debug("Timeout reached after the report was triggered")
            return

        logger.warning("Timeout of %d sec was reached!", self.context.timeout)
        self.context.timed_out = True
        self.bus.emit(Event.TIMEOUT)
        self.report()

    @_guarded
    def _poll_progress(self) -> None:
        if self._exiting:
            return

        progress = self.engine.loading_progress
        if progress > self.context.progress:
            increment = progress - self.context.progress
            self.context.progress = progress
            logger.debug("Loading progress: %d%%", progress)
            self.bus.emit(Event.PROGRESS, progress, increment)
            self._progress_stream.push(progress, increment)

        self._schedule(PROGRESS_POLL_INTERVAL, self._poll_progress)

    # report and exit

    def report(self, *_: Any) -> None:
        """Generate the report; only the first call has an effect."""
        if self._reporting_started or self._exiting:
            logger.debug("Report already triggered")
            return

        self._reporting_started = True
        self._set_state(RunState.REPORTING)
        self._spawn(self._generate_report())

    async def _generate_report(self) -> None:
        try:
            self.bus.emit(Event.REPORT)
            await self.bus.drain(REPORT_DRAIN_TIMEOUT)

            elapsed = self.context.clock() - (self.context.started_at or 0)
            page_url = self.engine.url or self.context.url
            logger.info("loadprobe run for <%s> completed in %d ms", page_url, elapsed)

            self.store.set_url(page_url)
            self.bus.emit(Event.RESULTS, self.store)
            await self.bus.drain(REPORT_DRAIN_TIMEOUT)

            logger.info(f"Returning results with {len(self.store.get_metrics_names())} metric(s)...")
            self.report_data = self.store.build_report(self._run_status())
            self._write(format_report(self.report_data, self.config.format))

            exit_code = self._exit_code_for(self.report_data)
        except Exception:
            logger.exception("Failed to generate the report")
            exit_code = ExitCode.ERROR

        if self.context.timed_out:
            self._set_state(RunState.TIMED_OUT)
        elif not self.context.load_failed:
            self._set_state(RunState.DONE)

        self.tear_down(exit_code)

    def _run_status(self) -> RunStatus:
        if self.context.timed_out:
            return RunStatus.TIMED_OUT
        if self.context.load_failed:
            return RunStatus.LOAD_FAILED
        return RunStatus.SUCCESS

    def _exit_code_for(self, report: Report) -> int:
        if self.context.timed_out:
            logger.warning("Timed out!")
            return ExitCode.TIMED_OUT
        if self.context.load_failed:
            return ExitCode.LOAD_FAILED

        if report.failed_asserts:
            logger.warning(
                "Failed on %d assert(s) on the following metric(s): %s!",
                report.failed_count,
                ", ".join(report.failed_asserts),
            )
            return exit_code_for_failed_asserts(report.failed_count)

        logger.info("Done!")
        return ExitCode.SUCCESS

    def _write(self, text: str) -> None:
        write_report(text, path=self.config.output, stream=self._output)

    def tear_down(self, exit_code: int = ExitCode.SUCCESS) -> None:
        """The single exit routine: close the page and resolve the exit code."""
        if self._exiting:
            logger.debug(f"Already exiting, ignoring exit code {int(exit_code)}")
            return

        self._exiting = True
        self.exit_code = int(exit_code)
        if self.exit_code > 0:
            logger.info(f"Exiting with code #{self.exit_code}!")

        if self.context is not None:
            for timer in self.context.timers:
                timer.cancel()
            self.context.timers.clear()
        if self.tracker is not None:
            self.tracker.cancel()

        self._spawn(self._close_and_exit(self.exit_code))

    async def _close_and_exit(self, exit_code: int) -> None:
        try:
            await self.engine.close()
        except Exception as e:
            logger.error(f"Failed to close the page: {e}")

        self._set_state(RunState.EXITED)
        if self._exit is not None and not self._exit.done():
            self._exit.set_result(exit_code)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _set_state(self, state: RunState) -> None:
        if state != self.state:
            logger.debug(f"State {self.state.value} -> {state.value}")
            self.state = state

    # engine callbacks

    @_guarded
    def on_initialized(self) -> None:
        logger.debug("Page object initialized")
        self.bus.emit(Event.INIT)

    @_guarded
    def on_load_started(self) -> None:
        logger.debug("Page loading started")
        self.bus.emit(Event.LOAD_STARTED)

    @_guarded
    def on_resource_requested(self, request: ResourceRequest) -> None:
        self.bus.emit(Event.RESOURCE_REQUESTED, request)

    @_guarded
    def on_resource_received(self, response: ResourceResponse) -> None:
        self.bus.emit(Event.RESOURCE_RECEIVED, response)

    @_guarded
    def on_load_finished(self, status: str) -> None:
        if self.context.load_finished_seen:
            return
        self.context.load_finished_seen = True

        logger.info(f'Page loading finished ("{status}")')

        if status == LOAD_SUCCESS:
            self._set_state(RunState.LOADED)
            if not self._reporting_started:
                self._set_state(RunState.AWAITING_COMPLETION)
            self.bus.emit(Event.LOAD_FINISHED, status)
            return

        self.context.load_failed = True
        self._set_state(RunState.LOAD_FAILED)
        logger.error(str(PageLoadError(status)))
        self.bus.emit(Event.LOAD_FAILED, status)
        self.report()

    @_guarded
    def on_alert(self, message: str) -> None:
        logger.debug(f"Alert: {message}")
        self.bus.emit(Event.ALERT, message)

    @_guarded
    def on_confirm(self, message: str) -> None:
        logger.debug(f"Confirm: {message}")
        self.bus.emit(Event.CONFIRM, message)

    @_guarded
    def on_prompt(self, message: str) -> None:
        logger.debug(f"Prompt: {message}")
        self.bus.emit(Event.PROMPT, message)

    @_guarded
    def on_console_message(self, message: str) -> None:
        prefix, payload = None, None

        # "msg:<json>" and "log:<json>" come from the scope script
        if message[3:4] == ":" and message[:3] in ("msg", "log"):
            try:
                payload = json.loads(message[4:])
                prefix = message[:3]
            except ValueError:
                prefix = None

        if prefix == "msg":
            self.on_callback(payload)
        elif prefix == "log":
            text = format_console_args(payload)
            logger.debug(f"console.log: {text}")
            self.bus.emit(Event.CONSOLE_LOG, text, payload)
        else:
            logger.debug(message)

    @_guarded
    def on_callback(self, message: Any) -> None:
        message = message if isinstance(message, dict) else {}
        msg_type = message.get("type") or ""
        data = message.get("data") or {}

        if msg_type == "log":
            logger.debug(str(data))
        elif msg_type == "setMetric":
            self.store.set_metric(data.get("name"), data.get("value"), data.get("isFinal") is True)
        elif msg_type == "incrMetric":
            self.store.incr_metric(data.get("name"), data.get("incr") or 1)
        elif msg_type == "setMarkerMetric":
            try:
                self.store.set_marker_metric(data.get("name"))
            except MarkerBeforeResponseError as e:
                logger.warning(str(e))
        elif msg_type == "addOffender":
            self.store.add_offender(data.get("metricName"), str(data.get("msg", "")))
        else:
            logger.debug(f'Message "{msg_type}" from browser\'s scope: {json.dumps(data, default=str)}')
            self.bus.emit(Event.MESSAGE, message)

    @_guarded
    def on_error(self, message: str, trace: Optional[str] = None) -> None:
        self.bus.emit(Event.JS_ERROR, message, trace)

    def __repr__(self) -> str:
        url = self.context.url if self.context else self.config.url
        return f"LoadSession(url={url}, state={self.state.value}, exit_code={self.exit_code})"
