"""Playwright implementation of the browser engine.

Playwright page events are translated into :class:`PageCallbacks` calls:

- ``request`` -> ``on_resource_requested``
- ``response`` -> ``on_resource_received`` (start stage)
- ``requestfinished`` / ``requestfailed`` -> ``on_resource_received`` (end stage)
- main frame ``framenavigated`` -> ``on_initialized``
- ``console`` / ``pageerror`` / ``dialog`` -> console, error and dialog callbacks

All timestamps are taken from the running event loop clock, in milliseconds,
so they share a time base with the session timers.
"""

import asyncio
import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, Optional, Set, Union

from playwright.async_api import (
    Browser,
    BrowserContext,
    ConsoleMessage,
    Dialog,
    Error as PlaywrightError,
    Frame,
    Page,
    Playwright,
    Request,
    Response,
    async_playwright,
)

from ..models.capture import ResourceRequest, ResourceResponse, ResponseStage
from ..models.config import EngineType
from .engine import LOAD_FAIL, LOAD_SUCCESS, BrowserEngine, PageCallbacks

logger = logging.getLogger(__name__)

SET_ZOOM_JS = "(zoom) => { document.body.style.zoom = zoom; }"


def _playwright_version() -> str:
    try:
        return version("playwright")
    except PackageNotFoundError:
        return "unknown"


class PlaywrightEngine(BrowserEngine):
    """Loads a single page in a Playwright managed browser."""

    def __init__(self, engine: str = EngineType.CHROMIUM, headless: bool = True):
        """Initialize Playwright engine.

        Args:
            engine: Browser engine to launch (chromium, firefox, webkit)
            headless: Run browser in headless mode
        """
        super().__init__()
        if engine not in EngineType.ALL:
            raise ValueError(f"Unsupported browser engine: {engine}")

        self.engine_type = engine
        self.headless = headless

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

        self._callbacks: Optional[PageCallbacks] = None
        self._request_ids: Dict[Request, int] = {}
        self._next_request_id = 0
        self._pending: Set[int] = set()
        self._finished = 0
        self._navigated = False
        self._load_task: Optional[asyncio.Task] = None
        self._dialog_tasks: Set[asyncio.Future] = set()

    # properties

    @property
    def name(self) -> str:
        return f"Playwright/{_playwright_version()} {self.engine_type}"

    @property
    def url(self) -> Optional[str]:
        return self.page.url if self.page is not None else None

    @property
    def loading_progress(self) -> int:
        """Share of finished requests, capped below 100 until the load event."""
        if self._load_task is not None and self._load_task.done():
            return 100
        total = self._finished + len(self._pending)
        if total == 0:
            return 10 if self._navigated else 0
        return min(90, 10 + int(80 * self._finished / total))

    def _now(self) -> float:
        return asyncio.get_running_loop().time() * 1000

    # lifecycle

    def bind(self, callbacks: PageCallbacks) -> None:
        self._callbacks = callbacks

    async def start(self) -> None:
        """Start Playwright, launch the browser and create the page."""
        if self.playwright is not None:
            logger.warning("Playwright engine already started")
            return

        logger.info(f"Starting Playwright with engine: {self.engine_type}")
        self.playwright = await async_playwright().start()

        browser_type = getattr(self.playwright, self.engine_type)
        self.browser = await browser_type.launch(headless=self.headless)
        self.context = await self.browser.new_context(**self._context_options())
        self.page = await self.context.new_page()

        self._setup_listeners(self.page)
        logger.debug("Playwright page created")

    def _context_options(self) -> Dict[str, Any]:
        width, height = self.viewport_size
        options: Dict[str, Any] = {"viewport": {"width": width, "height": height}}

        if self.user_agent:
            options["user_agent"] = self.user_agent

        if self.extra_headers:
            options["extra_http_headers"] = self.extra_headers

        if not self.javascript_enabled:
            options["java_script_enabled"] = False

        if self.http_credentials:
            options["http_credentials"] = self.http_credentials

        return options

    def _setup_listeners(self, page: Page) -> None:
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        page.on("requestfinished", self._on_request_finished)
        page.on("requestfailed", self._on_request_failed)
        page.on("framenavigated", self._on_frame_navigated)
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)
        page.on("dialog", self._on_dialog)

    async def add_cookie(self, cookie: Dict[str, Any]) -> bool:
        if self.context is None:
            return False
        try:
            await self.context.add_cookies([cookie])
        except PlaywrightError as e:
            logger.warning(f"Failed to add cookie {cookie.get('name')}: {e}")
            return False
        return True

    async def open(self, url: str) -> None:
        if self.page is None:
            raise RuntimeError("Engine not started")

        if self._callbacks is not None:
            self._callbacks.on_load_started()

        self._load_task = asyncio.create_task(self._navigate(url))

    async def _navigate(self, url: str) -> None:
        status = LOAD_SUCCESS
        try:
            await self.page.goto(url, wait_until="load", timeout=0)
        except PlaywrightError as e:
            logger.error(f"Navigation to {url} failed: {e}")
            status = LOAD_FAIL

        if self._callbacks is not None:
            self._callbacks.on_load_finished(status)

    async def close(self) -> None:
        """Close the page and browser, stop Playwright."""
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        for task in list(self._dialog_tasks):
            task.cancel()

        try:
            if self.context is not None:
                await self.context.close()
            if self.browser is not None:
                await self.browser.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            if self.playwright is not None:
                await self.playwright.stop()
            self.page = None
            self.context = None
            self.browser = None
            self.playwright = None

        logger.debug("Playwright engine closed")

    # page operations

    async def evaluate(self, fn: str, *args: Any) -> Any:
        if not args:
            return await self.page.evaluate(fn)
        return await self.page.evaluate(fn, args[0] if len(args) == 1 else list(args))

    async def inject_script(self, path: Union[str, Path]) -> bool:
        path = Path(path)
        if not path.is_file():
            logger.error(f"Script not found: {path}")
            return False

        try:
            if self._navigated:
                await self.page.add_script_tag(path=str(path))
            else:
                # runs in every document before its own scripts
                await self.context.add_init_script(path=str(path))
        except PlaywrightError as e:
            logger.error(f"Failed to inject {path}: {e}")
            return False

        logger.debug(f"Injected {path}")
        return True

    async def render(self, path: Union[str, Path]) -> None:
        await self.page.screenshot(path=str(path), full_page=True)
        logger.debug(f"Page rendered to {path}")

    async def set_zoom(self, zoom_factor: float) -> None:
        await super().set_zoom(zoom_factor)
        await self.page.evaluate(SET_ZOOM_JS, zoom_factor)

    async def content(self) -> str:
        return await self.page.content()

    # Playwright listeners

    def _request_id(self, request: Request) -> int:
        if request not in self._request_ids:
            self._next_request_id += 1
            self._request_ids[request] = self._next_request_id
        return self._request_ids[request]

    def _on_request(self, request: Request) -> None:
        request_id = self._request_id(request)
        self._pending.add(request_id)

        headers = {}
        try:
            headers = request.headers
        except Exception as e:
            logger.debug(f"Failed to extract request headers: {e}")

        if self._callbacks is not None:
            self._callbacks.on_resource_requested(ResourceRequest(
                id=request_id,
                url=request.url,
                method=request.method,
                headers=headers,
                resource_type=request.resource_type,
                timestamp=self._now(),
            ))

    def _on_response(self, response: Response) -> None:
        request_id = self._request_id(response.request)

        if self._callbacks is not None:
            self._callbacks.on_resource_received(ResourceResponse(
                id=request_id,
                url=response.url,
                stage=ResponseStage.START,
                status=response.status,
                status_text=response.status_text,
                headers=response.headers,
                timestamp=self._now(),
            ))

    def _on_request_finished(self, request: Request) -> None:
        self._complete(request, failed=False)

    def _on_request_failed(self, request: Request) -> None:
        self._complete(request, failed=True, error_text=request.failure)

    def _complete(self, request: Request, failed: bool, error_text: Optional[str] = None) -> None:
        request_id = self._request_id(request)
        self._pending.discard(request_id)
        self._finished += 1

        if self._callbacks is not None:
            self._callbacks.on_resource_received(ResourceResponse(
                id=request_id,
                url=request.url,
                stage=ResponseStage.END,
                failed=failed,
                error_text=error_text,
                timestamp=self._now(),
            ))

    def _on_frame_navigated(self, frame: Frame) -> None:
        if frame is not self.page.main_frame:
            return

        self._navigated = True
        if self._callbacks is not None:
            self._callbacks.on_initialized()

    def _on_console(self, message: ConsoleMessage) -> None:
        if self._callbacks is not None:
            self._callbacks.on_console_message(message.text)

    def _on_page_error(self, error: Any) -> None:
        if self._callbacks is None:
            return
        message = getattr(error, "message", None) or str(error)
        self._callbacks.on_error(message, getattr(error, "stack", None))

    def _on_dialog(self, dialog: Dialog) -> None:
        dialog_type = dialog.type
        if self._callbacks is not None:
            if dialog_type == "confirm":
                self._callbacks.on_confirm(dialog.message)
            elif dialog_type == "prompt":
                self._callbacks.on_prompt(dialog.message)
            else:
                self._callbacks.on_alert(dialog.message)

        if dialog_type in ("alert", "beforeunload"):
            self._answer_dialog(dialog.accept(), "accept")
        else:
            self._answer_dialog(dialog.dismiss(), "dismiss")

    def _answer_dialog(self, action: Any, verb: str) -> None:
        task = asyncio.ensure_future(action)
        self._dialog_tasks.add(task)

        def _finished(done: asyncio.Future) -> None:
            self._dialog_tasks.discard(done)
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.warning(f"Failed to {verb} dialog: {error}")

        task.add_done_callback(_finished)
