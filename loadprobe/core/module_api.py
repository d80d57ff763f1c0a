"""Capability façade handed to every module.

A :class:`ModuleAPI` is built per module by composition. It exposes event
subscription, parameters, metric and offender reporting, logging and the
page operations a metrics module needs, and nothing else: modules never get
the session, its timers, the report queue or the exit routine.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .events import EventBus, EventName, Handler
from .metrics import MetricsStore
from .params import Params
from ..browser.engine import PageCapabilities
from ..models.report import MetricValue

SCOPE_GET_JS = "(key) => window.__loadprobe ? window.__loadprobe.get(key) : undefined"


def _stderr_echo(message: str) -> None:
    print(message, file=sys.stderr)


class ModuleAPI:
    """Restricted view of the run given to a single module."""

    __slots__ = ("_name", "_url", "_version", "_bus", "_store", "_params", "_page", "_logger", "_echo")

    def __init__(
        self,
        name: str,
        url: str,
        version: str,
        bus: EventBus,
        store: MetricsStore,
        params: Params,
        page: PageCapabilities,
        echo: Optional[Callable[[str], None]] = None,
    ):
        self._name = name
        self._url = url
        self._version = version
        self._bus = bus
        self._store = store
        self._params = params
        self._page = page
        self._logger = logging.getLogger(f"loadprobe.modules.{name}")
        self._echo = echo or _stderr_echo

    @property
    def name(self) -> str:
        return self._name

    @property
    def url(self) -> str:
        return self._url

    def get_version(self) -> str:
        return self._version

    # parameters

    def get_param(self, key: str, default: Any = None, type_check: Optional[type] = None) -> Any:
        return self._params.get_param(key, default, type_check)

    def set_param(self, key: str, value: Any) -> None:
        self.log("setParam: %s set to %r", key, value)
        self._params.set_param(key, value)

    # events

    def on(self, name: EventName, handler: Handler) -> None:
        self._bus.on(name, handler)

    def once(self, name: EventName, handler: Handler) -> None:
        self._bus.once(name, handler)

    def emit(self, name: EventName, *args: Any) -> None:
        self._bus.emit(name, *args)

    # metrics

    def set_metric(self, name: str, value: Any = None, is_final: bool = False) -> None:
        self._store.set_metric(name, value, is_final)

    def incr_metric(self, name: str, incr: MetricValue = 1) -> None:
        self._store.incr_metric(name, incr)

    def get_metric(self, name: str) -> Optional[MetricValue]:
        return self._store.get_metric(name)

    def set_marker_metric(self, name: str) -> float:
        return self._store.set_marker_metric(name)

    async def set_metric_evaluate(self, name: str, fn: str, *args: Any) -> None:
        """Record the result of ``fn`` evaluated in the page as a final metric."""
        self._store.set_metric(name, await self._page.evaluate(fn, *args), is_final=True)

    async def get_from_scope(self, key: str) -> Any:
        """Read a value stored in the page with ``window.__loadprobe.set()``."""
        return await self._page.evaluate(SCOPE_GET_JS, key)

    async def set_metric_from_scope(self, name: str, key: Optional[str] = None) -> None:
        value = await self.get_from_scope(key or name)
        self._store.set_metric(name, value or 0, is_final=True)

    # offenders

    def add_offender(self, metric_name: str, message: str, *args: Any) -> None:
        self._store.add_offender(metric_name, message, *args)

    # debug

    def log(self, message: str, *args: Any) -> None:
        self._logger.debug(message, *args)

    def echo(self, message: str) -> None:
        self._echo(message)

    # page

    async def evaluate(self, fn: str, *args: Any) -> Any:
        return await self._page.evaluate(fn, *args)

    async def inject_js(self, path: Union[str, Path]) -> bool:
        return await self._page.inject_script(path)

    async def render(self, path: Union[str, Path]) -> None:
        await self._page.render(path)

    async def set_zoom(self, zoom_factor: float) -> None:
        await self._page.set_zoom(zoom_factor)

    async def get_source(self) -> str:
        return await self._page.content()

    def __repr__(self) -> str:
        return f"ModuleAPI(module={self._name!r}, url={self._url!r})"
