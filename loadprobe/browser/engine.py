"""Browser engine boundary.

The session drives a :class:`BrowserEngine` and receives its lifecycle
notifications through a :class:`PageCallbacks` implementation. Modules never
see the engine itself, only the narrow :class:`PageCapabilities` view.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple, Union

from ..models.capture import ResourceRequest, ResourceResponse

LOAD_SUCCESS = "success"
LOAD_FAIL = "fail"


class PageCallbacks(Protocol):
    """Lifecycle notifications delivered by an engine, one method per callback."""

    def on_initialized(self) -> None:
        ...

    def on_load_started(self) -> None:
        ...

    def on_resource_requested(self, request: ResourceRequest) -> None:
        ...

    def on_resource_received(self, response: ResourceResponse) -> None:
        ...

    def on_load_finished(self, status: str) -> None:
        ...

    def on_alert(self, message: str) -> None:
        ...

    def on_confirm(self, message: str) -> None:
        ...

    def on_prompt(self, message: str) -> None:
        ...

    def on_console_message(self, message: str) -> None:
        ...

    def on_error(self, message: str, trace: Optional[str] = None) -> None:
        ...

    def on_callback(self, message: Any) -> None:
        ...


class BrowserEngine(ABC):
    """A browser able to load a single page and report on it."""

    def __init__(self):
        self.viewport_size: Tuple[int, int] = (1280, 1024)
        self.user_agent: Optional[str] = None
        self.javascript_enabled: bool = True
        self.http_credentials: Optional[Dict[str, str]] = None
        self.extra_headers: Dict[str, str] = {}
        self.zoom_factor: float = 1.0

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name and version, used in the default user agent."""
        ...

    @property
    @abstractmethod
    def url(self) -> Optional[str]:
        """Current page URL."""
        ...

    @property
    @abstractmethod
    def loading_progress(self) -> int:
        """Load progress between 0 and 100."""
        ...

    @abstractmethod
    def bind(self, callbacks: PageCallbacks) -> None:
        """Deliver lifecycle notifications to ``callbacks``."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Create the page using the current settings."""
        ...

    @abstractmethod
    async def add_cookie(self, cookie: Dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def open(self, url: str) -> None:
        """Start loading ``url``; completion arrives via ``on_load_finished``."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def evaluate(self, fn: str, *args: Any) -> Any:
        """Run a JavaScript function in the page and return its result."""
        ...

    @abstractmethod
    async def inject_script(self, path: Union[str, Path]) -> bool:
        ...

    @abstractmethod
    async def render(self, path: Union[str, Path]) -> None:
        ...

    @abstractmethod
    async def content(self) -> str:
        ...

    async def set_zoom(self, zoom_factor: float) -> None:
        self.zoom_factor = zoom_factor


class PageCapabilities:
    """The engine operations a metrics module is allowed to use."""

    __slots__ = ("_evaluate", "_inject_script", "_render", "_set_zoom", "_content")

    def __init__(self, engine: BrowserEngine):
        self._evaluate = engine.evaluate
        self._inject_script = engine.inject_script
        self._render = engine.render
        self._set_zoom = engine.set_zoom
        self._content = engine.content

    async def evaluate(self, fn: str, *args: Any) -> Any:
        return await self._evaluate(fn, *args)

    async def inject_script(self, path: Union[str, Path]) -> bool:
        return await self._inject_script(path)

    async def render(self, path: Union[str, Path]) -> None:
        await self._render(path)

    async def set_zoom(self, zoom_factor: float) -> None:
        await self._set_zoom(zoom_factor)

    async def content(self) -> str:
        return await self._content()
