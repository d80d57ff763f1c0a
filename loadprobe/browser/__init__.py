"""Browser engine boundary and its Playwright implementation.

Main Components:
- Engine interface: lifecycle callbacks and page capabilities (engine.py)
- Playwright engine: Chromium / Firefox / WebKit adapter (playwright_engine.py)
- Scope bridge: ``window.__loadprobe`` helper injected into pages (scope.js)
"""

from .engine import LOAD_FAIL, LOAD_SUCCESS, BrowserEngine, PageCallbacks, PageCapabilities

__all__ = [
    "BrowserEngine",
    "PageCallbacks",
    "PageCapabilities",
    "LOAD_SUCCESS",
    "LOAD_FAIL",
]
