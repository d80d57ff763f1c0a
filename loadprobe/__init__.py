"""loadprobe - single page load instrumentation.

Loads one page in a browser engine under controlled conditions (viewport,
user agent, cookies, timeout), lets metric modules observe the load through
an event bus and produces a single structured report with a deterministic
exit code.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
