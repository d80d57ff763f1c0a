"""Core of loadprobe.

Main Components:
- Event bus: synchronous publish/subscribe between the session and modules
- Report queue: joins network idle and load finished before reporting
- Metrics store: metrics, offenders and assertions of a run
- Network activity tracker: network idle detection
- Module registry and capability façade
- Load session: orchestration, timeout and the single exit routine

Usage:
    from loadprobe.core import LoadSession

    session = LoadSession(config, engine)
    exit_code = await session.run()
"""

from .barrier import ReportQueue
from .errors import (
    ConfigParseError,
    ExitCode,
    LoadProbeError,
    MarkerBeforeResponseError,
    ModuleResolutionError,
    PageLoadError,
    ScopeInjectionError,
)
from .events import Event, EventBus
from .metrics import MetricsStore
from .module_api import ModuleAPI
from .network_idle import NETWORK_IDLE_QUIET_PERIOD, NetworkActivityTracker
from .params import Params
from .registry import ModuleRegistry
from .session import LoadSession, RunContext, RunState

__all__ = [
    # Orchestration
    "LoadSession",
    "RunContext",
    "RunState",

    # Building blocks
    "Event",
    "EventBus",
    "ReportQueue",
    "MetricsStore",
    "NetworkActivityTracker",
    "NETWORK_IDLE_QUIET_PERIOD",
    "Params",
    "ModuleAPI",
    "ModuleRegistry",

    # Errors
    "ExitCode",
    "LoadProbeError",
    "ConfigParseError",
    "ModuleResolutionError",
    "PageLoadError",
    "MarkerBeforeResponseError",
    "ScopeInjectionError",
]
