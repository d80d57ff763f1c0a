"""Error taxonomy and process exit codes."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes.

    Values between 1 and MAX_FAILED_ASSERTS carry the number of failed
    assertions; the reserved codes sit above that range.
    """
    SUCCESS = 0
    TIMED_OUT = 252
    CONFIG_FAILED = 253
    LOAD_FAILED = 254
    ERROR = 255


# Failed-assert counts are clamped below the reserved codes
MAX_FAILED_ASSERTS = 251


def exit_code_for_failed_asserts(count: int) -> int:
    """Map a failed assertion count to an exit code."""
    if count <= 0:
        return ExitCode.SUCCESS
    return min(count, MAX_FAILED_ASSERTS)


class LoadProbeError(Exception):
    """Base class for loadprobe errors."""
    pass


class ConfigParseError(LoadProbeError):
    """Configuration input is missing, malformed or invalid."""
    pass


class ModuleResolutionError(LoadProbeError):
    """A module could not be found or does not expose a valid entry point."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"Unable to load module {name!r}: {reason}")
        self.name = name
        self.reason = reason


class PageLoadError(LoadProbeError):
    """The browser engine reported a non-success load status."""

    def __init__(self, status: str):
        super().__init__(f"Page load failed with status {status!r}")
        self.status = status


class MarkerBeforeResponseError(LoadProbeError):
    """A marker metric was requested before the main response completed."""

    def __init__(self, name: str):
        super().__init__(
            f"set_marker_metric({name!r}) called before responseEnd event"
        )
        self.name = name


class ScopeInjectionError(LoadProbeError):
    """The in-page scope helper could not be injected."""
    pass
