"""Report formatting and the metric stream."""

from .formatter import format_report, write_report
from .ipc import IpcChannel

__all__ = ["format_report", "write_report", "IpcChannel"]
