"""Pydantic data models for loadprobe."""

from .capture import CookieSpec, PageSettings, RequestEntry, ResourceRequest, ResourceResponse, ResponseStage
from .config import EngineType, OutputFormat, ProbeConfig
from .report import AssertResult, Metric, MetricValue, Report, RunStatus

__all__ = [
    # Engine data
    "ResourceRequest",
    "ResourceResponse",
    "ResponseStage",
    "RequestEntry",
    "CookieSpec",
    "PageSettings",

    # Configuration
    "ProbeConfig",
    "OutputFormat",
    "EngineType",

    # Report
    "Metric",
    "MetricValue",
    "AssertResult",
    "Report",
    "RunStatus",
]
