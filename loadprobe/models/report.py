"""Pydantic models for metrics, assertions and the final run report."""

from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

MetricValue = Union[int, float, str]


class RunStatus(str, Enum):
    """How the run ended."""
    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    LOAD_FAILED = "load_failed"


class Metric(BaseModel):
    """A named metric value; ``is_final`` never goes back to False."""

    name: str
    value: MetricValue = 0
    is_final: bool = False


class AssertResult(BaseModel):
    """Outcome of a single assertion."""

    metric: str
    threshold: float
    value: Optional[MetricValue] = None
    passed: bool


class Report(BaseModel):
    """The single structured report produced per run."""

    generator: str = Field(description="Generator identity and version")
    url: Optional[str] = Field(default=None, description="Final page URL")
    status: RunStatus = RunStatus.SUCCESS
    timed_out: bool = False
    metrics: Dict[str, MetricValue] = Field(default_factory=dict)
    offenders: Dict[str, List[str]] = Field(default_factory=dict)
    asserts: List[AssertResult] = Field(default_factory=list)
    failed_asserts: List[str] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)

    @property
    def failed_count(self) -> int:
        return len(self.failed_asserts)
