"""Run configuration model."""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from .capture import CookieSpec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
DEFAULT_VIEWPORT = (1280, 1024)


class OutputFormat:
    """Supported report formats."""
    JSON = "json"
    YAML = "yaml"
    PLAIN = "plain"

    ALL = (JSON, YAML, PLAIN)


class EngineType:
    """Supported Playwright browser engines."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    ALL = (CHROMIUM, FIREFOX, WEBKIT)


def _split_list(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return [str(item) for item in v]


class ProbeConfig(BaseModel):
    """Complete configuration of a single page load run."""

    # Target
    url: Optional[str] = Field(default=None, description="URL to load")

    # Output
    format: str = Field(default=OutputFormat.JSON, description="Report format")
    output: Optional[Path] = Field(default=None, description="Report file (stdout when unset)")
    verbose: bool = Field(default=False, description="Debug logging to stderr")
    silent: bool = Field(default=False, description="Suppress everything but the report")
    log: Optional[Path] = Field(default=None, description="Debug log file")
    ipc: bool = Field(default=False, description="Stream final metrics and progress to stderr")

    # Run
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Global timeout in seconds")
    modules: List[str] = Field(default_factory=list, description="Explicit module list")
    include_dirs: List[Path] = Field(default_factory=list, description="Extra module directories")
    skip_modules: List[str] = Field(default_factory=list, description="Modules never initialized")
    asserts: Dict[str, float] = Field(default_factory=dict, description="Metric thresholds")
    params: Dict[str, Any] = Field(default_factory=dict, description="Free-form module parameters")

    # Page
    viewport: str = Field(default="1280x1024", description="Viewport as WIDTHxHEIGHT")
    user_agent: Optional[str] = Field(default=None, description="User agent override")
    disable_js: bool = Field(default=False, description="Disable JavaScript in the page")
    cookies: List[CookieSpec] = Field(default_factory=list, description="Cookies to inject")
    auth_user: Optional[str] = Field(default=None, description="HTTP auth user name")
    auth_pass: Optional[str] = Field(default=None, description="HTTP auth password")

    # Browser
    engine: str = Field(default=EngineType.CHROMIUM, description="Playwright browser engine")
    headful: bool = Field(default=False, description="Show the browser window")

    # Metadata
    config_file_path: Optional[Path] = Field(default=None, description="Source config file")
    loaded_from: List[str] = Field(default_factory=list, description="Configuration sources")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v):
        v = v.lower()
        if v not in OutputFormat.ALL:
            raise ValueError(f"format must be one of: {', '.join(OutputFormat.ALL)}")
        return v

    @field_validator("engine")
    @classmethod
    def validate_engine(cls, v):
        v = v.lower()
        if v not in EngineType.ALL:
            raise ValueError(f"engine must be one of: {', '.join(EngineType.ALL)}")
        return v

    @field_validator("timeout", mode="before")
    @classmethod
    def default_timeout(cls, v):
        try:
            v = float(v)
        except (TypeError, ValueError):
            return DEFAULT_TIMEOUT
        return v if v > 0 else DEFAULT_TIMEOUT

    @field_validator("asserts", mode="before")
    @classmethod
    def drop_invalid_asserts(cls, v):
        """Thresholds that are not numbers are ignored, not rejected."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            return v

        asserts = {}
        for name, threshold in v.items():
            try:
                value = float(threshold)
            except (TypeError, ValueError):
                value = None
            if not name or value is None or math.isnan(value):
                logger.warning(f"Ignoring assert {name!r} with non-numeric threshold {threshold!r}")
                continue
            asserts[name] = value
        return asserts

    @field_validator("modules", "skip_modules", mode="before")
    @classmethod
    def split_names(cls, v):
        return _split_list(v)

    @field_validator("include_dirs", mode="before")
    @classmethod
    def split_dirs(cls, v):
        return [Path(item) for item in _split_list(v)]

    @property
    def viewport_size(self) -> Tuple[int, int]:
        """Parsed viewport; unparsable dimensions fall back to the defaults."""
        parts = self.viewport.lower().split("x")
        if len(parts) != 2:
            return DEFAULT_VIEWPORT

        size = []
        for part, default in zip(parts, DEFAULT_VIEWPORT):
            try:
                value = int(part)
            except ValueError:
                value = 0
            size.append(value if value > 0 else default)
        return size[0], size[1]

    def to_params(self) -> Dict[str, Any]:
        """Flatten into the parameter map modules read with ``get_param``."""
        params = self.model_dump(
            mode="json",
            exclude={"params", "cookies", "config_file_path", "loaded_from", "asserts"},
        )
        params.update(self.params)
        return params
