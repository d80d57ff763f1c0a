"""Pydantic models for data exchanged with the browser engine.

Request and response records are produced by the engine adapter and handed
to the session through the lifecycle callbacks; request entries are the
per-request state kept by the requests monitor and passed along with
``send`` / ``recv`` / ``abort`` events.
"""

from enum import Enum
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class ResponseStage(str, Enum):
    """Stage of a response callback."""
    START = "start"
    END = "end"


class ResourceRequest(BaseModel):
    """A request as reported by the engine when it is sent."""

    id: int = Field(description="Engine assigned request identifier")
    url: str = Field(description="Requested URL")
    method: str = Field(default="GET", description="HTTP method")
    headers: Dict[str, str] = Field(default_factory=dict)
    resource_type: str = Field(default="other", description="Engine resource type")
    timestamp: float = Field(description="Send time in milliseconds")


class ResourceResponse(BaseModel):
    """A response stage as reported by the engine."""

    id: int = Field(description="Identifier of the matching request")
    url: str
    stage: ResponseStage = ResponseStage.END
    status: Optional[int] = Field(default=None, description="HTTP status code")
    status_text: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body_size: Optional[int] = Field(default=None, description="Body size in bytes")
    failed: bool = Field(default=False, description="Request failed or was aborted")
    error_text: Optional[str] = None
    timestamp: float = Field(description="Event time in milliseconds")


class RequestEntry(BaseModel):
    """Per-request state tracked by the requests monitor."""

    id: int
    url: str
    method: str = "GET"
    resource_type: str = "other"
    status: Optional[int] = None
    is_base: bool = False
    failed: bool = False
    error_text: Optional[str] = None
    content_type: Optional[str] = None
    content_length: Optional[int] = None
    send_time: float
    recv_start_time: Optional[float] = None
    recv_end_time: Optional[float] = None

    @property
    def time_to_first_byte(self) -> Optional[float]:
        if self.recv_start_time is None:
            return None
        return self.recv_start_time - self.send_time

    @property
    def time_to_last_byte(self) -> Optional[float]:
        if self.recv_end_time is None:
            return None
        return self.recv_end_time - self.send_time

    @property
    def is_redirect(self) -> bool:
        return self.status is not None and 300 <= self.status < 400

    @property
    def domain(self) -> str:
        return urlparse(self.url).netloc


class CookieSpec(BaseModel):
    """A cookie to be injected before the page is opened."""

    name: str = Field(min_length=1)
    value: str = Field(min_length=1)
    domain: Optional[str] = None
    path: str = "/"
    secure: bool = False
    http_only: bool = Field(default=False, alias="httpOnly")
    expires: Optional[float] = None

    model_config = {"populate_by_name": True}

    def with_default_domain(self, url: str) -> "CookieSpec":
        """Return a copy whose missing domain is derived from ``url``."""
        if self.domain:
            return self
        host = urlparse(url).hostname or ""
        if host.startswith("www"):
            host = host[3:]
        return self.model_copy(update={"domain": host})

    def to_engine_cookie(self) -> Dict[str, object]:
        cookie = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "secure": self.secure,
            "httpOnly": self.http_only,
        }
        if self.expires is not None:
            cookie["expires"] = self.expires
        return cookie


class PageSettings(BaseModel):
    """Page settings applied to the engine before it starts.

    Emitted with ``pageBeforeOpen`` so modules can adjust them.
    """

    viewport: Tuple[int, int] = (1280, 1024)
    user_agent: str
    javascript_enabled: bool = True
    http_username: Optional[str] = None
    http_password: Optional[str] = None
    extra_headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("viewport")
    @classmethod
    def validate_viewport(cls, v):
        width, height = v
        if width <= 0 or height <= 0:
            raise ValueError("viewport dimensions must be positive")
        return v
