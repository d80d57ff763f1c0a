"""Translates raw engine resource callbacks into request lifecycle events.

Emits:

- ``send`` when a request is issued
- ``recv`` when a response was fully received
- ``abort`` when a request failed or was aborted
- ``base`` for the main document (first completed response that is not a redirect)
- ``responseEnd`` when the main document was fully received

Records the ``requests`` count and ``timeToFirstByte`` /
``timeToLastByte`` of the main document.
"""

import logging
from typing import Dict, Optional

from loadprobe.models.capture import RequestEntry, ResourceRequest, ResourceResponse, ResponseStage

__version__ = "1.0"

logger = logging.getLogger(__name__)


def _content_length(headers: Dict[str, str]) -> Optional[int]:
    for key, value in headers.items():
        if key.lower() == "content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


def _content_type(headers: Dict[str, str]) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == "content-type":
            return value.split(";")[0].strip()
    return None


class RequestsMonitor:
    """Per-run request bookkeeping for a single module instance."""

    def __init__(self, api):
        self.api = api
        self.requests: Dict[int, RequestEntry] = {}
        self.base: Optional[RequestEntry] = None

    def on_requested(self, request: ResourceRequest) -> None:
        entry = RequestEntry(
            id=request.id,
            url=request.url,
            method=request.method,
            resource_type=request.resource_type,
            send_time=request.timestamp,
        )
        self.requests[request.id] = entry
        self.api.emit("send", entry, request)

    def on_received(self, response: ResourceResponse) -> None:
        entry = self.requests.get(response.id)
        if entry is None:
            logger.debug(f"Response for unknown request #{response.id} <{response.url}>")
            return

        if response.stage == ResponseStage.START:
            self._on_start(entry, response)
        else:
            self._on_end(entry, response)

    def _on_start(self, entry: RequestEntry, response: ResourceResponse) -> None:
        entry.recv_start_time = response.timestamp
        entry.status = response.status
        entry.content_type = _content_type(response.headers)
        entry.content_length = _content_length(response.headers)

    def _on_end(self, entry: RequestEntry, response: ResourceResponse) -> None:
        entry.recv_end_time = response.timestamp
        if entry.recv_start_time is None:
            entry.recv_start_time = response.timestamp
        if response.status is not None:
            entry.status = response.status
        if response.body_size is not None:
            entry.content_length = response.body_size

        if response.failed:
            entry.failed = True
            entry.error_text = response.error_text
            self.api.log("Request #%d <%s> aborted: %s", entry.id, entry.url, entry.error_text)
            self.api.emit("abort", entry, response)
        else:
            self.api.incr_metric("requests")
            self.api.emit("recv", entry, response)

        if self.base is None and not entry.failed and not entry.is_redirect:
            self._set_base(entry, response)

    def _set_base(self, entry: RequestEntry, response: ResourceResponse) -> None:
        entry.is_base = True
        self.base = entry

        self.api.set_metric("timeToFirstByte", round(entry.time_to_first_byte or 0), True)
        self.api.set_metric("timeToLastByte", round(entry.time_to_last_byte or 0), True)

        self.api.emit("base", entry)
        self.api.emit("responseEnd", entry, response)


def module(api):
    monitor = RequestsMonitor(api)

    api.set_metric("requests")

    api.on("onResourceRequested", monitor.on_requested)
    api.on("onResourceReceived", monitor.on_received)
