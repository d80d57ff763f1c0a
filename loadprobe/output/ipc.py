"""JSON line stream of run events for a parent process."""

import json
import sys
from typing import Any, Optional, TextIO


class IpcChannel:
    """Writes ``{"event": <name>, "data": [...]}`` lines to a stream (stderr)."""

    def __init__(self, event: str, stream: Optional[TextIO] = None):
        self.event = event
        self._stream = stream

    def push(self, *data: Any) -> None:
        stream = self._stream or sys.stderr
        stream.write(json.dumps({"event": self.event, "data": list(data)}, default=str) + "\n")
        stream.flush()
