"""Run parameters readable and writable by modules."""

import logging
from typing import Any, Dict, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)


def normalize_key(key: str) -> str:
    """``auth-user`` and ``auth_user`` name the same parameter."""
    return key.strip().replace("-", "_")


class Params(Mapping[str, Any]):
    """Parameter map with dash/underscore insensitive keys."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        for key, value in (values or {}).items():
            self._values[normalize_key(key)] = value

    def get_param(self, key: str, default: Any = None, type_check: Optional[type] = None) -> Any:
        """Return the parameter value, or ``default`` when unset or of the wrong type."""
        value = self._values.get(normalize_key(key))

        if type_check is not None and not isinstance(value, type_check):
            value = None

        return default if value is None else value

    def set_param(self, key: str, value: Any) -> None:
        logger.debug("setParam: %s set to %r", key, value)
        self._values[normalize_key(key)] = value

    def __getitem__(self, key: str) -> Any:
        return self._values[normalize_key(key)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)
