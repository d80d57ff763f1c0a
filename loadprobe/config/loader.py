"""Configuration loading with proper precedence handling.

Sources, highest precedence first:
CLI flags > environment variables > config file > defaults

Every failure (missing or unreadable file, invalid JSON / YAML, a document
that is not a mapping, a value rejected by the model) is reported as a
:class:`ConfigParseError` so the CLI can exit before any browser starts.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from ..core.errors import ConfigParseError
from ..models.capture import CookieSpec
from ..models.config import ProbeConfig

logger = logging.getLogger(__name__)

COOKIE_FLAGS = {"secure": "secure", "httponly": "http_only"}


def parse_cookie_string(value: str) -> CookieSpec:
    """Parse ``name=value;domain=x;path=/;secure`` into a cookie.

    Raises:
        ConfigParseError: If the cookie has no name or no value
    """
    parts = [part.strip() for part in value.split(";") if part.strip()]
    if not parts or "=" not in parts[0]:
        raise ConfigParseError(f"Invalid cookie: {value!r} (expected name=value)")

    name, _, cookie_value = parts[0].partition("=")
    data: Dict[str, Any] = {"name": name.strip(), "value": cookie_value.strip()}

    for part in parts[1:]:
        key, sep, attr = part.partition("=")
        key = key.strip().lower()
        if not sep and key in COOKIE_FLAGS:
            data[COOKIE_FLAGS[key]] = True
        elif key in ("domain", "path"):
            data[key] = attr.strip()
        elif key == "expires":
            try:
                data["expires"] = float(attr)
            except ValueError:
                raise ConfigParseError(f"Invalid cookie expiry in {value!r}")
        else:
            logger.debug(f"Ignoring cookie attribute {part!r}")

    try:
        return CookieSpec(**data)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid cookie {value!r}: name and value are required") from e


class ConfigurationLoader:
    """Loads and merges configuration from multiple sources with proper precedence."""

    # Environment variable prefix
    ENV_PREFIX = "LOADPROBE_"

    BOOLEAN_KEYS = ("verbose", "silent", "ipc", "disable_js", "headful")

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.loaded_sources: List[str] = []

    def load_configuration(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
    ) -> ProbeConfig:
        """Load configuration with proper precedence.

        Args:
            config_file: Explicitly specified config file
            cli_overrides: CLI flag overrides

        Returns:
            Merged and validated configuration

        Raises:
            ConfigParseError: If any source is invalid
        """
        self.loaded_sources = ["defaults"]
        config_data: Dict[str, Any] = {}

        if config_file:
            config_file = Path(config_file)
            file_config = self._normalize(self._load_config_file(config_file))
            config_data = self._merge_config(config_data, file_config)
            self.loaded_sources.append(f"config file: {config_file}")

        env_config = self._normalize(self._load_environment_variables())
        if env_config:
            config_data = self._merge_config(config_data, env_config)
            self.loaded_sources.append("environment variables")

        if cli_overrides:
            overrides = {k: v for k, v in cli_overrides.items() if v is not None}
            config_data = self._merge_config(config_data, self._normalize(overrides))
            self.loaded_sources.append("CLI flags")

        config_data["loaded_from"] = self.loaded_sources
        if config_file:
            config_data["config_file_path"] = config_file

        try:
            config = ProbeConfig(**config_data)
        except ValidationError as e:
            raise ConfigParseError(f"Invalid configuration: {e}") from e

        logger.debug(f"Configuration loaded from: {', '.join(self.loaded_sources)}")
        return config

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        """Load configuration from a JSON or YAML file."""
        if not config_path.is_file():
            raise ConfigParseError(f"Configuration file not found: {config_path}")

        try:
            content = config_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigParseError(f"Error reading config file {config_path}: {e}") from e

        try:
            if config_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(content)
            elif config_path.suffix.lower() == ".json":
                data = json.loads(content)
            else:
                raise ConfigParseError(f"Unsupported config file format: {config_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigParseError(f"Invalid YAML in config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigParseError(f"Invalid JSON in config file {config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigParseError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load ``LOADPROBE_*`` environment variables.

        Known settings map onto their field; ``LOADPROBE_ASSERT_<METRIC>`` sets
        an assert; anything else becomes a module parameter.
        """
        config: Dict[str, Any] = {}
        fields = set(ProbeConfig.model_fields) | {"cookie"}

        for env_var, env_value in self.environ.items():
            if not env_var.startswith(self.ENV_PREFIX):
                continue

            key = env_var[len(self.ENV_PREFIX):].lower()
            if key.startswith("assert_"):
                self._set_nested_value(config, ("asserts", key[len("assert_"):]), env_value)
            elif key in fields:
                config[key] = self._convert_env_value(env_value, key)
            else:
                self._set_nested_value(config, ("params", key), env_value)

        return config

    def _convert_env_value(self, value: str, key: str) -> Any:
        if key in self.BOOLEAN_KEYS:
            return value.lower() in ("true", "1", "yes", "on")
        return value

    def _normalize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Accept dashed keys and fold ``cookie`` strings into ``cookies``."""
        result: Dict[str, Any] = {}
        for key, value in data.items():
            result[str(key).replace("-", "_")] = value

        cookies: List[Union[CookieSpec, Dict[str, Any]]] = []
        single = result.pop("cookie", None)
        for item in _as_list(single) + _as_list(result.pop("cookies", None)):
            if isinstance(item, str):
                cookies.append(parse_cookie_string(item))
            elif isinstance(item, (dict, CookieSpec)):
                cookies.append(item)
            else:
                raise ConfigParseError(f"Invalid cookie entry: {item!r}")
        if cookies:
            result["cookies"] = cookies

        return result

    def _set_nested_value(self, config: Dict[str, Any], path: tuple, value: Any) -> None:
        current = config
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = value

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration dictionaries, with override taking precedence."""
        if not override:
            return base

        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def load_configuration(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
) -> ProbeConfig:
    """Convenience function to load configuration."""
    loader = ConfigurationLoader()
    return loader.load_configuration(config_file, cli_overrides)


def print_configuration(config: ProbeConfig, format: str = "yaml") -> str:
    """Render configuration for debugging."""
    config_dict = config.model_dump(
        mode="json",
        exclude={"loaded_from", "config_file_path"},
        by_alias=True,
    )

    if format.lower() == "json":
        return json.dumps(config_dict, indent=2, default=str)
    return yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True)
