"""Configuration loading for loadprobe runs."""

from .loader import ConfigurationLoader, load_configuration, parse_cookie_string, print_configuration

__all__ = [
    "ConfigurationLoader",
    "load_configuration",
    "parse_cookie_string",
    "print_configuration",
]
