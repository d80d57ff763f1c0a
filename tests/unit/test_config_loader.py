"""Unit tests for configuration loading."""

import json
from pathlib import Path

import pytest

from loadprobe.config import ConfigurationLoader, parse_cookie_string, print_configuration
from loadprobe.core.errors import ConfigParseError
from loadprobe.models.config import DEFAULT_TIMEOUT, ProbeConfig


@pytest.fixture
def loader():
    """Loader isolated from the real process environment."""
    return ConfigurationLoader(environ={})


class TestProbeConfig:
    def test_defaults(self):
        config = ProbeConfig()

        assert config.timeout == DEFAULT_TIMEOUT
        assert config.format == "json"
        assert config.engine == "chromium"
        assert config.viewport_size == (1280, 1024)

    @pytest.mark.parametrize("timeout", [0, -5, "soon", None])
    def test_invalid_timeout_falls_back(self, timeout):
        assert ProbeConfig(timeout=timeout).timeout == DEFAULT_TIMEOUT

    def test_viewport_parsing(self):
        assert ProbeConfig(viewport="800x600").viewport_size == (800, 600)
        assert ProbeConfig(viewport="800xabc").viewport_size == (800, 1024)
        assert ProbeConfig(viewport="garbage").viewport_size == (1280, 1024)

    def test_comma_separated_lists(self):
        config = ProbeConfig(modules="js_errors, dialogs", skip_modules="requests_stats", include_dirs="a,b")

        assert config.modules == ["js_errors", "dialogs"]
        assert config.skip_modules == ["requests_stats"]
        assert config.include_dirs == [Path("a"), Path("b")]

    def test_invalid_format(self):
        with pytest.raises(ValueError):
            ProbeConfig(format="xml")

    def test_to_params(self):
        config = ProbeConfig(url="https://example.com/", auth_user="john", params={"custom": 1})
        params = config.to_params()

        assert params["url"] == "https://example.com/"
        assert params["auth_user"] == "john"
        assert params["custom"] == 1
        assert "cookies" not in params


class TestParseCookieString:
    def test_full_cookie(self):
        cookie = parse_cookie_string("session=abc123;domain=.example.com;path=/app;secure;httponly")

        assert cookie.name == "session"
        assert cookie.value == "abc123"
        assert cookie.domain == ".example.com"
        assert cookie.path == "/app"
        assert cookie.secure is True
        assert cookie.http_only is True

    def test_minimal_cookie(self):
        cookie = parse_cookie_string("foo=bar")

        assert cookie.domain is None
        assert cookie.path == "/"

    @pytest.mark.parametrize("value", ["", "novalue", "=bar", "foo="])
    def test_invalid_cookie(self, value):
        with pytest.raises(ConfigParseError):
            parse_cookie_string(value)

    def test_default_domain_strips_www(self):
        cookie = parse_cookie_string("foo=bar").with_default_domain("https://www.example.com/page")

        assert cookie.domain == ".example.com"
        assert cookie.to_engine_cookie()["domain"] == ".example.com"


class TestConfigurationLoader:
    """Tests for ConfigurationLoader precedence and error handling."""

    def test_defaults_only(self, loader):
        config = loader.load_configuration()

        assert config.url is None
        assert config.loaded_from == ["defaults"]

    def test_json_file(self, loader, tmp_path):
        path = tmp_path / "probe.json"
        path.write_text(json.dumps({
            "url": "https://example.com/",
            "timeout": 30,
            "asserts": {"requests": 10},
            "cookie": "foo=bar",
        }))

        config = loader.load_configuration(path)

        assert config.url == "https://example.com/"
        assert config.timeout == 30
        assert config.asserts == {"requests": 10.0}
        assert config.cookies[0].name == "foo"
        assert config.config_file_path == path

    def test_yaml_file_with_dashed_keys(self, loader, tmp_path):
        path = tmp_path / "probe.yaml"
        path.write_text("url: https://example.com/\nskip-modules: dialogs,js_errors\n")

        config = loader.load_configuration(path)

        assert config.skip_modules == ["dialogs", "js_errors"]

    def test_precedence(self, tmp_path):
        path = tmp_path / "probe.yaml"
        path.write_text("url: https://file.example.com/\ntimeout: 10\nformat: yaml\nparams:\n  a: 1\n  b: 1\n")

        loader = ConfigurationLoader(environ={
            "LOADPROBE_TIMEOUT": "20",
            "LOADPROBE_FORMAT": "plain",
            "LOADPROBE_VERBOSE": "yes",
            "LOADPROBE_ASSERT_REQUESTS": "5",
            "LOADPROBE_CUSTOM_OPTION": "x",
            "OTHER_VAR": "ignored",
        })
        config = loader.load_configuration(path, {"timeout": 30, "url": None, "params": {"b": 2}})

        assert config.url == "https://file.example.com/"
        assert config.timeout == 30
        assert config.format == "plain"
        assert config.verbose is True
        assert config.asserts == {"requests": 5.0}
        assert config.params == {"a": 1, "b": 2, "custom_option": "x"}
        assert config.loaded_from == [
            "defaults",
            f"config file: {path}",
            "environment variables",
            "CLI flags",
        ]

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(ConfigParseError, match="not found"):
            loader.load_configuration(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, loader, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("url: [unclosed\n")

        with pytest.raises(ConfigParseError, match="Invalid YAML"):
            loader.load_configuration(path)

    def test_invalid_json(self, loader, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        with pytest.raises(ConfigParseError, match="Invalid JSON"):
            loader.load_configuration(path)

    def test_not_a_mapping(self, loader, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigParseError, match="mapping"):
            loader.load_configuration(path)

    def test_unsupported_suffix(self, loader, tmp_path):
        path = tmp_path / "probe.toml"
        path.write_text("url = 'x'")

        with pytest.raises(ConfigParseError, match="Unsupported"):
            loader.load_configuration(path)

    def test_validation_error(self, loader):
        with pytest.raises(ConfigParseError, match="Invalid configuration"):
            loader.load_configuration(cli_overrides={"engine": "netscape"})

    def test_invalid_assert_threshold_is_ignored(self, loader):
        config = loader.load_configuration(cli_overrides={
            "url": "https://example.com/",
            "asserts": {"requests": "many", "jsErrors": "2", "domComplete": ""},
        })

        assert config.asserts == {"jsErrors": 2.0}

    def test_cli_cookie_list(self, loader):
        config = loader.load_configuration(cli_overrides={"cookie": ["a=1", "b=2;secure"]})

        assert [c.name for c in config.cookies] == ["a", "b"]
        assert config.cookies[1].secure is True

    def test_print_configuration(self, loader):
        config = loader.load_configuration(cli_overrides={"url": "https://example.com/"})

        assert json.loads(print_configuration(config, "json"))["url"] == "https://example.com/"
        assert "url: https://example.com/" in print_configuration(config)
