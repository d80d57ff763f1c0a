#!/usr/bin/env python3
"""Main CLI entry point for loadprobe using Typer.

Options the command does not declare are passed through: ``--name=value``
becomes the module parameter ``name`` and ``--assert-NAME=N`` registers an
assertion on metric ``NAME``.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer
from typing_extensions import Annotated

from .. import __version__
from ..browser.playwright_engine import PlaywrightEngine
from ..config import ConfigurationLoader, print_configuration
from ..core.errors import ConfigParseError, ExitCode
from ..core.registry import CORE_MODULES_PACKAGE, ModuleRegistry
from ..core.session import CORE_MODULES, LoadSession
from ..models.config import ProbeConfig
from ..output.ipc import IpcChannel

logger = logging.getLogger("loadprobe")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
ASSERT_PREFIX = "assert-"


app = typer.Typer(
    name="loadprobe",
    help="loadprobe - web page load metrics collector",
    add_completion=False,
)


@app.callback()
def main():
    """
    loadprobe - web page load metrics collector.

    Loads a page in a headless browser, collects metrics through pluggable
    modules and checks them against assertions.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"loadprobe v{__version__}")


def setup_logging(verbose: bool = False, silent: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure the ``loadprobe`` logger hierarchy.

    Args:
        verbose: Log everything to stderr
        silent: Log only errors to stderr
        log_file: Also write debug logs to this file
    """
    root = logging.getLogger("loadprobe")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    if silent:
        console.setLevel(logging.ERROR)
    elif verbose:
        console.setLevel(logging.DEBUG)
    else:
        console.setLevel(logging.WARNING)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)


def parse_extra_args(args: List[str]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Split pass-through options into module params and asserts.

    ``--flag`` without a value is ``True``; positional leftovers are ignored.
    """
    params: Dict[str, Any] = {}
    asserts: Dict[str, str] = {}

    for arg in args:
        if not arg.startswith("--") or len(arg) == 2:
            logger.debug(f"Ignoring argument {arg!r}")
            continue

        name, sep, value = arg[2:].partition("=")
        if name.startswith(ASSERT_PREFIX):
            if not sep:
                logger.warning(f"Ignoring assert {arg!r} without a value (--{name}=N)")
                continue
            asserts[name[len(ASSERT_PREFIX):]] = value
        else:
            params[name.replace("-", "_")] = value if sep else True

    return params, asserts


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,

    url: Annotated[
        Optional[str],
        typer.Argument(help="URL to load")
    ] = None,

    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="JSON or YAML configuration file")
    ] = None,

    # Output options
    output_format: Annotated[
        Optional[str],
        typer.Option("--format", "-f", help="Report format (json, yaml, plain)")
    ] = None,

    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the report to this file")
    ] = None,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug output to stderr")
    ] = False,

    silent: Annotated[
        bool,
        typer.Option("--silent", "-s", help="Only the report, no log output")
    ] = False,

    log: Annotated[
        Optional[Path],
        typer.Option("--log", help="Write a debug log to this file")
    ] = None,

    ipc: Annotated[
        bool,
        typer.Option("--ipc", help="Stream final metrics and progress as JSON lines to stderr")
    ] = False,

    # Run options
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", "-t", help="Global timeout in seconds")
    ] = None,

    modules: Annotated[
        Optional[str],
        typer.Option("--modules", help="Comma separated list of modules to load")
    ] = None,

    include_dirs: Annotated[
        Optional[str],
        typer.Option("--include-dirs", help="Comma separated list of extra module directories")
    ] = None,

    skip_modules: Annotated[
        Optional[str],
        typer.Option("--skip-modules", help="Comma separated list of modules to skip")
    ] = None,

    # Page options
    viewport: Annotated[
        Optional[str],
        typer.Option("--viewport", help="Viewport as WIDTHxHEIGHT")
    ] = None,

    user_agent: Annotated[
        Optional[str],
        typer.Option("--user-agent", help="User agent string")
    ] = None,

    disable_js: Annotated[
        bool,
        typer.Option("--disable-js", help="Disable JavaScript in the page")
    ] = False,

    cookie: Annotated[
        Optional[List[str]],
        typer.Option("--cookie", help="Cookie name=value;domain=x;path=/;secure (repeatable)")
    ] = None,

    auth_user: Annotated[
        Optional[str],
        typer.Option("--auth-user", help="HTTP authentication user")
    ] = None,

    auth_pass: Annotated[
        Optional[str],
        typer.Option("--auth-pass", help="HTTP authentication password")
    ] = None,

    # Browser options
    engine: Annotated[
        Optional[str],
        typer.Option("--engine", help="Browser engine (chromium, firefox, webkit)")
    ] = None,

    headful: Annotated[
        bool,
        typer.Option("--headful", help="Show the browser window")
    ] = False,

    print_config: Annotated[
        bool,
        typer.Option("--print-config", help="Print effective configuration and exit")
    ] = False,
):
    """
    Load a page and report its metrics.

    Examples:

        # Basic run
        loadprobe run https://example.com

        # Fail when there are more than 10 requests
        loadprobe run https://example.com --assert-requests=10

        # Only two modules, YAML report
        loadprobe run https://example.com --modules=js_errors,dialogs --format=yaml
    """
    setup_logging(verbose=verbose, silent=silent, log_file=log)

    extra_args = list(ctx.args)
    # pass-through options given before the URL land in the URL argument
    if url is not None and url.startswith("--"):
        extra_args.insert(0, url)
        positional = [arg for arg in extra_args if not arg.startswith("--")]
        url = positional[0] if positional else None
        if url is not None:
            extra_args.remove(url)

    try:
        params, asserts = parse_extra_args(extra_args)

        cli_overrides: Dict[str, Any] = {
            "url": url,
            "format": output_format,
            "output": output,
            "log": log,
            "timeout": timeout,
            "modules": modules,
            "include_dirs": include_dirs,
            "skip_modules": skip_modules,
            "viewport": viewport,
            "user_agent": user_agent,
            "cookie": cookie or None,
            "auth_user": auth_user,
            "auth_pass": auth_pass,
            "engine": engine,
            "params": params or None,
            "asserts": asserts or None,
        }

        # flags only override when given
        for name, flag in (("verbose", verbose), ("silent", silent), ("ipc", ipc),
                           ("disable_js", disable_js), ("headful", headful)):
            if flag:
                cli_overrides[name] = True

        config = ConfigurationLoader().load_configuration(config_file, cli_overrides)
    except ConfigParseError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_FAILED.value)

    if print_config:
        typer.echo(print_configuration(config))
        raise typer.Exit(code=ExitCode.SUCCESS.value)

    if not config.url:
        typer.echo("❌ No URL specified", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_FAILED.value)

    exit_code = asyncio.run(run_session(config))
    raise typer.Exit(code=exit_code)


async def run_session(config: ProbeConfig) -> int:
    """Run a load session in a Playwright browser."""
    browser = PlaywrightEngine(config.engine, headless=not config.headful)
    stream_factory = (lambda event: IpcChannel(event)) if config.ipc else None

    session = LoadSession(config, browser, stream_factory=stream_factory)
    return await session.run()


@app.command(name="modules")
def list_modules(
    include_dirs: Annotated[
        Optional[str],
        typer.Option("--include-dirs", help="Comma separated list of extra module directories")
    ] = None,
):
    """List core and discoverable modules."""
    setup_logging()

    registry = ModuleRegistry(api_factory=lambda name: None)
    search_paths = [Path(d.strip()) for d in (include_dirs or "").split(",") if d.strip()]

    typer.echo("Core modules:")
    for name in CORE_MODULES:
        typer.echo(f"  {name} ({CORE_MODULES_PACKAGE})")

    typer.echo("Modules:")
    for descriptor in registry.inspect_modules(search_paths):
        version = f" v{descriptor.version}" if descriptor.version else ""
        skipped = " [skipped]" if descriptor.skip else ""
        typer.echo(f"  {descriptor.name}{version} ({descriptor.source}){skipped}")

    for name, reason in registry.failed.items():
        typer.echo(f"  {name}: {reason}", err=True)


if __name__ == "__main__":
    app()
