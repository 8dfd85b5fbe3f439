"""Typer application and CLI entry point for lixcache.

This module wires together the top-level Typer application and registers
the built-in commands: the cache commands from
:mod:`lixcache.commands.cache` and the ``config`` group from
:mod:`lixcache.commands.config`.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~lixcache.exceptions.LixCacheError` failures exit with their
``exit_code``; any other exception is written to a crash log under the data
directory.

See Also:
    :mod:`lixcache.config`: Configuration resolution used by every command.
    :mod:`lixcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from lixcache import __version__
from lixcache.commands import cache as cache_commands
from lixcache.commands.config import config_app
from lixcache.exit_codes import EXIT_GENERIC_FAILURE
from lixcache.output import OutputFormat


app = typer.Typer(
    name="lixcache",
    help="Read and write a Lix cache server (or a local store) from the shell.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.command("get")(cache_commands.get_command)
app.command("set")(cache_commands.set_command)
app.command("delete")(cache_commands.delete_command)
app.command("exists")(cache_commands.exists_command)
app.command("incr")(cache_commands.incr_command)
app.command("decr")(cache_commands.decr_command)
app.command("scan")(cache_commands.scan_command)
app.command("stats")(cache_commands.stats_command)
app.command("clear")(cache_commands.clear_command)
app.command("health")(cache_commands.health_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"lixcache {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    url: Optional[str] = typer.Option(
        None, "--url", "-u", help="Cache server URL (overrides config and LIX_CACHE_URL)."
    ),
    store_dir: Optional[str] = typer.Option(
        None, "--store-dir", help="Use a local disk store in this directory instead of a server."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~lixcache.output.OutputManager` from
    CLI flags (falling back to the configured ``output.format``), enables
    DEBUG logging under ``--verbose``, and stores the connection overrides
    in ``ctx.obj`` for the commands.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        url: Server URL override (highest precedence).
        store_dir: Local store directory override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output and library logging.
    """
    from lixcache.output import OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)

    if verbose:
        _setup_logging(no_color)

    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["store_dir"] = store_dir
    ctx.obj["verbose"] = verbose


def _configured_format() -> OutputFormat:
    """Return the output format from the global config, or AUTO if it is unreadable.

    A broken config file must not prevent ``lixcache config reset`` from
    running; the commands that load the config report the problem.
    """
    from lixcache.config import load_global_config
    from lixcache.exceptions import ConfigError

    try:
        return OutputFormat(load_global_config().output.format)
    except ConfigError:
        return OutputFormat.AUTO


def _setup_logging(no_color: bool) -> None:
    """Route ``lixcache`` library logging to stderr at DEBUG level."""
    logger = logging.getLogger("lixcache")
    logger.setLevel(logging.DEBUG)
    if any(isinstance(h, RichHandler) for h in logger.handlers):
        return
    logger.addHandler(
        RichHandler(console=Console(stderr=True, no_color=no_color), show_path=False)
    )


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from lixcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``lixcache`` console script.

    Unhandled :class:`~lixcache.exceptions.LixCacheError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from lixcache.exceptions import LixCacheError
        from lixcache.output import error

        if isinstance(exc, LixCacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
