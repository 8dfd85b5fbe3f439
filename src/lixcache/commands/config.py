"""Config commands -- view and modify global configuration.

Provides the ``lixcache config`` sub-command group for reading,
updating, and resetting the user's global configuration file
(:class:`~lixcache.models.GlobalConfig`). Settings are persisted in
the lixcache config directory and supply the defaults for the server
URL, timeouts, batching, local store directory, and output format.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from lixcache.exit_codes import EXIT_INVALID_USAGE
from lixcache.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Example::

        lixcache config show
        lixcache --json config show
    """
    from lixcache.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'client.url')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, float, or str) and the updated config
    is validated against :class:`~lixcache.models.GlobalConfig` before
    saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        lixcache config set client.url http://cache.internal:4000
        lixcache config set client.batching false
        lixcache config set store_dir ~/.cache/lix-dev
    """
    from lixcache.config import load_global_config, save_global_config
    from lixcache.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    current = target[final_key]
    coerced: object = value
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, (int, float)):
        number_type = type(current)
        try:
            coerced = number_type(value)
        except ValueError:
            error(f"Expected {number_type.__name__} for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset configuration to defaults.

    Example::

        lixcache config reset
        lixcache config reset --force
    """
    from lixcache.config import save_global_config
    from lixcache.models import GlobalConfig

    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
