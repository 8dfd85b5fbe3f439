"""Cache commands -- read and write entries from the command line.

Each command resolves the effective configuration (see
:func:`~lixcache.config.resolve_config`), opens a
:class:`~lixcache.client.LixCache` for the duration of one
:func:`asyncio.run`, and renders the result through the global
:class:`~lixcache.output.OutputManager`. When a store directory is
configured the client talks to a local
:class:`~lixcache.store.DiskStoreTransport` instead of a server.

:class:`~lixcache.exceptions.LixCacheError` failures are reported on
stderr and exit with the error's ``exit_code``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from lixcache.client import LixCache
from lixcache.exceptions import LixCacheError, LixConnectionError, LixNotFoundError
from lixcache.exit_codes import EXIT_NOT_FOUND
from lixcache.output import (
    debug,
    error,
    format_response,
    info,
    print_table,
    success,
    suggest,
)

T = TypeVar("T")


def _run(ctx: typer.Context, operation: Callable[[LixCache], Awaitable[T]]) -> T:
    """Run *operation* against a freshly opened client and return its result."""
    from lixcache.config import resolve_config
    from lixcache.store import DiskStoreTransport

    obj = ctx.obj or {}
    try:
        config = resolve_config(
            cli_url=obj.get("url"),
            cli_store_dir=obj.get("store_dir"),
        )
        transport = None
        if config.store_dir:
            debug(f"Using local store at {config.store_dir}")
            transport = DiskStoreTransport(config.store_dir)
        else:
            debug(f"Using cache server at {config.client.url}")

        async def _main() -> T:
            async with LixCache(config.client, transport=transport) as cache:
                return await operation(cache)

        return asyncio.run(_main())
    except LixCacheError as exc:
        error(str(exc))
        if isinstance(exc, LixConnectionError):
            suggest(
                "Check the server URL (--url or LIX_CACHE_URL), "
                "or use --store-dir for a local store."
            )
        raise typer.Exit(code=exc.exit_code) from None


def _parse_value(raw: str) -> Any:  # noqa: ANN401
    """Parse *raw* as JSON if possible, returning the raw string on failure."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def get_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="Cache key."),
) -> None:
    """Print the value cached under KEY.

    Exits with code 4 when the key is not cached.

    Example::

        lixcache get user:1
        lixcache --json get user:1
    """

    async def _get(cache: LixCache) -> Any:
        value = await cache.get(key)
        if value is None:
            raise LixNotFoundError(key)
        return value

    format_response(_run(ctx, _get))


def set_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="Cache key."),
    value: str = typer.Argument(help="Value to store; parsed as JSON when possible."),
    ttl: Optional[int] = typer.Option(
        None, "--ttl", "-t", min=0, help="Expire after this many seconds (0 = never)."
    ),
) -> None:
    """Store VALUE under KEY.

    Example::

        lixcache set greeting hello
        lixcache set user:1 '{"name": "Alice"}' --ttl 300
    """
    parsed = _parse_value(value)
    _run(ctx, lambda cache: cache.set(key, parsed, ttl=ttl))
    success(f"Set {key}")


def delete_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="Cache key."),
) -> None:
    """Remove KEY from the cache."""
    _run(ctx, lambda cache: cache.delete(key))
    success(f"Deleted {key}")


def exists_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="Cache key."),
) -> None:
    """Report whether KEY is cached. Exits with code 4 when it is not."""
    found = _run(ctx, lambda cache: cache.exists(key))
    format_response(found)
    if not found:
        raise typer.Exit(code=EXIT_NOT_FOUND)


def incr_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="Counter key."),
    by: int = typer.Option(1, "--by", help="Amount to add."),
) -> None:
    """Atomically increment the counter stored under KEY and print it."""
    format_response(_run(ctx, lambda cache: cache.incr(key, by)))


def decr_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="Counter key."),
    by: int = typer.Option(1, "--by", help="Amount to subtract."),
) -> None:
    """Atomically decrement the counter stored under KEY and print it."""
    format_response(_run(ctx, lambda cache: cache.decr(key, by)))


def scan_command(
    ctx: typer.Context,
    prefix: str = typer.Argument("", help="Key prefix; empty lists every key."),
    keys_only: bool = typer.Option(False, "--keys-only", help="List keys without values."),
) -> None:
    """List cached entries whose key starts with PREFIX.

    Example::

        lixcache scan user:
        lixcache --plain scan user: --keys-only
    """
    result = _run(ctx, lambda cache: cache.scan(prefix, keys_only=keys_only))

    if keys_only:
        format_response(result.keys or [])
    else:
        rows = [
            [item.key, json.dumps(item.value, ensure_ascii=False, default=str)]
            for item in result.items or []
        ]
        print_table(["Key", "Value"], rows, title=f"Keys matching {prefix!r}")
    info(f"{result.count} key(s)")


def stats_command(ctx: typer.Context) -> None:
    """Show the cache's size, limit and statistics."""
    stats = _run(ctx, lambda cache: cache.stats())
    format_response(stats.model_dump(mode="json"))


def clear_command(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Remove every entry from the cache."""
    if not force:
        confirmed = typer.confirm("Remove every cached entry?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    result = _run(ctx, lambda cache: cache.clear())
    success(f"Cleared {result.cleared} entries.")


def health_command(ctx: typer.Context) -> None:
    """Check that the cache server is reachable and healthy."""
    health = _run(ctx, lambda cache: cache.health())
    format_response(health.status)
