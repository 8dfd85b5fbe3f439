"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for lixcache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.lixcache/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~lixcache.models.GlobalConfig`
  JSON file storing the connection defaults and output preferences.
* **Project config** -- An optional ``./lixcache.json`` overriding the
  global config for one working directory.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from lixcache.exceptions import ConfigError
from lixcache.models import ClientConfig, GlobalConfig

_APP_NAME = "lixcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "lixcache.json"

ENV_URL = "LIX_CACHE_URL"
ENV_STORE_DIR = "LIX_CACHE_STORE_DIR"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/lixcache/`` (default ``~/.config/lixcache/``).
    On macOS/Windows: ``~/.lixcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/lixcache/`` (default ``~/.local/share/lixcache/``).
    On macOS/Windows: ``~/.lixcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed and the error re-raised.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~lixcache.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./lixcache.json``.

    The file holds a partial :class:`~lixcache.models.GlobalConfig`, e.g.
    ``{"client": {"url": "http://cache.internal:4000"}}``.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def default_client_config() -> ClientConfig:
    """Client settings used when :class:`~lixcache.client.LixCache` gets no config.

    Defaults, with ``url`` taken from ``LIX_CACHE_URL`` when it is set.
    """
    env_url = os.environ.get(ENV_URL)
    if env_url:
        return ClientConfig(url=env_url)
    return ClientConfig()


def resolve_config(
    cli_url: Optional[str] = None,
    cli_store_dir: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_url``, ``cli_store_dir``, ``cli_format``)
        2. Environment variables (``LIX_CACHE_URL``, ``LIX_CACHE_STORE_DIR``)
        3. Project config (``./lixcache.json``)
        4. User config (``~/.config/lixcache/config.json``)
        5. Defaults

    Raises:
        ConfigError: If the merged configuration fails validation.
    """
    global_cfg = load_global_config()

    project = load_project_config()
    if project is not None:
        merged = _merge(global_cfg.model_dump(mode="json"), project)
        try:
            global_cfg = GlobalConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    env_url = os.environ.get(ENV_URL)
    if env_url:
        global_cfg.client.url = env_url
    env_store_dir = os.environ.get(ENV_STORE_DIR)
    if env_store_dir:
        global_cfg.store_dir = env_store_dir

    if cli_url is not None:
        global_cfg.client.url = cli_url
    if cli_store_dir is not None:
        global_cfg.store_dir = cli_store_dir
    if cli_format is not None:
        global_cfg.output.format = cli_format  # type: ignore[assignment]

    return global_cfg
