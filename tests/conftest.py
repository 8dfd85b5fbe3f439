"""Shared test fixtures for lixcache.

Provides isolated config environments, output state management, a CLI
runner, a local disk store, and :class:`FakeLixServer` -- an in-memory
stand-in for the Lix cache server that records every request it answers.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from lixcache.output import OutputFormat, OutputManager, reset_output, set_output
from lixcache.store import DiskStoreTransport


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake cache server
# ---------------------------------------------------------------------------


class FakeLixServer:
    """In-memory Lix cache server answering through :class:`httpx.MockTransport`.

    Attributes:
        data: Current key/value contents.
        requests: ``(method, path, body)`` for every request received.
        fail_status: When set, every request is answered with this status.
        refuse: Keys whose batch writes come back with an ``error`` entry.
        drop_results: Number of results to drop from each batch response.
    """

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.fail_status: Optional[int] = None
        self.refuse: set[str] = set()
        self.drop_results = 0
        self.transport = httpx.MockTransport(self.handle)

    @property
    def batches(self) -> list[list[dict[str, Any]]]:
        """Operation lists of every ``/cache/batch`` request, in arrival order."""
        return [
            body["operations"]
            for _method, path, body in self.requests
            if path == "/cache/batch"
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))

        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": "boom"})

        if request.url.path == "/cache/batch":
            results = [self._apply(operation) for operation in body["operations"]]
            if self.drop_results:
                results = results[: -self.drop_results]
            return httpx.Response(200, json={"results": results})
        if request.url.path == "/cache/scan":
            prefix = request.url.params.get("prefix", "")
            items = [
                {"key": key, "value": value}
                for key, value in sorted(self.data.items())
                if key.startswith(prefix)
            ]
            return httpx.Response(200, json={"items": items, "count": len(items)})
        return httpx.Response(404, json={"error": "not found"})

    def _apply(self, operation: dict[str, Any]) -> dict[str, Any]:
        op, key = operation["op"], operation["key"]
        if key in self.refuse and op != "get":
            return {"op": op, "key": key, "error": "refused"}
        if op == "get":
            return {"op": "get", "key": key, "value": self.data.get(key)}
        if op == "set":
            self.data[key] = operation.get("value")
            return {"op": "set", "key": key, "success": True}
        self.data.pop(key, None)
        return {"op": "delete", "key": key, "success": True}


@pytest.fixture
def fake_server() -> FakeLixServer:
    """A fresh :class:`FakeLixServer`; pass ``fake_server.transport`` to the client."""
    return FakeLixServer()


# ---------------------------------------------------------------------------
# Local disk store
# ---------------------------------------------------------------------------


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    """Directory for a throwaway :class:`DiskStoreTransport`."""
    return tmp_path / "store"


@pytest.fixture
def disk_store(store_dir: Path) -> DiskStoreTransport:
    """A :class:`DiskStoreTransport` backed by ``tmp_path``."""
    return DiskStoreTransport(store_dir)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config. Clears the LIX_CACHE_*
    environment variables and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("lixcache.config._is_xdg_platform", lambda: True)

    for var in ["LIX_CACHE_URL", "LIX_CACHE_STORE_DIR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
