"""CLI tests -- drive the Typer app against a local disk store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from lixcache import __version__
from lixcache.app import app
from lixcache.config import load_global_config
from lixcache.exit_codes import EXIT_INVALID_USAGE


@pytest.fixture
def store_args(isolated_config: Path) -> list[str]:
    """Global options pointing the CLI at a throwaway disk store."""
    return ["--store-dir", str(isolated_config / "store")]


class TestGlobalOptions:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"lixcache {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "get" in result.output
        assert "scan" in result.output


class TestCacheCommands:
    def test_set_then_get(self, cli_runner, store_args) -> None:
        result = cli_runner.invoke(app, [*store_args, "set", "user:1", '{"name": "Alice"}'])
        assert result.exit_code == 0, result.output

        result = cli_runner.invoke(app, [*store_args, "--json", "get", "user:1"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {"name": "Alice"}

    def test_set_non_json_value_is_stored_as_string(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "greeting", "hello world"])
        result = cli_runner.invoke(app, [*store_args, "--plain", "get", "greeting"])
        assert result.stdout.strip() == "hello world"

    def test_get_missing_exits_not_found(self, cli_runner, store_args) -> None:
        result = cli_runner.invoke(app, [*store_args, "get", "nope"])
        assert result.exit_code == 4
        assert "not found" in result.output

    def test_delete(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "k", "1"])
        result = cli_runner.invoke(app, [*store_args, "delete", "k"])
        assert result.exit_code == 0
        assert cli_runner.invoke(app, [*store_args, "get", "k"]).exit_code == 4

    def test_exists_exit_codes(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "k", "1"])
        assert cli_runner.invoke(app, [*store_args, "exists", "k"]).exit_code == 0
        assert cli_runner.invoke(app, [*store_args, "exists", "other"]).exit_code == 4

    def test_incr_and_decr(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "incr", "hits"])
        result = cli_runner.invoke(app, [*store_args, "--plain", "incr", "hits", "--by", "4"])
        assert result.stdout.strip() == "5"
        result = cli_runner.invoke(app, [*store_args, "--plain", "decr", "hits", "--by", "2"])
        assert result.stdout.strip() == "3"

    def test_incr_non_numeric_fails(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "name", "alice"])
        result = cli_runner.invoke(app, [*store_args, "incr", "name"])
        assert result.exit_code == 5
        assert "non-numeric" in result.output

    def test_scan_keys_only(self, cli_runner, store_args) -> None:
        for key in ["user:1", "user:2", "team:1"]:
            cli_runner.invoke(app, [*store_args, "set", key, "1"])

        result = cli_runner.invoke(app, [*store_args, "--json", "-q", "scan", "user:", "--keys-only"])

        assert result.exit_code == 0, result.output
        assert sorted(json.loads(result.stdout)) == ["user:1", "user:2"]

    def test_scan_table(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "user:1", '"Alice"'])
        result = cli_runner.invoke(app, [*store_args, "--plain", "scan", "user:"])
        assert "user:1\t\"Alice\"" in result.stdout

    def test_stats_and_clear(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "a", "1"])
        result = cli_runner.invoke(app, [*store_args, "--json", "stats"])
        assert json.loads(result.stdout)["size"] == 1

        result = cli_runner.invoke(app, [*store_args, "clear", "--force"])
        assert result.exit_code == 0
        assert "Cleared 1" in result.output

        result = cli_runner.invoke(app, [*store_args, "--json", "stats"])
        assert json.loads(result.stdout)["size"] == 0

    def test_clear_declined(self, cli_runner, store_args) -> None:
        cli_runner.invoke(app, [*store_args, "set", "a", "1"])
        result = cli_runner.invoke(app, [*store_args, "clear"], input="n\n")
        assert result.exit_code == 0
        assert cli_runner.invoke(app, [*store_args, "exists", "a"]).exit_code == 0

    def test_health(self, cli_runner, store_args) -> None:
        result = cli_runner.invoke(app, [*store_args, "--plain", "health"])
        assert result.exit_code == 0
        assert "healthy" in result.stdout

    def test_store_dir_from_env(self, cli_runner, isolated_config, monkeypatch) -> None:
        monkeypatch.setenv("LIX_CACHE_STORE_DIR", str(isolated_config / "envstore"))
        result = cli_runner.invoke(app, ["set", "k", "1"])
        assert result.exit_code == 0, result.output
        assert (isolated_config / "envstore").is_dir()

    def test_unreachable_server_exits_connection_error(self, cli_runner, isolated_config) -> None:
        cli_runner.invoke(app, ["config", "set", "client.max_retries", "0"])
        result = cli_runner.invoke(app, ["--url", "http://127.0.0.1:1", "get", "k"])
        assert result.exit_code == 6
        assert "Failed to connect" in result.output
        assert "--store-dir" in result.output


class TestConfigCommands:
    def test_show(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["--json", "config", "show"])
        assert result.exit_code == 0
        data = json.loads(result.stdout[result.stdout.index("{"):])
        assert data["client"]["url"] == "http://localhost:4000"

    def test_set_coerces_types(self, cli_runner, isolated_config) -> None:
        assert cli_runner.invoke(app, ["config", "set", "client.url", "http://c:4000"]).exit_code == 0
        assert cli_runner.invoke(app, ["config", "set", "client.batching", "false"]).exit_code == 0
        assert cli_runner.invoke(app, ["config", "set", "client.timeout", "1.5"]).exit_code == 0
        assert cli_runner.invoke(app, ["config", "set", "client.max_retries", "9"]).exit_code == 0

        config = load_global_config()
        assert config.client.url == "http://c:4000"
        assert config.client.batching is False
        assert config.client.timeout == 1.5
        assert config.client.max_retries == 9

    def test_set_unknown_key(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "client.nope", "1"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_set_bad_number(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "client.max_retries", "lots"])
        assert result.exit_code == 2

    def test_set_invalid_format(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "output.format", "xml"])
        assert result.exit_code == 2

    def test_configured_format_is_used(self, cli_runner, isolated_config) -> None:
        cli_runner.invoke(app, ["config", "set", "output.format", "json"])
        store = ["--store-dir", str(isolated_config / "store")]
        cli_runner.invoke(app, [*store, "set", "k", '{"a": 1}'])

        result = cli_runner.invoke(app, [*store, "get", "k"])

        assert json.loads(result.stdout) == {"a": 1}

    def test_reset(self, cli_runner, isolated_config) -> None:
        cli_runner.invoke(app, ["config", "set", "client.url", "http://c:4000"])
        result = cli_runner.invoke(app, ["config", "reset", "--force"])
        assert result.exit_code == 0
        assert load_global_config().client.url == "http://localhost:4000"
