"""
Tests for the routebridge CLI.

``render`` is exercised end to end. ``serve`` is run against a driver
script that fails immediately, which must terminate the command with a
non-zero status.
"""

import importlib

import orjson
import pytest
from click.testing import CliRunner

from routebridge.cli.main import cli
from tests.helpers import (
    PYTHON,
    TEST_BIGIP,
    TEST_ROUTES,
    create_registry,
    make_settings,
    render_registry,
    write_driver_script,
)

# The package re-exports a function named main, which shadows the submodule.
cli_main = importlib.import_module("routebridge.cli.main")

STATIC_ROUTES = [
    {
        "uri": uri,
        "context_path": context_path,
        "endpoints": [{"host": addr, "port": 80} for addr in addrs],
    }
    for uri, context_path, addrs in TEST_ROUTES
]


def extract_json(output: str) -> dict:
    return orjson.loads(output[output.index("{") : output.rindex("}") + 1])


@pytest.fixture
def settings_file(tmp_path):
    def _write(**overrides):
        payload = {"bigip": TEST_BIGIP, "config_file": str(tmp_path / "bigip.json")}
        payload.update(overrides)
        path = tmp_path / "settings.json"
        path.write_bytes(orjson.dumps(payload))
        return path

    return _write


@pytest.fixture
def routes_file(tmp_path):
    path = tmp_path / "routes.json"
    path.write_bytes(orjson.dumps(STATIC_ROUTES))
    return path


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch):
    """Leave loguru handlers alone while the CLI runs under the test runner."""
    monkeypatch.setattr(cli_main, "configure_logging", lambda *args, **kwargs: ())


class TestHelp:
    def test_cli_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "serve" in result.output
        assert "render" in result.output

    def test_serve_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["serve", "--help"])

        assert result.exit_code == 0
        assert "--routes" in result.output


class TestRender:
    def test_render_matches_direct_serialization(self, settings_file, routes_file):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["render", "--settings", str(settings_file()), "--routes", str(routes_file)]
        )

        assert result.exit_code == 0
        payload = extract_json(result.output)
        expected = orjson.loads(render_registry(make_settings(), create_registry()))
        # Static endpoints carry no app metadata, which never reaches the wire.
        assert payload["services"] == expected["services"]
        assert payload["l7Policies"] == expected["l7Policies"]

    def test_render_rejects_incomplete_settings(self, settings_file, routes_file):
        runner = CliRunner()
        path = settings_file(bigip={**TEST_BIGIP, "password": ""})
        result = runner.invoke(
            cli, ["render", "--settings", str(path), "--routes", str(routes_file)]
        )

        assert result.exit_code == 2
        assert "password" in result.output

    def test_render_rejects_bad_routes(self, settings_file, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_bytes(b'{"uri": "foo.cf.com"}')
        runner = CliRunner()
        result = runner.invoke(
            cli, ["render", "--settings", str(settings_file()), "--routes", str(bad)]
        )

        assert result.exit_code == 2

    def test_render_requires_routes(self, settings_file):
        runner = CliRunner()
        result = runner.invoke(cli, ["render", "--settings", str(settings_file())])
        assert result.exit_code != 0


class TestServe:
    def test_failing_driver_terminates_serve(self, tmp_path, settings_file, routes_file):
        script = write_driver_script(
            tmp_path, 'import sys\nsys.stderr.write("ERROR] bad\\n")\nsys.exit(3)\n'
        )
        path = settings_file(driver={"interpreter": PYTHON, "command": str(script)})

        runner = CliRunner()
        result = runner.invoke(
            cli, ["serve", "--settings", str(path), "--routes", str(routes_file)]
        )

        assert result.exit_code == 1
        # The empty starting snapshot is always written before the driver runs.
        assert (tmp_path / "bigip.json").exists()

    def test_missing_interpreter_terminates_serve(self, tmp_path, settings_file):
        path = settings_file(
            driver={"interpreter": str(tmp_path / "nope"), "command": "driver.py"}
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["serve", "--settings", str(path)])

        assert result.exit_code == 1

    def test_incomplete_settings_exit_with_configuration_status(
        self, tmp_path, settings_file
    ):
        path = settings_file(bigip={**TEST_BIGIP, "url": ""})
        runner = CliRunner()
        result = runner.invoke(cli, ["serve", "--settings", str(path)])

        assert result.exit_code == 2
        assert not (tmp_path / "bigip.json").exists()
