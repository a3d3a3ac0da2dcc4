"""Shared test fixtures for jqurl.

Provides reusable fixtures for building configurations, isolating the
environment from the user's real config and cache, managing output state,
and running the CLI. These fixtures are automatically discovered by pytest.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from jqurl.models import CacheConfig, FetchConfig, OutputConfig, RequestConfig
from jqurl.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager's Rich console holds a reference to sys.stderr taken
    at creation time. When CliRunner or capsys swaps the streams and the
    test finishes, that reference goes stale. Resetting forces a fresh
    manager on next use.
    """
    yield
    reset_output()


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a plain, non-verbose output manager."""
    output = OutputManager(no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def debug_output() -> OutputManager:
    """Install a plain output manager with debug messages enabled."""
    output = OutputManager(no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of tmp_path,
    clears the JQURL_* environment variables, sends the default cache to
    ``tmp_path/tmp`` and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ["JQURL_CONFIG", "JQURL_CACHE_DIR"]:
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "tmp").mkdir()
    monkeypatch.setenv("TMPDIR", str(tmp_path / "tmp"))
    monkeypatch.setattr("tempfile.tempdir", None)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Config factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., FetchConfig]:
    """Factory for FetchConfig objects with a tmp cache dir and no retry delay.

    Keyword arguments ``request``, ``cache`` and ``output`` are dicts merged
    into the defaults; anything else is passed to FetchConfig directly.
    """

    def _make(
        urls: tuple[str, ...] = ("https://example.com/a.json",),
        query: str = ".",
        request: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> FetchConfig:
        return FetchConfig(
            query=query,
            urls=urls,
            request=RequestConfig(**{"retry_delay": 0, "max_tries": 3, **(request or {})}),
            cache=CacheConfig(**{"directory": tmp_path / "cache", **(cache or {})}),
            output=OutputConfig(**(output or {})),
            **kwargs,
        )

    return _make


def json_handler(data: Any, status_code: int = 200) -> Callable[[httpx.Request], httpx.Response]:  # noqa: ANN401
    """Build an httpx.MockTransport handler that always returns *data* as JSON."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=data)

    return handler


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr separately.
    """
    from typer.testing import CliRunner

    return CliRunner()
