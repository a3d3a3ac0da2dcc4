"""Output formatting with strict stdout/stderr discipline.

* **stdout** -- query results only, one rendered value per line. This is
  what downstream tools pipe and parse. ``--output FILE`` redirects it.
* **stderr** -- all diagnostics: errors, warnings, response headers
  requested with ``--include``, and ``[debug]`` lines when ``--debug`` is
  on. Never contaminates the data stream.
* **Colour control** -- respects ``NO_COLOR`` and ``TERM=dumb``.

The module exposes two layers:

1. :class:`OutputManager` -- a stateful object holding rendering
   preferences and the stderr console. Created once by the command and
   installed via :func:`set_output`.
2. Module-level convenience functions (:func:`info`, :func:`error`,
   :func:`debug`, etc.) that delegate to the global ``OutputManager`` so
   that the fetcher and client do not need to pass it around. :func:`debug`
   is the project's logging channel.
"""

from __future__ import annotations

import contextlib
import json
import os
import sys
from pathlib import Path
from typing import IO, Any, Callable, Iterable, Optional

import httpx
from rich.console import Console
from rich.markup import escape

from jqurl.exceptions import OutputFileError


class OutputManager:
    """Central manager for all CLI output.

    Args:
        pretty: Indent JSON results by two spaces.
        raw: Print string results without JSON quoting.
        no_color: Disable colour and Rich markup on stderr.
        verbose: Enable ``[debug]`` messages on stderr.
        output_file: If set, results are written to this path instead of
            stdout.
    """

    def __init__(
        self,
        pretty: bool = False,
        raw: bool = False,
        no_color: bool = False,
        verbose: bool = False,
        output_file: Optional[str | Path] = None,
    ) -> None:
        self._pretty = pretty
        self._raw = raw
        self._no_color = no_color or _should_disable_color()
        self._verbose = verbose
        self._output_file = Path(output_file) if output_file is not None else None

        self._stderr = Console(
            file=sys.stderr,
            no_color=self._no_color,
            stderr=True,
            highlight=False,
        )

    @property
    def is_verbose(self) -> bool:
        """Whether debug output is enabled."""
        return self._verbose

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def render(self, value: Any) -> str:  # noqa: ANN401
        """Render one query result as text, without a trailing newline."""
        if self._raw and isinstance(value, str):
            return value
        if self._pretty and not self._raw:
            return json.dumps(value, indent=2, ensure_ascii=False)
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    def write_results(self, values: Iterable[Any]) -> int:
        """Render every value in *values* to stdout or the output file.

        The output file, when configured, is created (or truncated) only
        when the first value arrives, so a filter with no results leaves
        it untouched. Once opened it is closed on every exit path,
        including an error raised by *values* itself.

        Returns:
            Number of values written.

        Raises:
            OutputFileError: If the output file cannot be opened or written.
        """
        if self._output_file is None:
            return self._write_all(values, lambda: sys.stdout)

        with contextlib.ExitStack() as stack:

            def open_output() -> IO[str]:
                try:
                    fh = open(self._output_file, "w", encoding="utf-8")
                except OSError as exc:
                    raise OutputFileError(
                        f"Error creating output file {self._output_file}: {exc}"
                    ) from exc
                return stack.enter_context(fh)

            try:
                return self._write_all(values, open_output)
            except OSError as exc:
                raise OutputFileError(
                    f"Error writing output file {self._output_file}: {exc}"
                ) from exc

    def _write_all(self, values: Iterable[Any], open_stream: Callable[[], IO[str]]) -> int:
        stream: Optional[IO[str]] = None
        count = 0
        for value in values:
            if self._verbose:
                self.debug(f"result: {value!r}")
            if stream is None:
                stream = open_stream()
            stream.write(self.render(value))
            stream.write("\n")
            stream.flush()
            count += 1
        return count

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Print an informational message to stderr."""
        if self._no_color:
            print(message, file=sys.stderr, flush=True)
        else:
            self._stderr.print(escape(message))

    def warning(self, message: str) -> None:
        """Print a yellow warning to stderr."""
        if self._no_color:
            print(f"Warning: {message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        """Print a bold-red error to stderr. Never suppressed."""
        if self._no_color:
            print(f"Error: {message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def debug(self, message: str) -> None:
        """Print a debug message to stderr. Only shown with ``--debug``."""
        if self._verbose:
            if self._no_color:
                print(f"[debug] {message}", file=sys.stderr, flush=True)
            else:
                self._stderr.print(f"[dim]\\[debug] {escape(message)}[/dim]")

    def print_headers(self, response: httpx.Response) -> None:
        """Write the status line and response headers to stderr.

        Mirrors ``curl -i`` but keeps stdout clean: protocol and status,
        one ``Name: value`` line per header, then a blank line.
        """
        lines = [f"{response.http_version} {response.status_code} {response.reason_phrase}"]
        for name, value in response.headers.multi_items():
            lines.append(f"{name}: {value}")
        lines.append("")
        sys.stderr.write("\n".join(lines) + "\n")
        sys.stderr.flush()

    def print_cache_notice(self, url: str, path: Path) -> None:
        """Tell the user why no headers are shown for a cached document."""
        sys.stderr.write(f"Header skipped as cache used\nURL: {url}\nFile: {path}\n")
        sys.stderr.flush()


# ------------------------------------------------------------------ #
# Module-level helpers
# ------------------------------------------------------------------ #


def _should_disable_color() -> bool:
    """Return True when NO_COLOR is set (any value) or TERM=dumb."""
    if os.environ.get("NO_COLOR") is not None:
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    return False


# ------------------------------------------------------------------ #
# Global output instance (set during command startup)
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Install *output* as the global :class:`OutputManager` instance."""
    global _output
    _output = output


def reset_output() -> None:
    """Reset the global :class:`OutputManager` to ``None``.

    Primarily useful in test suites to ensure a clean state between tests.
    """
    global _output
    _output = None


# ------------------------------------------------------------------ #
# Convenience functions that use the global instance
# ------------------------------------------------------------------ #


def info(message: str) -> None:
    """Print info message to stderr via the global OutputManager."""
    get_output().info(message)


def warning(message: str) -> None:
    """Print warning to stderr via the global OutputManager."""
    get_output().warning(message)


def error(message: str) -> None:
    """Print error to stderr via the global OutputManager."""
    get_output().error(message)


def debug(message: str) -> None:
    """Print debug message to stderr via the global OutputManager."""
    get_output().debug(message)
