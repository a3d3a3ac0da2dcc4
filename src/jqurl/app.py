"""Typer application and CLI entry point for jqurl.

The single command takes a jq filter followed by one or more URLs::

    jqurl [OPTIONS] QUERY URL [URL ...]

:func:`fetch_command` resolves the immutable configuration, validates every
fatal precondition (filter syntax, URLs, TLS files) before any traffic is
sent, optionally joins a container's network namespace, runs the
:class:`~jqurl.fetcher.Fetcher` loop and finally streams the query results.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and writes a crash log for
unexpected exceptions.

See Also:
    :mod:`jqurl.config`: Precedence resolution.
    :mod:`jqurl.output`: Output formatting initialised by the command.
"""

from __future__ import annotations

import contextlib
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from jqurl import __version__
from jqurl.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="jqurl",
    help="Fetch JSON from one or more URLs and filter it with jq.",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"jqurl {__version__}")
        raise typer.Exit()


def _make_client(config: Any, context: Any) -> Any:  # noqa: ANN401
    """Build the HTTP client for *config*. Tests replace this to inject a transport."""
    from jqurl.client import FetchClient

    return FetchClient(config.request, context)


def _sleep(seconds: float) -> None:
    """Pause between retry passes. Tests replace this to avoid waiting."""
    import time

    time.sleep(seconds)


@app.command()
def fetch_command(
    query: str = typer.Argument(help="jq filter applied to the fetched document."),
    urls: list[str] = typer.Argument(help="URLs to try, round-robin, until one returns JSON."),
    pretty: bool = typer.Option(False, "--pretty", "-P", help="Pretty print JSON with indents."),
    flush: bool = typer.Option(False, "--flush", help="Force redownload, when using cache."),
    use_cache: bool = typer.Option(
        False, "--cache", "-C", help="Use local cache to speed up static queries."
    ),
    debug: bool = typer.Option(False, "--debug", help="Debug / verbose output."),
    raw: bool = typer.Option(False, "--raw-output", "-r", help="Raw output, no quotes for strings."),
    include_headers: bool = typer.Option(
        False, "--include", "-i", help="Include response headers (on stderr)."
    ),
    cache_dir: Optional[Path] = typer.Option(
        None, "--cachedir", help="Path for cache [default: system temp dir].", metavar="DIR"
    ),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write output to FILE instead of stdout.", metavar="FILE"
    ),
    max_age: Optional[str] = typer.Option(
        None, "--max-age", help="Max age for cache [default: 4h].", metavar="DURATION"
    ),
    data: Optional[str] = typer.Option(
        None,
        "--data",
        "-d",
        help="Data to use in POST (use @filename to read from file).",
        metavar="STRING",
    ),
    headers: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Custom header to pass to server.", metavar="'HEADER: VALUE'"
    ),
    follow_redirects: bool = typer.Option(False, "--location", "-L", help="Follow redirects."),
    retry_delay: Optional[str] = typer.Option(
        None, "--retry-delay", help="Delay between retries [default: 7s].", metavar="DURATION"
    ),
    timeout: Optional[str] = typer.Option(
        None, "--max-time", "-m", help="Timeout per request [default: 15s].", metavar="DURATION"
    ),
    max_tries: Optional[int] = typer.Option(
        None, "--max-tries", help="Maximum number of tries [default: 30].", metavar="TRIES"
    ),
    insecure: bool = typer.Option(
        False, "--insecure", "-k", help="Ignore certificate validation checks."
    ),
    method: Optional[str] = typer.Option(
        None, "--request", "-X", help="Method to use for HTTP request [default: GET].", metavar="METHOD"
    ),
    cacert: Optional[Path] = typer.Option(
        None, "--cacert", help="Use certificate authorities, PEM encoded.", metavar="FILE"
    ),
    cert: Optional[Path] = typer.Option(
        None, "--cert", "-E", help="Use client cert in request, PEM encoded.", metavar="FILE"
    ),
    key: Optional[Path] = typer.Option(
        None, "--key", help="Key file for client cert, PEM encoded.", metavar="FILE"
    ),
    docker: Optional[str] = typer.Option(
        None, "--docker", help="Switch to the network of a container.", metavar="CONTAINER_ID"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Fetch JSON from the first URL that delivers it and print the jq results.

    URLs are tried round-robin for up to --max-tries attempts, pausing
    --retry-delay after each full pass. Running out of tries is not an
    error: the filter then runs against null.
    """
    from jqurl.exceptions import JqurlError
    from jqurl.output import OutputManager, error, set_output

    set_output(OutputManager(verbose=debug))
    try:
        _run(
            query,
            urls,
            pretty=pretty,
            raw=raw,
            include_headers=include_headers,
            flush=flush,
            use_cache=use_cache,
            debug=debug,
            cache_dir=cache_dir,
            output_file=output_file,
            max_age=max_age,
            data=data,
            headers=headers,
            follow_redirects=follow_redirects,
            retry_delay=retry_delay,
            timeout=timeout,
            max_tries=max_tries,
            insecure=insecure,
            method=method,
            cacert=cacert,
            cert=cert,
            key=key,
            docker=docker,
        )
    except JqurlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _run(query: str, urls: list[str], **options: Any) -> None:  # noqa: ANN401
    """Resolve configuration, fetch, and print results."""
    from jqurl.cache import ResponseCache
    from jqurl.client import build_ssl_context
    from jqurl.config import build_config, parse_targets
    from jqurl.fetcher import Fetcher
    from jqurl.netns import NetworkNamespace
    from jqurl.output import OutputManager, debug, set_output
    from jqurl.query import compile_query, run_query

    config = build_config(query, urls, **options)
    output = OutputManager(
        pretty=config.output.pretty,
        raw=config.output.raw,
        verbose=config.debug,
        output_file=config.output.output_file,
    )
    set_output(output)

    # Everything fatal is checked before the first request.
    program = compile_query(config.query)
    targets = parse_targets(config.urls)
    context = build_ssl_context(config.tls)
    cache = ResponseCache(config.cache.directory) if config.cache.enabled else None

    with contextlib.ExitStack() as stack:
        if config.docker:
            stack.enter_context(NetworkNamespace(config.docker))
        client = stack.enter_context(_make_client(config, context))
        outcome = Fetcher(config, targets, client, cache, sleep=_sleep).run()

    if outcome.found:
        debug(f"Document from {outcome.source} ({outcome.target.url}) after {outcome.attempts} attempt(s)")
    else:
        debug(f"No document after {outcome.attempts} attempt(s); querying null")

    output.write_results(run_query(program, outcome.document, config.query))


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from jqurl.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``jqurl`` console script.

    :class:`~jqurl.exceptions.JqurlError` is handled inside the command
    and turned into its exit code. Any other exception produces a crash log
    and a generic failure exit.

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
        from jqurl.output import error

        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
