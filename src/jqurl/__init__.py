"""jqurl -- fetch JSON from one or more URLs and filter it with jq.

The tool takes a jq filter and a list of candidate URLs, retrieves the first
JSON document it can (round-robin retry with pacing, an optional on-disk
cache, TLS client authentication, optional container network namespace)
and prints every result the filter produces.

Typical usage::

    jqurl -C '.items[].name' https://mirror-a/list.json https://mirror-b/list.json

Modules:
    app: Typer command and console-script entry point.
    models: Immutable Pydantic configuration models and :class:`Target`.
    config: Precedence resolution, duration/header/URL parsing.
    fetcher: The retry loop that decides between cache and network.
    cache: One-file-per-target response cache.
    client: httpx wrapper issuing a single request per attempt.
    query: Boundary to the jq engine.
    netns: Scoped switch into a container's network namespace.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting and debug logging.
"""

__version__ = "0.2.0"
