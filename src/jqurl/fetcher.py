"""The fetch loop: round-robin retry across targets with cache short-circuit.

:class:`Fetcher` drives a small state machine::

    IDLE -> TRYING -> SUCCESS    (a document came from cache or network)
                   -> EXHAUSTED  (max_tries attempts, none usable)

Attempt ``k`` always goes to ``targets[k % N]``. Each attempt first asks
the cache (unless caching is off or ``flush`` is set) and stops the whole
loop on a fresh entry; otherwise it performs one request. A transport error
or a body that is not JSON is a failed attempt. After a failed attempt on
the *last* target of the cycle the loop sleeps ``retry_delay``, so a single
target pauses after every failure while ``N`` targets pause once per full
pass.

Exhaustion is not an error. :class:`FetchOutcome` simply reports
``found=False`` with a ``None`` document and the caller runs the query
against that.

Debug mode changes two outcomes: a malformed response body and a failed
cache write both become fatal instead of being logged and skipped.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from jqurl.cache import ResponseCache
from jqurl.client import FetchClient
from jqurl.client.response import decode_document
from jqurl.exceptions import CacheError, ConnectionError_, ResponseParseError
from jqurl.models import FetchConfig, Target
from jqurl.output import get_output

SOURCE_CACHE = "cache"
SOURCE_NETWORK = "network"


@dataclass
class FetchOutcome:
    """Result of one :meth:`Fetcher.run`.

    Attributes:
        document: The decoded JSON document, ``None`` when exhausted. Note
            that a response of literal ``null`` is also ``None``; use
            ``found`` to tell them apart.
        found: Whether any attempt produced a document.
        source: ``"cache"`` or ``"network"`` when found, else ``None``.
        target: The target the document came from.
        attempts: Number of attempts made (cache hits count as one).
        delays: Number of retry pauses taken.
    """

    document: Any = None
    found: bool = False
    source: Optional[str] = None
    target: Optional[Target] = None
    attempts: int = 0
    delays: int = 0


class Fetcher:
    """Fetch the query input document from the first target that delivers.

    Args:
        config: Effective configuration; only ``request``, ``cache``,
            ``output.include_headers`` and ``debug`` are read.
        targets: Parsed targets, tried round-robin.
        client: An entered :class:`~jqurl.client.FetchClient`.
        cache: The response cache, or ``None`` to disable caching
            regardless of configuration.
        sleep: Pause function, ``time.sleep`` by default.

    Example::

        with FetchClient(config.request, context) as client:
            outcome = Fetcher(config, targets, client, cache).run()
    """

    def __init__(
        self,
        config: FetchConfig,
        targets: Sequence[Target],
        client: FetchClient,
        cache: Optional[ResponseCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not targets:
            raise ValueError("Fetcher needs at least one target")
        self._config = config
        self._targets = tuple(targets)
        self._client = client
        self._cache = cache if config.cache.enabled else None
        self._sleep = sleep

    def run(self) -> FetchOutcome:
        """Run the retry loop until a document is found or tries run out.

        Raises:
            DataFileError: If the POST body file cannot be read.
            ResponseParseError: Malformed JSON response in debug mode.
            CacheError: Failed cache write in debug mode.
        """
        outcome = FetchOutcome()
        count = len(self._targets)
        max_tries = self._config.request.max_tries
        output = get_output()

        for attempt in range(max_tries):
            index = attempt % count
            target = self._targets[index]
            outcome.attempts = attempt + 1

            if self._from_cache(target, outcome) or self._from_network(target, outcome):
                return outcome

            if index == count - 1:
                output.debug(
                    f"Attempt {attempt + 1}/{max_tries} failed, "
                    f"retrying in {self._config.request.retry_delay}s"
                )
                self._sleep(self._config.request.retry_delay)
                outcome.delays += 1

        output.debug(f"Giving up after {max_tries} attempts")
        return outcome

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _from_cache(self, target: Target, outcome: FetchOutcome) -> bool:
        """Try to satisfy *target* from a fresh cache entry."""
        if self._cache is None or self._config.cache.flush:
            return False

        output = get_output()
        path = self._cache.path_for(target.cache_key)
        body = self._cache.lookup(target.cache_key, self._config.cache.max_age)
        if body is None:
            return False
        output.debug(f"found cache {path}")
        try:
            document = decode_document(body)
        except ValueError as exc:
            output.debug(f"ignoring unreadable cache {path}: {exc}")
            return False

        output.debug(f"using cache {path}")
        if self._config.output.include_headers:
            output.print_cache_notice(target.url, path)
        self._succeed(outcome, document, target, SOURCE_CACHE)
        return True

    def _from_network(self, target: Target, outcome: FetchOutcome) -> bool:
        """Issue one request for *target* and decode the response."""
        output = get_output()
        try:
            response = self._client.fetch(target.url)
        except ConnectionError_:
            return False

        if self._config.output.include_headers:
            output.print_headers(response)

        body = response.content
        try:
            document = decode_document(body)
        except ValueError as exc:
            if self._config.debug:
                raise ResponseParseError(
                    f"Cannot unmarshall url {target.url!r} err: {exc}"
                ) from exc
            return False

        self._succeed(outcome, document, target, SOURCE_NETWORK)
        self._store(target, body)
        return True

    def _store(self, target: Target, body: bytes) -> None:
        """Write *body* to the cache; fatal only in debug mode."""
        if self._cache is None:
            return
        output = get_output()
        output.debug("writing out file")
        try:
            self._cache.store(target.cache_key, body)
        except CacheError as exc:
            if self._config.debug:
                raise
            output.debug(str(exc))

    @staticmethod
    def _succeed(outcome: FetchOutcome, document: Any, target: Target, source: str) -> None:  # noqa: ANN401
        outcome.document = document
        outcome.found = True
        outcome.source = source
        outcome.target = target
