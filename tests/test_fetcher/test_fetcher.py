"""Tests for the round-robin fetch loop."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from jqurl.cache import ResponseCache
from jqurl.client import FetchClient
from jqurl.config import parse_targets
from jqurl.exceptions import CacheError, ConnectionError_, DataFileError, ResponseParseError
from jqurl.fetcher import SOURCE_CACHE, SOURCE_NETWORK, Fetcher, FetchOutcome
from jqurl.models import FetchConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedClient:
    """Stands in for FetchClient; plays back one scripted result per call.

    Each script entry is either bytes (returned as a 200 body) or an
    exception instance (raised). The last entry repeats once the script runs
    out.
    """

    def __init__(self, *script: Any) -> None:
        self.script = list(script)
        self.calls: list[str] = []

    def fetch(self, url: str) -> httpx.Response:
        index = min(len(self.calls), len(self.script) - 1)
        self.calls.append(url)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return httpx.Response(
            200,
            content=item,
            headers={"content-type": "application/json"},
            request=httpx.Request("GET", url),
        )


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _timeout() -> ConnectionError_:
    return ConnectionError_("GET failed: timed out")


URLS3 = (
    "https://a.example.com/doc.json",
    "https://b.example.com/doc.json",
    "https://c.example.com/doc.json",
)


def _fetcher(
    config: FetchConfig,
    client: Any,
    cache: ResponseCache | None = None,
    sleep: Callable[[float], None] | None = None,
) -> Fetcher:
    targets = parse_targets(config.urls, user_id="1000")
    return Fetcher(config, targets, client, cache, sleep=sleep or SleepRecorder())


@pytest.fixture(autouse=True)
def _output(quiet_output):
    yield


# ---------------------------------------------------------------------------
# Success on first attempt
# ---------------------------------------------------------------------------


class TestSuccess:
    def test_first_attempt(self, make_config) -> None:
        client = ScriptedClient(b'{"x": 1}')
        outcome = _fetcher(make_config(), client).run()
        assert outcome.found is True
        assert outcome.document == {"x": 1}
        assert outcome.source == SOURCE_NETWORK
        assert outcome.attempts == 1
        assert outcome.delays == 0
        assert client.calls == ["https://example.com/a.json"]

    def test_literal_null_counts_as_found(self, make_config) -> None:
        outcome = _fetcher(make_config(), ScriptedClient(b"null")).run()
        assert outcome.found is True
        assert outcome.document is None

    def test_empty_object_stops_loop(self, make_config) -> None:
        client = ScriptedClient(b"{}")
        outcome = _fetcher(make_config(), client).run()
        assert outcome.document == {}
        assert len(client.calls) == 1

    def test_outcome_defaults(self) -> None:
        outcome = FetchOutcome()
        assert outcome.found is False
        assert outcome.document is None

    def test_requires_targets(self, make_config) -> None:
        with pytest.raises(ValueError):
            Fetcher(make_config(), [], ScriptedClient(b"{}"))


# ---------------------------------------------------------------------------
# Retry and pacing
# ---------------------------------------------------------------------------


class TestRetry:
    def test_timeout_then_success_single_target(self, make_config) -> None:
        """Attempt 1 times out, attempt 2 succeeds; one delay in between."""
        sleep = SleepRecorder()
        client = ScriptedClient(_timeout(), b'{"x": 1}')
        config = make_config(request={"retry_delay": 7, "max_tries": 3})
        outcome = _fetcher(config, client, sleep=sleep).run()
        assert outcome.document == {"x": 1}
        assert outcome.attempts == 2
        assert sleep.calls == [7]
        assert outcome.delays == 1

    def test_malformed_body_is_a_failed_attempt(self, make_config) -> None:
        client = ScriptedClient(b"<html>oops</html>", b'{"ok": true}')
        outcome = _fetcher(make_config(), client).run()
        assert outcome.document == {"ok": True}
        assert outcome.attempts == 2

    def test_deeply_nested_body_is_a_failed_attempt(self, make_config) -> None:
        client = ScriptedClient(b"[" * 200_000, b'{"x": 1}')
        outcome = _fetcher(make_config(), client).run()
        assert outcome.document == {"x": 1}
        assert outcome.attempts == 2

    @pytest.mark.parametrize(
        "tries, count",
        [(1, 1), (3, 1), (3, 3), (7, 3), (5, 2), (2, 3), (4, 4)],
    )
    def test_exhaustion_attempt_and_delay_counts(self, make_config, tries: int, count: int) -> None:
        """All attempts fail: exactly max_tries attempts, floor(M/N) delays."""
        urls = tuple(f"https://h{i}.example.com/" for i in range(count))
        sleep = SleepRecorder()
        client = ScriptedClient(_timeout())
        config = make_config(urls=urls, request={"max_tries": tries, "retry_delay": 1})
        outcome = _fetcher(config, client, sleep=sleep).run()
        assert outcome.found is False
        assert outcome.document is None
        assert outcome.source is None
        assert len(client.calls) == tries
        assert outcome.attempts == tries
        assert len(sleep.calls) == tries // count
        assert outcome.delays == tries // count

    def test_round_robin_order(self, make_config) -> None:
        """Attempt k targets urls[k % N]."""
        client = ScriptedClient(_timeout())
        config = make_config(urls=URLS3, request={"max_tries": 7})
        _fetcher(config, client).run()
        assert client.calls == [URLS3[k % 3] for k in range(7)]

    def test_delay_only_after_last_target_in_cycle(self, make_config) -> None:
        events: list[str] = []

        class Client(ScriptedClient):
            def fetch(self, url: str) -> httpx.Response:
                events.append(url)
                return super().fetch(url)

        config = make_config(urls=URLS3, request={"max_tries": 6, "retry_delay": 2})
        _fetcher(config, Client(_timeout()), sleep=lambda s: events.append("sleep")).run()
        assert events == [*URLS3, "sleep", *URLS3, "sleep"]

    def test_success_on_second_target(self, make_config) -> None:
        sleep = SleepRecorder()
        client = ScriptedClient(_timeout(), b"[1, 2, 3]")
        outcome = _fetcher(make_config(urls=URLS3), client, sleep=sleep).run()
        assert outcome.document == [1, 2, 3]
        assert outcome.target.url == URLS3[1]
        assert sleep.calls == []

    def test_data_file_error_is_fatal(self, make_config) -> None:
        client = ScriptedClient(DataFileError("Unable to open 'x'"))
        with pytest.raises(DataFileError):
            _fetcher(make_config(), client).run()
        assert len(client.calls) == 1


# ---------------------------------------------------------------------------
# Cache interaction
# ---------------------------------------------------------------------------


def _seed(cache: ResponseCache, url: str, body: bytes, age: float = 0) -> Path:
    targets = parse_targets([url], user_id="1000")
    path = cache.store(targets[0].cache_key, body)
    if age:
        stamp = time.time() - age
        os.utime(path, (stamp, stamp))
    return path


class TestCache:
    def test_fresh_entry_short_circuits_network(self, make_config, tmp_path: Path) -> None:
        """Scenario: fresh {"y":2} entry, cache on, flush off -> zero network calls."""
        cache = ResponseCache(tmp_path / "cache")
        _seed(cache, "https://example.com/a.json", b'{"y":2}')
        client = ScriptedClient(b'{"y": 999}')
        outcome = _fetcher(make_config(cache={"enabled": True}), client, cache).run()
        assert outcome.document == {"y": 2}
        assert outcome.source == SOURCE_CACHE
        assert client.calls == []

    def test_cache_ignored_when_disabled(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        _seed(cache, "https://example.com/a.json", b'{"y":2}')
        client = ScriptedClient(b'{"y": 3}')
        outcome = _fetcher(make_config(cache={"enabled": False}), client, cache).run()
        assert outcome.document == {"y": 3}
        assert len(client.calls) == 1

    def test_disabled_cache_is_not_written(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        _fetcher(make_config(cache={"enabled": False}), ScriptedClient(b"{}"), cache).run()
        assert not (tmp_path / "cache").exists()

    def test_flush_bypasses_lookup_but_stores(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        path = _seed(cache, "https://example.com/a.json", b'{"y":2}')
        client = ScriptedClient(b'{"y": 3}')
        config = make_config(cache={"enabled": True, "flush": True})
        outcome = _fetcher(config, client, cache).run()
        assert outcome.document == {"y": 3}
        assert len(client.calls) == 1
        assert path.read_bytes() == b'{"y": 3}'

    def test_stale_entry_triggers_fetch(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        _seed(cache, "https://example.com/a.json", b'{"y":2}', age=3600)
        client = ScriptedClient(b'{"y": 4}')
        config = make_config(cache={"enabled": True, "max_age": 60})
        outcome = _fetcher(config, client, cache).run()
        assert outcome.document == {"y": 4}
        assert outcome.source == SOURCE_NETWORK

    def test_successful_fetch_is_stored_raw(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        body = b'{ "spaced" : true }'
        _fetcher(make_config(cache={"enabled": True}), ScriptedClient(body), cache).run()
        key = parse_targets(["https://example.com/a.json"], user_id="1000")[0].cache_key
        assert cache.lookup(key, 60) == body

    def test_cache_hit_on_later_target_stops_loop(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        _seed(cache, URLS3[1], b'{"from": "b"}')
        client = ScriptedClient(_timeout())
        config = make_config(urls=URLS3, cache={"enabled": True}, request={"max_tries": 9})
        outcome = _fetcher(config, client, cache).run()
        assert outcome.document == {"from": "b"}
        assert client.calls == [URLS3[0]]
        assert outcome.attempts == 2

    def test_corrupt_entry_treated_as_miss(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        _seed(cache, "https://example.com/a.json", b"not json")
        client = ScriptedClient(b'{"fresh": 1}')
        outcome = _fetcher(make_config(cache={"enabled": True}), client, cache).run()
        assert outcome.document == {"fresh": 1}
        assert len(client.calls) == 1

    def test_deeply_nested_entry_treated_as_miss(self, make_config, tmp_path: Path) -> None:
        cache = ResponseCache(tmp_path / "cache")
        _seed(cache, "https://example.com/a.json", b"[" * 200_000)
        client = ScriptedClient(b'{"fresh": 1}')
        outcome = _fetcher(make_config(cache={"enabled": True}), client, cache).run()
        assert outcome.document == {"fresh": 1}
        assert len(client.calls) == 1

    def test_cache_write_failure_is_not_fatal(self, make_config, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not dir")
        outcome = _fetcher(
            make_config(cache={"enabled": True}), ScriptedClient(b"{}"), ResponseCache(blocker)
        ).run()
        assert outcome.found is True


# ---------------------------------------------------------------------------
# Debug-mode promotions
# ---------------------------------------------------------------------------


class TestDebugMode:
    def test_malformed_response_fatal_in_debug(self, make_config) -> None:
        client = ScriptedClient(b"<html>", b"{}")
        with pytest.raises(ResponseParseError, match="Cannot unmarshall"):
            _fetcher(make_config(debug=True), client).run()
        assert len(client.calls) == 1

    def test_cache_write_failure_fatal_in_debug(self, make_config, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not dir")
        config = make_config(debug=True, cache={"enabled": True})
        with pytest.raises(CacheError):
            _fetcher(config, ScriptedClient(b"{}"), ResponseCache(blocker)).run()

    def test_transport_errors_still_retried_in_debug(self, make_config) -> None:
        client = ScriptedClient(_timeout(), b'{"ok": 1}')
        outcome = _fetcher(make_config(debug=True), client).run()
        assert outcome.document == {"ok": 1}


# ---------------------------------------------------------------------------
# Header echo
# ---------------------------------------------------------------------------


class TestIncludeHeaders:
    def test_network_headers_on_stderr(self, make_config, capsys: pytest.CaptureFixture) -> None:
        config = make_config(output={"include_headers": True})
        _fetcher(config, ScriptedClient(b"{}")).run()
        captured = capsys.readouterr()
        assert "HTTP/1.1 200 OK" in captured.err
        assert "content-type: application/json" in captured.err
        assert captured.out == ""

    def test_cache_notice_on_stderr(self, make_config, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        cache = ResponseCache(tmp_path / "cache")
        path = _seed(cache, "https://example.com/a.json", b"{}")
        config = make_config(cache={"enabled": True}, output={"include_headers": True})
        _fetcher(config, ScriptedClient(b"{}"), cache).run()
        err = capsys.readouterr().err
        assert "Header skipped as cache used" in err
        assert str(path) in err


# ---------------------------------------------------------------------------
# With the real client
# ---------------------------------------------------------------------------


class TestWithFetchClient:
    def test_mock_transport_end_to_end(self, make_config) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if len(calls) == 1:
                raise httpx.ConnectTimeout("timed out")
            return httpx.Response(200, json={"x": 1})

        config = make_config()
        with FetchClient(config.request, transport=httpx.MockTransport(handler)) as client:
            outcome = _fetcher(config, client).run()
        assert outcome.document == {"x": 1}
        assert len(calls) == 2
