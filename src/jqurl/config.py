"""Configuration resolution, parsing helpers, and XDG paths.

This module turns command-line values into the immutable
:class:`~jqurl.models.FetchConfig`:

* **Directory layout** -- the optional config file lives under
  ``$XDG_CONFIG_HOME/jqurl/`` on Linux/BSD and ``~/.jqurl/`` elsewhere;
  crash logs go under the data directory. The response cache defaults to
  the system temp directory. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`default_cache_dir`.
* **Global config** -- :func:`load_global_config` reads a
  :class:`~jqurl.models.GlobalConfig` JSON file that supplies defaults.
* **Precedence resolution** -- :func:`build_config` merges CLI flags,
  environment variables, the config file and built-in defaults, in that
  order of priority.
* **Parsing** -- :func:`parse_duration`, :func:`parse_header` and
  :func:`parse_targets` validate user input before the fetch loop starts.
"""

from __future__ import annotations

import json
import math
import os
import platform
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

import httpx

from jqurl.cache import compute_key, effective_user_id
from jqurl.exceptions import ConfigError, InvalidUsageError
from jqurl.models import FetchConfig, GlobalConfig, Target

_APP_NAME = "jqurl"
_CONFIG_FILENAME = "config.json"

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/BSD)."""
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
    """Return the configuration directory (not created).

    On Linux/BSD: ``$XDG_CONFIG_HOME/jqurl/`` (default ``~/.config/jqurl/``).
    On macOS/Windows: ``~/.jqurl/``.
    """
    if _is_xdg_platform():
        return _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    return _fallback_base_dir()


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/jqurl/`` (default ``~/.local/share/jqurl/``).
    On macOS/Windows: ``~/.jqurl/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_cache_dir() -> Path:
    """Return the cache directory used when none is configured.

    ``$JQURL_CACHE_DIR`` if set, otherwise the system temp directory
    (``$TMPDIR``/``$TEMP`` aware).
    """
    env_value = os.environ.get("JQURL_CACHE_DIR", "")
    if env_value:
        return Path(env_value)
    return Path(tempfile.gettempdir())


def config_file_path() -> Path:
    """Return the config file location, honouring ``$JQURL_CONFIG``."""
    env_value = os.environ.get("JQURL_CONFIG", "")
    if env_value:
        return Path(env_value).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


# --- Global config ---


def load_global_config(path: Optional[Path] = None) -> GlobalConfig:
    """Load defaults from the JSON config file.

    Args:
        path: Explicit file location; :func:`config_file_path` when omitted.

    Returns:
        The deserialised :class:`~jqurl.models.GlobalConfig`, or a default
        instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but is unreadable, contains invalid
            JSON, or fails validation.
    """
    path = path or config_file_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config file at {path}: {exc}") from exc


# --- Parsing helpers ---


def parse_duration(text: str) -> float:
    """Parse a duration into seconds.

    Accepts Go-style durations (``300ms``, ``7s``, ``1m30s``, ``4h``) and
    bare numbers, which are taken as seconds.

    Raises:
        InvalidUsageError: If *text* is not a valid, non-negative duration.
    """
    value = text.strip()
    if not value:
        raise InvalidUsageError("Empty duration")
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if seconds < 0 or not math.isfinite(seconds):
            raise InvalidUsageError(f"Invalid duration: {text!r} (must be finite and non-negative)")
        return seconds

    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value) or pos == 0:
        raise InvalidUsageError(f"Invalid duration: {text!r} (expected e.g. 7s, 1m30s, 4h)")
    return total


def parse_header(text: str) -> tuple[str, str]:
    """Split a ``"Name: value"`` header argument.

    The name is stripped and lower-cased; a single space after the colon is
    dropped from the value.

    Raises:
        InvalidUsageError: If there is no colon.
    """
    name, sep, value = text.partition(":")
    if not sep:
        raise InvalidUsageError(f"Malformatted header: {text!r} (expected 'HEADER: VALUE')")
    value = value[1:] if value.startswith(" ") else value
    return name.strip().lower(), value


def parse_targets(urls: list[str] | tuple[str, ...], user_id: Optional[str] = None) -> tuple[Target, ...]:
    """Validate every URL and derive its cache key.

    Args:
        urls: Raw URL strings in the order they should be tried.
        user_id: Identity mixed into the cache key;
            :func:`~jqurl.cache.effective_user_id` when omitted.

    Raises:
        InvalidUsageError: On the first URL that does not parse or lacks an
            ``http``/``https`` scheme or a host.
    """
    if not urls:
        raise InvalidUsageError("At least one URL is required")
    user_id = user_id if user_id is not None else effective_user_id()
    targets = []
    for raw in urls:
        try:
            parsed = httpx.URL(raw)
        except (httpx.InvalidURL, TypeError) as exc:
            raise InvalidUsageError(f"Malformed URL: {raw!r}: {exc}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise InvalidUsageError(f"Malformed URL: {raw!r}: expected an http(s) URL with a host")
        targets.append(Target(url=raw, cache_key=compute_key(raw, user_id)))
    return tuple(targets)


# --- Precedence resolution ---


def _overrides(**values: Any) -> dict[str, Any]:  # noqa: ANN401
    """Keep only the values the user actually supplied."""
    return {k: v for k, v in values.items() if v is not None and v is not False}


def build_config(
    query: str,
    urls: list[str],
    *,
    pretty: bool = False,
    raw: bool = False,
    include_headers: bool = False,
    flush: bool = False,
    use_cache: bool = False,
    debug: bool = False,
    cache_dir: Optional[Path] = None,
    output_file: Optional[Path] = None,
    max_age: Optional[str] = None,
    data: Optional[str] = None,
    headers: Optional[list[str]] = None,
    follow_redirects: bool = False,
    retry_delay: Optional[str] = None,
    timeout: Optional[str] = None,
    max_tries: Optional[int] = None,
    insecure: bool = False,
    method: Optional[str] = None,
    cacert: Optional[Path] = None,
    cert: Optional[Path] = None,
    key: Optional[Path] = None,
    docker: Optional[str] = None,
    global_config: Optional[GlobalConfig] = None,
) -> FetchConfig:
    """Resolve the effective configuration with full precedence chain.

    Precedence (high to low):
        1. CLI values passed to this function
        2. Environment variables (``JQURL_CACHE_DIR``)
        3. The config file (:func:`load_global_config`)
        4. Built-in defaults

    Boolean flags can only switch a setting on; the config file decides
    the value when the flag is absent.

    Raises:
        InvalidUsageError: For malformed headers or durations.
        ConfigError: For an invalid config file.
    """
    base = global_config if global_config is not None else load_global_config()

    merged_headers = dict(base.request.headers)
    for header in headers or []:
        name, value = parse_header(header)
        merged_headers[name] = value

    request = base.request.model_copy(
        update=_overrides(
            method=method.upper() if method else None,
            data=data,
            follow_redirects=follow_redirects,
            timeout=parse_duration(timeout) if timeout is not None else None,
            retry_delay=parse_duration(retry_delay) if retry_delay is not None else None,
            max_tries=max_tries,
        )
        | {"headers": merged_headers}
    )
    if request.max_tries < 1:
        raise InvalidUsageError(f"--max-tries must be at least 1, got {request.max_tries}")
    if request.timeout <= 0:
        raise InvalidUsageError(f"--max-time must be positive, got {timeout!r}")

    tls = base.tls.model_copy(
        update=_overrides(insecure=insecure, cacert=cacert, cert=cert, key=key)
    )

    env_cache_dir = os.environ.get("JQURL_CACHE_DIR", "")
    directory = (
        cache_dir
        or (Path(env_cache_dir) if env_cache_dir else None)
        or base.cache.directory
        or default_cache_dir()
    )
    cache = base.cache.model_copy(
        update=_overrides(
            enabled=use_cache,
            flush=flush,
            max_age=parse_duration(max_age) if max_age is not None else None,
        )
        | {"directory": directory}
    )

    output = base.output.model_copy(
        update=_overrides(
            pretty=pretty,
            raw=raw,
            include_headers=include_headers,
            output_file=output_file,
        )
    )

    return FetchConfig(
        query=query,
        urls=tuple(urls),
        request=request,
        tls=tls,
        cache=cache,
        output=output,
        debug=debug or base.debug,
        docker=docker or None,
    )
