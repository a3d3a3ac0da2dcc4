"""Canonical Pydantic models shared across all jqurl modules.

The models fall into two groups:

**Configuration models** -- one per concern, combined into the immutable
:class:`FetchConfig` that is built once at startup and handed to the
fetcher: :class:`RequestConfig`, :class:`TLSConfig`, :class:`CacheConfig`,
:class:`OutputConfig`. The same sections also make up :class:`GlobalConfig`,
the optional JSON config file that supplies defaults.

**Runtime models** -- :class:`Target`, one parsed candidate URL plus its
cache key.

Every model is frozen; a configuration change means building a new object
with ``model_copy(update=...)``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_HEADERS: dict[str, str] = {"content-type": "application/json"}


def _coerce_duration(value: Any) -> Any:  # noqa: ANN401
    """Accept Go-style duration strings (``4h``, ``1m30s``) as well as seconds."""
    if isinstance(value, str):
        from jqurl.config import parse_duration
        from jqurl.exceptions import InvalidUsageError

        try:
            return parse_duration(value)
        except InvalidUsageError as exc:
            raise ValueError(str(exc)) from exc
    return value


# --- Request ---


class RequestConfig(BaseModel):
    """How each individual attempt talks to the server."""

    model_config = ConfigDict(frozen=True)

    method: str = Field(default="GET", description="HTTP method")
    headers: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_HEADERS),
        description="Request headers, keys lower-cased",
    )
    data: Optional[str] = Field(
        default=None, description="POST body, or @path to read it from a file"
    )
    follow_redirects: bool = Field(default=False, description="Follow 3xx responses")
    timeout: float = Field(default=15.0, gt=0, description="Per-request timeout in seconds")
    retry_delay: float = Field(
        default=7.0, ge=0, description="Pause after each full pass over the targets"
    )
    max_tries: int = Field(default=30, ge=1, description="Maximum number of attempts")

    @field_validator("timeout", "retry_delay", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> Any:  # noqa: ANN401
        return _coerce_duration(value)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("headers")
    @classmethod
    def _lower_header_keys(cls, value: dict[str, str]) -> dict[str, str]:
        return {k.strip().lower(): v for k, v in value.items()}


# --- TLS ---


class TLSConfig(BaseModel):
    """Certificate settings applied to every request."""

    model_config = ConfigDict(frozen=True)

    insecure: bool = Field(default=False, description="Skip certificate verification")
    cacert: Optional[Path] = Field(default=None, description="PEM bundle of trusted CAs")
    cert: Optional[Path] = Field(default=None, description="PEM client certificate")
    key: Optional[Path] = Field(
        default=None, description="PEM client key (defaults to the cert file)"
    )


# --- Cache ---


class CacheConfig(BaseModel):
    """Response cache settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Use the local response cache")
    flush: bool = Field(
        default=False, description="Skip cache lookup but still write fresh responses"
    )
    directory: Optional[Path] = Field(
        default=None, description="Cache directory (system temp dir when unset)"
    )
    max_age: float = Field(default=4 * 3600.0, ge=0, description="Max age in seconds")

    @field_validator("max_age", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> Any:  # noqa: ANN401
        return _coerce_duration(value)


# --- Output ---


class OutputConfig(BaseModel):
    """How query results are rendered."""

    model_config = ConfigDict(frozen=True)

    pretty: bool = Field(default=False, description="Indent JSON output")
    raw: bool = Field(default=False, description="Print strings without quotes")
    include_headers: bool = Field(
        default=False, description="Write response headers to stderr"
    )
    output_file: Optional[Path] = Field(
        default=None, description="Write results here instead of stdout"
    )


# --- Global config file ---


class GlobalConfig(BaseModel):
    """Defaults read from the optional JSON config file.

    Example ``config.json``::

        {
          "cache": {"enabled": true, "max_age": "1h"},
          "request": {"retry_delay": "2s", "headers": {"accept": "application/json"}}
        }
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    request: RequestConfig = Field(default_factory=RequestConfig)
    tls: TLSConfig = Field(default_factory=TLSConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    debug: bool = False


# --- Effective configuration ---


class FetchConfig(BaseModel):
    """The complete, immutable configuration of one invocation.

    Built once by :func:`jqurl.config.build_config` and passed by reference
    to the fetcher, the client and the output manager.
    """

    model_config = ConfigDict(frozen=True)

    query: str
    urls: tuple[str, ...] = Field(min_length=1)
    request: RequestConfig = Field(default_factory=RequestConfig)
    tls: TLSConfig = Field(default_factory=TLSConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    debug: bool = False
    docker: Optional[str] = Field(
        default=None, description="Container whose network namespace to join"
    )


# --- Targets ---


class Target(BaseModel):
    """One candidate URL for fetching the query input document.

    Attributes:
        url: The URL exactly as given on the command line. The cache key is
            derived from this string, not from a normalised form.
        cache_key: Hex fingerprint of ``url`` and the invoking user id.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    cache_key: str
