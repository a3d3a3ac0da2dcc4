"""Synchronous single-request HTTP client.

This module provides :class:`FetchClient`, the blocking client the fetcher
uses for every network attempt. It wraps :class:`httpx.Client` and layers
on:

- **Request shaping** -- method, merged headers, and a POST body taken
  either literally or from ``@file`` (read fresh for each attempt).
- **TLS** -- an :class:`ssl.SSLContext` built once by
  :func:`build_ssl_context` from the CA bundle, client key pair and
  ``--insecure`` flag.
- **Redirect policy** -- with ``follow_redirects`` off a 3xx response is
  returned as is, ``Location`` untouched.
- **Deadline** -- ``timeout`` bounds the whole request, body included. httpx
  applies it to each phase (connect, each read); the client also checks a
  monotonic deadline while the body streams in, so a server that trickles
  bytes cannot hold an attempt open past it.
- **Error mapping** -- every transport failure (DNS, TLS handshake,
  timeout, refused connection, protocol error) becomes
  :class:`~jqurl.exceptions.ConnectionError_`, which the retry loop absorbs.

HTTP status codes are not interpreted: a 404 or 500 with a JSON body is a
usable document as far as the fetcher is concerned.
"""

from __future__ import annotations

import ssl
import time
from pathlib import Path
from typing import Callable, Iterator, Optional

import httpx

from jqurl.exceptions import ConnectionError_, DataFileError, TLSConfigError
from jqurl.models import RequestConfig, TLSConfig
from jqurl.output import get_output


def build_ssl_context(tls: TLSConfig) -> ssl.SSLContext:
    """Create the TLS context shared by every request.

    * ``cacert`` replaces the system trust store with the given PEM bundle.
    * ``cert``/``key`` load a client key pair; when only ``cert`` is set the
      key is expected in the same file.
    * ``insecure`` disables hostname checking and certificate verification.

    Raises:
        TLSConfigError: If the CA bundle or key pair cannot be read or parsed.
    """
    cafile = str(tls.cacert) if tls.cacert is not None else None
    try:
        context = ssl.create_default_context(cafile=cafile)
    except (OSError, ssl.SSLError) as exc:
        raise TLSConfigError(f"Error reading CA cert file {tls.cacert}: {exc}") from exc

    if tls.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if tls.cert is not None:
        key = tls.key if tls.key is not None else tls.cert
        try:
            context.load_cert_chain(certfile=str(tls.cert), keyfile=str(key))
        except (OSError, ssl.SSLError) as exc:
            raise TLSConfigError(
                f"Error reading client cert keypair cert={tls.cert} key={key}: {exc}"
            ) from exc

    return context


def read_request_body(data: Optional[str]) -> Optional[bytes]:
    """Resolve the ``--data`` argument into request body bytes.

    A leading ``@`` names a file whose content becomes the body; anything
    else is sent literally.

    Raises:
        DataFileError: If the ``@file`` cannot be opened or read.
    """
    if data is None:
        return None
    if data.startswith("@"):
        path = Path(data[1:])
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except OSError as exc:
            raise DataFileError(f"Unable to open {str(path)!r}: {exc}") from exc
    return data.encode()


class FetchClient:
    """One-request-per-call HTTP client.

    Must be used as a context manager so that the underlying connection
    pool is opened and closed on every exit path.

    Args:
        request: Method, headers, body, timeout and redirect settings.
        verify: TLS context from :func:`build_ssl_context`, or a bool.
        transport: Optional httpx transport, mainly for tests
            (:class:`httpx.MockTransport`).
        clock: Monotonic time source for the request deadline.

    Example::

        with FetchClient(config.request, context) as client:
            response = client.fetch("https://example.com/a.json")
    """

    def __init__(
        self,
        request: RequestConfig,
        verify: ssl.SSLContext | bool = True,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._request = request
        self._verify = verify
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> FetchClient:
        self._client = httpx.Client(
            timeout=self._request.timeout,
            verify=self._verify,
            follow_redirects=self._request.follow_redirects,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def fetch(self, url: str) -> httpx.Response:
        """Send one request to *url* and return the fully read response.

        The body is streamed and the request abandoned as soon as
        ``timeout`` seconds have passed since it was sent.

        Raises:
            ConnectionError_: On any transport-level failure, including the
                request deadline.
            DataFileError: If the POST body file cannot be read.
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        method = self._request.method
        output = get_output()
        output.debug(f"HTTP {method} {url}")

        content = None
        if method == "POST":
            content = read_request_body(self._request.data)

        for name, value in self._request.headers.items():
            output.debug(f"Request Header: {name}: {value}")

        try:
            request = self._client.build_request(
                method,
                url,
                headers=self._request.headers,
                content=content,
            )
            return self._send_with_deadline(request)
        except httpx.RequestError as exc:
            output.debug(f"Error doing http request: {exc!r}")
            raise ConnectionError_(f"{method} {url} failed: {exc}") from exc

    def _send_with_deadline(self, request: httpx.Request) -> httpx.Response:
        deadline = self._clock() + self._request.timeout

        def check() -> None:
            if self._clock() > deadline:
                raise httpx.ReadTimeout(
                    f"request exceeded its {self._request.timeout}s deadline", request=request
                )

        response = self._client.send(request, stream=True)
        try:
            check()
            response.stream = _DeadlineStream(response.stream, check)
            response.read()
        finally:
            response.close()
        return response


class _DeadlineStream(httpx.SyncByteStream):
    """Byte stream that runs *check* after every chunk it passes on."""

    def __init__(self, stream: httpx.SyncByteStream, check: Callable[[], None]) -> None:
        self._stream = stream
        self._check = check

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._stream:
            self._check()
            yield chunk

    def close(self) -> None:
        self._stream.close()
