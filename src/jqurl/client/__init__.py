"""HTTP client module for jqurl.

Provides :class:`FetchClient`, a thin wrapper over :class:`httpx.Client`
that issues exactly one request per call with the configured method,
headers, body, timeout, TLS settings and redirect policy. Retrying is the
fetcher's job, not the client's.

Example::

    from jqurl.client import FetchClient, build_ssl_context

    with FetchClient(config.request, build_ssl_context(config.tls)) as client:
        response = client.fetch("https://example.com/a.json")
"""

from jqurl.client.response import decode_document
from jqurl.client.sync_client import FetchClient, build_ssl_context, read_request_body

__all__ = ["FetchClient", "build_ssl_context", "decode_document", "read_request_body"]
