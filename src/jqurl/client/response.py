"""Response interpretation -- turns a fetched body into a query document.

The fetcher treats a body as usable when it decodes as JSON, whatever the
HTTP status. Bodies read back from the cache go through the same decoder so
a corrupted entry behaves exactly like a malformed response.
"""

from __future__ import annotations

import json
from typing import Any


def decode_document(body: bytes) -> Any:  # noqa: ANN401
    """Decode *body* as a JSON document.

    Any JSON value is accepted, including ``null``, arrays and scalars.
    UTF-8, UTF-16 and UTF-32 bodies are detected automatically.

    Raises:
        ValueError: If the body is empty, not valid JSON, not decodable
            text, or nested too deeply for the decoder.
    """
    try:
        return json.loads(body)
    except RecursionError as exc:
        raise ValueError("JSON document nested too deeply") from exc
