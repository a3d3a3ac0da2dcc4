"""Boundary to the jq query engine.

The fetcher hands over a decoded JSON document; this module compiles the
filter with the :mod:`jq` bindings and yields results lazily. jq works on
its own copy of the input, so the same document can be queried any number
of times with identical results.

Every error surfaced by jq, at compile time or while producing a result,
becomes a :class:`~jqurl.exceptions.QueryError` and aborts the command.
"""

from __future__ import annotations

from typing import Any, Iterator

import jq

from jqurl.exceptions import QueryError


def compile_query(text: str) -> Any:  # noqa: ANN401
    """Compile a jq filter.

    Raises:
        QueryError: If the filter does not compile.
    """
    try:
        return jq.compile(text)
    except ValueError as exc:
        raise QueryError(f"Error compiling jq query {text!r}: {exc}") from exc


def run_query(program: Any, document: Any, text: str = "") -> Iterator[Any]:  # noqa: ANN401
    """Yield each result of *program* applied to *document*.

    Args:
        program: A compiled filter from :func:`compile_query`.
        document: Any JSON-compatible value; ``None`` is jq's ``null``.
        text: The filter source, used in error messages.

    Raises:
        QueryError: When jq reports an error for some result. Results
            produced before the error have already been yielded.
    """
    results = iter(program.input_value(document))
    while True:
        try:
            value = next(results)
        except StopIteration:
            return
        except ValueError as exc:
            raise QueryError(f"Error running jq query {text!r}: {exc}") from exc
        yield value
