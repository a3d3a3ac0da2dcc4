"""Numeric process exit codes.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~jqurl.exceptions.JqurlError` subclass. Shell
wrappers can inspect the exit code to tell a bad certificate from a bad
filter without parsing stderr.

An exhausted retry loop is *not* an error: the filter still runs against
``null`` and the process exits with :data:`EXIT_SUCCESS`.

Example::

    $ jqurl --cacert missing.pem '.x' https://example.com/a.json
    $ echo $?
    3   # EXIT_TLS_CONFIG -- CA bundle could not be loaded
"""

EXIT_SUCCESS = 0
"""The command completed, with or without query results."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including a malformed config file)."""

EXIT_INVALID_USAGE = 2
"""Malformed URL, header, duration, or other invalid argument."""

EXIT_TLS_CONFIG = 3
"""The CA bundle or client certificate/key could not be loaded."""

EXIT_FILE_ACCESS = 4
"""The POST data file could not be read or the output file could not be written."""

EXIT_QUERY_ERROR = 5
"""The jq filter failed to compile or produced an error value."""

EXIT_RESPONSE_ERROR = 6
"""A response body was not valid JSON (fatal only in debug mode)."""

EXIT_CACHE_ERROR = 7
"""A cache entry could not be written (fatal only in debug mode)."""

EXIT_NAMESPACE_ERROR = 8
"""Switching into the container network namespace failed."""

EXIT_CONNECTION_ERROR = 9
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
