"""Exception hierarchy for jqurl.

All exceptions inherit from :class:`JqurlError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`jqurl.exit_codes`.
The command in :mod:`jqurl.app` catches ``JqurlError`` and exits with the
appropriate code, while unexpected exceptions produce a crash log and exit
with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    JqurlError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- TLSConfigError      (exit 3)
    +-- DataFileError       (exit 4)
    +-- OutputFileError     (exit 4)
    +-- QueryError          (exit 5)
    +-- ResponseParseError  (exit 6)
    +-- CacheError          (exit 7)
    +-- NamespaceError      (exit 8)
    +-- ConnectionError_    (exit 9)
    +-- ConfigError         (exit 1)

:class:`ConnectionError_` is raised by the client for every transport
failure and absorbed by the retry loop; it only reaches the user if a caller
outside the loop lets it escape.
"""

from jqurl.exit_codes import (
    EXIT_CACHE_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_FILE_ACCESS,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NAMESPACE_ERROR,
    EXIT_QUERY_ERROR,
    EXIT_RESPONSE_ERROR,
    EXIT_TLS_CONFIG,
)


class JqurlError(Exception):
    """Base exception for all jqurl errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`jqurl.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(JqurlError):
    """Raised for malformed URLs, headers, durations or other bad arguments."""

    exit_code = EXIT_INVALID_USAGE


class TLSConfigError(JqurlError):
    """Raised when the CA bundle or client key pair cannot be loaded."""

    exit_code = EXIT_TLS_CONFIG


class DataFileError(JqurlError):
    """Raised when the ``@file`` given to ``--data`` cannot be read."""

    exit_code = EXIT_FILE_ACCESS


class OutputFileError(JqurlError):
    """Raised when the ``--output`` file cannot be created or written."""

    exit_code = EXIT_FILE_ACCESS


class QueryError(JqurlError):
    """Raised when the jq filter fails to compile or yields an error."""

    exit_code = EXIT_QUERY_ERROR


class ResponseParseError(JqurlError):
    """Raised when a response body is not valid JSON and debug mode is on."""

    exit_code = EXIT_RESPONSE_ERROR


class CacheError(JqurlError):
    """Raised when a cache entry cannot be written."""

    exit_code = EXIT_CACHE_ERROR


class NamespaceError(JqurlError):
    """Raised when switching into a container's network namespace fails."""

    exit_code = EXIT_NAMESPACE_ERROR


class ConnectionError_(JqurlError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ConfigError(JqurlError):
    """Raised for an unreadable or invalid configuration file."""

    exit_code = EXIT_GENERIC_FAILURE
