"""File-per-target response cache.

Entries live directly under the cache directory as ``jqurl_<key>`` where
``<key>`` is the SHA-1 hex digest of the URL string followed by the user
id. The file content is the response body exactly as received, with no
envelope, so freshness comes from the file's modification time alone.

Entries are never deleted; a stale entry is simply ignored until the next
successful fetch overwrites it. Two processes writing the same entry race,
and the last rename wins.

See Also:
    :class:`~jqurl.models.CacheConfig` -- ``enabled``, ``flush``,
    ``directory`` and ``max_age``.
"""

from __future__ import annotations

import getpass
import hashlib
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

from jqurl.exceptions import CacheError

_FILE_PREFIX = "jqurl_"


def effective_user_id() -> str:
    """Return the invoking user's identity as used in cache keys.

    The numeric uid on POSIX systems, the login name elsewhere.
    """
    getuid = getattr(os, "getuid", None)
    if getuid is not None:
        return str(getuid())
    return getpass.getuser()


def compute_key(url: str, user_id: str) -> str:
    """Fingerprint a ``(url, user_id)`` pair.

    Args:
        url: The raw URL string, as given by the user.
        user_id: Output of :func:`effective_user_id`.

    Returns:
        A 40 character hex digest, stable across runs.
    """
    digest = hashlib.sha1()
    digest.update(url.encode())
    digest.update(user_id.encode())
    return digest.hexdigest()


class ResponseCache:
    """Directory of raw response bodies keyed by :func:`compute_key`.

    Args:
        directory: Where entries are stored. Created on the first write.
        clock: Time source used for freshness checks, ``time.time`` by
            default.

    Example::

        cache = ResponseCache("/tmp")
        key = compute_key("https://example.com/a.json", effective_user_id())
        cache.store(key, b'{"x": 1}')
        cache.lookup(key, max_age=60)   # b'{"x": 1}'
    """

    def __init__(self, directory: str | Path, clock: Callable[[], float] = time.time) -> None:
        self._directory = Path(directory)
        self._clock = clock

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """Return the file that holds (or would hold) the entry for *key*."""
        return self._directory / f"{_FILE_PREFIX}{key}"

    def lookup(self, key: str, max_age: float) -> Optional[bytes]:
        """Return the cached body for *key* if it is fresh.

        An entry is fresh when ``now <= mtime + max_age``. Missing, expired
        and unreadable entries all return ``None``.

        Args:
            key: Cache key from :func:`compute_key`.
            max_age: Maximum entry age in seconds.
        """
        path = self.path_for(key)
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        if self._clock() > mtime + max_age:
            return None
        try:
            return path.read_bytes()
        except OSError:
            return None

    def store(self, key: str, data: bytes) -> Path:
        """Write *data* as the entry for *key*, replacing any previous entry.

        The body goes to a temporary file in the cache directory which is
        then renamed over the entry, so readers never see a partial body.

        Returns:
            Path of the written entry.

        Raises:
            CacheError: If the directory or file cannot be written.
        """
        path = self.path_for(key)
        tmp_path: Optional[str] = None
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self._directory,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_path = fh.name
                fh.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise CacheError(f"Error writing cache file {path}: {exc}") from exc
        return path
