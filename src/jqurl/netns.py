"""Scoped switch into a container's network namespace.

``--docker CONTAINER_ID`` makes every request leave from inside the given
container's network stack, e.g. to reach a service only published on a
Docker network. :class:`NetworkNamespace` resolves the container's init
PID through the Docker SDK, saves the calling thread's own namespace and
joins the container's with :func:`os.setns`. Leaving the ``with`` block
switches back on a best-effort basis.

Namespace membership is per OS thread. The switch must therefore happen on
the main thread, which Python never migrates, and the fetch loop must run
on that same thread. The manager is single-use and not reentrant.

Requires Linux, Python 3.12+ (:func:`os.setns`), access to the Docker
daemon, and ``CAP_SYS_ADMIN``.
"""

from __future__ import annotations

import os
import threading
from typing import Any, Callable, Optional

import docker
from docker.errors import DockerException, NotFound

from jqurl.exceptions import NamespaceError
from jqurl.output import get_output

_SELF_NETNS = "/proc/thread-self/ns/net"


class NetworkNamespace:
    """Context manager that joins a container's network namespace.

    Args:
        container_id: Name or id of a running container.
        client_factory: Returns a Docker client; ``docker.from_env`` by
            default.

    Example::

        with NetworkNamespace("redis"):
            outcome = fetcher.run()
    """

    def __init__(
        self,
        container_id: str,
        client_factory: Callable[[], Any] = docker.from_env,
    ) -> None:
        self._container_id = container_id
        self._client_factory = client_factory
        self._original_fd: Optional[int] = None
        self._target_fd: Optional[int] = None
        self._entered = False

    def container_pid(self) -> int:
        """Return the host PID of the container's init process.

        Raises:
            NamespaceError: If Docker is unreachable, the container does not
                exist, or it is not running.
        """
        try:
            client = self._client_factory()
            try:
                container = client.containers.get(self._container_id)
            finally:
                client.close()
        except NotFound as exc:
            raise NamespaceError(f"No such container: {self._container_id}") from exc
        except DockerException as exc:
            raise NamespaceError(f"Cannot reach Docker: {exc}") from exc

        pid = container.attrs.get("State", {}).get("Pid", 0)
        if not pid:
            raise NamespaceError(f"Container {self._container_id} is not running")
        return int(pid)

    def __enter__(self) -> NetworkNamespace:
        if self._entered:
            raise NamespaceError("Network namespace switch is not reentrant")
        if threading.current_thread() is not threading.main_thread():
            raise NamespaceError("Network namespace must be switched from the main thread")
        if not hasattr(os, "setns"):
            raise NamespaceError("Switching network namespace requires Linux and Python 3.12+")

        pid = self.container_pid()
        try:
            self._original_fd = os.open(_SELF_NETNS, os.O_RDONLY)
            self._target_fd = os.open(f"/proc/{pid}/ns/net", os.O_RDONLY)
            os.setns(self._target_fd, os.CLONE_NEWNET)
        except OSError as exc:
            self._close_fds()
            raise NamespaceError(
                f"Error switching to container network space {self._container_id!r}, err: {exc}"
            ) from exc

        self._entered = True
        get_output().debug(f"Joined network namespace of {self._container_id} (pid {pid})")
        return self

    def __exit__(self, *args: object) -> None:
        if not self._entered:
            return
        try:
            os.setns(self._original_fd, os.CLONE_NEWNET)
        except OSError as exc:
            get_output().warning(f"Could not restore original network namespace: {exc}")
        finally:
            self._close_fds()
            self._entered = False

    def _close_fds(self) -> None:
        for fd in (self._target_fd, self._original_fd):
            if fd is not None:
                try:
                    os.close(fd)
                except OSError:
                    pass
        self._original_fd = None
        self._target_fd = None
