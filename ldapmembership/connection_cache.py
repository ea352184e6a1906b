"""
A thread-safe cache of directory clients, keyed by host.
"""

import logging
import threading
from collections.abc import Callable

from .client import DirectoryClient
from .typing import ServerConfig

logger = logging.getLogger(__name__)


class ConnectionCache:
    """
    Get-or-create cache of :py:class:`~ldapmembership.client.DirectoryClient`
    objects, one per host.

    The cache is passed to each session that should share it; there is no
    module level instance.

    Keyword Args:
        factory: callable building a client from a server config

    """

    def __init__(
        self,
        factory: Callable[[ServerConfig], DirectoryClient] = DirectoryClient,
    ) -> None:
        self.factory = factory
        self._connections: dict[str, DirectoryClient] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(config: ServerConfig) -> str:
        return str(config["host"]).lower()

    def get_connection(self, config: ServerConfig) -> DirectoryClient:
        """
        Return the cached client for ``config["host"]``, creating it from
        ``config`` if this is the first request for that host.

        Concurrent first requests for the same host create exactly one
        client.
        """
        key = self._key(config)
        with self._lock:
            connection = self._connections.get(key)
            if connection is None:
                logger.debug("connection_cache.create host=%s", key)
                connection = self.factory(config)
                self._connections[key] = connection
        return connection

    def __contains__(self, host: str) -> bool:
        with self._lock:
            return host.lower() in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def clear(self) -> None:
        """Forget every cached client."""
        with self._lock:
            self._connections.clear()
