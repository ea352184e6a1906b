"""
Searching across the domains of an ActiveDirectory forest.
"""

import logging
import threading

from ldap_filter import Filter

from ldapmembership import ldap

from .client import DirectoryClient
from .entry import DirectoryEntry, normalize_dn

logger = logging.getLogger(__name__)


class ForestSearch:
    """
    Fan a search out to the domain controllers of a multi-domain forest.

    On first use we read the ``crossRef`` objects under the forest's
    configuration naming context and build a map from each domain's naming
    context to a client for that domain's DNS root.  A search then goes to
    every domain whose naming context is a suffix of the search base.

    Args:
        connection: the client for the server we were configured with
        capabilities: the :py:class:`~ldapmembership.capabilities.Capabilities`
            of that server

    """

    def __init__(self, connection: DirectoryClient, capabilities) -> None:
        self.connection = connection
        self.capabilities = capabilities
        self._forest: dict[str, DirectoryClient] | None = None
        self._lock = threading.Lock()

    @property
    def forest(self) -> dict[str, DirectoryClient]:
        """
        Map of naming context DN to a client for that domain.  Empty when the
        directory is not a forest.
        """
        with self._lock:
            if self._forest is None:
                self._forest = self._discover()
            return self._forest

    def _discover(self) -> dict[str, DirectoryClient]:
        forest: dict[str, DirectoryClient] = {}
        config_nc = self.capabilities.configuration_naming_context
        if not config_nc:
            logger.debug("forest.none server=%s", self.connection.url)
            return forest
        result = self.connection.search(
            base=config_nc,
            scope=ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
            filterstr=Filter.attribute("nETBIOSName").present(),
            attributes=["nCName", "dnsRoot", "nETBIOSName"],
        )
        port = 636 if self.connection.encryption == "simple_tls" else 389
        for entry in result.entries:
            naming_context = entry.first("nCName")
            dns_root = entry.first("dnsRoot")
            if not naming_context or not dns_root:
                continue
            forest[naming_context] = self.connection.derive(host=dns_root, port=port)
            logger.debug(
                "forest.domain naming_context=%s host=%s", naming_context, dns_root
            )
        return forest

    def search(self, **options) -> list[DirectoryEntry]:
        """
        Search every domain whose naming context contains ``options["base"]``.

        With no forest, this is a plain search on our own connection.  A base
        outside every known naming context finds nothing.

        Keyword Args:
            **options: keyword arguments for
                :py:meth:`~ldapmembership.client.DirectoryClient.search`

        """
        if not self.forest:
            return self.connection.search(**options).entries
        base = normalize_dn(options.get("base") or "")
        entries: list[DirectoryEntry] = []
        for naming_context, connection in self.forest.items():
            suffix = normalize_dn(naming_context)
            if base != suffix and not base.endswith("," + suffix):
                continue
            entries.extend(connection.search(**options).entries)
        return entries
