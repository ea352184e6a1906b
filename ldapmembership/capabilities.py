"""
Directory server capability detection.

This module provides the :py:class:`Capabilities` class, which fetches the
root DSE once per session and answers questions about what the server
supports.
"""

import logging
import threading
from collections.abc import Iterable

from ldapmembership import ldap

from .entry import DirectoryEntry

logger = logging.getLogger(__name__)

#: LDAP_CAP_ACTIVE_DIRECTORY_V51_OID (Windows Server 2003 and later)
ACTIVE_DIRECTORY_V51_OID = "1.2.840.113556.1.4.1670"
#: LDAP_CAP_ACTIVE_DIRECTORY_V61_R2_OID (Windows Server 2008 R2 and later)
ACTIVE_DIRECTORY_V61_R2_OID = "1.2.840.113556.1.4.2080"
#: Capability OIDs that mark a server as ActiveDirectory, unless configured
DEFAULT_ACTIVE_DIRECTORY_OIDS: tuple[str, ...] = (
    ACTIVE_DIRECTORY_V51_OID,
    ACTIVE_DIRECTORY_V61_R2_OID,
)


class Capabilities:
    """
    Detects and caches the capabilities of one directory server.

    The root DSE is fetched at most once, on first use, and then kept for
    the life of the object.  If fetching it fails, the error is logged and
    stored in :py:attr:`error` and the server is treated as having no
    capabilities at all, so strategy selection falls back to the generic
    LDAP strategies instead of failing.

    Args:
        connection: the :py:class:`~ldapmembership.client.DirectoryClient`
            to query

    Keyword Args:
        active_directory_oids: ``supportedCapabilities`` OIDs any one of which
            marks the server as ActiveDirectory

    """

    def __init__(
        self,
        connection,
        active_directory_oids: Iterable[str] = DEFAULT_ACTIVE_DIRECTORY_OIDS,
    ) -> None:
        self.connection = connection
        self.active_directory_oids: tuple[str, ...] = tuple(active_directory_oids)
        #: The error raised while fetching the root DSE, if any
        self.error: ldap.LDAPError | None = None  # type: ignore[name-defined]
        self._root_dse: DirectoryEntry | None = None
        self._lock = threading.Lock()

    @property
    def root_dse(self) -> DirectoryEntry:
        """
        The server's root DSE, fetched on first access.

        Returns:
            The root DSE, or an empty entry if it could not be read.

        """
        with self._lock:
            if self._root_dse is None:
                try:
                    self._root_dse = self.connection.root_dse()
                except ldap.LDAPError as e:  # type: ignore[attr-defined]
                    self._log_ldap_error(e, "querying Root DSE")
                    self.error = e
                    self._root_dse = DirectoryEntry("")
                else:
                    logger.debug(
                        "capabilities.detected server=%s flavor=%s",
                        self._server_name,
                        self.flavor,
                    )
            return self._root_dse

    @property
    def _server_name(self) -> str:
        return getattr(self.connection, "url", repr(self.connection))

    def _log_ldap_error(self, error: Exception, context: str) -> None:
        logger.warning(
            "LDAP error while %s for server '%s': %s",
            context,
            self._server_name,
            error,
        )

    @property
    def supported_capabilities(self) -> list[str]:
        return self.root_dse["supportedCapabilities"]

    def has_capability(self, oid: str) -> bool:
        return oid in self.supported_capabilities

    def active_directory_capability(self) -> bool:
        """
        Return ``True`` if the server advertises any of our ActiveDirectory
        marker capabilities.
        """
        return any(self.has_capability(oid) for oid in self.active_directory_oids)

    @property
    def flavor(self) -> str:
        """
        A best guess at the server implementation, for logging.

        Returns:
            ``active_directory``, ``389``, ``openldap``, the vendor name, or
            ``unknown``.

        """
        if self._root_dse is None:
            return "unknown"
        if any(oid in self._root_dse["supportedCapabilities"] for oid in self.active_directory_oids):
            return "active_directory"
        vendor_name = self._root_dse.first("vendorName")
        if not vendor_name:
            return "unknown"
        if any(
            name in vendor_name
            for name in ("Fedora Project", "Red Hat", "Oracle", "ForgeRock", "389")
        ):
            return "389"
        if "OpenLDAP Foundation" in vendor_name:
            return "openldap"
        return vendor_name

    @property
    def configuration_naming_context(self) -> str | None:
        """The forest configuration partition, ActiveDirectory only."""
        return self.root_dse.first("configurationNamingContext")
