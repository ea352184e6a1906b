"""
The directory session: configuration, connections and caches for one
directory server.
"""

import logging
import threading
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from ldapmembership import ldap

from . import member_of, member_search, membership_validators, user_search
from .capabilities import DEFAULT_ACTIVE_DIRECTORY_OIDS, Capabilities
from .client import DirectoryClient, SearchResult
from .connection_cache import ConnectionCache
from .domain import Domain
from .entry import DirectoryEntry
from .forest_search import ForestSearch
from .group import Group, PosixGroup, VirtualGroup
from .typing import ServerConfig
from .virtual_attributes import VirtualAttributes

logger = logging.getLogger(__name__)

#: Default depth bound for the recursive strategies
DEFAULT_MAX_DEPTH = 9


class LdapSession:
    """
    Everything needed to answer membership questions against one directory.

    A session owns its :py:class:`~ldapmembership.client.DirectoryClient`,
    its :py:class:`~ldapmembership.capabilities.Capabilities` (fetched once,
    on first use) and, when ``search_forest`` is on, its
    :py:class:`~ldapmembership.forest_search.ForestSearch`.  Connections to
    referred-to servers come from the
    :py:class:`~ldapmembership.connection_cache.ConnectionCache` passed in,
    which sessions may share.

    Example:
        .. code-block:: python

            session = LdapSession({
                "host": "ldap.example.com",
                "encryption": "start_tls",
                "user": "cn=admin,dc=example,dc=com",
                "password": "secret",
                "basedn": "dc=example,dc=com",
                "uid": "uid",
            })
            user = session.domain("dc=example,dc=com").user("alice")
            groups = session.domain("dc=example,dc=com").groups(["admins"])
            session.membership_validator().perform(user, groups)

    Args:
        config: the server configuration

    Keyword Args:
        connection: use this client rather than building one from ``config``
        connection_cache: shared cache for connections to other servers

    Raises:
        ImproperlyConfigured: ``config`` is unusable

    """

    def __init__(
        self,
        config: ServerConfig,
        connection: DirectoryClient | None = None,
        connection_cache: ConnectionCache | None = None,
    ) -> None:
        self.config: ServerConfig = dict(config)
        self.connection = connection if connection is not None else DirectoryClient(self.config)
        self.connection_cache = (
            connection_cache if connection_cache is not None else ConnectionCache()
        )
        self.uid: str = self.config.get("uid") or "sAMAccountName"
        self.basedn: str | None = self.config.get("basedn")
        search_domains = self.config.get("search_domains") or (
            [self.basedn] if self.basedn else []
        )
        if isinstance(search_domains, str):
            search_domains = [search_domains]
        self.search_domains: list[str] = list(search_domains)
        self.posix_support: bool = self.config.get("posix_support", True) is not False
        self.recursive_group_search_fallback: bool = (
            self.config.get("recursive_group_search_fallback", True) is not False
        )
        self.virtual_attributes = VirtualAttributes.from_config(
            self.config.get("virtual_attributes", False)
        )
        self.search_forest: bool = bool(self.config.get("search_forest", False))
        try:
            self.max_depth = int(self.config.get("max_depth", DEFAULT_MAX_DEPTH))
        except (TypeError, ValueError) as exc:
            msg = f"Invalid max_depth: {self.config.get('max_depth')!r}"
            raise ImproperlyConfigured(msg) from exc
        self.membership_validator_name = membership_validators.configure(
            self.config.get("membership_validator")
        )
        self.member_search_strategy_name = member_search.configure(
            self.config.get("member_search_strategy")
        )
        self.user_search_strategy = user_search.configure(
            self.config.get("user_search_strategy")
        )(self)
        self.capabilities = Capabilities(
            self.connection,
            active_directory_oids=self.config.get(
                "active_directory_capability_oids", DEFAULT_ACTIVE_DIRECTORY_OIDS
            ),
        )
        self._forest_search: ForestSearch | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, name: str = "default", **kwargs: Any) -> "LdapSession":
        """
        Build a session from ``settings.LDAP_SERVERS[name]``.

        Raises:
            ImproperlyConfigured: ``LDAP_SERVERS`` is not set or has no ``name``

        """
        servers = getattr(settings, "LDAP_SERVERS", None)
        if not servers:
            msg = "settings.LDAP_SERVERS is not configured"
            raise ImproperlyConfigured(msg)
        try:
            config = servers[name]
        except KeyError as exc:
            msg = f"settings.LDAP_SERVERS has no server named '{name}'"
            raise ImproperlyConfigured(msg) from exc
        return cls(config, **kwargs)

    @property
    def forest_search(self) -> ForestSearch:
        with self._lock:
            if self._forest_search is None:
                self._forest_search = ForestSearch(self.connection, self.capabilities)
            return self._forest_search

    def _search(self, **options) -> list[DirectoryEntry]:
        if self.search_forest:
            return self.forest_search.search(**options)
        return self.connection.search(**options).entries

    def search(self, **options) -> list[DirectoryEntry]:
        """
        Search the directory.

        Without a ``base``, the search is run under each of
        :py:attr:`search_domains` in turn and the results concatenated.

        Keyword Args:
            base: the search base
            scope: an ``ldap.SCOPE_*`` constant; defaults to subtree
            filterstr: a filter string or :py:class:`ldap_filter.Filter`
            attributes: attributes to fetch; all of them if omitted
            sizelimit: maximum number of entries per search base

        Raises:
            ldap.LDAPError: the search failed

        """
        if options.get("base") is not None:
            return self._search(**options)
        entries: list[DirectoryEntry] = []
        for base in self.search_domains:
            entries.extend(self._search(**dict(options, base=base)))
        return entries

    def search_with_referrals(self, **options) -> SearchResult:
        """
        Like :py:meth:`search` with an explicit ``base``, but return the
        referral URLs too, instead of chasing them.
        """
        return self.connection.search(**options)

    def find_entry(
        self, dn: str, attributes: list[str] | None = None
    ) -> DirectoryEntry | None:
        """Fetch the entry at ``dn``, or ``None`` if there isn't one."""
        entries = self._search(
            base=dn,
            scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
            attributes=attributes,
        )
        return entries[0] if entries else None

    def domain(self, base_name: str) -> Domain:
        return Domain(self, base_name, self.uid)

    def domains(self) -> list[Domain]:
        """A :py:class:`~ldapmembership.domain.Domain` per search domain."""
        return [self.domain(base) for base in self.search_domains]

    def load_group(self, entry: DirectoryEntry) -> Group:
        """
        Wrap a group entry in the right :py:class:`~ldapmembership.group.Group`
        subclass for this server.
        """
        if self.virtual_attributes.enabled:
            return VirtualGroup(self, entry)
        if self.posix_support and PosixGroup.valid(entry):
            return PosixGroup(self, entry)
        return Group(self, entry)

    def group(self, dn: str) -> Group | None:
        entry = self.find_entry(dn)
        if entry is None:
            return None
        return self.load_group(entry)

    def search_root_dse(self) -> DirectoryEntry:
        return self.capabilities.root_dse

    def active_directory_capability(self) -> bool:
        return self.capabilities.active_directory_capability()

    def membership_validator(self, **options):
        """
        The membership validator configured for this session, or a detecting
        one if none (or an unknown one) was configured.

        Keyword Args:
            depth: depth bound for the recursive strategies

        """
        options.setdefault("depth", self.max_depth)
        return membership_validators.select_validator(
            self, self.membership_validator_name, **options
        )

    def member_search(self, **options):
        """
        The member search strategy configured for this session, or a
        detecting one if none (or an unknown one) was configured.
        """
        options.setdefault("depth", self.max_depth)
        return member_search.select_searcher(
            self, self.member_search_strategy_name, **options
        )

    def member_of(self, recursive: bool = True, **options):  # noqa: FBT001, FBT002
        """The strategy that lists the groups an entry belongs to."""
        options.setdefault("depth", self.max_depth)
        name = "recursive" if recursive else "classic"
        return member_of.STRATEGIES[name](self, **options)

    def test_connection(self) -> bool:
        return self.connection.test_connection()

    def __repr__(self) -> str:
        return f"<LdapSession: {self.connection.url}>"
