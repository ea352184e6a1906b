"""
The directory client: the only module that talks to python-ldap.

Everything above this layer works with :py:class:`~ldapmembership.entry.DirectoryEntry`
objects and :py:class:`SearchResult` tuples.  Protocol failures propagate as
:py:class:`ldap.LDAPError` subclasses.
"""

import logging
import threading
import weakref
from pathlib import Path
from typing import Any, NamedTuple

from django.core.exceptions import ImproperlyConfigured

from ldapmembership import ldap

from .entry import DirectoryEntry
from .filters import to_filterstr
from .typing import LDAPSearchResult, ServerConfig

logger = logging.getLogger(__name__)

#: Accepted ``encryption`` values, mapped to the method actually used
ENCRYPTION_METHODS: dict[str, str] = {
    "ssl": "simple_tls",
    "simple_tls": "simple_tls",
    "tls": "start_tls",
    "start_tls": "start_tls",
}

#: Root DSE attributes we care about
ROOT_DSE_ATTRIBUTES: list[str] = [
    "supportedCapabilities",
    "supportedControl",
    "supportedExtension",
    "namingContexts",
    "defaultNamingContext",
    "configurationNamingContext",
    "rootDomainNamingContext",
    "vendorName",
]


def check_encryption(encryption: str | None) -> str | None:
    """
    Map a configured ``encryption`` value to ``simple_tls`` or ``start_tls``.

    Raises:
        ImproperlyConfigured: ``encryption`` is not a known method

    """
    if not encryption:
        return None
    try:
        return ENCRYPTION_METHODS[str(encryption).lower()]
    except KeyError as exc:
        msg = f"Invalid LDAP encryption method: {encryption}"
        raise ImproperlyConfigured(msg) from exc


class SearchResult(NamedTuple):
    #: The entries the search returned
    entries: list[DirectoryEntry]
    #: Referral URLs the server handed back instead of (or besides) entries
    referrals: list[str]


class DirectoryClient:
    """
    A thin wrapper around :py:class:`ldap.ldapobject.LDAPObject`.

    python-ldap connection objects are not thread safe, so each thread gets
    its own connection, created and bound lazily on first use.

    Args:
        config: the server configuration

    Raises:
        ImproperlyConfigured: the configuration has neither ``url`` nor
            ``host``, or names an unknown ``encryption`` or ``tls_verify``

    """

    def __init__(self, config: ServerConfig) -> None:
        self.config: ServerConfig = dict(config)
        self.encryption = check_encryption(self.config.get("encryption"))
        if self.config.get("tls_verify", "never") not in ("never", "always"):
            msg = f"Invalid tls_verify value: {self.config['tls_verify']}"
            raise ImproperlyConfigured(msg)
        if "url" in self.config and self.config["url"]:
            self.url: str = self.config["url"]
            url = self.url.split("://", 1)[-1].split("/", 1)[0]
            host, _, port = url.rpartition(":")
            if host and port.isdigit():
                self.host: str = host
                self.port: int = int(port)
            else:
                self.host = url
                self.port = 636 if self.url.lower().startswith("ldaps") else 389
        elif self.config.get("host"):
            self.host = self.config["host"]
            default_port = 636 if self.encryption == "simple_tls" else 389
            self.port = int(self.config.get("port") or default_port)
            scheme = "ldaps" if self.encryption == "simple_tls" else "ldap"
            self.url = f"{scheme}://{self.host}:{self.port}"
        else:
            msg = "LDAP server configuration needs either 'url' or 'host'"
            raise ImproperlyConfigured(msg)
        self.admin_user: str | None = self.config.get("user")
        self.admin_password: str | None = self.config.get("password")
        # Entries go away with their threads
        self._ldap_objects: weakref.WeakKeyDictionary[threading.Thread, ldap.ldapobject.LDAPObject] = (  # type: ignore[name-defined]
            weakref.WeakKeyDictionary()
        )

    def derive_config(self, **overrides: Any) -> ServerConfig:
        """
        Return a copy of our configuration pointed at another server, keeping
        our credentials, encryption and TLS settings.

        Keyword Args:
            host: the other server's host name
            port: the other server's port; defaults to ours
            user: bind DN, if different from ours
            password: bind password, if different from ours

        """
        config = dict(self.config)
        config.pop("url", None)
        config["host"] = self.host
        config["port"] = self.port
        config.update(overrides)
        return config

    def derive(self, **overrides: Any) -> "DirectoryClient":
        """Like :py:meth:`derive_config`, but return a new client."""
        return self.__class__(self.derive_config(**overrides))

    @property
    def use_starttls(self) -> bool:
        if "use_starttls" in self.config:
            return bool(self.config["use_starttls"])
        return self.encryption == "start_tls"

    def _connect(  # noqa: PLR0912
        self, dn: str | None = None, password: str | None = None
    ) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Create, configure and bind a new python-ldap connection.

        Keyword Args:
            dn: bind DN; defaults to the configured admin user
            password: bind password; defaults to the configured admin password

        Raises:
            OSError: a configured TLS file does not exist or is not a file
            ldap.LDAPError: connecting or binding failed

        Returns:
            A bound LDAPObject.

        """
        if not dn:
            dn = self.admin_user
            password = self.admin_password
        ldap_object = ldap.initialize(self.url)  # type: ignore[attr-defined]
        if self.config.get("follow_referrals", False):
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        timeout = self.config.get("timeout", 15.0)
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(timeout))  # type: ignore[attr-defined]
        sizelimit = self.config.get("sizelimit", None)
        if sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))  # type: ignore[attr-defined]
        if self.config.get("tls_verify", "never") == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        for key, option in (
            ("tls_ca_certfile", "OPT_X_TLS_CACERTFILE"),
            ("tls_certfile", "OPT_X_TLS_CERTFILE"),
            ("tls_keyfile", "OPT_X_TLS_KEYFILE"),
        ):
            if filename := self.config.get(key, None):
                path = Path(filename)
                if not path.exists():
                    msg = f"{key} does not exist: {filename}"
                    raise OSError(msg)
                if not path.is_file():
                    msg = f"{key} is not a file: {filename}"
                    raise OSError(msg)
                ldap_object.set_option(getattr(ldap, option), filename)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if self.use_starttls:
            ldap_object.start_tls_s()
        if dn:
            ldap_object.simple_bind_s(dn, password)
        return ldap_object

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        The current thread's bound connection, created on first access.
        """
        thread = threading.current_thread()
        if thread not in self._ldap_objects:
            self._ldap_objects[thread] = self._connect()
        return self._ldap_objects[thread]

    def disconnect(self) -> None:
        """Unbind and forget the current thread's connection, if any."""
        ldap_object = self._ldap_objects.pop(threading.current_thread(), None)
        if ldap_object is not None:
            ldap_object.unbind_s()

    def test_connection(self) -> bool:
        """Return ``True`` if we can connect and bind with the admin credentials."""
        try:
            self.connection  # noqa: B018
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            logger.warning("connection.failed url=%s error=%s", self.url, e)
            return False
        return True

    @staticmethod
    def _referrals_from_exception(exc: Exception) -> list[str]:
        info = exc.args[0].get("info", "") if exc.args and isinstance(exc.args[0], dict) else ""
        if isinstance(info, bytes):
            info = info.decode("utf-8", errors="replace")
        return [
            line.strip()
            for line in str(info).splitlines()
            if line.strip().lower().startswith(("ldap://", "ldaps://"))
        ]

    def search(
        self,
        base: str,
        scope: int = ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
        filterstr: Any = None,
        attributes: list[str] | None = None,
        sizelimit: int = 0,
    ) -> SearchResult:
        """
        Search the directory.

        Referrals, whether returned as search result references or raised as
        :py:exc:`ldap.REFERRAL`, are collected into
        :py:attr:`SearchResult.referrals` rather than raised.  A missing base
        object is an empty result.  Hitting a size limit logs a warning and
        returns the entries received before the limit was reached.

        Args:
            base: the search base

        Keyword Args:
            scope: an ``ldap.SCOPE_*`` constant
            filterstr: a filter string or :py:class:`ldap_filter.Filter`
            attributes: attributes to fetch; ``None`` or ``[]`` for all of them
            sizelimit: maximum number of entries, 0 for no limit

        Raises:
            ldap.LDAPError: the search failed

        Returns:
            The entries and referral URLs.

        """
        filterstr = to_filterstr(filterstr)
        data: LDAPSearchResult = []
        try:
            msgid = self.connection.search_ext(
                base,
                scope,
                filterstr,
                attrlist=attributes or None,
                sizelimit=sizelimit,
            )
            # One message at a time; entries received before a size limit
            # error are kept.
            while True:
                rtype, rdata, _, _ = self.connection.result3(msgid, all=0)
                data.extend(rdata or [])
                if rtype == ldap.RES_SEARCH_RESULT:  # type: ignore[attr-defined]
                    break
        except ldap.NO_SUCH_OBJECT:  # type: ignore[attr-defined]
            return SearchResult([], [])
        except ldap.REFERRAL as e:  # type: ignore[attr-defined]
            result = self._to_result(data)
            return SearchResult(
                result.entries, result.referrals + self._referrals_from_exception(e)
            )
        except ldap.SIZELIMIT_EXCEEDED:  # type: ignore[attr-defined]
            logger.warning(
                "search.sizelimit_exceeded base=%s filter=%s kept=%d",
                base,
                filterstr,
                len(data),
            )
        return self._to_result(data)

    def _to_result(self, rdata: LDAPSearchResult) -> SearchResult:
        entries: list[DirectoryEntry] = []
        referrals: list[str] = []
        for dn, attrs in rdata:
            # Search result references come back with dn None and a list of
            # URLs in place of the attribute dict.
            if isinstance(attrs, dict) and dn is not None:
                entries.append(DirectoryEntry.from_ldap(dn, attrs))
            elif isinstance(attrs, list | tuple):
                referrals.extend(
                    url.decode("utf-8") if isinstance(url, bytes) else url
                    for url in attrs
                )
        return SearchResult(entries, referrals)

    def bind(self, dn: str, password: str | None) -> bool:
        """
        Check ``dn``/``password`` by binding on a fresh connection.

        An empty password is always refused, since most servers treat it as
        an anonymous bind and report success.

        Raises:
            ldap.LDAPError: a failure other than bad credentials

        Returns:
            ``True`` if the bind succeeded.

        """
        if not password:
            logger.warning("bind.empty_password dn=%s", dn)
            return False
        try:
            ldap_object = self._connect(dn, password)
        except ldap.INVALID_CREDENTIALS:  # type: ignore[attr-defined]
            logger.warning("bind.invalid_credentials dn=%s", dn)
            return False
        ldap_object.unbind_s()
        return True

    def root_dse(self, attributes: list[str] | None = None) -> DirectoryEntry:
        """
        Fetch the root DSE.

        Raises:
            ldap.LDAPError: the search failed

        Returns:
            The root DSE, or an empty entry if the server returned nothing.

        """
        result = self.connection.search_s(
            "",
            ldap.SCOPE_BASE,  # type: ignore[attr-defined]
            "(objectClass=*)",
            attributes or ROOT_DSE_ATTRIBUTES,
        )
        for dn, attrs in result:
            if isinstance(attrs, dict):
                return DirectoryEntry.from_ldap(dn or "", attrs)
        return DirectoryEntry("")

    def __repr__(self) -> str:
        return f"<DirectoryClient: {self.url}>"
