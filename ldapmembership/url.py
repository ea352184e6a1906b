"""
LDAP URL parsing for referral chasing.

Wraps :py:class:`ldapurl.LDAPUrl` from python-ldap, which already handles
percent-decoding and the ``?attrs?scope?filter`` suffix.
"""

from ldapurl import LDAPUrl, isLDAPUrl

from ldapmembership import ldap


class InvalidLdapURL(ValueError):
    pass


class LdapURL:
    """
    A parsed ``ldap[s]://host[:port]/dn[?attrs?scope?filter]`` URL.

    Args:
        url: the URL to parse

    Raises:
        InvalidLdapURL: ``url`` is not a valid LDAP URL

    """

    DEFAULT_PORTS: dict[str, int] = {"ldap": 389, "ldaps": 636}

    def __init__(self, url: str) -> None:
        if not isinstance(url, str) or not self._looks_valid(url):
            msg = f"Invalid LDAP URL: {url!r}"
            raise InvalidLdapURL(msg)
        try:
            parsed = LDAPUrl(url.strip())
        except (ValueError, KeyError) as exc:
            msg = f"Invalid LDAP URL: {url!r}"
            raise InvalidLdapURL(msg) from exc
        self.url = url
        self.scheme: str = parsed.urlscheme.lower()
        hostport = parsed.hostport or ""
        host, sep, port = hostport.rpartition(":")
        if sep and port.isdigit():
            self.host: str = host
            self.explicit_port: int | None = int(port)
        else:
            self.host = hostport
            self.explicit_port = None
        if not self.host:
            msg = f"LDAP URL has no host: {url!r}"
            raise InvalidLdapURL(msg)
        self.dn: str = parsed.dn or ""
        self.attributes: list[str] = list(parsed.attrs or [])
        self.scope: int = (
            parsed.scope if parsed.scope is not None else ldap.SCOPE_BASE  # type: ignore[attr-defined]
        )
        self.filter: str = parsed.filterstr or "(objectClass=*)"

    @classmethod
    def _looks_valid(cls, url: str) -> bool:
        if not url.strip() or not isLDAPUrl(url.strip()):
            return False
        return url.strip().split("://", 1)[0].lower() in cls.DEFAULT_PORTS

    @classmethod
    def valid(cls, url: str | None) -> bool:
        """Return ``True`` if ``url`` parses as an LDAP URL.  Never raises."""
        if not url:
            return False
        try:
            cls(url)
        except InvalidLdapURL:
            return False
        return True

    @property
    def port(self) -> int:
        """The explicit port, or the default port for the scheme."""
        if self.explicit_port is not None:
            return self.explicit_port
        return self.DEFAULT_PORTS[self.scheme]

    def __repr__(self) -> str:
        return f"<LdapURL: {self.url}>"
