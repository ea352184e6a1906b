"""
Strategies for finding a user entry by login name.
"""

from ldapmembership import ldap

from .entry import DirectoryEntry
from .filters import login_filter
from .typing import SearchOptions

#: Global Catalog ports on an ActiveDirectory domain controller
GLOBAL_CATALOG_PORT = 3268
GLOBAL_CATALOG_SSL_PORT = 3269


class Default:
    """Search the domain's base for the login, stopping at the first match."""

    options: SearchOptions = {"attributes": None, "sizelimit": 1}  # noqa: RUF012

    def __init__(self, session) -> None:
        self.session = session

    def perform(
        self, login: str, base_name: str, uid: str, search_options: SearchOptions | None = None
    ) -> list[DirectoryEntry]:
        options = dict(self.options)
        options.update(search_options or {})
        options["filterstr"] = login_filter(uid, login)
        options["base"] = base_name
        return self.search(options)

    def search(self, options: SearchOptions) -> list[DirectoryEntry]:
        return self.session.search(**options)


class ActiveDirectory(Default):
    """
    Search the Global Catalog of the forest instead, so users in any domain
    are found.
    """

    def __init__(self, session) -> None:
        super().__init__(session)
        self._global_catalog = None

    @property
    def global_catalog_connection(self):
        if self._global_catalog is None:
            connection = self.session.connection
            port = (
                GLOBAL_CATALOG_SSL_PORT
                if connection.encryption == "simple_tls"
                else GLOBAL_CATALOG_PORT
            )
            self._global_catalog = connection.derive(port=port)
        return self._global_catalog

    def search(self, options: SearchOptions) -> list[DirectoryEntry]:
        options = dict(options, base="", scope=ldap.SCOPE_SUBTREE)  # type: ignore[attr-defined]
        return self.global_catalog_connection.search(**options).entries


STRATEGIES: dict[str, type[Default]] = {
    "default": Default,
    "global_catalog": ActiveDirectory,
}


def configure(name: str | None) -> type[Default]:
    """Map a ``user_search_strategy`` setting to a strategy class."""
    return STRATEGIES.get(str(name or "default").lower(), Default)
