"""
Following search referrals to the server that holds the data.
"""

import logging

from .connection_cache import ConnectionCache
from .entry import DirectoryEntry
from .typing import SearchOptions
from .url import LdapURL

logger = logging.getLogger(__name__)


class Referral:
    """
    One referral URL, and the connection needed to follow it.

    The connection comes from the shared
    :py:class:`~ldapmembership.connection_cache.ConnectionCache`, so each
    referred-to host is connected to once.

    Args:
        url: the referral URL
        admin_user: bind DN for the referred server
        admin_password: bind password for the referred server
        port: port to use when ``url`` does not name one
        connection: the client whose settings the new connection copies
        connection_cache: where referred-to connections are kept

    """

    def __init__(
        self,
        url: str,
        admin_user: str | None,
        admin_password: str | None,
        port: int,
        connection,
        connection_cache: ConnectionCache,
    ) -> None:
        self.url = url
        self.admin_user = admin_user
        self.admin_password = admin_password
        self.default_port = port
        self.base_connection = connection
        self.connection_cache = connection_cache
        self.ldap_url: LdapURL | None = LdapURL(url) if LdapURL.valid(url) else None

    @property
    def search_base(self) -> str | None:
        return self.ldap_url.dn if self.ldap_url else None

    @property
    def connection(self):
        if self.ldap_url is None:
            return None
        port = self.ldap_url.explicit_port or self.default_port
        config = self.base_connection.derive_config(
            host=self.ldap_url.host,
            port=port,
            user=self.admin_user,
            password=self.admin_password,
        )
        return self.connection_cache.get_connection(config)

    def search(self, options: SearchOptions) -> list[DirectoryEntry]:
        """
        Re-run a search against the referred server, with the referral's DN
        as the search base.

        Returns:
            The entries found, or ``[]`` if the referral URL is not usable.

        """
        if self.ldap_url is None:
            logger.warning("referral.invalid_url url=%r", self.url)
            return []
        logger.debug(
            "referral.chase host=%s base=%s", self.ldap_url.host, self.search_base
        )
        return self.connection.search(**dict(options, base=self.search_base)).entries


class ReferralChaser:
    """
    Run a search, and if the server answers with referrals, run it again on
    the first referred server.

    Only one hop is followed: a referral returned by the referred server is
    not chased.

    Args:
        session: the :py:class:`~ldapmembership.session.LdapSession`

    """

    def __init__(self, session) -> None:
        self.session = session
        self.connection = session.connection
        self.connection_cache = session.connection_cache
        self.admin_user = self.connection.admin_user
        self.admin_password = self.connection.admin_password
        self.port = self.connection.port

    def search(self, **options) -> list[DirectoryEntry]:
        """
        Search, following the first referral if there is one.

        Keyword Args:
            **options: keyword arguments for
                :py:meth:`~ldapmembership.client.DirectoryClient.search`

        Returns:
            The entries from the referred server when there was a referral,
            otherwise the entries from the original search.

        """
        result = self.session.search_with_referrals(**options)
        if not result.referrals:
            return result.entries
        referral = Referral(
            result.referrals[0],
            self.admin_user,
            self.admin_password,
            self.port,
            self.connection,
            self.connection_cache,
        )
        return referral.search(options)
