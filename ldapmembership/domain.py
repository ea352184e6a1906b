"""
Searches scoped to one search base.
"""

import logging
from collections.abc import Iterable

from ldap_filter import Filter

from .entry import DirectoryEntry
from .filters import (
    ALL_GROUPS_FILTER,
    all_of,
    any_of,
    cn_contains,
    group_filter,
    member_filter,
    posix_member_filter,
)

logger = logging.getLogger(__name__)


class Domain:
    """
    A search base within a directory session.

    Args:
        session: the :py:class:`~ldapmembership.session.LdapSession`
        base_name: the search base
        uid: the login attribute

    """

    def __init__(self, session, base_name: str, uid: str) -> None:
        self.session = session
        self.base_name = base_name
        self.uid = uid

    def search(self, **options) -> list[DirectoryEntry]:
        """Search under our base, unless ``options`` names another one."""
        options.setdefault("base", self.base_name)
        return self.session.search(**options)

    def user(self, login: str, **search_options) -> DirectoryEntry | None:
        """
        Find the user whose login attribute equals ``login``.

        ``login`` is escaped, so wildcards in it match literally.
        """
        entries = self.session.user_search_strategy.perform(
            login, self.base_name, self.uid, search_options
        )
        return entries[0] if entries else None

    def valid_login(self, login: str, password: str) -> DirectoryEntry | None:
        """
        Check ``login``/``password`` by binding as the user.

        Returns:
            The user's entry if the bind succeeded, else ``None``.

        """
        user = self.user(login)
        if user is None:
            logger.warning("auth.no_such_user user=%s", login)
            return None
        if not self.session.connection.bind(user.dn, password):
            logger.warning("auth.invalid_credentials user=%s", login)
            return None
        logger.info("auth.success user=%s", login)
        return user

    def authenticate(
        self, login: str, password: str, group_names: Iterable[str] | None = None
    ) -> DirectoryEntry | None:
        """
        Like :py:meth:`valid_login`, but also require direct membership in
        one of ``group_names``, if any are given.
        """
        user = self.valid_login(login, password)
        if user is not None and self.is_member(user, group_names):
            return user
        return None

    def groups(self, group_names: Iterable[str]) -> list[DirectoryEntry]:
        """The groups under our base whose ``cn`` is one of ``group_names``."""
        names = group_filter(group_names)
        if names is None:
            return []
        return self.search(filterstr=Filter.AND([ALL_GROUPS_FILTER, names]))

    def membership_filter(self, entry: DirectoryEntry | str) -> Filter:
        """
        Match groups that list ``entry`` directly: by DN, and by uid too when
        POSIX support is on and the entry has a uid.
        """
        filt = member_filter(entry)
        if self.session.posix_support and isinstance(entry, DirectoryEntry):
            posix = posix_member_filter(entry, self.uid)
            if posix is not None:
                filt = any_of([filt, posix])
        return filt

    def membership(
        self, entry: DirectoryEntry | str, group_names: Iterable[str]
    ) -> list[DirectoryEntry]:
        """The groups named in ``group_names`` that list ``entry`` directly."""
        names = group_filter(group_names)
        if names is None:
            return []
        return self.search(filterstr=all_of([self.membership_filter(entry), names]))

    def is_member(
        self, entry: DirectoryEntry | str, group_names: Iterable[str] | None
    ) -> bool:
        """
        ``True`` if ``entry`` is directly in one of ``group_names``, or if no
        group names are given at all.
        """
        group_names = list(group_names or [])
        if not group_names:
            return True
        return bool(self.membership(entry, group_names))

    def all_groups(self) -> list[DirectoryEntry]:
        return self.search(filterstr=ALL_GROUPS_FILTER)

    def filter_groups(self, query: str) -> list[DirectoryEntry]:
        """Groups whose ``cn`` contains ``query``."""
        return self.search(filterstr=Filter.AND([ALL_GROUPS_FILTER, cn_contains(query)]))

    def __repr__(self) -> str:
        return f"<Domain: {self.base_name}>"
