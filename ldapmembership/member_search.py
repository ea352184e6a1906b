"""
Member search strategies: list every member of a group, including members
of nested groups.

Each strategy's ``perform(group)`` takes the group's entry and returns the
member and subgroup entries found below it.
"""

import logging
import threading

from ldapmembership import ldap

from .entry import DirectoryEntry, normalize_dn
from .filters import ALL_GROUPS_FILTER, all_members_by_uid, membership_in_chain_filter

logger = logging.getLogger(__name__)

#: Default depth bound for :py:class:`Recursive`
DEFAULT_MAX_DEPTH = 9


class Base:
    """
    Args:
        session: the :py:class:`~ldapmembership.session.LdapSession`

    Keyword Args:
        depth: how many levels of nesting to follow, where that applies
        attributes: extra attributes to fetch for the entries found

    """

    DEFAULT_ATTRS: list[str] = []  # noqa: RUF012

    def __init__(self, session, depth: int = DEFAULT_MAX_DEPTH, **options) -> None:
        self.session = session
        self.depth = depth
        self.options = options
        self.attributes: list[str] = list(options.get("attributes") or []) + [
            attr for attr in self.DEFAULT_ATTRS if attr not in (options.get("attributes") or [])
        ]

    @property
    def domains(self):
        return self.session.domains()

    def perform(self, group: DirectoryEntry) -> list[DirectoryEntry]:
        raise NotImplementedError


class Classic(Base):
    """Walk the group graph client side; see :py:class:`~ldapmembership.group.Group`."""

    def perform(self, group):
        members, subgroups = self.session.load_group(group).members_and_subgroups()
        return members + subgroups


class Recursive(Base):
    """
    Widen level by level from the group, fetching each member DN once with a
    base-scoped search that only matches groups.

    ``found`` holds every group reached so far and ``searched`` every DN
    already fetched, so each DN costs at most one search even when groups
    are nested in a cycle.  Members that are not groups are returned as
    entries carrying only their DN.  A POSIX group with no DN members is
    resolved by looking up its ``memberUid`` values instead, with no
    recursion; a combined group gets both.  ``memberUid`` is ignored when
    the session has POSIX support off.

    The group itself is not part of the result.
    """

    DEFAULT_ATTRS: list[str] = ["objectClass", "member", "uniqueMember", "memberUid"]  # noqa: RUF012

    def perform(self, group):
        uids = group.member_uids() if self.session.posix_support else []
        if uids and not group.member_dns():
            return self.entries_by_uid(uids)
        root = normalize_dn(group.dn)
        found: dict[str, DirectoryEntry] = {root: group}
        searched: set[str] = {root}
        groups = self._fetch_groups(group.member_dns(), searched)
        level = 0
        while groups:
            for subgroup in groups:
                found.setdefault(normalize_dn(subgroup.dn), subgroup)
            if level >= self.depth:
                break
            level += 1
            sub_dns = [dn for subgroup in groups for dn in subgroup.member_dns()]
            groups = self._fetch_groups(sub_dns, searched)
            logger.debug(
                "member_search.recursive group=%s level=%d groups=%d",
                group.dn,
                level,
                len(groups),
            )
        entries = [entry for key, entry in found.items() if key != root]
        members: dict[str, DirectoryEntry] = {}
        # A combined group: uid-resolved entries first, so they win over the
        # bare DN of the same member
        if uids:
            for entry in self.entries_by_uid(uids):
                key = normalize_dn(entry.dn)
                if key not in found:
                    members.setdefault(key, entry)
        for entry in found.values():
            for dn in entry.member_dns():
                key = normalize_dn(dn)
                if key not in found:
                    members.setdefault(key, DirectoryEntry(dn))
        entries.extend(members.values())
        return entries

    def _fetch_groups(
        self, dns: list[str], searched: set[str]
    ) -> list[DirectoryEntry]:
        groups: list[DirectoryEntry] = []
        for dn in dns:
            key = normalize_dn(dn)
            if key in searched:
                continue
            searched.add(key)
            groups.extend(
                self.session.search(
                    base=dn,
                    scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
                    filterstr=ALL_GROUPS_FILTER,
                    attributes=self.attributes,
                )
            )
        return groups

    def entries_by_uid(self, uids: list[str]) -> list[DirectoryEntry]:
        filt = all_members_by_uid(uids, self.session.uid)
        entries: list[DirectoryEntry] = []
        for domain in self.domains:
            entries.extend(
                domain.search(
                    filterstr=filt, attributes=[*self.attributes, self.session.uid]
                )
            )
        return entries


class ActiveDirectory(Base):
    """
    One search per search domain with a ``memberOf`` in-chain filter, which
    returns every transitive member and subgroup at once.
    """

    DEFAULT_ATTRS: list[str] = ["objectClass"]  # noqa: RUF012

    def perform(self, group):
        filt = membership_in_chain_filter([group])
        entries: list[DirectoryEntry] = []
        for domain in self.domains:
            entries.extend(domain.search(filterstr=filt, attributes=self.attributes))
        return entries


STRATEGIES: dict[str, type[Base]] = {
    "classic": Classic,
    "recursive": Recursive,
    "active_directory": ActiveDirectory,
}


class Detect(Base):
    """
    Pick :py:class:`ActiveDirectory` or :py:class:`Recursive` from the
    server's capabilities on first use, and keep using it.
    """

    def __init__(self, session, depth: int = DEFAULT_MAX_DEPTH, **options) -> None:
        super().__init__(session, depth=depth, **options)
        self._strategy: Base | None = None
        self._lock = threading.Lock()

    def detect_strategy(self) -> type[Base]:
        if self.session.active_directory_capability():
            return ActiveDirectory
        return Recursive

    @property
    def strategy(self) -> Base:
        with self._lock:
            if self._strategy is None:
                strategy_class = self.detect_strategy()
                logger.info("member_search.detect strategy=%s", strategy_class.__name__)
                self._strategy = strategy_class(
                    self.session, depth=self.depth, **self.options
                )
            return self._strategy

    def perform(self, group):
        return self.strategy.perform(group)


def configure(name: str | None) -> str:
    """
    Normalize a ``member_search_strategy`` setting.  Anything that is not
    the name of a strategy means "detect".
    """
    name = str(name or "").lower()
    return name if name in STRATEGIES else "detect"


def select_searcher(session, name: str | None, **options) -> Base:
    """Instantiate the member search for ``name``, or :py:class:`Detect`."""
    return STRATEGIES.get(configure(name), Detect)(session, **options)
