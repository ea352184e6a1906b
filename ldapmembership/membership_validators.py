"""
Membership validators: is this entry a member of any of these groups?

Every validator has the same two entry points:

* ``validate(entry, groups)`` returns a :py:class:`MembershipResult`, which
  carries the matching groups where the strategy knows them
* ``perform(entry, groups)`` returns just the boolean

Both return ``True`` for an empty ``groups``: no groups means no gate.
``groups`` are group entries; the DN-based strategies also accept DNs.
"""

import logging
import threading
from collections.abc import Iterable
from typing import NamedTuple

from ldap.dn import str2dn

from ldapmembership import ldap

from .entry import DirectoryEntry, dn_equal, normalize_dn
from .filters import any_of, member_filter, membership_in_chain_filter, subgroups_of_group
from .referral_chaser import ReferralChaser

logger = logging.getLogger(__name__)

#: Default depth bound for the recursive validators
DEFAULT_MAX_DEPTH = 9

Groups = Iterable[DirectoryEntry | str]


class MembershipResult(NamedTuple):
    #: Whether the entry is a member of one of the groups
    is_member: bool
    #: The groups the match was found through, where known
    groups: list[DirectoryEntry]


def _dn(group: DirectoryEntry | str) -> str:
    return group.dn if isinstance(group, DirectoryEntry) else group


def group_name(group: DirectoryEntry | str) -> str | None:
    """The ``cn`` of a group entry, or the first RDN value of a group DN."""
    if isinstance(group, DirectoryEntry):
        return group.first("cn")
    try:
        return str2dn(group)[0][0][1]
    except (ldap.DECODING_ERROR, IndexError):  # type: ignore[attr-defined]
        return None


class Base:
    """
    Args:
        session: the :py:class:`~ldapmembership.session.LdapSession`

    Keyword Args:
        depth: how many levels of nesting the recursive strategies follow
        attributes: attributes to fetch for matched groups

    """

    #: Attributes fetched for the groups matched at each level
    ATTRS: list[str] = ["cn"]  # noqa: RUF012

    def __init__(self, session, depth: int = DEFAULT_MAX_DEPTH, **options) -> None:
        self.session = session
        self.depth = depth
        self.options = options
        self.attributes: list[str] = list(options.get("attributes") or self.ATTRS)

    @property
    def domains(self):
        return self.session.domains()

    def validate(self, entry: DirectoryEntry, groups: Groups) -> MembershipResult:
        groups = list(groups or [])
        if not groups:
            return MembershipResult(True, [])  # noqa: FBT003
        return self._validate(entry, groups)

    def _validate(
        self, entry: DirectoryEntry, groups: list[DirectoryEntry | str]
    ) -> MembershipResult:
        raise NotImplementedError

    def perform(self, entry: DirectoryEntry, groups: Groups) -> bool:
        return self.validate(entry, groups).is_member

    @staticmethod
    def _matching(
        entries: list[DirectoryEntry], targets: set[str]
    ) -> list[DirectoryEntry]:
        return [entry for entry in entries if normalize_dn(entry.dn) in targets]


class Classic(Base):
    """
    Direct membership only: one search per search domain for the named
    groups that list the entry (by DN, or by uid for POSIX groups).
    """

    def _validate(self, entry, groups):
        names = [name for name in (group_name(group) for group in groups) if name]
        for domain in self.domains:
            membership = domain.membership(entry, names)
            if membership:
                return MembershipResult(True, membership)  # noqa: FBT003
        return MembershipResult(False, [])  # noqa: FBT003


class Recursive(Base):
    """
    Walk up the group graph a level at a time.

    Level 0 finds the groups the entry is directly in; each further level
    finds the groups that contain any group from the level before, up to
    :py:attr:`depth` levels.  There is no visited set: a cycle in the group
    graph costs at most ``depth`` extra searches.
    """

    def _validate(self, entry, groups):
        targets = {normalize_dn(_dn(group)) for group in groups}
        for domain in self.domains:
            membership = domain.search(
                filterstr=domain.membership_filter(entry), attributes=self.attributes
            )
            if matched := self._matching(membership, targets):
                return MembershipResult(True, matched)  # noqa: FBT003
            level = 0
            while membership and level < self.depth:
                level += 1
                membership = domain.search(
                    filterstr=any_of(member_filter(group) for group in membership),
                    attributes=self.attributes,
                )
                logger.debug(
                    "membership.recursive level=%d groups=%d", level, len(membership)
                )
                if matched := self._matching(membership, targets):
                    return MembershipResult(True, matched)  # noqa: FBT003
        return MembershipResult(False, [])  # noqa: FBT003


class ActiveDirectory(Base):
    """
    Let the server walk the group chain: one base-scoped search on the entry
    with a ``memberOf`` in-chain filter over all the groups.  Referrals are
    followed one hop.
    """

    ATTRS: list[str] = ["dn"]  # noqa: RUF012

    def _validate(self, entry, groups):
        matched = ReferralChaser(self.session).search(
            base=entry.dn,
            scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
            filterstr=membership_in_chain_filter(groups),
            attributes=self.attributes,
        )
        is_member = any(dn_equal(match.dn, entry.dn) for match in matched)
        return MembershipResult(is_member, [])


class VirtualAttributes(Base):
    """
    Use the server-maintained back-link attribute (``memberOf`` by default).

    Level 0 just reads the back-links already on the entry.  Each further
    level finds the subgroups of the previous level's groups, starting from
    the candidate groups, and checks them against the entry's back-links.
    The entry must have been fetched with its back-link attribute.
    """

    ATTRS: list[str] = ["cn"]  # noqa: RUF012

    @property
    def member_of_attr(self) -> str:
        return self.session.virtual_attributes.virtual_membership

    def _validate(self, entry, groups):
        backlinks = {normalize_dn(dn) for dn in entry[self.member_of_attr]}
        if not backlinks:
            return MembershipResult(False, [])  # noqa: FBT003
        matched = [
            group for group in groups if normalize_dn(_dn(group)) in backlinks
        ]
        if matched:
            return MembershipResult(
                True,  # noqa: FBT003
                [g for g in matched if isinstance(g, DirectoryEntry)],
            )
        for domain in self.domains:
            frontier = [_dn(group) for group in groups]
            level = 0
            while frontier and level < self.depth:
                level += 1
                subgroups = domain.search(
                    filterstr=any_of(
                        subgroups_of_group(dn, self.member_of_attr) for dn in frontier
                    ),
                    attributes=self.attributes,
                )
                if matched := self._matching(subgroups, backlinks):
                    return MembershipResult(True, matched)  # noqa: FBT003
                frontier = [group.dn for group in subgroups]
        return MembershipResult(False, [])  # noqa: FBT003


STRATEGIES: dict[str, type[Base]] = {
    "classic": Classic,
    "recursive": Recursive,
    "active_directory": ActiveDirectory,
    "virtual_attributes": VirtualAttributes,
}


class Detect(Base):
    """
    Pick a strategy from the server's capabilities on first use: the
    ActiveDirectory strategy if the server is ActiveDirectory, else
    :py:class:`Recursive`.  The choice is kept for the life of this object.
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
                logger.info(
                    "membership.detect strategy=%s", strategy_class.__name__
                )
                self._strategy = strategy_class(
                    self.session, depth=self.depth, **self.options
                )
            return self._strategy

    def _validate(self, entry, groups):
        return self.strategy.validate(entry, groups)


def configure(name: str | None) -> str:
    """
    Normalize a ``membership_validator`` setting.  Anything that is not the
    name of a strategy means "detect".
    """
    name = str(name or "").lower()
    return name if name in STRATEGIES else "detect"


def select_validator(session, name: str | None, **options) -> Base:
    """Instantiate the validator for ``name``, or :py:class:`Detect`."""
    return STRATEGIES.get(configure(name), Detect)(session, **options)
