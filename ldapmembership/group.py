"""
Group objects and client-side group graph traversal.

Classic LDAP groups list their members by DN, and nothing stops a group from
(indirectly) containing itself, so the walks here track which groups they
have already expanded.
"""

import logging

from .entry import DirectoryEntry, dn_equal, normalize_dn
from .filters import all_members_by_uid, members_of_group, subgroups_of_group

logger = logging.getLogger(__name__)


class Group:
    """
    A ``groupOfNames``/``groupOfUniqueNames``/``group`` entry.

    Args:
        session: the :py:class:`~ldapmembership.session.LdapSession`
        entry: the group's entry

    """

    def __init__(self, session, entry: DirectoryEntry) -> None:
        self.session = session
        self.entry = entry
        self._member_entries: list[DirectoryEntry] | None = None

    @property
    def dn(self) -> str:
        return self.entry.dn

    def member_entries(self) -> list[DirectoryEntry]:
        """
        Resolve each DN under ``member``/``uniqueMember`` to its entry.

        DNs that no longer resolve (deleted or unreadable objects) are
        skipped.
        """
        if self._member_entries is None:
            entries: list[DirectoryEntry] = []
            for dn in self.entry.member_dns():
                entry = self.session.find_entry(dn)
                if entry is None:
                    logger.debug("group.dangling_member group=%s member=%s", self.dn, dn)
                    continue
                entries.append(entry)
            self._member_entries = entries
        return self._member_entries

    def groups_and_members(self) -> tuple[list[DirectoryEntry], list[DirectoryEntry]]:
        """Split :py:meth:`member_entries` into ``(groups, non-groups)``."""
        groups: list[DirectoryEntry] = []
        members: list[DirectoryEntry] = []
        for entry in self.member_entries():
            (groups if entry.is_group() else members).append(entry)
        return groups, members

    def direct_members(self) -> list[DirectoryEntry]:
        return self.groups_and_members()[1]

    def direct_subgroups(self) -> list[DirectoryEntry]:
        return self.groups_and_members()[0]

    def _walk(self) -> tuple[list[DirectoryEntry], list[DirectoryEntry]]:
        """
        Depth-first walk of the subgroup graph below this group.

        Each subgroup is expanded at most once; the visited set starts with
        this group and its direct subgroups.  When the session has
        ``recursive_group_search_fallback`` off, only direct members and
        subgroups are returned.

        Returns:
            ``(subgroups, members)``, each deduplicated by DN.

        """
        subgroups: dict[str, DirectoryEntry] = {}
        members: dict[str, DirectoryEntry] = {}
        direct_groups = self.direct_subgroups()
        for member in self.direct_members():
            members.setdefault(normalize_dn(member.dn), member)
        visited = {normalize_dn(self.dn)}
        for group in direct_groups:
            visited.add(normalize_dn(group.dn))
            subgroups.setdefault(normalize_dn(group.dn), group)
        if not self.session.recursive_group_search_fallback:
            return list(subgroups.values()), list(members.values())
        stack = list(reversed(direct_groups))
        while stack:
            group = self.session.load_group(stack.pop())
            for member in group.direct_members():
                members.setdefault(normalize_dn(member.dn), member)
            for subgroup in reversed(group.direct_subgroups()):
                key = normalize_dn(subgroup.dn)
                if key in visited:
                    continue
                visited.add(key)
                subgroups[key] = subgroup
                stack.append(subgroup)
        return list(subgroups.values()), list(members.values())

    def members(self) -> list[DirectoryEntry]:
        """Every non-group member, through any depth of nested groups."""
        return self._walk()[1]

    def subgroups(self) -> list[DirectoryEntry]:
        """Every group nested below this one."""
        return self._walk()[0]

    def members_and_subgroups(self) -> tuple[list[DirectoryEntry], list[DirectoryEntry]]:
        """``(members(), subgroups())`` from a single walk."""
        subgroups, members = self._walk()
        return members, subgroups

    def is_member(self, entry: DirectoryEntry) -> bool:
        return any(dn_equal(entry.dn, member.dn) for member in self.members())

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.dn}>"


class PosixGroup(Group):
    """
    A ``posixGroup``, whose members are listed by uid under ``memberUid``.

    A "combined" group also lists DNs under ``member``/``uniqueMember``; its
    members are the union of both.
    """

    @classmethod
    def valid(cls, entry: DirectoryEntry) -> bool:
        return any(value.lower() == "posixgroup" for value in entry["objectClass"])

    def combined_group(self) -> bool:
        return bool(self.entry.member_dns())

    def uid_members(self) -> list[DirectoryEntry]:
        """Look up the entries for the uids in ``memberUid``."""
        filt = all_members_by_uid(self.entry.member_uids(), self.session.uid)
        if filt is None:
            return []
        return self.session.search(filterstr=filt)

    def direct_members(self) -> list[DirectoryEntry]:
        members: dict[str, DirectoryEntry] = {}
        for member in self.uid_members():
            members.setdefault(normalize_dn(member.dn), member)
        if self.combined_group():
            for member in super().direct_members():
                members.setdefault(normalize_dn(member.dn), member)
        return list(members.values())

    def direct_subgroups(self) -> list[DirectoryEntry]:
        if not self.combined_group():
            return []
        return super().direct_subgroups()

    def is_member(self, entry: DirectoryEntry) -> bool:
        """
        ``True`` if ``entry``'s uid is listed in ``memberUid``; otherwise, for
        combined groups only, fall back to the full member walk.
        """
        uids = {uid.lower() for uid in entry[self.session.uid]}
        if uids & {uid.lower() for uid in self.entry.member_uids()}:
            return True
        if self.combined_group():
            return super().is_member(entry)
        return False


class VirtualGroup(Group):
    """
    A group on a server that maintains membership back-links, so members
    and subgroups can be found with one search each.
    """

    @property
    def backlink_attribute(self) -> str:
        return self.session.virtual_attributes.virtual_membership

    def members(self) -> list[DirectoryEntry]:
        return self.session.search(
            filterstr=members_of_group(self.dn, self.backlink_attribute)
        )

    def subgroups(self) -> list[DirectoryEntry]:
        return self.session.search(
            filterstr=subgroups_of_group(self.dn, self.backlink_attribute)
        )

    def members_and_subgroups(self) -> tuple[list[DirectoryEntry], list[DirectoryEntry]]:
        return self.members(), self.subgroups()
