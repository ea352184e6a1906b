"""
Member-of strategies: list the groups an entry belongs to.
"""

import logging

from .entry import DirectoryEntry, normalize_dn
from .filters import any_of, member_filter

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 9


class Classic:
    """
    The groups that list the entry directly, in every search domain: by DN,
    and by uid through ``memberUid`` when POSIX support is on.
    """

    def __init__(self, session, depth: int = DEFAULT_MAX_DEPTH, **options) -> None:
        self.session = session
        self.depth = depth
        self.options = options
        attributes = options.get("attributes")
        self.attributes: list[str] | None = (
            [*attributes, "objectClass"] if attributes else None
        )

    def perform(self, entry: DirectoryEntry) -> list[DirectoryEntry]:
        groups: dict[str, DirectoryEntry] = {}
        for domain in self.session.domains():
            for group in domain.search(
                filterstr=domain.membership_filter(entry),
                attributes=self.attributes,
            ):
                groups.setdefault(normalize_dn(group.dn), group)
        return list(groups.values())


class Recursive(Classic):
    """
    The direct groups plus every group that contains them, widening one
    level per search up to :py:attr:`depth` levels.  Each group is expanded
    once, so cycles in the group graph are harmless.
    """

    def perform(self, entry):
        groups = {normalize_dn(group.dn): group for group in super().perform(entry)}
        frontier = list(groups.values())
        level = 0
        while frontier and level < self.depth:
            level += 1
            parents = self.session.search(
                filterstr=any_of(member_filter(group) for group in frontier),
                attributes=self.attributes,
            )
            frontier = []
            for parent in parents:
                key = normalize_dn(parent.dn)
                if key not in groups:
                    groups[key] = parent
                    frontier.append(parent)
            logger.debug(
                "member_of.recursive entry=%s level=%d new_groups=%d",
                entry.dn,
                level,
                len(frontier),
            )
        return [group for group in groups.values() if group.is_group()]


STRATEGIES: dict[str, type[Classic]] = {
    "classic": Classic,
    "recursive": Recursive,
}
