"""
Search filter construction.

Every function here is pure: it builds an :py:class:`ldap_filter.Filter`
tree and never talks to the directory.  Values are always embedded with
:py:meth:`ldap_filter.filter.Attribute.equal_to`, which escapes ``*``,
``(``, ``)``, ``\\`` and ``NUL``, so user supplied strings can never widen a
search.
"""

from collections.abc import Iterable

from ldap_filter import Filter

from .entry import GROUP_CLASS_NAMES, MEMBER_UID, MEMBERSHIP_NAMES, DirectoryEntry

#: ActiveDirectory LDAP_MATCHING_RULE_IN_CHAIN
IN_CHAIN_OID = "1.2.840.113556.1.4.1941"
#: Default back-link attribute maintained by the server
DEFAULT_BACKLINK = "memberOf"

#: Matches any entry that is a group
ALL_GROUPS_FILTER = Filter.OR(
    [Filter.attribute("objectClass").equal_to(name) for name in GROUP_CLASS_NAMES]
)


def _dn(entry: DirectoryEntry | str) -> str:
    return entry.dn if isinstance(entry, DirectoryEntry) else entry


def any_of(filters: Iterable[Filter]) -> Filter | None:
    """
    OR together ``filters``.

    Returns:
        ``None`` when ``filters`` is empty, the filter itself when there is
        only one, otherwise an OR group.

    """
    filters = list(filters)
    if not filters:
        return None
    if len(filters) == 1:
        return filters[0]
    return Filter.OR(filters)


def all_of(filters: Iterable[Filter | None]) -> Filter | None:
    """AND together the non-``None`` members of ``filters``."""
    filters = [f for f in filters if f is not None]
    if not filters:
        return None
    if len(filters) == 1:
        return filters[0]
    return Filter.AND(filters)


def to_filterstr(filt: Filter | str | None) -> str:
    """Render ``filt`` in RFC 4515 string form, defaulting to ``(objectClass=*)``."""
    if filt is None:
        return "(objectClass=*)"
    if isinstance(filt, str):
        return filt
    return filt.to_string()


def member_filter(entry: DirectoryEntry | str | None = None) -> Filter:
    """
    Build a filter on the DN-valued membership attributes.

    With ``entry``, match entries listing that DN under ``member`` or
    ``uniqueMember``.  Without it, match any entry that has members at all.

    Keyword Args:
        entry: a :py:class:`DirectoryEntry` or a DN

    """
    if entry is None:
        return Filter.OR(
            [Filter.attribute(name).present() for name in MEMBERSHIP_NAMES]
        )
    dn = _dn(entry)
    return Filter.OR(
        [Filter.attribute(name).equal_to(dn) for name in MEMBERSHIP_NAMES]
    )


def posix_member_filter(entry: DirectoryEntry, uid_attr: str) -> Filter | None:
    """
    Build a ``memberUid`` filter from the values of ``entry[uid_attr]``.

    Returns:
        ``None`` when the entry has no values for ``uid_attr``.

    """
    return any_of(
        Filter.attribute(MEMBER_UID).equal_to(uid) for uid in entry[uid_attr]
    )


def group_filter(group_names: Iterable[str]) -> Filter | None:
    """OR of ``cn=<name>`` for each of ``group_names``."""
    return any_of(Filter.attribute("cn").equal_to(name) for name in group_names)


def login_filter(uid_attr: str, login: str) -> Filter:
    """Equality filter for a login name, with the login escaped."""
    return Filter.attribute(uid_attr).equal_to(login)


def membership_in_chain_filter(
    groups: Iterable[DirectoryEntry | str], attr: str = DEFAULT_BACKLINK
) -> Filter | None:
    """
    OR of in-chain matches of ``attr`` against each group DN.

    An entry matches if it is a member of one of ``groups`` through any
    number of nested groups; the server walks the chain.
    """
    return any_of(
        Filter.attribute(f"{attr}:{IN_CHAIN_OID}:").equal_to(_dn(group))
        for group in groups
    )


def members_of_group(
    group: DirectoryEntry | str, attr: str = DEFAULT_BACKLINK
) -> Filter:
    """Match entries whose back-link attribute ``attr`` names ``group``."""
    return Filter.attribute(attr).equal_to(_dn(group))


def subgroups_of_group(
    group: DirectoryEntry | str, attr: str = DEFAULT_BACKLINK
) -> Filter:
    """Like :py:func:`members_of_group`, restricted to groups."""
    return Filter.AND([ALL_GROUPS_FILTER, members_of_group(group, attr)])


def all_members_by_uid(uids: Iterable[str], uid_attr: str) -> Filter | None:
    """OR of ``<uid_attr>=<uid>`` for each of ``uids``."""
    return any_of(Filter.attribute(uid_attr).equal_to(uid) for uid in uids)


def cn_contains(query: str) -> Filter:
    """Substring match on ``cn``, with ``query`` escaped."""
    return Filter.attribute("cn").contains(query)
