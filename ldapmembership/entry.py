"""
In-memory directory entries.

A :py:class:`DirectoryEntry` is an immutable snapshot of one object returned
by a search: its DN plus a case-insensitive mapping of attribute names to
lists of string values.
"""

from collections.abc import Iterable, Iterator, Mapping

import ldap
from ldap.dn import dn2str, str2dn

#: ``objectClass`` values that make an entry a group
GROUP_CLASS_NAMES: tuple[str, ...] = (
    "groupOfNames",
    "groupOfUniqueNames",
    "posixGroup",
    "group",
)
#: Attributes that hold the DNs of a group's direct members
MEMBERSHIP_NAMES: tuple[str, ...] = ("member", "uniqueMember")
#: Attribute that holds the uids of a POSIX group's members
MEMBER_UID = "memberUid"


def normalize_dn(dn: str) -> str:
    """
    Return a canonical, lower-cased form of ``dn`` suitable for comparisons.

    Whitespace around RDN separators and attribute type case are normalized
    by round-tripping through :py:func:`ldap.dn.str2dn`.  Strings that are not
    valid DNs are just lower-cased.

    Args:
        dn: the distinguished name to normalize

    Returns:
        The normalized DN.

    """
    try:
        return dn2str(str2dn(dn)).lower()
    except ldap.DECODING_ERROR:  # type: ignore[attr-defined]
        return dn.strip().lower()


def dn_equal(a: str, b: str) -> bool:
    """Compare two DNs the way a directory server does: case-insensitively."""
    return normalize_dn(a) == normalize_dn(b)


def is_group_class(object_classes: Iterable[str]) -> bool:
    """Return ``True`` if any of ``object_classes`` is a group object class."""
    group_classes = {name.lower() for name in GROUP_CLASS_NAMES}
    return any(value.lower() in group_classes for value in object_classes)


class DirectoryEntry:
    """
    An immutable snapshot of a directory entry.

    Attribute lookups are case-insensitive, and an absent attribute reads as
    an empty list rather than ``None``.

    Args:
        dn: the distinguished name of the entry

    Keyword Args:
        attributes: mapping of attribute name to a list of string values

    """

    __slots__ = ("_attributes", "_dn")

    def __init__(
        self, dn: str, attributes: Mapping[str, Iterable[str]] | None = None
    ) -> None:
        self._dn = dn
        attrs: dict[str, tuple[str, tuple[str, ...]]] = {}
        for name, values in (attributes or {}).items():
            if isinstance(values, str):
                values = [values]
            key = name.lower()
            if key in attrs:
                original, existing = attrs[key]
                attrs[key] = (original, existing + tuple(values))
            else:
                attrs[key] = (name, tuple(values))
        self._attributes = attrs

    @classmethod
    def from_ldap(
        cls, dn: str, attributes: Mapping[str, list[bytes]]
    ) -> "DirectoryEntry":
        """
        Build an entry from a raw python-ldap result, decoding bytes values
        as UTF-8.
        """
        decoded: dict[str, list[str]] = {}
        for name, values in attributes.items():
            decoded[name] = [
                value.decode("utf-8", errors="replace")
                if isinstance(value, bytes)
                else str(value)
                for value in values
            ]
        return cls(dn, decoded)

    @property
    def dn(self) -> str:
        return self._dn

    @property
    def attribute_names(self) -> list[str]:
        """The attribute names of this entry, in their original case."""
        return [original for original, _ in self._attributes.values()]

    def __getitem__(self, name: str) -> list[str]:
        if name.lower() == "dn":
            return [self._dn]
        attribute = self._attributes.get(name.lower())
        if attribute is None:
            return []
        return list(attribute[1])

    def get(self, name: str) -> list[str]:
        return self[name]

    def first(self, name: str) -> str | None:
        """Return the first value of ``name``, or ``None`` if it has no values."""
        values = self[name]
        return values[0] if values else None

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return bool(self[name])

    def items(self) -> Iterator[tuple[str, list[str]]]:
        for original, values in self._attributes.values():
            yield original, list(values)

    def is_group(self) -> bool:
        return is_group_class(self["objectClass"])

    def is_posix_group(self) -> bool:
        """
        Return ``True`` if this entry carries ``memberUid`` values.

        A "combined" group with both ``memberUid`` and ``member`` values is
        still a POSIX group.
        """
        return bool(self[MEMBER_UID])

    def member_dns(self) -> list[str]:
        """The DNs listed under ``member`` and ``uniqueMember``."""
        dns: list[str] = []
        for name in MEMBERSHIP_NAMES:
            dns.extend(self[name])
        return dns

    def member_uids(self) -> list[str]:
        return self[MEMBER_UID]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirectoryEntry):
            return NotImplemented
        return normalize_dn(self.dn) == normalize_dn(other.dn)

    def __hash__(self) -> int:
        return hash(normalize_dn(self.dn))

    def __repr__(self) -> str:
        return f"<DirectoryEntry: {self.dn}>"
