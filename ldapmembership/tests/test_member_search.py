import unittest
from unittest.mock import Mock, patch

from ldapmembership.entry import DirectoryEntry
from ldapmembership.filters import IN_CHAIN_OID, to_filterstr
from ldapmembership.member_search import (
    ActiveDirectory,
    Classic,
    Detect,
    Recursive,
    select_searcher,
)

from .utils import DirectoryTestCase, group_dn, user_dn


class TestClassic(DirectoryTestCase):
    """Test the client-side member walk."""

    def test_nested_members(self):
        """Test members of nested groups, and the nested groups, are returned."""
        entries = Classic(self.session).perform(self.group("ghe-admins"))
        self.assertEqual(
            self.dns(entries),
            {
                user_dn("admin1").lower(),
                user_dn("user1").lower(),
                group_dn("ghe-users").lower(),
            },
        )

    def test_cycle(self):
        """Test a group cycle is walked once."""
        entries = Classic(self.session).perform(self.group("loop-a"))
        self.assertEqual(
            self.dns(entries),
            {user_dn("user1").lower(), user_dn("user2").lower(), group_dn("loop-b").lower()},
        )

    def test_single_walk(self):
        """Test each member DN is fetched once per perform."""
        group = self.group("ghe-admins")
        with patch.object(self.session, "find_entry", wraps=self.session.find_entry) as find_entry:
            Classic(self.session).perform(group)
        self.assertEqual(find_entry.call_count, 3)


class TestRecursive(DirectoryTestCase):
    """Test the level-by-level member search."""

    def test_nested_members(self):
        """Test nested groups come back as entries, other members as bare DNs."""
        entries = Recursive(self.session).perform(self.group("ghe-admins"))
        self.assertEqual(
            self.dns(entries),
            {
                user_dn("admin1").lower(),
                user_dn("user1").lower(),
                group_dn("ghe-users").lower(),
            },
        )
        by_dn = {entry.dn.lower(): entry for entry in entries}
        self.assertTrue(by_dn[group_dn("ghe-users").lower()].is_group())
        self.assertEqual(by_dn[user_dn("user1").lower()].attribute_names, [])

    def test_root_group_excluded(self):
        """Test the group itself is not among its members, even in a cycle."""
        entries = Recursive(self.session).perform(self.group("loop-a"))
        dns = self.dns(entries)
        self.assertNotIn(group_dn("loop-a").lower(), dns)
        self.assertEqual(
            dns,
            {user_dn("user1").lower(), user_dn("user2").lower(), group_dn("loop-b").lower()},
        )

    def test_deep_nesting(self):
        """Test members several levels down are found."""
        dns = self.dns(Recursive(self.session).perform(self.group("n-depth-nested-group4")))
        self.assertIn(user_dn("user1").lower(), dns)
        self.assertIn(group_dn("nested-group1").lower(), dns)

    def test_depth_bound(self):
        """Test groups past the depth bound are not expanded."""
        dns = self.dns(Recursive(self.session, depth=1).perform(self.group("n-depth-nested-group4")))
        self.assertIn(group_dn("n-depth-nested-group2").lower(), dns)
        self.assertIn(group_dn("n-depth-nested-group1").lower(), dns)
        self.assertNotIn(group_dn("nested-group1").lower(), dns)
        self.assertNotIn(user_dn("user1").lower(), dns)

    def test_dangling_member(self):
        """Test a member DN that doesn't resolve is still listed."""
        dns = self.dns(Recursive(self.session).perform(self.group("dangling-group")))
        self.assertIn("uid=deleted-user,ou=people,dc=github,dc=com", dns)

    def test_posix_group(self):
        """Test a POSIX group is resolved through memberUid."""
        entries = Recursive(self.session).perform(self.group("posix-group1"))
        self.assertEqual(self.dns(entries), {user_dn("user1").lower(), user_dn("user2").lower()})
        self.assertEqual(sorted(entry.first("uid") for entry in entries), ["user1", "user2"])

    def test_combined_posix_group(self):
        """Test a group with memberUid and member values gets both kinds of member."""
        entries = Recursive(self.session).perform(self.group("enterprise-posix-combined"))
        self.assertEqual(
            self.dns(entries),
            {
                group_dn("ghe-users").lower(),
                user_dn("alice").lower(),
                user_dn("user1").lower(),
            },
        )
        by_dn = {entry.dn.lower(): entry for entry in entries}
        self.assertEqual(by_dn[user_dn("alice").lower()].first("uid"), "alice")
        self.assertTrue(by_dn[group_dn("ghe-users").lower()].is_group())


class TestRecursiveWithoutPosix(DirectoryTestCase):
    """Test memberUid is ignored with POSIX support off."""

    session_config = {"posix_support": False}

    def test_posix_group(self):
        """Test a POSIX-only group has no members."""
        self.assertEqual(Recursive(self.session).perform(self.group("posix-group1")), [])

    def test_combined_posix_group(self):
        """Test only the DN members of a combined group are returned."""
        entries = Recursive(self.session).perform(self.group("enterprise-posix-combined"))
        self.assertEqual(
            self.dns(entries),
            {group_dn("ghe-users").lower(), user_dn("user1").lower()},
        )


class TestActiveDirectory(unittest.TestCase):
    """Test the in-chain member search with a mocked session."""

    def test_perform(self):
        """Test one in-chain search per search domain."""
        session = Mock()
        domains = [Mock(), Mock()]
        domains[0].search.return_value = [DirectoryEntry("CN=a,DC=ghe,DC=local")]
        domains[1].search.return_value = [DirectoryEntry("CN=b,DC=child,DC=ghe,DC=local")]
        session.domains.return_value = domains
        group = DirectoryEntry("CN=Admins,DC=ghe,DC=local")
        entries = ActiveDirectory(session, attributes=["cn"]).perform(group)
        self.assertEqual([entry.dn for entry in entries], ["CN=a,DC=ghe,DC=local", "CN=b,DC=child,DC=ghe,DC=local"])
        kwargs = domains[0].search.call_args.kwargs
        self.assertEqual(kwargs["attributes"], ["cn", "objectClass"])
        self.assertEqual(
            to_filterstr(kwargs["filterstr"]),
            f"(memberOf:{IN_CHAIN_OID}:=CN=Admins,DC=ghe,DC=local)",
        )


class TestDetect(DirectoryTestCase):

    def test_detects_recursive(self):
        """Test the fake directory gets the recursive member search."""
        searcher = self.session.member_search()
        self.assertIsInstance(searcher, Detect)
        self.assertIn(user_dn("user1").lower(), self.dns(searcher.perform(self.group("ghe-admins"))))
        self.assertIsInstance(searcher.strategy, Recursive)

    def test_detects_active_directory(self):
        """Test an ActiveDirectory server gets the in-chain search."""
        session = Mock()
        session.active_directory_capability.return_value = True
        self.assertIsInstance(Detect(session).strategy, ActiveDirectory)

    def test_select_searcher(self):
        """Test names select strategies."""
        self.assertIsInstance(select_searcher(self.session, "classic"), Classic)
        self.assertIsInstance(select_searcher(self.session, "RECURSIVE"), Recursive)
        self.assertIsInstance(select_searcher(self.session, "nope"), Detect)
