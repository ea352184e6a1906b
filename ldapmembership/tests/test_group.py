from ldapmembership.group import Group, PosixGroup, VirtualGroup

from .utils import DirectoryTestCase, group_dn, user_dn


class TestGroup(DirectoryTestCase):
    """Test Group traversal."""

    def load(self, cn):
        return self.session.load_group(self.group(cn))

    def test_direct(self):
        """Test direct members and subgroups are split apart."""
        group = self.load("ghe-admins")
        self.assertEqual(self.dns(group.direct_members()), {user_dn("admin1").lower()})
        self.assertEqual(self.dns(group.direct_subgroups()), {group_dn("ghe-users").lower()})

    def test_nested(self):
        """Test members of subgroups are members."""
        group = self.load("ghe-admins")
        self.assertEqual(
            self.dns(group.members()), {user_dn("admin1").lower(), user_dn("user1").lower()}
        )
        self.assertTrue(group.is_member(self.user("user1")))
        self.assertFalse(group.is_member(self.user("user2")))

    def test_deep_nesting(self):
        """Test every level of subgroups is walked."""
        group = self.load("n-depth-nested-group4")
        self.assertEqual(
            self.dns(group.members()), {user_dn("user1").lower(), user_dn("user2").lower()}
        )
        self.assertEqual(len(group.subgroups()), 4)

    def test_cycle(self):
        """Test a group cycle terminates and the group isn't its own subgroup."""
        group = self.load("loop-a")
        self.assertEqual(
            self.dns(group.members()), {user_dn("user1").lower(), user_dn("user2").lower()}
        )
        self.assertEqual(self.dns(group.subgroups()), {group_dn("loop-b").lower()})

    def test_dangling_member(self):
        """Test members that no longer exist are skipped."""
        group = self.load("dangling-group")
        self.assertEqual(self.dns(group.members()), {user_dn("user2").lower()})

    def test_unique_member(self):
        """Test groupOfUniqueNames members."""
        group = self.load("unique-group")
        self.assertEqual(self.dns(group.members()), {user_dn("user2").lower()})


class TestGroupWithoutFallback(DirectoryTestCase):

    session_config = {"recursive_group_search_fallback": False}

    def test_direct_only(self):
        """Test subgroups are not expanded with the fallback off."""
        group = self.session.load_group(self.group("ghe-admins"))
        self.assertEqual(self.dns(group.members()), {user_dn("admin1").lower()})
        self.assertEqual(self.dns(group.subgroups()), {group_dn("ghe-users").lower()})


class TestPosixGroup(DirectoryTestCase):
    """Test POSIX groups."""

    def load(self, cn):
        group = self.session.load_group(self.group(cn))
        self.assertIsInstance(group, PosixGroup)
        return group

    def test_uid_members(self):
        """Test memberUid values are resolved to entries."""
        group = self.load("posix-group1")
        self.assertFalse(group.combined_group())
        self.assertEqual(
            self.dns(group.members()), {user_dn("user1").lower(), user_dn("user2").lower()}
        )
        self.assertEqual(group.subgroups(), [])

    def test_is_member(self):
        """Test membership by uid."""
        group = self.load("posix-group1")
        self.assertTrue(group.is_member(self.user("user1")))
        self.assertFalse(group.is_member(self.user("admin1")))

    def test_combined_group(self):
        """Test a combined group's members are the union of both kinds."""
        group = self.load("enterprise-posix-combined")
        self.assertTrue(group.combined_group())
        self.assertEqual(
            self.dns(group.members()), {user_dn("alice").lower(), user_dn("user1").lower()}
        )
        self.assertEqual(self.dns(group.subgroups()), {group_dn("ghe-users").lower()})
        self.assertTrue(group.is_member(self.user("alice")))
        self.assertTrue(group.is_member(self.user("user1")))
        self.assertFalse(group.is_member(self.user("user2")))

    def test_combined_group_without_uids(self):
        """Test a combined group with no memberUid values."""
        group = self.load("empty-posix-combined")
        self.assertEqual(group.uid_members(), [])
        self.assertEqual(self.dns(group.members()), {user_dn("user2").lower()})

    def test_valid(self):
        """Test only posixGroup entries are POSIX groups."""
        self.assertTrue(PosixGroup.valid(self.group("posix-group1")))
        self.assertFalse(PosixGroup.valid(self.group("ghe-users")))


class TestVirtualGroup(DirectoryTestCase):
    """Test groups on a server with memberOf back-links."""

    session_config = {"virtual_attributes": True}

    def test_members(self):
        """Test members are found through their back-links."""
        group = self.session.load_group(self.group("nested-group1"))
        self.assertIsInstance(group, VirtualGroup)
        self.assertEqual(
            self.dns(group.members()), {user_dn("user1").lower(), user_dn("user2").lower()}
        )

    def test_subgroups(self):
        """Test subgroups are found through their back-links."""
        group = self.session.load_group(self.group("n-depth-nested-group1"))
        self.assertEqual(self.dns(group.subgroups()), {group_dn("nested-group1").lower()})

    def test_plain_group_class(self):
        """Test a VirtualGroup is still a Group."""
        self.assertTrue(issubclass(VirtualGroup, Group))
