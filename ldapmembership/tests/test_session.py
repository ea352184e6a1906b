import unittest
from unittest.mock import Mock, patch

import django
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from ldapmembership import member_search, membership_validators
from ldapmembership.connection_cache import ConnectionCache
from ldapmembership.group import Group, PosixGroup, VirtualGroup
from ldapmembership.session import DEFAULT_MAX_DEPTH, LdapSession
from ldapmembership.user_search import ActiveDirectory, Default

from .utils import BASE, GROUPS, PEOPLE, DirectoryTestCase, group_dn, server_config, user_dn

if not settings.configured:
    settings.configure(LDAP_SERVERS={"default": server_config()})
    django.setup()


class TestFromSettings(unittest.TestCase):
    """Test building sessions from Django settings."""

    def test_default_server(self):
        """Test the "default" server is used when no name is given."""
        with patch("django.conf.settings.LDAP_SERVERS", {"default": server_config()}, create=True):
            session = LdapSession.from_settings()
        self.assertEqual(session.basedn, BASE)
        self.assertEqual(session.connection.url, "ldap://localhost:389")

    def test_named_server(self):
        """Test picking a server by name."""
        servers = {"default": server_config(), "ad": server_config(host="dc1.ghe.local")}
        with patch("django.conf.settings.LDAP_SERVERS", servers, create=True):
            session = LdapSession.from_settings("ad")
        self.assertEqual(session.connection.host, "dc1.ghe.local")

    def test_missing_server(self):
        """Test a missing server name or setting is a configuration error."""
        with patch("django.conf.settings.LDAP_SERVERS", {}, create=True):
            with self.assertRaises(ImproperlyConfigured):
                LdapSession.from_settings()
        with patch("django.conf.settings.LDAP_SERVERS", {"other": server_config()}, create=True):
            with self.assertRaises(ImproperlyConfigured):
                LdapSession.from_settings()


class TestSessionConfiguration(unittest.TestCase):
    """Test how a session reads its configuration; nothing connects here."""

    def test_defaults(self):
        """Test the defaults for the optional settings."""
        session = LdapSession({"host": "dc1.ghe.local", "basedn": BASE})
        self.assertEqual(session.uid, "sAMAccountName")
        self.assertEqual(session.search_domains, [BASE])
        self.assertTrue(session.posix_support)
        self.assertTrue(session.recursive_group_search_fallback)
        self.assertFalse(session.virtual_attributes.enabled)
        self.assertFalse(session.search_forest)
        self.assertEqual(session.max_depth, DEFAULT_MAX_DEPTH)
        self.assertEqual(session.membership_validator_name, "detect")
        self.assertEqual(session.member_search_strategy_name, "detect")
        self.assertIsInstance(session.user_search_strategy, Default)

    def test_search_domains(self):
        """Test search_domains may be a string or a list."""
        session = LdapSession({"host": "h", "basedn": BASE, "search_domains": PEOPLE})
        self.assertEqual(session.search_domains, [PEOPLE])
        session = LdapSession({"host": "h", "search_domains": [PEOPLE, GROUPS]})
        self.assertEqual([d.base_name for d in session.domains()], [PEOPLE, GROUPS])

    def test_strategy_names(self):
        """Test strategy names are normalized, and unknown ones mean detect."""
        session = LdapSession(
            {
                "host": "h",
                "membership_validator": "Recursive",
                "member_search_strategy": "bogus",
                "user_search_strategy": "GLOBAL_CATALOG",
            }
        )
        self.assertEqual(session.membership_validator_name, "recursive")
        self.assertEqual(session.member_search_strategy_name, "detect")
        self.assertIsInstance(session.user_search_strategy, ActiveDirectory)
        self.assertIsInstance(session.membership_validator(), membership_validators.Recursive)
        self.assertIsInstance(session.member_search(), member_search.Detect)

    def test_depth_is_passed_on(self):
        """Test max_depth becomes the strategies' default depth."""
        session = LdapSession({"host": "h", "max_depth": "3"})
        self.assertEqual(session.membership_validator().depth, 3)
        self.assertEqual(session.member_search().depth, 3)
        self.assertEqual(session.member_of().depth, 3)
        self.assertEqual(session.membership_validator(depth=1).depth, 1)

    def test_invalid_max_depth(self):
        """Test a non-numeric max_depth is a configuration error."""
        with self.assertRaises(ImproperlyConfigured):
            LdapSession({"host": "h", "max_depth": "deep"})

    def test_invalid_connection_settings(self):
        """Test connection settings are checked when the session is built."""
        with self.assertRaises(ImproperlyConfigured):
            LdapSession({"host": "h", "encryption": "rot13"})
        with self.assertRaises(ImproperlyConfigured):
            LdapSession({"host": "h", "tls_verify": "maybe"})

    def test_injected_connection_and_cache(self):
        """Test the connection and cache can be passed in."""
        connection = Mock()
        cache = ConnectionCache()
        session = LdapSession({"host": "h"}, connection=connection, connection_cache=cache)
        self.assertIs(session.connection, connection)
        self.assertIs(session.connection_cache, cache)
        self.assertIs(session.capabilities.connection, connection)

    def test_virtual_attributes_dict(self):
        """Test a dict of virtual attribute overrides turns them on."""
        session = LdapSession(
            {"host": "h", "virtual_attributes": {"virtual_membership": "isMemberOf"}}
        )
        self.assertTrue(session.virtual_attributes.enabled)
        self.assertEqual(session.virtual_attributes.virtual_membership, "isMemberOf")


class TestSession(DirectoryTestCase):
    """Test LdapSession against the fake directory."""

    def test_find_entry(self):
        """Test fetching an entry by DN."""
        entry = self.session.find_entry(user_dn("user1"))
        self.assertEqual(entry["uid"], ["user1"])
        self.assertIsNone(self.session.find_entry(user_dn("nobody")))

    def test_search_without_base_uses_search_domains(self):
        """Test a search without a base runs under each search domain."""
        session = LdapSession(server_config(search_domains=[PEOPLE, GROUPS]))
        entries = session.search(filterstr="(cn=*)")
        dns = self.dns(entries)
        self.assertIn(user_dn("user1").lower(), dns)
        self.assertIn(group_dn("ghe-users").lower(), dns)
        self.assertNotIn("cn=admin,dc=github,dc=com", dns)

    def test_load_group(self):
        """Test groups are wrapped in the right class."""
        self.assertIsInstance(self.session.load_group(self.group("ghe-users")), Group)
        self.assertNotIsInstance(self.session.load_group(self.group("ghe-users")), PosixGroup)
        self.assertIsInstance(self.session.load_group(self.group("posix-group1")), PosixGroup)

    def test_load_group_without_posix_support(self):
        """Test POSIX groups are plain groups when POSIX support is off."""
        session = LdapSession(server_config(posix_support=False))
        group = session.load_group(self.group("posix-group1"))
        self.assertNotIsInstance(group, PosixGroup)

    def test_load_group_with_virtual_attributes(self):
        """Test every group is a VirtualGroup when back-links are available."""
        session = LdapSession(server_config(virtual_attributes=True))
        self.assertIsInstance(session.load_group(self.group("posix-group1")), VirtualGroup)

    def test_group(self):
        """Test loading a group by DN."""
        self.assertEqual(self.session.group(group_dn("ghe-users")).dn, group_dn("ghe-users"))
        self.assertIsNone(self.session.group(group_dn("nope")))

    def test_root_dse_and_capabilities(self):
        """Test the fake directory is not ActiveDirectory."""
        self.assertTrue(self.session.search_root_dse()["supportedControl"])
        self.assertFalse(self.session.active_directory_capability())

    def test_test_connection(self):
        """Test the admin bind works."""
        self.assertTrue(self.session.test_connection())
