from pathlib import Path
from typing import Any
import unittest

from ldap_faker.unittest import LDAPFakerMixin

from ldapmembership.session import LdapSession


FIXTURE = str(Path(__file__).parent / "fixtures" / "directory.json")
BASE = "dc=github,dc=com"
PEOPLE = f"ou=People,{BASE}"
GROUPS = f"ou=Groups,{BASE}"


def user_dn(uid: str) -> str:
    return f"uid={uid},{PEOPLE}"


def group_dn(cn: str) -> str:
    return f"cn={cn},{GROUPS}"


def server_config(**overrides: Any) -> dict[str, Any]:
    config: dict[str, Any] = {
        "host": "localhost",
        "port": 389,
        "user": "cn=admin,dc=github,dc=com",
        "password": "passworD1",
        "use_starttls": False,
        "tls_verify": "never",
        "timeout": 15.0,
        "basedn": BASE,
        "uid": "uid",
    }
    config.update(overrides)
    return config


class DirectoryTestCase(LDAPFakerMixin, unittest.TestCase):
    """
    Base class for tests that run against the fake directory loaded from
    ``fixtures/directory.json``.
    """

    ldap_modules = ["ldapmembership"]
    ldap_fixtures = FIXTURE

    #: Extra server config for the session built in setUp
    session_config: dict[str, Any] = {}

    def setUp(self):
        super().setUp()
        self.session = LdapSession(server_config(**self.session_config))

    def entry(self, dn: str, attributes: list[str] | None = None):
        entry = self.session.find_entry(dn, attributes=attributes)
        self.assertIsNotNone(entry, f"{dn} is not in the fixture")
        return entry

    def user(self, uid: str, attributes: list[str] | None = None):
        return self.entry(user_dn(uid), attributes=attributes)

    def group(self, cn: str):
        return self.entry(group_dn(cn))

    def dns(self, entries) -> set[str]:
        return {entry.dn.lower() for entry in entries}
