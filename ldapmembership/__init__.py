"""
Group membership resolution for LDAP directories.

The entry point is :py:class:`ldapmembership.session.LdapSession`, built from
one ``LDAP_SERVERS`` style configuration dict.
"""

__version__ = "1.0.0"
