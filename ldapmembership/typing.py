"""
Type aliases for raw python-ldap results and search options.
"""

from typing import Any

LDAPData = tuple[str, dict[str, list[bytes]]]
LDAPSearchResult = list[LDAPData]
#: One ``LDAP_SERVERS`` style server configuration
ServerConfig = dict[str, Any]
#: Keyword arguments accepted by the ``search`` methods: ``base``, ``scope``,
#: ``filterstr``, ``attributes``, ``sizelimit``
SearchOptions = dict[str, Any]
