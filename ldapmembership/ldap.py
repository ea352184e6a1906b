# Tests patch ``ldapmembership.ldap.initialize`` with python-ldap-faker, so
# every module in this package reaches python-ldap through here.
import ldap
from ldap import *  # noqa: F403

__version__ = ldap.__version__
