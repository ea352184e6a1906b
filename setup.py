#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='django-ldapmembership',
    version='1.0.0',
    description='LDAP group membership resolution: nested groups, POSIX groups, ActiveDirectory forests',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['django', 'ldap', 'activedirectory', 'groups'],
    packages=find_packages(exclude=['bin']),
    include_package_data=True,
    package_data={'ldapmembership.tests': ['fixtures/*.json']},
    install_requires=[
        'django',
        'ldap_filter',
        'python-ldap',
    ],
    extras_require={
        'test': [
            'python-ldap-faker',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3"
    ],
)
