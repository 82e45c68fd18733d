"""
memberscope Directory Module
============================

Clients for the directory services the resolver reads from.

Supported Sources:
- JSON snapshots (sectioned or Graph-style @odata.type exports, zipped or not)
- Live Active Directory over LDAP (using ldap3)

Design Philosophy:
- All clients implement DirectoryServiceClient
- Clients are read-only and never retry on the resolver's behalf
"""

from .client import DirectoryServiceClient
from .snapshot_client import SnapshotDirectoryClient
from .ldap_client import LDAPDirectoryClient
