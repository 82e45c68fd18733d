"""
memberscope - Nested Directory Group Membership Resolver
=========================================================

A Python framework for expanding directory group membership through nested
groups, classifying every reachable principal and exporting the flat result.

Architecture Overview:
----------------------
- directory/: Directory service clients (JSON snapshot, live LDAP via ldap3)
- model/: Typed data models and the NetworkX membership graph
- resolution/: Cycle-safe recursive membership resolution
- reporting/: Console tables, CSV/JSON export and pyvis visualization

Design Decisions:
-----------------
1. The resolver depends only on the abstract DirectoryServiceClient
2. All data models use Python dataclasses for type safety and clarity
3. NetworkX records the nesting structure discovered during a run
4. Lookup failures for single members follow a configurable policy

Author: memberscope Project
"""

__version__ = "1.0.0"
__author__ = "memberscope Team"

from .config import MemberscopeConfig
