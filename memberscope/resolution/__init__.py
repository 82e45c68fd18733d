"""
memberscope Resolution Module
=============================

Deterministic expansion of nested group membership.

Components:
- resolver.py: Cycle-safe, depth-first group membership resolution
"""

from .resolver import GroupMembershipResolver
