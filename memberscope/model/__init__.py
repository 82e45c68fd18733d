"""
memberscope Model Module
========================

Contains the core data models and graph representation for directory objects.

Key Components:
- schemas.py: Typed dataclasses for directory objects and resolution output
- membership_graph.py: NetworkX-based record of nesting and ownership

Design Philosophy:
- All objects inherit from a common DirectoryObject base class
- Object kinds form a closed enum
- The graph records structure; the flat record list is the primary output
"""

from .schemas import (
    ObjectKind,
    DirectoryObject,
    User,
    Device,
    ServicePrincipal,
    Group,
    MemberRef,
    MemberRecord,
    SkippedMember,
    ResolutionResult
)
from .membership_graph import MembershipGraph, EdgeType
