"""
memberscope Data Schemas
========================

Typed dataclasses representing directory objects and resolution output.

Design Decisions:
-----------------
1. All directory objects inherit from DirectoryObject (object_id, display_name)
2. ObjectKind is a closed enum; every member reference carries one
3. MemberRecord is the flat output row shared by console, CSV and JSON
4. ResolutionResult aggregates everything one resolution run produced

Schema Hierarchy:
- DirectoryObject (base)
  - User
  - Device
  - ServicePrincipal
  - Group

- MemberRef: (object_id, kind) pair returned by member/owner listings
- MemberRecord: One deduplicated output row
- SkippedMember: A member dropped because its lookup failed
- ResolutionResult: Complete output container
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .membership_graph import MembershipGraph


class ObjectKind(Enum):
    """Kinds of directory objects a group can contain.

    UNKNOWN covers tags the directory returns that are none of the four
    supported kinds (contacts, foreign security principals, ...).
    """
    USER = "User"
    DEVICE = "Device"
    SERVICE_PRINCIPAL = "ServicePrincipal"
    GROUP = "Group"
    UNKNOWN = "Unknown"

    @classmethod
    def from_string(cls, s: Optional[str]) -> "ObjectKind":
        """Convert a kind tag to ObjectKind, handling various formats.

        Accepts enum values ("ServicePrincipal"), Graph @odata.type tags
        ("#microsoft.graph.servicePrincipal") and LDAP class names ("computer").
        """
        if not s:
            return cls.UNKNOWN

        normalized = s.strip()
        if normalized.startswith("#microsoft.graph."):
            normalized = normalized[len("#microsoft.graph."):]
        normalized = normalized.lower()

        for kind in cls:
            if kind.value.lower() == normalized:
                return kind

        aliases = {
            "person": cls.USER,
            "computer": cls.DEVICE,
            "sp": cls.SERVICE_PRINCIPAL,
            "service_principal": cls.SERVICE_PRINCIPAL,
            "msds-managedserviceaccount": cls.SERVICE_PRINCIPAL,
            "msds-groupmanagedserviceaccount": cls.SERVICE_PRINCIPAL,
        }
        return aliases.get(normalized, cls.UNKNOWN)


@dataclass
class DirectoryObject:
    """Base class for all directory objects.

    Attributes:
        object_id: Unique identifier (object GUID, SID or DN)
        display_name: Human-readable name
        kind: Kind of directory object
        properties: Additional attributes from the source
    """
    object_id: str
    display_name: str = ""
    kind: ObjectKind = ObjectKind.UNKNOWN
    properties: dict = field(default_factory=dict)

    def __hash__(self):
        return hash(self.object_id)

    def __eq__(self, other):
        if isinstance(other, DirectoryObject):
            return self.object_id == other.object_id
        return False


@dataclass(eq=False)
class User(DirectoryObject):
    """Directory user.

    Additional Attributes:
        user_principal_name: Sign-in name (e.g. alice@corp.com)
    """
    user_principal_name: str = ""

    def __post_init__(self):
        self.kind = ObjectKind.USER


@dataclass(eq=False)
class Device(DirectoryObject):
    """Directory device (Entra device or AD computer).

    Additional Attributes:
        primary_user_principal_names: UPNs of the User-kind registered owners,
            in owner-listing order. Filled in by the resolver.
    """
    primary_user_principal_names: list = field(default_factory=list)

    def __post_init__(self):
        self.kind = ObjectKind.DEVICE


@dataclass(eq=False)
class ServicePrincipal(DirectoryObject):
    """Application identity (service principal or managed service account)."""

    def __post_init__(self):
        self.kind = ObjectKind.SERVICE_PRINCIPAL


@dataclass(eq=False)
class Group(DirectoryObject):
    """Directory group."""

    def __post_init__(self):
        self.kind = ObjectKind.GROUP


OBJECT_CLASSES = {
    ObjectKind.USER: User,
    ObjectKind.DEVICE: Device,
    ObjectKind.SERVICE_PRINCIPAL: ServicePrincipal,
    ObjectKind.GROUP: Group,
}


@dataclass(frozen=True)
class MemberRef:
    """Reference to a member or owner as returned by a listing call."""
    object_id: str
    kind: ObjectKind = ObjectKind.UNKNOWN


@dataclass
class MemberRecord:
    """One row of resolution output.

    user_principal_name is only set for users; primary_user only for devices.
    Both are empty strings otherwise.
    """
    name: str
    kind: ObjectKind
    object_id: str
    user_principal_name: str = ""
    primary_user: str = ""

    CSV_HEADER = ("Name", "Type", "UserPrincipalName", "PrimaryUser", "Id")

    def to_row(self) -> list:
        """Flat row matching CSV_HEADER."""
        return [
            self.name,
            self.kind.value,
            self.user_principal_name,
            self.primary_user,
            self.object_id,
        ]

    def to_dict(self) -> dict:
        return dict(zip(self.CSV_HEADER, self.to_row()))


@dataclass
class SkippedMember:
    """A member that was dropped because its lookup failed."""
    object_id: str
    kind: ObjectKind
    parent_id: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "id": self.object_id,
            "kind": self.kind.value,
            "parent_id": self.parent_id,
            "reason": self.reason,
        }


@dataclass
class ResolutionResult:
    """Complete output of one resolution run.

    Attributes:
        root_group: The group that was expanded (never part of records)
        records: Deduplicated member records, one per object id
        visited_groups: Group ids in the order they were expanded
        skipped: Members dropped under the "skip" lookup-error policy
        warnings: Lookup failures that did not drop a member (e.g. device owners)
        graph: Membership graph built during traversal
        metadata: Timestamp, source and other run information
    """
    root_group: Group
    records: list = field(default_factory=list)  # List of MemberRecord
    visited_groups: list = field(default_factory=list)  # List of group ids
    skipped: list = field(default_factory=list)  # List of SkippedMember
    warnings: list = field(default_factory=list)  # Non-fatal lookup problems
    graph: Optional["MembershipGraph"] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.metadata.setdefault("timestamp", datetime.now().isoformat())

    def counts_by_kind(self) -> dict:
        """Number of records of each kind, keyed by kind value."""
        counts = {kind.value: 0 for kind in OBJECT_CLASSES}
        for record in self.records:
            counts[record.kind.value] = counts.get(record.kind.value, 0) + 1
        return counts

    def records_of_kind(self, kind: ObjectKind) -> list:
        return [r for r in self.records if r.kind == kind]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "root_group": {
                "id": self.root_group.object_id,
                "name": self.root_group.display_name,
            },
            "members": [r.to_dict() for r in self.records],
            "counts": self.counts_by_kind(),
            "visited_groups": list(self.visited_groups),
            "skipped": [s.to_dict() for s in self.skipped],
            "warnings": list(self.warnings),
            "graph": self.graph.to_dict() if self.graph is not None else None,
            "metadata": self.metadata,
        }
