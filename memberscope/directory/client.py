"""
Directory Service Client Interface
==================================

Abstract collaborator the resolver depends on. Concrete clients:
- SnapshotDirectoryClient: in-memory data loaded from JSON exports
- LDAPDirectoryClient: live Active Directory via ldap3

Contract:
- Listing calls (members, registered owners) exhaust all pages themselves
  and return references in the order the directory returns them
- Single-object lookups raise ObjectNotFoundError for missing objects
- Network and bind failures raise DirectoryConnectionError
- Clients never retry on behalf of the resolver
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..model.schemas import (
    User, Device, ServicePrincipal, Group, MemberRef, ObjectKind
)


class DirectoryServiceClient(ABC):
    """Read-only access to a directory of users, devices, service principals and groups."""

    @abstractmethod
    def get_group_by_name(self, name: str) -> Optional[Group]:
        """Find a group by display name. Returns None when absent."""

    @abstractmethod
    def get_group(self, group_id: str) -> Group:
        """Fetch a group by id."""

    @abstractmethod
    def get_group_members(self, group_id: str) -> list[MemberRef]:
        """Direct members of a group, all pages."""

    @abstractmethod
    def get_user(self, user_id: str) -> User:
        """Fetch a user by id."""

    @abstractmethod
    def get_device(self, device_id: str) -> Device:
        """Fetch a device by id."""

    @abstractmethod
    def get_service_principal(self, sp_id: str) -> ServicePrincipal:
        """Fetch a service principal by id."""

    @abstractmethod
    def get_device_registered_owners(self, device_id: str) -> list[MemberRef]:
        """Registered owners of a device, all pages."""

    def get_object(self, object_id: str, kind: ObjectKind):
        """Fetch an object using the lookup matching its kind."""
        lookups = {
            ObjectKind.USER: self.get_user,
            ObjectKind.DEVICE: self.get_device,
            ObjectKind.SERVICE_PRINCIPAL: self.get_service_principal,
            ObjectKind.GROUP: self.get_group,
        }
        if kind not in lookups:
            raise ValueError(f"No lookup for kind {kind.value}")
        return lookups[kind](object_id)

    def close(self) -> None:
        """Release any held connection. No-op by default."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
