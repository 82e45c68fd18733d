"""
Snapshot Directory Client
=========================

In-memory directory populated from JSON exports or built programmatically.

Supported Formats:
- Sectioned JSON: {"users": [...], "devices": [...],
  "servicePrincipals": [...], "groups": [...]}
- Flat Graph-style JSON: a list (or {"value": [...]}) of objects tagged
  with "@odata.type"
- Zip archives containing any of the above

Design Decisions:
-----------------
1. Member and owner references may be plain ids or {"id", "@odata.type"}
   objects; an explicit tag always wins over the stored object's kind
2. A typed reference to an absent object models a stale directory entry:
   listing returns it, lookup raises ObjectNotFoundError
3. An untyped reference to an absent object is listed with kind UNKNOWN
4. Request counts are kept per operation for inspection
"""

import json
import zipfile
from collections import Counter
from pathlib import Path
from typing import Callable, Optional

from ..errors import ObjectNotFoundError
from ..model.schemas import (
    DirectoryObject, User, Device, ServicePrincipal, Group,
    MemberRef, ObjectKind
)
from .client import DirectoryServiceClient


SECTION_KINDS = {
    "users": ObjectKind.USER,
    "devices": ObjectKind.DEVICE,
    "computers": ObjectKind.DEVICE,
    "servicePrincipals": ObjectKind.SERVICE_PRINCIPAL,
    "service_principals": ObjectKind.SERVICE_PRINCIPAL,
    "groups": ObjectKind.GROUP,
}


def _first(item: dict, *keys, default=None):
    for key in keys:
        if item.get(key) not in (None, ""):
            return item[key]
    return default


class SnapshotDirectoryClient(DirectoryServiceClient):
    """Directory client backed by an in-memory snapshot.

    Usage:
        client = SnapshotDirectoryClient()
        client.load_files(["tenant_export.json"])

        # Or build one directly
        client = SnapshotDirectoryClient()
        client.add_object(Group(object_id="g1", display_name="Admins"))
        client.add_object(User(object_id="u1", display_name="Alice",
                               user_principal_name="alice@corp.com"))
        client.add_member("g1", "u1")
    """

    def __init__(
        self,
        verbose: bool = False,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize an empty snapshot.

        Args:
            verbose: Whether to print progress messages
            progress_callback: Optional callback for progress updates
        """
        self.verbose = verbose
        self.progress_callback = progress_callback

        self._objects: dict[str, DirectoryObject] = {}
        self._groups_by_name: dict[str, str] = {}  # display_name.lower() -> id
        self._members: dict[str, list[tuple]] = {}  # group id -> [(id, kind or None)]
        self._owners: dict[str, list[tuple]] = {}   # device id -> [(id, kind or None)]

        self.request_counts: Counter = Counter()

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def add_object(self, obj: DirectoryObject) -> None:
        """Add or replace a directory object."""
        self._objects[obj.object_id] = obj
        if isinstance(obj, Group):
            self._members.setdefault(obj.object_id, [])
            if obj.display_name:
                self._groups_by_name[obj.display_name.lower()] = obj.object_id
        elif isinstance(obj, Device):
            self._owners.setdefault(obj.object_id, [])

    def add_member(self, group_id: str, member_id: str, kind: Optional[ObjectKind] = None) -> None:
        """Append a direct member reference to a group."""
        self._members.setdefault(group_id, []).append((member_id, kind))

    def add_owner(self, device_id: str, owner_id: str, kind: Optional[ObjectKind] = None) -> None:
        """Append a registered owner reference to a device."""
        self._owners.setdefault(device_id, []).append((owner_id, kind))

    @property
    def object_count(self) -> int:
        return len(self._objects)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_files(self, file_paths: list[str]) -> "SnapshotDirectoryClient":
        """Load one or more JSON or zip files into the snapshot.

        Raises:
            FileNotFoundError: If a path does not exist
        """
        for file_path in file_paths:
            self._load_file(file_path)

        self._log(f"[+] Snapshot holds {self.object_count} objects")
        return self

    def load_zip(self, zip_path: str) -> "SnapshotDirectoryClient":
        """Load every JSON file inside a zip archive."""
        with zipfile.ZipFile(zip_path, 'r') as zf:
            for name in zf.namelist():
                if name.endswith('.json'):
                    self._log(f"[*] Loading {name} from zip...")
                    with zf.open(name) as f:
                        self.load_dict(json.load(f))
        return self

    def _load_file(self, file_path: str) -> None:
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {file_path}")

        self._log(f"[*] Loading {path.name}...")

        if path.suffix == '.zip':
            self.load_zip(str(path))
        else:
            with open(path, 'r', encoding='utf-8') as f:
                self.load_dict(json.load(f))

    def load_dict(self, data) -> "SnapshotDirectoryClient":
        """Load parsed JSON data in sectioned or flat form."""
        if isinstance(data, dict) and any(key in data for key in SECTION_KINDS):
            for section, kind in SECTION_KINDS.items():
                for item in data.get(section, []):
                    self._load_item(item, kind)
            return self

        if isinstance(data, dict) and 'value' in data:
            data = data['value']

        if isinstance(data, list):
            for item in data:
                kind = ObjectKind.from_string(_first(item, '@odata.type', 'kind', 'type'))
                if kind == ObjectKind.UNKNOWN:
                    self._log(f"[!] Skipping object with unsupported type: {item.get('id')}")
                    continue
                self._load_item(item, kind)
            return self

        raise ValueError("Unrecognized snapshot format")

    def _load_item(self, item: dict, kind: ObjectKind) -> None:
        object_id = _first(item, 'id', 'objectId', 'object_id')
        if not object_id:
            self._log(f"[!] Skipping {kind.value} without an id")
            return

        display_name = _first(item, 'displayName', 'display_name', 'name', default="")

        if kind == ObjectKind.USER:
            obj = User(
                object_id=object_id,
                display_name=display_name,
                user_principal_name=_first(item, 'userPrincipalName', 'user_principal_name', default="")
            )
        elif kind == ObjectKind.DEVICE:
            obj = Device(object_id=object_id, display_name=display_name)
            for ref in item.get('registeredOwners', item.get('owners', [])):
                self.add_owner(object_id, *self._parse_ref(ref))
        elif kind == ObjectKind.SERVICE_PRINCIPAL:
            obj = ServicePrincipal(object_id=object_id, display_name=display_name)
        else:
            obj = Group(object_id=object_id, display_name=display_name)
            for ref in item.get('members', []):
                self.add_member(object_id, *self._parse_ref(ref))

        self.add_object(obj)

    def _parse_ref(self, ref) -> tuple:
        """Turn a JSON reference into (object_id, kind or None)."""
        if isinstance(ref, dict):
            tag = _first(ref, '@odata.type', 'kind', 'type')
            kind = ObjectKind.from_string(tag) if tag else None
            return _first(ref, 'id', 'objectId', 'object_id'), kind
        return str(ref), None

    # ------------------------------------------------------------------
    # DirectoryServiceClient
    # ------------------------------------------------------------------

    def _lookup(self, object_id: str, cls: type, kind: ObjectKind):
        obj = self._objects.get(object_id)
        if not isinstance(obj, cls):
            raise ObjectNotFoundError(object_id, kind=kind.value)
        return obj

    def _to_refs(self, refs: list[tuple]) -> list[MemberRef]:
        result = []
        for object_id, kind in refs:
            if kind is None:
                obj = self._objects.get(object_id)
                kind = obj.kind if obj is not None else ObjectKind.UNKNOWN
            result.append(MemberRef(object_id=object_id, kind=kind))
        return result

    def get_group_by_name(self, name: str) -> Optional[Group]:
        self.request_counts['get_group_by_name'] += 1
        group_id = self._groups_by_name.get(name.lower())
        if group_id is None:
            return None
        return self._objects.get(group_id)

    def get_group(self, group_id: str) -> Group:
        self.request_counts['get_group'] += 1
        return self._lookup(group_id, Group, ObjectKind.GROUP)

    def get_group_members(self, group_id: str) -> list[MemberRef]:
        self.request_counts['get_group_members'] += 1
        self._lookup(group_id, Group, ObjectKind.GROUP)
        return self._to_refs(self._members.get(group_id, []))

    def get_user(self, user_id: str) -> User:
        self.request_counts['get_user'] += 1
        return self._lookup(user_id, User, ObjectKind.USER)

    def get_device(self, device_id: str) -> Device:
        self.request_counts['get_device'] += 1
        device = self._lookup(device_id, Device, ObjectKind.DEVICE)
        # Owner UPNs are filled in by the resolver, never stored here
        return Device(
            object_id=device.object_id,
            display_name=device.display_name,
            properties=dict(device.properties)
        )

    def get_service_principal(self, sp_id: str) -> ServicePrincipal:
        self.request_counts['get_service_principal'] += 1
        return self._lookup(sp_id, ServicePrincipal, ObjectKind.SERVICE_PRINCIPAL)

    def get_device_registered_owners(self, device_id: str) -> list[MemberRef]:
        self.request_counts['get_device_registered_owners'] += 1
        self._lookup(device_id, Device, ObjectKind.DEVICE)
        return self._to_refs(self._owners.get(device_id, []))
