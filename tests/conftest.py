import pytest

from memberscope.directory import SnapshotDirectoryClient
from memberscope.model import User, Device, ServicePrincipal, Group


def build_client(groups=None, users=None, devices=None, service_principals=None):
    """Build a snapshot from compact descriptions.

    groups: {group_id: [member_id, ...]}
    users: {user_id: upn}
    devices: {device_id: [owner_id, ...]}
    service_principals: [sp_id, ...]
    """
    client = SnapshotDirectoryClient()
    for user_id, upn in (users or {}).items():
        client.add_object(User(object_id=user_id, display_name=user_id.upper(), user_principal_name=upn))
    for sp_id in service_principals or []:
        client.add_object(ServicePrincipal(object_id=sp_id, display_name=sp_id.upper()))
    for device_id, owners in (devices or {}).items():
        client.add_object(Device(object_id=device_id, display_name=device_id.upper()))
        for owner_id in owners:
            client.add_owner(device_id, owner_id)
    for group_id in groups or {}:
        client.add_object(Group(object_id=group_id, display_name=group_id.upper()))
    for group_id, members in (groups or {}).items():
        for member_id in members:
            client.add_member(group_id, member_id)
    return client


@pytest.fixture
def nested_client():
    """G1 [U1, G2]; G2 [U1, D1]; D1 owned by U1."""
    return build_client(
        groups={"g1": ["u1", "g2"], "g2": ["u1", "d1"]},
        users={"u1": "u1@corp.com"},
        devices={"d1": ["u1"]},
    )


@pytest.fixture
def cyclic_client():
    """A [B, UA]; B [A, UB]."""
    return build_client(
        groups={"a": ["b", "ua"], "b": ["a", "ub"]},
        users={"ua": "ua@corp.com", "ub": "ub@corp.com"},
    )


@pytest.fixture
def snapshot_data():
    return {
        "users": [
            {"id": "u-alice", "displayName": "Alice", "userPrincipalName": "alice@x.com"},
            {"id": "u-bob", "displayName": "Bob", "userPrincipalName": "bob@x.com"},
        ],
        "devices": [
            {"id": "d-ws01", "displayName": "WS01", "registeredOwners": ["u-alice", "u-bob"]},
        ],
        "servicePrincipals": [
            {"id": "sp-backup", "displayName": "Backup App"},
        ],
        "groups": [
            {"id": "g-root", "displayName": "Tier0 Admins", "members": ["u-alice", "g-ops", "sp-backup"]},
            {"id": "g-ops", "displayName": "Ops", "members": [
                "d-ws01",
                {"id": "u-ghost", "@odata.type": "#microsoft.graph.user"},
            ]},
        ],
    }


def kinds_by_id(records):
    return {r.object_id: r.kind for r in records}

