import pytest

from memberscope.config import ResolverConfig
from memberscope.directory import SnapshotDirectoryClient
from memberscope.errors import DirectoryConnectionError, GroupNotFoundError, ObjectNotFoundError
from memberscope.model import Device, Group, MemberRecord, ObjectKind, User
from memberscope.resolution import GroupMembershipResolver

from conftest import build_client, kinds_by_id


def test_nested_scenario_deduplicates_user(nested_client):
    records = GroupMembershipResolver(nested_client).resolve("g1")

    assert sorted(r.object_id for r in records) == ["d1", "g2", "u1"]
    assert kinds_by_id(records) == {
        "u1": ObjectKind.USER,
        "g2": ObjectKind.GROUP,
        "d1": ObjectKind.DEVICE,
    }
    device = next(r for r in records if r.object_id == "d1")
    assert device.primary_user == "u1@corp.com"


def test_resolve_returns_member_records(nested_client):
    records = GroupMembershipResolver(nested_client).resolve("g1")
    assert all(isinstance(r, MemberRecord) for r in records)


def test_root_group_is_never_emitted(nested_client):
    records = GroupMembershipResolver(nested_client).resolve("g1")
    assert "g1" not in {r.object_id for r in records}


def test_acyclic_diamond_expands_each_group_once():
    client = build_client(
        groups={"g1": ["g2", "g3"], "g2": ["g4"], "g3": ["g4"], "g4": ["u1"]},
        users={"u1": "u1@corp.com"},
    )
    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert result.visited_groups == ["g1", "g2", "g4", "g3"]
    assert client.request_counts["get_group_members"] == 4
    assert sorted(r.object_id for r in result.records) == ["g2", "g3", "g4", "u1"]


def test_cycle_terminates_and_visits_each_group_once(cyclic_client):
    result = GroupMembershipResolver(cyclic_client).resolve_detailed("a")

    assert result.visited_groups == ["a", "b"]
    assert sorted(r.object_id for r in result.records) == ["b", "ua", "ub"]
    assert result.metadata["has_cycles"] is True


def test_self_referencing_root():
    client = build_client(groups={"g1": ["g1", "u1"]}, users={"u1": "u1@corp.com"})
    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert [r.object_id for r in result.records] == ["u1"]
    assert result.visited_groups == ["g1"]


def test_user_in_two_nested_groups_appears_once():
    client = build_client(
        groups={"root": ["left", "right"], "left": ["alice"], "right": ["alice"]},
        users={"alice": "alice@corp.com"},
    )
    records = GroupMembershipResolver(client).resolve("root")

    assert [r.object_id for r in records].count("alice") == 1


def test_nested_group_record_precedes_its_members():
    client = build_client(
        groups={"g1": ["g2", "u9"], "g2": ["u2"]},
        users={"u2": "u2@corp.com", "u9": "u9@corp.com"},
    )
    records = GroupMembershipResolver(client).resolve("g1")

    assert [r.object_id for r in records] == ["g2", "u2", "u9"]


def test_device_without_user_owners_has_empty_primary_user():
    client = build_client(
        groups={"g1": ["d1", "d2"], "owners": []},
        devices={"d1": [], "d2": ["sp1", "owners"]},
        service_principals=["sp1"],
    )
    records = GroupMembershipResolver(client).resolve("g1")

    assert {r.object_id: r.primary_user for r in records} == {"d1": "", "d2": ""}


def test_device_with_two_user_owners_joins_in_owner_order():
    client = build_client(
        groups={"g1": ["d1"]},
        users={"bob": "bob@x.com", "alice": "alice@x.com"},
        devices={"d1": ["alice", "bob"]},
    )
    records = GroupMembershipResolver(client).resolve("g1")

    assert records[0].primary_user == "alice@x.com, bob@x.com"


def test_device_owner_upns_stored_on_graph_object():
    client = build_client(
        groups={"g1": ["d1"]},
        users={"alice": "alice@x.com"},
        devices={"d1": ["alice"]},
    )
    result = GroupMembershipResolver(client).resolve_detailed("g1")

    device = result.graph.get_object("d1")
    assert device.primary_user_principal_names == ["alice@x.com"]


def test_service_principal_has_empty_upn_and_primary_user():
    client = build_client(groups={"g1": ["sp1"]}, service_principals=["sp1"])
    records = GroupMembershipResolver(client).resolve("g1")

    assert records == [MemberRecord(name="SP1", kind=ObjectKind.SERVICE_PRINCIPAL, object_id="sp1")]
    assert records[0].user_principal_name == ""
    assert records[0].primary_user == ""


def test_user_record_carries_upn(nested_client):
    records = GroupMembershipResolver(nested_client).resolve("g1")
    user = next(r for r in records if r.object_id == "u1")

    assert user.user_principal_name == "u1@corp.com"
    assert user.name == "U1"


def test_missing_root_fails_before_traversal():
    client = build_client(groups={"g1": []})

    with pytest.raises(GroupNotFoundError):
        GroupMembershipResolver(client).resolve("nope")
    assert client.request_counts["get_group_members"] == 0


def test_resolve_by_name(nested_client):
    result = GroupMembershipResolver(nested_client).resolve_by_name("g1")

    assert result.root_group.object_id == "g1"
    assert len(result.records) == 3


def test_resolve_by_name_missing_group(nested_client):
    with pytest.raises(GroupNotFoundError):
        GroupMembershipResolver(nested_client).resolve_by_name("Domain Admins")


def test_stale_member_is_skipped_by_default():
    client = build_client(groups={"g1": ["u1"]}, users={"u1": "u1@corp.com"})
    client.add_member("g1", "ghost", kind=ObjectKind.USER)

    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert [r.object_id for r in result.records] == ["u1"]
    assert len(result.skipped) == 1
    assert result.skipped[0].object_id == "ghost"
    assert result.skipped[0].parent_id == "g1"


def test_stale_member_aborts_with_abort_policy():
    client = build_client(groups={"g1": ["u1"]}, users={"u1": "u1@corp.com"})
    client.add_member("g1", "ghost", kind=ObjectKind.USER)
    resolver = GroupMembershipResolver(client, ResolverConfig(on_lookup_error="abort"))

    with pytest.raises(ObjectNotFoundError):
        resolver.resolve("g1")


def test_stale_device_owner_is_skipped():
    client = build_client(
        groups={"g1": ["d1"]},
        users={"alice": "alice@x.com"},
        devices={"d1": ["alice"]},
    )
    client.add_owner("d1", "gone", kind=ObjectKind.USER)

    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert result.records[0].primary_user == "alice@x.com"
    assert [s.object_id for s in result.skipped] == ["gone"]


def test_stale_nested_group_is_skipped():
    client = build_client(groups={"g1": ["u1"]}, users={"u1": "u1@corp.com"})
    client.add_member("g1", "old-group", kind=ObjectKind.GROUP)

    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert [r.object_id for r in result.records] == ["u1"]
    assert result.visited_groups == ["g1"]
    assert result.skipped[0].kind == ObjectKind.GROUP


def test_unknown_member_kind_is_skipped():
    client = build_client(groups={"g1": ["u1", "contact-1"]}, users={"u1": "u1@corp.com"})

    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert [r.object_id for r in result.records] == ["u1"]
    assert result.skipped[0].kind == ObjectKind.UNKNOWN
    assert result.skipped[0].reason == "unsupported object kind"


class FlakyClient(SnapshotDirectoryClient):
    def get_user(self, user_id):
        raise DirectoryConnectionError("socket closed")


def test_connection_errors_propagate_under_skip_policy():
    client = FlakyClient()
    client.add_object(Group(object_id="g1", display_name="G1"))
    client.add_object(User(object_id="u1", display_name="U1"))
    client.add_member("g1", "u1")

    with pytest.raises(DirectoryConnectionError):
        GroupMembershipResolver(client).resolve("g1")


def test_max_depth_stops_expansion():
    client = build_client(
        groups={"g1": ["g2", "u1"], "g2": ["u2"]},
        users={"u1": "u1@corp.com", "u2": "u2@corp.com"},
    )
    result = GroupMembershipResolver(client, ResolverConfig(max_depth=1)).resolve_detailed("g1")

    assert [r.object_id for r in result.records] == ["g2", "u1"]
    assert result.visited_groups == ["g1"]


def test_deep_nesting_does_not_recurse():
    depth = 3000
    groups = {f"g{i}": [f"g{i + 1}"] for i in range(depth)}
    groups[f"g{depth}"] = ["u1"]
    client = build_client(groups=groups, users={"u1": "u1@corp.com"})

    records = GroupMembershipResolver(client).resolve("g0")

    assert len(records) == depth + 1
    assert records[-1].object_id == "u1"


def test_resolver_can_be_reused(nested_client):
    resolver = GroupMembershipResolver(nested_client)

    first = resolver.resolve_detailed("g1")
    second = resolver.resolve_detailed("g1")

    assert first.visited_groups == second.visited_groups == ["g1", "g2"]
    assert [r.object_id for r in first.records] == [r.object_id for r in second.records]


def test_progress_callback_receives_messages(nested_client):
    messages = []
    GroupMembershipResolver(nested_client, progress_callback=messages.append).resolve("g1")

    assert messages[0].startswith("[*] Resolving members of")
    assert messages[-1].startswith("[+] Resolved 3 members across 2 groups")


def test_one_record_per_id_with_many_duplicates():
    client = build_client(
        groups={"g1": ["g2", "g3", "u1"], "g2": ["u1", "g3"], "g3": ["u1", "g2"]},
        users={"u1": "u1@corp.com"},
    )
    records = GroupMembershipResolver(client).resolve("g1")
    ids = [r.object_id for r in records]

    assert len(ids) == len(set(ids)) == 3


def test_depth_limit_reexpands_group_reached_on_shallower_path():
    # G is first met at depth 2 through A, then directly from the root
    client = build_client(
        groups={"r": ["a", "g"], "a": ["g"], "g": ["h"], "h": ["u"]},
        users={"u": "u@corp.com"},
    )
    result = GroupMembershipResolver(client, ResolverConfig(max_depth=3)).resolve_detailed("r")

    assert [r.object_id for r in result.records] == ["a", "g", "h", "u"]
    assert result.visited_groups == ["r", "a", "g", "h"]


def test_depth_limit_result_does_not_depend_on_member_order():
    users = {"u": "u@corp.com"}
    nesting = {"a": ["g"], "g": ["h"], "h": ["u"]}
    deep_first = build_client(groups={"r": ["a", "g"], **nesting}, users=users)
    shallow_first = build_client(groups={"r": ["g", "a"], **nesting}, users=users)
    config = ResolverConfig(max_depth=3)

    first = GroupMembershipResolver(deep_first, config).resolve("r")
    second = GroupMembershipResolver(shallow_first, config).resolve("r")

    assert {r.object_id for r in first} == {r.object_id for r in second} == {"a", "g", "h", "u"}


def test_fully_expanded_group_is_not_expanded_again():
    client = build_client(
        groups={"r": ["a", "g"], "a": ["g"], "g": ["u"]},
        users={"u": "u@corp.com"},
    )
    GroupMembershipResolver(client, ResolverConfig(max_depth=5)).resolve("r")

    assert client.request_counts["get_group_members"] == 3


class OwnerListingFailsClient(SnapshotDirectoryClient):
    def get_device_registered_owners(self, device_id):
        raise ObjectNotFoundError(device_id, kind="Device")


def owner_failure_client():
    client = OwnerListingFailsClient()
    client.add_object(Group(object_id="g1", display_name="G1"))
    client.add_object(Device(object_id="d1", display_name="WS01"))
    client.add_member("g1", "d1")
    return client


def test_failed_owner_listing_is_a_warning_not_a_skip():
    result = GroupMembershipResolver(owner_failure_client()).resolve_detailed("g1")

    assert [(r.object_id, r.primary_user) for r in result.records] == [("d1", "")]
    assert result.skipped == []
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("Registered owners of WS01 unavailable")
    assert result.graph.get_object("d1") is not None


def test_failed_owner_listing_aborts_with_abort_policy():
    resolver = GroupMembershipResolver(owner_failure_client(), ResolverConfig(on_lookup_error="abort"))

    with pytest.raises(ObjectNotFoundError):
        resolver.resolve("g1")


class ListingFailsClient(SnapshotDirectoryClient):
    def get_group_members(self, group_id):
        if group_id == "broken":
            self.request_counts["get_group_members"] += 1
            raise ObjectNotFoundError(group_id, kind="Group")
        return super().get_group_members(group_id)


def test_group_is_visited_before_its_member_listing():
    client = ListingFailsClient()
    for group_id in ("g1", "g2", "broken"):
        client.add_object(Group(object_id=group_id, display_name=group_id.upper()))
    client.add_object(User(object_id="u1", display_name="U1", user_principal_name="u1@corp.com"))
    client.add_member("g1", "broken")
    client.add_member("g1", "g2")
    client.add_member("g2", "broken")
    client.add_member("g2", "u1")

    result = GroupMembershipResolver(client).resolve_detailed("g1")

    assert result.visited_groups == ["g1", "broken", "g2"]
    assert [r.object_id for r in result.records] == ["broken", "g2", "u1"]
    assert client.request_counts["get_group_members"] == 3
    assert [(s.object_id, s.parent_id) for s in result.skipped] == [("broken", "g1")]
