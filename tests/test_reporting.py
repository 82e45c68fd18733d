import csv
import json
from datetime import datetime
from pathlib import Path

import pytest

from memberscope.directory import SnapshotDirectoryClient
from memberscope.reporting import (
    MembershipVisualizer, ReportBuilder, format_member_table, generate_text_report, write_csv
)
from memberscope.resolution import GroupMembershipResolver


@pytest.fixture
def result(snapshot_data):
    client = SnapshotDirectoryClient().load_dict(snapshot_data)
    return GroupMembershipResolver(client).resolve_by_name("Tier0 Admins")


def test_write_csv(tmp_path, result):
    path = write_csv(result.records, tmp_path / "members.csv")

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    assert rows[0] == ["Name", "Type", "UserPrincipalName", "PrimaryUser", "Id"]
    assert ["WS01", "Device", "", "alice@x.com, bob@x.com", "d-ws01"] in rows
    assert len(rows) == len(result.records) + 1


def test_member_table(result):
    table = format_member_table(result.records).splitlines()

    assert table[0].startswith("Name")
    assert set(table[1].replace(" ", "")) == {"-"}
    assert len(table) == len(result.records) + 2


def test_text_report(result):
    report = generate_text_report(result)

    assert "Group Membership: Tier0 Admins" in report
    assert "Total Members: 4" in report
    assert "Deepest Nesting: 2" in report
    assert "SKIPPED" in report
    assert "u-ghost" in report


def test_file_stem(result):
    builder = ReportBuilder(file_prefix="audit")

    assert builder.file_stem(result, datetime(2024, 1, 2, 3, 4, 5)) == "audit_Tier0_Admins_20240102_030405"


def test_export_all_formats(tmp_path, result):
    messages = []
    builder = ReportBuilder(output_dir=str(tmp_path / "out"), progress_callback=messages.append)

    paths = builder.export(result, as_csv=True, as_json=True, as_html=True)

    assert set(paths) == {"csv", "json", "html"}
    with open(paths["json"], encoding="utf-8") as f:
        data = json.load(f)
    assert data["root_group"]["name"] == "Tier0 Admins"
    assert data["counts"]["Device"] == 1
    assert data["skipped"][0]["id"] == "u-ghost"
    assert Path(paths["html"]).exists()
    assert len(messages) == 3


def test_visualizer_network(result):
    net = MembershipVisualizer(result.graph).build_network()

    node_ids = {node["id"] for node in net.nodes}
    assert {"g-root", "g-ops", "u-alice", "u-bob", "d-ws01", "sp-backup", "u-ghost"} <= node_ids

    owner_edges = [edge for edge in net.edges if edge.get("dashes")]
    assert {(edge["from"], edge["to"]) for edge in owner_edges} == {
        ("d-ws01", "u-alice"),
        ("d-ws01", "u-bob"),
    }


def test_visualizer_writes_html(tmp_path, result):
    path = MembershipVisualizer(result.graph, output_dir=str(tmp_path)).create_html("graph.html")

    assert path.endswith("graph.html")
    assert "g-root" in (tmp_path / "graph.html").read_text(encoding="utf-8")
