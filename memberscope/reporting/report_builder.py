"""
Report Builder Module
=====================

Renders and exports resolution results.

Outputs:
- Console table of member records
- Text summary report
- CSV file (Name, Type, UserPrincipalName, PrimaryUser, Id)
- JSON report with records, counts, skipped members and the membership graph
- Interactive HTML membership graph (via MembershipVisualizer)

Design Decisions:
-----------------
1. Exported file names share one stem: prefix, group name and timestamp
2. The output directory is created on first export
3. Every export returns the path it wrote
"""

import csv
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..model.schemas import MemberRecord, ResolutionResult
from .visualization import MembershipVisualizer


def write_csv(records: list[MemberRecord], path: str) -> str:
    """Write member records to a CSV file with a header row."""
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(MemberRecord.CSV_HEADER)
        for record in records:
            writer.writerow(record.to_row())
    return str(path)


def format_member_table(records: list[MemberRecord]) -> str:
    """Format records as a fixed-width console table."""
    header = list(MemberRecord.CSV_HEADER)
    rows = [[str(value) for value in record.to_row()] for record in records]

    widths = [len(h) for h in header]
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))

    def fmt(values):
        return "  ".join(v.ljust(widths[i]) for i, v in enumerate(values)).rstrip()

    lines = [fmt(header), fmt(["-" * w for w in widths])]
    lines.extend(fmt(row) for row in rows)
    return "\n".join(lines)


def _safe_name(name: str) -> str:
    cleaned = re.sub(r'[^A-Za-z0-9._-]+', '_', name).strip('_')
    return cleaned or "group"


class ReportBuilder:
    """Exports resolution results to files.

    Usage:
        builder = ReportBuilder(output_dir="output")
        paths = builder.export(result, as_csv=True, as_json=True, as_html=True)
        print(paths["csv"])
    """

    def __init__(
        self,
        output_dir: str = "output",
        file_prefix: str = "group_members",
        verbose: bool = False,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the report builder.

        Args:
            output_dir: Directory for output files
            file_prefix: Prefix for every exported file name
            verbose: Whether to print progress messages
            progress_callback: Optional callback for progress updates
        """
        self.output_dir = Path(output_dir)
        self.file_prefix = file_prefix
        self.verbose = verbose
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    def file_stem(self, result: ResolutionResult, timestamp: Optional[datetime] = None) -> str:
        """Common stem for exported files, e.g. group_members_Tier0_20240101_120000."""
        timestamp = timestamp or datetime.now()
        group_name = _safe_name(result.root_group.display_name or result.root_group.object_id)
        return f"{self.file_prefix}_{group_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}"

    def export(
        self,
        result: ResolutionResult,
        as_csv: bool = True,
        as_json: bool = False,
        as_html: bool = False
    ) -> dict[str, str]:
        """Export a result in the requested formats.

        Returns:
            Dictionary mapping format name ("csv", "json", "html") to file path
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stem = self.file_stem(result)

        paths = {}
        if as_csv:
            paths["csv"] = self.export_csv(result, self.output_dir / f"{stem}.csv")
        if as_json:
            paths["json"] = self.export_json(result, self.output_dir / f"{stem}.json")
        if as_html:
            paths["html"] = self.export_html(result, f"{stem}.html")
        return paths

    def export_csv(self, result: ResolutionResult, path: Path) -> str:
        written = write_csv(result.records, str(path))
        self._log(f"[+] CSV written to {written}")
        return written

    def export_json(self, result: ResolutionResult, path: Path) -> str:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, default=str)
        self._log(f"[+] JSON report written to {path}")
        return str(path)

    def export_html(self, result: ResolutionResult, filename: str) -> str:
        visualizer = MembershipVisualizer(result.graph, output_dir=str(self.output_dir))
        html_path = visualizer.create_html(filename=filename)
        self._log(f"[+] Membership graph written to {html_path}")
        return html_path


def generate_text_report(result: ResolutionResult) -> str:
    """Generate a text-based report summary.

    Args:
        result: ResolutionResult to summarize

    Returns:
        Formatted text report
    """
    counts = result.counts_by_kind()
    graph = result.graph

    lines = [
        "=" * 60,
        f"Group Membership: {result.root_group.display_name}",
        "=" * 60,
        "",
        f"Generated: {result.metadata.get('timestamp', 'Unknown')}",
        f"Group Id: {result.root_group.object_id}",
        "",
        "SUMMARY",
        "-" * 40,
        f"Total Members: {len(result.records)}",
        f"  - Users: {counts.get('User', 0)}",
        f"  - Devices: {counts.get('Device', 0)}",
        f"  - Service Principals: {counts.get('ServicePrincipal', 0)}",
        f"  - Nested Groups: {counts.get('Group', 0)}",
        f"Groups Expanded: {len(result.visited_groups)}",
    ]

    if graph is not None:
        lines.append(f"Deepest Nesting: {graph.max_depth}")
        if graph.has_cycles():
            lines.append("Nesting Cycles:")
            for cycle in graph.nesting_cycles():
                names = [graph.get_name(group_id) for group_id in cycle]
                lines.append(f"  - {' -> '.join(names + names[:1])}")

    lines.extend(["", "MEMBERS", "-" * 40, format_member_table(result.records)])

    if result.skipped:
        lines.extend(["", "SKIPPED", "-" * 40])
        for skipped in result.skipped:
            lines.append(f"  - {skipped.kind.value} {skipped.object_id} (in {skipped.parent_id}): {skipped.reason}")

    if result.warnings:
        lines.extend(["", "WARNINGS", "-" * 40])
        lines.extend(f"  - {warning}" for warning in result.warnings)

    lines.extend(["", "=" * 60])
    return "\n".join(lines)
