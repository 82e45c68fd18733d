"""
Membership Visualization Module
===============================

Creates an interactive HTML view of a membership graph using pyvis.

Design Decisions:
-----------------
1. Hierarchical top-down layout with the root group at the top
2. Color coding by object kind; the root group is highlighted
3. Registered-owner edges are dashed to set them apart from membership
4. Skipped (unresolved) members are drawn gray with their raw id
"""

from pathlib import Path
from typing import Optional

from pyvis.network import Network

from ..model.membership_graph import MembershipGraph, EdgeType
from ..model.schemas import ObjectKind


# Color schemes
KIND_COLORS = {
    ObjectKind.USER: "#4299e1",               # Blue
    ObjectKind.GROUP: "#48bb78",              # Green
    ObjectKind.DEVICE: "#ed8936",             # Orange
    ObjectKind.SERVICE_PRINCIPAL: "#9f7aea",  # Purple
    ObjectKind.UNKNOWN: "#a0aec0",            # Gray
}

KIND_SHAPES = {
    ObjectKind.GROUP: "box",
    ObjectKind.DEVICE: "square",
    ObjectKind.SERVICE_PRINCIPAL: "diamond",
}

ROOT_COLOR = "#e53e3e"

EDGE_COLORS = {
    EdgeType.CONTAINS: "#718096",
    EdgeType.REGISTERED_OWNER: "#ed8936",
}

NETWORK_OPTIONS = """
{
    "nodes": {
        "font": {"size": 14, "face": "arial"},
        "borderWidth": 2
    },
    "edges": {
        "arrows": {"to": {"enabled": true, "scaleFactor": 0.6}},
        "smooth": {"type": "cubicBezier"}
    },
    "layout": {
        "hierarchical": {
            "enabled": true,
            "direction": "UD",
            "sortMethod": "directed",
            "nodeSpacing": 180,
            "levelSeparation": 140
        }
    },
    "physics": {"enabled": false}
}
"""


class MembershipVisualizer:
    """Creates visualizations of membership graphs.

    Usage:
        visualizer = MembershipVisualizer(result.graph, output_dir="output")
        html_path = visualizer.create_html("tier0_members.html")
    """

    def __init__(self, graph: MembershipGraph, output_dir: str = "output"):
        """Initialize the visualizer.

        Args:
            graph: MembershipGraph to visualize
            output_dir: Directory for output files
        """
        self.graph = graph
        self.output_dir = Path(output_dir)

    def _node_title(self, node_id: str, kind: ObjectKind) -> str:
        lines = [
            f"Name: {self.graph.get_name(node_id)}",
            f"Type: {kind.value}",
            f"Id: {node_id}",
        ]
        depth = self.graph.depth_of(node_id)
        if depth:
            lines.append(f"Depth: {depth}")

        obj = self.graph.get_object(node_id)
        if obj is None and node_id != self.graph.root_id:
            lines.append("Unresolved")
        elif kind == ObjectKind.USER and getattr(obj, "user_principal_name", ""):
            lines.append(f"UPN: {obj.user_principal_name}")
        elif kind == ObjectKind.DEVICE and getattr(obj, "primary_user_principal_names", None):
            lines.append(f"Primary user: {', '.join(obj.primary_user_principal_names)}")
        return "\n".join(lines)

    def build_network(self) -> Network:
        """Build the pyvis network without writing it."""
        net = Network(
            height="750px",
            width="100%",
            bgcolor="#1a202c",
            font_color="#e2e8f0",
            directed=True,
            notebook=False,
            cdn_resources="remote"
        )
        net.set_options(NETWORK_OPTIONS)

        nx_graph = self.graph.nx_graph
        for node_id in nx_graph.nodes():
            kind = self.graph.get_kind(node_id)
            is_root = node_id == self.graph.root_id
            net.add_node(
                node_id,
                label=self.graph.get_name(node_id),
                title=self._node_title(node_id, kind),
                color=ROOT_COLOR if is_root else KIND_COLORS.get(kind, KIND_COLORS[ObjectKind.UNKNOWN]),
                shape=KIND_SHAPES.get(kind, "dot"),
                size=30 if is_root else 18
            )

        for source, target, edge_type in self.graph.iter_edges():
            net.add_edge(
                source,
                target,
                color=EDGE_COLORS.get(edge_type, "#718096"),
                dashes=edge_type == EdgeType.REGISTERED_OWNER,
                title=edge_type.value if edge_type else ""
            )

        return net

    def create_html(self, filename: Optional[str] = None) -> str:
        """Write the interactive HTML visualization.

        Returns:
            Path to the generated HTML file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / (filename or "membership_graph.html")

        net = self.build_network()
        net.save_graph(str(output_path))
        return str(output_path)
