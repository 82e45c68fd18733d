"""
memberscope Membership Graph
============================

NetworkX-based record of the nesting structure discovered during a resolution.

Design Decisions:
-----------------
1. Uses NetworkX DiGraph as the underlying data structure
2. Nodes are stored with their DirectoryObject as attributes
3. Edges point from container to contained object:
   - Contains: Group -> member (user, device, service principal, group)
   - RegisteredOwner: Device -> owning User
4. Edges into already-visited groups are still recorded, so cycles and
   diamond nesting remain visible after the run

The resolver owns one graph per run; reporting reads it afterwards.
"""

from collections import defaultdict
from enum import Enum
from typing import Iterator, Optional

import networkx as nx

from .schemas import DirectoryObject, ObjectKind


class EdgeType(Enum):
    """Relationships recorded in the membership graph."""
    CONTAINS = "Contains"
    REGISTERED_OWNER = "RegisteredOwner"


class MembershipGraph:
    """Abstraction layer over NetworkX for membership queries.

    Example Usage:
        graph = MembershipGraph(root)
        graph.add_object(user)
        graph.add_membership(root.object_id, user.object_id)

        graph.depth_of(user.object_id)          # 1
        graph.nesting_path(user.object_id)      # [root_id, user_id]
    """

    def __init__(self, root: Optional[DirectoryObject] = None):
        """Initialize an empty graph, optionally seeded with the root group."""
        self._graph = nx.DiGraph()
        self._nodes_by_kind: dict[ObjectKind, set[str]] = defaultdict(set)
        self.root_id: Optional[str] = None

        if root is not None:
            self.add_object(root)
            self.root_id = root.object_id

    @property
    def nx_graph(self) -> nx.DiGraph:
        """Access underlying NetworkX graph for advanced operations."""
        return self._graph

    def add_object(self, obj: DirectoryObject) -> None:
        """Add or refresh a node with full object data."""
        self._graph.add_node(
            obj.object_id,
            node_obj=obj,
            kind=obj.kind,
            name=obj.display_name,
        )
        self._nodes_by_kind[obj.kind].add(obj.object_id)

    def add_placeholder(self, object_id: str, kind: ObjectKind) -> None:
        """Add a node for an object whose lookup failed."""
        if not self._graph.has_node(object_id):
            self._graph.add_node(object_id, node_obj=None, kind=kind, name=object_id)
            self._nodes_by_kind[kind].add(object_id)

    def add_membership(self, group_id: str, member_id: str) -> None:
        """Record that group_id directly contains member_id."""
        self._graph.add_edge(group_id, member_id, edge_type=EdgeType.CONTAINS)

    def add_ownership(self, device_id: str, owner_id: str) -> None:
        """Record that owner_id is a registered owner of device_id."""
        self._graph.add_edge(device_id, owner_id, edge_type=EdgeType.REGISTERED_OWNER)

    def get_object(self, object_id: str) -> Optional[DirectoryObject]:
        if not self._graph.has_node(object_id):
            return None
        return self._graph.nodes[object_id].get('node_obj')

    def get_kind(self, object_id: str) -> ObjectKind:
        if not self._graph.has_node(object_id):
            return ObjectKind.UNKNOWN
        return self._graph.nodes[object_id].get('kind', ObjectKind.UNKNOWN)

    def get_name(self, object_id: str) -> str:
        """Display name for a node, or the id when unavailable."""
        if self._graph.has_node(object_id):
            return self._graph.nodes[object_id].get('name') or object_id
        return object_id

    def get_ids_by_kind(self, kind: ObjectKind) -> set[str]:
        return set(self._nodes_by_kind[kind])

    def iter_edges(self, edge_type: Optional[EdgeType] = None) -> Iterator[tuple]:
        """Iterate (source, target, edge_type) triples, optionally filtered."""
        for source, target, attrs in self._graph.edges(data=True):
            current = attrs.get('edge_type')
            if edge_type is None or current == edge_type:
                yield source, target, current

    def direct_members(self, group_id: str) -> list[str]:
        if not self._graph.has_node(group_id):
            return []
        return [
            target for target in self._graph.successors(group_id)
            if self._graph.edges[group_id, target].get('edge_type') == EdgeType.CONTAINS
        ]

    def containing_groups(self, object_id: str) -> list[str]:
        """Groups that directly contain object_id."""
        if not self._graph.has_node(object_id):
            return []
        return [
            source for source in self._graph.predecessors(object_id)
            if self._graph.edges[source, object_id].get('edge_type') == EdgeType.CONTAINS
        ]

    def _membership_view(self) -> nx.DiGraph:
        """Subgraph view restricted to Contains edges."""
        return nx.subgraph_view(
            self._graph,
            filter_edge=lambda u, v: self._graph.edges[u, v].get('edge_type') == EdgeType.CONTAINS
        )

    def nesting_path(self, object_id: str) -> Optional[list]:
        """Shortest chain of groups from the root down to object_id.

        Returns:
            List of object ids starting with the root, or None if unreachable
        """
        if self.root_id is None or not self._graph.has_node(object_id):
            return None
        try:
            return nx.shortest_path(self._membership_view(), self.root_id, object_id)
        except nx.NetworkXNoPath:
            return None

    def depth_of(self, object_id: str) -> Optional[int]:
        """Nesting depth of object_id (direct members of the root are depth 1)."""
        path = self.nesting_path(object_id)
        if path is None:
            return None
        return len(path) - 1

    def depths(self) -> dict[str, int]:
        """Depth of every node reachable from the root through memberships."""
        if self.root_id is None:
            return {}
        lengths = nx.single_source_shortest_path_length(self._membership_view(), self.root_id)
        lengths.pop(self.root_id, None)
        return dict(lengths)

    @property
    def max_depth(self) -> int:
        depths = self.depths()
        return max(depths.values()) if depths else 0

    def has_cycles(self) -> bool:
        """Whether any group nesting cycle was observed."""
        return not nx.is_directed_acyclic_graph(self._membership_view())

    def nesting_cycles(self) -> list[list]:
        """All elementary group nesting cycles, as lists of group ids."""
        return [list(cycle) for cycle in nx.simple_cycles(self._membership_view())]

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def to_dict(self) -> dict:
        """Convert graph to dictionary for serialization."""
        nodes = []
        for node_id, attrs in self._graph.nodes(data=True):
            nodes.append({
                "id": node_id,
                "name": attrs.get('name', node_id),
                "kind": attrs.get('kind', ObjectKind.UNKNOWN).value,
            })

        edges = []
        for source, target, edge_type in self.iter_edges():
            edges.append({
                "source": source,
                "target": target,
                "type": edge_type.value if edge_type else None,
            })

        return {"root": self.root_id, "nodes": nodes, "edges": edges}
