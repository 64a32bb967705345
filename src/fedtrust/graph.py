"""
fedtrust.graph — Federation trust graph: typed property graph and structural queries.

Nodes: organizations, models, insights, extensions, policies.
Edges: trusts, collaborates, uses, publishes, installs, enforces.

The graph is a derived projection of the OrganizationRegistry. It can be
rebuilt in full (initialize_graph) or extended one node/edge at a time.
Edges are keyed by (source, type, target); the adjacency index keeps one
entry per edge, in insertion order, so traversal is deterministic and every
traversed hop resolves to the exact edge that produced it.

All algorithms are self-contained (no networkx dependency). Reads work on a
copy of the state taken under the graph lock, so a concurrent rebuild or
incremental insert never shows a reader a half-built graph.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional, Sequence, Union

from .audit import AuditSink, AuditTrail, FederationEventType
from .models import NEUTRAL_TRUST_SCORE, Organization, TrustRelationship, clamp, coerce_enum
from .registry import OrganizationRegistry

logger = logging.getLogger(__name__)

USAGE_WEIGHT = 0.8


class GraphNodeType(str, Enum):
    ORGANIZATION = "organization"
    MODEL = "model"
    INSIGHT = "insight"
    EXTENSION = "extension"
    POLICY = "policy"


class GraphEdgeType(str, Enum):
    TRUSTS = "trusts"
    COLLABORATES = "collaborates"
    USES = "uses"
    PUBLISHES = "publishes"
    INSTALLS = "installs"
    ENFORCES = "enforces"


class FilterOperator(str, Enum):
    EQ = "eq"
    GT = "gt"
    LT = "lt"
    CONTAINS = "contains"


class EdgeKey(NamedTuple):
    source: str
    type: GraphEdgeType
    target: str

    @property
    def id(self) -> str:
        return f"{self.source}-{self.type.value}-{self.target}"


@dataclass
class GraphNode:
    id: str
    type: GraphNodeType
    label: str
    properties: dict[str, Any] = field(default_factory=dict)
    created: float = 0.0
    updated: float = 0.0


@dataclass
class GraphEdge:
    source: str
    target: str
    type: GraphEdgeType
    weight: float
    properties: dict[str, Any] = field(default_factory=dict)
    created: float = 0.0
    updated: float = 0.0

    @property
    def key(self) -> EdgeKey:
        return EdgeKey(self.source, self.type, self.target)

    @property
    def id(self) -> str:
        return self.key.id


@dataclass
class PropertyFilter:
    """Predicate on a node property: eq, gt, lt (numbers) or contains (strings, lists)."""
    property: str
    operator: FilterOperator
    value: Any

    def __post_init__(self):
        self.operator = coerce_enum(FilterOperator, self.operator)

    def matches(self, node: GraphNode) -> bool:
        actual = node.properties.get(self.property)
        if self.operator == FilterOperator.EQ:
            return actual == self.value
        if self.operator in (FilterOperator.GT, FilterOperator.LT):
            if not _is_number(actual) or not _is_number(self.value):
                return False
            return actual > self.value if self.operator == FilterOperator.GT else actual < self.value
        if isinstance(actual, str):
            return isinstance(self.value, str) and self.value in actual
        if isinstance(actual, (list, tuple, set, frozenset)):
            return self.value in actual
        return False


@dataclass
class GraphQuery:
    node_types: Optional[Sequence[Union[GraphNodeType, str]]] = None
    edge_types: Optional[Sequence[Union[GraphEdgeType, str]]] = None
    filters: Sequence[PropertyFilter] = ()
    limit: Optional[int] = None


@dataclass
class QueryResult:
    nodes: list[GraphNode]
    edges: list[GraphEdge]


@dataclass
class PathResult:
    path: list[str]
    length: int
    weight: float  # mean edge weight along the path
    edges: list[GraphEdge]


@dataclass
class InfluenceEntry:
    organization_id: str
    name: str
    influence: float
    connections: int


@dataclass
class Community:
    community_id: str
    organizations: list[str]
    density: float


@dataclass
class GraphStats:
    node_count: int = 0
    edge_count: int = 0
    nodes_by_type: dict[str, int] = field(default_factory=dict)
    edges_by_type: dict[str, int] = field(default_factory=dict)
    avg_degree: float = 0.0
    density: float = 0.0

    def to_dict(self) -> dict:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "nodes_by_type": dict(self.nodes_by_type),
            "edges_by_type": dict(self.edges_by_type),
            "avg_degree": round(self.avg_degree, 4),
            "density": round(self.density, 4),
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _GraphState:
    """Nodes, edges and adjacency. Only ever mutated through insert_*."""

    def __init__(self):
        self.nodes: dict[str, GraphNode] = {}
        self.edges: dict[EdgeKey, GraphEdge] = {}
        self.adjacency: dict[str, list[EdgeKey]] = {}  # source -> outgoing edge keys

    def insert_node(self, node: GraphNode) -> None:
        self.nodes[node.id] = node
        self.adjacency.setdefault(node.id, [])

    def insert_edge(self, edge: GraphEdge) -> None:
        key = edge.key
        if key not in self.edges:
            self.adjacency.setdefault(edge.source, []).append(key)
        self.edges[key] = edge

    def copy(self) -> "_GraphState":
        view = _GraphState()
        view.nodes = dict(self.nodes)
        view.edges = dict(self.edges)
        view.adjacency = {k: list(v) for k, v in self.adjacency.items()}
        return view


class TrustGraph:
    """Typed federation graph built from an OrganizationRegistry."""

    def __init__(
        self,
        registry: OrganizationRegistry,
        clock: Optional[Callable[[], float]] = None,
        audit: Optional[AuditSink] = None,
    ):
        self._registry = registry
        self._clock = clock or time.time
        self._audit = audit if audit is not None else AuditTrail(clock=self._clock)
        self._state = _GraphState()
        self._lock = threading.RLock()

    def _view(self) -> _GraphState:
        with self._lock:
            return self._state.copy()

    # ── Construction ──

    def initialize_graph(self) -> GraphStats:
        """
        Rebuild from the registry: every organization as a node, every trust
        relationship as an edge. Built off to the side and swapped in at once.
        Incrementally added models, insights, extensions and policies are dropped.
        """
        now = self._clock()
        state = _GraphState()
        for org in self._registry.all_organizations():
            state.insert_node(_organization_node(org, now))

        skipped = 0
        for rel in self._registry.all_relationships():
            if rel.from_org_id in state.nodes and rel.to_org_id in state.nodes:
                state.insert_edge(_trust_edge(rel))
            else:
                skipped += 1

        with self._lock:
            self._state = state

        if skipped:
            logger.warning("Skipped %d trust relationships with unknown endpoints", skipped)
        logger.info("Federation graph initialized with %d nodes and %d edges",
                    len(state.nodes), len(state.edges))
        self._audit.record(FederationEventType.GRAPH_INITIALIZED, "federation",
                           {"nodes": len(state.nodes), "edges": len(state.edges)})
        return self.get_graph_statistics()

    def _add_node(self, node: GraphNode) -> GraphNode:
        with self._lock:
            existing = self._state.nodes.get(node.id)
            if existing is not None:
                node.created = existing.created
            self._state.insert_node(node)
        return node

    def _add_edge(self, edge: GraphEdge) -> GraphEdge:
        edge.weight = clamp(float(edge.weight), 0.0, 1.0)
        with self._lock:
            existing = self._state.edges.get(edge.key)
            if existing is not None:
                edge.created = existing.created
            self._state.insert_edge(edge)
        return edge

    def add_organization_node(self, org: Organization) -> GraphNode:
        return self._add_node(_organization_node(org, self._clock()))

    def add_trust_edge(self, rel: TrustRelationship) -> GraphEdge:
        return self._add_edge(_trust_edge(rel))

    def add_model_node(self, model_id: str, name: str, publisher_id: str) -> GraphNode:
        """Add a model and the publisher's `publishes` edge to it."""
        return self._add_published(model_id, GraphNodeType.MODEL, name, publisher_id, {})

    def add_insight_node(self, insight_id: str, title: str, publisher_id: str,
                         properties: Optional[dict] = None) -> GraphNode:
        return self._add_published(insight_id, GraphNodeType.INSIGHT, title, publisher_id, properties or {})

    def add_extension_node(self, extension_id: str, name: str, publisher_id: str,
                           properties: Optional[dict] = None) -> GraphNode:
        return self._add_published(extension_id, GraphNodeType.EXTENSION, name, publisher_id, properties or {})

    def _add_published(self, node_id: str, node_type: GraphNodeType, label: str,
                       publisher_id: str, properties: dict) -> GraphNode:
        now = self._clock()
        node = GraphNode(
            id=node_id,
            type=node_type,
            label=label,
            properties={**properties, "publisher_id": publisher_id},
            created=now,
            updated=now,
        )
        edge = GraphEdge(source=publisher_id, target=node_id, type=GraphEdgeType.PUBLISHES,
                         weight=1.0, created=now, updated=now)
        with self._lock:
            self._add_node(node)
            self._add_edge(edge)
        return node

    def add_usage_edge(self, org_id: str, resource_id: str, resource_type: Union[GraphNodeType, str]) -> GraphEdge:
        """Record that an organization uses a model or extension. Repeats bump usage_count."""
        resource_type = coerce_enum(GraphNodeType, resource_type)
        if resource_type not in (GraphNodeType.MODEL, GraphNodeType.EXTENSION):
            raise ValueError(f"Usage edges point at models or extensions, not {resource_type.value}")

        now = self._clock()
        with self._lock:
            existing = self._state.edges.get(EdgeKey(org_id, GraphEdgeType.USES, resource_id))
            usage_count = existing.properties.get("usage_count", 0) + 1 if existing else 1
            return self._add_edge(GraphEdge(
                source=org_id,
                target=resource_id,
                type=GraphEdgeType.USES,
                weight=USAGE_WEIGHT,
                properties={"resource_type": resource_type.value, "usage_count": usage_count},
                created=now,
                updated=now,
            ))

    def add_install_edge(self, org_id: str, extension_id: str) -> GraphEdge:
        now = self._clock()
        return self._add_edge(GraphEdge(source=org_id, target=extension_id, type=GraphEdgeType.INSTALLS,
                                        weight=1.0, created=now, updated=now))

    def add_collaboration_edge(self, org_id: str, partner_id: str, weight: float = 0.5,
                               properties: Optional[dict] = None) -> GraphEdge:
        now = self._clock()
        return self._add_edge(GraphEdge(source=org_id, target=partner_id, type=GraphEdgeType.COLLABORATES,
                                        weight=weight, properties=dict(properties or {}),
                                        created=now, updated=now))

    def add_policy_node(self, policy_id: str, name: str, organization_ids: Sequence[str],
                        properties: Optional[dict] = None) -> GraphNode:
        """Add a policy node with an `enforces` edge to each governed organization."""
        now = self._clock()
        node = GraphNode(id=policy_id, type=GraphNodeType.POLICY, label=name,
                         properties=dict(properties or {}), created=now, updated=now)
        with self._lock:
            self._add_node(node)
            for org_id in organization_ids:
                self._add_edge(GraphEdge(source=policy_id, target=org_id, type=GraphEdgeType.ENFORCES,
                                         weight=1.0, created=now, updated=now))
        return node

    # ── Lookups ──

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        with self._lock:
            return self._state.nodes.get(node_id)

    def get_edge(self, source: str, edge_type: Union[GraphEdgeType, str], target: str) -> Optional[GraphEdge]:
        key = EdgeKey(source, coerce_enum(GraphEdgeType, edge_type), target)
        with self._lock:
            return self._state.edges.get(key)

    def neighbors(self, node_id: str) -> list[str]:
        """Targets of outgoing edges, one entry per edge, in insertion order."""
        with self._lock:
            return [k.target for k in self._state.adjacency.get(node_id, ())]

    # ── Queries ──

    def query(self, query: GraphQuery) -> QueryResult:
        """
        Filter order: node types, edge types, property filters, then limit.
        The limit also drops edges not connecting two retained nodes.
        """
        if query.limit is not None and query.limit < 1:
            raise ValueError(f"limit must be >= 1, got {query.limit}")
        view = self._view()
        nodes = list(view.nodes.values())
        edges = list(view.edges.values())

        if query.node_types:
            wanted = {coerce_enum(GraphNodeType, t) for t in query.node_types}
            nodes = [n for n in nodes if n.type in wanted]

        if query.edge_types:
            wanted_edges = {coerce_enum(GraphEdgeType, t) for t in query.edge_types}
            edges = [e for e in edges if e.type in wanted_edges]

        for flt in query.filters:
            nodes = [n for n in nodes if flt.matches(n)]

        if query.limit:
            nodes = nodes[:query.limit]
            kept = {n.id for n in nodes}
            edges = [e for e in edges if e.source in kept and e.target in kept]

        return QueryResult(nodes=nodes, edges=edges)

    def find_path(self, from_id: str, to_id: str) -> Optional[PathResult]:
        """
        Shortest path by edge count (BFS over adjacency, FIFO in insertion order).
        Returns None if either node is unknown or the target is unreachable.
        """
        view = self._view()
        if from_id not in view.nodes or to_id not in view.nodes:
            return None

        queue: deque[tuple[list[str], list[EdgeKey]]] = deque([([from_id], [])])
        visited = {from_id}

        while queue:
            path, keys = queue.popleft()
            current = path[-1]
            if current == to_id:
                return _path_result(view, path, keys)

            for key in view.adjacency.get(current, ()):
                if key.target not in visited:
                    visited.add(key.target)
                    queue.append((path + [key.target], keys + [key]))

        return None

    def find_paths_within_hops(self, from_id: str, max_hops: int) -> list[PathResult]:
        """
        Every distinct node sequence starting at from_id with 1..max_hops edges.

        Paths may revisit nodes; duplicates are removed by full path signature.
        Output grows exponentially with max_hops on dense graphs; keep it small.
        """
        view = self._view()
        if from_id not in view.nodes or max_hops < 1:
            return []

        results: list[PathResult] = []
        seen: set[tuple[str, ...]] = set()
        queue: deque[tuple[list[str], list[EdgeKey]]] = deque([([from_id], [])])

        while queue:
            path, keys = queue.popleft()
            if keys:
                results.append(_path_result(view, path, keys))
            if len(keys) >= max_hops:
                continue
            for key in view.adjacency.get(path[-1], ()):
                signature = tuple(path) + (key.target,)
                if signature not in seen:
                    seen.add(signature)
                    queue.append((path + [key.target], keys + [key]))

        return results

    def find_influential_organizations(self, limit: int = 10) -> list[InfluenceEntry]:
        """
        Rank organizations by (out + in edge count) * mean incident edge weight.

        This is weighted degree centrality, not PageRank. Ties keep insertion order.
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        view = self._view()
        incoming: dict[str, int] = {}
        weight_sum: dict[str, float] = {}
        weight_count: dict[str, int] = {}

        for edge in view.edges.values():
            incoming[edge.target] = incoming.get(edge.target, 0) + 1
            for endpoint in {edge.source, edge.target}:
                weight_sum[endpoint] = weight_sum.get(endpoint, 0.0) + edge.weight
                weight_count[endpoint] = weight_count.get(endpoint, 0) + 1

        entries = []
        for node in view.nodes.values():
            if node.type != GraphNodeType.ORGANIZATION:
                continue
            connections = len(view.adjacency.get(node.id, ())) + incoming.get(node.id, 0)
            count = weight_count.get(node.id, 0)
            avg_weight = weight_sum[node.id] / count if count else 0.0
            entries.append(InfluenceEntry(
                organization_id=node.id,
                name=node.label,
                influence=connections * avg_weight,
                connections=connections,
            ))

        entries.sort(key=lambda e: -e.influence)
        return entries[:limit]

    def detect_communities(self) -> list[Community]:
        """
        Connected components of organization nodes, largest first.

        Traversal follows outgoing edges to organizations and incoming `trusts`
        edges. Singletons are omitted. density = connected pairs / possible pairs,
        where a pair is connected by an edge of any type in either direction.
        """
        view = self._view()
        trusted_by: dict[str, list[str]] = {}
        linked: set[tuple[str, str]] = set()
        for edge in view.edges.values():
            linked.add((edge.source, edge.target))
            if edge.type == GraphEdgeType.TRUSTS:
                trusted_by.setdefault(edge.target, []).append(edge.source)

        def is_org(node_id: str) -> bool:
            node = view.nodes.get(node_id)
            return node is not None and node.type == GraphNodeType.ORGANIZATION

        visited: set[str] = set()
        communities: list[Community] = []

        for node in view.nodes.values():
            if node.type != GraphNodeType.ORGANIZATION or node.id in visited:
                continue

            members: list[str] = []
            stack = [node.id]
            while stack:
                current = stack.pop()
                if current in visited:
                    continue
                visited.add(current)
                members.append(current)

                for key in view.adjacency.get(current, ()):
                    if key.target not in visited and is_org(key.target):
                        stack.append(key.target)
                for source in trusted_by.get(current, ()):
                    if source not in visited and is_org(source):
                        stack.append(source)

            if len(members) < 2:
                continue

            n = len(members)
            actual = sum(
                1
                for i in range(n)
                for j in range(i + 1, n)
                if (members[i], members[j]) in linked or (members[j], members[i]) in linked
            )
            communities.append(Community(
                community_id=f"community-{len(communities) + 1}",
                organizations=members,
                density=actual / (n * (n - 1) / 2),
            ))

        return sorted(communities, key=lambda c: -len(c.organizations))

    # ── Aggregates ──

    def get_graph_statistics(self) -> GraphStats:
        view = self._view()
        stats = GraphStats(node_count=len(view.nodes), edge_count=len(view.edges))
        for node in view.nodes.values():
            stats.nodes_by_type[node.type.value] = stats.nodes_by_type.get(node.type.value, 0) + 1
        for edge in view.edges.values():
            stats.edges_by_type[edge.type.value] = stats.edges_by_type.get(edge.type.value, 0) + 1

        n = stats.nodes_by_type.get(GraphNodeType.ORGANIZATION.value, 0)
        m = stats.edge_count
        stats.avg_degree = (2 * m) / n if n > 0 else 0.0
        stats.density = (2 * m) / (n * (n - 1)) if n > 1 else 0.0
        return stats

    def export_for_visualization(self) -> dict:
        view = self._view()
        nodes = []
        for node in view.nodes.values():
            size = node.properties.get("trust_score")
            nodes.append({
                "id": node.id,
                "label": node.label,
                "type": node.type.value,
                "size": NEUTRAL_TRUST_SCORE if size is None else size,
            })
        edges = [
            {"source": e.source, "target": e.target, "type": e.type.value, "weight": e.weight}
            for e in view.edges.values()
        ]
        return {"nodes": nodes, "edges": edges}


def _organization_node(org: Organization, now: float) -> GraphNode:
    return GraphNode(
        id=org.id,
        type=GraphNodeType.ORGANIZATION,
        label=org.name,
        properties={
            "country": org.country,
            "region": org.region,
            "org_type": org.type.value,
            "trust_score": org.trust_score,
            "verification_level": org.verification_level.value,
            "verification_status": org.verification_status.value,
            "size": org.metadata.size.value,
        },
        created=org.joined_at,
        updated=now,
    )


def _trust_edge(rel: TrustRelationship) -> GraphEdge:
    return GraphEdge(
        source=rel.from_org_id,
        target=rel.to_org_id,
        type=GraphEdgeType.TRUSTS,
        weight=rel.trust_level,
        properties={
            "relationship_type": rel.relationship_type.value,
            "interactions": rel.interactions,
            "incidents": rel.incidents,
        },
        created=rel.established_at,
        updated=rel.last_updated,
    )


def _path_result(view: _GraphState, path: list[str], keys: list[EdgeKey]) -> PathResult:
    edges = [view.edges[k] for k in keys if k in view.edges]
    weight = sum(e.weight for e in edges) / len(edges) if edges else 0.0
    return PathResult(path=list(path), length=len(path) - 1, weight=weight, edges=edges)
