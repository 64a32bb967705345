"""
fedtrust.registry — Organization Registry

Single source of truth for the federation:
- Organization registration, profile updates and reputation metrics
- Directed trust relationships (one per ordered pair, never deleted)
- Federation node discovery and heartbeat health

Reads are tolerant: unknown ids give None or an empty list, never an
exception. Read-modify-write operations on one organization (trust level
updates, incidents, reputation) are serialized with a per-organization lock.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .audit import AuditSink, AuditTrail, FederationEventType
from .config import FederationConfig
from .models import (
    NEUTRAL_TRUST_LEVEL,
    FederationCapability,
    FederationNode,
    NodeStatus,
    Organization,
    OrganizationMetadata,
    OrganizationType,
    ReputationMetrics,
    TrustRelationship,
    VerificationLevel,
    VerificationStatus,
    clamp,
    coerce_enum,
    relationship_type_for,
    round_score,
)

logger = logging.getLogger(__name__)

# Fields callers may change through update_organization().
UPDATABLE_FIELDS = frozenset({
    "name", "type", "country", "region",
    "verification_status", "verification_level",
    "metadata", "trust_score", "verified_at",
})

REPUTATION_FIELDS = frozenset(ReputationMetrics.WEIGHTS)

# Share of the registry trust score taken from reputation vs. incoming trust.
REPUTATION_SHARE = 0.6
INCOMING_TRUST_SHARE = 0.4


@dataclass
class FederationStats:
    """Aggregate counters for dashboards."""
    total_organizations: int = 0
    verified_organizations: int = 0
    active_nodes: int = 0
    trust_relationships: int = 0
    average_trust_score: int = 0
    organizations_by_type: dict[str, int] = field(default_factory=dict)
    organizations_by_region: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_organizations": self.total_organizations,
            "verified_organizations": self.verified_organizations,
            "active_nodes": self.active_nodes,
            "trust_relationships": self.trust_relationships,
            "average_trust_score": self.average_trust_score,
            "organizations_by_type": dict(self.organizations_by_type),
            "organizations_by_region": dict(self.organizations_by_region),
        }


class OrganizationRegistry:
    """In-memory registry of organizations, trust relationships and nodes."""

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        audit: Optional[AuditSink] = None,
        config: Optional[FederationConfig] = None,
    ):
        self._clock = clock or time.time
        self._audit = audit if audit is not None else AuditTrail(clock=self._clock)
        self._config = config or FederationConfig()

        self._organizations: dict[str, Organization] = {}
        self._nodes: dict[str, FederationNode] = {}
        self._relationships: dict[str, list[TrustRelationship]] = {}  # from_org_id -> outgoing
        self._lock = threading.RLock()
        self._org_locks: dict[str, threading.RLock] = {}
        self._sequence = 0

    @property
    def audit(self) -> AuditSink:
        return self._audit

    def _org_lock(self, org_id: str) -> threading.RLock:
        with self._lock:
            lock = self._org_locks.get(org_id)
            if lock is None:
                lock = self._org_locks[org_id] = threading.RLock()
            return lock

    def _generate_id(self, name: str, now: float) -> str:
        with self._lock:
            self._sequence += 1
            seq = self._sequence
        digest = hashlib.sha256(f"{name}:{now}:{seq}".encode()).hexdigest()[:12]
        return f"org-{digest}"

    # ── Organizations ──

    def register_organization(
        self,
        name: str,
        org_type: Union[OrganizationType, str],
        country: str,
        region: str,
        metadata: Union[OrganizationMetadata, dict, None] = None,
        verification_level: Union[VerificationLevel, str] = VerificationLevel.BASIC,
    ) -> Organization:
        """Register a new organization with a neutral score and pending verification."""
        if not name:
            raise ValueError("Organization name is required")
        if not isinstance(metadata, OrganizationMetadata):
            metadata = OrganizationMetadata.from_dict(metadata)

        now = self._clock()
        org = Organization(
            id=self._generate_id(name, now),
            name=name,
            type=org_type,
            country=country,
            region=region,
            joined_at=now,
            verification_level=verification_level,
            metadata=metadata,
        )
        with self._lock:
            self._organizations[org.id] = org

        logger.info("Registered organization %s (%s, %s)", org.id, org.type.value, org.region)
        self._audit.record(FederationEventType.ORGANIZATION_REGISTERED, org.id,
                           {"name": name, "type": org.type.value, "region": region})
        return org

    def register_from_payload(self, payload: dict) -> Organization:
        """Register from the platform payload: {name, type, country, region, metadata}."""
        return self.register_organization(
            name=payload.get("name", ""),
            org_type=payload.get("type", ""),
            country=payload.get("country", ""),
            region=payload.get("region", ""),
            metadata=payload.get("metadata"),
            verification_level=payload.get("verification_level",
                                           payload.get("verificationLevel", VerificationLevel.BASIC)),
        )

    def get_organization(self, org_id: str) -> Optional[Organization]:
        return self._organizations.get(org_id)

    def all_organizations(self) -> list[Organization]:
        with self._lock:
            return list(self._organizations.values())

    def update_organization(self, org_id: str, **changes: Any) -> Optional[Organization]:
        """
        Merge field changes into an organization. Returns None if unknown.

        `metadata` may be a partial dict merged into the existing metadata.
        `trust_score` is clamped to [0, 100].
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update organization fields: {', '.join(sorted(unknown))}")

        with self._org_lock(org_id):
            org = self._organizations.get(org_id)
            if org is None:
                return None

            for name, value in changes.items():
                if name == "type":
                    value = coerce_enum(OrganizationType, value)
                elif name == "verification_status":
                    value = coerce_enum(VerificationStatus, value)
                    if value == VerificationStatus.VERIFIED and org.verified_at is None:
                        org.verified_at = self._clock()
                elif name == "verification_level":
                    value = coerce_enum(VerificationLevel, value)
                elif name == "trust_score":
                    value = round_score(value)
                elif name == "metadata" and not isinstance(value, OrganizationMetadata):
                    merged = {**org.metadata.to_dict(), **OrganizationMetadata.normalize(value)}
                    value = OrganizationMetadata.from_dict(merged)
                setattr(org, name, value)

        logger.debug("Updated organization %s: %s", org_id, sorted(changes))
        self._audit.record(FederationEventType.ORGANIZATION_UPDATED, org_id,
                           {"fields": sorted(changes)})
        return org

    def update_reputation_metrics(self, org_id: str, **updates: float) -> Optional[Organization]:
        """
        Merge reputation sub-scores, then recompute overall_score and trust_score.

        trust_score = round(overall * 0.6 + avg incoming trust level * 100 * 0.4),
        where the incoming term is 0 when nobody trusts the organization yet.
        """
        unknown = set(updates) - REPUTATION_FIELDS
        if unknown:
            raise ValueError(f"Unknown reputation metrics: {', '.join(sorted(unknown))}")

        with self._org_lock(org_id):
            org = self._organizations.get(org_id)
            if org is None:
                return None

            metrics = org.reputation_metrics
            for name, value in updates.items():
                setattr(metrics, name, clamp(float(value), 0.0, 100.0))
            metrics.overall_score = metrics.weighted_overall()

            incoming = self.get_incoming_relationships(org_id)
            trust_component = 0.0
            if incoming:
                avg_trust = sum(r.trust_level for r in incoming) / len(incoming)
                trust_component = avg_trust * 100 * INCOMING_TRUST_SHARE
            org.trust_score = round_score(metrics.overall_score * REPUTATION_SHARE + trust_component)

        self._audit.record(FederationEventType.REPUTATION_UPDATED, org_id, {
            "overall_score": round(metrics.overall_score, 2),
            "trust_score": org.trust_score,
        })
        return org

    def list_verified_organizations(
        self,
        org_type: Union[OrganizationType, str, None] = None,
        country: Optional[str] = None,
        min_trust_score: Optional[float] = None,
    ) -> list[Organization]:
        """Verified organizations, highest trust score first."""
        if org_type is not None:
            org_type = coerce_enum(OrganizationType, org_type)

        results = [o for o in self.all_organizations() if o.is_verified]
        if org_type is not None:
            results = [o for o in results if o.type == org_type]
        if country:
            results = [o for o in results if o.country == country]
        if min_trust_score is not None:
            results = [o for o in results if o.trust_score >= min_trust_score]
        return sorted(results, key=lambda o: -o.trust_score)

    def search_organizations(self, query: str, limit: Optional[int] = None) -> list[Organization]:
        """Case-insensitive match on name, description, country or type."""
        if limit is None:
            limit = self._config.search_limit
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        needle = query.lower()
        results = []
        for org in self.all_organizations():
            haystacks = (org.name, org.metadata.description, org.country, org.type.value)
            if any(needle in h.lower() for h in haystacks):
                results.append(org)
                if len(results) >= limit:
                    break
        return results

    # ── Federation nodes ──

    def register_node(self, node: Union[FederationNode, dict]) -> FederationNode:
        """Register or replace the node for an organization (one node per org)."""
        if isinstance(node, dict):
            node = _node_from_payload(node)
        if not node.last_heartbeat:
            node.last_heartbeat = self._clock()
        with self._lock:
            self._nodes[node.organization_id] = node

        self._audit.record(FederationEventType.NODE_REGISTERED, node.organization_id, {
            "endpoint": node.endpoint,
            "capabilities": [c.value for c in node.capabilities],
        })
        return node

    def update_node_heartbeat(self, org_id: str) -> Optional[FederationNode]:
        with self._lock:
            node = self._nodes.get(org_id)
            if node is None:
                return None
            node.last_heartbeat = self._clock()
            node.status = NodeStatus.ONLINE
        self._audit.record(FederationEventType.NODE_HEARTBEAT, org_id)
        return node

    def set_node_status(self, org_id: str, status: Union[NodeStatus, str]) -> Optional[FederationNode]:
        status = coerce_enum(NodeStatus, status)
        with self._lock:
            node = self._nodes.get(org_id)
            if node is None or node.status == status:
                return node
            node.status = status
        self._audit.record(FederationEventType.NODE_STATUS_CHANGED, org_id, {"status": status.value})
        return node

    def sweep_stale_nodes(self, max_age: float) -> list[str]:
        """Mark nodes without a heartbeat in the last `max_age` seconds offline."""
        stale = []
        # Heartbeats take the same lock.
        with self._lock:
            cutoff = self._clock() - max_age
            for node in self._nodes.values():
                if node.status != NodeStatus.OFFLINE and node.last_heartbeat < cutoff:
                    node.status = NodeStatus.OFFLINE
                    stale.append(node.organization_id)
        for org_id in stale:
            self._audit.record(FederationEventType.NODE_STATUS_CHANGED, org_id,
                               {"status": NodeStatus.OFFLINE.value})
        if stale:
            logger.warning("Marked %d federation nodes offline (no heartbeat for %.0fs)", len(stale), max_age)
        return stale

    def get_node(self, org_id: str) -> Optional[FederationNode]:
        return self._nodes.get(org_id)

    def list_nodes(self, status: Union[NodeStatus, str, None] = None) -> list[FederationNode]:
        with self._lock:
            nodes = list(self._nodes.values())
        if status is not None:
            status = coerce_enum(NodeStatus, status)
            nodes = [n for n in nodes if n.status == status]
        return nodes

    def find_nodes_by_capability(self, capability: Union[FederationCapability, str]) -> list[FederationNode]:
        """Online nodes offering a capability. Linear scan, O(nodes)."""
        capability = coerce_enum(FederationCapability, capability)
        return [n for n in self.list_nodes(NodeStatus.ONLINE) if capability in n.capabilities]

    def find_nodes_by_region(self, region: str) -> list[FederationNode]:
        """Online nodes serving a region. Linear scan, O(nodes)."""
        return [n for n in self.list_nodes(NodeStatus.ONLINE) if region in n.regions]

    # ── Trust relationships ──

    def establish_trust(
        self,
        from_org_id: str,
        to_org_id: str,
        initial_level: float = NEUTRAL_TRUST_LEVEL,
    ) -> Optional[TrustRelationship]:
        """
        Create the directed relationship from_org -> to_org.

        Returns the existing relationship unchanged if the pair already has one,
        or None if either organization is unknown.
        """
        if from_org_id == to_org_id:
            raise ValueError("An organization cannot establish trust in itself")
        if from_org_id not in self._organizations or to_org_id not in self._organizations:
            return None

        with self._org_lock(from_org_id):
            existing = self.get_relationship(from_org_id, to_org_id)
            if existing is not None:
                return existing

            now = self._clock()
            level = clamp(float(initial_level), 0.0, 1.0)
            rel = TrustRelationship(
                from_org_id=from_org_id,
                to_org_id=to_org_id,
                trust_level=level,
                relationship_type=relationship_type_for(level),
                established_at=now,
                last_updated=now,
            )
            with self._lock:
                self._relationships.setdefault(from_org_id, []).append(rel)

        self._audit.record(FederationEventType.TRUST_ESTABLISHED, from_org_id,
                           {"target": to_org_id, "trust_level": level})
        return rel

    def update_trust_level(
        self,
        from_org_id: str,
        to_org_id: str,
        delta: float,
        reason: str = "",
    ) -> Optional[TrustRelationship]:
        """Shift trust by `delta` (clamped to [0, 1]) and count one interaction."""
        with self._org_lock(from_org_id):
            rel = self.get_relationship(from_org_id, to_org_id)
            if rel is None:
                logger.debug("No relationship %s -> %s; trust update ignored", from_org_id, to_org_id)
                return None

            rel.trust_level = clamp(rel.trust_level + delta, 0.0, 1.0)
            rel.last_updated = self._clock()
            rel.interactions += 1
            rel.relationship_type = relationship_type_for(rel.trust_level)

        self._audit.record(FederationEventType.TRUST_UPDATED, from_org_id, {
            "target": to_org_id,
            "trust_level": rel.trust_level,
            "relationship_type": rel.relationship_type.value,
            "reason": reason,
        })
        return rel

    def record_incident(self, from_org_id: str, to_org_id: str, severity: float) -> Optional[TrustRelationship]:
        """Count an incident and lower trust by 0.1 per severity point."""
        severity = max(0.0, float(severity))
        with self._org_lock(from_org_id):
            rel = self.get_relationship(from_org_id, to_org_id)
            if rel is None:
                return None
            rel.incidents += 1
            self._audit.record(FederationEventType.TRUST_INCIDENT, from_org_id,
                               {"target": to_org_id, "severity": severity})
            logger.info("Incident recorded %s -> %s (severity %s)", from_org_id, to_org_id, severity)
            return self.update_trust_level(from_org_id, to_org_id, -0.1 * severity,
                                           f"incident-severity-{severity:g}")

    def get_relationship(self, from_org_id: str, to_org_id: str) -> Optional[TrustRelationship]:
        for rel in self._relationships.get(from_org_id, ()):
            if rel.to_org_id == to_org_id:
                return rel
        return None

    def get_trust_relationships(self, org_id: str) -> list[TrustRelationship]:
        """Outgoing relationships of an organization."""
        with self._lock:
            return list(self._relationships.get(org_id, ()))

    def get_incoming_relationships(self, org_id: str) -> list[TrustRelationship]:
        return [r for r in self.all_relationships() if r.to_org_id == org_id]

    def all_relationships(self) -> list[TrustRelationship]:
        with self._lock:
            return [r for rels in self._relationships.values() for r in rels]

    def get_trust_level(self, from_org_id: str, to_org_id: str) -> float:
        """Directional trust level; neutral 0.5 when no relationship exists."""
        rel = self.get_relationship(from_org_id, to_org_id)
        return rel.trust_level if rel else NEUTRAL_TRUST_LEVEL

    def get_bidirectional_trust(self, org_a: str, org_b: str) -> float:
        """The weaker of the two directions, so one-sided data never overstates trust."""
        return min(self.get_trust_level(org_a, org_b), self.get_trust_level(org_b, org_a))

    # ── Statistics ──

    def get_statistics(self) -> FederationStats:
        orgs = self.all_organizations()
        stats = FederationStats(
            total_organizations=len(orgs),
            verified_organizations=sum(1 for o in orgs if o.is_verified),
            active_nodes=len(self.list_nodes(NodeStatus.ONLINE)),
            trust_relationships=len(self.all_relationships()),
        )
        if orgs:
            stats.average_trust_score = round_score(sum(o.trust_score for o in orgs) / len(orgs))
        for org in orgs:
            stats.organizations_by_type[org.type.value] = stats.organizations_by_type.get(org.type.value, 0) + 1
            stats.organizations_by_region[org.region] = stats.organizations_by_region.get(org.region, 0) + 1
        return stats

    # ── Serialization ──

    def export_snapshot(self) -> dict:
        return {
            "organizations": [o.to_dict() for o in self.all_organizations()],
            "relationships": [r.to_dict() for r in self.all_relationships()],
            "nodes": [n.to_dict() for n in self.list_nodes()],
        }

    def export_json(self) -> str:
        return json.dumps(self.export_snapshot(), indent=2)

    @classmethod
    def from_snapshot(cls, data: dict, **kwargs) -> "OrganizationRegistry":
        """Rebuild a registry from export_snapshot() output. Duplicate pairs keep the first."""
        registry = cls(**kwargs)
        for entry in data.get("organizations", []):
            org = Organization.from_dict(entry)
            registry._organizations[org.id] = org
        for entry in data.get("relationships", []):
            rel = TrustRelationship.from_dict(entry)
            if registry.get_relationship(rel.from_org_id, rel.to_org_id) is None:
                registry._relationships.setdefault(rel.from_org_id, []).append(rel)
        for entry in data.get("nodes", []):
            node = FederationNode.from_dict(entry)
            registry._nodes[node.organization_id] = node
        return registry

    @classmethod
    def from_json(cls, data: str, **kwargs) -> "OrganizationRegistry":
        return cls.from_snapshot(json.loads(data), **kwargs)


def _node_from_payload(payload: dict) -> FederationNode:
    """Accept both snake_case and the camelCase heartbeat payload."""
    return FederationNode(
        organization_id=payload.get("organization_id") or payload.get("organizationId", ""),
        endpoint=payload.get("endpoint", ""),
        capabilities=list(payload.get("capabilities", [])),
        status=payload.get("status", NodeStatus.ONLINE),
        last_heartbeat=payload.get("last_heartbeat") or payload.get("lastHeartbeat") or 0.0,
        version=payload.get("version", ""),
        regions=list(payload.get("regions", [])),
    )
