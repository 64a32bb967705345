"""fedtrust — Federation trust graph and reputation engine."""

from fedtrust.models import (
    Organization, OrganizationMetadata, ReputationMetrics,
    TrustRelationship, FederationNode,
    OrganizationType, OrganizationSize, VerificationStatus, VerificationLevel,
    RelationshipType, FederationCapability, NodeStatus,
    relationship_type_for,
)
from fedtrust.errors import FedTrustError, OrganizationNotFound
from fedtrust.config import FederationConfig
from fedtrust.log import setup_structured_logging
from fedtrust.audit import AuditTrail, AuditEntry, AuditSink, FederationEventType
from fedtrust.registry import OrganizationRegistry, FederationStats
from fedtrust.graph import (
    TrustGraph, GraphNode, GraphEdge, GraphNodeType, GraphEdgeType,
    GraphQuery, PropertyFilter, FilterOperator, QueryResult,
    PathResult, InfluenceEntry, Community, GraphStats,
)
from fedtrust.scoring import (
    TrustScoreEngine, TrustScoreComponents, TrustScoreHistoryEntry,
    TrendPrediction, TrendDirection, PeerComparison, RecalculationReport,
)
from fedtrust.context import FederationContext
from fedtrust.visualize import render_dot, render_influence, render_communities

__all__ = [
    "Organization",
    "OrganizationMetadata",
    "ReputationMetrics",
    "TrustRelationship",
    "FederationNode",
    "OrganizationType",
    "OrganizationSize",
    "VerificationStatus",
    "VerificationLevel",
    "RelationshipType",
    "FederationCapability",
    "NodeStatus",
    "relationship_type_for",
    "FedTrustError",
    "OrganizationNotFound",
    "FederationConfig",
    "setup_structured_logging",
    "AuditTrail",
    "AuditEntry",
    "AuditSink",
    "FederationEventType",
    "OrganizationRegistry",
    "FederationStats",
    "TrustGraph",
    "GraphNode",
    "GraphEdge",
    "GraphNodeType",
    "GraphEdgeType",
    "GraphQuery",
    "PropertyFilter",
    "FilterOperator",
    "QueryResult",
    "PathResult",
    "InfluenceEntry",
    "Community",
    "GraphStats",
    "TrustScoreEngine",
    "TrustScoreComponents",
    "TrustScoreHistoryEntry",
    "TrendPrediction",
    "TrendDirection",
    "PeerComparison",
    "RecalculationReport",
    "FederationContext",
    "render_dot",
    "render_influence",
    "render_communities",
]
