"""
fedtrust.models — Federation records: organizations, trust relationships, nodes.

All timestamps are float epoch seconds. Every record round-trips through
to_dict()/from_dict() with enums stored as their string values.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Optional


class OrganizationType(str, Enum):
    GROWER = "grower"
    RESEARCH = "research"
    SUPPLIER = "supplier"
    GOVERNMENT = "government"
    COOPERATIVE = "cooperative"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class VerificationLevel(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"
    CERTIFIED = "certified"


class OrganizationSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"


class RelationshipType(str, Enum):
    """Label derived from a relationship's trust level."""
    PEER = "peer"
    VERIFIED = "verified"
    PARTNER = "partner"
    SUSPICIOUS = "suspicious"


class FederationCapability(str, Enum):
    DATA_SHARING = "data-sharing"
    MODEL_HOSTING = "model-hosting"
    INSIGHT_PUBLISHING = "insight-publishing"
    MARKETPLACE_HOSTING = "marketplace-hosting"
    COMPUTE_PROVIDER = "compute-provider"
    STORAGE_PROVIDER = "storage-provider"


class NodeStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    DEGRADED = "degraded"


# Thresholds are checked top-down; anything not matched is a peer.
PARTNER_THRESHOLD = 0.8
VERIFIED_THRESHOLD = 0.6
SUSPICIOUS_THRESHOLD = 0.3

NEUTRAL_TRUST_LEVEL = 0.5
NEUTRAL_TRUST_SCORE = 50


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_score(value: float) -> int:
    """Round half up (not banker's rounding) to an integer score in [0, 100]."""
    return int(clamp(math.floor(value + 0.5), 0, 100))


def relationship_type_for(trust_level: float) -> RelationshipType:
    """Map a trust level in [0, 1] to its relationship type."""
    if trust_level >= PARTNER_THRESHOLD:
        return RelationshipType.PARTNER
    if trust_level >= VERIFIED_THRESHOLD:
        return RelationshipType.VERIFIED
    if trust_level < SUSPICIOUS_THRESHOLD:
        return RelationshipType.SUSPICIOUS
    return RelationshipType.PEER


def coerce_enum(enum_cls, value):
    """Accept an enum member or its string value; raise ValueError otherwise."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__}: {value!r} (expected one of: {allowed})")


def _enum_dict(obj) -> dict:
    d = asdict(obj)
    for k, v in d.items():
        if isinstance(v, Enum):
            d[k] = v.value
        elif isinstance(v, list):
            d[k] = [x.value if isinstance(x, Enum) else x for x in v]
    return d


@dataclass
class ReputationMetrics:
    """Five 0-100 sub-scores plus their weighted composite."""
    contribution_score: float = 0.0
    usage_score: float = 0.0
    compliance_score: float = 100.0
    community_score: float = 0.0
    recency_score: float = 0.0
    overall_score: float = 50.0

    WEIGHTS = {
        "contribution_score": 0.30,
        "usage_score": 0.20,
        "compliance_score": 0.25,
        "community_score": 0.15,
        "recency_score": 0.10,
    }

    def weighted_overall(self) -> float:
        return sum(getattr(self, name) * w for name, w in self.WEIGHTS.items())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "ReputationMetrics":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class OrganizationMetadata:
    contact_email: str = ""
    description: str = ""
    size: OrganizationSize = OrganizationSize.SMALL
    certifications: list[str] = field(default_factory=list)
    website: Optional[str] = None

    def __post_init__(self):
        self.size = coerce_enum(OrganizationSize, self.size)

    def to_dict(self) -> dict:
        return _enum_dict(self)

    @staticmethod
    def normalize(d: Optional[dict]) -> dict:
        """Map camelCased platform keys onto field names."""
        d = dict(d or {})
        if "contactEmail" in d:
            email = d.pop("contactEmail")
            d.setdefault("contact_email", email)
        return d

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "OrganizationMetadata":
        d = cls.normalize(d)
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class Organization:
    """A federated organization. Owned and mutated by OrganizationRegistry."""
    id: str
    name: str
    type: OrganizationType
    country: str
    region: str
    joined_at: float
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verification_level: VerificationLevel = VerificationLevel.BASIC
    metadata: OrganizationMetadata = field(default_factory=OrganizationMetadata)
    trust_score: int = NEUTRAL_TRUST_SCORE
    reputation_metrics: ReputationMetrics = field(default_factory=ReputationMetrics)
    verified_at: Optional[float] = None

    def __post_init__(self):
        self.type = coerce_enum(OrganizationType, self.type)
        self.verification_status = coerce_enum(VerificationStatus, self.verification_status)
        self.verification_level = coerce_enum(VerificationLevel, self.verification_level)

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "country": self.country,
            "region": self.region,
            "joined_at": self.joined_at,
            "verification_status": self.verification_status.value,
            "verification_level": self.verification_level.value,
            "metadata": self.metadata.to_dict(),
            "trust_score": self.trust_score,
            "reputation_metrics": self.reputation_metrics.to_dict(),
            "verified_at": self.verified_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Organization":
        kwargs = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        kwargs["metadata"] = OrganizationMetadata.from_dict(d.get("metadata"))
        kwargs["reputation_metrics"] = ReputationMetrics.from_dict(d.get("reputation_metrics") or {})
        return cls(**kwargs)


@dataclass
class TrustRelationship:
    """Directed trust from one organization to another."""
    from_org_id: str
    to_org_id: str
    trust_level: float
    established_at: float
    last_updated: float
    relationship_type: RelationshipType = RelationshipType.PEER
    interactions: int = 0
    incidents: int = 0

    def __post_init__(self):
        self.relationship_type = coerce_enum(RelationshipType, self.relationship_type)

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_org_id, self.to_org_id)

    def to_dict(self) -> dict:
        return _enum_dict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "TrustRelationship":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class FederationNode:
    """Network endpoint and declared capabilities of one organization."""
    organization_id: str
    endpoint: str
    capabilities: list[FederationCapability] = field(default_factory=list)
    status: NodeStatus = NodeStatus.ONLINE
    last_heartbeat: float = 0.0
    version: str = ""
    regions: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.capabilities = [coerce_enum(FederationCapability, c) for c in self.capabilities]
        self.status = coerce_enum(NodeStatus, self.status)

    def has_capability(self, capability: Any) -> bool:
        return coerce_enum(FederationCapability, capability) in self.capabilities

    def to_dict(self) -> dict:
        return _enum_dict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "FederationNode":
        return cls(**{k: v for k, v in d.items() if k in {f.name for f in fields(cls)}})
