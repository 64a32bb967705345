"""
fedtrust.scoring — Multi-factor trust scoring for federated organizations.

Six components, each 0-100:
  Historical    25%  — decayed interaction outcomes minus incidents
  Reputation    20%  — registry reputation overall score
  Network       15%  — rank in the graph's influence ranking
  Compliance    20%  — verification status/level plus compliance sub-score
  Security      10%  — verification and declared certifications
  Contribution  10%  — registry contribution sub-score

Overall = Σ(weight × component). Every calculation is appended to a capped
per-organization history, which feeds a least-squares trend forecast.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Callable, Optional

from .audit import AuditSink, AuditTrail, FederationEventType
from .config import FederationConfig
from .errors import OrganizationNotFound
from .graph import TrustGraph
from .models import (
    Organization,
    VerificationLevel,
    clamp,
    round_score,
)
from .registry import OrganizationRegistry

logger = logging.getLogger(__name__)

PERIODIC_REASON = "periodic-calculation"

# Component defaults when data is missing.
NEUTRAL_COMPONENT = 50.0
UNRANKED_NETWORK_SCORE = 30.0

INCIDENT_PENALTY = 10
MIN_TREND_POINTS = 5
LOW_CONFIDENCE = 0.3
TREND_SLOPE_THRESHOLD = 0.1

COMPLIANCE_LEVEL_BONUS = {
    VerificationLevel.BASIC: 0,
    VerificationLevel.STANDARD: 10,
    VerificationLevel.PREMIUM: 20,
    VerificationLevel.CERTIFIED: 30,
}


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


COMPONENT_WEIGHTS = {
    "historical": 0.25,
    "reputation": 0.20,
    "network": 0.15,
    "compliance": 0.20,
    "security": 0.10,
    "contribution": 0.10,
}


@dataclass(frozen=True)
class TrustScoreComponents:
    historical: float
    reputation: float
    network: float
    compliance: float
    security: float
    contribution: float
    overall: float = 0.0

    @classmethod
    def combine(cls, **factors: float) -> "TrustScoreComponents":
        """Build components from the six factors, computing the weighted overall."""
        overall = sum(factors[name] * weight for name, weight in COMPONENT_WEIGHTS.items())
        return cls(overall=overall, **factors)

    @classmethod
    def average(cls, scores: list["TrustScoreComponents"]) -> "TrustScoreComponents":
        n = len(scores)
        return cls(**{
            name: sum(getattr(s, name) for s in scores) / n
            for name in (*COMPONENT_WEIGHTS, "overall")
        })

    def to_dict(self) -> dict:
        return {k: round(v, 2) for k, v in asdict(self).items()}


@dataclass(frozen=True)
class TrustScoreHistoryEntry:
    timestamp: float
    score: float
    components: TrustScoreComponents
    reason: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "score": self.score,
            "components": asdict(self.components),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TrustScoreHistoryEntry":
        return cls(
            timestamp=float(d["timestamp"]),
            score=float(d["score"]),
            components=TrustScoreComponents(**d["components"]),
            reason=d.get("reason", PERIODIC_REASON),
        )


@dataclass
class TrendPrediction:
    current: float
    predicted_30_days: float
    predicted_90_days: float
    trend: TrendDirection
    confidence: float
    slope: float = 0.0

    def to_dict(self) -> dict:
        return {
            "current": round(self.current, 2),
            "predicted_30_days": round(self.predicted_30_days, 2),
            "predicted_90_days": round(self.predicted_90_days, 2),
            "trend": self.trend.value,
            "confidence": round(self.confidence, 4),
            "slope": round(self.slope, 4),
        }


@dataclass
class PeerComparison:
    organization: TrustScoreComponents
    peer_average: TrustScoreComponents
    percentile: float
    peer_count: int = 0

    def to_dict(self) -> dict:
        return {
            "organization": self.organization.to_dict(),
            "peer_average": self.peer_average.to_dict(),
            "percentile": round(self.percentile, 2),
            "peer_count": self.peer_count,
        }


@dataclass
class RecalculationReport:
    total: int = 0
    succeeded: int = 0
    failed: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False

    def summary(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": len(self.failed),
            "cancelled": self.cancelled,
            "failures": dict(self.failed),
        }


class TrustScoreEngine:
    """Computes, records and forecasts composite trust scores."""

    def __init__(
        self,
        registry: OrganizationRegistry,
        graph: TrustGraph,
        clock: Optional[Callable[[], float]] = None,
        audit: Optional[AuditSink] = None,
        config: Optional[FederationConfig] = None,
    ):
        self._registry = registry
        self._graph = graph
        self._clock = clock or time.time
        self._audit = audit if audit is not None else AuditTrail(clock=self._clock)
        self._config = config or FederationConfig()
        self._history: dict[str, list[TrustScoreHistoryEntry]] = {}
        self._lock = threading.Lock()

    def _require(self, org_id: str) -> Organization:
        org = self._registry.get_organization(org_id)
        if org is None:
            raise OrganizationNotFound(org_id)
        return org

    # ── Scoring ──

    def calculate_trust_score(self, org_id: str, reason: str = PERIODIC_REASON) -> TrustScoreComponents:
        """
        Compute all components, append them to history and publish the
        rounded overall score back to the registry.

        Raises OrganizationNotFound for an unknown organization.
        """
        org = self._require(org_id)
        now = self._clock()

        components = TrustScoreComponents.combine(
            historical=self._historical_score(org_id, now),
            reputation=org.reputation_metrics.overall_score,
            network=self._network_score(org_id),
            compliance=self._compliance_score(org),
            security=self._security_score(org),
            contribution=org.reputation_metrics.contribution_score,
        )

        self._record(org_id, components, reason, now)
        self._registry.update_organization(org_id, trust_score=round_score(components.overall))

        logger.debug("Trust score for %s: %.2f", org_id, components.overall)
        self._audit.record(FederationEventType.TRUST_SCORE_COMPUTED, org_id,
                           {"overall": round(components.overall, 2), "reason": reason})
        return components

    def _historical_score(self, org_id: str, now: float) -> float:
        """Decayed mean trust over interactions, less 10 points per incident."""
        relationships = self._registry.get_trust_relationships(org_id)
        if not relationships:
            return NEUTRAL_COMPONENT

        total_score = 0.0
        total_weight = 0.0
        for rel in relationships:
            age = max(0.0, now - rel.last_updated)
            recency = math.exp(-age / self._config.decay_seconds)
            positive = rel.interactions * rel.trust_level * recency
            negative = rel.incidents * INCIDENT_PENALTY * recency
            total_score += positive - negative
            total_weight += rel.interactions * recency

        if total_weight == 0:
            return NEUTRAL_COMPONENT
        return clamp(total_score / total_weight * 100, 0.0, 100.0)

    def _network_score(self, org_id: str) -> float:
        try:
            ranking = self._graph.find_influential_organizations(self._config.ranking_limit)
        except Exception:
            logger.warning("Influence ranking failed; using neutral network score for %s",
                           org_id, exc_info=True)
            return NEUTRAL_COMPONENT

        for rank, entry in enumerate(ranking):
            if entry.organization_id == org_id:
                return (1 - rank / len(ranking)) * 100
        return UNRANKED_NETWORK_SCORE

    @staticmethod
    def _compliance_score(org: Organization) -> float:
        score = 0.0
        if org.is_verified:
            score += 40 + COMPLIANCE_LEVEL_BONUS[org.verification_level]
        score += org.reputation_metrics.compliance_score * 0.3
        return min(100.0, score)

    @staticmethod
    def _security_score(org: Organization) -> float:
        score = 50.0
        if org.is_verified:
            score += 20
        if org.verification_level in (VerificationLevel.PREMIUM, VerificationLevel.CERTIFIED):
            score += 20
        score += min(10, len(org.metadata.certifications) * 5)
        return min(100.0, score)

    # ── History ──

    def _record(self, org_id: str, components: TrustScoreComponents, reason: str, now: float) -> None:
        entry = TrustScoreHistoryEntry(timestamp=now, score=components.overall,
                                       components=components, reason=reason)
        with self._lock:
            history = self._history.setdefault(org_id, [])
            history.append(entry)
            if len(history) > self._config.history_limit:
                del history[:len(history) - self._config.history_limit]

    def get_score_history(self, org_id: str, limit: int = 30) -> list[TrustScoreHistoryEntry]:
        """Most recent entries, oldest first."""
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        with self._lock:
            return list(self._history.get(org_id, ())[-limit:])

    def export_history(self) -> dict[str, list[dict]]:
        with self._lock:
            return {org_id: [h.to_dict() for h in entries]
                    for org_id, entries in self._history.items()}

    def load_history(self, data: dict[str, list[dict]]) -> int:
        """Replace recorded history with export_history() output. Returns the entry count."""
        limit = self._config.history_limit
        history = {
            org_id: [TrustScoreHistoryEntry.from_dict(e) for e in entries][-limit:]
            for org_id, entries in data.items()
        }
        with self._lock:
            self._history = history
        count = sum(len(entries) for entries in history.values())
        logger.debug("Loaded %d score history entries for %d organizations", count, len(history))
        return count

    # ── Forecasting & comparison ──

    def predict_trust_trend(self, org_id: str) -> TrendPrediction:
        """
        Least-squares line through the recent history (x = sequence index).

        With fewer than 5 points, the current registry score is returned as the
        forecast with trend 'stable' and confidence 0.3. Confidence is R².
        """
        org = self._require(org_id)
        history = self.get_score_history(org_id, self._config.trend_window)

        if len(history) < MIN_TREND_POINTS:
            current = float(org.trust_score)
            return TrendPrediction(current=current, predicted_30_days=current,
                                   predicted_90_days=current, trend=TrendDirection.STABLE,
                                   confidence=LOW_CONFIDENCE)

        ys = [h.score for h in history]
        n = len(ys)
        xs = range(n)
        sum_x = sum(xs)
        sum_y = sum(ys)
        sum_xy = sum(x * y for x, y in zip(xs, ys))
        sum_x2 = sum(x * x for x in xs)

        slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
        intercept = (sum_y - slope * sum_x) / n

        if slope > TREND_SLOPE_THRESHOLD:
            trend = TrendDirection.INCREASING
        elif slope < -TREND_SLOPE_THRESHOLD:
            trend = TrendDirection.DECREASING
        else:
            trend = TrendDirection.STABLE

        y_mean = sum_y / n
        ss_total = sum((y - y_mean) ** 2 for y in ys)
        ss_residual = sum((y - (intercept + slope * x)) ** 2 for x, y in zip(xs, ys))
        # A flat history is fitted exactly by the flat line.
        if math.isclose(ss_total, 0.0, abs_tol=1e-9):
            r_squared = 1.0
        else:
            r_squared = 1 - ss_residual / ss_total

        return TrendPrediction(
            current=ys[-1],
            predicted_30_days=clamp(intercept + slope * (n + 30), 0.0, 100.0),
            predicted_90_days=clamp(intercept + slope * (n + 90), 0.0, 100.0),
            trend=trend,
            confidence=clamp(r_squared, 0.0, 1.0),
            slope=slope,
        )

    def calculate_bilateral_trust(self, org_a: str, org_b: str) -> float:
        """0.6 × bidirectional direct trust + 0.4 × mean composite score (scaled to [0, 1])."""
        self._require(org_a)
        self._require(org_b)
        direct = self._registry.get_bidirectional_trust(org_a, org_b)
        score_a = self.calculate_trust_score(org_a)
        score_b = self.calculate_trust_score(org_b)
        reputation_trust = (score_a.overall + score_b.overall) / 200
        return clamp(direct * 0.6 + reputation_trust * 0.4, 0.0, 1.0)

    def compare_to_peers(self, org_id: str) -> PeerComparison:
        """
        Benchmark against verified organizations of the same type.

        percentile = share of peers with a strictly lower overall score.
        Without peers the organization is its own average at percentile 50.
        """
        org = self._require(org_id)
        own = self.calculate_trust_score(org_id)

        peer_scores = [
            self.calculate_trust_score(peer.id)
            for peer in self._registry.list_verified_organizations(org_type=org.type)
            if peer.id != org_id
        ]
        if not peer_scores:
            return PeerComparison(organization=own, peer_average=own, percentile=50.0)

        below = sum(1 for s in peer_scores if s.overall < own.overall)
        return PeerComparison(
            organization=own,
            peer_average=TrustScoreComponents.average(peer_scores),
            percentile=below / len(peer_scores) * 100,
            peer_count=len(peer_scores),
        )

    # ── Batch ──

    def recalculate_all_scores(self, cancel: Optional[threading.Event] = None) -> RecalculationReport:
        """
        Recalculate every verified organization. A failure is logged and
        recorded for that organization only. Setting `cancel` stops the batch
        before the next organization.
        """
        orgs = self._registry.list_verified_organizations()
        report = RecalculationReport(total=len(orgs))
        logger.info("Recalculating trust scores for %d organizations", len(orgs))

        for org in orgs:
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                logger.warning("Score recalculation cancelled after %d organizations",
                               report.succeeded + len(report.failed))
                break
            try:
                self.calculate_trust_score(org.id)
                report.succeeded += 1
            except Exception as e:
                logger.exception("Failed to calculate trust score for %s", org.id)
                report.failed[org.id] = str(e)

        self._audit.record(FederationEventType.SCORES_RECALCULATED, "federation", report.summary())
        logger.info("Score recalculation complete: %d ok, %d failed", report.succeeded, len(report.failed))
        return report
