"""
fedtrust.context — Wires registry, graph and score engine together.

One context per federation. Components share the clock, config and audit
sink, so tests can run any number of isolated federations side by side.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .audit import AuditSink, AuditTrail
from .config import FederationConfig
from .graph import GraphStats, TrustGraph
from .registry import OrganizationRegistry
from .scoring import RecalculationReport, TrustScoreEngine

logger = logging.getLogger(__name__)


@dataclass
class FederationContext:
    config: FederationConfig
    audit: AuditSink
    registry: OrganizationRegistry
    graph: TrustGraph
    engine: TrustScoreEngine

    @classmethod
    def create(
        cls,
        config: Optional[FederationConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        audit: Optional[AuditSink] = None,
        registry: Optional[OrganizationRegistry] = None,
    ) -> "FederationContext":
        """
        Build a context. Pass `registry` to score an existing registry
        (e.g. one loaded from a snapshot); it keeps its own clock and audit sink.
        """
        config = config or FederationConfig()
        clock = clock or time.time
        if registry is None:
            audit = audit if audit is not None else AuditTrail(clock=clock)
            registry = OrganizationRegistry(clock=clock, audit=audit, config=config)
        else:
            audit = registry.audit
        graph = TrustGraph(registry, clock=clock, audit=audit)
        engine = TrustScoreEngine(registry, graph, clock=clock, audit=audit, config=config)
        return cls(config=config, audit=audit, registry=registry, graph=graph, engine=engine)

    def refresh(self, cancel: Optional[threading.Event] = None) -> tuple[GraphStats, RecalculationReport]:
        """Rebuild the graph from the registry, then recalculate every verified score."""
        stats = self.graph.initialize_graph()
        report = self.engine.recalculate_all_scores(cancel=cancel)
        logger.info("Federation refreshed: %d nodes, %d edges, %d scores",
                    stats.node_count, stats.edge_count, report.succeeded)
        return stats, report

    def export_snapshot(self) -> dict:
        """Registry snapshot plus recorded score history."""
        return {**self.registry.export_snapshot(), "score_history": self.engine.export_history()}

    def export_json(self) -> str:
        return json.dumps(self.export_snapshot(), indent=2)

    @classmethod
    def from_snapshot(cls, data: dict, config: Optional[FederationConfig] = None) -> "FederationContext":
        """Restore a context from export_snapshot() output; a plain registry snapshot has no history."""
        config = config or FederationConfig()
        registry = OrganizationRegistry.from_snapshot(data, config=config)
        ctx = cls.create(config=config, registry=registry)
        ctx.engine.load_history(data.get("score_history") or {})
        return ctx

    @classmethod
    def from_json(cls, data: str, config: Optional[FederationConfig] = None) -> "FederationContext":
        return cls.from_snapshot(json.loads(data), config=config)
