"""
fedtrust.audit — tamper-evident audit trail for federation trust decisions.

Registry, graph and score engine report every state change to an injected
AuditSink. AuditTrail is the in-process implementation: each entry carries
the hash of the previous one, so any edit to a historical entry breaks the
chain and is detected by verify_integrity().
"""

import hashlib
import json
import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Optional, Protocol, Union


class FederationEventType(str, Enum):
    """Auditable events emitted by the federation core."""
    ORGANIZATION_REGISTERED = "organization.registered"
    ORGANIZATION_UPDATED = "organization.updated"
    REPUTATION_UPDATED = "reputation.updated"
    NODE_REGISTERED = "node.registered"
    NODE_HEARTBEAT = "node.heartbeat"
    NODE_STATUS_CHANGED = "node.status"
    TRUST_ESTABLISHED = "trust.established"
    TRUST_UPDATED = "trust.updated"
    TRUST_INCIDENT = "trust.incident"
    GRAPH_INITIALIZED = "graph.initialized"
    TRUST_SCORE_COMPUTED = "trust_score.computed"
    SCORES_RECALCULATED = "scores.recalculated"


class AuditSink(Protocol):
    def record(self, event_type: Union[FederationEventType, str], organization_id: str,
               details: Optional[dict] = None) -> object: ...


@dataclass
class AuditEntry:
    """A single audit log entry with hash-chain integrity."""
    event_type: str
    organization_id: str
    timestamp: float
    details: dict
    entry_hash: str = ""
    prev_hash: str = ""
    sequence: int = 0

    def compute_hash(self) -> str:
        content = json.dumps({
            "event_type": self.event_type,
            "organization_id": self.organization_id,
            "timestamp": self.timestamp,
            "details": self.details,
            "prev_hash": self.prev_hash,
            "sequence": self.sequence,
        }, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(**data)


class AuditTrail:
    """
    Hash-chained audit trail.

    Usage:
        trail = AuditTrail()
        trail.record(FederationEventType.TRUST_ESTABLISHED, "org-a", {"target": "org-b"})

        ok, bad_index = trail.verify_integrity()
        incidents = trail.query(event_type=FederationEventType.TRUST_INCIDENT)
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record(self, event_type: Union[FederationEventType, str], organization_id: str,
               details: Optional[dict] = None) -> AuditEntry:
        """Append an entry to the trail."""
        with self._lock:
            prev_hash = self._entries[-1].entry_hash if self._entries else "genesis"
            entry = AuditEntry(
                event_type=event_type.value if isinstance(event_type, FederationEventType) else event_type,
                organization_id=organization_id,
                timestamp=self._clock(),
                details=details or {},
                prev_hash=prev_hash,
                sequence=len(self._entries),
            )
            entry.entry_hash = entry.compute_hash()
            self._entries.append(entry)
        return entry

    def verify_integrity(self) -> tuple[bool, Optional[int]]:
        """Returns (True, None) if intact, else (False, index of first bad entry)."""
        for i, entry in enumerate(self._entries):
            if entry.entry_hash != entry.compute_hash():
                return False, i
            expected_prev = "genesis" if i == 0 else self._entries[i - 1].entry_hash
            if entry.prev_hash != expected_prev:
                return False, i
        return True, None

    def query(self, organization_id: Optional[str] = None,
              event_type: Union[FederationEventType, str, None] = None,
              since: Optional[float] = None,
              until: Optional[float] = None,
              limit: int = 100) -> list[AuditEntry]:
        """Most recent matching entries, returned oldest first."""
        results = []
        event_val = event_type.value if isinstance(event_type, FederationEventType) else event_type

        for entry in reversed(self._entries):
            if organization_id and entry.organization_id != organization_id:
                continue
            if event_val and entry.event_type != event_val:
                continue
            if since is not None and entry.timestamp < since:
                continue
            if until is not None and entry.timestamp > until:
                continue
            results.append(entry)
            if len(results) >= limit:
                break

        return list(reversed(results))

    def export_json(self) -> str:
        return json.dumps([e.to_dict() for e in self._entries], indent=2, default=str)

    @classmethod
    def from_json(cls, data: str) -> "AuditTrail":
        """Import a trail. Raises ValueError if the chain does not verify."""
        trail = cls()
        for entry_data in json.loads(data):
            trail._entries.append(AuditEntry.from_dict(entry_data))

        ok, bad_idx = trail.verify_integrity()
        if not ok:
            raise ValueError(f"Imported trail has corrupted entry at index {bad_idx}")
        return trail

    @property
    def size(self) -> int:
        return len(self._entries)

    def summary(self) -> dict:
        event_counts: dict[str, int] = {}
        orgs: set[str] = set()
        for entry in self._entries:
            event_counts[entry.event_type] = event_counts.get(entry.event_type, 0) + 1
            orgs.add(entry.organization_id)

        return {
            "total_entries": len(self._entries),
            "unique_organizations": len(orgs),
            "event_counts": event_counts,
            "first_entry": self._entries[0].timestamp if self._entries else None,
            "last_entry": self._entries[-1].timestamp if self._entries else None,
            "integrity_verified": self.verify_integrity()[0],
        }
