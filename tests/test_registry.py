"""Tests for the organization registry."""
import threading

import pytest

from fedtrust import (
    FederationEventType,
    NodeStatus,
    OrganizationRegistry,
    OrganizationType,
    RelationshipType,
    VerificationLevel,
    VerificationStatus,
)

from conftest import DAY


# ─── Registration ────────────────────────────────────

class TestRegistration:
    def test_defaults(self, registry, clock):
        org = registry.register_organization("Valley Coop", "cooperative", "US", "west")
        assert org.id.startswith("org-")
        assert org.trust_score == 50
        assert org.verification_status is VerificationStatus.PENDING
        assert org.verification_level is VerificationLevel.BASIC
        assert org.joined_at == clock.now
        assert registry.get_organization(org.id) is org

    def test_ids_unique_for_same_name(self, registry):
        a = registry.register_organization("Same", "grower", "US", "west")
        b = registry.register_organization("Same", "grower", "US", "west")
        assert a.id != b.id

    def test_empty_name_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register_organization("", "grower", "US", "west")

    def test_invalid_type_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register_organization("X", "bakery", "US", "west")

    def test_register_from_payload(self, registry):
        org = registry.register_from_payload({
            "name": "Seed Lab", "type": "research", "country": "DE", "region": "eu",
            "metadata": {"contactEmail": "lab@example.org", "certifications": ["gap"]},
        })
        assert org.type is OrganizationType.RESEARCH
        assert org.metadata.contact_email == "lab@example.org"

    def test_audited(self, registry, ctx):
        org = registry.register_organization("Audit Me", "grower", "US", "west")
        entries = ctx.audit.query(organization_id=org.id,
                                  event_type=FederationEventType.ORGANIZATION_REGISTERED)
        assert len(entries) == 1

    def test_get_unknown_is_none(self, registry):
        assert registry.get_organization("org-missing") is None


class TestUpdateOrganization:
    def test_verification_sets_verified_at(self, registry, make_org, clock):
        org = make_org("A")
        clock.advance(DAY)
        registry.update_organization(org.id, verification_status="verified")
        assert org.is_verified
        assert org.verified_at == clock.now

    def test_metadata_merged(self, registry, make_org):
        org = make_org("A", metadata={"description": "apples", "size": "large"})
        registry.update_organization(org.id, metadata={"website": "https://a.example"})
        assert org.metadata.description == "apples"
        assert org.metadata.website == "https://a.example"

    def test_metadata_merge_accepts_camel_case(self, registry, make_org):
        org = make_org("A", metadata={"contactEmail": "old@a.example", "description": "apples"})
        registry.update_organization(org.id, metadata={"contactEmail": "new@a.example"})
        assert org.metadata.contact_email == "new@a.example"
        assert org.metadata.description == "apples"

    def test_trust_score_clamped(self, registry, make_org):
        org = make_org("A")
        registry.update_organization(org.id, trust_score=250)
        assert org.trust_score == 100
        registry.update_organization(org.id, trust_score=-5)
        assert org.trust_score == 0

    def test_unknown_field_rejected(self, registry, make_org):
        org = make_org("A")
        with pytest.raises(ValueError):
            registry.update_organization(org.id, id="org-hijack")

    def test_unknown_org_is_none(self, registry):
        assert registry.update_organization("org-missing", name="x") is None


class TestReputation:
    def test_overall_recomputed(self, registry, make_org):
        org = make_org("A")
        registry.update_reputation_metrics(org.id, contribution_score=100, usage_score=100,
                                           community_score=100, recency_score=100)
        assert org.reputation_metrics.overall_score == pytest.approx(100)
        # No incoming trust: 0.6 * 100
        assert org.trust_score == 60

    def test_incoming_trust_blended(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(b.id, a.id, 0.5)
        registry.update_reputation_metrics(a.id, contribution_score=0)
        # overall = 25 (compliance 100 * 0.25); 25*0.6 + 0.5*100*0.4 = 35
        assert a.trust_score == 35

    def test_values_clamped(self, registry, make_org):
        org = make_org("A")
        registry.update_reputation_metrics(org.id, usage_score=500, community_score=-20)
        assert org.reputation_metrics.usage_score == 100
        assert org.reputation_metrics.community_score == 0

    def test_unknown_metric_rejected(self, registry, make_org):
        org = make_org("A")
        with pytest.raises(ValueError):
            registry.update_reputation_metrics(org.id, charisma_score=90)

    def test_unknown_org_is_none(self, registry):
        assert registry.update_reputation_metrics("org-missing", usage_score=1) is None


class TestListing:
    def test_list_verified_sorted_and_filtered(self, registry, make_org):
        a = make_org("A", verified=True)
        b = make_org("B", verified=True, country="CA")
        make_org("C")
        registry.update_organization(b.id, trust_score=80)

        assert [o.id for o in registry.list_verified_organizations()] == [b.id, a.id]
        assert [o.id for o in registry.list_verified_organizations(country="CA")] == [b.id]
        assert registry.list_verified_organizations(min_trust_score=60) == [b]
        assert registry.list_verified_organizations(org_type="research") == []

    def test_search(self, registry, make_org):
        make_org("Apple Growers", metadata={"description": "orchards"})
        make_org("Seed Lab", OrganizationType.RESEARCH, metadata={"description": "apple genetics"})
        make_org("Other")
        assert len(registry.search_organizations("APPLE")) == 2
        assert len(registry.search_organizations("apple", limit=1)) == 1
        assert len(registry.search_organizations("research")) == 1

    @pytest.mark.parametrize("limit", [0, -3])
    def test_search_non_positive_limit_rejected(self, registry, make_org, limit):
        make_org("Apple Growers")
        with pytest.raises(ValueError):
            registry.search_organizations("apple", limit=limit)


# ─── Trust relationships ─────────────────────────────

class TestTrust:
    def test_example_scenario(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        assert a.trust_score == b.trust_score == 50

        rel = registry.establish_trust(a.id, b.id, 0.5)
        assert rel.trust_level == 0.5
        assert rel.relationship_type is RelationshipType.PEER

        rel = registry.record_incident(a.id, b.id, 3)
        assert rel.incidents == 1
        assert rel.interactions == 1
        assert rel.trust_level == pytest.approx(0.2)
        assert rel.relationship_type is RelationshipType.SUSPICIOUS

        assert registry.get_bidirectional_trust(a.id, b.id) == pytest.approx(0.2)

    def test_initial_level_clamped_and_typed(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        rel = registry.establish_trust(a.id, b.id, 1.7)
        assert rel.trust_level == 1.0
        assert rel.relationship_type is RelationshipType.PARTNER

    def test_one_relationship_per_pair(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        first = registry.establish_trust(a.id, b.id, 0.9)
        again = registry.establish_trust(a.id, b.id, 0.1)
        assert again is first
        assert again.trust_level == 0.9
        assert len(registry.get_trust_relationships(a.id)) == 1

    def test_self_trust_rejected(self, registry, make_org):
        a = make_org("A")
        with pytest.raises(ValueError):
            registry.establish_trust(a.id, a.id)

    def test_unknown_endpoint_is_none(self, registry, make_org):
        a = make_org("A")
        assert registry.establish_trust(a.id, "org-missing") is None

    @pytest.mark.parametrize("delta,expected", [(5.0, 1.0), (-5.0, 0.0), (0.25, 0.75)])
    def test_update_clamped(self, registry, make_org, delta, expected):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(a.id, b.id, 0.5)
        rel = registry.update_trust_level(a.id, b.id, delta)
        assert rel.trust_level == pytest.approx(expected)
        assert 0.0 <= rel.trust_level <= 1.0

    def test_update_counts_interaction_and_timestamp(self, registry, make_org, clock):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(a.id, b.id, 0.5)
        clock.advance(60)
        rel = registry.update_trust_level(a.id, b.id, 0.3)
        assert rel.interactions == 1
        assert rel.last_updated == clock.now
        assert rel.relationship_type is RelationshipType.PARTNER

    def test_writes_to_missing_relationship_are_noops(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        assert registry.update_trust_level(a.id, b.id, 0.1) is None
        assert registry.record_incident(a.id, b.id, 2) is None
        assert registry.get_relationship(a.id, b.id) is None

    def test_negative_severity_does_not_raise_trust(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(a.id, b.id, 0.5)
        rel = registry.record_incident(a.id, b.id, -4)
        assert rel.trust_level == 0.5
        assert rel.incidents == 1

    def test_default_trust_level(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        assert registry.get_trust_level(a.id, b.id) == 0.5
        assert registry.get_bidirectional_trust(a.id, b.id) == 0.5

    def test_incoming_and_outgoing(self, registry, triangle):
        a, b, c, d = triangle
        assert [r.to_org_id for r in registry.get_trust_relationships(a.id)] == [b.id]
        assert [r.from_org_id for r in registry.get_incoming_relationships(a.id)] == [c.id]
        assert registry.get_trust_relationships(d.id) == []

    def test_incident_audited(self, registry, make_org, ctx):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(a.id, b.id)
        registry.record_incident(a.id, b.id, 1)
        assert ctx.audit.query(event_type=FederationEventType.TRUST_INCIDENT)[0].details == {
            "target": b.id, "severity": 1.0,
        }
        assert ctx.audit.verify_integrity() == (True, None)


# ─── Federation nodes ────────────────────────────────

class TestNodes:
    def test_register_from_camel_case_payload(self, registry, make_org, clock):
        org = make_org("A")
        node = registry.register_node({
            "organizationId": org.id,
            "endpoint": "https://a.example/federation",
            "capabilities": ["data-sharing", "model-hosting"],
            "regions": ["west"],
            "version": "2.1.0",
        })
        assert node.organization_id == org.id
        assert node.last_heartbeat == clock.now
        assert registry.get_node(org.id) is node

    def test_discovery(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        registry.register_node({"organization_id": a.id, "endpoint": "a",
                                "capabilities": ["model-hosting"], "regions": ["west"]})
        registry.register_node({"organization_id": b.id, "endpoint": "b",
                                "capabilities": ["storage-provider"], "regions": ["east"]})
        assert [n.organization_id for n in registry.find_nodes_by_capability("model-hosting")] == [a.id]
        assert [n.organization_id for n in registry.find_nodes_by_region("east")] == [b.id]

        registry.set_node_status(a.id, NodeStatus.DEGRADED)
        assert registry.find_nodes_by_capability("model-hosting") == []

    def test_stale_nodes_swept(self, registry, make_org, clock):
        a, b = make_org("A"), make_org("B")
        registry.register_node({"organization_id": a.id, "endpoint": "a"})
        registry.register_node({"organization_id": b.id, "endpoint": "b"})
        clock.advance(600)
        registry.update_node_heartbeat(b.id)

        assert registry.sweep_stale_nodes(300) == [a.id]
        assert registry.get_node(a.id).status is NodeStatus.OFFLINE
        assert registry.get_node(b.id).status is NodeStatus.ONLINE

    def test_heartbeat_brings_node_back(self, registry, make_org, clock):
        a = make_org("A")
        registry.register_node({"organization_id": a.id, "endpoint": "a", "status": "offline"})
        clock.advance(5)
        node = registry.update_node_heartbeat(a.id)
        assert node.status is NodeStatus.ONLINE
        assert node.last_heartbeat == clock.now

    def test_unknown_node_is_none(self, registry):
        assert registry.update_node_heartbeat("org-missing") is None
        assert registry.set_node_status("org-missing", "offline") is None

    def test_heartbeat_during_sweep_waits_for_it(self, clock):
        sweeping = threading.Event()
        observed = {}

        def sweep_clock():
            if sweeping.is_set():
                sweeping.clear()
                beat.start()
                beat.join(timeout=0.2)
                observed["heartbeat_blocked"] = beat.is_alive()
            return clock()

        registry = OrganizationRegistry(clock=sweep_clock)
        org = registry.register_organization("A", "grower", "US", "west")
        registry.register_node({"organization_id": org.id, "endpoint": "a"})
        beat = threading.Thread(target=registry.update_node_heartbeat, args=(org.id,))
        clock.advance(600)

        sweeping.set()
        assert registry.sweep_stale_nodes(300) == [org.id]
        beat.join()

        assert observed["heartbeat_blocked"]
        node = registry.get_node(org.id)
        assert node.status is NodeStatus.ONLINE
        assert node.last_heartbeat == clock.now


# ─── Concurrency ─────────────────────────────────────

THREADS = 8
ROUNDS = 50


def run_concurrently(fn, *args):
    def worker():
        for _ in range(ROUNDS):
            fn(*args)

    threads = [threading.Thread(target=worker) for _ in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


class TestConcurrentUpdates:
    def test_trust_updates_not_lost(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(a.id, b.id, 0.1)
        run_concurrently(registry.update_trust_level, a.id, b.id, 0.001)

        rel = registry.get_relationship(a.id, b.id)
        assert rel.interactions == THREADS * ROUNDS
        assert rel.trust_level == pytest.approx(0.1 + 0.001 * THREADS * ROUNDS)

    def test_incidents_not_lost(self, registry, make_org):
        a, b = make_org("A"), make_org("B")
        registry.establish_trust(a.id, b.id, 1.0)
        run_concurrently(registry.record_incident, a.id, b.id, 0)

        rel = registry.get_relationship(a.id, b.id)
        assert rel.incidents == THREADS * ROUNDS
        assert rel.interactions == THREADS * ROUNDS

    def test_reputation_updates_all_applied(self, registry, make_org):
        org = make_org("A")
        fields = ["contribution_score", "usage_score", "compliance_score",
                  "community_score", "recency_score"]
        threads = [
            threading.Thread(target=registry.update_reputation_metrics, args=(org.id,),
                             kwargs={name: 100})
            for name in fields
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        metrics = registry.get_organization(org.id).reputation_metrics
        assert all(getattr(metrics, name) == 100 for name in fields)
        assert metrics.overall_score == pytest.approx(100)
        assert org.trust_score == 60


# ─── Statistics & snapshots ──────────────────────────

class TestStatistics:
    def test_counts(self, registry, triangle):
        a, b, c, d = triangle
        registry.register_node({"organization_id": a.id, "endpoint": "a"})
        stats = registry.get_statistics()
        assert stats.total_organizations == 4
        assert stats.verified_organizations == 2
        assert stats.active_nodes == 1
        assert stats.trust_relationships == 3
        assert stats.average_trust_score == 50
        assert stats.organizations_by_type["grower"] == 1
        assert stats.organizations_by_region == {"west": 3, "north": 1}

    def test_empty(self, registry):
        stats = registry.get_statistics()
        assert stats.total_organizations == 0
        assert stats.average_trust_score == 0


class TestSnapshot:
    def test_json_round_trip(self, registry, triangle, clock):
        a, b, c, d = triangle
        registry.register_node({"organization_id": a.id, "endpoint": "a", "capabilities": ["data-sharing"]})
        restored = OrganizationRegistry.from_json(registry.export_json(), clock=clock)

        assert restored.get_organization(a.id).to_dict() == a.to_dict()
        assert restored.get_relationship(a.id, b.id).trust_level == 0.9
        assert restored.get_node(a.id).capabilities == registry.get_node(a.id).capabilities
        assert restored.get_statistics().to_dict() == registry.get_statistics().to_dict()

    def test_duplicate_pair_keeps_first(self, registry, triangle):
        a, b, _, _ = triangle
        data = registry.export_snapshot()
        dup = dict(data["relationships"][0], trust_level=0.1)
        data["relationships"].append(dup)
        restored = OrganizationRegistry.from_snapshot(data)
        assert restored.get_relationship(a.id, b.id).trust_level == 0.9
        assert len(restored.all_relationships()) == 3
