#!/usr/bin/env python3
"""fedtrust quickstart — a small federation from registration to peer ranking.

Run:  python3 examples/quickstart.py
"""
from fedtrust import (
    FederationContext, GraphQuery, PropertyFilter,
    OrganizationType, VerificationLevel, VerificationStatus,
)
from fedtrust.visualize import render_influence

ctx = FederationContext.create()
reg = ctx.registry

# 1. Register organizations and verify two of them
coop = reg.register_organization("Valley Growers Coop", OrganizationType.COOPERATIVE, "US", "west",
                                 metadata={"certifications": ["globalgap"], "size": "large"})
orchard = reg.register_organization("Hillside Orchard", OrganizationType.GROWER, "US", "west")
lab = reg.register_organization("Pacific Seed Lab", OrganizationType.RESEARCH, "US", "west",
                                verification_level=VerificationLevel.CERTIFIED)
for org in (coop, lab):
    reg.update_organization(org.id, verification_status=VerificationStatus.VERIFIED)
print(f"🏢 {reg.get_statistics().total_organizations} organizations registered")

# 2. Trust relationships, interactions and one incident
reg.establish_trust(coop.id, orchard.id, 0.7)
reg.establish_trust(orchard.id, lab.id, 0.6)
reg.establish_trust(lab.id, coop.id, 0.9)
reg.update_trust_level(coop.id, orchard.id, 0.1, reason="shared-harvest-data")
rel = reg.record_incident(orchard.id, lab.id, severity=2)
print(f"⚠️  Orchard → Lab after incident: {rel.trust_level:.2f} ({rel.relationship_type.value})")

# 3. Reputation and a published model
reg.update_reputation_metrics(lab.id, contribution_score=85, usage_score=60, community_score=40)
ctx.graph.initialize_graph()
ctx.graph.add_model_node("model-yield-v2", "Yield Forecast v2", lab.id)
ctx.graph.add_usage_edge(coop.id, "model-yield-v2", "model")

# 4. Graph queries
path = ctx.graph.find_path(coop.id, lab.id)
print(f"\n🔗 Coop → Lab: {path.length} hops, mean weight {path.weight:.2f}")
west = ctx.graph.query(GraphQuery(node_types=["organization"],
                                  filters=[PropertyFilter("region", "eq", "west")]))
print(f"🌎 West-region organizations: {len(west.nodes)}")
print()
print(render_influence(ctx.graph.find_influential_organizations(5)), end="")

# 5. Composite scores
stats, report = ctx.refresh()
for org_id in (coop.id, lab.id):
    s = ctx.engine.calculate_trust_score(org_id)
    print(f"\n📊 {reg.get_organization(org_id).name}: {s.overall:.1f}")
    print(f"   historical {s.historical:.0f} | reputation {s.reputation:.0f} | network {s.network:.0f}")
    print(f"   compliance {s.compliance:.0f} | security {s.security:.0f} | contribution {s.contribution:.0f}")

print(f"\n🤝 Coop ↔ Lab bilateral trust: {ctx.engine.calculate_bilateral_trust(coop.id, lab.id):.2f}")
print(f"🧾 Audit trail: {ctx.audit.size} entries, intact={ctx.audit.verify_integrity()[0]}")
