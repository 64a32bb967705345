#!/usr/bin/env python3
"""
fedtrust CLI — Offline analysis of a federation registry snapshot.

Works directly on a JSON snapshot written by FederationContext.export_json()
or OrganizationRegistry.export_json() (no server required). Score history is
only present in the former, so `trend` needs a context snapshot to forecast.

Commands:
    stats       - Federation and graph statistics
    influence   - Influence ranking of organizations
    communities - Connected trust communities
    path        - Shortest trust path between two organizations
    score       - Composite trust score with components
    trend       - Trust score trend forecast
    peers       - Compare an organization to its verified peers
    dot         - Graphviz DOT rendering of the trust graph
"""

import argparse
import json
import sys
from typing import Optional

from fedtrust.config import FederationConfig
from fedtrust.context import FederationContext
from fedtrust.log import setup_structured_logging


def _output(data: dict, args: argparse.Namespace, human_fn=None):
    """Output data as JSON or pretty-printed."""
    if getattr(args, 'json', False):
        print(json.dumps(data, indent=2, default=str))
    elif human_fn:
        human_fn(data)
    else:
        print(json.dumps(data, indent=2, default=str))


def _load_context(snapshot: str) -> FederationContext:
    """Load a snapshot (with any score history) and build its graph."""
    with open(snapshot) as f:
        ctx = FederationContext.from_json(f.read(), config=FederationConfig.from_env())
    ctx.graph.initialize_graph()
    return ctx


def _name(ctx: FederationContext, org_id: str) -> str:
    org = ctx.registry.get_organization(org_id)
    return org.name if org else org_id


# ─── Commands ──────────────────────────────────────────────────────

def cmd_stats(args):
    """Federation and graph statistics."""
    ctx = _load_context(args.snapshot)
    result = {
        "federation": ctx.registry.get_statistics().to_dict(),
        "graph": ctx.graph.get_graph_statistics().to_dict(),
    }

    def human(d):
        fed, graph = d["federation"], d["graph"]
        print("📊 Federation Statistics")
        print(f"   Organizations:  {fed['total_organizations']} ({fed['verified_organizations']} verified)")
        print(f"   Active nodes:   {fed['active_nodes']}")
        print(f"   Relationships:  {fed['trust_relationships']}")
        print(f"   Avg trust:      {fed['average_trust_score']}")
        print(f"   Graph:          {graph['node_count']} nodes, {graph['edge_count']} edges")
        print(f"   Density:        {graph['density']}")
        for org_type, count in sorted(fed["organizations_by_type"].items()):
            print(f"     {org_type:<12} {count}")

    _output(result, args, human)
    return result


def cmd_influence(args):
    """Influence ranking."""
    from fedtrust.visualize import render_influence

    ctx = _load_context(args.snapshot)
    ranking = ctx.graph.find_influential_organizations(args.limit)
    result = {
        "limit": args.limit,
        "organizations": [
            {"organization_id": e.organization_id, "name": e.name,
             "influence": round(e.influence, 4), "connections": e.connections}
            for e in ranking
        ],
    }

    _output(result, args, lambda d: print(render_influence(ranking), end=""))
    return result


def cmd_communities(args):
    """Connected trust communities."""
    from fedtrust.visualize import render_communities

    ctx = _load_context(args.snapshot)
    communities = ctx.graph.detect_communities()
    result = {
        "count": len(communities),
        "communities": [
            {"community_id": c.community_id, "organizations": c.organizations,
             "density": round(c.density, 4)}
            for c in communities
        ],
    }

    _output(result, args, lambda d: print(render_communities(communities, ctx.graph), end=""))
    return result


def cmd_path(args):
    """Shortest trust path between two organizations."""
    ctx = _load_context(args.snapshot)
    path = ctx.graph.find_path(args.source, args.target)

    result = {"from": args.source, "to": args.target, "found": path is not None}
    if path is not None:
        result.update(path=path.path, length=path.length, weight=round(path.weight, 4),
                      edges=[e.type.value for e in path.edges])

    def human(d):
        if not d["found"]:
            print(f"❌ No path from {d['from']} to {d['to']}")
            return
        print(f"🔗 Path ({d['length']} hops, mean weight {d['weight']})")
        print("   " + " → ".join(_name(ctx, n) for n in d["path"]))

    _output(result, args, human)
    return result


def cmd_score(args):
    """Composite trust score."""
    ctx = _load_context(args.snapshot)
    components = ctx.engine.calculate_trust_score(args.org_id, reason="cli")
    result = {"organization_id": args.org_id, "name": _name(ctx, args.org_id),
              **components.to_dict()}

    def human(d):
        print(f"📊 Trust Score for {d['name']}")
        print(f"   Overall:      {d['overall']}")
        for key in ("historical", "reputation", "network", "compliance", "security", "contribution"):
            print(f"   {key.capitalize():<13} {d[key]}")

    _output(result, args, human)
    return result


def cmd_trend(args):
    """Trust score trend forecast."""
    ctx = _load_context(args.snapshot)
    if not ctx.engine.get_score_history(args.org_id, limit=1):
        ctx.engine.calculate_trust_score(args.org_id, reason="cli")
    prediction = ctx.engine.predict_trust_trend(args.org_id)
    result = {"organization_id": args.org_id, **prediction.to_dict()}

    def human(d):
        print(f"📈 Trend for {_name(ctx, d['organization_id'])}: {d['trend']}")
        print(f"   Current:     {d['current']}")
        print(f"   In 30 days:  {d['predicted_30_days']}")
        print(f"   In 90 days:  {d['predicted_90_days']}")
        print(f"   Confidence:  {d['confidence']}")

    _output(result, args, human)
    return result


def cmd_peers(args):
    """Peer comparison."""
    ctx = _load_context(args.snapshot)
    comparison = ctx.engine.compare_to_peers(args.org_id)
    result = {"organization_id": args.org_id, **comparison.to_dict()}

    def human(d):
        print(f"👥 Peer comparison for {_name(ctx, d['organization_id'])}")
        print(f"   Peers:       {d['peer_count']}")
        print(f"   Percentile:  {d['percentile']}")
        print(f"   Overall:     {d['organization']['overall']} (peer avg {d['peer_average']['overall']})")

    _output(result, args, human)
    return result


def cmd_dot(args):
    """Graphviz DOT output."""
    from fedtrust.visualize import render_dot

    ctx = _load_context(args.snapshot)
    dot = render_dot(ctx.graph)
    result = {"dot": dot}

    _output(result, args, lambda d: print(d["dot"], end=""))
    return result


# ─── Parser ────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fedtrust",
        description="Federation trust graph and reputation analysis",
    )
    parser.add_argument("--json", action="store_true", help="Machine-readable JSON output")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("stats", help="Federation statistics")
    p.add_argument("snapshot", help="Registry snapshot JSON file")

    p = sub.add_parser("influence", help="Influence ranking")
    p.add_argument("snapshot", help="Registry snapshot JSON file")
    p.add_argument("-l", "--limit", type=int, default=10, help="Number of organizations to show")

    p = sub.add_parser("communities", help="Trust communities")
    p.add_argument("snapshot", help="Registry snapshot JSON file")

    p = sub.add_parser("path", help="Shortest trust path")
    p.add_argument("source", help="Source organization ID")
    p.add_argument("target", help="Target organization ID")
    p.add_argument("snapshot", help="Registry snapshot JSON file")

    for name, help_text in (("score", "Composite trust score"),
                            ("trend", "Trust score trend forecast"),
                            ("peers", "Compare to verified peers")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("org_id", help="Organization ID")
        p.add_argument("snapshot", help="Registry snapshot JSON file")

    p = sub.add_parser("dot", help="Graphviz DOT rendering")
    p.add_argument("snapshot", help="Registry snapshot JSON file")

    return parser


def main(argv: Optional[list[str]] = None) -> Optional[dict]:
    """CLI entry point. Returns result dict for testing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = FederationConfig.from_env()
    setup_structured_logging(config.log_level, json_output=config.log_json)

    commands = {
        "stats": cmd_stats,
        "influence": cmd_influence,
        "communities": cmd_communities,
        "path": cmd_path,
        "score": cmd_score,
        "trend": cmd_trend,
        "peers": cmd_peers,
        "dot": cmd_dot,
    }

    try:
        return commands[args.command](args)
    except FileNotFoundError as e:
        print(f"❌ File not found: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
