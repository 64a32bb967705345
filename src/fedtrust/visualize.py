"""
fedtrust.visualize — Text and DOT rendering of the federation trust graph.

Renders graph exports as Graphviz DOT or readable ASCII summaries for
debugging, auditing, and demo purposes.
"""

from __future__ import annotations

import io
from typing import Sequence

from fedtrust.graph import Community, GraphNodeType, InfluenceEntry, TrustGraph

_NODE_SHAPES = {
    GraphNodeType.ORGANIZATION.value: "box",
    GraphNodeType.MODEL.value: "ellipse",
    GraphNodeType.INSIGHT.value: "note",
    GraphNodeType.EXTENSION.value: "component",
    GraphNodeType.POLICY.value: "hexagon",
}


def render_dot(graph: TrustGraph) -> str:
    """
    Render the graph as a DOT digraph (Graphviz format).

    Organization nodes are colored by trust score; trust edges are labelled
    with their level. Can be piped to `dot -Tpng` for image output.
    """
    data = graph.export_for_visualization()

    out = io.StringIO()
    out.write("digraph federation_trust {\n")
    out.write('  rankdir=LR;\n')
    out.write('  node [style=rounded, fontname="monospace"];\n')
    out.write('  edge [fontname="monospace", fontsize=10];\n\n')

    for node in sorted(data["nodes"], key=lambda n: n["id"]):
        shape = _NODE_SHAPES.get(node["type"], "box")
        label = _escape(node["label"])
        if node["type"] == GraphNodeType.ORGANIZATION.value:
            color = _score_color(node["size"])
            out.write(f'  "{node["id"]}" [label="{label}\\nscore: {node["size"]}", '
                      f'shape={shape}, color="{color}", penwidth=2];\n')
        else:
            out.write(f'  "{node["id"]}" [label="{label}", shape={shape}];\n')

    out.write("\n")

    for edge in data["edges"]:
        style = "solid" if edge["type"] == "trusts" else "dashed"
        out.write(f'  "{edge["source"]}" -> "{edge["target"]}" '
                  f'[label="{edge["type"]} {edge["weight"]:.2f}", style={style}];\n')

    out.write("}\n")
    return out.getvalue()


def render_influence(ranking: Sequence[InfluenceEntry]) -> str:
    """
    Render an influence ranking as a bar chart.

    Example output::

        Influence Ranking (3 organizations)
        ════════════════════════════════════
          1. Coop North   1.60  ██████████  (3 connections)
          2. Seed Lab     0.90  ██████░░░░  (2 connections)
    """
    if not ranking:
        return "Influence Ranking: (empty)\n"

    top = max(e.influence for e in ranking) or 1.0
    max_name = max(len(e.name) for e in ranking)

    out = io.StringIO()
    out.write(f"Influence Ranking ({len(ranking)} organizations)\n")
    out.write("═" * 40 + "\n")
    for i, entry in enumerate(ranking, 1):
        bar = _bar(entry.influence / top, width=10)
        out.write(f"  {i:>2}. {entry.name.ljust(max_name)}  {entry.influence:.2f}  {bar}"
                  f"  ({entry.connections} connections)\n")
    return out.getvalue()


def render_communities(communities: Sequence[Community], graph: TrustGraph) -> str:
    """Render detected communities with member names and density."""
    if not communities:
        return "Communities: (none)\n"

    out = io.StringIO()
    out.write(f"Communities ({len(communities)})\n")
    out.write("═" * 40 + "\n")
    for community in communities:
        out.write(f"  {community.community_id}  "
                  f"{len(community.organizations)} members  density {community.density:.2f}\n")
        for org_id in community.organizations:
            node = graph.get_node(org_id)
            name = node.label if node else org_id
            out.write(f"    - {_truncate(name, 40)} ({org_id})\n")
    return out.getvalue()


# ─── Helpers ──────────────────────────────────────────────────────

def _escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"')


def _truncate(s: str, max_len: int) -> str:
    return s if len(s) <= max_len else s[: max_len - 1] + "…"


def _bar(fraction: float, width: int = 10) -> str:
    filled = round(max(0.0, min(1.0, fraction)) * width)
    return "█" * filled + "░" * (width - filled)


def _score_color(score: float) -> str:
    if score >= 70:
        return "darkgreen"
    elif score >= 40:
        return "orange"
    else:
        return "red"
