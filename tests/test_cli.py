"""Tests for the fedtrust CLI."""
import json
import logging

import pytest

from fedtrust.cli import build_parser, main
from fedtrust.log import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_logging():
    """main() installs a handler on the fedtrust logger; drop it after each test."""
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level = logger.handlers[:], logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def snapshot(tmp_path, registry, triangle):
    path = tmp_path / "federation.json"
    path.write_text(registry.export_json())
    return str(path), triangle


# ─── Parser tests ──────────────────────────────────────────────────

class TestParser:
    def test_commands(self):
        parser = build_parser()
        args = parser.parse_args(["path", "org-a", "org-b", "snap.json"])
        assert (args.command, args.source, args.target, args.snapshot) == ("path", "org-a", "org-b", "snap.json")

    def test_influence_limit(self):
        args = build_parser().parse_args(["--json", "influence", "snap.json", "--limit", "3"])
        assert args.json and args.limit == 3

    def test_no_command_exits(self):
        with pytest.raises(SystemExit):
            main([])


# ─── Commands ──────────────────────────────────────────────────────

class TestCommands:
    def test_stats(self, snapshot, capsys):
        path, _ = snapshot
        result = main(["--json", "stats", path])
        assert result["federation"]["total_organizations"] == 4
        assert result["graph"]["edge_count"] == 3
        assert json.loads(capsys.readouterr().out) == result

    def test_stats_human(self, snapshot, capsys):
        path, _ = snapshot
        main(["stats", path])
        out = capsys.readouterr().out
        assert "Federation Statistics" in out
        assert "Organizations:  4 (2 verified)" in out

    def test_influence(self, snapshot):
        path, (a, b, c, d) = snapshot
        result = main(["--json", "influence", path, "--limit", "2"])
        assert [o["organization_id"] for o in result["organizations"]] == [b.id, a.id]

    def test_communities(self, snapshot, capsys):
        path, (a, b, c, d) = snapshot
        result = main(["communities", path])
        assert result["count"] == 1
        assert set(result["communities"][0]["organizations"]) == {a.id, b.id, c.id}
        assert "Communities (1)" in capsys.readouterr().out

    def test_path(self, snapshot, capsys):
        path, (a, b, c, d) = snapshot
        result = main(["path", a.id, c.id, path])
        assert result["path"] == [a.id, b.id, c.id]
        assert result["edges"] == ["trusts", "trusts"]
        assert "Alpha Farms → Beta Research → Gamma Supply" in capsys.readouterr().out

    def test_path_not_found(self, snapshot, capsys):
        path, (a, b, c, d) = snapshot
        result = main(["path", a.id, d.id, path])
        assert result["found"] is False
        assert "No path" in capsys.readouterr().out

    def test_score(self, snapshot):
        path, (a, *_) = snapshot
        result = main(["--json", "score", a.id, path])
        assert result["overall"] == 54.75
        assert result["name"] == "Alpha Farms"

    def test_trend(self, snapshot):
        path, (a, *_) = snapshot
        result = main(["--json", "trend", a.id, path])
        assert result["trend"] == "stable"
        assert result["confidence"] == 0.3

    def test_trend_uses_saved_history(self, tmp_path, ctx, registry, make_org):
        org = make_org("Rising Farms", verified=True)
        for i in range(6):
            registry.update_reputation_metrics(org.id, contribution_score=i * 10)
            ctx.engine.calculate_trust_score(org.id)
        path = tmp_path / "federation.json"
        path.write_text(ctx.export_json())

        result = main(["--json", "trend", org.id, str(path)])
        assert result["trend"] == "increasing"
        assert result["slope"] == pytest.approx(1.6)
        assert result["predicted_30_days"] > result["current"]

    def test_peers(self, snapshot):
        path, (a, *_) = snapshot
        result = main(["--json", "peers", a.id, path])
        assert result["peer_count"] == 0
        assert result["percentile"] == 50

    def test_dot(self, snapshot, capsys):
        path, _ = snapshot
        main(["dot", path])
        assert capsys.readouterr().out.startswith("digraph federation_trust {")


class TestErrors:
    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["stats", str(tmp_path / "nope.json")])
        assert exc.value.code == 1
        assert "File not found" in capsys.readouterr().err

    def test_unknown_organization(self, snapshot, capsys):
        path, _ = snapshot
        with pytest.raises(SystemExit):
            main(["score", "org-missing", path])
        assert "Organization not found: org-missing" in capsys.readouterr().err

    def test_non_positive_limit(self, snapshot, capsys):
        path, _ = snapshot
        with pytest.raises(SystemExit):
            main(["influence", path, "--limit", "0"])
        assert "limit must be >= 1" in capsys.readouterr().err
