"""Tests for CLI entry point."""

import json
import sys
from unittest.mock import patch

import pytest

from catalograph import cli


@pytest.fixture
def run_cli(store):
    """Run the CLI against the shared in-memory store."""
    def runner(*argv):
        with patch("catalograph.cli.open_store", return_value=store) as opened:
            code = cli.run(list(argv))
        if argv and argv[0] != "mcp":
            opened.assert_called_once()
        return code
    return runner


class TestCLI:
    """Tests for the CLI module."""

    def test_cli_has_handlers(self):
        """CLI should have a handler for each command."""
        for command in ("tree", "dag", "breadcrumbs", "audit", "levels", "stats",
                        "duplicates", "validate-leaf", "migrate-product",
                        "cleanup-parents", "seed"):
            assert command in cli.HANDLERS

    def test_main_without_args_shows_help(self):
        """Main should show help when no arguments provided."""
        with patch.object(sys, "argv", ["catalograph"]):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
            assert exc_info.value.code == 1

    def test_main_with_help(self):
        """Main should handle --help flag."""
        with patch.object(sys, "argv", ["catalograph", "--help"]):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
            assert exc_info.value.code == 0

    def test_main_with_version(self):
        """Main should handle --version flag."""
        with patch.object(sys, "argv", ["catalograph", "--version"]):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
            assert exc_info.value.code == 0

    def test_backend_choice(self):
        args = cli.build_parser().parse_args(["stats", "--backend", "memory"])
        assert args.backend == "memory"
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["stats", "--backend", "sqlite"])


class TestCLICommands:
    """Tests for individual CLI commands."""

    def test_tree_json(self, run_cli, catalog, capsys):
        assert run_cli("tree", "--namespace", "ladies", "--json") == 0
        data = json.loads(capsys.readouterr().out)
        assert list(data) == ["ladies"]
        assert [root["name"] for root in data["ladies"]] == ["Clothing", "Footwear"]

    def test_tree_text(self, run_cli, catalog, capsys):
        assert run_cli("tree") == 0
        out = capsys.readouterr().out
        assert "gents:" in out
        assert "Footwear (L0) [featured]" in out

    def test_dag_repeats_shared_children(self, run_cli, filters, capsys):
        assert run_cli("dag", "--json") == 0
        roots = json.loads(capsys.readouterr().out)
        assert [r["name"] for r in roots] == ["Sale", "Winter"]
        for root in roots:
            assert root["children"][0]["name"] == "WinterSale"

    def test_breadcrumbs(self, run_cli, catalog, filters, capsys):
        assert run_cli("breadcrumbs", filters["coats"], catalog["ladies/shirts"]) == 0
        out = capsys.readouterr().out
        assert "Sale > WinterSale > Coats" in out
        assert "Winter > WinterSale > Coats" in out
        assert "Clothing > Tops > Shirts" in out

    def test_unknown_id_reports_error(self, run_cli, capsys):
        assert run_cli("breadcrumbs", "missing") == 1
        assert "Error:" in capsys.readouterr().err

    def test_validate_leaf(self, run_cli, catalog, capsys):
        assert run_cli("validate-leaf", catalog["ladies/shirts"]) == 0
        assert run_cli("validate-leaf", catalog["ladies/tops"]) == 1
        assert "This category has 2 child categories" in capsys.readouterr().out

    def test_migrate_product(self, run_cli, store, catalog, capsys):
        store.attach("P1", catalog["ladies/tops"])
        code = run_cli("migrate-product", "P1", catalog["ladies/tops"], catalog["ladies/shirts"])
        assert code == 0
        assert "Tops -> Shirts" in capsys.readouterr().out
        assert store.nodes_of_product("P1") == {catalog["ladies/shirts"]}

    def test_stats_json(self, run_cli, catalog, filters, capsys):
        assert run_cli("stats", "--json") == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["by_kind"] == {"TREE": 8, "DAG": 4}

    def test_seed(self, run_cli, store, temp_dir, capsys):
        path = temp_dir / "seed.yaml"
        path.write_text("tree:\n  ladies:\n    - name: Clothing\ndag:\n  - name: Sale\n")
        assert run_cli("seed", str(path)) == 0
        assert "TREE: 1 created" in capsys.readouterr().out
        assert len(store.list_nodes()) == 2


class TestAuditCommand:
    """Exit codes follow audit status: 0 healthy, 1 degraded, 2 unhealthy."""

    def test_healthy(self, run_cli, catalog, filters):
        assert run_cli("audit", "--quiet") == 0

    def test_degraded_level_drift(self, run_cli, store, filters, capsys):
        store.update_node(filters["coats"], level=7)
        assert run_cli("audit", "--json") == 1
        report = json.loads(capsys.readouterr().out)
        assert report["status"] == "degraded"
        assert [f["check"] for f in report["findings"]] == ["dag_level"]

    def test_fix_repairs_levels(self, run_cli, store, filters):
        store.update_node(filters["coats"], level=7)
        assert run_cli("audit", "--fix", "--quiet") == 1
        assert store.get_node(filters["coats"]).level == 2
        assert run_cli("audit", "--quiet") == 0

    def test_unhealthy_products_on_parent(self, run_cli, store, catalog, capsys):
        store.attach("P1", catalog["ladies/tops"])
        assert run_cli("audit") == 2
        out = capsys.readouterr().out
        assert "Status: UNHEALTHY" in out
        assert "[non_leaf_products]" in out

    def test_levels_command(self, run_cli, store, filters, capsys):
        store.update_node(filters["wintersale"], level=0)
        assert run_cli("levels", "--json") == 0
        result = json.loads(capsys.readouterr().out)
        assert result["converged"] is True
        assert store.get_node(filters["wintersale"]).level == 1
