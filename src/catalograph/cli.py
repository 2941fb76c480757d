#!/usr/bin/env python3
"""
Catalograph CLI - command-line interface for the classification hierarchies.

Usage:
    catalograph tree [--namespace ladies]      Show the category trees
    catalograph dag                            Show the filter DAG as a tree of trees
    catalograph breadcrumbs <id> [<id> ...]    Show every root-to-node path
    catalograph audit [--fix]                  Integrity audit (exit 2/1/0)
    catalograph levels                         Recompute all levels
    catalograph stats                          Aggregate statistics
    catalograph duplicates [--kind TREE]       Names used by more than one node
    catalograph validate-leaf <id>             Can products go on this category?
    catalograph migrate-product <p> <from> <to>
    catalograph cleanup-parents [--apply]      Fix products on parent categories
    catalograph seed <file.yaml>               Create categories/filters from YAML
    catalograph mcp                            Start the MCP server (stdio)

Every command except mcp accepts --json.
"""

import argparse
import json
import logging
import sys
from typing import List

from catalograph import __version__
from catalograph.errors import HierarchyError
from catalograph.store import open_store


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _flags(node) -> str:
    flags = []
    if node.is_featured:
        flags.append("featured")
    if not node.is_active:
        flags.append("inactive")
    return f" [{', '.join(flags)}]" if flags else ""


def _print_node_tree(item, indent: int = 1) -> None:
    node = item.node
    print(f"{'  ' * indent}{node.name} (L{node.level}){_flags(node)}  {node.id}")
    for child in item.children:
        _print_node_tree(child, indent + 1)


def _banner(title: str) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)


# =============================================================================
# Command handlers
# =============================================================================

def cmd_tree(args, store) -> int:
    """Show category trees grouped by namespace."""
    from catalograph.hierarchy.tree import TreeHierarchy

    grouped = TreeHierarchy(store).tree(namespace=args.namespace, active_only=args.active_only)
    if args.json:
        _print_json({ns: [t.to_dict() for t in roots] for ns, roots in grouped.items()})
        return 0

    if not grouped:
        print("No categories found")
    for namespace in sorted(grouped):
        print(f"\n{namespace}:")
        for root in grouped[namespace]:
            _print_node_tree(root)
    return 0


def cmd_dag(args, store) -> int:
    """Show the filter DAG rendered as a tree of trees."""
    from catalograph.hierarchy.dag import DagHierarchy

    roots = DagHierarchy(store).as_tree(active_only=args.active_only)
    if args.json:
        _print_json([t.to_dict() for t in roots])
        return 0

    if not roots:
        print("No filters found")
    for root in roots:
        _print_node_tree(root, indent=0)
    return 0


def cmd_breadcrumbs(args, store) -> int:
    """Print every path from a root down to each given node."""
    from catalograph.hierarchy.dag import DagHierarchy
    from catalograph.hierarchy.tree import TreeHierarchy
    from catalograph.hierarchy.nodes import NodeRepository

    repo = NodeRepository(store)
    tree, dag = TreeHierarchy(store), DagHierarchy(store)
    results = {}
    for node_id in args.ids:
        node = repo.require(node_id)
        paths = [tree.path(node_id)] if node.is_tree else dag.breadcrumbs(node_id)
        results[node_id] = [[n.to_dict() for n in path] for path in paths]

    if args.json:
        _print_json(results)
        return 0

    for node_id, paths in results.items():
        print(f"{node_id}:")
        for path in paths:
            print("  " + " > ".join(n["name"] for n in path))
    return 0


def cmd_audit(args, store) -> int:
    """Run the integrity audit; exit 2 when unhealthy, 1 when degraded."""
    from catalograph.hierarchy.audit import IntegrityAuditor

    verbose = not args.quiet and not args.json
    auditor = IntegrityAuditor(store)
    report = auditor.audit()
    output = report.to_dict()

    if verbose:
        _banner("CATALOGRAPH INTEGRITY AUDIT")
        print(f"\nStatus: {report.status.upper()}")
        print(f"Timestamp: {report.timestamp}")
        print(f"\nNodes:")
        print(f"  Categories: {report.stats.get('tree_nodes', 0)}")
        print(f"  Filters: {report.stats.get('dag_nodes', 0)}")
        print(f"  Edges: {report.stats.get('edges', 0)}")
        for label, findings in (("Errors", report.errors), ("Warnings", report.warnings)):
            if findings:
                print(f"\n{label} ({len(findings)}):")
                for finding in findings:
                    print(f"  [{finding.check}] {finding.message}")

    if args.fix and (report.errors or report.warnings):
        if verbose:
            print("\nRecomputing levels...")
        repair = auditor.repair()
        output["repair"] = repair
        if verbose:
            print(f"  {repair['summary']}")

    if args.json:
        _print_json(output)

    if report.status == "unhealthy":
        return 2
    if report.status == "degraded":
        return 1
    return 0


def cmd_levels(args, store) -> int:
    """Recompute every level (filters and categories)."""
    from catalograph.hierarchy.audit import IntegrityAuditor

    result = IntegrityAuditor(store).repair()
    if args.json:
        _print_json(result)
    else:
        print(result["summary"])
        if result["unresolved"]:
            print(f"Unresolved nodes ({len(result['unresolved'])}):")
            for node_id in result["unresolved"]:
                print(f"  {node_id}")
    return 0 if result["converged"] else 1


def cmd_stats(args, store) -> int:
    from catalograph.hierarchy.reports import HierarchyReports

    stats = HierarchyReports(store).statistics()
    if args.json:
        _print_json(stats)
        return 0

    print("Catalograph Statistics:")
    print(f"  Total nodes: {stats['total_nodes']}")
    print(f"  Total edges: {stats['total_edges']}")
    for kind, count in stats["by_kind"].items():
        print(f"  {kind}: {count}")
    for namespace, count in stats["by_namespace"].items():
        print(f"    {namespace}: {count}")
    print(f"  Featured: {stats['featured']}")
    print(f"  Active: {stats['active']} (inactive: {stats['inactive']})")
    print(f"  With products: {stats['with_products']}")
    print(f"  Leaf categories: {stats['tree_leaves']}")
    return 0


def cmd_duplicates(args, store) -> int:
    from catalograph.hierarchy.reports import HierarchyReports

    duplicates = HierarchyReports(store).duplicate_names(kind=args.kind)
    if args.json:
        _print_json(duplicates)
        return 0

    if not duplicates:
        print("No duplicate names")
    for entry in duplicates:
        print(f"{entry['name']} ({entry['count']} nodes)")
        for node in entry["nodes"]:
            where = node["namespace"] or node["kind"]
            print(f"  {node['id']}  {where} L{node['level']}")
    return 0


def cmd_validate_leaf(args, store) -> int:
    from catalograph.hierarchy.tree import TreeHierarchy

    result = TreeHierarchy(store).validate_leaf_for_attachment(args.id)
    if args.json:
        _print_json(result.to_dict())
    elif result.valid:
        print(f'"{result.node_name}" is a leaf category; products can be assigned')
    else:
        print(result.error)
    return 0 if result.valid else 1


def cmd_migrate_product(args, store) -> int:
    from catalograph.hierarchy.binding import ProductBinding

    result = ProductBinding(store).migrate_product_to_leaf(args.product, args.from_id, args.to_id)
    if args.json:
        _print_json(result)
    else:
        print(f"Moved {args.product}: {result['from']['name']} -> {result['to']['name']}")
    return 0


def cmd_cleanup_parents(args, store) -> int:
    """Plan (or apply) the cleanup of products attached to parent categories."""
    from catalograph.hierarchy.maintenance import cleanup_parent_products

    result = cleanup_parent_products(store, apply=args.apply)
    if args.json:
        _print_json(result)
        return 0

    mode = "APPLIED" if result["applied"] else "DRY RUN"
    _banner(f"PARENT CATEGORY CLEANUP ({mode})")
    print(f"\nAlready on a leaf, parent link dropped: {len(result['drop'])}")
    for item in result["drop"]:
        print(f"  {item['product_id']}  {item['from_name']}")
    print(f"\nMoved to the only leaf: {len(result['move'])}")
    for item in result["move"]:
        print(f"  {item['product_id']}  {item['from_name']} -> {item['to_name']}")
    print(f"\nManual review: {len(result['manual_review'])}")
    for item in result["manual_review"]:
        names = ", ".join(c["name"] for c in item["candidates"])
        print(f"  {item['product_id']}  {item['from_name']} (candidates: {names})")
    if not result["applied"]:
        print("\nRe-run with --apply to make these changes")
    return 0


def cmd_seed(args, store) -> int:
    from catalograph.hierarchy.maintenance import seed_from_yaml

    summary = seed_from_yaml(store, args.file)
    if args.json:
        _print_json(summary)
    else:
        for kind, counts in summary.items():
            print(f"{kind}: {counts['created']} created, {counts['existing']} already present")
    return 0


def cmd_mcp(args, store=None) -> int:
    from catalograph.mcp import server
    server.main()
    return 0


# =============================================================================
# Argument parsing
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--json", action="store_true", help="Output as JSON")
    common.add_argument("--backend", choices=["neo4j", "memory"], default="neo4j",
                        help="Graph store backend (default: neo4j)")

    parser = argparse.ArgumentParser(
        prog="catalograph",
        description="Catalograph - category trees and filter DAGs for a storefront",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  catalograph tree --namespace ladies
  catalograph breadcrumbs 5f0c... 91ab...
  catalograph audit --fix
  catalograph cleanup-parents --apply
  catalograph seed catalog.yaml
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p = subparsers.add_parser("tree", parents=[common], help="Show category trees")
    p.add_argument("--namespace", help="Only this namespace")
    p.add_argument("--active-only", action="store_true", help="Hide inactive categories")

    p = subparsers.add_parser("dag", parents=[common], help="Show the filter DAG")
    p.add_argument("--active-only", action="store_true", help="Hide inactive filters")

    p = subparsers.add_parser("breadcrumbs", parents=[common], help="Root-to-node paths")
    p.add_argument("ids", nargs="+", help="Node ids")

    p = subparsers.add_parser("audit", parents=[common], help="Integrity audit")
    p.add_argument("--fix", action="store_true", help="Recompute levels after the audit")
    p.add_argument("--quiet", action="store_true", help="Suppress output")

    subparsers.add_parser("levels", parents=[common], help="Recompute all levels")
    subparsers.add_parser("stats", parents=[common], help="Aggregate statistics")

    p = subparsers.add_parser("duplicates", parents=[common], help="Duplicate-name report")
    p.add_argument("--kind", choices=["TREE", "DAG"], help="Only this hierarchy kind")

    p = subparsers.add_parser("validate-leaf", parents=[common], help="Leaf check for a category")
    p.add_argument("id", help="Category id")

    p = subparsers.add_parser("migrate-product", parents=[common],
                              help="Move a product from a parent category to a leaf")
    p.add_argument("product", help="Product id")
    p.add_argument("from_id", metavar="from", help="Current category id")
    p.add_argument("to_id", metavar="to", help="Target leaf category id")

    p = subparsers.add_parser("cleanup-parents", parents=[common],
                              help="Fix products attached to parent categories")
    p.add_argument("--apply", action="store_true", help="Apply the plan (default: dry run)")

    p = subparsers.add_parser("seed", parents=[common], help="Seed hierarchies from YAML")
    p.add_argument("file", help="YAML seed file")

    subparsers.add_parser("mcp", help="Start MCP server")

    return parser


HANDLERS = {
    "tree": cmd_tree,
    "dag": cmd_dag,
    "breadcrumbs": cmd_breadcrumbs,
    "audit": cmd_audit,
    "levels": cmd_levels,
    "stats": cmd_stats,
    "duplicates": cmd_duplicates,
    "validate-leaf": cmd_validate_leaf,
    "migrate-product": cmd_migrate_product,
    "cleanup-parents": cmd_cleanup_parents,
    "seed": cmd_seed,
}


def run(argv: List[str] = None) -> int:
    """Parse argv, run one command and return its exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1
    if args.command == "mcp":
        return cmd_mcp(args)

    store = open_store(args.backend)
    try:
        return HANDLERS[args.command](args, store)
    except HierarchyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()


def main():
    """Main CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
