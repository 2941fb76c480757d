#!/usr/bin/env python3
"""
Catalograph MCP Server

Exposes tools for agents to browse the category trees and filter DAG,
attach products, re-parent nodes and run the integrity audit.
"""

import asyncio
import json
import os
from typing import List

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from catalograph.errors import HierarchyError
from catalograph.hierarchy.audit import IntegrityAuditor
from catalograph.hierarchy.binding import ProductBinding
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.tree import TreeHierarchy
from catalograph.store import GraphStore, open_store


# Server instance
app = Server("catalograph-mcp")

_store = None


def get_store() -> GraphStore:
    """Shared store for the server process (CATALOGRAPH_BACKEND, default neo4j)."""
    global _store
    if _store is None:
        _store = open_store(os.environ.get("CATALOGRAPH_BACKEND", "neo4j"))
    return _store


def _id_list(description: str) -> dict:
    return {"type": "array", "items": {"type": "string"}, "description": description}


# =============================================================================
# Tool Definitions
# =============================================================================

@app.list_tools()
async def list_tools():
    """List available MCP tools."""
    return [
        Tool(
            name="get_tree",
            description="""Get the category trees grouped by namespace.

Each category carries id, name, level, flags and its children.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "namespace": {"type": "string", "description": "Only this namespace (e.g. 'ladies')"},
                    "active_only": {"type": "boolean", "default": False},
                },
            },
        ),
        Tool(
            name="get_dag",
            description="""Get the filter DAG rendered as a tree of trees.

A filter with several parents appears under each of them.""",
            inputSchema={
                "type": "object",
                "properties": {"active_only": {"type": "boolean", "default": False}},
            },
        ),
        Tool(
            name="get_breadcrumbs",
            description="""Get root-to-node paths for one or more nodes.

Categories have one path; a filter has one path per distinct route.""",
            inputSchema={
                "type": "object",
                "properties": {"node_ids": _id_list("Node ids")},
                "required": ["node_ids"],
            },
        ),
        Tool(
            name="validate_leaf",
            description="Check whether products can be assigned to a category (it must have no children).",
            inputSchema={
                "type": "object",
                "properties": {"node_id": {"type": "string", "description": "Category id"}},
                "required": ["node_id"],
            },
        ),
        Tool(
            name="attach_product",
            description="""Attach a product to a category (leaf only) or a filter.

Re-attaching an existing pair is a no-op; is_new reports which happened.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string"},
                    "node_id": {"type": "string"},
                },
                "required": ["product_id", "node_id"],
            },
        ),
        Tool(
            name="detach_product",
            description="Remove a product from a category or filter.",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string"},
                    "node_id": {"type": "string"},
                },
                "required": ["product_id", "node_id"],
            },
        ),
        Tool(
            name="products_under",
            description="""Products attached to any of the nodes or to anything below them.

Several ids are combined with OR semantics.""",
            inputSchema={
                "type": "object",
                "properties": {"node_ids": _id_list("Category or filter ids")},
                "required": ["node_ids"],
            },
        ),
        Tool(
            name="update_parents",
            description="""Replace all parents of a filter.

Rejected atomically when any new parent is the filter itself or one of
its descendants; the error names the offending parent.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "node_id": {"type": "string", "description": "Filter id"},
                    "parent_ids": _id_list("New parent filter ids (empty makes it a root)"),
                },
                "required": ["node_id", "parent_ids"],
            },
        ),
        Tool(
            name="move_node",
            description="Move a category under a new parent in the same namespace (omit new_parent_id to make it a root).",
            inputSchema={
                "type": "object",
                "properties": {
                    "node_id": {"type": "string"},
                    "new_parent_id": {"type": "string"},
                },
                "required": ["node_id"],
            },
        ),
        Tool(
            name="run_audit",
            description="""Run the read-only integrity audit.

Returns status (healthy/degraded/unhealthy), summary counts and findings.""",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="repair_levels",
            description="Recompute every filter and category level. Cycles are reported, not broken.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


# =============================================================================
# Tool Implementations
# =============================================================================

async def get_tree(namespace: str = None, active_only: bool = False) -> dict:
    grouped = TreeHierarchy(get_store()).tree(namespace=namespace, active_only=active_only)
    return {ns: [t.to_dict() for t in roots] for ns, roots in grouped.items()}


async def get_dag(active_only: bool = False) -> dict:
    roots = DagHierarchy(get_store()).as_tree(active_only=active_only)
    return {"roots": [t.to_dict() for t in roots], "count": len(roots)}


async def get_breadcrumbs(node_ids: List[str]) -> dict:
    store = get_store()
    tree, dag = TreeHierarchy(store), DagHierarchy(store)
    breadcrumbs = {}
    for node_id in node_ids:
        node = store.get_node(node_id)
        if node is None:
            breadcrumbs[node_id] = {"error": f"Node {node_id} not found"}
            continue
        paths = [tree.path(node_id)] if node.is_tree else dag.breadcrumbs(node_id)
        breadcrumbs[node_id] = [[{"id": n.id, "name": n.name} for n in path] for path in paths]
    return {"breadcrumbs": breadcrumbs}


async def validate_leaf(node_id: str) -> dict:
    return TreeHierarchy(get_store()).validate_leaf_for_attachment(node_id).to_dict()


async def attach_product(product_id: str, node_id: str) -> dict:
    created = ProductBinding(get_store()).attach(product_id, node_id)
    return {
        "product_id": product_id,
        "node_id": node_id,
        "is_new": created,
        "message": "Product attached" if created else "Product already attached (idempotent)",
    }


async def detach_product(product_id: str, node_id: str) -> dict:
    removed = ProductBinding(get_store()).detach(product_id, node_id)
    return {"product_id": product_id, "node_id": node_id, "removed": removed}


async def products_under(node_ids: List[str]) -> dict:
    products = ProductBinding(get_store()).products_for(node_ids, include_descendants=True)
    return {"node_ids": node_ids, "products": products, "count": len(products)}


async def update_parents(node_id: str, parent_ids: List[str]) -> dict:
    node = DagHierarchy(get_store()).update_parents(node_id, parent_ids)
    return {"node": node.to_dict(), "parent_ids": sorted(parent_ids)}


async def move_node(node_id: str, new_parent_id: str = None) -> dict:
    node = TreeHierarchy(get_store()).move_node(node_id, new_parent_id)
    return {"node": node.to_dict(), "parent_id": new_parent_id}


async def run_audit() -> dict:
    return IntegrityAuditor(get_store()).audit().to_dict()


async def repair_levels() -> dict:
    return IntegrityAuditor(get_store()).repair()


TOOLS = {
    "get_tree": get_tree,
    "get_dag": get_dag,
    "get_breadcrumbs": get_breadcrumbs,
    "validate_leaf": validate_leaf,
    "attach_product": attach_product,
    "detach_product": detach_product,
    "products_under": products_under,
    "update_parents": update_parents,
    "move_node": move_node,
    "run_audit": run_audit,
    "repair_levels": repair_levels,
}


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    try:
        handler = TOOLS.get(name)
        if handler is None:
            result = {"error": f"Unknown tool: {name}"}
        else:
            result = await handler(**arguments)

        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    except HierarchyError as e:
        error_result = {**e.to_dict(), "tool": name}
        return [TextContent(type="text", text=json.dumps(error_result, indent=2, default=str))]

    except Exception as e:
        error_result = {
            "error": str(e),
            "tool": name,
            "arguments": arguments
        }
        return [TextContent(type="text", text=json.dumps(error_result, indent=2, default=str))]


# =============================================================================
# Server Entry Point
# =============================================================================

def create_server() -> Server:
    """Create and return the MCP server instance."""
    return app


async def run_server():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(
            read_stream,
            write_stream,
            app.create_initialization_options()
        )


def main():
    """Main entry point."""
    try:
        asyncio.run(run_server())
    finally:
        if _store is not None:
            _store.close()


if __name__ == "__main__":
    main()
