"""
Catalograph MCP Server

Provides MCP (Model Context Protocol) tools for agents to:
- Browse category trees, the filter DAG and breadcrumbs
- Attach and detach products, look up products under nodes
- Re-parent filters and move categories
- Run the integrity audit and level repair

Usage:
    catalograph mcp

Or configure in .mcp.json:
    {
        "catalograph-mcp": {
            "type": "stdio",
            "command": "catalograph",
            "args": ["mcp"]
        }
    }
"""

from .server import create_server, main

__all__ = ["create_server", "main"]
