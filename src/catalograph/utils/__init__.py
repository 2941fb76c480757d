"""
Shared utilities for the catalograph package.

- neo4j: connection settings, driver and session helpers
- slugs: URL slug generation for node names
"""

from catalograph.utils.neo4j import Neo4jConfig, check_connection, connect, open_session
from catalograph.utils.slugs import slugify, utc_now

__all__ = [
    "Neo4jConfig",
    "check_connection",
    "connect",
    "open_session",
    "slugify",
    "utc_now",
]
