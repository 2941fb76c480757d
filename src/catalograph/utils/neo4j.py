"""
Neo4j connection settings and driver helpers.

    NEO4J_URI        bolt URI (bolt://localhost:7687)
    NEO4J_USER       user name (neo4j)
    NEO4J_PASSWORD   password (password)
    NEO4J_DATABASE   database holding the hierarchies (neo4j)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from neo4j import GraphDatabase
from neo4j.exceptions import AuthError, ServiceUnavailable

__all__ = ["Neo4jConfig", "check_connection", "connect", "open_session"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Neo4jConfig:
    """Where the catalog graph lives."""

    uri: str = "bolt://localhost:7687"
    user: str = "neo4j"
    password: str = "password"
    database: str = "neo4j"

    @classmethod
    def from_env(cls) -> "Neo4jConfig":
        defaults = cls()
        return cls(
            uri=os.environ.get("NEO4J_URI", defaults.uri),
            user=os.environ.get("NEO4J_USER", defaults.user),
            password=os.environ.get("NEO4J_PASSWORD", defaults.password),
            database=os.environ.get("NEO4J_DATABASE", defaults.database),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Settings for display; the password is masked."""
        return {
            "uri": self.uri,
            "user": self.user,
            "password": "***",
            "database": self.database,
        }


def connect(config: Optional[Neo4jConfig] = None):
    """
    Create a Neo4j driver.

    Args:
        config: Connection settings (read from the environment if omitted)

    Returns:
        Neo4j driver instance; the caller owns it and must close it
    """
    config = config or Neo4jConfig.from_env()
    logger.debug("Connecting to %s as %s", config.uri, config.user)
    return GraphDatabase.driver(config.uri, auth=(config.user, config.password))


def open_session(driver, database: Optional[str] = None):
    """Open a session on the given database (NEO4J_DATABASE if omitted)."""
    return driver.session(database=database or Neo4jConfig.from_env().database)


def check_connection(config: Optional[Neo4jConfig] = None) -> bool:
    """True when the server answers with the configured credentials."""
    config = config or Neo4jConfig.from_env()
    driver = connect(config)
    try:
        driver.verify_connectivity()
        return True
    except (ServiceUnavailable, AuthError) as exc:
        logger.warning("Neo4j at %s is not reachable: %s", config.uri, exc)
        return False
    finally:
        driver.close()
