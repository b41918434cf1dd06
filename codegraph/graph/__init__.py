"""
Graph store adapters for persisting and querying the code graph.
"""

from typing import Optional

from ..config import settings
from .base import GraphStoreAdapter
from .json_graph_store import JsonGraphStore
from .neo4j_store import Neo4jGraphStore


def create_store(backend: Optional[str] = None) -> GraphStoreAdapter:
    """Build an unconnected store for ``backend`` (defaults to the configured one)."""
    backend = (backend or settings.graph_backend).lower()
    if backend == "neo4j":
        return Neo4jGraphStore()
    if backend == "json":
        return JsonGraphStore()
    raise ValueError(f"Unsupported graph backend: {backend}")


__all__ = [
    'GraphStoreAdapter',
    'JsonGraphStore',
    'Neo4jGraphStore',
    'create_store',
]
