"""
Graph queries: building, executing under a timeout, ranking and shaping results.
"""

from .builder import GraphQuery, QueryBuilder, QueryKind
from .resolver import QueryRequest, QueryResolver

__all__ = [
    'GraphQuery',
    'QueryBuilder',
    'QueryKind',
    'QueryRequest',
    'QueryResolver',
]
