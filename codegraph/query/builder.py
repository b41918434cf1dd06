from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Optional

from ..config import settings
from ..graph.base import NODE_LABEL


class QueryKind(str, Enum):
    FIND_ENTITY = "find_entity"
    FIND_SYMBOL = "find_symbol"
    FIND_PATTERN = "find_pattern"


SYMBOL_LIMIT = 5
PATTERN_LIMIT = 8

ENTITY_MATCH = f"""
MATCH (n:{NODE_LABEL})
WHERE ANY(term IN $terms WHERE toLower(n.name) CONTAINS term
          OR toLower(coalesce(n.type, '')) CONTAINS term
          OR toLower(coalesce(n.prop_description, '')) CONTAINS term
          OR toLower(coalesce(n.prop_file_path, '')) CONTAINS term)"""

SYMBOL_MATCH = f"""
MATCH (n:{NODE_LABEL})
WHERE n.name = $target OR toLower(n.name) CONTAINS $target_lower"""

PATTERN_MATCH = f"""
MATCH (n:{NODE_LABEL})
WHERE toLower(coalesce(n.prop_description, '')) CONTAINS $target_lower
   OR toLower(n.name) CONTAINS $target_lower
   OR ($for_entity <> '' AND (toLower(n.name) CONTAINS $for_entity
                              OR toLower(coalesce(n.prop_file_path, '')) CONTAINS $for_entity))"""

RELATED_HOP = f"\nOPTIONAL MATCH (n)-[r]-(related:{NODE_LABEL})"

RANKED_ORDER = """
ORDER BY CASE WHEN toLower(n.name) = $target_lower THEN 0
              WHEN toLower(n.name) CONTAINS $primary_term THEN 1
              ELSE 2 END, n.name"""


@dataclass
class GraphQuery:
    """A read query plus the structured search it encodes."""
    kind: QueryKind
    text: str
    params: Dict[str, Any] = field(default_factory=dict)
    limit: int = 10
    include_relationships: bool = False


def search_terms(target: str) -> List[str]:
    """Lowercased whitespace tokens longer than two characters."""
    terms = [t for t in target.lower().split() if len(t) > 2]
    return terms or [target.lower()]


class QueryBuilder:
    """Builds the Cypher text and params for each query kind."""

    def __init__(self, limit: Optional[int] = None, debug_limit: Optional[int] = None,
                 debug_single_term_limit: Optional[int] = None):
        self.limit = limit or settings.query_limit
        self.debug_limit = debug_limit or settings.debug_query_limit
        self.debug_single_term_limit = debug_single_term_limit or settings.debug_single_term_limit

    def build(self, kind, target: str, debug: bool = False,
              for_entity: Optional[str] = None) -> GraphQuery:
        kind = QueryKind(kind)
        if not target or not target.strip():
            raise ValueError("Query target must not be empty")
        target = target.strip()
        if kind == QueryKind.FIND_ENTITY:
            return self.find_entity(target, debug)
        if kind == QueryKind.FIND_SYMBOL:
            return self.find_symbol(target, debug)
        return self.find_pattern(target, for_entity, debug)

    @staticmethod
    def _params(kind: QueryKind, target: str, limit: int, hops: int, **extra) -> Dict[str, Any]:
        params = {
            "kind": kind.value,
            "target": target,
            "target_lower": target.lower(),
            "limit": limit,
            "hops": hops,
        }
        params.update(extra)
        return params

    @staticmethod
    def _compose(match: str, debug: bool, order: str) -> str:
        returns = "\nRETURN n, r, related" if debug else "\nRETURN n"
        return (match + (RELATED_HOP if debug else "") + returns + order + "\nLIMIT $limit").strip()

    def find_entity(self, target: str, debug: bool = False) -> GraphQuery:
        terms = search_terms(target)
        if debug:
            limit = self.debug_limit if len(terms) > 1 else self.debug_single_term_limit
        else:
            limit = self.limit
        return GraphQuery(
            kind=QueryKind.FIND_ENTITY,
            text=self._compose(ENTITY_MATCH, debug, RANKED_ORDER),
            params=self._params(QueryKind.FIND_ENTITY, target, limit, int(debug),
                                terms=terms, primary_term=terms[0]),
            limit=limit,
            include_relationships=debug,
        )

    def find_symbol(self, target: str, debug: bool = False) -> GraphQuery:
        limit = self.debug_single_term_limit if debug else SYMBOL_LIMIT
        return GraphQuery(
            kind=QueryKind.FIND_SYMBOL,
            text=self._compose(SYMBOL_MATCH, debug, RANKED_ORDER),
            params=self._params(QueryKind.FIND_SYMBOL, target, limit, int(debug),
                                primary_term=target.lower()),
            limit=limit,
            include_relationships=debug,
        )

    def find_pattern(self, pattern: str, for_entity: Optional[str] = None,
                     debug: bool = False) -> GraphQuery:
        return GraphQuery(
            kind=QueryKind.FIND_PATTERN,
            text=self._compose(PATTERN_MATCH, debug, "\nORDER BY n.name"),
            params=self._params(QueryKind.FIND_PATTERN, pattern, PATTERN_LIMIT, int(debug),
                                for_entity=(for_entity or "").lower()),
            limit=PATTERN_LIMIT,
            include_relationships=debug,
        )
