import json
import time
from collections import Counter
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

from ..config import settings
from ..exceptions import StoreConnectionError
from ..types import GraphNode, GraphRelationship, GraphStats, QueryResult, RelationType, utc_now
from ..utils.logger import app_logger
from .base import GraphStoreAdapter, collect_result


class JsonGraphStore(GraphStoreAdapter):
    """JSON file backed graph store.

    Nodes and relationships are kept in dicts keyed by id, so importing the
    same data twice leaves one copy of each. ``query`` ignores the Cypher text
    and evaluates the structured search params against the loaded graph.
    """

    def __init__(self, storage_path: Optional[str] = None):
        self.storage_path = Path(storage_path or settings.graph_json_path)
        self.logger = app_logger.bind(component="json_graph_store")
        self.nodes: Dict[str, GraphNode] = {}
        self.relationships: Dict[str, GraphRelationship] = {}
        self.created_at: Optional[str] = None
        self._connected = False

    def connect(self):
        """Load the graph file, starting empty when it does not exist."""
        self.nodes = {}
        self.relationships = {}
        if self.storage_path.exists():
            try:
                with open(self.storage_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                for item in data.get("nodes", []):
                    node = GraphNode.from_dict(item)
                    self.nodes[node.id] = node
                for item in data.get("relationships", []):
                    rel = GraphRelationship.from_dict(item)
                    self.relationships[rel.id] = rel
                self.created_at = data.get("metadata", {}).get("created_at")
            except (OSError, ValueError, KeyError) as e:
                self.logger.error(f"Error loading graph data from {self.storage_path}: {e}")
                raise StoreConnectionError(f"Cannot load graph data from {self.storage_path}: {e}", e) from e
            self.logger.debug(f"Loaded {len(self.nodes)} nodes from {self.storage_path}")
        self._connected = True

    def disconnect(self):
        self._connected = False

    def _ensure_connected(self):
        if not self._connected:
            self.connect()

    def _save_data(self):
        """Write the whole graph back to the JSON file."""
        now = utc_now()
        self.created_at = self.created_at or now
        data = {
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "relationships": [rel.to_dict() for rel in self.relationships.values()],
            "metadata": {"version": "1.0", "created_at": self.created_at, "updated_at": now},
        }
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.storage_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            self.logger.error(f"Error saving graph data: {e}")
            raise StoreConnectionError(f"Cannot write graph data to {self.storage_path}: {e}", e) from e
        self.logger.debug(f"Saved graph data to {self.storage_path}")

    def import_data(self, nodes: List[GraphNode], relationships: List[GraphRelationship]):
        self._ensure_connected()
        for node in nodes:
            self.nodes[node.id] = node

        dangling = 0
        for rel in relationships:
            # same behaviour as the Neo4j MATCH: edges need both endpoints
            if rel.source not in self.nodes or rel.target not in self.nodes:
                dangling += 1
                continue
            self.relationships[rel.id] = rel

        self._save_data()
        if dangling:
            self.logger.debug(f"Skipped {dangling} relationships with a missing endpoint")
        self.logger.info(f"Imported {len(nodes)} nodes and {len(relationships) - dangling} relationships")

    def query(self, query_text: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        self._ensure_connected()
        started = time.perf_counter()
        params = params or {}

        matched = [node for node in self.nodes.values() if self._matches(node, params)]
        matched.sort(key=lambda node: self._order_key(node, params))

        records: List[Dict[str, Any]] = []
        for node in matched:
            if params.get("hops"):
                incident = self._incident(node.id)
                if not incident:
                    records.append({"n": node, "r": None, "related": None})
                for rel, other in incident:
                    records.append({"n": node, "r": rel, "related": other})
            else:
                records.append({"n": node})

        limit = params.get("limit")
        if limit is not None:
            records = records[:int(limit)]

        return collect_result(records, {
            "query_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "result_count": len(records),
            "query": query_text,
        })

    @staticmethod
    def _searchable(node: GraphNode) -> Tuple[str, str, str, str]:
        return (
            node.name.lower(),
            node.type.value.lower(),
            str(node.get("description", "")).lower(),
            str(node.get("file_path", "")).lower(),
        )

    def _matches(self, node: GraphNode, params: Dict[str, Any]) -> bool:
        kind = params.get("kind", "find_entity")
        target = str(params.get("target", "")).lower()
        name, node_type, description, file_path = self._searchable(node)

        if kind == "find_symbol":
            return node.name == params.get("target") or target in name
        if kind == "find_pattern":
            entity = str(params.get("for_entity") or "").lower()
            if entity and (entity in name or entity in file_path):
                return True
            return target in description or target in name
        terms = params.get("terms") or [target]
        return any(
            term in name or term in node_type or term in description or term in file_path
            for term in terms
        )

    @staticmethod
    def _order_key(node: GraphNode, params: Dict[str, Any]):
        target = str(params.get("target", "")).lower()
        primary = str(params.get("primary_term") or target).lower()
        name = node.name.lower()
        if params.get("kind") == "find_pattern":
            return (0, node.name)
        if name == target:
            rank = 0
        elif primary and primary in name:
            rank = 1
        else:
            rank = 2
        return (rank, node.name)

    def _incident(self, node_id: str) -> List[Tuple[GraphRelationship, GraphNode]]:
        incident = []
        for rel in self.relationships.values():
            if rel.source == node_id:
                other = self.nodes.get(rel.target)
            elif rel.target == node_id:
                other = self.nodes.get(rel.source)
            else:
                continue
            if other is not None:
                incident.append((rel, other))
        return incident

    def find_node(self, node_id: str) -> Optional[GraphNode]:
        self._ensure_connected()
        return self.nodes.get(node_id)

    def find_related_nodes(self, node_id: str,
                           relation_type: Optional[RelationType] = None) -> List[GraphNode]:
        self._ensure_connected()
        related: Dict[str, GraphNode] = {}
        for rel, other in self._incident(node_id):
            if relation_type is None or rel.type == RelationType(relation_type):
                related.setdefault(other.id, other)
        return list(related.values())

    def clear_database(self):
        """Clear all data from the store."""
        self._ensure_connected()
        self.nodes = {}
        self.relationships = {}
        self.created_at = None
        self._save_data()
        self.logger.info("Cleared all data from JSON graph store")

    def get_stats(self) -> GraphStats:
        self._ensure_connected()
        return GraphStats(
            node_count=len(self.nodes),
            relationship_count=len(self.relationships),
            node_types=dict(Counter(node.type.value for node in self.nodes.values())),
            relationship_types=dict(Counter(rel.type.value for rel in self.relationships.values())),
        )
