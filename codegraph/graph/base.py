from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from ..types import GraphNode, GraphRelationship, GraphStats, QueryResult, RelationType

# Label shared by every stored node, on top of its NodeType label
NODE_LABEL = "CodeGraphNode"


class GraphStoreAdapter(ABC):
    """Storage backend for the code graph.

    ``query`` receives the Cypher text built by the query layer together with
    its parameters. The parameters always carry the structured search as well
    (``kind``, ``target``, ``terms``, ``primary_term``, ``limit``, ``hops``), so
    a backend without a Cypher engine can answer from the params alone.

    Records returned by ``query`` use the keys ``n`` (matched node), and, when
    ``hops`` is set, ``r`` and ``related`` (one incident edge and its far end,
    or None).
    """

    @abstractmethod
    def connect(self):
        """Open the backend. Raises StoreConnectionError on failure."""

    @abstractmethod
    def disconnect(self):
        pass

    @abstractmethod
    def import_data(self, nodes: List[GraphNode], relationships: List[GraphRelationship]):
        """Upsert nodes and relationships by id."""

    @abstractmethod
    def query(self, query_text: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        pass

    @abstractmethod
    def find_node(self, node_id: str) -> Optional[GraphNode]:
        pass

    @abstractmethod
    def find_related_nodes(self, node_id: str,
                           relation_type: Optional[RelationType] = None) -> List[GraphNode]:
        pass

    @abstractmethod
    def clear_database(self):
        pass

    @abstractmethod
    def get_stats(self) -> GraphStats:
        pass

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


def collect_result(records: List[Dict[str, Any]], metadata: Dict[str, Any]) -> QueryResult:
    """Build a QueryResult, gathering the distinct nodes and edges of ``records``."""
    nodes: Dict[str, GraphNode] = {}
    relationships: Dict[str, GraphRelationship] = {}
    for record in records:
        for value in record.values():
            if isinstance(value, GraphNode):
                nodes.setdefault(value.id, value)
            elif isinstance(value, GraphRelationship):
                relationships.setdefault(value.id, value)
    return QueryResult(
        nodes=list(nodes.values()),
        relationships=list(relationships.values()),
        records=records,
        metadata=metadata,
    )
