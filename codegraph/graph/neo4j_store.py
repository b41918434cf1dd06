"""
Neo4j backend for the code graph.

Nodes carry the shared ``CodeGraphNode`` label plus the label of their
NodeType. Kind properties are stored flattened with a ``prop_`` prefix and
provenance with a ``metadata_`` prefix, since Neo4j properties cannot hold
maps.
"""
import json
import time
from typing import List, Dict, Any, Optional

from neo4j import GraphDatabase, Driver
from neo4j.exceptions import DriverError, Neo4jError
from neo4j.graph import Node as Neo4jNode, Relationship as Neo4jRelationship

from ..config import settings
from ..exceptions import StoreConnectionError
from ..types import GraphNode, GraphRelationship, GraphStats, NodeType, QueryResult, RelationType
from ..utils.logger import app_logger
from .base import NODE_LABEL, GraphStoreAdapter, collect_result

PROPERTY_PREFIX = "prop_"
METADATA_PREFIX = "metadata_"

PRIMITIVES = (str, int, float, bool)


def flatten(values: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    """Flatten nested maps into prefixed keys Neo4j can store."""
    flat: Dict[str, Any] = {}
    for key, value in values.items():
        name = f"{prefix}{key}"
        if value is None:
            continue
        if isinstance(value, dict):
            flat.update(flatten(value, f"{name}_"))
        elif isinstance(value, (list, tuple)):
            # Neo4j lists must be homogeneous primitives
            if all(isinstance(v, PRIMITIVES) for v in value) and len({type(v) for v in value}) <= 1:
                flat[name] = list(value)
            else:
                flat[name] = json.dumps(list(value), ensure_ascii=False, default=str)
        elif isinstance(value, PRIMITIVES):
            flat[name] = value
        else:
            flat[name] = str(value)
    return flat


def unflatten(stored: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    return {k[len(prefix):]: v for k, v in stored.items() if k.startswith(prefix)}


def node_record(node: GraphNode) -> Dict[str, Any]:
    props = {"id": node.id, "name": node.name, "type": node.type.value}
    props.update(flatten(node.properties.model_dump(exclude_none=True), PROPERTY_PREFIX))
    props.update(flatten(node.metadata.to_dict(), METADATA_PREFIX))
    return {"id": node.id, "props": props}


def relationship_record(rel: GraphRelationship) -> Dict[str, Any]:
    props = {"id": rel.id}
    props.update(flatten(rel.properties, PROPERTY_PREFIX))
    props.update(flatten(rel.metadata.to_dict(), METADATA_PREFIX))
    return {"id": rel.id, "source": rel.source, "target": rel.target, "props": props}


def to_graph_node(stored: Neo4jNode) -> GraphNode:
    data = dict(stored)
    node_type = data.get("type")
    if not node_type:
        labels = [label for label in stored.labels if label != NODE_LABEL]
        node_type = labels[0] if labels else NodeType.UNKNOWN.value
    return GraphNode.from_dict({
        "id": data.get("id", stored.element_id),
        "type": node_type,
        "name": data.get("name", ""),
        "properties": unflatten(data, PROPERTY_PREFIX),
        "metadata": unflatten(data, METADATA_PREFIX),
    })


def to_graph_relationship(stored: Neo4jRelationship) -> GraphRelationship:
    data = dict(stored)
    source = stored.start_node.get("id") if stored.start_node is not None else None
    target = stored.end_node.get("id") if stored.end_node is not None else None
    return GraphRelationship.from_dict({
        "id": data.get("id", stored.element_id),
        "type": stored.type,
        "source": source,
        "target": target,
        "properties": unflatten(data, PROPERTY_PREFIX),
        "metadata": unflatten(data, METADATA_PREFIX),
    })


def convert_value(value: Any) -> Any:
    if isinstance(value, Neo4jNode):
        return to_graph_node(value)
    if isinstance(value, Neo4jRelationship):
        return to_graph_relationship(value)
    return value


class Neo4jGraphStore(GraphStoreAdapter):
    """Neo4j-backed graph store using the sync driver."""

    def __init__(self, uri: Optional[str] = None, username: Optional[str] = None,
                 password: Optional[str] = None, database: Optional[str] = None,
                 batch_size: Optional[int] = None):
        self.uri = uri or settings.neo4j_uri
        self.username = username or settings.neo4j_username
        self.password = password or settings.neo4j_password
        self.database = database or settings.neo4j_database
        self.batch_size = batch_size or settings.neo4j_batch_size
        self.logger = app_logger.bind(component="neo4j_store")
        self._driver: Optional[Driver] = None

    def _session(self):
        if self._driver is None:
            raise StoreConnectionError("Neo4j store is not connected. Call connect() first.")
        return self._driver.session(database=self.database) if self.database else self._driver.session()

    def connect(self):
        """Connect to Neo4j and ensure constraints."""
        if self._driver is not None:
            return
        try:
            self._driver = GraphDatabase.driver(self.uri, auth=(self.username, self.password))
            self._driver.verify_connectivity()
        except (DriverError, Neo4jError, OSError) as e:
            self.logger.error(f"Failed to connect to Neo4j at {self.uri}: {e}")
            if self._driver is not None:
                self._driver.close()
            self._driver = None
            raise StoreConnectionError(f"Failed to connect to Neo4j at {self.uri}: {e}", e) from e
        self.logger.info(f"Connected to Neo4j at {self.uri}")
        self._ensure_constraints()

    def disconnect(self):
        if self._driver is not None:
            self._driver.close()
            self._driver = None
            self.logger.info("Disconnected from Neo4j")

    def _ensure_constraints(self):
        """Create the id constraint and the lookup indexes used by queries."""
        statements = [
            f"CREATE CONSTRAINT code_graph_node_id IF NOT EXISTS FOR (n:{NODE_LABEL}) REQUIRE n.id IS UNIQUE",
            f"CREATE INDEX code_graph_node_name IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.name)",
            f"CREATE INDEX code_graph_node_type IF NOT EXISTS FOR (n:{NODE_LABEL}) ON (n.type)",
        ]
        with self._session() as session:
            for statement in statements:
                try:
                    session.run(statement).consume()
                except Neo4jError as e:
                    self.logger.warning(f"Failed to create constraint or index: {e}")
        self.logger.debug("Ensured constraints and indexes are in place")

    def import_data(self, nodes: List[GraphNode], relationships: List[GraphRelationship]):
        """Merge nodes and relationships by id in one write transaction."""
        if not nodes and not relationships:
            self.logger.debug("No nodes or relationships to import")
            return

        nodes_by_label: Dict[str, List[Dict[str, Any]]] = {}
        for node in nodes:
            # labels come from the NodeType enum, never from raw input
            nodes_by_label.setdefault(NodeType(node.type).value, []).append(node_record(node))

        rels_by_type: Dict[str, List[Dict[str, Any]]] = {}
        for rel in relationships:
            rels_by_type.setdefault(RelationType(rel.type).value, []).append(relationship_record(rel))

        def write(tx):
            for label, batch in nodes_by_label.items():
                query = f"""
                UNWIND $nodes AS node
                MERGE (n:{NODE_LABEL} {{id: node.id}})
                SET n = node.props
                SET n:`{label}`
                """
                for start in range(0, len(batch), self.batch_size):
                    tx.run(query, nodes=batch[start:start + self.batch_size]).consume()

            for rel_type, batch in rels_by_type.items():
                query = f"""
                UNWIND $rels AS rel
                MATCH (source:{NODE_LABEL} {{id: rel.source}})
                MATCH (target:{NODE_LABEL} {{id: rel.target}})
                MERGE (source)-[r:`{rel_type}` {{id: rel.id}}]->(target)
                SET r = rel.props
                """
                for start in range(0, len(batch), self.batch_size):
                    tx.run(query, rels=batch[start:start + self.batch_size]).consume()

        try:
            with self._session() as session:
                session.execute_write(write)
        except (DriverError, Neo4jError) as e:
            self.logger.error(f"Import into Neo4j failed: {e}")
            raise StoreConnectionError(f"Import into Neo4j failed: {e}", e) from e

        self.logger.info(
            f"Merged {len(nodes)} nodes ({len(nodes_by_label)} labels) and "
            f"{len(relationships)} relationships ({len(rels_by_type)} types)"
        )

    def query(self, query_text: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        started = time.perf_counter()
        try:
            with self._session() as session:
                result = session.run(query_text, params or {})
                records = [{key: convert_value(record[key]) for key in record.keys()} for record in result]
        except (DriverError, Neo4jError) as e:
            self.logger.error(f"Query failed: {e}")
            raise StoreConnectionError(f"Query failed: {e}", e) from e

        return collect_result(records, {
            "query_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "result_count": len(records),
            "query": query_text,
        })

    def find_node(self, node_id: str) -> Optional[GraphNode]:
        result = self.query(f"MATCH (n:{NODE_LABEL} {{id: $id}}) RETURN n", {"id": node_id})
        return result.nodes[0] if result.nodes else None

    def find_related_nodes(self, node_id: str,
                           relation_type: Optional[RelationType] = None) -> List[GraphNode]:
        rel_filter = f":`{RelationType(relation_type).value}`" if relation_type else ""
        query = f"MATCH (n:{NODE_LABEL} {{id: $id}})-[r{rel_filter}]-(m:{NODE_LABEL}) RETURN DISTINCT m"
        return [record["m"] for record in self.query(query, {"id": node_id}).records]

    def clear_database(self):
        """Delete every code graph node and its relationships."""
        with self._session() as session:
            session.run(f"MATCH (n:{NODE_LABEL}) DETACH DELETE n").consume()
        self.logger.info("Cleared all code graph data from Neo4j")

    def get_stats(self) -> GraphStats:
        with self._session() as session:
            node_types = {
                record["type"]: record["count"]
                for record in session.run(f"MATCH (n:{NODE_LABEL}) RETURN n.type AS type, count(n) AS count")
            }
            relationship_types = {
                record["type"]: record["count"]
                for record in session.run(f"MATCH (:{NODE_LABEL})-[r]->() RETURN type(r) AS type, count(r) AS count")
            }
        return GraphStats(
            node_count=sum(node_types.values()),
            relationship_count=sum(relationship_types.values()),
            node_types=node_types,
            relationship_types=relationship_types,
        )
