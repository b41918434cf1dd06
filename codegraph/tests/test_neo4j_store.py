import json

import pytest

from codegraph.exceptions import StoreConnectionError
from codegraph.graph.neo4j_store import Neo4jGraphStore, flatten, node_record, relationship_record, unflatten
from codegraph.types import RelationType

from .conftest import make_node, make_relationship


class TestRecordConversion:
    """Test property flattening for Neo4j."""

    def test_flatten(self):
        flat = flatten({
            "name": "User",
            "options": {"timestamps": True, "tableName": "users"},
            "field_names": ["name", "email"],
            "mixed": [1, "a"],
            "missing": None,
        }, "prop_")

        assert flat == {
            "prop_name": "User",
            "prop_options_timestamps": True,
            "prop_options_tableName": "users",
            "prop_field_names": ["name", "email"],
            "prop_mixed": json.dumps([1, "a"]),
        }

    def test_unflatten(self):
        stored = {"id": "schema:User", "prop_file_path": "a.ts", "metadata_package": "@workspace/schema"}
        assert unflatten(stored, "prop_") == {"file_path": "a.ts"}
        assert unflatten(stored, "metadata_") == {"package": "@workspace/schema"}

    def test_node_record(self):
        node = make_node("schema:User", "User", file_path="packages/schema/src/entities/user.ts",
                         field_names=["name"])
        record = node_record(node)

        assert record["id"] == "schema:User"
        props = record["props"]
        assert props["type"] == "SchemaEntity"
        assert props["name"] == "User"
        assert props["prop_field_names"] == ["name"]
        assert props["metadata_package"] == "@workspace/schema"
        assert "prop_description" not in props

    def test_relationship_record(self):
        rel = make_relationship(RelationType.HAS_FIELD, "schema:User", "field:User_name")
        record = relationship_record(rel)
        assert record["source"] == "schema:User"
        assert record["target"] == "field:User_name"
        assert record["props"]["id"] == rel.id
        assert record["props"]["metadata_confidence"] == 1.0


class TestNeo4jGraphStore:
    """Test store behaviour that needs no running database."""

    def test_query_before_connect(self):
        store = Neo4jGraphStore(uri="bolt://localhost:1", username="neo4j", password="secret")
        with pytest.raises(StoreConnectionError):
            store.query("MATCH (n) RETURN n")

    def test_unreachable_server(self):
        store = Neo4jGraphStore(uri="bolt://127.0.0.1:1", username="neo4j", password="secret")
        with pytest.raises(StoreConnectionError):
            store.connect()
