import json

import pytest

from codegraph.exceptions import StoreConnectionError
from codegraph.graph import JsonGraphStore, create_store
from codegraph.query.builder import QueryBuilder
from codegraph.types import NodeType, RelationType

from .conftest import make_node, make_relationship


class TestJsonGraphStore:
    """Test JSON graph store functionality."""

    def test_import_is_idempotent(self, json_store, entity_nodes):
        nodes, relationships = entity_nodes
        json_store.import_data(nodes, relationships)
        json_store.import_data(nodes, relationships)

        stats = json_store.get_stats()
        assert stats.node_count == len(nodes)
        assert stats.relationship_count == len(relationships)

    def test_persists_to_file(self, json_store, entity_nodes):
        nodes, relationships = entity_nodes
        json_store.import_data(nodes, relationships)

        with open(json_store.storage_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert len(data["nodes"]) == len(nodes)
        assert data["metadata"]["version"] == "1.0"

        reloaded = JsonGraphStore(str(json_store.storage_path))
        reloaded.connect()
        user = reloaded.find_node("schema:User")
        assert user.type == NodeType.SCHEMA_ENTITY
        assert user.get("field_names") == ["name", "email"]
        assert user.get("schema_name") == "User"
        assert user.metadata.package == "@workspace/schema"

    def test_dangling_relationships_dropped(self, json_store):
        json_store.import_data(
            [make_node("schema:User", "User")],
            [make_relationship(RelationType.HAS_FIELD, "schema:User", "field:User_missing")],
        )
        assert json_store.get_stats().relationship_count == 0

    def test_find_related_nodes(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        related = {n.name for n in json_store.find_related_nodes("schema:User")}
        assert related == {"UserProfile", "getUser"}

        filtered = json_store.find_related_nodes("schema:User", RelationType.REFERENCES)
        assert [n.name for n in filtered] == ["getUser"]

    def test_clear_database(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        json_store.clear_database()
        assert json_store.get_stats().node_count == 0

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ nope")
        with pytest.raises(StoreConnectionError):
            JsonGraphStore(str(path)).connect()

    def test_create_store(self):
        assert isinstance(create_store("json"), JsonGraphStore)
        with pytest.raises(ValueError):
            create_store("sqlite")


class TestJsonGraphStoreQuery:
    """Test evaluation of structured query params."""

    def setup_method(self):
        self.builder = QueryBuilder(limit=10, debug_limit=20, debug_single_term_limit=15)

    def test_find_entity_ranks_exact_first(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        query = self.builder.find_entity("User")
        result = json_store.query(query.text, query.params)

        names = [record["n"].name for record in result.records]
        assert names[0] == "User"
        assert names.index("UserProfile") < names.index("getUser")
        assert "Product" not in names

    def test_find_symbol(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        query = self.builder.find_symbol("getUser")
        result = json_store.query(query.text, query.params)
        assert [record["n"].name for record in result.records] == ["getUser"]

    def test_find_pattern_matches_for_entity(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        query = self.builder.find_pattern("add_field", for_entity="Product")
        result = json_store.query(query.text, query.params)
        assert [record["n"].name for record in result.records] == ["Product"]

    def test_debug_rows_include_relationships(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        query = self.builder.find_entity("User", debug=True)
        result = json_store.query(query.text, query.params)

        user_rows = [r for r in result.records if r["n"].name == "User"]
        assert {r["related"].name for r in user_rows} == {"UserProfile", "getUser"}
        lonely = [r for r in result.records if r["n"].name == "UserSettings"]
        assert lonely[0]["r"] is None
        assert len(result.relationships) == 2

    def test_limit_applies(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        query = QueryBuilder(limit=2).find_entity("User")
        result = json_store.query(query.text, query.params)
        assert len(result.records) == 2
