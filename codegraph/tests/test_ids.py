import pytest

from codegraph.ids import (
    NodeIdGenerator, blake2b_hash, legacy_hash, relationship_id, safe_name, short_hash,
)
from codegraph.types import NodeType, RelationType


class TestHashes:
    """Test the id hash schemes."""

    def test_legacy_hash_matches_typescript_tooling(self):
        assert legacy_hash("a") == "3s95t"

    def test_legacy_hash_is_short(self):
        assert len(legacy_hash("packages/schema/src/entities/user.ts:User" * 20)) <= 10

    def test_hashes_are_deterministic(self):
        key = "packages/trpc/src/user.ts:loadUser"
        assert legacy_hash(key) == legacy_hash(key)
        assert blake2b_hash(key) == blake2b_hash(key)

    def test_short_hash_dispatches_on_scheme(self):
        assert short_hash("a", "legacy") == "3s95t"
        assert short_hash("a", "blake2b") == blake2b_hash("a")

    def test_unknown_scheme_rejected(self):
        with pytest.raises(ValueError):
            short_hash("a", "md5")


class TestNodeIdGenerator:
    """Test namespace id builders."""

    def setup_method(self):
        self.ids = NodeIdGenerator("blake2b")

    def test_safe_name(self):
        assert safe_name("@workspace/schema") == "_workspace_schema"
        assert safe_name("user-settings_v2") == "user-settings_v2"

    def test_namespaces(self):
        assert self.ids.package("@workspace/schema") == "package:_workspace_schema"
        assert self.ids.schema_entity("User") == "schema:User"
        assert self.ids.schema_field("User", "birthday") == "field:User_birthday"
        assert self.ids.document("docs/guide.md").startswith("doc:")
        assert self.ids.file("@workspace/trpc", "packages/trpc/src/user.ts").startswith("file:_workspace_trpc_")

    def test_same_name_different_files(self):
        first = self.ids.api("@workspace/trpc", "create", "function", "packages/trpc/src/user.ts")
        second = self.ids.api("@workspace/trpc", "create", "function", "packages/trpc/src/product.ts")
        assert first != second
        assert first.startswith("api:_workspace_trpc_function_create_")

    def test_no_collisions(self):
        generated = {
            self.ids.api("@workspace/app", f"handler{i}", "function", f"src/module{i % 100}.ts")
            for i in range(10000)
        }
        assert len(generated) == 10000

    def test_schemes_produce_different_ids(self):
        legacy = NodeIdGenerator("legacy")
        path = "packages/trpc/src/user.ts"
        assert legacy.file("@workspace/trpc", path) != self.ids.file("@workspace/trpc", path)
        assert legacy.file("@workspace/trpc", path) == legacy.file("@workspace/trpc", path)

    def test_node_id_dispatch(self):
        assert self.ids.node_id(NodeType.PACKAGE, "", "@workspace/ui") == "package:_workspace_ui"
        assert self.ids.node_id(NodeType.SCHEMA_FIELD, "", "email", {"entity": "User"}) == "field:User_email"
        assert self.ids.node_id(
            NodeType.CLASS, "@workspace/trpc", "UserRepository",
            {"file_path": "packages/trpc/src/user.ts"},
        ) == self.ids.api("@workspace/trpc", "UserRepository", "class", "packages/trpc/src/user.ts")

    def test_relationship_id(self):
        assert relationship_id(RelationType.CALLS, "api:a", "api:b") == "calls:api:a_api:b"
