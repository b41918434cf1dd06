import json
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from codegraph.extractors import ExtractionPipeline, create_extractors
from codegraph.graph.json_graph_store import JsonGraphStore
from codegraph.types import GraphNode, GraphRelationship, NodeMetadata, NodeType, RelationType


USER_ENTITY = """import { z } from 'zod';
import { defineEntity } from '@workspace/core';

export const User = defineEntity({
  description: 'Application user',
  fields: {
    name: z.string().min(1),
    email: z.string().email(),
    age: z.number().optional(),
  },
  options: {
    timestamps: true,
    tableName: 'users',
  },
});

export const UserSchema = z.object({ id: z.string(), name: z.string() });
"""

USER_ROUTER = """import { z } from 'zod';
import { User } from '@workspace/schema';
import { formatName } from './utils';
import fs from 'fs';

export interface Repository {
  find(id: string): Promise<unknown>;
}

/**
 * Loads users from storage.
 */
export class UserRepository implements Repository {
  async find(id: string) {
    return loadUser(id);
  }
}

export async function loadUser(id: string) {
  const name = formatName(id);
  return await fetchUser(name);
}

async function fetchUser(name: string) {
  return { name };
}

export default UserRepository;
"""

UTILS = """export function formatName(id: string): string {
  return id.trim();
}
"""


def write_package(root: Path, directory: str, manifest: dict):
    package_dir = root / "packages" / directory
    package_dir.mkdir(parents=True, exist_ok=True)
    (package_dir / "package.json").write_text(json.dumps(manifest, indent=2))


@pytest.fixture
def temp_repo() -> Generator[Path, None, None]:
    """Create a small workspace monorepo for extractor tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        root = Path(temp_dir)

        write_package(root, "core", {"name": "@workspace/core", "version": "1.0.0"})
        write_package(root, "schema", {
            "name": "@workspace/schema",
            "version": "1.0.0",
            "description": "Shared entity schemas",
            "dependencies": {"@workspace/core": "workspace:*", "zod": "^3.22.0"},
        })
        write_package(root, "trpc", {
            "name": "@workspace/trpc",
            "version": "1.0.0",
            "dependencies": {"@workspace/schema": "workspace:*"},
            "devDependencies": {"vitest": "^1.0.0"},
        })
        (root / "packages" / "legacy").mkdir(parents=True)
        (root / "packages" / "legacy" / "package.json").write_text("{ not valid json")

        entities = root / "packages" / "schema" / "src" / "entities"
        entities.mkdir(parents=True)
        (entities / "user.ts").write_text(USER_ENTITY)
        (root / "packages" / "schema" / "README.md").write_text("# Schema package\n\nEntity definitions.\n")

        trpc_src = root / "packages" / "trpc" / "src"
        trpc_src.mkdir(parents=True)
        (trpc_src / "user.ts").write_text(USER_ROUTER)
        (trpc_src / "utils.ts").write_text(UTILS)
        (trpc_src / "broken.ts").write_bytes(b"export function broken() {\xff\xfe}\n")

        docs = root / "docs"
        docs.mkdir()
        (root / "README.md").write_text(
            "# Demo Monorepo\n\nSee [architecture](docs/architecture.md) and "
            "[the guide](./docs/guide.md). Ignore [external](https://example.com/x.md).\n"
        )
        (docs / "architecture.md").write_text(
            "# Architecture\n\n## Packages\n\nBack to the [readme](../README.md).\n\n"
            "```ts\ninterface EntityDefinition {}\n```\n"
        )
        (docs / "guide.md").write_text("## Guide\n\nNothing to see.\n")

        # ignored directory
        node_modules = root / "node_modules" / "zod"
        node_modules.mkdir(parents=True)
        (node_modules / "index.ts").write_text("export function hidden() {}\n")

        yield root


@pytest.fixture
def json_store(tmp_path) -> Generator[JsonGraphStore, None, None]:
    """Connected JSON store backed by a file in a temp directory."""
    store = JsonGraphStore(str(tmp_path / "graph.json"))
    store.connect()
    yield store
    store.disconnect()


@pytest.fixture
def populated_store(temp_repo, tmp_path) -> JsonGraphStore:
    """JSON store loaded with everything extracted from ``temp_repo``."""
    store = JsonGraphStore(str(tmp_path / "repo_graph.json"))
    ExtractionPipeline(create_extractors(["all"], root_path=str(temp_repo))).run_and_import(store)
    return store


def make_node(node_id: str, name: str, node_type: NodeType = NodeType.SCHEMA_ENTITY,
              **properties) -> GraphNode:
    if node_type == NodeType.SCHEMA_ENTITY:
        properties.setdefault("schema_name", name)
    return GraphNode.create(
        id=node_id,
        type=node_type,
        name=name,
        properties=properties,
        metadata=NodeMetadata(package="@workspace/schema", extractor="test"),
    )


def make_relationship(rel_type: RelationType, source: str, target: str) -> GraphRelationship:
    return GraphRelationship(
        id=f"{rel_type.value.lower()}:{source}_{target}",
        type=rel_type,
        source=source,
        target=target,
    )


@pytest.fixture
def entity_nodes():
    """User and two near-miss entities plus files in each bucket."""
    nodes = [
        make_node("schema:UserSettings", "UserSettings",
                  file_path="packages/schema/src/entities/user-settings.ts"),
        make_node("schema:User", "User", description="Application user",
                  file_path="packages/schema/src/entities/user.ts", field_names=["name", "email"]),
        make_node("schema:UserProfile", "UserProfile",
                  file_path="packages/schema/src/entities/user-profile.ts"),
        make_node("api:trpc_function_getUser", "getUser", NodeType.FUNCTION,
                  file_path="packages/trpc/src/user.ts"),
        make_node("api:ui_function_UserForm", "UserForm", NodeType.FUNCTION,
                  file_path="packages/ui/src/forms/UserForm.tsx"),
        make_node("api:ui_function_userTest", "userTest", NodeType.FUNCTION,
                  file_path="apps/web/test/user.spec.tsx"),
        make_node("schema:Product", "Product", file_path="packages/schema/src/entities/product.ts"),
    ]
    relationships = [
        make_relationship(RelationType.HAS_RELATION, "schema:User", "schema:UserProfile"),
        make_relationship(RelationType.REFERENCES, "api:trpc_function_getUser", "schema:User"),
    ]
    return nodes, relationships
