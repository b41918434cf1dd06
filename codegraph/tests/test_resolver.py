import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from codegraph.graph.json_graph_store import JsonGraphStore
from codegraph.query import QueryBuilder, QueryKind, QueryRequest, QueryResolver

from .conftest import make_node

REPO_ROOT = Path(__file__).resolve().parents[2]

STUCK_QUERY_SCRIPT = textwrap.dedent("""
    import time

    from codegraph.graph.json_graph_store import JsonGraphStore
    from codegraph.query import QueryKind, QueryRequest, QueryResolver


    class StuckStore(JsonGraphStore):
        def query(self, query_text, params=None):
            time.sleep(30)


    resolver = QueryResolver(store_factory=lambda: StuckStore({path!r}), timeout_seconds=0.2)
    print(resolver.resolve_sync(QueryRequest(QueryKind.FIND_ENTITY, "User"))["error"])
""")


class BlockingStore(JsonGraphStore):
    """A store whose queries never finish until ``release`` is set."""

    def __init__(self, storage_path: str, release: threading.Event):
        super().__init__(storage_path)
        self.release = release
        self.worker = threading.current_thread()

    def query(self, query_text, params=None):
        self.release.wait(timeout=5)
        return super().query(query_text, params)


class TestQueryBuilder:
    """Test query construction."""

    def setup_method(self):
        self.builder = QueryBuilder(limit=10, debug_limit=20, debug_single_term_limit=15)

    def test_entity_limits(self):
        assert self.builder.find_entity("User").limit == 10
        assert self.builder.find_entity("User", debug=True).limit == 15
        assert self.builder.find_entity("user profile", debug=True).limit == 20

    def test_symbol_and_pattern_limits(self):
        assert self.builder.find_symbol("getUser").limit == 5
        assert self.builder.find_symbol("getUser", debug=True).limit == 15
        assert self.builder.find_pattern("add_field").limit == 8
        assert self.builder.find_pattern("add_field", debug=True).limit == 8

    def test_params(self):
        query = self.builder.find_entity("User Profile", debug=True)
        assert query.params["terms"] == ["user", "profile"]
        assert query.params["primary_term"] == "user"
        assert query.params["hops"] == 1
        assert "OPTIONAL MATCH" in query.text
        assert query.text.endswith("LIMIT $limit")

        pattern = self.builder.find_pattern("add_field", for_entity="User")
        assert pattern.params["for_entity"] == "user"
        assert "OPTIONAL MATCH" not in pattern.text

    def test_invalid(self):
        with pytest.raises(ValueError):
            self.builder.build(QueryKind.FIND_ENTITY, "   ")
        with pytest.raises(ValueError):
            self.builder.build("find_everything", "User")


class TestQueryResolver:
    """Test resolving requests against a JSON store."""

    @pytest.fixture(autouse=True)
    def resolver(self, json_store, entity_nodes):
        json_store.import_data(*entity_nodes)
        path = str(json_store.storage_path)
        self.resolver = QueryResolver(store_factory=lambda: JsonGraphStore(path), timeout_seconds=5)
        return self.resolver

    @pytest.mark.asyncio
    async def test_find_entity(self):
        response = await self.resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "User", include_related=True))

        assert response["success"] is True
        assert response["query"] == {"type": "find_entity", "target": "User", "for_entity": None,
                                     "include_related": True}
        results = response["results"]
        assert results["primary_target"]["name"] == "User"
        assert results["primary_target"]["current_fields"] == ["name", "email"]
        assert results["related_files"]["schemas"][0] == "packages/schema/src/entities/user.ts"
        assert results["related_files"]["apis"] == ["packages/trpc/src/user.ts"]
        assert results["related_files"]["ui_components"] == ["packages/ui/src/forms/UserForm.tsx"]
        assert results["related_files"]["tests"] == ["apps/web/test/user.spec.tsx"]
        assert results["related_files"]["migrations"] == ["prisma/schema.prisma"]
        assert "add_field" in results["suggestions"]
        assert results["relationships"] == []
        assert response["metadata"]["total_found"] == 6
        assert response["metadata"]["confidence"] == 0.8
        assert "debug_info" not in response

    @pytest.mark.asyncio
    async def test_without_related(self):
        response = await self.resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "User"))
        results = response["results"]
        assert results["related_files"] == {
            "schemas": [], "apis": [], "ui_components": [], "tests": [], "migrations": [],
        }
        assert results["suggestions"] == {}

    @pytest.mark.asyncio
    async def test_debug(self):
        response = await self.resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "User", debug=True))

        assert set(response["debug_info"]) == {"cypher_query", "params", "query_time_ms"}
        relationships = response["results"]["relationships"]
        assert {"type": "REFERENCES", "from": "getUser", "to": "User"} in [
            {k: r[k] for k in ("type", "from", "to")} for r in relationships
        ]

    @pytest.mark.asyncio
    async def test_find_symbol(self):
        response = await self.resolver.resolve(QueryRequest("find_symbol", "getUser", include_related=True))
        results = response["results"]
        assert results["primary_target"]["name"] == "getUser"
        assert results["primary_target"]["type"] == "Function"
        assert results["related_files"]["apis"] == ["packages/trpc/src/user.ts"]

    @pytest.mark.asyncio
    async def test_find_pattern(self):
        response = await self.resolver.resolve(QueryRequest(QueryKind.FIND_PATTERN, "add_field", for_entity="User"))
        patterns = response["results"]["patterns"]
        assert patterns[0]["name"] == "add_field"
        assert "packages/schema/src/entities/user.ts" in patterns[0]["example_files"]["schemas"]

    @pytest.mark.asyncio
    async def test_not_found(self):
        response = await self.resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "Invoice"))
        assert response["success"] is True
        assert response["results"]["primary_target"] is None
        assert response["metadata"]["total_found"] == 0

    @pytest.mark.asyncio
    async def test_empty_target(self):
        response = await self.resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, ""))
        assert response["success"] is False
        assert "empty" in response["error"]

    def test_resolve_sync(self):
        response = self.resolver.resolve_sync(QueryRequest(QueryKind.FIND_SYMBOL, "UserForm"))
        assert response["success"] is True
        assert response["results"]["primary_target"]["name"] == "UserForm"


class TestResolverFailures:
    """Test timeouts and store failures."""

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        release = threading.Event()
        path = str(tmp_path / "graph.json")
        resolver = QueryResolver(store_factory=lambda: BlockingStore(path, release), timeout_seconds=0.2)
        try:
            started = time.perf_counter()
            response = await resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "User"))
            elapsed = time.perf_counter() - started
        finally:
            release.set()

        assert response == {
            "success": False,
            "error": "query timed out",
            "query": {"type": "find_entity", "target": "User", "for_entity": None, "include_related": False},
        }
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_store_failure(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ nope")
        resolver = QueryResolver(store_factory=lambda: JsonGraphStore(str(path)))
        response = await resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "User"))

        assert response["success"] is False
        assert "broken.json" in response["error"]

    @pytest.mark.asyncio
    async def test_abandoned_query_thread_is_daemon(self, tmp_path):
        release = threading.Event()
        stores = []
        path = str(tmp_path / "graph.json")

        def factory():
            stores.append(BlockingStore(path, release))
            return stores[-1]

        resolver = QueryResolver(store_factory=factory, timeout_seconds=0.2)
        try:
            response = await resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "User"))
        finally:
            release.set()

        assert response["error"] == "query timed out"
        assert stores[0].worker.daemon is True
        assert stores[0].worker is not threading.main_thread()

    def test_process_exits_after_timeout(self, tmp_path):
        script = STUCK_QUERY_SCRIPT.format(path=str(tmp_path / "graph.json"))
        started = time.perf_counter()
        completed = subprocess.run([sys.executable, "-c", script], cwd=str(REPO_ROOT),
                                   capture_output=True, text=True, timeout=25)
        elapsed = time.perf_counter() - started

        assert completed.stdout.strip() == "query timed out"
        assert elapsed < 10

    def test_zero_timeout_is_kept(self):
        resolver = QueryResolver(timeout_seconds=0, debug_timeout_seconds=0)
        assert resolver.timeout_seconds == 0
        assert resolver.debug_timeout_seconds == 0


class TestMultiWordTargets:
    """Test ranking of targets made of several words."""

    @pytest.mark.asyncio
    async def test_primary_term_match_beats_path_match(self, tmp_path):
        path = str(tmp_path / "profiles.json")
        store = JsonGraphStore(path)
        store.connect()
        store.import_data([
            make_node("schema:Account", "Account", file_path="packages/schema/src/profile/account.ts"),
            make_node("schema:UserProfile", "UserProfile",
                      file_path="packages/schema/src/entities/user-profile.ts"),
        ], [])
        store.disconnect()

        resolver = QueryResolver(store_factory=lambda: JsonGraphStore(path))
        response = await resolver.resolve(QueryRequest(QueryKind.FIND_ENTITY, "user profile"))

        assert response["metadata"]["total_found"] == 2
        assert response["results"]["primary_target"]["name"] == "UserProfile"
