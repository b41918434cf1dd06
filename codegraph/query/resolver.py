import asyncio
import threading
import time
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Callable

from ..config import settings
from ..exceptions import QueryTimeoutError, StoreConnectionError
from ..graph import create_store
from ..graph.base import GraphStoreAdapter
from ..types import QueryResult
from ..utils.logger import app_logger
from .builder import GraphQuery, QueryBuilder, QueryKind
from .ranking import (
    analyze_relationship_patterns, bucket_related_files, dedupe_by_name, empty_file_buckets,
    partition, public_entity, rank_entities, relationship_view, select_primary_target,
    select_symbol_target, to_entity,
)
from .suggestions import entity_suggestions, pattern_suggestions


@dataclass
class QueryRequest:
    query_type: str
    target: str
    for_entity: Optional[str] = None
    include_related: bool = False
    debug: bool = False

    def to_dict(self) -> Dict[str, Any]:
        query_type = self.query_type.value if isinstance(self.query_type, QueryKind) else self.query_type
        return {
            "type": query_type,
            "target": self.target,
            "for_entity": self.for_entity,
            "include_related": self.include_related,
        }


class QueryResolver:
    """Runs one graph query per request under a timeout and shapes the answer.

    The store is opened, queried and closed inside a daemon worker thread.
    A timed-out query is abandoned, not cancelled, and never holds up
    interpreter exit.
    """

    def __init__(self, store_factory: Optional[Callable[[], GraphStoreAdapter]] = None,
                 builder: Optional[QueryBuilder] = None,
                 timeout_seconds: Optional[float] = None,
                 debug_timeout_seconds: Optional[float] = None):
        self.store_factory = store_factory or create_store
        self.builder = builder or QueryBuilder()
        if timeout_seconds is None:
            timeout_seconds = settings.query_timeout_seconds
        if debug_timeout_seconds is None:
            debug_timeout_seconds = settings.debug_query_timeout_seconds
        self.timeout_seconds = timeout_seconds
        self.debug_timeout_seconds = debug_timeout_seconds
        self.logger = app_logger.bind(component="query_resolver")

    def _execute(self, graph_query: GraphQuery) -> QueryResult:
        store = self.store_factory()
        store.connect()
        try:
            return store.query(graph_query.text, graph_query.params)
        finally:
            store.disconnect()

    def _start_query(self, graph_query: GraphQuery) -> asyncio.Future:
        """Run ``graph_query`` on a daemon thread; the result lands on the returned future."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def deliver(result, error):
            if future.done():
                # already timed out
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        def post(result, error=None):
            try:
                loop.call_soon_threadsafe(deliver, result, error)
            except RuntimeError:
                # the loop finished while this query was abandoned
                self.logger.debug(f"Dropped late result for {graph_query.kind.value} query")

        def run():
            try:
                result = self._execute(graph_query)
            except Exception as e:
                post(None, e)
            else:
                post(result)

        threading.Thread(target=run, name="graph-query", daemon=True).start()
        return future

    async def resolve(self, request: QueryRequest) -> Dict[str, Any]:
        """Answer ``request``; failures come back as ``{"success": False, ...}``."""
        started = time.perf_counter()
        timeout = self.debug_timeout_seconds if request.debug else self.timeout_seconds

        try:
            graph_query = self.builder.build(request.query_type, request.target,
                                             debug=request.debug, for_entity=request.for_entity)
            future = self._start_query(graph_query)
            try:
                result = await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError as e:
                raise QueryTimeoutError(timeout) from e
        except QueryTimeoutError as e:
            self.logger.warning(f"Query {request.query_type} '{request.target}' timed out after {timeout}s")
            return self._failure(request, str(e))
        except StoreConnectionError as e:
            self.logger.error(f"Query {request.query_type} '{request.target}' failed: {e}")
            return self._failure(request, str(e))
        except ValueError as e:
            return self._failure(request, str(e))

        response = {
            "success": True,
            "query": request.to_dict(),
            "results": self.process_results(request, result),
            "metadata": {
                "execution_time_ms": round((time.perf_counter() - started) * 1000, 2),
                "confidence": settings.query_confidence,
                "total_found": len(result.records),
            },
        }
        if request.debug:
            response["debug_info"] = {
                "cypher_query": graph_query.text,
                "params": graph_query.params,
                "query_time_ms": result.metadata.get("query_time_ms"),
            }
        self.logger.info(
            f"Resolved {request.to_dict()['type']} '{request.target}': "
            f"{len(result.records)} records in {response['metadata']['execution_time_ms']}ms"
        )
        return response

    def resolve_sync(self, request: QueryRequest) -> Dict[str, Any]:
        return asyncio.run(self.resolve(request))

    @staticmethod
    def _failure(request: QueryRequest, message: str) -> Dict[str, Any]:
        return {"success": False, "error": message, "query": request.to_dict()}

    def process_results(self, request: QueryRequest, result: QueryResult) -> Dict[str, Any]:
        kind = QueryKind(request.query_type)
        results: Dict[str, Any] = {
            "primary_target": None,
            "related_entities": [],
            "relationships": [],
            "related_files": empty_file_buckets(),
            "suggestions": {},
            "patterns": [],
        }

        found = []
        relationships: List[Dict[str, Any]] = []
        for record in result.records:
            node = record.get("n")
            other = record.get("related")
            rel = record.get("r")
            if node is not None:
                found.append(to_entity(node))
            if other is not None:
                found.append(to_entity(other))
            if request.debug and node is not None and other is not None and rel is not None:
                relationships.append(relationship_view(rel, node, other))

        entities = rank_entities(dedupe_by_name(found), request.target)
        _, related = partition(entities, request.target)

        if request.debug:
            results["related_entities"] = [public_entity(e) for e in related]
            results["relationships"] = relationships

        if kind == QueryKind.FIND_ENTITY:
            primary_target = select_primary_target(entities, request.target)
            results["primary_target"] = primary_target
            if request.include_related and primary_target:
                results["related_files"] = bucket_related_files(entities, primary_target["name"])
                results["suggestions"] = entity_suggestions(primary_target)
        elif kind == QueryKind.FIND_SYMBOL:
            symbol = select_symbol_target(entities, request.target)
            results["primary_target"] = symbol
            if request.include_related and symbol:
                results["related_files"] = bucket_related_files(entities, symbol["name"])
        else:
            results["patterns"] = pattern_suggestions(request.target, request.for_entity, entities)

        if relationships:
            results["patterns"].extend(analyze_relationship_patterns(relationships))
        return results
