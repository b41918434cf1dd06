#!/usr/bin/env python3
"""
codegraph-context command line entry point.

Subcommands:
    query    search the code graph (find an entity, symbol or pattern)
    extract  scan a repository and load the graph
    analyze  turn a free-text request into an implementation plan
    stats    print node and relationship counts

Results are printed as JSON on stdout; logs go to stderr. Any failure exits 1.
"""

import asyncio
import argparse
import json
import sys
from typing import Any, Dict

from codegraph.config import settings
from codegraph.context import ContextAssistant
from codegraph.exceptions import CodeGraphError
from codegraph.extractors import EXTRACTORS, ExtractionPipeline, create_extractors
from codegraph.graph import create_store
from codegraph.query import QueryKind, QueryRequest, QueryResolver
from codegraph.utils.logger import app_logger, set_log_level


def emit(payload: Dict[str, Any], output_format: str = "json"):
    if output_format == "text":
        print(render_text(payload))
    else:
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def render_text(payload: Dict[str, Any]) -> str:
    if not payload.get("success", True):
        return f"error: {payload.get('error')}"

    lines = []
    if "results" in payload:
        results = payload["results"]
        target = results.get("primary_target")
        if target:
            lines.append(f"{target['type']} {target['name']}  {target.get('file_path', '')}".rstrip())
            if target.get("current_fields"):
                lines.append(f"  fields: {', '.join(target['current_fields'])}")
        for bucket, files in (results.get("related_files") or {}).items():
            for path in files:
                lines.append(f"  [{bucket}] {path}")
        for pattern in results.get("patterns") or []:
            lines.append(f"pattern {pattern['name']}: {pattern.get('description', '')}")
        if not lines:
            lines.append("no results")
    elif "implementation_steps" in payload:
        requirement = payload["requirement"]
        lines.append(f"{requirement['intent']} {requirement.get('target_entity') or ''} "
                     f"(confidence {requirement['confidence']})".replace("  ", " "))
        for step in payload["implementation_steps"]:
            lines.append(f"  {step['step']}. {step['action']} {step['target_file']}: {step['description']}")
        for impact in payload["potential_impacts"]:
            lines.append(f"  ! {impact}")
        lines.append(f"complexity {payload['complexity']}, ~{payload['estimated_effort_minutes']} min")
    else:
        lines.append(json.dumps(payload, ensure_ascii=False, default=str))
    return "\n".join(lines)


def run_query(args) -> int:
    if args.find_entity:
        kind, target = QueryKind.FIND_ENTITY, args.find_entity
    elif args.find_symbol:
        kind, target = QueryKind.FIND_SYMBOL, args.find_symbol
    else:
        kind, target = QueryKind.FIND_PATTERN, args.find_pattern

    response = QueryResolver().resolve_sync(QueryRequest(
        query_type=kind,
        target=target,
        for_entity=args.for_entity,
        include_related=args.include_related,
        debug=args.debug,
    ))

    emit(response, args.format)
    return 0 if response["success"] else 1


def run_extract(args) -> int:
    extractors = create_extractors(args.extractor, root_path=args.root)
    pipeline = ExtractionPipeline(extractors)

    if args.output == "console":
        result = pipeline.run()
        payload = result.combined.to_dict()
        payload["failed"] = result.failed
    else:
        store = create_store(args.output)
        result = pipeline.run_and_import(store, clear_first=args.clear)
        payload = result.to_dict()

    payload["success"] = not result.failed
    emit(payload)
    return 0 if payload["success"] else 1


def run_analyze(args) -> int:
    context = asyncio.run(ContextAssistant().analyze(args.text))
    emit(context, args.format)
    return 0


def run_stats(args) -> int:
    with create_store() as store:
        stats = store.get_stats()
    payload = stats.to_dict()
    payload["success"] = True
    emit(payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Code knowledge graph for monorepos")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    query = subparsers.add_parser("query", help="Search the code graph")
    target = query.add_mutually_exclusive_group(required=True)
    target.add_argument("--find-entity", help="Find an entity and its related files")
    target.add_argument("--find-symbol", help="Find a function, class or other symbol")
    target.add_argument("--find-pattern", help="Find an implementation pattern (e.g. add_field)")
    query.add_argument("--for-entity", help="Entity the pattern applies to")
    query.add_argument("--include-related", action="store_true", help="Include related files and suggestions")
    query.add_argument("--debug", action="store_true", help="Include relationships and the executed query")
    query.add_argument("--format", choices=["json", "text"], default="json")
    query.set_defaults(handler=run_query)

    extract = subparsers.add_parser("extract", help="Extract the graph from a repository")
    extract.add_argument("--root", default=None, help="Repository root (defaults to PROJECT_ROOT)")
    extract.add_argument("--extractor", nargs="+", default=["all"],
                         choices=list(EXTRACTORS) + ["all"], help="Extractors to run")
    extract.add_argument("--output", choices=["neo4j", "json", "console"], default=settings.graph_backend)
    extract.add_argument("--clear", action="store_true", help="Clear the store before importing")
    extract.set_defaults(handler=run_extract)

    analyze = subparsers.add_parser("analyze", help="Plan a change described in free text")
    analyze.add_argument("text", help="Request, e.g. \"给User加一个生日字段\"")
    analyze.add_argument("--format", choices=["json", "text"], default="json")
    analyze.set_defaults(handler=run_analyze)

    stats = subparsers.add_parser("stats", help="Show graph statistics")
    stats.set_defaults(handler=run_stats)
    return parser


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    if args.log_level != settings.log_level:
        set_log_level(args.log_level)

    try:
        return args.handler(args)
    except KeyboardInterrupt:
        app_logger.info("Interrupted")
        return 1
    except (CodeGraphError, ValueError, OSError) as e:
        app_logger.error(f"{args.command} failed: {e}")
        emit({"success": False, "error": str(e)}, getattr(args, "format", "json"))
        return 1


if __name__ == "__main__":
    sys.exit(main())
