import re
from collections import Counter
from typing import List, Dict, Any, Optional, Tuple

from ..types import GraphNode, GraphRelationship
from .builder import search_terms

DEFINITION_TYPES = {"Class", "Interface", "SchemaEntity", "Schema", "Model"}

# Checked in order; a file lands in the first bucket it matches.
FILE_BUCKETS: List[Tuple[str, Tuple[str, ...]]] = [
    ("schemas", ("schema", "types", "prisma")),
    ("apis", ("trpc", "api")),
    ("ui_components", ("ui", "components", "form")),
    ("tests", ("test",)),
]
MIGRATION_FILE = "prisma/schema.prisma"

ZOD_FIELD_RE = re.compile(r"(\w+):\s*z\.")


def to_entity(node: GraphNode) -> Dict[str, Any]:
    """Flatten a node into the entity shape returned to callers."""
    return {
        "name": node.name,
        "type": node.type.value,
        "file_path": node.get("file_path") or node.get("path") or "",
        "description": node.get("description") or "",
        "package": node.metadata.package or node.get("package") or "unknown",
        "field_names": list(node.get("field_names") or []),
    }


def dedupe_by_name(entities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    unique = []
    for entity in entities:
        if entity["name"] not in seen:
            seen.add(entity["name"])
            unique.append(entity)
    return unique


def rank_entities(entities: List[Dict[str, Any]], target: str) -> List[Dict[str, Any]]:
    """Order entities the way the store ranks them.

    Exact name first, then names containing the whole target, then names
    containing its primary term (the first search term), then the rest.
    Ties are broken by name.
    """
    primary_term = search_terms(target)[0]
    target = target.lower()

    def tier(entity):
        name = entity["name"].lower()
        if name == target:
            return 0
        if target in name:
            return 1
        if primary_term in name:
            return 2
        return 3

    return sorted(entities, key=lambda e: (tier(e), e["name"]))


def partition(entities: List[Dict[str, Any]], target: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Split into entities whose name or type mentions the target and the rest."""
    target = target.lower()
    primary, related = [], []
    for entity in entities:
        if target in entity["name"].lower() or target in entity["type"].lower():
            primary.append(entity)
        else:
            related.append(entity)
    return primary, related


def current_fields(entity: Dict[str, Any]) -> List[str]:
    if entity.get("field_names"):
        return list(entity["field_names"])
    return ZOD_FIELD_RE.findall(entity.get("description") or "")


def public_entity(entity: Dict[str, Any]) -> Dict[str, Any]:
    return {k: entity[k] for k in ("name", "type", "file_path", "description", "package")}


def select_primary_target(entities: List[Dict[str, Any]], target: str) -> Optional[Dict[str, Any]]:
    """Exact match, else a containing definition-like entity, else the first entity."""
    if not entities:
        return None
    lowered = target.lower()
    best = next((e for e in entities if e["name"].lower() == lowered), None)
    if best is None:
        best = next(
            (e for e in entities if lowered in e["name"].lower() and e["type"] in DEFINITION_TYPES),
            None,
        )
    if best is None:
        best = entities[0]
    result = public_entity(best)
    result["current_fields"] = current_fields(best)
    return result


def select_symbol_target(entities: List[Dict[str, Any]], target: str) -> Optional[Dict[str, Any]]:
    if not entities:
        return None
    lowered = target.lower()
    best = next((e for e in entities if e["name"].lower() == lowered), entities[0])
    return public_entity(best)


def empty_file_buckets() -> Dict[str, List[str]]:
    return {"schemas": [], "apis": [], "ui_components": [], "tests": [], "migrations": []}


def bucket_related_files(entities: List[Dict[str, Any]], entity_name: str) -> Dict[str, List[str]]:
    """Group the files of entities related to ``entity_name`` by role."""
    buckets = empty_file_buckets()
    lowered = entity_name.lower()

    for entity in entities:
        path = entity.get("file_path") or ""
        if not path:
            continue
        if lowered not in entity["name"].lower() and lowered not in path.lower():
            continue
        for bucket, keywords in FILE_BUCKETS:
            if any(keyword in path for keyword in keywords):
                if path not in buckets[bucket]:
                    buckets[bucket].append(path)
                break

    if buckets["schemas"]:
        buckets["migrations"].append(MIGRATION_FILE)
    return buckets


def relationship_view(rel: GraphRelationship, node: GraphNode, other: GraphNode) -> Dict[str, Any]:
    """Describe an edge between two result nodes in its stored direction."""
    source, target = (node, other) if rel.source == node.id else (other, node)
    return {
        "type": rel.type.value,
        "from": source.name,
        "to": target.name,
        "from_type": source.type.value,
        "to_type": target.type.value,
        "properties": dict(rel.properties),
    }


def analyze_relationship_patterns(relationships: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    patterns = []
    by_type: Dict[str, List[Dict[str, Any]]] = {}
    for rel in relationships:
        by_type.setdefault(rel["type"], []).append(rel)

    implements = by_type.get("IMPLEMENTS", [])
    if implements:
        patterns.append({
            "name": "interface_implementation",
            "description": f"{len(implements)} classes implement interfaces",
            "examples": [f"{r['from']} -> {r['to']}" for r in implements[:5]],
        })

    extends = by_type.get("EXTENDS", [])
    if extends:
        patterns.append({
            "name": "inheritance",
            "description": f"{len(extends)} inheritance links",
            "examples": [f"{r['from']} -> {r['to']}" for r in extends[:5]],
        })

    calls = by_type.get("CALLS", []) + by_type.get("ASYNC_CALLS", [])
    if len(calls) > 3:
        counts = Counter(r["to"] for r in calls)
        frequent = [{"name": name, "count": count} for name, count in counts.most_common() if count > 2][:5]
        if frequent:
            patterns.append({
                "name": "frequent_call_targets",
                "description": "Functions called from many places",
                "targets": frequent,
            })

    return patterns
