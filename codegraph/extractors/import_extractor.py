import posixpath
import re
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

from ..scanner.source_walker import SourceFile
from ..types import GraphNode, GraphRelationship, NodeType, RelationType
from .base import BaseExtractor

CODE_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx"}
RESOLVE_SUFFIXES = ["", ".ts", ".tsx", ".js", ".jsx", "/index.ts", "/index.tsx", "/index.js"]

BUILTIN_MODULES = {
    "assert", "buffer", "child_process", "cluster", "crypto", "dgram", "dns", "events",
    "fs", "fs/promises", "http", "http2", "https", "module", "net", "os", "path",
    "perf_hooks", "process", "querystring", "readline", "stream", "string_decoder",
    "timers", "tls", "url", "util", "v8", "vm", "worker_threads", "zlib",
}

IMPORT_FROM_RE = re.compile(
    r"^[ \t]*import\s+(type\s+)?([\w*{}\s,$]+?)\s+from\s+['\"]([^'\"]+)['\"]", re.MULTILINE
)
SIDE_EFFECT_IMPORT_RE = re.compile(r"^[ \t]*import\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
REQUIRE_RE = re.compile(
    r"(?:const|let|var)\s+([\w{}\s,:$]+?)\s*=\s*require\(\s*['\"]([^'\"]+)['\"]\s*\)"
)
DYNAMIC_IMPORT_RE = re.compile(r"(?<![\w.])import\(\s*['\"]([^'\"]+)['\"]\s*\)")
EXPORT_DECL_RE = re.compile(
    r"^[ \t]*export\s+(default\s+)?(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
    r"(?:const|let|var|function\*?|class|interface|type|enum)\s+(\w+)",
    re.MULTILINE,
)
EXPORT_DEFAULT_EXPR_RE = re.compile(r"^[ \t]*export\s+default\s+(?!(?:async\s+|abstract\s+)?(?:function|class|interface|enum)\b)(\w+)", re.MULTILINE)
EXPORT_LIST_RE = re.compile(
    r"^[ \t]*export\s+(?:type\s+)?{([^}]*)}(?:\s*from\s+['\"]([^'\"]+)['\"])?", re.MULTILINE
)
EXPORT_STAR_RE = re.compile(
    r"^[ \t]*export\s+\*\s+(?:as\s+(\w+)\s+)?from\s+['\"]([^'\"]+)['\"]", re.MULTILINE
)


@dataclass
class ImportInfo:
    source: str
    imported: str
    kind: str  # default | named | namespace | side_effect | require | dynamic
    line_number: int
    is_type_only: bool = False


@dataclass
class ExportInfo:
    exported: str
    line_number: int
    is_default: bool = False
    re_export_from: Optional[str] = None


@dataclass
class FileImports:
    path: str
    package: str
    size: int
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)


def _line(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


def parse_specifiers(clause: str) -> List[Tuple[str, str]]:
    """Split an import clause into (imported name, kind) pairs."""
    specs = []
    clause = clause.strip()
    named = re.search(r"{([^}]*)}", clause)
    if named:
        for part in named.group(1).split(","):
            part = re.sub(r"^type\s+", "", part.strip())
            if part:
                specs.append((part.split(" as ")[0].strip(), "named"))
        clause = clause[:named.start()] + clause[named.end():]

    namespace = re.search(r"\*\s*as\s+(\w+)", clause)
    if namespace:
        specs.append((namespace.group(1), "namespace"))
        clause = clause[:namespace.start()] + clause[namespace.end():]

    default = clause.strip().strip(",").strip()
    if default:
        specs.insert(0, (default, "default"))
    return specs


def is_builtin(source: str) -> bool:
    return source.startswith("node:") or source in BUILTIN_MODULES


class ImportExtractor(BaseExtractor):
    """Recognizes import and export statements in JS/TS sources."""

    name = "import"

    def get_node_types(self) -> List[NodeType]:
        return [NodeType.IMPORT, NodeType.EXPORT, NodeType.FILE]

    def get_relation_types(self) -> List[RelationType]:
        return [RelationType.IMPORTS, RelationType.EXPORTS, RelationType.DEPENDS_ON, RelationType.REFERENCES]

    def extract_raw_data(self) -> List[FileImports]:
        files = list(self.walker.walk(extensions=CODE_EXTENSIONS))
        self.logger.debug(f"Scanning {len(files)} code files for imports")
        return self.parse_each(files, self.parse_file)

    def parse_file(self, source_file: SourceFile, content: str) -> FileImports:
        result = FileImports(
            path=source_file.path,
            package=self.package_for_path(source_file.path),
            size=source_file.size,
        )

        for match in IMPORT_FROM_RE.finditer(content):
            type_only = bool(match.group(1))
            source = match.group(3)
            line = _line(content, match.start())
            for imported, kind in parse_specifiers(match.group(2)):
                result.imports.append(ImportInfo(source, imported, kind, line, type_only))

        for match in SIDE_EFFECT_IMPORT_RE.finditer(content):
            source = match.group(1)
            result.imports.append(ImportInfo(source, source, "side_effect", _line(content, match.start())))

        for match in REQUIRE_RE.finditer(content):
            target = match.group(1).strip()
            source = match.group(2)
            line = _line(content, match.start())
            names = [n.split(":")[0].strip() for n in target.strip("{}").split(",")] if target.startswith("{") else [target]
            for name in filter(None, names):
                result.imports.append(ImportInfo(source, name, "require", line))

        for match in DYNAMIC_IMPORT_RE.finditer(content):
            source = match.group(1)
            result.imports.append(ImportInfo(source, source, "dynamic", _line(content, match.start())))

        result.imports = [i for i in result.imports if not is_builtin(i.source)]

        for match in EXPORT_DECL_RE.finditer(content):
            result.exports.append(ExportInfo(
                exported=match.group(2),
                line_number=_line(content, match.start()),
                is_default=bool(match.group(1)),
            ))

        for match in EXPORT_DEFAULT_EXPR_RE.finditer(content):
            result.exports.append(ExportInfo(match.group(1), _line(content, match.start()), is_default=True))

        for match in EXPORT_LIST_RE.finditer(content):
            line = _line(content, match.start())
            for part in match.group(1).split(","):
                part = re.sub(r"^type\s+", "", part.strip())
                if not part:
                    continue
                exported = part.split(" as ")[-1].strip()
                result.exports.append(ExportInfo(exported, line, exported == "default", match.group(2)))

        for match in EXPORT_STAR_RE.finditer(content):
            result.exports.append(ExportInfo(
                exported=match.group(1) or "*",
                line_number=_line(content, match.start()),
                re_export_from=match.group(2),
            ))

        return result

    def resolve_relative(self, from_path: str, source: str, known: Dict[str, str]) -> Optional[str]:
        base = posixpath.normpath(posixpath.join(posixpath.dirname(from_path), source))
        for suffix in RESOLVE_SUFFIXES:
            if base + suffix in known:
                return base + suffix
        return None

    def transform_to_graph(self, files: List[FileImports]) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        nodes: List[GraphNode] = []
        relationships: List[GraphRelationship] = []
        file_ids = {f.path: self.ids.file(f.package, f.path) for f in files}

        for info in files:
            file_id = file_ids[info.path]
            ext = posixpath.splitext(info.path)[1]
            nodes.append(GraphNode.create(
                id=file_id,
                type=NodeType.FILE,
                name=posixpath.basename(info.path),
                properties={
                    "path": info.path,
                    "extension": ext.lstrip("."),
                    "file_type": "source",
                    "size": info.size,
                    "file_path": info.path,
                },
                metadata=self.node_metadata(info.path, info.package),
            ))

            for imp in info.imports:
                internal = self.is_internal(imp.source)
                relative = imp.source.startswith(".")
                import_id = self.ids.import_(info.package, imp.source, imp.imported, info.path)
                nodes.append(GraphNode.create(
                    id=import_id,
                    type=NodeType.IMPORT,
                    name=imp.imported,
                    properties={
                        "source": imp.source,
                        "imported": imp.imported,
                        "is_internal": internal or relative,
                        "is_type_only": imp.is_type_only,
                        "import_kind": imp.kind,
                        "file_path": info.path,
                        "line_number": imp.line_number,
                    },
                    metadata=self.node_metadata(info.path, info.package),
                ))
                relationships.append(self.relationship(
                    RelationType.IMPORTS, file_id, import_id,
                    properties={"import_kind": imp.kind, "source": imp.source},
                ))

                if internal:
                    target_package = "/".join(imp.source.split("/")[:2]) if imp.source.startswith("@") else imp.source.split("/")[0]
                    if target_package != info.package:
                        relationships.append(self.relationship(
                            RelationType.DEPENDS_ON,
                            self.ids.package(info.package),
                            self.ids.package(target_package),
                            properties={"dependency_type": "import", "is_internal": True},
                            confidence=0.9,
                        ))
                elif relative:
                    target = self.resolve_relative(info.path, imp.source, file_ids)
                    if target:
                        relationships.append(self.relationship(
                            RelationType.REFERENCES, file_id, file_ids[target],
                            properties={"reference_type": "relative_import", "source": imp.source},
                            confidence=0.95,
                        ))

            for exp in info.exports:
                export_id = self.ids.export(info.package, exp.exported, info.path)
                nodes.append(GraphNode.create(
                    id=export_id,
                    type=NodeType.EXPORT,
                    name=exp.exported,
                    properties={
                        "exported": exp.exported,
                        "is_default": exp.is_default,
                        "re_export_from": exp.re_export_from,
                        "file_path": info.path,
                        "line_number": exp.line_number,
                    },
                    metadata=self.node_metadata(info.path, info.package),
                ))
                relationships.append(self.relationship(
                    RelationType.EXPORTS, file_id, export_id,
                    properties={"is_default": exp.is_default},
                ))

        return nodes, relationships
