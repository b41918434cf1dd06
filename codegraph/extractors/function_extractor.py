import posixpath
import re
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

from ..scanner.source_walker import SourceFile
from ..types import GraphNode, GraphRelationship, NodeType, RelationType
from .base import BaseExtractor
from .import_extractor import CODE_EXTENSIONS

FUNCTION_RE = re.compile(
    r"^[ \t]*(export\s+)?(default\s+)?(async\s+)?function\s*(\*)?\s*(\w+)\s*(?:<[^>]*>)?"
    r"\s*\(([^)]*)\)\s*(?::\s*([^{;]+?))?\s*{",
    re.MULTILINE,
)
ARROW_RE = re.compile(
    r"^[ \t]*(export\s+)?(?:const|let)\s+(\w+)\s*(?::\s*[^=]+)?=\s*(async\s+)?"
    r"\(([^)]*)\)\s*(?::\s*([^=]+?))?\s*=>",
    re.MULTILINE,
)
CLASS_RE = re.compile(
    r"^[ \t]*(export\s+)?(default\s+)?(abstract\s+)?class\s+(\w+)(?:<[^>]*>)?"
    r"(?:\s+extends\s+([\w.]+)(?:<[^>]*>)?)?(?:\s+implements\s+([\w.,\s<>]+?))?\s*{",
    re.MULTILINE,
)
INTERFACE_RE = re.compile(
    r"^[ \t]*(export\s+)?interface\s+(\w+)(?:<[^>]*>)?(?:\s+extends\s+([\w.,\s<>]+?))?\s*{",
    re.MULTILINE,
)
METHOD_RE = re.compile(
    r"^[ \t]+(?:(public|private|protected)\s+)?(?:static\s+)?(?:readonly\s+)?(async\s+)?"
    r"(\w+)\s*(?:<[^>]*>)?\s*\(([^)]*)\)\s*(?::\s*([^{;]+?))?\s*{",
    re.MULTILINE,
)
CALL_RE = re.compile(r"(?:(?<![\w.$])|(?<=this\.))(\w+)\s*\(")
AWAIT_CALL_RE = re.compile(r"\bawait\s+(?:this\.)?(\w+)\s*\(")
JSDOC_RE = re.compile(r"/\*\*(.*?)\*/\s*$", re.DOTALL)

NOT_METHODS = {"if", "for", "while", "switch", "catch", "return", "function", "with"}


@dataclass
class FunctionInfo:
    name: str
    file_path: str
    package: str
    line_number: int
    parameters: List[str]
    return_type: Optional[str]
    is_async: bool
    is_exported: bool
    is_generator: bool = False
    class_name: Optional[str] = None
    access_modifier: Optional[str] = None
    description: Optional[str] = None
    calls: List[str] = field(default_factory=list)
    awaited: List[str] = field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.class_name}.{self.name}" if self.class_name else self.name

    @property
    def signature(self) -> str:
        prefix = "async " if self.is_async else ""
        returns = f": {self.return_type}" if self.return_type else ""
        return f"{prefix}{self.name}({', '.join(self.parameters)}){returns}"


@dataclass
class ClassInfo:
    name: str
    file_path: str
    package: str
    line_number: int
    is_exported: bool
    is_abstract: bool
    extends_class: Optional[str]
    implements_interfaces: List[str]
    description: Optional[str] = None
    methods: List[FunctionInfo] = field(default_factory=list)


@dataclass
class InterfaceInfo:
    name: str
    file_path: str
    package: str
    line_number: int
    is_exported: bool
    extends_interfaces: List[str]
    description: Optional[str] = None


@dataclass
class FileSymbols:
    path: str
    package: str
    functions: List[FunctionInfo] = field(default_factory=list)
    classes: List[ClassInfo] = field(default_factory=list)
    interfaces: List[InterfaceInfo] = field(default_factory=list)


def find_block_end(content: str, open_index: int) -> int:
    """Index just past the brace that closes the block opened at ``open_index``."""
    depth = 0
    for i in range(open_index, len(content)):
        char = content[i]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return len(content)


def split_names(clause: Optional[str]) -> List[str]:
    if not clause:
        return []
    clause = re.sub(r"<[^>]*>", "", clause)
    return [part.strip() for part in clause.split(",") if part.strip()]


def split_parameters(params: str) -> List[str]:
    return [p.strip() for p in params.split(",") if p.strip()]


def leading_doc(content: str, offset: int) -> Optional[str]:
    match = JSDOC_RE.search(content[:offset])
    if not match:
        return None
    lines = [re.sub(r"^\s*\*\s?", "", line).strip() for line in match.group(1).splitlines()]
    text = [line for line in lines if line and not line.startswith("@")]
    return text[0] if text else None


def _line(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


class FunctionExtractor(BaseExtractor):
    """Recognizes functions, classes, interfaces and same-repo call sites."""

    name = "function"

    def get_node_types(self) -> List[NodeType]:
        return [NodeType.FUNCTION, NodeType.CLASS, NodeType.INTERFACE, NodeType.FILE]

    def get_relation_types(self) -> List[RelationType]:
        return [RelationType.CONTAINS, RelationType.CALLS, RelationType.ASYNC_CALLS,
                RelationType.EXTENDS, RelationType.IMPLEMENTS]

    def extract_raw_data(self) -> List[FileSymbols]:
        files = [f for f in self.walker.walk(extensions=CODE_EXTENSIONS) if not f.path.endswith(".d.ts")]
        return self.parse_each(files, self.parse_file)

    def parse_file(self, source_file: SourceFile, content: str) -> FileSymbols:
        package = self.package_for_path(source_file.path)
        symbols = FileSymbols(path=source_file.path, package=package)
        class_spans: List[Tuple[int, int]] = []

        for match in CLASS_RE.finditer(content):
            body_end = find_block_end(content, match.end() - 1)
            class_spans.append((match.start(), body_end))
            cls = ClassInfo(
                name=match.group(4),
                file_path=source_file.path,
                package=package,
                line_number=_line(content, match.start()),
                is_exported=bool(match.group(1)),
                is_abstract=bool(match.group(3)),
                extends_class=match.group(5),
                implements_interfaces=split_names(match.group(6)),
                description=leading_doc(content, match.start()),
            )
            body = content[match.end():body_end - 1]
            body_offset = match.end()
            for method in METHOD_RE.finditer(body):
                name = method.group(3)
                if name in NOT_METHODS:
                    continue
                method_end = find_block_end(body, method.end() - 1)
                cls.methods.append(FunctionInfo(
                    name=name,
                    file_path=source_file.path,
                    package=package,
                    line_number=_line(content, body_offset + method.start()),
                    parameters=split_parameters(method.group(4)),
                    return_type=(method.group(5) or "").strip() or None,
                    is_async=bool(method.group(2)),
                    is_exported=cls.is_exported,
                    class_name=cls.name,
                    access_modifier=method.group(1) or "public",
                    description=leading_doc(content, body_offset + method.start()),
                    calls=self.collect_calls(body[method.end():method_end - 1]),
                    awaited=AWAIT_CALL_RE.findall(body[method.end():method_end - 1]),
                ))
            symbols.classes.append(cls)

        def inside_class(offset: int) -> bool:
            return any(start <= offset < end for start, end in class_spans)

        for match in FUNCTION_RE.finditer(content):
            if inside_class(match.start()):
                continue
            body_end = find_block_end(content, match.end() - 1)
            symbols.functions.append(FunctionInfo(
                name=match.group(5),
                file_path=source_file.path,
                package=package,
                line_number=_line(content, match.start()),
                parameters=split_parameters(match.group(6)),
                return_type=(match.group(7) or "").strip() or None,
                is_async=bool(match.group(3)),
                is_exported=bool(match.group(1)),
                is_generator=bool(match.group(4)),
                description=leading_doc(content, match.start()),
                calls=self.collect_calls(content[match.end():body_end - 1]),
                awaited=AWAIT_CALL_RE.findall(content[match.end():body_end - 1]),
            ))

        for match in ARROW_RE.finditer(content):
            if inside_class(match.start()):
                continue
            statement_end = content.find("\n\n", match.end())
            body = content[match.end():statement_end if statement_end != -1 else len(content)]
            symbols.functions.append(FunctionInfo(
                name=match.group(2),
                file_path=source_file.path,
                package=package,
                line_number=_line(content, match.start()),
                parameters=split_parameters(match.group(4)),
                return_type=(match.group(5) or "").strip() or None,
                is_async=bool(match.group(3)),
                is_exported=bool(match.group(1)),
                description=leading_doc(content, match.start()),
                calls=self.collect_calls(body),
                awaited=AWAIT_CALL_RE.findall(body),
            ))

        for match in INTERFACE_RE.finditer(content):
            symbols.interfaces.append(InterfaceInfo(
                name=match.group(2),
                file_path=source_file.path,
                package=package,
                line_number=_line(content, match.start()),
                is_exported=bool(match.group(1)),
                extends_interfaces=split_names(match.group(3)),
                description=leading_doc(content, match.start()),
            ))

        return symbols

    @staticmethod
    def collect_calls(body: str) -> List[str]:
        calls = []
        for match in CALL_RE.finditer(body):
            name = match.group(1)
            if name not in NOT_METHODS and name not in calls:
                calls.append(name)
        return calls

    def transform_to_graph(self, files: List[FileSymbols]) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        nodes: List[GraphNode] = []
        relationships: List[GraphRelationship] = []

        # name -> [(file_path, node_id)] for cross-reference resolution
        functions_by_name: Dict[str, List[Tuple[str, str]]] = {}
        classes_by_name: Dict[str, List[Tuple[str, str]]] = {}
        interfaces_by_name: Dict[str, List[Tuple[str, str]]] = {}
        all_functions: List[Tuple[FunctionInfo, str]] = []

        for symbols in files:
            file_id = self.ids.file(symbols.package, symbols.path)
            nodes.append(GraphNode.create(
                id=file_id,
                type=NodeType.FILE,
                name=posixpath.basename(symbols.path),
                properties={
                    "path": symbols.path,
                    "extension": posixpath.splitext(symbols.path)[1].lstrip("."),
                    "file_type": "source",
                    "file_path": symbols.path,
                },
                metadata=self.node_metadata(symbols.path, symbols.package),
            ))

            for func in symbols.functions:
                func_id = self.ids.api(func.package, func.name, "function", func.file_path)
                nodes.append(self.function_node(func_id, func))
                relationships.append(self.relationship(RelationType.CONTAINS, file_id, func_id))
                functions_by_name.setdefault(func.name, []).append((func.file_path, func_id))
                all_functions.append((func, func_id))

            for cls in symbols.classes:
                class_id = self.ids.api(cls.package, cls.name, "class", cls.file_path)
                nodes.append(GraphNode.create(
                    id=class_id,
                    type=NodeType.CLASS,
                    name=cls.name,
                    properties={
                        "file_path": cls.file_path,
                        "line_number": cls.line_number,
                        "description": cls.description,
                        "is_exported": cls.is_exported,
                        "is_abstract": cls.is_abstract,
                        "extends_class": cls.extends_class,
                        "implements_interfaces": cls.implements_interfaces,
                        "methods_count": len(cls.methods),
                    },
                    metadata=self.node_metadata(cls.file_path, cls.package, confidence=0.8),
                ))
                relationships.append(self.relationship(RelationType.CONTAINS, file_id, class_id))
                classes_by_name.setdefault(cls.name, []).append((cls.file_path, class_id))

                for method in cls.methods:
                    method_id = self.ids.api(method.package, method.qualified_name, "method", method.file_path)
                    nodes.append(self.function_node(method_id, method))
                    relationships.append(self.relationship(RelationType.CONTAINS, class_id, method_id))
                    functions_by_name.setdefault(method.name, []).append((method.file_path, method_id))
                    all_functions.append((method, method_id))

            for iface in symbols.interfaces:
                iface_id = self.ids.api(iface.package, iface.name, "interface", iface.file_path)
                nodes.append(GraphNode.create(
                    id=iface_id,
                    type=NodeType.INTERFACE,
                    name=iface.name,
                    properties={
                        "file_path": iface.file_path,
                        "line_number": iface.line_number,
                        "description": iface.description,
                        "is_exported": iface.is_exported,
                        "extends_interfaces": iface.extends_interfaces,
                    },
                    metadata=self.node_metadata(iface.file_path, iface.package, confidence=0.8),
                ))
                relationships.append(self.relationship(RelationType.CONTAINS, file_id, iface_id))
                interfaces_by_name.setdefault(iface.name, []).append((iface.file_path, iface_id))

        for symbols in files:
            for cls in symbols.classes:
                class_id = self.ids.api(cls.package, cls.name, "class", cls.file_path)
                parent = resolve(classes_by_name, cls.extends_class, cls.file_path)
                if parent:
                    relationships.append(self.relationship(RelationType.EXTENDS, class_id, parent, confidence=0.8))
                for iface_name in cls.implements_interfaces:
                    target = resolve(interfaces_by_name, iface_name, cls.file_path)
                    if target:
                        relationships.append(self.relationship(RelationType.IMPLEMENTS, class_id, target, confidence=0.8))

            for iface in symbols.interfaces:
                iface_id = self.ids.api(iface.package, iface.name, "interface", iface.file_path)
                for parent_name in iface.extends_interfaces:
                    target = resolve(interfaces_by_name, parent_name, iface.file_path)
                    if target and target != iface_id:
                        relationships.append(self.relationship(RelationType.EXTENDS, iface_id, target, confidence=0.8))

        for func, func_id in all_functions:
            for callee in func.calls:
                target = resolve(functions_by_name, callee, func.file_path)
                if target and target != func_id:
                    rel_type = RelationType.ASYNC_CALLS if callee in func.awaited else RelationType.CALLS
                    relationships.append(self.relationship(rel_type, func_id, target, confidence=0.6))

        return nodes, relationships

    def function_node(self, node_id: str, func: FunctionInfo) -> GraphNode:
        return GraphNode.create(
            id=node_id,
            type=NodeType.FUNCTION,
            name=func.qualified_name,
            properties={
                "api_type": "method" if func.class_name else "function",
                "signature": func.signature,
                "description": func.description,
                "is_exported": func.is_exported,
                "is_async": func.is_async,
                "file_path": func.file_path,
                "line_number": func.line_number,
                "parameters": func.parameters,
                "return_type": func.return_type,
                "access_modifier": func.access_modifier,
                "is_generator": func.is_generator,
                "class_name": func.class_name,
            },
            metadata=self.node_metadata(func.file_path, func.package, confidence=0.8),
        )


def resolve(index: Dict[str, List[Tuple[str, str]]], name: Optional[str], file_path: str) -> Optional[str]:
    """Prefer a same-file definition, then a unique definition anywhere."""
    if not name:
        return None
    candidates = index.get(name.split(".")[-1], [])
    for path, node_id in candidates:
        if path == file_path:
            return node_id
    if len(candidates) == 1:
        return candidates[0][1]
    return None
