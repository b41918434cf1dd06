import posixpath
import re
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

from ..ids import short_hash
from ..scanner.source_walker import SourceFile
from ..types import GraphNode, GraphRelationship, NodeType, RelationType
from .base import BaseExtractor

DOCUMENT_EXTENSIONS = {".md", ".txt", ".rst", ".adoc"}
DOC_DIRS = ["docs"]
PACKAGE_DIRS = ["packages/*", "modules/*", "apps/*"]
MAX_DEPTH = 3

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$", re.MULTILINE)
LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
PATH_REF_RE = re.compile(r"(?<![\w(/])(\.{1,2}/[\w./-]+\.(?:md|txt|rst|adoc))\b")
CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
TYPE_NAME_RE = re.compile(r"\b(?:interface|class|type|enum)\s+([A-Z][A-Za-z0-9]+)")


@dataclass
class DocumentInfo:
    path: str
    package: str
    extension: str
    size: int
    title: Optional[str]
    sections: List[str] = field(default_factory=list)
    concepts: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    content_hash: str = ""


def extract_title(content: str) -> Optional[str]:
    headings = [(len(m.group(1)), m.group(2).strip()) for m in HEADING_RE.finditer(content)]
    for level in (1, 2):
        for heading_level, text in headings:
            if heading_level == level:
                return text
    return None


def extract_sections(content: str) -> List[str]:
    return [m.group(2).strip() for m in HEADING_RE.finditer(content) if len(m.group(1)) <= 3]


def extract_concepts(content: str) -> List[str]:
    """Header text plus type names declared inside fenced code blocks."""
    concepts: List[str] = []
    for match in HEADING_RE.finditer(content):
        text = match.group(2).strip()
        if 2 < len(text) < 50 and text not in concepts:
            concepts.append(text)
    for block in CODE_BLOCK_RE.findall(content):
        for type_name in TYPE_NAME_RE.findall(block):
            if type_name not in concepts:
                concepts.append(type_name)
    return concepts


def extract_links(content: str) -> List[str]:
    links: List[str] = []
    for match in LINK_RE.finditer(content):
        target = match.group(2)
        if re.match(r"^[a-z]+:", target) or target.startswith("#"):
            continue
        target = target.split("#", 1)[0]
        if target.startswith(("./", "../")) or target.endswith((".md", ".txt")):
            if target not in links:
                links.append(target)
    for target in PATH_REF_RE.findall(CODE_BLOCK_RE.sub("", content)):
        if target not in links:
            links.append(target)
    return links


class DocumentExtractor(BaseExtractor):
    """Reads markdown and text documentation and the links between documents."""

    name = "document"

    def get_node_types(self) -> List[NodeType]:
        return [NodeType.DOCUMENT]

    def get_relation_types(self) -> List[RelationType]:
        return [RelationType.REFERENCES, RelationType.DOCUMENTS]

    def scan_documents(self) -> List[SourceFile]:
        found: Dict[str, SourceFile] = {}
        for source_file in self.walker.walk(extensions=DOCUMENT_EXTENSIONS, max_depth=0):
            found.setdefault(source_file.path, source_file)
        for directory in self.walker.resolve_dirs(DOC_DIRS + PACKAGE_DIRS):
            for source_file in self.walker.walk(directory, extensions=DOCUMENT_EXTENSIONS, max_depth=MAX_DEPTH):
                found.setdefault(source_file.path, source_file)
        return list(found.values())

    def extract_raw_data(self) -> List[DocumentInfo]:
        documents = self.scan_documents()
        self.logger.debug(f"Found {len(documents)} document files")
        return self.parse_each(documents, self.parse_document)

    def parse_document(self, source_file: SourceFile, content: str) -> DocumentInfo:
        return DocumentInfo(
            path=source_file.path,
            package=self.package_for_path(source_file.path),
            extension=source_file.suffix.lstrip("."),
            size=source_file.size,
            title=extract_title(content),
            sections=extract_sections(content),
            concepts=extract_concepts(content),
            links=extract_links(content),
            content_hash=short_hash(content, self.ids.scheme),
        )

    @staticmethod
    def resolve_link(from_path: str, link: str, known: Dict[str, str]) -> Optional[str]:
        """Resolve ``link`` against the linking document, then the root."""
        candidates = [posixpath.normpath(posixpath.join(posixpath.dirname(from_path), link))]
        if not link.startswith(("./", "../")):
            candidates.append(posixpath.normpath(link.lstrip("/")))
        for candidate in candidates:
            if candidate in known:
                return candidate
        return None

    def transform_to_graph(self, documents: List[DocumentInfo]) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        nodes: List[GraphNode] = []
        relationships: List[GraphRelationship] = []
        doc_ids = {doc.path: self.ids.document(doc.path) for doc in documents}

        for doc in documents:
            doc_id = doc_ids[doc.path]
            resolved = []
            for link in doc.links:
                target = self.resolve_link(doc.path, link, doc_ids)
                if target and target != doc.path and target not in resolved:
                    resolved.append(target)

            nodes.append(GraphNode.create(
                id=doc_id,
                type=NodeType.DOCUMENT,
                name=doc.title or posixpath.basename(doc.path),
                properties={
                    "file_path": doc.path,
                    "file_type": doc.extension,
                    "content_hash": doc.content_hash,
                    "title": doc.title,
                    "sections": doc.sections,
                    "size": doc.size,
                    "references": resolved,
                    "concepts": doc.concepts,
                },
                metadata=self.node_metadata(doc.path, doc.package),
            ))

            for target in resolved:
                relationships.append(self.relationship(
                    RelationType.REFERENCES, doc_id, doc_ids[target],
                    properties={"reference_type": "document_link", "link_path": target},
                    confidence=0.9,
                ))

            if doc.package != "root":
                relationships.append(self.relationship(
                    RelationType.DOCUMENTS, doc_id, self.ids.package(doc.package),
                    properties={"file_type": doc.extension},
                    confidence=0.8,
                ))

        return nodes, relationships
