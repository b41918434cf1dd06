import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple

from ..exceptions import ExtractionError
from ..scanner.source_walker import SourceFile
from ..types import GraphNode, GraphRelationship, NodeType, RelationType
from .base import BaseExtractor

PACKAGE_DIRS = ["packages/*", "modules/*", "apps/*"]

KEY_FILES = {
    "README.md": "documentation",
    "CHANGELOG.md": "documentation",
    "DESIGN.md": "documentation",
    "src/index.ts": "source",
    "src/index.js": "source",
    "package.json": "configuration",
}

DEPENDENCY_SECTIONS = ["dependencies", "devDependencies", "peerDependencies"]


@dataclass
class PackageInfo:
    name: str
    path: str
    version: Optional[str] = None
    description: Optional[str] = None
    main: Optional[str] = None
    types: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    # section -> {dependency name: version spec}
    sections: Dict[str, Dict[str, str]] = field(default_factory=dict)
    key_files: List[str] = field(default_factory=list)

    def all_dependencies(self) -> Dict[str, Tuple[str, str]]:
        merged = {}
        for section in DEPENDENCY_SECTIONS:
            for dep, spec in self.sections.get(section, {}).items():
                merged.setdefault(dep, (section, spec))
        return merged


@dataclass
class PackageGraphData:
    packages: List[PackageInfo]
    build_order: List[str]

    def __len__(self) -> int:
        return len(self.packages)


class PackageExtractor(BaseExtractor):
    """Reads workspace package manifests and their dependency graph."""

    name = "package"

    def get_node_types(self) -> List[NodeType]:
        return [NodeType.PACKAGE, NodeType.FILE]

    def get_relation_types(self) -> List[RelationType]:
        return [RelationType.DEPENDS_ON, RelationType.CONTAINS]

    def extract_raw_data(self) -> PackageGraphData:
        manifests = []
        for directory in self.walker.resolve_dirs(PACKAGE_DIRS):
            manifest = directory / "package.json"
            if manifest.is_file():
                manifests.append(SourceFile(
                    path=self.walker.relative(manifest),
                    absolute_path=str(manifest),
                    size=manifest.stat().st_size,
                ))

        packages = self.parse_each(manifests, self.parse_manifest)
        self.logger.debug(f"Found {len(packages)} workspace packages")
        return PackageGraphData(packages=packages, build_order=self.calculate_build_order(packages))

    def parse_manifest(self, source_file: SourceFile, content: str) -> PackageInfo:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ExtractionError(source_file.path, f"invalid JSON: {e}") from e
        if not isinstance(data, dict) or not data.get("name"):
            raise ExtractionError(source_file.path, "manifest has no package name")

        package_dir = Path(source_file.absolute_path).parent
        relative_dir = str(Path(source_file.path).parent.as_posix())
        keywords = data.get("keywords") or []

        return PackageInfo(
            name=data["name"],
            path=relative_dir,
            version=data.get("version"),
            description=data.get("description"),
            main=data.get("main"),
            types=data.get("types") or data.get("typings"),
            keywords=[k for k in keywords if isinstance(k, str)],
            sections={s: dict(data.get(s) or {}) for s in DEPENDENCY_SECTIONS},
            key_files=[f for f in KEY_FILES if (package_dir / f).is_file()],
        )

    def internal_dependencies(self, package: PackageInfo) -> Dict[str, Tuple[str, str]]:
        return {dep: info for dep, info in package.all_dependencies().items() if self.is_internal(dep)}

    def calculate_build_order(self, packages: List[PackageInfo]) -> List[str]:
        """Topological order of internal packages; cycles are reported and broken."""
        known = {p.name for p in packages}
        pending = {
            p.name: {d for d in self.internal_dependencies(p) if d in known and d != p.name}
            for p in packages
        }
        order: List[str] = []

        while pending:
            ready = sorted(name for name, deps in pending.items() if not deps)
            if not ready:
                cycle = sorted(pending)
                self.logger.warning(f"Circular dependency among packages: {', '.join(cycle)}")
                ready = [cycle[0]]
            for name in ready:
                order.append(name)
                del pending[name]
            for deps in pending.values():
                deps.difference_update(ready)

        return order

    def get_source_count(self, raw_data: PackageGraphData) -> int:
        return len(raw_data.packages)

    def transform_to_graph(self, raw_data: PackageGraphData) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        nodes: List[GraphNode] = []
        relationships: List[GraphRelationship] = []
        position = {name: i for i, name in enumerate(raw_data.build_order)}

        for package in raw_data.packages:
            package_id = self.ids.package(package.name)
            manifest_path = f"{package.path}/package.json"
            internal = self.internal_dependencies(package)

            nodes.append(GraphNode.create(
                id=package_id,
                type=NodeType.PACKAGE,
                name=package.name,
                properties={
                    "version": package.version,
                    "description": package.description,
                    "path": package.path,
                    "main": package.main,
                    "types": package.types,
                    "keywords": package.keywords,
                    "dependencies": sorted(package.sections.get("dependencies", {})),
                    "dev_dependencies": sorted(package.sections.get("devDependencies", {})),
                    "build_order": position.get(package.name),
                    "file_path": manifest_path,
                },
                metadata=self.node_metadata(manifest_path, package.name),
            ))

            for dep, (section, spec) in sorted(internal.items()):
                relationships.append(self.relationship(
                    RelationType.DEPENDS_ON, package_id, self.ids.package(dep),
                    properties={
                        "dependency_type": "package",
                        "section": section,
                        "version_spec": spec,
                        "is_internal": True,
                    },
                    confidence=1.0,
                ))

            for key_file in package.key_files:
                file_path = f"{package.path}/{key_file}"
                file_id = self.ids.file(package.name, file_path)
                is_entry = key_file.startswith("src/index") or key_file == package.main
                nodes.append(GraphNode.create(
                    id=file_id,
                    type=NodeType.FILE,
                    name=Path(key_file).name,
                    properties={
                        "path": file_path,
                        "extension": Path(key_file).suffix.lstrip("."),
                        "file_type": KEY_FILES[key_file],
                        "is_entry_point": is_entry,
                        "file_path": file_path,
                    },
                    metadata=self.node_metadata(file_path, package.name),
                ))
                relationships.append(self.relationship(
                    RelationType.CONTAINS, package_id, file_id,
                    properties={"file_type": KEY_FILES[key_file], "is_entry_point": is_entry},
                ))

        return nodes, relationships
