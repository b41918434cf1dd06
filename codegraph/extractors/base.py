import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..config import settings
from ..exceptions import ExtractionError, PipelineError
from ..ids import NodeIdGenerator, relationship_id
from ..scanner.source_walker import SourceFile, SourceWalker
from ..types import (
    ExtractionMetadata, ExtractionResult, GraphNode, GraphRelationship,
    NodeMetadata, NodeType, RelationshipMetadata, RelationType, utc_now,
)
from ..utils.logger import app_logger


class BaseExtractor(ABC):
    """Turns one category of source artifact into graph nodes and edges.

    Subclasses implement ``extract_raw_data`` (walk and recognize) and
    ``transform_to_graph`` (emit nodes/relationships). ``extract`` runs both
    and wraps the output in an :class:`ExtractionResult`.
    """

    name: str = "base"

    def __init__(self, root_path: Optional[str] = None,
                 internal_prefix: Optional[str] = None,
                 id_scheme: Optional[str] = None):
        root = Path(root_path or settings.project_root).resolve()
        if not root.exists():
            raise PipelineError(f"Root path does not exist: {root}")
        self.root_path = root
        self.internal_prefix = internal_prefix if internal_prefix is not None else settings.internal_package_prefix
        self.ids = NodeIdGenerator(id_scheme)
        self.walker = SourceWalker(str(root))
        self.logger = app_logger.bind(component=f"extractor.{self.name}")

    @abstractmethod
    def extract_raw_data(self) -> Any:
        """Scan the repository and collect raw per-file data."""

    @abstractmethod
    def transform_to_graph(self, raw_data: Any) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        """Turn raw data into nodes and relationships."""

    @abstractmethod
    def get_node_types(self) -> List[NodeType]:
        pass

    @abstractmethod
    def get_relation_types(self) -> List[RelationType]:
        pass

    def get_source_count(self, raw_data: Any) -> int:
        try:
            return len(raw_data)
        except TypeError:
            return 0

    def extract(self) -> ExtractionResult:
        """Run the extractor end to end."""
        started = time.perf_counter()
        self.logger.info(f"Starting {self.name} extraction under {self.root_path}")

        raw_data = self.extract_raw_data()
        nodes, relationships = self.transform_to_graph(raw_data)
        nodes = dedupe_by_id(nodes)
        relationships = dedupe_by_id(relationships)

        duration_ms = (time.perf_counter() - started) * 1000
        result = ExtractionResult(
            nodes=tuple(nodes),
            relationships=tuple(relationships),
            metadata=ExtractionMetadata(
                extractor_name=self.name,
                extraction_time=utc_now(),
                source_count=self.get_source_count(raw_data),
                node_count=len(nodes),
                relationship_count=len(relationships),
                duration_ms=round(duration_ms, 2),
            ),
        )
        self.logger.info(
            f"{self.name}: {len(nodes)} nodes, {len(relationships)} relationships "
            f"from {result.metadata.source_count} sources in {duration_ms:.0f}ms"
        )
        return result

    # Helpers shared by the concrete extractors

    def parse_each(self, source_files: List[SourceFile], parse) -> List[Any]:
        """Apply ``parse(source_file, content)`` to every readable file.

        Contents are loaded in parallel first; unreadable files are logged at
        debug level and dropped. A parse failure skips that file only.
        """
        results = []
        for source_file in self.walker.read_many(source_files):
            try:
                parsed = parse(source_file, source_file.content)
            except ExtractionError as e:
                self.logger.debug(str(e))
                continue
            except (ValueError, KeyError, IndexError, TypeError) as e:
                self.logger.debug(str(ExtractionError(source_file.path, repr(e))))
                continue
            if parsed is not None:
                results.append(parsed)
        return results

    def is_internal(self, module: str) -> bool:
        return bool(self.internal_prefix) and module.startswith(self.internal_prefix)

    def package_for_path(self, relative_path: str) -> str:
        """Infer the owning workspace package from a relative path."""
        parts = relative_path.split("/")
        if len(parts) > 1 and parts[0] in ("packages", "modules", "apps"):
            return f"{self.internal_prefix}{parts[1]}" if self.internal_prefix else parts[1]
        return "root"

    def node_metadata(self, source_file: Optional[str] = None, package: Optional[str] = None,
                      confidence: float = 1.0) -> NodeMetadata:
        return NodeMetadata(
            source_file=source_file,
            package=package,
            confidence=confidence,
            extractor=self.name,
        )

    def relationship(self, rel_type: RelationType, source: str, target: str,
                     properties: Optional[Dict[str, Any]] = None,
                     confidence: float = 1.0, weight: float = 1.0) -> GraphRelationship:
        return GraphRelationship(
            id=relationship_id(rel_type, source, target),
            type=rel_type,
            source=source,
            target=target,
            properties=properties or {},
            metadata=RelationshipMetadata(weight=weight, confidence=confidence, extractor=self.name),
        )


def dedupe_by_id(items: List[Any]) -> List[Any]:
    """Keep one item per id; later emissions replace earlier ones in place."""
    index: Dict[str, int] = {}
    unique: List[Any] = []
    for item in items:
        if item.id in index:
            unique[index[item.id]] = item
        else:
            index[item.id] = len(unique)
            unique.append(item)
    return unique
