import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from ..config import settings
from ..exceptions import PipelineError
from ..types import ExtractionMetadata, ExtractionResult, utc_now
from ..utils.logger import app_logger
from .base import BaseExtractor, dedupe_by_id


@dataclass
class PipelineResult:
    """Merged output of a pipeline run plus each extractor's own result."""
    combined: ExtractionResult
    per_extractor: Dict[str, ExtractionResult] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combined": self.combined.metadata.to_dict(),
            "extractors": {name: r.metadata.to_dict() for name, r in self.per_extractor.items()},
            "failed": dict(self.failed),
        }


class ExtractionPipeline:
    """Runs several extractors concurrently and merges their output."""

    def __init__(self, extractors: List[BaseExtractor], max_workers: Optional[int] = None):
        if not extractors:
            raise PipelineError("No extractors configured")
        self.extractors = extractors
        self.max_workers = max_workers or settings.extractor_max_workers
        self.logger = app_logger.bind(component="extraction_pipeline")

    def run(self) -> PipelineResult:
        started = time.perf_counter()
        results: Dict[str, ExtractionResult] = {}
        failed: Dict[str, str] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(extractor.extract): extractor for extractor in self.extractors}
            for future in as_completed(futures):
                extractor = futures[future]
                try:
                    results[extractor.name] = future.result()
                except (PipelineError, OSError, ValueError) as e:
                    self.logger.error(f"Extractor {extractor.name} failed: {e}")
                    failed[extractor.name] = str(e)

        # merge in configured order so "last emission wins" is reproducible
        nodes = []
        relationships = []
        source_count = 0
        for extractor in self.extractors:
            result = results.get(extractor.name)
            if result is None:
                continue
            nodes.extend(result.nodes)
            relationships.extend(result.relationships)
            source_count += result.metadata.source_count

        nodes = dedupe_by_id(nodes)
        relationships = dedupe_by_id(relationships)
        duration_ms = (time.perf_counter() - started) * 1000

        combined = ExtractionResult(
            nodes=tuple(nodes),
            relationships=tuple(relationships),
            metadata=ExtractionMetadata(
                extractor_name="+".join(e.name for e in self.extractors),
                extraction_time=utc_now(),
                source_count=source_count,
                node_count=len(nodes),
                relationship_count=len(relationships),
                duration_ms=round(duration_ms, 2),
            ),
        )
        self.logger.info(
            f"Pipeline finished: {len(nodes)} nodes, {len(relationships)} relationships "
            f"from {len(results)}/{len(self.extractors)} extractors in {duration_ms:.0f}ms"
        )
        return PipelineResult(combined=combined, per_extractor=results, failed=failed)

    def run_and_import(self, store, clear_first: bool = False) -> PipelineResult:
        """Run the pipeline and write the merged result into ``store``."""
        result = self.run()
        store.connect()
        try:
            if clear_first:
                store.clear_database()
            store.import_data(list(result.combined.nodes), list(result.combined.relationships))
        finally:
            store.disconnect()
        return result
