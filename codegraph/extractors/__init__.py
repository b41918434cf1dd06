"""
Extractors that turn repository files into graph nodes and relationships.
"""

from typing import Dict, List, Optional, Type

from .base import BaseExtractor
from .document_extractor import DocumentExtractor
from .function_extractor import FunctionExtractor
from .import_extractor import ImportExtractor
from .package_extractor import PackageExtractor
from .pipeline import ExtractionPipeline, PipelineResult
from .schema_extractor import SchemaExtractor

EXTRACTORS: Dict[str, Type[BaseExtractor]] = {
    "package": PackageExtractor,
    "schema": SchemaExtractor,
    "import": ImportExtractor,
    "function": FunctionExtractor,
    "document": DocumentExtractor,
}


def create_extractors(names: List[str], root_path: Optional[str] = None) -> List[BaseExtractor]:
    """Instantiate extractors by name; ``all`` selects every registered one."""
    if "all" in names:
        names = list(EXTRACTORS)
    unknown = [n for n in names if n not in EXTRACTORS]
    if unknown:
        raise ValueError(f"Unknown extractor(s): {', '.join(unknown)}")
    return [EXTRACTORS[name](root_path=root_path) for name in names]


__all__ = [
    'BaseExtractor',
    'DocumentExtractor',
    'FunctionExtractor',
    'ImportExtractor',
    'PackageExtractor',
    'SchemaExtractor',
    'ExtractionPipeline',
    'PipelineResult',
    'EXTRACTORS',
    'create_extractors',
]
