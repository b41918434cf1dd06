from typing import List, Dict, Any, Optional, Tuple, Type
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, ValidationError


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NodeType(str, Enum):
    """Node kinds stored in the code graph."""
    PACKAGE = "Package"
    DOCUMENT = "Document"
    CONCEPT = "Concept"
    API = "API"
    SCHEMA_ENTITY = "SchemaEntity"
    SCHEMA_FIELD = "SchemaField"
    FILE = "File"
    DATABASE_TABLE = "DatabaseTable"
    DATABASE_COLUMN = "DatabaseColumn"
    FUNCTION = "Function"
    CLASS = "Class"
    INTERFACE = "Interface"
    TYPE = "Type"
    VARIABLE = "Variable"
    IMPORT = "Import"
    EXPORT = "Export"
    UNKNOWN = "unknown"


class RelationType(str, Enum):
    """Relationship kinds stored in the code graph."""
    DEPENDS_ON = "DEPENDS_ON"
    DOCUMENTS = "DOCUMENTS"
    DEFINES = "DEFINES"
    REFERENCES = "REFERENCES"
    HAS_FIELD = "HAS_FIELD"
    IMPLEMENTS = "IMPLEMENTS"
    EXTENDS = "EXTENDS"
    EXPORTS = "EXPORTS"
    IMPORTS = "IMPORTS"
    CONTAINS = "CONTAINS"
    CALLS = "CALLS"
    USES_TYPE = "USES_TYPE"
    HAS_RELATION = "HAS_RELATION"
    OVERRIDES = "OVERRIDES"
    RETURNS = "RETURNS"
    PARAMETER = "PARAMETER"
    THROWS = "THROWS"
    ASYNC_CALLS = "ASYNC_CALLS"


# Kind-specific node properties. Unknown keys are accepted and kept so that
# newer extractors can attach data older readers do not know about.

class NodeProperties(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class PackageProperties(NodeProperties):
    version: Optional[str] = None
    description: Optional[str] = None
    path: Optional[str] = None
    main: Optional[str] = None
    types: Optional[str] = None
    keywords: List[str] = []
    dependencies: List[str] = []
    dev_dependencies: List[str] = []
    build_order: Optional[int] = None


class DocumentProperties(NodeProperties):
    file_path: str
    file_type: str
    content_hash: Optional[str] = None
    title: Optional[str] = None
    sections: List[str] = []
    size: int = 0
    references: List[str] = []
    concepts: List[str] = []


class ApiProperties(NodeProperties):
    api_type: Optional[str] = None
    signature: Optional[str] = None
    description: Optional[str] = None
    is_exported: bool = False
    is_async: bool = False
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    parameters: List[str] = []
    return_type: Optional[str] = None
    access_modifier: Optional[str] = None


class ClassProperties(NodeProperties):
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    description: Optional[str] = None
    is_exported: bool = False
    is_abstract: bool = False
    extends_class: Optional[str] = None
    implements_interfaces: List[str] = []


class InterfaceProperties(NodeProperties):
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    description: Optional[str] = None
    is_exported: bool = False
    extends_interfaces: List[str] = []


class SchemaEntityProperties(NodeProperties):
    schema_name: str
    description: Optional[str] = None
    table_name: Optional[str] = None
    file_path: Optional[str] = None
    fields_count: int = 0
    field_names: List[str] = []
    schema_kind: str = "entity"
    options: Dict[str, Any] = {}


class SchemaFieldProperties(NodeProperties):
    field_type: str = "unknown"
    is_optional: bool = False
    is_array: bool = False
    validation_rules: List[str] = []
    file_path: Optional[str] = None
    entity: Optional[str] = None


class FileProperties(NodeProperties):
    path: str
    extension: Optional[str] = None
    file_type: Optional[str] = None
    is_entry_point: bool = False
    size: int = 0


class ImportProperties(NodeProperties):
    source: str
    imported: str
    is_internal: bool = False
    is_type_only: bool = False
    import_kind: str = "named"
    file_path: Optional[str] = None
    line_number: Optional[int] = None


class ExportProperties(NodeProperties):
    exported: str
    is_default: bool = False
    re_export_from: Optional[str] = None
    file_path: Optional[str] = None
    line_number: Optional[int] = None


PROPERTY_MODELS: Dict[NodeType, Type[NodeProperties]] = {
    NodeType.PACKAGE: PackageProperties,
    NodeType.DOCUMENT: DocumentProperties,
    NodeType.API: ApiProperties,
    NodeType.FUNCTION: ApiProperties,
    NodeType.CLASS: ClassProperties,
    NodeType.INTERFACE: InterfaceProperties,
    NodeType.SCHEMA_ENTITY: SchemaEntityProperties,
    NodeType.SCHEMA_FIELD: SchemaFieldProperties,
    NodeType.FILE: FileProperties,
    NodeType.IMPORT: ImportProperties,
    NodeType.EXPORT: ExportProperties,
}


def properties_model_for(node_type: NodeType) -> Type[NodeProperties]:
    return PROPERTY_MODELS.get(node_type, NodeProperties)


@dataclass(frozen=True)
class NodeMetadata:
    """Provenance of a node. Never part of its identity."""
    source_file: Optional[str] = None
    package: Optional[str] = None
    confidence: float = 1.0
    extractor: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class RelationshipMetadata:
    weight: float = 1.0
    confidence: float = 1.0
    extractor: Optional[str] = None
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class GraphNode:
    """A typed node in the code graph."""
    id: str
    type: NodeType
    name: str
    properties: NodeProperties = field(default_factory=NodeProperties)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    @classmethod
    def create(cls, id: str, type: NodeType, name: str,
               properties: Optional[Dict[str, Any]] = None,
               metadata: Optional[NodeMetadata] = None) -> "GraphNode":
        """Build a node, validating ``properties`` against the kind's model."""
        model = properties_model_for(type)
        return cls(
            id=id,
            type=type,
            name=name,
            properties=model(**(properties or {})),
            metadata=metadata or NodeMetadata(),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Read a property, known or extension."""
        value = self.properties.model_dump().get(key)
        return default if value is None else value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "properties": self.properties.model_dump(exclude_none=True),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphNode":
        try:
            node_type = NodeType(data.get("type", NodeType.UNKNOWN.value))
        except ValueError:
            node_type = NodeType.UNKNOWN
        metadata = data.get("metadata") or {}
        known = {k: v for k, v in metadata.items() if k in NodeMetadata.__dataclass_fields__}
        raw_properties = data.get("properties") or {}
        try:
            properties = properties_model_for(node_type)(**raw_properties)
        except ValidationError:
            # stored by an older writer; keep the data without the kind's schema
            properties = NodeProperties(**raw_properties)
        return cls(
            id=data["id"],
            type=node_type,
            name=data.get("name", ""),
            properties=properties,
            metadata=NodeMetadata(**known),
        )


@dataclass(frozen=True)
class GraphRelationship:
    """A typed, directed edge between two node ids."""
    id: str
    type: RelationType
    source: str
    target: str
    properties: Dict[str, Any] = field(default_factory=dict)
    metadata: RelationshipMetadata = field(default_factory=RelationshipMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "source": self.source,
            "target": self.target,
            "properties": dict(self.properties),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphRelationship":
        metadata = data.get("metadata") or {}
        known = {k: v for k, v in metadata.items() if k in RelationshipMetadata.__dataclass_fields__}
        return cls(
            id=data["id"],
            type=RelationType(data["type"]),
            source=data["source"],
            target=data["target"],
            properties=dict(data.get("properties") or {}),
            metadata=RelationshipMetadata(**known),
        )


@dataclass(frozen=True)
class ExtractionMetadata:
    extractor_name: str
    extraction_time: str
    source_count: int
    node_count: int
    relationship_count: int
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class ExtractionResult:
    """Output of one extractor run."""
    nodes: Tuple[GraphNode, ...]
    relationships: Tuple[GraphRelationship, ...]
    metadata: ExtractionMetadata

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "relationships": [rel.to_dict() for rel in self.relationships],
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class QueryResult:
    """Result of a store query. ``records`` mirrors the query's return clause."""
    nodes: List[GraphNode]
    relationships: List[GraphRelationship]
    records: List[Dict[str, Any]]
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        def _plain(value):
            return value.to_dict() if hasattr(value, "to_dict") else value

        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "relationships": [rel.to_dict() for rel in self.relationships],
            "records": [{k: _plain(v) for k, v in rec.items()} for rec in self.records],
            "metadata": self.metadata,
        }


@dataclass
class GraphStats:
    node_count: int
    relationship_count: int
    node_types: Dict[str, int]
    relationship_types: Dict[str, int]
    last_updated: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


# Query-time requirement model

class DetectedAction(str, Enum):
    ADD_FIELD = "ADD_FIELD"
    REMOVE_FIELD = "REMOVE_FIELD"
    CREATE_API = "CREATE_API"
    CREATE_UI = "CREATE_UI"
    ADD_VALIDATION = "ADD_VALIDATION"
    UNKNOWN = "UNKNOWN"


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    EMAIL = "email"
    URL = "url"
    JSON = "json"
    ARRAY = "array"
    ENUM = "enum"
    REFERENCE = "reference"


class DevelopmentScope(str, Enum):
    SCHEMA = "schema"
    DATABASE = "database"
    API = "api"
    UI = "ui"
    VALIDATION = "validation"
    TESTS = "tests"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


@dataclass
class FieldSuggestion:
    name: str
    type: FieldType
    nullable: bool = True
    validation: List[str] = field(default_factory=list)
    serialization_hint: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "nullable": self.nullable,
            "validation": list(self.validation),
            "serialization_hint": dict(self.serialization_hint),
        }


@dataclass
class DevelopmentRequirement:
    """Typed reading of a free-text developer request."""
    intent: DetectedAction
    confidence: float
    raw_input: str
    target_entity: Optional[str] = None
    scope: List[DevelopmentScope] = field(default_factory=list)
    complexity: Complexity = Complexity.SIMPLE
    estimated_effort_minutes: int = 0
    # declared last: the attribute name shadows dataclasses.field in this body
    field: Optional[FieldSuggestion] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "target_entity": self.target_entity,
            "field": self.field.to_dict() if self.field else None,
            "scope": [s.value for s in self.scope],
            "complexity": self.complexity.value,
            "estimated_effort_minutes": self.estimated_effort_minutes,
            "raw_input": self.raw_input,
        }
