import re
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

from ..scanner.source_walker import SourceFile
from ..types import GraphNode, GraphRelationship, NodeType, RelationType
from .base import BaseExtractor

SCAN_PATTERNS = [
    "packages/schema/src",
    "packages/*/src",
    "apps/*/src",
    "modules/*/src",
]

PATH_KEYWORDS = ("schema", "entity", "field", "validation", "zod")

ENTITY_RE = re.compile(
    r"(?:export\s+(?:const|class)\s+)(\w+)"
    r"(?:\s*=\s*new\s+EntityImpl|\s*=\s*defineEntity\s*\(|\s+extends\s+EntityImpl|\s+implements\s+Entity\b)"
)
FIELD_HELPER_RE = re.compile(r"(?:export\s+(?:const|function)\s+)(\w+Field)(?:\s*=|\s*\()")
ZOD_SCHEMA_RE = re.compile(r"(?:export\s+(?:const|let|var)\s+)(\w+Schema)\s*=\s*z\.")
IMPORT_RE = re.compile(r"import\s+(?:type\s+)?(?:{[^}]+}|\w+)\s+from\s+['\"]([^'\"]+)['\"]")
FIELD_ENTRY_RE = re.compile(r"(\w+)\s*:\s*([^,}]+)")
ZOD_OBJECT_RE = re.compile(r"object\s*\(\s*{([^}]+)}\s*\)")
ZOD_FIELD_RE = re.compile(r"(\w+)\s*:\s*z\.([^,}]+)")
TABLE_NAME_RE = re.compile(r"tableName\s*:\s*['\"]([^'\"]+)['\"]")
DESCRIPTION_RE = re.compile(r"description\s*:\s*['\"]([^'\"]+)['\"]")
FIELDS_BLOCK_RE = re.compile(r"fields\s*:\s*{([^}]+)}", re.DOTALL)
OPTIONS_BLOCK_RE = re.compile(r"options\s*:\s*{([^}]+)}", re.DOTALL)
NEXT_EXPORT_RE = re.compile(r"^export\s", re.MULTILINE)

# Checked in order; the first hit names the field type.
FIELD_TYPE_KEYWORDS = ["string", "number", "boolean", "date", "array", "object"]
VALIDATION_KEYWORDS = ["required", "optional", "min", "max", "unique", "email", "url"]


@dataclass
class FieldInfo:
    name: str
    field_type: str
    is_optional: bool
    is_array: bool
    validation_rules: List[str]


@dataclass
class SchemaInfo:
    name: str
    file_path: str
    kind: str  # entity | field | zod
    line_number: int
    package: str
    fields: List[FieldInfo] = field(default_factory=list)
    options: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    zod_types: List[str] = field(default_factory=list)
    field_type: str = "unknown"
    validation_rules: List[str] = field(default_factory=list)


def infer_field_type(definition: str) -> str:
    lowered = definition.lower()
    for keyword in FIELD_TYPE_KEYWORDS:
        if keyword in lowered:
            return keyword
    return "unknown"


def extract_validation_rules(definition: str) -> List[str]:
    return [kw for kw in VALIDATION_KEYWORDS if re.search(rf"\b{kw}", definition, re.IGNORECASE)]


def parse_fields_block(block: str) -> List[FieldInfo]:
    fields = []
    for match in FIELD_ENTRY_RE.finditer(block):
        name, definition = match.group(1), match.group(2)
        fields.append(FieldInfo(
            name=name,
            field_type=infer_field_type(definition),
            is_optional="optional" in definition,
            is_array="array" in definition.lower(),
            validation_rules=extract_validation_rules(definition),
        ))
    return fields


def line_of(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


class SchemaExtractor(BaseExtractor):
    """Recognizes entity, field-helper and zod schema definitions."""

    name = "schema"

    def get_node_types(self) -> List[NodeType]:
        return [NodeType.SCHEMA_ENTITY, NodeType.SCHEMA_FIELD]

    def get_relation_types(self) -> List[RelationType]:
        return [RelationType.DEPENDS_ON, RelationType.HAS_FIELD]

    def extract_raw_data(self) -> List[SchemaInfo]:
        schema_files = self.scan_schema_files()
        self.logger.debug(f"Found {len(schema_files)} schema-related files")
        per_file = self.parse_each(schema_files, self.parse_schema_content)
        return [schema for schemas in per_file for schema in schemas]

    def scan_schema_files(self) -> List[SourceFile]:
        files: Dict[str, SourceFile] = {}
        for directory in self.walker.resolve_dirs(SCAN_PATTERNS):
            for source_file in self.walker.walk(directory, extensions={".ts"},
                                                path_filter=self.is_schema_path):
                files.setdefault(source_file.path, source_file)
        return list(files.values())

    @staticmethod
    def is_schema_path(relative_path: str) -> bool:
        if ".test." in relative_path or ".spec." in relative_path:
            return False
        lowered = relative_path.lower()
        return any(keyword in lowered for keyword in PATH_KEYWORDS)

    def parse_schema_content(self, source_file: SourceFile, content: str) -> List[SchemaInfo]:
        package = self.package_for_path(source_file.path)
        dependencies = self.extract_dependencies(content)
        zod_types = sorted(set(re.findall(r"z\.(\w+)", content)))
        schemas = []

        for match in ENTITY_RE.finditer(content):
            entity_name = match.group(1)
            fields, options, description = self.parse_entity_definition(content, match.start())
            schemas.append(SchemaInfo(
                name=entity_name, file_path=source_file.path, kind="entity",
                line_number=line_of(content, match.start()), package=package,
                fields=fields, options=options, description=description,
                dependencies=dependencies, zod_types=zod_types,
            ))

        for match in FIELD_HELPER_RE.finditer(content):
            helper = match.group(1)
            definition = re.search(rf"{re.escape(helper)}[^=(]*[=(]\s*([^;\n]+)", content[match.start():])
            body = definition.group(1) if definition else ""
            schemas.append(SchemaInfo(
                name=helper, file_path=source_file.path, kind="field",
                line_number=line_of(content, match.start()), package=package,
                dependencies=dependencies, zod_types=zod_types,
                field_type=infer_field_type(body),
                validation_rules=extract_validation_rules(body),
            ))

        for match in ZOD_SCHEMA_RE.finditer(content):
            schema_name = match.group(1)
            schemas.append(SchemaInfo(
                name=schema_name, file_path=source_file.path, kind="zod",
                line_number=line_of(content, match.start()), package=package,
                fields=self.parse_zod_fields(content[match.end():]),
                dependencies=dependencies, zod_types=zod_types,
            ))

        return schemas

    def parse_entity_definition(self, content: str, start: int) -> Tuple[List[FieldInfo], Dict[str, Any], Optional[str]]:
        """Parse fields, options and description inside one entity declaration."""
        next_export = NEXT_EXPORT_RE.search(content, start + 1)
        region = content[start:next_export.start() if next_export else len(content)]
        fields: List[FieldInfo] = []
        options: Dict[str, Any] = {}

        fields_match = FIELDS_BLOCK_RE.search(region)
        if fields_match:
            fields = parse_fields_block(fields_match.group(1))

        options_match = OPTIONS_BLOCK_RE.search(region)
        if options_match:
            block = options_match.group(1)
            if "timestamps" in block:
                options["timestamps"] = True
            if "softDelete" in block:
                options["softDelete"] = True
            table = TABLE_NAME_RE.search(block)
            if table:
                options["tableName"] = table.group(1)

        desc = DESCRIPTION_RE.search(FIELDS_BLOCK_RE.sub("", region))
        return fields, options, desc.group(1) if desc else None

    @staticmethod
    def parse_zod_fields(rest: str) -> List[FieldInfo]:
        next_export = NEXT_EXPORT_RE.search(rest)
        if next_export:
            rest = rest[:next_export.start()]
        statement = rest.split(";", 1)[0]
        object_match = ZOD_OBJECT_RE.search(statement)
        if not object_match:
            return []

        fields = []
        for match in ZOD_FIELD_RE.finditer(object_match.group(1)):
            definition = match.group(2)
            base_type = definition.split("(")[0].strip()
            fields.append(FieldInfo(
                name=match.group(1),
                field_type=base_type if base_type in FIELD_TYPE_KEYWORDS else infer_field_type(definition),
                is_optional="optional" in definition,
                is_array="array" in definition,
                validation_rules=extract_validation_rules(definition),
            ))
        return fields

    def extract_dependencies(self, content: str) -> List[str]:
        deps = []
        for match in IMPORT_RE.finditer(content):
            source = match.group(1)
            if self.is_internal(source) and source not in deps:
                deps.append(source)
        return deps

    def transform_to_graph(self, schemas: List[SchemaInfo]) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        nodes: List[GraphNode] = []
        relationships: List[GraphRelationship] = []

        for schema in schemas:
            metadata = self.node_metadata(schema.file_path, schema.package, confidence=0.9)

            if schema.kind == "field":
                nodes.append(GraphNode.create(
                    id=self.ids.schema_field("", schema.name),
                    type=NodeType.SCHEMA_FIELD,
                    name=schema.name,
                    properties={
                        "field_type": schema.field_type,
                        "is_optional": "optional" in schema.validation_rules,
                        "validation_rules": schema.validation_rules,
                        "file_path": schema.file_path,
                        "line_number": schema.line_number,
                    },
                    metadata=metadata,
                ))
                continue

            entity_id = self.ids.schema_entity(schema.name)
            nodes.append(GraphNode.create(
                id=entity_id,
                type=NodeType.SCHEMA_ENTITY,
                name=schema.name,
                properties={
                    "schema_name": schema.name,
                    "description": schema.description,
                    "table_name": schema.options.get("tableName"),
                    "file_path": schema.file_path,
                    "fields_count": len(schema.fields),
                    "field_names": [f.name for f in schema.fields],
                    "schema_kind": schema.kind,
                    "options": schema.options,
                    "line_number": schema.line_number,
                    "zod_types": schema.zod_types,
                },
                metadata=metadata,
            ))

            for dep in schema.dependencies:
                relationships.append(self.relationship(
                    RelationType.DEPENDS_ON, entity_id, self.ids.package(dep),
                    properties={"dependency_type": "import", "is_internal": True},
                    confidence=0.9,
                ))

            for field_info in schema.fields:
                field_id = self.ids.schema_field(schema.name, field_info.name)
                nodes.append(GraphNode.create(
                    id=field_id,
                    type=NodeType.SCHEMA_FIELD,
                    name=field_info.name,
                    properties={
                        "field_type": field_info.field_type,
                        "is_optional": field_info.is_optional,
                        "is_array": field_info.is_array,
                        "validation_rules": field_info.validation_rules,
                        "file_path": schema.file_path,
                        "entity": schema.name,
                    },
                    metadata=metadata,
                ))
                relationships.append(self.relationship(
                    RelationType.HAS_FIELD, entity_id, field_id,
                    properties={
                        "field_type": field_info.field_type,
                        "is_optional": field_info.is_optional,
                        "is_array": field_info.is_array,
                        "validation_rules": field_info.validation_rules,
                    },
                    confidence=0.9,
                ))

        return nodes, relationships
