from typing import List, Dict, Any, Optional

from .ranking import bucket_related_files

COMMON_FIELD_TYPES = {
    "string": "z.string().optional()",
    "number": "z.number().optional()",
    "date": "z.date().optional()",
    "boolean": "z.boolean().optional()",
    "email": "z.string().email().optional()",
    "url": "z.string().url().optional()",
}

ADD_FIELD_FLOW = [
    "Define the field in the schema",
    "Create a database migration",
    "Update the API layer",
    "Update the UI layer",
    "Add tests",
]


def entity_suggestions(primary_target: Dict[str, Any]) -> Dict[str, Any]:
    name = primary_target["name"]
    location = primary_target.get("file_path") or "the schema definition"
    return {
        "add_field": {
            "description": f"Steps to add a new field to {name}",
            "steps": [
                f"1. Edit {location} to update the schema definition",
                "2. Run bunx prisma migrate dev to create a database migration",
                "3. Update the related tRPC API procedures",
                "4. Update the related UI form components",
                "5. Add or update test cases",
            ],
        },
        "common_field_types": dict(COMMON_FIELD_TYPES),
    }


def pattern_suggestions(pattern: str, for_entity: Optional[str],
                        entities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    patterns = []
    if pattern.strip().lower() == "add_field":
        patterns.append({
            "name": "add_field",
            "description": f"Standard flow for adding a field to {for_entity or 'an entity'}",
            "steps": list(ADD_FIELD_FLOW),
            "example_files": bucket_related_files(entities, for_entity) if for_entity else None,
        })
    return patterns
