"""
Turns a classified request and optional graph context into an implementation
plan: field suggestion, ordered steps, potential impacts and effort.
"""
from typing import List, Dict, Any, Optional

from ..intent import IntentClassifier
from ..intent.classifier import assess_complexity, estimate_effort
from ..query.builder import QueryKind
from ..query.resolver import QueryRequest, QueryResolver
from ..types import DetectedAction, DevelopmentRequirement, DevelopmentScope
from ..utils.logger import app_logger

STAGE_ORDER = [
    DevelopmentScope.SCHEMA,
    DevelopmentScope.VALIDATION,
    DevelopmentScope.DATABASE,
    DevelopmentScope.API,
    DevelopmentScope.UI,
    DevelopmentScope.TESTS,
]

MIGRATION_FILE = "prisma/schema.prisma"

IMPACTS = {
    DetectedAction.ADD_FIELD: [
        "A database migration has to be run",
        "Existing API procedures may need updating to handle the field",
        "Frontend forms and display components need updating",
        "Related TypeScript type definitions may need updating",
    ],
    DetectedAction.REMOVE_FIELD: [
        "A database migration has to be run",
        "Existing API procedures may still reference the field",
        "Frontend forms and display components need updating",
        "Related TypeScript type definitions may need updating",
    ],
    DetectedAction.CREATE_API: [
        "The new router has to be registered with the app router",
        "Client-side API types need regenerating",
    ],
    DetectedAction.CREATE_UI: [
        "Routing and navigation need an entry for the new page",
    ],
    DetectedAction.ADD_VALIDATION: [
        "Existing data may fail the new validation rules",
    ],
}
USER_IMPACT = "User authentication and session handling may be affected"


class ContextSynthesizer:
    """Builds the structured answer for a DevelopmentRequirement."""

    def synthesize(self, requirement: DevelopmentRequirement,
                   query_results: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query_results = query_results or {}
        entity = query_results.get("primary_target")
        complexity = assess_complexity(requirement.intent, requirement.scope, requirement.field)

        return {
            "requirement": requirement.to_dict(),
            "entity": entity,
            "field_suggestion": self.field_suggestion(requirement),
            "implementation_steps": self.implementation_steps(requirement, entity),
            "potential_impacts": self.potential_impacts(requirement, entity),
            "related_files": query_results.get("related_files") or {},
            "complexity": complexity.value,
            "estimated_effort_minutes": estimate_effort(complexity, requirement.scope),
        }

    @staticmethod
    def field_suggestion(requirement: DevelopmentRequirement) -> Optional[Dict[str, Any]]:
        if requirement.intent != DetectedAction.ADD_FIELD or requirement.field is None:
            return None
        return requirement.field.to_dict()

    def implementation_steps(self, requirement: DevelopmentRequirement,
                             entity: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        if requirement.intent == DetectedAction.UNKNOWN:
            return []

        entity_name = (entity or {}).get("name") or requirement.target_entity or "Entity"
        names = {
            "Entity": entity_name,
            "entity": entity_name.lower(),
            "field": requirement.field.name if requirement.field else "new_field",
            "schema_file": (entity or {}).get("file_path") or f"packages/schema/src/entities/{entity_name.lower()}.ts",
        }

        if requirement.intent == DetectedAction.ADD_FIELD:
            steps = self._add_field_steps(requirement, names)
        else:
            steps = self._scoped_steps(requirement, names)

        for number, step in enumerate(steps, start=1):
            step["step"] = number
        return steps

    @staticmethod
    def _step(action: str, target_file: str, description: str,
              code_suggestion: Optional[str] = None) -> Dict[str, Any]:
        step = {"step": 0, "action": action, "target_file": target_file, "description": description}
        if code_suggestion:
            step["code_suggestion"] = code_suggestion
        return step

    def _add_field_steps(self, requirement: DevelopmentRequirement, names: Dict[str, str]) -> List[Dict[str, Any]]:
        zod = requirement.field.serialization_hint.get("zod") if requirement.field else "z.string().optional()"
        return [
            self._step("edit_schema", names["schema_file"],
                       f"Add the {names['field']} field to the {names['Entity']} schema",
                       f"{names['field']}: {zod},"),
            self._step("create_migration", MIGRATION_FILE,
                       "Create a Prisma database migration",
                       f"bunx prisma migrate dev --name add_{names['field']}_to_{names['entity']}"),
            self._step("update_api", f"packages/trpc/src/{names['entity']}.ts",
                       "Update the tRPC procedures to accept and return the field"),
            self._step("update_ui", f"packages/ui/src/forms/{names['Entity']}Form.tsx",
                       f"Add a {names['field']} input to the {names['Entity']} form"),
            self._step("add_tests", f"packages/schema/src/__tests__/{names['entity']}.test.ts",
                       "Add test cases for the new field"),
        ]

    def _scoped_steps(self, requirement: DevelopmentRequirement, names: Dict[str, str]) -> List[Dict[str, Any]]:
        intent = requirement.intent
        entity, Entity, field = names["entity"], names["Entity"], names["field"]
        steps = []

        for stage in STAGE_ORDER:
            if stage == DevelopmentScope.TESTS or stage not in requirement.scope:
                continue
            if stage == DevelopmentScope.SCHEMA:
                description = (f"Remove the {field} field from the {Entity} schema"
                               if intent == DetectedAction.REMOVE_FIELD
                               else f"Update the {Entity} schema definition")
                steps.append(self._step("edit_schema", names["schema_file"], description))
            elif stage == DevelopmentScope.VALIDATION:
                steps.append(self._step("add_validation", names["schema_file"],
                                        f"Add validation rules for {Entity} input"))
            elif stage == DevelopmentScope.DATABASE:
                migration = (f"remove_{field}_from_{entity}" if intent == DetectedAction.REMOVE_FIELD
                             else f"update_{entity}")
                steps.append(self._step("create_migration", MIGRATION_FILE,
                                        "Create a Prisma database migration",
                                        f"bunx prisma migrate dev --name {migration}"))
            elif stage == DevelopmentScope.API:
                if intent == DetectedAction.CREATE_API:
                    steps.append(self._step("create_api", f"packages/trpc/src/{entity}.ts",
                                            f"Create the tRPC router for {Entity}"))
                else:
                    steps.append(self._step("update_api", f"packages/trpc/src/{entity}.ts",
                                            f"Update the tRPC procedures for {Entity}"))
            elif stage == DevelopmentScope.UI:
                if intent == DetectedAction.CREATE_UI:
                    steps.append(self._step("create_ui", f"packages/ui/src/components/{Entity}View.tsx",
                                            f"Create the {Entity} page component"))
                else:
                    steps.append(self._step("update_ui", f"packages/ui/src/forms/{Entity}Form.tsx",
                                            f"Update the {Entity} form"))

        test_file = {
            DetectedAction.CREATE_API: f"packages/trpc/src/__tests__/{entity}.test.ts",
            DetectedAction.CREATE_UI: f"packages/ui/src/__tests__/{Entity}View.test.tsx",
        }.get(intent, f"packages/schema/src/__tests__/{entity}.test.ts")
        steps.append(self._step("add_tests", test_file, "Add or update test cases"))
        return steps

    @staticmethod
    def potential_impacts(requirement: DevelopmentRequirement,
                          entity: Optional[Dict[str, Any]] = None) -> List[str]:
        impacts = list(IMPACTS.get(requirement.intent, []))
        entity_name = (entity or {}).get("name") or requirement.target_entity
        if impacts and entity_name == "User":
            impacts.append(USER_IMPACT)
        return impacts


class ContextAssistant:
    """classify -> resolve the target entity -> synthesize."""

    def __init__(self, classifier: Optional[IntentClassifier] = None,
                 resolver: Optional[QueryResolver] = None,
                 synthesizer: Optional[ContextSynthesizer] = None):
        self.classifier = classifier or IntentClassifier()
        self.resolver = resolver or QueryResolver()
        self.synthesizer = synthesizer or ContextSynthesizer()
        self.logger = app_logger.bind(component="context_assistant")

    async def analyze(self, text: str) -> Dict[str, Any]:
        requirement = self.classifier.classify(text)
        query_results = None
        query_error = None

        if requirement.target_entity:
            response = await self.resolver.resolve(QueryRequest(
                query_type=QueryKind.FIND_ENTITY,
                target=requirement.target_entity,
                include_related=True,
            ))
            if response["success"]:
                query_results = response["results"]
            else:
                query_error = response["error"]
                self.logger.warning(f"Continuing without graph context: {query_error}")

        context = self.synthesizer.synthesize(requirement, query_results)
        context["success"] = True
        context["graph_context_error"] = query_error
        return context
