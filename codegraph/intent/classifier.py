"""
Pattern-based reading of free-text developer requests.

Requests may be written in Chinese or English. The classifier never fails:
anything it cannot place becomes ``UNKNOWN`` with confidence 0.1.
"""
import re
from typing import List, Dict, Optional, Tuple

from ..types import (
    Complexity, DetectedAction, DevelopmentRequirement, DevelopmentScope,
    FieldSuggestion, FieldType,
)
from ..utils.logger import app_logger
from .field_types import build_field_suggestion

# First matching pattern in list order wins.
INTENT_PATTERNS: List[Tuple[DetectedAction, List[str], float]] = [
    (DetectedAction.ADD_FIELD, [
        r"给.*加.*字段", r"给.*添加.*字段", r".*新增.*字段", r".*增加.*属性",
        r"add.*field", r"create.*field", r".*需要.*字段", r"为.*添加",
    ], 0.9),
    (DetectedAction.REMOVE_FIELD, [
        r"删除.*字段", r"移除.*字段", r"去掉.*属性", r"remove.*field", r"delete.*field",
    ], 0.9),
    (DetectedAction.CREATE_API, [
        r"创建.*API", r"新建.*接口", r"add.*endpoint", r"create.*route", r".*需要.*API", r"create.*api",
    ], 0.8),
    (DetectedAction.CREATE_UI, [
        r"创建.*页面", r"新建.*组件", r"做.*界面", r"create.*component", r"build.*ui", r".*前端",
    ], 0.8),
    (DetectedAction.ADD_VALIDATION, [r"添加.*验证", r".*校验", r"add.*validation", r"validate.*input"], 0.7),
]
UNKNOWN_CONFIDENCE = 0.1

SCOPE_HINTS: Dict[DetectedAction, List[DevelopmentScope]] = {
    DetectedAction.ADD_FIELD: [DevelopmentScope.SCHEMA, DevelopmentScope.DATABASE,
                               DevelopmentScope.API, DevelopmentScope.UI],
    DetectedAction.REMOVE_FIELD: [DevelopmentScope.SCHEMA, DevelopmentScope.DATABASE,
                                  DevelopmentScope.API, DevelopmentScope.UI],
    DetectedAction.CREATE_API: [DevelopmentScope.API, DevelopmentScope.VALIDATION, DevelopmentScope.TESTS],
    DetectedAction.CREATE_UI: [DevelopmentScope.UI, DevelopmentScope.API],
    DetectedAction.ADD_VALIDATION: [DevelopmentScope.VALIDATION, DevelopmentScope.SCHEMA],
}

SCOPE_KEYWORDS: List[Tuple[str, DevelopmentScope]] = [
    (r"数据库|database", DevelopmentScope.DATABASE),
    (r"测试|test", DevelopmentScope.TESTS),
    (r"前端|界面|\bui\b", DevelopmentScope.UI),
    (r"接口|\bapi\b", DevelopmentScope.API),
]

ENTITY_PATTERNS = [
    r"(?:给|为|对)\s*([A-Za-z][A-Za-z0-9]*|用户|产品|订单|公司)\s*(?:加|添加|创建|增加|新增)",
    r"([A-Za-z][A-Za-z0-9]*)\s*(?:表|实体|模型)",
    r"(user|用户)",
    r"(product|产品)",
    r"(order|订单)",
    r"(company|公司)",
]

ENTITY_SYNONYMS = {
    "用户": "User",
    "user": "User",
    "产品": "Product",
    "product": "Product",
    "订单": "Order",
    "order": "Order",
    "公司": "Company",
    "company": "Company",
}

FIELD_NAMES = {
    "生日": "birthday",
    "年龄": "age",
    "电话": "phone",
    "手机": "mobile",
    "邮箱": "email",
    "地址": "address",
    "头像": "avatar",
    "描述": "description",
    "备注": "note",
    "状态": "status",
    "名称": "name",
    "标题": "title",
}
IDENTIFIER = r"([A-Za-z_][A-Za-z0-9_]*)"
# Tried in order after the dictionary.
FIELD_CAPTURE_RES = [
    re.compile(r"(?:加|添加|创建|增加|新增)\s*(?:一个|个)?\s*" + IDENTIFIER + r"\s*(?:字段|属性)"),
    re.compile(r"\b(?:add|create|remove|delete|drop)\s+(?:(?:a|an|the|new)\s+)*" + IDENTIFIER
               + r"\s*(?:field|字段|属性)", re.IGNORECASE),
    re.compile(IDENTIFIER + r"\s*(?:字段|属性)"),
    re.compile(r"\b(birthday|age|phone|mobile|address|avatar|description)\b", re.IGNORECASE),
]

INTENT_WEIGHT = {
    DetectedAction.ADD_FIELD: 1,
    DetectedAction.REMOVE_FIELD: 1,
    DetectedAction.CREATE_API: 2,
    DetectedAction.CREATE_UI: 3,
    DetectedAction.ADD_VALIDATION: 2,
    DetectedAction.UNKNOWN: 2,
}
BASE_MINUTES = {
    Complexity.SIMPLE: 15,
    Complexity.MEDIUM: 45,
    Complexity.COMPLEX: 120,
}


def normalize_entity(entity: str) -> str:
    synonym = ENTITY_SYNONYMS.get(entity.lower()) or ENTITY_SYNONYMS.get(entity)
    if synonym:
        return synonym
    return entity[:1].upper() + entity[1:]


def assess_complexity(intent: DetectedAction, scope: List[DevelopmentScope],
                      field: Optional[FieldSuggestion] = None) -> Complexity:
    score = INTENT_WEIGHT.get(intent, 2) + 0.5 * len(scope)
    if field is not None:
        if len(field.validation) > 2:
            score += 1
        if field.type in (FieldType.REFERENCE, FieldType.ARRAY):
            score += 1
    if score <= 2:
        return Complexity.SIMPLE
    if score <= 4:
        return Complexity.MEDIUM
    return Complexity.COMPLEX


def estimate_effort(complexity: Complexity, scope: List[DevelopmentScope]) -> int:
    """Base minutes for the complexity plus 10 per scope item beyond the first."""
    return BASE_MINUTES[complexity] + 10 * max(len(scope) - 1, 0)


class IntentClassifier:
    """Turns a free-text request into a DevelopmentRequirement."""

    def __init__(self):
        self.logger = app_logger.bind(component="intent_classifier")
        self._intent_patterns = [
            (action, [re.compile(p, re.IGNORECASE) for p in patterns], base)
            for action, patterns, base in INTENT_PATTERNS
        ]
        self._entity_patterns = [re.compile(p, re.IGNORECASE) for p in ENTITY_PATTERNS]

    def detect_intent(self, text: str) -> Tuple[DetectedAction, float]:
        for action, patterns, base in self._intent_patterns:
            for pattern in patterns:
                if pattern.search(text):
                    return action, base
        return DetectedAction.UNKNOWN, UNKNOWN_CONFIDENCE

    def extract_entity(self, text: str) -> Optional[str]:
        for pattern in self._entity_patterns:
            match = pattern.search(text)
            if match:
                return normalize_entity(match.group(1))
        return None

    def extract_field_name(self, text: str) -> Optional[str]:
        for chinese, english in FIELD_NAMES.items():
            if chinese in text:
                return english
        for pattern in FIELD_CAPTURE_RES:
            match = pattern.search(text)
            if match:
                name = match.group(1)
                return name[:1].lower() + name[1:]
        return None

    def determine_scope(self, intent: DetectedAction, text: str) -> List[DevelopmentScope]:
        scope = list(SCOPE_HINTS.get(intent, []))
        for pattern, item in SCOPE_KEYWORDS:
            if re.search(pattern, text, re.IGNORECASE) and item not in scope:
                scope.append(item)
        return scope

    @staticmethod
    def calculate_confidence(base: float, entity: Optional[str],
                             field_name: Optional[str], text: str) -> float:
        confidence = base
        if entity:
            confidence += 0.1
        if field_name:
            confidence += 0.1
        if len(text) > 20:
            confidence += 0.05
        return round(min(1.0, confidence), 2)

    def classify(self, text: str) -> DevelopmentRequirement:
        text = text.strip()
        intent, base = self.detect_intent(text)
        entity = self.extract_entity(text)
        field_name = self.extract_field_name(text)
        field = build_field_suggestion(field_name, text) if field_name else None
        scope = self.determine_scope(intent, text)
        complexity = assess_complexity(intent, scope, field)

        requirement = DevelopmentRequirement(
            intent=intent,
            confidence=self.calculate_confidence(base, entity, field_name, text),
            raw_input=text,
            target_entity=entity,
            scope=scope,
            complexity=complexity,
            estimated_effort_minutes=estimate_effort(complexity, scope),
            field=field,
        )
        self.logger.info(
            f"Classified request as {intent.value} (confidence {requirement.confidence}, "
            f"entity={entity}, field={field_name})"
        )
        return requirement
