import pytest

from codegraph.intent import IntentClassifier, assess_complexity, build_field_suggestion, estimate_effort, infer_field_type
from codegraph.types import Complexity, DetectedAction, DevelopmentScope, FieldType


class TestIntentClassifier:
    """Test classification of free-text requests."""

    def setup_method(self):
        self.classifier = IntentClassifier()

    def test_add_birthday_field(self):
        requirement = self.classifier.classify("给User加一个生日字段")

        assert requirement.intent == DetectedAction.ADD_FIELD
        assert requirement.target_entity == "User"
        assert requirement.field.name == "birthday"
        assert requirement.field.type == FieldType.DATE
        assert requirement.confidence >= 0.9
        assert requirement.scope == [
            DevelopmentScope.SCHEMA, DevelopmentScope.DATABASE,
            DevelopmentScope.API, DevelopmentScope.UI,
        ]
        assert requirement.complexity == Complexity.MEDIUM
        assert requirement.estimated_effort_minutes == 75

    def test_chinese_entity_synonym(self):
        requirement = self.classifier.classify("给用户添加年龄字段")
        assert requirement.intent == DetectedAction.ADD_FIELD
        assert requirement.target_entity == "User"
        assert requirement.field.name == "age"

    def test_english_field_fallback(self):
        requirement = self.classifier.classify("add a nickname field to user")
        assert requirement.intent == DetectedAction.ADD_FIELD
        assert requirement.target_entity == "User"
        assert requirement.field.name == "nickname"
        assert requirement.field.type == FieldType.STRING

    def test_remove_field(self):
        requirement = self.classifier.classify("remove the status field from product")
        assert requirement.intent == DetectedAction.REMOVE_FIELD
        assert requirement.target_entity == "Product"

    def test_create_api(self):
        requirement = self.classifier.classify("create api for orders")
        assert requirement.intent == DetectedAction.CREATE_API
        assert requirement.target_entity == "Order"
        assert requirement.confidence == 0.95
        assert requirement.scope == [DevelopmentScope.API, DevelopmentScope.VALIDATION, DevelopmentScope.TESTS]

    def test_scope_keywords_extend_hints(self):
        requirement = self.classifier.classify("create component for user with database and test")
        assert requirement.intent == DetectedAction.CREATE_UI
        assert requirement.scope == [
            DevelopmentScope.UI, DevelopmentScope.API,
            DevelopmentScope.DATABASE, DevelopmentScope.TESTS,
        ]
        assert requirement.complexity == Complexity.COMPLEX
        assert requirement.estimated_effort_minutes == 150

    def test_scope_keyword_needs_whole_word(self):
        requirement = self.classifier.classify("add validation to the rapid build rules")
        assert requirement.intent == DetectedAction.ADD_VALIDATION
        assert requirement.scope == [DevelopmentScope.VALIDATION, DevelopmentScope.SCHEMA]

    def test_first_matching_intent_wins(self):
        # mentions both adding a field and validation
        requirement = self.classifier.classify("add email field and add validation")
        assert requirement.intent == DetectedAction.ADD_FIELD

    @pytest.mark.parametrize("text,expected", [
        ("给User增加一个属性", DetectedAction.ADD_FIELD),
        ("create a field for the company logo", DetectedAction.ADD_FIELD),
        ("订单需要一个备注字段", DetectedAction.ADD_FIELD),
        ("为产品添加库存", DetectedAction.ADD_FIELD),
        ("去掉用户的头像属性", DetectedAction.REMOVE_FIELD),
        ("delete the age field from User", DetectedAction.REMOVE_FIELD),
        ("add an endpoint for orders", DetectedAction.CREATE_API),
        ("create route for products", DetectedAction.CREATE_API),
        ("订单需要一个API", DetectedAction.CREATE_API),
        ("做一个订单界面", DetectedAction.CREATE_UI),
        ("build a ui for orders", DetectedAction.CREATE_UI),
        ("订单前端", DetectedAction.CREATE_UI),
    ])
    def test_intent_patterns(self, text, expected):
        assert self.classifier.detect_intent(text)[0] == expected

    @pytest.mark.parametrize("text,field_name", [
        ("给User加一个nickname字段", "nickname"),
        ("给User添加nickname字段", "nickname"),
        ("给User添加Nickname属性", "nickname"),
        ("delete the age field from User", "age"),
        ("drop the legacyCode field", "legacyCode"),
        ("the user phone must be unique", "phone"),
    ])
    def test_field_name_extraction(self, text, field_name):
        assert self.classifier.extract_field_name(text) == field_name

    @pytest.mark.parametrize("text,entity", [
        ("对Invoice创建一个接口", "Invoice"),
        ("给Order表加一个字段", "Order"),
        ("Customer实体需要一个电话字段", "Customer"),
        ("给公司添加地址字段", "Company"),
    ])
    def test_entity_extraction(self, text, entity):
        assert self.classifier.extract_entity(text) == entity

    def test_remove_field_names_the_field(self):
        requirement = self.classifier.classify("remove the age field from user")
        assert requirement.intent == DetectedAction.REMOVE_FIELD
        assert requirement.field.name == "age"

    def test_unknown(self):
        requirement = self.classifier.classify("hello there")
        assert requirement.intent == DetectedAction.UNKNOWN
        assert requirement.confidence == 0.1
        assert requirement.target_entity is None
        assert requirement.field is None
        assert requirement.scope == []

    def test_to_dict(self):
        data = self.classifier.classify("给User加一个生日字段").to_dict()
        assert data["intent"] == "ADD_FIELD"
        assert data["field"]["serialization_hint"]["prisma"] == "birthday DateTime?"
        assert data["scope"] == ["schema", "database", "api", "ui"]


class TestFieldInference:
    """Test field type, nullability and validation inference."""

    @pytest.mark.parametrize("name,text,expected", [
        ("age", "", FieldType.NUMBER),
        ("nickname", "添加年龄字段", FieldType.NUMBER),
        ("birthday", "", FieldType.DATE),
        ("email", "", FieldType.EMAIL),
        ("avatar", "", FieldType.URL),
        ("status", "", FieldType.BOOLEAN),
        ("tags", "a list of tags", FieldType.ARRAY),
        ("title", "", FieldType.STRING),
        ("phone", "add a phone field next to status", FieldType.STRING),
        ("address", "地址和状态", FieldType.STRING),
        ("note", "", FieldType.STRING),
        ("nickname", "备注: 是否公开", FieldType.STRING),
    ])
    def test_infer_field_type(self, name, text, expected):
        assert infer_field_type(name, text) == expected

    def test_age_suggestion(self):
        field = build_field_suggestion("age", "给用户添加年龄字段")
        assert field.type == FieldType.NUMBER
        assert field.nullable is True
        assert "numeric" in field.validation
        assert field.serialization_hint == {"zod": "z.number().optional()", "prisma": "age Int?"}

    def test_required_field(self):
        field = build_field_suggestion("email", "给User加一个必填的邮箱字段，必须唯一")
        assert field.nullable is False
        assert field.validation == ["email_format", "unique"]
        assert field.serialization_hint == {"zod": "z.string().email()", "prisma": "email String"}

    def test_optional_list_stays_plain_in_prisma(self):
        field = build_field_suggestion("tags", "", FieldType.ARRAY)
        assert field.serialization_hint["prisma"] == "tags String[]"
        assert field.serialization_hint["zod"] == "z.array(z.string()).optional()"


class TestComplexity:
    """Test complexity scoring and effort estimates."""

    def test_simple(self):
        assert assess_complexity(DetectedAction.ADD_VALIDATION, []) == Complexity.SIMPLE
        assert estimate_effort(Complexity.SIMPLE, []) == 15

    def test_field_type_adds_weight(self):
        scope = [DevelopmentScope.SCHEMA, DevelopmentScope.DATABASE]
        plain = build_field_suggestion("title", "")
        array = build_field_suggestion("tags", "", FieldType.ARRAY)
        assert assess_complexity(DetectedAction.ADD_FIELD, scope, plain) == Complexity.SIMPLE
        assert assess_complexity(DetectedAction.ADD_FIELD, scope, array) == Complexity.MEDIUM

    def test_effort_per_extra_scope(self):
        scope = [DevelopmentScope.UI, DevelopmentScope.API, DevelopmentScope.TESTS]
        assert estimate_effort(Complexity.MEDIUM, scope) == 65
