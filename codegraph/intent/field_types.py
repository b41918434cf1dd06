import re
from typing import List, Dict, Optional, Tuple

from ..types import FieldSuggestion, FieldType

# Checked in order against the field name first, then the whole request.
TYPE_HINTS: List[Tuple[str, FieldType]] = [
    (r"生日|birthday|出生日期", FieldType.DATE),
    (r"年龄|\bage\b", FieldType.NUMBER),
    (r"邮箱|email", FieldType.EMAIL),
    (r"网址|链接|头像|url|avatar", FieldType.URL),
    (r"电话|手机|地址|描述|备注|phone|mobile|address|description|\bnote\b", FieldType.STRING),
    (r"数量|count", FieldType.NUMBER),
    (r"状态|是否|status", FieldType.BOOLEAN),
    (r"时间|time", FieldType.DATETIME),
    (r"数组|列表|list", FieldType.ARRAY),
]

TYPE_VALIDATION: Dict[FieldType, str] = {
    FieldType.DATE: "date_format",
    FieldType.NUMBER: "numeric",
    FieldType.EMAIL: "email_format",
    FieldType.URL: "url_format",
}

TEXT_VALIDATION: List[Tuple[str, str]] = [
    (r"最大.*长度|max.*length", "max_length"),
    (r"最小.*长度|min.*length", "min_length"),
    (r"唯一|unique", "unique"),
]

REQUIRED_RE = re.compile(r"必须|必填|required|不能为空", re.IGNORECASE)

# (zod expression, prisma type) for a required field
SERIALIZATION: Dict[FieldType, Tuple[str, str]] = {
    FieldType.STRING: ("z.string()", "String"),
    FieldType.NUMBER: ("z.number()", "Int"),
    FieldType.BOOLEAN: ("z.boolean()", "Boolean"),
    FieldType.DATE: ("z.date()", "DateTime"),
    FieldType.DATETIME: ("z.date()", "DateTime"),
    FieldType.EMAIL: ("z.string().email()", "String"),
    FieldType.URL: ("z.string().url()", "String"),
    FieldType.JSON: ("z.record(z.unknown())", "Json"),
    FieldType.ARRAY: ("z.array(z.string())", "String[]"),
    FieldType.ENUM: ("z.enum([])", "String"),
    FieldType.REFERENCE: ("z.string()", "String"),
}


def infer_field_type(field_name: str, text: str = "") -> FieldType:
    for source in (field_name, text):
        for pattern, field_type in TYPE_HINTS:
            if source and re.search(pattern, source, re.IGNORECASE):
                return field_type
    return FieldType.STRING


def infer_nullable(text: str) -> bool:
    """Fields are optional unless the request says otherwise."""
    return not REQUIRED_RE.search(text)


def extract_validation(text: str, field_type: FieldType) -> List[str]:
    rules = []
    if field_type in TYPE_VALIDATION:
        rules.append(TYPE_VALIDATION[field_type])
    for pattern, rule in TEXT_VALIDATION:
        if re.search(pattern, text, re.IGNORECASE):
            rules.append(rule)
    return rules


def serialization_hint(field_name: str, field_type: FieldType, nullable: bool) -> Dict[str, str]:
    zod, prisma = SERIALIZATION[field_type]
    if nullable:
        zod += ".optional()"
        # prisma lists cannot be optional
        if not prisma.endswith("[]"):
            prisma += "?"
    return {"zod": zod, "prisma": f"{field_name} {prisma}"}


def build_field_suggestion(field_name: str, text: str = "",
                           field_type: Optional[FieldType] = None) -> FieldSuggestion:
    field_type = field_type or infer_field_type(field_name, text)
    nullable = infer_nullable(text)
    return FieldSuggestion(
        name=field_name,
        type=field_type,
        nullable=nullable,
        validation=extract_validation(text, field_type),
        serialization_hint=serialization_hint(field_name, field_type, nullable),
    )
