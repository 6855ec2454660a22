# pim/domains/attr/validators.py

"""
속성 정의와 속성 값의 검증 로직입니다.

속성 타입마다 허용되는 값 종류(kind)가 하나씩 정해져 있으며,
값 종류를 확인한 뒤 validation_rule(길이, 범위, 정규식)과 옵션 소속 여부를 검사합니다.
검증 실패는 모두 ValidationError로 보고합니다.
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import EmailStr, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pim.core.exceptions import ValidationError
from pim.domains.attr.models import Attribute, AttributeType, ValueKind

TYPE_VALUE_KIND: Dict[AttributeType, ValueKind] = {
    AttributeType.TEXT: ValueKind.TEXT,
    AttributeType.URL: ValueKind.TEXT,
    AttributeType.EMAIL: ValueKind.TEXT,
    AttributeType.COLOR: ValueKind.TEXT,
    AttributeType.SELECT: ValueKind.TEXT,
    AttributeType.NUMBER: ValueKind.NUMBER,
    AttributeType.CURRENCY: ValueKind.NUMBER,
    AttributeType.BOOLEAN: ValueKind.BOOLEAN,
    AttributeType.DATE: ValueKind.DATE,
    AttributeType.DATETIME: ValueKind.DATE,
    AttributeType.MULTI_SELECT: ValueKind.STRUCTURED,
}

TYPE_LABELS: Dict[AttributeType, str] = {
    AttributeType.TEXT: "텍스트",
    AttributeType.NUMBER: "숫자",
    AttributeType.SELECT: "단일 선택",
    AttributeType.MULTI_SELECT: "다중 선택",
    AttributeType.BOOLEAN: "예/아니오",
    AttributeType.DATE: "날짜",
    AttributeType.DATETIME: "날짜/시간",
    AttributeType.URL: "URL",
    AttributeType.EMAIL: "이메일",
    AttributeType.COLOR: "색상",
    AttributeType.CURRENCY: "금액",
}

URL_ADAPTER = TypeAdapter(HttpUrl)
EMAIL_ADAPTER = TypeAdapter(EmailStr)
COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

OPTION_TYPES = (AttributeType.SELECT, AttributeType.MULTI_SELECT)


def value_kind_for(attr_type: Any) -> ValueKind:
    return TYPE_VALUE_KIND[AttributeType(attr_type)]


def validate_attribute_definition(
    attr_type: Any,
    options: Optional[List[Dict[str, Any]]],
    validation_rule: Optional[Dict[str, Any]],
) -> None:
    """속성 정의 자체의 일관성을 검사합니다."""
    attr_type = AttributeType(attr_type)

    if attr_type in OPTION_TYPES:
        if not options:
            raise ValidationError(f"Attribute type '{attr_type.value}' requires at least one option.")
        values = [option["value"] for option in options]
        if len(values) != len(set(values)):
            raise ValidationError("Option values must be unique.")

    rule = validation_rule or {}
    min_length, max_length = rule.get("min_length"), rule.get("max_length")
    if min_length is not None and max_length is not None and min_length > max_length:
        raise ValidationError("validation_rule.min_length must not exceed max_length.")
    minimum, maximum = rule.get("min"), rule.get("max")
    if minimum is not None and maximum is not None and minimum > maximum:
        raise ValidationError("validation_rule.min must not exceed max.")
    if rule.get("pattern"):
        try:
            re.compile(rule["pattern"])
        except re.error as e:
            raise ValidationError(f"validation_rule.pattern is not a valid regular expression: {e}")


def _check_text(attribute: Attribute, value: str, rule: Dict[str, Any]) -> None:
    if rule.get("min_length") is not None and len(value) < rule["min_length"]:
        raise ValidationError(f"'{attribute.name}' must be at least {rule['min_length']} characters.")
    if rule.get("max_length") is not None and len(value) > rule["max_length"]:
        raise ValidationError(f"'{attribute.name}' must be at most {rule['max_length']} characters.")
    if rule.get("pattern") and not re.fullmatch(rule["pattern"], value):
        raise ValidationError(f"'{attribute.name}' does not match pattern {rule['pattern']!r}.")

    attr_type = AttributeType(attribute.type)
    if attr_type == AttributeType.URL:
        _check_format(attribute, URL_ADAPTER, value, "a valid http(s) URL")
    if attr_type == AttributeType.EMAIL:
        _check_format(attribute, EMAIL_ADAPTER, value, "a valid e-mail address")
    if attr_type == AttributeType.COLOR and not COLOR_RE.match(value):
        raise ValidationError(f"'{attribute.name}' must be a hex color such as '#FF0000'.")
    if attr_type == AttributeType.SELECT and value not in _option_values(attribute):
        raise ValidationError(f"'{value}' is not an option of '{attribute.name}'.")


def _check_format(attribute: Attribute, adapter: TypeAdapter, value: str, expected: str) -> None:
    """pydantic 타입(EmailStr, HttpUrl)으로 형식을 검사하고 도메인 예외로 바꿉니다."""
    try:
        adapter.validate_python(value)
    except PydanticValidationError as e:
        raise ValidationError(
            f"'{attribute.name}' must be {expected}: {e.errors()[0]['msg']}",
            attribute_id=attribute.id,
        ) from e


def _check_number(attribute: Attribute, value: float, rule: Dict[str, Any]) -> None:
    if rule.get("min") is not None and value < rule["min"]:
        raise ValidationError(f"'{attribute.name}' must be >= {rule['min']}.")
    if rule.get("max") is not None and value > rule["max"]:
        raise ValidationError(f"'{attribute.name}' must be <= {rule['max']}.")


def _check_structured(attribute: Attribute, value: Any) -> None:
    # multi_select 는 옵션 값 문자열 목록만 허용
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"'{attribute.name}' expects a list of option values.")
    unknown = [item for item in value if item not in _option_values(attribute)]
    if unknown:
        raise ValidationError(f"{unknown} are not options of '{attribute.name}'.")


def _option_values(attribute: Attribute) -> List[str]:
    return [option["value"] for option in (attribute.options or [])]


def validate_value(attribute: Attribute, payload: Any) -> None:
    """
    payload(태그드 유니언 값)가 속성의 타입과 검증 규칙을 만족하는지 확인합니다.
    """
    expected = value_kind_for(attribute.type)
    if payload.kind != expected.value:
        raise ValidationError(
            f"Attribute '{attribute.name}' ({attribute.type}) expects a '{expected.value}' value, got '{payload.kind}'.",
            attribute_id=attribute.id,
        )

    rule = attribute.validation_rule or {}
    if expected == ValueKind.TEXT:
        _check_text(attribute, payload.value, rule)
    elif expected == ValueKind.NUMBER:
        _check_number(attribute, payload.value, rule)
    elif expected == ValueKind.STRUCTURED:
        _check_structured(attribute, payload.value)
