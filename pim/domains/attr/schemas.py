# pim/domains/attr/schemas.py

"""
'attr' 도메인의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Annotated, Optional, List, Dict, Any, Union, Literal
from datetime import datetime
from pydantic import BaseModel, Field
from sqlmodel import SQLModel

from pim.domains.attr.models import AttributeType


# =============================================================================
# 1. attributes 테이블 스키마 (속성 정의)
# =============================================================================
class AttributeOption(SQLModel):
    value: str = Field(..., min_length=1, max_length=100, description="저장되는 옵션 값")
    label: str = Field(..., min_length=1, max_length=100, description="표시용 라벨")
    color: Optional[str] = Field(None, max_length=20, description="표시 색상 (예: '#FF0000')")
    description: Optional[str] = Field(None, max_length=200)


class ValidationRule(SQLModel):
    min_length: Optional[int] = Field(None, ge=0, description="텍스트 최소 길이")
    max_length: Optional[int] = Field(None, ge=0, description="텍스트 최대 길이")
    min: Optional[float] = Field(None, description="숫자 최소값")
    max: Optional[float] = Field(None, description="숫자 최대값")
    pattern: Optional[str] = Field(None, max_length=200, description="텍스트 정규식")
    required: Optional[bool] = Field(None, description="값 필수 여부")


class AttributeBase(SQLModel):
    name: str = Field(..., min_length=1, max_length=100, description="속성 내부 코드명 (예: 'color')")
    display_name: str = Field(..., min_length=1, max_length=100, description="UI 표시 명칭")
    type: AttributeType = Field(..., description="속성 타입")
    description: Optional[str] = Field(None, max_length=500)
    unit: Optional[str] = Field(None, max_length=20, description="단위 (예: 'V', 'kg')")
    is_required: bool = Field(False, description="새 바인딩의 기본 필수 여부")
    is_active: bool = Field(True)


class AttributeCreate(AttributeBase):
    options: Optional[List[AttributeOption]] = Field(None, description="select / multi_select 옵션 목록")
    validation_rule: Optional[ValidationRule] = Field(None, description="값 검증 규칙")


class AttributeUpdate(SQLModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[AttributeType] = None
    description: Optional[str] = Field(None, max_length=500)
    unit: Optional[str] = Field(None, max_length=20)
    is_required: Optional[bool] = None
    is_active: Optional[bool] = None
    options: Optional[List[AttributeOption]] = None
    validation_rule: Optional[ValidationRule] = None


class AttributeResponse(AttributeBase):
    id: int = Field(..., description="속성 고유 ID")
    options: Optional[List[AttributeOption]] = None
    validation_rule: Optional[ValidationRule] = None
    created_at: datetime = Field(..., description="레코드 생성 일시")
    updated_at: datetime = Field(..., description="레코드 마지막 업데이트 일시")

    class Config:
        from_attributes = True


class AttributeTypeInfo(SQLModel):
    value: str
    label: str
    value_kind: str


class AttributeSummary(SQLModel):
    id: int
    name: str
    display_name: str
    type: AttributeType
    unit: Optional[str] = None

    class Config:
        from_attributes = True


# =============================================================================
# 2. category_attributes 테이블 스키마 (바인딩)
# =============================================================================
class CategoryAttributeBind(SQLModel):
    category_id: int = Field(..., description="카테고리 ID")
    attribute_id: int = Field(..., description="속성 ID")
    # None이면 속성 정의의 is_required 기본값을 사용합니다.
    is_required: Optional[bool] = Field(None, description="카테고리별 필수 여부")
    sort: int = Field(0, ge=0, description="정렬 순서")


class CategoryAttributeUnbind(SQLModel):
    category_id: int
    attribute_id: int


class CategoryAttributeUpdate(SQLModel):
    is_required: Optional[bool] = None
    sort: Optional[int] = Field(None, ge=0)


class CategoryAttributeBindItem(SQLModel):
    attribute_id: int
    is_required: Optional[bool] = None
    sort: int = Field(0, ge=0)


class CategoryAttributeBatchBind(SQLModel):
    category_id: int
    items: List[CategoryAttributeBindItem] = Field(default_factory=list)


class CategoryAttributeResponse(SQLModel):
    id: int
    category_id: int
    attribute_id: int
    is_required: bool
    sort: int
    inherited_from_id: Optional[int] = Field(None, description="상속 행의 원천 카테고리 (직접 바인딩은 NULL)")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ResolvedBinding(SQLModel):
    """상속 해석 결과 한 건"""
    binding_id: int = Field(..., description="값을 제공한 원천 바인딩 ID")
    category_id: int = Field(..., description="해석 대상 카테고리 ID")
    attribute_id: int
    is_required: bool
    sort: int
    is_inherited: bool
    inherited_from_category_id: Optional[int] = None
    attribute: Optional[AttributeSummary] = None


# =============================================================================
# 3. 캐스케이드 / 정합성 결과 스키마
# =============================================================================
class CascadeFailure(SQLModel):
    category_id: int
    attribute_id: int
    operation: str
    reason: str


class CascadeResult(SQLModel):
    """
    캐스케이드 한 번의 결과. 직접 연산의 성공과 별개로
    "M개 하위 카테고리 중 N개 성공"을 호출자에게 보고합니다.
    """
    operation: str
    category_id: int
    attribute_id: int
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failures: List[CascadeFailure] = Field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def is_complete(self) -> bool:
        return not self.failures


class BindingMutationResult(SQLModel):
    binding: ResolvedBinding
    cascade: CascadeResult


class UnbindResult(SQLModel):
    category_id: int
    attribute_id: int
    cascade: CascadeResult


class BatchBindResult(SQLModel):
    category_id: int
    bindings: List[CategoryAttributeResponse] = Field(default_factory=list)
    cascades: List[CascadeResult] = Field(default_factory=list)


class ConsistencyReport(SQLModel):
    category_id: int
    is_consistent: bool
    issues: List[str] = Field(default_factory=list)


class RebuildResult(SQLModel):
    category_id: int
    inserted: int


class RebuildAllResult(SQLModel):
    status: str = Field(..., description="'completed' 또는 'enqueued'")
    job_id: Optional[str] = None
    categories: Optional[int] = None
    inserted: Optional[int] = None


class BindingSummary(SQLModel):
    category_id: int
    total: int
    own: int
    inherited: int
    required: int


# =============================================================================
# 4. attribute_values 스키마 (값 종류별 태그드 유니언)
# =============================================================================
class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class NumberValue(BaseModel):
    kind: Literal["number"] = "number"
    value: float


class BooleanValue(BaseModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class DateValue(BaseModel):
    kind: Literal["date"] = "date"
    value: datetime


class StructuredValue(BaseModel):
    kind: Literal["structured"] = "structured"
    value: Union[List[Any], Dict[str, Any]]


AttributeValuePayload = Annotated[
    Union[TextValue, NumberValue, BooleanValue, DateValue, StructuredValue],
    Field(discriminator="kind"),
]


class AttributeValueSet(SQLModel):
    attribute_id: int
    entity_type: str = Field(..., min_length=1, max_length=50)
    entity_id: int
    value: AttributeValuePayload


class AttributeValueItem(SQLModel):
    attribute_id: int
    value: AttributeValuePayload


class AttributeValueBatchSet(SQLModel):
    entity_type: str = Field(..., min_length=1, max_length=50)
    entity_id: int
    values: List[AttributeValueItem] = Field(default_factory=list)


class AttributeValueResponse(SQLModel):
    id: int
    attribute_id: int
    entity_type: str
    entity_id: int
    value: AttributeValuePayload
    created_at: datetime
    updated_at: datetime


class CompletenessReport(SQLModel):
    category_id: int
    entity_type: str
    entity_id: int
    is_complete: bool
    missing: List[AttributeSummary] = Field(default_factory=list)
