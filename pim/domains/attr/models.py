# pim/domains/attr/models.py

"""
'attr' 도메인 (속성 정의, 카테고리-속성 바인딩, 속성 값)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

category_attributes 테이블은 직접 바인딩과 상속(물질화) 바인딩을 모두 행으로 저장합니다.
상속 행은 값이 복사된 원천 카테고리를 inherited_from_id 에 기록하며, 직접 바인딩은 NULL 입니다.
(category_id, attribute_id) 쌍에 대해 살아있는(deleted_at IS NULL) 행은 최대 하나입니다.
"""

from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime, UTC
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import Index, JSON, text, Float, Boolean, Text, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP

# PostgreSQL에서는 JSONB, 그 외(SQLite 등)에서는 JSON으로 저장합니다.
JSONVariant = JSON().with_variant(JSONB(), "postgresql")

LIVE_ROW = text("deleted_at IS NULL")


class AttributeType(str, Enum):
    """
    속성 타입. 타입마다 허용되는 값 종류(kind)가 하나씩 정해져 있습니다.
    """
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    URL = "url"
    EMAIL = "email"
    COLOR = "color"
    CURRENCY = "currency"


class ValueKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    STRUCTURED = "structured"


# =============================================================================
# 1. attributes 테이블 모델 (속성 정의)
# =============================================================================
class AttributeBase(SQLModel):
    name: str = Field(max_length=100, index=True, description="속성 내부 코드명 (예: 'color')")
    display_name: str = Field(max_length=100, description="UI 표시 명칭")
    type: AttributeType = Field(sa_column=Column(String(20), nullable=False), description="속성 타입")
    description: Optional[str] = Field(default=None, max_length=500)
    unit: Optional[str] = Field(default=None, max_length=20, description="단위 (예: 'V', 'kg')")
    is_required: bool = Field(default=False, description="새 바인딩의 기본 필수 여부")
    is_active: bool = Field(default=True)


class Attribute(AttributeBase, table=True):
    __tablename__ = "attributes"

    id: Optional[int] = Field(default=None, primary_key=True)
    # [{value, label, color, description}] 목록 (select / multi_select 전용)
    options: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSONVariant))
    # {min_length, max_length, min, max, pattern, required}
    validation_rule: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONVariant))
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 마지막 업데이트 일시"
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(TIMESTAMP(timezone=True), nullable=True),
        description="소프트 삭제 일시"
    )


# =============================================================================
# 2. category_attributes 테이블 모델 (카테고리-속성 바인딩)
# =============================================================================
class CategoryAttribute(SQLModel, table=True):
    __tablename__ = "category_attributes"
    __table_args__ = (
        # 살아있는 행에 대해서만 (category_id, attribute_id) 유일성 보장
        Index(
            "uq_category_attributes_live_pair",
            "category_id",
            "attribute_id",
            unique=True,
            postgresql_where=LIVE_ROW,
            sqlite_where=LIVE_ROW,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    category_id: int = Field(foreign_key="categories.id", index=True)
    attribute_id: int = Field(foreign_key="attributes.id", index=True)
    is_required: bool = Field(default=False, description="카테고리별 필수 여부")
    sort: int = Field(default=0, ge=0, description="정렬 순서")
    inherited_from_id: Optional[int] = Field(
        default=None,
        foreign_key="categories.id",
        description="상속 행의 원천 카테고리 ID (직접 바인딩은 NULL)"
    )
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 마지막 업데이트 일시"
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(TIMESTAMP(timezone=True), nullable=True),
        description="소프트 삭제 일시"
    )

    @property
    def is_direct(self) -> bool:
        return self.inherited_from_id is None


# =============================================================================
# 3. attribute_values 테이블 모델 (엔티티별 속성 값)
# =============================================================================
class AttributeValue(SQLModel, table=True):
    __tablename__ = "attribute_values"
    __table_args__ = (
        Index("uq_attribute_values_entity", "attribute_id", "entity_type", "entity_id", unique=True),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attribute_id: int = Field(foreign_key="attributes.id", index=True)
    entity_type: str = Field(max_length=50, description="엔티티 종류 (예: 'product')")
    entity_id: int = Field(description="엔티티 ID")
    value_kind: ValueKind = Field(sa_column=Column(String(20), nullable=False), description="저장된 값 종류")
    text_value: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    number_value: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    bool_value: Optional[bool] = Field(default=None, sa_column=Column(Boolean, nullable=True))
    date_value: Optional[datetime] = Field(default=None, sa_column=Column(TIMESTAMP(timezone=True), nullable=True))
    json_value: Optional[Any] = Field(default=None, sa_column=Column(JSONVariant, nullable=True))
    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 마지막 업데이트 일시"
    )
