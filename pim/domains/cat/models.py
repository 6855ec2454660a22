# pim/domains/cat/models.py

"""
'cat' 도메인 (상품 카테고리)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

카테고리는 parent_id 포인터로 트리를 구성하며,
level은 루트가 1이고 항상 level(C) == level(parent(C)) + 1 을 만족합니다.
"""

from typing import Optional
from datetime import datetime, UTC
from sqlmodel import Field, SQLModel, Column
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


# =============================================================================
# 1. categories 테이블 모델
# =============================================================================
class CategoryBase(SQLModel):
    name: str = Field(max_length=100, index=True, description="카테고리명")
    description: Optional[str] = Field(default=None, max_length=500, description="카테고리 설명")
    sort: int = Field(default=0, ge=0, description="형제 카테고리 간 정렬 순서")
    is_active: bool = Field(default=True, description="활성 여부")


class Category(CategoryBase, table=True):
    __tablename__ = "categories"

    id: Optional[int] = Field(default=None, primary_key=True)
    parent_id: Optional[int] = Field(
        default=None,
        foreign_key="categories.id",
        index=True,
        description="상위 카테고리 ID (루트는 NULL)"
    )
    level: int = Field(default=1, ge=1, description="트리 깊이 (루트 = 1)")
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
        sa_column=Column(TIMESTAMP(timezone=True), nullable=True, index=True),
        description="소프트 삭제 일시"
    )
