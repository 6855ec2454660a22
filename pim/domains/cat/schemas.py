# pim/domains/cat/schemas.py

"""
'cat' 도메인 (상품 카테고리)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Optional, List
from datetime import datetime
from pydantic import Field
from sqlmodel import SQLModel


# =============================================================================
# 1. categories 테이블 스키마
# =============================================================================
class CategoryBase(SQLModel):
    name: str = Field(..., min_length=1, max_length=100, description="카테고리명")
    description: Optional[str] = Field(None, max_length=500, description="카테고리 설명")
    sort: int = Field(0, ge=0, description="형제 카테고리 간 정렬 순서")
    is_active: bool = Field(True, description="활성 여부")


class CategoryCreate(CategoryBase):
    parent_id: Optional[int] = Field(None, description="상위 카테고리 ID (루트는 생략)")


class CategoryUpdate(SQLModel):
    # parent_id 변경은 별도의 move 엔드포인트에서만 허용합니다.
    name: Optional[str] = Field(None, min_length=1, max_length=100, description="카테고리명")
    description: Optional[str] = Field(None, max_length=500, description="카테고리 설명")
    sort: Optional[int] = Field(None, ge=0, description="정렬 순서")
    is_active: Optional[bool] = Field(None, description="활성 여부")


class CategoryMove(SQLModel):
    new_parent_id: Optional[int] = Field(None, description="새 상위 카테고리 ID (NULL이면 루트로 이동)")


class CategoryResponse(CategoryBase):
    id: int = Field(..., description="카테고리 고유 ID")
    parent_id: Optional[int] = Field(None, description="상위 카테고리 ID")
    level: int = Field(..., description="트리 깊이 (루트 = 1)")
    created_at: datetime = Field(..., description="레코드 생성 일시")
    updated_at: datetime = Field(..., description="레코드 마지막 업데이트 일시")

    class Config:
        from_attributes = True


class CategoryTreeNode(SQLModel):
    """중첩 트리 응답용 노드"""
    id: int
    name: str
    level: int
    sort: int
    is_active: bool
    children: List["CategoryTreeNode"] = Field(default_factory=list)


CategoryTreeNode.model_rebuild()


class CategoryMoveResult(SQLModel):
    category: CategoryResponse
    moved_category_ids: List[int] = Field(default_factory=list, description="레벨이 재계산된 카테고리 ID 목록")
    inherited_bindings_inserted: int = Field(0, description="새 계보에서 물질화된 상속 바인딩 수")
