# pim/domains/cat/routers.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core import dependencies as deps
from pim.domains.attr.services import AttributeBindingService
from pim.domains.cat import crud as cat_crud, schemas as cat_schemas
from pim.domains.cat.tree import CategoryTreeAccessor

router = APIRouter(
    tags=["Category Management (카테고리 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. categories 엔드포인트
# =============================================================================
@router.post(
    "/categories",
    response_model=cat_schemas.CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    category_create: cat_schemas.CategoryCreate,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """
    새로운 카테고리를 생성합니다.
    상위 카테고리가 있으면 그 계보의 상속 바인딩을 새 카테고리에 물질화합니다.
    """
    db_category = await cat_crud.category.create(db, obj_in=category_create)
    if db_category.parent_id is not None:
        await AttributeBindingService(db).rebuild_category_inheritance(db_category.id)
    return db_category


@router.get("/categories", response_model=List[cat_schemas.CategoryResponse])
async def read_categories(
    parent_id: Optional[int] = None,
    roots_only: bool = False,
    is_active: Optional[bool] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """카테고리 목록을 조회합니다. parent_id 또는 roots_only 로 필터링할 수 있습니다."""
    return await cat_crud.category.get_list(
        db, parent_id=parent_id, roots_only=roots_only, is_active=is_active, skip=skip, limit=limit
    )


@router.get("/categories/tree", response_model=List[cat_schemas.CategoryTreeNode])
async def read_category_tree(
    root_id: Optional[int] = None,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """카테고리 트리를 중첩 구조로 조회합니다."""
    return await cat_crud.category.get_tree(db, root_id=root_id)


@router.get("/categories/{category_id}", response_model=cat_schemas.CategoryResponse)
async def read_category(category_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    return await cat_crud.category.get_or_404(db, category_id)


@router.put("/categories/{category_id}", response_model=cat_schemas.CategoryResponse)
async def update_category(
    category_id: int,
    category_update: cat_schemas.CategoryUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """카테고리 정보를 수정합니다. 상위 카테고리 변경은 move 엔드포인트를 사용합니다."""
    db_category = await cat_crud.category.get_or_404(db, category_id)
    return await cat_crud.category.update(db, db_obj=db_category, obj_in=category_update)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    """하위 카테고리가 없는 카테고리를 삭제합니다."""
    db_category = await cat_crud.category.get_or_404(db, category_id)
    await cat_crud.category.remove(db, db_obj=db_category)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/categories/{category_id}/move", response_model=cat_schemas.CategoryMoveResult)
async def move_category(
    category_id: int,
    move_in: cat_schemas.CategoryMove,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """
    카테고리를 다른 상위 카테고리 아래로 이동합니다.
    하위 트리의 level을 재계산한 뒤, 새 계보의 상속 바인딩을 하위 트리 전체에 물질화합니다.
    """
    db_category = await cat_crud.category.get_or_404(db, category_id)
    moved_ids = await cat_crud.category.move(db, db_obj=db_category, new_parent_id=move_in.new_parent_id)

    inserted = 0
    if moved_ids:
        _, inserted = await AttributeBindingService(db).rebuild_inheritance_for_subtree(category_id)
    return cat_schemas.CategoryMoveResult(
        category=cat_schemas.CategoryResponse.model_validate(db_category),
        moved_category_ids=moved_ids,
        inherited_bindings_inserted=inserted,
    )


# =============================================================================
# 2. 트리 조회 엔드포인트
# =============================================================================
@router.get("/categories/{category_id}/children", response_model=List[cat_schemas.CategoryResponse])
async def read_category_children(category_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    return await CategoryTreeAccessor(db).get_children(category_id)


@router.get("/categories/{category_id}/descendants", response_model=List[int])
async def read_category_descendants(category_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    return await CategoryTreeAccessor(db).get_all_descendants(category_id)


@router.get("/categories/{category_id}/path", response_model=List[cat_schemas.CategoryResponse])
async def read_category_path(category_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    """루트부터 해당 카테고리까지의 경로 (breadcrumb)"""
    return await CategoryTreeAccessor(db).get_ancestor_path(category_id)
