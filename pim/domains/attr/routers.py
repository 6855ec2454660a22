# pim/domains/attr/routers.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core import dependencies as deps
from pim.domains.attr import crud as attr_crud, schemas as attr_schemas, tasks as attr_tasks
from pim.domains.attr.models import AttributeType
from pim.domains.attr.services import AttributeBindingService
from pim.domains.attr.validators import TYPE_LABELS, value_kind_for

router = APIRouter(
    tags=["Attribute Management (속성 및 상속 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. attributes 엔드포인트 (속성 정의)
# =============================================================================
@router.get("/attributes/types", response_model=List[attr_schemas.AttributeTypeInfo])
async def read_attribute_types():
    """지원하는 속성 타입과 각 타입이 받는 값 종류를 반환합니다."""
    return [
        attr_schemas.AttributeTypeInfo(value=t.value, label=TYPE_LABELS[t], value_kind=value_kind_for(t).value)
        for t in AttributeType
    ]


@router.post(
    "/attributes",
    response_model=attr_schemas.AttributeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_attribute(
    attribute_create: attr_schemas.AttributeCreate,
    db: AsyncSession = Depends(deps.get_db_session),
):
    return await attr_crud.attribute.create(db, obj_in=attribute_create)


@router.get("/attributes", response_model=List[attr_schemas.AttributeResponse])
async def read_attributes(
    type: Optional[AttributeType] = None,
    is_active: Optional[bool] = None,
    q: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """속성 목록을 조회합니다. 타입, 활성 여부, 이름 검색어(q)로 필터링할 수 있습니다."""
    return await attr_crud.attribute.search(db, type=type, is_active=is_active, q=q, skip=skip, limit=limit)


@router.get("/attributes/{attribute_id}", response_model=attr_schemas.AttributeResponse)
async def read_attribute(attribute_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    return await attr_crud.attribute.get_attribute(db, attribute_id)


@router.put("/attributes/{attribute_id}", response_model=attr_schemas.AttributeResponse)
async def update_attribute(
    attribute_id: int,
    attribute_update: attr_schemas.AttributeUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
):
    db_attribute = await attr_crud.attribute.get_attribute(db, attribute_id)
    return await attr_crud.attribute.update(db, db_obj=db_attribute, obj_in=attribute_update)


@router.delete("/attributes/{attribute_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attribute(attribute_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    """값이 저장되지 않은 속성을 삭제합니다. 속성의 바인딩도 함께 해제됩니다."""
    db_attribute = await attr_crud.attribute.get_attribute(db, attribute_id)
    await attr_crud.attribute.remove(db, db_obj=db_attribute)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# 2. category_attributes 엔드포인트 (바인딩 / 상속)
# =============================================================================
@router.post(
    "/categories/attributes/bind",
    response_model=attr_schemas.BindingMutationResult,
    status_code=status.HTTP_201_CREATED,
)
async def bind_attribute_to_category(
    bind_in: attr_schemas.CategoryAttributeBind,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    """속성을 카테고리에 직접 바인딩하고 하위 카테고리로 전파합니다."""
    return await service.bind_attribute_to_category(
        bind_in.category_id, bind_in.attribute_id, is_required=bind_in.is_required, sort=bind_in.sort
    )


@router.post("/categories/attributes/unbind", response_model=attr_schemas.UnbindResult)
async def unbind_attribute_from_category(
    unbind_in: attr_schemas.CategoryAttributeUnbind,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    return await service.unbind_attribute_from_category(unbind_in.category_id, unbind_in.attribute_id)


@router.post(
    "/categories/attributes/batch-bind",
    response_model=attr_schemas.BatchBindResult,
    status_code=status.HTTP_201_CREATED,
)
async def batch_bind_attributes_to_category(
    batch_in: attr_schemas.CategoryAttributeBatchBind,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    """여러 속성을 한 번에 바인딩합니다. 하나라도 실패하면 아무것도 저장되지 않습니다."""
    return await service.batch_bind_attributes_to_category(batch_in.category_id, batch_in.items)


@router.post("/categories/attributes/rebuild-all", response_model=attr_schemas.RebuildAllResult)
async def rebuild_inheritance_for_all_categories(
    request: Request,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """
    전체 카테고리의 상속 바인딩을 재구축합니다.
    ARQ Redis 풀이 있으면 백그라운드 작업으로, 없으면 요청 안에서 동기로 실행합니다.
    """
    arq_redis_pool = getattr(request.app.state, "redis", None)
    if arq_redis_pool:
        job = await arq_redis_pool.enqueue_job("rebuild_inheritance_for_all_categories_task")
        return attr_schemas.RebuildAllResult(status="enqueued", job_id=job.job_id if job else None)

    summary = await attr_tasks.rebuild_inheritance_for_all_categories_task({"db": db})
    return attr_schemas.RebuildAllResult(
        status="completed", categories=summary["categories"], inserted=summary["inserted"]
    )


@router.get("/categories/{category_id}/attributes", response_model=List[attr_schemas.CategoryAttributeResponse])
async def read_category_attributes(
    category_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    """카테고리의 직접 바인딩만 조회합니다."""
    return await service.get_category_attributes(category_id)


@router.get(
    "/categories/{category_id}/attributes/inheritance",
    response_model=List[attr_schemas.ResolvedBinding],
)
async def read_category_attributes_with_inheritance(
    category_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    """조상으로부터 상속된 속성을 포함한 유효 속성 집합을 조회합니다."""
    return await service.get_category_attributes_with_inheritance(category_id)


@router.get("/categories/{category_id}/attributes/summary", response_model=attr_schemas.BindingSummary)
async def read_category_binding_summary(
    category_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    return await service.get_binding_summary(category_id)


@router.post(
    "/categories/{category_id}/attributes/rebuild-inheritance",
    response_model=attr_schemas.RebuildResult,
)
async def rebuild_category_inheritance(
    category_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    inserted = await service.rebuild_category_inheritance(category_id)
    return attr_schemas.RebuildResult(category_id=category_id, inserted=inserted)


@router.get(
    "/categories/{category_id}/attributes/validate-inheritance",
    response_model=attr_schemas.ConsistencyReport,
)
async def validate_inheritance_consistency(
    category_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    is_consistent, issues = await service.validate_inheritance_consistency(category_id)
    return attr_schemas.ConsistencyReport(category_id=category_id, is_consistent=is_consistent, issues=issues)


@router.get(
    "/categories/{category_id}/attributes/{attribute_id}/inheritance",
    response_model=List[attr_schemas.ResolvedBinding],
)
async def read_attribute_inheritance_path(
    category_id: int,
    attribute_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    """해당 속성이 어느 조상에서 왔는지 root → leaf 순으로 보여줍니다."""
    return await service.get_attribute_inheritance_path(category_id, attribute_id)


@router.put(
    "/categories/{category_id}/attributes/{attribute_id}",
    response_model=attr_schemas.BindingMutationResult,
)
async def update_category_attribute(
    category_id: int,
    attribute_id: int,
    update_in: attr_schemas.CategoryAttributeUpdate,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    return await service.update_category_attribute(
        category_id, attribute_id, is_required=update_in.is_required, sort=update_in.sort
    )


@router.get("/categories/{category_id}/completeness", response_model=attr_schemas.CompletenessReport)
async def read_entity_completeness(
    category_id: int,
    entity_type: str,
    entity_id: int,
    service: AttributeBindingService = Depends(deps.get_attribute_binding_service),
):
    """엔티티가 카테고리의 필수 속성 값을 모두 가지고 있는지 확인합니다."""
    return await service.check_entity_completeness(category_id, entity_type, entity_id)


# =============================================================================
# 3. attribute_values 엔드포인트
# =============================================================================
@router.post(
    "/attribute-values",
    response_model=attr_schemas.AttributeValueResponse,
    status_code=status.HTTP_201_CREATED,
)
async def set_attribute_value(
    value_in: attr_schemas.AttributeValueSet,
    db: AsyncSession = Depends(deps.get_db_session),
):
    """엔티티의 속성 값을 저장합니다 (이미 있으면 덮어씀)."""
    attribute = await attr_crud.attribute.get_attribute(db, value_in.attribute_id)
    db_value = await attr_crud.attribute_value.set_value(
        db, attribute=attribute, entity_type=value_in.entity_type, entity_id=value_in.entity_id, payload=value_in.value
    )
    return attr_crud.to_value_response(db_value)


@router.post(
    "/attribute-values/batch",
    response_model=List[attr_schemas.AttributeValueResponse],
    status_code=status.HTTP_201_CREATED,
)
async def batch_set_attribute_values(
    batch_in: attr_schemas.AttributeValueBatchSet,
    db: AsyncSession = Depends(deps.get_db_session),
):
    db_values = await attr_crud.attribute_value.batch_set(
        db, entity_type=batch_in.entity_type, entity_id=batch_in.entity_id, items=batch_in.values
    )
    return [attr_crud.to_value_response(v) for v in db_values]


@router.get("/attribute-values", response_model=List[attr_schemas.AttributeValueResponse])
async def read_attribute_values(
    entity_type: str,
    entity_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
):
    db_values = await attr_crud.attribute_value.get_by_entity(db, entity_type=entity_type, entity_id=entity_id)
    return [attr_crud.to_value_response(v) for v in db_values]


@router.delete("/attribute-values/{value_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attribute_value(value_id: int, db: AsyncSession = Depends(deps.get_db_session)):
    await attr_crud.attribute_value.remove(db, id=value_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
