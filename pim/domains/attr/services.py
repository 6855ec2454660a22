# pim/domains/attr/services.py

"""
카테고리-속성 바인딩 서비스 파사드.

라우터, ARQ 태스크, CLI 스크립트가 공통으로 사용하는 진입점입니다.
세션 하나를 생성자로 주입받아 트리 조회기, 바인딩 저장소, 해석기, 캐스케이드 엔진,
정합성 검증기를 조립합니다. 직접 연산의 오류는 그대로 전파되고,
캐스케이드 결과는 CascadeResult 로 함께 반환됩니다.
"""

from typing import Dict, List, Optional, Sequence, Tuple
import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.domains.attr import crud as attr_crud
from pim.domains.attr import models as attr_models
from pim.domains.attr import schemas as attr_schemas
from pim.domains.attr.inheritance import (
    CascadeEngine,
    InheritanceConsistencyChecker,
    InheritanceResolver,
    to_resolved,
)
from pim.domains.cat.models import Category
from pim.domains.cat.tree import CategoryTreeAccessor

logger = logging.getLogger(__name__)


class AttributeBindingService:
    def __init__(
        self,
        db: AsyncSession,
        bindings: attr_crud.CRUDCategoryAttribute = attr_crud.category_attribute,
        attributes: attr_crud.CRUDAttribute = attr_crud.attribute,
    ):
        self.db = db
        self.bindings = bindings
        self.attributes = attributes
        self.tree = CategoryTreeAccessor(db)
        self.resolver = InheritanceResolver(db, self.tree, bindings)
        self.cascade = CascadeEngine(db, self.tree, bindings)
        self.checker = InheritanceConsistencyChecker(db, self.tree, bindings, self.resolver)

    # -------------------------------------------------------------------------
    # 직접 연산 + 캐스케이드
    # -------------------------------------------------------------------------
    async def bind_attribute_to_category(
        self, category_id: int, attribute_id: int, is_required: Optional[bool] = None, sort: int = 0
    ) -> attr_schemas.BindingMutationResult:
        await self.tree.get_category(category_id)
        attribute = await self.attributes.get_attribute(self.db, attribute_id)
        if is_required is None:
            is_required = attribute.is_required

        binding = await self.bindings.bind(
            self.db, category_id=category_id, attribute_id=attribute_id, is_required=is_required, sort=sort
        )
        logger.info("속성 바인딩: category=%s attribute=%s required=%s", category_id, attribute_id, is_required)

        cascade = await self.cascade.cascade_bind(category_id, attribute_id, binding.is_required, binding.sort)
        resolved = await self._with_attributes([to_resolved(binding, category_id)])
        return attr_schemas.BindingMutationResult(binding=resolved[0], cascade=cascade)

    async def unbind_attribute_from_category(self, category_id: int, attribute_id: int) -> attr_schemas.UnbindResult:
        await self.tree.get_category(category_id)
        await self.attributes.get_attribute(self.db, attribute_id)

        await self.bindings.unbind(self.db, category_id=category_id, attribute_id=attribute_id)
        logger.info("속성 바인딩 해제: category=%s attribute=%s", category_id, attribute_id)

        cascade = await self.cascade.cascade_unbind(category_id, attribute_id)
        return attr_schemas.UnbindResult(category_id=category_id, attribute_id=attribute_id, cascade=cascade)

    async def update_category_attribute(
        self,
        category_id: int,
        attribute_id: int,
        is_required: Optional[bool] = None,
        sort: Optional[int] = None,
    ) -> attr_schemas.BindingMutationResult:
        await self.tree.get_category(category_id)
        await self.attributes.get_attribute(self.db, attribute_id)

        binding = await self.bindings.update_binding(
            self.db, category_id=category_id, attribute_id=attribute_id, is_required=is_required, sort=sort
        )
        cascade = await self.cascade.cascade_update(category_id, attribute_id, is_required=is_required, sort=sort)
        resolved = await self._with_attributes([to_resolved(binding, category_id)])
        return attr_schemas.BindingMutationResult(binding=resolved[0], cascade=cascade)

    async def batch_bind_attributes_to_category(
        self, category_id: int, items: Sequence[attr_schemas.CategoryAttributeBindItem]
    ) -> attr_schemas.BatchBindResult:
        await self.tree.get_category(category_id)

        bindings = await self.bindings.batch_bind(self.db, category_id=category_id, items=items)
        logger.info("속성 일괄 바인딩: category=%s, %d개", category_id, len(bindings))

        cascades = []
        for binding in bindings:
            cascades.append(
                await self.cascade.cascade_bind(category_id, binding.attribute_id, binding.is_required, binding.sort)
            )
        return attr_schemas.BatchBindResult(
            category_id=category_id,
            bindings=[attr_schemas.CategoryAttributeResponse.model_validate(b) for b in bindings],
            cascades=cascades,
        )

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------
    async def get_category_attributes(self, category_id: int) -> List[attr_models.CategoryAttribute]:
        """직접 바인딩만 반환합니다."""
        await self.tree.get_category(category_id)
        return await self.bindings.get_by_category(self.db, category_id=category_id, direct_only=True)

    async def get_category_attributes_with_inheritance(self, category_id: int) -> List[attr_schemas.ResolvedBinding]:
        return await self._with_attributes(await self.resolver.resolve_effective_attributes(category_id))

    async def get_attribute_inheritance_path(
        self, category_id: int, attribute_id: int
    ) -> List[attr_schemas.ResolvedBinding]:
        await self.attributes.get_attribute(self.db, attribute_id)
        return await self._with_attributes(await self.resolver.resolve_inheritance_path(category_id, attribute_id))

    async def get_binding_summary(self, category_id: int) -> attr_schemas.BindingSummary:
        effective = await self.resolver.resolve_effective_attributes(category_id)
        inherited = sum(1 for entry in effective if entry.is_inherited)
        return attr_schemas.BindingSummary(
            category_id=category_id,
            total=len(effective),
            own=len(effective) - inherited,
            inherited=inherited,
            required=sum(1 for entry in effective if entry.is_required),
        )

    async def check_entity_completeness(
        self, category_id: int, entity_type: str, entity_id: int
    ) -> attr_schemas.CompletenessReport:
        """카테고리 유효 속성 중 필수인데 값이 저장되지 않은 속성을 찾습니다."""
        effective = await self.get_category_attributes_with_inheritance(category_id)
        values = await attr_crud.attribute_value.get_by_entity(self.db, entity_type=entity_type, entity_id=entity_id)
        stored = {value.attribute_id for value in values}
        missing = [
            entry.attribute for entry in effective
            if entry.is_required and entry.attribute_id not in stored and entry.attribute is not None
        ]
        return attr_schemas.CompletenessReport(
            category_id=category_id,
            entity_type=entity_type,
            entity_id=entity_id,
            is_complete=not missing,
            missing=missing,
        )

    # -------------------------------------------------------------------------
    # 정합성 검증 / 재구축
    # -------------------------------------------------------------------------
    async def rebuild_category_inheritance(self, category_id: int) -> int:
        await self.tree.get_category(category_id)
        return await self.checker.rebuild(category_id)

    async def validate_inheritance_consistency(self, category_id: int) -> Tuple[bool, List[str]]:
        await self.tree.get_category(category_id)
        return await self.checker.validate(category_id)

    async def rebuild_inheritance_for_subtree(self, category_id: int) -> Tuple[List[int], int]:
        return await self.checker.rebuild_subtree(category_id)

    async def rebuild_inheritance_for_all_categories(self) -> Dict[str, int]:
        category_ids = await self._live_category_ids()
        inserted = 0
        for category_id in category_ids:
            inserted += await self.checker.rebuild(category_id)
        logger.info("전체 상속 재구축 완료: 카테고리 %d개, 행 %d개 삽입", len(category_ids), inserted)
        return {"categories": len(category_ids), "inserted": inserted}

    async def find_inconsistent_categories(self) -> Dict[int, List[str]]:
        report: Dict[int, List[str]] = {}
        for category_id in await self._live_category_ids():
            is_consistent, issues = await self.checker.validate(category_id)
            if not is_consistent:
                report[category_id] = issues
        return report

    # -------------------------------------------------------------------------
    # 내부 헬퍼
    # -------------------------------------------------------------------------
    async def _live_category_ids(self) -> List[int]:
        statement = (
            select(Category.id)
            .where(Category.deleted_at.is_(None))
            .order_by(Category.level, Category.id)
        )
        result = await self.db.execute(statement)
        return list(result.scalars().all())

    async def _with_attributes(
        self, entries: List[attr_schemas.ResolvedBinding]
    ) -> List[attr_schemas.ResolvedBinding]:
        """해석 결과에 속성 요약 정보를 붙입니다."""
        attributes = await self.attributes.get_many(self.db, ids=[entry.attribute_id for entry in entries])
        for entry in entries:
            attribute = attributes.get(entry.attribute_id)
            if attribute is not None:
                entry.attribute = attr_schemas.AttributeSummary.model_validate(attribute)
        return entries
