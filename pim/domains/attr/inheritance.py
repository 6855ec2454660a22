# pim/domains/attr/inheritance.py

"""
카테고리 속성 상속 엔진.

- InheritanceResolver: 루트부터 대상 카테고리까지의 경로를 따라 직접 바인딩을 병합합니다.
  같은 속성이면 대상에 더 가까운 카테고리의 바인딩이 이깁니다 (closest-wins).
- CascadeEngine: 카테고리 C의 bind/unbind/update 를 C의 모든 하위 카테고리로 전파합니다.
  하위 카테고리 자신의 직접 바인딩이나 더 가까운 조상에게서 받은 바인딩은 절대 덮어쓰지 않습니다.
- InheritanceConsistencyChecker: 해석 결과에 보이는 상속 속성 중 물질화된 행이 없는 것을 찾아내고,
  누락된 행만 다시 삽입합니다 (초과 행은 삭제하지 않음).

해석은 항상 읽는 시점에 직접 바인딩만으로 계산합니다.
따라서 물질화 테이블이 일시적으로 어긋나도(예: unbind 후 다음 조상으로부터 재물질화하지 않음)
조회 결과는 정확하며, 어긋남은 재구축(rebuild)으로 해소됩니다.
"""

from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.exceptions import CascadeWarning
from pim.domains.attr import models as attr_models
from pim.domains.attr import schemas as attr_schemas
from pim.domains.attr.crud import CRUDCategoryAttribute
from pim.domains.cat.tree import CategoryTreeAccessor

logger = logging.getLogger(__name__)

CascadeStep = Callable[[int], Awaitable[bool]]


def to_resolved(
    row: attr_models.CategoryAttribute, target_category_id: int
) -> attr_schemas.ResolvedBinding:
    is_inherited = row.category_id != target_category_id
    return attr_schemas.ResolvedBinding(
        binding_id=row.id,
        category_id=target_category_id,
        attribute_id=row.attribute_id,
        is_required=row.is_required,
        sort=row.sort,
        is_inherited=is_inherited,
        inherited_from_category_id=row.category_id if is_inherited else None,
    )


# =============================================================================
# 1. 상속 해석기 (Inheritance Resolver)
# =============================================================================
class InheritanceResolver:
    def __init__(self, db: AsyncSession, tree: CategoryTreeAccessor, bindings: CRUDCategoryAttribute):
        self.db = db
        self.tree = tree
        self.bindings = bindings

    async def _direct_rows_on_path(
        self, category_id: int, attribute_id: Optional[int] = None
    ) -> Tuple[List[int], Dict[int, List[attr_models.CategoryAttribute]]]:
        path_ids = await self.tree.get_ancestor_ids(category_id)
        rows = await self.bindings.get_direct_for_categories(
            self.db, category_ids=path_ids, attribute_id=attribute_id
        )
        by_category: Dict[int, List[attr_models.CategoryAttribute]] = defaultdict(list)
        for row in rows:
            by_category[row.category_id].append(row)
        return path_ids, by_category

    async def resolve_effective_attributes(self, category_id: int) -> List[attr_schemas.ResolvedBinding]:
        """
        카테고리의 유효 속성 집합을 계산합니다.
        루트에서 리프 방향으로 병합하므로 나중(더 가까운) 카테고리의 바인딩이 앞의 것을 대체합니다.
        각 항목은 자신의 sort 값을 유지하며 전체를 다시 정렬하지 않습니다.
        """
        path_ids, by_category = await self._direct_rows_on_path(category_id)

        merged: Dict[int, attr_schemas.ResolvedBinding] = {}
        for path_category_id in path_ids:
            for row in by_category.get(path_category_id, []):
                merged[row.attribute_id] = to_resolved(row, category_id)
        return list(merged.values())

    async def resolve_inheritance_path(
        self, category_id: int, attribute_id: int
    ) -> List[attr_schemas.ResolvedBinding]:
        """한 속성에 대해 경로상의 모든 원천 바인딩을 root → leaf 순으로 반환합니다."""
        path_ids, by_category = await self._direct_rows_on_path(category_id, attribute_id)
        return [
            to_resolved(row, category_id)
            for path_category_id in path_ids
            for row in by_category.get(path_category_id, [])
        ]


# =============================================================================
# 2. 캐스케이드 엔진 (Cascade Engine)
# =============================================================================
class CascadeEngine:
    """
    직접 연산이 커밋된 뒤 호출됩니다.
    캐스케이드 한 번은 하나의 트랜잭션이며, 하위 카테고리마다 SAVEPOINT를 사용해
    실패한 단계만 롤백하고 다음 하위 카테고리로 계속 진행합니다.
    """

    def __init__(self, db: AsyncSession, tree: CategoryTreeAccessor, bindings: CRUDCategoryAttribute):
        self.db = db
        self.tree = tree
        self.bindings = bindings

    async def is_attribute_inherited_from_parent(
        self,
        category_id: int,
        attribute_id: int,
        parent_category_id: int,
        row: Optional[attr_models.CategoryAttribute] = None,
    ) -> bool:
        """
        category_id 의 살아있는 바인딩이 parent_category_id 로부터 상속된 것인지 판정합니다.
        - 행이 parent_category_id 에서 복사된 상속 행이어야 하고
        - parent_category_id 가 조상 경로 위에 있어야 하며
        - 둘 사이(양 끝 제외)의 어떤 카테고리도 같은 속성의 직접 바인딩을 갖지 않아야 합니다.
        """
        if row is None:
            row = await self.bindings.get_live(self.db, category_id=category_id, attribute_id=attribute_id)
        if row is None or row.inherited_from_id != parent_category_id:
            return False

        ancestors = (await self.tree.get_ancestor_ids(category_id))[:-1]
        if parent_category_id not in ancestors:
            return False
        return not await self._has_direct_between(ancestors, parent_category_id, attribute_id)

    async def _has_direct_between(self, ancestors: List[int], source_id: int, attribute_id: int) -> bool:
        """ancestors(root → 부모) 중 source_id 아래 카테고리에 직접 바인딩이 있는지 확인합니다."""
        between = ancestors[ancestors.index(source_id) + 1:]
        if not between:
            return False
        competing = await self.bindings.get_direct_for_categories(
            self.db, category_ids=between, attribute_id=attribute_id
        )
        return bool(competing)

    async def cascade_bind(
        self, category_id: int, attribute_id: int, is_required: bool, sort: int
    ) -> attr_schemas.CascadeResult:
        """
        바인딩이 없는 하위 카테고리에 상속 행을 삽입합니다.
        C보다 위의 조상에게서 받은 상속 행은 C가 더 가까운 원천이 되므로 C로 다시 귀속시킵니다.
        직접 바인딩이나 C와 하위 카테고리 사이에서 받은 상속 행은 건너뜁니다.
        """
        farther_ancestors = set((await self.tree.get_ancestor_ids(category_id))[:-1])

        async def step(descendant_id: int) -> bool:
            row = await self.bindings.get_live(self.db, category_id=descendant_id, attribute_id=attribute_id)
            if row is None:
                self.bindings.add_inherited(
                    self.db,
                    category_id=descendant_id,
                    attribute_id=attribute_id,
                    is_required=is_required,
                    sort=sort,
                    inherited_from_id=category_id,
                )
                return True
            if row.inherited_from_id is not None and row.inherited_from_id in farther_ancestors:
                # C와 D 사이에 직접 바인딩이 있으면 그 카테고리가 더 가까운 원천입니다.
                ancestors = (await self.tree.get_ancestor_ids(descendant_id))[:-1]
                if await self._has_direct_between(ancestors, category_id, attribute_id):
                    return False
                self.bindings.apply_changes(row, is_required=is_required, sort=sort)
                row.inherited_from_id = category_id
                self.db.add(row)
                return True
            return False

        return await self._run("bind", category_id, attribute_id, step)

    async def cascade_unbind(self, category_id: int, attribute_id: int) -> attr_schemas.CascadeResult:
        """C로부터 상속되었음이 확인된 하위 카테고리의 행만 소프트 삭제합니다."""

        async def step(descendant_id: int) -> bool:
            row = await self.bindings.get_live(self.db, category_id=descendant_id, attribute_id=attribute_id)
            if row is None or not await self.is_attribute_inherited_from_parent(
                descendant_id, attribute_id, category_id, row=row
            ):
                return False
            self.bindings.soft_delete(self.db, row)
            return True

        return await self._run("unbind", category_id, attribute_id, step)

    async def cascade_update(
        self,
        category_id: int,
        attribute_id: int,
        is_required: Optional[bool] = None,
        sort: Optional[int] = None,
    ) -> attr_schemas.CascadeResult:
        """CascadeUnbind 와 같은 조건으로, 전달된 필드만 하위 카테고리의 상속 행에 반영합니다."""
        if is_required is None and sort is None:
            return attr_schemas.CascadeResult(operation="update", category_id=category_id, attribute_id=attribute_id)

        async def step(descendant_id: int) -> bool:
            row = await self.bindings.get_live(self.db, category_id=descendant_id, attribute_id=attribute_id)
            if row is None or not await self.is_attribute_inherited_from_parent(
                descendant_id, attribute_id, category_id, row=row
            ):
                return False
            self.bindings.apply_changes(row, is_required=is_required, sort=sort)
            self.db.add(row)
            return True

        return await self._run("update", category_id, attribute_id, step)

    async def _run(
        self, operation: str, category_id: int, attribute_id: int, step: CascadeStep
    ) -> attr_schemas.CascadeResult:
        result = attr_schemas.CascadeResult(operation=operation, category_id=category_id, attribute_id=attribute_id)

        try:
            descendant_ids = await self.tree.get_all_descendants(category_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._record_failure(result, category_id, e)
            return result

        result.total = len(descendant_ids)
        applied: List[int] = []
        for descendant_id in descendant_ids:
            try:
                async with self.db.begin_nested():
                    changed = await step(descendant_id)
            except SQLAlchemyError as e:
                self._record_failure(result, descendant_id, e)
                continue
            if changed:
                applied.append(descendant_id)
            else:
                result.skipped += 1

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            # 최종 커밋 실패 시 캐스케이드 전체가 적용되지 않습니다.
            await self.db.rollback()
            for descendant_id in applied:
                self._record_failure(result, descendant_id, e)
            applied = []

        result.succeeded = len(applied)
        logger.info(
            "cascade %s: category=%s attribute=%s total=%d applied=%d skipped=%d failed=%d",
            operation, category_id, attribute_id,
            result.total, result.succeeded, result.skipped, result.failed,
        )
        return result

    @staticmethod
    def _record_failure(result: attr_schemas.CascadeResult, descendant_id: int, error: Exception) -> None:
        warning = CascadeWarning(result.operation, descendant_id, result.attribute_id, str(error))
        logger.warning("%s", warning)
        result.failures.append(
            attr_schemas.CascadeFailure(
                category_id=descendant_id,
                attribute_id=result.attribute_id,
                operation=result.operation,
                reason=warning.reason,
            )
        )


# =============================================================================
# 3. 정합성 검증 / 재구축 (Consistency Validator / Rebuilder)
# =============================================================================
class InheritanceConsistencyChecker:
    def __init__(
        self,
        db: AsyncSession,
        tree: CategoryTreeAccessor,
        bindings: CRUDCategoryAttribute,
        resolver: InheritanceResolver,
    ):
        self.db = db
        self.tree = tree
        self.bindings = bindings
        self.resolver = resolver

    async def find_missing(self, category_id: int) -> List[attr_schemas.ResolvedBinding]:
        """해석 결과에는 상속으로 보이지만 물질화된 행이 없는 속성 목록"""
        effective = await self.resolver.resolve_effective_attributes(category_id)
        rows = await self.bindings.get_by_category(self.db, category_id=category_id, direct_only=False)
        present = {row.attribute_id for row in rows}
        return [entry for entry in effective if entry.is_inherited and entry.attribute_id not in present]

    async def validate(self, category_id: int) -> Tuple[bool, List[str]]:
        missing = await self.find_missing(category_id)
        issues = [
            f"inherited attribute {entry.attribute_id} (from category {entry.inherited_from_category_id}) "
            f"has no materialized binding at category {category_id}"
            for entry in missing
        ]
        return not issues, issues

    async def rebuild(self, category_id: int) -> int:
        """누락된 상속 행만 삽입합니다. 두 번 실행해도 추가 변경이 없습니다."""
        missing = await self.find_missing(category_id)
        for entry in missing:
            self.bindings.add_inherited(
                self.db,
                category_id=category_id,
                attribute_id=entry.attribute_id,
                is_required=entry.is_required,
                sort=entry.sort,
                inherited_from_id=entry.inherited_from_category_id,
            )
        if missing:
            await self.db.commit()
            logger.info("상속 재구축: category=%s, %d개 행 삽입", category_id, len(missing))
        return len(missing)

    async def rebuild_subtree(self, category_id: int) -> Tuple[List[int], int]:
        """카테고리와 모든 하위 카테고리를 얕은 순서로 재구축합니다."""
        category_ids = [category_id] + await self.tree.get_all_descendants(category_id)
        inserted = 0
        for target_id in category_ids:
            inserted += await self.rebuild(target_id)
        return category_ids, inserted
