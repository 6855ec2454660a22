# pim/domains/cat/crud.py

"""
'cat' 도메인 (상품 카테고리)과 관련된 CRUD 로직을 담당하는 모듈입니다.

- 생성 시 상위 카테고리로부터 level을 계산합니다 (루트 = 1).
- 이동(move) 시 순환 참조를 차단하고, 하위 트리 전체의 level을 재계산합니다.
- 생성과 이동 모두 level 이 CATEGORY_MAX_DEPTH 를 넘지 않도록 막습니다.
  트리 조회 CTE 가 이 깊이에서 탐색을 멈추기 때문입니다.
- 하위 카테고리가 남아 있으면 삭제를 거부합니다.
"""

from typing import Dict, List, Optional
import logging

from sqlalchemy import func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.config import settings
from pim.core.crud_base import CRUDBase, utcnow
from pim.core.exceptions import NotFoundError, ValidationError
from pim.domains.attr.models import CategoryAttribute
from pim.domains.cat.tree import CategoryTreeAccessor
from . import models as cat_models
from . import schemas as cat_schemas

logger = logging.getLogger(__name__)


# =============================================================================
# 1. 카테고리 (Category) CRUD
# =============================================================================
class CRUDCategory(
    CRUDBase[
        cat_models.Category,
        cat_schemas.CategoryCreate,
        cat_schemas.CategoryUpdate
    ]
):
    def __init__(self):
        super().__init__(model=cat_models.Category)

    async def get_or_404(self, db: AsyncSession, id: int) -> cat_models.Category:
        db_obj = await self.get(db, id)
        if db_obj is None:
            raise NotFoundError(f"Category {id} not found.", category_id=id)
        return db_obj

    @staticmethod
    def _check_depth(level: int) -> None:
        if level > settings.CATEGORY_MAX_DEPTH:
            raise ValidationError(
                f"Category level {level} exceeds the maximum depth of {settings.CATEGORY_MAX_DEPTH}.",
                level=level, max_depth=settings.CATEGORY_MAX_DEPTH,
            )

    async def create(self, db: AsyncSession, *, obj_in: cat_schemas.CategoryCreate) -> cat_models.Category:
        """상위 카테고리를 확인하고 level을 계산하여 생성합니다."""
        level = 1
        if obj_in.parent_id is not None:
            parent = await self.get_or_404(db, obj_in.parent_id)
            level = parent.level + 1
        self._check_depth(level)

        db_obj = cat_models.Category(**obj_in.model_dump(), level=level)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        logger.info("카테고리 생성: id=%s, parent_id=%s, level=%s", db_obj.id, db_obj.parent_id, db_obj.level)
        return db_obj

    async def get_list(
        self,
        db: AsyncSession,
        *,
        parent_id: Optional[int] = None,
        roots_only: bool = False,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[cat_models.Category]:
        query = select(self.model).where(self.model.deleted_at.is_(None))
        if roots_only:
            query = query.where(self.model.parent_id.is_(None))
        elif parent_id is not None:
            query = query.where(self.model.parent_id == parent_id)
        if is_active is not None:
            query = query.where(self.model.is_active == is_active)
        query = query.order_by(self.model.level, self.model.sort, self.model.id).offset(skip).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    async def get_tree(self, db: AsyncSession, *, root_id: Optional[int] = None) -> List[cat_schemas.CategoryTreeNode]:
        """
        살아있는 카테고리 전체(또는 root_id 하위 트리)를 중첩 노드 목록으로 반환합니다.
        """
        query = (
            select(self.model)
            .where(self.model.deleted_at.is_(None))
            .order_by(self.model.level, self.model.sort, self.model.id)
        )
        result = await db.execute(query)
        categories = result.scalars().all()

        nodes: Dict[int, cat_schemas.CategoryTreeNode] = {
            c.id: cat_schemas.CategoryTreeNode(id=c.id, name=c.name, level=c.level, sort=c.sort, is_active=c.is_active)
            for c in categories
        }
        roots: List[cat_schemas.CategoryTreeNode] = []
        for c in categories:
            parent_node = nodes.get(c.parent_id) if c.parent_id is not None else None
            if parent_node is not None:
                parent_node.children.append(nodes[c.id])
            elif c.parent_id is None:
                roots.append(nodes[c.id])

        if root_id is not None:
            if root_id not in nodes:
                raise NotFoundError(f"Category {root_id} not found.", category_id=root_id)
            return [nodes[root_id]]
        return roots

    async def move(
        self, db: AsyncSession, *, db_obj: cat_models.Category, new_parent_id: Optional[int]
    ) -> List[int]:
        """
        카테고리를 새 상위 카테고리 아래로 이동합니다.
        자기 자신이나 하위 카테고리 아래로의 이동은 순환 참조이므로 거부합니다.
        level이 재계산된 카테고리 ID 목록(자기 자신 + 하위, 얕은 순)을 반환합니다.
        """
        tree = CategoryTreeAccessor(db)
        descendant_ids = await tree.get_all_descendants(db_obj.id)

        new_level = 1
        if new_parent_id is not None:
            if new_parent_id == db_obj.id or new_parent_id in descendant_ids:
                raise ValidationError(
                    f"Cannot move category {db_obj.id} under {new_parent_id}: circular reference.",
                    category_id=db_obj.id, new_parent_id=new_parent_id,
                )
            new_parent = await self.get_or_404(db, new_parent_id)
            new_level = new_parent.level + 1

        if new_parent_id == db_obj.parent_id:
            return []

        delta = new_level - db_obj.level
        deepest_level = db_obj.level
        if descendant_ids:
            result = await db.execute(
                select(func.max(self.model.level)).where(self.model.id.in_(descendant_ids))
            )
            deepest_level = result.scalar_one()
        self._check_depth(deepest_level + delta)

        db_obj.parent_id = new_parent_id
        db_obj.level = new_level
        db_obj.updated_at = utcnow()
        db.add(db_obj)

        # 하위 트리 전체의 level을 같은 차이만큼 이동
        if descendant_ids and delta != 0:
            await db.execute(
                update(self.model)
                .where(self.model.id.in_(descendant_ids))
                .values(level=self.model.level + delta, updated_at=utcnow())
            )

        await db.commit()
        await db.refresh(db_obj)
        logger.info(
            "카테고리 이동: id=%s, new_parent_id=%s, level=%s, 하위 %d개 재계산",
            db_obj.id, new_parent_id, new_level, len(descendant_ids),
        )
        return [db_obj.id] + descendant_ids

    async def remove(self, db: AsyncSession, *, db_obj: cat_models.Category) -> cat_models.Category:
        """
        하위 카테고리가 없을 때만 소프트 삭제합니다.
        카테고리에 걸린 살아있는 속성 바인딩도 함께 소프트 삭제합니다.
        """
        children = await CategoryTreeAccessor(db).get_children(db_obj.id)
        if children:
            raise ValidationError(
                f"Category {db_obj.id} has {len(children)} child categories and cannot be deleted.",
                category_id=db_obj.id,
            )

        now = utcnow()
        await db.execute(
            update(CategoryAttribute)
            .where(CategoryAttribute.category_id == db_obj.id, CategoryAttribute.deleted_at.is_(None))
            .values(deleted_at=now)
        )
        db_obj.deleted_at = now
        db.add(db_obj)
        await db.commit()
        logger.info("카테고리 삭제: id=%s", db_obj.id)
        return db_obj


category = CRUDCategory()
