# pim/domains/cat/tree.py

"""
카테고리 트리 조회기 (Category Tree Accessor).

parent_id 포인터로 저장된 트리를 읽기 전용으로 탐색합니다.
모든 재귀 탐색은 단일 재귀 CTE 쿼리로 수행되며 PostgreSQL과 SQLite에서 동일하게 동작합니다.
소프트 삭제된 카테고리는 어떤 조회에도 나타나지 않습니다.
"""

from typing import List, Optional

from sqlalchemy import Integer, literal_column, select
from sqlalchemy.orm import aliased
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.config import settings
from pim.core.exceptions import NotFoundError
from pim.domains.cat.models import Category


class CategoryTreeAccessor:
    """
    상속 엔진이 사용하는 카테고리 트리 읽기 연산을 제공합니다.
    세션은 생성자에서 주입받습니다.
    """

    def __init__(self, db: AsyncSession, max_depth: Optional[int] = None):
        self.db = db
        self.max_depth = max_depth or settings.CATEGORY_MAX_DEPTH

    async def get_category(self, category_id: int) -> Category:
        category = await self.db.get(Category, category_id)
        if category is None or category.deleted_at is not None:
            raise NotFoundError(f"Category {category_id} not found.", category_id=category_id)
        return category

    async def get_children(self, category_id: int) -> List[Category]:
        """직계 자식 카테고리만 반환합니다 (sort, id 순)."""
        await self.get_category(category_id)
        stmt = (
            select(Category)
            .where(Category.parent_id == category_id, Category.deleted_at.is_(None))
            .order_by(Category.sort, Category.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_all_descendants(self, category_id: int) -> List[int]:
        """
        자기 자신을 제외한 모든 하위 카테고리 ID를 반환합니다.
        얕은 깊이부터 (너비 우선) 정렬됩니다.
        """
        await self.get_category(category_id)

        tree = (
            select(Category.id, Category.parent_id, literal_column("1", Integer).label("depth"))
            .where(Category.parent_id == category_id, Category.deleted_at.is_(None))
            .cte(name="category_descendants", recursive=True)
        )
        child = aliased(Category)
        tree = tree.union_all(
            select(child.id, child.parent_id, (tree.c.depth + 1).label("depth"))
            .where(
                child.parent_id == tree.c.id,
                child.deleted_at.is_(None),
                tree.c.depth < self.max_depth,
            )
        )
        result = await self.db.execute(select(tree.c.id).order_by(tree.c.depth, tree.c.id))
        return list(result.scalars().all())

    async def get_ancestor_path(self, category_id: int) -> List[Category]:
        """
        루트부터 자기 자신까지의 경로를 반환합니다 (root → leaf, 자기 자신 포함).
        """
        path = (
            select(Category.id, Category.parent_id, literal_column("0", Integer).label("depth"))
            .where(Category.id == category_id, Category.deleted_at.is_(None))
            .cte(name="category_ancestors", recursive=True)
        )
        parent = aliased(Category)
        path = path.union_all(
            select(parent.id, parent.parent_id, (path.c.depth + 1).label("depth"))
            .where(
                parent.id == path.c.parent_id,
                parent.deleted_at.is_(None),
                path.c.depth < self.max_depth,
            )
        )
        stmt = (
            select(Category)
            .join(path, Category.id == path.c.id)
            .order_by(path.c.depth.desc())
        )
        result = await self.db.execute(stmt)
        categories = list(result.scalars().all())
        if not categories:
            raise NotFoundError(f"Category {category_id} not found.", category_id=category_id)
        return categories

    async def get_ancestor_ids(self, category_id: int) -> List[int]:
        """get_ancestor_path의 ID 목록 버전 (root → leaf, 자기 자신 포함)."""
        return [category.id for category in await self.get_ancestor_path(category_id)]
