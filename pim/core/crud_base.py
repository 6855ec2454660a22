# pim/core/crud_base.py

"""
도메인 CRUD 클래스가 공유하는 기본 클래스 모듈입니다.

`deleted_at` 컬럼이 있는 모델은 소프트 삭제 모델로 취급하며,
조회 메서드는 소프트 삭제된 행을 돌려주지 않습니다.
타임스탬프는 DB의 onupdate 대신 여기서 명시적으로 기록합니다.
"""

from typing import Generic, Optional, Type, TypeVar, Any
from datetime import datetime, UTC

from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession
from pydantic import BaseModel

ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(UTC)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    @property
    def is_soft_deletable(self) -> bool:
        return hasattr(self.model, "deleted_at")

    def _live(self, statement):
        """소프트 삭제된 행을 제외하는 조건을 붙입니다."""
        if self.is_soft_deletable:
            statement = statement.where(self.model.deleted_at.is_(None))
        return statement

    async def get(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        """기본 키로 살아있는 행 하나를 조회합니다."""
        db_obj = await db.get(self.model, id)
        if db_obj is not None and self.is_soft_deletable and db_obj.deleted_at is not None:
            return None
        return db_obj

    async def get_by_attribute(self, db: AsyncSession, *, attribute: str, value: Any) -> Optional[ModelType]:
        statement = self._live(select(self.model).where(getattr(self.model, attribute) == value))
        result = await db.execute(statement)
        return result.scalars().first()

    async def update(self, db: AsyncSession, *, db_obj: ModelType, obj_in: UpdateSchemaType) -> ModelType:
        """전달된(unset이 아닌) 필드만 갱신하고 updated_at 을 기록합니다."""
        for key, value in obj_in.model_dump(exclude_unset=True).items():
            setattr(db_obj, key, value)
        if hasattr(db_obj, "updated_at"):
            db_obj.updated_at = utcnow()

        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def delete(self, db: AsyncSession, *, id: Any) -> Optional[ModelType]:
        """
        행을 삭제합니다. 소프트 삭제 모델은 deleted_at 만 기록합니다.
        대상이 없으면 None 을 반환합니다.
        """
        db_obj = await self.get(db, id)
        if db_obj is None:
            return None
        if self.is_soft_deletable:
            db_obj.deleted_at = utcnow()
            db.add(db_obj)
        else:
            await db.delete(db_obj)
        await db.commit()
        return db_obj
