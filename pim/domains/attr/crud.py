# pim/domains/attr/crud.py

"""
'attr' 도메인과 관련된 CRUD 로직을 담당하는 모듈입니다.

- 속성 정의 저장소 (CRUDAttribute): AttributeExists / GetAttribute 및 속성 CRUD
- 바인딩 저장소 (CRUDCategoryAttribute): Bind / Unbind / UpdateBinding / Exists / BatchBind
- 속성 값 저장소 (CRUDAttributeValue): 엔티티별 속성 값 upsert / 조회 / 삭제
"""

from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.crud_base import CRUDBase, utcnow
from pim.core.exceptions import (
    DuplicateAttributeError,
    DuplicateBindingError,
    NotFoundError,
    ValidationError,
)
from pim.domains.attr import validators
from . import models as attr_models
from . import schemas as attr_schemas

logger = logging.getLogger(__name__)


# =============================================================================
# 1. 속성 정의 (Attribute) CRUD
# =============================================================================
class CRUDAttribute(
    CRUDBase[
        attr_models.Attribute,
        attr_schemas.AttributeCreate,
        attr_schemas.AttributeUpdate
    ]
):
    def __init__(self):
        super().__init__(model=attr_models.Attribute)

    async def get_by_name(self, db: AsyncSession, *, name: str) -> Optional[attr_models.Attribute]:
        """이름으로 살아있는 속성을 조회합니다."""
        return await self.get_by_attribute(db, attribute="name", value=name)

    async def attribute_exists(self, db: AsyncSession, id: int) -> bool:
        return await self.get(db, id) is not None

    async def get_attribute(self, db: AsyncSession, id: int) -> attr_models.Attribute:
        db_obj = await self.get(db, id)
        if db_obj is None:
            raise NotFoundError(f"Attribute {id} not found.", attribute_id=id)
        return db_obj

    async def get_many(self, db: AsyncSession, *, ids: Sequence[int]) -> Dict[int, attr_models.Attribute]:
        """ID 목록으로 살아있는 속성들을 한 번에 조회합니다."""
        if not ids:
            return {}
        statement = select(self.model).where(self.model.id.in_(set(ids)), self.model.deleted_at.is_(None))
        result = await db.execute(statement)
        return {attribute.id: attribute for attribute in result.scalars().all()}

    async def search(
        self,
        db: AsyncSession,
        *,
        type: Optional[attr_models.AttributeType] = None,
        is_active: Optional[bool] = None,
        q: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[attr_models.Attribute]:
        """타입, 활성 여부, 이름 검색어로 속성 목록을 조회합니다."""
        statement = select(self.model).where(self.model.deleted_at.is_(None))
        if type is not None:
            statement = statement.where(self.model.type == type.value)
        if is_active is not None:
            statement = statement.where(self.model.is_active == is_active)
        if q:
            pattern = f"%{q.lower()}%"
            statement = statement.where(
                func.lower(self.model.name).like(pattern) | func.lower(self.model.display_name).like(pattern)
            )
        statement = statement.order_by(self.model.id).offset(skip).limit(limit)
        result = await db.execute(statement)
        return result.scalars().all()

    async def create(self, db: AsyncSession, *, obj_in: attr_schemas.AttributeCreate) -> attr_models.Attribute:
        """이름 중복과 정의 일관성을 확인하고 생성합니다."""
        if await self.get_by_name(db, name=obj_in.name):
            raise DuplicateAttributeError(f"Attribute with name '{obj_in.name}' already exists.")

        data = obj_in.model_dump()
        validators.validate_attribute_definition(data["type"], data.get("options"), data.get("validation_rule"))
        data["type"] = obj_in.type.value

        db_obj = attr_models.Attribute(**data)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        logger.info("속성 생성: id=%s, name=%s, type=%s", db_obj.id, db_obj.name, db_obj.type)
        return db_obj

    async def update(
        self, db: AsyncSession, *, db_obj: attr_models.Attribute, obj_in: attr_schemas.AttributeUpdate
    ) -> attr_models.Attribute:
        update_data = obj_in.model_dump(exclude_unset=True)

        new_name = update_data.get("name")
        if new_name and new_name != db_obj.name and await self.get_by_name(db, name=new_name):
            raise DuplicateAttributeError(f"Attribute with name '{new_name}' already exists.")

        if update_data.get("type") is None:
            update_data.pop("type", None)
        else:
            update_data["type"] = attr_models.AttributeType(update_data["type"]).value
        validators.validate_attribute_definition(
            update_data.get("type", db_obj.type),
            update_data.get("options", db_obj.options),
            update_data.get("validation_rule", db_obj.validation_rule),
        )

        for key, value in update_data.items():
            setattr(db_obj, key, value)
        db_obj.updated_at = utcnow()
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def remove(self, db: AsyncSession, *, db_obj: attr_models.Attribute) -> attr_models.Attribute:
        """
        저장된 값이 있는 속성은 삭제를 거부합니다.
        삭제 시 속성의 살아있는 바인딩도 함께 소프트 삭제합니다.
        """
        value_count = await attribute_value.count_by_attribute(db, attribute_id=db_obj.id)
        if value_count:
            raise ValidationError(
                f"Attribute {db_obj.id} still has {value_count} stored values and cannot be deleted.",
                attribute_id=db_obj.id,
            )

        now = utcnow()
        await db.execute(
            update(attr_models.CategoryAttribute)
            .where(
                attr_models.CategoryAttribute.attribute_id == db_obj.id,
                attr_models.CategoryAttribute.deleted_at.is_(None),
            )
            .values(deleted_at=now)
        )
        db_obj.deleted_at = now
        db.add(db_obj)
        await db.commit()
        logger.info("속성 삭제: id=%s, name=%s", db_obj.id, db_obj.name)
        return db_obj


# =============================================================================
# 2. 카테고리-속성 바인딩 (CategoryAttribute) 저장소
# =============================================================================
class CRUDCategoryAttribute(
    CRUDBase[
        attr_models.CategoryAttribute,
        attr_schemas.CategoryAttributeBind,
        attr_schemas.CategoryAttributeUpdate
    ]
):
    """
    (카테고리, 속성) 바인딩 저장소.
    Bind / Unbind / UpdateBinding / BatchBind 는 직접 연산이므로 각자 커밋하며,
    add_inherited / soft_delete / apply_changes 는 캐스케이드와 재구축 트랜잭션 안에서 쓰이므로 커밋하지 않습니다.
    """

    def __init__(self):
        super().__init__(model=attr_models.CategoryAttribute)

    async def get_live(
        self, db: AsyncSession, *, category_id: int, attribute_id: int
    ) -> Optional[attr_models.CategoryAttribute]:
        statement = select(self.model).where(
            self.model.category_id == category_id,
            self.model.attribute_id == attribute_id,
            self.model.deleted_at.is_(None),
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def exists(
        self, db: AsyncSession, *, category_id: int, attribute_id: int, direct_only: bool = False
    ) -> bool:
        """살아있는 바인딩 존재 여부 (direct_only=True 이면 직접 바인딩만)."""
        row = await self.get_live(db, category_id=category_id, attribute_id=attribute_id)
        if row is None:
            return False
        return row.is_direct if direct_only else True

    async def get_by_category(
        self, db: AsyncSession, *, category_id: int, direct_only: bool = True
    ) -> List[attr_models.CategoryAttribute]:
        statement = select(self.model).where(
            self.model.category_id == category_id,
            self.model.deleted_at.is_(None),
        )
        if direct_only:
            statement = statement.where(self.model.inherited_from_id.is_(None))
        statement = statement.order_by(self.model.sort, self.model.created_at, self.model.id)
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_direct_for_categories(
        self, db: AsyncSession, *, category_ids: Sequence[int], attribute_id: Optional[int] = None
    ) -> List[attr_models.CategoryAttribute]:
        """
        여러 카테고리의 살아있는 직접 바인딩을 한 번에 조회합니다.
        삭제된 속성에 대한 바인딩은 제외합니다.
        """
        if not category_ids:
            return []
        Attribute = attr_models.Attribute
        statement = (
            select(self.model)
            .join(Attribute, Attribute.id == self.model.attribute_id)
            .where(
                self.model.category_id.in_(list(category_ids)),
                self.model.deleted_at.is_(None),
                self.model.inherited_from_id.is_(None),
                Attribute.deleted_at.is_(None),
            )
        )
        if attribute_id is not None:
            statement = statement.where(self.model.attribute_id == attribute_id)
        statement = statement.order_by(self.model.sort, self.model.created_at, self.model.id)
        result = await db.execute(statement)
        return result.scalars().all()

    async def _commit_or_duplicate(self, db: AsyncSession, category_id: int, attribute_ids: Sequence[int]) -> None:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            # 동시 바인딩 경쟁은 부분 유니크 인덱스가 최종적으로 막습니다.
            raise DuplicateBindingError(
                f"Attribute(s) {list(attribute_ids)} already bound to category {category_id}.",
                category_id=category_id,
            ) from e

    async def bind(
        self, db: AsyncSession, *, category_id: int, attribute_id: int, is_required: bool, sort: int
    ) -> attr_models.CategoryAttribute:
        """
        직접 바인딩을 생성합니다.
        살아있는 직접 바인딩이 이미 있으면 DuplicateBindingError,
        상속 행만 있으면 그 행을 직접 바인딩으로 승격합니다.
        """
        existing = await self.get_live(db, category_id=category_id, attribute_id=attribute_id)
        if existing is not None and existing.is_direct:
            raise DuplicateBindingError(
                f"Attribute {attribute_id} is already bound to category {category_id}.",
                category_id=category_id, attribute_id=attribute_id,
            )

        if existing is not None:
            db_obj = self.apply_changes(existing, is_required=is_required, sort=sort)
            db_obj.inherited_from_id = None
        else:
            db_obj = self.model(
                category_id=category_id, attribute_id=attribute_id, is_required=is_required, sort=sort
            )
        db.add(db_obj)
        await self._commit_or_duplicate(db, category_id, [attribute_id])
        await db.refresh(db_obj)
        return db_obj

    async def unbind(self, db: AsyncSession, *, category_id: int, attribute_id: int) -> attr_models.CategoryAttribute:
        """살아있는 직접 바인딩을 소프트 삭제합니다."""
        db_obj = await self.get_live(db, category_id=category_id, attribute_id=attribute_id)
        if db_obj is None or not db_obj.is_direct:
            raise NotFoundError(
                f"Attribute {attribute_id} is not directly bound to category {category_id}.",
                category_id=category_id, attribute_id=attribute_id,
            )
        self.soft_delete(db, db_obj)
        await db.commit()
        return db_obj

    async def update_binding(
        self,
        db: AsyncSession,
        *,
        category_id: int,
        attribute_id: int,
        is_required: Optional[bool] = None,
        sort: Optional[int] = None,
    ) -> attr_models.CategoryAttribute:
        """직접 바인딩의 전달된 필드만 갱신합니다."""
        db_obj = await self.get_live(db, category_id=category_id, attribute_id=attribute_id)
        if db_obj is None or not db_obj.is_direct:
            raise NotFoundError(
                f"Attribute {attribute_id} is not directly bound to category {category_id}.",
                category_id=category_id, attribute_id=attribute_id,
            )
        self.apply_changes(db_obj, is_required=is_required, sort=sort)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def batch_bind(
        self,
        db: AsyncSession,
        *,
        category_id: int,
        items: Sequence[attr_schemas.CategoryAttributeBindItem],
    ) -> List[attr_models.CategoryAttribute]:
        """
        여러 속성을 한 트랜잭션으로 바인딩합니다 (all-or-nothing).
        항목 하나라도 잘못되었거나 이미 직접 바인딩되어 있으면 아무것도 저장하지 않습니다.
        is_required 가 None 인 항목은 속성 정의의 기본값을 사용합니다.
        """
        if not items:
            raise ValidationError("Batch bind requires at least one attribute.", category_id=category_id)

        attribute_ids = [item.attribute_id for item in items]
        if len(attribute_ids) != len(set(attribute_ids)):
            raise ValidationError("Batch bind contains duplicated attribute IDs.", category_id=category_id)

        attributes = await attribute.get_many(db, ids=attribute_ids)
        existing_rows: Dict[int, attr_models.CategoryAttribute] = {}
        for index, item in enumerate(items, start=1):
            if item.attribute_id not in attributes:
                raise ValidationError(
                    f"Item {index}: attribute {item.attribute_id} does not exist.",
                    category_id=category_id, attribute_id=item.attribute_id,
                )
            existing = await self.get_live(db, category_id=category_id, attribute_id=item.attribute_id)
            if existing is not None and existing.is_direct:
                raise DuplicateBindingError(
                    f"Item {index}: attribute {item.attribute_id} is already bound to category {category_id}.",
                    category_id=category_id, attribute_id=item.attribute_id,
                )
            if existing is not None:
                existing_rows[item.attribute_id] = existing

        db_objs = []
        for item in items:
            is_required = item.is_required if item.is_required is not None else attributes[item.attribute_id].is_required
            existing = existing_rows.get(item.attribute_id)
            if existing is not None:
                db_obj = self.apply_changes(existing, is_required=is_required, sort=item.sort)
                db_obj.inherited_from_id = None
            else:
                db_obj = self.model(
                    category_id=category_id, attribute_id=item.attribute_id, is_required=is_required, sort=item.sort
                )
            db.add(db_obj)
            db_objs.append(db_obj)

        await self._commit_or_duplicate(db, category_id, attribute_ids)
        for db_obj in db_objs:
            await db.refresh(db_obj)
        return db_objs

    # --- 캐스케이드 / 재구축 트랜잭션 내부용 (커밋하지 않음) ---
    def add_inherited(
        self,
        db: AsyncSession,
        *,
        category_id: int,
        attribute_id: int,
        is_required: bool,
        sort: int,
        inherited_from_id: int,
    ) -> attr_models.CategoryAttribute:
        db_obj = self.model(
            category_id=category_id,
            attribute_id=attribute_id,
            is_required=is_required,
            sort=sort,
            inherited_from_id=inherited_from_id,
        )
        db.add(db_obj)
        return db_obj

    def soft_delete(self, db: AsyncSession, db_obj: attr_models.CategoryAttribute) -> None:
        now = utcnow()
        db_obj.deleted_at = now
        db_obj.updated_at = now
        db.add(db_obj)

    @staticmethod
    def apply_changes(
        db_obj: attr_models.CategoryAttribute, *, is_required: Optional[bool] = None, sort: Optional[int] = None
    ) -> attr_models.CategoryAttribute:
        if is_required is not None:
            db_obj.is_required = is_required
        if sort is not None:
            db_obj.sort = sort
        db_obj.updated_at = utcnow()
        return db_obj


# =============================================================================
# 3. 속성 값 (AttributeValue) CRUD
# =============================================================================
class CRUDAttributeValue(
    CRUDBase[
        attr_models.AttributeValue,
        attr_schemas.AttributeValueSet,
        attr_schemas.AttributeValueSet
    ]
):
    def __init__(self):
        super().__init__(model=attr_models.AttributeValue)

    async def get_for_entity(
        self, db: AsyncSession, *, attribute_id: int, entity_type: str, entity_id: int
    ) -> Optional[attr_models.AttributeValue]:
        statement = select(self.model).where(
            self.model.attribute_id == attribute_id,
            self.model.entity_type == entity_type,
            self.model.entity_id == entity_id,
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def get_by_entity(
        self, db: AsyncSession, *, entity_type: str, entity_id: int
    ) -> List[attr_models.AttributeValue]:
        statement = (
            select(self.model)
            .where(self.model.entity_type == entity_type, self.model.entity_id == entity_id)
            .order_by(self.model.attribute_id)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def count_by_attribute(self, db: AsyncSession, *, attribute_id: int) -> int:
        statement = select(func.count()).select_from(self.model).where(self.model.attribute_id == attribute_id)
        result = await db.execute(statement)
        return result.scalar_one()

    async def _stage_value(
        self, db: AsyncSession, *, attribute: attr_models.Attribute, entity_type: str, entity_id: int, payload: Any
    ) -> attr_models.AttributeValue:
        validators.validate_value(attribute, payload)
        db_obj = await self.get_for_entity(
            db, attribute_id=attribute.id, entity_type=entity_type, entity_id=entity_id
        )
        if db_obj is None:
            db_obj = self.model(attribute_id=attribute.id, entity_type=entity_type, entity_id=entity_id,
                                value_kind=payload.kind)
        else:
            db_obj.updated_at = utcnow()
        store_payload(db_obj, payload)
        db.add(db_obj)
        return db_obj

    async def set_value(
        self, db: AsyncSession, *, attribute: attr_models.Attribute, entity_type: str, entity_id: int, payload: Any
    ) -> attr_models.AttributeValue:
        """값을 검증한 뒤 (속성, 엔티티) 단위로 upsert 합니다."""
        db_obj = await self._stage_value(
            db, attribute=attribute, entity_type=entity_type, entity_id=entity_id, payload=payload
        )
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def batch_set(
        self,
        db: AsyncSession,
        *,
        entity_type: str,
        entity_id: int,
        items: Sequence[attr_schemas.AttributeValueItem],
    ) -> List[attr_models.AttributeValue]:
        """여러 값을 한 트랜잭션으로 저장합니다. 하나라도 검증에 실패하면 아무것도 저장하지 않습니다."""
        if not items:
            raise ValidationError("Batch value request requires at least one value.")
        attributes = await attribute.get_many(db, ids=[item.attribute_id for item in items])

        db_objs = []
        try:
            for index, item in enumerate(items, start=1):
                if item.attribute_id not in attributes:
                    raise ValidationError(f"Item {index}: attribute {item.attribute_id} does not exist.")
                db_objs.append(await self._stage_value(
                    db, attribute=attributes[item.attribute_id], entity_type=entity_type,
                    entity_id=entity_id, payload=item.value,
                ))
        except ValidationError:
            await db.rollback()
            raise

        await db.commit()
        for db_obj in db_objs:
            await db.refresh(db_obj)
        return db_objs

    async def remove(self, db: AsyncSession, *, id: int) -> attr_models.AttributeValue:
        db_obj = await self.delete(db, id=id)
        if db_obj is None:
            raise NotFoundError(f"Attribute value {id} not found.", value_id=id)
        return db_obj


def store_payload(db_obj: attr_models.AttributeValue, payload: Any) -> None:
    """태그드 유니언 값을 종류별 컬럼에 기록합니다. 다른 컬럼은 비웁니다."""
    db_obj.value_kind = payload.kind
    db_obj.text_value = payload.value if payload.kind == attr_models.ValueKind.TEXT.value else None
    db_obj.number_value = payload.value if payload.kind == attr_models.ValueKind.NUMBER.value else None
    db_obj.bool_value = payload.value if payload.kind == attr_models.ValueKind.BOOLEAN.value else None
    db_obj.date_value = payload.value if payload.kind == attr_models.ValueKind.DATE.value else None
    db_obj.json_value = payload.value if payload.kind == attr_models.ValueKind.STRUCTURED.value else None


def load_payload(db_obj: attr_models.AttributeValue) -> Dict[str, Any]:
    kind = attr_models.ValueKind(db_obj.value_kind)
    column = {
        attr_models.ValueKind.TEXT: db_obj.text_value,
        attr_models.ValueKind.NUMBER: db_obj.number_value,
        attr_models.ValueKind.BOOLEAN: db_obj.bool_value,
        attr_models.ValueKind.DATE: db_obj.date_value,
        attr_models.ValueKind.STRUCTURED: db_obj.json_value,
    }[kind]
    return {"kind": kind.value, "value": column}


def to_value_response(db_obj: attr_models.AttributeValue) -> attr_schemas.AttributeValueResponse:
    return attr_schemas.AttributeValueResponse(
        id=db_obj.id,
        attribute_id=db_obj.attribute_id,
        entity_type=db_obj.entity_type,
        entity_id=db_obj.entity_id,
        value=load_payload(db_obj),
        created_at=db_obj.created_at,
        updated_at=db_obj.updated_at,
    )


attribute = CRUDAttribute()
category_attribute = CRUDCategoryAttribute()
attribute_value = CRUDAttributeValue()
