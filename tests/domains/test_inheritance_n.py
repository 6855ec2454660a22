# tests/domains/test_inheritance_n.py

"""
카테고리 속성 상속 엔진 테스트 모듈입니다.

- 해석기: closest-wins 병합
- 캐스케이드: 직접 바인딩 보존(no-clobber), 출처 확인 후 삭제(provenance), 단계별 실패 격리
- 정합성 검증/재구축: 멱등성, unbind 이후 재물질화
- ARQ 태스크와 rebuild-all 엔드포인트
"""

import logging

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.domains.attr import crud as attr_crud
from pim.domains.attr import tasks as attr_tasks
from pim.domains.attr.services import AttributeBindingService


def _by_attribute(entries, attribute_id):
    matches = [entry for entry in entries if entry.attribute_id == attribute_id]
    assert len(matches) == 1
    return matches[0]


# =============================================================================
# 1. 해석기 (closest-wins)
# =============================================================================
@pytest.mark.asyncio
async def test_closest_binding_wins(db_session: AsyncSession, electronics_tree: dict, attribute_factory):
    a, b, c = electronics_tree["electronics"], electronics_tree["phones"], electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)

    await service.bind_attribute_to_category(a.id, x.id, is_required=False)
    await service.bind_attribute_to_category(b.id, x.id, is_required=True)

    entry = _by_attribute(await service.get_category_attributes_with_inheritance(c.id), x.id)
    assert entry.is_required is True
    assert entry.is_inherited is True
    assert entry.inherited_from_category_id == b.id


@pytest.mark.asyncio
async def test_own_binding_is_not_inherited(db_session: AsyncSession, electronics_tree: dict, attribute_factory):
    phones = electronics_tree["phones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)

    await service.bind_attribute_to_category(phones.id, x.id, is_required=True, sort=4)

    entry = _by_attribute(await service.get_category_attributes_with_inheritance(phones.id), x.id)
    assert entry.is_inherited is False
    assert entry.inherited_from_category_id is None
    assert entry.sort == 4
    assert await service.get_category_attributes_with_inheritance(electronics_tree["electronics"].id) == []


# =============================================================================
# 2. 캐스케이드
# =============================================================================
@pytest.mark.asyncio
async def test_cascade_bind_does_not_clobber_direct_binding(
    db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    phones, smartphones = electronics_tree["phones"], electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(smartphones.id, x.id, is_required=True, sort=7)

    result = await service.bind_attribute_to_category(phones.id, x.id, is_required=False, sort=0)

    assert result.cascade.total == 1
    assert result.cascade.skipped == 1
    assert result.cascade.succeeded == 0
    row = await attr_crud.category_attribute.get_live(db_session, category_id=smartphones.id, attribute_id=x.id)
    assert row.is_direct
    assert (row.is_required, row.sort) == (True, 7)


@pytest.mark.asyncio
async def test_cascade_bind_does_not_reattribute_past_closer_direct_binding(
    db_session: AsyncSession, category_factory, attribute_factory
):
    """Store → Electronics → Phones → Smartphones 에서 Phones 의 직접 바인딩이 캐스케이드 없이 생긴 경우"""
    store = await category_factory("Store")
    electronics = await category_factory("Electronics", parent=store)
    phones = await category_factory("Phones", parent=electronics)
    smartphones = await category_factory("Smartphones", parent=phones)
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(store.id, x.id, is_required=False, sort=0)
    # 캐스케이드 없이 직접 바인딩만 생성 (Smartphones 행은 여전히 Store 출처)
    await attr_crud.category_attribute.bind(db_session, category_id=phones.id, attribute_id=x.id, is_required=True, sort=5)

    result = await service.bind_attribute_to_category(electronics.id, x.id, is_required=False, sort=1)

    assert result.cascade.total == 2
    assert result.cascade.succeeded == 0
    assert result.cascade.skipped == 2
    row = await attr_crud.category_attribute.get_live(db_session, category_id=smartphones.id, attribute_id=x.id)
    assert row.inherited_from_id == store.id
    assert (row.is_required, row.sort) == (False, 0)

    resolved = _by_attribute(await service.get_category_attributes_with_inheritance(smartphones.id), x.id)
    assert resolved.inherited_from_category_id == phones.id
    assert resolved.is_required is True


@pytest.mark.asyncio
async def test_cascade_unbind_removes_only_rows_inherited_from_source(
    db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    electronics = electronics_tree["electronics"]
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)

    await service.bind_attribute_to_category(electronics.id, x.id, is_required=False)
    await service.bind_attribute_to_category(phones.id, x.id, is_required=True)

    # Smartphones 의 행은 더 가까운 Phones 로부터 상속된 것이므로 Electronics 해제에 살아남습니다.
    result = await service.unbind_attribute_from_category(electronics.id, x.id)

    assert result.cascade.succeeded == 0
    assert result.cascade.skipped == 2
    phones_row = await attr_crud.category_attribute.get_live(db_session, category_id=phones.id, attribute_id=x.id)
    leaf_row = await attr_crud.category_attribute.get_live(db_session, category_id=smartphones.id, attribute_id=x.id)
    assert phones_row.is_direct
    assert leaf_row.inherited_from_id == phones.id

    result = await service.unbind_attribute_from_category(phones.id, x.id)

    assert result.cascade.succeeded == 1
    assert await attr_crud.category_attribute.get_live(
        db_session, category_id=smartphones.id, attribute_id=x.id
    ) is None


@pytest.mark.asyncio
async def test_cascade_unbind_keeps_direct_descendant_binding(
    db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    phones, smartphones = electronics_tree["phones"], electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(smartphones.id, x.id, is_required=True, sort=2)
    await service.bind_attribute_to_category(phones.id, x.id, is_required=False)

    await service.unbind_attribute_from_category(phones.id, x.id)

    row = await attr_crud.category_attribute.get_live(db_session, category_id=smartphones.id, attribute_id=x.id)
    assert row is not None
    assert row.is_direct
    assert (row.is_required, row.sort) == (True, 2)


@pytest.mark.asyncio
async def test_is_attribute_inherited_from_parent(
    db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    electronics = electronics_tree["electronics"]
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(electronics.id, x.id, is_required=False)

    check = service.cascade.is_attribute_inherited_from_parent
    assert await check(smartphones.id, x.id, electronics.id) is True
    assert await check(smartphones.id, x.id, phones.id) is False
    assert await check(electronics.id, x.id, electronics.id) is False


@pytest.mark.asyncio
async def test_cascade_step_failure_is_isolated(
    db_session: AsyncSession, electronics_tree: dict, category_factory, attribute_factory, monkeypatch, caplog
):
    """하위 카테고리 하나의 쓰기 실패가 형제 카테고리로의 전파를 막지 않습니다."""
    electronics = electronics_tree["electronics"]
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]
    tablets = await category_factory("Tablets", parent=electronics)
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)

    original_add_inherited = attr_crud.category_attribute.add_inherited

    def failing_add_inherited(db, *, category_id, **kwargs):
        if category_id == phones.id:
            raise SQLAlchemyError("simulated write failure")
        return original_add_inherited(db, category_id=category_id, **kwargs)

    monkeypatch.setattr(attr_crud.category_attribute, "add_inherited", failing_add_inherited)

    with caplog.at_level(logging.WARNING):
        result = await service.bind_attribute_to_category(electronics.id, x.id, is_required=True)

    monkeypatch.undo()

    # 직접 연산은 성공하고 캐스케이드 결과만 부분 성공으로 보고됩니다.
    assert result.binding.category_id == electronics.id
    assert result.cascade.total == 3
    assert result.cascade.succeeded == 2
    assert [f.category_id for f in result.cascade.failures] == [phones.id]
    assert result.cascade.is_complete is False
    assert f"cascade bind failed at category {phones.id}" in caplog.text

    for category_id in (tablets.id, smartphones.id):
        assert await attr_crud.category_attribute.get_live(
            db_session, category_id=category_id, attribute_id=x.id
        ) is not None

    # 해석은 살아있는 직접 바인딩으로 계산되므로 실패한 카테고리에서도 정확합니다.
    entry = _by_attribute(await service.get_category_attributes_with_inheritance(phones.id), x.id)
    assert entry.inherited_from_category_id == electronics.id

    is_consistent, issues = await service.validate_inheritance_consistency(phones.id)
    assert is_consistent is False
    assert issues == [
        f"inherited attribute {x.id} (from category {electronics.id}) "
        f"has no materialized binding at category {phones.id}"
    ]

    assert await service.rebuild_category_inheritance(phones.id) == 1
    assert await service.validate_inheritance_consistency(phones.id) == (True, [])


# =============================================================================
# 3. 정합성 검증 / 재구축
# =============================================================================
@pytest.mark.asyncio
async def test_rebuild_is_idempotent(db_session: AsyncSession, electronics_tree: dict, attribute_factory):
    electronics, smartphones = electronics_tree["electronics"], electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(electronics.id, x.id, is_required=False)

    first = await service.rebuild_category_inheritance(smartphones.id)
    first_report = await service.validate_inheritance_consistency(smartphones.id)
    second = await service.rebuild_category_inheritance(smartphones.id)
    second_report = await service.validate_inheritance_consistency(smartphones.id)

    assert (first, second) == (0, 0)
    assert first_report == second_report == (True, [])


@pytest.mark.asyncio
async def test_round_trip(db_session: AsyncSession, electronics_tree: dict, attribute_factory):
    phones = electronics_tree["phones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)

    await service.bind_attribute_to_category(phones.id, x.id, is_required=True, sort=9)
    bindings = await service.get_category_attributes(phones.id)

    assert [(b.attribute_id, b.is_required, b.sort) for b in bindings] == [(x.id, True, 9)]

    await service.unbind_attribute_from_category(phones.id, x.id)

    assert await service.get_category_attributes(phones.id) == []


@pytest.mark.asyncio
async def test_electronics_phones_smartphones_scenario(
    db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    electronics = electronics_tree["electronics"]
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]
    color = await attribute_factory("color")
    service = AttributeBindingService(db_session)

    await service.bind_attribute_to_category(electronics.id, color.id, is_required=False)
    entry = _by_attribute(await service.get_category_attributes_with_inheritance(smartphones.id), color.id)
    assert (entry.is_inherited, entry.inherited_from_category_id, entry.is_required) == (True, electronics.id, False)

    # Phones 에는 이미 상속 행이 있으므로 직접 바인딩으로 승격됩니다.
    await service.bind_attribute_to_category(phones.id, color.id, is_required=True)
    entry = _by_attribute(await service.get_category_attributes_with_inheritance(smartphones.id), color.id)
    assert (entry.is_inherited, entry.inherited_from_category_id, entry.is_required) == (True, phones.id, True)

    await service.unbind_attribute_from_category(phones.id, color.id)
    entry = _by_attribute(await service.get_category_attributes_with_inheritance(smartphones.id), color.id)
    assert (entry.is_inherited, entry.inherited_from_category_id, entry.is_required) == (True, electronics.id, False)

    # unbind 캐스케이드는 삭제만 하므로 물질화 테이블은 재구축 전까지 어긋나 있습니다.
    is_consistent, issues = await service.validate_inheritance_consistency(smartphones.id)
    assert is_consistent is False
    assert len(issues) == 1

    assert await service.rebuild_category_inheritance(smartphones.id) == 1
    assert await service.validate_inheritance_consistency(smartphones.id) == (True, [])
    row = await attr_crud.category_attribute.get_live(db_session, category_id=smartphones.id, attribute_id=color.id)
    assert row.inherited_from_id == electronics.id
    assert row.is_required is False


@pytest.mark.asyncio
async def test_deleted_attribute_is_not_resolved(
    db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    electronics, smartphones = electronics_tree["electronics"], electronics_tree["smartphones"]
    x = await attribute_factory("x")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(electronics.id, x.id, is_required=False)

    await attr_crud.attribute.remove(db_session, db_obj=x)

    assert await service.get_category_attributes_with_inheritance(smartphones.id) == []
    assert await service.validate_inheritance_consistency(smartphones.id) == (True, [])


# =============================================================================
# 4. ARQ 태스크 / rebuild-all 엔드포인트
# =============================================================================
async def _drifted_tree(db_session: AsyncSession, electronics_tree: dict, attribute_factory) -> int:
    """unbind 후 Phones, Smartphones 두 카테고리에 누락 행이 생긴 상태를 만듭니다."""
    color = await attribute_factory("color")
    service = AttributeBindingService(db_session)
    await service.bind_attribute_to_category(electronics_tree["electronics"].id, color.id, is_required=False)
    await service.bind_attribute_to_category(electronics_tree["phones"].id, color.id, is_required=True)
    await service.unbind_attribute_from_category(electronics_tree["phones"].id, color.id)
    return color.id


@pytest.mark.asyncio
async def test_consistency_tasks(db_session: AsyncSession, electronics_tree: dict, attribute_factory):
    await _drifted_tree(db_session, electronics_tree, attribute_factory)

    report = await attr_tasks.validate_inheritance_consistency_task({"db": db_session})
    assert report == {"status": "ok", "inconsistent_categories": 2}

    summary = await attr_tasks.rebuild_inheritance_for_all_categories_task({"db": db_session})
    assert summary == {"status": "ok", "categories": 3, "inserted": 2}

    report = await attr_tasks.validate_inheritance_consistency_task({"db": db_session})
    assert report["inconsistent_categories"] == 0


@pytest.mark.asyncio
async def test_rebuild_all_endpoint_runs_inline_without_redis(
    client: AsyncClient, db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    await _drifted_tree(db_session, electronics_tree, attribute_factory)
    smartphones = electronics_tree["smartphones"]

    before = (await client.get(f"/api/v1/attr/categories/{smartphones.id}/attributes/validate-inheritance")).json()
    assert before["is_consistent"] is False

    response = await client.post("/api/v1/attr/categories/attributes/rebuild-all")

    assert response.status_code == 200
    assert response.json() == {"status": "completed", "job_id": None, "categories": 3, "inserted": 2}
    after = (await client.get(f"/api/v1/attr/categories/{smartphones.id}/attributes/validate-inheritance")).json()
    assert after == {"category_id": smartphones.id, "is_consistent": True, "issues": []}


@pytest.mark.asyncio
async def test_rebuild_single_category_endpoint(
    client: AsyncClient, db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    await _drifted_tree(db_session, electronics_tree, attribute_factory)
    phones = electronics_tree["phones"]

    response = await client.post(f"/api/v1/attr/categories/{phones.id}/attributes/rebuild-inheritance")

    assert response.json() == {"category_id": phones.id, "inserted": 1}
    missing = await client.post("/api/v1/attr/categories/9999/attributes/rebuild-inheritance")
    assert missing.status_code == 404
