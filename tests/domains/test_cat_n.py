# tests/domains/test_cat_n.py

"""
'cat' 도메인 (카테고리 트리) API 엔드포인트 통합 테스트 모듈입니다.

- 카테고리 생성 시 level 계산과 상위 계보의 상속 바인딩 물질화
- 트리 조회 (children, descendants, path, tree)
- 이동(move) 시 순환 참조 차단과 level 재계산
- 생성과 이동의 깊이 한도 (CATEGORY_MAX_DEPTH)
- 하위 카테고리가 있는 카테고리 삭제 거부
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from pim.core.config import settings
from pim.core.exceptions import NotFoundError
from pim.domains.attr import crud as attr_crud
from pim.domains.attr.services import AttributeBindingService
from pim.domains.cat import crud as cat_crud
from pim.domains.cat.tree import CategoryTreeAccessor

API = "/api/v1/cat"


async def _create(client: AsyncClient, name: str, parent_id=None, sort: int = 0) -> dict:
    response = await client.post(f"{API}/categories", json={"name": name, "parent_id": parent_id, "sort": sort})
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# 1. 생성 / 조회
# =============================================================================
@pytest.mark.asyncio
async def test_create_category_computes_level(client: AsyncClient):
    root = await _create(client, "Electronics")
    child = await _create(client, "Phones", parent_id=root["id"])
    grandchild = await _create(client, "Smartphones", parent_id=child["id"])

    assert root["level"] == 1
    assert child["level"] == 2
    assert grandchild["level"] == 3
    assert grandchild["parent_id"] == child["id"]


@pytest.mark.asyncio
async def test_create_category_with_unknown_parent(client: AsyncClient):
    response = await client.post(f"{API}/categories", json={"name": "Orphan", "parent_id": 999})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_create_child_materializes_inherited_bindings(
    client: AsyncClient, db_session: AsyncSession, category_factory, attribute_factory
):
    """상속 속성이 있는 카테고리 아래에 새 카테고리를 만들면 상속 행이 함께 생깁니다."""
    root = await category_factory("Electronics")
    color = await attribute_factory("color")
    await AttributeBindingService(db_session).bind_attribute_to_category(root.id, color.id, is_required=True)

    child = await _create(client, "Phones", parent_id=root.id)

    row = await attr_crud.category_attribute.get_live(db_session, category_id=child["id"], attribute_id=color.id)
    assert row is not None
    assert row.inherited_from_id == root.id
    assert row.is_required is True

    response = await client.get(f"/api/v1/attr/categories/{child['id']}/attributes/validate-inheritance")
    assert response.json()["is_consistent"] is True


@pytest.mark.asyncio
async def test_list_and_tree(client: AsyncClient):
    root = await _create(client, "Electronics")
    await _create(client, "Phones", parent_id=root["id"], sort=2)
    await _create(client, "Laptops", parent_id=root["id"], sort=1)
    await _create(client, "Books")

    roots = (await client.get(f"{API}/categories", params={"roots_only": True})).json()
    assert [c["name"] for c in roots] == ["Electronics", "Books"]

    children = (await client.get(f"{API}/categories", params={"parent_id": root["id"]})).json()
    assert [c["name"] for c in children] == ["Laptops", "Phones"]

    tree = (await client.get(f"{API}/categories/tree")).json()
    assert [node["name"] for node in tree] == ["Electronics", "Books"]
    assert [node["name"] for node in tree[0]["children"]] == ["Laptops", "Phones"]

    subtree = (await client.get(f"{API}/categories/tree", params={"root_id": root["id"]})).json()
    assert len(subtree) == 1
    assert len(subtree[0]["children"]) == 2


@pytest.mark.asyncio
async def test_update_category(client: AsyncClient):
    root = await _create(client, "Electronics")

    response = await client.put(f"{API}/categories/{root['id']}", json={"name": "Consumer Electronics"})

    assert response.status_code == 200
    assert response.json()["name"] == "Consumer Electronics"
    assert response.json()["level"] == 1


# =============================================================================
# 2. 트리 조회 (Category Tree Accessor)
# =============================================================================
@pytest.mark.asyncio
async def test_tree_accessor_endpoints(client: AsyncClient, electronics_tree: dict):
    electronics = electronics_tree["electronics"]
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]

    children = (await client.get(f"{API}/categories/{electronics.id}/children")).json()
    assert [c["id"] for c in children] == [phones.id]

    descendants = (await client.get(f"{API}/categories/{electronics.id}/descendants")).json()
    assert descendants == [phones.id, smartphones.id]

    path = (await client.get(f"{API}/categories/{smartphones.id}/path")).json()
    assert [c["id"] for c in path] == [electronics.id, phones.id, smartphones.id]

    leaf_descendants = (await client.get(f"{API}/categories/{smartphones.id}/descendants")).json()
    assert leaf_descendants == []


@pytest.mark.asyncio
async def test_tree_accessor_hides_deleted_and_unknown(
    db_session: AsyncSession, electronics_tree: dict, category_factory
):
    electronics = electronics_tree["electronics"]
    tablets = await category_factory("Tablets", parent=electronics)
    tree = CategoryTreeAccessor(db_session)

    assert tablets.id in await tree.get_all_descendants(electronics.id)

    response_path = await tree.get_ancestor_ids(tablets.id)
    assert response_path == [electronics.id, tablets.id]

    await cat_crud.category.remove(db_session, db_obj=tablets)

    assert tablets.id not in await tree.get_all_descendants(electronics.id)
    with pytest.raises(NotFoundError):
        await tree.get_ancestor_path(tablets.id)
    with pytest.raises(NotFoundError):
        await tree.get_children(9999)


@pytest.mark.asyncio
async def test_descendants_respect_depth_guard(db_session: AsyncSession, electronics_tree: dict):
    tree = CategoryTreeAccessor(db_session, max_depth=1)

    descendants = await tree.get_all_descendants(electronics_tree["electronics"].id)

    assert descendants == [electronics_tree["phones"].id]


# =============================================================================
# 3. 이동 (move)
# =============================================================================
@pytest.mark.asyncio
async def test_move_recomputes_levels(client: AsyncClient, electronics_tree: dict, category_factory):
    books = await category_factory("Books")
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]

    response = await client.post(f"{API}/categories/{phones.id}/move", json={"new_parent_id": None})

    assert response.status_code == 200
    body = response.json()
    assert body["category"]["level"] == 1
    assert body["category"]["parent_id"] is None
    assert body["moved_category_ids"] == [phones.id, smartphones.id]

    leaf = (await client.get(f"{API}/categories/{smartphones.id}")).json()
    assert leaf["level"] == 2

    response = await client.post(f"{API}/categories/{phones.id}/move", json={"new_parent_id": books.id})
    assert response.json()["category"]["level"] == 2
    leaf = (await client.get(f"{API}/categories/{smartphones.id}")).json()
    assert leaf["level"] == 3


@pytest.mark.asyncio
async def test_move_rejects_cycles(client: AsyncClient, electronics_tree: dict):
    electronics = electronics_tree["electronics"]
    smartphones = electronics_tree["smartphones"]

    under_descendant = await client.post(
        f"{API}/categories/{electronics.id}/move", json={"new_parent_id": smartphones.id}
    )
    under_self = await client.post(
        f"{API}/categories/{electronics.id}/move", json={"new_parent_id": electronics.id}
    )

    assert under_descendant.status_code == 422
    assert under_self.status_code == 422


@pytest.mark.asyncio
async def test_move_materializes_new_lineage(
    client: AsyncClient, db_session: AsyncSession, electronics_tree: dict, category_factory, attribute_factory
):
    """이동 후 새 계보의 상속 바인딩이 하위 트리 전체에 물질화됩니다."""
    books = await category_factory("Books")
    isbn = await attribute_factory("isbn")
    await AttributeBindingService(db_session).bind_attribute_to_category(books.id, isbn.id, is_required=True)
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]

    response = await client.post(f"{API}/categories/{phones.id}/move", json={"new_parent_id": books.id})

    assert response.json()["inherited_bindings_inserted"] == 2
    for category_id in (phones.id, smartphones.id):
        row = await attr_crud.category_attribute.get_live(db_session, category_id=category_id, attribute_id=isbn.id)
        assert row is not None
        assert row.inherited_from_id == books.id


@pytest.mark.asyncio
async def test_move_rejects_subtree_deeper_than_limit(
    client: AsyncClient, electronics_tree: dict, category_factory, monkeypatch
):
    """이동 후 하위 트리의 가장 깊은 level 이 한도를 넘으면 거부합니다."""
    monkeypatch.setattr(settings, "CATEGORY_MAX_DEPTH", 3)
    books = await category_factory("Books")
    novels = await category_factory("Novels", parent=books)
    phones = electronics_tree["phones"]
    smartphones = electronics_tree["smartphones"]

    too_deep = await client.post(f"{API}/categories/{phones.id}/move", json={"new_parent_id": novels.id})
    assert too_deep.status_code == 422
    leaf = (await client.get(f"{API}/categories/{smartphones.id}")).json()
    assert leaf["level"] == 3
    assert leaf["parent_id"] == phones.id

    allowed = await client.post(f"{API}/categories/{phones.id}/move", json={"new_parent_id": books.id})
    assert allowed.status_code == 200
    assert allowed.json()["moved_category_ids"] == [phones.id, smartphones.id]


# =============================================================================
# 4. 깊이 한도 (CATEGORY_MAX_DEPTH)
# =============================================================================
@pytest.mark.asyncio
async def test_create_rejects_level_deeper_than_limit(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "CATEGORY_MAX_DEPTH", 3)
    root = await _create(client, "Electronics")
    child = await _create(client, "Phones", parent_id=root["id"])
    leaf = await _create(client, "Smartphones", parent_id=child["id"])

    response = await client.post(f"{API}/categories", json={"name": "Foldables", "parent_id": leaf["id"]})

    assert response.status_code == 422
    assert "maximum depth" in response.json()["detail"]
    children = (await client.get(f"{API}/categories/{leaf['id']}/children")).json()
    assert children == []


@pytest.mark.asyncio
async def test_deepest_allowed_category_inherits_from_root(client: AsyncClient, monkeypatch):
    """한도까지 내려간 체인에서도 루트 바인딩이 끝까지 전파되고 조회됩니다."""
    monkeypatch.setattr(settings, "CATEGORY_MAX_DEPTH", 5)
    chain = [await _create(client, "Level 1")]
    for depth in range(2, 6):
        chain.append(await _create(client, f"Level {depth}", parent_id=chain[-1]["id"]))
    attribute = (await client.post(
        "/api/v1/attr/attributes", json={"name": "x", "display_name": "X", "type": "text"}
    )).json()

    bound = await client.post(
        "/api/v1/attr/categories/attributes/bind",
        json={"category_id": chain[0]["id"], "attribute_id": attribute["id"]},
    )

    assert bound.json()["cascade"]["total"] == 4
    assert bound.json()["cascade"]["succeeded"] == 4
    leaf_id = chain[-1]["id"]
    effective = (await client.get(f"/api/v1/attr/categories/{leaf_id}/attributes/inheritance")).json()
    assert [(e["attribute_id"], e["inherited_from_category_id"]) for e in effective] == [
        (attribute["id"], chain[0]["id"])
    ]
    descendants = (await client.get(f"{API}/categories/{chain[0]['id']}/descendants")).json()
    assert descendants == [c["id"] for c in chain[1:]]


# =============================================================================
# 5. 삭제
# =============================================================================
@pytest.mark.asyncio
async def test_delete_category_with_children_is_rejected(client: AsyncClient, electronics_tree: dict):
    response = await client.delete(f"{API}/categories/{electronics_tree['electronics'].id}")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_leaf_category(
    client: AsyncClient, db_session: AsyncSession, electronics_tree: dict, attribute_factory
):
    smartphones = electronics_tree["smartphones"]
    color = await attribute_factory("color")
    await AttributeBindingService(db_session).bind_attribute_to_category(smartphones.id, color.id)

    response = await client.delete(f"{API}/categories/{smartphones.id}")

    assert response.status_code == 204
    assert (await client.get(f"{API}/categories/{smartphones.id}")).status_code == 404
    assert await attr_crud.category_attribute.get_live(
        db_session, category_id=smartphones.id, attribute_id=color.id
    ) is None
