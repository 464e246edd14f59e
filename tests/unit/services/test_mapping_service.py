# tests/unit/services/test_mapping_service.py
import pytest
from sqlalchemy import select

from stocksync.core.exceptions import (
    DuplicateMasterSkuError,
    InsufficientStoreDiversityError,
    InvalidProductSelectionError,
    MappingNotFoundError,
    MappingSizeError,
    ProductAlreadyMappedError,
    SourceItemRemovalError,
)
from stocksync.models.product_mapping import ProductMappingItem
from stocksync.schemas.product_mapping import MappingUpdate
from stocksync.services.mapping_service import MappingService


@pytest.fixture
async def catalog(make_store, make_product):
    """Stores A and B with two products each, plus a product in another company"""
    store_a = await make_store(name="Store A", url="https://a.example.com")
    store_b = await make_store(name="Store B", url="https://b.example.com")
    other = await make_store(name="Other Co", url="https://other.example.com", company_id=2)
    return {
        "store_a": store_a,
        "store_b": store_b,
        "a1": await make_product(store_a, 101, name="Mug", sku="MUG-1", stock=4),
        "a2": await make_product(store_a, 102, name="Mug (spare)", sku="MUG-1B", stock=1),
        "b1": await make_product(store_b, 201, name="Mug", sku="MUG-1", stock=6),
        "b2": await make_product(store_b, 202, name="Lamp", sku="LAMP-1", stock=2, variations=[
            {"remote_id": 2021, "sku": "LAMP-1-RED", "stock": 3},
            {"remote_id": 2022, "sku": "LAMP-1-BLUE", "stock": 5},
        ]),
        "foreign": await make_product(other, 301, name="Mug", sku="MUG-1"),
    }


@pytest.mark.asyncio
async def test_create_marks_first_product_as_source(db_session, catalog):
    service = MappingService(db_session)

    mapping = await service.create_mapping(1, "MUG-1", [catalog["b1"].id, catalog["a1"].id], name="Mug")

    assert mapping.master_sku == "MUG-1"
    assert mapping.name == "Mug"
    assert mapping.store_count == 2
    sources = [item for item in mapping.items if item.is_source]
    assert len(sources) == 1
    assert sources[0].product_id == catalog["b1"].id
    assert mapping.real_stock == 6
    assert mapping.total_stock == 10


@pytest.mark.asyncio
async def test_read_uses_variation_sum_for_variable_products(db_session, catalog):
    service = MappingService(db_session)

    mapping = await service.create_mapping(1, "LAMP", [catalog["b2"].id, catalog["a2"].id])

    by_product = {item.product_id: item for item in mapping.items}
    assert by_product[catalog["b2"].id].stock_quantity == 8
    assert mapping.real_stock == 8
    assert mapping.total_stock == 9


@pytest.mark.asyncio
async def test_create_rejects_duplicate_master_sku(db_session, catalog):
    service = MappingService(db_session)
    await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])

    with pytest.raises(DuplicateMasterSkuError):
        await service.create_mapping(1, "MUG-1", [catalog["a2"].id, catalog["b2"].id])


@pytest.mark.asyncio
async def test_create_rejects_single_store(db_session, catalog):
    with pytest.raises(InsufficientStoreDiversityError):
        await MappingService(db_session).create_mapping(1, "MUG", [catalog["a1"].id, catalog["a2"].id])


@pytest.mark.asyncio
async def test_create_rejects_fewer_than_two_distinct_products(db_session, catalog):
    with pytest.raises(MappingSizeError):
        await MappingService(db_session).create_mapping(1, "MUG", [catalog["a1"].id, catalog["a1"].id])


@pytest.mark.asyncio
async def test_create_rejects_unknown_or_foreign_products(db_session, catalog):
    service = MappingService(db_session)

    with pytest.raises(InvalidProductSelectionError):
        await service.create_mapping(1, "MUG", [catalog["a1"].id, 99999])
    with pytest.raises(InvalidProductSelectionError):
        await service.create_mapping(1, "MUG", [catalog["a1"].id, catalog["foreign"].id])


@pytest.mark.asyncio
async def test_product_belongs_to_at_most_one_mapping(db_session, catalog):
    service = MappingService(db_session)
    await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])

    with pytest.raises(ProductAlreadyMappedError) as exc_info:
        await service.create_mapping(1, "OTHER", [catalog["a1"].id, catalog["b2"].id])

    assert exc_info.value.master_skus == ["MUG-1"]
    assert "MUG-1" in str(exc_info.value)


@pytest.mark.asyncio
async def test_add_products_skips_members_and_rejects_foreign_mappings(db_session, catalog):
    service = MappingService(db_session)
    mug = await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])
    lamp = await service.create_mapping(1, "LAMP", [catalog["b2"].id, catalog["a2"].id])

    # Re-adding an existing member is a no-op
    same = await service.add_products(1, mug.id, [catalog["b1"].id])
    assert len(same.items) == 2

    with pytest.raises(ProductAlreadyMappedError) as exc_info:
        await service.add_products(1, mug.id, [catalog["a2"].id])
    assert exc_info.value.master_skus == ["LAMP"]
    assert len((await service.get_mapping(1, lamp.id)).items) == 2


@pytest.mark.asyncio
async def test_create_translates_concurrent_unique_violations(db_session, catalog, mocker):
    service = MappingService(db_session)
    a1, b1, a2, b2 = (catalog[key].id for key in ("a1", "b1", "a2", "b2"))
    await service.create_mapping(1, "MUG-1", [a1, b1])

    # Checks that ran before another request committed
    mocker.patch.object(service, "_master_sku_taken", return_value=False)
    with pytest.raises(DuplicateMasterSkuError):
        await service.create_mapping(1, "MUG-1", [a2, b2])

    mocker.patch.object(service, "_existing_items", return_value=[])
    with pytest.raises(ProductAlreadyMappedError):
        await service.create_mapping(1, "MUG-COPY", [a1, b1])

    assert [m.master_sku for m in await service.get_mappings(1)] == ["MUG-1"]


@pytest.mark.asyncio
async def test_add_products_rechecks_after_concurrent_insert(db_session, catalog, monkeypatch):
    service = MappingService(db_session)
    a1, b1, a2, b2 = (catalog[key].id for key in ("a1", "b1", "a2", "b2"))
    mug = await service.create_mapping(1, "MUG-1", [a1, b1])
    await service.create_mapping(1, "LAMP", [b2, a2])

    real_existing_items = service._existing_items
    lookups = []

    async def stale_first_lookup(product_ids):
        lookups.append(product_ids)
        if len(lookups) == 1:
            return []
        return await real_existing_items(product_ids)

    monkeypatch.setattr(service, "_existing_items", stale_first_lookup)

    with pytest.raises(ProductAlreadyMappedError) as exc_info:
        await service.add_products(1, mug.id, [a2])
    assert exc_info.value.master_skus == ["LAMP"]
    assert len(lookups) == 2

    lookups.clear()
    same = await service.add_products(1, mug.id, [b1])
    assert len(same.items) == 2
    assert len(lookups) == 2


@pytest.mark.asyncio
async def test_added_products_are_never_source(db_session, make_store, make_product, catalog):
    service = MappingService(db_session)
    store_c = await make_store(name="Store C", url="https://c.example.com")
    c1 = await make_product(store_c, 401, sku="MUG-1", stock=2)
    mapping = await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])

    mapping = await service.add_products(1, mapping.id, [c1.id])

    assert len(mapping.items) == 3
    assert mapping.store_count == 3
    assert [item.product_id for item in mapping.items if item.is_source] == [catalog["a1"].id]


@pytest.mark.asyncio
async def test_remove_products_guards(db_session, make_store, make_product, catalog):
    service = MappingService(db_session)
    store_c = await make_store(name="Store C", url="https://c.example.com")
    c1 = await make_product(store_c, 401, sku="MUG-1")
    mapping = await service.create_mapping(
        1, "MUG-1", [catalog["a1"].id, catalog["b1"].id, catalog["a2"].id, c1.id]
    )

    with pytest.raises(SourceItemRemovalError):
        await service.remove_products(1, mapping.id, [catalog["a1"].id])

    # Removing B and C would leave two items, both in store A
    with pytest.raises(InsufficientStoreDiversityError):
        await service.remove_products(1, mapping.id, [catalog["b1"].id, c1.id])

    with pytest.raises(MappingSizeError):
        await service.remove_products(1, mapping.id, [catalog["b1"].id, catalog["a2"].id, c1.id])

    mapping = await service.remove_products(1, mapping.id, [catalog["a2"].id, c1.id])
    assert sorted(item.product_id for item in mapping.items) == sorted([catalog["a1"].id, catalog["b1"].id])

    # Removed products are free to be mapped again
    result = await db_session.execute(
        select(ProductMappingItem).where(ProductMappingItem.product_id == c1.id)
    )
    assert result.scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_update_mapping(db_session, catalog):
    service = MappingService(db_session)
    mug = await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])
    await service.create_mapping(1, "LAMP", [catalog["b2"].id, catalog["a2"].id])

    updated = await service.update_mapping(1, mug.id, MappingUpdate(name="Coffee mug", master_sku=" MUG-2 "))
    assert updated.name == "Coffee mug"
    assert updated.master_sku == "MUG-2"

    with pytest.raises(DuplicateMasterSkuError):
        await service.update_mapping(1, mug.id, MappingUpdate(master_sku="LAMP"))

    # Unset fields stay as they are
    renamed = await service.update_mapping(1, mug.id, MappingUpdate(name="Mug"))
    assert renamed.master_sku == "MUG-2"


@pytest.mark.asyncio
async def test_delete_mapping_unmaps_products(db_session, catalog):
    service = MappingService(db_session)
    mapping = await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])

    await service.delete_mapping(1, mapping.id)

    with pytest.raises(MappingNotFoundError):
        await service.get_mapping(1, mapping.id)
    result = await db_session.execute(select(ProductMappingItem))
    assert result.scalars().all() == []

    # Products can be grouped again straight away
    again = await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])
    assert len(again.items) == 2


@pytest.mark.asyncio
async def test_mapping_is_company_scoped(db_session, catalog):
    service = MappingService(db_session)
    mapping = await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id])

    with pytest.raises(MappingNotFoundError):
        await service.get_mapping(2, mapping.id)
    assert await service.get_mappings(2) == []


@pytest.mark.asyncio
async def test_consolidated_inventory(db_session, catalog):
    service = MappingService(db_session)
    await service.create_mapping(1, "MUG-1", [catalog["a1"].id, catalog["b1"].id, catalog["a2"].id])

    inventory = await service.get_consolidated_inventory(1)

    assert len(inventory) == 1
    entry = inventory[0]
    assert entry.master_sku == "MUG-1"
    assert entry.total_stock == 11
    stock_by_store = {s.store_name: s.stock for s in entry.stores}
    assert stock_by_store == {"Store A": 5, "Store B": 6}
