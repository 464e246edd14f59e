# tests/unit/services/test_catalog_sync_service.py
import pytest
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from stocksync.core.enums import StoreStatus
from stocksync.core.exceptions import StoreNotFoundError, SyncError
from stocksync.models.product import Product
from stocksync.services.catalog_sync_service import CatalogSyncService, extract_purchase_price

REMOTE_CATALOG = [
    {
        "id": 11, "name": "Coffee Mug", "sku": "MUG-1", "type": "simple", "status": "publish",
        "price": "12.50", "stock_quantity": 4, "stock_status": "instock", "manage_stock": True,
        "meta_data": [{"key": "_wc_cog_cost", "value": "3.10"}],
    },
    {
        "id": 12, "name": "T-Shirt", "sku": "TEE", "type": "variable", "status": "draft",
        "price": "", "stock_quantity": None, "manage_stock": False, "meta_data": [],
    },
]

REMOTE_VARIATIONS = {
    12: [
        {"id": 121, "sku": "TEE-S", "price": "20", "stock_quantity": 0, "manage_stock": True,
         "attributes": [{"name": "Size", "option": "S"}]},
        {"id": 122, "sku": "TEE-M", "price": "20", "stock_quantity": 7, "manage_stock": True,
         "attributes": [{"name": "Size", "option": "M"}]},
    ],
}


@pytest.mark.parametrize("meta, expected", [
    ([{"key": "_purchase_price", "value": "4.5"}], 4.5),
    ([{"key": "_cost", "value": ""}, {"key": "_alg_wc_cog_cost", "value": 2}], 2.0),
    ([{"key": "_purchase_price", "value": "0"}], None),
    ([{"key": "_purchase_price", "value": "n/a"}], None),
    ([{"key": "unrelated", "value": "9"}], None),
    (None, None),
])
def test_extract_purchase_price(meta, expected):
    assert extract_purchase_price(meta) == expected


@pytest.mark.asyncio
async def test_sync_store_upserts_products_and_variations(db_session, make_store, gateways):
    store = await make_store()
    gateways.catalogs[store.id] = REMOTE_CATALOG
    gateways.variations = REMOTE_VARIATIONS
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)

    result = await service.sync_store(store.id)

    assert result.success is True
    assert (result.products, result.variations) == (2, 2)

    rows = await db_session.execute(
        select(Product).options(selectinload(Product.variations))
        .where(Product.store_id == store.id).order_by(Product.remote_id)
        .execution_options(populate_existing=True)
    )
    mug, tee = rows.scalars().all()
    assert mug.price == 12.5
    assert mug.purchase_price == 3.1
    assert mug.is_active is True
    assert mug.stock_status == "instock"
    assert tee.is_active is False
    assert tee.stock_quantity == 0
    assert [(v.sku, v.stock_status, v.attributes) for v in tee.variations] == [
        ("TEE-S", "outofstock", {"Size": "S"}),
        ("TEE-M", "instock", {"Size": "M"}),
    ]
    assert tee.effective_stock == 7

    await db_session.refresh(store)
    assert store.is_syncing is False
    assert store.last_sync_at is not None


@pytest.mark.asyncio
async def test_resync_updates_in_place(db_session, make_store, gateways):
    store = await make_store()
    gateways.catalogs[store.id] = [dict(REMOTE_CATALOG[0])]
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)
    await service.sync_store(store.id)

    gateways.catalogs[store.id] = [dict(REMOTE_CATALOG[0], stock_quantity=1, name="Big Mug")]
    await service.sync_store(store.id)

    rows = await db_session.execute(
        select(Product).where(Product.store_id == store.id).execution_options(populate_existing=True)
    )
    products = rows.scalars().all()
    assert len(products) == 1
    assert products[0].name == "Big Mug"
    assert products[0].stock_quantity == 1


@pytest.mark.asyncio
async def test_sync_failure_marks_store(db_session, make_store, gateways):
    store = await make_store()
    gateways.failing_stores.add(store.id)
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)

    result = await service.sync_store(store.id)

    assert result.success is False
    assert "Authentication failed" in result.error
    await db_session.refresh(store)
    assert store.status == StoreStatus.ERROR.value
    assert store.is_syncing is False
    assert store.last_error == result.error


@pytest.mark.asyncio
async def test_unexpected_error_releases_sync_flag(db_session, make_store, gateways):
    store = await make_store()
    gateways.catalogs[store.id] = [{"name": "Row without id", "type": "simple"}]
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)

    with pytest.raises(KeyError):
        await service.sync_store(store.id)

    await db_session.refresh(store)
    assert store.is_syncing is False
    assert store.status == StoreStatus.ERROR.value
    assert "Catalog sync crashed" in store.last_error

    gateways.catalogs[store.id] = [dict(REMOTE_CATALOG[0])]
    result = await service.sync_store(store.id)
    assert result.success is True
    assert result.products == 1


@pytest.mark.asyncio
async def test_sync_guards(db_session, make_store, gateways):
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)
    with pytest.raises(StoreNotFoundError):
        await service.sync_store(999)

    store = await make_store()
    store.is_syncing = True
    await db_session.commit()
    with pytest.raises(SyncError):
        await service.sync_store(store.id)

    assert await service.reset_stuck_syncs() == 1
    await db_session.refresh(store)
    assert store.is_syncing is False


@pytest.mark.asyncio
async def test_sync_all_stores_skips_inactive(db_session, make_store, gateways):
    active = await make_store(name="A", url="https://a.example.com")
    inactive = await make_store(name="B", url="https://b.example.com")
    inactive.status = StoreStatus.INACTIVE.value
    await db_session.commit()
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)

    results = await service.sync_all_stores()

    assert [r.store_id for r in results] == [active.id]


@pytest.mark.asyncio
async def test_sync_all_stores_continues_after_crash(db_session, make_store, gateways):
    broken = await make_store(name="A", url="https://a.example.com")
    healthy = await make_store(name="B", url="https://b.example.com")
    broken_id, healthy_id = broken.id, healthy.id
    gateways.catalogs[broken_id] = [{"name": "Row without id"}]
    gateways.catalogs[healthy_id] = [dict(REMOTE_CATALOG[0])]
    service = CatalogSyncService(db_session, client_factory=gateways.commerce_factory)

    results = await service.sync_all_stores()

    assert [(r.store_id, r.success) for r in results] == [(broken_id, False), (healthy_id, True)]
