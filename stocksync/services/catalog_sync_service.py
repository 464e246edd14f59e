"""
Pulls a store's catalog through the commerce REST API into the local mirror.

Products are upserted by (store, remote id) first; variations of variable
products are fetched afterwards, once every parent row exists.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stocksync.core.enums import ProductType, StockStatus, StoreStatus
from stocksync.core.exceptions import CredentialError, StoreGatewayError, StoreNotFoundError, SyncError
from stocksync.core.utils import utcnow
from stocksync.integrations.platforms.woocommerce import CommerceRestClient
from stocksync.integrations.setup import build_commerce_client
from stocksync.models.product import Product, ProductVariation
from stocksync.models.store import Store
from stocksync.schemas.store import CatalogSyncResult

logger = logging.getLogger(__name__)

# Meta keys that cost-of-goods plugins use for the purchase price
PURCHASE_PRICE_META_KEYS = ('_purchase_price', '_cost', '_wc_cog_cost', '_alg_wc_cog_cost')


def extract_purchase_price(meta_data: Optional[List[Dict[str, Any]]]) -> Optional[float]:
    if not meta_data:
        return None
    by_key = {m.get('key'): m.get('value') for m in meta_data if isinstance(m, dict)}
    for key in PURCHASE_PRICE_META_KEYS:
        value = by_key.get(key)
        if value in (None, ''):
            continue
        try:
            price = float(value)
        except (TypeError, ValueError):
            continue
        if price > 0:
            return price
    return None


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _stock_status(raw: Dict[str, Any]) -> str:
    status = raw.get('stock_status')
    if status in {s.value for s in StockStatus}:
        return status
    return StockStatus.for_quantity(raw.get('stock_quantity') or 0).value


class CatalogSyncService:
    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[Store], CommerceRestClient] = build_commerce_client,
    ):
        self.db = db
        self.client_factory = client_factory

    async def reset_stuck_syncs(self) -> int:
        """Clear is_syncing flags left behind by a crashed or restarted worker"""
        result = await self.db.execute(
            update(Store).where(Store.is_syncing.is_(True)).values(is_syncing=False)
        )
        await self.db.commit()
        if result.rowcount:
            logger.info(f"Reset {result.rowcount} stores stuck in syncing state")
        return result.rowcount or 0

    async def _upsert_product(self, store_id: int, raw: Dict[str, Any]) -> Product:
        result = await self.db.execute(
            select(Product).where(Product.store_id == store_id, Product.remote_id == raw['id'])
        )
        product = result.scalar_one_or_none()
        if product is None:
            product = Product(store_id=store_id, remote_id=raw['id'])
            self.db.add(product)

        product.name = raw.get('name') or f"Product {raw['id']}"
        product.sku = raw.get('sku') or None
        product.product_type = raw.get('type') or ProductType.SIMPLE.value
        product.price = _to_float(raw.get('price'))
        product.purchase_price = extract_purchase_price(raw.get('meta_data'))
        product.stock_quantity = raw.get('stock_quantity') or 0
        product.stock_status = _stock_status(raw)
        product.manage_stock = bool(raw.get('manage_stock'))
        product.is_active = raw.get('status') == 'publish'
        product.synced_at = utcnow()
        return product

    async def _upsert_variation(self, product_id: int, raw: Dict[str, Any]) -> ProductVariation:
        result = await self.db.execute(
            select(ProductVariation).where(
                ProductVariation.product_id == product_id,
                ProductVariation.remote_id == raw['id'],
            )
        )
        variation = result.scalar_one_or_none()
        if variation is None:
            variation = ProductVariation(product_id=product_id, remote_id=raw['id'])
            self.db.add(variation)

        variation.sku = raw.get('sku') or None
        variation.attributes = {
            attr.get('name'): attr.get('option')
            for attr in raw.get('attributes') or []
            if isinstance(attr, dict)
        }
        variation.price = _to_float(raw.get('price'))
        variation.stock_quantity = raw.get('stock_quantity') or 0
        variation.stock_status = _stock_status(raw)
        variation.manage_stock = bool(raw.get('manage_stock'))
        variation.is_active = True
        return variation

    async def sync_store(self, store_id: int) -> CatalogSyncResult:
        """
        Pull and upsert the full catalog of one store.

        Raises:
            StoreNotFoundError: If the store does not exist
            SyncError: If a sync for the store is already running
        """
        store = await self.db.get(Store, store_id)
        if store is None:
            raise StoreNotFoundError(f"Store {store_id} not found")
        if store.is_syncing:
            raise SyncError(f"Store {store_id} is already syncing")

        store.is_syncing = True
        await self.db.commit()
        logger.info(f"Starting catalog sync for store {store.id} ({store.name})")

        try:
            client = self.client_factory(store)
            raw_products = await client.get_all_products()

            saved: Dict[int, Product] = {}
            variable_ids: List[int] = []
            for raw in raw_products:
                saved[raw['id']] = await self._upsert_product(store.id, raw)
                if raw.get('type') == ProductType.VARIABLE.value:
                    variable_ids.append(raw['id'])
            await self.db.flush()

            variation_count = 0
            for remote_id in variable_ids:
                for raw in await client.get_product_variations(remote_id):
                    await self._upsert_variation(saved[remote_id].id, raw)
                    variation_count += 1

            store.status = StoreStatus.ACTIVE.value
            store.is_syncing = False
            store.last_sync_at = utcnow()
            store.last_error = None
            await self.db.commit()

        except (StoreGatewayError, CredentialError) as e:
            await self.db.rollback()
            await self._mark_failed(store_id, str(e))
            logger.error(f"Catalog sync failed for store {store_id}: {str(e)}")
            return CatalogSyncResult(store_id=store_id, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during catalog sync for store {store_id}: {str(e)}")
            await self.db.rollback()
            await self._mark_failed(store_id, f"Catalog sync crashed: {str(e)}")
            raise

        logger.info(
            f"Catalog sync completed for store {store.id}: "
            f"{len(raw_products)} products, {variation_count} variations"
        )
        return CatalogSyncResult(
            store_id=store.id,
            products=len(raw_products),
            variations=variation_count,
        )

    async def _mark_failed(self, store_id: int, error: str) -> None:
        await self.db.execute(
            update(Store)
            .where(Store.id == store_id)
            .values(status=StoreStatus.ERROR.value, is_syncing=False, last_error=error)
        )
        await self.db.commit()

    async def sync_all_stores(self) -> List[CatalogSyncResult]:
        """Scheduled entry point: every active store that is not already syncing"""
        result = await self.db.execute(
            select(Store.id)
            .where(Store.status != StoreStatus.INACTIVE.value, Store.is_syncing.is_(False))
            .order_by(Store.id)
        )
        results = []
        for store_id in result.scalars().all():
            try:
                results.append(await self.sync_store(store_id))
            except SyncError as e:
                logger.info(str(e))
            except Exception as e:
                logger.error(f"Catalog sync for store {store_id} aborted: {str(e)}")
                results.append(CatalogSyncResult(store_id=store_id, success=False, error=str(e)))
        return results
