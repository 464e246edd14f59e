"""
Store onboarding: registration, credential rotation, connector verification
and deletion.

Every secret is encrypted before it reaches the database. The plain webhook
secret is only handed back at creation or rotation time.
"""

import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stocksync.core.crypto import encrypt
from stocksync.core.enums import StoreStatus
from stocksync.core.exceptions import CredentialError, StoreNotFoundError, ValidationError
from stocksync.core.security import generate_webhook_secret
from stocksync.core.utils import normalize_store_url, utcnow
from stocksync.integrations.base import ConnectionCheck
from stocksync.integrations.platforms.stock_connector import StockConnectorClient
from stocksync.integrations.platforms.woocommerce import CommerceRestClient
from stocksync.integrations.setup import build_commerce_client, build_stock_connector
from stocksync.models.product_mapping import ProductMapping, ProductMappingItem
from stocksync.models.store import Store
from stocksync.schemas.store import StoreCreate, StoreCredentialsUpdate, StoreWithSecret

logger = logging.getLogger(__name__)


class StoreService:
    def __init__(
        self,
        db: AsyncSession,
        connector_factory: Callable[[Store], StockConnectorClient] = build_stock_connector,
        commerce_factory: Callable[[Store], CommerceRestClient] = build_commerce_client,
    ):
        self.db = db
        self.connector_factory = connector_factory
        self.commerce_factory = commerce_factory

    async def get_store(self, store_id: int) -> Store:
        store = await self.db.get(Store, store_id)
        if store is None:
            raise StoreNotFoundError(f"Store {store_id} not found")
        return store

    async def create_store(self, company_id: int, data: StoreCreate) -> StoreWithSecret:
        url = data.url.strip().rstrip("/")
        existing = await self.db.execute(
            select(Store.id).where(
                Store.company_id == company_id,
                func.lower(Store.url) == normalize_store_url(url),
            )
        )
        if existing.first() is not None:
            raise ValidationError(f"A store with URL {url} is already connected")

        has_connector = bool(data.connector_api_key and data.connector_api_secret)
        webhook_secret = generate_webhook_secret()

        store = Store(
            company_id=company_id,
            name=data.name,
            url=url,
            status=StoreStatus.ACTIVE.value,
            consumer_key=encrypt(data.consumer_key),
            consumer_secret=encrypt(data.consumer_secret),
            has_stock_connector=has_connector,
            connector_api_key=encrypt(data.connector_api_key) if has_connector else None,
            connector_api_secret=encrypt(data.connector_api_secret) if has_connector else None,
            webhook_secret=encrypt(webhook_secret),
        )
        self.db.add(store)
        await self.db.commit()

        logger.info(f"Registered store {store.id} ({url}) for company {company_id}")
        return self._with_secret(store, webhook_secret)

    @staticmethod
    def _with_secret(store: Store, webhook_secret: Optional[str]) -> StoreWithSecret:
        result = StoreWithSecret.model_validate(store)
        return result.model_copy(update={"webhook_secret": webhook_secret})

    async def update_credentials(self, store_id: int, data: StoreCredentialsUpdate) -> StoreWithSecret:
        store = await self.get_store(store_id)

        if data.consumer_key:
            store.consumer_key = encrypt(data.consumer_key)
        if data.consumer_secret:
            store.consumer_secret = encrypt(data.consumer_secret)

        if data.disable_stock_connector:
            store.has_stock_connector = False
            store.connector_api_key = None
            store.connector_api_secret = None
        else:
            if data.connector_api_key:
                store.connector_api_key = encrypt(data.connector_api_key)
            if data.connector_api_secret:
                store.connector_api_secret = encrypt(data.connector_api_secret)
            store.has_stock_connector = bool(store.connector_api_key and store.connector_api_secret)

        new_secret = None
        if data.regenerate_webhook_secret:
            new_secret = generate_webhook_secret()
            store.webhook_secret = encrypt(new_secret)

        await self.db.commit()
        logger.info(f"Updated credentials for store {store.id}")
        return self._with_secret(store, new_secret)

    async def verify_connector(self, store_id: int) -> ConnectionCheck:
        store = await self.get_store(store_id)
        try:
            client = self.connector_factory(store)
        except CredentialError as e:
            return ConnectionCheck(success=False, error=str(e))

        check = await client.verify()
        if check.success:
            store.connector_last_sync_at = utcnow()
            store.last_error = None
        else:
            store.last_error = check.error
        await self.db.commit()
        return check

    async def verify_commerce(self, store_id: int) -> ConnectionCheck:
        """Check that the commerce REST credentials can read the catalog"""
        store = await self.get_store(store_id)
        try:
            client = self.commerce_factory(store)
        except CredentialError as e:
            return ConnectionCheck(success=False, error=str(e))

        check = await client.test_connection()
        if not check.success:
            store.last_error = check.error
            await self.db.commit()
        return check

    async def delete_store(self, store_id: int) -> Tuple[int, List[int]]:
        """
        Delete a store with its products and mapping items.

        Mappings that fall below two items or two stores are deleted too.
        Returns the number of mapping items removed and the ids of the
        mappings that went with them.
        """
        await self.get_store(store_id)

        affected = await self.db.execute(
            select(ProductMappingItem.mapping_id)
            .where(ProductMappingItem.store_id == store_id)
            .distinct()
        )
        mapping_ids = list(affected.scalars().all())

        removed = await self.db.execute(
            delete(ProductMappingItem).where(ProductMappingItem.store_id == store_id)
        )

        dropped: List[int] = []
        for mapping_id in mapping_ids:
            counts = await self.db.execute(
                select(
                    func.count(ProductMappingItem.id),
                    func.count(func.distinct(ProductMappingItem.store_id)),
                ).where(ProductMappingItem.mapping_id == mapping_id)
            )
            item_count, store_count = counts.one()
            if item_count < 2 or store_count < 2:
                await self.db.execute(delete(ProductMappingItem).where(ProductMappingItem.mapping_id == mapping_id))
                await self.db.execute(delete(ProductMapping).where(ProductMapping.id == mapping_id))
                dropped.append(mapping_id)

        # Products and variations go with the store through ON DELETE CASCADE;
        # webhook logs stay behind with store_id set to NULL
        await self.db.execute(delete(Store).where(Store.id == store_id))
        await self.db.commit()

        logger.info(
            f"Deleted store {store_id}: {removed.rowcount or 0} mapping items removed, "
            f"mappings dropped: {dropped or 'none'}"
        )
        return removed.rowcount or 0, dropped
