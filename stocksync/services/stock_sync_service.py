"""
Synchronization coordinator.

Inbound stock changes (webhooks from a store's stock-connector plugin) are
applied to the local mirror and, when the changed product is the source of a
mapping, pushed to every other member of that mapping. Dashboard edits use the
same single-target push but never fan out; the edited store's own webhook
echo drives propagation.

Per inbound event:
    received -> resolved -> cooldown check -> applied -> propagated | skipped
with a terminal 'failed' on any resolution error. Every step is mirrored in a
WebhookLog row committed before the first mutation.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stocksync.core.config import get_settings
from stocksync.core.enums import ItemKind, WebhookDirection, WebhookEvent
from stocksync.core.exceptions import (
    CredentialError,
    ProductNotFoundError,
    StoreGatewayError,
    VariationNotFoundError,
)
from stocksync.core.utils import normalize_store_url, utcnow
from stocksync.integrations.base import StoreGateway
from stocksync.integrations.events import StockChangeEvent
from stocksync.integrations.setup import build_stock_connector
from stocksync.models.product import Product, ProductVariation
from stocksync.models.product_mapping import ProductMapping, ProductMappingItem
from stocksync.models.store import Store
from stocksync.models.webhook_log import WebhookLog
from stocksync.schemas.webhook import StockUpdateResult, WebhookPayload, WebhookStats
from stocksync.services.cooldown import Clock, CooldownCache, cooldown_key
from stocksync.services.webhook_log_service import WebhookLogService

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[Store], StoreGateway]


@dataclass
class WebhookOutcome:
    processed: bool
    synced: int = 0
    message: str = ""


@dataclass
class SyncTarget:
    """One sibling item to push to, captured before any write"""
    store_id: int
    store_name: str
    remote_id: int


class StockSyncService:
    def __init__(
        self,
        db: AsyncSession,
        cooldown: CooldownCache,
        clock: Clock = utcnow,
        gateway_factory: GatewayFactory = build_stock_connector,
        cooldown_seconds: Optional[int] = None,
    ):
        self.db = db
        self.cooldown = cooldown
        self.clock = clock
        self.gateway_factory = gateway_factory
        seconds = cooldown_seconds if cooldown_seconds is not None else get_settings().SYNC_COOLDOWN_SECONDS
        self.cooldown_window = timedelta(seconds=seconds)
        self.webhook_logs = WebhookLogService(db)

    # --- Resolution helpers ---

    async def find_store_by_url(self, url: str) -> Optional[Store]:
        """Exact URL, then URL with a trailing slash, then hostname containment"""
        normalized = normalize_store_url(url)
        if not normalized:
            return None

        store_url = func.lower(Store.url)
        for condition in (store_url == normalized, store_url == normalized + "/"):
            result = await self.db.execute(select(Store).where(condition).order_by(Store.id).limit(1))
            store = result.scalar_one_or_none()
            if store:
                return store

        hostname = urlparse(normalized).hostname
        if not hostname:
            return None
        result = await self.db.execute(
            select(Store).where(store_url.contains(hostname)).order_by(Store.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def _find_product(self, store_id: int, remote_id: int) -> Optional[Product]:
        result = await self.db.execute(
            select(Product).where(Product.store_id == store_id, Product.remote_id == remote_id)
        )
        return result.scalar_one_or_none()

    async def _find_variation(self, store_id: int, remote_id: int) -> Optional[ProductVariation]:
        result = await self.db.execute(
            select(ProductVariation)
            .join(Product, ProductVariation.product_id == Product.id)
            .where(Product.store_id == store_id, ProductVariation.remote_id == remote_id)
            .options(selectinload(ProductVariation.product))
        )
        return result.scalar_one_or_none()

    async def _load_mapping_item(self, product_id: int) -> Optional[ProductMappingItem]:
        result = await self.db.execute(
            select(ProductMappingItem).where(ProductMappingItem.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def _load_mapping(self, mapping_id: int) -> ProductMapping:
        """Mapping with fresh members, their stores and variations"""
        result = await self.db.execute(
            select(ProductMapping)
            .where(ProductMapping.id == mapping_id)
            .options(
                selectinload(ProductMapping.items).selectinload(ProductMappingItem.store),
                selectinload(ProductMapping.items)
                .selectinload(ProductMappingItem.product)
                .selectinload(Product.variations),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    # --- Inbound webhook ---

    async def handle_stock_webhook(self, payload: WebhookPayload, store: Optional[Store] = None) -> WebhookOutcome:
        """
        Process one verified webhook envelope. Never raises for business
        failures; the outcome carries them.
        """
        data = payload.data
        is_variation = data.variation_id is not None
        remote_id = data.variation_id if is_variation else data.product_id
        raw_payload = payload.model_dump(mode="json")
        logger.info(f"Processing webhook: {payload.event} from {payload.store_url}")

        if store is None:
            store = await self.find_store_by_url(payload.store_url)
        if store is None:
            logger.warning(f"Store not found for URL: {payload.store_url}")
            await self.webhook_logs.record_failure(
                None, payload.event, WebhookDirection.INBOUND, raw_payload,
                f"Store not found for URL {payload.store_url}", remote_id=remote_id,
            )
            return WebhookOutcome(processed=False, message="Store not found")

        log_entry = await self.webhook_logs.start(
            store.id, payload.event, WebhookDirection.INBOUND, raw_payload, remote_id=remote_id,
        )
        store_id = store.id

        try:
            if payload.event == WebhookEvent.TEST.value:
                await self.webhook_logs.mark_success(log_entry, "Test event acknowledged")
                return WebhookOutcome(processed=True, message="Test webhook received")

            if remote_id is None:
                await self.webhook_logs.mark_failed(log_entry, "No product_id or variation_id in payload")
                return WebhookOutcome(processed=False, message="No product_id or variation_id")

            if data.stock_quantity is None:
                return await self._handle_without_stock(store, payload, log_entry, remote_id, is_variation)

            event = StockChangeEvent(
                store_id=store.id,
                kind=ItemKind.VARIATION if is_variation else ItemKind.PRODUCT,
                remote_id=remote_id,
                new_quantity=data.stock_quantity,
                timestamp=self.clock(),
            )
            return await self._apply_stock_change(store, event, log_entry, data.purchase_price)

        except Exception as e:
            logger.exception(f"Webhook processing error for store {store_id}: {str(e)}")
            await self.db.rollback()
            await self.db.refresh(log_entry)
            await self.webhook_logs.mark_failed(log_entry, str(e))
            return WebhookOutcome(processed=False, message=str(e))

    async def _resolve_item(
        self, store_id: int, remote_id: int, is_variation: bool
    ) -> Tuple[Optional[Product], Optional[ProductVariation]]:
        if is_variation:
            variation = await self._find_variation(store_id, remote_id)
            return (variation.product if variation else None), variation
        return await self._find_product(store_id, remote_id), None

    async def _handle_without_stock(
        self,
        store: Store,
        payload: WebhookPayload,
        log_entry: WebhookLog,
        remote_id: int,
        is_variation: bool,
    ) -> WebhookOutcome:
        """Events such as order notifications carry no quantity; only a purchase price is mirrored"""
        product, variation = await self._resolve_item(store.id, remote_id, is_variation)
        if product is None:
            kind = "Variation" if is_variation else "Product"
            await self.webhook_logs.mark_failed(log_entry, f"{kind} {remote_id} not found")
            return WebhookOutcome(processed=False, message=f"{kind} not found")

        if payload.data.order_id is not None:
            logger.info(f"{payload.event} for order {payload.data.order_id}: product {product.id}, no stock change")

        price = payload.data.purchase_price
        if price is not None:
            (variation or product).purchase_price = price
            await self.db.commit()
            note = "No stock_quantity in payload; purchase price updated"
        else:
            note = "No stock_quantity in payload"

        await self.webhook_logs.mark_success(log_entry, note, product_id=product.id)
        return WebhookOutcome(processed=True, message=note)

    async def _apply_stock_change(
        self,
        store: Store,
        event: StockChangeEvent,
        log_entry: WebhookLog,
        purchase_price: Optional[float],
    ) -> WebhookOutcome:
        key = cooldown_key(event.store_id, event.kind, event.remote_id)
        if await self.cooldown.is_cooling_down(key, self.clock(), self.cooldown_window):
            logger.debug(f"Skipping update - cooldown active for {key}")
            await self.webhook_logs.mark_success(log_entry, "Skipped - cooldown active")
            return WebhookOutcome(processed=True, message="Skipped - cooldown active")

        product, variation = await self._resolve_item(store.id, event.remote_id, event.is_variation)
        if product is None:
            kind = "Variation" if event.is_variation else "Product"
            logger.warning(f"{kind} not found: store {store.id}, remote id {event.remote_id}")
            await self.webhook_logs.mark_failed(log_entry, f"{kind} {event.remote_id} not found")
            return WebhookOutcome(processed=False, message=f"{kind} not found")

        store_id = store.id
        now = event.timestamp
        target = variation or product
        target.set_stock(event.new_quantity)
        if purchase_price is not None:
            target.purchase_price = purchase_price
        product.synced_at = now
        await self.db.commit()

        await self.webhook_logs.mark_success(log_entry, product_id=product.id)
        await self.cooldown.set(key, now)
        logger.info(f"Applied stock {event.new_quantity} to {key}")

        if variation is not None:
            synced = await self.sync_variation_to_mapped_stores(
                product.id, variation.sku, event.new_quantity, exclude_store_id=store_id,
            )
        else:
            synced = await self.sync_to_mapped_stores(product.id, event.new_quantity, exclude_store_id=store_id)

        store = await self._get_store(store_id)
        store.connector_last_sync_at = self.clock()
        await self.db.commit()

        return WebhookOutcome(processed=True, synced=synced, message=f"Stock updated, synced to {synced} stores")

    # --- Propagation ---

    async def _source_siblings(
        self, product_id: int, exclude_store_id: Optional[int]
    ) -> List[ProductMappingItem]:
        """Other members of the product's mapping, or [] when the product is not a source"""
        mapping_item = await self._load_mapping_item(product_id)
        if mapping_item is None:
            logger.debug(f"No mapping found for product {product_id}")
            return []
        if not mapping_item.is_source:
            logger.debug(f"Product {product_id} is not source, skipping sync to other stores")
            return []

        mapping = await self._load_mapping(mapping_item.mapping_id)
        siblings = []
        for item in mapping.items:
            if item.product_id == product_id:
                continue
            if exclude_store_id is not None and item.store_id == exclude_store_id:
                continue
            if not item.store.can_receive_stock:
                logger.debug(f"Store {item.store.name} has no stock connector configured")
                continue
            siblings.append(item)
        return siblings

    async def _push_to_targets(self, targets: List[SyncTarget], new_stock: int, is_variation: bool) -> int:
        synced = 0
        for target in targets:
            store = await self._get_store(target.store_id)
            result = await self._push_stock(store, target.remote_id, new_stock, is_variation=is_variation)
            if result.success:
                synced += 1
                logger.info(f"Synced stock to {target.store_name}: remote id {target.remote_id} = {new_stock}")
            else:
                logger.error(f"Failed to sync to {target.store_name}: {result.error}")
        return synced

    async def sync_to_mapped_stores(
        self, product_id: int, new_stock: int, exclude_store_id: Optional[int] = None
    ) -> int:
        """Push a source product's stock to its mapped siblings. Returns confirmed pushes."""
        targets = [
            SyncTarget(item.store_id, item.store.name, item.product.remote_id)
            for item in await self._source_siblings(product_id, exclude_store_id)
        ]
        return await self._push_to_targets(targets, new_stock, is_variation=False)

    async def sync_variation_to_mapped_stores(
        self,
        product_id: int,
        variation_sku: Optional[str],
        new_stock: int,
        exclude_store_id: Optional[int] = None,
    ) -> int:
        """Push a variation's stock to the sibling variations with the same SKU (case-insensitive)"""
        wanted = (variation_sku or "").strip().lower()
        targets = []
        for item in await self._source_siblings(product_id, exclude_store_id):
            match = None
            if wanted:
                match = next(
                    (v for v in item.product.variations if v.sku and v.sku.strip().lower() == wanted),
                    None,
                )
            if match is None:
                logger.warning(f"No matching variation found in {item.store.name} for SKU: {variation_sku}")
                continue
            targets.append(SyncTarget(item.store_id, item.store.name, match.remote_id))
        return await self._push_to_targets(targets, new_stock, is_variation=True)

    # --- Outbound writes ---

    async def _get_store(self, store_id: int) -> Optional[Store]:
        return await self.db.get(Store, store_id)

    async def _mirror_stock(self, store_id: int, remote_id: int, quantity: int, is_variation: bool) -> None:
        now = self.clock()
        if is_variation:
            variation = await self._find_variation(store_id, remote_id)
            if variation:
                variation.set_stock(quantity)
                variation.product.synced_at = now
        else:
            product = await self._find_product(store_id, remote_id)
            if product:
                product.set_stock(quantity)
                product.synced_at = now
        await self.db.commit()

    async def _mirror_purchase_price(self, store_id: int, remote_id: int, price: float, is_variation: bool) -> None:
        now = self.clock()
        if is_variation:
            variation = await self._find_variation(store_id, remote_id)
            if variation:
                variation.purchase_price = price
                variation.product.synced_at = now
        else:
            product = await self._find_product(store_id, remote_id)
            if product:
                product.purchase_price = price
                product.synced_at = now
        await self.db.commit()

    async def _mirror_failed(
        self, log_entry: WebhookLog, store_id: int, remote_id: int, error: Exception
    ) -> StockUpdateResult:
        """The remote write went through but the local row could not be updated"""
        logger.error(f"Local mirror failed for store {store_id}, remote id {remote_id}: {error}")
        await self.db.rollback()
        await self.db.refresh(log_entry)
        message = f"Remote updated but local mirror failed: {error}"
        await self.webhook_logs.mark_failed(log_entry, message)
        return StockUpdateResult(success=False, remote_id=remote_id, error=message)

    async def _push_stock(self, store: Store, remote_id: int, quantity: int, is_variation: bool) -> StockUpdateResult:
        log_entry = await self.webhook_logs.start(
            store.id,
            WebhookEvent.STOCK_PUSH.value,
            WebhookDirection.OUTBOUND,
            {"remote_id": remote_id, "stock": quantity, "is_variation": is_variation},
            remote_id=remote_id,
        )
        try:
            gateway = self.gateway_factory(store)
            response = await gateway.update_stock(remote_id, quantity, is_variation=is_variation)
        except (StoreGatewayError, CredentialError) as e:
            await self.webhook_logs.mark_failed(log_entry, str(e))
            return StockUpdateResult(success=False, remote_id=remote_id, error=str(e))

        store_id = store.id
        try:
            await self._mirror_stock(store_id, remote_id, quantity, is_variation)
        except SQLAlchemyError as e:
            return await self._mirror_failed(log_entry, store_id, remote_id, e)
        await self.webhook_logs.mark_success(log_entry)
        confirmed = response.get("stock_quantity") if isinstance(response, dict) else None
        return StockUpdateResult(
            success=True,
            remote_id=remote_id,
            new_stock=confirmed if confirmed is not None else quantity,
        )

    async def _push_purchase_price(
        self, store: Store, remote_id: int, price: float, is_variation: bool
    ) -> StockUpdateResult:
        log_entry = await self.webhook_logs.start(
            store.id,
            WebhookEvent.PURCHASE_PRICE_PUSH.value,
            WebhookDirection.OUTBOUND,
            {"remote_id": remote_id, "price": price, "is_variation": is_variation},
            remote_id=remote_id,
        )
        try:
            gateway = self.gateway_factory(store)
            await gateway.update_purchase_price(remote_id, price, is_variation=is_variation)
        except (StoreGatewayError, CredentialError) as e:
            await self.webhook_logs.mark_failed(log_entry, str(e))
            return StockUpdateResult(success=False, remote_id=remote_id, error=str(e))

        store_id = store.id
        try:
            await self._mirror_purchase_price(store_id, remote_id, price, is_variation)
        except SQLAlchemyError as e:
            return await self._mirror_failed(log_entry, store_id, remote_id, e)
        await self.webhook_logs.mark_success(log_entry)
        return StockUpdateResult(success=True, remote_id=remote_id, purchase_price=price)

    async def update_remote_stock(
        self, store_id: int, remote_id: int, quantity: int, is_variation: bool = False
    ) -> StockUpdateResult:
        """
        Push a quantity to one remote item and mirror it locally on success.
        Failures are logged and returned, never raised.
        """
        store = await self._get_store(store_id)
        if store is None:
            return StockUpdateResult(success=False, remote_id=remote_id, error=f"Store {store_id} not found")
        return await self._push_stock(store, remote_id, quantity, is_variation)

    async def update_remote_purchase_price(
        self, store_id: int, remote_id: int, price: float, is_variation: bool = False
    ) -> StockUpdateResult:
        store = await self._get_store(store_id)
        if store is None:
            return StockUpdateResult(success=False, remote_id=remote_id, error=f"Store {store_id} not found")
        return await self._push_purchase_price(store, remote_id, price, is_variation)

    # --- Dashboard edits ---

    async def _get_product(self, product_id: int) -> Product:
        result = await self.db.execute(
            select(Product).where(Product.id == product_id).options(selectinload(Product.store))
        )
        product = result.scalar_one_or_none()
        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    async def _get_variation(self, variation_id: int) -> ProductVariation:
        result = await self.db.execute(
            select(ProductVariation)
            .where(ProductVariation.id == variation_id)
            .options(selectinload(ProductVariation.product).selectinload(Product.store))
        )
        variation = result.scalar_one_or_none()
        if not variation:
            raise VariationNotFoundError(f"Variation {variation_id} not found")
        return variation

    async def update_stock_from_dashboard(
        self, product_id: int, quantity: int, sync_to_remote: bool = True
    ) -> StockUpdateResult:
        """
        Apply locally, then push to the product's own store only. Siblings are
        updated when that store's webhook comes back.
        """
        product = await self._get_product(product_id)
        product.set_stock(quantity)
        await self.db.commit()

        if sync_to_remote and product.store.can_receive_stock:
            result = await self._push_stock(product.store, product.remote_id, quantity, is_variation=False)
            if not result.success:
                return result.model_copy(update={"product_id": product_id})

        return StockUpdateResult(success=True, product_id=product.id, remote_id=product.remote_id, new_stock=quantity)

    async def update_variation_stock_from_dashboard(
        self, variation_id: int, quantity: int, sync_to_remote: bool = True
    ) -> StockUpdateResult:
        variation = await self._get_variation(variation_id)
        variation.set_stock(quantity)
        await self.db.commit()

        parent_id = variation.product_id
        store = variation.product.store
        if sync_to_remote and store.can_receive_stock:
            result = await self._push_stock(store, variation.remote_id, quantity, is_variation=True)
            if not result.success:
                return result.model_copy(update={"product_id": parent_id, "variation_id": variation_id})

        return StockUpdateResult(
            success=True,
            product_id=variation.product_id,
            variation_id=variation.id,
            remote_id=variation.remote_id,
            new_stock=quantity,
        )

    async def update_purchase_price_from_dashboard(
        self, product_id: int, price: float, sync_to_remote: bool = True
    ) -> StockUpdateResult:
        product = await self._get_product(product_id)
        product.purchase_price = price
        await self.db.commit()

        if sync_to_remote and product.store.can_receive_stock:
            result = await self._push_purchase_price(product.store, product.remote_id, price, is_variation=False)
            if not result.success:
                return result.model_copy(update={"product_id": product_id})

        return StockUpdateResult(success=True, product_id=product.id, remote_id=product.remote_id, purchase_price=price)

    async def update_variation_purchase_price_from_dashboard(
        self, variation_id: int, price: float, sync_to_remote: bool = True
    ) -> StockUpdateResult:
        variation = await self._get_variation(variation_id)
        variation.purchase_price = price
        await self.db.commit()

        parent_id = variation.product_id
        store = variation.product.store
        if sync_to_remote and store.can_receive_stock:
            result = await self._push_purchase_price(store, variation.remote_id, price, is_variation=True)
            if not result.success:
                return result.model_copy(update={"product_id": parent_id, "variation_id": variation_id})

        return StockUpdateResult(
            success=True,
            product_id=variation.product_id,
            variation_id=variation.id,
            remote_id=variation.remote_id,
            purchase_price=price,
        )

    # --- Log queries ---

    async def get_webhook_logs(self, store_id: int, limit: Optional[int] = None) -> List[WebhookLog]:
        return await self.webhook_logs.get_logs(store_id, limit)

    async def get_webhook_stats(self, store_id: int, days: int = 7) -> WebhookStats:
        return await self.webhook_logs.get_stats(store_id, days)
