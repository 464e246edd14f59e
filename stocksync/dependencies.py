from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stocksync.core.config import get_settings
from stocksync.database import async_session
from stocksync.integrations.setup import build_commerce_client, build_stock_connector
from stocksync.services.catalog_sync_service import CatalogSyncService
from stocksync.services.cooldown import CooldownCache, DatabaseCooldownCache, InMemoryCooldownCache
from stocksync.services.mapping_service import MappingService
from stocksync.services.matching_service import MatchingService
from stocksync.services.stock_sync_service import StockSyncService
from stocksync.services.store_service import StoreService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


@lru_cache()
def get_cooldown_cache() -> CooldownCache:
    """One cache per process; the database backend is shared between workers"""
    if get_settings().COOLDOWN_BACKEND == "database":
        return DatabaseCooldownCache(async_session)
    return InMemoryCooldownCache()


def get_gateway_factory():
    return build_stock_connector


def get_commerce_client_factory():
    return build_commerce_client


def get_stock_sync_service(
    db: AsyncSession = Depends(get_db),
    cooldown: CooldownCache = Depends(get_cooldown_cache),
    gateway_factory=Depends(get_gateway_factory),
) -> StockSyncService:
    return StockSyncService(db, cooldown, gateway_factory=gateway_factory)


def get_mapping_service(db: AsyncSession = Depends(get_db)) -> MappingService:
    return MappingService(db)


def get_matching_service(db: AsyncSession = Depends(get_db)) -> MatchingService:
    return MatchingService(db)


def get_store_service(
    db: AsyncSession = Depends(get_db),
    gateway_factory=Depends(get_gateway_factory),
    commerce_factory=Depends(get_commerce_client_factory),
) -> StoreService:
    return StoreService(db, connector_factory=gateway_factory, commerce_factory=commerce_factory)


def get_catalog_sync_service(
    db: AsyncSession = Depends(get_db),
    client_factory=Depends(get_commerce_client_factory),
) -> CatalogSyncService:
    return CatalogSyncService(db, client_factory=client_factory)
