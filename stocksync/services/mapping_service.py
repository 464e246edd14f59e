"""
Mapping repository: durable groups of products that represent one physical item.

Every mapping holds at least two items from at least two stores, and exactly
one item is the source. The source is the first product given at creation time
and is never reassigned.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stocksync.core.exceptions import (
    DuplicateMasterSkuError,
    InsufficientStoreDiversityError,
    InvalidProductSelectionError,
    MappingNotFoundError,
    MappingSizeError,
    ProductAlreadyMappedError,
    SourceItemRemovalError,
)
from stocksync.models.product import Product
from stocksync.models.product_mapping import ProductMapping, ProductMappingItem
from stocksync.models.store import Store
from stocksync.schemas.product_mapping import (
    ConsolidatedInventoryItem,
    MappingItemRead,
    MappingRead,
    MappingUpdate,
    StoreStock,
)
from stocksync.services.match_utils import distinct_store_count, sum_stock

logger = logging.getLogger(__name__)

MIN_MAPPING_ITEMS = 2
MIN_MAPPING_STORES = 2


class MappingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Loading ---

    def _mapping_query(self, company_id: int):
        return (
            select(ProductMapping)
            .where(ProductMapping.company_id == company_id)
            .options(
                selectinload(ProductMapping.items).selectinload(ProductMappingItem.store),
                selectinload(ProductMapping.items)
                .selectinload(ProductMappingItem.product)
                .selectinload(Product.variations),
            )
            .execution_options(populate_existing=True)
        )

    async def _get_mapping_model(self, company_id: int, mapping_id: int) -> ProductMapping:
        result = await self.db.execute(self._mapping_query(company_id).where(ProductMapping.id == mapping_id))
        mapping = result.scalar_one_or_none()
        if not mapping:
            raise MappingNotFoundError(f"Mapping {mapping_id} not found")
        return mapping

    async def _master_sku_taken(self, company_id: int, master_sku: str) -> bool:
        result = await self.db.execute(
            select(ProductMapping.id).where(
                ProductMapping.company_id == company_id,
                ProductMapping.master_sku == master_sku,
            )
        )
        return result.first() is not None

    async def _resolve_company_products(self, company_id: int, product_ids: List[int]) -> List[Product]:
        """
        Load products by id, keeping the caller's order.

        Raises:
            InvalidProductSelectionError: If any id is unknown or belongs to another company
        """
        unique_ids = list(dict.fromkeys(product_ids))
        result = await self.db.execute(
            select(Product)
            .join(Store, Product.store_id == Store.id)
            .where(Product.id.in_(unique_ids), Store.company_id == company_id)
        )
        by_id = {p.id: p for p in result.scalars().all()}
        missing = [pid for pid in unique_ids if pid not in by_id]
        if missing:
            raise InvalidProductSelectionError(
                f"Products not found or not owned by this company: {missing}"
            )
        return [by_id[pid] for pid in unique_ids]

    async def _existing_items(self, product_ids: List[int]) -> List[ProductMappingItem]:
        result = await self.db.execute(
            select(ProductMappingItem)
            .where(ProductMappingItem.product_id.in_(product_ids))
            .options(selectinload(ProductMappingItem.mapping))
        )
        return list(result.scalars().all())

    # --- Reads ---

    @staticmethod
    def to_read(mapping: ProductMapping) -> MappingRead:
        """
        Recompute per-item stock from the loaded products.

        real_stock is the source item's effective stock. Mappings without a
        source report 0 rather than guessing.
        """
        items = [
            MappingItemRead(
                id=item.id,
                store_id=item.store_id,
                store_name=item.store.name,
                product_id=item.product_id,
                product_name=item.product.name,
                sku=item.sku,
                stock_quantity=item.product.effective_stock,
                price=item.product.price or 0.0,
                is_source=item.is_source,
            )
            for item in mapping.items
        ]

        source = next((item for item in items if item.is_source), None)
        if source is None:
            logger.warning(f"Mapping {mapping.id} ({mapping.master_sku}) has no source item")

        return MappingRead(
            id=mapping.id,
            master_sku=mapping.master_sku,
            name=mapping.name,
            created_at=mapping.created_at,
            updated_at=mapping.updated_at,
            items=items,
            total_stock=sum_stock(item.stock_quantity for item in items),
            real_stock=source.stock_quantity if source else 0,
            store_count=distinct_store_count(item.store_id for item in items),
        )

    async def get_mappings(self, company_id: int) -> List[MappingRead]:
        result = await self.db.execute(
            self._mapping_query(company_id).order_by(ProductMapping.created_at.desc(), ProductMapping.id.desc())
        )
        return [self.to_read(m) for m in result.scalars().all()]

    async def get_mapping(self, company_id: int, mapping_id: int) -> MappingRead:
        return self.to_read(await self._get_mapping_model(company_id, mapping_id))

    # --- Writes ---

    async def create_mapping(
        self,
        company_id: int,
        master_sku: str,
        product_ids: List[int],
        name: Optional[str] = None,
    ) -> MappingRead:
        """
        Create a mapping. The first product in ``product_ids`` becomes the source.

        Raises:
            DuplicateMasterSkuError: master_sku already used by this company
            InvalidProductSelectionError: unknown or foreign product ids
            InsufficientStoreDiversityError: products span fewer than two stores
            ProductAlreadyMappedError: some products already belong to a mapping
        """
        if await self._master_sku_taken(company_id, master_sku):
            raise DuplicateMasterSkuError(f"A mapping with master SKU '{master_sku}' already exists")

        products = await self._resolve_company_products(company_id, product_ids)
        if len(products) < MIN_MAPPING_ITEMS:
            raise MappingSizeError(f"A mapping needs at least {MIN_MAPPING_ITEMS} products")
        if distinct_store_count(p.store_id for p in products) < MIN_MAPPING_STORES:
            raise InsufficientStoreDiversityError(
                f"A mapping needs products from at least {MIN_MAPPING_STORES} different stores"
            )

        existing = await self._existing_items([p.id for p in products])
        if existing:
            master_skus = sorted({item.mapping.master_sku for item in existing})
            raise ProductAlreadyMappedError(
                f"Some products are already mapped: {', '.join(master_skus)}",
                master_skus=master_skus,
            )

        mapping = ProductMapping(company_id=company_id, master_sku=master_sku, name=name)
        self.db.add(mapping)
        try:
            await self.db.flush()
        except IntegrityError:
            # Another request created the same master SKU after the check above
            await self.db.rollback()
            raise DuplicateMasterSkuError(f"A mapping with master SKU '{master_sku}' already exists")

        for index, product in enumerate(products):
            self.db.add(ProductMappingItem(
                mapping_id=mapping.id,
                store_id=product.store_id,
                product_id=product.id,
                sku=product.sku,
                is_source=(index == 0),
            ))

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ProductAlreadyMappedError("Some products were mapped by a concurrent request")

        logger.info(
            f"Created mapping {mapping.id} '{master_sku}' for company {company_id} "
            f"with {len(products)} products (source product {products[0].id})"
        )
        return await self.get_mapping(company_id, mapping.id)

    async def update_mapping(self, company_id: int, mapping_id: int, data: MappingUpdate) -> MappingRead:
        mapping = await self._get_mapping_model(company_id, mapping_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)

        new_sku = changes.get("master_sku")
        if new_sku is not None:
            new_sku = new_sku.strip()
            if not new_sku:
                changes.pop("master_sku")
            elif new_sku != mapping.master_sku:
                if await self._master_sku_taken(company_id, new_sku):
                    raise DuplicateMasterSkuError(f"A mapping with master SKU '{new_sku}' already exists")
                changes["master_sku"] = new_sku
        elif "master_sku" in changes:
            changes.pop("master_sku")

        for key, value in changes.items():
            setattr(mapping, key, value)

        await self.db.commit()
        return await self.get_mapping(company_id, mapping_id)

    async def delete_mapping(self, company_id: int, mapping_id: int) -> None:
        mapping = await self._get_mapping_model(company_id, mapping_id)
        await self.db.delete(mapping)
        await self.db.commit()
        logger.info(f"Deleted mapping {mapping_id} '{mapping.master_sku}' for company {company_id}")

    async def add_products(self, company_id: int, mapping_id: int, product_ids: List[int]) -> MappingRead:
        """
        Add products as non-source members.

        Products already in this mapping are skipped. Products in another
        mapping raise ProductAlreadyMappedError.
        """
        return await self._add_products(company_id, mapping_id, product_ids, retry=True)

    async def _add_products(
        self, company_id: int, mapping_id: int, product_ids: List[int], retry: bool
    ) -> MappingRead:
        mapping = await self._get_mapping_model(company_id, mapping_id)
        products = await self._resolve_company_products(company_id, product_ids)

        existing = await self._existing_items([p.id for p in products])
        conflicts = [item for item in existing if item.mapping_id != mapping.id]
        if conflicts:
            master_skus = sorted({item.mapping.master_sku for item in conflicts})
            raise ProductAlreadyMappedError(
                f"Some products are already mapped: {', '.join(master_skus)}",
                master_skus=master_skus,
            )

        already_here = {item.product_id for item in existing}
        added = 0
        for product in products:
            if product.id in already_here:
                continue
            self.db.add(ProductMappingItem(
                mapping_id=mapping.id,
                store_id=product.store_id,
                product_id=product.id,
                sku=product.sku,
                is_source=False,
            ))
            added += 1

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if not retry:
                raise ProductAlreadyMappedError("Some products were mapped by a concurrent request")
            # A concurrent insert landed between the check and the commit
            logger.info(f"Concurrent insert into mapping {mapping_id}, re-checking membership")
            return await self._add_products(company_id, mapping_id, product_ids, retry=False)

        logger.info(f"Added {added} products to mapping {mapping_id}")
        return await self.get_mapping(company_id, mapping_id)

    async def remove_products(self, company_id: int, mapping_id: int, product_ids: List[int]) -> MappingRead:
        """
        Remove members from a mapping.

        Raises:
            SourceItemRemovalError: the source item is among the products
            MappingSizeError: fewer than two members would remain
            InsufficientStoreDiversityError: fewer than two stores would remain
        """
        mapping = await self._get_mapping_model(company_id, mapping_id)
        requested = set(product_ids)

        to_remove = [item for item in mapping.items if item.product_id in requested]
        remaining = [item for item in mapping.items if item.product_id not in requested]

        if any(item.is_source for item in to_remove):
            raise SourceItemRemovalError(
                "The source product cannot be removed. Delete the mapping instead."
            )
        if len(remaining) < MIN_MAPPING_ITEMS:
            raise MappingSizeError(
                f"A mapping must keep at least {MIN_MAPPING_ITEMS} products. Delete the mapping instead."
            )
        if distinct_store_count(item.store_id for item in remaining) < MIN_MAPPING_STORES:
            raise InsufficientStoreDiversityError(
                f"A mapping must keep products from at least {MIN_MAPPING_STORES} stores"
            )

        for item in to_remove:
            await self.db.delete(item)

        await self.db.commit()
        logger.info(f"Removed {len(to_remove)} products from mapping {mapping_id}")
        return await self.get_mapping(company_id, mapping_id)

    # --- Inventory ---

    async def get_consolidated_inventory(self, company_id: int) -> List[ConsolidatedInventoryItem]:
        """Per mapping, effective stock grouped by store"""
        inventory = []
        for mapping in await self.get_mappings(company_id):
            stores: "OrderedDict[int, StoreStock]" = OrderedDict()
            for item in mapping.items:
                if item.store_id not in stores:
                    stores[item.store_id] = StoreStock(store_id=item.store_id, store_name=item.store_name, stock=0)
                stores[item.store_id].stock += item.stock_quantity

            inventory.append(ConsolidatedInventoryItem(
                master_sku=mapping.master_sku,
                name=mapping.name,
                mapping_id=mapping.id,
                total_stock=mapping.total_stock,
                stores=list(stores.values()),
            ))
        return inventory
