"""
Matching engine: derives candidate mappings from products that are not mapped yet.

Suggestions are computed on every call and never stored. Only dismissals are
persisted, keyed by company and suggestion key.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stocksync.core.exceptions import ValidationError
from stocksync.models.product import Product
from stocksync.models.product_mapping import DismissedMappingSuggestion, ProductMappingItem
from stocksync.models.store import Store
from stocksync.schemas.product_mapping import (
    AutoMatchResult,
    MappingSuggestion,
    ProductSearchResult,
    SuggestionProduct,
)
from stocksync.services.mapping_service import MappingService
from stocksync.services.match_utils import (
    DEFAULT_STRATEGIES,
    GroupKey,
    GroupKeyStrategy,
    compute_group_key,
    distinct_store_count,
    master_sku_for,
    sum_stock,
)

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2
MAX_SEARCH_RESULTS = 50


class MatchingService:
    def __init__(
        self,
        db: AsyncSession,
        strategies: Sequence[GroupKeyStrategy] = DEFAULT_STRATEGIES,
        mapping_service: Optional[MappingService] = None,
    ):
        self.db = db
        self.strategies = strategies
        self.mapping_service = mapping_service or MappingService(db)

    async def _dismissed_keys(self, company_id: int) -> set:
        result = await self.db.execute(
            select(DismissedMappingSuggestion.suggestion_key)
            .where(DismissedMappingSuggestion.company_id == company_id)
        )
        return set(result.scalars().all())

    async def _unmapped_products(self, company_id: int, store_ids: Optional[List[int]]) -> List[Product]:
        mapped = select(ProductMappingItem.product_id)
        query = (
            select(Product)
            .join(Store, Product.store_id == Store.id)
            .where(Store.company_id == company_id, Product.id.not_in(mapped))
            .options(selectinload(Product.store), selectinload(Product.variations))
            .order_by(Product.id)
            .execution_options(populate_existing=True)
        )
        if store_ids:
            query = query.where(Product.store_id.in_(store_ids))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_suggestions(self, company_id: int, store_ids: Optional[List[int]] = None) -> List[MappingSuggestion]:
        """
        Group unmapped products by SKU, name code or normalized name and keep
        groups spanning two or more stores, best corroborated first.
        """
        dismissed = await self._dismissed_keys(company_id)
        products = await self._unmapped_products(company_id, store_ids)

        groups: "OrderedDict[str, List[SuggestionProduct]]" = OrderedDict()
        keys: Dict[str, GroupKey] = {}

        for product in products:
            group_key = compute_group_key(product.name, product.sku, self.strategies)
            if group_key is None:
                continue
            keys.setdefault(group_key.key, group_key)
            groups.setdefault(group_key.key, []).append(SuggestionProduct(
                id=product.id,
                store_id=product.store_id,
                store_name=product.store.name,
                name=product.name,
                sku=group_key.display,
                stock_quantity=product.effective_stock,
                price=product.price or 0.0,
            ))

        suggestions = []
        for key, members in groups.items():
            if key in dismissed:
                continue
            store_count = distinct_store_count(p.store_id for p in members)
            if store_count < 2:
                continue
            suggestions.append(MappingSuggestion(
                master_sku=master_sku_for(keys[key], (p.name for p in members)),
                suggestion_key=key,
                products=members,
                store_count=store_count,
                total_stock=sum_stock(p.stock_quantity for p in members),
                real_stock=members[0].stock_quantity,
            ))

        # Stable sort keeps discovery order among equals
        suggestions.sort(key=lambda s: s.store_count, reverse=True)
        logger.debug(f"Found {len(suggestions)} mapping suggestions for company {company_id}")
        return suggestions

    async def dismiss_suggestion(self, company_id: int, suggestion_key: str) -> None:
        exists = await self.db.execute(
            select(DismissedMappingSuggestion.id).where(
                DismissedMappingSuggestion.company_id == company_id,
                DismissedMappingSuggestion.suggestion_key == suggestion_key,
            )
        )
        if exists.first() is not None:
            return

        self.db.add(DismissedMappingSuggestion(company_id=company_id, suggestion_key=suggestion_key))
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent dismissal of the same key
            await self.db.rollback()

    async def restore_suggestion(self, company_id: int, suggestion_key: str) -> None:
        await self.db.execute(
            delete(DismissedMappingSuggestion).where(
                DismissedMappingSuggestion.company_id == company_id,
                DismissedMappingSuggestion.suggestion_key == suggestion_key,
            )
        )
        await self.db.commit()

    async def get_dismissed_suggestions(self, company_id: int) -> List[str]:
        result = await self.db.execute(
            select(DismissedMappingSuggestion.suggestion_key)
            .where(DismissedMappingSuggestion.company_id == company_id)
            .order_by(DismissedMappingSuggestion.created_at, DismissedMappingSuggestion.id)
        )
        return list(result.scalars().all())

    async def auto_match(self, company_id: int, store_ids: Optional[List[int]] = None) -> AutoMatchResult:
        """
        Turn every current suggestion into a mapping. Each suggestion stands
        alone: failures are counted as skipped and never abort the batch.
        """
        suggestions = await self.get_suggestions(company_id, store_ids)
        created = 0
        skipped = 0

        for suggestion in suggestions:
            try:
                await self.mapping_service.create_mapping(
                    company_id,
                    master_sku=suggestion.master_sku,
                    product_ids=[p.id for p in suggestion.products],
                )
                created += 1
            except ValidationError as e:
                logger.info(f"Skipped suggestion '{suggestion.suggestion_key}': {str(e)}")
                skipped += 1
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.warning(f"Skipped suggestion '{suggestion.suggestion_key}' after database error: {str(e)}")
                skipped += 1

        logger.info(f"Auto-match for company {company_id}: created={created}, skipped={skipped}")
        return AutoMatchResult(created=created, skipped=skipped)

    async def search_products_for_mapping(
        self,
        company_id: int,
        query: str,
        store_id: Optional[int] = None,
    ) -> List[ProductSearchResult]:
        """Case-insensitive substring search on name or SKU for manual mapping"""
        if not query or len(query.strip()) < MIN_SEARCH_LENGTH:
            return []

        pattern = f"%{query.strip().lower()}%"
        stmt = (
            select(Product)
            .join(Store, Product.store_id == Store.id)
            .where(
                Store.company_id == company_id,
                or_(func.lower(Product.name).like(pattern), func.lower(Product.sku).like(pattern)),
            )
            .options(
                selectinload(Product.store),
                selectinload(Product.variations),
                selectinload(Product.mapping_item),
            )
            .order_by(Product.name, Product.id)
            .limit(MAX_SEARCH_RESULTS)
            .execution_options(populate_existing=True)
        )
        if store_id is not None:
            stmt = stmt.where(Product.store_id == store_id)

        result = await self.db.execute(stmt)
        return [
            ProductSearchResult(
                id=product.id,
                store_id=product.store_id,
                store_name=product.store.name,
                name=product.name,
                sku=product.sku,
                stock_quantity=product.effective_stock,
                price=product.price or 0.0,
                is_already_mapped=product.mapping_item is not None,
                mapping_id=product.mapping_item.mapping_id if product.mapping_item else None,
            )
            for product in result.scalars().all()
        ]
