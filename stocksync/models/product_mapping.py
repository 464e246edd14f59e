# stocksync/models/product_mapping.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stocksync.database import Base
from stocksync.core.utils import utcnow


class ProductMapping(Base):
    """
    A group of products, one per participating store, that represent the same
    physical item. Exactly one member is the source; only its stock changes are
    pushed to the other members.
    """
    __tablename__ = "product_mappings"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, nullable=False, index=True)
    master_sku = Column(String, nullable=False)
    name = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    items = relationship(
        "ProductMappingItem",
        back_populates="mapping",
        cascade="all, delete-orphan",
        order_by="ProductMappingItem.id",
    )

    __table_args__ = (
        UniqueConstraint('company_id', 'master_sku', name='uq_mappings_company_master_sku'),
    )

    def __repr__(self):
        return f"<ProductMapping(id={self.id}, company_id={self.company_id}, master_sku='{self.master_sku}')>"


class ProductMappingItem(Base):
    """
    Links one product (and the store it lives in) to a mapping.
    is_source is set when the item is created and never changed afterwards.
    """
    __tablename__ = "product_mapping_items"

    id = Column(Integer, primary_key=True)
    mapping_id = Column(Integer, ForeignKey("product_mappings.id", ondelete="CASCADE"), nullable=False, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    sku = Column(String, nullable=True)  # Snapshot of the product SKU when mapped
    is_source = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    mapping = relationship("ProductMapping", back_populates="items")
    product = relationship("Product", back_populates="mapping_item")
    store = relationship("Store")

    # A product can belong to at most one mapping
    __table_args__ = (
        UniqueConstraint('product_id', name='uq_mapping_items_product'),
    )

    def __repr__(self):
        return f"<ProductMappingItem(mapping_id={self.mapping_id}, product_id={self.product_id}, is_source={self.is_source})>"


class DismissedMappingSuggestion(Base):
    __tablename__ = "dismissed_mapping_suggestions"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, nullable=False, index=True)
    suggestion_key = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('company_id', 'suggestion_key', name='uq_dismissed_company_key'),
    )
