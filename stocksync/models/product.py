"""
Local mirror of remote catalog items.

A Product is one catalog entry in one Store; variable products carry their
variants as ProductVariation rows. Stock status is always derived from the
quantity when this service writes stock.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stocksync.database import Base
from stocksync.core.enums import StockStatus, ProductType
from stocksync.core.utils import utcnow


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    remote_id = Column(Integer, nullable=False, index=True)  # Product id on the remote store

    name = Column(String, nullable=False)
    sku = Column(String, nullable=True, index=True)
    product_type = Column(String, default=ProductType.SIMPLE.value, nullable=False)

    price = Column(Float, default=0.0)
    purchase_price = Column(Float, nullable=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    stock_status = Column(String, default=StockStatus.OUTOFSTOCK.value, nullable=False)
    manage_stock = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    store = relationship("Store", back_populates="products")
    variations = relationship(
        "ProductVariation",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductVariation.id",
    )
    mapping_item = relationship(
        "ProductMappingItem",
        back_populates="product",
        uselist=False,
        cascade="all",
    )

    __table_args__ = (
        UniqueConstraint('store_id', 'remote_id', name='uq_products_store_remote'),
    )

    def set_stock(self, quantity: int):
        self.stock_quantity = quantity
        self.stock_status = StockStatus.for_quantity(quantity).value

    @property
    def effective_stock(self) -> int:
        """Sum of active variations for variable products, own quantity otherwise"""
        if self.variations:
            return sum(v.stock_quantity or 0 for v in self.variations if v.is_active)
        return self.stock_quantity or 0

    def __repr__(self):
        return f"<Product(id={self.id}, store_id={self.store_id}, remote_id={self.remote_id}, sku='{self.sku}')>"


class ProductVariation(Base):
    __tablename__ = "product_variations"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    remote_id = Column(Integer, nullable=False, index=True)  # Variation id on the remote store

    sku = Column(String, nullable=True, index=True)
    attributes = Column(JSON, default=dict)
    price = Column(Float, default=0.0)
    purchase_price = Column(Float, nullable=True)
    stock_quantity = Column(Integer, default=0, nullable=False)
    stock_status = Column(String, default=StockStatus.OUTOFSTOCK.value, nullable=False)
    manage_stock = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    product = relationship("Product", back_populates="variations")

    __table_args__ = (
        UniqueConstraint('product_id', 'remote_id', name='uq_variations_product_remote'),
    )

    def set_stock(self, quantity: int):
        self.stock_quantity = quantity
        self.stock_status = StockStatus.for_quantity(quantity).value

    def __repr__(self):
        return f"<ProductVariation(id={self.id}, product_id={self.product_id}, remote_id={self.remote_id}, sku='{self.sku}')>"
