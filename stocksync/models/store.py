# stocksync/models/store.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stocksync.database import Base
from stocksync.core.enums import StoreStatus
from stocksync.core.utils import utcnow


class Store(Base):
    """
    A remote catalog endpoint belonging to a company.

    Commerce REST credentials are always present. The stock-connector plugin
    credentials are optional; without them the store can be read and mirrored
    but never receives pushed stock. All secrets are stored encrypted.
    """
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False, index=True)
    status = Column(String, default=StoreStatus.ACTIVE.value, nullable=False, index=True)

    # Commerce REST API (encrypted)
    consumer_key = Column(Text, nullable=False)
    consumer_secret = Column(Text, nullable=False)

    # Stock connector plugin (encrypted)
    has_stock_connector = Column(Boolean, default=False, nullable=False)
    connector_api_key = Column(Text, nullable=True)
    connector_api_secret = Column(Text, nullable=True)
    webhook_secret = Column(Text, nullable=True)

    # Sync bookkeeping
    is_syncing = Column(Boolean, default=False, nullable=False)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    connector_last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    products = relationship("Product", back_populates="store", cascade="all, delete-orphan")
    webhook_logs = relationship("WebhookLog", back_populates="store")

    @property
    def can_receive_stock(self) -> bool:
        """True when the stock-connector protocol is enabled and has credentials"""
        return bool(self.has_stock_connector and self.connector_api_key and self.connector_api_secret)

    def __repr__(self):
        return f"<Store(id={self.id}, company_id={self.company_id}, url='{self.url}')>"
