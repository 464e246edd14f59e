# stocksync/models/webhook_log.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from stocksync.database import Base
from stocksync.core.enums import WebhookStatus
from stocksync.core.utils import utcnow


class WebhookLog(Base):
    """
    Audit row for a single inbound or outbound synchronization attempt.
    Rows are written as 'pending' before any mutation and only ever move to
    'success' or 'failed'.
    """
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Nullable so events from unknown or deleted stores still leave a trace
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="SET NULL"), nullable=True, index=True)

    event_type = Column(String, nullable=False, index=True)
    direction = Column(String, nullable=False, index=True)  # inbound, outbound
    payload = Column(JSON, nullable=False)
    status = Column(String, default=WebhookStatus.PENDING.value, nullable=False, index=True)
    error_message = Column(Text, nullable=True)

    remote_id = Column(Integer, nullable=True)  # Remote product/variation id named by the event
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    store = relationship("Store", back_populates="webhook_logs")

    def __repr__(self):
        return (f"<WebhookLog(id={self.id}, store_id={self.store_id}, event='{self.event_type}', "
                f"direction='{self.direction}', status='{self.status}')>")
