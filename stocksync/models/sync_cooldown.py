# stocksync/models/sync_cooldown.py
from sqlalchemy import Column, String, DateTime

from stocksync.database import Base


class SyncCooldown(Base):
    """Last applied time per '<store>:<p|v>:<remote id>' key, shared by all workers"""
    __tablename__ = "sync_cooldowns"

    key = Column(String, primary_key=True)
    applied_at = Column(DateTime(timezone=True), nullable=False, index=True)
