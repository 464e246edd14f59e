from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ConnectionCheck(BaseModel):
    """Result of probing a remote store. Never raised, always returned."""
    success: bool
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class StoreGateway(ABC):
    """Write side of a remote store that can receive pushed stock"""

    def __init__(self, store_url: str):
        self.store_url = store_url.rstrip("/")

    @abstractmethod
    async def verify(self) -> ConnectionCheck:
        """Check that the remote endpoint is reachable and the credentials are accepted"""
        pass

    @abstractmethod
    async def update_stock(self, remote_id: int, quantity: int, is_variation: bool = False) -> Dict[str, Any]:
        """Set the stock quantity of a remote product or variation"""
        pass

    @abstractmethod
    async def update_purchase_price(self, remote_id: int, price: float, is_variation: bool = False) -> Dict[str, Any]:
        """Set the purchase (cost) price of a remote product or variation"""
        pass
