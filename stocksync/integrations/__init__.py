from .base import StoreGateway, ConnectionCheck
from .events import StockChangeEvent

__all__ = ['StoreGateway', 'ConnectionCheck', 'StockChangeEvent']
