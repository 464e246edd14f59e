"""
Shared enums and constants used across the application.
"""

from enum import Enum


class StockStatus(str, Enum):
    """Stock status as reported by the remote stores"""
    INSTOCK = "instock"
    OUTOFSTOCK = "outofstock"
    ONBACKORDER = "onbackorder"

    @classmethod
    def for_quantity(cls, quantity: int) -> "StockStatus":
        return cls.INSTOCK if quantity > 0 else cls.OUTOFSTOCK


class ProductType(str, Enum):
    SIMPLE = "simple"
    VARIABLE = "variable"
    GROUPED = "grouped"
    EXTERNAL = "external"


class StoreStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class WebhookDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class WebhookStatus(str, Enum):
    """Lifecycle of a webhook log row: pending -> success | failed"""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ItemKind(str, Enum):
    """Which remote entity a stock change refers to. Values are used in cooldown keys."""
    PRODUCT = "p"
    VARIATION = "v"


class WebhookEvent(str, Enum):
    STOCK_UPDATED = "stock.updated"
    ORDER_COMPLETED = "order.completed"
    ORDER_PROCESSING = "order.processing"
    TEST = "test"
    # Outbound event types recorded in the webhook log
    STOCK_PUSH = "stock.push"
    PURCHASE_PRICE_PUSH = "purchase_price.push"


class GroupKeyKind(str, Enum):
    """Prefix of a suggestion key, naming the rule that produced it"""
    SKU = "sku"
    CODE = "code"
    NAME = "name"
