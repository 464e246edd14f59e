from .store import Store
from .product import Product, ProductVariation
from .product_mapping import ProductMapping, ProductMappingItem, DismissedMappingSuggestion
from .webhook_log import WebhookLog
from .sync_cooldown import SyncCooldown

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Store',
    'Product',
    'ProductVariation',
    'ProductMapping',
    'ProductMappingItem',
    'DismissedMappingSuggestion',
    'WebhookLog',
    'SyncCooldown',
]
