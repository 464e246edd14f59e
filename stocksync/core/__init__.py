"""
Core module exports.
"""
from .enums import (
    StockStatus,
    ProductType,
    StoreStatus,
    WebhookDirection,
    WebhookStatus,
    ItemKind,
    WebhookEvent,
    GroupKeyKind,
)

from .exceptions import (
    BaseServiceError,
    ResolutionError,
    StoreNotFoundError,
    ProductNotFoundError,
    VariationNotFoundError,
    MappingNotFoundError,
    ValidationError,
    DuplicateMasterSkuError,
    InvalidProductSelectionError,
    InsufficientStoreDiversityError,
    ProductAlreadyMappedError,
    MappingSizeError,
    SourceItemRemovalError,
    PlatformServiceError,
    StoreGatewayError,
    StockConnectorAPIError,
    CommerceAPIError,
    CredentialError,
    StoreNotConfiguredError,
    SyncError,
)
