from typing import List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


# --- Resolution errors ---

class ResolutionError(BaseServiceError):
    """Raised when a referenced entity cannot be resolved."""
    pass

class StoreNotFoundError(ResolutionError):
    """Raised when a store is not found."""
    pass

class ProductNotFoundError(ResolutionError):
    """Raised when product is not found."""
    pass

class VariationNotFoundError(ResolutionError):
    """Raised when a product variation is not found."""
    pass

class MappingNotFoundError(ResolutionError):
    """Raised when a product mapping is not found for the company."""
    pass


# --- Validation errors ---

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass

class DuplicateMasterSkuError(ValidationError):
    """Raised when a company already has a mapping with the master SKU."""
    pass

class InvalidProductSelectionError(ValidationError):
    """Raised when some product ids do not belong to the company's stores."""
    pass

class InsufficientStoreDiversityError(ValidationError):
    """Raised when a mapping would span fewer than two stores."""
    pass

class ProductAlreadyMappedError(ValidationError):
    """Raised when a product already belongs to another mapping."""

    def __init__(self, message: str, master_skus: Optional[List[str]] = None):
        super().__init__(message)
        self.master_skus = master_skus or []

class MappingSizeError(ValidationError):
    """Raised when a removal would leave a mapping with fewer than two members."""
    pass

class SourceItemRemovalError(ValidationError):
    """Raised when trying to remove the source item from a mapping."""
    pass


# --- Remote I/O errors ---

class PlatformServiceError(BaseServiceError):
    """Base exception for remote store errors."""
    pass

class StoreGatewayError(PlatformServiceError):
    """Raised when a call to a remote store fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class StockConnectorAPIError(StoreGatewayError):
    """Raised when stock-connector plugin calls fail."""
    pass

class CommerceAPIError(StoreGatewayError):
    """Raised when commerce REST API calls fail."""
    pass


# --- Credential errors ---

class CredentialError(BaseServiceError):
    """Raised when stored credentials are missing or cannot be decrypted."""
    pass

class StoreNotConfiguredError(CredentialError):
    """Raised when a store has no stock-connector credentials."""
    pass


class SyncError(PlatformServiceError):
    """Raised when catalog synchronization fails."""
    pass
