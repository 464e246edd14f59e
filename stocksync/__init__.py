"""Cross-store inventory synchronization and product-mapping engine."""

__version__ = "1.0.0"
