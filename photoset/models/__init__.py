"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import TenantBase
from .product_image import ProductImageSet

__all__ = [
    "TenantBase",
    "ProductImageSet",
]
