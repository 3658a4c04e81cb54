"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .product import Product
from .product_component import ProductComponent

__all__ = [
    "Base",
    "BaseModel",
    "Product",
    "ProductComponent",
]
