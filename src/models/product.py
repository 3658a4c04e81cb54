"""
Product model.

Products are owned by the wider product-data platform; this service only
needs them as foreign-key targets for composition edges and to render a
short summary of parents and components. No product CRUD lives here.
"""

from sqlalchemy import Column, String, Index
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.constants import (
    MAX_CATEGORY_LENGTH,
    MAX_GTIN_LENGTH,
    MAX_NAME_LENGTH,
    MAX_TENANT_ID_LENGTH,
    TABLE_PRODUCT,
)


class Product(BaseModel):
    """
    Product model, a node of the composition graph.

    Attributes:
        tenant_id: Tenant isolation key
        name: Display name
        gtin: Global Trade Item Number (optional)
        manufacturer: Manufacturer name (optional)
        category: Product category (optional)
        image_url: Product image location (optional)

    Relationships:
        component_edges: Edges where this product is the containing set
        container_edges: Edges where this product is a component
    """

    __tablename__ = TABLE_PRODUCT

    tenant_id = Column(String(MAX_TENANT_ID_LENGTH), nullable=False)
    name = Column(String(MAX_NAME_LENGTH), nullable=False)
    gtin = Column(String(MAX_GTIN_LENGTH), nullable=True)
    manufacturer = Column(String(MAX_NAME_LENGTH), nullable=True)
    category = Column(String(MAX_CATEGORY_LENGTH), nullable=True)
    image_url = Column(String(500), nullable=True)

    component_edges = relationship(
        "ProductComponent",
        foreign_keys="ProductComponent.parent_product_id",
        back_populates="parent_product",
        passive_deletes=True,
    )
    container_edges = relationship(
        "ProductComponent",
        foreign_keys="ProductComponent.component_product_id",
        back_populates="component_product",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_product_tenant", "tenant_id"),)

    def __repr__(self) -> str:
        """String representation of product."""
        return f"Product(id={self.id}, tenant_id='{self.tenant_id}', name='{self.name}')"
