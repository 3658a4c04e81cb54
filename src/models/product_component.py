"""
ProductComponent junction model: one "set contains component" edge.

Each row states that ``parent_product_id`` (a product set) contains
``component_product_id`` ``quantity`` times. Together the rows of a tenant
form the composition graph, which the composition service keeps acyclic.

Key Features:
- Tenant-scoped uniqueness of (parent, component)
- No self-reference and positive quantity enforced by check constraints
- Zero-based sort ordering among siblings of the same parent
- Indexes for both outgoing (by parent) and incoming (by component) reads
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.constants import (
    CK_NO_SELF_REFERENCE,
    DEFAULT_COMPONENT_QUANTITY,
    MAX_TENANT_ID_LENGTH,
    TABLE_PRODUCT_COMPONENT,
    UQ_COMPONENT_PER_PARENT,
)


class ProductComponent(BaseModel):
    """
    Composition edge between a product set and one of its components.

    Attributes:
        tenant_id: Tenant isolation key
        parent_product_id: Foreign key to the containing product (the set)
        component_product_id: Foreign key to the contained product
        quantity: Units of the component required by the set (>= 1)
        sort_order: Position among the parent's components (0-based)
        notes: Free text, no semantic effect

    Endpoints are immutable once the edge exists; only quantity, sort_order
    and notes change afterwards.
    """

    __tablename__ = TABLE_PRODUCT_COMPONENT

    tenant_id = Column(String(MAX_TENANT_ID_LENGTH), nullable=False)

    parent_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    component_product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )

    quantity = Column(Integer, nullable=False, default=DEFAULT_COMPONENT_QUANTITY)
    sort_order = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    parent_product = relationship(
        "Product", foreign_keys=[parent_product_id], back_populates="component_edges"
    )
    component_product = relationship(
        "Product", foreign_keys=[component_product_id], back_populates="container_edges"
    )

    __table_args__ = (
        # Outgoing reads: components of a set, in display order
        Index("idx_product_component_parent", "tenant_id", "parent_product_id", "sort_order"),
        # Incoming reads: sets containing a product
        Index("idx_product_component_component", "tenant_id", "component_product_id"),
        UniqueConstraint(
            "tenant_id", "parent_product_id", "component_product_id", name=UQ_COMPONENT_PER_PARENT
        ),
        CheckConstraint("parent_product_id != component_product_id", name=CK_NO_SELF_REFERENCE),
        CheckConstraint("quantity >= 1", name="ck_product_component_quantity_positive"),
        CheckConstraint("sort_order >= 0", name="ck_product_component_sort_order_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of composition edge."""
        return (
            f"ProductComponent(id={self.id}, parent={self.parent_product_id}, "
            f"component={self.component_product_id}, qty={self.quantity}, "
            f"order={self.sort_order})"
        )
