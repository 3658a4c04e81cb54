"""Data Transfer Objects for the composition service layer.

ORM rows never leave the storage adapter: every row read from
``product_components`` or ``products`` is mapped to one of these frozen,
strictly-typed records before it reaches the cycle detector, the service
functions, or the caller.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ProductSummary:
    """Short description of a product, as shown next to a composition edge.

    Attributes:
        id: Product ID
        name: Display name
        gtin: Global Trade Item Number, if known
        manufacturer: Manufacturer name, if known
        category: Product category, if known
        image_url: Image location, if known
    """

    id: int
    name: str
    gtin: Optional[str] = None
    manufacturer: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_model(cls, product) -> "ProductSummary":
        """Build a summary from a Product row."""
        return cls(
            id=int(product.id),
            name=str(product.name),
            gtin=product.gtin,
            manufacturer=product.manufacturer,
            category=product.category,
            image_url=product.image_url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ComponentEdge:
    """One "parent contains component" relationship.

    Attributes:
        id: Edge ID
        tenant_id: Tenant the edge belongs to
        parent_product_id: The containing product (the set)
        component_product_id: The contained product
        quantity: Units of the component required (>= 1)
        sort_order: Zero-based position among the parent's components
        notes: Free text, None when empty
        component_product: Summary of the component, when requested
    """

    id: int
    tenant_id: str
    parent_product_id: int
    component_product_id: int
    quantity: int
    sort_order: int
    notes: Optional[str] = None
    component_product: Optional[ProductSummary] = None

    @classmethod
    def from_model(cls, row, include_product: bool = False) -> "ComponentEdge":
        """Build an edge record from a ProductComponent row."""
        summary = None
        if include_product and row.component_product is not None:
            summary = ProductSummary.from_model(row.component_product)
        return cls(
            id=int(row.id),
            tenant_id=str(row.tenant_id),
            parent_product_id=int(row.parent_product_id),
            component_product_id=int(row.component_product_id),
            quantity=int(row.quantity),
            sort_order=int(row.sort_order or 0),
            notes=row.notes or None,
            component_product=summary,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IntegrityReport:
    """Result of auditing a tenant's composition graph.

    Attributes:
        tenant_id: Tenant that was audited
        issues: Human-readable description of every problem found
        cycles: Cycles already present in stored data, each as a node path
        edges_checked: Number of edges examined
        parents_checked: Number of distinct parents examined
        checked_at: ISO timestamp of the audit
    """

    tenant_id: str
    issues: List[str] = field(default_factory=list)
    cycles: List[List[int]] = field(default_factory=list)
    edges_checked: int = 0
    parents_checked: int = 0
    checked_at: str = ""

    @property
    def is_valid(self) -> bool:
        """True when no issue was found."""
        return not self.issues

    @property
    def issues_count(self) -> int:
        return len(self.issues)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["is_valid"] = self.is_valid
        result["issues_count"] = self.issues_count
        return result
