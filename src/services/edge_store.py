"""
Edge Store - tenant-scoped persistence adapter for composition edges.

EdgeStore is the only code that queries or writes the ``product_components``
table. It binds a session to one tenant, so no query can leak edges across
tenants, and it converts everything it reads into typed records from
``src.services.dto``.

Read patterns:
- outgoing neighbours of a node (``children_of``), served by the
  (tenant_id, parent_product_id) index
- incoming neighbours of a node (``parents_of``), served by the
  (tenant_id, component_product_id) index

Storage failures are translated here: uniqueness and self-reference
violations become domain errors, anything else becomes StorageError.
"""

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models import Product, ProductComponent
from ..utils.constants import CK_NO_SELF_REFERENCE, UQ_COMPONENT_PER_PARENT
from .dto import ComponentEdge, ProductSummary
from .exceptions import DuplicateEdgeError, SelfReferenceError, StorageError, ValidationError
from .logging_utils import get_service_logger

logger = get_service_logger(__name__)

# PostgreSQL SQLSTATE for unique_violation
_PG_UNIQUE_VIOLATION = "23505"


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig)
    if UQ_COMPONENT_PER_PARENT in message:
        return True
    if getattr(error.orig, "pgcode", None) == _PG_UNIQUE_VIOLATION:
        return True
    # SQLite reports the columns rather than the constraint name
    return "UNIQUE constraint failed" in message and "component_product_id" in message


def _is_self_reference_violation(error: IntegrityError) -> bool:
    return CK_NO_SELF_REFERENCE in str(error.orig)



def validate_tenant_id(tenant_id: str) -> None:
    """Reject a missing or blank tenant id before any storage access."""
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise ValidationError(["tenant_id must be a non-empty string"])


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Database error while trying to {action}: {e}")
        raise StorageError(f"Failed to {action}: {e}", original_error=e)


class EdgeStore:
    """
    Tenant-scoped access to composition edges.

    Args:
        session: Open SQLAlchemy session; the caller owns its transaction
        tenant_id: Tenant every query and write is restricted to
    """

    def __init__(self, session: Session, tenant_id: str):
        self.session = session
        self.tenant_id = tenant_id

    def _edges(self):
        return self.session.query(ProductComponent).filter(
            ProductComponent.tenant_id == self.tenant_id
        )

    # Graph reads

    def children_of(self, product_id: int) -> List[int]:
        """Component product ids directly contained by ``product_id``."""
        with _storage_errors(f"load components of product {product_id}"):
            rows = (
                self.session.query(ProductComponent.component_product_id)
                .filter(
                    ProductComponent.tenant_id == self.tenant_id,
                    ProductComponent.parent_product_id == product_id,
                )
                .order_by(ProductComponent.sort_order, ProductComponent.id)
                .all()
            )
        return [int(row[0]) for row in rows]

    def parents_of(self, product_id: int) -> List[int]:
        """Product ids that directly contain ``product_id``."""
        with _storage_errors(f"load containers of product {product_id}"):
            rows = (
                self.session.query(ProductComponent.parent_product_id)
                .filter(
                    ProductComponent.tenant_id == self.tenant_id,
                    ProductComponent.component_product_id == product_id,
                )
                .order_by(ProductComponent.parent_product_id)
                .all()
            )
        return [int(row[0]) for row in rows]

    def all_edges(self) -> List[ComponentEdge]:
        """Every edge of the tenant. Only the integrity audit needs this."""
        with _storage_errors("load all composition edges"):
            rows = self._edges().order_by(
                ProductComponent.parent_product_id,
                ProductComponent.sort_order,
                ProductComponent.id,
            ).all()
        return [ComponentEdge.from_model(row) for row in rows]

    # Edge reads

    def _get_row(self, edge_id: int) -> Optional[ProductComponent]:
        with _storage_errors(f"load component edge {edge_id}"):
            return self._edges().filter(ProductComponent.id == edge_id).first()

    def get_edge(self, edge_id: int, include_product: bool = False) -> Optional[ComponentEdge]:
        """Edge by id, or None when missing or owned by another tenant."""
        row = self._get_row(edge_id)
        return ComponentEdge.from_model(row, include_product=include_product) if row else None

    def find_edge(self, parent_product_id: int, component_product_id: int) -> Optional[ComponentEdge]:
        """Edge joining the two products, if one exists."""
        with _storage_errors("look up component edge"):
            row = (
                self._edges()
                .filter(
                    ProductComponent.parent_product_id == parent_product_id,
                    ProductComponent.component_product_id == component_product_id,
                )
                .first()
            )
        return ComponentEdge.from_model(row) if row else None

    def list_components(
        self, parent_product_id: int, include_products: bool = False
    ) -> List[ComponentEdge]:
        """Edges under a parent in display order (sort_order, then id)."""
        with _storage_errors(f"list components of product {parent_product_id}"):
            query = self._edges().filter(ProductComponent.parent_product_id == parent_product_id)
            if include_products:
                query = query.options(joinedload(ProductComponent.component_product))
            rows = query.order_by(ProductComponent.sort_order, ProductComponent.id).all()
        return [ComponentEdge.from_model(row, include_product=include_products) for row in rows]

    def count_components(self, parent_product_id: int) -> int:
        """Number of edges under a parent."""
        with _storage_errors(f"count components of product {parent_product_id}"):
            count = (
                self.session.query(func.count(ProductComponent.id))
                .filter(
                    ProductComponent.tenant_id == self.tenant_id,
                    ProductComponent.parent_product_id == parent_product_id,
                )
                .scalar()
            )
        return int(count or 0)

    def container_ids(self, component_product_id: int) -> List[int]:
        """Distinct direct parents of a product, ascending."""
        return sorted(set(self.parents_of(component_product_id)))

    def list_containers(self, component_product_id: int) -> List[ProductSummary]:
        """Summaries of the products that directly contain a product."""
        with _storage_errors(f"list containers of product {component_product_id}"):
            products = (
                self.session.query(Product)
                .join(ProductComponent, ProductComponent.parent_product_id == Product.id)
                .filter(
                    ProductComponent.tenant_id == self.tenant_id,
                    ProductComponent.component_product_id == component_product_id,
                )
                .distinct()
                .order_by(Product.id)
                .all()
            )
        return [ProductSummary.from_model(product) for product in products]

    # Writes

    def insert(
        self,
        parent_product_id: int,
        component_product_id: int,
        quantity: int,
        sort_order: int,
        notes: Optional[str] = None,
    ) -> ComponentEdge:
        """
        Insert a new edge and flush it so constraint violations surface now.

        Raises:
            DuplicateEdgeError: The (parent, component) pair already exists
            SelfReferenceError: Storage rejected a self-referencing edge
            StorageError: Any other persistence failure
        """
        row = ProductComponent(
            tenant_id=self.tenant_id,
            parent_product_id=parent_product_id,
            component_product_id=component_product_id,
            quantity=quantity,
            sort_order=sort_order,
            notes=notes or None,
        )
        try:
            self.session.add(row)
            self.session.flush()
        except IntegrityError as e:
            if _is_unique_violation(e):
                raise DuplicateEdgeError(parent_product_id, component_product_id) from e
            if _is_self_reference_violation(e):
                raise SelfReferenceError(parent_product_id) from e
            logger.error(f"Integrity error inserting component edge: {e}")
            raise StorageError(f"Failed to insert component edge: {e}", original_error=e)
        except SQLAlchemyError as e:
            logger.error(f"Database error inserting component edge: {e}")
            raise StorageError(f"Failed to insert component edge: {e}", original_error=e)
        return ComponentEdge.from_model(row)

    def update(self, edge_id: int, **fields) -> Optional[ComponentEdge]:
        """
        Apply field updates to one edge.

        Only quantity, sort_order and notes may change; endpoints are immutable.

        Returns:
            The updated edge, or None if it does not exist for this tenant
        """
        allowed = {"quantity", "sort_order", "notes"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        row = self._get_row(edge_id)
        if row is None:
            return None
        with _storage_errors(f"update component edge {edge_id}"):
            for name, value in fields.items():
                setattr(row, name, value)
            self.session.flush()
        return ComponentEdge.from_model(row)

    def delete(self, edge_id: int) -> Optional[ComponentEdge]:
        """
        Delete one edge.

        Returns:
            The deleted edge, or None if it does not exist for this tenant
        """
        row = self._get_row(edge_id)
        if row is None:
            return None
        edge = ComponentEdge.from_model(row)
        with _storage_errors(f"delete component edge {edge_id}"):
            self.session.delete(row)
            self.session.flush()
        return edge

    def set_sort_orders(self, parent_product_id: int, positions: Dict[int, int]) -> int:
        """
        Write new sort_order values for edges under one parent.

        Edge ids that are not children of ``parent_product_id`` for this
        tenant are skipped.

        Returns:
            Number of rows whose sort_order actually changed
        """
        if not positions:
            return 0
        changed = 0
        with _storage_errors(f"reorder components of product {parent_product_id}"):
            rows = (
                self._edges()
                .filter(
                    ProductComponent.parent_product_id == parent_product_id,
                    ProductComponent.id.in_(list(positions)),
                )
                .all()
            )
            for row in rows:
                position = positions[row.id]
                if row.sort_order != position:
                    row.sort_order = position
                    changed += 1
            self.session.flush()
        return changed
