"""Services package - business logic layer for the product composition graph.

Architecture:
- Services: Stateless functions taking tenant_id first and an optional session
- Transactions: Managed via session_scope() / tenant_write_scope()
- Storage: EdgeStore is the only code touching the product_components table
- Exceptions: Consistent error handling via the CompositionError hierarchy

Service Modules:
- composition_service: Add/update/remove/reorder components, integrity audit
- container_lookup: Sets that directly contain a product
- cycle_detector: Reachability checks that keep the graph acyclic

Infrastructure:
- database: Engine, sessions and tenant write locks
- edge_store: Tenant-scoped persistence adapter
- dto: Typed records returned to callers
- exceptions: Service error classes
- logging_utils: Structured operation logging
"""

from . import composition_service, container_lookup, cycle_detector, database

from .composition_service import (
    UNSET,
    add_component,
    bulk_add_components,
    update_component,
    remove_component,
    reorder_components,
    get_components,
    get_component,
    get_component_count,
    is_product_set,
    check_composition_integrity,
    normalize_sort_order,
)
from .container_lookup import get_containing_product_ids, get_containing_products
from .cycle_detector import InMemoryEdgeView, find_cycle_path, would_create_cycle
from .dto import ComponentEdge, IntegrityReport, ProductSummary
from .edge_store import EdgeStore
from .exceptions import (
    ServiceError,
    CompositionError,
    SelfReferenceError,
    CycleError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    NotFoundError,
    ValidationError,
    StorageError,
)

__all__ = [
    # Modules
    "composition_service",
    "container_lookup",
    "cycle_detector",
    "database",
    # Composition operations
    "UNSET",
    "add_component",
    "bulk_add_components",
    "update_component",
    "remove_component",
    "reorder_components",
    "get_components",
    "get_component",
    "get_component_count",
    "is_product_set",
    "check_composition_integrity",
    "normalize_sort_order",
    # Reverse lookup
    "get_containing_product_ids",
    "get_containing_products",
    # Cycle detection
    "InMemoryEdgeView",
    "find_cycle_path",
    "would_create_cycle",
    # Records
    "ComponentEdge",
    "IntegrityReport",
    "ProductSummary",
    "EdgeStore",
    # Exceptions
    "ServiceError",
    "CompositionError",
    "SelfReferenceError",
    "CycleError",
    "DuplicateEdgeError",
    "EdgeNotFoundError",
    "NotFoundError",
    "ValidationError",
    "StorageError",
]
