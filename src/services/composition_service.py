"""
Composition Service - mutating API for the product composition graph.

A product "set" is composed of other products through ProductComponent
edges (parent contains component). This service is the only code allowed to
write those edges, and it keeps the following true after every call:

- no product contains itself
- the tenant's graph has no cycle
- a component appears at most once directly under a parent
- siblings' sort_order values are exactly 0..n-1
- quantity is at least 1

All functions follow the session pattern: pass ``session`` to join a
caller-owned transaction, otherwise each call runs as its own unit of work.

Key Features:
- Add components with cycle detection under a tenant-scoped write lock
- Update quantity, notes and position without re-running cycle detection
- Remove components, renumbering the remaining siblings
- Reorder components, tolerating stale client-side id lists
- Bulk add for import tools (all-or-nothing)
- Integrity audit and sort-order repair for existing data

Example Usage:
    >>> from src.services import composition_service
    >>> edge_id = composition_service.add_component("acme", kit.id, widget.id, quantity=2)
    >>> [e.quantity for e in composition_service.get_components("acme", kit.id)]
    [2]
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from src.services.cycle_detector import InMemoryEdgeView, find_cycle_path, find_existing_cycles
from src.services.database import session_scope, tenant_write_lock, tenant_write_scope
from src.services.dto import ComponentEdge, IntegrityReport
from src.services.edge_store import EdgeStore, validate_tenant_id
from src.services.exceptions import (
    CycleError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    SelfReferenceError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import DEFAULT_COMPONENT_QUANTITY, MIN_COMPONENT_QUANTITY
from src.utils.datetime_utils import utc_now_iso

logger = get_service_logger(__name__)


class _Unset:
    """Marker for update arguments that were not provided."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


# =============================================================================
# Validation helpers
# =============================================================================


def _quantity_errors(quantity: Any) -> List[str]:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        return [f"Quantity must be a whole number, got {quantity!r}"]
    if quantity < MIN_COMPONENT_QUANTITY:
        return [f"Quantity must be at least {MIN_COMPONENT_QUANTITY}, got {quantity}"]
    return []


def _sort_order_errors(sort_order: Any) -> List[str]:
    if isinstance(sort_order, bool) or not isinstance(sort_order, int):
        return [f"Sort order must be a whole number, got {sort_order!r}"]
    if sort_order < 0:
        return [f"Sort order must be non-negative, got {sort_order}"]
    return []


def _require_edge(store: EdgeStore, edge_id: int, operation: str) -> ComponentEdge:
    edge = store.get_edge(edge_id)
    if edge is None:
        log_operation(
            logger,
            operation=operation,
            outcome="not_found",
            level=logging.WARNING,
            tenant_id=store.tenant_id,
            edge_id=edge_id,
        )
        raise EdgeNotFoundError(edge_id)
    return edge


def _renumber(store: EdgeStore, parent_product_id: int, ordered_ids: Sequence[int]) -> int:
    return store.set_sort_orders(
        parent_product_id, {edge_id: position for position, edge_id in enumerate(ordered_ids)}
    )


def _reject_cycle(
    store: EdgeStore, parent_product_id: int, component_product_id: int, view=None
) -> None:
    """Raise CycleError if the edge would close a loop in ``view`` (default: stored graph)."""
    path = find_cycle_path(parent_product_id, component_product_id, view or store)
    if path is not None:
        log_operation(
            logger,
            operation="add_component",
            outcome="cycle_rejected",
            level=logging.WARNING,
            tenant_id=store.tenant_id,
            parent_product_id=parent_product_id,
            component_product_id=component_product_id,
            path=path,
        )
        raise CycleError(parent_product_id, component_product_id, path=path)


# =============================================================================
# Add
# =============================================================================


def add_component(
    tenant_id: str,
    parent_product_id: int,
    component_product_id: int,
    quantity: int = DEFAULT_COMPONENT_QUANTITY,
    notes: Optional[str] = None,
    session: Optional[Session] = None,
) -> int:
    """
    Add a product as a component of a product set.

    The new edge is appended after the parent's existing components
    (sort_order = current number of components).

    Args:
        tenant_id: Tenant the graph belongs to
        parent_product_id: The set that will contain the component
        component_product_id: The product being included
        quantity: Units of the component required (default 1)
        notes: Optional free text
        session: Optional caller-owned session

    Returns:
        ID of the new edge

    Raises:
        ValidationError: If quantity is not a whole number >= 1
        SelfReferenceError: If parent and component are the same product
        CycleError: If the edge would create a cycle
        DuplicateEdgeError: If the component is already directly in the set
        StorageError: If persistence fails (including unknown product ids)
    """
    validate_tenant_id(tenant_id)
    errors = _quantity_errors(quantity)
    if errors:
        raise ValidationError(errors)
    if parent_product_id == component_product_id:
        log_operation(
            logger,
            operation="add_component",
            outcome="self_reference_rejected",
            level=logging.WARNING,
            tenant_id=tenant_id,
            parent_product_id=parent_product_id,
        )
        raise SelfReferenceError(parent_product_id)

    if session is not None:
        with tenant_write_lock(session, tenant_id):
            return _add_component_impl(
                tenant_id, parent_product_id, component_product_id, quantity, notes, session
            )
    with tenant_write_scope(tenant_id) as session:
        return _add_component_impl(
            tenant_id, parent_product_id, component_product_id, quantity, notes, session
        )


def _add_component_impl(
    tenant_id: str,
    parent_product_id: int,
    component_product_id: int,
    quantity: int,
    notes: Optional[str],
    session: Session,
) -> int:
    """Implementation of add_component; runs with the tenant write lock held."""
    store = EdgeStore(session, tenant_id)

    _reject_cycle(store, parent_product_id, component_product_id)

    if store.find_edge(parent_product_id, component_product_id) is not None:
        log_operation(
            logger,
            operation="add_component",
            outcome="duplicate_rejected",
            level=logging.WARNING,
            tenant_id=tenant_id,
            parent_product_id=parent_product_id,
            component_product_id=component_product_id,
        )
        raise DuplicateEdgeError(parent_product_id, component_product_id)

    sort_order = store.count_components(parent_product_id)
    edge = store.insert(
        parent_product_id=parent_product_id,
        component_product_id=component_product_id,
        quantity=quantity,
        sort_order=sort_order,
        notes=notes,
    )

    log_operation(
        logger,
        operation="add_component",
        outcome="success",
        tenant_id=tenant_id,
        edge_id=edge.id,
        parent_product_id=parent_product_id,
        component_product_id=component_product_id,
        quantity=quantity,
        sort_order=sort_order,
    )
    return edge.id


def bulk_add_components(
    tenant_id: str,
    components: List[Dict[str, Any]],
    session: Optional[Session] = None,
) -> List[int]:
    """
    Add several components in one transaction (all-or-nothing).

    Each spec is checked against the stored graph plus the specs accepted
    before it, so a batch cannot smuggle in a cycle or a duplicate.

    Args:
        tenant_id: Tenant the graph belongs to
        components: Dicts with parent_product_id, component_product_id and
            optional quantity and notes
        session: Optional caller-owned session

    Returns:
        IDs of the created edges, in input order

    Raises:
        ValidationError: If a spec is missing fields or has a bad quantity
        SelfReferenceError, CycleError, DuplicateEdgeError: As add_component
        StorageError: If persistence fails
    """
    validate_tenant_id(tenant_id)
    if not components:
        return []

    errors = []
    for index, spec in enumerate(components):
        for field in ("parent_product_id", "component_product_id"):
            if field not in spec:
                errors.append(f"Component {index}: missing required field '{field}'")
        for message in _quantity_errors(spec.get("quantity", DEFAULT_COMPONENT_QUANTITY)):
            errors.append(f"Component {index}: {message}")
    if errors:
        raise ValidationError(errors)

    if session is not None:
        with tenant_write_lock(session, tenant_id):
            return _bulk_add_components_impl(tenant_id, components, session)
    with tenant_write_scope(tenant_id) as session:
        return _bulk_add_components_impl(tenant_id, components, session)


def _bulk_add_components_impl(
    tenant_id: str, components: List[Dict[str, Any]], session: Session
) -> List[int]:
    """Implementation of bulk_add_components."""
    store = EdgeStore(session, tenant_id)
    pending = InMemoryEdgeView(base=store)
    pending_pairs = set()
    next_order: Dict[int, int] = {}

    for spec in components:
        parent_id = spec["parent_product_id"]
        component_id = spec["component_product_id"]
        if parent_id == component_id:
            raise SelfReferenceError(parent_id)
        _reject_cycle(store, parent_id, component_id, view=pending)
        if (parent_id, component_id) in pending_pairs or store.find_edge(
            parent_id, component_id
        ) is not None:
            raise DuplicateEdgeError(parent_id, component_id)
        pending.add(parent_id, component_id)
        pending_pairs.add((parent_id, component_id))

    created = []
    for spec in components:
        parent_id = spec["parent_product_id"]
        if parent_id not in next_order:
            next_order[parent_id] = store.count_components(parent_id)
        edge = store.insert(
            parent_product_id=parent_id,
            component_product_id=spec["component_product_id"],
            quantity=spec.get("quantity", DEFAULT_COMPONENT_QUANTITY),
            sort_order=next_order[parent_id],
            notes=spec.get("notes"),
        )
        next_order[parent_id] += 1
        created.append(edge.id)

    log_operation(
        logger,
        operation="bulk_add_components",
        outcome="success",
        tenant_id=tenant_id,
        created_count=len(created),
    )
    return created


# =============================================================================
# Update / Remove / Reorder
# =============================================================================


def update_component(
    tenant_id: str,
    edge_id: int,
    quantity: Any = UNSET,
    sort_order: Any = UNSET,
    notes: Any = UNSET,
    session: Optional[Session] = None,
) -> ComponentEdge:
    """
    Update quantity, position or notes of a component edge.

    Endpoints never change, so no cycle check is needed. A new sort_order
    moves the edge to that position among its siblings (clamped to the last
    position) and shifts the others so the order stays contiguous.

    Args:
        tenant_id: Tenant the edge belongs to
        edge_id: Edge to update
        quantity: New quantity (>= 1), if given
        sort_order: New zero-based position, if given
        notes: New notes, if given; None or "" clears them
        session: Optional caller-owned session

    Returns:
        The updated edge

    Raises:
        ValidationError: If quantity or sort_order is out of range
        EdgeNotFoundError: If the edge does not exist for this tenant
        StorageError: If persistence fails
    """
    validate_tenant_id(tenant_id)
    errors = []
    if quantity is not UNSET:
        errors.extend(_quantity_errors(quantity))
    if sort_order is not UNSET:
        errors.extend(_sort_order_errors(sort_order))
    if errors:
        raise ValidationError(errors)

    if session is not None:
        with tenant_write_lock(session, tenant_id):
            return _update_component_impl(tenant_id, edge_id, quantity, sort_order, notes, session)
    with tenant_write_scope(tenant_id) as session:
        return _update_component_impl(tenant_id, edge_id, quantity, sort_order, notes, session)


def _update_component_impl(
    tenant_id: str,
    edge_id: int,
    quantity: Any,
    sort_order: Any,
    notes: Any,
    session: Session,
) -> ComponentEdge:
    """Implementation of update_component."""
    store = EdgeStore(session, tenant_id)
    edge = _require_edge(store, edge_id, "update_component")

    fields: Dict[str, Any] = {}
    if quantity is not UNSET:
        fields["quantity"] = quantity
    if notes is not UNSET:
        fields["notes"] = notes or None
    if fields:
        store.update(edge_id, **fields)

    if sort_order is not UNSET:
        sibling_ids = [
            e.id for e in store.list_components(edge.parent_product_id) if e.id != edge_id
        ]
        sibling_ids.insert(min(sort_order, len(sibling_ids)), edge_id)
        _renumber(store, edge.parent_product_id, sibling_ids)

    updated = store.get_edge(edge_id)
    log_operation(
        logger,
        operation="update_component",
        outcome="success",
        tenant_id=tenant_id,
        edge_id=edge_id,
        fields=sorted(list(fields) + (["sort_order"] if sort_order is not UNSET else [])),
    )
    return updated


def remove_component(tenant_id: str, edge_id: int, session: Optional[Session] = None) -> None:
    """
    Remove a component edge.

    Removal only shrinks the graph, so it never needs cycle validation. The
    remaining siblings are renumbered to keep their order contiguous.

    Args:
        tenant_id: Tenant the edge belongs to
        edge_id: Edge to remove
        session: Optional caller-owned session

    Raises:
        EdgeNotFoundError: If the edge does not exist for this tenant
        StorageError: If persistence fails
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        with tenant_write_lock(session, tenant_id):
            return _remove_component_impl(tenant_id, edge_id, session)
    with tenant_write_scope(tenant_id) as session:
        return _remove_component_impl(tenant_id, edge_id, session)


def _remove_component_impl(tenant_id: str, edge_id: int, session: Session) -> None:
    """Implementation of remove_component."""
    store = EdgeStore(session, tenant_id)
    edge = _require_edge(store, edge_id, "remove_component")

    store.delete(edge_id)
    remaining = [e.id for e in store.list_components(edge.parent_product_id)]
    renumbered = _renumber(store, edge.parent_product_id, remaining)

    log_operation(
        logger,
        operation="remove_component",
        outcome="success",
        tenant_id=tenant_id,
        edge_id=edge_id,
        parent_product_id=edge.parent_product_id,
        component_product_id=edge.component_product_id,
        renumbered=renumbered,
    )


def reorder_components(
    tenant_id: str,
    parent_product_id: int,
    ordered_edge_ids: Sequence[int],
    session: Optional[Session] = None,
) -> List[ComponentEdge]:
    """
    Rewrite the order of a set's components.

    Each listed edge gets its 0-based position in the list. Ids that are not
    components of ``parent_product_id`` (stale client lists, other tenants)
    are ignored, repeated ids count once, and components missing from the
    list keep their relative order after the listed ones.

    Args:
        tenant_id: Tenant the set belongs to
        parent_product_id: The set whose components are reordered
        ordered_edge_ids: Edge ids in the desired order
        session: Optional caller-owned session

    Returns:
        The set's components in their new order

    Raises:
        StorageError: If persistence fails
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        with tenant_write_lock(session, tenant_id):
            return _reorder_components_impl(tenant_id, parent_product_id, ordered_edge_ids, session)
    with tenant_write_scope(tenant_id) as session:
        return _reorder_components_impl(tenant_id, parent_product_id, ordered_edge_ids, session)


def _reorder_components_impl(
    tenant_id: str,
    parent_product_id: int,
    ordered_edge_ids: Sequence[int],
    session: Session,
) -> List[ComponentEdge]:
    """Implementation of reorder_components."""
    store = EdgeStore(session, tenant_id)
    current_ids = [e.id for e in store.list_components(parent_product_id)]
    known = set(current_ids)

    listed: List[int] = []
    seen = set()
    ignored = []
    for edge_id in ordered_edge_ids:
        if edge_id not in known:
            ignored.append(edge_id)
            continue
        if edge_id not in seen:
            seen.add(edge_id)
            listed.append(edge_id)

    new_order = listed + [edge_id for edge_id in current_ids if edge_id not in seen]
    changed = _renumber(store, parent_product_id, new_order)

    if ignored:
        log_operation(
            logger,
            operation="reorder_components",
            outcome="ignored_foreign_ids",
            level=logging.DEBUG,
            tenant_id=tenant_id,
            parent_product_id=parent_product_id,
            ignored_ids=ignored,
        )
    log_operation(
        logger,
        operation="reorder_components",
        outcome="success",
        tenant_id=tenant_id,
        parent_product_id=parent_product_id,
        changed=changed,
    )
    return store.list_components(parent_product_id, include_products=True)


# =============================================================================
# Reads
# =============================================================================


def get_components(
    tenant_id: str,
    parent_product_id: int,
    include_products: bool = True,
    session: Optional[Session] = None,
) -> List[ComponentEdge]:
    """
    Get the direct components of a product set in display order.

    Args:
        tenant_id: Tenant the set belongs to
        parent_product_id: The set
        include_products: Attach a ProductSummary of each component
        session: Optional caller-owned session

    Returns:
        Component edges ordered by sort_order; empty if the product is not a set
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        return EdgeStore(session, tenant_id).list_components(parent_product_id, include_products)
    with session_scope() as session:
        return EdgeStore(session, tenant_id).list_components(parent_product_id, include_products)


def get_component(tenant_id: str, edge_id: int, session: Optional[Session] = None) -> ComponentEdge:
    """
    Get one component edge.

    Raises:
        EdgeNotFoundError: If the edge does not exist for this tenant
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        return _get_component_impl(tenant_id, edge_id, session)
    with session_scope() as session:
        return _get_component_impl(tenant_id, edge_id, session)


def _get_component_impl(tenant_id: str, edge_id: int, session: Session) -> ComponentEdge:
    edge = EdgeStore(session, tenant_id).get_edge(edge_id, include_product=True)
    if edge is None:
        raise EdgeNotFoundError(edge_id)
    return edge


def get_component_count(
    tenant_id: str, product_id: int, session: Optional[Session] = None
) -> int:
    """Number of direct components of a product; 0 if it is not a set."""
    validate_tenant_id(tenant_id)
    if session is not None:
        return EdgeStore(session, tenant_id).count_components(product_id)
    with session_scope() as session:
        return EdgeStore(session, tenant_id).count_components(product_id)


def is_product_set(tenant_id: str, product_id: int, session: Optional[Session] = None) -> bool:
    """True if the product has at least one component."""
    return get_component_count(tenant_id, product_id, session=session) > 0


# =============================================================================
# Integrity
# =============================================================================


def check_composition_integrity(
    tenant_id: str, session: Optional[Session] = None
) -> IntegrityReport:
    """
    Audit a tenant's stored composition graph.

    Looks for data that bypassed this service (direct imports, manual
    edits): existing cycles, self-references, sort-order gaps or duplicates,
    and quantities below 1.

    Args:
        tenant_id: Tenant to audit
        session: Optional caller-owned session

    Returns:
        IntegrityReport describing every issue found
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        return _check_composition_integrity_impl(tenant_id, session)
    with session_scope() as session:
        return _check_composition_integrity_impl(tenant_id, session)


def _check_composition_integrity_impl(tenant_id: str, session: Session) -> IntegrityReport:
    """Implementation of check_composition_integrity."""
    edges = EdgeStore(session, tenant_id).all_edges()
    report = IntegrityReport(tenant_id=tenant_id, edges_checked=len(edges))

    orders_by_parent: Dict[int, List[int]] = {}
    for edge in edges:
        orders_by_parent.setdefault(edge.parent_product_id, []).append(edge.sort_order)
        if edge.quantity < MIN_COMPONENT_QUANTITY:
            report.issues.append(f"Edge {edge.id} has invalid quantity {edge.quantity}")

    for parent_id, orders in sorted(orders_by_parent.items()):
        if sorted(orders) != list(range(len(orders))):
            report.issues.append(
                f"Product {parent_id} has non-contiguous sort order {sorted(orders)}"
            )
    report.parents_checked = len(orders_by_parent)

    report.cycles = find_existing_cycles(
        (edge.parent_product_id, edge.component_product_id) for edge in edges
    )
    for cycle in report.cycles:
        if len(cycle) == 2:
            report.issues.append(f"Product {cycle[0]} contains itself")
        else:
            report.issues.append("Circular composition: " + " -> ".join(str(n) for n in cycle))

    report.checked_at = utc_now_iso()

    log_operation(
        logger,
        operation="check_composition_integrity",
        outcome="valid" if report.is_valid else "issues_found",
        level=logging.INFO if report.is_valid else logging.WARNING,
        tenant_id=tenant_id,
        issues_count=report.issues_count,
        edges_checked=report.edges_checked,
    )
    return report


def normalize_sort_order(
    tenant_id: str, parent_product_id: int, session: Optional[Session] = None
) -> int:
    """
    Rewrite a set's component order to 0..n-1, keeping the current sequence.

    Repairs gaps and duplicate positions reported by
    check_composition_integrity. Ties are broken by edge id.

    Returns:
        Number of edges whose sort_order changed
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        with tenant_write_lock(session, tenant_id):
            return _normalize_sort_order_impl(tenant_id, parent_product_id, session)
    with tenant_write_scope(tenant_id) as session:
        return _normalize_sort_order_impl(tenant_id, parent_product_id, session)


def _normalize_sort_order_impl(tenant_id: str, parent_product_id: int, session: Session) -> int:
    store = EdgeStore(session, tenant_id)
    ordered = [e.id for e in store.list_components(parent_product_id)]
    changed = _renumber(store, parent_product_id, ordered)
    log_operation(
        logger,
        operation="normalize_sort_order",
        outcome="success",
        tenant_id=tenant_id,
        parent_product_id=parent_product_id,
        changed=changed,
    )
    return changed
