"""Container Lookup - which product sets directly contain a product.

Single-hop reverse queries over composition edges, scoped by tenant. These
are pure reads and cannot violate any graph invariant.

Example Usage:
    >>> from src.services.container_lookup import get_containing_product_ids
    >>> get_containing_product_ids("acme", widget.id)
    [3, 8]
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from src.services.database import session_scope
from src.services.dto import ProductSummary
from src.services.edge_store import EdgeStore, validate_tenant_id
from src.services.logging_utils import get_service_logger

logger = get_service_logger(__name__)


def get_containing_product_ids(
    tenant_id: str,
    component_product_id: int,
    session: Optional[Session] = None,
) -> List[int]:
    """Get the ids of all sets that directly contain a product.

    Args:
        tenant_id: Tenant to search in
        component_product_id: The component to look up
        session: Optional database session

    Returns:
        List[int]: Distinct parent product ids, ascending; empty if none
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        return _get_containing_product_ids_impl(tenant_id, component_product_id, session)
    with session_scope() as session:
        return _get_containing_product_ids_impl(tenant_id, component_product_id, session)


def _get_containing_product_ids_impl(
    tenant_id: str, component_product_id: int, session: Session
) -> List[int]:
    """Implementation of get_containing_product_ids."""
    parent_ids = EdgeStore(session, tenant_id).container_ids(component_product_id)
    logger.debug(f"Product {component_product_id} is contained by {len(parent_ids)} set(s)")
    return parent_ids


def get_containing_products(
    tenant_id: str,
    component_product_id: int,
    session: Optional[Session] = None,
) -> List[ProductSummary]:
    """Get summaries of all sets that directly contain a product.

    Args:
        tenant_id: Tenant to search in
        component_product_id: The component to look up
        session: Optional database session

    Returns:
        List[ProductSummary]: One entry per distinct parent, ordered by id
    """
    validate_tenant_id(tenant_id)
    if session is not None:
        return EdgeStore(session, tenant_id).list_containers(component_product_id)
    with session_scope() as session:
        return EdgeStore(session, tenant_id).list_containers(component_product_id)
