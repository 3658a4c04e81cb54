"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across the composition services.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="add_component",
        outcome="success",
        tenant_id="acme",
        edge_id=12,
    )

    # Log a rejected mutation
    log_operation(
        logger,
        operation="add_component",
        outcome="cycle_rejected",
        level=logging.WARNING,
        parent_product_id=1,
        component_product_id=3,
        path=[1, 3, 2, 1],
    )
"""

import logging
from typing import Any

from src.utils.constants import SERVICE_LOGGER_PREFIX


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'product_composition.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'product_composition.services.composition_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{SERVICE_LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is "<operation>: <outcome>"; the operation, outcome and any
    context fields are attached to the record via ``extra``.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "add_component", "reorder_components")
        outcome: Outcome description (e.g., "success", "cycle_rejected", "error")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields
            Common fields:
            - tenant_id: Tenant the operation was scoped to
            - edge_id: Composition edge affected
            - parent_product_id / component_product_id: Edge endpoints
            - path: Detected cycle path for rejections
            - error: Error message if outcome is "error"
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
