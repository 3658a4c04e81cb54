"""Service layer exception classes for the product composition service.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    └── CompositionError
        ├── SelfReferenceError
        ├── CycleError
        ├── DuplicateEdgeError
        ├── EdgeNotFoundError (alias: NotFoundError)
        ├── ValidationError
        └── StorageError

SelfReferenceError, CycleError and DuplicateEdgeError are expected conditions
meant to be shown to an end user. StorageError wraps infrastructure failures
and is not classified further.
"""

from typing import List, Optional, Sequence


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class CompositionError(ServiceError):
    """Base exception for composition graph operations."""

    pass


class SelfReferenceError(CompositionError):
    """Raised when a product would be added as a component of itself.

    Args:
        product_id: The product used as both parent and component

    Example:
        >>> raise SelfReferenceError(7)
        SelfReferenceError: A product cannot contain itself (product 7)
    """

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"A product cannot contain itself (product {product_id})")


class CycleError(CompositionError):
    """Raised when adding an edge would create a cycle in the composition graph.

    Args:
        parent_product_id: The prospective containing product
        component_product_id: The prospective component
        path: Optional closing path, starting and ending at the parent

    Example:
        >>> raise CycleError(1, 3, path=[1, 3, 2, 1])
        CycleError: Adding product 3 to product 1 would create a circular dependency: 1 -> 3 -> 2 -> 1
    """

    def __init__(
        self,
        parent_product_id: int,
        component_product_id: int,
        path: Optional[Sequence[int]] = None,
    ):
        self.parent_product_id = parent_product_id
        self.component_product_id = component_product_id
        self.path: List[int] = list(path) if path else []

        message = (
            f"Adding product {component_product_id} to product {parent_product_id} "
            f"would create a circular dependency"
        )
        if self.path:
            message += ": " + " -> ".join(str(node) for node in self.path)
        super().__init__(message)


class DuplicateEdgeError(CompositionError):
    """Raised when the (parent, component) pair already exists for the tenant.

    Args:
        parent_product_id: The containing product
        component_product_id: The component already present under it
    """

    def __init__(self, parent_product_id: int, component_product_id: int):
        self.parent_product_id = parent_product_id
        self.component_product_id = component_product_id
        super().__init__(
            f"Product {component_product_id} is already a component of product {parent_product_id}"
        )


class EdgeNotFoundError(CompositionError):
    """Raised when a composition edge does not exist or belongs to another tenant.

    Args:
        edge_id: The edge ID that was not found

    Example:
        >>> raise EdgeNotFoundError(42)
        EdgeNotFoundError: Component edge with ID 42 not found
    """

    def __init__(self, edge_id: int):
        self.edge_id = edge_id
        super().__init__(f"Component edge with ID {edge_id} not found")


NotFoundError = EdgeNotFoundError


class ValidationError(CompositionError):
    """Raised when input validation fails."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class StorageError(CompositionError):
    """Raised when a persistence call fails for infrastructure reasons."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Storage error: {message}")
