"""Unit tests for exception hierarchy.

Validates that all exceptions inherit from ServiceError and carry the
attributes callers rely on.
"""

import inspect

import pytest

from src.services import exceptions as exc_module
from src.services.exceptions import (
    CompositionError,
    CycleError,
    DuplicateEdgeError,
    EdgeNotFoundError,
    NotFoundError,
    SelfReferenceError,
    ServiceError,
    StorageError,
    ValidationError,
)


def get_all_exception_classes():
    """Discover all exception classes defined in the exceptions module."""
    return [
        (name, obj)
        for name, obj in inspect.getmembers(exc_module, inspect.isclass)
        if issubclass(obj, Exception) and obj.__module__ == exc_module.__name__
    ]


class TestExceptionHierarchy:
    """Verify all exceptions inherit from ServiceError."""

    @pytest.mark.parametrize("name,cls", get_all_exception_classes())
    def test_inherits_service_error(self, name, cls):
        """Every service exception is a ServiceError."""
        assert issubclass(cls, ServiceError), f"{name} must inherit from ServiceError"

    def test_domain_errors_are_composition_errors(self):
        """Composition failures share one base class."""
        for cls in (
            SelfReferenceError,
            CycleError,
            DuplicateEdgeError,
            EdgeNotFoundError,
            ValidationError,
            StorageError,
        ):
            assert issubclass(cls, CompositionError)

    def test_not_found_alias(self):
        """NotFoundError is the edge-not-found error."""
        assert NotFoundError is EdgeNotFoundError


class TestExceptionAttributes:
    """Exceptions keep the identifiers that caused them."""

    def test_cycle_error_path_in_message(self):
        """The closing path is part of the message."""
        error = CycleError(1, 3, path=[1, 3, 2, 1])
        assert error.path == [1, 3, 2, 1]
        assert str(error).endswith("1 -> 3 -> 2 -> 1")

    def test_cycle_error_without_path(self):
        """A missing path leaves an empty list."""
        error = CycleError(1, 3)
        assert error.path == []
        assert "->" not in str(error)

    def test_self_reference_error(self):
        """The offending product is kept."""
        assert SelfReferenceError(7).product_id == 7

    def test_duplicate_edge_error(self):
        """Both endpoints are kept."""
        error = DuplicateEdgeError(1, 2)
        assert (error.parent_product_id, error.component_product_id) == (1, 2)

    def test_edge_not_found_error(self):
        """The missing edge id is kept and shown."""
        error = EdgeNotFoundError(42)
        assert error.edge_id == 42
        assert "42" in str(error)

    def test_validation_error_joins_messages(self):
        """All validation messages are reported."""
        error = ValidationError(["first", "second"])
        assert error.errors == ["first", "second"]
        assert str(error) == "Validation failed: first; second"

    def test_storage_error_keeps_original(self):
        """The underlying exception is preserved."""
        original = RuntimeError("connection reset")
        error = StorageError("Failed to read edges", original_error=original)
        assert error.original_error is original
        assert str(error) == "Storage error: Failed to read edges"
