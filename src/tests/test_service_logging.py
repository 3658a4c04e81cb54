"""Tests for service layer structured logging.

These tests verify that composition operations emit structured log entries
with appropriate context information.
"""

import logging

import pytest

from src.services.composition_service import add_component, remove_component
from src.services.cycle_detector import InMemoryEdgeView, find_cycle_path
from src.services.exceptions import CycleError, EdgeNotFoundError
from src.services.logging_utils import get_service_logger, log_operation
from src.tests.conftest import TENANT

COMPOSITION_LOGGER = "product_composition.services.composition_service"


class TestLoggingUtilities:
    """Tests for logging utility functions."""

    def test_get_service_logger_returns_logger(self):
        """get_service_logger returns a configured Logger instance."""
        logger = get_service_logger("test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "product_composition.services.test_module"

    def test_cycle_detector_logs_in_service_namespace(self, caplog):
        """Detector output is under the service logger namespace."""
        view = InMemoryEdgeView([(1, 2)])

        with caplog.at_level(logging.DEBUG, logger="product_composition.services.cycle_detector"):
            assert find_cycle_path(1, 3, view) is None

        assert caplog.records
        assert {r.name for r in caplog.records} == {"product_composition.services.cycle_detector"}

    def test_get_service_logger_extracts_module_name(self):
        """get_service_logger extracts module name from full path."""
        logger = get_service_logger("src.services.composition_service")
        assert logger.name == COMPOSITION_LOGGER

    def test_log_operation_logs_at_info_level(self, caplog):
        """log_operation logs at INFO level by default."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="test_op", outcome="success", entity_id=123)

        assert "test_op: success" in caplog.text

    def test_log_operation_logs_at_custom_level(self, caplog):
        """log_operation respects custom log level."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.DEBUG):
            log_operation(logger, operation="debug_op", outcome="noted", level=logging.DEBUG)

        assert caplog.records[0].levelno == logging.DEBUG

    def test_log_operation_includes_extra_context(self, caplog):
        """log_operation includes extra context in log records."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="context_test", outcome="success", edge_id=42)

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.operation == "context_test"
        assert record.outcome == "success"
        assert record.edge_id == 42


class TestCompositionLogging:
    """Composition operations log their outcome."""

    def test_add_component_logs_success(self, test_db, products, caplog):
        """A successful add logs the new edge."""
        with caplog.at_level(logging.INFO, logger=COMPOSITION_LOGGER):
            edge_id = add_component(TENANT, products["A"], products["B"], quantity=2)

        records = [r for r in caplog.records if getattr(r, "operation", None) == "add_component"]
        assert records[-1].outcome == "success"
        assert records[-1].edge_id == edge_id
        assert records[-1].tenant_id == TENANT

    def test_cycle_rejection_logged_as_warning(self, test_db, products, caplog):
        """Rejected cycles are logged with the offending path."""
        add_component(TENANT, products["A"], products["B"])

        with caplog.at_level(logging.WARNING, logger=COMPOSITION_LOGGER):
            with pytest.raises(CycleError):
                add_component(TENANT, products["B"], products["A"])

        (record,) = [r for r in caplog.records if getattr(r, "outcome", None) == "cycle_rejected"]
        assert record.levelno == logging.WARNING
        assert record.path == [products["B"], products["A"], products["B"]]

    def test_not_found_logged(self, test_db, caplog):
        """Missing edges are logged before the error is raised."""
        with caplog.at_level(logging.WARNING, logger=COMPOSITION_LOGGER):
            with pytest.raises(EdgeNotFoundError):
                remove_component(TENANT, 77)

        assert "remove_component: not_found" in caplog.text
