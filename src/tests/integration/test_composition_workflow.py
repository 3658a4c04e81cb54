"""
Integration tests for product set composition.

These tests walk the Kit / Widget / Gadget scenario end to end:
- Building a set and reading it back in display order
- Rejecting a circular composition with its path
- Removing and reordering components
- Container lookup and integrity audit along the way
"""

import pytest

from src.services import (
    CycleError,
    DuplicateEdgeError,
    SelfReferenceError,
    add_component,
    bulk_add_components,
    check_composition_integrity,
    get_components,
    get_containing_product_ids,
    is_product_set,
    remove_component,
    reorder_components,
    update_component,
)
from src.services.database import session_scope
from src.tests.conftest import TENANT


def component_view(tenant_id, parent_id):
    return [
        (edge.component_product.name, edge.quantity, edge.sort_order)
        for edge in get_components(tenant_id, parent_id)
    ]


class TestKitScenario:
    """A kit holding two widgets and a gadget."""

    def test_build_and_read_back(self, test_db, kit):
        """Components come back in insertion order with their quantities."""
        add_component(TENANT, kit.kit, kit.widget, quantity=2)
        add_component(TENANT, kit.kit, kit.gadget)

        assert component_view(TENANT, kit.kit) == [("Widget", 2, 0), ("Gadget", 1, 1)]
        assert is_product_set(TENANT, kit.kit)
        assert not is_product_set(TENANT, kit.widget)

    def test_circular_composition_rejected(self, test_db, kit):
        """A component can never contain its own set."""
        add_component(TENANT, kit.kit, kit.widget, quantity=2)
        add_component(TENANT, kit.kit, kit.gadget)

        with pytest.raises(CycleError) as exc_info:
            add_component(TENANT, kit.widget, kit.kit)

        assert exc_info.value.path == [kit.widget, kit.kit, kit.widget]
        assert component_view(TENANT, kit.widget) == []
        assert check_composition_integrity(TENANT).is_valid

    def test_remove_compacts_order(self, test_db, kit):
        """Removing the first component moves the rest up."""
        widget_edge = add_component(TENANT, kit.kit, kit.widget, quantity=2)
        add_component(TENANT, kit.kit, kit.gadget)

        remove_component(TENANT, widget_edge)

        assert component_view(TENANT, kit.kit) == [("Gadget", 1, 0)]
        assert get_containing_product_ids(TENANT, kit.widget) == []

    def test_rejections_leave_set_unchanged(self, test_db, kit):
        """Self reference and duplicates are refused without side effects."""
        add_component(TENANT, kit.kit, kit.widget, quantity=2)

        with pytest.raises(SelfReferenceError):
            add_component(TENANT, kit.kit, kit.kit)
        with pytest.raises(DuplicateEdgeError):
            add_component(TENANT, kit.kit, kit.widget, quantity=5)

        assert component_view(TENANT, kit.kit) == [("Widget", 2, 0)]


class TestNestedSets:
    """Sets inside sets."""

    def test_three_levels(self, test_db, kit, make_product):
        """A kit inside a bundle keeps both levels consistent."""
        bundle = make_product("Bundle")
        bulk_add_components(
            TENANT,
            [
                {"parent_product_id": kit.kit, "component_product_id": kit.widget, "quantity": 2},
                {"parent_product_id": kit.kit, "component_product_id": kit.gadget},
                {"parent_product_id": bundle, "component_product_id": kit.kit},
            ],
        )

        assert get_containing_product_ids(TENANT, kit.kit) == [bundle]
        assert get_containing_product_ids(TENANT, kit.widget) == [kit.kit]

        with pytest.raises(CycleError) as exc_info:
            add_component(TENANT, kit.gadget, bundle)
        assert exc_info.value.path == [kit.gadget, bundle, kit.kit, kit.gadget]

    def test_reorder_then_move(self, test_db, kit, make_product):
        """Reorder and positional update keep positions contiguous."""
        manual = make_product("Manual")
        widget_edge = add_component(TENANT, kit.kit, kit.widget)
        gadget_edge = add_component(TENANT, kit.kit, kit.gadget)
        manual_edge = add_component(TENANT, kit.kit, manual)

        reorder_components(TENANT, kit.kit, [manual_edge, widget_edge, gadget_edge])
        update_component(TENANT, gadget_edge, sort_order=0)

        assert [name for name, _, _ in component_view(TENANT, kit.kit)] == [
            "Gadget",
            "Manual",
            "Widget",
        ]
        assert check_composition_integrity(TENANT).is_valid


class TestCallerOwnedSession:
    """Operations compose inside one caller transaction."""

    def test_operations_share_session(self, test_db, kit):
        """Edges added in one session are visible to later calls in it."""
        with session_scope() as session:
            add_component(TENANT, kit.kit, kit.widget, session=session)
            add_component(TENANT, kit.kit, kit.gadget, session=session)
            edges = get_components(TENANT, kit.kit, session=session)

        assert [edge.component_product_id for edge in edges] == [kit.widget, kit.gadget]
