"""
Unit Tests for BOM expansion

Tests:
1. Multi-level expansion and quantity roll-up
2. Shared leaves accumulating across paths
3. Cycle and depth rejection
4. Empty kits
5. Cycle guard when maintaining BOMs
"""
from decimal import Decimal

import pytest

from app.exceptions import ConfigurationError
from app.services.bom_service import BOMExpander, add_bom_component, validate_bom_circular
from tests.factories import create_test_bom, create_test_product


D = Decimal


class TestBOMExpansion:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session

    def test_single_level(self):
        # Arrange
        frame = create_test_product(self.db, sku="FRAME")
        screw = create_test_product(self.db, sku="SCREW")
        chair = create_test_product(self.db, sku="CHAIR", product_type="assembly_required")
        create_test_bom(self.db, chair, [(frame, 1), (screw, 8)])

        # Act
        requirements = BOMExpander(self.db).expand(chair.id, D("3"))

        # Assert
        assert [(r.product_sku, r.required_quantity) for r in requirements] == [
            ("FRAME", D("3")),
            ("SCREW", D("24")),
        ]
        assert all(r.bom_level == 1 for r in requirements)

    def test_shared_leaf_accumulates_across_paths(self):
        """A fastener used directly and inside a sub-assembly is summed."""
        # Arrange
        fastener = create_test_product(self.db, sku="FASTENER")
        panel = create_test_product(self.db, sku="PANEL")
        sub = create_test_product(self.db, sku="SUB", product_type="assembly_required")
        top = create_test_product(self.db, sku="TOP", product_type="assembly_required")
        create_test_bom(self.db, sub, [(panel, 3), (fastener, 1)])
        create_test_bom(self.db, top, [(fastener, 2), (sub, 1)])

        # Act
        requirements = BOMExpander(self.db).expand(top.id, D("2"))

        # Assert
        by_sku = {r.product_sku: r for r in requirements}
        assert by_sku["FASTENER"].required_quantity == D("6")
        assert by_sku["PANEL"].required_quantity == D("6")
        assert by_sku["FASTENER"].bom_level == 1
        assert by_sku["PANEL"].bom_level == 2
        assert "SUB" not in by_sku

    def test_leaf_required_on_any_path_is_not_optional(self):
        gasket = create_test_product(self.db, sku="GASKET")
        sub = create_test_product(self.db, sku="SUB", product_type="assembly_required")
        top = create_test_product(self.db, sku="TOP", product_type="assembly_required")
        create_test_bom(self.db, sub, [(gasket, 1)])
        create_test_bom(self.db, top, [(gasket, 1, True), (sub, 1)])

        requirements = BOMExpander(self.db).expand(top.id, D("1"))

        assert len(requirements) == 1
        assert requirements[0].is_optional is False

    def test_optional_branch_makes_leaves_optional(self):
        bulb = create_test_product(self.db, sku="BULB")
        lamp = create_test_product(self.db, sku="LAMP", product_type="assembly_required")
        top = create_test_product(self.db, sku="DESK", product_type="assembly_required")
        create_test_bom(self.db, lamp, [(bulb, 1)])
        create_test_bom(self.db, top, [(lamp, 1, True)])

        requirements = BOMExpander(self.db).expand(top.id, D("1"))

        assert requirements[0].product_sku == "BULB"
        assert requirements[0].is_optional is True

    def test_product_without_bom_expands_to_nothing(self):
        plain = create_test_product(self.db, sku="PLAIN")

        assert BOMExpander(self.db).expand(plain.id, D("5")) == []

    def test_expansion_is_deterministic(self):
        a = create_test_product(self.db, sku="A")
        b = create_test_product(self.db, sku="B")
        c = create_test_product(self.db, sku="C")
        sub = create_test_product(self.db, sku="SUB", product_type="assembly_required")
        top = create_test_product(self.db, sku="TOP", product_type="kit")
        create_test_bom(self.db, sub, [(c, 1), (a, 1)])
        create_test_bom(self.db, top, [(b, 1), (sub, 2), (a, 1)])

        first = [r.product_id for r in BOMExpander(self.db).expand(top.id, D("1"))]
        second = [r.product_id for r in BOMExpander(self.db).expand(top.id, D("1"))]

        assert first == second


class TestBOMGuards:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session

    def test_cycle_is_configuration_error(self):
        # Arrange
        x = create_test_product(self.db, sku="X", product_type="assembly_required")
        y = create_test_product(self.db, sku="Y", product_type="assembly_required")
        create_test_bom(self.db, x, [(y, 1)])
        create_test_bom(self.db, y, [(x, 1)])

        # Act / Assert
        with pytest.raises(ConfigurationError) as exc_info:
            BOMExpander(self.db).expand(x.id, D("1"))
        assert "Circular BOM reference: X -> Y -> X" in exc_info.value.message
        assert exc_info.value.product_id == x.id

    def test_self_reference_is_a_cycle(self):
        x = create_test_product(self.db, sku="X", product_type="assembly_required")
        create_test_bom(self.db, x, [(x, 1)])

        with pytest.raises(ConfigurationError):
            BOMExpander(self.db).expand(x.id, D("1"))

    def _chain(self, levels):
        """P0 -> P1 -> ... -> P<levels>, the last one a plain stock item."""
        products = [create_test_product(self.db, sku="P0", product_type="assembly_required")]
        for i in range(1, levels + 1):
            kind = "stock_only" if i == levels else "assembly_required"
            products.append(create_test_product(self.db, sku=f"P{i}", product_type=kind))
            create_test_bom(self.db, products[i - 1], [(products[i], 1)])
        return products

    def test_depth_at_maximum_is_accepted(self):
        products = self._chain(3)

        requirements = BOMExpander(self.db, max_depth=3).expand(products[0].id, D("1"))

        assert [r.product_sku for r in requirements] == ["P3"]
        assert requirements[0].bom_level == 3

    def test_depth_over_maximum_fails_cleanly(self):
        products = self._chain(4)

        with pytest.raises(ConfigurationError) as exc_info:
            BOMExpander(self.db, max_depth=3).expand(products[0].id, D("1"))
        assert "deeper than 3 levels" in exc_info.value.message

    def test_kit_without_components_is_configuration_error(self):
        kit = create_test_product(self.db, sku="EMPTY-KIT", product_type="kit")

        with pytest.raises(ConfigurationError) as exc_info:
            BOMExpander(self.db).expand(kit.id, D("1"))
        assert "has no BOM components" in exc_info.value.message

    def test_nested_empty_kit_is_configuration_error(self):
        inner = create_test_product(self.db, sku="INNER-KIT", product_type="kit")
        outer = create_test_product(self.db, sku="OUTER", product_type="assembly_required")
        create_test_bom(self.db, outer, [(inner, 1)])

        with pytest.raises(ConfigurationError):
            BOMExpander(self.db).expand(outer.id, D("1"))


class TestBOMMaintenance:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        self.db = db_session
        self.top = create_test_product(self.db, sku="TOP", product_type="assembly_required")
        self.sub = create_test_product(self.db, sku="SUB", product_type="assembly_required")
        self.leaf = create_test_product(self.db, sku="LEAF")

    def test_add_component(self):
        row = add_bom_component(self.db, self.top.id, self.sub.id, D("2"))

        assert row.sort_order == 0
        assert BOMExpander(self.db).has_bom(self.top.id)

    def test_adding_a_cycle_is_refused(self):
        add_bom_component(self.db, self.top.id, self.sub.id, D("1"))
        add_bom_component(self.db, self.sub.id, self.leaf.id, D("1"))

        assert validate_bom_circular(self.db, self.leaf.id, self.top.id) is True
        with pytest.raises(ConfigurationError):
            add_bom_component(self.db, self.leaf.id, self.top.id, D("1"))

    def test_self_reference_is_refused(self):
        with pytest.raises(ConfigurationError):
            add_bom_component(self.db, self.top.id, self.top.id, D("1"))

    def test_unrelated_component_is_not_a_cycle(self):
        add_bom_component(self.db, self.top.id, self.sub.id, D("1"))

        assert validate_bom_circular(self.db, self.top.id, self.leaf.id) is False
