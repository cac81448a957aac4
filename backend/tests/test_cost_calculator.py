"""
Unit tests for the cost rollup

Pure functions over hand-built trees; no store involved.
"""
from decimal import Decimal

from models.bom_models import Bom, Inclusion, Material
from services.cost_calculator import component_count, explode, rollup_cost


def node(name, level, cost=None, material=True, children=()):
    bom = Bom(id=f"id-{name}", name=name, version="v1", level=level)
    if level == 2 and material:
        bom.material_id = f"mat-{name}"
        bom.material = Material(id=bom.material_id, name=f"{name} material", code=name, cost=cost)
    bom.inclusions = [
        Inclusion(
            id=f"edge-{name}-{child.name}",
            parent_bom_id=bom.id,
            included_bom_id=child.id,
            quantity=Decimal(str(quantity)),
            included_bom=child,
        )
        for child, quantity in children
    ]
    return bom


class TestRollupCost:

    def test_leaf_element_costs_its_material(self):
        assert rollup_cost(node("cartridge", 2, Decimal("8.75"))) == Decimal("8.75")

    def test_group_multiplies_by_quantity(self):
        cartridge = node("cartridge", 2, Decimal("8.75"))
        group = node("pump", 1, children=[(cartridge, 3)])
        assert rollup_cost(group) == Decimal("26.25")

    def test_empty_bom_costs_exactly_zero(self):
        cost = rollup_cost(node("empty", 1))
        assert cost == Decimal("0")
        assert isinstance(cost, Decimal)

    def test_missing_material_or_cost_counts_as_zero(self):
        no_material = node("bare", 2, material=False)
        no_cost = node("gasket", 2, cost=None)
        group = node("group", 1, children=[(no_material, 2), (no_cost, 5)])
        assert rollup_cost(group) == Decimal("0")

    def test_accessory_has_no_intrinsic_cost(self):
        accessory = node("handle", 3)
        accessory.material = Material(id="m", name="m", code="m", cost=Decimal("5"))
        assert rollup_cost(accessory) == Decimal("0")

    def test_three_levels(self):
        cartridge = node("cartridge", 2, Decimal("8.75"))
        housing = node("housing", 2, Decimal("12.40"))
        pump = node("pump", 1, children=[(cartridge, 3), (housing, 1)])
        valve = node("valve", 1, children=[(housing, 2)])
        model = node("model", 0, children=[(pump, 2), (valve, 1)])

        # pump = 26.25 + 12.40 = 38.65; valve = 24.80; model = 2 * 38.65 + 24.80
        assert rollup_cost(model) == Decimal("102.10")

    def test_decimal_precision(self):
        part = node("shim", 2, Decimal("0.1"))
        group = node("shims", 1, children=[(part, 3)])
        assert rollup_cost(group) == Decimal("0.3")

    def test_element_with_edges_sums_both(self):
        inner = node("inner", 3)
        inner_material = node("inner-mat", 2, Decimal("2"))
        element = node("odd", 2, Decimal("1"), children=[(inner_material, 4), (inner, 1)])
        assert rollup_cost(element) == Decimal("9")

    def test_deterministic(self):
        cartridge = node("cartridge", 2, Decimal("8.75"))
        group = node("pump", 1, children=[(cartridge, 3)])
        assert rollup_cost(group) == rollup_cost(group)


class TestExplode:

    def test_cumulative_quantities(self):
        cartridge = node("cartridge", 2, Decimal("8.75"))
        pump = node("pump", 1, children=[(cartridge, 3)])
        model = node("model", 0, children=[(pump, 2)])

        lines = explode(model)

        assert [(l.name, l.depth, l.quantity) for l in lines] == [
            ("pump", 1, Decimal("2")),
            ("cartridge", 2, Decimal("6")),
        ]
        assert lines[0].unit_cost == Decimal("26.25")
        assert lines[0].extended_cost == Decimal("52.50")
        assert lines[1].extended_cost == Decimal("52.50")
        assert lines[1].material_name == "cartridge material"

    def test_leaf_has_no_lines(self):
        assert explode(node("cartridge", 2, Decimal("1"))) == []


def test_component_count_counts_direct_edges():
    cartridge = node("cartridge", 2, Decimal("1"))
    housing = node("housing", 2, Decimal("1"))
    pump = node("pump", 1, children=[(cartridge, 3), (housing, 1)])
    model = node("model", 0, children=[(pump, 1)])

    assert component_count(pump) == 2
    assert component_count(model) == 1
