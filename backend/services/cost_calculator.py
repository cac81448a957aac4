"""
Cost rollup over an already loaded BOM tree
Pure functions: no I/O, no caching, Decimal arithmetic only
"""
from decimal import Decimal
from typing import List
from models.bom_models import LEVEL_ELEMENT, Bom, CompositionLine

ZERO = Decimal("0")


def material_cost(bom: Bom) -> Decimal:
    """Intrinsic cost of a node: its material cost at level 2, otherwise 0"""
    if bom.level == LEVEL_ELEMENT and bom.material is not None and bom.material.cost is not None:
        return bom.material.cost
    return ZERO


def rollup_cost(bom: Bom) -> Decimal:
    """Post-order sum of material cost plus quantity-weighted costs of everything included"""
    total = material_cost(bom)
    for edge in bom.inclusions:
        if edge.included_bom is None:
            continue
        total += rollup_cost(edge.included_bom) * edge.quantity
    return total


def component_count(bom: Bom) -> int:
    return len(bom.inclusions)


def explode(bom: Bom) -> List[CompositionLine]:
    """
    Flatten a tree into composition lines, depth first
    Quantities are cumulative: a part used 3x inside a group used 2x shows 6
    """
    lines = []

    def walk(node: Bom, quantity: Decimal, depth: int):
        for edge in node.inclusions:
            child = edge.included_bom
            if child is None:
                continue
            child_quantity = quantity * edge.quantity
            unit_cost = rollup_cost(child)
            lines.append(CompositionLine(
                bom_id=child.id,
                name=child.name,
                version=child.version,
                level=child.level,
                depth=depth,
                quantity=child_quantity,
                unit_cost=unit_cost,
                extended_cost=unit_cost * child_quantity,
                material_id=child.material_id,
                material_name=child.material.name if child.material else None,
            ))
            walk(child, child_quantity, depth + 1)

    walk(bom, Decimal("1"), 1)
    return lines
