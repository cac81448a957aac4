import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import List, Sequence
from database.repository import BomRepository
from models.bom_models import COMPOSITE_LEVELS, Inclusion, InclusionInput
from models.errors import InvalidQuantity, LevelMismatch, NotFound, ValidationError

logger = logging.getLogger(__name__)


def parse_quantity(raw, included_bom_id: str) -> Decimal:
    try:
        quantity = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantity(
            f"Quantity '{raw}' is not a number",
            {"included_bom_id": included_bom_id, "quantity": str(raw)},
        )

    if not quantity.is_finite() or quantity < 1:
        raise InvalidQuantity(
            f"Quantity must be at least 1, got {raw}",
            {"included_bom_id": included_bom_id, "quantity": str(raw)},
        )
    return quantity


class InclusionGraphManager:
    """
    Validates and replaces the edges between a parent BOM and the BOMs it includes

    Edges may only point exactly one level down (0 -> 1, 1 -> 2), which is what
    keeps every BOM graph acyclic; there is no separate cycle check.
    """

    def __init__(self, repository: BomRepository):
        self.repo = repository

    def validate_edges(self, parent_level: int, edges: Sequence[InclusionInput]) -> List[InclusionInput]:
        """Check a complete edge set against a parent level without writing anything"""
        if parent_level not in COMPOSITE_LEVELS:
            raise LevelMismatch(
                f"Level {parent_level} BOMs cannot include other BOMs",
                {"parent_level": parent_level},
            )

        expected_level = parent_level + 1
        seen = set()
        validated = []

        for edge in edges:
            quantity = parse_quantity(edge.quantity, edge.included_bom_id)

            if edge.included_bom_id in seen:
                raise ValidationError(
                    f"BOM {edge.included_bom_id} is selected more than once",
                    {"included_bom_id": edge.included_bom_id},
                )
            seen.add(edge.included_bom_id)

            target = self.repo.get_bom(edge.included_bom_id)
            if target is None:
                raise NotFound("BOM", edge.included_bom_id)

            if target.level != expected_level:
                raise LevelMismatch(
                    f"Level {parent_level} BOMs may only include level {expected_level} BOMs; "
                    f"'{target.name}' is level {target.level}",
                    {
                        "included_bom_id": target.id,
                        "included_level": target.level,
                        "parent_level": parent_level,
                        "expected_level": expected_level,
                    },
                )

            validated.append(InclusionInput(
                included_bom_id=edge.included_bom_id,
                quantity=quantity,
                notes=edge.notes,
            ))

        return validated

    def set_inclusions(self, parent_bom_id: str, edges: Sequence[InclusionInput]) -> List[Inclusion]:
        """Replace all outgoing edges of parent_bom_id with the given set"""
        parent = self.repo.get_bom(parent_bom_id)
        if parent is None:
            raise NotFound("BOM", parent_bom_id)

        validated = self.validate_edges(parent.level, edges)
        rows = [
            Inclusion(
                id=str(uuid.uuid4()),
                parent_bom_id=parent_bom_id,
                included_bom_id=edge.included_bom_id,
                quantity=edge.quantity,
                notes=edge.notes,
            )
            for edge in validated
        ]

        with self.repo.transaction():
            saved = self.repo.replace_inclusions(parent_bom_id, rows)

        logger.info(f"Set {len(saved)} inclusions on BOM {parent_bom_id} ({parent.name} {parent.version})")
        return saved
