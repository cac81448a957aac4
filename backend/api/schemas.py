from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from models.bom_models import BomInput, InclusionInput


class InclusionIn(BaseModel):
    included_bom_id: str
    quantity: Decimal = Decimal("1")
    notes: Optional[str] = None


class BomIn(BaseModel):
    id: Optional[str] = None
    name: str
    level: int
    description: Optional[str] = None
    notes: Optional[str] = None
    material_id: Optional[str] = None
    parent_id: Optional[str] = None
    machinery_model: Optional[str] = None
    inclusions: Optional[List[InclusionIn]] = None
    product_ids: Optional[List[str]] = None

    def to_input(self) -> BomInput:
        return BomInput(
            id=self.id,
            name=self.name,
            level=self.level,
            description=self.description,
            notes=self.notes,
            material_id=self.material_id,
            parent_id=self.parent_id,
            machinery_model=self.machinery_model,
            inclusions=None if self.inclusions is None else [
                InclusionInput(
                    included_bom_id=inc.included_bom_id,
                    quantity=inc.quantity,
                    notes=inc.notes,
                )
                for inc in self.inclusions
            ],
            product_ids=self.product_ids,
        )


class ProductLinksIn(BaseModel):
    product_ids: List[str] = []
