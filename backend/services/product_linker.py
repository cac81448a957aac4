import logging
from typing import List, Sequence
from database.repository import BomRepository
from models.bom_models import LEVEL_GROUP
from models.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


class ProductBomLinker:
    """Many-to-many links between level-1 BOMs and sellable products"""

    def __init__(self, repository: BomRepository):
        self.repo = repository

    def validate_products(self, product_ids: Sequence[str]) -> List[str]:
        """Drop duplicates (keeping order) and make sure every product exists"""
        unique_ids = list(dict.fromkeys(product_ids))
        for product_id in unique_ids:
            if self.repo.get_product(product_id) is None:
                raise NotFound("Product", product_id)
        return unique_ids

    def set_product_links(self, bom_id: str, product_ids: Sequence[str]) -> List[str]:
        """Replace all product links of a level-1 BOM"""
        bom = self.repo.get_bom(bom_id)
        if bom is None:
            raise NotFound("BOM", bom_id)
        if bom.level != LEVEL_GROUP:
            raise ValidationError(
                f"Only level {LEVEL_GROUP} BOMs can be linked to products",
                {"bom_id": bom_id, "level": bom.level},
            )

        unique_ids = self.validate_products(product_ids)
        with self.repo.transaction():
            self.repo.replace_product_links(bom_id, unique_ids)

        logger.info(f"Linked BOM {bom_id} ({bom.name}) to {len(unique_ids)} products")
        return unique_ids
