"""
Repository boundary of the BOM engine
Any relational store providing these operations can back the engine
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Sequence

from models.bom_models import Bom, Inclusion, Material, Product, WorkOrder, WorkOrderAccessory
from models.errors import NotFound

logger = logging.getLogger(__name__)


class BomRepository(ABC):
    """CRUD access to BOM records, edges, links and the linked external entities"""

    # ---- transactions
    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed block as one unit of work; nested use joins the outer one"""

    @abstractmethod
    @contextmanager
    def read_transaction(self) -> Iterator[None]:
        """Consistent snapshot for a group of reads; joins an enclosing transaction"""

    # ---- BOM records
    @abstractmethod
    def get_bom(self, bom_id: str) -> Optional[Bom]: ...

    @abstractmethod
    def list_boms(self, level: Optional[int] = None, search: Optional[str] = None) -> List[Bom]: ...

    @abstractmethod
    def list_boms_by_identity(self, name: str, level: int, parent_id: Optional[str]) -> List[Bom]: ...

    @abstractmethod
    def list_variants(self, bom_id: str) -> List[Bom]: ...

    @abstractmethod
    def insert_bom(self, bom: Bom) -> Bom:
        """Insert a row; raises ConcurrencyConflict if the version is already taken"""

    @abstractmethod
    def update_bom(self, bom_id: str, fields: Dict) -> Bom: ...

    @abstractmethod
    def delete_bom(self, bom_id: str) -> None: ...

    # ---- inclusion edges
    @abstractmethod
    def get_inclusions(self, parent_id: str) -> List[Inclusion]: ...

    @abstractmethod
    def list_parent_inclusions(self, bom_id: str) -> List[Inclusion]:
        """Edges pointing at bom_id from other BOMs"""

    @abstractmethod
    def replace_inclusions(self, parent_id: str, edges: Sequence[Inclusion]) -> List[Inclusion]: ...

    @abstractmethod
    def delete_inclusions_to(self, bom_id: str) -> int: ...

    # ---- product links
    @abstractmethod
    def get_product_links(self, bom_id: str) -> List[str]: ...

    @abstractmethod
    def list_boms_for_product(self, product_id: str) -> List[Bom]: ...

    @abstractmethod
    def replace_product_links(self, bom_id: str, product_ids: Sequence[str]) -> None: ...

    # ---- materials / products (read-only to the engine, upsert for catalog sync)
    @abstractmethod
    def list_materials(self) -> List[Material]: ...

    @abstractmethod
    def get_material(self, material_id: str) -> Optional[Material]: ...

    @abstractmethod
    def upsert_material(self, material: Material) -> bool:
        """Returns True when a new row was inserted"""

    @abstractmethod
    def list_products(self) -> List[Product]: ...

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]: ...

    @abstractmethod
    def upsert_product(self, product: Product) -> bool: ...

    # ---- work orders
    @abstractmethod
    def list_work_orders_referencing_bom(self, bom_id: str) -> List[WorkOrder]: ...

    @abstractmethod
    def delete_work_orders_cascade(self, work_order_ids: Sequence[str]) -> None:
        """Unlink service work orders, drop line items and executions, then the work orders"""

    @abstractmethod
    def list_accessory_lines_for_bom(self, bom_id: str) -> List[WorkOrderAccessory]:
        """Accessory lines of any work order that use bom_id"""

    @abstractmethod
    def delete_accessory_lines(self, line_ids: Sequence[str]) -> int: ...

    # ---- tree loading
    def get_bom_tree(self, bom_id: str) -> Bom:
        """
        Load a BOM with its inclusions expanded recursively and materials resolved
        Edges only ever point one level down, so recursion depth is bounded by the level count
        """
        with self.read_transaction():
            bom = self.get_bom(bom_id)
            if bom is None:
                raise NotFound("BOM", bom_id)
            self._expand(bom, {})
        return bom

    def _expand(self, bom: Bom, materials: Dict[str, Optional[Material]]):
        if bom.material_id:
            if bom.material_id not in materials:
                materials[bom.material_id] = self.get_material(bom.material_id)
            bom.material = materials[bom.material_id]

        bom.inclusions = self.get_inclusions(bom.id)
        for edge in bom.inclusions:
            child = self.get_bom(edge.included_bom_id)
            if child is None:
                logger.warning(f"Inclusion {edge.id} points at missing BOM {edge.included_bom_id}")
                continue
            self._expand(child, materials)
            edge.included_bom = child


def to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))
