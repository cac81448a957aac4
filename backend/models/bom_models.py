"""
Data models for the BOM engine
Simple dataclasses for clean data handling
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


LEVEL_PRODUCT = 0
LEVEL_GROUP = 1
LEVEL_ELEMENT = 2
LEVEL_ACCESSORY = 3

BOM_LEVELS = (LEVEL_PRODUCT, LEVEL_GROUP, LEVEL_ELEMENT, LEVEL_ACCESSORY)

# Levels allowed to hold inclusion edges
COMPOSITE_LEVELS = (LEVEL_PRODUCT, LEVEL_GROUP)


def now_iso() -> str:
    return datetime.now().isoformat()


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class Material:
    """Raw material, owned by the warehouse side"""
    id: str
    name: str
    code: str
    current_stock: Optional[Decimal] = None
    unit: Optional[str] = None
    cost: Optional[Decimal] = None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "current_stock": decimal_str(self.current_stock),
            "unit": self.unit,
            "cost": decimal_str(self.cost),
        }


@dataclass
class Product:
    """Sellable product, owned by the CRM side"""
    id: str
    code: str
    name: str
    description: Optional[str] = None
    product_type: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "product_type": self.product_type,
        }


@dataclass
class WorkOrder:
    """Production work order referencing a BOM"""
    id: str
    number: str
    title: str = ""
    status: str = "planned"
    bom_id: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "status": self.status,
            "bom_id": self.bom_id,
        }


@dataclass
class WorkOrderAccessory:
    """Accessory line of a work order; its BOM is not what the work order builds"""
    id: str
    work_order_id: str
    bom_id: str
    quantity: Decimal = Decimal("1")
    notes: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "work_order_id": self.work_order_id,
            "bom_id": self.bom_id,
            "quantity": str(self.quantity),
            "notes": self.notes,
        }


@dataclass
class Inclusion:
    """Directed, quantity-weighted edge from a BOM to one exactly one level below"""
    id: str
    parent_bom_id: str
    included_bom_id: str
    quantity: Decimal = Decimal("1")
    notes: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    included_bom: Optional["Bom"] = None

    def to_dict(self, expand: bool = True):
        data = {
            "id": self.id,
            "parent_bom_id": self.parent_bom_id,
            "included_bom_id": self.included_bom_id,
            "quantity": str(self.quantity),
            "notes": self.notes,
            "created_at": self.created_at,
        }
        if expand and self.included_bom is not None:
            data["included_bom"] = self.included_bom.to_dict()
        return data


@dataclass
class Bom:
    """A versioned node in the product-structure graph"""
    id: str
    name: str
    version: str
    level: int
    parent_id: Optional[str] = None
    material_id: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    machinery_model: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    # Populated only when loaded as a tree
    material: Optional[Material] = None
    inclusions: List[Inclusion] = field(default_factory=list)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "level": self.level,
            "parent_id": self.parent_id,
            "material_id": self.material_id,
            "description": self.description,
            "notes": self.notes,
            "machinery_model": self.machinery_model,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "material": self.material.to_dict() if self.material else None,
            "inclusions": [inc.to_dict() for inc in self.inclusions],
        }


@dataclass
class InclusionInput:
    """One selected edge as submitted by the caller"""
    included_bom_id: str
    quantity: Decimal = Decimal("1")
    notes: Optional[str] = None


@dataclass
class BomInput:
    """Create/update request for a single BOM"""
    name: str
    level: int
    id: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    material_id: Optional[str] = None
    parent_id: Optional[str] = None
    machinery_model: Optional[str] = None
    # None leaves the current set untouched; a list (even empty) replaces it
    inclusions: Optional[List[InclusionInput]] = None
    product_ids: Optional[List[str]] = None


@dataclass
class BomWithCost:
    """BOM tree plus its computed rollup"""
    bom: Bom
    total_cost: Decimal = Decimal("0")
    component_count: int = 0
    product_ids: List[str] = field(default_factory=list)

    def to_dict(self):
        data = self.bom.to_dict()
        data["total_cost"] = str(self.total_cost)
        data["component_count"] = self.component_count
        data["product_ids"] = list(self.product_ids)
        return data


@dataclass
class CompositionLine:
    """One row of an exploded BOM"""
    bom_id: str
    name: str
    version: str
    level: int
    depth: int
    quantity: Decimal
    unit_cost: Decimal
    extended_cost: Decimal
    material_id: Optional[str] = None
    material_name: Optional[str] = None

    def to_dict(self):
        return {
            "bom_id": self.bom_id,
            "name": self.name,
            "version": self.version,
            "level": self.level,
            "depth": self.depth,
            "quantity": str(self.quantity),
            "unit_cost": str(self.unit_cost),
            "extended_cost": str(self.extended_cost),
            "material_id": self.material_id,
            "material_name": self.material_name,
        }


@dataclass
class DeletionResult:
    """Outcome of a dependency-aware deletion"""
    bom_id: str
    deleted: bool = False
    deleted_work_orders: List[str] = field(default_factory=list)
    removed_accessory_lines: List[str] = field(default_factory=list)
    detached_parent_ids: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "bom_id": self.bom_id,
            "deleted": self.deleted,
            "deleted_work_orders": list(self.deleted_work_orders),
            "removed_accessory_lines": list(self.removed_accessory_lines),
            "detached_parent_ids": list(self.detached_parent_ids),
        }


@dataclass
class SyncResult:
    """Result of a catalog synchronization"""
    source: str
    total_rows: int = 0
    materials: int = 0
    products: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    timestamp: str = field(default_factory=now_iso)
    status: str = "pending"

    def to_dict(self):
        return {
            "source": self.source,
            "total_rows": self.total_rows,
            "materials": self.materials,
            "products": self.products,
            "errors": self.errors,
            "error_messages": self.error_messages,
            "duration_seconds": round(self.duration_seconds, 3),
            "timestamp": self.timestamp,
            "status": self.status
        }
