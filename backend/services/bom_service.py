import logging
import uuid
from typing import List, Optional, Tuple
from database.repository import BomRepository
from models.bom_models import (
    BOM_LEVELS, COMPOSITE_LEVELS, LEVEL_ELEMENT, LEVEL_GROUP, LEVEL_PRODUCT,
    Bom, BomInput, BomWithCost, CompositionLine, DeletionResult, Inclusion,
    InclusionInput, Material, Product, now_iso,
)
from models.errors import (
    LevelMismatch, NotFound, ReferencedByOtherBOM, ReferencedByWorkOrder, ValidationError,
)
from services.cost_calculator import component_count, explode, rollup_cost
from services.inclusion_manager import InclusionGraphManager
from services.product_linker import ProductBomLinker
from services.version_allocator import VersionAllocator

logger = logging.getLogger(__name__)


class BomService:
    """
    Lifecycle controller for BOM records

    Key responsibilities:
    1. Create/update BOMs: level 1 is edited in place, levels 0/2/3 get a new version
    2. Duplicate a BOM with its inclusion edges (never its product links)
    3. Delete a BOM only after work order and inclusion dependencies are resolved
    4. Serve BOM trees with their rolled-up cost

    Every public mutation runs as one repository transaction.
    """

    def __init__(self, repository: Optional[BomRepository] = None):
        if repository is None:
            from database.sqlite_repository import SQLiteRepository
            repository = SQLiteRepository()
        self.repo = repository
        self.versions = VersionAllocator(self.repo)
        self.inclusions = InclusionGraphManager(self.repo)
        self.linker = ProductBomLinker(self.repo)
        logger.info("BOM service initialized")

    # ================================================================
    # Create / Update
    # ================================================================
    def _validate(self, data: BomInput) -> Tuple[Optional[Bom], Optional[List[InclusionInput]], Optional[List[str]]]:
        """All input checks, before anything is written"""
        if not data.name or not data.name.strip():
            raise ValidationError("BOM name is required", {"field": "name"})

        if data.level not in BOM_LEVELS:
            raise ValidationError(
                f"Level must be one of {list(BOM_LEVELS)}, got {data.level}",
                {"field": "level", "level": data.level},
            )

        existing = None
        if data.id:
            existing = self.repo.get_bom(data.id)
            if existing is None:
                raise NotFound("BOM", data.id)
            if existing.level != data.level:
                raise ValidationError(
                    f"Cannot change level from {existing.level} to {data.level}",
                    {"field": "level", "bom_id": existing.id,
                     "current_level": existing.level, "level": data.level},
                )
            if data.parent_id and data.parent_id != existing.parent_id:
                raise ValidationError(
                    "Cannot move a BOM to another base model",
                    {"field": "parent_id", "bom_id": existing.id,
                     "current_parent_id": existing.parent_id, "parent_id": data.parent_id},
                )

        # Material binding
        if data.level == LEVEL_ELEMENT:
            if not data.material_id:
                raise ValidationError(
                    f"Level {LEVEL_ELEMENT} BOMs require a material",
                    {"field": "material_id"},
                )
            if self.repo.get_material(data.material_id) is None:
                raise NotFound("Material", data.material_id)
        elif data.material_id:
            raise ValidationError(
                f"Only level {LEVEL_ELEMENT} BOMs can be bound to a material",
                {"field": "material_id", "level": data.level},
            )

        # Model family
        if data.parent_id:
            if data.level != LEVEL_PRODUCT:
                raise ValidationError(
                    f"Only level {LEVEL_PRODUCT} BOMs can be variants of a base model",
                    {"field": "parent_id", "level": data.level},
                )
            base = self.repo.get_bom(data.parent_id)
            if base is None:
                raise NotFound("BOM", data.parent_id)
            if base.level != LEVEL_PRODUCT:
                raise ValidationError(
                    f"Base model must be a level {LEVEL_PRODUCT} BOM",
                    {"field": "parent_id", "parent_id": base.id, "parent_level": base.level},
                )

        # Product links
        product_ids = None
        if data.product_ids is not None:
            if data.level != LEVEL_GROUP and data.product_ids:
                raise ValidationError(
                    f"Only level {LEVEL_GROUP} BOMs can be linked to products",
                    {"field": "product_ids", "level": data.level},
                )
            if data.level == LEVEL_GROUP:
                product_ids = self.linker.validate_products(data.product_ids)

        # Inclusions; a new version of an existing BOM starts from its edges
        edges = data.inclusions
        if edges is None and existing is not None and data.level != LEVEL_GROUP:
            edges = [
                InclusionInput(e.included_bom_id, e.quantity, e.notes)
                for e in self.repo.get_inclusions(existing.id)
            ]

        if data.level in COMPOSITE_LEVELS:
            if edges is not None:
                edges = self.inclusions.validate_edges(data.level, edges)
        elif edges:
            raise LevelMismatch(
                f"Level {data.level} BOMs cannot include other BOMs",
                {"parent_level": data.level},
            )

        return existing, edges, product_ids

    def create_or_update_bom(self, data: BomInput) -> Bom:
        """
        Level 1 with an id: update in place (same row, same version)
        Anything else: insert a new row with a freshly allocated version
        """
        existing, edges, product_ids = self._validate(data)
        name = data.name.strip()
        # A new version stays in the family of the row it was edited from
        parent_id = existing.parent_id if existing is not None else data.parent_id

        with self.repo.transaction():
            if data.level == LEVEL_GROUP and existing is not None:
                bom = self.repo.update_bom(existing.id, {
                    "name": name,
                    "description": data.description,
                    "notes": data.notes,
                    "machinery_model": data.machinery_model,
                    "updated_at": now_iso(),
                })
                action = "Updated"
            else:
                bom = self.versions.insert_new_version(Bom(
                    id=str(uuid.uuid4()),
                    name=name,
                    version="",
                    level=data.level,
                    parent_id=parent_id,
                    material_id=data.material_id,
                    description=data.description,
                    notes=data.notes,
                    machinery_model=data.machinery_model,
                ))
                action = "Created"

            if data.level in COMPOSITE_LEVELS and edges is not None:
                self.inclusions.set_inclusions(bom.id, edges)

            if data.level == LEVEL_GROUP and product_ids is not None:
                self.linker.set_product_links(bom.id, product_ids)

        logger.info(f"{action} level {bom.level} BOM '{bom.name}' {bom.version} ({bom.id})")
        return bom

    # ================================================================
    # Duplicate
    # ================================================================
    def duplicate_bom(self, bom_id: str) -> Bom:
        """Copy a BOM into a new version; edges are copied, product links are not"""
        source = self.repo.get_bom(bom_id)
        if source is None:
            raise NotFound("BOM", bom_id)

        provenance = f"Duplicated from version {source.version}"
        notes = f"{source.notes}\n\n{provenance}" if source.notes else provenance

        with self.repo.transaction():
            bom = self.versions.insert_new_version(Bom(
                id=str(uuid.uuid4()),
                name=source.name,
                version="",
                level=source.level,
                parent_id=source.parent_id,
                material_id=source.material_id,
                description=source.description,
                notes=notes,
                machinery_model=source.machinery_model,
            ))

            copied = 0
            if source.level in COMPOSITE_LEVELS:
                edges = [
                    Inclusion(
                        id=str(uuid.uuid4()),
                        parent_bom_id=bom.id,
                        included_bom_id=edge.included_bom_id,
                        quantity=edge.quantity,
                        notes=edge.notes,
                    )
                    for edge in self.repo.get_inclusions(source.id)
                ]
                copied = len(self.repo.replace_inclusions(bom.id, edges))

        logger.info(
            f"Duplicated BOM '{source.name}' {source.version} -> {bom.version} "
            f"({copied} inclusions copied)"
        )
        return bom

    # ================================================================
    # Delete
    # ================================================================
    def delete_bom(self, bom_id: str, confirm_cascade: bool = False,
                   detach_parents: bool = False) -> DeletionResult:
        """
        Delete a BOM after checking what depends on it

        Blocks with ReferencedByWorkOrder unless confirm_cascade is set. Confirming
        deletes the work orders that build this BOM and only removes the accessory
        lines that use it from other work orders. Blocks with ReferencedByOtherBOM
        while a parent still includes it unless detach_parents is set. Base models
        with variants are always blocked.
        """
        result = DeletionResult(bom_id=bom_id)

        with self.repo.transaction():
            bom = self.repo.get_bom(bom_id)
            if bom is None:
                raise NotFound("BOM", bom_id)

            work_orders = self.repo.list_work_orders_referencing_bom(bom_id)
            cascaded = {wo.id for wo in work_orders}
            # Lines on work orders that are deleted anyway need no separate removal
            accessory_lines = [
                line for line in self.repo.list_accessory_lines_for_bom(bom_id)
                if line.work_order_id not in cascaded
            ]
            if (work_orders or accessory_lines) and not confirm_cascade:
                logger.warning(
                    f"Delete of BOM {bom_id} blocked by {len(work_orders)} work orders "
                    f"and {len(accessory_lines)} accessory lines"
                )
                raise ReferencedByWorkOrder(
                    f"BOM '{bom.name}' {bom.version} is used by "
                    f"{len(work_orders) + len(accessory_lines)} work order entries",
                    {
                        "bom_id": bom_id,
                        "work_order_ids": [wo.id for wo in work_orders],
                        "work_order_numbers": [wo.number for wo in work_orders],
                        "accessory_line_ids": [line.id for line in accessory_lines],
                        "accessory_work_order_ids": sorted({line.work_order_id for line in accessory_lines}),
                    },
                )

            if bom.level == LEVEL_PRODUCT:
                variants = self.repo.list_variants(bom_id)
                if variants:
                    logger.warning(f"Delete of BOM {bom_id} blocked by {len(variants)} variants")
                    raise ReferencedByOtherBOM(
                        f"BOM '{bom.name}' is the base model of {len(variants)} variants",
                        {"bom_id": bom_id, "variant_ids": [v.id for v in variants]},
                    )

            parents = self.repo.list_parent_inclusions(bom_id)
            if parents and not detach_parents:
                logger.warning(f"Delete of BOM {bom_id} blocked by {len(parents)} parent BOMs")
                raise ReferencedByOtherBOM(
                    f"BOM '{bom.name}' {bom.version} is included by {len(parents)} other BOMs",
                    {
                        "bom_id": bom_id,
                        "parent_bom_ids": [edge.parent_bom_id for edge in parents],
                        "inclusion_ids": [edge.id for edge in parents],
                    },
                )

            if work_orders:
                result.deleted_work_orders = [wo.id for wo in work_orders]
                self.repo.delete_work_orders_cascade(result.deleted_work_orders)

            if accessory_lines:
                result.removed_accessory_lines = [line.id for line in accessory_lines]
                self.repo.delete_accessory_lines(result.removed_accessory_lines)

            if parents:
                result.detached_parent_ids = [edge.parent_bom_id for edge in parents]
                self.repo.delete_inclusions_to(bom_id)

            self.repo.replace_inclusions(bom_id, [])
            self.repo.delete_bom(bom_id)
            result.deleted = True

        logger.info(
            f"Deleted BOM '{bom.name}' {bom.version} ({bom_id}); "
            f"work orders={len(result.deleted_work_orders)}, "
            f"accessory lines={len(result.removed_accessory_lines)}, "
            f"detached parents={len(result.detached_parent_ids)}"
        )
        return result

    # ================================================================
    # Product links
    # ================================================================
    def set_product_links(self, bom_id: str, product_ids: List[str]) -> List[str]:
        with self.repo.transaction():
            return self.linker.set_product_links(bom_id, product_ids)

    # ================================================================
    # Reads
    # ================================================================
    def _with_cost(self, bom_id: str) -> BomWithCost:
        with self.repo.read_transaction():
            tree = self.repo.get_bom_tree(bom_id)
            product_ids = self.repo.get_product_links(tree.id) if tree.level == LEVEL_GROUP else []
        return BomWithCost(
            bom=tree,
            total_cost=rollup_cost(tree),
            component_count=component_count(tree),
            product_ids=product_ids,
        )

    def get_bom_with_cost(self, bom_id: str) -> BomWithCost:
        return self._with_cost(bom_id)

    def list_boms_by_level(self, level: Optional[int] = None,
                           search: Optional[str] = None) -> List[BomWithCost]:
        """BOMs of one level (or all), most recently updated first, each with its cost"""
        if level is not None and level not in BOM_LEVELS:
            raise ValidationError(
                f"Level must be one of {list(BOM_LEVELS)}, got {level}",
                {"field": "level", "level": level},
            )
        with self.repo.read_transaction():
            return [self._with_cost(bom.id) for bom in self.repo.list_boms(level=level, search=search)]

    def get_composition(self, bom_id: str) -> Tuple[BomWithCost, List[CompositionLine]]:
        detail = self._with_cost(bom_id)
        return detail, explode(detail.bom)

    def list_boms_for_product(self, product_id: str) -> List[BomWithCost]:
        with self.repo.read_transaction():
            if self.repo.get_product(product_id) is None:
                raise NotFound("Product", product_id)
            return [
                self._with_cost(bom.id)
                for bom in self.repo.list_boms_for_product(product_id)
                if bom.level == LEVEL_GROUP
            ]

    def list_versions(self, name: str, level: int, parent_id: Optional[str] = None) -> List[Bom]:
        """Every version of one (name, level, parent) identity, oldest first"""
        return self.repo.list_boms_by_identity(name, level, parent_id)

    def list_materials(self) -> List[Material]:
        return self.repo.list_materials()

    def list_products(self) -> List[Product]:
        return self.repo.list_products()
