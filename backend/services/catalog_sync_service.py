import logging
import time
from decimal import InvalidOperation
from typing import Dict, List, Optional, Tuple
from database.repository import BomRepository, to_decimal
from database.supabase_client import SupabaseCatalogClient
from models.bom_models import Material, Product, SyncResult

logger = logging.getLogger(__name__)


class CatalogSyncService:
    """
    Imports the materials/products catalog the BOM engine reads

    Key responsibilities:
    1. Extract materials and products from the upstream Supabase project
    2. Validate rows (identity fields present, no negative cost)
    3. Load valid rows into the BOM store (insert new, update existing)
    """

    def __init__(self, repository: BomRepository, source: Optional[SupabaseCatalogClient] = None):
        self.repo = repository
        self._source = source
        logger.info("Catalog sync service initialized")

    @property
    def source(self) -> SupabaseCatalogClient:
        # Created lazily so the engine runs without Supabase credentials
        if self._source is None:
            self._source = SupabaseCatalogClient()
        return self._source

    # ================================================================
    # EXTRACT Phase
    # ================================================================
    def extract(self) -> Tuple[List[Dict], List[Dict]]:
        logger.info("EXTRACT: Fetching catalog from Supabase...")
        materials = self.source.get_materials()
        products = self.source.get_products()
        logger.info(f"EXTRACT: Retrieved {len(materials)} materials, {len(products)} products")
        return materials, products

    # ================================================================
    # TRANSFORM Phase (Validation)
    # ================================================================
    def transform_material(self, row: Dict) -> Material:
        """
        Business Rules:
        - id, code and name are required
        - cost and stock must be finite numbers; cost cannot be negative
        """
        errors = []
        for key in ("id", "code", "name"):
            if not row.get(key):
                errors.append(f"missing {key}")

        try:
            cost = to_decimal(row.get("cost"))
            stock = to_decimal(row.get("current_stock"))
        except InvalidOperation:
            errors.append("cost/current_stock is not a number")
            cost = stock = None

        if cost is not None and not cost.is_finite():
            errors.append(f"cost is not finite: {cost}")
            cost = None
        elif cost is not None and cost < 0:
            errors.append(f"negative cost: {cost}")

        if stock is not None and not stock.is_finite():
            errors.append(f"current_stock is not finite: {stock}")

        if errors:
            raise ValueError(f"material {row.get('code') or row.get('id')}: {', '.join(errors)}")

        return Material(
            id=str(row["id"]),
            name=row["name"],
            code=row["code"],
            current_stock=stock,
            unit=row.get("unit"),
            cost=cost,
        )

    def transform_product(self, row: Dict) -> Product:
        errors = [f"missing {key}" for key in ("id", "code", "name") if not row.get(key)]
        if errors:
            raise ValueError(f"product {row.get('code') or row.get('id')}: {', '.join(errors)}")

        return Product(
            id=str(row["id"]),
            code=row["code"],
            name=row["name"],
            description=row.get("description"),
            product_type=row.get("product_type"),
        )

    def transform(self, materials: List[Dict], products: List[Dict]) -> Tuple[List[Material], List[Product], List[str]]:
        logger.info("TRANSFORM: Validating catalog rows...")

        valid_materials = []
        valid_products = []
        all_errors = []

        for row in materials:
            try:
                valid_materials.append(self.transform_material(row))
            except ValueError as e:
                all_errors.append(str(e))
                logger.warning(f"TRANSFORM: Skipped {e}")

        for row in products:
            try:
                valid_products.append(self.transform_product(row))
            except ValueError as e:
                all_errors.append(str(e))
                logger.warning(f"TRANSFORM: Skipped {e}")

        logger.info(
            f"TRANSFORM: {len(valid_materials)} materials, {len(valid_products)} products valid, "
            f"{len(all_errors)} errors"
        )
        return valid_materials, valid_products, all_errors

    # ================================================================
    # LOAD Phase
    # ================================================================
    def load(self, materials: List[Material], products: List[Product]) -> Tuple[int, int]:
        logger.info("LOAD: Writing catalog to the BOM store...")

        inserted = 0
        updated = 0
        with self.repo.transaction():
            for material in materials:
                if self.repo.upsert_material(material):
                    inserted += 1
                else:
                    updated += 1
            for product in products:
                if self.repo.upsert_product(product):
                    inserted += 1
                else:
                    updated += 1

        logger.info(f"LOAD: Inserted={inserted}, Updated={updated}")
        return inserted, updated

    # ================================================================
    # Main Sync Pipeline
    # ================================================================
    def run_sync(self) -> SyncResult:
        logger.info("=" * 60)
        logger.info("CATALOG SYNC STARTED: Supabase -> BOM store")
        logger.info("=" * 60)

        start_time = time.time()

        try:
            materials, products = self.extract()
            valid_materials, valid_products, errors = self.transform(materials, products)
            self.load(valid_materials, valid_products)

            duration = time.time() - start_time
            result = SyncResult(
                source="supabase",
                total_rows=len(materials) + len(products),
                materials=len(valid_materials),
                products=len(valid_products),
                errors=len(errors),
                error_messages=errors,
                duration_seconds=duration,
                status="completed" if not errors else "completed_with_errors"
            )

            logger.info("=" * 60)
            logger.info("CATALOG SYNC COMPLETED")
            logger.info(f"Materials: {result.materials} | Products: {result.products} | Errors: {result.errors}")
            logger.info(f"Duration: {duration:.3f}s")
            logger.info("=" * 60)

            return result

        except Exception as e:
            logger.error(f"CATALOG SYNC FAILED: {e}", exc_info=True)
            duration = time.time() - start_time

            return SyncResult(
                source="supabase",
                errors=1,
                error_messages=[str(e)],
                duration_seconds=duration,
                status="failed"
            )
