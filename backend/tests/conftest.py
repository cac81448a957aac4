"""
Fixtures for BOM engine tests

Provides:
- A file-backed SQLite repository per test (tmp_path)
- Seeded materials and products
- A BomService plus small builders for BOMs and inclusion edges
- Production rows (work orders and their dependents) written straight to the store
"""
from decimal import Decimal

import pytest

from database.sqlite_repository import SQLiteRepository
from models.bom_models import BomInput, InclusionInput, Material, Product, now_iso
from services.bom_service import BomService


MATERIALS = [
    Material(id="mat-filter", name="Filter cartridge", code="MAT-001",
             current_stock=Decimal("40"), unit="pcs", cost=Decimal("8.75")),
    Material(id="mat-steel", name="Steel housing", code="MAT-002",
             current_stock=Decimal("12"), unit="pcs", cost=Decimal("12.40")),
    Material(id="mat-gasket", name="Gasket", code="MAT-003",
             current_stock=Decimal("300"), unit="pcs", cost=None),
]

PRODUCTS = [
    Product(id="prod-oven", code="PRD-001", name="Wood oven 80", product_type="machinery"),
    Product(id="prod-pump", code="PRD-002", name="Pump station", product_type="machinery"),
    Product(id="prod-kit", code="PRD-003", name="Service kit", product_type="spare_part"),
]


@pytest.fixture
def repo(tmp_path):
    repository = SQLiteRepository(str(tmp_path / "bom_test.db"))
    for material in MATERIALS:
        repository.upsert_material(material)
    for product in PRODUCTS:
        repository.upsert_product(product)
    yield repository
    repository.close()


class ProductionStore:
    """
    Writes the production-side rows the engine only reads (work orders,
    accessory lines, executions, service orders) and counts rows for assertions
    """
    TABLES = (
        "materials", "products", "boms", "bom_inclusions", "bom_products",
        "work_orders", "work_order_accessories", "executions", "service_work_orders",
    )

    def __init__(self, repository):
        self.repo = repository

    def work_order(self, work_order_id, number, bom_id, title=""):
        self.repo._execute(
            "INSERT INTO work_orders (id, number, title, status, bom_id, created_at) "
            "VALUES (?, ?, ?, 'planned', ?, ?)",
            (work_order_id, number, title, bom_id, now_iso()),
        )

    def accessory(self, line_id, work_order_id, bom_id, quantity=1):
        self.repo._execute(
            "INSERT INTO work_order_accessories (id, work_order_id, bom_id, quantity) VALUES (?, ?, ?, ?)",
            (line_id, work_order_id, bom_id, str(quantity)),
        )

    def execution(self, execution_id, work_order_id, step_name):
        self.repo._execute(
            "INSERT INTO executions (id, work_order_id, step_name, start_time) VALUES (?, ?, ?, ?)",
            (execution_id, work_order_id, step_name, now_iso()),
        )

    def service_order(self, service_id, number, production_work_order_id):
        self.repo._execute(
            "INSERT INTO service_work_orders (id, number, production_work_order_id) VALUES (?, ?, ?)",
            (service_id, number, production_work_order_id),
        )

    def service_link(self, service_id):
        rows = self.repo._query(
            "SELECT production_work_order_id FROM service_work_orders WHERE id = ?", (service_id,)
        )
        return rows[0]["production_work_order_id"]

    def rows(self, sql):
        return self.repo._query(sql)

    def count(self, table):
        assert table in self.TABLES
        return self.repo._query(f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]

    def snapshot(self):
        return {table: self.count(table) for table in self.TABLES}


@pytest.fixture
def store(repo):
    return ProductionStore(repo)


@pytest.fixture
def service(repo):
    return BomService(repo)


@pytest.fixture
def make_bom(service):
    """Create a BOM through the lifecycle controller"""
    def _make(name, level, **kwargs):
        return service.create_or_update_bom(BomInput(name=name, level=level, **kwargs))
    return _make


@pytest.fixture
def edge():
    """Build an inclusion selection for a BOM"""
    def _edge(bom, quantity=1, notes=None):
        return InclusionInput(included_bom_id=bom.id, quantity=Decimal(str(quantity)), notes=notes)
    return _edge


@pytest.fixture
def pump_structure(make_bom, edge):
    """
    Model X (L0) -> Pump Group (L1) x1 -> Filter Cartridge (L2, 8.75) x3
    """
    cartridge = make_bom("Filter Cartridge", 2, material_id="mat-filter")
    pump_group = make_bom("Pump Group", 1, inclusions=[edge(cartridge, 3)],
                          product_ids=["prod-pump"])
    model_x = make_bom("Model X", 0, inclusions=[edge(pump_group, 1)])
    return {"cartridge": cartridge, "pump_group": pump_group, "model_x": model_x}
