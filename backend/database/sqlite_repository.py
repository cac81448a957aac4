"""
SQLite implementation of the BOM repository
Holds BOM records, inclusion edges, product links and the external rows the engine reads
"""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Sequence
from config import Config
from database.repository import BomRepository, to_decimal
from models.bom_models import (
    Bom, Inclusion, Material, Product, WorkOrder, WorkOrderAccessory, now_iso,
)
from models.errors import ConcurrencyConflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS materials (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        code TEXT NOT NULL,
        current_stock TEXT,
        unit TEXT,
        cost TEXT,
        updated_at TEXT
    );

    CREATE TABLE IF NOT EXISTS products (
        id TEXT PRIMARY KEY,
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        product_type TEXT,
        updated_at TEXT
    );

    CREATE TABLE IF NOT EXISTS boms (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        version TEXT NOT NULL,
        level INTEGER NOT NULL CHECK (level BETWEEN 0 AND 3),
        parent_id TEXT,
        material_id TEXT,
        description TEXT,
        notes TEXT,
        machinery_model TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    -- One version label per (name, level, parent) identity
    CREATE UNIQUE INDEX IF NOT EXISTS uq_bom_identity_version
        ON boms (name, level, COALESCE(parent_id, ''), version);

    CREATE INDEX IF NOT EXISTS ix_boms_level ON boms (level);

    CREATE TABLE IF NOT EXISTS bom_inclusions (
        id TEXT PRIMARY KEY,
        parent_bom_id TEXT NOT NULL REFERENCES boms (id),
        included_bom_id TEXT NOT NULL REFERENCES boms (id),
        quantity TEXT NOT NULL DEFAULT '1',
        notes TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (parent_bom_id, included_bom_id)
    );

    CREATE INDEX IF NOT EXISTS ix_bom_inclusions_included ON bom_inclusions (included_bom_id);

    CREATE TABLE IF NOT EXISTS bom_products (
        bom_id TEXT NOT NULL REFERENCES boms (id),
        product_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (bom_id, product_id)
    );

    CREATE TABLE IF NOT EXISTS work_orders (
        id TEXT PRIMARY KEY,
        number TEXT NOT NULL,
        title TEXT,
        status TEXT,
        bom_id TEXT,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS work_order_accessories (
        id TEXT PRIMARY KEY,
        work_order_id TEXT NOT NULL REFERENCES work_orders (id),
        bom_id TEXT NOT NULL,
        quantity TEXT NOT NULL DEFAULT '1',
        notes TEXT
    );

    CREATE TABLE IF NOT EXISTS executions (
        id TEXT PRIMARY KEY,
        work_order_id TEXT NOT NULL REFERENCES work_orders (id),
        step_name TEXT NOT NULL,
        start_time TEXT,
        end_time TEXT,
        notes TEXT
    );

    CREATE TABLE IF NOT EXISTS service_work_orders (
        id TEXT PRIMARY KEY,
        number TEXT NOT NULL,
        title TEXT,
        production_work_order_id TEXT REFERENCES work_orders (id)
    );
"""

UPDATABLE_BOM_FIELDS = ("name", "description", "notes", "machinery_model", "updated_at")


class SQLiteRepository(BomRepository):
    """BOM store on SQLite, one connection per thread"""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or Config.BOM_DB_PATH
        self._local = threading.local()
        self._connections = []
        self._lock = threading.Lock()
        self._init_database()

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            # Autocommit mode; transactions are opened explicitly
            conn = sqlite3.connect(
                self.db_path,
                timeout=Config.SQLITE_TIMEOUT,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn = conn
            self._local.depth = 0
            self._local.read_only = False
            with self._lock:
                self._connections.append(conn)
        return conn

    def _init_database(self):
        """Create database schema if not exists"""
        self._conn().executescript(SCHEMA)
        logger.info(f"BOM store initialized: {self.db_path}")

    @contextmanager
    def _unit_of_work(self, begin: str, read_only: bool):
        conn = self._conn()
        depth = self._local.depth
        if depth == 0:
            conn.execute(begin)
            self._local.read_only = read_only
        elif self._local.read_only and not read_only:
            # A deferred read lock cannot be upgraded safely
            raise RuntimeError("Write transaction opened inside a read transaction")
        self._local.depth = depth + 1
        try:
            yield
        except BaseException:
            self._local.depth = depth
            if depth == 0:
                conn.execute("ROLLBACK")
                logger.debug("Transaction rolled back")
            raise
        else:
            self._local.depth = depth
            if depth == 0:
                conn.execute("COMMIT")

    def transaction(self):
        # Take the write lock up front so read-then-insert cannot interleave
        return self._unit_of_work("BEGIN IMMEDIATE", read_only=False)

    def read_transaction(self):
        return self._unit_of_work("BEGIN", read_only=True)

    def _query(self, sql: str, params: Sequence = ()) -> List[sqlite3.Row]:
        return self._conn().execute(sql, tuple(params)).fetchall()

    def _execute(self, sql: str, params: Sequence = ()) -> int:
        return self._conn().execute(sql, tuple(params)).rowcount

    # ================================================================
    # BOM records
    # ================================================================
    def get_bom(self, bom_id: str) -> Optional[Bom]:
        rows = self._query("SELECT * FROM boms WHERE id = ?", (bom_id,))
        return _row_to_bom(rows[0]) if rows else None

    def list_boms(self, level: Optional[int] = None, search: Optional[str] = None) -> List[Bom]:
        sql = "SELECT * FROM boms WHERE 1 = 1"
        params = []
        if level is not None:
            sql += " AND level = ?"
            params.append(level)
        if search:
            sql += " AND (LOWER(name) LIKE ? OR LOWER(version) LIKE ?)"
            pattern = f"%{search.lower()}%"
            params.extend([pattern, pattern])
        sql += " ORDER BY updated_at DESC, created_at DESC"
        return [_row_to_bom(row) for row in self._query(sql, params)]

    def list_boms_by_identity(self, name: str, level: int, parent_id: Optional[str]) -> List[Bom]:
        rows = self._query("""
            SELECT * FROM boms
            WHERE name = ? AND level = ? AND COALESCE(parent_id, '') = COALESCE(?, '')
            ORDER BY created_at, id
        """, (name, level, parent_id))
        return [_row_to_bom(row) for row in rows]

    def list_variants(self, bom_id: str) -> List[Bom]:
        rows = self._query(
            "SELECT * FROM boms WHERE parent_id = ? ORDER BY name, created_at",
            (bom_id,)
        )
        return [_row_to_bom(row) for row in rows]

    def insert_bom(self, bom: Bom) -> Bom:
        try:
            self._execute("""
                INSERT INTO boms (
                    id, name, version, level, parent_id, material_id,
                    description, notes, machinery_model, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                bom.id,
                bom.name,
                bom.version,
                bom.level,
                bom.parent_id,
                bom.material_id,
                bom.description,
                bom.notes,
                bom.machinery_model,
                bom.created_at,
                bom.updated_at
            ))
        except sqlite3.IntegrityError as e:
            if "UNIQUE constraint failed" in str(e):
                raise ConcurrencyConflict(
                    f"Version {bom.version} of '{bom.name}' already exists",
                    {"name": bom.name, "level": bom.level,
                     "parent_id": bom.parent_id, "version": bom.version},
                ) from e
            raise
        logger.debug(f"Inserted BOM {bom.id} ({bom.name} {bom.version})")
        return bom

    def update_bom(self, bom_id: str, fields: Dict) -> Bom:
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_BOM_FIELDS}
        changes.setdefault("updated_at", now_iso())
        assignments = ", ".join(f"{column} = ?" for column in changes)
        try:
            updated = self._execute(
                f"UPDATE boms SET {assignments} WHERE id = ?",
                list(changes.values()) + [bom_id]
            )
        except sqlite3.IntegrityError as e:
            if "UNIQUE constraint failed" in str(e):
                raise ValidationError(
                    f"Another BOM already uses name '{changes.get('name')}' with this version",
                    {"bom_id": bom_id, "field": "name"},
                ) from e
            raise
        if not updated:
            raise NotFound("BOM", bom_id)
        return self.get_bom(bom_id)

    def delete_bom(self, bom_id: str) -> None:
        with self.transaction():
            self._execute("DELETE FROM bom_inclusions WHERE parent_bom_id = ?", (bom_id,))
            self._execute("DELETE FROM bom_products WHERE bom_id = ?", (bom_id,))
            if not self._execute("DELETE FROM boms WHERE id = ?", (bom_id,)):
                raise NotFound("BOM", bom_id)
        logger.debug(f"Deleted BOM row {bom_id}")

    # ================================================================
    # Inclusion edges
    # ================================================================
    def get_inclusions(self, parent_id: str) -> List[Inclusion]:
        rows = self._query(
            "SELECT * FROM bom_inclusions WHERE parent_bom_id = ? ORDER BY created_at, id",
            (parent_id,)
        )
        return [_row_to_inclusion(row) for row in rows]

    def list_parent_inclusions(self, bom_id: str) -> List[Inclusion]:
        rows = self._query(
            "SELECT * FROM bom_inclusions WHERE included_bom_id = ? ORDER BY parent_bom_id",
            (bom_id,)
        )
        return [_row_to_inclusion(row) for row in rows]

    def replace_inclusions(self, parent_id: str, edges: Sequence[Inclusion]) -> List[Inclusion]:
        with self.transaction():
            self._execute("DELETE FROM bom_inclusions WHERE parent_bom_id = ?", (parent_id,))
            for edge in edges:
                self._execute("""
                    INSERT INTO bom_inclusions (
                        id, parent_bom_id, included_bom_id, quantity, notes, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    edge.id,
                    parent_id,
                    edge.included_bom_id,
                    str(edge.quantity),
                    edge.notes,
                    edge.created_at
                ))
        return list(edges)

    def delete_inclusions_to(self, bom_id: str) -> int:
        return self._execute("DELETE FROM bom_inclusions WHERE included_bom_id = ?", (bom_id,))

    # ================================================================
    # Product links
    # ================================================================
    def get_product_links(self, bom_id: str) -> List[str]:
        rows = self._query(
            "SELECT product_id FROM bom_products WHERE bom_id = ? ORDER BY product_id",
            (bom_id,)
        )
        return [row["product_id"] for row in rows]

    def list_boms_for_product(self, product_id: str) -> List[Bom]:
        rows = self._query("""
            SELECT b.* FROM boms b
            JOIN bom_products bp ON bp.bom_id = b.id
            WHERE bp.product_id = ?
            ORDER BY b.name, b.version
        """, (product_id,))
        return [_row_to_bom(row) for row in rows]

    def replace_product_links(self, bom_id: str, product_ids: Sequence[str]) -> None:
        with self.transaction():
            self._execute("DELETE FROM bom_products WHERE bom_id = ?", (bom_id,))
            now = now_iso()
            for product_id in product_ids:
                self._execute(
                    "INSERT INTO bom_products (bom_id, product_id, created_at) VALUES (?, ?, ?)",
                    (bom_id, product_id, now)
                )

    # ================================================================
    # Materials / products
    # ================================================================
    def list_materials(self) -> List[Material]:
        return [_row_to_material(row) for row in self._query("SELECT * FROM materials ORDER BY code")]

    def get_material(self, material_id: str) -> Optional[Material]:
        rows = self._query("SELECT * FROM materials WHERE id = ?", (material_id,))
        return _row_to_material(rows[0]) if rows else None

    def upsert_material(self, material: Material) -> bool:
        params = (
            material.name,
            material.code,
            _text(material.current_stock),
            material.unit,
            _text(material.cost),
            now_iso(),
            material.id
        )
        with self.transaction():
            if self._execute("""
                UPDATE materials SET
                    name = ?, code = ?, current_stock = ?, unit = ?, cost = ?, updated_at = ?
                WHERE id = ?
            """, params):
                return False
            self._execute("""
                INSERT INTO materials (name, code, current_stock, unit, cost, updated_at, id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, params)
            return True

    def list_products(self) -> List[Product]:
        return [_row_to_product(row) for row in self._query("SELECT * FROM products ORDER BY code")]

    def get_product(self, product_id: str) -> Optional[Product]:
        rows = self._query("SELECT * FROM products WHERE id = ?", (product_id,))
        return _row_to_product(rows[0]) if rows else None

    def upsert_product(self, product: Product) -> bool:
        params = (
            product.code,
            product.name,
            product.description,
            product.product_type,
            now_iso(),
            product.id
        )
        with self.transaction():
            if self._execute("""
                UPDATE products SET
                    code = ?, name = ?, description = ?, product_type = ?, updated_at = ?
                WHERE id = ?
            """, params):
                return False
            self._execute("""
                INSERT INTO products (code, name, description, product_type, updated_at, id)
                VALUES (?, ?, ?, ?, ?, ?)
            """, params)
            return True

    # ================================================================
    # Work orders
    # ================================================================
    def list_work_orders_referencing_bom(self, bom_id: str) -> List[WorkOrder]:
        """Work orders that build bom_id"""
        rows = self._query(
            "SELECT * FROM work_orders WHERE bom_id = ? ORDER BY number",
            (bom_id,)
        )
        return [_row_to_work_order(row) for row in rows]

    def delete_work_orders_cascade(self, work_order_ids: Sequence[str]) -> None:
        if not work_order_ids:
            return
        placeholders = ", ".join("?" for _ in work_order_ids)
        ids = list(work_order_ids)
        with self.transaction():
            unlinked = self._execute(
                f"UPDATE service_work_orders SET production_work_order_id = NULL "
                f"WHERE production_work_order_id IN ({placeholders})", ids)
            accessories = self._execute(
                f"DELETE FROM work_order_accessories WHERE work_order_id IN ({placeholders})", ids)
            executions = self._execute(
                f"DELETE FROM executions WHERE work_order_id IN ({placeholders})", ids)
            self._execute(f"DELETE FROM work_orders WHERE id IN ({placeholders})", ids)
        logger.info(
            f"Deleted {len(ids)} work orders "
            f"(service unlinked={unlinked}, accessories={accessories}, executions={executions})"
        )

    def list_accessory_lines_for_bom(self, bom_id: str) -> List[WorkOrderAccessory]:
        rows = self._query(
            "SELECT * FROM work_order_accessories WHERE bom_id = ? ORDER BY work_order_id, id",
            (bom_id,)
        )
        return [_row_to_accessory(row) for row in rows]

    def delete_accessory_lines(self, line_ids: Sequence[str]) -> int:
        if not line_ids:
            return 0
        placeholders = ", ".join("?" for _ in line_ids)
        removed = self._execute(
            f"DELETE FROM work_order_accessories WHERE id IN ({placeholders})", list(line_ids))
        logger.info(f"Removed {removed} work order accessory lines")
        return removed

    def close(self):
        """Close every connection opened by this repository"""
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections = []
        self._local = threading.local()


def _text(value) -> Optional[str]:
    return None if value is None else str(value)


def _row_to_bom(row: sqlite3.Row) -> Bom:
    return Bom(
        id=row["id"],
        name=row["name"],
        version=row["version"],
        level=row["level"],
        parent_id=row["parent_id"],
        material_id=row["material_id"],
        description=row["description"],
        notes=row["notes"],
        machinery_model=row["machinery_model"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_inclusion(row: sqlite3.Row) -> Inclusion:
    return Inclusion(
        id=row["id"],
        parent_bom_id=row["parent_bom_id"],
        included_bom_id=row["included_bom_id"],
        quantity=to_decimal(row["quantity"]),
        notes=row["notes"],
        created_at=row["created_at"],
    )


def _row_to_material(row: sqlite3.Row) -> Material:
    return Material(
        id=row["id"],
        name=row["name"],
        code=row["code"],
        current_stock=to_decimal(row["current_stock"]),
        unit=row["unit"],
        cost=to_decimal(row["cost"]),
    )


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=row["id"],
        code=row["code"],
        name=row["name"],
        description=row["description"],
        product_type=row["product_type"],
    )


def _row_to_work_order(row: sqlite3.Row) -> WorkOrder:
    return WorkOrder(
        id=row["id"],
        number=row["number"],
        title=row["title"] or "",
        status=row["status"] or "",
        bom_id=row["bom_id"],
    )


def _row_to_accessory(row: sqlite3.Row) -> WorkOrderAccessory:
    return WorkOrderAccessory(
        id=row["id"],
        work_order_id=row["work_order_id"],
        bom_id=row["bom_id"],
        quantity=to_decimal(row["quantity"]),
        notes=row["notes"],
    )
