from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from decoflow.domain.errors import SchemaInitError, ValidationError
from decoflow.domain.ids import new_id, now_iso
from decoflow.domain.models import (
    AmountCount,
    Canvas,
    CategoryTotal,
    Client,
    Decoration,
    Expense,
    Note,
    Product,
    Quotation,
    Rental,
    SavedReport,
    Section,
    SectionSummary,
    Transaction,
    TRANSACTION_TYPES,
)
from decoflow.domain.payloads import (
    dump_canvas_payload,
    dump_client_data,
    dump_line_items,
    parse_canvas_payload,
    parse_client_data,
    parse_line_items,
)

log = logging.getLogger(__name__)

# children before parents
TABLES = (
    "quotations",
    "decorations",
    "rentals",
    "transactions",
    "products",
    "sections",
    "expenses",
    "saved_reports",
    "clients",
    "canvases",
    "notes",
    "settings",
)


def _json_or_none(value) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _opt_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _load_json_column(value):
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        log.warning("json_column_unreadable value=%.60r", value)
        return None


class SqliteRepository:
    """Relational store for every record kind.

    One connection per repository instance, opened lazily and shared by all
    callers until close(). Pass ":memory:" for a throwaway store.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)
        self._connection: sqlite3.Connection | None = None

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON;")
            if not self.is_memory:
                conn.execute("PRAGMA journal_mode = WAL;")
            self._connection = conn
        return self._connection

    @property
    def is_memory(self) -> bool:
        return self.db_path == ":memory:" or self.db_path.startswith("file::memory:")

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self._conn()
        cur = conn.cursor()
        try:
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    # ---------- Schema ----------
    def init_db(self) -> None:
        self.run_migrations()

    def _migrations(self):
        return [
            (1, self._migration_v1_legacy_renames),
            (2, self._migration_v2_base_tables),
            (3, self._migration_v3_added_columns),
            (4, self._migration_v4_indexes),
            (5, self._migration_v5_clients_from_transactions),
        ]

    def schema_version(self) -> int:
        cur = self._conn().execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_migrations'"
        )
        if cur.fetchone() is None:
            return 0
        row = self._conn().execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()
        return int(row[0])

    def run_migrations(self) -> None:
        try:
            conn = self._conn()
            current_version = self.schema_version()
        except sqlite3.Error as exc:
            raise SchemaInitError(f"Could not open database: {exc}") from exc

        pending = [(v, m) for v, m in self._migrations() if v > current_version]
        if not pending:
            return

        backup_path = self._create_pre_migration_backup()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN")
            cur.execute(
                "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
            )
            for version, migration in pending:
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("schema_migration_applied version=%s", version)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise SchemaInitError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc

    def _create_pre_migration_backup(self) -> Path | None:
        if self.is_memory:
            return None
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        if self._conn().execute("SELECT COUNT(*) FROM sqlite_master WHERE type='table'").fetchone()[0] == 0:
            return None
        # fold the WAL into the main file so the copy is complete
        self._conn().execute("PRAGMA wal_checkpoint(TRUNCATE);")
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        self.close()
        shutil.copy2(backup_path, self.db_path)

    def _table_exists(self, cur: sqlite3.Cursor, table: str) -> bool:
        cur.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
        return cur.fetchone() is not None

    def _columns(self, cur: sqlite3.Cursor, table: str) -> set[str]:
        cur.execute(f"PRAGMA table_info({table})")
        return {str(r[1]) for r in cur.fetchall()}

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        if column in self._columns(cur, table):
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def _migration_v1_legacy_renames(self, cur: sqlite3.Cursor) -> None:
        if self._table_exists(cur, "folders"):
            if self._table_exists(cur, "sections"):
                log.warning("legacy_folders_table_ignored reason=sections_exists")
            else:
                cur.execute("ALTER TABLE folders RENAME TO sections")
        if self._table_exists(cur, "products"):
            cols = self._columns(cur, "products")
            if "folderId" in cols and "sectionId" not in cols:
                cur.execute("ALTER TABLE products RENAME COLUMN folderId TO sectionId")

    def _migration_v2_base_tables(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sections (
                id TEXT PRIMARY KEY NOT NULL,
                name TEXT NOT NULL,
                color TEXT,
                icon TEXT,
                image TEXT,
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY NOT NULL,
                sectionId TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                price REAL,
                rentPrice REAL,
                image TEXT,
                imageSecondary1 TEXT,
                imageSecondary2 TEXT,
                createdAt TEXT,
                updatedAt TEXT,
                FOREIGN KEY (sectionId) REFERENCES sections (id) ON DELETE CASCADE
            )
            """
        )
        cur.execute("CREATE TABLE IF NOT EXISTS settings (key TEXT PRIMARY KEY NOT NULL, value TEXT)")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS canvases (
                id TEXT PRIMARY KEY NOT NULL,
                name TEXT,
                data TEXT,
                thumbnail TEXT,
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('sale','rental','decoration')),
                productId TEXT,
                productName TEXT NOT NULL,
                quantity INTEGER DEFAULT 1,
                unitPrice REAL NOT NULL,
                discount REAL DEFAULT 0,
                totalAmount REAL NOT NULL,
                customerName TEXT,
                notes TEXT,
                date TEXT NOT NULL,
                items TEXT,
                clientData TEXT,
                clientId TEXT,
                deliveryDate TEXT,
                isInstallment INTEGER DEFAULT 0,
                totalPrice REAL,
                amountPaid REAL DEFAULT 0,
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS rentals (
                id TEXT PRIMARY KEY NOT NULL,
                transactionId TEXT UNIQUE NOT NULL,
                status TEXT DEFAULT 'active',
                startDate TEXT NOT NULL,
                endDate TEXT,
                deposit REAL DEFAULT 0,
                returnedAt TEXT,
                createdAt TEXT,
                updatedAt TEXT,
                FOREIGN KEY (transactionId) REFERENCES transactions (id) ON DELETE CASCADE
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS decorations (
                id TEXT PRIMARY KEY NOT NULL,
                transactionId TEXT UNIQUE NOT NULL,
                status TEXT DEFAULT 'active',
                startDate TEXT NOT NULL,
                endDate TEXT,
                deposit REAL DEFAULT 0,
                items TEXT,
                createdAt TEXT,
                updatedAt TEXT,
                FOREIGN KEY (transactionId) REFERENCES transactions (id) ON DELETE CASCADE
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY NOT NULL,
                category TEXT NOT NULL,
                description TEXT NOT NULL,
                amount REAL NOT NULL,
                date TEXT NOT NULL,
                receiptImage TEXT,
                notes TEXT,
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS saved_reports (
                id TEXT PRIMARY KEY NOT NULL,
                name TEXT,
                periodType TEXT,
                startDate TEXT NOT NULL,
                endDate TEXT NOT NULL,
                filters TEXT,
                summary TEXT NOT NULL,
                expensesByCategory TEXT,
                transactions TEXT,
                createdAt TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS clients (
                id TEXT PRIMARY KEY NOT NULL,
                name TEXT NOT NULL,
                phone TEXT,
                documentId TEXT,
                email TEXT,
                address TEXT,
                isActive INTEGER DEFAULT 1,
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS quotations (
                id TEXT PRIMARY KEY NOT NULL,
                quotationNumber TEXT,
                type TEXT NOT NULL,
                productId TEXT,
                productName TEXT NOT NULL,
                quantity INTEGER DEFAULT 1,
                unitPrice REAL NOT NULL,
                discount REAL DEFAULT 0,
                totalAmount REAL NOT NULL,
                customerName TEXT,
                clientData TEXT,
                clientId TEXT,
                notes TEXT,
                date TEXT NOT NULL,
                deliveryDate TEXT,
                startDate TEXT,
                endDate TEXT,
                deposit REAL DEFAULT 0,
                items TEXT,
                status TEXT DEFAULT 'pending',
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS notes (
                id TEXT PRIMARY KEY NOT NULL,
                title TEXT NOT NULL,
                content TEXT,
                date TEXT NOT NULL,
                createdAt TEXT,
                updatedAt TEXT
            )
            """
        )

    def _migration_v3_added_columns(self, cur: sqlite3.Cursor) -> None:
        # Tables created by older app builds predate these columns.
        added = [
            ("sections", "color", "TEXT"),
            ("sections", "icon", "TEXT"),
            ("sections", "image", "TEXT"),
            ("sections", "createdAt", "TEXT"),
            ("sections", "updatedAt", "TEXT"),
            ("products", "description", "TEXT"),
            ("products", "price", "REAL"),
            ("products", "image", "TEXT"),
            ("products", "createdAt", "TEXT"),
            ("products", "updatedAt", "TEXT"),
            ("canvases", "thumbnail", "TEXT"),
            ("clients", "documentId", "TEXT"),
            ("clients", "email", "TEXT"),
            ("clients", "address", "TEXT"),
            ("clients", "phone", "TEXT"),
            ("clients", "isActive", "INTEGER DEFAULT 1"),
            ("saved_reports", "transactions", "TEXT"),
            ("products", "imageSecondary1", "TEXT"),
            ("products", "imageSecondary2", "TEXT"),
            ("products", "rentPrice", "REAL"),
            ("decorations", "items", "TEXT"),
            ("transactions", "clientId", "TEXT"),
            ("transactions", "items", "TEXT"),
            ("transactions", "clientData", "TEXT"),
            ("transactions", "isInstallment", "INTEGER DEFAULT 0"),
            ("transactions", "totalPrice", "REAL"),
            ("transactions", "amountPaid", "REAL DEFAULT 0"),
            ("transactions", "deliveryDate", "TEXT"),
            ("transactions", "createdAt", "TEXT"),
            ("transactions", "updatedAt", "TEXT"),
        ]
        for table, column, definition in added:
            self._add_column_if_missing(cur, table, column, definition)

    def _migration_v4_indexes(self, cur: sqlite3.Cursor) -> None:
        for stmt in (
            "CREATE INDEX IF NOT EXISTS idx_clients_documentId ON clients(documentId)",
            "CREATE INDEX IF NOT EXISTS idx_clients_name ON clients(name)",
            "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date)",
            "CREATE INDEX IF NOT EXISTS idx_transactions_type ON transactions(type)",
            "CREATE INDEX IF NOT EXISTS idx_expenses_date ON expenses(date)",
            "CREATE INDEX IF NOT EXISTS idx_expenses_category ON expenses(category)",
            "CREATE INDEX IF NOT EXISTS idx_products_sectionId ON products(sectionId)",
            "CREATE INDEX IF NOT EXISTS idx_sections_createdAt ON sections(createdAt)",
            "CREATE INDEX IF NOT EXISTS idx_rentals_status ON rentals(status)",
            "CREATE INDEX IF NOT EXISTS idx_decorations_status ON decorations(status)",
            "CREATE INDEX IF NOT EXISTS idx_quotations_type ON quotations(type)",
            "CREATE INDEX IF NOT EXISTS idx_notes_date ON notes(date)",
        ):
            cur.execute(stmt)

    def _migration_v5_clients_from_transactions(self, cur: sqlite3.Cursor) -> None:
        cur.execute("SELECT COUNT(*) FROM clients")
        if int(cur.fetchone()[0]) > 0:
            return

        cur.execute("SELECT clientData, createdAt FROM transactions WHERE clientData IS NOT NULL ORDER BY createdAt")
        unique: dict[str, tuple] = {}
        for raw, created_at in cur.fetchall():
            try:
                data = parse_client_data(raw)
            except ValidationError as exc:
                log.warning("client_backfill_skipped reason=%s", exc)
                continue
            if data is None or not data.name:
                continue
            key = data.document_id or data.name
            unique.setdefault(key, (data, created_at))

        now = now_iso()
        for data, created_at in unique.values():
            cur.execute(
                """
                INSERT INTO clients (id, name, phone, documentId, email, address, isActive, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (new_id(), data.name, data.phone, data.document_id, data.email, data.address, created_at or now, now),
            )
        if unique:
            log.info("clients_backfilled count=%s", len(unique))

    def integrity_check(self) -> str:
        row = self._conn().execute("PRAGMA integrity_check").fetchone()
        return str(row[0]) if row else "unknown"

    def table_counts(self) -> dict[str, int]:
        conn = self._conn()
        return {t: int(conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0]) for t in TABLES}

    def wipe_all(self) -> None:
        conn = self._conn()
        conn.commit()
        conn.execute("PRAGMA foreign_keys = OFF;")
        try:
            cur = conn.cursor()
            for table in TABLES:
                cur.execute(f"DELETE FROM {table}")
            conn.commit()
        except Exception:
            conn.rollback()
            try:
                conn.execute("PRAGMA foreign_keys = ON;")
            except sqlite3.Error:
                log.exception("foreign_keys_reenable_failed")
            raise
        conn.execute("PRAGMA foreign_keys = ON;")
        log.warning("store_wiped tables=%s", len(TABLES))

    # ---------- Settings ----------
    def get_settings(self) -> dict[str, Optional[str]]:
        rows = self._conn().execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        return {str(r["key"]): r["value"] for r in rows}

    def get_setting(self, key: str) -> Optional[str]:
        row = self._conn().execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def save_setting(self, key: str, value) -> None:
        if value is None or isinstance(value, str):
            stored = value
        else:
            # settings.json values keep their JSON spelling ("true", not "True")
            stored = json.dumps(value, ensure_ascii=False)
        with self._transaction() as cur:
            cur.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, stored),
            )

    # ---------- Sections ----------
    @staticmethod
    def _section_from_row(r: sqlite3.Row) -> Section:
        return Section(
            id=str(r["id"]),
            name=str(r["name"]),
            color=r["color"],
            icon=r["icon"],
            image=r["image"],
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def list_sections(self) -> list[SectionSummary]:
        rows = self._conn().execute(
            """
            SELECT s.*, COUNT(p.id) AS productCount
            FROM sections s
            LEFT JOIN products p ON s.id = p.sectionId
            GROUP BY s.id
            ORDER BY s.createdAt DESC, s.id
            """
        ).fetchall()
        return [SectionSummary(section=self._section_from_row(r), product_count=int(r["productCount"])) for r in rows]

    def get_section(self, section_id: str) -> Optional[Section]:
        r = self._conn().execute("SELECT * FROM sections WHERE id = ?", (section_id,)).fetchone()
        return self._section_from_row(r) if r else None

    def create_section(self, section: Section) -> Section:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO sections (id, name, color, icon, image, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (section.id, section.name, section.color, section.icon, section.image, section.created_at, section.updated_at),
            )
        return section

    def update_section(self, section: Section) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "UPDATE sections SET name=?, color=?, icon=?, image=?, updatedAt=? WHERE id=?",
                (section.name, section.color, section.icon, section.image, section.updated_at, section.id),
            )
            return cur.rowcount > 0

    def touch_section(self, section_id: str, updated_at: str) -> None:
        with self._transaction() as cur:
            cur.execute("UPDATE sections SET updatedAt=? WHERE id=?", (updated_at, section_id))

    def delete_section(self, section_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM sections WHERE id = ?", (section_id,))
            return cur.rowcount > 0

    # ---------- Products ----------
    @staticmethod
    def _product_from_row(r: sqlite3.Row) -> Product:
        return Product(
            id=str(r["id"]),
            section_id=str(r["sectionId"]),
            name=str(r["name"]),
            description=r["description"],
            price=_opt_float(r["price"]),
            rent_price=_opt_float(r["rentPrice"]),
            image=r["image"],
            image_secondary1=r["imageSecondary1"],
            image_secondary2=r["imageSecondary2"],
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def list_products(self) -> list[Product]:
        rows = self._conn().execute("SELECT * FROM products ORDER BY createdAt DESC, id").fetchall()
        return [self._product_from_row(r) for r in rows]

    def list_products_by_section(self, section_id: str) -> list[Product]:
        rows = self._conn().execute(
            "SELECT * FROM products WHERE sectionId = ? ORDER BY createdAt DESC, id", (section_id,)
        ).fetchall()
        return [self._product_from_row(r) for r in rows]

    def search_products(self, query: str, limit: int = 50) -> list[Product]:
        pattern = f"%{query.strip()}%"
        rows = self._conn().execute(
            """
            SELECT * FROM products
            WHERE name LIKE ? OR description LIKE ?
            ORDER BY name, id
            LIMIT ?
            """,
            (pattern, pattern, int(limit)),
        ).fetchall()
        return [self._product_from_row(r) for r in rows]

    def get_product(self, product_id: str) -> Optional[Product]:
        r = self._conn().execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        return self._product_from_row(r) if r else None

    def create_product(self, product: Product) -> Product:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO products (
                    id, sectionId, name, description, price, rentPrice,
                    image, imageSecondary1, imageSecondary2, createdAt, updatedAt
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    product.id,
                    product.section_id,
                    product.name,
                    product.description,
                    product.price,
                    product.rent_price,
                    product.image,
                    product.image_secondary1,
                    product.image_secondary2,
                    product.created_at,
                    product.updated_at,
                ),
            )
        return product

    def update_product(self, product: Product) -> bool:
        with self._transaction() as cur:
            cur.execute(
                """
                UPDATE products
                SET name=?, description=?, price=?, rentPrice=?, image=?, imageSecondary1=?, imageSecondary2=?, updatedAt=?
                WHERE id=?
                """,
                (
                    product.name,
                    product.description,
                    product.price,
                    product.rent_price,
                    product.image,
                    product.image_secondary1,
                    product.image_secondary2,
                    product.updated_at,
                    product.id,
                ),
            )
            return cur.rowcount > 0

    def delete_product(self, product_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM products WHERE id = ?", (product_id,))
            return cur.rowcount > 0

    # ---------- Canvases ----------
    @staticmethod
    def _canvas_from_row(r: sqlite3.Row) -> Canvas:
        return Canvas(
            id=str(r["id"]),
            name=r["name"],
            data=parse_canvas_payload(r["data"]),
            thumbnail=r["thumbnail"],
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def list_canvases(self) -> list[Canvas]:
        rows = self._conn().execute("SELECT * FROM canvases ORDER BY updatedAt DESC, id").fetchall()
        return [self._canvas_from_row(r) for r in rows]

    def get_canvas(self, canvas_id: str) -> Optional[Canvas]:
        r = self._conn().execute("SELECT * FROM canvases WHERE id = ?", (canvas_id,)).fetchone()
        return self._canvas_from_row(r) if r else None

    def save_canvas(self, canvas: Canvas) -> Canvas:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO canvases (id, name, data, thumbnail, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name, data=excluded.data, thumbnail=excluded.thumbnail, updatedAt=excluded.updatedAt
                """,
                (
                    canvas.id,
                    canvas.name,
                    _json_or_none(dump_canvas_payload(canvas.data)),
                    canvas.thumbnail,
                    canvas.created_at,
                    canvas.updated_at,
                ),
            )
        return canvas

    def rename_canvas(self, canvas_id: str, name: str, updated_at: str) -> bool:
        with self._transaction() as cur:
            cur.execute("UPDATE canvases SET name=?, updatedAt=? WHERE id=?", (name, updated_at, canvas_id))
            return cur.rowcount > 0

    def delete_canvas(self, canvas_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM canvases WHERE id = ?", (canvas_id,))
            return cur.rowcount > 0

    # ---------- Transactions ----------
    @staticmethod
    def _transaction_from_row(r: sqlite3.Row) -> Transaction:
        return Transaction(
            id=str(r["id"]),
            type=str(r["type"]),
            product_id=r["productId"],
            product_name=str(r["productName"]),
            quantity=int(r["quantity"] or 1),
            unit_price=float(r["unitPrice"]),
            discount=float(r["discount"] or 0),
            total_amount=float(r["totalAmount"]),
            customer_name=r["customerName"],
            client_data=parse_client_data(r["clientData"]),
            client_id=r["clientId"],
            notes=r["notes"],
            date=str(r["date"]),
            delivery_date=r["deliveryDate"],
            items=parse_line_items(r["items"]),
            is_installment=bool(r["isInstallment"]),
            total_price=_opt_float(r["totalPrice"]),
            amount_paid=float(r["amountPaid"] or 0),
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    @staticmethod
    def _transaction_params(t: Transaction) -> dict:
        return {
            "id": t.id,
            "type": t.type,
            "productId": t.product_id,
            "productName": t.product_name,
            "quantity": int(t.quantity or 1),
            "unitPrice": float(t.unit_price),
            "discount": float(t.discount or 0),
            "totalAmount": float(t.total_amount),
            "customerName": t.customer_name,
            "clientData": _json_or_none(dump_client_data(t.client_data)),
            "clientId": t.client_id,
            "notes": t.notes,
            "date": t.date,
            "deliveryDate": t.delivery_date,
            "items": _json_or_none(dump_line_items(t.items)) if t.items else None,
            "isInstallment": 1 if t.is_installment else 0,
            "totalPrice": t.total_price,
            "amountPaid": float(t.amount_paid or 0),
            "createdAt": t.created_at,
            "updatedAt": t.updated_at,
        }

    def _insert_transaction(self, cur: sqlite3.Cursor, t: Transaction) -> None:
        if t.type not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {t.type!r}")
        cur.execute(
            """
            INSERT INTO transactions (
                id, type, productId, productName, quantity, unitPrice, discount, totalAmount,
                customerName, clientData, clientId, notes, date, deliveryDate, items,
                isInstallment, totalPrice, amountPaid, createdAt, updatedAt
            ) VALUES (
                :id, :type, :productId, :productName, :quantity, :unitPrice, :discount, :totalAmount,
                :customerName, :clientData, :clientId, :notes, :date, :deliveryDate, :items,
                :isInstallment, :totalPrice, :amountPaid, :createdAt, :updatedAt
            )
            """,
            self._transaction_params(t),
        )

    def create_transaction(self, t: Transaction) -> Transaction:
        with self._transaction() as cur:
            self._insert_transaction(cur, t)
        return t

    def create_transaction_with_side_record(
        self, t: Transaction, side: Rental | Decoration | None = None
    ) -> Transaction:
        with self._transaction() as cur:
            self._insert_transaction(cur, t)
            if isinstance(side, Rental):
                self._insert_rental(cur, side)
            elif isinstance(side, Decoration):
                self._insert_decoration(cur, side)
        return t

    def list_transactions(self, type_: Optional[str] = None) -> list[Transaction]:
        if type_:
            rows = self._conn().execute(
                "SELECT * FROM transactions WHERE type = ? ORDER BY date DESC, createdAt DESC, id", (type_,)
            ).fetchall()
        else:
            rows = self._conn().execute("SELECT * FROM transactions ORDER BY date DESC, createdAt DESC, id").fetchall()
        return [self._transaction_from_row(r) for r in rows]

    def list_transactions_between(self, start_date: str, end_date: str, type_: Optional[str] = None) -> list[Transaction]:
        rows = self._conn().execute(
            """
            SELECT * FROM transactions
            WHERE date >= ? AND date <= ? AND (? IS NULL OR type = ?)
            ORDER BY date DESC, createdAt DESC, id
            """,
            (start_date, end_date, type_, type_),
        ).fetchall()
        return [self._transaction_from_row(r) for r in rows]

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        r = self._conn().execute("SELECT * FROM transactions WHERE id = ?", (transaction_id,)).fetchone()
        return self._transaction_from_row(r) if r else None

    def update_transaction(self, t: Transaction) -> bool:
        with self._transaction() as cur:
            cur.execute(
                """
                UPDATE transactions SET
                    productId=:productId, productName=:productName, quantity=:quantity, unitPrice=:unitPrice,
                    discount=:discount, totalAmount=:totalAmount, customerName=:customerName,
                    clientData=:clientData, clientId=:clientId, notes=:notes, date=:date,
                    deliveryDate=:deliveryDate, items=:items, isInstallment=:isInstallment,
                    totalPrice=:totalPrice, amountPaid=:amountPaid, updatedAt=:updatedAt
                WHERE id=:id
                """,
                self._transaction_params(t),
            )
            return cur.rowcount > 0

    def delete_transaction(self, transaction_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            return cur.rowcount > 0

    def delete_transactions_by_type(self, type_: str) -> int:
        with self._transaction() as cur:
            cur.execute("DELETE FROM transactions WHERE type = ?", (type_,))
            return int(cur.rowcount)

    # ---------- Rentals ----------
    @staticmethod
    def _rental_from_row(r: sqlite3.Row) -> Rental:
        return Rental(
            id=str(r["id"]),
            transaction_id=str(r["transactionId"]),
            status=str(r["status"] or "active"),
            start_date=str(r["startDate"]),
            end_date=r["endDate"],
            deposit=float(r["deposit"] or 0),
            returned_at=r["returnedAt"],
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def _insert_rental(self, cur: sqlite3.Cursor, rental: Rental) -> None:
        cur.execute(
            """
            INSERT INTO rentals (id, transactionId, status, startDate, endDate, deposit, returnedAt, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                rental.id,
                rental.transaction_id,
                rental.status,
                rental.start_date,
                rental.end_date,
                float(rental.deposit or 0),
                rental.returned_at,
                rental.created_at,
                rental.updated_at,
            ),
        )

    def create_rental(self, rental: Rental) -> Rental:
        with self._transaction() as cur:
            self._insert_rental(cur, rental)
        return rental

    def list_rentals(self) -> list[Rental]:
        rows = self._conn().execute("SELECT * FROM rentals ORDER BY createdAt, id").fetchall()
        return [self._rental_from_row(r) for r in rows]

    def list_active_rentals(self) -> list[tuple[Transaction, Rental]]:
        rows = self._conn().execute(
            """
            SELECT t.id AS tid, r.id AS rid
            FROM rentals r
            JOIN transactions t ON t.id = r.transactionId
            WHERE r.status = 'active'
            ORDER BY r.endDate, t.date
            """
        ).fetchall()
        out = []
        for row in rows:
            t = self.get_transaction(str(row["tid"]))
            rental = self.get_rental_by_transaction(str(row["tid"]))
            if t and rental:
                out.append((t, rental))
        return out

    def get_rental_by_transaction(self, transaction_id: str) -> Optional[Rental]:
        r = self._conn().execute("SELECT * FROM rentals WHERE transactionId = ?", (transaction_id,)).fetchone()
        return self._rental_from_row(r) if r else None

    def update_rental_status(
        self, transaction_id: str, status: str, returned_at: Optional[str], updated_at: str
    ) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "UPDATE rentals SET status=?, returnedAt=?, updatedAt=? WHERE transactionId=?",
                (status, returned_at, updated_at, transaction_id),
            )
            return cur.rowcount > 0

    def update_rental(self, rental: Rental) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "UPDATE rentals SET startDate=?, endDate=?, deposit=?, updatedAt=? WHERE transactionId=?",
                (rental.start_date, rental.end_date, float(rental.deposit or 0), rental.updated_at, rental.transaction_id),
            )
            return cur.rowcount > 0

    # ---------- Decorations ----------
    @staticmethod
    def _decoration_from_row(r: sqlite3.Row) -> Decoration:
        return Decoration(
            id=str(r["id"]),
            transaction_id=str(r["transactionId"]),
            status=str(r["status"] or "active"),
            start_date=str(r["startDate"]),
            end_date=r["endDate"],
            deposit=float(r["deposit"] or 0),
            items=parse_line_items(r["items"]),
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def _insert_decoration(self, cur: sqlite3.Cursor, decoration: Decoration) -> None:
        cur.execute(
            """
            INSERT INTO decorations (id, transactionId, status, startDate, endDate, deposit, items, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                decoration.id,
                decoration.transaction_id,
                decoration.status,
                decoration.start_date,
                decoration.end_date,
                float(decoration.deposit or 0),
                _json_or_none(dump_line_items(decoration.items)) if decoration.items else None,
                decoration.created_at,
                decoration.updated_at,
            ),
        )

    def create_decoration(self, decoration: Decoration) -> Decoration:
        with self._transaction() as cur:
            self._insert_decoration(cur, decoration)
        return decoration

    def list_decorations(self) -> list[Decoration]:
        rows = self._conn().execute("SELECT * FROM decorations ORDER BY createdAt, id").fetchall()
        return [self._decoration_from_row(r) for r in rows]

    def get_decoration_by_transaction(self, transaction_id: str) -> Optional[Decoration]:
        r = self._conn().execute("SELECT * FROM decorations WHERE transactionId = ?", (transaction_id,)).fetchone()
        return self._decoration_from_row(r) if r else None

    def update_decoration(self, decoration: Decoration) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "UPDATE decorations SET startDate=?, endDate=?, status=?, deposit=?, updatedAt=? WHERE transactionId=?",
                (
                    decoration.start_date,
                    decoration.end_date,
                    decoration.status,
                    float(decoration.deposit or 0),
                    decoration.updated_at,
                    decoration.transaction_id,
                ),
            )
            return cur.rowcount > 0

    # ---------- Expenses ----------
    @staticmethod
    def _expense_from_row(r: sqlite3.Row) -> Expense:
        return Expense(
            id=str(r["id"]),
            category=str(r["category"]),
            description=str(r["description"]),
            amount=float(r["amount"]),
            date=str(r["date"]),
            receipt_image=r["receiptImage"],
            notes=r["notes"],
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def create_expense(self, expense: Expense) -> Expense:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO expenses (id, category, description, amount, date, receiptImage, notes, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    expense.id,
                    expense.category,
                    expense.description,
                    float(expense.amount),
                    expense.date,
                    expense.receipt_image,
                    expense.notes,
                    expense.created_at,
                    expense.updated_at,
                ),
            )
        return expense

    def list_expenses(self) -> list[Expense]:
        rows = self._conn().execute("SELECT * FROM expenses ORDER BY date DESC, id").fetchall()
        return [self._expense_from_row(r) for r in rows]

    def list_expenses_between(self, start_date: str, end_date: str) -> list[Expense]:
        rows = self._conn().execute(
            "SELECT * FROM expenses WHERE date >= ? AND date <= ? ORDER BY date DESC, id", (start_date, end_date)
        ).fetchall()
        return [self._expense_from_row(r) for r in rows]

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        r = self._conn().execute("SELECT * FROM expenses WHERE id = ?", (expense_id,)).fetchone()
        return self._expense_from_row(r) if r else None

    def update_expense(self, expense: Expense) -> bool:
        with self._transaction() as cur:
            cur.execute(
                """
                UPDATE expenses SET category=?, description=?, amount=?, date=?, receiptImage=?, notes=?, updatedAt=?
                WHERE id=?
                """,
                (
                    expense.category,
                    expense.description,
                    float(expense.amount),
                    expense.date,
                    expense.receipt_image,
                    expense.notes,
                    expense.updated_at,
                    expense.id,
                ),
            )
            return cur.rowcount > 0

    def delete_expense(self, expense_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
            return cur.rowcount > 0

    # ---------- Quotations ----------
    @staticmethod
    def _quotation_from_row(r: sqlite3.Row) -> Quotation:
        return Quotation(
            id=str(r["id"]),
            quotation_number=r["quotationNumber"],
            type=str(r["type"]),
            product_id=r["productId"],
            product_name=str(r["productName"]),
            quantity=int(r["quantity"] or 1),
            unit_price=float(r["unitPrice"]),
            discount=float(r["discount"] or 0),
            total_amount=float(r["totalAmount"]),
            customer_name=r["customerName"],
            client_data=parse_client_data(r["clientData"]),
            client_id=r["clientId"],
            notes=r["notes"],
            date=str(r["date"]),
            delivery_date=r["deliveryDate"],
            start_date=r["startDate"],
            end_date=r["endDate"],
            deposit=float(r["deposit"] or 0),
            items=parse_line_items(r["items"]),
            status=str(r["status"] or "pending"),
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    @staticmethod
    def _quotation_params(q: Quotation) -> dict:
        return {
            "id": q.id,
            "quotationNumber": q.quotation_number,
            "type": q.type,
            "productId": q.product_id,
            "productName": q.product_name,
            "quantity": int(q.quantity or 1),
            "unitPrice": float(q.unit_price),
            "discount": float(q.discount or 0),
            "totalAmount": float(q.total_amount),
            "customerName": q.customer_name,
            "clientData": _json_or_none(dump_client_data(q.client_data)),
            "clientId": q.client_id,
            "notes": q.notes,
            "date": q.date,
            "deliveryDate": q.delivery_date,
            "startDate": q.start_date,
            "endDate": q.end_date,
            "deposit": float(q.deposit or 0),
            "items": _json_or_none(dump_line_items(q.items)) if q.items else None,
            "status": q.status or "pending",
            "createdAt": q.created_at,
            "updatedAt": q.updated_at,
        }

    def next_quotation_number(self) -> str:
        row = self._conn().execute(
            """
            SELECT COALESCE(MAX(CAST(SUBSTR(quotationNumber, 5) AS INTEGER)), 0)
            FROM quotations
            WHERE quotationNumber LIKE 'COT-%'
            """
        ).fetchone()
        return f"COT-{int(row[0]) + 1:04d}"

    def create_quotation(self, q: Quotation) -> Quotation:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO quotations (
                    id, quotationNumber, type, productId, productName, quantity, unitPrice, discount, totalAmount,
                    customerName, clientData, clientId, notes, date, deliveryDate,
                    startDate, endDate, deposit, items, status, createdAt, updatedAt
                ) VALUES (
                    :id, :quotationNumber, :type, :productId, :productName, :quantity, :unitPrice, :discount, :totalAmount,
                    :customerName, :clientData, :clientId, :notes, :date, :deliveryDate,
                    :startDate, :endDate, :deposit, :items, :status, :createdAt, :updatedAt
                )
                """,
                self._quotation_params(q),
            )
        return q

    def list_quotations(self, type_: Optional[str] = None, search: Optional[str] = None) -> list[Quotation]:
        conditions: list[str] = []
        params: list = []
        if type_:
            conditions.append("type = ?")
            params.append(type_)
        if search:
            conditions.append("(productName LIKE ? OR customerName LIKE ? OR quotationNumber LIKE ?)")
            pattern = f"%{search.strip()}%"
            params.extend([pattern, pattern, pattern])

        sql = "SELECT * FROM quotations"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY date DESC, createdAt DESC, id"
        rows = self._conn().execute(sql, params).fetchall()
        return [self._quotation_from_row(r) for r in rows]

    def get_quotation(self, quotation_id: str) -> Optional[Quotation]:
        r = self._conn().execute("SELECT * FROM quotations WHERE id = ?", (quotation_id,)).fetchone()
        return self._quotation_from_row(r) if r else None

    def update_quotation(self, q: Quotation) -> bool:
        with self._transaction() as cur:
            cur.execute(
                """
                UPDATE quotations SET
                    type=:type, productId=:productId, productName=:productName, quantity=:quantity,
                    unitPrice=:unitPrice, discount=:discount, totalAmount=:totalAmount,
                    customerName=:customerName, clientData=:clientData, clientId=:clientId, notes=:notes,
                    date=:date, deliveryDate=:deliveryDate, startDate=:startDate, endDate=:endDate,
                    deposit=:deposit, items=:items, status=:status, updatedAt=:updatedAt
                WHERE id=:id
                """,
                self._quotation_params(q),
            )
            return cur.rowcount > 0

    def convert_quotation(
        self, quotation_id: str, t: Transaction, side: Rental | Decoration | None, updated_at: str
    ) -> bool:
        """Inserts the transaction (and its side record) and flags the quotation in one SQL transaction."""
        with self._transaction() as cur:
            cur.execute(
                "UPDATE quotations SET status='converted', updatedAt=? WHERE id=? AND status != 'converted'",
                (updated_at, quotation_id),
            )
            if cur.rowcount == 0:
                return False
            self._insert_transaction(cur, t)
            if isinstance(side, Rental):
                self._insert_rental(cur, side)
            elif isinstance(side, Decoration):
                self._insert_decoration(cur, side)
        return True

    def delete_quotation(self, quotation_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM quotations WHERE id = ?", (quotation_id,))
            return cur.rowcount > 0

    # ---------- Clients ----------
    @staticmethod
    def _client_from_row(r: sqlite3.Row) -> Client:
        return Client(
            id=str(r["id"]),
            name=str(r["name"]),
            phone=r["phone"],
            document_id=r["documentId"],
            email=r["email"],
            address=r["address"],
            is_active=bool(r["isActive"] if r["isActive"] is not None else 1),
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def create_client(self, client: Client) -> Client:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO clients (id, name, phone, documentId, email, address, isActive, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    client.id,
                    client.name,
                    client.phone,
                    client.document_id,
                    client.email,
                    client.address,
                    1 if client.is_active else 0,
                    client.created_at,
                    client.updated_at,
                ),
            )
        return client

    def update_client(self, client: Client) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "UPDATE clients SET name=?, phone=?, documentId=?, email=?, address=?, updatedAt=? WHERE id=?",
                (client.name, client.phone, client.document_id, client.email, client.address, client.updated_at, client.id),
            )
            return cur.rowcount > 0

    def deactivate_client(self, client_id: str, updated_at: str) -> bool:
        with self._transaction() as cur:
            cur.execute("UPDATE clients SET isActive=0, updatedAt=? WHERE id=?", (updated_at, client_id))
            return cur.rowcount > 0

    def get_client_by_document_id(self, document_id: str) -> Optional[Client]:
        r = self._conn().execute("SELECT * FROM clients WHERE documentId = ?", (document_id,)).fetchone()
        return self._client_from_row(r) if r else None

    def get_client_by_name(self, name: str) -> Optional[Client]:
        r = self._conn().execute("SELECT * FROM clients WHERE name = ? ORDER BY createdAt, id", (name,)).fetchone()
        return self._client_from_row(r) if r else None

    def list_clients(self, active_only: bool = True) -> list[Client]:
        sql = "SELECT * FROM clients"
        if active_only:
            sql += " WHERE isActive = 1"
        rows = self._conn().execute(sql + " ORDER BY name ASC, id").fetchall()
        return [self._client_from_row(r) for r in rows]

    def search_clients(self, query: str) -> list[Client]:
        pattern = f"%{query.strip()}%"
        rows = self._conn().execute(
            """
            SELECT * FROM clients
            WHERE isActive = 1 AND (name LIKE ? OR documentId LIKE ? OR phone LIKE ?)
            ORDER BY name ASC, id
            """,
            (pattern, pattern, pattern),
        ).fetchall()
        return [self._client_from_row(r) for r in rows]

    # ---------- Saved reports ----------
    @staticmethod
    def _report_from_row(r: sqlite3.Row) -> SavedReport:
        return SavedReport(
            id=str(r["id"]),
            name=r["name"],
            period_type=r["periodType"],
            start_date=str(r["startDate"]),
            end_date=str(r["endDate"]),
            filters=_load_json_column(r["filters"]),
            summary=_load_json_column(r["summary"]) or {},
            expenses_by_category=_load_json_column(r["expensesByCategory"]),
            transactions=_load_json_column(r["transactions"]),
            created_at=str(r["createdAt"]),
        )

    def save_report(self, report: SavedReport) -> SavedReport:
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO saved_reports (
                    id, name, periodType, startDate, endDate, filters, summary, expensesByCategory, transactions, createdAt
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    report.id,
                    report.name,
                    report.period_type,
                    report.start_date,
                    report.end_date,
                    _json_or_none(report.filters),
                    _json_or_none(report.summary or {}),
                    _json_or_none(report.expenses_by_category),
                    _json_or_none(report.transactions),
                    report.created_at,
                ),
            )
        return report

    def list_saved_reports(self) -> list[SavedReport]:
        rows = self._conn().execute("SELECT * FROM saved_reports ORDER BY createdAt DESC, id").fetchall()
        return [self._report_from_row(r) for r in rows]

    def rename_report(self, report_id: str, name: str) -> bool:
        with self._transaction() as cur:
            cur.execute("UPDATE saved_reports SET name=? WHERE id=?", (name, report_id))
            return cur.rowcount > 0

    def delete_report(self, report_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM saved_reports WHERE id = ?", (report_id,))
            return cur.rowcount > 0

    # ---------- Notes ----------
    @staticmethod
    def _note_from_row(r: sqlite3.Row) -> Note:
        return Note(
            id=str(r["id"]),
            title=str(r["title"]),
            content=r["content"],
            date=str(r["date"]),
            created_at=r["createdAt"],
            updated_at=r["updatedAt"],
        )

    def create_note(self, note: Note) -> Note:
        with self._transaction() as cur:
            cur.execute(
                "INSERT INTO notes (id, title, content, date, createdAt, updatedAt) VALUES (?, ?, ?, ?, ?, ?)",
                (note.id, note.title, note.content, note.date, note.created_at, note.updated_at),
            )
        return note

    def list_notes(self) -> list[Note]:
        rows = self._conn().execute("SELECT * FROM notes ORDER BY date DESC, id").fetchall()
        return [self._note_from_row(r) for r in rows]

    def get_note(self, note_id: str) -> Optional[Note]:
        r = self._conn().execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        return self._note_from_row(r) if r else None

    def update_note(self, note: Note) -> bool:
        with self._transaction() as cur:
            cur.execute(
                "UPDATE notes SET title=?, content=?, date=?, updatedAt=? WHERE id=?",
                (note.title, note.content, note.date, note.updated_at, note.id),
            )
            return cur.rowcount > 0

    def delete_note(self, note_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            return cur.rowcount > 0

    # ---------- Aggregates ----------
    def income_totals_by_type(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> dict[str, AmountCount]:
        rows = self._conn().execute(
            """
            SELECT type, COALESCE(SUM(totalAmount), 0) AS total, COUNT(*) AS count
            FROM transactions
            WHERE (? IS NULL OR date >= ?) AND (? IS NULL OR date <= ?)
            GROUP BY type
            """,
            (start_date, start_date, end_date, end_date),
        ).fetchall()
        out = {t: AmountCount(total=0.0, count=0) for t in TRANSACTION_TYPES}
        for r in rows:
            out[str(r["type"])] = AmountCount(total=float(r["total"]), count=int(r["count"]))
        return out

    def expense_totals(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> AmountCount:
        r = self._conn().execute(
            """
            SELECT COALESCE(SUM(amount), 0) AS total, COUNT(*) AS count
            FROM expenses
            WHERE (? IS NULL OR date >= ?) AND (? IS NULL OR date <= ?)
            """,
            (start_date, start_date, end_date, end_date),
        ).fetchone()
        return AmountCount(total=float(r["total"]), count=int(r["count"]))

    def expenses_by_category(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> list[CategoryTotal]:
        rows = self._conn().execute(
            """
            SELECT category, COALESCE(SUM(amount), 0) AS total, COUNT(*) AS count
            FROM expenses
            WHERE (? IS NULL OR date >= ?) AND (? IS NULL OR date <= ?)
            GROUP BY category
            ORDER BY total DESC, category
            """,
            (start_date, start_date, end_date, end_date),
        ).fetchall()
        return [CategoryTotal(category=str(r["category"]), total=float(r["total"]), count=int(r["count"])) for r in rows]

    def product_income(
        self, product_id: str, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> dict[str, AmountCount]:
        rows = self._conn().execute(
            """
            SELECT type, COALESCE(SUM(totalAmount), 0) AS total, COUNT(*) AS count
            FROM transactions
            WHERE productId = ? AND type IN ('sale', 'rental')
              AND (? IS NULL OR date >= ?) AND (? IS NULL OR date <= ?)
            GROUP BY type
            """,
            (product_id, start_date, start_date, end_date, end_date),
        ).fetchall()
        out = {"sale": AmountCount(0.0, 0), "rental": AmountCount(0.0, 0)}
        for r in rows:
            out[str(r["type"])] = AmountCount(total=float(r["total"]), count=int(r["count"]))
        return out

    def insert_many(self, records: Iterable) -> None:
        """Inserts records of mixed kinds; callers order them parents first."""
        dispatch = {
            Section: self.create_section,
            Product: self.create_product,
            Canvas: self.save_canvas,
            Transaction: self.create_transaction,
            Rental: self.create_rental,
            Decoration: self.create_decoration,
            Expense: self.create_expense,
            Quotation: self.create_quotation,
            Client: self.create_client,
            SavedReport: self.save_report,
            Note: self.create_note,
        }
        for record in records:
            dispatch[type(record)](record)
