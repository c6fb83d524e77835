import sqlite3
from pathlib import Path

import pytest

from decoflow.domain.errors import SchemaInitError
from decoflow.domain.models import Note, Section, Product
from decoflow.repositories.sqlite_repo import SqliteRepository, TABLES


def test_init_db_is_idempotent(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "d.db")
    repo.init_db()
    version = repo.schema_version()
    repo.init_db()
    repo.close()

    again = SqliteRepository(tmp_path / "d.db")
    again.init_db()
    assert again.schema_version() == version == 5
    assert set(again.table_counts()) == set(TABLES)


def test_memory_store_works():
    repo = SqliteRepository(":memory:")
    repo.init_db()
    repo.create_section(Section(id="s1", name="Mobiliario", created_at="2026-01-01"))
    assert [s.section.name for s in repo.list_sections()] == ["Mobiliario"]
    repo.close()


def test_legacy_folders_schema_is_renamed(tmp_path: Path):
    db = tmp_path / "legacy.db"
    conn = sqlite3.connect(db)
    conn.executescript(
        """
        CREATE TABLE folders (id TEXT PRIMARY KEY NOT NULL, name TEXT NOT NULL, color TEXT, icon TEXT,
                              createdAt TEXT, updatedAt TEXT);
        CREATE TABLE products (id TEXT PRIMARY KEY NOT NULL, folderId TEXT NOT NULL, name TEXT NOT NULL,
                               description TEXT, price REAL, image TEXT, createdAt TEXT, updatedAt TEXT);
        INSERT INTO folders VALUES ('f1', 'Mobiliario', '#fff', 'chair', '2024-01-01', '2024-01-01');
        INSERT INTO products VALUES ('p1', 'f1', 'Silla', NULL, 10.0, NULL, '2024-01-02', '2024-01-02');
        """
    )
    conn.commit()
    conn.close()

    repo = SqliteRepository(db)
    repo.init_db()

    sections = repo.list_sections()
    assert [(s.section.id, s.product_count) for s in sections] == [("f1", 1)]
    product = repo.get_product("p1")
    assert product.section_id == "f1"
    assert product.image_secondary1 is None


def test_client_backfill_from_transactions(tmp_path: Path):
    db = tmp_path / "clients.db"
    conn = sqlite3.connect(db)
    conn.executescript(
        """
        CREATE TABLE transactions (
            id TEXT PRIMARY KEY NOT NULL, type TEXT NOT NULL, productId TEXT, productName TEXT NOT NULL,
            quantity INTEGER DEFAULT 1, unitPrice REAL NOT NULL, discount REAL DEFAULT 0, totalAmount REAL NOT NULL,
            customerName TEXT, notes TEXT, date TEXT NOT NULL, clientData TEXT, createdAt TEXT, updatedAt TEXT
        );
        INSERT INTO transactions (id, type, productName, unitPrice, totalAmount, date, clientData, createdAt)
        VALUES ('t1', 'sale', 'Mesa', 10, 10, '2024-01-01', '{"name": "Ana", "documentId": "123"}', '2024-01-01');
        INSERT INTO transactions (id, type, productName, unitPrice, totalAmount, date, clientData, createdAt)
        VALUES ('t2', 'sale', 'Silla', 5, 5, '2024-01-02', '{"name": "Ana P.", "documentId": "123"}', '2024-01-02');
        INSERT INTO transactions (id, type, productName, unitPrice, totalAmount, date, clientData, createdAt)
        VALUES ('t3', 'sale', 'Globo', 1, 1, '2024-01-03', '{"name": "Luis"}', '2024-01-03');
        """
    )
    conn.commit()
    conn.close()

    repo = SqliteRepository(db)
    repo.init_db()

    clients = repo.list_clients()
    assert sorted(c.name for c in clients) == ["Ana", "Luis"]


def test_migration_failure_restores_db(tmp_path: Path):
    class BrokenMigrationRepo(SqliteRepository):
        def _migration_v4_indexes(self, cur):
            raise RuntimeError("forced migration failure")

    db = tmp_path / "broken.db"
    repo = SqliteRepository(db)
    repo.init_db()
    repo.create_note(Note(id="n1", title="Llamar proveedor", date="2026-02-01"))

    conn = repo._conn()
    conn.execute("DELETE FROM schema_migrations WHERE version >= 4")
    conn.commit()
    before = repo.schema_version()
    repo.close()

    broken = BrokenMigrationRepo(db)
    with pytest.raises(SchemaInitError, match="Original database restored") as info:
        broken.run_migrations()
    assert isinstance(info.value.__cause__, RuntimeError)

    check = SqliteRepository(db)
    assert check.schema_version() == before == 3
    assert check.get_note("n1").title == "Llamar proveedor"


def test_wipe_all_empties_every_table_and_restores_foreign_keys(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "w.db")
    repo.init_db()
    repo.create_section(Section(id="s1", name="Globos"))
    repo.create_product(Product(id="p1", section_id="s1", name="Arco"))
    repo.save_setting("currency", "ARS")

    repo.wipe_all()

    assert all(n == 0 for n in repo.table_counts().values())
    assert repo._conn().execute("PRAGMA foreign_keys").fetchone()[0] == 1


def test_section_delete_cascades_to_products(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "fk.db")
    repo.init_db()
    repo.create_section(Section(id="s1", name="Globos"))
    repo.create_product(Product(id="p1", section_id="s1", name="Arco"))

    repo.delete_section("s1")

    assert repo.list_products_by_section("s1") == []
    with pytest.raises(sqlite3.IntegrityError):
        repo.create_product(Product(id="p2", section_id="missing", name="Huérfano"))


def test_settings_keep_json_spelling_for_non_string_values(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "s.db")
    repo.init_db()
    repo.save_setting("darkMode", True)
    repo.save_setting("layout", {"columns": 2})
    repo.save_setting("incomeOffset", 0)
    repo.save_setting("currency", "ARS")
    repo.save_setting("logo", None)

    assert repo.get_settings() == {
        "currency": "ARS",
        "darkMode": "true",
        "incomeOffset": "0",
        "layout": '{"columns": 2}',
        "logo": None,
    }
