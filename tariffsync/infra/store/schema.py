from __future__ import annotations

from tariffsync.infra.store.sqlite_engine import SqliteEngine

SCHEMA_VERSION = 1


def ensure_schema(engine: SqliteEngine) -> int:
    """
    Назначение:
        Создать meta и таблицу tariffs (идемпотентно) и зафиксировать версию схемы.
    """
    with engine.transaction(immediate=True):
        _create_meta(engine)
        current_version = _get_schema_version(engine) or 0

        if current_version == 0:
            _create_tariffs_table(engine)
            _set_schema_version(engine, SCHEMA_VERSION)
            return SCHEMA_VERSION

        if current_version > SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema version {current_version} is newer than supported {SCHEMA_VERSION}"
            )
        return current_version


def _create_meta(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )


def _get_schema_version(engine: SqliteEngine) -> int | None:
    row = engine.fetchone("SELECT value FROM meta WHERE key='schema_version'")
    if row is None:
        return None
    try:
        return int(row[0])
    except (TypeError, ValueError):
        return None


def _set_schema_version(engine: SqliteEngine, version: int) -> None:
    engine.execute(
        """
        INSERT INTO meta(key, value)
        VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        ("schema_version", str(version)),
    )


def _create_tariffs_table(engine: SqliteEngine) -> None:
    engine.execute(
        """
        CREATE TABLE IF NOT EXISTS tariffs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            warehouse_name TEXT NOT NULL,
            box_type TEXT NOT NULL,
            delivery_type TEXT NOT NULL,
            coefficient NUMERIC NOT NULL CHECK (coefficient >= 0),
            raw_data TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT unique_daily_tariff UNIQUE (date, warehouse_name, box_type, delivery_type)
        )
        """
    )
    engine.execute("CREATE INDEX IF NOT EXISTS idx_tariffs_date ON tariffs(date)")
    engine.execute("CREATE INDEX IF NOT EXISTS idx_tariffs_warehouse ON tariffs(warehouse_name)")
    engine.execute("CREATE INDEX IF NOT EXISTS idx_tariffs_coefficient ON tariffs(coefficient)")
