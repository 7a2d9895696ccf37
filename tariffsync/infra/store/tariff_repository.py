from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator, Sequence

from tariffsync.common.time import getUtcNowIso
from tariffsync.domain.models import ProcessedTariff
from tariffsync.domain.ports.tariff_store import TariffStoreProtocol
from tariffsync.domain.transform.normalizer import COEFFICIENT_QUANT
from tariffsync.errors import StoreError
from tariffsync.infra.store.db import openTariffDb
from tariffsync.infra.store.schema import ensure_schema
from tariffsync.infra.store.sqlite_engine import SqliteEngine

_UPSERT_SQL = """
    INSERT INTO tariffs(date, warehouse_name, box_type, delivery_type, coefficient, raw_data, updated_at)
    VALUES (:date, :warehouse_name, :box_type, :delivery_type, :coefficient, :raw_data, :updated_at)
    ON CONFLICT(date, warehouse_name, box_type, delivery_type) DO UPDATE SET
        coefficient=excluded.coefficient,
        raw_data=excluded.raw_data,
        updated_at=excluded.updated_at
"""

_SELECT_COLUMNS = "date, warehouse_name, box_type, delivery_type, coefficient, raw_data"


class SqliteTariffRepository(TariffStoreProtocol):
    """
    Назначение/ответственность:
        Хранилище дневных тарифов на SQLite.
    Взаимодействия:
        - Каждая операция открывает своё соединение, поэтому репозиторий можно
          вызывать из разных потоков/процессов: сериализацию писателей
          обеспечивает сама БД (BEGIN IMMEDIATE + busy_timeout).
        - Единственность строки на ключ гарантирует ON CONFLICT DO UPDATE,
          а не чтение-перед-записью.
    """

    def __init__(self, db_path: str, logger: logging.Logger | None = None):
        self.db_path = db_path
        self.logger = logger or logging.getLogger("tariffsync.store")

    def initialize(self) -> int:
        """
        Открывает БД и применяет схему. Ошибка здесь фатальна для daemon-режима.
        """
        try:
            with self._session() as engine:
                version = ensure_schema(engine)
        except (sqlite3.Error, RuntimeError) as exc:
            raise StoreError(f"Failed to initialise tariff DB: {exc}", details={"db_path": self.db_path}) from exc
        self._log(logging.INFO, f"Tariff store ready db={self.db_path} schema_version={version}")
        return version

    def upsert_daily(self, tariffs: Sequence[ProcessedTariff]) -> int:
        if not tariffs:
            self._log(logging.WARNING, "No tariffs to upsert")
            return 0

        self._log(logging.INFO, f"Upserting {len(tariffs)} tariffs into database")
        now_iso = getUtcNowIso()
        rows = [_to_row(tariff, now_iso) for tariff in tariffs]
        try:
            with self._session() as engine:
                with engine.transaction(immediate=True):
                    engine.executemany(_UPSERT_SQL, rows)
        except sqlite3.Error as exc:
            self._log(logging.ERROR, f"Failed to upsert tariffs count={len(tariffs)}: {exc}")
            raise StoreError(f"Failed to upsert tariffs: {exc}", details={"count": len(tariffs)}) from exc

        self._log(logging.INFO, f"Successfully upserted {len(tariffs)} tariffs")
        return len(tariffs)

    def get_latest_daily(self) -> list[ProcessedTariff]:
        try:
            with self._session() as engine:
                row = engine.fetchone("SELECT MAX(date) FROM tariffs")
                if row is None or row[0] is None:
                    self._log(logging.INFO, "No tariffs found in database")
                    return []
                latest = row[0]
                tariffs = self._select_by_date(engine, latest)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to fetch latest daily tariffs: {exc}") from exc

        self._log(logging.INFO, f"Retrieved {len(tariffs)} tariffs for date {latest}")
        return tariffs

    def get_by_date(self, day: date) -> list[ProcessedTariff]:
        try:
            with self._session() as engine:
                tariffs = self._select_by_date(engine, day.isoformat())
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to fetch tariffs by date: {exc}", details={"date": day.isoformat()}) from exc
        self._log(logging.DEBUG, f"Retrieved {len(tariffs)} tariffs for date {day.isoformat()}")
        return tariffs

    def latest_date(self) -> date | None:
        try:
            with self._session() as engine:
                row = engine.fetchone("SELECT MAX(date) FROM tariffs")
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read latest date: {exc}") from exc
        if row is None or row[0] is None:
            return None
        return date.fromisoformat(row[0])

    def count(self, day: date | None = None) -> int:
        try:
            with self._session() as engine:
                if day is None:
                    row = engine.fetchone("SELECT COUNT(*) FROM tariffs")
                else:
                    row = engine.fetchone("SELECT COUNT(*) FROM tariffs WHERE date = ?", (day.isoformat(),))
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to count tariffs: {exc}") from exc
        return int(row[0]) if row else 0

    def _select_by_date(self, engine: SqliteEngine, day_iso: str) -> list[ProcessedTariff]:
        rows = engine.fetchall(
            f"SELECT {_SELECT_COLUMNS} FROM tariffs WHERE date = ? ORDER BY coefficient ASC, id ASC",
            (day_iso,),
        )
        return [_from_row(row) for row in rows]

    @contextmanager
    def _session(self) -> Iterator[SqliteEngine]:
        try:
            conn = openTariffDb(self.db_path)
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"Failed to open tariff DB: {exc}", details={"db_path": self.db_path}) from exc
        engine = SqliteEngine(conn)
        try:
            yield engine
        finally:
            engine.close()

    def _log(self, level: int, message: str) -> None:
        self.logger.log(level, message, extra={"component": "store"})


def _to_row(tariff: ProcessedTariff, now_iso: str) -> dict:
    return {
        "date": tariff.date.isoformat(),
        "warehouse_name": tariff.warehouse_name,
        "box_type": tariff.box_type,
        "delivery_type": tariff.delivery_type,
        # NUMERIC-аффинити: строка "1.25" хранится как число и сортируется численно
        "coefficient": str(tariff.coefficient.quantize(COEFFICIENT_QUANT)),
        "raw_data": json.dumps(dict(tariff.raw_data), ensure_ascii=False, sort_keys=True),
        "updated_at": now_iso,
    }


def _from_row(row: sqlite3.Row) -> ProcessedTariff:
    raw = row["raw_data"]
    return ProcessedTariff(
        date=date.fromisoformat(row["date"]),
        warehouse_name=row["warehouse_name"],
        box_type=row["box_type"],
        delivery_type=row["delivery_type"],
        coefficient=Decimal(str(row["coefficient"])).quantize(COEFFICIENT_QUANT),
        raw_data=json.loads(raw) if isinstance(raw, str) else (raw or {}),
    )

