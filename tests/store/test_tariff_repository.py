from __future__ import annotations

import threading
from datetime import date
from decimal import Decimal

import pytest

from tariffsync.domain.models import ProcessedTariff
from tariffsync.errors import StoreError
from tariffsync.infra.store.db import openTariffDb
from tariffsync.infra.store.schema import SCHEMA_VERSION
from tariffsync.infra.store.tariff_repository import SqliteTariffRepository

DAY = date(2025, 3, 14)


def _tariff(warehouse: str, coefficient: str, day: date = DAY, delivery_type: str = "Standard") -> ProcessedTariff:
    return ProcessedTariff(
        date=day,
        warehouse_name=warehouse,
        box_type="Box",
        delivery_type=delivery_type,
        coefficient=Decimal(coefficient),
        raw_data={"warehouseName": warehouse, "boxDeliveryBase": coefficient},
    )


@pytest.fixture()
def repo(tmp_path):
    repository = SqliteTariffRepository(str(tmp_path / "data" / "tariffs.sqlite3"))
    repository.initialize()
    return repository


def test_initialize_is_idempotent(repo):
    assert repo.initialize() == SCHEMA_VERSION
    assert repo.count() == 0


def test_empty_store_returns_empty_snapshot(repo):
    assert repo.get_latest_daily() == []
    assert repo.latest_date() is None


def test_empty_upsert_returns_zero(repo):
    assert repo.upsert_daily([]) == 0
    assert repo.count() == 0


def test_upsert_is_idempotent_per_business_key(repo):
    batch = [_tariff("Коледино", "1.25"), _tariff("Казань", "2.00")]

    assert repo.upsert_daily(batch) == 2
    assert repo.upsert_daily(batch) == 2

    assert repo.count(DAY) == 2


def test_second_write_replaces_coefficient_and_raw_data(repo):
    repo.upsert_daily([_tariff("Коледино", "1.25")])
    repo.upsert_daily([_tariff("Коледино", "1.40")])

    [row] = repo.get_latest_daily()
    assert row.coefficient == Decimal("1.40")
    assert row.raw_data == {"warehouseName": "Коледино", "boxDeliveryBase": "1.40"}


def test_latest_snapshot_is_ordered_by_coefficient(repo):
    repo.upsert_daily([_tariff("C", "3.00"), _tariff("A", "1.10"), _tariff("B", "2.50")])

    assert [t.coefficient for t in repo.get_latest_daily()] == [Decimal("1.10"), Decimal("2.50"), Decimal("3.00")]


def test_latest_snapshot_uses_max_date_only(repo):
    older = date(2025, 3, 13)
    repo.upsert_daily([_tariff("Old", "0.50", day=older)])
    repo.upsert_daily([_tariff("New", "5.00")])

    assert [t.warehouse_name for t in repo.get_latest_daily()] == ["New"]
    assert [t.warehouse_name for t in repo.get_by_date(older)] == ["Old"]
    assert repo.latest_date() == DAY


def test_failing_batch_leaves_no_partial_rows(repo):
    batch = [_tariff("A", "1.00"), _tariff("B", "-1.00")]

    with pytest.raises(StoreError):
        repo.upsert_daily(batch)

    assert repo.count() == 0


def test_same_warehouse_with_different_delivery_types_are_distinct(repo):
    repo.upsert_daily([_tariff("A", "1.00"), _tariff("A", "1.00", delivery_type="Storage")])

    assert repo.count(DAY) == 2


def test_concurrent_upserts_converge_to_one_row_per_key(repo):
    batch = [_tariff(f"W{i}", f"{i + 1}.00") for i in range(20)]
    errors: list[Exception] = []

    def worker():
        try:
            repo.upsert_daily(batch)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert repo.count(DAY) == 20


def test_schema_has_unique_key_and_indexes(repo):
    conn = openTariffDb(repo.db_path)
    try:
        indexes = {row["name"] for row in conn.execute("PRAGMA index_list('tariffs')")}
        version = conn.execute("SELECT value FROM meta WHERE key='schema_version'").fetchone()[0]
    finally:
        conn.close()

    assert {"idx_tariffs_date", "idx_tariffs_warehouse", "idx_tariffs_coefficient"} <= indexes
    assert version == str(SCHEMA_VERSION)


def test_newer_schema_version_is_rejected(repo):
    conn = openTariffDb(repo.db_path)
    conn.execute("UPDATE meta SET value='99' WHERE key='schema_version'")
    conn.close()

    with pytest.raises(StoreError):
        repo.initialize()
