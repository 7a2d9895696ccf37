from __future__ import annotations

import logging
from datetime import date

import pytest

from tariffsync.domain.models import RawTariffRecord
from tariffsync.domain.reporting.collector import ReportCollector
from tariffsync.domain.transform.normalizer import TariffNormalizer
from tariffsync.errors import AuthError, StoreError
from tariffsync.usecases.tariff_ingest_usecase import TariffIngestUseCase

DAY = date(2025, 3, 14)
LOGGER = logging.getLogger("tests.ingest")


class DummySource:
    def __init__(self, records=None, error: Exception | None = None) -> None:
        self.records = records or []
        self.error = error

    def fetch_tariffs(self):
        if self.error:
            raise self.error
        return list(self.records)

    def fetch_once(self):
        return self.fetch_tariffs()


class DummyStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.batches: list[list] = []
        self.error = error

    def upsert_daily(self, tariffs):
        if self.error:
            raise self.error
        self.batches.append(list(tariffs))
        return len(tariffs)

    def get_latest_daily(self):
        return self.batches[-1] if self.batches else []

    def get_by_date(self, day):
        return []


def _records():
    return [
        RawTariffRecord.from_payload({"warehouseName": "Коледино", "boxDeliveryBase": "1.25"}),
        RawTariffRecord.from_payload({"warehouseName": "Пустой"}),
        RawTariffRecord.from_payload({"warehouseName": "Казань", "boxDeliveryAndStorageExpr": "x2"}),
    ]


def _usecase(source, store) -> TariffIngestUseCase:
    return TariffIngestUseCase(source, TariffNormalizer(today=lambda: DAY), store)


def test_cycle_fetches_normalizes_and_stores():
    store = DummyStore()
    report = ReportCollector(run_id="r1", command="fetch")

    stats = _usecase(DummySource(_records()), store).run(LOGGER, "r1", report)

    assert (stats.fetched, stats.normalized, stats.skipped, stats.stored) == (3, 2, 1, 2)
    assert [t.warehouse_name for t in store.batches[0]] == ["Коледино", "Казань"]
    assert report.summary.fetched == 3
    assert report.summary.skipped == 1
    assert report.items[0].key == "Пустой/None"
    report.finish()
    assert report.build().status == "SUCCESS"


def test_source_failure_aborts_cycle_without_store_write():
    store = DummyStore()
    report = ReportCollector(run_id="r1", command="fetch")

    with pytest.raises(AuthError):
        _usecase(DummySource(error=AuthError("unauthorized", status_code=401)), store).run(LOGGER, "r1", report)

    assert store.batches == []
    assert report.errors[0]["stage"] == "fetch"
    assert report.errors[0]["kind"] == "AUTH"


def test_store_failure_propagates():
    with pytest.raises(StoreError):
        _usecase(DummySource(_records()), DummyStore(error=StoreError("locked"))).run(LOGGER, "r1")


def test_empty_source_stores_nothing():
    store = DummyStore()

    stats = _usecase(DummySource([]), store).run(LOGGER, "r1")

    assert stats.stored == 0
    assert store.batches == [[]]
