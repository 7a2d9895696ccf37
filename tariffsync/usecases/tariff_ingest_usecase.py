from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from tariffsync.common.time import getDurationMs
from tariffsync.domain.models import SkippedRecord
from tariffsync.domain.ports.tariff_source import TariffSourceProtocol
from tariffsync.domain.ports.tariff_store import TariffStoreProtocol
from tariffsync.domain.reporting.collector import ReportCollector
from tariffsync.domain.transform.normalizer import TariffNormalizer
from tariffsync.infra.logging.setup import logEvent


@dataclass(frozen=True)
class IngestStats:
    fetched: int
    normalized: int
    skipped: int
    stored: int
    duration_ms: int


class TariffIngestUseCase:
    """
    Назначение/ответственность:
        Цикл загрузки: источник (с ретраями) -> нормализатор -> хранилище.
    Взаимодействия:
        - TariffSourceProtocol.fetch_tariffs
        - TariffNormalizer.normalize_with_report
        - TariffStoreProtocol.upsert_daily
    Ошибки:
        Ошибки источника и хранилища не перехватываются: цикл прерывается,
        следующий запуск по расписанию повторит попытку. Ошибки отдельных
        записей остаются внутри нормализатора (SkippedRecord).
    """

    def __init__(
        self,
        source: TariffSourceProtocol,
        normalizer: TariffNormalizer,
        store: TariffStoreProtocol,
    ):
        self.source = source
        self.normalizer = normalizer
        self.store = store

    def run(self, logger: logging.Logger, run_id: str, report: ReportCollector | None = None) -> IngestStats:
        logEvent(logger, logging.INFO, run_id, "ingest", "Starting tariff fetch and store cycle")
        start = time.monotonic()

        try:
            raw = self.source.fetch_tariffs()
        except Exception as exc:
            logEvent(logger, logging.ERROR, run_id, "ingest", f"Tariff fetch failed: {exc}")
            if report is not None:
                report.add_error(exc, stage="fetch")
            raise
        if report is not None:
            report.summary.fetched = len(raw)

        result = self.normalizer.normalize_with_report(raw)
        if report is not None:
            report.summary.normalized = len(result.tariffs)
            report.add_skipped(result.skipped)
        if result.skipped:
            _log_skipped(logger, run_id, result.skipped)

        try:
            stored = self.store.upsert_daily(result.tariffs)
        except Exception as exc:
            logEvent(logger, logging.ERROR, run_id, "ingest", f"Tariff store failed: {exc}")
            if report is not None:
                report.add_error(exc, stage="store")
            raise
        if report is not None:
            report.summary.stored = stored

        stats = IngestStats(
            fetched=len(raw),
            normalized=len(result.tariffs),
            skipped=len(result.skipped),
            stored=stored,
            duration_ms=getDurationMs(start, time.monotonic()),
        )
        logEvent(
            logger,
            logging.INFO,
            run_id,
            "ingest",
            f"Tariff cycle finished fetched={stats.fetched} normalized={stats.normalized} "
            f"skipped={stats.skipped} stored={stats.stored} duration_ms={stats.duration_ms}",
        )
        return stats


def _log_skipped(logger: logging.Logger, run_id: str, skipped: list[SkippedRecord]) -> None:
    for record in skipped:
        logEvent(
            logger,
            logging.DEBUG,
            run_id,
            "normalize",
            f"Skipped tariff warehouse={record.warehouse_name} box_type={record.box_type_name} reason={record.reason}",
        )
