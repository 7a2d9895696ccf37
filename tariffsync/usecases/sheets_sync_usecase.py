from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

from tariffsync.common.time import getDurationMs
from tariffsync.domain.models import SHEET_HEADER, ProcessedTariff, SyncResult
from tariffsync.domain.ports.sheets import SheetGatewayProtocol
from tariffsync.domain.ports.tariff_store import TariffStoreProtocol
from tariffsync.domain.reporting.collector import ReportCollector
from tariffsync.infra.logging.setup import logEvent

DEFAULT_WORKSHEET_NAME = "stocks_coefs"
CLEAR_COLUMNS = "A:Z"
ANCHOR_CELL = "A1"


def format_tariffs_for_sheet(tariffs: Sequence[ProcessedTariff]) -> list[list[str]]:
    """
    Назначение:
        Таблица для приёмника: заголовок + строки в порядке хранилища.
        Коэффициент с двумя знаками, дата YYYY-MM-DD.
    """
    rows = [list(SHEET_HEADER)]
    for tariff in tariffs:
        rows.append(
            [
                tariff.warehouse_name,
                tariff.box_type,
                tariff.delivery_type,
                f"{tariff.coefficient:.2f}",
                tariff.date.isoformat(),
            ]
        )
    return rows


class SheetsSyncUseCase:
    """
    Назначение/ответственность:
        Зеркалирует последний дневной снимок тарифов в N независимых приёмников.
    Контракт:
        - sync_all(targets) запускает по задаче на приёмник в пуле потоков
          и дожидается всех; результат - по одному SyncResult на приёмник,
          в порядке входного списка.
        - Ошибка одного приёмника не влияет на остальные; sync_all не бросает
          исключений из-за приёмников.
        - Пустой снимок -> успех с 0 строк, запись не выполняется.
    """

    def __init__(
        self,
        store: TariffStoreProtocol,
        gateway: SheetGatewayProtocol,
        worksheet_name: str = DEFAULT_WORKSHEET_NAME,
        max_workers: int = 4,
        logger: logging.Logger | None = None,
        run_id: str = "-",
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.store = store
        self.gateway = gateway
        self.worksheet_name = worksheet_name
        self.max_workers = max_workers
        self.logger = logger or logging.getLogger("tariffsync.sheets_sync")
        self.run_id = run_id

    def sync_all(self, targets: Sequence[str], report: ReportCollector | None = None) -> list[SyncResult]:
        if not targets:
            self._log(logging.INFO, "No spreadsheet targets configured, skipping sync")
            return []

        self._log(logging.INFO, f"Starting sheets sync targets={len(targets)}")
        start = time.monotonic()
        results: list[SyncResult | None] = [None] * len(targets)

        workers = min(self.max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sheets-sync") as pool:
            futures = {pool.submit(self.sync_target, target): index for index, target in enumerate(targets)}
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as exc:
                    self._log(logging.ERROR, f"Sync task crashed target={targets[index]}: {exc}")
                    results[index] = SyncResult(target_id=targets[index], success=False, error=str(exc))

        final = [result for result in results if result is not None]
        ok = sum(1 for result in final if result.success)
        self._log(
            logging.INFO,
            f"Sheets sync finished ok={ok} failed={len(final) - ok} "
            f"duration_ms={getDurationMs(start, time.monotonic())}",
        )
        if report is not None:
            report.add_sync_results(final)
        return final

    def sync_target(self, target_id: str) -> SyncResult:
        try:
            tariffs = self.store.get_latest_daily()
            if not tariffs:
                self._log(logging.WARNING, f"No tariffs to sync target={target_id}")
                return SyncResult(target_id=target_id, success=True, rows_written=0)

            values = format_tariffs_for_sheet(tariffs)
            self.gateway.clear_range(target_id, f"{self.worksheet_name}!{CLEAR_COLUMNS}")
            self.gateway.write_range(target_id, f"{self.worksheet_name}!{ANCHOR_CELL}", values)
        except Exception as exc:
            self._log(logging.ERROR, f"Failed to sync target={target_id}: {exc}")
            return SyncResult(target_id=target_id, success=False, error=str(exc))

        self._log(logging.INFO, f"Synced target={target_id} rows={len(tariffs)}")
        return SyncResult(target_id=target_id, success=True, rows_written=len(tariffs))

    def _log(self, level: int, message: str) -> None:
        logEvent(self.logger, level, self.run_id, "sheets_sync", message)
