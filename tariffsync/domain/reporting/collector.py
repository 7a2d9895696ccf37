from __future__ import annotations

from dataclasses import asdict
from typing import Any, Iterable

from tariffsync.common.time import getNowIso
from tariffsync.domain.models import SkippedRecord, SyncResult
from tariffsync.domain.reporting.models import ReportEnvelope, ReportItem, ReportMeta, ReportSummary
from tariffsync.errors import AppError

DEFAULT_ITEMS_LIMIT = 500


class ReportCollector:
    """
    Назначение/ответственность:
        Единый сборщик отчётов для всех команд.
    Статусы:
        SUCCESS - ошибок нет; PARTIAL - часть приёмников упала;
        FAILED - зафиксирована ошибка цикла или упали все приёмники.
    """

    def __init__(
        self,
        run_id: str,
        command: str,
        started_at: str | None = None,
        items_limit: int | None = DEFAULT_ITEMS_LIMIT,
    ) -> None:
        self.meta = ReportMeta(
            run_id=run_id,
            command=command,
            started_at=started_at or getNowIso(),
            items_limit=items_limit,
        )
        self.summary = ReportSummary()
        self.items: list[ReportItem] = []
        self.errors: list[dict[str, Any]] = []
        self.context: dict[str, Any] = {}
        self.status: str | None = None

    def set_context(self, name: str, value: dict[str, Any]) -> None:
        self.context[name] = value

    def add_skipped(self, records: Iterable[SkippedRecord]) -> None:
        for record in records:
            self.summary.skipped += 1
            self._append(
                ReportItem(
                    kind="tariff",
                    status="SKIPPED",
                    key=f"{record.warehouse_name}/{record.box_type_name}",
                    message=record.reason,
                )
            )

    def add_sync_results(self, results: Iterable[SyncResult]) -> None:
        for result in results:
            self.summary.targets_total += 1
            if result.success:
                self.summary.targets_ok += 1
                self.summary.rows_written += result.rows_written
            else:
                self.summary.targets_failed += 1
            self._append(
                ReportItem(
                    kind="target",
                    status="OK" if result.success else "FAILED",
                    key=result.target_id,
                    message=result.error,
                    meta={"rows_written": result.rows_written},
                )
            )

    def add_error(self, exc: BaseException, stage: str) -> None:
        self.summary.errors_total += 1
        if isinstance(exc, AppError):
            entry = exc.to_dict()
        else:
            entry = {"category": "internal", "code": type(exc).__name__, "message": str(exc)}
        entry["stage"] = stage
        self.errors.append(entry)

    def finish(self, finished_at: str | None = None, duration_ms: int | None = None) -> None:
        self.meta.finished_at = finished_at or getNowIso()
        self.meta.duration_ms = duration_ms
        if self.status is None:
            self.status = self._derive_status()

    def build(self) -> ReportEnvelope:
        return ReportEnvelope(
            status=self.status or self._derive_status(),
            meta=self.meta,
            summary=self.summary,
            items=self.items,
            errors=self.errors,
            context=self.context,
        )

    def _append(self, item: ReportItem) -> None:
        limit = self.meta.items_limit
        if limit is not None and len(self.items) >= limit:
            self.meta.items_truncated = True
            return
        self.items.append(item)

    def _derive_status(self) -> str:
        if self.summary.errors_total > 0:
            return "FAILED"
        if self.summary.targets_failed == 0:
            return "SUCCESS"
        if self.summary.targets_ok > 0:
            return "PARTIAL"
        return "FAILED"


def asdict_report(envelope: ReportEnvelope) -> dict[str, Any]:
    return {
        "status": envelope.status,
        "meta": asdict(envelope.meta),
        "summary": asdict(envelope.summary),
        "items": [asdict(item) for item in envelope.items],
        "errors": envelope.errors,
        "context": envelope.context,
    }
