from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ReportMeta:
    """
    Назначение:
        Метаданные запуска команды.
    """

    run_id: str
    command: str
    started_at: str
    finished_at: str | None = None
    duration_ms: int | None = None
    items_limit: int | None = None
    items_truncated: bool = False


@dataclass
class ReportSummary:
    """
    Назначение:
        Счётчики выполнения fetch/sync.
    """

    fetched: int = 0
    normalized: int = 0
    skipped: int = 0
    stored: int = 0
    targets_total: int = 0
    targets_ok: int = 0
    targets_failed: int = 0
    rows_written: int = 0
    errors_total: int = 0


@dataclass
class ReportItem:
    """
    Назначение:
        Единица отчёта: отброшенная запись тарифа или результат приёмника.
    """

    kind: str
    status: str
    key: str | None = None
    message: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReportEnvelope:
    status: str
    meta: ReportMeta
    summary: ReportSummary
    items: list[ReportItem]
    errors: list[dict[str, Any]] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
