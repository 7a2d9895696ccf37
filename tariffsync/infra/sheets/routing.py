from __future__ import annotations

from typing import Any, Sequence

from tariffsync.domain.ports.sheets import SheetGatewayProtocol
from tariffsync.errors import SinkError
from tariffsync.infra.sheets.xlsx_workbook import is_xlsx_target


class RoutingSheetGateway(SheetGatewayProtocol):
    """
    Назначение:
        Выбирает приёмник по target_id: путь *.xlsx -> локальная книга,
        иначе -> Google Sheets (spreadsheetId).
    """

    def __init__(self, google: SheetGatewayProtocol | None, xlsx: SheetGatewayProtocol):
        self.google = google
        self.xlsx = xlsx

    def _resolve(self, target_id: str) -> SheetGatewayProtocol:
        if is_xlsx_target(target_id):
            return self.xlsx
        if self.google is None:
            raise SinkError("Google Sheets credentials are not configured", target_id)
        return self.google

    def clear_range(self, target_id: str, range_a1: str) -> None:
        self._resolve(target_id).clear_range(target_id, range_a1)

    def write_range(self, target_id: str, range_a1: str, values: Sequence[Sequence[Any]]) -> int:
        return self._resolve(target_id).write_range(target_id, range_a1, values)

    def close(self) -> None:
        if self.google is not None and hasattr(self.google, "close"):
            self.google.close()
