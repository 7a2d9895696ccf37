from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils.cell import range_boundaries
from openpyxl.worksheet.worksheet import Worksheet

from tariffsync.domain.ports.sheets import SheetGatewayProtocol
from tariffsync.errors import SinkError

XLSX_SUFFIX = ".xlsx"


class XlsxWorkbookGateway(SheetGatewayProtocol):
    """
    Назначение/ответственность:
        Приёмник-файл .xlsx (openpyxl). target_id - путь к книге.
    Поведение:
        - Книга и лист создаются при первой записи.
        - clear_range обнуляет ячейки колонок диапазона во всех строках листа.
        - write_range пишет таблицу начиная с якорной ячейки.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("tariffsync.xlsx")

    def clear_range(self, target_id: str, range_a1: str) -> None:
        sheet_name, cells = split_range(range_a1)
        min_col, _min_row, max_col, _max_row = range_boundaries(cells)
        try:
            workbook = _open_workbook(target_id)
            worksheet = _get_worksheet(workbook, sheet_name)
            for row in worksheet.iter_rows(min_row=1, max_row=worksheet.max_row, min_col=min_col, max_col=max_col):
                for cell in row:
                    cell.value = None
            workbook.save(target_id)
        except Exception as exc:
            raise SinkError(f"Failed to clear workbook range {range_a1}: {exc}", target_id) from exc
        self.logger.info(f"Cleared workbook path={target_id} range={range_a1}", extra={"component": "xlsx"})

    def write_range(self, target_id: str, range_a1: str, values: Sequence[Sequence[Any]]) -> int:
        sheet_name, cells = split_range(range_a1)
        start_col, start_row, _max_col, _max_row = range_boundaries(cells)
        start_row = start_row or 1
        try:
            workbook = _open_workbook(target_id)
            worksheet = _get_worksheet(workbook, sheet_name)
            for row_offset, row in enumerate(values):
                for col_offset, value in enumerate(row):
                    worksheet.cell(row=start_row + row_offset, column=start_col + col_offset, value=value)
            workbook.save(target_id)
        except Exception as exc:
            raise SinkError(f"Failed to write workbook range {range_a1}: {exc}", target_id) from exc
        self.logger.info(
            f"Updated workbook path={target_id} range={range_a1} rows={len(values)}",
            extra={"component": "xlsx"},
        )
        return len(values)


def split_range(range_a1: str) -> tuple[str | None, str]:
    """'stocks_coefs!A:Z' -> ('stocks_coefs', 'A:Z'); без листа -> (None, 'A:Z')."""
    if "!" not in range_a1:
        return None, range_a1
    sheet, cells = range_a1.rsplit("!", 1)
    if len(sheet) >= 2 and sheet.startswith("'") and sheet.endswith("'"):
        sheet = sheet[1:-1].replace("''", "'")
    return sheet, cells


def is_xlsx_target(target_id: str) -> bool:
    return target_id.lower().endswith(XLSX_SUFFIX)


def _open_workbook(path: str) -> Workbook:
    if Path(path).exists():
        return load_workbook(path)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return Workbook()


def _get_worksheet(workbook: Workbook, sheet_name: str | None) -> Worksheet:
    if sheet_name is None:
        return workbook.active
    if sheet_name in workbook.sheetnames:
        return workbook[sheet_name]
    worksheet = workbook.create_sheet(sheet_name)
    # у новой книги остаётся пустой "Sheet" по умолчанию
    if "Sheet" in workbook.sheetnames and sheet_name != "Sheet":
        default = workbook["Sheet"]
        if default.max_row == 1 and default.max_column == 1 and default["A1"].value is None:
            workbook.remove(default)
    return worksheet
