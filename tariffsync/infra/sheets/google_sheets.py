from __future__ import annotations

import logging
import time
from typing import Any, Callable, Sequence
from urllib.parse import quote

import httpx

from tariffsync.common.sanitize import truncateText
from tariffsync.domain.error_codes import ErrorKind
from tariffsync.domain.ports.sheets import AccessTokenProvider, SheetGatewayProtocol
from tariffsync.errors import SinkError
from tariffsync.infra.http.deadline import request_with_deadline

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"


class GoogleSheetsGateway(SheetGatewayProtocol):
    """
    Назначение/ответственность:
        Приёмник Google Sheets поверх REST API v4 (values:clear / values.update).
    Контракт:
        - target_id - spreadsheetId.
        - Любая ошибка транспорта/статуса -> SinkError с классификацией в details.
        - timeoutSeconds - жёсткий дедлайн на весь запрос; превышение ->
          SinkError(cause_kind=TIMEOUT), запрос закрывается.
        - Ретраев нет: неудачная таблица фиксируется в своём SyncResult.
    """

    def __init__(
        self,
        token_provider: AccessTokenProvider,
        timeoutSeconds: float = 30.0,
        baseUrl: str = SHEETS_API_BASE,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.token_provider = token_provider
        self.timeoutSeconds = timeoutSeconds
        self.clock = clock
        self.logger = logger or logging.getLogger("tariffsync.sheets")
        self.client = httpx.Client(
            base_url=baseUrl.rstrip("/"),
            timeout=timeoutSeconds,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def clear_range(self, target_id: str, range_a1: str) -> None:
        self._log(logging.DEBUG, f"Clearing sheet spreadsheet_id={target_id} range={range_a1}")
        self._request(target_id, "POST", f"/{target_id}/values/{_quote_range(range_a1)}:clear", json={})
        self._log(logging.INFO, f"Successfully cleared sheet spreadsheet_id={target_id} range={range_a1}")

    def write_range(self, target_id: str, range_a1: str, values: Sequence[Sequence[Any]]) -> int:
        rows = [list(row) for row in values]
        self._log(logging.DEBUG, f"Updating sheet spreadsheet_id={target_id} range={range_a1} rows={len(rows)}")
        body = self._request(
            target_id,
            "PUT",
            f"/{target_id}/values/{_quote_range(range_a1)}",
            params={"valueInputOption": "RAW"},
            json={"range": range_a1, "majorDimension": "ROWS", "values": rows},
        )
        updated_rows = len(rows)
        if isinstance(body, dict) and isinstance(body.get("updatedRows"), int):
            updated_rows = body["updatedRows"]
        self._log(
            logging.INFO,
            f"Successfully updated sheet spreadsheet_id={target_id} range={range_a1} "
            f"updated_rows={updated_rows}",
        )
        return updated_rows

    def _request(
        self,
        target_id: str,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> Any:
        try:
            headers = {"Authorization": f"Bearer {self.token_provider.get_token()}"}
        except Exception as exc:
            raise SinkError(f"Failed to obtain Google access token: {exc}", target_id, cause_kind=ErrorKind.AUTH) from exc

        try:
            resp = request_with_deadline(
                self.client,
                method,
                path,
                self.timeoutSeconds,
                clock=self.clock,
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise SinkError(
                f"Google Sheets request timeout after {self.timeoutSeconds:g}s",
                target_id,
                cause_kind=ErrorKind.TIMEOUT,
            ) from exc
        except httpx.TransportError as exc:
            raise SinkError(f"Google Sheets network error: {exc}", target_id, cause_kind=ErrorKind.NETWORK) from exc

        if not resp.is_success:
            snippet = truncateText(resp.text, 200) if resp.text else None
            kind = ErrorKind.from_status(resp.status_code)
            if kind == ErrorKind.RATE_LIMIT:
                self._log(logging.WARNING, f"Rate limit hit spreadsheet_id={target_id}")
            raise SinkError(
                f"Google Sheets request failed: {resp.status_code} {snippet or resp.reason_phrase}",
                target_id,
                status_code=resp.status_code,
                cause_kind=kind,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def _log(self, level: int, message: str) -> None:
        self.logger.log(level, message, extra={"component": "sheets"})


def _quote_range(range_a1: str) -> str:
    return quote(range_a1, safe="!:$'")
