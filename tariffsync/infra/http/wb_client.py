from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Callable

import httpx

from tariffsync.common.retry import DEFAULT_FETCH_RETRY, BackoffRetrier, RetryConfig
from tariffsync.common.sanitize import truncateText
from tariffsync.common.time import getLocalToday
from tariffsync.domain.models import RawTariffRecord
from tariffsync.errors import (
    RequestTimeoutError,
    ResponseValidationError,
    TransientNetworkError,
    errorForStatus,
)
from tariffsync.infra.http.deadline import request_with_deadline
from tariffsync.infra.http.wb_schema import parse_tariffs_response

DEFAULT_BASE_URL = "https://common-api.wildberries.ru"
BOX_TARIFFS_PATH = "/api/v1/tariffs/box"
FETCH_LABEL = "WB API fetchBoxTariffs"


class WbTariffsClient:
    """
    Назначение/ответственность:
        Клиент WB API для тарифов коробов.
    Контракт:
        - fetch_once(): одна попытка GET /api/v1/tariffs/box?date=<сегодня>.
          Ошибки классифицируются здесь, один раз:
          таймаут -> RequestTimeoutError (timeoutSeconds - жёсткий дедлайн на весь
          запрос, включая чтение тела), прочий транспорт -> TransientNetworkError,
          не-2xx -> errorForStatus (401/403 Auth, 429 RateLimit, 5xx Server, прочие Http),
          битый JSON/схема -> ResponseValidationError.
        - fetch_tariffs(): fetch_once под BackoffRetrier с retryConfig.
        - "Сегодня" - локальная дата машины (today), формат YYYY-MM-DD.
    """

    def __init__(
        self,
        token: str,
        baseUrl: str = DEFAULT_BASE_URL,
        timeoutSeconds: float = 30.0,
        retrier: BackoffRetrier | None = None,
        retryConfig: RetryConfig = DEFAULT_FETCH_RETRY,
        today: Callable[[], date] = getLocalToday,
        clock: Callable[[], float] = time.monotonic,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.baseUrl = baseUrl.rstrip("/")
        self.token = token
        self.timeoutSeconds = timeoutSeconds
        self.retryConfig = retryConfig
        self.today = today
        self.clock = clock
        self.logger = logger or logging.getLogger("tariffsync.wb_api")
        self.retrier = retrier or BackoffRetrier(logger=self.logger)
        self.attempts = 0

        self.client = httpx.Client(
            base_url=self.baseUrl,
            timeout=timeoutSeconds,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "WbTariffsClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "accept": "application/json",
            "Authorization": f"Bearer {self.token}",
        }

    def fetch_tariffs(self) -> list[RawTariffRecord]:
        """
        Получает тарифы за сегодня с ретраями. Бросает последнюю ошибку,
        если попытки исчерпаны или ошибка неретраибельная.
        """
        self.attempts = 0
        start = time.monotonic()
        try:
            return self.retrier.execute(self.fetch_once, self.retryConfig, FETCH_LABEL)
        except Exception as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            self._log(
                logging.ERROR,
                f"Failed to fetch box tariffs attempts={self.attempts} duration_ms={duration_ms}: {exc}",
            )
            raise

    def fetch_once(self) -> list[RawTariffRecord]:
        self.attempts += 1
        day = self.today().isoformat()
        self._log(logging.INFO, f"Fetching box tariffs url={self.baseUrl}{BOX_TARIFFS_PATH} date={day}")

        start = time.monotonic()
        try:
            resp = request_with_deadline(
                self.client,
                "GET",
                BOX_TARIFFS_PATH,
                self.timeoutSeconds,
                clock=self.clock,
                params={"date": day},
                headers=self._headers(),
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"WB API request timeout after {self.timeoutSeconds:g}s",
                code="TIMEOUT",
            ) from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"WB API network error: {exc}", code="NETWORK_ERROR") from exc

        if not resp.is_success:
            body_snippet = truncateText(resp.text, 200) if resp.text else None
            self._log(
                logging.ERROR,
                f"WB API request failed status={resp.status_code} body={body_snippet}",
            )
            raise errorForStatus(
                resp.status_code,
                f"WB API request failed: {resp.status_code} {resp.reason_phrase}",
                body_snippet=body_snippet,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ResponseValidationError(
                "Invalid JSON response",
                status_code=resp.status_code,
            ) from exc

        records = parse_tariffs_response(data)
        duration_ms = int((time.monotonic() - start) * 1000)
        self._log(
            logging.INFO,
            f"Successfully fetched box tariffs count={len(records)} duration_ms={duration_ms}",
        )
        return records

    def _log(self, level: int, message: str) -> None:
        self.logger.log(level, message, extra={"component": "wb_api"})
