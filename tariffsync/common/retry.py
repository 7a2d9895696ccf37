from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import httpx

from tariffsync.domain.error_codes import RETRYABLE_KINDS
from tariffsync.errors import AppError

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]


@dataclass(frozen=True)
class RetryConfig:
    """
    Назначение:
        Параметры ограниченного ретрая с экспоненциальной задержкой.
    Инварианты:
        - max_attempts >= 1
        - initial_delay > 0
        - max_delay >= initial_delay
        - backoff_multiplier >= 1
    Все задержки в секундах.
    """

    max_attempts: int = 3
    initial_delay: float = 5 * 60
    max_delay: float = 30 * 60
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay <= 0:
            raise ValueError(f"initial_delay must be > 0, got {self.initial_delay}")
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay must be >= initial_delay, got {self.max_delay} < {self.initial_delay}"
            )
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")


DEFAULT_FETCH_RETRY = RetryConfig(
    max_attempts=3,
    initial_delay=5 * 60,
    max_delay=30 * 60,
    backoff_multiplier=2.0,
)


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """
    Задержка перед попыткой attempt+1 (attempt считается с нуля).
    """
    delay = config.initial_delay * (config.backoff_multiplier ** attempt)
    return min(delay, config.max_delay)


def is_retryable(exc: BaseException) -> bool:
    """
    Назначение:
        Предикат ретрая по классу ошибки.
    Контракт:
        - AppError: решает kind (AUTH/VALIDATION/HTTP - нет; NETWORK/TIMEOUT/SERVER/RATE_LIMIT - да).
        - Сырые httpx-исключения транспорта/таймаута считаются сетевыми.
        - Всё остальное не ретраится.
    """
    if isinstance(exc, AppError):
        return exc.kind in RETRYABLE_KINDS
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    return False


class BackoffRetrier:
    """
    Назначение/ответственность:
        Выполняет операцию до max_attempts раз с паузой
        min(initial_delay * multiplier**i, max_delay) между попытками.
    Политика:
        Fail fast: после каждой неудачи спрашиваем предикат; неретраибельная
        ошибка пробрасывается сразу, без ожидания и без расхода оставшихся попыток.
    """

    def __init__(
        self,
        should_retry: RetryPredicate = is_retryable,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ):
        self.should_retry = should_retry
        self.sleep = sleep
        self.logger = logger or logging.getLogger("tariffsync.retry")

    def execute(self, operation: Callable[[], T], config: RetryConfig, label: str = "operation") -> T:
        last_error: BaseException | None = None
        for attempt in range(config.max_attempts):
            self._log(
                logging.DEBUG,
                f"Attempting {label} attempt={attempt + 1}/{config.max_attempts}",
            )
            try:
                result = operation()
            except Exception as exc:
                last_error = exc
                attempts_made = attempt + 1

                if not self.should_retry(exc):
                    self._log(
                        logging.ERROR,
                        f"{label} failed with non-retryable error attempt={attempts_made}: {exc}",
                    )
                    _annotate(exc, label, attempts_made)
                    raise

                if attempts_made >= config.max_attempts:
                    self._log(
                        logging.ERROR,
                        f"{label} failed after {attempts_made} attempts: {exc}",
                    )
                    _annotate(exc, label, attempts_made)
                    raise

                delay = compute_delay(attempt, config)
                self._log(
                    logging.WARNING,
                    f"{label} failed, retrying in {delay:g}s "
                    f"attempt={attempts_made}/{config.max_attempts} error={exc}",
                )
                self.sleep(delay)
                continue

            if attempt > 0:
                self._log(logging.INFO, f"{label} succeeded after {attempt + 1} attempts")
            return result

        # max_attempts >= 1, цикл всегда либо возвращает, либо пробрасывает
        raise RuntimeError(f"{label} finished without result") from last_error

    def _log(self, level: int, message: str) -> None:
        self.logger.log(level, message, extra={"component": "retry"})


def _annotate(exc: BaseException, label: str, attempts: int) -> None:
    """
    Помечает пробрасываемую ошибку операцией и числом попыток:
    AppError - в details (попадает в отчёт), любую ошибку - заметкой (PEP 678).
    """
    if isinstance(exc, AppError):
        exc.details["operation"] = label
        exc.details["attempts"] = attempts
    exc.add_note(f"{label}: attempts={attempts}")
