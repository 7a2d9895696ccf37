from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """
    Назначение:
        Единая классификация ошибок. Проставляется один раз в точке отказа
        (HTTP-клиент, обёртка таймаута, хранилище) и дальше читается
        предикатом ретраев и отчётами.
    """

    AUTH = "AUTH"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    SERVER = "SERVER"
    RATE_LIMIT = "RATE_LIMIT"
    HTTP = "HTTP"
    VALIDATION = "VALIDATION"
    STORE = "STORE"
    SINK = "SINK"
    CONFIG = "CONFIG"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorKind":
        """
        Назначение:
            Подбор класса ошибки по HTTP-статусу.
        """
        if status_code is None:
            return cls.UNKNOWN
        if status_code in (401, 403):
            return cls.AUTH
        if status_code == 429:
            return cls.RATE_LIMIT
        if 500 <= status_code <= 599:
            return cls.SERVER
        return cls.HTTP


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.TIMEOUT,
        ErrorKind.SERVER,
        ErrorKind.RATE_LIMIT,
    }
)
