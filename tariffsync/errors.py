from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from tariffsync.domain.error_codes import RETRYABLE_KINDS, ErrorKind


@dataclass(eq=False)
class AppError(Exception):
    """
    Унифицированная ошибка приложения.
    """

    category: str
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details or {},
        }


class ApiError(AppError):
    """
    Назначение:
        Ошибка HTTP/API уровня клиента источника тарифов.
    Контракт:
        - kind выставляется при создании и больше не меняется.
        - retryable выводится из kind (см. RETRYABLE_KINDS).
        - status_code/body_snippet используются для диагностики.
    """

    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        kind: ErrorKind | None = None,
        details: dict | None = None,
        code: str | None = None,
        category: str = "api",
    ):
        resolved = kind or self.default_kind
        super().__init__(
            category=category,
            code=code or (f"HTTP_{status_code}" if status_code else resolved.value),
            message=message,
            retryable=resolved in RETRYABLE_KINDS,
            details=details or {},
            kind=resolved,
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class AuthError(ApiError):
    default_kind = ErrorKind.AUTH


class TransientNetworkError(ApiError):
    default_kind = ErrorKind.NETWORK


class RequestTimeoutError(ApiError):
    default_kind = ErrorKind.TIMEOUT


class ServerError(ApiError):
    default_kind = ErrorKind.SERVER


class RateLimitError(ApiError):
    default_kind = ErrorKind.RATE_LIMIT


class HttpStatusError(ApiError):
    default_kind = ErrorKind.HTTP


class ResponseValidationError(ApiError):
    """Ответ источника не соответствует ожидаемой схеме."""

    default_kind = ErrorKind.VALIDATION

    def __init__(self, message: str, path: str | None = None, status_code: int | None = None):
        super().__init__(
            message,
            status_code=status_code,
            code="INVALID_RESPONSE",
            details={"path": path} if path else None,
        )
        self.path = path


_STATUS_ERRORS: dict[ErrorKind, type[ApiError]] = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.RATE_LIMIT: RateLimitError,
    ErrorKind.SERVER: ServerError,
}


def errorForStatus(
    status_code: int,
    message: str,
    body_snippet: str | None = None,
    category: str = "api",
) -> ApiError:
    """
    Назначение:
        Создаёт ошибку нужного класса по HTTP-статусу (401/403, 429, 5xx, прочие).
    """
    kind = ErrorKind.from_status(status_code)
    error_cls = _STATUS_ERRORS.get(kind, HttpStatusError)
    return error_cls(
        message,
        status_code=status_code,
        body_snippet=body_snippet,
        kind=kind,
        category=category,
        details={"body_snippet": body_snippet} if body_snippet else None,
    )


class StoreError(AppError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            category="store",
            code="STORE_ERROR",
            message=message,
            retryable=False,
            details=details or {},
            kind=ErrorKind.STORE,
        )


class SinkError(AppError):
    """
    Назначение:
        Ошибка одного приёмника (таблицы). Фиксируется в SyncResult этого
        приёмника и не выходит за пределы его задачи.
    """

    def __init__(
        self,
        message: str,
        target_id: str,
        status_code: int | None = None,
        cause_kind: ErrorKind | None = None,
    ):
        details: dict[str, Any] = {"target_id": target_id}
        if status_code is not None:
            details["status_code"] = status_code
        if cause_kind is not None:
            details["cause_kind"] = cause_kind.value
        super().__init__(
            category="sink",
            code=f"HTTP_{status_code}" if status_code else "SINK_ERROR",
            message=message,
            retryable=False,
            details=details,
            kind=ErrorKind.SINK,
        )
        self.target_id = target_id
        self.status_code = status_code


class ConfigError(AppError):
    def __init__(self, message: str, field_name: str | None = None):
        super().__init__(
            category="config",
            code="INVALID_CONFIG",
            message=message,
            retryable=False,
            details={"field": field_name} if field_name else {},
            kind=ErrorKind.CONFIG,
        )


__all__ = [
    "AppError",
    "ApiError",
    "AuthError",
    "TransientNetworkError",
    "RequestTimeoutError",
    "ServerError",
    "RateLimitError",
    "HttpStatusError",
    "ResponseValidationError",
    "StoreError",
    "SinkError",
    "ConfigError",
    "errorForStatus",
]
