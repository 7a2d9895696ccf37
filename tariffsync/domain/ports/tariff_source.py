from __future__ import annotations

from typing import Protocol

from tariffsync.domain.models import RawTariffRecord


class TariffSourceProtocol(Protocol):
    """
    Назначение:
        Порт источника тарифов.
    Контракт:
        - fetch_tariffs(): с ретраями, ошибки классифицированы (AppError).
        - fetch_once(): одна попытка.
    """

    def fetch_tariffs(self) -> list[RawTariffRecord]: ...

    def fetch_once(self) -> list[RawTariffRecord]: ...
