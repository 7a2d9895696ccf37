from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence

from tariffsync.domain.models import ProcessedTariff


class TariffStoreProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт хранилища дневных тарифов.
    Контракт:
        - upsert_daily: атомарная запись пакета, один ряд на бизнес-ключ,
          возвращает количество переданных тарифов.
        - get_latest_daily/get_by_date: сортировка по coefficient ASC.
    """

    def upsert_daily(self, tariffs: Sequence[ProcessedTariff]) -> int: ...
    def get_latest_daily(self) -> list[ProcessedTariff]: ...
    def get_by_date(self, day: date) -> list[ProcessedTariff]: ...
