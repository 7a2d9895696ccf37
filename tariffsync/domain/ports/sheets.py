from __future__ import annotations

from typing import Any, Protocol, Sequence


class SheetGatewayProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт приёмника-таблицы: очистка диапазона и запись 2-D таблицы.
    Контракт:
        - target_id - непрозрачный идентификатор приёмника.
        - range_a1 - диапазон в A1-нотации с именем листа ("stocks_coefs!A:Z").
        - Ошибки приёмника бросаются как SinkError.
    """

    def clear_range(self, target_id: str, range_a1: str) -> None: ...

    def write_range(self, target_id: str, range_a1: str, values: Sequence[Sequence[Any]]) -> int: ...


class AccessTokenProvider(Protocol):
    def get_token(self) -> str: ...
