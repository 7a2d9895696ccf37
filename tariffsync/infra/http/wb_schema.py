from __future__ import annotations

from typing import Any

from tariffsync.domain.models import RawTariffRecord
from tariffsync.errors import ResponseValidationError

REQUIRED_STRING_FIELDS = ("warehouseName",)
OPTIONAL_STRING_FIELDS = (
    "boxTypeName",
    "boxDeliveryAndStorageExpr",
    "boxDeliveryBase",
    "boxDeliveryLiter",
    "boxStorageBase",
    "boxStorageLiter",
)


def parse_tariffs_response(data: Any) -> list[RawTariffRecord]:
    """
    Назначение:
        Проверяет тело ответа по схеме
        {response: {data: {warehouseList: [{warehouseName: str, boxTypeName?: str, ...}]}}}
        и возвращает RawTariffRecord.
    Контракт:
        - Любое структурное несоответствие -> ResponseValidationError с путём до поля.
        - Необязательные поля могут отсутствовать или быть null; если заданы - строки.
        - Лишние ключи допускаются и сохраняются в payload.
    """
    response = _child_object(data, "response", "response")
    payload = _child_object(response, "data", "response.data")
    items = _child(payload, "warehouseList", "response.data.warehouseList")
    if not isinstance(items, list):
        raise ResponseValidationError(
            "Expected array at response.data.warehouseList",
            path="response.data.warehouseList",
        )

    records: list[RawTariffRecord] = []
    for index, item in enumerate(items):
        path = f"response.data.warehouseList[{index}]"
        if not isinstance(item, dict):
            raise ResponseValidationError(f"Expected object at {path}", path=path)
        for name in REQUIRED_STRING_FIELDS:
            if not isinstance(item.get(name), str):
                raise ResponseValidationError(f"Expected string at {path}.{name}", path=f"{path}.{name}")
        for name in OPTIONAL_STRING_FIELDS:
            value = item.get(name)
            if value is not None and not isinstance(value, str):
                raise ResponseValidationError(
                    f"Expected string or null at {path}.{name}, got {type(value).__name__}",
                    path=f"{path}.{name}",
                )
        records.append(RawTariffRecord.from_payload(item))
    return records


def _child(parent: Any, key: str, path: str) -> Any:
    if not isinstance(parent, dict):
        raise ResponseValidationError(f"Expected object containing {path}", path=path)
    if key not in parent:
        raise ResponseValidationError(f"Missing required field {path}", path=path)
    return parent[key]


def _child_object(parent: Any, key: str, path: str) -> dict:
    value = _child(parent, key, path)
    if not isinstance(value, dict):
        raise ResponseValidationError(f"Expected object at {path}", path=path)
    return value
