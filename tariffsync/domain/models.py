from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

DEFAULT_BOX_TYPE = "Box"

SHEET_HEADER: tuple[str, ...] = ("Warehouse", "Box Type", "Delivery Type", "Coefficient", "Date")


class DeliveryType(str, Enum):
    """
    Назначение:
        Закрытый набор типов доставки, выводимых нормализатором.
    """

    STANDARD = "Standard"
    LITER_BASED = "Liter-based"
    STORAGE = "Storage"
    DELIVERY = "Delivery"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RawTariffRecord:
    """
    Назначение:
        Запись тарифа коробов в том виде, в каком её вернул источник.
    Инварианты:
        - warehouse_name всегда строка.
        - Остальные поля: строка или None (поле отсутствовало / было null).
        - payload хранит исходный объект без изменений (для аудита в raw_data).
    """

    warehouse_name: str
    box_type_name: str | None = None
    box_delivery_and_storage_expr: str | None = None
    box_delivery_base: str | None = None
    box_delivery_liter: str | None = None
    box_storage_base: str | None = None
    box_storage_liter: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawTariffRecord":
        return cls(
            warehouse_name=payload["warehouseName"],
            box_type_name=payload.get("boxTypeName"),
            box_delivery_and_storage_expr=payload.get("boxDeliveryAndStorageExpr"),
            box_delivery_base=payload.get("boxDeliveryBase"),
            box_delivery_liter=payload.get("boxDeliveryLiter"),
            box_storage_base=payload.get("boxStorageBase"),
            box_storage_liter=payload.get("boxStorageLiter"),
            payload=dict(payload),
        )


@dataclass(frozen=True)
class ProcessedTariff:
    """
    Назначение:
        Каноническая строка тарифа за день.
    Инварианты:
        - (date, warehouse_name, box_type, delivery_type) - бизнес-ключ.
        - coefficient >= 0, два знака после запятой.
    """

    date: date
    warehouse_name: str
    box_type: str
    delivery_type: str
    coefficient: Decimal
    raw_data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[date, str, str, str]:
        return (self.date, self.warehouse_name, self.box_type, self.delivery_type)


@dataclass(frozen=True)
class SkippedRecord:
    """Запись, отброшенная нормализатором (не ошибка)."""

    warehouse_name: str | None
    box_type_name: str | None
    reason: str


@dataclass
class NormalizeResult:
    tariffs: list[ProcessedTariff] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)


@dataclass(frozen=True)
class SyncResult:
    """
    Назначение:
        Итог синхронизации одного приёмника.
    """

    target_id: str
    success: bool
    rows_written: int = 0
    error: str | None = None
