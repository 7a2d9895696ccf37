from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping

from tariffsync.common.time import getLocalToday
from tariffsync.domain.models import (
    DEFAULT_BOX_TYPE,
    DeliveryType,
    NormalizeResult,
    ProcessedTariff,
    RawTariffRecord,
    SkippedRecord,
)

COEFFICIENT_QUANT = Decimal("0.01")
EXPR_FALLBACK_COEFFICIENT = Decimal("1.0")

SKIP_NO_COEFFICIENT = "no_positive_coefficient"

_EXPR_MARKERS = re.compile(r"коэффициент|коэф\.|[xх]", re.IGNORECASE)
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
_SPACES = re.compile(r"\s+")


@dataclass(frozen=True)
class CoefficientRule:
    """
    Назначение:
        Одно правило в цепочке вывода коэффициента.
    Контракт:
        parser возвращает Decimal (> 0 считается пригодным) или None.
    """

    source_field: str
    parser: Callable[[str, "TariffNormalizer", RawTariffRecord], Decimal | None]

    def apply(self, normalizer: "TariffNormalizer", raw: RawTariffRecord) -> Decimal | None:
        value = getattr(raw, self.source_field)
        if not _has_text(value):
            return None
        parsed = self.parser(value, normalizer, raw)
        if parsed is None or parsed <= 0:
            return None
        return parsed


def parse_expression(value: str, normalizer: "TariffNormalizer", raw: RawTariffRecord) -> Decimal | None:
    """
    Выражение вида "x1.5", "х1,5", "коэф. 1.5": маркеры удаляются, берётся
    ведущее число. Нечитаемое выражение даёт 1.0 с предупреждением.
    """
    cleaned = _EXPR_MARKERS.sub("", value)
    cleaned = _SPACES.sub("", cleaned).replace(",", ".")
    match = _LEADING_NUMBER.match(cleaned)
    if match is None:
        normalizer.logger.warning(
            f'Could not extract coefficient from expression: "{value}", using 1.0 '
            f"warehouse={raw.warehouse_name}",
            extra={"component": "normalize"},
        )
        return EXPR_FALLBACK_COEFFICIENT
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return EXPR_FALLBACK_COEFFICIENT


def parse_rate(value: str, _normalizer: "TariffNormalizer", _raw: RawTariffRecord) -> Decimal | None:
    """Ставка вида "2,30" / "46" / "1 039,5"; нечисловое значение -> None."""
    text = _SPACES.sub("", value).replace(",", ".")
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


COEFFICIENT_RULES: tuple[CoefficientRule, ...] = (
    CoefficientRule("box_delivery_and_storage_expr", parse_expression),
    CoefficientRule("box_delivery_base", parse_rate),
    CoefficientRule("box_delivery_liter", parse_rate),
    CoefficientRule("box_storage_base", parse_rate),
    CoefficientRule("box_storage_liter", parse_rate),
)


class TariffNormalizer:
    """
    Назначение/ответственность:
        Превращает сырые записи источника в ProcessedTariff за текущий день.
    Алгоритм (на запись):
        1. Коэффициент - первое пригодное положительное число по COEFFICIENT_RULES.
           Нет ни одного -> запись отбрасывается (SkippedRecord), это не ошибка.
        2. Тип доставки - первое совпадение:
           boxDeliveryBase -> Standard, boxDeliveryLiter -> Liter-based,
           boxStorageBase -> Storage, выражение -> Delivery, иначе Unknown.
        3. box_type по умолчанию "Box".
        4. date = today().
        Исключение при обработке записи отбрасывает только эту запись.
    """

    def __init__(
        self,
        today: Callable[[], date] = getLocalToday,
        logger: logging.Logger | None = None,
        rules: tuple[CoefficientRule, ...] = COEFFICIENT_RULES,
    ):
        self.today = today
        self.logger = logger or logging.getLogger("tariffsync.normalize")
        self.rules = rules

    def normalize(self, raw_list: Iterable[RawTariffRecord | Mapping[str, Any]]) -> list[ProcessedTariff]:
        return self.normalize_with_report(raw_list).tariffs

    def normalize_with_report(
        self,
        raw_list: Iterable[RawTariffRecord | Mapping[str, Any]],
    ) -> NormalizeResult:
        result = NormalizeResult()
        day = self.today()

        for item in raw_list:
            raw: RawTariffRecord | None = None
            try:
                raw = item if isinstance(item, RawTariffRecord) else RawTariffRecord.from_payload(item)
                tariff = self._normalize_one(raw, day)
            except Exception as exc:
                warehouse, box_type = _identity(raw, item)
                self.logger.warning(
                    f"Failed to transform box tariff, skipping warehouse={warehouse} "
                    f"box_type={box_type} error={exc}",
                    extra={"component": "normalize"},
                )
                result.skipped.append(SkippedRecord(warehouse, box_type, f"transform_error: {exc}"))
                continue

            if tariff is None:
                self.logger.debug(
                    f"No positive coefficient, dropping warehouse={raw.warehouse_name} "
                    f"box_type={raw.box_type_name}",
                    extra={"component": "normalize"},
                )
                result.skipped.append(
                    SkippedRecord(raw.warehouse_name, raw.box_type_name, SKIP_NO_COEFFICIENT)
                )
                continue
            result.tariffs.append(tariff)

        return result

    def _normalize_one(self, raw: RawTariffRecord, day: date) -> ProcessedTariff | None:
        if not isinstance(raw.warehouse_name, str) or not raw.warehouse_name.strip():
            raise ValueError("warehouseName is empty")

        coefficient = self.derive_coefficient(raw)
        if coefficient is None:
            return None

        box_type = raw.box_type_name.strip() if _has_text(raw.box_type_name) else DEFAULT_BOX_TYPE
        return ProcessedTariff(
            date=day,
            warehouse_name=raw.warehouse_name,
            box_type=box_type,
            delivery_type=classify_delivery_type(raw).value,
            coefficient=coefficient,
            raw_data=dict(raw.payload),
        )

    def derive_coefficient(self, raw: RawTariffRecord) -> Decimal | None:
        for rule in self.rules:
            value = rule.apply(self, raw)
            if value is not None:
                return value.quantize(COEFFICIENT_QUANT, rounding=ROUND_HALF_UP)
        return None


def classify_delivery_type(raw: RawTariffRecord) -> DeliveryType:
    if _is_set(raw.box_delivery_base):
        return DeliveryType.STANDARD
    if _is_set(raw.box_delivery_liter):
        return DeliveryType.LITER_BASED
    if _is_set(raw.box_storage_base):
        return DeliveryType.STORAGE
    if _has_text(raw.box_delivery_and_storage_expr):
        return DeliveryType.DELIVERY
    return DeliveryType.UNKNOWN


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _is_set(value: Any) -> bool:
    return _has_text(value) and value.strip() != "0"


def _identity(raw: RawTariffRecord | None, item: Any) -> tuple[str | None, str | None]:
    if raw is not None:
        return raw.warehouse_name, raw.box_type_name
    if isinstance(item, Mapping):
        return item.get("warehouseName"), item.get("boxTypeName")
    return None, None
