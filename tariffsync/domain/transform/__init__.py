from .normalizer import (
    COEFFICIENT_RULES,
    SKIP_NO_COEFFICIENT,
    CoefficientRule,
    TariffNormalizer,
    classify_delivery_type,
)

__all__ = [
    "COEFFICIENT_RULES",
    "SKIP_NO_COEFFICIENT",
    "CoefficientRule",
    "TariffNormalizer",
    "classify_delivery_type",
]
