from __future__ import annotations

from datetime import date, datetime, timezone


def getNowIso() -> str:
    """
    Назначение:
        Возвращает текущее время в ISO 8601 с timezone.

    Выходные данные:
        str
            Например: 2026-01-11T18:22:10+03:00
    """
    return datetime.now().astimezone().isoformat()


def getUtcNowIso() -> str:
    """Текущее время в UTC ISO 8601."""
    return datetime.now(timezone.utc).isoformat()


def getLocalToday() -> date:
    """
    Назначение:
        Текущая календарная дата по локальным часам машины.
        Единый источник "сегодня" для запроса к API и нормализатора.
    """
    return datetime.now().astimezone().date()


def getDurationMs(startMonotonic: float, endMonotonic: float) -> int:
    return int((endMonotonic - startMonotonic) * 1000)
