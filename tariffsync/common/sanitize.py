def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Маскирует секреты (токены, ключи) для вывода в stdout/logs/report.

    Выходные данные:
        str | None
            Если value задано - '***', иначе None.
    """
    if value is None or value == "":
        return None
    return "***"


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Ограничивает длину текста (тела ответов API), чтобы не раздувать логи/отчёты.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    head = limit - len(suffix)
    return value[:head] + suffix
