from __future__ import annotations

import json
import time
from typing import Any, Callable

import httpx


class DeadlineResponse:
    """
    Назначение:
        Ответ, тело которого уже дочитано в пределах общего дедлайна.
        Отдаёт то, что нужно клиентам: статус, текст, JSON.
    """

    def __init__(self, response: httpx.Response, body: bytes):
        self.status_code = response.status_code
        self.reason_phrase = response.reason_phrase
        self.is_success = response.is_success
        self.content = body
        self._encoding = response.encoding or "utf-8"

    @property
    def text(self) -> str:
        return self.content.decode(self._encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)


def request_with_deadline(
    client: httpx.Client,
    method: str,
    url: str,
    timeoutSeconds: float,
    clock: Callable[[], float] = time.monotonic,
    **kwargs: Any,
) -> DeadlineResponse:
    """
    Назначение:
        Запрос с жёстким общим таймаутом на весь обмен, а не на отдельную фазу.
    Контракт:
        - Тело читается потоком; как только clock() перешёл дедлайн, ответ
          закрывается и бросается httpx.ReadTimeout.
        - Каждая отдельная фаза (connect/read) ограничена тем же timeoutSeconds
          через таймаут httpx-клиента.
        - Прочие ошибки транспорта пробрасываются как есть.
    """
    deadline = clock() + timeoutSeconds
    with client.stream(method, url, **kwargs) as response:
        chunks: list[bytes] = []
        _check_deadline(response, deadline, clock, timeoutSeconds)
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            _check_deadline(response, deadline, clock, timeoutSeconds)
        return DeadlineResponse(response, b"".join(chunks))


def _check_deadline(
    response: httpx.Response,
    deadline: float,
    clock: Callable[[], float],
    timeoutSeconds: float,
) -> None:
    if clock() > deadline:
        raise httpx.ReadTimeout(
            f"Request exceeded overall deadline of {timeoutSeconds:g}s",
            request=response.request,
        )
