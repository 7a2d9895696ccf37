from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from croniter import croniter

from tariffsync.errors import ConfigError


def validate_cron(expression: str, field_name: str = "cron") -> str:
    """
    Назначение:
        Проверяет 5-польное cron-выражение. Невалидное -> ConfigError.
    """
    value = (expression or "").strip()
    if not value or len(value.split()) != 5 or not croniter.is_valid(value):
        raise ConfigError(f"Invalid cron expression for {field_name}: {expression!r}", field_name=field_name)
    return value


def next_fire_time(expression: str, after: datetime) -> datetime:
    return croniter(expression, after).get_next(datetime)


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    cron: str
    func: Callable[[], object]


class CronScheduler:
    """
    Назначение/ответственность:
        Запускает задачи по cron-выражениям (UTC), по одному потоку на задачу.
    Поведение:
        - Выражения проверяются в конструкторе (ConfigError).
        - Задача не перекрывается сама с собой: следующее время считается
          после завершения текущего запуска.
        - Исключение задачи логируется, цикл продолжается.
        - stop() будит ожидающие потоки; выполняющиеся задачи дорабатывают.
    """

    def __init__(
        self,
        jobs: list[ScheduledJob],
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        for job in jobs:
            validate_cron(job.cron, field_name=job.name)
        self.jobs = jobs
        self.logger = logger or logging.getLogger("tariffsync.scheduler")
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for job in self.jobs:
            thread = threading.Thread(target=self._loop, args=(job,), name=f"cron-{job.name}", daemon=True)
            thread.start()
            self._threads.append(thread)
            self._log(logging.INFO, f"Scheduled job={job.name} cron='{job.cron}' (UTC)")

    def stop(self) -> None:
        self.stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def wait(self) -> None:
        """Блокирует вызывающий поток до stop()."""
        while not self.stop_event.wait(1.0):
            pass

    def run_job(self, job: ScheduledJob) -> bool:
        self._log(logging.INFO, f"Running scheduled job={job.name}")
        try:
            job.func()
        except Exception as exc:
            self._log(logging.ERROR, f"Scheduled job failed job={job.name}: {exc}")
            return False
        self._log(logging.INFO, f"Scheduled job finished job={job.name}")
        return True

    def _loop(self, job: ScheduledJob) -> None:
        while not self.stop_event.is_set():
            now = self.clock()
            fire_at = next_fire_time(job.cron, now)
            delay = (fire_at - now).total_seconds()
            self._log(logging.DEBUG, f"Next run job={job.name} at={fire_at.isoformat()}")
            if self.stop_event.wait(max(delay, 0.0)):
                break
            self.run_job(job)

    def _log(self, level: int, message: str) -> None:
        self.logger.log(level, message, extra={"component": "scheduler"})
