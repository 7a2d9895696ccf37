from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
import os
from typing import Any, Callable

import yaml

from tariffsync.common.sanitize import maskSecret


@dataclass(frozen=True)
class Settings:
    # WB API
    wb_api_token: str | None = None
    wb_api_base_url: str = "https://common-api.wildberries.ru"
    timeout_seconds: float = 30.0

    # Retry (seconds)
    retry_max_attempts: int = 3
    retry_initial_delay_seconds: float = 300.0
    retry_max_delay_seconds: float = 1800.0
    retry_backoff_multiplier: float = 2.0

    # Store
    db_path: str = "./data/tariffs.sqlite3"

    # Sheets
    spreadsheet_ids: tuple[str, ...] = ()
    worksheet_name: str = "stocks_coefs"
    google_service_account_email: str | None = None
    google_private_key: str | None = None
    google_access_token: str | None = None
    sheets_timeout_seconds: float = 30.0
    sync_max_workers: int = 4

    # Scheduler
    tariff_fetch_cron: str = "0 * * * *"
    sheets_sync_cron: str = "0 */6 * * *"

    # Paths / logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    report_dir: str = "./reports"


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


ENV_NAMES: dict[str, str] = {
    "wb_api_token": "WB_API_TOKEN",
    "wb_api_base_url": "WB_API_BASE_URL",
    "timeout_seconds": "WB_API_TIMEOUT_SECONDS",
    "retry_max_attempts": "TARIFFS_RETRY_MAX_ATTEMPTS",
    "retry_initial_delay_seconds": "TARIFFS_RETRY_INITIAL_DELAY_SECONDS",
    "retry_max_delay_seconds": "TARIFFS_RETRY_MAX_DELAY_SECONDS",
    "retry_backoff_multiplier": "TARIFFS_RETRY_BACKOFF_MULTIPLIER",
    "db_path": "TARIFFS_DB_PATH",
    "spreadsheet_ids": "GOOGLE_SPREADSHEET_IDS",
    "worksheet_name": "GOOGLE_WORKSHEET_NAME",
    "google_service_account_email": "GOOGLE_SERVICE_ACCOUNT_EMAIL",
    "google_private_key": "GOOGLE_PRIVATE_KEY",
    "google_access_token": "GOOGLE_ACCESS_TOKEN",
    "sheets_timeout_seconds": "GOOGLE_SHEETS_TIMEOUT_SECONDS",
    "sync_max_workers": "TARIFFS_SYNC_MAX_WORKERS",
    "tariff_fetch_cron": "TARIFF_FETCH_CRON",
    "sheets_sync_cron": "SHEETS_SYNC_CRON",
    "log_level": "TARIFFS_LOG_LEVEL",
    "log_dir": "TARIFFS_LOG_DIR",
    "report_dir": "TARIFFS_REPORT_DIR",
}

SECRET_FIELDS = ("wb_api_token", "google_private_key", "google_access_token")


def _read_yaml_config(path: Path) -> dict:
    if not path.exists():
        return {}
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def parse_int(v: Any) -> int:
    if isinstance(v, bool):
        raise ValueError(f"Invalid integer value: {v}")
    return int(v)


def parse_float(v: Any) -> float:
    if isinstance(v, bool):
        raise ValueError(f"Invalid number value: {v}")
    return float(v)


def parse_id_list(v: Any) -> tuple[str, ...]:
    """
    'id1, ,id2' -> ('id1', 'id2'); YAML-список принимается как есть.
    """
    if v is None:
        return ()
    if isinstance(v, str):
        items = v.split(",")
    elif isinstance(v, (list, tuple)):
        items = [str(item) for item in v]
    else:
        raise ValueError(f"Invalid spreadsheet id list: {v!r}")
    return tuple(item.strip() for item in items if item and item.strip())


def parse_private_key(v: Any) -> str:
    return str(v).replace("\\n", "\n")


PARSERS: dict[str, Callable[[Any], Any]] = {
    "timeout_seconds": parse_float,
    "retry_max_attempts": parse_int,
    "retry_initial_delay_seconds": parse_float,
    "retry_max_delay_seconds": parse_float,
    "retry_backoff_multiplier": parse_float,
    "spreadsheet_ids": parse_id_list,
    "google_private_key": parse_private_key,
    "sheets_timeout_seconds": parse_float,
    "sync_max_workers": parse_int,
}


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults

    Ошибки разбора чисел/списков -> ValueError (CLI завершает работу с кодом 2).
    """
    sources: list[str] = []
    known = {f.name for f in fields(Settings)}

    # 1) config file
    cfg: dict = {}
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")

    # 2) env
    env = {name: _env_get(var) for name, var in ENV_NAMES.items()}
    if any(v is not None for v in env.values()):
        sources.append("env")

    merged: dict[str, Any] = {}
    for key, value in cfg.items():
        if key in known and value is not None:
            merged[key] = value
    for key, value in env.items():
        if value is not None:
            merged[key] = value

    # 3) apply CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")

    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = v

    values = {}
    for key, value in merged.items():
        parser = PARSERS.get(key)
        values[key] = parser(value) if parser else value

    return LoadedSettings(settings=Settings(**values), sources_used=sources)


def describe_settings(settings: Settings) -> dict[str, Any]:
    """Снимок настроек для отчёта/заголовка: секреты замаскированы."""
    data: dict[str, Any] = {}
    for f in fields(Settings):
        value = getattr(settings, f.name)
        if f.name in SECRET_FIELDS:
            value = maskSecret(value)
        elif isinstance(value, tuple):
            value = list(value)
        data[f.name] = value
    return data
