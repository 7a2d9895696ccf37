from __future__ import annotations

import sqlite3
from pathlib import Path

BUSY_TIMEOUT_MS = 30000


def openTariffDb(dbPath: str) -> sqlite3.Connection:
    """
    Открывает/создаёт SQLite БД тарифов с нужными PRAGMA/timeout.
    """
    Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        dbPath,
        timeout=BUSY_TIMEOUT_MS / 1000,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    return conn
