from __future__ import annotations

import threading

import google.auth.transport.requests
from google.oauth2 import service_account

SHEETS_SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class StaticTokenProvider:
    """Заранее выпущенный access token (например, из gcloud)."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("Google access token is empty")
        self._token = token

    def get_token(self) -> str:
        return self._token


class ServiceAccountTokenProvider:
    """
    Назначение/ответственность:
        Выдаёт access token сервисного аккаунта Google (email + private key),
        обновляя его по истечении.
    Ограничения:
        Обновление под lock: задачи синхронизации разных таблиц работают
        в параллельных потоках и делят один провайдер.
    """

    def __init__(self, service_account_email: str, private_key: str, token_uri: str = GOOGLE_TOKEN_URI):
        info = {
            "type": "service_account",
            "client_email": service_account_email,
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": token_uri,
        }
        self._credentials = service_account.Credentials.from_service_account_info(
            info,
            scopes=list(SHEETS_SCOPES),
        )
        self._lock = threading.Lock()

    def get_token(self) -> str:
        with self._lock:
            if not self._credentials.valid:
                self._credentials.refresh(google.auth.transport.requests.Request())
            return self._credentials.token
