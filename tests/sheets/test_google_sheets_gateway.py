from __future__ import annotations

import json

import httpx
import pytest

from tariffsync.errors import SinkError
from tariffsync.infra.sheets.auth import StaticTokenProvider
from tariffsync.infra.sheets.google_sheets import GoogleSheetsGateway


def _gateway(handler, **kwargs) -> GoogleSheetsGateway:
    return GoogleSheetsGateway(
        StaticTokenProvider("access-token"),
        baseUrl="https://sheets.example/v4/spreadsheets",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_clear_posts_to_clear_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.raw_path.decode()
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"clearedRange": "stocks_coefs!A1:Z1000"})

    _gateway(handler).clear_range("sheet-1", "stocks_coefs!A:Z")

    assert seen["method"] == "POST"
    assert seen["path"] == "/v4/spreadsheets/sheet-1/values/stocks_coefs!A:Z:clear"
    assert seen["auth"] == "Bearer access-token"


def test_write_puts_raw_values():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["params"] = dict(request.url.params)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"updatedRows": 2})

    values = [["Warehouse", "Coefficient"], ["Коледино", "1.25"]]
    updated = _gateway(handler).write_range("sheet-1", "stocks_coefs!A1", values)

    assert updated == 2
    assert seen["method"] == "PUT"
    assert seen["params"] == {"valueInputOption": "RAW"}
    assert seen["body"] == {"range": "stocks_coefs!A1", "majorDimension": "ROWS", "values": values}


def test_http_failure_becomes_sink_error_with_status():
    gateway = _gateway(lambda request: httpx.Response(403, text="forbidden"))

    with pytest.raises(SinkError) as exc_info:
        gateway.write_range("sheet-1", "stocks_coefs!A1", [["x"]])

    assert exc_info.value.target_id == "sheet-1"
    assert exc_info.value.details["status_code"] == 403
    assert exc_info.value.details["cause_kind"] == "AUTH"


def test_network_failure_becomes_sink_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(SinkError) as exc_info:
        _gateway(handler).clear_range("sheet-1", "stocks_coefs!A:Z")

    assert exc_info.value.details["cause_kind"] == "NETWORK"


def test_token_failure_becomes_sink_error():
    class BrokenTokens:
        def get_token(self):
            raise RuntimeError("invalid_grant")

    gateway = GoogleSheetsGateway(BrokenTokens(), transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(SinkError, match="invalid_grant"):
        gateway.clear_range("sheet-1", "stocks_coefs!A:Z")


def test_static_token_provider_rejects_empty_token():
    with pytest.raises(ValueError):
        StaticTokenProvider("")


class DrippingBody(httpx.SyncByteStream):
    def __init__(self, body: bytes) -> None:
        self.body = body
        self.sent = 0

    def __iter__(self):
        for index in range(len(self.body)):
            self.sent += 1
            yield self.body[index:index + 1]


class StepClock:
    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


def test_slow_write_response_is_cut_at_deadline():
    body = DrippingBody(b'{"updatedRows": 2, "spreadsheetId": "sheet-1"}')
    gateway = _gateway(
        lambda request: httpx.Response(200, stream=body),
        timeoutSeconds=1.0,
        clock=StepClock(0.3),
    )

    with pytest.raises(SinkError) as exc_info:
        gateway.write_range("sheet-1", "stocks_coefs!A1", [["x"]])

    assert exc_info.value.details["cause_kind"] == "TIMEOUT"
    assert body.sent < len(body.body)
