from __future__ import annotations

import json
from datetime import date

import httpx
from openpyxl import load_workbook
from typer.testing import CliRunner

import tariffsync.main as cli
from tariffsync.common.retry import BackoffRetrier
from tariffsync.infra.http.wb_client import WbTariffsClient
from tariffsync.main import app

runner = CliRunner()
DAY = date(2025, 3, 14)


def _base_args(tmp_path) -> list[str]:
    return [
        "--log-dir", str(tmp_path / "logs"),
        "--report-dir", str(tmp_path / "reports"),
        "--db-path", str(tmp_path / "tariffs.sqlite3"),
        "--run-id", "test-run",
    ]


def _install_wb_transport(monkeypatch, handler) -> None:
    def fake_client(settings, logger, retryConfig=None):
        return WbTariffsClient(
            token=settings.wb_api_token,
            baseUrl="https://wb.example",
            retrier=BackoffRetrier(sleep=lambda _s: None, logger=logger),
            retryConfig=retryConfig or cli.buildRetryConfig(settings),
            today=lambda: DAY,
            transport=httpx.MockTransport(handler),
            logger=logger,
        )

    monkeypatch.setattr(cli, "createWbClient", fake_client)
    monkeypatch.setattr(cli, "getLocalToday", lambda: DAY)
    monkeypatch.setenv("WB_API_TOKEN", "token")


def _ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "response": {
                "data": {
                    "warehouseList": [
                        {"warehouseName": "Коледино", "boxDeliveryBase": "1.25"},
                        {"warehouseName": "Казань", "boxDeliveryAndStorageExpr": "x0,9"},
                        {"warehouseName": "Пустой"},
                    ]
                }
            }
        },
    )


def _read_report(tmp_path, command: str) -> dict:
    path = tmp_path / "reports" / f"report_{command}_test-run.json"
    return json.loads(path.read_text(encoding="utf-8"))


def test_help_shows_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("check-api", "fetch", "sync", "show", "run"):
        assert command in result.stdout


def test_check_api_without_token_exits_2(tmp_path, monkeypatch):
    monkeypatch.delenv("WB_API_TOKEN", raising=False)

    result = runner.invoke(app, [*_base_args(tmp_path), "check-api"])

    assert result.exit_code == 2
    assert _read_report(tmp_path, "check-api")["errors"][0]["kind"] == "CONFIG"


def test_check_api_reports_record_count(tmp_path, monkeypatch):
    _install_wb_transport(monkeypatch, _ok_handler)

    result = runner.invoke(app, [*_base_args(tmp_path), "check-api"])

    assert result.exit_code == 0
    assert "API OK: records=3" in result.output


def test_fetch_then_show_then_sync_to_xlsx(tmp_path, monkeypatch):
    _install_wb_transport(monkeypatch, _ok_handler)

    fetched = runner.invoke(app, [*_base_args(tmp_path), "fetch"])
    assert fetched.exit_code == 0
    assert "fetched=3 normalized=2 skipped=1 stored=2" in fetched.output
    report = _read_report(tmp_path, "fetch")
    assert report["status"] == "SUCCESS"
    assert report["summary"]["stored"] == 2
    assert report["context"]["settings"]["wb_api_token"] == "***"

    shown = runner.invoke(app, [*_base_args(tmp_path), "show"])
    assert shown.exit_code == 0
    assert "Казань\tBox\tDelivery\t0.90\t2025-03-14" in shown.output
    assert "Stored rows total=2 latest_date=2025-03-14" in shown.output
    show_context = _read_report(tmp_path, "show")["context"]["show"]
    assert show_context["latest_date"] == "2025-03-14"
    assert show_context["total_rows"] == 2
    assert show_context["rows"] == 2

    workbook = tmp_path / "out" / "tariffs.xlsx"
    synced = runner.invoke(app, [*_base_args(tmp_path), "sync", "--target", str(workbook)])
    assert synced.exit_code == 0
    ws = load_workbook(workbook)["stocks_coefs"]
    assert [c.value for c in ws[1]] == ["Warehouse", "Box Type", "Delivery Type", "Coefficient", "Date"]
    assert [c.value for c in ws[2]] == ["Казань", "Box", "Delivery", "0.90", "2025-03-14"]
    assert [c.value for c in ws[3]] == ["Коледино", "Box", "Standard", "1.25", "2025-03-14"]


def test_fetch_auth_failure_exits_2_and_reports_error(tmp_path, monkeypatch):
    _install_wb_transport(monkeypatch, lambda request: httpx.Response(401, text="unauthorized"))

    result = runner.invoke(app, [*_base_args(tmp_path), "fetch"])

    assert result.exit_code == 2
    report = _read_report(tmp_path, "fetch")
    assert report["status"] == "FAILED"
    assert report["errors"][0]["kind"] == "AUTH"
    assert report["errors"][0]["details"]["attempts"] == 1


def test_sync_partial_failure_exits_1(tmp_path, monkeypatch):
    for name in ("GOOGLE_ACCESS_TOKEN", "GOOGLE_SERVICE_ACCOUNT_EMAIL", "GOOGLE_PRIVATE_KEY"):
        monkeypatch.delenv(name, raising=False)
    _install_wb_transport(monkeypatch, _ok_handler)
    runner.invoke(app, [*_base_args(tmp_path), "fetch"])

    result = runner.invoke(
        app,
        [*_base_args(tmp_path), "sync", "--target", str(tmp_path / "ok.xlsx"), "--target", "google-sheet-id"],
    )

    assert result.exit_code == 1
    report = _read_report(tmp_path, "sync")
    assert report["status"] == "PARTIAL"
    assert report["summary"]["targets_ok"] == 1
    assert report["summary"]["targets_failed"] == 1


def test_sync_without_targets_is_noop(tmp_path, monkeypatch):
    monkeypatch.delenv("GOOGLE_SPREADSHEET_IDS", raising=False)

    result = runner.invoke(app, [*_base_args(tmp_path), "sync"])

    assert result.exit_code == 0
    assert "No spreadsheet targets configured" in result.output


def test_show_rejects_bad_date(tmp_path):
    result = runner.invoke(app, [*_base_args(tmp_path), "show", "--date", "14.03.2025"])

    assert result.exit_code == 2


def test_run_with_invalid_cron_exits_before_scheduling(tmp_path, monkeypatch):
    monkeypatch.setenv("WB_API_TOKEN", "token")
    monkeypatch.setenv("SHEETS_SYNC_CRON", "every six hours")

    result = runner.invoke(app, [*_base_args(tmp_path), "run", "--no-initial-fetch"])

    assert result.exit_code == 2
    assert "sheets_sync_cron" in result.output
