from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tariffsync.domain.models import SkippedRecord, SyncResult
from tariffsync.domain.reporting.collector import ReportCollector
from tariffsync.errors import StoreError
from tariffsync.infra.artifacts.report_writer import createEmptyReport, finalizeReport, writeReportJson
from tariffsync.infra.logging.setup import closeLogger, createCommandLogger, logEvent, mapLogLevel


def test_map_log_level_accepts_warn_and_warning():
    assert mapLogLevel("warn") == logging.WARNING
    assert mapLogLevel("WARNING") == logging.WARNING
    assert mapLogLevel("debug") == logging.DEBUG
    with pytest.raises(ValueError):
        mapLogLevel("TRACE")


def test_command_logger_writes_run_id_and_component(tmp_path):
    logger, logFile = createCommandLogger("fetch", str(tmp_path), "run-1", "INFO", console=False)
    logEvent(logger, logging.INFO, "run-1", "ingest", "cycle started")
    logger.warning("no component given")
    logger.debug("hidden")
    closeLogger(logger)

    text = Path(logFile).read_text(encoding="utf-8")
    assert "runId=run-1 comp=ingest msg=cycle started" in text
    assert "comp=core msg=no component given" in text
    assert "hidden" not in text


def test_report_items_are_limited_and_flagged():
    report = ReportCollector(run_id="r", command="fetch", items_limit=1)

    report.add_skipped([SkippedRecord("A", None, "no_positive_coefficient"), SkippedRecord("B", "Box", "x")])

    assert report.summary.skipped == 2
    assert len(report.items) == 1
    assert report.meta.items_truncated is True


def test_all_targets_failed_is_failed_status():
    report = ReportCollector(run_id="r", command="sync")
    report.add_sync_results([SyncResult("a", False, error="boom")])
    report.finish()

    assert report.build().status == "FAILED"


def test_report_json_is_written(tmp_path):
    report = createEmptyReport("run-1", "fetch", ["env"])
    report.add_error(StoreError("locked"), stage="store")
    finalizeReport(report, durationMs=12, logFile="x.log", dbPath="t.sqlite3", reportDir=str(tmp_path))

    path = writeReportJson(report, str(tmp_path), "report_fetch_run-1")

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    assert data["status"] == "FAILED"
    assert data["meta"]["duration_ms"] == 12
    assert data["context"]["config"] == {"sources": ["env"]}
    assert data["errors"][0]["stage"] == "store"
    assert data["errors"][0]["kind"] == "STORE"
