from __future__ import annotations

import logging
import signal
import time
from dataclasses import replace
from datetime import date
from pathlib import Path

import typer

from tariffsync.common.retry import BackoffRetrier, RetryConfig
from tariffsync.common.run_id import generate_run_id
from tariffsync.common.sanitize import maskSecret
from tariffsync.common.time import getDurationMs, getLocalToday
from tariffsync.config import Settings, describe_settings, load_settings
from tariffsync.domain.transform.normalizer import TariffNormalizer
from tariffsync.errors import AppError, ConfigError, StoreError
from tariffsync.infra.artifacts.report_writer import createEmptyReport, finalizeReport, writeReportJson
from tariffsync.infra.http.wb_client import WbTariffsClient
from tariffsync.infra.logging.setup import closeLogger, createCommandLogger, logEvent
from tariffsync.infra.sheets.auth import ServiceAccountTokenProvider, StaticTokenProvider
from tariffsync.infra.sheets.google_sheets import GoogleSheetsGateway
from tariffsync.infra.sheets.routing import RoutingSheetGateway
from tariffsync.infra.sheets.xlsx_workbook import XlsxWorkbookGateway
from tariffsync.infra.store.tariff_repository import SqliteTariffRepository
from tariffsync.usecases.scheduler import CronScheduler, ScheduledJob, validate_cron
from tariffsync.usecases.sheets_sync_usecase import SheetsSyncUseCase, format_tariffs_for_sheet
from tariffsync.usecases.tariff_ingest_usecase import TariffIngestUseCase

app = typer.Typer(no_args_is_help=True, add_completion=False)


def ensureDir(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    typer.echo(
        f"run_id={runId} command={command} "
        f"wb_api_base_url={settings.wb_api_base_url} wb_api_token={maskSecret(settings.wb_api_token)} "
        f"db_path={settings.db_path} targets={len(settings.spreadsheet_ids)} sources={sources} "
        f"log_level={settings.log_level}"
    )


def buildRetryConfig(settings: Settings) -> RetryConfig:
    return RetryConfig(
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        backoff_multiplier=settings.retry_backoff_multiplier,
    )


def createWbClient(
    settings: Settings,
    logger: logging.Logger,
    retryConfig: RetryConfig | None = None,
) -> WbTariffsClient:
    """
    Назначение:
        Собирает клиент WB API из настроек. Нет токена -> ConfigError.
    """
    if not settings.wb_api_token:
        raise ConfigError("WB API token is not configured (WB_API_TOKEN)", field_name="wb_api_token")
    return WbTariffsClient(
        token=settings.wb_api_token,
        baseUrl=settings.wb_api_base_url,
        timeoutSeconds=settings.timeout_seconds,
        retrier=BackoffRetrier(logger=logger),
        retryConfig=retryConfig or buildRetryConfig(settings),
        today=getLocalToday,
        logger=logger,
    )


def createSheetGateway(settings: Settings, logger: logging.Logger) -> RoutingSheetGateway:
    """
    Назначение:
        Приёмники: *.xlsx -> локальная книга, прочие id -> Google Sheets.
        Google подключается, если задан access token или сервисный аккаунт.
    """
    google = None
    token_provider = None
    if settings.google_access_token:
        token_provider = StaticTokenProvider(settings.google_access_token)
    elif settings.google_service_account_email and settings.google_private_key:
        try:
            token_provider = ServiceAccountTokenProvider(
                settings.google_service_account_email,
                settings.google_private_key,
            )
        except ValueError as exc:
            raise ConfigError(f"Invalid Google service account credentials: {exc}", field_name="google_private_key") from exc
    if token_provider is not None:
        google = GoogleSheetsGateway(
            token_provider,
            timeoutSeconds=settings.sheets_timeout_seconds,
            logger=logger,
        )
    return RoutingSheetGateway(google=google, xlsx=XlsxWorkbookGateway(logger=logger))


def openRepository(settings: Settings, logger: logging.Logger) -> SqliteTariffRepository:
    repo = SqliteTariffRepository(settings.db_path, logger=logger)
    repo.initialize()
    return repo


def runWithReport(ctx: typer.Context, commandName: str, runner) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер + файл лога
        - создаёт report.json skeleton
        - гарантирует запись отчёта в finally

    Поведение:
        runner(logger, report) возвращает exit code; ConfigError -> 2,
        прочие AppError -> 2 с записью в отчёт.
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()

    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )

    report = createEmptyReport(runId=runId, command=commandName, configSources=sources)
    report.set_context("settings", describe_settings(settings))

    exitCode: int | None = None

    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)
        try:
            exitCode = runner(logger, report)
        except ConfigError as exc:
            report.add_error(exc, stage="config")
            logEvent(logger, logging.ERROR, runId, "config", str(exc))
            typer.echo(f"ERROR: {exc}", err=True)
            exitCode = 2
        except AppError as exc:
            if not report.errors:
                report.add_error(exc, stage=commandName)
            logEvent(logger, logging.ERROR, runId, "core", f"Command failed: {exc}")
            typer.echo(f"ERROR: {exc} (see logs/report)", err=True)
            exitCode = 2
        except Exception as exc:
            report.add_error(exc, stage=commandName)
            logger.exception(f"Unexpected error: {exc}", extra={"runId": runId, "component": "core"})
            typer.echo(f"ERROR: unexpected failure: {exc} (see logs/report)", err=True)
            exitCode = 2
    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        finalizeReport(
            report=report,
            durationMs=durationMs,
            logFile=logFilePath,
            dbPath=settings.db_path,
            reportDir=settings.report_dir,
        )
        reportPath = writeReportJson(report, settings.report_dir, f"report_{commandName}_{runId}")
        logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")
        closeLogger(logger)

    if exitCode:
        raise typer.Exit(code=exitCode)


def runCheckApiCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]

    def execute(logger, report) -> int:
        with createWbClient(settings, logger) as client:
            try:
                records = client.fetch_once()
            except AppError as exc:
                report.add_error(exc, stage="fetch")
                raise
        report.summary.fetched = len(records)
        typer.echo(f"API OK: records={len(records)}")
        return 0

    runWithReport(ctx, "check-api", execute)


def runFetchCommand(
    ctx: typer.Context,
    maxAttempts: int | None = None,
    initialDelaySeconds: float | None = None,
) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        effective = settings
        if maxAttempts is not None or initialDelaySeconds is not None:
            overrides = {}
            if maxAttempts is not None:
                overrides["retry_max_attempts"] = maxAttempts
            if initialDelaySeconds is not None:
                overrides["retry_initial_delay_seconds"] = initialDelaySeconds
            effective = replace(settings, **overrides)

        try:
            retry_config = buildRetryConfig(effective)
        except ValueError as exc:
            raise ConfigError(f"Invalid retry settings: {exc}") from exc
        repo = openRepository(effective, logger)
        with createWbClient(effective, logger, retry_config) as client:
            usecase = TariffIngestUseCase(client, TariffNormalizer(today=getLocalToday, logger=logger), repo)
            stats = usecase.run(logger, runId, report)
        typer.echo(
            f"fetched={stats.fetched} normalized={stats.normalized} skipped={stats.skipped} stored={stats.stored}"
        )
        return 0

    runWithReport(ctx, "fetch", execute)


def runSyncCommand(ctx: typer.Context, targets: list[str] | None = None) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger, report) -> int:
        targetIds = [t.strip() for t in (targets or []) if t and t.strip()] or list(settings.spreadsheet_ids)
        repo = openRepository(settings, logger)
        gateway = createSheetGateway(settings, logger)
        usecase = SheetsSyncUseCase(
            repo,
            gateway,
            worksheet_name=settings.worksheet_name,
            max_workers=settings.sync_max_workers,
            logger=logger,
            run_id=runId,
        )
        try:
            results = usecase.sync_all(targetIds, report)
        finally:
            gateway.close()
        for result in results:
            status = "OK" if result.success else "FAILED"
            line = f"{status} target={result.target_id} rows={result.rows_written}"
            if result.error:
                line += f" error={result.error}"
            typer.echo(line)
        if not results:
            typer.echo("No spreadsheet targets configured")
        if any(not r.success for r in results):
            return 1
        return 0

    runWithReport(ctx, "sync", execute)


def runShowCommand(ctx: typer.Context, day: str | None = None) -> None:
    settings: Settings = ctx.obj["settings"]

    def execute(logger, report) -> int:
        wanted: date | None = None
        if day is not None:
            try:
                wanted = date.fromisoformat(day)
            except ValueError as exc:
                raise ConfigError(f"Invalid --date value: {day}", field_name="date") from exc
        repo = openRepository(settings, logger)
        latest = repo.latest_date()
        total = repo.count()
        tariffs = repo.get_by_date(wanted) if wanted is not None else repo.get_latest_daily()
        report.set_context(
            "show",
            {
                "date": day,
                "rows": len(tariffs),
                "latest_date": latest.isoformat() if latest else None,
                "total_rows": total,
            },
        )
        typer.echo(f"Stored rows total={total} latest_date={latest.isoformat() if latest else '-'}")
        if not tariffs:
            typer.echo("No tariffs stored")
            return 0
        for row in format_tariffs_for_sheet(tariffs):
            typer.echo("\t".join(row))
        return 0

    runWithReport(ctx, "show", execute)


def runDaemonCommand(ctx: typer.Context, initialFetch: bool = True) -> None:
    """
    Назначение:
        Режим службы: первичная загрузка (опционально) и два cron-задания
        до SIGINT/SIGTERM.
    Поведение:
        - невалидный cron или недоступное хранилище -> exit code 2;
        - ошибки периодических циклов логируются и не завершают процесс.
    """
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    logger, _logFilePath = createCommandLogger(
        commandName="run",
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )
    printRunHeader(runId, "run", settings, ctx.obj["sources"])

    try:
        fetchCron = validate_cron(settings.tariff_fetch_cron, "tariff_fetch_cron")
        syncCron = validate_cron(settings.sheets_sync_cron, "sheets_sync_cron")
        repo = openRepository(settings, logger)
        client = createWbClient(settings, logger)
        gateway = createSheetGateway(settings, logger)
    except (ConfigError, StoreError, ValueError) as exc:
        logEvent(logger, logging.ERROR, runId, "core", f"Startup failed: {exc}")
        typer.echo(f"ERROR: {exc}", err=True)
        closeLogger(logger)
        raise typer.Exit(code=2)

    ingest = TariffIngestUseCase(client, TariffNormalizer(today=getLocalToday, logger=logger), repo)
    targets = list(settings.spreadsheet_ids)

    def fetchJob() -> None:
        ingest.run(logger, generate_run_id())

    def syncJob() -> None:
        cycleId = generate_run_id()
        sync = SheetsSyncUseCase(
            repo,
            gateway,
            worksheet_name=settings.worksheet_name,
            max_workers=settings.sync_max_workers,
            logger=logger,
            run_id=cycleId,
        )
        sync.sync_all(targets)

    scheduler = CronScheduler(
        [
            ScheduledJob("tariff_fetch", fetchCron, fetchJob),
            ScheduledJob("sheets_sync", syncCron, syncJob),
        ],
        logger=logger,
    )

    def handleSignal(signum, _frame) -> None:
        logEvent(logger, logging.INFO, runId, "core", f"Received signal {signum}, shutting down")
        scheduler.stop()

    previous = {sig: signal.signal(sig, handleSignal) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        if initialFetch:
            logEvent(logger, logging.INFO, runId, "core", "Running initial tariff fetch")
            scheduler.run_job(ScheduledJob("initial_fetch", fetchCron, fetchJob))
        scheduler.start()
        logEvent(logger, logging.INFO, runId, "core", "Scheduler started")
        scheduler.wait()
    finally:
        scheduler.stop()
        scheduler.join(timeout=30)
        client.close()
        gateway.close()
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        logEvent(logger, logging.INFO, runId, "core", "Scheduler stopped")
        closeLogger(logger)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    dbPath: str | None = typer.Option(None, "--db-path", help="SQLite tariff database path."),
    wbApiToken: str | None = typer.Option(None, "--wb-api-token", help="WB API token (avoid; use env)"),
    wbApiBaseUrl: str | None = typer.Option(None, "--wb-api-base-url", help="WB API base URL"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="WB API timeout in seconds"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - создаёт каталоги log/report
        - сохраняет всё в ctx.obj для подкоманд
    """
    if not runId:
        runId = generate_run_id()

    cliOverrides = {
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
        "db_path": dbPath,
        "wb_api_token": wbApiToken,
        "wb_api_base_url": wbApiBaseUrl,
        "timeout_seconds": timeoutSeconds,
    }
    try:
        loaded = load_settings(config_path=config, cli_overrides=cliOverrides)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=2)

    ensureDir(loaded.settings.log_dir)
    ensureDir(loaded.settings.report_dir)

    ctx.obj = {
        "runId": runId,
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command("check-api")
def checkApi(ctx: typer.Context):
    runCheckApiCommand(ctx)


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    maxAttempts: int | None = typer.Option(None, "--max-attempts", help="Retry attempts for WB API"),
    initialDelaySeconds: float | None = typer.Option(
        None, "--initial-delay-seconds", help="Initial retry delay in seconds"
    ),
):
    runFetchCommand(ctx, maxAttempts=maxAttempts, initialDelaySeconds=initialDelaySeconds)


@app.command("sync")
def sync(
    ctx: typer.Context,
    target: list[str] | None = typer.Option(
        None, "--target", help="Spreadsheet id or .xlsx path (repeatable); overrides GOOGLE_SPREADSHEET_IDS"
    ),
):
    runSyncCommand(ctx, targets=target)


@app.command("show")
def show(
    ctx: typer.Context,
    day: str | None = typer.Option(None, "--date", help="Snapshot date YYYY-MM-DD (default: latest)"),
):
    runShowCommand(ctx, day=day)


@app.command("run")
def run(
    ctx: typer.Context,
    initialFetch: bool = typer.Option(
        True, "--initial-fetch/--no-initial-fetch", help="Fetch tariffs once before starting the scheduler"
    ),
):
    runDaemonCommand(ctx, initialFetch=initialFetch)


if __name__ == "__main__":
    app()
