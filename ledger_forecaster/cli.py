"""
Ledger Forecaster CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the action (DB init, CSV import, refresh, analytics, ...).
  5. Report the result to stdout; errors print ``[ERROR] ...`` to stderr
     and exit with code 1.

Install and run::

    pip install -e .
    lfc --help
    lfc init-db
    lfc import-categories --file categories.csv
    lfc import-transactions --file transactions.csv
    lfc refresh
    lfc query category_anomalies --currency USD
    lfc forecast --kind seasonal --horizon 6
    lfc insights --format parquet
    lfc start-scheduler --interval 3600
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Optional

import typer

app = typer.Typer(
    name="ledger-forecaster",
    help="Ledger Forecaster: household finance analytics and forecasting CLI.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from ledger_forecaster.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from ledger_forecaster.utils.logging import configure_logging
    configure_logging(config.logging)


def _fail(message: str) -> None:
    typer.echo(f"[ERROR] {message}", err=True)
    raise typer.Exit(code=1)


def _ensure_schema(config, db_path: str) -> None:
    from ledger_forecaster.db.connection import get_connection
    from ledger_forecaster.db.migrations import initialize_database

    with get_connection(
        db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        initialize_database(conn)


def _open_engine(config, db_path: Optional[str], refresh_if_empty: bool = True):
    """Engine over the configured DB; refreshes when no snapshot was persisted."""
    from ledger_forecaster.engine import AnalyticsEngine

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)
    engine = AnalyticsEngine.from_config(config, target_db)
    if refresh_if_empty and engine.store.snapshot() is None:
        typer.echo("No persisted snapshot; refreshing aggregates first.")
        report = engine.refresh()
        if not report.ok:
            _fail(f"Refresh failed in {report.failed_view or 'refresh'}: {report.error}")
    return engine


def _parse_date_or_exit(value: Optional[str], option: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        _fail(f"Invalid date for {option}: '{value}'. Expected YYYY-MM-DD.")


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _run_analytics(fn):
    """Call ``fn()`` and convert engine errors into ``[ERROR]`` exits."""
    from ledger_forecaster.errors import LedgerForecasterError

    try:
        return fn()
    except (LedgerForecasterError, ValueError) as exc:
        _fail(str(exc))


def _import_file(
    kind: str,
    path: Path,
    parser,
    writer,
    config,
    db_path: Optional[str],
    dry_run: bool,
) -> None:
    from ledger_forecaster.db.connection import get_connection

    if not path.exists():
        _fail(f"{kind.capitalize()} file not found: {path}")
    if path.suffix.lower() != ".csv":
        _fail(f"Unsupported file format '{path.suffix}'. Use .csv.")

    typer.echo(f"Loading {kind} from: {path}")
    try:
        records = parser(path)
    except (FileNotFoundError, ValueError) as exc:
        _fail(f"CSV parse failed:\n{exc}")

    typer.echo(f"  Validated {len(records)} {kind}.")
    if dry_run:
        typer.echo(f"[DRY RUN] No {kind} written to database.")
        return

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)
    try:
        with get_connection(
            target_db,
            wal_mode=config.database.wal_mode,
            busy_timeout_ms=config.database.busy_timeout_ms,
        ) as conn:
            written = writer(conn, records)
    except Exception as exc:
        _fail(f"Import failed, nothing written: {exc}")

    typer.echo(f"  Wrote {written} {kind} to database.")
    typer.echo(f"[OK] {kind.capitalize()} imported.")


# ── Setup commands ────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None, "--db-path", help="Override DB path from config (e.g. data/db/test.db)."
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    Also runs pending schema migrations.
    """
    from ledger_forecaster.db.connection import get_connection
    from ledger_forecaster.db.migrations import run_migrations
    from ledger_forecaster.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)
        migrations_applied = run_migrations(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Migrations applied: {migrations_applied}")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to TOML config file (default: config/default.toml)."
    ),
    show_full: bool = typer.Option(False, "--full", help="Print full config including all fields."),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:      {config.database.db_path}")
    typer.echo(f"  Reporting currency: {config.ledger.reporting_currency}")
    typer.echo(f"  Refresh interval:   {config.aggregation.refresh_interval_seconds}s")
    typer.echo(f"  Anomaly threshold:  {config.aggregation.anomaly_std_multiplier} sigma")
    typer.echo(f"  Forecast horizon:   {config.forecast.default_horizon_months} months")
    typer.echo(f"  Scenario factors:   {config.scenarios.factors}")
    typer.echo(f"  Log level:          {config.logging.level}")
    typer.echo(f"  Debug mode:         {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        _echo_json(config.model_dump())

    typer.echo("")
    typer.echo("[OK] Config valid.")


# ── Import commands ───────────────────────────────────────────────────────────

@app.command("import-transactions")
def import_transactions(
    file: str = typer.Option(..., "--file", "-f", help="Path to transactions CSV."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate but do not write to the database."),
) -> None:
    """Import ledger transactions from a CSV file.

    \b
    Columns: txn_date, amount, currency (required);
             transaction_id, category_id, description (optional).

    All rows are validated first; a single bad row aborts the import.
    """
    from ledger_forecaster.db.repositories.ledger_repo import LedgerRepository
    from ledger_forecaster.ingestion.ledger_csv import parse_transaction_csv

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _import_file(
        "transactions", Path(file), parse_transaction_csv,
        lambda conn, txns: LedgerRepository(conn).insert_transactions(txns),
        config, db_path, dry_run,
    )


@app.command("import-categories")
def import_categories(
    file: str = typer.Option(..., "--file", "-f", help="Path to categories CSV."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate but do not write to the database."),
) -> None:
    """Import (upsert) ledger categories from a CSV file.

    \b
    Columns: category_id, name (required); parent_id, kind (optional).

    Parents are written before their children regardless of file order.
    """
    from ledger_forecaster.db.repositories.ledger_repo import LedgerRepository
    from ledger_forecaster.ingestion.ledger_csv import parse_category_csv

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _import_file(
        "categories", Path(file), parse_category_csv,
        lambda conn, cats: LedgerRepository(conn).upsert_categories(cats),
        config, db_path, dry_run,
    )


@app.command("import-goals")
def import_goals(
    file: str = typer.Option(..., "--file", "-f", help="Path to goals CSV."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate but do not write to the database."),
) -> None:
    """Import savings goals from a CSV file.

    \b
    Columns: target_amount, target_date (required);
             name, current_amount (optional).
    """
    from ledger_forecaster.db.repositories.goal_repo import GoalRepository
    from ledger_forecaster.ingestion.ledger_csv import parse_goal_csv

    def write(conn, goals) -> int:
        repo = GoalRepository(conn)
        for goal in goals:
            repo.insert_goal(goal)
        return len(goals)

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _import_file("goals", Path(file), parse_goal_csv, write, config, db_path, dry_run)


# ── Aggregation commands ──────────────────────────────────────────────────────

@app.command("refresh")
def refresh(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Rebuild every aggregate view and publish a new snapshot.

    On failure the previous snapshot stays in place and the command exits 1.
    """
    from ledger_forecaster.errors import RefreshError
    from ledger_forecaster.pipeline.refresh import RefreshStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)

    stage = RefreshStage(config=config, db_path=target_db)
    try:
        run = stage.run()
    except RefreshError as exc:
        report = stage.last_report
        kept = f" (still serving v{report.version})" if report is not None else ""
        _fail(f"{exc}{kept}")

    report = stage.last_report
    typer.echo(f"Refreshed aggregates to v{report.version} in {report.duration_ms:.0f} ms.")
    for name, count in report.view_row_counts.items():
        typer.echo(f"  {name:<24} {count:>6} rows")
    typer.echo(f"[OK] Refresh complete | rows={run.rows_processed} | run_slug={run.run_slug}")


@app.command("query")
def query(
    view: str = typer.Argument(..., help="View name, e.g. monthly_summary."),
    currency: Optional[str] = typer.Option(None, "--currency", help="3-letter currency code."),
    category_id: Optional[int] = typer.Option(None, "--category", help="Category id."),
    parent_category_id: Optional[int] = typer.Option(None, "--parent", help="Parent category id."),
    period_start: Optional[str] = typer.Option(None, "--start", help="First period, YYYY-MM."),
    period_end: Optional[str] = typer.Option(None, "--end", help="Last period, YYYY-MM."),
    min_abs_correlation: Optional[float] = typer.Option(
        None, "--min-corr", help="Minimum |correlation| (category_correlations only)."
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum rows returned."),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write rows to a .csv, .json or .parquet file instead of stdout."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Read rows from one aggregate view of the current snapshot."""
    from pydantic import ValidationError

    from ledger_forecaster.aggregation.views import view_names
    from ledger_forecaster.models.views import ViewFilter
    from ledger_forecaster.reporting.export import export_records

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if view not in view_names():
        _fail(f"Unknown view '{view}'. Available: {', '.join(view_names())}")

    try:
        view_filter = ViewFilter(
            currency=currency,
            category_id=category_id,
            parent_category_id=parent_category_id,
            period_start=period_start,
            period_end=period_end,
            min_abs_correlation=min_abs_correlation,
            limit=limit,
        )
    except ValidationError as exc:
        _fail(f"Invalid filter: {exc}")

    engine = _open_engine(config, db_path)
    rows = [dict(r) for r in _run_analytics(lambda: engine.query(view, view_filter))]

    if output:
        try:
            path = export_records(rows, Path(output))
        except ValueError as exc:
            _fail(str(exc))
        typer.echo(f"[OK] Wrote {len(rows)} row(s) to {path}")
        return
    _echo_json(rows)


# ── Analytics commands ────────────────────────────────────────────────────────

@app.command("forecast")
def forecast(
    kind: str = typer.Option("linear", "--kind", help="linear, exponential, seasonal or category."),
    horizon: Optional[int] = typer.Option(None, "--horizon", help="Months ahead (default from config)."),
    currency: Optional[str] = typer.Option(None, "--currency", help="3-letter currency code."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Forecast future monthly values with one model."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    engine = _open_engine(config, db_path)
    values = _run_analytics(lambda: engine.forecast(kind=kind, horizon=horizon, currency=currency))
    _echo_json({"kind": kind, "currency": engine.resolve_currency(currency), "forecast": values})


@app.command("risk")
def risk(
    currency: Optional[str] = typer.Option(None, "--currency", help="3-letter currency code."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Score income, expense and savings risk from the monthly series."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    engine = _open_engine(config, db_path)
    profile = _run_analytics(lambda: engine.assess_risk(currency))
    for stream in ("income", "expense", "savings"):
        assessment = getattr(profile, f"{stream}_risk")
        typer.echo(f"  {stream:<8} score={assessment.score:6.2f}  level={assessment.level}")
    typer.echo(f"  average  score={profile.average_score:6.2f}")


@app.command("goals")
def goals(
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date, YYYY-MM-DD (default today)."),
    currency: Optional[str] = typer.Option(None, "--currency", help="3-letter currency code."),
    strict: bool = typer.Option(False, "--strict", help="Fail on goals whose target date has passed."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Predict every stored savings goal."""
    from ledger_forecaster.db.connection import get_connection
    from ledger_forecaster.db.repositories.goal_repo import GoalRepository

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    ref_date = _parse_date_or_exit(as_of, "--as-of")

    engine = _open_engine(config, db_path)
    with get_connection(
        db_path or config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        stored = GoalRepository(conn).list_goals()

    if not stored:
        typer.echo("No goals stored. Use import-goals first.")
        return

    predictions = _run_analytics(
        lambda: engine.predict_goals(stored, as_of=ref_date, currency=currency, strict=strict)
    )
    for goal, pred in zip(stored, predictions):
        flag = " (expired)" if pred.expired else ""
        typer.echo(
            f"  [{goal.goal_id}] {goal.name or '-'}: predicted {pred.predicted_amount:,.2f} "
            f"of {pred.target_amount:,.2f} | {pred.status}{flag} | "
            f"confidence {pred.confidence:.1f} | {pred.months_remaining} month(s) left"
        )


@app.command("scenarios")
def scenarios(
    horizon: Optional[int] = typer.Option(None, "--horizon", help="Months ahead (default from config)."),
    currency: Optional[str] = typer.Option(None, "--currency", help="3-letter currency code."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Project optimistic, realistic and pessimistic scenarios."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    engine = _open_engine(config, db_path)
    result = _run_analytics(lambda: engine.generate_scenarios(currency, horizon))
    _echo_json(result.model_dump(mode="json"))


@app.command("insights")
def insights(
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", help="Export directory (default: config.export.output_dir)."
    ),
    fmt: str = typer.Option("csv", "--format", help="Section table format: csv or parquet."),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Reference date, YYYY-MM-DD (default today)."),
    currency: Optional[str] = typer.Option(None, "--currency", help="3-letter currency code."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Compose the structured insight payload and export it."""
    from ledger_forecaster.pipeline.insights import InsightStage

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    ref_date = _parse_date_or_exit(as_of, "--as-of")
    if fmt not in ("csv", "parquet"):
        _fail(f"--format must be csv or parquet, got '{fmt}'.")

    target_db = db_path or config.database.db_path
    _ensure_schema(config, target_db)
    stage = InsightStage(config=config, db_path=target_db)
    try:
        run = stage.run(as_of=ref_date, currency=currency, output_dir=output_dir, fmt=fmt)
    except Exception as exc:
        _fail(f"Insight composition failed: {exc}")

    payload = stage.last_payload
    for name in ("aggregates", "forecasts", "risk", "goals", "scenarios", "recommendations"):
        section = getattr(payload, name)
        status = "ok" if section.available else f"unavailable ({section.reason})"
        typer.echo(f"  {name:<16} {status}")
    for path in stage.written_paths:
        typer.echo(f"  wrote {path}")
    typer.echo(f"[OK] Insights exported | sections={run.rows_processed} | run_slug={run.run_slug}")


# ── Scheduler ─────────────────────────────────────────────────────────────────

@app.command("start-scheduler")
def start_scheduler(
    interval: Optional[int] = typer.Option(
        None, "--interval", help="Seconds between refreshes (default from config)."
    ),
    no_immediate: bool = typer.Option(
        False, "--no-immediate", help="Wait one interval before the first refresh."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path from config."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Refresh aggregates periodically until Ctrl-C."""
    from ledger_forecaster.scheduler import RefreshScheduler

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    seconds = interval or config.aggregation.refresh_interval_seconds
    if seconds <= 0:
        _fail(f"--interval must be positive, got {seconds}.")

    engine = _open_engine(config, db_path, refresh_if_empty=False)
    typer.echo(f"Starting refresh scheduler | interval={seconds}s | Ctrl-C to stop")
    scheduler = RefreshScheduler(engine.store, interval_seconds=seconds, run_immediately=not no_immediate)
    scheduler.run_forever()
    typer.echo(f"[OK] Scheduler stopped after {scheduler.runs} run(s), {scheduler.failures} failure(s).")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
