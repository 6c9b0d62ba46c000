from __future__ import annotations

import csv
import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Sequence, TextIO

import typer

from keyset_report.benchmark import available_modes, run_benchmark
from keyset_report.config import get_settings
from keyset_report.domain.models import AggregateRow
from keyset_report.driver import ReportService
from keyset_report.errors import ConfigurationError, DataAccessError, HandlerError
from keyset_report.fetchers.abstract import START_CURSOR
from keyset_report.fetchers.keyset import KeysetPageFetcher
from keyset_report.reporter import print_benchmark_results, print_report
from keyset_report.utils.logging import configure_logging

app = typer.Typer(help="Keyset-paginated aggregate reports over entity events.")

CSV_FIELDS = ["item_id", "dimension_id", "passed", "failed", "error", "total", "pass_rate"]


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _service(dsn: Optional[str]) -> ReportService:
    return ReportService(KeysetPageFetcher(dsn_override=dsn))


@contextmanager
def _exit_on_report_errors() -> Generator[None, None, None]:
    """Map report failures onto exit codes: 2 for bad input, 1 for data access."""
    try:
        yield
    except ConfigurationError as exc:
        typer.echo(f"Invalid input: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except (DataAccessError, HandlerError) as exc:
        typer.echo(f"Report failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _dump_rows(rows: Sequence[AggregateRow]) -> str:
    return json.dumps([row.to_dict() for row in rows], indent=2)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"batch={settings.report_batch_size} timeout_ms={settings.db_statement_timeout_ms} "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size})"
    )


@app.command()
def batch(
    tenant_id: int = typer.Option(..., "--tenant-id", "-t", help="Tenant scoping id."),
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group whose items are reported."),
    cursor: str = typer.Option(
        START_CURSOR, "--cursor", "--last-seen-id", help="Last item_id of the previous page."
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Items per page."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Fetch a single page after --cursor and print it as JSON.
    """
    _setup()
    with _exit_on_report_errors():
        service = _service(dsn)
        pages = service.iter_pages(tenant_id, group_id, limit, start_cursor=cursor)
        first = next(pages, None)
        pages.close()
    rows = first[1] if first else []
    typer.echo(_dump_rows(rows))
    next_cursor = rows[-1].item_id if rows else cursor
    typer.echo(f"next cursor: {next_cursor!r}", err=True)


@app.command()
def report(
    tenant_id: int = typer.Option(..., "--tenant-id", "-t", help="Tenant scoping id."),
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group whose items are reported."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Items per page."),
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON instead of a table."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Build the full report in memory (accumulating mode).
    """
    _setup()
    with _exit_on_report_errors():
        rows = _service(dsn).generate_report(tenant_id, group_id, batch_size)
    if as_json:
        typer.echo(_dump_rows(rows))
    else:
        print_report(rows, title=f"Tenant {tenant_id} / Group {group_id}")


def _write_csv(out: TextIO, service: ReportService, tenant_id: int, group_id: str,
               batch_size: Optional[int]) -> int:
    writer = csv.DictWriter(out, fieldnames=CSV_FIELDS)
    writer.writeheader()

    def on_page(page: Sequence[AggregateRow]) -> None:
        writer.writerows(row.to_dict() for row in page)
        out.flush()

    return service.generate_report_streamed(tenant_id, group_id, batch_size, on_page)


@app.command()
def stream(
    tenant_id: int = typer.Option(..., "--tenant-id", "-t", help="Tenant scoping id."),
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group whose items are reported."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Items per page."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="CSV file to write (default: stdout)."
    ),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Stream the report page by page to CSV, holding one page in memory.
    """
    _setup()
    service = _service(dsn)
    with _exit_on_report_errors():
        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            with output.open("w", newline="", encoding="utf-8") as f:
                total = _write_csv(f, service, tenant_id, group_id, batch_size)
        else:
            total = _write_csv(sys.stdout, service, tenant_id, group_id, batch_size)
    typer.echo(f"Streamed {total:,} records.", err=True)


@app.command()
def estimate(
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group whose items are reported."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Items per page."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Estimate how many batches a report over --group-id will take.
    """
    _setup()
    with _exit_on_report_errors():
        batches = _service(dsn).estimate_batch_count(group_id, batch_size)
    typer.echo(str(batches))


@app.command()
def benchmark(
    tenant_id: int = typer.Option(..., "--tenant-id", "-t", help="Tenant scoping id."),
    group_id: str = typer.Option(..., "--group-id", "-g", help="Group whose items are reported."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Items per page."),
    mode: str = typer.Option(
        "all", "--mode", "-m", help=f"Paging mode ({', '.join(available_modes())}, all)."
    ),
    runs: Optional[int] = typer.Option(None, "--runs", "-n", help="Measurement runs per mode."),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write results/ JSON."),
) -> None:
    """
    Compare keyset and offset paging over the same group.
    """
    _setup()
    with _exit_on_report_errors():
        results = run_benchmark(
            tenant_id, group_id, batch_size=batch_size, modes=[mode], runs=runs, persist=persist
        )
    print_benchmark_results(results)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
