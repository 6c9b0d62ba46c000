from __future__ import annotations

from typing import Any, Dict, List, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from keyset_report.domain.models import AggregateRow


def build_report_table(rows: Sequence[AggregateRow], title: str = "Aggregate Report") -> Table:
    """
    Build a rich table with one line per item/dimension aggregate.
    """
    table = Table(title=title, box=box.ROUNDED, caption=f"{len(rows):,} rows, ordered by item")

    table.add_column("Item", style="cyan", no_wrap=True)
    table.add_column("Dimension", style="blue", no_wrap=True)
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Error", justify="right", style="yellow")
    table.add_column("Total", justify="right", style="magenta")
    table.add_column("Pass Rate", justify="right", style="bold green")

    for row in rows:
        table.add_row(
            row.item_id,
            row.dimension_id,
            f"{row.passed:,}",
            f"{row.failed:,}",
            f"{row.error:,}",
            f"{row.total:,}",
            f"{row.pass_rate_percentage:.1f}%",
        )
    return table


def print_report(rows: Sequence[AggregateRow], title: str = "Aggregate Report") -> None:
    console = Console()
    if not rows:
        console.print("[yellow]No rows to display.[/yellow]")
        return
    console.print(build_report_table(rows, title=title))


def print_benchmark_results(results: List[Dict[str, Any]]) -> None:
    """
    Render benchmark results as a rich table.

    Handles both single-run results and aggregated multi-run results.
    """
    console = Console()

    if not results:
        console.print("[yellow]No results to display.[/yellow]")
        return

    # Aggregated results have a "runs" key > 1 and nested stats dictionaries
    is_aggregated = (
        "runs" in results[0] and isinstance(results[0]["runs"], int) and results[0]["runs"] > 1
    )

    table = Table(
        title="Pagination Benchmark Results",
        box=box.ROUNDED,
        caption="Sorted by duration (ascending)",
    )
    table.add_column("Mode", style="cyan", no_wrap=True)
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Pages", justify="right", style="blue")
    if is_aggregated:
        table.add_column("Duration (s)\n[dim](Median ± StdDev)[/dim]", justify="right", style="green")
        table.add_column("Slowest Page (ms)\n[dim](Median)[/dim]", justify="right", style="yellow")
    else:
        table.add_column("Duration (s)", justify="right", style="green")
        table.add_column("First Page (ms)", justify="right", style="yellow")
        table.add_column("Last Page (ms)", justify="right", style="yellow")
    table.add_column("Status", style="red")

    def get_sort_key(r: Dict[str, Any]) -> float:
        duration = r.get("duration_seconds")
        if is_aggregated:
            return duration["median"] if isinstance(duration, dict) else float("inf")
        return duration if duration is not None and not r.get("error") else float("inf")

    for res in sorted(results, key=get_sort_key):
        status = res.get("error") or "ok"
        rows = f"{res.get('rows', 0):,}"
        pages = f"{res.get('pages', 0):,}"
        if is_aggregated:
            duration = res.get("duration_seconds")
            duration_str = (
                f"{duration['median']:.2f} ± {duration['stddev']:.2f}"
                if isinstance(duration, dict)
                else "N/A"
            )
            slowest = res.get("max_page_ms")
            slowest_str = f"{slowest['median']:.1f}" if isinstance(slowest, dict) else "N/A"
            table.add_row(res.get("mode", "?"), rows, pages, duration_str, slowest_str, status)
        else:
            first = res.get("first_page_ms")
            last = res.get("last_page_ms")
            table.add_row(
                res.get("mode", "?"),
                rows,
                pages,
                f"{res.get('duration_seconds') or 0.0:.2f}",
                f"{first:.1f}" if first is not None else "N/A",
                f"{last:.1f}" if last is not None else "N/A",
                status,
            )

    console.print(table)


__all__ = ["build_report_table", "print_report", "print_benchmark_results"]
