"""
Data generation and loading script for keyset-report.

Implements deterministic pseudo-random catalog and event generation, CSV
emission, and Postgres COPY loading for maximum throughput. Tenant `1001 + k`
reports events for every item of group `G{k+1:03d}` (wrapping around groups).
"""

from __future__ import annotations

import csv
import random
import sys
import tempfile
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import List, Tuple

import psycopg
import typer

from keyset_report.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Generate synthetic catalog/event data and load into Postgres (CSV + COPY).")

CATALOG_HEADER = ["item_id", "group_id", "item_name", "description"]
EVENT_HEADER = ["source_id", "item_id", "dimension_id", "tenant_id", "status", "last_seen_time"]
FIRST_TENANT_ID = 1001


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def group_id_for(index: int) -> str:
    return f"G{index + 1:03d}"


def _generate_catalog_csv(
    csv_path: Path, groups: int, items_per_group: int
) -> List[Tuple[str, str]]:
    """
    Write the item catalog and return its (group_id, item_id) pairs.

    Item keys are zero-padded so string order matches numeric order.
    """
    total = groups * items_per_group
    width = max(3, len(str(total)))
    pairs: List[Tuple[str, str]] = []

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CATALOG_HEADER)
        for n in range(1, total + 1):
            group_id = group_id_for((n - 1) // items_per_group)
            item_id = f"I-{n:0{width}d}"
            writer.writerow([item_id, group_id, f"Item {n:0{width}d}", f"Sample item for {group_id}"])
            pairs.append((group_id, item_id))
    return pairs


def _generate_events_csv(
    csv_path: Path,
    catalog: List[Tuple[str, str]],
    tenants: int,
    groups: int,
    sources_per_item: int,
    dimensions: int,
    batch_size: int,
    seed: int,
) -> int:
    """Write the event fact table; returns the number of event rows."""
    rng = random.Random(seed)
    now = datetime.now(UTC)
    dimension_ids = [f"D{d:03d}" for d in range(1, dimensions + 1)]
    written = 0

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(EVENT_HEADER)

        buffer: list[list[str]] = []
        for k in range(tenants):
            tenant_id = FIRST_TENANT_ID + k
            group_id = group_id_for(k % groups)
            items = [item_id for gid, item_id in catalog if gid == group_id]
            for item_id in items:
                for source in range(1, sources_per_item + 1):
                    for dimension_id in dimension_ids:
                        status = rng.choices((1, 0, 2), weights=(60, 35, 5))[0]
                        seen = now - timedelta(hours=rng.randint(0, 72))
                        buffer.append(
                            [
                                str(k * 1000 + source),
                                item_id,
                                dimension_id,
                                str(tenant_id),
                                str(status),
                                seen.isoformat(),
                            ]
                        )
                        if len(buffer) >= batch_size:
                            writer.writerows(buffer)
                            written += len(buffer)
                            buffer.clear()
        if buffer:
            writer.writerows(buffer)
            written += len(buffer)
    return written


def _copy_csv(cur: psycopg.Cursor, table: str, columns: List[str], csv_path: Path) -> None:
    with cur.copy(
        f"COPY public.{table} ({', '.join(columns)}) FROM STDIN WITH (FORMAT csv, HEADER TRUE)"
    ) as copy:
        with csv_path.open("r", encoding="utf-8") as f:
            for line in f:
                copy.write(line)


def _copy_into_db(dsn: str, catalog_csv: Path, events_csv: Path) -> None:
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            _copy_csv(cur, "entity_catalog", CATALOG_HEADER, catalog_csv)
            _copy_csv(cur, "entity_event", EVENT_HEADER, events_csv)
            cur.execute("ANALYZE public.entity_catalog;")
            cur.execute("ANALYZE public.entity_event;")
        conn.commit()


@app.command()
def main(
    groups: int = typer.Option(3, "--groups", help="Number of groups (G001..)."),
    items_per_group: int = typer.Option(
        1_000, "--items-per-group", "-i", help="Catalog items per group."
    ),
    tenants: int = typer.Option(3, "--tenants", help="Number of tenants (1001..)."),
    sources_per_item: int = typer.Option(
        20, "--sources", "-s", help="Event sources per item and dimension."
    ),
    dimensions: int = typer.Option(3, "--dimensions", "-d", help="Dimensions per item."),
    batch_size: int = typer.Option(
        10_000, "--batch-size", "-b", help="Batch size for CSV buffering during generation."
    ),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    output_dir: Path | None = typer.Option(
        None, "--output-dir", "-o", help="Directory for the CSV files (default: temp dir)."
    ),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    no_load: bool = typer.Option(False, "--no-load", help="Only generate CSV; skip loading."),
) -> None:
    """
    Generate a synthetic catalog and event table and optionally load them using COPY.
    """
    start = time.perf_counter()
    out_dir = output_dir or Path(tempfile.mkdtemp(prefix="keyset_report_csv_"))
    out_dir.mkdir(parents=True, exist_ok=True)
    catalog_csv = out_dir / "entity_catalog.csv"
    events_csv = out_dir / "entity_event.csv"

    typer.echo(f"Generating {groups * items_per_group:,} catalog items -> {catalog_csv}")
    catalog = _generate_catalog_csv(catalog_csv, groups=groups, items_per_group=items_per_group)
    events = _generate_events_csv(
        events_csv,
        catalog,
        tenants=tenants,
        groups=groups,
        sources_per_item=sources_per_item,
        dimensions=dimensions,
        batch_size=batch_size,
        seed=seed,
    )
    gen_duration = time.perf_counter() - start
    typer.echo(f"Generated {events:,} events -> {events_csv} in {gen_duration:.2f}s")

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    load_start = time.perf_counter()
    typer.echo("Loading CSV into Postgres via COPY...")
    _copy_into_db(_build_dsn(dsn), catalog_csv, events_csv)
    typer.echo(f"Load completed in {time.perf_counter() - load_start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
