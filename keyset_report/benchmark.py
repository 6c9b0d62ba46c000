"""
Pagination benchmark: keyset vs offset paging over one tenant/group.

Drains every page of a group through each paging mode, profiles the run, and
records per-page latency so the flat keyset curve can be compared with the
offset curve that grows with depth.

Usage (example from CLI):
    from keyset_report.benchmark import run_benchmark

    results = run_benchmark(tenant_id=1001, group_id="G001", batch_size=500, runs=3)

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import statistics
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypedDict

from keyset_report.config import get_settings
from keyset_report.driver import ReportService, resolve_batch_size, validate_scope
from keyset_report.errors import ConfigurationError, KeysetReportError
from keyset_report.fetchers.abstract import Page, TenantId
from keyset_report.fetchers.keyset import KeysetPageFetcher
from keyset_report.fetchers.offset import OffsetPageFetcher, iter_offset_pages
from keyset_report.utils.logging import get_logger
from keyset_report.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


class ModeResult(TypedDict, total=False):
    """
    Metrics for one drain of a group through one paging mode.
    """

    rows: int
    pages: int
    fetches: int
    duration_seconds: float
    first_page_ms: Optional[float]
    last_page_ms: Optional[float]
    max_page_ms: Optional[float]
    peak_rss_bytes: Optional[int]
    cpu_percent: Optional[float]
    error: Optional[str]


class _TimedFetcher:
    """Records the latency of every fetch made through it."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self.latencies_ms: List[float] = []

    def _timed(self, call: Callable[..., Page], *args: Any) -> Page:
        start = time.perf_counter()
        try:
            return call(*args)
        finally:
            self.latencies_ms.append((time.perf_counter() - start) * 1000.0)

    def fetch(self, tenant_id: TenantId, group_id: str, cursor: str, limit: int) -> Page:
        return self._timed(self._inner.fetch, tenant_id, group_id, cursor, limit)

    def fetch_offset(self, tenant_id: TenantId, group_id: str, offset: int, limit: int) -> Page:
        return self._timed(self._inner.fetch_offset, tenant_id, group_id, offset, limit)


def _drain_keyset(fetcher: Any, tenant_id: TenantId, group_id: str, batch_size: int) -> tuple:
    rows = pages = 0
    for _, page in ReportService(fetcher).iter_pages(tenant_id, group_id, batch_size):
        pages += 1
        rows += len(page)
    return rows, pages


def _drain_offset(fetcher: Any, tenant_id: TenantId, group_id: str, batch_size: int) -> tuple:
    rows = pages = 0
    for _, page in iter_offset_pages(fetcher, tenant_id, group_id, batch_size):
        pages += 1
        rows += len(page)
    return rows, pages


_DRAINERS: Dict[str, Callable[[Any, TenantId, str, int], tuple]] = {
    "keyset": _drain_keyset,
    "offset": _drain_offset,
}


def _default_fetcher_factories() -> Dict[str, Callable[[], Any]]:
    """Registry of fetchers per paging mode."""
    return {
        "keyset": lambda: KeysetPageFetcher(),
        "offset": lambda: OffsetPageFetcher(),
    }


def available_modes() -> List[str]:
    """List available paging mode names."""
    return sorted(_DRAINERS.keys())


def _round_float(value: Optional[float], decimals: int = 2) -> Optional[float]:
    """Round a float to specified decimal places for human-readable output."""
    return round(value, decimals) if value is not None else None


def _summary(values: List[float], decimals: int = 2) -> Dict[str, float]:
    return {
        "median": round(statistics.median(values), decimals),
        "mean": round(statistics.mean(values), decimals),
        "stddev": round(statistics.stdev(values), decimals) if len(values) > 1 else 0.0,
        "min": round(min(values), decimals),
        "max": round(max(values), decimals),
    }


def _aggregate_runs(run_results: List[dict]) -> dict:
    """
    Aggregate multiple runs of one mode into median/mean/stddev summaries.

    Failed runs are excluded from the statistics and counted under `failed_runs`.
    """
    ok = [r for r in run_results if not r.get("error")]
    aggregated: Dict[str, Any] = {"failed_runs": len(run_results) - len(ok)}
    if not ok:
        aggregated["error"] = run_results[-1].get("error")
        return aggregated

    aggregated["rows"] = ok[0]["rows"]
    aggregated["pages"] = ok[0]["pages"]
    aggregated["duration_seconds"] = _summary([r["duration_seconds"] for r in ok])
    max_pages = [r["max_page_ms"] for r in ok if r.get("max_page_ms") is not None]
    if max_pages:
        aggregated["max_page_ms"] = _summary(max_pages)
    peak_rss_values = [r["peak_rss_bytes"] for r in ok if r.get("peak_rss_bytes")]
    if peak_rss_values:
        aggregated["peak_rss_bytes"] = {
            "median": int(statistics.median(peak_rss_values)),
            "max": max(peak_rss_values),
        }
    return aggregated


def _merge_result(result: ModeResult, stats: ProfileStats, latencies_ms: List[float]) -> dict:
    """Merge a mode result with profiler stats and page latencies."""
    merged: Dict[str, Any] = dict(result)
    merged.setdefault("rows", 0)
    merged.setdefault("pages", 0)
    merged["fetches"] = len(latencies_ms)
    merged["duration_seconds"] = _round_float(stats.duration_seconds)
    merged["first_page_ms"] = _round_float(latencies_ms[0]) if latencies_ms else None
    merged["last_page_ms"] = _round_float(latencies_ms[-1]) if latencies_ms else None
    merged["max_page_ms"] = _round_float(max(latencies_ms)) if latencies_ms else None
    merged["peak_rss_bytes"] = stats.peak_rss_bytes
    merged["cpu_percent"] = _round_float(stats.cpu_percent, 1)
    return merged


def _profiled_drain(
    mode: str, fetcher: Any, tenant_id: TenantId, group_id: str, batch_size: int
) -> dict:
    timed = _TimedFetcher(fetcher)
    log.info(f"[MODE START] {mode}", extra={"mode": mode})
    with profile_block(mode) as stats:
        try:
            rows, pages = _DRAINERS[mode](timed, tenant_id, group_id, batch_size)
            result = ModeResult(rows=rows, pages=pages)
            log.info(f"[MODE SUCCESS] {mode}", extra={"mode": mode, "rows": rows, "pages": pages})
        except KeysetReportError as exc:
            log.exception(f"[MODE FAILED] {mode}", extra={"mode": mode})
            result = ModeResult(error=str(exc), rows=0, pages=0)
    return _merge_result(result, stats, timed.latencies_ms)


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def run_benchmark(
    tenant_id: TenantId,
    group_id: str,
    batch_size: Optional[int] = None,
    modes: Optional[Iterable[str]] = None,
    runs: Optional[int] = None,
    results_dir: Path | str = "results",
    persist: bool = True,
    fetcher_factories: Optional[Dict[str, Callable[[], Any]]] = None,
) -> List[dict]:
    """
    Drain a group through each paging mode and optionally persist the results.

    Parameters
    ----------
    tenant_id, group_id
        Scope of the report being paged.
    batch_size : int | None
        Items per page. Defaults to settings.report_batch_size.
    modes : iterable[str] | None
        Paging modes to run. If None or ["all"], runs every mode.
    runs : int | None
        Measurement runs per mode. Defaults to settings.benchmark_runs.
    results_dir : Path | str
        Directory to store JSON artifacts.
    persist : bool
        Whether to write results to disk.
    fetcher_factories : dict | None
        Override the fetcher built for each mode (tests, DSN overrides).

    Returns
    -------
    List[dict]
        One result per mode. With runs > 1 the entry holds aggregated
        statistics and the individual runs.
    """
    validate_scope(tenant_id, group_id)
    size = resolve_batch_size(batch_size)
    run_count = runs or get_settings().benchmark_runs
    factories = fetcher_factories or _default_fetcher_factories()

    names = list(modes) if modes is not None else ["all"]
    if names == ["all"]:
        names = available_modes()
    unknown = [name for name in names if name not in _DRAINERS]
    if unknown:
        raise ConfigurationError(f"Unknown mode(s) {unknown}. Available: {', '.join(available_modes())}")

    results: List[dict] = []
    for name in names:
        run_results: List[dict] = []
        for run_num in range(1, run_count + 1):
            log.info(
                f"[RUN {run_num}/{run_count}] {name}",
                extra={"mode": name, "run": run_num, "batch_size": size},
            )
            result = _profiled_drain(name, factories[name](), tenant_id, group_id, size)
            result.update({"mode": name, "batch_size": size, "run": run_num})
            run_results.append(result)

        if run_count > 1:
            aggregated = _aggregate_runs(run_results)
            aggregated.update(
                {"mode": name, "batch_size": size, "runs": run_count, "individual_runs": run_results}
            )
            results.append(aggregated)
        else:
            results.extend(run_results)

    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tenant_id": tenant_id,
        "group_id": group_id,
        "batch_size": size,
        "modes": names,
        "results": results,
    }
    if persist:
        _persist_results(payload, Path(results_dir))

    return results


__all__ = [
    "ModeResult",
    "available_modes",
    "run_benchmark",
]
