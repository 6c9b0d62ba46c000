from __future__ import annotations

import csv
import json

import pytest
from typer.testing import CliRunner

from keyset_report import main as cli
from keyset_report.driver import ReportService

runner = CliRunner()
SCOPE = ["--tenant-id", "1001", "--group-id", "G001"]


@pytest.fixture
def use_store(monkeypatch):
    """Route every CLI command through a ReportService over the given store."""

    def _install(store):
        monkeypatch.setattr(cli, "_setup", lambda: None)
        monkeypatch.setattr(cli, "_service", lambda dsn: ReportService(store))
        return store

    return _install


def test_report_json_prints_all_rows(use_store, store) -> None:
    use_store(store)

    result = runner.invoke(cli.app, ["report", *SCOPE, "--batch-size", "4", "--json"])

    assert result.exit_code == 0, result.output
    rows = json.loads(result.stdout)
    assert len(rows) == 30
    assert rows[0]["item_id"] == "I-001"
    assert rows[-1]["item_id"] == "I-010"
    assert store.cursors == ["", "I-004", "I-008"]


def test_stream_writes_csv_file(use_store, store, tmp_path) -> None:
    use_store(store)
    target = tmp_path / "out" / "report.csv"

    result = runner.invoke(cli.app, ["stream", *SCOPE, "-b", "4", "-o", str(target)])

    assert result.exit_code == 0, result.output
    with target.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 30
    assert list(rows[0]) == cli.CSV_FIELDS
    assert "Streamed 30 records." in result.output


def test_batch_prints_one_page_and_next_cursor(use_store, store) -> None:
    use_store(store)

    result = runner.invoke(cli.app, ["batch", *SCOPE, "--last-seen-id", "I-004", "-l", "4"])

    assert result.exit_code == 0, result.output
    assert '"item_id": "I-005"' in result.output
    assert '"item_id": "I-009"' not in result.output
    assert "next cursor: 'I-008'" in result.output
    assert len(store.fetch_calls) == 1


def test_estimate_prints_batch_count(use_store, store) -> None:
    use_store(store)

    result = runner.invoke(cli.app, ["estimate", "--group-id", "G001", "--batch-size", "4"])

    assert result.exit_code == 0, result.output
    assert result.output.strip() == "3"


def test_invalid_batch_size_exits_with_usage_code(use_store, store) -> None:
    use_store(store)

    result = runner.invoke(cli.app, ["report", *SCOPE, "--batch-size", "0"])

    assert result.exit_code == 2
    assert store.fetch_calls == []


def test_data_access_failure_exits_with_one(use_store, make_store) -> None:
    use_store(make_store(fail_on_fetch=1))

    result = runner.invoke(cli.app, ["report", *SCOPE, "--batch-size", "4", "--json"])

    assert result.exit_code == 1
    assert "store unreachable" in result.output
