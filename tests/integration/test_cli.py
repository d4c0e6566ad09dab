"""Integration tests for the ``risk-register`` command line."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest
from click.testing import CliRunner

from risk_register.cli import main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def cli(db_url, monkeypatch):
    monkeypatch.setenv("RISK_REGISTER_OBSERVABILITY__LOG_LEVEL", "WARNING")
    runner = CliRunner()

    def _invoke(*args: str):
        return runner.invoke(main, [*args, "--db-url", db_url])

    result = _invoke("init-db")
    assert result.exit_code == 0, result.output
    assert "Database ready (0 risks)" in result.output
    return _invoke


def _create(cli, *extra: str):
    return cli(
        "create",
        "--title", "Data centre flood",
        "--description", "Ground floor server room below flood line",
        "--category", "environmental",
        "--probability", "2",
        "--impact", "5",
        "--org", "1",
        "--owner", "4",
        "--created-by", "4",
        *extra,
    )


def test_create_and_show(cli):
    result = _create(cli, "--tag", "Facilities")
    assert result.exit_code == 0, result.output
    assert '"riskId": "RISK-001"' in result.output
    assert '"riskLevel": "medium"' in result.output

    shown = cli("show", "RISK-001")
    assert shown.exit_code == 0, shown.output
    assert '"title": "Data centre flood"' in shown.output
    assert '"facilities"' in shown.output

    by_id = cli("show", "1")
    assert '"riskId": "RISK-001"' in by_id.output


def test_list_and_stats(cli):
    _create(cli)
    _create(cli, "--risk-id", "RISK-020")

    listed = cli("list", "--level", "medium", "--sort-by", "createdAt", "--order", "asc")
    assert listed.exit_code == 0, listed.output
    assert '"total": 2' in listed.output
    assert listed.output.index("RISK-001") < listed.output.index("RISK-020")

    stats = cli("stats", "--org", "1")
    assert stats.exit_code == 0, stats.output
    assert '"total": 2' in stats.output
    assert '"averageScore": 10.0' in stats.output


def test_set_status(cli):
    _create(cli)
    result = cli("set-status", "1", "monitoring", "--reason", "Sensors installed")
    assert result.exit_code == 0, result.output
    assert '"status": "monitoring"' in result.output

    rejected = cli("set-status", "1", "transferred")
    assert rejected.exit_code != 0
    assert "[INVALID_STATUS_TRANSITION]" in rejected.output


def test_errors_are_reported(cli):
    missing = cli("show", "RISK-404")
    assert missing.exit_code != 0
    assert "[NOT_FOUND]" in missing.output

    invalid = _create(cli, "--risk-id", "bad id")
    assert invalid.exit_code != 0
    assert "[VALIDATION_ERROR]" in invalid.output


def _timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def test_review_follows_review_settings(cli, monkeypatch):
    _create(cli)
    monkeypatch.setenv("RISK_REGISTER_REVIEW__DEFAULT_DAYS", "10")
    result = cli("review", "1", "--by", "4")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    elapsed = _timestamp(payload["reviewDate"]) - _timestamp(payload["lastReviewDate"])
    assert elapsed == timedelta(days=10)


def test_search_and_list_follow_pagination_settings(cli, monkeypatch):
    _create(cli)
    _create(cli)
    monkeypatch.setenv("RISK_REGISTER_PAGINATION__SEARCH_LIMIT", "1")
    monkeypatch.setenv("RISK_REGISTER_PAGINATION__DEFAULT_LIMIT", "1")

    found = cli("search", "FLOOD")
    assert found.exit_code == 0, found.output
    assert len(json.loads(found.stdout)) == 1

    listed = cli("list")
    payload = json.loads(listed.stdout)
    assert payload["total"] == 2
    assert len(payload["items"]) == 1
