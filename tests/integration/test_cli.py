from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from erp_rbac.cli import app
from erp_rbac.core.rbac.registry import PERMISSIONS
from erp_rbac.settings import reload_settings

runner = CliRunner()


@pytest.fixture()
def database_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "db" / "rbac.sqlite"
    monkeypatch.setenv("ERP_RBAC_DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("ERP_RBAC_DEFAULT_TIMEZONE", "UTC")
    monkeypatch.setenv("ERP_RBAC_LOGGING_LEVEL", "WARNING")
    reload_settings()
    return db_path


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("init", "stats", "hierarchy", "cleanup-expired", "assign", "remove", "check"):
        assert command in result.stdout


def test_init_is_idempotent(database_file: Path) -> None:
    first = runner.invoke(app, ["init"])
    assert first.exit_code == 0, first.output
    assert f"Seeded {len(PERMISSIONS)} permissions" in first.output
    assert database_file.exists()

    second = runner.invoke(app, ["init"])
    assert second.exit_code == 0
    assert "Seeded 0 permissions" in second.output


def test_assign_check_and_remove(database_file: Path) -> None:
    assert runner.invoke(app, ["init"]).exit_code == 0

    assigned = runner.invoke(app, ["assign", "u-1", "beneficiary", "--primary"])
    assert assigned.exit_code == 0, assigned.output
    assert "Assigned beneficiary to u-1" in assigned.output

    duplicate = runner.invoke(app, ["assign", "u-1", "beneficiary"])
    assert duplicate.exit_code == 1
    assert "already has this role" in duplicate.output

    allowed = runner.invoke(app, ["check", "u-1", "applications.read.own", "--owner", "u-1"])
    assert allowed.exit_code == 0, allowed.output
    decision = json.loads(allowed.stdout)
    assert decision["allowed"] is True
    assert decision["granted_scope"] == "own"

    denied = runner.invoke(app, ["check", "u-1", "system.debug"])
    assert denied.exit_code == 1
    assert '"Permission not granted"' in denied.output

    removed = runner.invoke(app, ["remove", "u-1", "beneficiary", "--reason", "Closed"])
    assert removed.exit_code == 0
    assert runner.invoke(app, ["remove", "u-1", "beneficiary"]).exit_code == 1


def test_stats_and_hierarchy(database_file: Path) -> None:
    stats = runner.invoke(app, ["stats"])
    assert stats.exit_code == 0, stats.output
    payload = json.loads(stats.stdout)
    assert payload["roles_system"] == 8
    assert payload["assignments_total"] == 0

    tree = runner.invoke(app, ["hierarchy"])
    assert tree.exit_code == 0
    lines = tree.stdout.splitlines()
    assert "unit_admin (level 6)" in lines
    assert "  area_admin (level 7)" in lines
    assert "      state_admin (level 9)" in lines


def test_cleanup_expired_command(database_file: Path) -> None:
    result = runner.invoke(app, ["cleanup-expired"])

    assert result.exit_code == 0, result.output
    assert "Deactivated 0 expired assignment(s)." in result.output
