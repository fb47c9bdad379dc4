from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from grouplabels.cli import _cli_overrides_from_args, app
from grouplabels.sync.models import SyncResult

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "google": {"token_store": str(tmp_path / "token.json")},
                "runtime": {"lock_path": str(tmp_path / "gl.lock")},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_overrides_only_include_given_flags() -> None:
    assert _cli_overrides_from_args(
        dry_run=None, dedupe_emails=None, managed_prefix=None, verbose=False
    ) == {}
    assert _cli_overrides_from_args(
        dry_run=True, dedupe_emails=False, managed_prefix="[auto] ", verbose=True
    ) == {
        "sync": {"dry_run": True, "dedupe_emails": False, "managed_prefix": "[auto] "},
        "logging": {"level": "DEBUG"},
    }


def test_sync_success_is_silent(config_file: Path) -> None:
    with patch("grouplabels.cli.setup_logging") as mock_logging, patch(
        "grouplabels.cli.Orchestrator"
    ) as mock_orch:
        mock_orch.return_value.run.return_value = (0, SyncResult(groups=1, filters_created=1))

        result = runner.invoke(app, ["sync", "--config", str(config_file)])

    assert result.exit_code == 0
    assert result.stdout == ""
    mock_logging.assert_called_once_with(level="WARNING", json=False, redact=True)


def test_sync_verbose_prints_summary(config_file: Path) -> None:
    with patch("grouplabels.cli.setup_logging") as mock_logging, patch(
        "grouplabels.cli.Orchestrator"
    ) as mock_orch:
        mock_orch.return_value.run.return_value = (0, SyncResult(groups=2, filters_created=2))

        result = runner.invoke(app, ["sync", "-c", str(config_file), "-v"])

    assert result.exit_code == 0
    assert "grouplabels sync summary: groups=2" in result.stdout
    assert mock_logging.call_args.kwargs["level"] == "DEBUG"


def test_sync_flags_reach_config(config_file: Path) -> None:
    with patch("grouplabels.cli.setup_logging"), patch("grouplabels.cli.Orchestrator") as mock_orch:
        mock_orch.return_value.run.return_value = (0, SyncResult(dry_run=True))

        result = runner.invoke(
            app,
            ["sync", "-c", str(config_file), "--dry-run", "--dedupe-emails", "--prefix", "[auto] "],
        )

    assert result.exit_code == 0
    cfg = mock_orch.call_args.args[0]
    assert cfg.sync.dry_run is True
    assert cfg.sync.dedupe_emails is True
    assert cfg.sync.managed_prefix == "[auto] "
    # dry runs always report what they would have done
    assert "(dry-run)" in result.stdout


def test_sync_fatal_exit_code(config_file: Path) -> None:
    with patch("grouplabels.cli.setup_logging"), patch("grouplabels.cli.Orchestrator") as mock_orch:
        mock_orch.return_value.run.return_value = (3, None)

        result = runner.invoke(app, ["sync", "-c", str(config_file)])

    assert result.exit_code == 3


def test_sync_invalid_config_exits_fatal(config_file: Path) -> None:
    with patch("grouplabels.cli.Orchestrator") as mock_orch:
        result = runner.invoke(app, ["sync", "-c", str(config_file), "--prefix", "  "])

    assert result.exit_code == 3
    assert "Invalid configuration" in result.output
    mock_orch.assert_not_called()


def test_config_command_prints_effective_config(config_file: Path, monkeypatch) -> None:
    monkeypatch.setenv("GROUPLABELS__sync__dedupe_emails", "true")

    result = runner.invoke(app, ["config", "-c", str(config_file)])

    assert result.exit_code == 0
    shown = json.loads(result.stdout)
    assert shown["sync"]["managed_prefix"] == "⭕ "
    assert shown["sync"]["dedupe_emails"] is True
    assert shown["logging"]["json"] is False
    assert shown["runtime"]["lock_path"].endswith("gl.lock")


def test_config_command_rejects_invalid_file(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("sync:\n  page_size: 0\n", encoding="utf-8")

    result = runner.invoke(app, ["config", "-c", str(path)])

    assert result.exit_code == 3
    assert "Invalid configuration" in result.output
