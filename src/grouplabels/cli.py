"""CLI entrypoint for grouplabels.

Commands
- sync:    label mail from contact-group members (create labels, replace filters)
- config:  print the effective configuration

Notes
- Configuration precedence: CLI > ENV (GROUPLABELS__) > YAML file, see config loader.
- Default output is silent; --verbose logs every phase and intermediate collection.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer

from .config import AppConfig, load_config
from .logging import setup_logging
from .sync.orchestrator import EXIT_FATAL, Orchestrator

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Keep Gmail labels and filters in step with Google Contacts groups.",
)


def _cli_overrides_from_args(
    *,
    dry_run: bool | None,
    dedupe_emails: bool | None,
    managed_prefix: str | None,
    verbose: bool,
) -> dict[str, Any]:
    overrides: dict[str, Any] = {}

    sync_over: dict[str, Any] = {}
    if dry_run is not None:
        sync_over["dry_run"] = dry_run
    if dedupe_emails is not None:
        sync_over["dedupe_emails"] = dedupe_emails
    if managed_prefix is not None:
        sync_over["managed_prefix"] = managed_prefix
    if sync_over:
        overrides["sync"] = sync_over

    if verbose:
        overrides.setdefault("logging", {})["level"] = "DEBUG"

    return overrides


@app.command(help="Create missing labels and replace managed filters from contact groups.")
def sync(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        exists=False,
        readable=True,
        help="Path to YAML config file.",
    ),
    dry_run: bool | None = typer.Option(
        None,
        "--dry-run/--no-dry-run",
        help="Read both systems and log intended changes without writing.",
        show_default=False,
    ),
    dedupe_emails: bool | None = typer.Option(
        None,
        "--dedupe-emails/--no-dedupe-emails",
        help="Drop repeated member addresses within a group's filter.",
        show_default=False,
    ),
    managed_prefix: str | None = typer.Option(
        None,
        "--prefix",
        help="Leading marker of managed group/label names (default '⭕ ').",
        show_default=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Set log level to DEBUG (overrides config.logging.level).",
    ),
) -> None:
    """Sync command."""
    overrides = _cli_overrides_from_args(
        dry_run=dry_run,
        dedupe_emails=dedupe_emails,
        managed_prefix=managed_prefix,
        verbose=verbose,
    )
    try:
        cfg: AppConfig = load_config(
            file_path=str(config) if config else None, cli_overrides=overrides
        )
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_FATAL) from exc

    setup_logging(
        level=cfg.logging.level, json=cfg.logging.as_json, redact=cfg.logging.redact_pii
    )

    exit_code, result = Orchestrator(cfg).run()
    if result is not None and (verbose or result.dry_run):
        typer.echo(f"grouplabels sync summary: {result.summary()}")
    raise typer.Exit(code=exit_code)


@app.command("config", help="Show the effective configuration.")
def show_config(
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to YAML config file.", show_default=False
    ),
) -> None:
    try:
        cfg = load_config(file_path=str(config_path) if config_path else None)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_FATAL) from exc
    typer.echo(cfg.model_dump_json(indent=2, by_alias=True))


if __name__ == "__main__":  # pragma: no cover
    app()
