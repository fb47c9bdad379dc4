"""Configuration loader for grouplabels.

This module provides:
- Typed config models (pydantic BaseModel)
- Precedence-aware loader: file (YAML) < ENV (GROUPLABELS__*) < CLI overrides
- ENV values passed through as strings, converted by the typed models

ENV format (nested via delimiter):
  GROUPLABELS__google__credentials_file=./secrets/credentials.json
  GROUPLABELS__sync__managed_prefix="⭕ "
  GROUPLABELS__sync__dedupe_emails=true
  GROUPLABELS__logging__level=DEBUG

CLI overrides can pass a nested dict, e.g.:
  {"sync": {"dry_run": True}, "logging": {"level": "DEBUG"}}

Example:
  cfg = load_config("./grouplabels.yaml", cli_overrides={"sync": {"dry_run": True}})
  print(cfg.sync.managed_prefix)
"""

from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_MANAGED_PREFIX = "⭕ "
DEFAULT_SPAM_LABEL_ID = "SPAM"


# ----------------------------
# Pydantic models (typed config)
# ----------------------------


class GoogleConfig(BaseModel):
    credentials_file: str | None = "./secrets/credentials.json"  # or GOOGLE_CREDENTIALS_JSON via ENV
    token_store: str = "./secrets/token.json"
    allow_interactive: bool = True


class SyncConfig(BaseModel):
    # Leading marker on group and label names that are owned by this tool
    managed_prefix: str = DEFAULT_MANAGED_PREFIX
    spam_label_id: str = DEFAULT_SPAM_LABEL_ID
    # People API caps connections pages at 1000
    page_size: int = Field(1000, ge=1, le=1000)
    max_retries: int = Field(5, ge=0, le=10)
    backoff_initial_sec: float = Field(1.0, gt=0, le=60)
    request_timeout_sec: float = Field(30.0, gt=0, le=300)
    dry_run: bool = False
    dedupe_emails: bool = False

    @field_validator("managed_prefix")
    @classmethod
    def _validate_prefix(cls, v: str) -> str:
        # Whitespace-only would match every group name
        if not v.strip():
            raise ValueError("sync.managed_prefix must contain a non-blank marker")
        return v

    @field_validator("spam_label_id")
    @classmethod
    def _validate_spam_label(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("sync.spam_label_id must not be empty")
        return v.strip()


class LoggingConfig(BaseModel):
    # Allow using alias "json" in config/env while avoiding BaseModel.json clash
    model_config = ConfigDict(populate_by_name=True)
    level: str = "WARNING"
    as_json: bool = Field(False, alias="json")
    redact_pii: bool = True

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        lv = (v or "WARNING").upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if lv not in allowed:
            raise ValueError(f"logging.level must be one of {sorted(allowed)}")
        return lv


class RuntimeConfig(BaseModel):
    lock_path: str = "/tmp/grouplabels.lock"


class AppConfig(BaseModel):
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)


__all__ = [
    "DEFAULT_MANAGED_PREFIX",
    "DEFAULT_SPAM_LABEL_ID",
    "AppConfig",
    "GoogleConfig",
    "LoggingConfig",
    "RuntimeConfig",
    "SyncConfig",
    "load_config",
    "merge_dicts",
    "read_env_config",
]


# ----------------------------
# Utilities
# ----------------------------


def merge_dicts(
    base: MutableMapping[str, Any], override: Mapping[str, Any]
) -> MutableMapping[str, Any]:
    """Deep-merge override into base (mutates base). Lists/atoms are replaced."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, Mapping):
            merge_dicts(base[k], v)
        else:
            base[k] = v
    return base


def read_yaml_config(path: Path | None) -> dict[str, Any]:
    if not path:
        return {}
    p = Path(path).expanduser().resolve()
    if not p.exists():
        return {}
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping in {p}")
    return data


def read_env_config(
    prefix: str = "GROUPLABELS__", nested_delim: str = "__"
) -> dict[str, Any]:
    """Build nested dict from environment variables.

    Keys must start with `prefix` (default 'GROUPLABELS__').
    Nested keys split by `nested_delim`.

    Example:
      GROUPLABELS__sync__page_size=500
      GROUPLABELS__logging__json=true
    """
    if not prefix.endswith(nested_delim):
        raise ValueError(
            "prefix must end with the nested_delim (default 'GROUPLABELS__' and '__')."
        )

    result: dict[str, Any] = {}
    plen = len(prefix)
    for key, raw in os.environ.items():
        if not key.startswith(prefix):
            continue
        path_parts = key[plen:].split(nested_delim)
        cursor = result
        for part in path_parts[:-1]:
            cursor = cursor.setdefault(part, {})
        # Values stay strings; the pydantic models convert them per field type
        cursor[path_parts[-1]] = raw
    return result


# ----------------------------
# Loader (precedence: file < env < cli_overrides)
# ----------------------------


def load_config(
    file_path: str | Path | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
    env_prefix: str = "GROUPLABELS__",
    env_nested_delim: str = "__",
) -> AppConfig:
    """Load AppConfig with precedence: file < env < CLI overrides.

    Args:
        file_path: YAML path or None
        cli_overrides: nested mapping of overrides (e.g., from CLI args)
        env_prefix: environment variable prefix (must end with env_nested_delim)
        env_nested_delim: nested delimiter for env vars

    Returns:
        AppConfig instance (validated)
    """
    merged: dict[str, Any] = {}

    # 1) file
    merge_dicts(merged, read_yaml_config(Path(file_path) if file_path else None))

    # 2) env
    merge_dicts(merged, read_env_config(prefix=env_prefix, nested_delim=env_nested_delim))

    # 3) CLI overrides
    if cli_overrides:
        if not isinstance(cli_overrides, Mapping):
            raise TypeError("cli_overrides must be a mapping (nested dict-like).")
        merge_dicts(merged, cli_overrides)

    try:
        return AppConfig.model_validate(merged)
    except ValidationError as ve:
        raise ValueError(f"Invalid configuration: {ve}") from ve
