"""Structured logging with optional JSON output and PII redaction.

Exports:
- setup_logging(level: str = "WARNING", json: bool = False, redact: bool = True) -> None
- mask_pii(text: str) -> str

PII redaction:
- Email addresses: local-part masked except first/last char: a***z@example.com
- Basic tokens (access/refresh-like) when logged as text are partially masked

Notes:
- Group member addresses are the main PII this tool handles. Verbose runs dump
  whole email collections, so redaction stays on unless explicitly disabled.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar

__all__ = ["JsonFormatter", "RedactingFilter", "mask_pii", "setup_logging"]


_EMAIL_RE = re.compile(r"(?P<user>[A-Za-z0-9._%+-]{1,64})@(?P<host>[A-Za-z0-9.-]+\.[A-Za-z]{2,})")
_TOKEN_RE = re.compile(
    r"(?i)(?:(?P<prefix>access|refresh|id|auth|bearer)(?P<join>[_\- ]?)|)(?P<key>token)(?P<sep>\s*[:=]?\s*)(?P<val>[A-Za-z0-9\-_\.]{10,})"
)


def _mask_email(match: re.Match[str]) -> str:
    user = match.group("user")
    host = match.group("host")
    if len(user) <= 2:
        masked_user = "*"
    else:
        masked_user = f"{user[0]}***{user[-1]}"
    return f"{masked_user}@{host}"


def _mask_token(match: re.Match[str]) -> str:
    key_txt = match.group("key")
    val = match.group("val")
    prefix_txt = match.group("prefix") or ""
    join_txt = match.group("join") or ""

    if len(val) <= 8:
        masked = "********"
    else:
        masked = f"{val[:4]}********{val[-4:]}"

    full_key = f"{prefix_txt}{join_txt}{key_txt}" if prefix_txt else key_txt
    # separator normalized to ': '
    return f"{full_key}: {masked}"


def mask_pii(text: str) -> str:
    """Mask PII in freeform text: emails and tokens."""
    if not text:
        return text
    t = _EMAIL_RE.sub(_mask_email, text)
    return _TOKEN_RE.sub(_mask_token, t)


class RedactingFilter(logging.Filter):
    """A logging filter that redacts PII in record messages, args and selected extras."""

    EXTRA_KEYS_TO_MASK: ClassVar[set[str]] = {
        "email",
        "emails",
        "access_token",
        "refresh_token",
    }

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        # Render args first: emails usually arrive as %s arguments, not in msg
        if record.args:
            try:
                record.msg = record.getMessage()
                record.args = None
            except (TypeError, ValueError):
                pass
        if isinstance(record.msg, str):
            record.msg = mask_pii(record.msg)
            record._pii_redacted = True

        for k in self.EXTRA_KEYS_TO_MASK:
            val = record.__dict__.get(k)
            if isinstance(val, str):
                if k.endswith("_token"):
                    record.__dict__[k] = f"{val[:4]}********" if len(val) >= 10 else "********"
                else:
                    record.__dict__[k] = mask_pii(val)
        return True


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter.

    Fields:
    - ts (ISO8601), level, name, msg, and known extras if present.
    """

    def __init__(self, *, redact: bool = True) -> None:
        super().__init__()
        self.redact = redact

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        msg = record.getMessage()
        if self.redact and not getattr(record, "_pii_redacted", False):
            msg = mask_pii(msg)
        base: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }

        for attr in ("funcName", "lineno", "module"):
            base[attr] = getattr(record, attr, None)

        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)

        # Inject any custom extras that are not default LogRecord attributes
        default_attrs = set(vars(logging.LogRecord("", 0, "", 0, "", (), None)))
        for k, v in record.__dict__.items():
            if k in default_attrs or k in {"msg", "args", "message", "_pii_redacted"}:
                continue
            if isinstance(v, str):
                base[k] = mask_pii(v) if self.redact else v
            elif isinstance(v, int | float | bool) or v is None:
                base[k] = v
            elif isinstance(v, Mapping):
                base[k] = {
                    kk: (mask_pii(vv) if self.redact and isinstance(vv, str) else vv)
                    for kk, vv in list(v.items())[:20]
                }
            else:
                # Avoid large dumps
                base[k] = f"[{type(v).__name__}]"

        return json.dumps(base, ensure_ascii=False, default=str)


def setup_logging(level: str = "WARNING", json: bool = False, redact: bool = True) -> None:
    """Configure root logger for CLI execution.

    - Level from config or CLI flag (DEBUG/INFO/WARNING/ERROR)
    - JSON or console formatting
    - PII redaction filter applied globally unless disabled
    """
    # Environment override to force JSON (useful in containers)
    if os.getenv("GROUPLABELS_FORCE_JSON_LOGS", "").lower() in {"1", "true", "yes"}:
        json = True

    # Reset handlers in case of repeated setup in tests
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    handler = logging.StreamHandler(stream=sys.stdout)
    if redact:
        handler.addFilter(RedactingFilter())

    if json:
        fmt: logging.Formatter = JsonFormatter(redact=redact)
    else:
        fmt = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    handler.setFormatter(fmt)

    root.addHandler(handler)

    # Reduce noise from third-party libs; httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
