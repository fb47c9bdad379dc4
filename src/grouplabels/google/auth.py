"""Google OAuth helper utilities.

Responsibilities
- Load OAuth client credentials from file or env (GOOGLE_CREDENTIALS_JSON / GOOGLE_CREDENTIALS_FILE)
- Read/write user token to google_cfg.token_store
- Refresh access tokens as needed (headless thereafter)
- Expose credentials to httpx clients as a bearer-token Auth

Notes
- Initial interactive flow requires a local browser (run on a developer machine once).
  It creates/updates the token_store; later runs refresh headlessly.
- If the scope list changes, delete the token store so consent is requested again.

Security
- Never log raw tokens; the logging module redacts token-like strings.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncGenerator, Generator, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:  # pragma: no cover
    from google.oauth2.credentials import Credentials

from ..config import GoogleConfig

__all__ = [
    "SCOPES",
    "SCOPES_CONTACTS",
    "SCOPES_GMAIL",
    "GoogleBearerAuth",
    "get_credentials",
]

log = logging.getLogger(__name__)

SCOPES_CONTACTS: list[str] = [
    "https://www.googleapis.com/auth/contacts.readonly",
]
# Labels are created; filters are listed, deleted and created
SCOPES_GMAIL: list[str] = [
    "https://www.googleapis.com/auth/gmail.labels",
    "https://www.googleapis.com/auth/gmail.settings.basic",
]
SCOPES: list[str] = SCOPES_GMAIL + SCOPES_CONTACTS


def _read_client_config(google_cfg: GoogleConfig) -> dict[str, Any]:
    """Load OAuth client credentials JSON from env or file.

    Priority:
    - GOOGLE_CREDENTIALS_JSON (inline JSON)
    - GOOGLE_CREDENTIALS_FILE (path)
    - google_cfg.credentials_file
    """
    env_inline = os.getenv("GOOGLE_CREDENTIALS_JSON")
    if env_inline:
        try:
            return json.loads(env_inline)
        except json.JSONDecodeError as exc:
            raise ValueError("Invalid JSON in GOOGLE_CREDENTIALS_JSON") from exc

    env_file = os.getenv("GOOGLE_CREDENTIALS_FILE")
    file_path = env_file or google_cfg.credentials_file
    if not file_path:
        raise ValueError(
            "Google credentials not provided. Set GOOGLE_CREDENTIALS_JSON or GOOGLE_CREDENTIALS_FILE or google.credentials_file"
        )
    p = Path(file_path)
    if not p.exists():
        raise FileNotFoundError(f"Google credentials file not found: {p}")
    with p.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _load_saved_credentials(token_store: str, scopes: Sequence[str]) -> Credentials | None:
    """Return Credentials from token store if available, else None."""
    p = Path(token_store)
    if not p.exists():
        return None

    from google.oauth2.credentials import Credentials

    try:
        return Credentials.from_authorized_user_file(str(p), scopes=list(scopes))
    except (ValueError, OSError) as exc:
        log.warning("token-store-unreadable path=%s err=%s", p, exc)
        return None


def _save_credentials(token_store: str, creds: Credentials) -> None:
    p = Path(token_store)
    if p.parent and not p.parent.exists():
        p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as fh:
        fh.write(creds.to_json())


def _interactive_flow(client_config: dict[str, Any], scopes: Sequence[str]) -> Credentials:
    """Run installed app flow with local server for user consent (interactive)."""
    from google_auth_oauthlib.flow import InstalledAppFlow

    flow = InstalledAppFlow.from_client_config(client_config, scopes=list(scopes))
    # Use a random free port; restrict to localhost
    return flow.run_local_server(
        open_browser=True, host="localhost", port=0, authorization_prompt_message=""
    )


def _refresh_if_needed(creds: Credentials) -> None:
    """Refresh access token if expired and refresh token is present."""
    from google.auth.transport.requests import Request

    if getattr(creds, "expired", False) and getattr(creds, "refresh_token", None):
        creds.refresh(Request())


def get_credentials(
    google_cfg: GoogleConfig,
    scopes: Sequence[str] = SCOPES,
    *,
    allow_interactive: bool = True,
) -> Credentials:
    """Return Google OAuth credentials ready for use with the API clients.

    Behavior:
    - Try token_store; refresh if needed.
    - If not present and allow_interactive, run browser consent and store token.
    - If not present and non-interactive, raise.
    """
    creds = _load_saved_credentials(google_cfg.token_store, scopes)
    if creds:
        _refresh_if_needed(creds)
        if getattr(creds, "valid", False):
            # Persist any refreshed expiry/token
            _save_credentials(google_cfg.token_store, creds)
            return creds
        log.info("stored-token-invalid path=%s", google_cfg.token_store)

    if not allow_interactive:
        raise RuntimeError(
            "No valid Google token found and allow_interactive=False. Run locally once to generate the token store."
        )
    client_config = _read_client_config(google_cfg)
    creds = _interactive_flow(client_config, scopes)
    _save_credentials(google_cfg.token_store, creds)
    log.info("token-stored path=%s", google_cfg.token_store)
    return creds


class GoogleBearerAuth(httpx.Auth):
    """httpx Auth that signs requests with a google-auth Credentials object.

    The token is refreshed through google-auth's blocking requests transport
    when it has expired. Async clients run that refresh in a worker thread.
    """

    def __init__(self, credentials: Credentials) -> None:
        self._creds = credentials

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if not getattr(self._creds, "valid", False):
            _refresh_if_needed(self._creds)
        request.headers["Authorization"] = f"Bearer {self._creds.token}"
        yield request

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        if not getattr(self._creds, "valid", False):
            await asyncio.to_thread(_refresh_if_needed, self._creds)
        request.headers["Authorization"] = f"Bearer {self._creds.token}"
        yield request
