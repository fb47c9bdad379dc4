"""Top-level sync orchestrator.

Responsibilities
- run_sync(): the engine entry point; sequences the three phases
    1. extract managed groups and their member emails
    2. reconcile labels (create missing)
    3. reconcile filters (delete all managed, then recreate)
  Each phase starts only after the previous one has completed.
- Orchestrator: load credentials, build the API clients, enforce a single-run
  lock using a filesystem lock file, and map the outcome to an exit code

Exit codes
- 0: success
- 3: fatal (could not start, or a remote call failed mid-run)

Notes
- No rollback is attempted after a failure. Every phase is safe to repeat, so
  re-running is the recovery path.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING

from ..config import DEFAULT_MANAGED_PREFIX, DEFAULT_SPAM_LABEL_ID, AppConfig
from ..google.auth import SCOPES, get_credentials
from ..google.contacts import PeopleClient
from ..google.gmail import GmailClient
from ..utils.http import RetryConfig
from .filters import reconcile_filters
from .groups import extract_groups
from .labels import reconcile_labels
from .models import DirectoryService, MailService, SyncResult

if TYPE_CHECKING:  # pragma: no cover
    from google.oauth2.credentials import Credentials

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 3


@dataclass(frozen=True)
class SyncSettings:
    managed_prefix: str = DEFAULT_MANAGED_PREFIX
    spam_label_id: str = DEFAULT_SPAM_LABEL_ID
    page_size: int = 1000
    dry_run: bool = False
    dedupe_emails: bool = False


def _phase(title: str) -> None:
    log.info("---- %s ----", title)


async def run_sync(
    directory: DirectoryService,
    mail: MailService,
    settings: SyncSettings | None = None,
) -> SyncResult:
    """Converge mail labels and filters onto the managed contact groups."""
    s = settings or SyncSettings()

    _phase("Get all managed contact groups and their members")
    groups, invalid = await extract_groups(
        directory, s.managed_prefix, page_size=s.page_size, dedupe=s.dedupe_emails
    )
    log.debug("groups %s", {g.name: list(g.emails) for g in groups.groups})

    _phase("Create labels that do not exist")
    labels, created_labels = await reconcile_labels(
        mail, groups, await mail.list_labels(), s.managed_prefix, dry_run=s.dry_run
    )
    log.debug("labels %s", dict(labels.id_by_name))

    _phase("Replace managed filters")
    deleted, created, empty = await reconcile_filters(
        mail, groups, labels, spam_label_id=s.spam_label_id, dry_run=s.dry_run
    )

    result = SyncResult(
        groups=len(groups),
        labels_created=len(created_labels),
        filters_deleted=deleted,
        filters_created=created,
        empty_groups_skipped=empty,
        invalid_emails_skipped=invalid,
        dry_run=s.dry_run,
    )
    log.info("sync-done %s", result.summary())
    return result


class FileLock:
    """Simple non-blocking PID file lock using O_CREAT|O_EXCL.

    Lock is removed on explicit release or process exit (best-effort).
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._fd: int | None = None

    def _create(self) -> None:
        self._fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        os.write(self._fd, str(os.getpid()).encode("utf-8"))
        os.fsync(self._fd)

    def acquire(self) -> None:
        try:
            self._create()
        except OSError as e:
            if e.errno != errno.EEXIST:
                raise
            if self._is_stale_lock():
                log.warning("Removing stale lock file at %s", self.path)
                try:
                    os.unlink(self.path)
                    self._create()
                    return
                except OSError:
                    # Another process might have created the lock in the meantime
                    pass
            raise RuntimeError(
                f"Another instance is running (lock exists at {self.path})"
            ) from e

    def _is_stale_lock(self) -> bool:
        """Check if the lock file contains a PID of a process that no longer exists."""
        try:
            with open(self.path, encoding="utf-8") as f:
                pid_str = f.read().strip()
        except (FileNotFoundError, PermissionError):
            return True
        if not pid_str.isdigit():
            return True
        try:
            os.kill(int(pid_str), 0)  # signal 0 only checks existence
        except OSError:
            return True
        return False

    def release(self) -> None:
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class Orchestrator:
    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def settings(self) -> SyncSettings:
        sc = self.cfg.sync
        return SyncSettings(
            managed_prefix=sc.managed_prefix,
            spam_label_id=sc.spam_label_id,
            page_size=sc.page_size,
            dry_run=sc.dry_run,
            dedupe_emails=sc.dedupe_emails,
        )

    def _credentials(self) -> Credentials:
        # Token refresh and browser consent block; call before the event loop starts
        return get_credentials(
            self.cfg.google, scopes=SCOPES, allow_interactive=self.cfg.google.allow_interactive
        )

    def _build_clients(self, creds: Credentials) -> tuple[PeopleClient, GmailClient]:
        retry_cfg = RetryConfig(
            max_retries=self.cfg.sync.max_retries,
            backoff_initial_sec=self.cfg.sync.backoff_initial_sec,
        )
        timeout = self.cfg.sync.request_timeout_sec
        people = PeopleClient(creds, retry=retry_cfg, timeout=timeout)
        gmail = GmailClient(creds, retry=retry_cfg, timeout=timeout)
        return people, gmail

    async def _run_async(self, creds: Credentials) -> SyncResult:
        people, gmail = self._build_clients(creds)
        async with people, gmail:
            return await run_sync(people, gmail, self.settings())

    def run(self) -> tuple[int, SyncResult | None]:
        """Run one sync pass; returns exit code and result (None when it did not finish)."""
        lock_path = self.cfg.runtime.lock_path
        log.info("acquiring-lock %s", lock_path)
        lock = FileLock(lock_path)
        try:
            lock.acquire()
        except (RuntimeError, OSError) as e:
            log.error("lock-failed %s", e)
            return EXIT_FATAL, None

        try:
            creds = self._credentials()
            result = asyncio.run(self._run_async(creds))
        except Exception:
            log.exception("sync-fatal")
            return EXIT_FATAL, None
        finally:
            lock.release()

        return EXIT_OK, result
