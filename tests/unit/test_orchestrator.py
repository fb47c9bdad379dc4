import asyncio
import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from grouplabels.config import AppConfig
from grouplabels.sync.models import SyncResult
from grouplabels.sync.orchestrator import EXIT_FATAL, EXIT_OK, FileLock, Orchestrator


@pytest.fixture
def temp_lock_path():
    """Create a temporary lock file path."""
    with tempfile.NamedTemporaryFile(delete=False) as tf:
        lock_path = tf.name
    # Remove the file so we can test lock creation
    os.unlink(lock_path)
    yield lock_path
    # Cleanup
    if os.path.exists(lock_path):
        os.unlink(lock_path)


@pytest.fixture
def cfg(temp_lock_path) -> AppConfig:
    return AppConfig.model_validate(
        {
            "runtime": {"lock_path": temp_lock_path},
            "google": {"allow_interactive": False},
            "sync": {"managed_prefix": "[auto] ", "dedupe_emails": True, "page_size": 200},
        }
    )


def test_file_lock_creation_and_cleanup(temp_lock_path) -> None:
    """Test that FileLock creates and cleans up lock files properly."""
    lock = FileLock(temp_lock_path)

    assert not Path(temp_lock_path).exists()

    with lock:
        # Lock file should exist and contain current PID
        assert Path(temp_lock_path).exists()
        assert Path(temp_lock_path).read_text().strip() == str(os.getpid())

    assert not Path(temp_lock_path).exists()


def test_file_lock_concurrent_acquisition_fails(temp_lock_path) -> None:
    """Test that concurrent lock acquisition fails properly."""
    lock1 = FileLock(temp_lock_path)
    lock2 = FileLock(temp_lock_path)

    with lock1:
        with pytest.raises(RuntimeError, match="Another instance is running"):
            with lock2:
                pass


def test_file_lock_stale_lock_detection(temp_lock_path) -> None:
    """Test that stale locks (from dead processes) are detected and removed."""
    Path(temp_lock_path).write_text("999999")

    with patch("os.kill", side_effect=OSError("No such process")):
        with FileLock(temp_lock_path):
            assert Path(temp_lock_path).read_text().strip() == str(os.getpid())


def test_file_lock_invalid_pid_format(temp_lock_path) -> None:
    """Test that invalid PID format in lock file is treated as stale."""
    Path(temp_lock_path).write_text("not-a-number")

    with FileLock(temp_lock_path):
        assert Path(temp_lock_path).read_text().strip() == str(os.getpid())


def test_file_lock_permission_error_handling(temp_lock_path) -> None:
    """Test graceful handling of permission errors."""
    Path(temp_lock_path).write_text("12345")

    with patch("os.kill", side_effect=OSError("No such process")):
        with patch("os.open", side_effect=PermissionError("Permission denied")):
            with pytest.raises(PermissionError):
                with FileLock(temp_lock_path):
                    pass


def test_file_lock_cleanup_on_exception(temp_lock_path) -> None:
    """Test that lock is properly cleaned up even when exceptions occur."""
    with pytest.raises(ValueError):
        with FileLock(temp_lock_path):
            assert Path(temp_lock_path).exists()
            raise ValueError("Test exception")

    assert not Path(temp_lock_path).exists()


def test_settings_follow_config(cfg: AppConfig) -> None:
    s = Orchestrator(cfg).settings()

    assert s.managed_prefix == "[auto] "
    assert s.spam_label_id == "SPAM"
    assert s.page_size == 200
    assert s.dedupe_emails is True
    assert s.dry_run is False


def test_run_success_returns_zero_and_releases_lock(cfg: AppConfig, temp_lock_path) -> None:
    expected = SyncResult(groups=2, filters_created=2)
    creds = Mock(valid=True, token="ya29.token")
    run_async = AsyncMock(return_value=expected)

    with patch("grouplabels.sync.orchestrator.get_credentials", return_value=creds), patch.object(
        Orchestrator, "_run_async", new=run_async
    ):
        code, result = Orchestrator(cfg).run()

    assert code == EXIT_OK
    assert result == expected
    run_async.assert_awaited_once_with(creds)
    assert not Path(temp_lock_path).exists()


def test_run_fatal_on_auth_failure(cfg: AppConfig, temp_lock_path) -> None:
    """No usable token with interactive login disabled aborts with exit 3."""
    run_async = AsyncMock()
    with patch(
        "grouplabels.sync.orchestrator.get_credentials",
        side_effect=RuntimeError("No valid Google token found and allow_interactive=False"),
    ), patch.object(Orchestrator, "_run_async", new=run_async):
        code, result = Orchestrator(cfg).run()

    assert code == EXIT_FATAL
    assert result is None
    run_async.assert_not_called()
    assert not Path(temp_lock_path).exists()


def test_credentials_are_loaded_outside_the_event_loop(cfg: AppConfig) -> None:
    """Token refresh and browser consent are blocking, so no loop may be running."""
    seen = {}

    def fake_get_credentials(google_cfg, *, scopes, allow_interactive):
        with pytest.raises(RuntimeError):
            asyncio.get_running_loop()
        seen["allow_interactive"] = allow_interactive
        return Mock(valid=True, token="ya29.token")

    with patch(
        "grouplabels.sync.orchestrator.get_credentials", side_effect=fake_get_credentials
    ), patch.object(Orchestrator, "_run_async", new=AsyncMock(return_value=SyncResult())):
        code, _ = Orchestrator(cfg).run()

    assert code == EXIT_OK
    assert seen == {"allow_interactive": False}


def test_run_fatal_when_lock_held(cfg: AppConfig, temp_lock_path) -> None:
    run_async = AsyncMock()
    with FileLock(temp_lock_path):
        with patch("grouplabels.sync.orchestrator.get_credentials") as gc, patch.object(
            Orchestrator, "_run_async", new=run_async
        ):
            code, result = Orchestrator(cfg).run()

    assert code == EXIT_FATAL
    assert result is None
    gc.assert_not_called()
    run_async.assert_not_called()


def test_build_clients_passes_retry_and_timeout(cfg: AppConfig) -> None:
    cfg = cfg.model_copy(
        update={"sync": cfg.sync.model_copy(update={"max_retries": 2, "request_timeout_sec": 7.5})}
    )
    people, gmail = Orchestrator(cfg)._build_clients(Mock(valid=True, token="ya29.token"))

    assert people.retry.max_retries == 2
    assert gmail.retry.max_retries == 2
    assert people.client.timeout.read == 7.5
    assert str(gmail.client.base_url) == "https://gmail.googleapis.com/gmail/v1/users/me/"
