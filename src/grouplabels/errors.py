"""Error taxonomy shared by the API clients and the sync engine.

- TransportError: a remote call failed (network, auth, rate limit, server error).
- NotFoundError: the remote resource does not exist (HTTP 404).

Skips (malformed emails, empty groups) are not errors; they are counted in the
run summary instead.
"""

from __future__ import annotations

__all__ = ["GroupLabelsError", "NotFoundError", "TransportError"]


class GroupLabelsError(RuntimeError):
    pass


class TransportError(GroupLabelsError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)
