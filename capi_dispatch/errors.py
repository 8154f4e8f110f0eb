"""Run-level error taxonomy.

Every failure that aborts a dispatch run derives from ``DispatchError`` so the
trigger boundary (HTTP route or CLI) can report it as a single message.
Ineligible rows are not errors; they are filtered silently.
"""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for failures that abort a dispatch run."""


class ConfigError(DispatchError):
    """A required setting or credential could not be resolved at startup."""


class UpstreamFetchError(DispatchError):
    """The analytics source was unreachable or returned a malformed response."""


class LedgerError(DispatchError):
    """The dedup ledger store was unreachable during a check or commit."""


class DeliveryError(DispatchError):
    """The attribution endpoint rejected the batch or stayed unreachable after retries."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
