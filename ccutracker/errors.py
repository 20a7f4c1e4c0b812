"""Failure taxonomy shared by the polling jobs."""

from __future__ import annotations


class SourceUnavailable(RuntimeError):
    """The upstream ranked list could not be fetched or had an unexpected shape."""


class ItemFetchFailed(RuntimeError):
    """A per-game upstream call failed; the caller isolates it to that game."""

    def __init__(self, appid: int, reason: str) -> None:
        super().__init__(f"{appid}: {reason}")
        self.appid = appid
        self.reason = reason


class PersistenceFailed(RuntimeError):
    """A write transaction failed and was rolled back."""


class SideEffectFailed(RuntimeError):
    """Post-commit work could not be dispatched or failed in the background."""
