"""Post-commit work handed off to background workers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from ccutracker.errors import SideEffectFailed

logger = logging.getLogger(__name__)


class SideEffects(Protocol):
    def after_commit(self, new_appids: Sequence[int]) -> None: ...


class CelerySideEffects:
    """Queue record detection and per-game backfill as separate Celery tasks.

    The tasks report their own failures in the worker; nothing here waits
    for them.
    """

    def after_commit(self, new_appids: Sequence[int]) -> None:
        from ccutracker.jobs.celery_app import backfill_game_task, detect_records_task

        errors: list[str] = []
        try:
            detect_records_task.delay()
        except Exception as exc:
            errors.append(f"detect_records: {exc}")
        for appid in new_appids:
            try:
                backfill_game_task.delay(appid)
            except Exception as exc:
                errors.append(f"backfill {appid}: {exc}")
        if errors:
            raise SideEffectFailed("; ".join(errors))


def dispatch_after_commit(side_effects: SideEffects | None, new_appids: Sequence[int]) -> bool:
    """Run ``side_effects``; failures are logged and never reach the caller."""
    if side_effects is None:
        return True
    try:
        side_effects.after_commit(new_appids)
    except Exception as exc:
        logger.error("Post-commit side effects failed: %s", exc)
        return False
    return True
