"""Periodic jobs: the settlement sweep and claim expiry."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def build_scheduler(
    settle: Callable[[], Awaitable[object]],
    expire: Callable[[], Awaitable[object]],
    *,
    sweep_interval_seconds: int,
    expiry_interval_seconds: int,
) -> AsyncIOScheduler:
    """Interval jobs that never overlap themselves and never pile up after a stall."""
    scheduler = AsyncIOScheduler(
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 30},
        timezone="UTC",
    )
    scheduler.add_job(
        settle,
        "interval",
        seconds=sweep_interval_seconds,
        id="relay_settlement_sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        expire,
        "interval",
        seconds=expiry_interval_seconds,
        id="relay_claim_expiry",
        replace_existing=True,
    )
    logger.info(
        "Scheduled settlement every %ss and claim expiry every %ss",
        sweep_interval_seconds,
        expiry_interval_seconds,
    )
    return scheduler
