"""Cron evaluation and the resident scheduler (cron mode)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import redis
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core import db
from core.cache import RedisCache, create_cache
from core.config import settings
from core.models import Channel
from shorts.credentials import CredentialSource, create_credential_source
from shorts.pipeline import PipelineOrchestrator
from shorts.retry import retry_pending_uploads
from shorts.stages import StageAdapters, default_stages

logger = logging.getLogger(__name__)


def last_fire_time(schedule: str | None, now: datetime, window_minutes: int) -> datetime | None:
    """The cron fire time inside ``(now - window, now]``, if there is one."""
    if not schedule:
        return None
    try:
        trigger = CronTrigger.from_crontab(schedule, timezone=UTC)
    except ValueError as e:
        logger.warning("Invalid cron expression %r: %s", schedule, e)
        return None

    window_start = now - timedelta(minutes=window_minutes)
    fire = trigger.get_next_fire_time(None, window_start + timedelta(microseconds=1))
    if fire is None or fire > now:
        return None
    return fire


def is_due(schedule: str | None, now: datetime, window_minutes: int) -> bool:
    return last_fire_time(schedule, now, window_minutes) is not None


class ScheduleGuard:
    """
    Claims each (channel, fire time) pair once.

    Uses Redis when available so several processes agree; otherwise claims are
    kept in memory for ``schedule_claim_ttl_seconds``.
    """

    def __init__(self, cache: RedisCache | None = None) -> None:
        self.cache = cache
        self._claimed: dict[str, datetime] = {}

    def claim(self, channel_id: str, fire_time: datetime) -> bool:
        key = f"schedule:{channel_id}:{fire_time.astimezone(UTC):%Y%m%dT%H%M}"
        if self.cache is not None:
            try:
                return self.cache.claim(key)
            except redis.RedisError:
                logger.warning("Redis claim failed, falling back to in-process claims")
                self.cache = None

        horizon = datetime.now(UTC) - timedelta(seconds=settings.schedule_claim_ttl_seconds)
        self._claimed = {k: t for k, t in self._claimed.items() if t >= horizon}
        if key in self._claimed:
            return False
        self._claimed[key] = fire_time
        return True


def due_channels(
    channels: Sequence[Channel],
    now: datetime,
    window_minutes: int,
    guard: ScheduleGuard | None = None,
) -> list[Channel]:
    """
    Channels to run now.

    A due member pulls its whole group in, since the group shares one topic.
    With a guard, a fire time already claimed does not count as due.
    """
    due_ids: set[str] = set()
    due_groups: set[str] = set()
    for channel in channels:
        fire = last_fire_time(channel.cron_schedule, now, window_minutes)
        if fire is None:
            continue
        if guard is not None and not guard.claim(channel.id, fire):
            logger.debug("Channel %s already ran for %s", channel.id, fire)
            continue
        due_ids.add(channel.id)
        if channel.group_id:
            due_groups.add(channel.group_id)

    return [c for c in channels if c.id in due_ids or (c.group_id and c.group_id in due_groups)]


async def check_schedules(
    *,
    stages: StageAdapters | None = None,
    credentials: CredentialSource | None = None,
    guard: ScheduleGuard | None = None,
    now: datetime | None = None,
) -> str | None:
    """Run the pipeline for the channels due now. Returns the execution id, if any."""
    now = now or datetime.now(UTC)
    channels = await asyncio.to_thread(db.get_active_channels)
    due = due_channels(channels, now, settings.schedule_window_minutes, guard)
    if not due:
        logger.debug("No channels due at %s", now)
        return None

    logger.info("Channels due: %s", ", ".join(c.name for c in due))
    return await PipelineOrchestrator(stages, credentials).execute(due)


def create_scheduler(
    stages: StageAdapters | None = None,
    credentials: CredentialSource | None = None,
    guard: ScheduleGuard | None = None,
) -> AsyncIOScheduler:
    """Scheduler with the schedule check and retry sweep jobs registered."""
    stages = stages or default_stages()
    credentials = credentials or create_credential_source()
    guard = guard or ScheduleGuard(create_cache())

    scheduler = AsyncIOScheduler(timezone=UTC)
    scheduler.add_job(
        check_schedules,
        "interval",
        minutes=settings.schedule_check_minutes,
        kwargs={"stages": stages, "credentials": credentials, "guard": guard},
        id="schedule_check",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(UTC),
    )
    scheduler.add_job(
        retry_pending_uploads,
        "interval",
        minutes=settings.retry_interval_minutes,
        kwargs={"stages": stages, "credentials": credentials},
        id="upload_retry",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def run_cron(
    stages: StageAdapters | None = None,
    credentials: CredentialSource | None = None,
) -> None:
    """Run until cancelled."""
    cache = create_cache()
    scheduler = create_scheduler(stages, credentials, ScheduleGuard(cache))
    scheduler.start()
    logger.info(
        "Cron mode started: schedule check every %d min, upload retry every %d min",
        settings.schedule_check_minutes,
        settings.retry_interval_minutes,
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        if cache is not None:
            cache.close()
        logger.info("Cron mode stopped")
