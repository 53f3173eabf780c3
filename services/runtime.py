"""Runtime utilities for sharing scheduler state across components."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from models import Rule, TriggerKind

logger = logging.getLogger(__name__)

RULE_JOB_PREFIX = "rule:"
RELOAD_JOB_ID = "tabs:reload"

_scheduler: Optional[AsyncIOScheduler] = None


def configure_scheduler(scheduler: AsyncIOScheduler | None) -> None:
    """Register the scheduler for later access."""
    global _scheduler
    _scheduler = scheduler


def rule_job_id(rule_id: str) -> str:
    return f"{RULE_JOB_PREFIX}{rule_id}"


def sync_periodic_jobs(
    rules: Iterable[Rule],
    callback: Callable[[str], Awaitable[Any]],
) -> set[str]:
    """Keep one interval job per enabled periodic-check rule.

    Jobs for rules that were deleted, disabled or changed kind are removed.
    A job whose interval is unchanged keeps its next run time; only new rules
    and interval edits add or replace a job. Returns the ids of the rules that
    are scheduled.
    """
    if _scheduler is None:
        return set()

    wanted = {
        rule.id: rule
        for rule in rules
        if rule.enabled
        and rule.trigger is TriggerKind.PERIODIC_CHECK
        and rule.interval_minutes
    }

    for job in _scheduler.get_jobs():
        if job.id.startswith(RULE_JOB_PREFIX) and job.id[len(RULE_JOB_PREFIX):] not in wanted:
            _scheduler.remove_job(job.id)
            logger.info("Unscheduled periodic check %s", job.id)

    for rule in wanted.values():
        interval = timedelta(minutes=rule.interval_minutes)
        existing = _scheduler.get_job(rule_job_id(rule.id))
        if existing is not None and getattr(existing.trigger, "interval", None) == interval:
            continue
        _scheduler.add_job(
            callback,
            IntervalTrigger(minutes=rule.interval_minutes),
            args=[rule.id],
            id=rule_job_id(rule.id),
            name=rule.name,
            replace_existing=True,
            coalesce=True,
        )
    return set(wanted)


def schedule_page_reload(callback: Callable[[], Awaitable[Any]], minutes: int) -> Optional[Job]:
    if _scheduler is None or minutes <= 0:
        return None
    return _scheduler.add_job(
        callback,
        IntervalTrigger(minutes=minutes),
        id=RELOAD_JOB_ID,
        replace_existing=True,
        coalesce=True,
    )

