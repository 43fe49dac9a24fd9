"""Sweep schedule: which sweep runs when, evaluated in the business timezone."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from arq.cron import CronJob, cron

from holidaysri.core.clock import Clock, as_utc, utcnow
from holidaysri.core.enums import ExpirableKind

ALL_HOURS = tuple(range(24))


@dataclass(frozen=True)
class CronSpec:
    minute: tuple[int, ...]
    hour: tuple[int, ...] | None = None  # None: every hour

    @property
    def hours(self) -> tuple[int, ...]:
        return self.hour if self.hour is not None else ALL_HOURS


@dataclass(frozen=True)
class SweepJob:
    kind: ExpirableKind
    action: str  # "warnings" | "expire"
    spec: CronSpec

    @property
    def name(self) -> str:
        return f"sweep_{self.kind.value}_{self.action}"


SWEEP_JOBS: tuple[SweepJob, ...] = (
    SweepJob(ExpirableKind.ADVERTISEMENT, "warnings", CronSpec(minute=(0,), hour=(0, 6, 12, 18))),
    SweepJob(ExpirableKind.ADVERTISEMENT, "expire", CronSpec(minute=(0, 30))),
    SweepJob(ExpirableKind.MEMBERSHIP, "warnings", CronSpec(minute=(0,), hour=(9,))),
    SweepJob(ExpirableKind.MEMBERSHIP, "expire", CronSpec(minute=(0,))),
    SweepJob(ExpirableKind.COMMERCIAL_PARTNER, "warnings", CronSpec(minute=(0,), hour=(9,))),
    SweepJob(ExpirableKind.COMMERCIAL_PARTNER, "expire", CronSpec(minute=(0,))),
    SweepJob(ExpirableKind.PROMO_CODE, "warnings", CronSpec(minute=(0,), hour=(9,))),
    SweepJob(ExpirableKind.PROMO_CODE, "expire", CronSpec(minute=(0,))),
)


class Scheduler:
    """Cron table plus trigger-time arithmetic; the arq worker runs the same table in the same zone."""

    def __init__(
        self,
        jobs: tuple[SweepJob, ...] = SWEEP_JOBS,
        tz: str | ZoneInfo = "Asia/Colombo",
        clock: Clock = utcnow,
    ) -> None:
        self.jobs = jobs
        self.tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        self.clock = clock

    def next_run(self, job: SweepJob, after: datetime | None = None) -> datetime:
        """First trigger strictly after ``after`` (default: now), returned in UTC."""
        local = as_utc(after or self.clock()).astimezone(self.tz)
        for day in range(3):
            date = (local + timedelta(days=day)).date()
            for hour in sorted(job.spec.hours):
                for minute in sorted(job.spec.minute):
                    candidate = datetime(date.year, date.month, date.day, hour, minute, tzinfo=self.tz)
                    if candidate > local:
                        return candidate.astimezone(timezone.utc)
        raise ValueError(f"{job.name} has no trigger within three days")

    def upcoming(self, after: datetime | None = None) -> list[tuple[SweepJob, datetime]]:
        moment = after or self.clock()
        return sorted(((job, self.next_run(job, moment)) for job in self.jobs), key=lambda pair: pair[1])

    def arq_cron_jobs(self, task_for: Callable[[SweepJob], Callable[..., Any]]) -> list[CronJob]:
        return [
            cron(
                task_for(job),
                name=f"cron:{job.name}",
                hour=set(job.spec.hour) if job.spec.hour is not None else None,
                minute=set(job.spec.minute),
                second=0,
                run_at_startup=False,
            )
            for job in self.jobs
        ]
