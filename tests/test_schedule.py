"""Sweep schedule evaluated in Asia/Colombo (UTC+05:30)."""

from datetime import datetime, timezone

import pytest

from holidaysri.core.clock import fixed_clock
from holidaysri.core.enums import ExpirableKind
from holidaysri.worker.cron import SWEEP_JOBS, Scheduler, SweepJob
from holidaysri.worker.tasks import sweep_task


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def job(kind: ExpirableKind, action: str) -> SweepJob:
    return next(j for j in SWEEP_JOBS if j.kind is kind and j.action == action)


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler(tz="Asia/Colombo", clock=fixed_clock(utc(2026, 1, 10, 0, 0)))


def test_daily_warning_runs_at_nine_colombo(scheduler):
    warn = job(ExpirableKind.MEMBERSHIP, "warnings")
    assert scheduler.next_run(warn) == utc(2026, 1, 10, 3, 30)
    # strictly after: the run at 09:00 local is followed by the next day's
    assert scheduler.next_run(warn, utc(2026, 1, 10, 3, 30)) == utc(2026, 1, 11, 3, 30)


def test_ad_expiry_every_half_hour(scheduler):
    expire = job(ExpirableKind.ADVERTISEMENT, "expire")
    # 03:10 UTC is 08:40 in Colombo
    assert scheduler.next_run(expire, utc(2026, 1, 10, 3, 10)) == utc(2026, 1, 10, 3, 30)
    assert scheduler.next_run(expire, utc(2026, 1, 10, 3, 30)) == utc(2026, 1, 10, 4, 0)


def test_ad_warnings_every_six_hours(scheduler):
    warn = job(ExpirableKind.ADVERTISEMENT, "warnings")
    # 01:00 UTC is 06:30 local; next slot is 12:00 local
    assert scheduler.next_run(warn, utc(2026, 1, 10, 1, 0)) == utc(2026, 1, 10, 6, 30)
    # 19:00 UTC is 00:30 local on the 11th; next slot is 06:00 local
    assert scheduler.next_run(warn, utc(2026, 1, 10, 19, 0)) == utc(2026, 1, 11, 0, 30)


def test_hourly_expiry_on_the_local_hour(scheduler):
    expire = job(ExpirableKind.PROMO_CODE, "expire")
    # Colombo hours start at :30 UTC
    assert scheduler.next_run(expire, utc(2026, 1, 10, 12, 45)) == utc(2026, 1, 10, 13, 30)


def test_upcoming_is_sorted_and_uses_clock(scheduler):
    upcoming = scheduler.upcoming()
    assert len(upcoming) == len(SWEEP_JOBS)
    times = [when for _, when in upcoming]
    assert times == sorted(times)
    # clock is 05:30 Colombo: hourly and half-hourly sweeps fire at 06:00 local
    assert times[0] == utc(2026, 1, 10, 0, 30)


def test_arq_cron_table_matches_schedule(scheduler):
    cron_jobs = {c.name: c for c in scheduler.arq_cron_jobs(sweep_task)}
    assert len(cron_jobs) == 8
    ad_expire = cron_jobs["cron:sweep_advertisement_expire"]
    assert ad_expire.minute == {0, 30}
    assert ad_expire.hour is None
    ad_warn = cron_jobs["cron:sweep_advertisement_warnings"]
    assert ad_warn.hour == {0, 6, 12, 18}
    assert cron_jobs["cron:sweep_membership_warnings"].hour == {9}
    assert cron_jobs["cron:sweep_membership_warnings"].coroutine.__name__ == "sweep_membership_warnings"
