"""Run ARQ worker. Usage: python -m holidaysri.worker.run_worker"""

from zoneinfo import ZoneInfo

from arq import run_worker

from holidaysri.core.config import get_settings
from holidaysri.worker.cron import Scheduler
from holidaysri.worker.tasks import get_redis_settings, run_sweep, shutdown, startup, startup_sweeps, sweep_task

_settings = get_settings()
_scheduler = Scheduler(tz=_settings.scheduler_timezone)


class WorkerSettings:
    functions = [startup_sweeps, run_sweep]
    cron_jobs = _scheduler.arq_cron_jobs(sweep_task)
    redis_settings = get_redis_settings()
    on_startup = startup
    on_shutdown = shutdown
    timezone = ZoneInfo(_settings.scheduler_timezone)


def main() -> None:
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
