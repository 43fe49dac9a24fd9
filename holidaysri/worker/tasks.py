"""ARQ job definitions."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from holidaysri.core.config import get_settings
from holidaysri.core.enums import ExpirableKind
from holidaysri.core.logging import bind_job, configure_logging, get_logger
from holidaysri.services.expiration import ExpirationSweeper, build_sweepers
from holidaysri.services.mailer import get_mailer
from holidaysri.storage.base import Store, get_store
from holidaysri.worker.cron import Scheduler, SweepJob

log = get_logger(__name__)


def _job_id(ctx: dict[str, Any]) -> str | None:
    return ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None


def _store(ctx: dict[str, Any]) -> Store:
    if "store" not in ctx:
        ctx["store"] = get_store()
    return ctx["store"]


def _sweepers(ctx: dict[str, Any]) -> dict[ExpirableKind, ExpirationSweeper]:
    if "sweepers" not in ctx:
        ctx["sweepers"] = build_sweepers(_store(ctx), get_mailer(), get_settings())
    return ctx["sweepers"]


async def _run_with_dlq(
    store: Store,
    job_name: str,
    job_id: str | None,
    args: list[Any],
    kwargs: dict[str, Any],
    coro,
) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        return await coro
    except Exception as e:
        fid = job_id or str(uuid.uuid4())
        await store.record_failed_job(job_name, fid, str(e)[:2000], args, kwargs)
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def run_sweep(ctx: dict[str, Any], kind: str, action: str) -> dict[str, Any]:
    """One sweep run. A failed candidate query is dead-lettered but not raised; the next tick retries."""
    job_name = f"sweep_{kind}_{action}"
    job_id = _job_id(ctx)
    store = _store(ctx)
    sweeper = _sweepers(ctx)[ExpirableKind(kind)]

    async def _run() -> dict[str, Any]:
        bind_job(job_name, job_id)
        result = await (sweeper.send_warnings() if action == "warnings" else sweeper.expire_due())
        if not result.success:
            await store.record_failed_job(job_name, job_id or str(uuid.uuid4()), result.error or "", [kind, action], {})
        return result.model_dump()

    return await _run_with_dlq(store, job_name, job_id, [kind, action], {}, _run())


def sweep_task(job: SweepJob):
    """arq cron needs one coroutine function per schedule entry."""

    async def _task(ctx: dict[str, Any]) -> dict[str, Any]:
        return await run_sweep(ctx, job.kind.value, job.action)

    _task.__name__ = _task.__qualname__ = job.name
    return _task


async def startup_sweeps(ctx: dict[str, Any]) -> list[dict[str, Any]]:
    """Catch-up after (re)start: expire then warn, for every kind."""
    job_id = _job_id(ctx)

    async def _run() -> list[dict[str, Any]]:
        bind_job("startup_sweeps", job_id)
        results: list[dict[str, Any]] = []
        for sweeper in _sweepers(ctx).values():
            results.extend(r.model_dump() for r in await sweeper.run_startup())
        log.info("startup_sweeps_done", sweeps=len(results), failed=[r["sweep"] for r in results if not r["success"]])
        return results

    return await _run_with_dlq(_store(ctx), "startup_sweeps", job_id, [], {}, _run())


async def startup(ctx: dict) -> None:
    settings = get_settings()
    configure_logging(settings.debug)
    if settings.store_backend == "mongo":
        from holidaysri.db.init import init_db
        await init_db()
    ctx["store"] = get_store()
    ctx["sweepers"] = build_sweepers(ctx["store"], get_mailer(), settings)
    await ctx["redis"].enqueue_job("startup_sweeps", _defer_by=settings.startup_sweep_delay_seconds)
    scheduler = Scheduler(tz=settings.scheduler_timezone)
    for job, when in scheduler.upcoming():
        log.info("sweep_scheduled", job=job.name, next_run=when.isoformat())


async def shutdown(ctx: dict) -> None:
    pass


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path and u.path != "/" else 0,
    )
