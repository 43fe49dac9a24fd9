"""Expiration sweeps over advertisements, memberships, commercial partnerships and promo codes."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from holidaysri.core.clock import Clock, utcnow
from holidaysri.core.config import Settings
from holidaysri.core.enums import STATUS_BY_KIND, ExpirableKind, ensure_transition, parse_status
from holidaysri.core.logging import get_logger
from holidaysri.schemas import ExpirableRecord
from holidaysri.services.mailer import Mailer, send_with_timeout
from holidaysri.services.notices import BUSINESS_TZ, Notice, expired_notice, warning_notice
from holidaysri.services.notifications import notify
from holidaysri.storage.base import Store

log = get_logger(__name__)

# (earliest, latest) time before expires_at at which the warning goes out
WARNING_WINDOWS: dict[ExpirableKind, tuple[timedelta, timedelta]] = {
    ExpirableKind.ADVERTISEMENT: (timedelta(hours=6), timedelta(hours=24)),
    ExpirableKind.MEMBERSHIP: (timedelta(days=1), timedelta(days=3)),
    ExpirableKind.COMMERCIAL_PARTNER: (timedelta(0), timedelta(days=7)),
    ExpirableKind.PROMO_CODE: (timedelta(days=1), timedelta(days=2)),
}

# Kinds whose window bounds snap to the end of the local calendar day
DAY_ALIGNED = frozenset({ExpirableKind.PROMO_CODE})


def end_of_day(moment: datetime, tz: str) -> datetime:
    local = moment.astimezone(ZoneInfo(tz))
    return local.replace(hour=23, minute=59, second=59, microsecond=999000).astimezone(timezone.utc)


@dataclass(frozen=True)
class SweepPolicy:
    kind: ExpirableKind
    warn_from: timedelta
    warn_until: timedelta
    warning_limit: int = 50
    warning_batch_size: int = 5
    warning_batch_delay: float = 0.1
    expire_limit: int = 100
    expire_batch_size: int = 10
    expire_batch_delay: float = 0.2
    email_timeout: float = 30.0
    tz: str = BUSINESS_TZ
    day_aligned: bool = False

    def warning_window(self, now: datetime) -> tuple[datetime, datetime]:
        start, end = now + self.warn_from, now + self.warn_until
        if self.day_aligned:
            return end_of_day(start, self.tz), end_of_day(end, self.tz)
        return start, end

    @classmethod
    def for_kind(cls, kind: ExpirableKind, settings: Settings | None = None) -> "SweepPolicy":
        warn_from, warn_until = WARNING_WINDOWS[kind]
        day_aligned = kind in DAY_ALIGNED
        if settings is None:
            return cls(kind=kind, warn_from=warn_from, warn_until=warn_until, day_aligned=day_aligned)
        return cls(
            kind=kind,
            warn_from=warn_from,
            warn_until=warn_until,
            day_aligned=day_aligned,
            tz=settings.scheduler_timezone,
            warning_limit=settings.warning_sweep_limit,
            warning_batch_size=settings.warning_batch_size,
            warning_batch_delay=settings.warning_batch_delay_seconds,
            expire_limit=settings.expire_sweep_limit,
            expire_batch_size=settings.expire_batch_size,
            expire_batch_delay=settings.expire_batch_delay_seconds,
            email_timeout=settings.email_timeout_seconds,
        )


class SweepResult(BaseModel):
    sweep: str
    success: bool = True
    processed: int = 0
    total: int = 0
    skipped: int = 0
    failed: int = 0
    notify_failed: int = 0
    duration_ms: int = 0
    error: str | None = None


class _Outcome(Enum):
    SKIPPED = "skipped"
    DONE = "done"
    NOTIFY_FAILED = "notify_failed"


Handler = Callable[[ExpirableRecord, datetime], Awaitable[_Outcome]]


class ExpirationSweeper:
    """
    One sweeper per expirable kind.

    Warnings claim ``expiration_warning_email_sent`` before delivering, expiry moves
    active -> expired before claiming ``expired_notification_email_sent``; so two
    overlapping runs never notify twice. Delivery is best effort and never undoes
    the state change.
    """

    def __init__(
        self,
        store: Store,
        mailer: Mailer,
        policy: SweepPolicy,
        clock: Clock = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.policy = policy
        self.clock = clock
        self.sleep = sleep

    @property
    def kind(self) -> ExpirableKind:
        return self.policy.kind

    async def send_warnings(self) -> SweepResult:
        now = self.clock()
        p = self.policy
        start, end = p.warning_window(now)
        return await self._sweep(
            "warnings",
            now,
            lambda: self.store.find_expiring(self.kind, start, end, p.warning_limit),
            self._warn_one,
            p.warning_batch_size,
            p.warning_batch_delay,
        )

    async def expire_due(self) -> SweepResult:
        now = self.clock()
        p = self.policy
        return await self._sweep(
            "expire",
            now,
            lambda: self.store.find_expired(self.kind, now, p.expire_limit),
            self._expire_one,
            p.expire_batch_size,
            p.expire_batch_delay,
        )

    async def run_startup(self) -> list[SweepResult]:
        """Catch up after downtime: expire first so stale entities are not warned."""
        return [await self.expire_due(), await self.send_warnings()]

    async def _sweep(
        self,
        action: str,
        now: datetime,
        query: Callable[[], Awaitable[list[ExpirableRecord]]],
        handle: Handler,
        batch_size: int,
        delay: float,
    ) -> SweepResult:
        name = f"{self.kind.value}_{action}"
        started = time.monotonic()
        result = SweepResult(sweep=name)
        try:
            candidates = await query()
        except Exception as e:
            log.error("sweep_query_failed", sweep=name, error=str(e))
            result.success = False
            result.error = str(e)
            result.duration_ms = int((time.monotonic() - started) * 1000)
            return result

        result.total = len(candidates)
        size = max(1, batch_size)
        for start in range(0, len(candidates), size):
            batch = candidates[start:start + size]
            outcomes = await asyncio.gather(*(handle(entity, now) for entity in batch), return_exceptions=True)
            for entity, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    result.failed += 1
                    log.error("sweep_candidate_failed", sweep=name, entity_id=entity.id, error=str(outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
                elif outcome is _Outcome.SKIPPED:
                    result.skipped += 1
                else:
                    result.processed += 1
                    if outcome is _Outcome.NOTIFY_FAILED:
                        result.notify_failed += 1
            if start + size < len(candidates):
                await self.sleep(delay)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "sweep_done",
            sweep=name,
            total=result.total,
            processed=result.processed,
            skipped=result.skipped,
            failed=result.failed,
            notify_failed=result.notify_failed,
            duration_ms=result.duration_ms,
        )
        return result

    async def _warn_one(self, entity: ExpirableRecord, now: datetime) -> _Outcome:
        if not await self.store.mark_warning_sent(self.kind, entity.id):
            return _Outcome.SKIPPED
        return await self._deliver(entity, warning_notice(entity, now, self.policy.tz))

    async def _expire_one(self, entity: ExpirableRecord, now: datetime) -> _Outcome:
        status_cls = STATUS_BY_KIND[self.kind]
        ensure_transition(self.kind.value, parse_status(status_cls, entity.status), status_cls("expired"))
        if not await self.store.expire_entity(self.kind, entity.id, now):
            return _Outcome.SKIPPED
        log.info("entity_expired", kind=self.kind.value, entity_id=entity.id, owner_id=entity.owner_id)
        try:
            claimed = await self.store.mark_expired_notice_sent(self.kind, entity.id)
        except Exception as e:
            log.warning("expired_notice_claim_failed", kind=self.kind.value, entity_id=entity.id, error=str(e))
            return _Outcome.NOTIFY_FAILED
        if not claimed:
            return _Outcome.DONE
        return await self._deliver(entity, expired_notice(entity, now))

    async def _deliver(self, entity: ExpirableRecord, notice: Notice) -> _Outcome:
        """In-app notification and email run concurrently; failures are logged, never raised."""
        if not entity.owner_id:
            return _Outcome.DONE
        try:
            owner = await self.store.get_user(entity.owner_id)
        except Exception as e:
            log.warning("sweep_owner_lookup_failed", entity_id=entity.id, owner_id=entity.owner_id, error=str(e))
            return _Outcome.NOTIFY_FAILED
        if owner is None:
            log.warning("sweep_owner_missing", entity_id=entity.id, owner_id=entity.owner_id)
            return _Outcome.DONE

        deliveries = [
            notify(
                self.store,
                owner.id,
                notice.title,
                notice.message,
                severity=notice.severity,
                priority=notice.priority,
                data=notice.data,
            )
        ]
        if owner.email:
            deliveries.append(
                send_with_timeout(self.mailer, owner.email, notice.subject, notice.body, self.policy.email_timeout)
            )
        outcomes = await asyncio.gather(*deliveries, return_exceptions=True)
        failures = [o for o in outcomes if isinstance(o, Exception)]
        for failure in failures:
            log.warning("sweep_delivery_failed", entity_id=entity.id, owner_id=owner.id, error=str(failure))
        return _Outcome.NOTIFY_FAILED if failures else _Outcome.DONE


def build_sweepers(
    store: Store,
    mailer: Mailer,
    settings: Settings | None = None,
    clock: Clock = utcnow,
) -> dict[ExpirableKind, ExpirationSweeper]:
    return {
        kind: ExpirationSweeper(store, mailer, SweepPolicy.for_kind(kind, settings), clock=clock)
        for kind in ExpirableKind
    }
