"""Scheduler Run Coordinator - One complete notification pass

IDLE -> RUNNING is guarded by a lease-based run lock so overlapping triggers
(cron retries, double fires, the in-process scheduler) do not evaluate the
same data concurrently. Correctness does not depend on the lock: the
conditional append in the dispatcher still guarantees at most one recorded
reminder per slot if two runs overlap after a lease expires.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .dispatcher import ReminderDispatcher
from .selector import DueItemSelector
from ..config.settings import settings
from ..domain.enums import DispatchOutcome, RuleKind, RunState
from ..domain.errors import DomainError, StoreError
from ..domain.models import DispatchResult, DueNotification, KindStats, RunSummary
from ..repositories.interfaces import NotificationChannel, RuleSource, RunLock, TicketSnapshotStore
from ..utils.idgen import generate_owner_id, generate_run_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

ALREADY_RUNNING = "already running"


class SchedulerCoordinator:
    """
    Entry point invoked on a fixed cadence.

    Collaborators are injected so the same coordinator runs against MongoDB
    in production and against in-memory stores in tests.
    """

    def __init__(
        self,
        rules: RuleSource,
        tickets: TicketSnapshotStore,
        lock: RunLock,
        channel: NotificationChannel,
        selector: Optional[DueItemSelector] = None,
        lock_name: Optional[str] = None,
        lock_ttl: Optional[timedelta] = None,
        concurrency: Optional[int] = None
    ):
        self.rules = rules
        self.tickets = tickets
        self.lock = lock
        self.selector = selector or DueItemSelector()
        self.dispatcher = ReminderDispatcher(tickets, channel)
        self.lock_name = lock_name or settings.scheduler_lock_name
        self.lock_ttl = lock_ttl or timedelta(minutes=settings.scheduler_lock_ttl_minutes)
        self.concurrency = max(1, concurrency or settings.dispatch_concurrency)
        self.state = RunState.IDLE
        self._owner_prefix = generate_owner_id()

    async def run(self, now: Optional[datetime] = None) -> RunSummary:
        """
        Execute one scheduler pass

        Args:
            now: Evaluation time; defaults to the current UTC time

        Returns:
            RunSummary; never raises for store, channel or lock failures
        """
        run_id = generate_run_id()
        owner = f"{self._owner_prefix}:{run_id}"
        started_at = utc_now()
        now = now or started_at

        try:
            acquired = await self.lock.acquire(self.lock_name, owner, self.lock_ttl)
        except DomainError as e:
            logger.error(
                f"Could not acquire run lock: {e.message}",
                extra={"run_id": run_id, "error_code": e.error_code}
            )
            return self._failed(run_id, started_at, e.message)

        if not acquired:
            logger.info(
                "Scheduler run skipped: another run holds the lock",
                extra={"run_id": run_id, "owner": owner}
            )
            return RunSummary(
                ok=True,
                run_id=run_id,
                skipped=True,
                reason=ALREADY_RUNNING,
                timestamp=utc_now()
            )

        self.state = RunState.RUNNING
        try:
            try:
                rules = await self.rules.get_active_rules()
                tickets = await self.tickets.get_notification_candidates()
            except Exception as e:
                logger.error(
                    f"Scheduler run aborted while loading data: {e}",
                    extra={"run_id": run_id, "error_type": type(e).__name__},
                    exc_info=not isinstance(e, StoreError)
                )
                return self._failed(run_id, started_at, str(e))

            due = self.selector.select(now, rules, tickets)
            logger.info(
                f"Found {len(due)} due notifications ({len(rules)} rules, {len(tickets)} tickets)",
                extra={"run_id": run_id}
            )

            results = await self._dispatch_all(due, now, run_id)
            summary = self._aggregate(run_id, started_at, due, results)

            logger.info(
                f"Scheduler run complete: {summary.sent_count} sent, "
                f"{summary.skipped_count} already sent, {summary.failed_count} failed",
                extra={"run_id": run_id, "duration_ms": round(summary.duration_ms, 2)}
            )
            return summary
        finally:
            await self._release(owner, run_id)
            self.state = RunState.IDLE

    async def _dispatch_all(
        self,
        due: List[DueNotification],
        now: datetime,
        run_id: str
    ) -> List[DispatchResult]:
        """Dispatch in fire_at order; one item's failure never blocks the others"""
        if self.concurrency == 1:
            return [await self._dispatch_one(item, now, run_id) for item in due]

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(item: DueNotification) -> DispatchResult:
            async with semaphore:
                return await self._dispatch_one(item, now, run_id)

        return list(await asyncio.gather(*(bounded(item) for item in due)))

    async def _dispatch_one(self, item: DueNotification, now: datetime, run_id: str) -> DispatchResult:
        try:
            return await self.dispatcher.dispatch(item, now)
        except Exception as e:
            logger.error(
                f"Error dispatching reminder for ticket {item.ticket_ref}: {e}",
                extra={
                    "run_id": run_id,
                    "ticket_ref": item.ticket_ref,
                    "rule_id": item.rule.rule_id,
                    "error_type": type(e).__name__,
                    "outcome": DispatchOutcome.FAILED.value
                },
                exc_info=not isinstance(e, DomainError)
            )
            return DispatchResult(
                ticket_ref=item.ticket_ref,
                rule_id=item.rule.rule_id,
                rule_kind=item.rule.kind,
                outcome=DispatchOutcome.FAILED,
                reason=str(e)
            )

    async def _release(self, owner: str, run_id: str) -> None:
        try:
            await self.lock.release(self.lock_name, owner)
        except DomainError as e:
            # The lease expires on its own
            logger.error(
                f"Could not release run lock: {e.message}",
                extra={"run_id": run_id, "error_code": e.error_code}
            )

    @staticmethod
    def _aggregate(
        run_id: str,
        started_at: datetime,
        due: List[DueNotification],
        results: List[DispatchResult]
    ) -> RunSummary:
        by_kind: Dict[str, KindStats] = {kind.value: KindStats() for kind in RuleKind}
        for item in due:
            by_kind[item.rule.kind.value].due += 1

        counts = {outcome: 0 for outcome in DispatchOutcome}
        for result in results:
            counts[result.outcome] += 1
            stats = by_kind[result.rule_kind.value]
            if result.outcome == DispatchOutcome.SENT:
                stats.sent += 1
            elif result.outcome == DispatchOutcome.ALREADY_SENT:
                stats.skipped += 1
            else:
                stats.failed += 1

        finished_at = utc_now()
        return RunSummary(
            ok=True,
            run_id=run_id,
            due_count=len(due),
            sent_count=counts[DispatchOutcome.SENT],
            skipped_count=counts[DispatchOutcome.ALREADY_SENT],
            failed_count=counts[DispatchOutcome.FAILED],
            by_kind=by_kind,
            duration_ms=(finished_at - started_at).total_seconds() * 1000,
            timestamp=finished_at
        )

    @staticmethod
    def _failed(run_id: str, started_at: datetime, error: str) -> RunSummary:
        finished_at = utc_now()
        return RunSummary(
            ok=False,
            run_id=run_id,
            error=error,
            duration_ms=(finished_at - started_at).total_seconds() * 1000,
            timestamp=finished_at
        )


def build_coordinator() -> SchedulerCoordinator:
    """Wire a coordinator against MongoDB and the WhatsApp channel"""
    from ..repositories.contact_repo import ContactRepository
    from ..repositories.rule_repo import RuleRepository
    from ..repositories.run_lock_repo import RunLockRepository
    from ..repositories.ticket_repo import TicketRepository
    from ..services.whatsapp_service import WhatsAppService

    return SchedulerCoordinator(
        rules=RuleRepository(),
        tickets=TicketRepository(),
        lock=RunLockRepository(),
        channel=WhatsAppService(ContactRepository())
    )
