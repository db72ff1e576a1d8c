"""Scheduler service - runs the periodic sweeps of the monitoring core.

Design:
- Named recurring tasks: probe sweep, pending alerts, escalation, retention
- A task never overlaps itself: a tick that fires while the previous run is
  still going is skipped, not queued
- Probes within a sweep run concurrently under a semaphore; the
  latest -> probe -> record -> detect -> alert pipeline of one site is
  serialized by a per-site lock
- Time comes from an injectable clock; tick() fires due tasks in virtual
  time so sweeps can be driven deterministically
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..models import HealthCheck, Site
from ..repositories.base import SiteRepository
from ..utils.clock import system_clock
from .alert_manager import AlertLifecycleManager
from .detector import StatusTransitionDetector
from .prober import ProberService
from .recorder import CheckRecorder

logger = logging.getLogger(__name__)

PROBE_SWEEP = "probe_sweep"
PENDING_ALERTS = "pending_alerts"
ESCALATION = "escalation"
RETENTION = "retention"


@dataclass
class RecurringTask:
    """A named periodic job."""
    name: str
    interval: timedelta
    func: Callable[[], Awaitable]
    next_run_at: Optional[datetime] = None
    running: bool = False
    runs: int = 0
    skipped: int = 0


class SchedulerService:
    """Owns the recurring sweeps and the per-site probe pipeline."""

    def __init__(
        self,
        sites: SiteRepository,
        prober: ProberService,
        recorder: CheckRecorder,
        detector: StatusTransitionDetector,
        alert_manager: AlertLifecycleManager,
        clock=system_clock,
        probe_interval: int = 300,
        pending_interval: int = 60,
        escalation_interval: int = 1800,
        retention_interval: int = 86400,
        max_concurrent_probes: int = 10,
        check_retention_days: int = 90,
        shutdown_grace_seconds: float = 30,
    ):
        self._sites = sites
        self._prober = prober
        self._recorder = recorder
        self._detector = detector
        self._alert_manager = alert_manager
        self._clock = clock
        self.max_concurrent_probes = max_concurrent_probes
        self.check_retention_days = check_retention_days
        self.shutdown_grace_seconds = shutdown_grace_seconds

        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._stopping = False
        self._tasks: Dict[str, RecurringTask] = {}
        self._in_flight: Set[asyncio.Task] = set()
        self._site_locks: Dict[int, asyncio.Lock] = {}

        self.add_task(PROBE_SWEEP, probe_interval, self.run_probe_sweep)
        self.add_task(PENDING_ALERTS, pending_interval, self.run_pending_alerts)
        self.add_task(ESCALATION, escalation_interval, self.run_escalation)
        self.add_task(RETENTION, retention_interval, self.run_retention)

    # Task registry

    def add_task(self, name: str, interval_seconds: float, func: Callable[[], Awaitable]):
        self._tasks[name] = RecurringTask(name=name, interval=timedelta(seconds=interval_seconds), func=func)

    @property
    def tasks(self) -> Dict[str, RecurringTask]:
        return dict(self._tasks)

    async def run_task(self, name: str) -> bool:
        """Run one tick of a task. Returns False if the tick was skipped."""
        task = self._tasks[name]
        if self._stopping:
            return False
        if task.running:
            task.skipped += 1
            logger.warning(f"Skipping {name}: previous run still in progress")
            return False

        task.running = True
        current = asyncio.current_task()
        if current is not None:
            self._in_flight.add(current)
        try:
            await task.func()
            task.runs += 1
        except asyncio.CancelledError:
            logger.warning(f"Task {name} cancelled")
            raise
        except Exception as e:
            # Logged only; the next tick retries
            logger.error(f"Error running {name}: {e}")
        finally:
            task.running = False
            if current is not None:
                self._in_flight.discard(current)
        return True

    async def tick(self) -> List[str]:
        """Fire every task due at the clock's current time and wait for them."""
        now = self._clock.now()
        due = []
        for task in self._tasks.values():
            if task.next_run_at is None or task.next_run_at <= now:
                task.next_run_at = now + task.interval
                due.append(task.name)

        results = await asyncio.gather(*[self.run_task(name) for name in due])
        return [name for name, ran in zip(due, results) if ran]

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self._stopping = False
        self.scheduler = AsyncIOScheduler()
        for task in self._tasks.values():
            seconds = task.interval.total_seconds()
            self.scheduler.add_job(
                self.run_task,
                trigger=IntervalTrigger(seconds=seconds),
                args=[task.name],
                id=task.name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=max(1, int(seconds)),
            )

        self.scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started ("
            + ", ".join(f"{t.name}={int(t.interval.total_seconds())}s" for t in self._tasks.values())
            + f", max_concurrent={self.max_concurrent_probes})"
        )

    async def shutdown(self, grace_seconds: Optional[float] = None):
        """Stop ticking, let in-flight sweeps finish within the grace period, then cancel them."""
        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        self._stopping = True
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False

        pending = set(self._in_flight)
        if pending:
            logger.info(f"Waiting up to {grace}s for {len(pending)} in-flight sweep(s)")
            _, not_done = await asyncio.wait(pending, timeout=grace)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
                logger.warning(f"Cancelled {len(not_done)} sweep(s) after grace period")
        logger.info("Scheduler stopped")

    # Probe sweep

    def _site_lock(self, site_id: int) -> asyncio.Lock:
        return self._site_locks.setdefault(site_id, asyncio.Lock())

    def _is_site_due(self, site: Site, last_checked: Optional[datetime], now: datetime) -> bool:
        """A site is due once its own interval passed, minus half a sweep to absorb jitter."""
        if last_checked is None:
            return True
        elapsed = (now - last_checked).total_seconds()
        buffer = self._tasks[PROBE_SWEEP].interval.total_seconds() / 2
        return elapsed >= (site.check_interval - buffer)

    async def check_site(self, site: Site, force: bool = False) -> Optional[HealthCheck]:
        """Probe one site, record the result and apply alert transitions.

        Returns the recorded check, or None when the site was not due.
        """
        async with self._site_lock(site.id):
            previous = await self._recorder.latest(site.id)
            if not force and previous is not None and not self._is_site_due(site, previous.checked_at, self._clock.now()):
                return None

            result = await self._prober.probe(site)
            current = await self._recorder.record(result)
            intents = await self._detector.detect(site, previous, current)
            await self._alert_manager.apply(site, intents)

            logger.debug(f"Site {site.name}: {current.status}")
            return current

    async def run_probe_sweep(self):
        """Probe every active site that is due, concurrently."""
        sites = await self._sites.list_active()
        if not sites:
            return

        semaphore = asyncio.Semaphore(self.max_concurrent_probes)

        async def check_with_limit(site: Site) -> bool:
            async with semaphore:
                try:
                    return await self.check_site(site) is not None
                except Exception as e:
                    # One failing site must not stop the sweep
                    logger.error(f"Error checking site {site.id}: {e}")
                    return False

        results = await asyncio.gather(*[check_with_limit(site) for site in sites])
        logger.info(f"Probe sweep complete: {sum(results)}/{len(sites)} site(s) checked")

    # Alert sweeps

    async def run_pending_alerts(self):
        await self._alert_manager.process_pending(self._clock.now())

    async def run_escalation(self):
        await self._alert_manager.escalate(self._clock.now())

    async def run_retention(self):
        """Delete health checks past the retention window. Alerts are kept for audit."""
        if self.check_retention_days <= 0:
            return
        removed = await self._recorder.purge(timedelta(days=self.check_retention_days))
        logger.info(f"Retention sweep removed {removed} health check(s)")
