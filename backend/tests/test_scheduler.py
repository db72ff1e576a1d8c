from __future__ import annotations

import asyncio

import httpx
import pytest

from sitewatch.config import Settings
from sitewatch.services.container import build_services
from sitewatch.services.prober import CheckResult, ProberService
from sitewatch.services.recorder import CheckRecorder
from sitewatch.services.scheduler import (
    ESCALATION,
    PENDING_ALERTS,
    PROBE_SWEEP,
    RETENTION,
    SchedulerService,
)


class SwitchableHealthEndpoint:
    """Health endpoint whose answer the test flips between up and down."""

    def __init__(self) -> None:
        self.up = True
        self.requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if not self.up:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"status": "ok", "metrics": {"errorRate": 0.2}})


def _services(session_factory, clock, notifier, endpoint, **overrides):
    config = Settings(immediate_critical_notification=True, **overrides)
    return build_services(
        session_factory,
        config,
        clock=clock,
        notifier=notifier,
        probe_transport=httpx.MockTransport(endpoint),
    )


@pytest.mark.asyncio
async def test_tick_fires_due_tasks_in_virtual_time(site, session_factory, clock, notifier) -> None:
    endpoint = SwitchableHealthEndpoint()
    scheduler = _services(session_factory, clock, notifier, endpoint).scheduler

    assert sorted(await scheduler.tick()) == sorted([PROBE_SWEEP, PENDING_ALERTS, ESCALATION, RETENTION])
    assert endpoint.requests == 1

    assert await scheduler.tick() == []

    clock.advance(seconds=60)
    assert await scheduler.tick() == [PENDING_ALERTS]

    clock.advance(seconds=240)
    assert sorted(await scheduler.tick()) == sorted([PROBE_SWEEP, PENDING_ALERTS])
    assert endpoint.requests == 2
    assert scheduler.tasks[PROBE_SWEEP].runs == 2


@pytest.mark.asyncio
async def test_outage_and_recovery_drive_alert_lifecycle(site, session_factory, alert_repo, clock, notifier) -> None:
    endpoint = SwitchableHealthEndpoint()
    scheduler = _services(session_factory, clock, notifier, endpoint).scheduler

    await scheduler.run_probe_sweep()

    endpoint.up = False
    clock.advance(minutes=5)
    await scheduler.run_probe_sweep()

    [alert] = await alert_repo.list_active(site.id)
    assert alert.alert_type == "offline"
    assert notifier.calls == [("critical", alert.id, None)]

    # The pending sweep must not repeat the critical notification
    await scheduler.run_pending_alerts()
    assert notifier.kinds() == ["critical"]

    clock.advance(minutes=31)
    await scheduler.run_escalation()
    assert notifier.kinds() == ["critical", "escalation"]

    endpoint.up = True
    clock.advance(minutes=5)
    await scheduler.run_probe_sweep()

    assert await alert_repo.list_active(site.id) == []
    assert notifier.kinds() == ["critical", "escalation", "recovery"]


@pytest.mark.asyncio
async def test_site_not_due_is_skipped_unless_forced(site, session_factory, check_repo, clock, notifier) -> None:
    endpoint = SwitchableHealthEndpoint()
    scheduler = _services(session_factory, clock, notifier, endpoint).scheduler

    assert await scheduler.check_site(site) is not None
    clock.advance(seconds=60)
    assert await scheduler.check_site(site) is None
    assert await scheduler.check_site(site, force=True) is not None

    assert len(await check_repo.history(site.id, 1, now=clock.now())) == 2


@pytest.mark.asyncio
async def test_concurrent_forced_checks_of_one_site_open_one_alert(
    site, session_factory, alert_repo, check_repo, clock, notifier
) -> None:
    endpoint = SwitchableHealthEndpoint()
    scheduler = _services(session_factory, clock, notifier, endpoint).scheduler
    await scheduler.check_site(site)

    endpoint.up = False
    clock.advance(minutes=5)
    await asyncio.gather(*[scheduler.check_site(site, force=True) for _ in range(5)])

    active = await alert_repo.list_active(site.id)
    assert [a.alert_type for a in active] == ["offline"]
    assert notifier.kinds() == ["critical"]
    assert len(await check_repo.history(site.id, 1, now=clock.now())) == 6


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(site, session_factory, clock, notifier) -> None:
    scheduler = _services(session_factory, clock, notifier, SwitchableHealthEndpoint()).scheduler
    release = asyncio.Event()
    started = asyncio.Event()

    async def slow_job() -> None:
        started.set()
        await release.wait()

    scheduler.add_task("slow", 60, slow_job)
    first = asyncio.create_task(scheduler.run_task("slow"))
    await started.wait()

    assert await scheduler.run_task("slow") is False
    assert scheduler.tasks["slow"].skipped == 1

    release.set()
    assert await first is True
    assert scheduler.tasks["slow"].runs == 1


@pytest.mark.asyncio
async def test_failing_task_is_logged_and_retried_next_tick(site, session_factory, clock, notifier) -> None:
    scheduler = _services(session_factory, clock, notifier, SwitchableHealthEndpoint()).scheduler
    calls = []

    async def broken_job() -> None:
        calls.append(1)
        raise RuntimeError("boom")

    scheduler.add_task("broken", 60, broken_job)

    assert await scheduler.run_task("broken") is True
    assert await scheduler.run_task("broken") is True
    assert len(calls) == 2
    assert scheduler.tasks["broken"].running is False


class PartlyBrokenProber(ProberService):
    def __init__(self, broken_site_id: int, clock) -> None:
        super().__init__(clock=clock)
        self.broken_site_id = broken_site_id

    async def probe(self, site) -> CheckResult:
        if site.id == self.broken_site_id:
            raise RuntimeError("resolver crashed")
        return CheckResult(site_id=site.id, status="online", checked_at=self._clock.now(), response_time_ms=90, error_rate=0.0)


@pytest.mark.asyncio
async def test_one_failing_site_does_not_stop_the_sweep(
    site, site_repo, check_repo, detector, make_manager, clock
) -> None:
    other = await site_repo.create(name="Consortium Hub", url="https://hub.example.com", endpoint_health="https://hub.example.com/h")
    scheduler = SchedulerService(
        site_repo,
        PartlyBrokenProber(site.id, clock),
        CheckRecorder(check_repo, clock=clock),
        detector,
        make_manager(),
        clock=clock,
    )

    await scheduler.run_probe_sweep()

    assert await check_repo.latest(site.id) is None
    assert (await check_repo.latest(other.id)).status == "online"


@pytest.mark.asyncio
async def test_retention_sweep_purges_old_checks(site, session_factory, check_repo, record_check, clock, notifier) -> None:
    scheduler = _services(session_factory, clock, notifier, SwitchableHealthEndpoint(), check_retention_days=30).scheduler
    await record_check(site.id, "online")
    clock.advance(days=31)
    kept = await record_check(site.id, "online")

    await scheduler.run_retention()

    assert [c.id for c in await check_repo.history(site.id, 24 * 365, now=clock.now())] == [kept.id]


@pytest.mark.asyncio
async def test_shutdown_cancels_sweeps_after_grace_period(site, session_factory, clock, notifier) -> None:
    scheduler = _services(session_factory, clock, notifier, SwitchableHealthEndpoint()).scheduler
    started = asyncio.Event()

    async def stuck_job() -> None:
        started.set()
        await asyncio.Event().wait()

    scheduler.add_task("stuck", 60, stuck_job)
    running = asyncio.create_task(scheduler.run_task("stuck"))
    await started.wait()

    await scheduler.shutdown(grace_seconds=0.05)

    assert running.cancelled()
    assert await scheduler.run_task(PENDING_ALERTS) is False


@pytest.mark.asyncio
async def test_shutdown_lets_short_sweeps_finish(site, session_factory, clock, notifier) -> None:
    scheduler = _services(session_factory, clock, notifier, SwitchableHealthEndpoint()).scheduler
    started = asyncio.Event()
    finished = []

    async def short_job() -> None:
        started.set()
        await asyncio.sleep(0.01)
        finished.append(True)

    scheduler.add_task("short", 60, short_job)
    running = asyncio.create_task(scheduler.run_task("short"))
    await started.wait()

    await scheduler.shutdown(grace_seconds=5)

    assert finished == [True]
    assert await running is True
