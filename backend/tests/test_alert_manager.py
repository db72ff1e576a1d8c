from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from sitewatch.errors import NotFound
from sitewatch.models.enums import AlertType, ReportPeriod, Severity
from sitewatch.services.alert_manager import PendingAction
from sitewatch.services.detector import OpenAlert

OFFLINE = OpenAlert(AlertType.OFFLINE, Severity.CRITICAL, "Broker Portal is OFFLINE", "Connection refused")
LATENCY = OpenAlert(AlertType.HIGH_LATENCY, Severity.MEDIUM, "Broker Portal - High response time", "8000ms")
ERROR_RATE = OpenAlert(AlertType.HIGH_ERROR_RATE, Severity.HIGH, "Broker Portal - High error rate", "12%")


@pytest.mark.asyncio
async def test_offline_transition_notifies_critical_exactly_once(
    site, detector, make_manager, record_check, alert_repo, notifier, clock
) -> None:
    manager = make_manager()
    previous = await record_check(site.id, "online")
    clock.advance(minutes=5)
    current = await record_check(site.id, "offline", response_time_ms=None)

    opened = await manager.apply(site, await detector.detect(site, previous, current))

    assert len(opened) == 1
    alert = opened[0]
    assert alert.alert_type == "offline"
    assert alert.severity == "critical"
    assert notifier.calls == []

    assert await manager.process_pending(clock.now()) == 1
    assert notifier.calls == [("critical", alert.id, None)]
    stored = await alert_repo.get_by_id(alert.id)
    assert stored.email_sent is True
    assert stored.whatsapp_sent is True

    assert await manager.process_pending(clock.now()) == 0
    assert notifier.kinds() == ["critical"]


@pytest.mark.asyncio
async def test_immediate_critical_is_not_resent_by_pending_sweep(site, make_manager, notifier, clock) -> None:
    manager = make_manager(immediate_critical=True)

    alert = await manager.open(site, OFFLINE)
    await manager.process_pending(clock.now())

    assert notifier.calls == [("critical", alert.id, None)]


@pytest.mark.asyncio
async def test_recovery_resolves_open_offline_alert(
    site, detector, make_manager, record_check, alert_repo, notifier, clock
) -> None:
    manager = make_manager()
    alert = await manager.open(site, OFFLINE)
    previous = await record_check(site.id, "offline", response_time_ms=None)
    clock.advance(minutes=5)
    current = await record_check(site.id, "online")

    await manager.apply(site, await detector.detect(site, previous, current))

    stored = await alert_repo.get_by_id(alert.id)
    assert stored.resolved is True
    assert stored.resolved_at == clock.now()
    assert stored.resolved_by is None
    assert len(await alert_repo.list_history(site.id)) == 1
    assert notifier.calls == [("recovery", alert.id, None)]


@pytest.mark.asyncio
async def test_open_is_idempotent_per_site_and_type(site, make_manager, alert_repo) -> None:
    manager = make_manager()

    first = await manager.open(site, LATENCY)
    second = await manager.open(site, LATENCY)

    assert second.id == first.id
    assert [a.id for a in await alert_repo.list_active(site.id)] == [first.id]


@pytest.mark.asyncio
async def test_condition_recurring_after_resolution_opens_new_alert(site, make_manager, alert_repo) -> None:
    manager = make_manager()
    first = await manager.open(site, OFFLINE)
    await manager.resolve(first.id, "user-1")

    second = await manager.open(site, OFFLINE)

    assert second.id != first.id
    assert (await alert_repo.get_by_id(first.id)).resolved is True
    assert [a.id for a in await alert_repo.list_active(site.id)] == [second.id]


@pytest.mark.asyncio
async def test_escalation_repeats_on_every_call_past_threshold(site, make_manager, alert_repo, notifier, clock) -> None:
    manager = make_manager()
    alert = await manager.open(site, OFFLINE)

    clock.advance(minutes=10)
    assert await manager.escalate(clock.now()) == 0

    clock.advance(minutes=35)
    assert await manager.escalate(clock.now()) == 1
    assert (await alert_repo.get_by_id(alert.id)).notification_attempts == 1

    assert await manager.escalate(clock.now()) == 1
    assert (await alert_repo.get_by_id(alert.id)).notification_attempts == 2
    assert notifier.kinds() == ["escalation", "escalation"]


@pytest.mark.asyncio
async def test_escalation_skips_non_critical_and_resolved(site, make_manager, notifier, clock) -> None:
    manager = make_manager()
    await manager.open(site, LATENCY)
    resolved = await manager.open(site, OFFLINE)
    await manager.resolve(resolved.id, "user-1")
    notifier.calls.clear()

    clock.advance(hours=2)

    assert await manager.escalate(clock.now()) == 0
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_resolve_unknown_alert_raises_not_found(make_manager, alert_repo, notifier) -> None:
    manager = make_manager()

    with pytest.raises(NotFound):
        await manager.resolve(9999, "user-1")

    assert await alert_repo.list_history() == []
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_resolve_twice_is_a_no_op(site, make_manager, notifier, clock) -> None:
    manager = make_manager()
    alert = await manager.open(site, OFFLINE)

    first = await manager.resolve(alert.id, "user-7")
    clock.advance(minutes=1)
    second = await manager.resolve(alert.id, "user-8")

    assert first.resolved is True
    assert first.resolved_by == "user-7"
    assert second.resolved_by == "user-7"
    assert second.resolved_at == first.resolved_at
    assert notifier.kinds() == ["recovery"]


@pytest.mark.asyncio
async def test_high_alert_pushes_while_condition_holds(
    site, make_manager, record_check, alert_repo, notifier, clock
) -> None:
    manager = make_manager()
    await record_check(site.id, "online", error_rate=12.0)
    alert = await manager.open(site, ERROR_RATE)

    assert await manager.process_pending(clock.now()) == 1

    stored = await alert_repo.get_by_id(alert.id)
    assert notifier.calls == [("send", alert.id, "push")]
    assert stored.push_sent is True
    assert stored.notification_attempts == 1
    assert stored.next_retry_at == clock.now() + timedelta(minutes=5)

    # Not due again until the retry delay has passed
    assert await manager.process_pending(clock.now()) == 0

    clock.advance(minutes=5)
    await manager.process_pending(clock.now())
    assert notifier.kinds() == ["send", "send"]


@pytest.mark.asyncio
async def test_high_alert_auto_resolves_when_condition_cleared(
    site, make_manager, record_check, alert_repo, notifier, clock
) -> None:
    manager = make_manager()
    await record_check(site.id, "online", error_rate=12.0)
    alert = await manager.open(site, ERROR_RATE)
    clock.advance(minutes=1)
    await record_check(site.id, "online", error_rate=0.5)

    await manager.process_pending(clock.now())

    stored = await alert_repo.get_by_id(alert.id)
    assert stored.resolved is True
    assert stored.resolved_by is None
    assert notifier.calls == [("recovery", alert.id, None)]


@pytest.mark.asyncio
async def test_medium_alert_is_left_alone_by_default(site, make_manager, record_check, notifier, clock) -> None:
    manager = make_manager()
    await record_check(site.id, "online", response_time_ms=8000)
    await manager.open(site, LATENCY)

    assert await manager.process_pending(clock.now()) == 0
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_pending_action_can_be_configured_per_type(site, make_manager, record_check, notifier, clock) -> None:
    manager = make_manager(pending_actions={"high_latency": "recheck"})
    await record_check(site.id, "online", response_time_ms=8000)
    alert = await manager.open(site, LATENCY)

    assert manager.pending_action(alert) == PendingAction.RECHECK
    assert await manager.process_pending(clock.now()) == 1
    assert notifier.calls == [("send", alert.id, "push")]


@pytest.mark.asyncio
async def test_invalid_pending_action_config_is_rejected(make_manager) -> None:
    with pytest.raises(ValueError):
        make_manager(pending_actions={"not_a_type": "notify"})
    with pytest.raises(ValueError):
        make_manager(pending_actions={"offline": "shout"})


@pytest.mark.asyncio
async def test_pending_failure_of_one_alert_does_not_stop_the_sweep(
    site, site_repo, make_manager, record_check, notifier, clock
) -> None:
    manager = make_manager()
    other = await site_repo.create(
        name="Consortium Hub",
        url="https://hub.example.com",
        endpoint_health="https://hub.example.com/health",
    )
    first = await manager.open(site, OFFLINE)
    second = await manager.open(other, OFFLINE)

    async def flaky_critical(alert, target) -> bool:
        if alert.id == first.id:
            raise RuntimeError("gateway exploded")
        notifier.calls.append(("critical", alert.id, None))
        return True

    notifier.send_critical = flaky_critical

    assert await manager.process_pending(clock.now()) == 1
    assert notifier.calls == [("critical", second.id, None)]


@pytest.mark.asyncio
async def test_report_counts_and_mean_resolution(site, make_manager, clock) -> None:
    manager = make_manager()
    offline = await manager.open(site, OFFLINE)
    await manager.open(site, LATENCY)
    clock.advance(minutes=10)
    await manager.resolve(offline.id, "user-1")

    report = await manager.report(ReportPeriod.DAY)

    assert report.period == "24h"
    assert report.total == 2
    assert report.resolved == 1
    assert report.active == 1
    assert report.by_severity == {"low": 0, "medium": 1, "high": 0, "critical": 1}
    assert report.by_type == {"offline": 1, "high_latency": 1}
    assert report.mean_resolution_minutes == 10

    clock.advance(days=2)
    assert (await manager.report(ReportPeriod.DAY)).total == 0
    assert (await manager.report(ReportPeriod.WEEK)).total == 2


def test_severity_is_ordered() -> None:
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
    assert Severity.CRITICAL >= Severity.HIGH
    assert sorted([Severity.CRITICAL, Severity.LOW, Severity.HIGH]) == [Severity.LOW, Severity.HIGH, Severity.CRITICAL]


@pytest.mark.asyncio
async def test_concurrent_pending_sweeps_send_critical_once(site, make_manager, alert_repo, notifier, clock) -> None:
    manager = make_manager()
    alert = await manager.open(site, OFFLINE)

    await asyncio.gather(manager.process_pending(clock.now()), manager.process_pending(clock.now()))

    assert notifier.calls == [("critical", alert.id, None)]
    stored = await alert_repo.get_by_id(alert.id)
    assert stored.email_sent is True
    assert stored.whatsapp_sent is True


@pytest.mark.asyncio
async def test_trend_counts_alerts_per_hour(site, make_manager, clock) -> None:
    manager = make_manager()
    offline = await manager.open(site, OFFLINE)
    clock.advance(minutes=20)
    await manager.open(site, LATENCY)
    clock.advance(hours=2)
    await manager.resolve(offline.id, "user-1")
    await manager.open(site, OFFLINE)

    assert await manager.trend(ReportPeriod.DAY) == [
        {"hour": "2026-03-02T09:00", "alerts": 2},
        {"hour": "2026-03-02T11:00", "alerts": 1},
    ]

    clock.advance(days=2)
    assert await manager.trend(ReportPeriod.DAY) == []


@pytest.mark.asyncio
async def test_resolution_times_mean_min_max(site, site_repo, make_manager, clock) -> None:
    other = await site_repo.create(name="Holding", url="https://holding.example.com", endpoint_health="https://holding.example.com/h")
    manager = make_manager()
    offline = await manager.open(site, OFFLINE)
    latency = await manager.open(site, LATENCY)
    elsewhere = await manager.open(other, OFFLINE)
    await manager.open(site, ERROR_RATE)
    clock.advance(minutes=10)
    await manager.resolve(offline.id, "user-1")
    clock.advance(minutes=20)
    await manager.resolve(latency.id, "user-1")
    clock.advance(minutes=60)
    await manager.resolve(elsewhere.id, "user-1")

    times = await manager.resolution_times(ReportPeriod.WEEK)
    assert (times.resolved, times.mean_minutes, times.min_minutes, times.max_minutes) == (3, 43, 10, 90)

    for_site = await manager.resolution_times(ReportPeriod.WEEK, site_id=site.id)
    assert (for_site.resolved, for_site.mean_minutes, for_site.min_minutes, for_site.max_minutes) == (2, 20, 10, 30)


@pytest.mark.asyncio
async def test_resolution_times_without_resolved_alerts_are_zero(site, make_manager) -> None:
    manager = make_manager()
    await manager.open(site, OFFLINE)

    times = await manager.resolution_times(ReportPeriod.DAY)

    assert times.period == "24h"
    assert (times.resolved, times.mean_minutes, times.min_minutes, times.max_minutes) == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_open_counts_by_type_ignores_resolved(site, make_manager) -> None:
    manager = make_manager()
    offline = await manager.open(site, OFFLINE)
    await manager.open(site, LATENCY)
    await manager.open(site, ERROR_RATE)
    await manager.resolve(offline.id, "user-1")

    counts = await manager.open_counts_by_type()

    assert counts["offline"] == 0
    assert counts["high_latency"] == 1
    assert counts["high_error_rate"] == 1
    assert sum(counts.values()) == 2
