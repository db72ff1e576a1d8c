from __future__ import annotations

import pytest

from sitewatch.models.enums import AlertType, Severity
from sitewatch.services.detector import CloseAlert, OpenAlert


@pytest.mark.asyncio
async def test_online_to_offline_opens_critical(site, detector, record_check) -> None:
    previous = await record_check(site.id, "online")
    current = await record_check(site.id, "offline", response_time_ms=None, error_message="Connection error")

    intents = await detector.detect(site, previous, current)

    assert len(intents) == 1
    intent = intents[0]
    assert isinstance(intent, OpenAlert)
    assert intent.alert_type == AlertType.OFFLINE
    assert intent.severity == Severity.CRITICAL
    assert "Connection error" in intent.message


@pytest.mark.asyncio
async def test_first_check_offline_opens_nothing(site, detector, record_check) -> None:
    current = await record_check(site.id, "offline", response_time_ms=None)

    assert await detector.detect(site, None, current) == []


@pytest.mark.asyncio
async def test_offline_to_online_closes_only_open_alert(site, detector, make_manager, record_check) -> None:
    previous = await record_check(site.id, "offline", response_time_ms=None)
    current = await record_check(site.id, "online")

    assert await detector.detect(site, previous, current) == []

    await make_manager().open(site, OpenAlert(AlertType.OFFLINE, Severity.CRITICAL, "down", "down"))

    assert await detector.detect(site, previous, current) == [CloseAlert(AlertType.OFFLINE)]


@pytest.mark.asyncio
async def test_slow_response_opens_medium_latency_once(site, detector, make_manager, record_check) -> None:
    previous = await record_check(site.id, "online")
    current = await record_check(site.id, "online", response_time_ms=8000)

    intents = await detector.detect(site, previous, current)
    assert [(i.alert_type, i.severity) for i in intents] == [(AlertType.HIGH_LATENCY, Severity.MEDIUM)]

    await make_manager().apply(site, intents)

    assert await detector.detect(site, previous, current) == []


@pytest.mark.asyncio
async def test_error_rate_over_threshold_opens_high(site, detector, record_check) -> None:
    previous = await record_check(site.id, "online")
    current = await record_check(site.id, "online", error_rate=12.5)

    intents = await detector.detect(site, previous, current)

    assert [(i.alert_type, i.severity) for i in intents] == [(AlertType.HIGH_ERROR_RATE, Severity.HIGH)]


@pytest.mark.asyncio
async def test_rules_are_independent(site, detector, record_check) -> None:
    previous = await record_check(site.id, "online")
    current = await record_check(site.id, "offline", response_time_ms=10000, error_rate=50.0)

    intents = await detector.detect(site, previous, current)

    assert {i.alert_type for i in intents} == {AlertType.OFFLINE, AlertType.HIGH_LATENCY, AlertType.HIGH_ERROR_RATE}


@pytest.mark.asyncio
async def test_values_at_threshold_do_not_alert(site, detector, record_check) -> None:
    previous = await record_check(site.id, "online")
    current = await record_check(site.id, "online", response_time_ms=5000, error_rate=5.0)

    assert await detector.detect(site, previous, current) == []
