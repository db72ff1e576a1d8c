from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

from sitewatch.database import build_engine, build_session_factory, create_tables
from sitewatch.models import HealthCheck, Site
from sitewatch.models.enums import NotificationChannel
from sitewatch.repositories import (
    SqlAlertRepository,
    SqlCheckRepository,
    SqlNotificationRepository,
    SqlSiteRepository,
)
from sitewatch.services.alert_manager import AlertLifecycleManager
from sitewatch.services.detector import StatusTransitionDetector

START = datetime(2026, 3, 2, 9, 0, 0)


class FakeClock:
    """Virtual time for sweeps and timestamps."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingNotifier:
    """Notifier that remembers every call instead of delivering."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int, str | None]] = []

    async def send_critical(self, alert, site) -> bool:
        self.calls.append(("critical", alert.id, None))
        return True

    async def send(self, alert, site, channel) -> bool:
        self.calls.append(("send", alert.id, NotificationChannel(channel).value))
        return True

    async def send_recovery(self, alert, site) -> bool:
        self.calls.append(("recovery", alert.id, None))
        return True

    async def send_escalation(self, alert, site) -> bool:
        self.calls.append(("escalation", alert.id, None))
        return True

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.calls]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'sitewatch.db'}")
    await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def site_repo(session_factory) -> SqlSiteRepository:
    return SqlSiteRepository(session_factory)


@pytest.fixture
def check_repo(session_factory) -> SqlCheckRepository:
    return SqlCheckRepository(session_factory)


@pytest.fixture
def alert_repo(session_factory) -> SqlAlertRepository:
    return SqlAlertRepository(session_factory)


@pytest.fixture
def notification_repo(session_factory) -> SqlNotificationRepository:
    return SqlNotificationRepository(session_factory)


@pytest_asyncio.fixture
async def site(site_repo: SqlSiteRepository) -> Site:
    return await site_repo.create(
        name="Broker Portal",
        url="https://portal.example.com",
        type="broker",
        endpoint_health="https://portal.example.com/api/health",
        contact_email="ops@portal.example.com",
        contact_phone="+5511999990000",
        check_interval=300,
        timeout=10,
        threshold_response_time_ms=5000,
        threshold_error_rate=5.0,
    )


@pytest.fixture
def detector(alert_repo: SqlAlertRepository) -> StatusTransitionDetector:
    return StatusTransitionDetector(alert_repo)


@pytest.fixture
def make_manager(alert_repo, site_repo, check_repo, notifier, clock):
    def factory(**kwargs) -> AlertLifecycleManager:
        kwargs.setdefault("immediate_critical", False)
        return AlertLifecycleManager(alert_repo, site_repo, check_repo, notifier, clock=clock, **kwargs)

    return factory


@pytest.fixture
def record_check(check_repo: SqlCheckRepository, clock: FakeClock):
    async def record(site_id: int, status: str, response_time_ms: int | None = 120, error_rate: float | None = 0.0, **extra) -> HealthCheck:
        extra.setdefault("checked_at", clock.now())
        return await check_repo.insert(HealthCheck(
            site_id=site_id,
            status=status,
            http_status=200 if status == "online" else None,
            response_time_ms=response_time_ms,
            error_rate=error_rate,
            **extra,
        ))

    return record
