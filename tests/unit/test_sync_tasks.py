"""
Tests for the scheduled sync tasks and worker schedule.

The session factory and service wiring are patched so each tenant run
works against mocks; what is verified is the per-tenant transaction
handling and the summary the sweep returns.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from marketsync.core.exceptions import ConfigurationError, ReconnectRequired
from marketsync.core.models import AlertLevel, BatchResult, PollSummary, TenantSettings
from marketsync.tasks import sync_tasks
from marketsync.tasks.task_queue import schedule_minutes


def _services(poll_side_effect=None, auto_withdraw: bool = True):
    poller = AsyncMock()
    poller.poll = AsyncMock(
        side_effect=poll_side_effect, return_value=PollSummary(orders_seen=2, applied=1)
    )
    reconciler = AsyncMock()
    result = BatchResult()
    result.record_success()
    reconciler.reconcile = AsyncMock(return_value=result)
    tenant_settings = AsyncMock()
    tenant_settings.get_settings = AsyncMock(
        return_value=TenantSettings(auto_withdraw_sold=auto_withdraw)
    )
    return SimpleNamespace(
        poller=poller,
        reconciler=reconciler,
        tenant_settings=tenant_settings,
        alerts=AsyncMock(),
        audit=AsyncMock(),
    )


@pytest.fixture
def session():
    mock = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=mock)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    with patch.object(sync_tasks, "async_session_factory", factory):
        yield mock


class TestPollTenant:
    async def test_success_commits(self, session):
        services = _services()
        with patch.object(sync_tasks, "build_services", return_value=services):
            outcome = await sync_tasks.poll_tenant_task({}, "tenant-1")

        assert outcome["status"] == "ok"
        assert outcome["applied"] == 1
        session.commit.assert_awaited_once()
        services.poller.poll.assert_awaited_once_with("tenant-1")

    async def test_domain_failure_rolls_back(self, session):
        services = _services(poll_side_effect=ConfigurationError("Tenant has no credential"))
        with patch.object(sync_tasks, "build_services", return_value=services):
            outcome = await sync_tasks.poll_tenant_task({}, "tenant-1")

        assert outcome == {"status": "failed", "error": "Tenant has no credential"}
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_reconnect_required_raises_alert(self, session):
        services = _services(poll_side_effect=ReconnectRequired("refresh rejected"))
        with patch.object(sync_tasks, "build_services", return_value=services):
            outcome = await sync_tasks.poll_tenant_task({}, "tenant-1")

        assert outcome["status"] == "reconnect_required"
        args = services.alerts.emit.await_args.args
        assert args[0] == "tenant-1"
        assert args[1] == AlertLevel.ERROR
        # Alert is committed after the rollback
        session.rollback.assert_awaited_once()
        session.commit.assert_awaited_once()

    async def test_unexpected_error_contained(self, session):
        services = _services(poll_side_effect=KeyError("boom"))
        with patch.object(sync_tasks, "build_services", return_value=services):
            outcome = await sync_tasks.poll_tenant_task({}, "tenant-1")
        assert outcome["status"] == "failed"
        assert outcome["error"].startswith("KeyError")
        services.audit.error.assert_awaited_once()
        assert services.audit.error.await_args.args == ("tenant-1", "Scheduled poll failed")
        session.rollback.assert_awaited_once()
        session.commit.assert_awaited_once()


class TestSweeps:
    async def test_poll_all_isolates_tenants(self, session):
        good = _services()
        bad = _services(poll_side_effect=ConfigurationError("no policy"))
        with (
            patch.object(sync_tasks, "_connected_tenants", AsyncMock(return_value=["t-1", "t-2"])),
            patch.object(sync_tasks, "build_services", side_effect=[bad, good]),
        ):
            summary = await sync_tasks.poll_all_tenants_task({})

        assert summary["tenants_processed"] == 2
        assert summary["tenants_failed"] == 1
        assert summary["results"]["t-1"]["status"] == "failed"
        assert summary["results"]["t-2"]["status"] == "ok"

    async def test_reconcile_respects_tenant_preference(self, session):
        enabled = _services()
        disabled = _services(auto_withdraw=False)
        with (
            patch.object(sync_tasks, "_connected_tenants", AsyncMock(return_value=["t-1", "t-2"])),
            patch.object(sync_tasks, "build_services", side_effect=[enabled, disabled]),
        ):
            summary = await sync_tasks.reconcile_all_tenants_task({})

        assert summary["results"]["t-1"] == {"status": "ok", "success": 1, "failed": 0, "errors": []}
        assert summary["results"]["t-2"] == {"status": "ok", "skipped": True}
        disabled.reconciler.reconcile.assert_not_awaited()

    async def test_no_connected_tenants(self, session):
        with patch.object(sync_tasks, "_connected_tenants", AsyncMock(return_value=[])):
            summary = await sync_tasks.poll_all_tenants_task({})
        assert summary == {"tenants_processed": 0, "tenants_failed": 0, "results": {}}


class TestSchedule:
    def test_every_fifteen_minutes(self):
        assert schedule_minutes(15) == {0, 15, 30, 45}

    def test_offset(self):
        assert schedule_minutes(15, offset=7) == {7, 22, 37, 52}

    def test_interval_clamped(self):
        assert schedule_minutes(0) == set(range(60))
        assert schedule_minutes(120) == {0}
