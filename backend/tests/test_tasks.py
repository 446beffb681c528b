"""
Тесты фоновых задач и консольной выдачи роли.
"""
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

from loguru import logger

from nova_funded.models import UserRole
from nova_funded.services.reconciliation import ReconciliationService
from nova_funded.tasks import scheduler as scheduler_module
from nova_funded.tasks.grant_admin import grant_role
from nova_funded.tasks.scheduler import setup_scheduler


async def test_grant_role_by_email_is_case_insensitive(db_session, make_user):
    user = await make_user(email="Ops@Example.com")
    granted = await grant_role(db_session, "  ops@example.COM ", UserRole.admin)
    assert granted is user
    assert user.role == UserRole.admin


async def test_grant_role_unknown_email(db_session):
    assert await grant_role(db_session, "nobody@example.com", UserRole.admin) is None


def test_scheduler_registers_reconciliation_job():
    scheduler = setup_scheduler()
    job = scheduler.get_job("payment_reconciliation")
    assert job is not None
    assert job.max_instances == 1


async def test_reconcile_job_runs_in_own_session(db_session, monkeypatch):
    @asynccontextmanager
    async def _scope():
        yield db_session

    run = AsyncMock(return_value=[])
    monkeypatch.setattr(scheduler_module, "session_scope", _scope)
    monkeypatch.setattr(ReconciliationService, "run", run)

    await scheduler_module._reconcile_payments()
    run.assert_awaited_once()


async def test_reconcile_job_survives_errors(db_session, monkeypatch):
    @asynccontextmanager
    async def _scope():
        yield db_session

    monkeypatch.setattr(scheduler_module, "session_scope", _scope)
    monkeypatch.setattr(ReconciliationService, "run", AsyncMock(side_effect=RuntimeError("db gone")))

    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="ERROR")
    try:
        await scheduler_module._reconcile_payments()
    finally:
        logger.remove(sink_id)

    assert len(records) == 1
    assert records[0]["exception"] is not None
    assert records[0]["exception"].type is RuntimeError
