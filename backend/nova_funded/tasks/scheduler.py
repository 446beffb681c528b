"""
APScheduler задачи для NOVA_FUNDED.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from nova_funded.core.config import settings
from nova_funded.core.database import session_scope

scheduler = AsyncIOScheduler(timezone="UTC")


async def _reconcile_payments() -> None:
    """Ищет подтверждённые платежи без испытания и алертит оператора."""
    from nova_funded.services.reconciliation import ReconciliationService
    try:
        async with session_scope() as session:
            found = await ReconciliationService(session).run()
    except Exception as e:
        logger.exception(f"Reconciliation task error: {e}")
        return
    if found:
        logger.warning(f"Reconciliation: {len(found)} payment(s) need manual provisioning")


def setup_scheduler() -> AsyncIOScheduler:
    """Настраивает и возвращает планировщик."""
    scheduler.add_job(
        _reconcile_payments,
        trigger=IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        id="payment_reconciliation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info("APScheduler configured with all tasks")
    return scheduler
